from __future__ import annotations

import heapq
import itertools
import time
from collections.abc import Callable
from typing import Protocol


class Clock(Protocol):
    """Monotonic clock abstraction.

    Sessions and the timer queue read time only through this, so tests can
    drive it by hand.
    """

    def now(self) -> float:
        """Return monotonic seconds."""


class RealClock:
    """Production clock backed by time.monotonic()."""

    def now(self) -> float:
        return time.monotonic()


class TimerHandle:
    """A scheduled callback owned by whoever asked for it.

    Cancelling is idempotent. A cancelled handle never fires again, even if
    its deadline already passed before the next ``TimerQueue.tick``.
    """

    __slots__ = ("_callback", "_deadline_s", "_interval_s", "_cancelled", "_fired")

    def __init__(
        self,
        *,
        callback: Callable[[], None],
        deadline_s: float,
        interval_s: float | None,
    ) -> None:
        self._callback = callback
        self._deadline_s = float(deadline_s)
        self._interval_s = None if interval_s is None else float(interval_s)
        self._cancelled = False
        self._fired = 0

    @property
    def deadline_s(self) -> float:
        return self._deadline_s

    @property
    def repeating(self) -> bool:
        return self._interval_s is not None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def fire_count(self) -> int:
        return self._fired

    @property
    def active(self) -> bool:
        if self._cancelled:
            return False
        return self.repeating or self._fired == 0

    def cancel(self) -> None:
        self._cancelled = True

    def remaining_s(self, now: float) -> float:
        return max(0.0, self._deadline_s - now)


class TimerQueue:
    """Cooperative timer source driven by the host's event loop.

    Nothing runs in the background: the host calls :meth:`tick` (once per
    frame, once per second, whatever suits it) and every due callback runs to
    completion before ``tick`` returns. Callbacks run in deadline order.
    """

    def __init__(self, clock: Clock) -> None:
        self._clock = clock
        self._heap: list[tuple[float, int, TimerHandle]] = []
        self._seq = itertools.count()

    @property
    def clock(self) -> Clock:
        return self._clock

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle:
        if delay_s < 0:
            raise ValueError("delay_s must be >= 0")
        handle = TimerHandle(
            callback=callback,
            deadline_s=self._clock.now() + float(delay_s),
            interval_s=None,
        )
        self._push(handle)
        return handle

    def call_every(self, interval_s: float, callback: Callable[[], None]) -> TimerHandle:
        if interval_s <= 0:
            raise ValueError("interval_s must be > 0")
        handle = TimerHandle(
            callback=callback,
            deadline_s=self._clock.now() + float(interval_s),
            interval_s=interval_s,
        )
        self._push(handle)
        return handle

    def tick(self) -> int:
        """Run every callback whose deadline has passed. Returns how many ran."""

        now = self._clock.now()
        ran = 0
        while self._heap and self._heap[0][0] <= now:
            _, _, handle = heapq.heappop(self._heap)
            if handle.cancelled:
                continue
            handle._fired += 1
            if handle._interval_s is not None:
                # Catch up one interval at a time so a slow host still sees every tick.
                handle._deadline_s += handle._interval_s
                self._push(handle)
            handle._callback()
            ran += 1
        return ran

    def pending(self) -> list[TimerHandle]:
        self._prune()
        return [h for _, _, h in sorted(self._heap) if h.active]

    def queued(self) -> int:
        """Entries still held by the queue, cancelled ones included until pruned."""

        return len(self._heap)

    def _push(self, handle: TimerHandle) -> None:
        self._prune()
        heapq.heappush(self._heap, (handle.deadline_s, next(self._seq), handle))

    def _prune(self) -> None:
        live = [entry for entry in self._heap if not entry[2].cancelled]
        if len(live) != len(self._heap):
            heapq.heapify(live)
            self._heap = live
