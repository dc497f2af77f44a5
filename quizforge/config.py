from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field, replace

APP_VERSION = "0.3.0"
DISABLED_MODES_ENV = "QUIZFORGE_DISABLED_MODES"


@dataclass(frozen=True, slots=True)
class AppConfig:
    version: str = APP_VERSION
    storage_prefix: str = "quizforge"
    history_limit: int = 50
    storage_budget_bytes: int = 5 * 1024 * 1024
    disabled_modes: frozenset[str] = field(default_factory=frozenset)

    def is_enabled(self, mode_id: str) -> bool:
        return mode_id not in self.disabled_modes

    def history_key(self, bank_id: str) -> str:
        return f"{self.storage_prefix}_{bank_id}_history"

    def stats_key(self, bank_id: str) -> str:
        return f"{self.storage_prefix}_{bank_id}_stats"

    @classmethod
    def from_dict(cls, data: object) -> "AppConfig":
        """Read the master config shape ``{"plugins": {id: {"enabled": bool}}, ...}``.

        Unknown keys are ignored and bad values fall back to the defaults.
        """

        if not isinstance(data, Mapping):
            return cls()

        disabled: set[str] = set()
        plugins = data.get("plugins")
        if isinstance(plugins, Mapping):
            for mode_id, settings in plugins.items():
                if isinstance(settings, Mapping) and settings.get("enabled") is False:
                    disabled.add(str(mode_id))

        defaults = cls()
        version = data.get("version")
        prefix = data.get("storagePrefix")
        limit = data.get("historyLimit")
        return cls(
            version=version.strip() if isinstance(version, str) and version.strip() else defaults.version,
            storage_prefix=prefix.strip() if isinstance(prefix, str) and prefix.strip() else defaults.storage_prefix,
            history_limit=limit
            if isinstance(limit, int) and not isinstance(limit, bool) and limit > 0
            else defaults.history_limit,
            disabled_modes=frozenset(disabled),
        )

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, *, base: "AppConfig | None" = None) -> "AppConfig":
        env = os.environ if environ is None else environ
        cfg = base or cls()
        raw = env.get(DISABLED_MODES_ENV, "")
        extra = {part.strip() for part in raw.split(",") if part.strip()}
        if not extra:
            return cfg
        return replace(cfg, disabled_modes=cfg.disabled_modes | extra)
