from __future__ import annotations

from quizforge.config import DISABLED_MODES_ENV, AppConfig


def test_defaults() -> None:
    cfg = AppConfig()
    assert cfg.version == "0.3.0"
    assert cfg.history_limit == 50
    assert cfg.history_key("bio") == "quizforge_bio_history"
    assert cfg.stats_key("bio") == "quizforge_bio_stats"
    assert cfg.is_enabled("flashcard") is True


def test_from_dict_reads_plugin_switches() -> None:
    cfg = AppConfig.from_dict(
        {
            "version": "1.2.0",
            "historyLimit": 20,
            "plugins": {
                "flashcard": {"enabled": False},
                "true-false": {"enabled": True},
                "matching-stage": {},
            },
        }
    )

    assert cfg.version == "1.2.0"
    assert cfg.history_limit == 20
    assert cfg.disabled_modes == frozenset({"flashcard"})
    assert cfg.is_enabled("matching-stage") is True


def test_from_dict_ignores_bad_values() -> None:
    cfg = AppConfig.from_dict({"historyLimit": True, "storagePrefix": "  ", "plugins": ["flashcard"]})
    assert cfg == AppConfig()
    assert AppConfig.from_dict(None) == AppConfig()


def test_from_env_adds_disabled_modes() -> None:
    base = AppConfig.from_dict({"plugins": {"flashcard": {"enabled": False}}})

    cfg = AppConfig.from_env({DISABLED_MODES_ENV: " true-false, ,matching-stage"}, base=base)

    assert cfg.disabled_modes == frozenset({"flashcard", "true-false", "matching-stage"})
    assert AppConfig.from_env({}, base=base) is base
