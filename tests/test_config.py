from __future__ import annotations

import pytest

import insights.config as config_module
from insights.config import DEFAULT_THRESHOLDS, load_config


class MissingSecrets:
    def __len__(self):
        raise FileNotFoundError("No secrets files found")


@pytest.fixture(autouse=True)
def no_env_key(monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)


def test_defaults_without_secrets_file(monkeypatch):
    monkeypatch.setattr(config_module.st, "secrets", MissingSecrets())

    config = load_config()

    assert config.gemini_api_key is None
    assert config.currency == "$"
    assert config.window_days == 30
    assert config.cache_max_age_seconds == 3600
    assert config.thresholds == DEFAULT_THRESHOLDS


def test_sections_are_read(monkeypatch):
    secrets = {
        "api": {"gemini_api_key": "abc", "gemini_model": "gemini-1.5-pro", "timeout_seconds": "12"},
        "app": {"currency": "COP ", "log_level": "debug", "json_logs": False},
        "analysis": {"window_days": 60, "max_insights": "3", "small_transaction_cutoff": 15000, "unknown": 1},
    }
    monkeypatch.setattr(config_module.st, "secrets", secrets)

    config = load_config()

    assert config.gemini_api_key == "abc"
    assert config.gemini_model == "gemini-1.5-pro"
    assert config.request_timeout_seconds == 12.0
    assert config.currency == "COP "
    assert config.log_level == "DEBUG"
    assert config.json_logs is False
    assert config.window_days == 60
    assert config.thresholds.max_insights == 3
    assert config.thresholds.small_transaction_cutoff == 15000.0
    assert config.thresholds.recurring_min_count == DEFAULT_THRESHOLDS.recurring_min_count


def test_api_key_falls_back_to_environment(monkeypatch):
    monkeypatch.setattr(config_module.st, "secrets", {})
    monkeypatch.setenv("GEMINI_API_KEY", "from-env")

    assert load_config().gemini_api_key == "from-env"
