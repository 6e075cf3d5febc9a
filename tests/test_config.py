from __future__ import annotations

import pytest

from prompt_gateway.config import Settings


def test_defaults_match_platform_limits(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("GATEWAY_USER_RATE_LIMIT", "GATEWAY_PROVIDER_TIMEOUT_MS", "GATEWAY_MAX_TOKENS_CAP"):
        monkeypatch.delenv(name, raising=False)

    settings = Settings(_env_file=None)

    assert settings.user_rate_limit == 30
    assert settings.user_rate_window_minutes == 10
    assert settings.provider_timeout_ms == 60_000
    assert settings.default_temperature == 0.7
    assert settings.max_tokens_cap == 2048


def test_origins_are_split_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GATEWAY_ALLOW_ORIGINS", "https://a.example, https://b.example ,")

    settings = Settings(_env_file=None)

    assert settings.allow_origins == ["https://a.example", "https://b.example"]


def test_numeric_overrides_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GATEWAY_USER_RATE_LIMIT", "5")
    monkeypatch.setenv("GATEWAY_PROVIDER_TIMEOUT_MS", "1500")

    settings = Settings(_env_file=None)

    assert settings.user_rate_limit == 5
    assert settings.provider_timeout_ms == 1500
