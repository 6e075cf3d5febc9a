from __future__ import annotations

import pytest

from prompt_gateway import env, main
from prompt_gateway.config import Settings


def test_missing_secret_is_reported(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("GATEWAY_AUTH_SECRET", raising=False)
    monkeypatch.delenv("KEYCLOAK_SERVER_URL", raising=False)

    assert env.analyse_environment() == {"missing": ["GATEWAY_AUTH_SECRET"], "insecure": []}
    with pytest.raises(RuntimeError):
        env.validate_environment()


def test_keycloak_replaces_shared_secret(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("GATEWAY_AUTH_SECRET", raising=False)
    monkeypatch.setenv("KEYCLOAK_SERVER_URL", "http://keycloak:8080")

    assert env.analyse_environment()["missing"] == []


def test_default_secret_is_insecure(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GATEWAY_AUTH_SECRET", env.DEFAULT_SECRET)

    assert env.analyse_environment()["insecure"] == ["GATEWAY_AUTH_SECRET"]


def test_health_check_endpoint_flags_issues(client, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GATEWAY_AUTH_SECRET", env.DEFAULT_SECRET)

    response = client.get("/healthz")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["database"] == "up"
    assert body["missing"] == []
    assert body["insecure"] == ["GATEWAY_AUTH_SECRET"]


@pytest.mark.asyncio
async def test_strict_mode_refuses_to_start_with_default_secret(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("GATEWAY_AUTH_SECRET", env.DEFAULT_SECRET)
    monkeypatch.setattr(main, "get_settings", lambda: Settings(strict_environment=True))

    with pytest.raises(RuntimeError, match="insecure defaults"):
        async with main.lifespan(main.app):
            pass


@pytest.mark.asyncio
async def test_lenient_mode_starts_with_default_secret(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GATEWAY_AUTH_SECRET", env.DEFAULT_SECRET)
    monkeypatch.setattr(main, "get_settings", lambda: Settings(strict_environment=False))

    async with main.lifespan(main.app):
        pass


def test_strict_mode_is_read_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GATEWAY_STRICT_ENV", "true")

    assert Settings(_env_file=None).strict_environment is True
