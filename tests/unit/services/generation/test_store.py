from __future__ import annotations

from datetime import datetime, timedelta, timezone

from prompt_gateway import models
from prompt_gateway.services.generation.store import parse_variable_schema
from prompt_gateway.services.generation.types import ModelStatus, UsageLogEntry, VariableSpec


def test_model_uses_its_own_key_first(sql_store, seed_model, db_session) -> None:
    db_session.add(models.ProviderCredential(provider="openai", api_credential="sk-provider"))
    db_session.commit()
    seed_model("model-1", api_key="sk-model", max_tokens=1024)

    config = sql_store.get_model("model-1")

    assert config is not None
    assert config.credential == "sk-model"
    assert config.provider == "openai"
    assert config.provider_model_name == "gpt-4o-mini"
    assert config.status is ModelStatus.ACTIVE
    assert config.max_tokens == 1024


def test_model_falls_back_to_provider_credential(sql_store, seed_model, db_session) -> None:
    db_session.add(models.ProviderCredential(provider="anthropic", api_credential="sk-ant"))
    db_session.commit()
    seed_model("model-1", provider="anthropic", api_key=None)

    assert sql_store.get_model("model-1").credential == "sk-ant"


def test_model_without_any_credential(sql_store, seed_model) -> None:
    seed_model("model-1", provider="google", api_key="  ")

    assert sql_store.get_model("model-1").credential == ""


def test_unknown_status_is_treated_as_disabled(sql_store, seed_model) -> None:
    seed_model("model-1", status="archived")

    assert sql_store.get_model("model-1").status is ModelStatus.DISABLED


def test_missing_rows_return_none(sql_store) -> None:
    assert sql_store.get_model("nope") is None
    assert sql_store.get_draft("nope") is None


def test_draft_is_resolved_with_variable_schema(sql_store, seed_model, db_session) -> None:
    seed_model("model-1")
    db_session.add(
        models.PromptDraft(
            id="draft-1",
            title="Greeting",
            prompt_text="Hello {{name}}",
            model_id="model-1",
            variables=[{"name": "name", "required": True}, {"name": "tone"}],
        )
    )
    db_session.commit()

    draft = sql_store.get_draft("draft-1")

    assert draft.prompt_text == "Hello {{name}}"
    assert draft.model_id == "model-1"
    assert draft.required_variables == (
        VariableSpec("name", required=True),
        VariableSpec("tone", required=False),
    )


def test_usage_is_recorded_and_counted_per_window(sql_store) -> None:
    now = datetime.now(timezone.utc)
    for offset in (1, 5, 15):
        sql_store.record_usage(
            UsageLogEntry(
                user_id="user-1",
                model_id="model-1",
                token_count=10,
                timestamp=now - timedelta(minutes=offset),
            )
        )
    sql_store.record_usage(
        UsageLogEntry(user_id="user-2", model_id="model-1", token_count=3, timestamp=now)
    )

    assert sql_store.count_usage_since("user-1", now - timedelta(minutes=10)) == 2
    assert sql_store.count_usage_since("user-2", now - timedelta(minutes=10)) == 1
    assert sql_store.count_usage_since("user-3", now - timedelta(minutes=10)) == 0


def test_recorded_usage_row(sql_store, db_session) -> None:
    sql_store.record_usage(
        UsageLogEntry(
            user_id="user-1",
            model_id="model-1",
            token_count=42,
            timestamp=datetime.now(timezone.utc),
            draft_ref="draft-1",
        )
    )

    row = db_session.query(models.GenerationLog).one()
    assert row.total_tokens == 42
    assert row.prompt_draft_id == "draft-1"


def test_parse_variable_schema_skips_malformed_items() -> None:
    specs = parse_variable_schema(
        [{"name": "a", "required": True}, {"required": True}, "b", {"name": "  "}, {"name": "c"}]
    )

    assert specs == (VariableSpec("a", True), VariableSpec("c", False))
    assert parse_variable_schema(None) == ()
