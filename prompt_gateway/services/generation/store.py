"""Persistence touchpoints required by the generation pipeline."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Iterable, Optional, Protocol, Tuple

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ... import models
from ...database import SessionLocal, session_scope
from .types import ModelConfig, ModelStatus, ResolvedDraft, UsageLogEntry, VariableSpec


class GenerationStore(Protocol):
    """Narrow store interface consumed by the pipeline."""

    def get_draft(self, draft_id: str) -> Optional[ResolvedDraft]:
        ...

    def get_model(self, model_id: str) -> Optional[ModelConfig]:
        ...

    def count_usage_since(self, user_id: str, since: datetime) -> int:
        ...

    def record_usage(self, entry: UsageLogEntry) -> None:
        ...


def parse_variable_schema(raw: Optional[Iterable[Any]]) -> Tuple[VariableSpec, ...]:
    """Convert a stored ``[{name, required}]`` list into :class:`VariableSpec` items."""

    specs = []
    for item in raw or []:
        if not isinstance(item, dict):
            continue
        name = str(item.get("name") or "").strip()
        if not name:
            continue
        specs.append(VariableSpec(name=name, required=bool(item.get("required", False))))
    return tuple(specs)


def _model_status(raw: Optional[str]) -> ModelStatus:
    try:
        return ModelStatus(str(raw or ModelStatus.ACTIVE.value).lower())
    except ValueError:
        return ModelStatus.DISABLED


class SqlAlchemyGenerationStore:
    """:class:`GenerationStore` backed by the SQLAlchemy models.

    Every operation opens its own short-lived session so that calls made
    after the HTTP response (usage logging) never share a closed session.
    """

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal) -> None:
        self._session_factory = session_factory

    def get_draft(self, draft_id: str) -> Optional[ResolvedDraft]:
        with session_scope(self._session_factory) as db:
            draft = db.get(models.PromptDraft, draft_id)
            if draft is None:
                return None
            return ResolvedDraft(
                id=draft.id,
                prompt_text=draft.prompt_text or "",
                model_id=draft.model_id,
                required_variables=parse_variable_schema(draft.variables),
            )

    def get_model(self, model_id: str) -> Optional[ModelConfig]:
        with session_scope(self._session_factory) as db:
            record = db.get(models.ModelRecord, model_id)
            if record is None:
                return None
            credential = (record.api_key or "").strip()
            if not credential and record.provider:
                provider_row = db.scalars(
                    select(models.ProviderCredential).where(
                        models.ProviderCredential.provider == record.provider
                    )
                ).first()
                if provider_row is not None:
                    credential = (provider_row.api_credential or "").strip()
            return ModelConfig(
                id=record.id,
                name=record.name,
                provider=record.provider,
                provider_model_name=record.provider_model,
                status=_model_status(record.status),
                credential=credential,
                max_tokens=record.max_tokens,
            )

    def count_usage_since(self, user_id: str, since: datetime) -> int:
        with session_scope(self._session_factory) as db:
            stmt = (
                select(func.count())
                .select_from(models.GenerationLog)
                .where(
                    models.GenerationLog.user_id == user_id,
                    models.GenerationLog.created_at >= since,
                )
            )
            return int(db.scalar(stmt) or 0)

    def record_usage(self, entry: UsageLogEntry) -> None:
        with session_scope(self._session_factory) as db:
            db.add(
                models.GenerationLog(
                    user_id=entry.user_id,
                    model_id=entry.model_id,
                    prompt_draft_id=entry.draft_ref,
                    total_tokens=entry.token_count,
                    created_at=entry.timestamp,
                )
            )
            db.commit()


__all__ = ["GenerationStore", "SqlAlchemyGenerationStore", "parse_variable_schema"]
