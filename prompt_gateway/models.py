from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, List, Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .database import Base


def _generate_uuid() -> str:
    """Generate a random UUID stored as string."""

    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProviderCredential(Base):
    """Provider-wide API credential, used when a model carries no key of its own."""

    __tablename__ = "ai_providers"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_generate_uuid)
    provider: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    api_credential: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class ModelRecord(Base):
    """Configuration of a model exposed to end users."""

    __tablename__ = "models"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_generate_uuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    provider: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    provider_model: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="active")
    api_key: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    max_tokens: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )


class PromptDraft(Base):
    """Editable prompt definition referenced by generation requests."""

    __tablename__ = "prompt_drafts"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_generate_uuid)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    prompt_text: Mapped[str] = mapped_column(Text, nullable=False)
    model_id: Mapped[Optional[str]] = mapped_column(
        String, ForeignKey("models.id", ondelete="SET NULL"), nullable=True
    )
    user_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    variables: Mapped[Optional[List[Any]]] = mapped_column(
        JSON,
        nullable=True,
        doc="List of {name, required} objects describing template inputs.",
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )


class GenerationLog(Base):
    """One row per successful generation; also backs per-user rate limiting."""

    __tablename__ = "generation_logs"
    __table_args__ = (
        Index("ix_generation_logs_user_created", "user_id", "created_at"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_generate_uuid)
    user_id: Mapped[str] = mapped_column(String, nullable=False)
    model_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    prompt_draft_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    total_tokens: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    input_tokens: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    output_tokens: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )


__all__ = ["GenerationLog", "ModelRecord", "PromptDraft", "ProviderCredential"]
