"""Resolve optional draft references into a complete request."""
from __future__ import annotations

import asyncio
import logging

from ...errors import ErrorKind, GenerationError
from .store import GenerationStore
from .types import GenerationRequest, NormalizedRequest, ResolvedDraft

logger = logging.getLogger(__name__)


def _blank(value: object) -> bool:
    return value is None or str(value).strip() == ""


class RequestNormalizer:
    """Backfill prompt text and model id from a stored draft when referenced."""

    def __init__(self, store: GenerationStore) -> None:
        self._store = store

    async def normalize(self, request: GenerationRequest) -> NormalizedRequest:
        prompt_text = request.prompt_text or ""
        model_id = request.model_id or ""
        draft: ResolvedDraft | None = None

        if request.draft_ref:
            draft = await asyncio.to_thread(self._store.get_draft, request.draft_ref)
            if draft is None:
                raise GenerationError(
                    ErrorKind.PROMPT_NOT_FOUND,
                    "Prompt draft not found",
                    details={"prompt_draft_id": request.draft_ref},
                )
            if _blank(prompt_text):
                prompt_text = draft.prompt_text
            if _blank(model_id):
                model_id = request.model_override_id or draft.model_id or ""
            logger.debug("Resolved prompt draft", extra={"prompt_draft_id": draft.id})

        if _blank(prompt_text):
            raise GenerationError(
                ErrorKind.INVALID_REQUEST,
                "prompt is required and cannot be empty",
                details={"field": "prompt"},
            )
        if _blank(model_id):
            raise GenerationError(
                ErrorKind.INVALID_REQUEST,
                "model_id is required",
                details={"field": "model_id"},
            )

        return NormalizedRequest(
            prompt_text=prompt_text,
            model_id=str(model_id).strip(),
            variables=dict(request.variables or {}),
            conversation_history=list(request.conversation_history or []),
            attachments=list(request.attachments or []),
            draft=draft,
        )


__all__ = ["RequestNormalizer"]
