"""Pydantic schemas for the generation endpoint."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..services.generation.types import Attachment, GenerationRequest


def _attachment(raw: Any) -> Optional[Attachment]:
    if not isinstance(raw, dict):
        return None
    url = raw.get("url")
    if not isinstance(url, str) or not url.strip():
        return None
    mime_type = raw.get("mimeType") or raw.get("mime_type") or ""
    return Attachment(url=url.strip(), mime_type=str(mime_type))


class GenerateRequestBody(BaseModel):
    """Inbound payload of ``POST /generate``."""

    prompt: Optional[str] = Field(default=None, description="Prompt template text")
    variables: Dict[str, Any] = Field(
        default_factory=dict, description="Values substituted into {{name}} tokens"
    )
    model_id: Optional[str] = Field(default=None, description="Identifier of the model to use")
    files: List[Any] = Field(
        default_factory=list,
        description="Files attached to the prompt; accepted but not forwarded to providers",
    )
    latest_attachments: List[Any] = Field(
        default_factory=list,
        validation_alias="latestAttachments",
        description="Attachments of the current chat turn ({url, mimeType})",
    )
    prompt_draft_id: Optional[str] = Field(
        default=None, description="Stored draft backfilling prompt and model"
    )
    model_override_id: Optional[str] = Field(
        default=None, description="Model preferred over the draft's model"
    )
    conversation: List[Any] = Field(
        default_factory=list, description="Prior turns as [{role, content}]"
    )

    model_config = ConfigDict(populate_by_name=True)

    def to_request(self) -> GenerationRequest:
        attachments = [
            attachment
            for attachment in map(_attachment, self.latest_attachments)
            if attachment is not None
        ]
        return GenerationRequest(
            prompt_text=self.prompt or "",
            variables=dict(self.variables),
            model_id=self.model_id or "",
            conversation_history=list(self.conversation),
            draft_ref=self.prompt_draft_id or None,
            model_override_id=self.model_override_id or None,
            attachments=attachments,
        )


class UsagePayload(BaseModel):
    tokens: int = Field(..., ge=0, description="Reported or estimated token count")


class GenerateResponse(BaseModel):
    """Successful generation result."""

    output: str
    usage: UsagePayload
