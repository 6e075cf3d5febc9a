"""Value objects flowing through the generation pipeline."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

# Variable carrying the current conversational turn.
CHAT_MESSAGE_VARIABLE = "chat_message"


class Provider(str, Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE = "google"
    PERPLEXITY = "perplexity"
    GROK = "grok"


class ModelStatus(str, Enum):
    ACTIVE = "active"
    DEPRECATED = "deprecated"
    DISABLED = "disabled"


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class TurnMessage:
    """Single role-tagged message sent upstream."""

    role: Role
    content: str
    images: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Attachment:
    """File attached to the current turn."""

    url: str
    mime_type: str = ""

    @property
    def is_image(self) -> bool:
        return self.mime_type.lower().startswith("image/")


@dataclass
class GenerationRequest:
    """Inbound request before normalisation."""

    prompt_text: str = ""
    variables: Dict[str, Any] = field(default_factory=dict)
    model_id: str = ""
    conversation_history: List[Any] = field(default_factory=list)
    draft_ref: Optional[str] = None
    model_override_id: Optional[str] = None
    attachments: List[Attachment] = field(default_factory=list)


@dataclass(frozen=True)
class VariableSpec:
    name: str
    required: bool = False


@dataclass(frozen=True)
class ResolvedDraft:
    """Snapshot of a stored prompt draft."""

    id: str
    prompt_text: str
    model_id: Optional[str]
    required_variables: Tuple[VariableSpec, ...] = ()


@dataclass(frozen=True)
class ModelConfig:
    id: str
    name: str
    provider: Optional[str]
    provider_model_name: str
    status: ModelStatus
    credential: str = ""
    max_tokens: Optional[int] = None


@dataclass(frozen=True)
class ProviderResult:
    output_text: str
    token_count: int


@dataclass(frozen=True)
class UsageLogEntry:
    user_id: str
    model_id: str
    token_count: int
    timestamp: datetime
    draft_ref: Optional[str] = None


@dataclass(frozen=True)
class NormalizedRequest:
    """Request after draft resolution; prompt text and model id are guaranteed."""

    prompt_text: str
    model_id: str
    variables: Dict[str, Any]
    conversation_history: List[Any]
    attachments: List[Attachment]
    draft: Optional[ResolvedDraft] = None


__all__ = [
    "Attachment",
    "CHAT_MESSAGE_VARIABLE",
    "GenerationRequest",
    "ModelConfig",
    "ModelStatus",
    "NormalizedRequest",
    "Provider",
    "ProviderResult",
    "ResolvedDraft",
    "Role",
    "TurnMessage",
    "UsageLogEntry",
    "VariableSpec",
]
