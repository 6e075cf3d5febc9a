"""Generation pipeline building blocks.

The orchestrator lives in :mod:`.pipeline` and is imported from there
directly because it depends on the provider adapters.
"""

from __future__ import annotations

from .conversation import assemble_conversation
from .interpolation import ensure_variables, estimate_tokens, interpolate, validate_variables
from .model_resolver import ModelResolver, effective_max_tokens
from .normalizer import RequestNormalizer
from .rate_limit import UserRateLimiter
from .store import GenerationStore, SqlAlchemyGenerationStore
from .types import (
    Attachment,
    GenerationRequest,
    ModelConfig,
    ModelStatus,
    Provider,
    ProviderResult,
    ResolvedDraft,
    Role,
    TurnMessage,
    UsageLogEntry,
    VariableSpec,
)

__all__ = [
    "Attachment",
    "GenerationRequest",
    "GenerationStore",
    "ModelConfig",
    "ModelResolver",
    "ModelStatus",
    "Provider",
    "ProviderResult",
    "RequestNormalizer",
    "ResolvedDraft",
    "Role",
    "SqlAlchemyGenerationStore",
    "TurnMessage",
    "UsageLogEntry",
    "UserRateLimiter",
    "VariableSpec",
    "assemble_conversation",
    "effective_max_tokens",
    "ensure_variables",
    "estimate_tokens",
    "interpolate",
    "validate_variables",
]
