"""Load and gate the target model before any network call."""
from __future__ import annotations

import asyncio
import logging

from ...errors import ErrorKind, GenerationError
from .store import GenerationStore
from .types import ModelConfig, ModelStatus

logger = logging.getLogger(__name__)

PLATFORM_MAX_TOKENS = 2048


def effective_max_tokens(config: ModelConfig, cap: int = PLATFORM_MAX_TOKENS) -> int:
    """Return ``min(config.max_tokens or cap, cap)``."""

    return min(config.max_tokens or cap, cap)


class ModelResolver:
    def __init__(self, store: GenerationStore) -> None:
        self._store = store

    async def resolve(self, model_id: str) -> ModelConfig:
        config = await asyncio.to_thread(self._store.get_model, model_id)
        if config is None:
            raise GenerationError(
                ErrorKind.MODEL_NOT_FOUND,
                "Selected model not found",
                details={"model_id": model_id},
            )

        if config.status is ModelStatus.DISABLED:
            raise GenerationError(
                ErrorKind.MODEL_DISABLED,
                f'Model "{config.name}" is disabled and cannot be used',
            )
        if config.status is ModelStatus.DEPRECATED:
            logger.warning("Using deprecated model", extra={"model": config.name})

        if not config.provider:
            raise GenerationError(
                ErrorKind.INTERNAL_ERROR,
                f'Model "{config.name}" has no provider configured',
            )
        if not (config.credential or "").strip():
            logger.error("Missing provider credential", extra={"provider": config.provider})
            raise GenerationError(
                ErrorKind.MODEL_AUTH_ERROR,
                f"Missing API credentials for provider: {config.provider}",
            )
        return config


__all__ = ["ModelResolver", "PLATFORM_MAX_TOKENS", "effective_max_tokens"]
