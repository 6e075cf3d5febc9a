"""Orchestration of a single generation request.

Stages run strictly in order and the first failure short-circuits:

    normalize -> rate limit -> resolve model -> validate variables ->
    interpolate -> assemble conversation -> dispatch -> log usage

Every failure leaves this module as a :class:`GenerationError`. Usage
logging is best-effort and never changes an already computed result.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Mapping, Optional

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from ...errors import ErrorKind, GenerationError
from ...providers import AdapterRegistry, ProviderAdapter
from ...providers.base import DEFAULT_TIMEOUT_MS
from .conversation import assemble_conversation
from .interpolation import ensure_variables, interpolate
from .model_resolver import PLATFORM_MAX_TOKENS, ModelResolver, effective_max_tokens
from .normalizer import RequestNormalizer
from .rate_limit import DEFAULT_LIMIT, DEFAULT_WINDOW, UserRateLimiter
from .store import GenerationStore
from .types import CHAT_MESSAGE_VARIABLE, GenerationRequest, UsageLogEntry

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

DEFAULT_TEMPERATURE = 0.7

UsageScheduler = Callable[..., Any]


class PipelineStage(str, Enum):
    NORMALIZE = "normalize"
    RATE_LIMIT = "rate_limit"
    RESOLVE_MODEL = "resolve_model"
    VALIDATE_VARIABLES = "validate_variables"
    INTERPOLATE = "interpolate"
    ASSEMBLE_CONVERSATION = "assemble_conversation"
    DISPATCH = "dispatch"
    LOG_USAGE = "log_usage"


@dataclass(frozen=True)
class GenerationOutcome:
    output: str
    tokens: int
    model_id: str
    provider: str


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GenerationPipeline:
    """Sequence the pipeline stages for one request.

    Instances hold no per-request state and may serve concurrent requests.
    """

    def __init__(
        self,
        store: GenerationStore,
        adapters: AdapterRegistry,
        *,
        rate_limit: int = DEFAULT_LIMIT,
        rate_window: timedelta = DEFAULT_WINDOW,
        temperature: float = DEFAULT_TEMPERATURE,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        max_tokens_cap: int = PLATFORM_MAX_TOKENS,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._adapters = adapters
        self._normalizer = RequestNormalizer(store)
        self._rate_limiter = UserRateLimiter(
            store, limit=rate_limit, window=rate_window, clock=clock
        )
        self._resolver = ModelResolver(store)
        self._temperature = temperature
        self._timeout_ms = timeout_ms
        self._max_tokens_cap = max_tokens_cap
        self._clock = clock

    def _adapter_for(self, provider: str) -> ProviderAdapter:
        adapter = self._adapters.get(provider)
        if adapter is None:
            raise GenerationError(
                ErrorKind.PROVIDER_ERROR, f"Unsupported provider: {provider}"
            )
        return adapter

    async def run(
        self,
        request: GenerationRequest,
        *,
        user_id: str,
        schedule: Optional[UsageScheduler] = None,
    ) -> GenerationOutcome:
        """Execute the pipeline and return the generated output.

        When ``schedule`` is given (for example ``BackgroundTasks.add_task``)
        usage logging is handed to it instead of being awaited here.
        """

        with tracer.start_as_current_span("generation.pipeline") as span:
            try:
                outcome = await self._execute(request, user_id=user_id, schedule=schedule)
            except GenerationError as exc:
                span.set_attribute("generation.outcome", exc.kind.value)
                if exc.provider:
                    span.set_attribute("llm.provider", exc.provider)
                span.set_status(Status(StatusCode.ERROR, exc.message))
                raise
            span.set_attribute("generation.outcome", "ok")
            span.set_attribute("llm.provider", outcome.provider)
            span.set_attribute("llm.model_id", outcome.model_id)
            span.set_attribute("llm.tokens", outcome.tokens)
            return outcome

    async def _execute(
        self,
        request: GenerationRequest,
        *,
        user_id: str,
        schedule: Optional[UsageScheduler],
    ) -> GenerationOutcome:
        stage = PipelineStage.NORMALIZE
        provider: Optional[str] = None
        try:
            normalized = await self._normalizer.normalize(request)

            stage = PipelineStage.RATE_LIMIT
            await self._rate_limiter.check(user_id)

            stage = PipelineStage.RESOLVE_MODEL
            model = await self._resolver.resolve(normalized.model_id)
            provider = str(model.provider)
            adapter = self._adapter_for(provider)

            stage = PipelineStage.VALIDATE_VARIABLES
            if normalized.draft is not None:
                ensure_variables(normalized.variables, normalized.draft.required_variables)

            stage = PipelineStage.INTERPOLATE
            system_text = interpolate(normalized.prompt_text, normalized.variables)

            stage = PipelineStage.ASSEMBLE_CONVERSATION
            messages = assemble_conversation(
                system_text,
                normalized.conversation_history,
                _current_turn(normalized.variables),
                attachments=normalized.attachments,
                supports_vision=adapter.supports_vision(model.provider_model_name),
            )

            stage = PipelineStage.DISPATCH
            result = await adapter.call(
                api_key=model.credential,
                model=model.provider_model_name,
                messages=messages,
                max_tokens=effective_max_tokens(model, self._max_tokens_cap),
                temperature=self._temperature,
                timeout_ms=self._timeout_ms,
            )
        except GenerationError as exc:
            if exc.provider is None:
                exc.provider = provider
            logger.info(
                "Generation rejected",
                extra={
                    "stage": stage.value,
                    "code": exc.kind.value,
                    "provider": provider,
                    "user_id": user_id,
                },
            )
            raise
        except Exception as exc:
            logger.exception("Unexpected generation failure", extra={"stage": stage.value})
            raise GenerationError(
                ErrorKind.INTERNAL_ERROR, "An unexpected error occurred", provider=provider
            ) from exc

        entry = UsageLogEntry(
            user_id=user_id,
            model_id=model.id,
            draft_ref=normalized.draft.id if normalized.draft is not None else None,
            token_count=result.token_count,
            timestamp=self._clock(),
        )
        if schedule is not None:
            schedule(self.log_usage, entry)
        else:
            await self.log_usage(entry)

        return GenerationOutcome(
            output=result.output_text,
            tokens=result.token_count,
            model_id=model.id,
            provider=str(model.provider),
        )

    async def log_usage(self, entry: UsageLogEntry) -> None:
        """Persist a usage row; failures are logged and swallowed."""

        try:
            await asyncio.to_thread(self._store.record_usage, entry)
        except Exception:
            logger.exception(
                "Failed to log generation",
                extra={"stage": PipelineStage.LOG_USAGE.value, "user_id": entry.user_id},
            )


def _current_turn(variables: Mapping[str, Any]) -> Optional[str]:
    value = variables.get(CHAT_MESSAGE_VARIABLE)
    return None if value is None else str(value)


__all__ = [
    "DEFAULT_TEMPERATURE",
    "GenerationOutcome",
    "GenerationPipeline",
    "PipelineStage",
    "UsageScheduler",
]
