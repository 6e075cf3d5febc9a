"""FastAPI router exposing the generation pipeline."""
from __future__ import annotations

import logging
import time
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Request

from ..auth import get_current_user_id
from ..config import Settings, get_settings
from ..errors import ErrorEnvelope, GenerationError
from ..providers import AdapterRegistry, build_adapter_registry
from ..schemas.generation import GenerateRequestBody, GenerateResponse, UsagePayload
from ..services.generation.pipeline import GenerationPipeline
from ..services.generation.store import GenerationStore, SqlAlchemyGenerationStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["generation"])


def get_store() -> GenerationStore:
    return SqlAlchemyGenerationStore()


def get_adapters(settings: Settings = Depends(get_settings)) -> AdapterRegistry:
    return build_adapter_registry(settings)


def get_pipeline(
    store: GenerationStore = Depends(get_store),
    adapters: AdapterRegistry = Depends(get_adapters),
    settings: Settings = Depends(get_settings),
) -> GenerationPipeline:
    return GenerationPipeline(
        store,
        adapters,
        rate_limit=settings.user_rate_limit,
        rate_window=timedelta(minutes=settings.user_rate_window_minutes),
        temperature=settings.default_temperature,
        timeout_ms=settings.provider_timeout_ms,
        max_tokens_cap=settings.max_tokens_cap,
    )


def _record(
    request: Request,
    provider: Optional[str],
    outcome: str,
    started: float,
    tokens: int = 0,
) -> None:
    metrics = getattr(request.app.state, "metrics", None)
    if metrics is not None:
        metrics.observe(
            provider, outcome, tokens=tokens, duration=time.perf_counter() - started
        )


@router.post(
    "/generate",
    response_model=GenerateResponse,
    summary="Generate a completion from a prompt template",
    responses={code: {"model": ErrorEnvelope} for code in (400, 401, 404, 429, 500, 503, 504)},
)
async def generate(
    payload: GenerateRequestBody,
    request: Request,
    background_tasks: BackgroundTasks,
    user_id: str = Depends(get_current_user_id),
    pipeline: GenerationPipeline = Depends(get_pipeline),
) -> GenerateResponse:
    """Run the generation pipeline for the authenticated caller."""

    started = time.perf_counter()
    try:
        outcome = await pipeline.run(
            payload.to_request(), user_id=user_id, schedule=background_tasks.add_task
        )
    except GenerationError as exc:
        _record(request, exc.provider, exc.kind.value, started)
        raise

    _record(request, outcome.provider, "ok", started, outcome.tokens)
    logger.info(
        "Generation completed",
        extra={"user_id": user_id, "model_id": outcome.model_id, "tokens": outcome.tokens},
    )
    return GenerateResponse(output=outcome.output, usage=UsagePayload(tokens=outcome.tokens))
