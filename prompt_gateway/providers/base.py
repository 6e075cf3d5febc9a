"""Uniform adapter contract and shared helpers for upstream AI providers."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Protocol, Sequence

import httpx
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from ..errors import ErrorKind, GenerationError
from ..services.generation.interpolation import estimate_tokens
from ..services.generation.types import ProviderResult, TurnMessage
from ..telemetry import get_correlation_id

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

DEFAULT_TIMEOUT_MS = 60_000


class ProviderAdapter(Protocol):
    """One implementation per upstream service, selected by the model's provider tag."""

    name: str
    label: str

    def supports_vision(self, model: str) -> bool:
        ...

    async def call(
        self,
        *,
        api_key: str,
        model: str,
        messages: Sequence[TurnMessage],
        max_tokens: int,
        temperature: float,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
    ) -> ProviderResult:
        ...


def upstream_error_message(payload: Any) -> Optional[str]:
    """Extract ``error.message`` (or a bare ``message``) from an error body."""

    if not isinstance(payload, dict):
        return None
    error = payload.get("error")
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    if isinstance(error, str) and error:
        return error
    if payload.get("message"):
        return str(payload["message"])
    return None


def error_for_status(
    label: str, status_code: int, model: str, upstream_message: Optional[str] = None
) -> GenerationError:
    """Translate a non-2xx upstream status into the canonical taxonomy."""

    details = {"provider_status": status_code}
    if status_code in (401, 403):
        return GenerationError(
            ErrorKind.MODEL_AUTH_ERROR, f"Invalid or missing {label} API key", details=details
        )
    if status_code == 429:
        return GenerationError(
            ErrorKind.MODEL_RATE_LIMITED, f"{label} rate limit exceeded", details=details
        )
    if status_code == 404:
        return GenerationError(
            ErrorKind.MODEL_NOT_FOUND, f"Model {model} not found at {label}", details=details
        )
    if status_code == 408:
        return GenerationError(
            ErrorKind.MODEL_TIMEOUT, f"{label} request timed out", details=details
        )
    if status_code >= 500:
        return GenerationError(
            ErrorKind.MODEL_UNAVAILABLE,
            f"{label} service is temporarily unavailable",
            details=details,
        )
    return GenerationError(
        ErrorKind.PROVIDER_ERROR,
        upstream_message or f"{label} API error: {status_code}",
        details=details,
    )


def error_for_response(label: str, response: httpx.Response, model: str) -> GenerationError:
    try:
        payload = response.json()
    except ValueError:
        payload = None
    return error_for_status(label, response.status_code, model, upstream_error_message(payload))


def resolve_token_count(reported: Optional[int], output: str) -> int:
    """Prefer the provider's own usage figure, else estimate from the output."""

    if reported:
        return int(reported)
    return estimate_tokens(output)


async def invoke(
    label: str,
    model: str,
    send: Callable[[], Awaitable[ProviderResult]],
    *,
    timeout_ms: int,
    map_error: Optional[Callable[[Exception], Optional[GenerationError]]] = None,
) -> ProviderResult:
    """Run a single upstream call under a hard timeout and a tracing span.

    On expiry the task running ``send`` is cancelled, which closes the
    underlying HTTP connection. Any exception that is not already a
    :class:`GenerationError` is translated before leaving the adapter.
    """

    span_attributes = {
        "llm.system": label.lower(),
        "llm.operation": "chat.completion",
        "llm.model": model,
    }
    correlation_id = get_correlation_id()
    if correlation_id:
        span_attributes["correlation.id"] = correlation_id

    timeout_seconds = timeout_ms / 1000
    with tracer.start_as_current_span(f"{label}.chatCompletion") as span:
        for key, value in span_attributes.items():
            span.set_attribute(key, value)
        try:
            result = await asyncio.wait_for(send(), timeout=timeout_seconds)
        except asyncio.TimeoutError as exc:
            error = GenerationError(
                ErrorKind.MODEL_TIMEOUT,
                f"{label} request timed out after {timeout_seconds:g} seconds",
            )
            span.record_exception(exc)
            span.set_status(Status(StatusCode.ERROR, error.message))
            raise error from exc
        except GenerationError as exc:
            span.set_status(Status(StatusCode.ERROR, exc.message))
            span.set_attribute("llm.error_code", exc.kind.value)
            raise
        except Exception as exc:
            error = map_error(exc) if map_error is not None else None
            if error is None:
                if isinstance(exc, httpx.TimeoutException):
                    error = GenerationError(
                        ErrorKind.MODEL_TIMEOUT, f"{label} request timed out"
                    )
                else:
                    error = GenerationError(
                        ErrorKind.PROVIDER_ERROR,
                        f"{label} request failed: {exc or type(exc).__name__}",
                    )
            logger.warning(
                "Provider call failed",
                extra={"provider": label, "model": model, "code": error.kind.value},
            )
            span.record_exception(exc)
            span.set_status(Status(StatusCode.ERROR, error.message))
            span.set_attribute("llm.error_code", error.kind.value)
            raise error from exc

        span.set_status(Status(StatusCode.OK))
        span.set_attribute("llm.usage.total_tokens", result.token_count)
        return result


def http_client(
    timeout_ms: int, transport: Optional[httpx.AsyncBaseTransport] = None
) -> httpx.AsyncClient:
    """Return a fresh async client; the caller owns and closes it."""

    return httpx.AsyncClient(timeout=timeout_ms / 1000, transport=transport)


__all__ = [
    "DEFAULT_TIMEOUT_MS",
    "ProviderAdapter",
    "error_for_response",
    "error_for_status",
    "http_client",
    "invoke",
    "resolve_token_count",
    "upstream_error_message",
]
