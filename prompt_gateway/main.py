"""FastAPI entry-point for the prompt gateway."""
from __future__ import annotations

import logging
import os
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List

import structlog
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from opentelemetry import trace
from opentelemetry._logs import set_logger_provider
from opentelemetry.exporter.otlp.proto.http._log_exporter import OTLPLogExporter
from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
from opentelemetry.sdk.resources import Resource
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from sqlalchemy import text
from starlette.middleware.base import BaseHTTPMiddleware
from structlog.contextvars import bind_contextvars, unbind_contextvars
from structlog.stdlib import ProcessorFormatter

from .api.generate import router as generate_router
from .config import Settings, get_settings
from .database import engine
from .env import analyse_environment, validate_environment
from .errors import ErrorKind, GenerationError
from .observability import GenerationMetrics, install_metrics
from .telemetry import (
    configure_tracing,
    correlation_id_var,
    reset_correlation_id,
    set_correlation_id,
)

SERVICE_NAME = "prompt-gateway"

logger = logging.getLogger("prompt_gateway.api")


class CorrelationIdFilter(logging.Filter):
    """Inject the correlation identifier into log records."""

    def filter(self, record: logging.LogRecord) -> bool:  # pragma: no cover - logging helper
        record.correlation_id = correlation_id_var.get() or "unknown"
        return True


def _add_correlation_id(
    _: Any,
    __: str,
    event_dict: Dict[str, Any],
) -> Dict[str, Any]:  # pragma: no cover - logging helper
    event_dict.setdefault("correlation_id", correlation_id_var.get() or "unknown")
    return event_dict


def _configure_otlp_logging(service_name: str) -> None:
    """Attach an OTLP handler when OTLP environment variables are provided."""

    if not (
        os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
        or os.getenv("OTEL_EXPORTER_OTLP_LOGS_ENDPOINT")
    ):
        return

    root_logger = logging.getLogger()
    try:
        resource = Resource.create(
            {"service.name": os.getenv("OTEL_SERVICE_NAME", service_name)}
        )
        logger_provider = LoggerProvider(resource=resource)
        logger_provider.add_log_record_processor(BatchLogRecordProcessor(OTLPLogExporter()))
        set_logger_provider(logger_provider)
        root_logger.addHandler(
            LoggingHandler(level=logging.NOTSET, logger_provider=logger_provider)
        )
    except Exception:  # pragma: no cover - exporter misconfiguration
        root_logger.exception("Failed to configure OTLP log exporter")


def configure_logging(service_name: str = SERVICE_NAME) -> None:
    """Configure structured JSON logging with correlation identifiers."""

    timestamper = structlog.processors.TimeStamper(fmt="iso", utc=True)
    shared_processors = [
        structlog.contextvars.merge_contextvars,
        _add_correlation_id,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.ExtraAdder(),
        timestamper,
        structlog.processors.format_exc_info,
    ]

    formatter = ProcessorFormatter(
        processor=structlog.processors.JSONRenderer(),
        foreign_pre_chain=shared_processors,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    handler.addFilter(CorrelationIdFilter())

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(os.getenv("LOG_LEVEL", "INFO").upper())

    structlog.configure(
        processors=shared_processors + [ProcessorFormatter.wrap_for_formatter],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    _configure_otlp_logging(service_name)


configure_logging()


def _request_id(request: Request) -> str:
    return (
        getattr(request.state, "correlation_id", None)
        or correlation_id_var.get()
        or str(uuid.uuid4())
    )


def _envelope_response(request: Request, error: GenerationError) -> JSONResponse:
    envelope = error.to_envelope(_request_id(request))
    return JSONResponse(
        envelope.model_dump(mode="json", by_alias=True),
        status_code=error.status_code,
    )


def configure_rate_limiter(app: FastAPI, settings: Settings) -> None:
    """Configure SlowAPI per-IP throttling according to runtime settings."""

    default_limits: List[str] = []
    if settings.rate_limit_default:
        default_limits = [settings.rate_limit_default]

    limiter = Limiter(
        key_func=get_remote_address,
        default_limits=default_limits,
        headers_enabled=settings.rate_limit_headers_enabled,
        enabled=settings.rate_limit_enabled,
    )
    app.state.limiter = limiter

    if not any(middleware.cls is SlowAPIMiddleware for middleware in app.user_middleware):
        app.add_middleware(SlowAPIMiddleware)

    # SlowAPIMiddleware replaces coroutine handlers with its own default.
    def rate_limit_exceeded_handler(
        request: Request, exc: RateLimitExceeded
    ) -> JSONResponse:
        metrics = getattr(request.app.state, "metrics", None)
        if metrics is not None:
            metrics.throttled()
        response = _envelope_response(
            request,
            GenerationError(ErrorKind.RATE_LIMITED, f"Rate limit exceeded: {exc.detail}"),
        )

        if settings.rate_limit_headers_enabled:
            current_limit = getattr(request.state, "view_rate_limit", None)
            if current_limit is not None:
                response = limiter._inject_headers(response, current_limit)
            elif exc.limit is not None and exc.limit.limit is not None:
                response.headers.setdefault(
                    "X-RateLimit-Limit", str(exc.limit.limit.amount)
                )
                response.headers.setdefault("Retry-After", str(exc.limit.limit.get_expiry()))

        return response

    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)


def register_exception_handlers(app: FastAPI) -> None:
    """Render every failure as an error envelope."""

    async def generation_error_handler(request: Request, exc: GenerationError) -> JSONResponse:
        return _envelope_response(request, exc)

    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = jsonable_encoder(exc.errors())
        if any(error.get("type") == "json_invalid" for error in errors):
            message = "Invalid JSON in request body"
        else:
            message = "Invalid request body"
        return _envelope_response(
            request,
            GenerationError(ErrorKind.INVALID_REQUEST, message, details={"errors": errors}),
        )

    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error", extra={"path": request.url.path}, exc_info=exc)
        return _envelope_response(
            request,
            GenerationError(ErrorKind.INTERNAL_ERROR, "An unexpected error occurred"),
        )

    app.add_exception_handler(GenerationError, generation_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Attach correlation identifiers and timing information to responses."""

    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        correlation_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())
        request.state.correlation_id = correlation_id
        token = set_correlation_id(correlation_id)
        bind_contextvars(correlation_id=correlation_id)
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            logger.exception("Unhandled exception during request", extra={"path": request.url.path})
            raise
        finally:
            duration_ms = (time.perf_counter() - start) * 1000
            reset_correlation_id(token)
            unbind_contextvars("correlation_id")
            logger.info(
                "Request completed",
                extra={
                    "path": request.url.path,
                    "method": request.method,
                    "duration_ms": round(duration_ms, 2),
                },
            )
        current_span = trace.get_current_span()
        if current_span and current_span.is_recording():
            current_span.set_attribute("correlation.id", correlation_id)
            current_span.set_attribute("http.server_duration_ms", round(duration_ms, 2))
        response.headers["X-Correlation-ID"] = correlation_id
        response.headers["X-Process-Time-ms"] = f"{duration_ms:.2f}"
        return response


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    """Refuse to start with an unsafe environment when strict mode is on."""

    if get_settings().strict_environment:
        validate_environment()
    yield


app = FastAPI(title="Prompt Gateway", version="0.1.0", lifespan=lifespan)
configure_tracing(app, SERVICE_NAME)
install_metrics(app, GenerationMetrics())

settings = get_settings()
configure_rate_limiter(app, settings)
register_exception_handlers(app)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(CorrelationIdMiddleware)
app.include_router(generate_router)


def _database_ready() -> bool:
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
    except Exception as exc:  # pragma: no cover - depends on the deployment
        logger.warning("Database health check failed", exc_info=exc)
        return False
    return True


@app.get(
    "/",
    tags=["Monitoring"],
    summary="Lightweight heartbeat endpoint",
    response_model=Dict[str, str],
)
async def root() -> Dict[str, str]:
    """Return a minimal payload to indicate service availability."""

    return {"status": "ok"}


@app.get(
    "/healthz",
    tags=["Monitoring"],
    summary="Service diagnostics",
    response_model=Dict[str, Any],
    description="""Report missing environment variables, insecure defaults and database reachability.""",
)
async def healthz() -> Dict[str, Any]:
    analysis = analyse_environment()
    database_ok = _database_ready()
    return {
        "status": "ok" if database_ok else "degraded",
        "database": "up" if database_ok else "down",
        "missing": analysis["missing"],
        "insecure": analysis["insecure"],
    }


__all__ = ["app", "configure_logging", "configure_rate_limiter", "register_exception_handlers"]
