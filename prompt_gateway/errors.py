"""Canonical error taxonomy shared by every stage of the generation pipeline."""
from __future__ import annotations

import uuid
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class ErrorKind(str, Enum):
    """Stable machine-readable error codes returned to callers."""

    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    RATE_LIMITED = "RATE_LIMITED"
    INVALID_REQUEST = "INVALID_REQUEST"
    PROMPT_NOT_FOUND = "PROMPT_NOT_FOUND"
    MODEL_NOT_FOUND = "MODEL_NOT_FOUND"
    MODEL_DISABLED = "MODEL_DISABLED"
    MODEL_AUTH_ERROR = "MODEL_AUTH_ERROR"
    MODEL_RATE_LIMITED = "MODEL_RATE_LIMITED"
    MODEL_TIMEOUT = "MODEL_TIMEOUT"
    MODEL_UNAVAILABLE = "MODEL_UNAVAILABLE"
    INVALID_VARIABLES = "INVALID_VARIABLES"
    PROVIDER_ERROR = "PROVIDER_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


STATUS_BY_KIND: Dict[ErrorKind, int] = {
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.INVALID_REQUEST: 400,
    ErrorKind.PROMPT_NOT_FOUND: 404,
    ErrorKind.MODEL_NOT_FOUND: 404,
    ErrorKind.MODEL_DISABLED: 400,
    ErrorKind.MODEL_AUTH_ERROR: 401,
    ErrorKind.MODEL_RATE_LIMITED: 429,
    ErrorKind.MODEL_TIMEOUT: 504,
    ErrorKind.MODEL_UNAVAILABLE: 503,
    ErrorKind.INVALID_VARIABLES: 400,
    ErrorKind.PROVIDER_ERROR: 500,
    ErrorKind.INTERNAL_ERROR: 500,
}


def status_for(kind: ErrorKind | str) -> int:
    """Return the HTTP status associated with an error kind (500 when unknown)."""

    try:
        return STATUS_BY_KIND[ErrorKind(kind)]
    except ValueError:
        return 500


class GenerationError(Exception):
    """Raised by any pipeline stage; already translated into the canonical taxonomy."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        details: Optional[Any] = None,
        provider: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.details = details
        # Provider tag of the resolved model; never rendered to callers.
        self.provider = provider

    @property
    def status_code(self) -> int:
        return status_for(self.kind)

    def to_envelope(self, request_id: Optional[str] = None) -> "ErrorEnvelope":
        return ErrorEnvelope(
            code=self.kind,
            message=self.message,
            details=self.details,
            request_id=request_id or str(uuid.uuid4()),
        )

    def __repr__(self) -> str:  # pragma: no cover - debugging helper
        return f"GenerationError({self.kind.value!r}, {self.message!r})"


class ErrorEnvelope(BaseModel):
    """Structured failure payload rendered at the HTTP boundary."""

    code: ErrorKind = Field(..., description="Stable error code")
    message: str = Field(..., description="Human readable explanation")
    details: Optional[Any] = Field(default=None, description="Optional structured context")
    request_id: str = Field(
        ...,
        serialization_alias="requestId",
        validation_alias="requestId",
        description="Correlation identifier of the failed request",
    )

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)


__all__ = [
    "ErrorEnvelope",
    "ErrorKind",
    "GenerationError",
    "STATUS_BY_KIND",
    "status_for",
]
