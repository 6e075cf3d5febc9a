"""Public exports for request and response schemas."""

from .generation import GenerateRequestBody, GenerateResponse, UsagePayload

__all__ = ["GenerateRequestBody", "GenerateResponse", "UsagePayload"]
