"""Adapters for providers speaking the OpenAI Chat Completions protocol.

OpenAI itself, xAI Grok and Perplexity share the wire format, so a single
adapter class is configured three times rather than subclassed.
"""
from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Sequence

import httpx
from openai import APIConnectionError, APIStatusError, APITimeoutError, AsyncOpenAI

from ..errors import ErrorKind, GenerationError
from ..services.generation.types import ProviderResult, TurnMessage
from .base import (
    DEFAULT_TIMEOUT_MS,
    error_for_status,
    http_client,
    invoke,
    resolve_token_count,
    upstream_error_message,
)

OPENAI_BASE_URL = "https://api.openai.com/v1"
GROK_BASE_URL = "https://api.x.ai/v1"
PERPLEXITY_BASE_URL = "https://api.perplexity.ai"


def _openai_vision(model: str) -> bool:
    return any(marker in model for marker in ("gpt-4", "gpt-5", "vision"))


def _no_vision(model: str) -> bool:
    return False


class OpenAICompatibleAdapter:
    """Chat Completions adapter built on the official ``openai`` SDK.

    The SDK client is created per call with ``max_retries=0`` so that each
    call issues exactly one HTTP request.
    """

    def __init__(
        self,
        *,
        name: str,
        label: str,
        base_url: str,
        max_tokens_field: str = "max_tokens",
        vision: Callable[[str], bool] = _no_vision,
        reports_usage: bool = True,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.name = name
        self.label = label
        self.base_url = base_url.rstrip("/")
        self._max_tokens_field = max_tokens_field
        self._vision = vision
        self._reports_usage = reports_usage
        self._transport = transport

    def supports_vision(self, model: str) -> bool:
        return self._vision(model)

    def _content(self, message: TurnMessage, model: str) -> Any:
        if not message.images or not self.supports_vision(model):
            return message.content
        blocks: List[Dict[str, Any]] = []
        if message.content:
            blocks.append({"type": "text", "text": message.content})
        for url in message.images:
            blocks.append({"type": "image_url", "image_url": {"url": url}})
        return blocks

    def build_request(
        self,
        *,
        model: str,
        messages: Sequence[TurnMessage],
        max_tokens: int,
        temperature: float,
    ) -> Dict[str, Any]:
        return {
            "model": model,
            "messages": [
                {"role": message.role.value, "content": self._content(message, model)}
                for message in messages
            ],
            self._max_tokens_field: max_tokens,
            "temperature": temperature,
        }

    def parse_response(self, response: Any) -> ProviderResult:
        choices = getattr(response, "choices", None) or []
        output = ""
        if choices:
            message = getattr(choices[0], "message", None)
            output = getattr(message, "content", None) or ""
        reported = None
        if self._reports_usage:
            usage = getattr(response, "usage", None)
            reported = getattr(usage, "total_tokens", None) if usage is not None else None
        return ProviderResult(output_text=output, token_count=resolve_token_count(reported, output))

    def map_error(self, exc: Exception, model: str) -> Optional[GenerationError]:
        if isinstance(exc, APITimeoutError):
            return GenerationError(ErrorKind.MODEL_TIMEOUT, f"{self.label} request timed out")
        if isinstance(exc, APIStatusError):
            return error_for_status(
                self.label, exc.status_code, model, upstream_error_message(exc.body) or None
            )
        if isinstance(exc, APIConnectionError):
            return GenerationError(
                ErrorKind.PROVIDER_ERROR, f"{self.label} request failed: {exc}"
            )
        return None

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
        payload = self.build_request(
            model=model, messages=messages, max_tokens=max_tokens, temperature=temperature
        )

        async def _send() -> ProviderResult:
            async with http_client(timeout_ms, self._transport) as client:
                sdk = AsyncOpenAI(
                    api_key=api_key,
                    base_url=self.base_url,
                    max_retries=0,
                    timeout=timeout_ms / 1000,
                    http_client=client,
                )
                response = await sdk.chat.completions.create(**payload)
            return self.parse_response(response)

        return await invoke(
            self.label,
            model,
            _send,
            timeout_ms=timeout_ms,
            map_error=lambda exc: self.map_error(exc, model),
        )


def openai_adapter(
    base_url: str = OPENAI_BASE_URL, transport: Optional[httpx.AsyncBaseTransport] = None
) -> OpenAICompatibleAdapter:
    return OpenAICompatibleAdapter(
        name="openai",
        label="OpenAI",
        base_url=base_url,
        max_tokens_field="max_completion_tokens",
        vision=_openai_vision,
        transport=transport,
    )


def grok_adapter(
    base_url: str = GROK_BASE_URL, transport: Optional[httpx.AsyncBaseTransport] = None
) -> OpenAICompatibleAdapter:
    return OpenAICompatibleAdapter(
        name="grok", label="Grok", base_url=base_url, transport=transport
    )


def perplexity_adapter(
    base_url: str = PERPLEXITY_BASE_URL, transport: Optional[httpx.AsyncBaseTransport] = None
) -> OpenAICompatibleAdapter:
    # Usage is always estimated client-side for Perplexity.
    return OpenAICompatibleAdapter(
        name="perplexity",
        label="Perplexity",
        base_url=base_url,
        reports_usage=False,
        transport=transport,
    )


__all__ = [
    "GROK_BASE_URL",
    "OPENAI_BASE_URL",
    "OpenAICompatibleAdapter",
    "PERPLEXITY_BASE_URL",
    "grok_adapter",
    "openai_adapter",
    "perplexity_adapter",
]
