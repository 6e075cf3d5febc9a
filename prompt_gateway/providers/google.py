"""Google Gemini ``generateContent`` adapter."""
from __future__ import annotations

from typing import Any, Dict, Optional, Sequence

import httpx

from ..services.generation.types import ProviderResult, TurnMessage
from .base import DEFAULT_TIMEOUT_MS, error_for_response, http_client, invoke, resolve_token_count

GOOGLE_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


class GoogleAdapter:
    """Text-only Gemini adapter; the API key travels as a query parameter."""

    name = "google"
    label = "Google Gemini"

    def __init__(
        self,
        base_url: str = GOOGLE_BASE_URL,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._transport = transport

    def supports_vision(self, model: str) -> bool:
        return False

    def build_request(
        self,
        *,
        messages: Sequence[TurnMessage],
        max_tokens: int,
        temperature: float,
    ) -> Dict[str, Any]:
        prompt = "\n\n".join(message.content for message in messages)
        return {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "maxOutputTokens": max_tokens,
                "temperature": temperature,
            },
        }

    def parse_response(self, data: Dict[str, Any]) -> ProviderResult:
        output = ""
        candidates = data.get("candidates") or []
        if candidates:
            parts = (candidates[0].get("content") or {}).get("parts") or []
            if parts:
                output = str(parts[0].get("text") or "")
        reported = (data.get("usageMetadata") or {}).get("totalTokenCount")
        return ProviderResult(output_text=output, token_count=resolve_token_count(reported, output))

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
            messages=messages, max_tokens=max_tokens, temperature=temperature
        )

        async def _send() -> ProviderResult:
            async with http_client(timeout_ms, self._transport) as client:
                response = await client.post(
                    f"{self.base_url}/models/{model}:generateContent",
                    params={"key": api_key},
                    json=payload,
                )
            if response.is_error:
                raise error_for_response(self.label, response, model)
            return self.parse_response(response.json())

        return await invoke(self.label, model, _send, timeout_ms=timeout_ms)


__all__ = ["GOOGLE_BASE_URL", "GoogleAdapter"]
