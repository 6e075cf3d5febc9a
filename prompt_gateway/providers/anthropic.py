"""Anthropic Messages API adapter."""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

import httpx

from ..services.generation.types import ProviderResult, Role, TurnMessage
from .base import DEFAULT_TIMEOUT_MS, error_for_response, http_client, invoke, resolve_token_count

ANTHROPIC_BASE_URL = "https://api.anthropic.com/v1"
ANTHROPIC_VERSION = "2023-06-01"

# Sent when the conversation holds nothing but a system prompt.
OPENING_USER_MESSAGE = "Please proceed according to the instructions above."


class AnthropicAdapter:
    """Adapter for Anthropic's Messages API.

    The system prompt travels in the top-level ``system`` field and the
    message list must contain at least one non-system turn.
    """

    name = "anthropic"
    label = "Anthropic"

    def __init__(
        self,
        base_url: str = ANTHROPIC_BASE_URL,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._transport = transport

    def supports_vision(self, model: str) -> bool:
        return "claude-3" in model or "claude-4" in model

    def _content(self, message: TurnMessage, model: str) -> Any:
        if not message.images or not self.supports_vision(model):
            return message.content
        blocks: List[Dict[str, Any]] = []
        for url in message.images:
            blocks.append({"type": "image", "source": {"type": "url", "url": url}})
        if message.content:
            blocks.append({"type": "text", "text": message.content})
        return blocks

    def build_request(
        self,
        *,
        model: str,
        messages: Sequence[TurnMessage],
        max_tokens: int,
        temperature: float,
    ) -> Dict[str, Any]:
        system = "\n\n".join(m.content for m in messages if m.role is Role.SYSTEM)
        turns = [
            {"role": m.role.value, "content": self._content(m, model)}
            for m in messages
            if m.role is not Role.SYSTEM
        ]
        if not turns:
            turns = [{"role": Role.USER.value, "content": OPENING_USER_MESSAGE}]
        payload: Dict[str, Any] = {
            "model": model,
            "messages": turns,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        if system:
            payload["system"] = system
        return payload

    def parse_response(self, data: Dict[str, Any]) -> ProviderResult:
        parts = [
            str(block.get("text") or "")
            for block in data.get("content") or []
            if isinstance(block, dict) and block.get("type", "text") == "text"
        ]
        output = "".join(parts)
        usage = data.get("usage") or {}
        reported = int(usage.get("input_tokens") or 0) + int(usage.get("output_tokens") or 0)
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
            model=model, messages=messages, max_tokens=max_tokens, temperature=temperature
        )
        headers = {
            "x-api-key": api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "Content-Type": "application/json",
        }

        async def _send() -> ProviderResult:
            async with http_client(timeout_ms, self._transport) as client:
                response = await client.post(
                    f"{self.base_url}/messages", json=payload, headers=headers
                )
            if response.is_error:
                raise error_for_response(self.label, response, model)
            return self.parse_response(response.json())

        return await invoke(self.label, model, _send, timeout_ms=timeout_ms)


__all__ = ["ANTHROPIC_BASE_URL", "ANTHROPIC_VERSION", "AnthropicAdapter", "OPENING_USER_MESSAGE"]
