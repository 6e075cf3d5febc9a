"""Provider adapters keyed by the model configuration's provider tag."""

from __future__ import annotations

from typing import Dict, Optional

import httpx

from ..config import Settings
from .anthropic import AnthropicAdapter
from .base import DEFAULT_TIMEOUT_MS, ProviderAdapter
from .google import GoogleAdapter
from .openai_compatible import (
    OpenAICompatibleAdapter,
    grok_adapter,
    openai_adapter,
    perplexity_adapter,
)

AdapterRegistry = Dict[str, ProviderAdapter]


def build_adapter_registry(
    settings: Settings, *, transport: Optional[httpx.AsyncBaseTransport] = None
) -> AdapterRegistry:
    """Instantiate one adapter per supported provider."""

    adapters = [
        openai_adapter(settings.openai_base_url, transport=transport),
        AnthropicAdapter(settings.anthropic_base_url, transport=transport),
        GoogleAdapter(settings.google_base_url, transport=transport),
        perplexity_adapter(settings.perplexity_base_url, transport=transport),
        grok_adapter(settings.grok_base_url, transport=transport),
    ]
    return {adapter.name: adapter for adapter in adapters}


__all__ = [
    "AdapterRegistry",
    "AnthropicAdapter",
    "DEFAULT_TIMEOUT_MS",
    "GoogleAdapter",
    "OpenAICompatibleAdapter",
    "ProviderAdapter",
    "build_adapter_registry",
]
