from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, List

import httpx
import pytest

from prompt_gateway.errors import ErrorKind, GenerationError
from prompt_gateway.providers.openai_compatible import (
    grok_adapter,
    openai_adapter,
    perplexity_adapter,
)
from prompt_gateway.services.generation.types import Role, TurnMessage

MESSAGES = [
    TurnMessage(role=Role.SYSTEM, content="Be brief"),
    TurnMessage(role=Role.USER, content="Hello"),
]


def _completion(content: str = "Hi there", usage: Dict[str, int] | None = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "id": "chatcmpl-1",
        "object": "chat.completion",
        "created": 1700000000,
        "model": "gpt-4o",
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": content},
                "finish_reason": "stop",
            }
        ],
    }
    if usage is not None:
        body["usage"] = usage
    return body


def _transport(captured: List[httpx.Request], status_code: int = 200, body: Any = None) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(status_code, json=body if body is not None else _completion())

    return httpx.MockTransport(handler)


async def _call(adapter, model: str = "gpt-4o", **kwargs):
    params = {
        "api_key": "sk-test",
        "model": model,
        "messages": MESSAGES,
        "max_tokens": 256,
        "temperature": 0.7,
    }
    params.update(kwargs)
    return await adapter.call(**params)


@pytest.mark.asyncio
async def test_openai_request_shape_and_usage() -> None:
    captured: List[httpx.Request] = []
    body = _completion("Hi there", {"prompt_tokens": 5, "completion_tokens": 7, "total_tokens": 12})
    adapter = openai_adapter(transport=_transport(captured, body=body))

    result = await _call(adapter)

    assert result.output_text == "Hi there"
    assert result.token_count == 12
    request = captured[0]
    assert str(request.url) == "https://api.openai.com/v1/chat/completions"
    assert request.headers["Authorization"] == "Bearer sk-test"
    payload = json.loads(request.content)
    assert payload["model"] == "gpt-4o"
    assert payload["max_completion_tokens"] == 256
    assert payload["temperature"] == 0.7
    assert payload["messages"] == [
        {"role": "system", "content": "Be brief"},
        {"role": "user", "content": "Hello"},
    ]


@pytest.mark.asyncio
async def test_missing_usage_is_estimated() -> None:
    adapter = openai_adapter(transport=_transport([], body=_completion("x" * 10)))

    result = await _call(adapter)

    assert result.token_count == 3


@pytest.mark.asyncio
async def test_perplexity_always_estimates_usage() -> None:
    captured: List[httpx.Request] = []
    body = _completion("abcdefgh", {"prompt_tokens": 50, "completion_tokens": 50, "total_tokens": 100})
    adapter = perplexity_adapter(transport=_transport(captured, body=body))

    result = await _call(adapter, model="sonar")

    assert result.token_count == 2
    assert str(captured[0].url) == "https://api.perplexity.ai/chat/completions"
    assert json.loads(captured[0].content)["max_tokens"] == 256


@pytest.mark.asyncio
async def test_grok_targets_xai() -> None:
    captured: List[httpx.Request] = []
    adapter = grok_adapter(transport=_transport(captured))

    await _call(adapter, model="grok-2")

    assert str(captured[0].url) == "https://api.x.ai/v1/chat/completions"


@pytest.mark.asyncio
async def test_vision_model_sends_image_blocks() -> None:
    captured: List[httpx.Request] = []
    adapter = openai_adapter(transport=_transport(captured))
    messages = [TurnMessage(role=Role.USER, content="What is this?", images=("https://cdn/cat.png",))]

    await _call(adapter, model="gpt-4o", messages=messages)

    content = json.loads(captured[0].content)["messages"][0]["content"]
    assert content == [
        {"type": "text", "text": "What is this?"},
        {"type": "image_url", "image_url": {"url": "https://cdn/cat.png"}},
    ]


def test_vision_support_by_model_name() -> None:
    adapter = openai_adapter()

    assert adapter.supports_vision("gpt-4o-mini")
    assert not adapter.supports_vision("o3-mini")
    assert not grok_adapter().supports_vision("grok-2-vision")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("status_code", "kind"),
    [
        (401, ErrorKind.MODEL_AUTH_ERROR),
        (403, ErrorKind.MODEL_AUTH_ERROR),
        (404, ErrorKind.MODEL_NOT_FOUND),
        (429, ErrorKind.MODEL_RATE_LIMITED),
        (500, ErrorKind.MODEL_UNAVAILABLE),
        (503, ErrorKind.MODEL_UNAVAILABLE),
        (400, ErrorKind.PROVIDER_ERROR),
    ],
)
async def test_upstream_status_is_translated(status_code: int, kind: ErrorKind) -> None:
    captured: List[httpx.Request] = []
    body = {"error": {"message": "upstream said no", "type": "invalid_request_error"}}
    adapter = openai_adapter(transport=_transport(captured, status_code=status_code, body=body))

    with pytest.raises(GenerationError) as excinfo:
        await _call(adapter)

    assert excinfo.value.kind is kind
    assert len(captured) == 1


@pytest.mark.asyncio
async def test_other_client_errors_carry_upstream_message() -> None:
    body = {"error": {"message": "context length exceeded"}}
    adapter = openai_adapter(transport=_transport([], status_code=400, body=body))

    with pytest.raises(GenerationError) as excinfo:
        await _call(adapter)

    assert excinfo.value.message == "context length exceeded"


@pytest.mark.asyncio
async def test_hanging_upstream_times_out() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(5)
        return httpx.Response(200, json=_completion())

    adapter = openai_adapter(transport=httpx.MockTransport(handler))

    with pytest.raises(GenerationError) as excinfo:
        await _call(adapter, timeout_ms=50)

    assert excinfo.value.kind is ErrorKind.MODEL_TIMEOUT
    assert excinfo.value.status_code == 504


@pytest.mark.asyncio
async def test_connection_failure_is_provider_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    adapter = openai_adapter(transport=httpx.MockTransport(handler))

    with pytest.raises(GenerationError) as excinfo:
        await _call(adapter)

    assert excinfo.value.kind is ErrorKind.PROVIDER_ERROR
