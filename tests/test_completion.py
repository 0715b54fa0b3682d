"""Tests for prompt construction and the OpenAI completion gateway."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest
from openai import AsyncOpenAI

from voicerag.errors import ClientInputError, ConfigurationError, UpstreamError
from voicerag.gateways.completion import (
    NO_CONTEXT_PLACEHOLDER,
    SYSTEM_PROMPT,
    CompletionConfig,
    OpenAICompletionGateway,
    build_messages,
)
from voicerag.models import RagQuery


def _completion_body(content: str) -> dict:
    return {
        "id": "chatcmpl-test",
        "object": "chat.completion",
        "created": 0,
        "model": "gpt-3.5-turbo-16k",
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": content},
                "finish_reason": "stop",
            }
        ],
    }


def make_gateway(handler) -> OpenAICompletionGateway:
    client = AsyncOpenAI(
        api_key="sk-test",
        base_url="https://provider.test/v1",
        max_retries=0,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    return OpenAICompletionGateway(CompletionConfig(api_key="sk-test"), client=client)


def test_build_messages_uses_placeholder_without_context():
    messages = build_messages(RagQuery(query="What is 2+2?"))
    assert messages[0] == {"role": "system", "content": SYSTEM_PROMPT}
    assert messages[1]["role"] == "user"
    assert messages[1]["content"] == f"Context: {NO_CONTEXT_PLACEHOLDER}\n\nQuery: What is 2+2?"


def test_build_messages_interpolates_context():
    messages = build_messages(RagQuery(query="Who wrote it?", context="The memo was written by Ada."))
    assert messages[1]["content"].startswith("Context: The memo was written by Ada.\n\nQuery: Who wrote it?")
    assert NO_CONTEXT_PLACEHOLDER not in messages[1]["content"]


def test_complete_sends_fixed_model_and_budget():
    captured: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(json.loads(request.content))
        return httpx.Response(200, json=_completion_body("4"))

    answer = asyncio.run(make_gateway(handler).complete(RagQuery(query="What is 2+2?")))

    assert answer.text == "4"
    body = captured[0]
    assert body["model"] == "gpt-3.5-turbo-16k"
    assert body["max_tokens"] == 1000
    assert "No context provided." in body["messages"][1]["content"]


def test_provider_error_is_upstream_error_without_retry():
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(429, json={"error": {"message": "Rate limit reached", "type": "requests"}})

    with pytest.raises(UpstreamError) as excinfo:
        asyncio.run(make_gateway(handler).complete(RagQuery(query="hello")))

    assert excinfo.value.upstream_status == 429
    assert "Rate limit reached" in excinfo.value.details
    assert len(calls) == 1


def test_empty_query_never_reaches_provider():
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json=_completion_body("unused"))

    with pytest.raises(ClientInputError):
        asyncio.run(make_gateway(handler).complete(RagQuery(query="   ")))
    assert calls == []


def test_missing_api_key_is_configuration_error():
    gateway = OpenAICompletionGateway(CompletionConfig(api_key=None))
    with pytest.raises(ConfigurationError):
        asyncio.run(gateway.complete(RagQuery(query="hello")))
