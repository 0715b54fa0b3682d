"""Chat-completion gateway answering queries over optional free-text context."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

import openai
from openai import AsyncOpenAI

from voicerag.errors import (
    ClientInputError,
    ConfigurationError,
    TransportError,
    UpstreamError,
    UpstreamTimeoutError,
)
from voicerag.metrics.observability import get_logger
from voicerag.models import RagAnswer, RagQuery

SYSTEM_PROMPT = (
    "You are a helpful assistant. Use the provided context to answer the query. "
    "If no context is provided, answer based on your general knowledge. "
    "Provide detailed and comprehensive answers."
)
NO_CONTEXT_PLACEHOLDER = "No context provided."


@dataclass(frozen=True)
class CompletionConfig:
    """Configuration for answer generation."""

    api_key: str | None = None
    base_url: str = "https://api.openai.com/v1"
    model: str = "gpt-3.5-turbo-16k"
    max_tokens: int = 1000
    timeout_seconds: float = 60.0


class CompletionGateway(Protocol):
    """Protocol describing completion behaviour."""

    async def complete(self, query: RagQuery) -> RagAnswer:
        """Return the provider's answer for ``query``."""


def build_messages(query: RagQuery) -> list[dict[str, str]]:
    context = query.context or NO_CONTEXT_PLACEHOLDER
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": f"Context: {context}\n\nQuery: {query.query}"},
    ]


class OpenAICompletionGateway:
    """Completion gateway backed by the OpenAI chat completions API.

    The SDK client is built on first use so a missing API key surfaces as a
    :class:`ConfigurationError` on the first request rather than at startup.
    Retries are disabled.
    """

    _logger = get_logger("completion")

    def __init__(self, config: CompletionConfig | None = None, client: AsyncOpenAI | None = None) -> None:
        self._config = config or CompletionConfig()
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self._config.api_key:
                raise ConfigurationError("openai_api_key")
            self._client = AsyncOpenAI(
                api_key=self._config.api_key,
                base_url=self._config.base_url,
                timeout=self._config.timeout_seconds,
                max_retries=0,
            )
        return self._client

    async def complete(self, query: RagQuery) -> RagAnswer:
        if not query.query or not query.query.strip():
            raise ClientInputError("Query is required")
        client = self._get_client()
        messages = build_messages(query)
        self._logger.info(
            "completion.request",
            model=self._config.model,
            has_context=bool(query.context),
            max_tokens=self._config.max_tokens,
        )
        try:
            completion = await client.chat.completions.create(
                model=self._config.model,
                messages=messages,
                max_tokens=self._config.max_tokens,
            )
        except openai.APITimeoutError as exc:
            raise UpstreamTimeoutError("completion", self._config.timeout_seconds) from exc
        except openai.APIConnectionError as exc:
            raise TransportError(f"Completion provider unreachable: {exc}") from exc
        except openai.APIStatusError as exc:
            raise UpstreamError(
                str(exc),
                upstream_status=exc.status_code,
                body=exc.response.text,
            ) from exc
        except openai.OpenAIError as exc:
            raise UpstreamError(str(exc)) from exc

        if not completion.choices:
            raise UpstreamError("Completion provider returned no choices")
        text = completion.choices[0].message.content or ""
        self._logger.info("completion.complete", characters=len(text))
        return RagAnswer(text=text, model=completion.model)

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.close()
