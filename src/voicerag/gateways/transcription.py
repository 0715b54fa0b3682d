"""Speech-to-text gateway speaking the OpenAI audio transcription wire format."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Protocol

import httpx

from voicerag.errors import (
    ClientInputError,
    ConfigurationError,
    TransportError,
    UpstreamError,
    UpstreamTimeoutError,
)
from voicerag.metrics.observability import get_logger
from voicerag.models import TranscriptionResult, UploadedAsset


@dataclass(frozen=True)
class TranscriptionConfig:
    """Configuration for the transcription provider."""

    api_key: str | None = None
    base_url: str = "https://api.openai.com/v1"
    model: str = "whisper-1"
    timeout_seconds: float = 60.0


class TranscriptionGateway(Protocol):
    """Protocol describing transcription behaviour."""

    async def transcribe(self, asset: UploadedAsset, audio: bytes) -> TranscriptionResult:
        """Return the provider's transcription of ``audio``."""


class OpenAITranscriptionGateway:
    """Posts audio as multipart form data to ``/audio/transcriptions``."""

    _logger = get_logger("transcription")

    def __init__(self, config: TranscriptionConfig | None = None, client: httpx.AsyncClient | None = None) -> None:
        self._config = config or TranscriptionConfig()
        self._client = client or httpx.AsyncClient(timeout=self._config.timeout_seconds)
        self._owns_client = client is None

    @property
    def endpoint(self) -> str:
        return f"{self._config.base_url.rstrip('/')}/audio/transcriptions"

    async def transcribe(self, asset: UploadedAsset, audio: bytes) -> TranscriptionResult:
        if not audio:
            raise ClientInputError("No audio file uploaded")
        if not self._config.api_key:
            raise ConfigurationError("openai_api_key")

        files = {"file": (asset.original_name, audio, asset.media_type)}
        data = {"model": self._config.model}
        headers = {"Authorization": f"Bearer {self._config.api_key}"}
        self._logger.info(
            "transcription.request",
            model=self._config.model,
            filename=asset.original_name,
            size_bytes=len(audio),
        )
        try:
            response = await self._client.post(self.endpoint, files=files, data=data, headers=headers)
        except httpx.TimeoutException as exc:
            raise UpstreamTimeoutError("transcription", self._config.timeout_seconds) from exc
        except httpx.TransportError as exc:
            raise TransportError(f"Transcription provider unreachable: {exc}") from exc

        if not response.is_success:
            raise UpstreamError.from_response(response.status_code, response.text)
        try:
            payload: Mapping[str, Any] = response.json()
        except ValueError as exc:
            raise UpstreamError(
                f"Transcription provider returned invalid JSON: {exc}",
                upstream_status=response.status_code,
                body=response.text,
            ) from exc
        if not isinstance(payload, dict):
            raise UpstreamError(
                "Transcription provider returned an unexpected payload",
                upstream_status=response.status_code,
                body=response.text,
            )
        text = str(payload.get("text") or "")
        self._logger.info("transcription.complete", characters=len(text))
        return TranscriptionResult(text=text, payload=payload)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
