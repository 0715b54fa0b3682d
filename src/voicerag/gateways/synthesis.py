"""Text-to-speech gateway writing WAV audio to a caller-supplied path."""

from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Protocol

from voicerag.errors import (
    ClientInputError,
    ConfigurationError,
    TransportError,
    UpstreamError,
    UpstreamTimeoutError,
)
from voicerag.metrics.observability import get_logger
from voicerag.models import SynthesizedAudio


class SynthesisState(str, Enum):
    IDLE = "idle"
    SYNTHESIZING = "synthesizing"
    COMPLETED = "completed"
    FAILED = "failed"


class FailureKind(str, Enum):
    PROVIDER = "provider"
    TRANSPORT = "transport"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class SynthesisResult:
    """Terminal outcome reported by a synthesis backend."""

    state: SynthesisState
    error_details: str | None = None
    failure_kind: FailureKind | None = None

    @classmethod
    def completed(cls) -> "SynthesisResult":
        return cls(state=SynthesisState.COMPLETED)

    @classmethod
    def failed(cls, details: str, kind: FailureKind = FailureKind.PROVIDER) -> "SynthesisResult":
        return cls(state=SynthesisState.FAILED, error_details=details, failure_kind=kind)


@dataclass(frozen=True)
class SynthesisConfig:
    """Configuration for the speech synthesis provider."""

    subscription_key: str | None = None
    region: str | None = None
    voice: str = "en-US-JennyNeural"
    timeout_seconds: float = 60.0


class SpeechSynthesisBackend(Protocol):
    """Blocking provider call that renders ``text`` into ``output_path``."""

    def synthesize_to_file(self, text: str, output_path: Path) -> SynthesisResult:
        ...


class AzureSpeechBackend:
    """Backend using the Azure Speech SDK, imported on first use."""

    _logger = get_logger("synthesis.azure")

    def __init__(self, config: SynthesisConfig | None = None) -> None:
        self._config = config or SynthesisConfig()

    def synthesize_to_file(self, text: str, output_path: Path) -> SynthesisResult:
        if not self._config.subscription_key:
            raise ConfigurationError("azure_speech_key")
        if not self._config.region:
            raise ConfigurationError("azure_region")

        import azure.cognitiveservices.speech as speechsdk

        speech_config = speechsdk.SpeechConfig(
            subscription=self._config.subscription_key,
            region=self._config.region,
        )
        speech_config.speech_synthesis_voice_name = self._config.voice
        audio_config = speechsdk.audio.AudioOutputConfig(filename=str(output_path))
        synthesizer = speechsdk.SpeechSynthesizer(speech_config=speech_config, audio_config=audio_config)
        try:
            result = synthesizer.speak_text_async(text).get()
        finally:
            # The SDK flushes and closes the output file when the synthesizer goes away.
            del synthesizer

        if result.reason == speechsdk.ResultReason.SynthesizingAudioCompleted:
            return SynthesisResult.completed()
        if result.reason == speechsdk.ResultReason.Canceled:
            details = result.cancellation_details
            message = details.error_details or str(details.reason)
            if details.reason == speechsdk.CancellationReason.Error:
                if details.error_code == speechsdk.CancellationErrorCode.ConnectionFailure:
                    return SynthesisResult.failed(message, FailureKind.TRANSPORT)
                if details.error_code == speechsdk.CancellationErrorCode.ServiceTimeout:
                    return SynthesisResult.failed(message, FailureKind.TIMEOUT)
            return SynthesisResult.failed(message)
        return SynthesisResult.failed(f"Unexpected synthesis result: {result.reason}")


class _SynthesisJob:
    """One blocking backend call whose output is removed if the caller stops waiting.

    Cancelling the awaiting coroutine does not stop the worker thread, so the
    backend may still write ``output_path`` after the request has released it.
    Whichever side observes the other last removes the file.
    """

    _logger = get_logger("synthesis")

    def __init__(self, backend: SpeechSynthesisBackend, text: str, output_path: Path) -> None:
        self._backend = backend
        self._text = text
        self._output_path = output_path
        self._lock = threading.Lock()
        self._finished = False
        self._abandoned = False

    def run(self) -> SynthesisResult:
        try:
            return self._backend.synthesize_to_file(self._text, self._output_path)
        finally:
            with self._lock:
                self._finished = True
                abandoned = self._abandoned
            if abandoned:
                self._discard_output()

    def abandon(self) -> None:
        with self._lock:
            self._abandoned = True
            finished = self._finished
        if finished:
            self._discard_output()

    def _discard_output(self) -> None:
        try:
            self._output_path.unlink(missing_ok=True)
        except OSError as exc:
            self._logger.warning("synthesis.abandoned_output_not_removed", path=str(self._output_path), error=str(exc))
            return
        self._logger.info("synthesis.abandoned_output_removed", path=str(self._output_path))


class SynthesisGateway:
    """Drives one synthesis through Idle -> Synthesizing -> Completed/Failed."""

    _logger = get_logger("synthesis")

    def __init__(self, backend: SpeechSynthesisBackend, *, timeout_seconds: float = 60.0) -> None:
        self._backend = backend
        self._timeout_seconds = timeout_seconds

    async def synthesize(self, text: str, output_path: Path) -> SynthesizedAudio:
        if not text or not text.strip():
            raise ClientInputError("Text is required")
        state = SynthesisState.IDLE
        self._logger.debug("synthesis.state", state=state.value, path=str(output_path))

        state = SynthesisState.SYNTHESIZING
        self._logger.info("synthesis.state", state=state.value, characters=len(text))
        job = _SynthesisJob(self._backend, text, output_path)
        try:
            result = await asyncio.to_thread(job.run)
        except asyncio.CancelledError:
            job.abandon()
            raise
        except (ConfigurationError, ClientInputError):
            raise
        except OSError as exc:
            self._logger.error("synthesis.state", state=SynthesisState.FAILED.value, detail=str(exc))
            raise TransportError(f"Speech synthesis failed: {exc}") from exc

        state = result.state
        if state is SynthesisState.COMPLETED:
            if not output_path.exists():
                raise UpstreamError("Speech synthesis completed without producing audio")
            size = output_path.stat().st_size
            self._logger.info("synthesis.state", state=state.value, size_bytes=size)
            return SynthesizedAudio(path=output_path, size_bytes=size)

        details = result.error_details or "Text-to-Speech synthesis failed"
        self._logger.error(
            "synthesis.state",
            state=SynthesisState.FAILED.value,
            kind=result.failure_kind.value if result.failure_kind else None,
            detail=details,
        )
        if result.failure_kind is FailureKind.TRANSPORT:
            raise TransportError(details)
        if result.failure_kind is FailureKind.TIMEOUT:
            raise UpstreamTimeoutError("synthesis", self._timeout_seconds, provider_details=details)
        raise UpstreamError(details)
