"""Tests for the synthesis gateway state handling."""

from __future__ import annotations

import asyncio
import sys
import threading
import time
import types
from pathlib import Path
from types import SimpleNamespace

import pytest

from voicerag.errors import (
    ClientInputError,
    ConfigurationError,
    TransportError,
    UpstreamError,
    UpstreamTimeoutError,
)
from voicerag.gateways.deadline import call_with_deadline
from voicerag.gateways.synthesis import (
    AzureSpeechBackend,
    FailureKind,
    SynthesisConfig,
    SynthesisGateway,
    SynthesisResult,
)
from voicerag.storage import TemporaryFileStore


class StubBackend:
    def __init__(self, result: SynthesisResult | None = None, delay: float = 0.0) -> None:
        self.result = result or SynthesisResult.completed()
        self.delay = delay
        self.calls: list[tuple[str, Path]] = []
        self.finished = threading.Event()

    def synthesize_to_file(self, text: str, output_path: Path) -> SynthesisResult:
        self.calls.append((text, output_path))
        try:
            output_path.write_bytes(b"RIFF")
            time.sleep(self.delay)
            with output_path.open("ab") as handle:
                handle.write(text.encode("utf-8"))
            return self.result
        finally:
            self.finished.set()


def test_completed_synthesis_returns_audio(tmp_path: Path) -> None:
    backend = StubBackend()
    output = tmp_path / "out.wav"

    audio = asyncio.run(SynthesisGateway(backend).synthesize("hello", output))

    assert audio.path == output
    assert audio.media_type == "audio/wav"
    assert audio.size_bytes == len(b"RIFFhello")


def test_empty_text_does_not_invoke_backend(tmp_path: Path) -> None:
    backend = StubBackend()
    with pytest.raises(ClientInputError):
        asyncio.run(SynthesisGateway(backend).synthesize("", tmp_path / "out.wav"))
    assert backend.calls == []


def test_provider_failure_raises_upstream_error(tmp_path: Path) -> None:
    backend = StubBackend(SynthesisResult.failed("voice not found"))
    with pytest.raises(UpstreamError) as excinfo:
        asyncio.run(SynthesisGateway(backend).synthesize("hello", tmp_path / "out.wav"))
    assert "voice not found" in excinfo.value.details


def test_connection_failure_raises_transport_error(tmp_path: Path) -> None:
    backend = StubBackend(SynthesisResult.failed("connection refused", FailureKind.TRANSPORT))
    with pytest.raises(TransportError):
        asyncio.run(SynthesisGateway(backend).synthesize("hello", tmp_path / "out.wav"))


def test_concurrent_requests_write_separate_files(tmp_path: Path) -> None:
    store = TemporaryFileStore(tmp_path)
    gateway = SynthesisGateway(StubBackend(delay=0.05))

    async def one(text: str) -> bytes:
        async with store.reserve("tts", ".wav") as output_path:
            audio = await gateway.synthesize(text, output_path)
            return store.read(audio.path)

    async def scenario() -> list[bytes]:
        return await asyncio.gather(one("first answer"), one("second answer"))

    first, second = asyncio.run(scenario())

    assert first == b"RIFFfirst answer"
    assert second == b"RIFFsecond answer"
    assert list(tmp_path.iterdir()) == []


def test_provider_timeout_keeps_provider_details(tmp_path: Path) -> None:
    backend = StubBackend(SynthesisResult.failed("Timeout while synthesizing. Current RTF: 1.6", FailureKind.TIMEOUT))
    with pytest.raises(UpstreamTimeoutError) as excinfo:
        asyncio.run(SynthesisGateway(backend, timeout_seconds=30).synthesize("hello", tmp_path / "out.wav"))
    assert excinfo.value.status_code == 504
    assert excinfo.value.provider_details == "Timeout while synthesizing. Current RTF: 1.6"
    assert "Current RTF: 1.6" in excinfo.value.details


def test_cancelled_synthesis_removes_output_once_backend_returns(tmp_path: Path) -> None:
    store = TemporaryFileStore(tmp_path)
    backend = StubBackend(delay=0.3)
    gateway = SynthesisGateway(backend)

    async def scenario() -> None:
        async with store.reserve("tts", ".wav") as output_path:
            await call_with_deadline("synthesis", gateway.synthesize("slow answer", output_path), timeout=0.05)

    with pytest.raises(UpstreamTimeoutError):
        asyncio.run(scenario())

    output_path = backend.calls[0][1]
    assert backend.finished.wait(timeout=5.0)
    deadline = time.monotonic() + 5.0
    while output_path.exists() and time.monotonic() < deadline:
        time.sleep(0.02)
    assert not output_path.exists()
    assert list(tmp_path.iterdir()) == []


class FakeSynthesizer:
    instances: list["FakeSynthesizer"] = []
    result: SimpleNamespace | None = None

    def __init__(self, speech_config, audio_config) -> None:
        self.speech_config = speech_config
        self.audio_config = audio_config
        self.spoken: list[str] = []
        FakeSynthesizer.instances.append(self)

    def speak_text_async(self, text: str) -> SimpleNamespace:
        self.spoken.append(text)
        return SimpleNamespace(get=lambda: FakeSynthesizer.result)


class FakeSpeechConfig:
    def __init__(self, subscription: str, region: str) -> None:
        self.subscription = subscription
        self.region = region
        self.speech_synthesis_voice_name = None


@pytest.fixture()
def speech_sdk(monkeypatch: pytest.MonkeyPatch) -> types.ModuleType:
    sdk = types.ModuleType("azure.cognitiveservices.speech")
    sdk.SpeechConfig = FakeSpeechConfig
    sdk.SpeechSynthesizer = FakeSynthesizer
    sdk.audio = SimpleNamespace(AudioOutputConfig=lambda filename: SimpleNamespace(filename=filename))
    sdk.ResultReason = SimpleNamespace(
        SynthesizingAudioCompleted="completed",
        Canceled="canceled",
        RecognizedSpeech="recognized",
    )
    sdk.CancellationReason = SimpleNamespace(Error="error", EndOfStream="end_of_stream")
    sdk.CancellationErrorCode = SimpleNamespace(
        ConnectionFailure="connection_failure",
        ServiceTimeout="service_timeout",
        AuthenticationFailure="authentication_failure",
    )
    cognitiveservices = types.ModuleType("azure.cognitiveservices")
    cognitiveservices.speech = sdk
    azure = types.ModuleType("azure")
    azure.cognitiveservices = cognitiveservices
    monkeypatch.setitem(sys.modules, "azure", azure)
    monkeypatch.setitem(sys.modules, "azure.cognitiveservices", cognitiveservices)
    monkeypatch.setitem(sys.modules, "azure.cognitiveservices.speech", sdk)
    monkeypatch.setattr(FakeSynthesizer, "instances", [])
    return sdk


def _canceled(reason: str, error_code: str | None = None, error_details: str = "") -> SimpleNamespace:
    return SimpleNamespace(
        reason="canceled",
        cancellation_details=SimpleNamespace(reason=reason, error_code=error_code, error_details=error_details),
    )


def test_azure_backend_configures_voice_and_output_file(speech_sdk, monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setattr(FakeSynthesizer, "result", SimpleNamespace(reason="completed"))
    backend = AzureSpeechBackend(SynthesisConfig(subscription_key="key", region="westeurope", voice="en-GB-RyanNeural"))
    output = tmp_path / "out.wav"

    result = backend.synthesize_to_file("hello there", output)

    assert result == SynthesisResult.completed()
    (synthesizer,) = FakeSynthesizer.instances
    assert synthesizer.speech_config.subscription == "key"
    assert synthesizer.speech_config.region == "westeurope"
    assert synthesizer.speech_config.speech_synthesis_voice_name == "en-GB-RyanNeural"
    assert synthesizer.audio_config.filename == str(output)
    assert synthesizer.spoken == ["hello there"]


@pytest.mark.parametrize(
    ("sdk_result", "kind", "details"),
    [
        (
            _canceled("error", "connection_failure", "Connection was closed by the remote host."),
            FailureKind.TRANSPORT,
            "Connection was closed by the remote host.",
        ),
        (_canceled("error", "service_timeout", "Timeout while synthesizing."), FailureKind.TIMEOUT, "Timeout while synthesizing."),
        (
            _canceled("error", "authentication_failure", "WebSocket upgrade failed: 401"),
            FailureKind.PROVIDER,
            "WebSocket upgrade failed: 401",
        ),
        (_canceled("end_of_stream"), FailureKind.PROVIDER, "end_of_stream"),
        (SimpleNamespace(reason="recognized"), FailureKind.PROVIDER, "Unexpected synthesis result: recognized"),
    ],
)
def test_azure_backend_maps_cancellations(speech_sdk, monkeypatch, tmp_path: Path, sdk_result, kind, details) -> None:
    monkeypatch.setattr(FakeSynthesizer, "result", sdk_result)
    backend = AzureSpeechBackend(SynthesisConfig(subscription_key="key", region="westeurope"))

    result = backend.synthesize_to_file("hello", tmp_path / "out.wav")

    assert result == SynthesisResult.failed(details, kind)


def test_azure_backend_checks_credentials_before_loading_sdk(speech_sdk, tmp_path: Path) -> None:
    for config, setting in (
        (SynthesisConfig(subscription_key=None, region="westeurope"), "azure_speech_key"),
        (SynthesisConfig(subscription_key="key", region=""), "azure_region"),
    ):
        with pytest.raises(ConfigurationError) as excinfo:
            AzureSpeechBackend(config).synthesize_to_file("hello", tmp_path / "out.wav")
        assert excinfo.value.setting == setting
    assert FakeSynthesizer.instances == []
