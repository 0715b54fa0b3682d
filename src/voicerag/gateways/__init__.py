"""Provider gateways and the deadline wrapper around them."""

from .completion import CompletionConfig, CompletionGateway, OpenAICompletionGateway, build_messages
from .deadline import call_with_deadline
from .extraction import DocumentExtractor, LangChainDocumentExtractor
from .synthesis import (
    AzureSpeechBackend,
    SpeechSynthesisBackend,
    SynthesisConfig,
    SynthesisGateway,
    SynthesisResult,
    SynthesisState,
)
from .transcription import OpenAITranscriptionGateway, TranscriptionConfig, TranscriptionGateway

__all__ = [
    "AzureSpeechBackend",
    "CompletionConfig",
    "CompletionGateway",
    "DocumentExtractor",
    "LangChainDocumentExtractor",
    "OpenAICompletionGateway",
    "OpenAITranscriptionGateway",
    "SpeechSynthesisBackend",
    "SynthesisConfig",
    "SynthesisGateway",
    "SynthesisResult",
    "SynthesisState",
    "TranscriptionConfig",
    "TranscriptionGateway",
    "build_messages",
    "call_with_deadline",
]
