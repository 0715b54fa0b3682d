"""Request-scoped domain models passed between the router and the gateways."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping


@dataclass(frozen=True)
class UploadedAsset:
    """A file persisted in the temporary store for the lifetime of one request."""

    path: Path
    original_name: str
    media_type: str
    size_bytes: int
    field_name: str = "file"


@dataclass(frozen=True)
class TranscriptionResult:
    """Recognised text plus the provider response it came from."""

    text: str
    payload: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RagQuery:
    query: str
    context: str | None = None


@dataclass(frozen=True)
class RagAnswer:
    text: str
    model: str | None = None


@dataclass(frozen=True)
class SynthesizedAudio:
    """Synthesised speech written to a temporary file."""

    path: Path
    size_bytes: int
    media_type: str = "audio/wav"
