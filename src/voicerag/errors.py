"""Error taxonomy shared by the gateways and the HTTP layer.

Each exception declares the HTTP status it translates to; the mapping to a
response body lives in :mod:`voicerag.api.errors`.
"""

from __future__ import annotations


class VoiceRagError(RuntimeError):
    """Base class for all expected VoiceRAG failures."""

    status_code: int = 500

    def __init__(self, details: str) -> None:
        super().__init__(details)
        self.details = details


class ClientInputError(VoiceRagError):
    """A required field is missing or invalid."""

    status_code = 400


class PayloadTooLargeError(ClientInputError):
    """An uploaded file exceeds the configured size limit."""

    status_code = 413

    def __init__(self, filename: str, max_bytes: int) -> None:
        super().__init__(f"File too large (>{max_bytes // (1024 * 1024)}MB): {filename}")
        self.filename = filename
        self.max_bytes = max_bytes


class ConfigurationError(VoiceRagError):
    """A credential or setting required by a provider call is absent."""

    def __init__(self, setting: str) -> None:
        super().__init__(f"Missing required configuration: {setting}")
        self.setting = setting


class UpstreamError(VoiceRagError):
    """The provider answered with a non-success status."""

    status_code = 502

    def __init__(self, details: str, *, upstream_status: int | None = None, body: str | None = None) -> None:
        super().__init__(details)
        self.upstream_status = upstream_status
        self.body = body

    @classmethod
    def from_response(cls, status: int, body: str) -> "UpstreamError":
        return cls(f"HTTP error! status: {status}, body: {body}", upstream_status=status, body=body)


class TransportError(VoiceRagError):
    """The provider could not be reached (DNS, connect, reset)."""


class UpstreamTimeoutError(VoiceRagError):
    """A provider call did not finish within its deadline."""

    status_code = 504

    def __init__(self, operation: str, timeout_seconds: float, *, provider_details: str | None = None) -> None:
        message = f"{operation} did not respond within {timeout_seconds:g}s"
        if provider_details:
            message = f"{operation} timed out at the provider: {provider_details}"
        super().__init__(message)
        self.operation = operation
        self.timeout_seconds = timeout_seconds
        self.provider_details = provider_details


class ExtractionError(VoiceRagError):
    """An uploaded document could not be parsed."""


class ClientDisconnectedError(VoiceRagError):
    """The HTTP client went away while a provider call was pending."""

    status_code = 499

    def __init__(self, operation: str) -> None:
        super().__init__(f"Client disconnected during {operation}")
        self.operation = operation


__all__ = [
    "ClientDisconnectedError",
    "ClientInputError",
    "ConfigurationError",
    "ExtractionError",
    "PayloadTooLargeError",
    "TransportError",
    "UpstreamError",
    "UpstreamTimeoutError",
    "VoiceRagError",
]
