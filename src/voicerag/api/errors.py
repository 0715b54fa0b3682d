"""HTTP exception handlers for FastAPI.

Maps the typed VoiceRAG exceptions to ``{error, details}`` JSON responses.
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import uuid4

from fastapi import status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from voicerag.api.schemas import ErrorResponse
from voicerag.errors import ClientInputError, UpstreamError, VoiceRagError
from voicerag.metrics.observability import get_logger

if TYPE_CHECKING:
    from fastapi import FastAPI, Request

logger = get_logger("api.errors")

OPERATION_LABELS: dict[str, str] = {
    "/upload": "Error during transcription",
    "/rag": "Error processing RAG request",
    "/upload-file": "Error processing file",
    "/text-to-speech": "Error synthesizing speech",
}
DEFAULT_LABEL = "Something went wrong!"


def _error_response(status_code: int, error: str, details: str | None, correlation_id: str) -> JSONResponse:
    body = ErrorResponse(error=error, details=details).model_dump()
    return JSONResponse(
        status_code=status_code,
        content=body,
        headers={"X-Correlation-ID": correlation_id},
    )


def _correlation_id(request: Request) -> str:
    return getattr(request.state, "correlation_id", None) or uuid4().hex


async def _handle_client_input(request: Request, exc: ClientInputError) -> JSONResponse:
    correlation_id = _correlation_id(request)
    logger.warning("request.invalid", path=request.url.path, detail=exc.details, correlation_id=correlation_id)
    return _error_response(exc.status_code, exc.details, exc.details, correlation_id)


async def _handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    correlation_id = _correlation_id(request)
    messages = "; ".join(
        f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg', '')}" for err in exc.errors()
    )
    logger.warning("request.invalid", path=request.url.path, detail=messages, correlation_id=correlation_id)
    return _error_response(status.HTTP_400_BAD_REQUEST, "Invalid request", messages, correlation_id)


async def _handle_voicerag_error(request: Request, exc: VoiceRagError) -> JSONResponse:
    correlation_id = _correlation_id(request)
    extra = {}
    if isinstance(exc, UpstreamError):
        extra["upstream_status"] = exc.upstream_status
    logger.error(
        "request.failed",
        path=request.url.path,
        error_type=type(exc).__name__,
        detail=exc.details,
        correlation_id=correlation_id,
        **extra,
    )
    label = OPERATION_LABELS.get(request.url.path, DEFAULT_LABEL)
    return _error_response(exc.status_code, label, exc.details, correlation_id)


async def _handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    correlation_id = _correlation_id(request)
    logger.error(
        "unhandled.error",
        path=request.url.path,
        error_type=type(exc).__name__,
        detail=str(exc),
        correlation_id=correlation_id,
        exc_info=True,
    )
    return _error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        DEFAULT_LABEL,
        "Internal Server Error",
        correlation_id,
    )


def register_error_handlers(app: FastAPI) -> None:
    """Register all exception handlers on the FastAPI app."""
    app.add_exception_handler(RequestValidationError, _handle_validation_error)
    app.add_exception_handler(ClientInputError, _handle_client_input)
    app.add_exception_handler(VoiceRagError, _handle_voicerag_error)
    app.add_exception_handler(Exception, _handle_unexpected_error)
