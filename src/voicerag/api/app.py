"""FastAPI application exposing the VoiceRAG gateways."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, AsyncIterator
from uuid import uuid4

from fastapi import Depends, FastAPI, File, Request, UploadFile, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, Response
from fastapi.staticfiles import StaticFiles
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from voicerag.api.errors import register_error_handlers
from voicerag.api.schemas import ExtractionResponse, RagRequest, RagResponse, TextToSpeechRequest
from voicerag.config import Settings, get_settings
from voicerag.errors import ClientInputError
from voicerag.gateways import (
    AzureSpeechBackend,
    CompletionConfig,
    CompletionGateway,
    DocumentExtractor,
    LangChainDocumentExtractor,
    OpenAICompletionGateway,
    OpenAITranscriptionGateway,
    SynthesisConfig,
    SynthesisGateway,
    TranscriptionConfig,
    TranscriptionGateway,
    call_with_deadline,
)
from voicerag.metrics.observability import bind_correlation_id, clear_correlation_id, configure_logging, get_logger
from voicerag.models import RagQuery
from voicerag.storage import TemporaryFileStore

STATIC_DIR = Path(__file__).resolve().parent.parent / "static"


@dataclass(frozen=True)
class AppDependencies:
    store: TemporaryFileStore
    transcriber: TranscriptionGateway
    extractor: DocumentExtractor
    completer: CompletionGateway
    synthesizer: SynthesisGateway


def _build_dependencies(settings: Settings) -> AppDependencies:
    store = TemporaryFileStore(settings.upload_dir, max_bytes=settings.max_upload_bytes)
    transcriber = OpenAITranscriptionGateway(
        TranscriptionConfig(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            model=settings.transcription_model,
            timeout_seconds=settings.upstream_timeout_seconds,
        ),
    )
    completer = OpenAICompletionGateway(
        CompletionConfig(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            model=settings.completion_model,
            max_tokens=settings.completion_max_tokens,
            timeout_seconds=settings.upstream_timeout_seconds,
        ),
    )
    synthesizer = SynthesisGateway(
        AzureSpeechBackend(
            SynthesisConfig(
                subscription_key=settings.azure_speech_key,
                region=settings.azure_region,
                voice=settings.synthesis_voice,
                timeout_seconds=settings.upstream_timeout_seconds,
            ),
        ),
        timeout_seconds=settings.upstream_timeout_seconds,
    )
    return AppDependencies(
        store=store,
        transcriber=transcriber,
        extractor=LangChainDocumentExtractor(),
        completer=completer,
        synthesizer=synthesizer,
    )


async def _close_dependencies(deps: AppDependencies) -> None:
    for gateway in (deps.transcriber, deps.completer):
        aclose = getattr(gateway, "aclose", None)
        if aclose is not None:
            await aclose()


def create_app(*, settings: Settings | None = None, dependencies: AppDependencies | None = None) -> FastAPI:
    settings = settings or get_settings()
    deps = dependencies or _build_dependencies(settings)

    configure_logging(settings.log_level)
    logger = get_logger("api")

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        logger.info("app.startup", environment=settings.environment, upload_dir=str(deps.store.root))
        try:
            yield
        finally:
            await _close_dependencies(deps)
            logger.info("app.shutdown")

    app = FastAPI(title="VoiceRAG API", version="0.1.0", lifespan=lifespan)
    app.state.dependencies = deps
    register_error_handlers(app)

    # Optional CORS
    if settings.cors_allow_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(settings.cors_allow_origins),
            allow_credentials=settings.cors_allow_credentials,
            allow_methods=list(settings.cors_allow_methods),
            allow_headers=list(settings.cors_allow_headers),
        )

    @app.middleware("http")
    async def add_correlation_id(request: Request, call_next):  # type: ignore[override]
        correlation_id = request.headers.get("X-Request-ID", uuid4().hex)
        request.state.correlation_id = correlation_id
        bind_correlation_id(correlation_id)
        try:
            response = await call_next(request)
        finally:
            clear_correlation_id()
        response.headers["X-Correlation-ID"] = correlation_id
        return response

    def get_dependencies(request: Request) -> AppDependencies:
        return request.app.state.dependencies

    def upstream(name: str, call: Any, request: Request) -> Any:
        return call_with_deadline(name, call, timeout=settings.upstream_timeout_seconds, request=request)

    if STATIC_DIR.is_dir():
        app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")

    @app.get("/", include_in_schema=False)
    async def index() -> FileResponse:
        return FileResponse(STATIC_DIR / "index.html", media_type="text/html")

    @app.post("/upload")
    async def transcribe_audio(
        request: Request,
        audio: UploadFile | None = File(default=None),
        dep: AppDependencies = Depends(get_dependencies),
    ) -> JSONResponse:
        if audio is None:
            raise ClientInputError("No audio file uploaded")
        logger.info("upload.received", filename=audio.filename, media_type=audio.content_type)
        async with dep.store.acquire_upload(audio, "audio") as asset:
            payload = await asyncio.to_thread(dep.store.read, asset)
            result = await upstream("transcription", dep.transcriber.transcribe(asset, payload), request)
        return JSONResponse(content=dict(result.payload))

    @app.post("/rag", response_model=RagResponse)
    async def answer_query(
        payload: RagRequest,
        request: Request,
        dep: AppDependencies = Depends(get_dependencies),
    ) -> RagResponse:
        if not payload.query or not payload.query.strip():
            raise ClientInputError("Query is required")
        logger.info("rag.received", query_length=len(payload.query), has_context=bool(payload.context))
        query = RagQuery(query=payload.query, context=payload.context)
        answer = await upstream("completion", dep.completer.complete(query), request)
        return RagResponse(answer=answer.text)

    @app.post("/upload-file", response_model=ExtractionResponse)
    async def extract_document(
        request: Request,
        file: UploadFile | None = File(default=None),
        dep: AppDependencies = Depends(get_dependencies),
    ) -> ExtractionResponse:
        if file is None:
            raise ClientInputError("No file uploaded")
        logger.info("upload_file.received", filename=file.filename, media_type=file.content_type)
        async with dep.store.acquire_upload(file, "file") as asset:
            text = await upstream("extraction", dep.extractor.extract(asset), request)
        return ExtractionResponse(text=text)

    @app.post("/text-to-speech")
    async def synthesize_speech(
        payload: TextToSpeechRequest,
        request: Request,
        dep: AppDependencies = Depends(get_dependencies),
    ) -> Response:
        if not payload.text or not payload.text.strip():
            raise ClientInputError("Text is required")
        logger.info("tts.received", characters=len(payload.text))
        async with dep.store.reserve("tts", ".wav") as output_path:
            audio = await upstream("synthesis", dep.synthesizer.synthesize(payload.text, output_path), request)
            content = await asyncio.to_thread(dep.store.read, audio.path)
        return Response(content=content, media_type=audio.media_type)

    @app.get("/metrics")
    async def metrics() -> Response:
        payload = generate_latest()
        return Response(content=payload, media_type=CONTENT_TYPE_LATEST)

    @app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        from voicerag import __version__

        return {"status": "ok", "version": __version__, "environment": settings.environment}

    @app.head("/healthz")
    async def healthcheck_head() -> Response:
        return Response(status_code=status.HTTP_200_OK)

    @app.get("/livez")
    async def liveness() -> dict[str, str]:
        return {"status": "alive"}

    @app.get("/healthz/ready")
    async def readiness() -> dict[str, Any]:
        missing = [
            name
            for name, value in (
                ("openai_api_key", settings.openai_api_key),
                ("azure_speech_key", settings.azure_speech_key),
                ("azure_region", settings.azure_region),
            )
            if not value
        ]
        if missing:
            return {"status": "degraded", "missing": missing}
        return {"status": "ready"}

    return app


app = create_app()
