"""Plain-text extraction for uploaded PDF and Word documents."""

from __future__ import annotations

import asyncio
import time
import unicodedata
from pathlib import Path
from typing import Mapping, Protocol, Sequence

from langchain_community.document_loaders import Docx2txtLoader, PyPDFLoader
from langchain_community.document_loaders.base import BaseLoader
from langchain_core.documents import Document as LCDocument

from voicerag.errors import ExtractionError
from voicerag.metrics.observability import get_logger
from voicerag.models import UploadedAsset

PDF_MEDIA_TYPE = "application/pdf"
WORD_MEDIA_TYPES = (
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
)


class DocumentExtractor(Protocol):
    """Protocol for extraction implementations."""

    async def extract(self, asset: UploadedAsset) -> str:
        """Return the plain text of the document behind ``asset``."""


def _normalize_text(raw: str) -> str:
    normalized = unicodedata.normalize("NFKC", raw)
    return normalized.replace("\u00a0", " ").strip()


class LangChainDocumentExtractor:
    """Extract text via LangChain loaders chosen by declared MIME type.

    Any media type without a loader yields an empty string rather than an
    error; callers relying on that should expect it to change.
    """

    _LOADERS: Mapping[str, type[BaseLoader]] = {
        PDF_MEDIA_TYPE: PyPDFLoader,
        **{media_type: Docx2txtLoader for media_type in WORD_MEDIA_TYPES},
    }

    _logger = get_logger("extraction")

    async def extract(self, asset: UploadedAsset) -> str:
        return await asyncio.to_thread(self.extract_sync, asset)

    def extract_sync(self, asset: UploadedAsset) -> str:
        media_type = (asset.media_type or "").split(";", 1)[0].strip().lower()
        loader_cls = self._LOADERS.get(media_type)
        if loader_cls is None:
            self._logger.warning(
                "extraction.unsupported_media_type",
                media_type=asset.media_type,
                filename=asset.original_name,
            )
            return ""

        start = time.perf_counter()
        try:
            documents = self._build_loader(loader_cls, asset.path).load()
        except Exception as exc:  # loader specific errors
            raise ExtractionError(f"Failed to extract text from {asset.original_name}: {exc}") from exc

        text = self._join(documents)
        self._logger.info(
            "extraction.complete",
            filename=asset.original_name,
            media_type=media_type,
            pages=len(documents),
            characters=len(text),
            duration_seconds=time.perf_counter() - start,
        )
        return text

    def _build_loader(self, loader_cls: type[BaseLoader], path: Path) -> BaseLoader:
        return loader_cls(str(path))

    @staticmethod
    def _join(documents: Sequence[LCDocument]) -> str:
        parts = [_normalize_text(document.page_content) for document in documents]
        return "\n\n".join(part for part in parts if part)
