"""Ingestion pipeline: uploaded file -> extracted text -> document store.

Progress is reported through an optional async callback. The result is the
stored document's identity; vectorization is a separate step unless
auto_vectorize is enabled.
"""

import asyncio
import logging
import time
from dataclasses import dataclass

from src.core.config import get_settings
from src.observability.metrics import DOCUMENTS_INGESTED, INGESTION_LATENCY
from src.rag.document_store import DocumentStore, get_document_store
from src.rag.extractors import DocumentExtractor, ExtractionError, get_extractor
from src.rag.indexer import DocumentIndexer, VectorizeSummary, get_indexer
from src.rag.models import StoredDocument
from src.rag.page_extractor import (
    PageImage,
    PageImageExtractor,
    ProgressCallback,
    get_page_extractor,
    notify,
)

logger = logging.getLogger(__name__)


class IngestionTimeoutError(Exception):
    """Raised when ingestion exceeds its deadline."""


@dataclass
class IngestionResult:
    """Identity of a successfully stored document."""

    success: bool
    title: str
    original_filename: str
    key: str
    vectorize_summary: VectorizeSummary | None = None


class IngestionService:
    """Extracts text from uploads and stores it as documents."""

    def __init__(
        self,
        document_store: DocumentStore,
        extractor: DocumentExtractor,
        page_extractor: PageImageExtractor,
        indexer: DocumentIndexer | None = None,
        timeout_seconds: float | None = 300.0,
        auto_vectorize: bool = False,
    ):
        self.document_store = document_store
        self.extractor = extractor
        self.page_extractor = page_extractor
        self.indexer = indexer
        self.timeout_seconds = timeout_seconds
        self.auto_vectorize = auto_vectorize

    async def _with_deadline(self, coro, source_type: str):
        start = time.perf_counter()
        try:
            result = await asyncio.wait_for(coro, timeout=self.timeout_seconds)
        except TimeoutError:
            DOCUMENTS_INGESTED.labels(source_type=source_type, status="timeout").inc()
            raise IngestionTimeoutError(
                f"Ingestion did not finish within {self.timeout_seconds:.0f}s"
            ) from None
        except Exception:
            DOCUMENTS_INGESTED.labels(source_type=source_type, status="failed").inc()
            raise
        DOCUMENTS_INGESTED.labels(source_type=source_type, status="success").inc()
        INGESTION_LATENCY.labels(source_type=source_type).observe(time.perf_counter() - start)
        return result

    async def _store(
        self,
        original_filename: str,
        text: str,
        progress: ProgressCallback | None,
    ) -> IngestionResult:
        await notify(progress, "Processing complete. Storing results...")

        key = self.document_store.key_for(original_filename)
        document = StoredDocument(
            title=original_filename,
            text=text,
            original_filename=original_filename,
            key=key,
        )
        await self.document_store.set(key, document)
        logger.info(f"[Ingestion] Stored {original_filename} as {key} ({len(text)} chars)")
        await notify(progress, f"Stored document with key: {key}")

        summary = None
        if self.auto_vectorize and self.indexer is not None and text.strip():
            await notify(progress, "Vectorizing document...")
            summary = await self.indexer.vectorize(key)
            await notify(
                progress,
                f"Vectorized {summary.successful} of {summary.total_chunks} chunks",
            )

        return IngestionResult(
            success=True,
            title=original_filename,
            original_filename=original_filename,
            key=key,
            vectorize_summary=summary,
        )

    async def _ingest_file(
        self,
        content: bytes,
        filename: str,
        content_type: str | None,
        progress: ProgressCallback | None,
    ) -> IngestionResult:
        await notify(progress, f"Received file: {filename}")
        extractor = self.extractor.resolve(content_type, filename)
        await notify(progress, f"Processing {extractor.label}...")

        # openpyxl/python-docx are blocking; keep the event loop free for progress events
        text = await asyncio.to_thread(extractor.extract, content)
        return await self._store(filename, text, progress)

    async def ingest_file(
        self,
        content: bytes,
        filename: str,
        content_type: str | None = None,
        progress: ProgressCallback | None = None,
    ) -> IngestionResult:
        """Extract and store an uploaded XLSX or DOCX file.

        Raises:
            UnsupportedFormatError: The file type is not supported
            ExtractionError: Extraction failed
            StoreIOError: The document could not be stored
            IngestionTimeoutError: The deadline passed
        """
        source_type = self.extractor.file_extension(filename) or "file"
        return await self._with_deadline(
            self._ingest_file(content, filename, content_type, progress), source_type
        )

    async def _ingest_pages(
        self,
        pages: list[PageImage],
        progress: ProgressCallback | None,
    ) -> IngestionResult:
        await notify(progress, "Received pre-processed PDF pages from client...")
        if not pages or not pages[0].original_filename:
            raise ExtractionError("Invalid or missing page data received from client.")

        original_filename = pages[0].original_filename
        await notify(progress, f"Processing PDF: {original_filename}")

        text = await self.page_extractor.extract_pages(pages, progress)
        return await self._store(original_filename, text, progress)

    async def ingest_pages(
        self,
        pages: list[PageImage],
        progress: ProgressCallback | None = None,
    ) -> IngestionResult:
        """Transcribe and store a PDF supplied as rendered page images.

        The document is named after the first page's original filename.
        """
        return await self._with_deadline(self._ingest_pages(pages, progress), "pages")


# Singleton instance
_ingestion_service: IngestionService | None = None


def get_ingestion_service() -> IngestionService:
    """Get or create the global IngestionService instance."""
    global _ingestion_service

    if _ingestion_service is None:
        settings = get_settings()
        _ingestion_service = IngestionService(
            document_store=get_document_store(),
            extractor=get_extractor(),
            page_extractor=get_page_extractor(),
            indexer=get_indexer(),
            timeout_seconds=settings.ingestion_timeout_seconds,
            auto_vectorize=settings.auto_vectorize,
        )

    return _ingestion_service
