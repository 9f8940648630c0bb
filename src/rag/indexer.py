"""Document indexer for RAG vectorization.

Handles chunking, embedding, vector upsert and deletion of stored documents.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime

from src.core.config import get_settings
from src.observability.metrics import CHUNKS_EMBEDDED, DOCUMENTS_VECTORIZED
from src.rag.chunking import SlidingWindowChunker
from src.rag.document_store import DocumentStore, get_document_store
from src.rag.embedder import Embedder, get_embedder
from src.rag.vector_store import VectorStore, get_vector_store, make_chunk_id

logger = logging.getLogger(__name__)


class DocumentNotFoundError(Exception):
    """Raised when a document key does not exist in the store."""


class EmptyDocumentError(Exception):
    """Raised when a document has no text to vectorize."""


@dataclass
class ChunkOutcome:
    """Result of embedding and storing one chunk."""

    chunk_index: int
    success: bool
    chunk_id: str | None = None
    error: str | None = None


@dataclass
class IndexingResult:
    """Per-chunk outcomes of indexing one document."""

    document_key: str
    outcomes: list[ChunkOutcome] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def successful(self) -> int:
        return sum(1 for o in self.outcomes if o.success)

    @property
    def failed(self) -> int:
        return self.total - self.successful


@dataclass
class VectorizeSummary:
    """Summary returned by the vectorize operation."""

    key: str
    title: str
    total_chunks: int
    successful: int
    failed: int
    vectorized: bool
    processing_time_ms: int = 0


@dataclass
class DeletionResult:
    """Outcome of deleting a document and its vectors."""

    key: str
    deleted: bool
    vectors_removed: int | None
    error: str | None = None


class DocumentIndexer:
    """Vectorizes stored documents.

    Pipeline:
    1. Load document text from the document store
    2. Split into overlapping chunks
    3. Embed and upsert every chunk concurrently
    4. Mark the document as vectorized
    """

    def __init__(
        self,
        document_store: DocumentStore,
        vector_store: VectorStore,
        embedder: Embedder,
        chunk_size: int = 2000,
        chunk_overlap_percent: int = 40,
    ):
        self.document_store = document_store
        self.vector_store = vector_store
        self.embedder = embedder
        self.chunker = SlidingWindowChunker(
            chunk_size=chunk_size,
            overlap_percent=chunk_overlap_percent,
        )

    async def _index_chunk(
        self,
        document_key: str,
        title: str,
        index: int,
        text: str,
    ) -> ChunkOutcome:
        chunk_id = make_chunk_id(document_key, index)
        try:
            embedding = await self.embedder.embed_text(text)
            await self.vector_store.upsert_chunk(
                chunk_id,
                embedding,
                metadata={
                    "text": text,
                    "source": document_key,
                    "title": title,
                    "chunkIndex": index,
                },
            )
        except Exception as e:
            logger.error(f"[Indexer] Error processing chunk {index} of {document_key}: {e}")
            CHUNKS_EMBEDDED.labels(status="failed").inc()
            return ChunkOutcome(chunk_index=index, success=False, error=str(e))

        CHUNKS_EMBEDDED.labels(status="success").inc()
        return ChunkOutcome(chunk_index=index, success=True, chunk_id=chunk_id)

    async def index(
        self,
        document_key: str,
        title: str,
        chunks: list[str],
    ) -> IndexingResult:
        """Embed and upsert chunks; one failure never aborts the others.

        Args:
            document_key: Key of the source document
            title: Document title stored with every chunk
            chunks: Chunk texts in index order

        Returns:
            IndexingResult with one outcome per chunk, ordered by index
        """
        outcomes = await asyncio.gather(
            *(
                self._index_chunk(document_key, title, index, text)
                for index, text in enumerate(chunks)
            )
        )
        return IndexingResult(document_key=document_key, outcomes=list(outcomes))

    async def vectorize(self, key: str) -> VectorizeSummary:
        """Chunk, embed and index a stored document.

        The document is marked vectorized when at least one chunk succeeded.
        Zero successes is reported in the summary, not raised.

        Raises:
            DocumentNotFoundError: No document under key
            EmptyDocumentError: The document has no text
            StoreIOError: The document store failed
        """
        start_time = datetime.now(UTC)
        logger.info(f"[Indexer] Starting vectorization: key={key}")

        document = await self.document_store.get(key)
        if document is None:
            raise DocumentNotFoundError(f"Document not found: {key}")
        if not document.text or not document.text.strip():
            raise EmptyDocumentError(f"Document has no text content: {key}")

        chunks = [c.text for c in self.chunker.chunk(document.text)]
        logger.info(f"[Indexer] Generated {len(chunks)} chunks for {key}")

        result = await self.index(key, document.title, chunks)

        if result.successful > 0:
            document.vectorized = True
            document.vectorized_at = datetime.now(UTC)
            document.vector_chunks = result.successful
            await self.document_store.set(key, document)
            DOCUMENTS_VECTORIZED.labels(status="success").inc()
        else:
            logger.warning(f"[Indexer] No chunks of {key} could be embedded")
            DOCUMENTS_VECTORIZED.labels(status="failed").inc()

        processing_time = int((datetime.now(UTC) - start_time).total_seconds() * 1000)
        logger.info(
            f"[Indexer] Vectorized {key} in {processing_time}ms: "
            f"{result.successful}/{result.total} chunks succeeded"
        )

        return VectorizeSummary(
            key=key,
            title=document.title,
            total_chunks=result.total,
            successful=result.successful,
            failed=result.failed,
            vectorized=document.vectorized,
            processing_time_ms=processing_time,
        )

    async def delete_document(self, key: str) -> DeletionResult:
        """Delete a document and, best effort, all of its chunk vectors.

        Raises:
            StoreIOError: The document record could not be deleted
        """
        deleted = await self.document_store.delete(key)

        try:
            vectors_removed = await self.vector_store.delete_by_source(key)
        except Exception as e:
            logger.warning(f"[Indexer] Vector cleanup for {key} failed: {e}")
            return DeletionResult(key=key, deleted=deleted, vectors_removed=None, error=str(e))

        return DeletionResult(key=key, deleted=deleted, vectors_removed=vectors_removed)


# Singleton instance
_indexer: DocumentIndexer | None = None


def get_indexer() -> DocumentIndexer:
    """Get or create the global DocumentIndexer instance."""
    global _indexer

    if _indexer is None:
        settings = get_settings()
        _indexer = DocumentIndexer(
            document_store=get_document_store(),
            vector_store=get_vector_store(),
            embedder=get_embedder(),
            chunk_size=settings.chunk_size,
            chunk_overlap_percent=settings.chunk_overlap_percent,
        )

    return _indexer
