"""RAG Retriever - semantic search over indexed documents.

Embeds the query, finds the nearest chunks, then regroups chunk hits into
ranked source documents.
"""

import asyncio
import logging
import time

from src.core.config import get_settings
from src.observability.metrics import RETRIEVAL_LATENCY
from src.rag.document_store import DocumentStore, get_document_store
from src.rag.embedder import Embedder, get_embedder
from src.rag.models import RankedDocument, StoredDocument, VectorMatch
from src.rag.vector_store import VectorStore, get_vector_store

logger = logging.getLogger(__name__)


class Retriever:
    """Semantic retrieval over the chunk index.

    Coordinates embedding generation, vector search and document lookup.
    Embedding and index failures propagate; a missing or unreadable source
    document only drops that document from the results.
    """

    def __init__(
        self,
        vector_store: VectorStore,
        embedder: Embedder,
        document_store: DocumentStore,
        default_top_k: int = 5,
    ):
        self.vector_store = vector_store
        self.embedder = embedder
        self.document_store = document_store
        self.default_top_k = default_top_k

    async def search(self, query: str, top_k: int | None = None) -> list[VectorMatch]:
        """Return the nearest chunks for a query, best first.

        Raises:
            EmbeddingError: The query could not be embedded
            IndexQueryError: The vector search failed
        """
        limit = top_k if top_k is not None else self.default_top_k
        if not query.strip() or limit <= 0:
            return []

        start = time.perf_counter()
        query_vector = await self.embedder.embed_query(query)
        matches = await self.vector_store.query(query_vector, limit)
        RETRIEVAL_LATENCY.labels(operation="search").observe(time.perf_counter() - start)

        logger.debug(f"[Retriever] {len(matches)} chunk hits for query")
        return matches

    async def _fetch(self, key: str) -> StoredDocument | None:
        try:
            return await self.document_store.get(key)
        except Exception as e:
            logger.warning(f"[Retriever] Dropping source {key}: {e}")
            return None

    async def retrieve(self, query: str, top_k: int | None = None) -> list[RankedDocument]:
        """Retrieve source documents ranked by their average chunk score.

        Args:
            query: User's search query
            top_k: Number of chunks to fetch from the index

        Returns:
            Ranked documents; equal scores keep the order in which each
            source first appeared among the chunk hits
        """
        start = time.perf_counter()
        matches = await self.search(query, top_k)
        if not matches:
            return []

        # Group scores by source, in first-hit order
        scores_by_source: dict[str, list[float]] = {}
        for match in matches:
            if not match.source:
                continue
            scores_by_source.setdefault(match.source, []).append(match.score)

        keys = list(scores_by_source)
        documents = await asyncio.gather(*(self._fetch(key) for key in keys))

        ranked = []
        for key, document in zip(keys, documents, strict=True):
            if document is None:
                continue
            scores = scores_by_source[key]
            ranked.append(
                RankedDocument(
                    key=key,
                    document=document,
                    average_score=sum(scores) / len(scores),
                    matched_chunk_count=len(scores),
                )
            )

        # list.sort is stable, so ties keep first-hit order
        ranked.sort(key=lambda r: r.average_score, reverse=True)
        RETRIEVAL_LATENCY.labels(operation="retrieve").observe(time.perf_counter() - start)
        return ranked


# Singleton instance
_retriever: Retriever | None = None


def get_retriever() -> Retriever:
    """Get or create the global Retriever instance."""
    global _retriever

    if _retriever is None:
        settings = get_settings()
        _retriever = Retriever(
            vector_store=get_vector_store(),
            embedder=get_embedder(),
            document_store=get_document_store(),
            default_top_k=settings.retrieval_top_k,
        )

    return _retriever
