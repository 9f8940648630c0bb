"""Qdrant vector store client.

Holds one point per document chunk. Qdrant only accepts UUID or integer
point ids, so each chunk id (``{document_key}:chunk:{index}``) is mapped to
a deterministic UUID and kept in the payload as ``chunk_id``.
"""

import logging
from uuid import NAMESPACE_URL, uuid5

from qdrant_client import AsyncQdrantClient
from qdrant_client.http import models as qdrant_models
from qdrant_client.http.models import Distance, PayloadSchemaType, VectorParams

from src.core.config import get_settings
from src.rag.models import VectorMatch

logger = logging.getLogger(__name__)


class VectorStoreError(Exception):
    """Raised when a write to the vector store fails."""


class IndexQueryError(Exception):
    """Raised when a similarity query against the vector store fails."""


def make_chunk_id(document_key: str, chunk_index: int) -> str:
    """Build the public identifier of a chunk."""
    return f"{document_key}:chunk:{chunk_index}"


def point_id(chunk_id: str) -> str:
    """Deterministic Qdrant point id for a chunk id."""
    return str(uuid5(NAMESPACE_URL, chunk_id))


def _source_filter(source: str) -> qdrant_models.Filter:
    return qdrant_models.Filter(
        must=[
            qdrant_models.FieldCondition(
                key="source",
                match=qdrant_models.MatchValue(value=source),
            )
        ]
    )


class VectorStore:
    """Qdrant collection of chunk embeddings.

    Payload per point: chunk_id, text, source (document key), title, chunk_index.
    """

    def __init__(
        self,
        client: AsyncQdrantClient,
        collection_name: str = "documents",
        embedding_dim: int | None = None,
    ):
        self.client = client
        self.collection_name = collection_name
        self.embedding_dim = embedding_dim or get_settings().embedding_dimensions

    async def ensure_collection(self) -> bool:
        """Create the collection if it does not exist.

        Returns:
            True if created, False if already exists
        """
        if await self.client.collection_exists(self.collection_name):
            return False

        logger.info(
            f"[VectorStore] Creating collection '{self.collection_name}' ({self.embedding_dim} dims)"
        )
        await self.client.create_collection(
            collection_name=self.collection_name,
            vectors_config=VectorParams(
                size=self.embedding_dim,
                distance=Distance.COSINE,
            ),
            # Store chunk text on disk to save RAM
            on_disk_payload=True,
        )

        # Deletes and lookups filter by source document
        await self.client.create_payload_index(
            collection_name=self.collection_name,
            field_name="source",
            field_schema=PayloadSchemaType.KEYWORD,
        )
        return True

    async def collection_ready(self) -> bool:
        """Check that Qdrant answers and the collection exists."""
        return await self.client.collection_exists(self.collection_name)

    async def upsert_chunk(
        self,
        chunk_id: str,
        vector: list[float],
        metadata: dict,
    ) -> str:
        """Insert or replace a single chunk vector.

        Args:
            chunk_id: Public chunk identifier
            vector: Embedding vector
            metadata: text, source, title, chunkIndex

        Returns:
            The chunk id

        Raises:
            VectorStoreError: The upsert failed
        """
        if len(vector) != self.embedding_dim:
            raise VectorStoreError(
                f"Vector for {chunk_id} has {len(vector)} dims, collection expects {self.embedding_dim}"
            )

        point = qdrant_models.PointStruct(
            id=point_id(chunk_id),
            vector=vector,
            payload={
                "chunk_id": chunk_id,
                "text": metadata.get("text", ""),
                "source": metadata["source"],
                "title": metadata.get("title", ""),
                "chunk_index": metadata.get("chunkIndex", 0),
            },
        )

        try:
            await self.client.upsert(collection_name=self.collection_name, points=[point])
        except Exception as e:
            raise VectorStoreError(f"Failed to upsert {chunk_id}: {e}") from e

        return chunk_id

    async def query(self, vector: list[float], top_k: int = 5) -> list[VectorMatch]:
        """Return the top_k most similar chunks, best first.

        Raises:
            IndexQueryError: The query failed
        """
        try:
            results = await self.client.query_points(
                collection_name=self.collection_name,
                query=vector,
                limit=top_k,
                with_payload=True,
            )
        except Exception as e:
            raise IndexQueryError(f"Vector query failed: {e}") from e

        return [
            VectorMatch(
                id=point.payload.get("chunk_id", str(point.id)),
                score=point.score,
                metadata={
                    "text": point.payload.get("text", ""),
                    "source": point.payload.get("source"),
                    "title": point.payload.get("title", ""),
                    "chunkIndex": point.payload.get("chunk_index"),
                },
            )
            for point in results.points
            if point.payload is not None
        ]

    async def count_by_source(self, source: str) -> int:
        """Count the chunks stored for a document."""
        result = await self.client.count(
            collection_name=self.collection_name,
            count_filter=_source_filter(source),
            exact=True,
        )
        return result.count

    async def delete_by_source(self, source: str) -> int:
        """Delete all chunks of a document.

        Returns:
            Number of chunks deleted

        Raises:
            VectorStoreError: The delete failed
        """
        try:
            count_before = await self.count_by_source(source)
            await self.client.delete(
                collection_name=self.collection_name,
                points_selector=qdrant_models.FilterSelector(filter=_source_filter(source)),
            )
        except Exception as e:
            raise VectorStoreError(f"Failed to delete chunks of {source}: {e}") from e

        logger.info(f"[VectorStore] Deleted {count_before} chunks for {source}")
        return count_before


# Singleton instance
_vector_store: VectorStore | None = None


def get_vector_store() -> VectorStore:
    """Get or create the global VectorStore instance."""
    global _vector_store

    if _vector_store is None:
        settings = get_settings()
        client = AsyncQdrantClient(
            url=settings.qdrant_url,
            api_key=settings.qdrant_api_key,
            timeout=settings.qdrant_timeout,
        )
        _vector_store = VectorStore(
            client,
            collection_name=settings.qdrant_collection,
            embedding_dim=settings.embedding_dimensions,
        )

    return _vector_store
