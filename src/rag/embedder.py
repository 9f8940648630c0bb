"""Embedding service using OpenAI.

Generates vector embeddings for text chunks and queries. Chunks and queries
go through the same model and dimension so their vectors are comparable.
"""

import logging

import httpx
from openai import AsyncOpenAI, OpenAIError

from src.core.config import get_settings

logger = logging.getLogger(__name__)


class EmbeddingError(Exception):
    """Raised when an embedding cannot be generated."""


class Embedder:
    """OpenAI embedding service.

    Uses text-embedding-3-small at 1536 dimensions by default.
    """

    DEFAULT_MODEL = "text-embedding-3-small"
    DEFAULT_DIMENSIONS = 1536

    def __init__(
        self,
        client: AsyncOpenAI,
        model: str = DEFAULT_MODEL,
        dimensions: int = DEFAULT_DIMENSIONS,
    ):
        self.client = client
        self.model = model
        self.dimensions = dimensions

    async def embed_text(self, text: str) -> list[float]:
        """Generate embedding for a single text.

        Args:
            text: Text to embed

        Returns:
            Embedding vector (``dimensions`` floats)

        Raises:
            EmbeddingError: Empty input or the API call failed
        """
        text = text.strip()
        if not text:
            raise EmbeddingError("Cannot embed empty text")

        try:
            response = await self.client.embeddings.create(
                input=text,
                model=self.model,
                dimensions=self.dimensions,
            )
        except OpenAIError as e:
            raise EmbeddingError(f"Embedding request failed: {e}") from e

        if not response.data:
            raise EmbeddingError("Embedding response contained no vectors")

        embedding = response.data[0].embedding
        if len(embedding) != self.dimensions:
            raise EmbeddingError(
                f"Expected {self.dimensions}-dim embedding from {self.model}, got {len(embedding)}"
            )
        return embedding

    async def embed_query(self, query: str) -> list[float]:
        """Embed a search query.

        Alias for embed_text, but can be extended for query-specific processing.
        """
        return await self.embed_text(query)


# Singleton instance
_embedder: Embedder | None = None


def get_embedder() -> Embedder:
    """Get or create the global Embedder instance."""
    global _embedder

    if _embedder is None:
        settings = get_settings()

        logger.info(
            f"Initializing embedder with model '{settings.embedding_model}' "
            f"({settings.embedding_dimensions} dims)"
        )

        # Long timeout: large documents fan out many requests at once
        client = AsyncOpenAI(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            timeout=httpx.Timeout(settings.openai_timeout, connect=30.0),
        )

        _embedder = Embedder(
            client=client,
            model=settings.embedding_model,
            dimensions=settings.embedding_dimensions,
        )

    return _embedder
