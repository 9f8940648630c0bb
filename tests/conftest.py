"""Shared pytest fixtures for the knowledge base test suite."""

from __future__ import annotations

import asyncio
import fnmatch
import math
import re
import zlib
from collections.abc import AsyncIterator
from typing import Any

import pytest
from qdrant_client import AsyncQdrantClient

from src.core.config import get_settings
from src.rag.document_store import DocumentStore
from src.rag.embedder import Embedder, EmbeddingError
from src.rag.indexer import DocumentIndexer
from src.rag.models import StoredDocument
from src.rag.retriever import Retriever
from src.rag.vector_store import VectorStore

TEST_DIM = 64
TEST_PASSWORD = "test-password"


def run_sync(coro):
    """Run a coroutine on a private loop without touching the current one."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class FakeRedis:
    """Dict-backed subset of the redis.asyncio client used by DocumentStore."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}

    async def ping(self) -> bool:
        return True

    async def get(self, key: str) -> str | None:
        return self.data.get(key)

    async def set(self, key: str, value: str) -> bool:
        self.data[key] = value
        return True

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
        return removed

    async def scan_iter(self, match: str = "*", count: int | None = None) -> AsyncIterator[str]:
        for key in list(self.data):
            if fnmatch.fnmatchcase(key, match):
                yield key


class HashingEmbedder(Embedder):
    """Deterministic bag-of-words embedding; texts sharing words score higher."""

    def __init__(self, dimensions: int = TEST_DIM, fail_on: str | None = None) -> None:
        super().__init__(client=None, model="test-hashing", dimensions=dimensions)
        self.fail_on = fail_on
        self.calls: list[str] = []

    async def embed_text(self, text: str) -> list[float]:
        self.calls.append(text)
        if not text.strip():
            raise EmbeddingError("Cannot embed empty text")
        if self.fail_on is not None and self.fail_on in text:
            raise EmbeddingError(f"Refusing to embed text containing {self.fail_on!r}")

        vector = [0.0] * self.dimensions
        for token in re.findall(r"\w+", text.lower()):
            vector[zlib.crc32(token.encode()) % self.dimensions] += 1.0
        norm = math.sqrt(sum(v * v for v in vector)) or 1.0
        return [v / norm for v in vector]


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def test_settings(monkeypatch: pytest.MonkeyPatch):
    """Known shared password and no .env leakage between tests."""
    monkeypatch.setenv("ENRICH_PASSWORD", TEST_PASSWORD)
    monkeypatch.setenv("EMBEDDING_DIMENSIONS", str(TEST_DIM))
    get_settings.cache_clear()
    yield get_settings()
    get_settings.cache_clear()


@pytest.fixture
def auth_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {TEST_PASSWORD}"}


# ---------------------------------------------------------------------------
# Pipeline components
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def document_store(fake_redis: FakeRedis) -> DocumentStore:
    return DocumentStore(fake_redis, prefix="docs:")


@pytest.fixture
def embedder() -> HashingEmbedder:
    return HashingEmbedder()


@pytest.fixture
def make_embedder():
    """Factory for embedders configured to fail on chosen text."""
    return HashingEmbedder


@pytest.fixture
def vector_store() -> VectorStore:
    """In-process Qdrant collection."""
    store = VectorStore(
        AsyncQdrantClient(":memory:"), collection_name="test", embedding_dim=TEST_DIM
    )
    run_sync(store.ensure_collection())
    return store


@pytest.fixture
def indexer(
    document_store: DocumentStore, vector_store: VectorStore, embedder: HashingEmbedder
) -> DocumentIndexer:
    return DocumentIndexer(
        document_store=document_store,
        vector_store=vector_store,
        embedder=embedder,
        chunk_size=200,
        chunk_overlap_percent=40,
    )


@pytest.fixture
def retriever(
    document_store: DocumentStore, vector_store: VectorStore, embedder: HashingEmbedder
) -> Retriever:
    return Retriever(vector_store=vector_store, embedder=embedder, document_store=document_store)


def make_document(key: str, title: str, text: str, **extra: Any) -> StoredDocument:
    return StoredDocument(title=title, text=text, original_filename=title, key=key, **extra)


@pytest.fixture
def sample_documents() -> list[StoredDocument]:
    return [
        make_document(
            "docs:fertilizer_guide",
            "Fertilizer Guide.docx",
            "Nitrogen fertilizer improves corn yield. Apply nitrogen before planting corn.",
        ),
        make_document(
            "docs:irrigation_report",
            "Irrigation Report.xlsx",
            "Drip irrigation saves water in dry regions. Irrigation schedules depend on soil.",
        ),
    ]
