"""API tests: HTTP surface over in-memory stores.

Redis is replaced by a dict, Qdrant runs in-process, embeddings are hashed
locally and the vision model is mocked. The app lifespan is not started.
"""

import json
from io import BytesIO
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient
from openpyxl import Workbook
from qdrant_client import AsyncQdrantClient
from redis.exceptions import ConnectionError as RedisConnectionError

from src.api.main import app
from src.rag.document_store import DocumentStore, get_document_store
from src.rag.embedder import EmbeddingError
from src.rag.extractors import XLSX_MIME, DocumentExtractor
from src.rag.indexer import DocumentIndexer, get_indexer
from src.rag.ingestion import IngestionService, get_ingestion_service
from src.rag.models import StoredDocument
from src.rag.page_extractor import PageImageExtractor
from src.rag.retriever import Retriever, get_retriever
from src.rag.vector_store import VectorStore, get_vector_store


def xlsx_bytes() -> bytes:
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = "Irrigation"
    sheet.append(["Field", "Method"])
    sheet.append(["North", "Drip irrigation"])
    buffer = BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def sse_events(body: str) -> list[dict]:
    return [json.loads(line[len("data: ") :]) for line in body.splitlines() if line.startswith("data: ")]


@pytest.fixture
def page_extractor() -> AsyncMock:
    extractor = AsyncMock(spec=PageImageExtractor)
    extractor.extract_pages.return_value = "Page: 1\n\nSoil moisture survey"
    return extractor


@pytest.fixture
def client(
    document_store: DocumentStore,
    indexer: DocumentIndexer,
    retriever: Retriever,
    vector_store: VectorStore,
    page_extractor: AsyncMock,
):
    ingestion = IngestionService(
        document_store=document_store,
        extractor=DocumentExtractor(),
        page_extractor=page_extractor,
        indexer=indexer,
    )
    app.dependency_overrides[get_document_store] = lambda: document_store
    app.dependency_overrides[get_indexer] = lambda: indexer
    app.dependency_overrides[get_retriever] = lambda: retriever
    app.dependency_overrides[get_ingestion_service] = lambda: ingestion
    app.dependency_overrides[get_vector_store] = lambda: vector_store
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def seeded(client: TestClient, document_store: DocumentStore, sample_documents) -> list[StoredDocument]:
    for doc in sample_documents:
        document_store.client.data[doc.key] = doc.to_json()
    return sample_documents


# ============================================
# Authentication
# ============================================


class TestAuth:
    def test_verify_accepts_password(self, client: TestClient) -> None:
        response = client.post("/api/auth/verify", json={"password": "test-password"})

        assert response.status_code == 200
        assert response.json() == {"success": True}

    def test_verify_rejects_wrong_password(self, client: TestClient) -> None:
        response = client.post("/api/auth/verify", json={"password": "nope"})

        assert response.status_code == 401
        assert response.json() == {"success": False}

    def test_mutation_without_token_has_no_effect(
        self, client: TestClient, seeded, document_store: DocumentStore
    ) -> None:
        before = dict(document_store.client.data)

        response = client.post("/api/vectorize", json={"key": "docs:fertilizer_guide"})

        assert response.status_code == 401
        assert response.json() == {"success": False, "message": "Unauthorized"}
        assert document_store.client.data == before

    def test_wrong_token(self, client: TestClient, seeded, document_store: DocumentStore) -> None:
        response = client.request(
            "DELETE",
            "/api/documents",
            json={"key": "docs:fertilizer_guide"},
            headers={"Authorization": "Bearer guess"},
        )

        assert response.status_code == 401
        assert "docs:fertilizer_guide" in document_store.client.data

    def test_reads_need_no_token(self, client: TestClient, seeded) -> None:
        assert client.get("/api/documents").status_code == 200


# ============================================
# Documents
# ============================================


class TestDocuments:
    def test_list(self, client: TestClient, seeded) -> None:
        response = client.get("/api/documents")

        assert response.status_code == 200
        assert sorted(d["key"] for d in response.json()) == [
            "docs:fertilizer_guide",
            "docs:irrigation_report",
        ]
        assert "originalFilename" in response.json()[0]

    def test_search(self, client: TestClient, seeded) -> None:
        response = client.get("/api/documents", params={"search": "NITROGEN"})

        assert [d["key"] for d in response.json()] == ["docs:fertilizer_guide"]

    def test_get_one(self, client: TestClient, seeded) -> None:
        response = client.get("/api/documents/docs:irrigation_report")

        assert response.status_code == 200
        assert response.json()["title"] == "Irrigation Report.xlsx"

    def test_get_missing(self, client: TestClient) -> None:
        response = client.get("/api/documents/docs:nothing")

        assert response.status_code == 404
        assert response.json() == {"success": False, "message": "Document not found"}

    def test_get_corrupt(self, client: TestClient, document_store: DocumentStore) -> None:
        document_store.client.data["docs:broken"] = "{{"

        response = client.get("/api/documents/docs:broken")

        assert response.status_code == 400
        assert response.json()["message"] == "Invalid document format"

    def test_create(self, client: TestClient, auth_headers, document_store) -> None:
        response = client.post(
            "/api/documents",
            json={"fileName": "Field Notes.docx", "text": "Hand typed notes", "category": "notes"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert response.json() == {"success": True, "key": "docs:field_notes"}
        stored = json.loads(document_store.client.data["docs:field_notes"])
        assert stored["title"] == "Field Notes.docx"
        assert stored["originalFilename"] == "Field Notes.docx"
        assert stored["category"] == "notes"
        assert stored["vectorized"] is False

    def test_create_rejects_mistyped_field(
        self, client: TestClient, auth_headers, document_store
    ) -> None:
        response = client.post(
            "/api/documents",
            json={"fileName": "notes.txt", "text": "x", "vectorized": "maybe"},
            headers=auth_headers,
        )

        assert response.status_code == 400
        assert response.json()["success"] is False
        assert response.json()["message"].startswith("Invalid document")
        assert "docs:notes" not in document_store.client.data

    def test_update(self, client: TestClient, auth_headers, seeded) -> None:
        response = client.put(
            "/api/documents",
            json={
                "key": "docs:fertilizer_guide",
                "document": {"title": "Fertilizer Guide (edited)", "text": "Potash too."},
            },
            headers=auth_headers,
        )

        assert response.status_code == 200
        body = client.get("/api/documents/docs:fertilizer_guide").json()
        assert body["title"] == "Fertilizer Guide (edited)"
        assert body["text"] == "Potash too."

    def test_update_requires_title(self, client: TestClient, auth_headers) -> None:
        response = client.put(
            "/api/documents",
            json={"key": "docs:x", "document": {"text": "no title"}},
            headers=auth_headers,
        )

        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_delete_removes_document_and_vectors(
        self, client: TestClient, auth_headers, seeded, vector_store
    ) -> None:
        client.post("/api/vectorize", json={"key": "docs:fertilizer_guide"}, headers=auth_headers)

        response = client.request(
            "DELETE", "/api/documents", json={"key": "docs:fertilizer_guide"}, headers=auth_headers
        )

        assert response.status_code == 200
        assert response.json() == {"success": True, "deleted": True, "vectorsRemoved": 1}
        assert client.get("/api/documents/docs:fertilizer_guide").status_code == 404
        hits = client.post("/api/query", json={"query": "nitrogen fertilizer"}).json()["results"]
        assert all(h["source"] != "docs:fertilizer_guide" for h in hits)


# ============================================
# Vectorize, query, retrieve
# ============================================


class TestVectorize:
    def test_vectorize(self, client: TestClient, auth_headers, seeded) -> None:
        response = client.post(
            "/api/vectorize", json={"key": "docs:irrigation_report"}, headers=auth_headers
        )

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "totalChunks": 1,
            "successful": 1,
            "failed": 0,
            "document": {"key": "docs:irrigation_report", "title": "Irrigation Report.xlsx"},
        }
        stored = client.get("/api/documents/docs:irrigation_report").json()
        assert stored["vectorized"] is True
        assert stored["vectorChunks"] == 1
        assert "vectorizedAt" in stored

    def test_missing_document(self, client: TestClient, auth_headers) -> None:
        response = client.post("/api/vectorize", json={"key": "docs:nothing"}, headers=auth_headers)

        assert response.status_code == 404

    def test_empty_document(self, client: TestClient, auth_headers, document_store) -> None:
        document_store.client.data["docs:blank"] = StoredDocument(title="blank").to_json()

        response = client.post("/api/vectorize", json={"key": "docs:blank"}, headers=auth_headers)

        assert response.status_code == 400

    def test_missing_key(self, client: TestClient, auth_headers) -> None:
        response = client.post("/api/vectorize", json={}, headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["success"] is False


class TestQuery:
    @pytest.fixture
    def indexed(self, client: TestClient, auth_headers, seeded) -> None:
        for doc in seeded:
            client.post("/api/vectorize", json={"key": doc.key}, headers=auth_headers)

    def test_query(self, client: TestClient, indexed) -> None:
        response = client.post("/api/query", json={"query": "drip irrigation water", "topK": 1})

        assert response.status_code == 200
        [result] = response.json()["results"]
        assert result["id"] == "docs:irrigation_report:chunk:0"
        assert result["source"] == "docs:irrigation_report"
        assert result["title"] == "Irrigation Report.xlsx"
        assert result["metadata"]["chunkIndex"] == 0
        assert "Drip irrigation" in result["metadata"]["text"]

    def test_query_get(self, client: TestClient, indexed) -> None:
        response = client.get("/api/query", params={"query": "nitrogen corn", "limit": 2})

        assert response.status_code == 200
        assert len(response.json()["results"]) == 2

    def test_empty_query_rejected(self, client: TestClient) -> None:
        assert client.post("/api/query", json={"query": ""}).status_code == 400

    def test_retrieve(self, client: TestClient, indexed) -> None:
        response = client.post("/api/retrieve", json={"query": "nitrogen fertilizer corn"})

        assert response.status_code == 200
        results = response.json()["results"]
        assert results[0]["key"] == "docs:fertilizer_guide"
        assert results[0]["matchedChunkCount"] == 1
        assert results[0]["document"]["text"].startswith("Nitrogen fertilizer")
        scores = [r["averageScore"] for r in results]
        assert scores == sorted(scores, reverse=True)

    def test_embedding_failure_is_500(
        self, client: TestClient, document_store, vector_store
    ) -> None:
        failing = AsyncMock()
        failing.embed_query.side_effect = EmbeddingError("quota exceeded")
        app.dependency_overrides[get_retriever] = lambda: Retriever(
            vector_store, failing, document_store
        )

        response = client.post("/api/retrieve", json={"query": "anything"})

        assert response.status_code == 500
        assert response.json()["success"] is False
        assert "quota exceeded" in response.json()["message"]


# ============================================
# Upload with progress events
# ============================================


class TestEnrich:
    def test_xlsx_upload(self, client: TestClient, auth_headers, document_store) -> None:
        response = client.post(
            "/api/enrich",
            files={"file": ("Field Methods.xlsx", xlsx_bytes(), XLSX_MIME)},
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        events = sse_events(response.text)
        assert all(e["type"] == "progress" for e in events[:-1])
        assert events[-1] == {
            "type": "complete",
            "result": {
                "success": True,
                "title": "Field Methods.xlsx",
                "originalFilename": "Field Methods.xlsx",
                "key": "docs:field_methods",
            },
        }
        stored = json.loads(document_store.client.data["docs:field_methods"])
        assert "North\tDrip irrigation" in stored["text"]

    def test_pdf_pages_upload(self, client: TestClient, auth_headers, page_extractor) -> None:
        pages = [
            json.dumps({"pageNum": 2, "image": "BBB", "originalFilename": "Survey.pdf"}),
            json.dumps({"pageNum": 1, "image": "AAA", "originalFilename": "Survey.pdf"}),
        ]

        response = client.post("/api/enrich", data={"pages": pages}, headers=auth_headers)

        events = sse_events(response.text)
        assert events[-1]["type"] == "complete"
        assert events[-1]["result"]["key"] == "docs:survey"
        sent = page_extractor.extract_pages.await_args.args[0]
        assert {p.page_num for p in sent} == {1, 2}

    def test_unsupported_file(self, client: TestClient, auth_headers, document_store) -> None:
        response = client.post(
            "/api/enrich",
            files={"file": ("notes.txt", b"plain text", "text/plain")},
            headers=auth_headers,
        )

        events = sse_events(response.text)
        assert events[-1] == {"type": "error", "message": "Unsupported file type: text/plain"}
        assert [e for e in events if e["type"] in ("complete", "error")] == [events[-1]]
        assert document_store.client.data == {}

    def test_nothing_uploaded(self, client: TestClient, auth_headers) -> None:
        response = client.post("/api/enrich", data={}, headers=auth_headers)

        events = sse_events(response.text)
        assert events == [
            {"type": "error", "message": "No file or page data provided in the request."}
        ]

    def test_requires_password(self, client: TestClient, document_store) -> None:
        response = client.post(
            "/api/enrich", files={"file": ("Field Methods.xlsx", xlsx_bytes(), XLSX_MIME)}
        )

        assert response.status_code == 401
        assert document_store.client.data == {}


# ============================================
# Health
# ============================================


class TestHealth:
    def test_live(self, client: TestClient) -> None:
        response = client.get("/health/live")

        assert response.status_code == 200
        assert response.json()["status"] == "alive"

    def test_ready(self, client: TestClient) -> None:
        response = client.get("/health/ready")

        assert response.status_code == 200
        assert response.json()["checks"] == {"redis": "healthy", "qdrant": "healthy"}

    def test_missing_collection_is_not_ready(self, client: TestClient) -> None:
        app.dependency_overrides[get_vector_store] = lambda: VectorStore(
            AsyncQdrantClient(":memory:"), collection_name="absent", embedding_dim=64
        )

        response = client.get("/health/ready")

        assert response.status_code == 503
        body = response.json()
        assert body["success"] is False
        assert body["message"]["checks"]["redis"] == "healthy"
        assert body["message"]["checks"]["qdrant"].startswith("unhealthy")

    def test_redis_down_is_not_ready(self, client: TestClient, document_store) -> None:
        document_store.client.ping = AsyncMock(side_effect=RedisConnectionError("refused"))

        response = client.get("/health/ready")

        assert response.status_code == 503
        assert "refused" in response.json()["message"]["checks"]["redis"]
