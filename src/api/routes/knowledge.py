"""Knowledge base endpoints: documents, vectorization and search."""

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from src.api.deps import Documents, Indexer, Search
from src.rag.document_store import DocumentParseError, StoreIOError
from src.rag.embedder import EmbeddingError
from src.rag.indexer import DocumentNotFoundError, EmptyDocumentError
from src.rag.models import StoredDocument
from src.rag.vector_store import IndexQueryError

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================
# Request/Response Models
# ============================================


class CamelModel(BaseModel):
    """Models exchanged with the UI use camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateDocumentRequest(CamelModel):
    """Store a document under a key derived from its file name."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    file_name: str = Field(..., min_length=1)
    title: str | None = None
    text: str = ""


class UpdateDocumentRequest(CamelModel):
    """Replace the document stored under key."""

    key: str = Field(..., min_length=1)
    document: dict[str, Any]


class KeyRequest(CamelModel):
    key: str = Field(..., min_length=1)


class StoreResponse(CamelModel):
    success: bool = True
    key: str


class DeleteResponse(CamelModel):
    success: bool = True
    deleted: bool
    vectors_removed: int | None


class DocumentRef(CamelModel):
    key: str
    title: str


class VectorizeResponse(CamelModel):
    """Summary of a vectorize run; partial failures are still a success."""

    success: bool = True
    total_chunks: int
    successful: int
    failed: int
    document: DocumentRef


class QueryRequest(CamelModel):
    """Semantic search request."""

    query: str = Field(..., min_length=1, max_length=10000)
    top_k: int = Field(5, ge=1, le=50)


class QueryResult(CamelModel):
    """Single chunk hit."""

    id: str
    score: float
    title: str
    source: str | None
    metadata: dict


class QueryResponse(CamelModel):
    success: bool = True
    results: list[QueryResult]


class RetrieveResult(CamelModel):
    """A source document ranked by its matching chunks."""

    key: str
    title: str
    average_score: float
    matched_chunk_count: int
    document: dict


class RetrieveResponse(CamelModel):
    success: bool = True
    results: list[RetrieveResult]


def _serialize(document: StoredDocument) -> dict:
    return document.model_dump(by_alias=True, mode="json", exclude_none=True)


def _store_error(e: StoreIOError) -> HTTPException:
    if isinstance(e, DocumentParseError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid document format")
    logger.error(f"[Knowledge] Document store failure: {e}")
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Document store failure: {e!s}"
    )


# ============================================
# Document Endpoints
# ============================================


@router.get("/documents")
async def list_documents(
    documents: Documents,
    search: str | None = Query(None, description="Case-insensitive text filter"),
) -> list[dict]:
    """List stored documents, optionally filtered by a search term."""
    try:
        docs = await documents.search(search) if search else await documents.get_all()
    except StoreIOError as e:
        raise _store_error(e) from None
    return [_serialize(doc) for doc in docs]


@router.get("/documents/{key}")
async def get_document(key: str, documents: Documents) -> dict:
    """Get a single document by key."""
    try:
        doc = await documents.get(key)
    except StoreIOError as e:
        raise _store_error(e) from None

    if doc is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found")
    return _serialize(doc)


@router.post("/documents", response_model=StoreResponse)
async def create_document(body: CreateDocumentRequest, documents: Documents):
    """Store a document under a key derived from its file name."""
    key = documents.key_for(body.file_name)
    try:
        doc = StoredDocument.model_validate(
            {
                **(body.model_extra or {}),
                "title": body.title or body.file_name,
                "text": body.text,
                "originalFilename": body.file_name,
                "key": key,
            }
        )
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid document: {e!s}"
        ) from None

    try:
        await documents.set(key, doc)
    except StoreIOError as e:
        raise _store_error(e) from None

    return StoreResponse(key=key)


@router.put("/documents", response_model=StoreResponse)
async def update_document(body: UpdateDocumentRequest, documents: Documents):
    """Replace a stored document (manual edit). Last write wins."""
    try:
        doc = StoredDocument.model_validate(body.document)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid document: {e!s}"
        ) from None

    doc.key = body.key
    try:
        await documents.set(body.key, doc)
    except StoreIOError as e:
        raise _store_error(e) from None

    return StoreResponse(key=body.key)


@router.delete("/documents", response_model=DeleteResponse)
async def delete_document(body: KeyRequest, indexer: Indexer):
    """Delete a document and the vectors of its chunks."""
    try:
        result = await indexer.delete_document(body.key)
    except StoreIOError as e:
        raise _store_error(e) from None

    return DeleteResponse(deleted=result.deleted, vectors_removed=result.vectors_removed)


# ============================================
# Vectorization
# ============================================


@router.post("/vectorize", response_model=VectorizeResponse)
async def vectorize_document(body: KeyRequest, indexer: Indexer):
    """Chunk, embed and index a stored document."""
    try:
        summary = await indexer.vectorize(body.key)
    except DocumentNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Document not found"
        ) from None
    except EmptyDocumentError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Document has no text content"
        ) from None
    except StoreIOError as e:
        raise _store_error(e) from None

    return VectorizeResponse(
        total_chunks=summary.total_chunks,
        successful=summary.successful,
        failed=summary.failed,
        document=DocumentRef(key=summary.key, title=summary.title),
    )


# ============================================
# Query Endpoints
# ============================================


async def _search(retriever, query: str, top_k: int) -> QueryResponse:
    try:
        matches = await retriever.search(query, top_k)
    except (EmbeddingError, IndexQueryError) as e:
        logger.error(f"[Knowledge] Vector search failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Search failed: {e!s}"
        ) from None

    return QueryResponse(
        results=[
            QueryResult(
                id=m.id,
                score=m.score,
                title=m.title,
                source=m.source,
                metadata=m.metadata,
            )
            for m in matches
        ]
    )


@router.post("/query", response_model=QueryResponse)
async def query_chunks(body: QueryRequest, retriever: Search):
    """Return the chunks most similar to the query."""
    return await _search(retriever, body.query, body.top_k)


@router.get("/query", response_model=QueryResponse)
async def query_chunks_get(
    retriever: Search,
    query: str = Query(..., min_length=1, max_length=10000),
    limit: int = Query(5, ge=1, le=50),
):
    """GET form of /query for simple clients."""
    return await _search(retriever, query, limit)


@router.post("/retrieve", response_model=RetrieveResponse)
async def retrieve_documents(body: QueryRequest, retriever: Search):
    """Return whole source documents ranked by average chunk score."""
    try:
        ranked = await retriever.retrieve(body.query, body.top_k)
    except (EmbeddingError, IndexQueryError) as e:
        logger.error(f"[Knowledge] Retrieval failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Retrieval failed: {e!s}"
        ) from None

    return RetrieveResponse(
        results=[
            RetrieveResult(
                key=r.key,
                title=r.document.title,
                average_score=r.average_score,
                matched_chunk_count=r.matched_chunk_count,
                document=_serialize(r.document),
            )
            for r in ranked
        ]
    )
