"""RAG (Retrieval-Augmented Generation) package.

Components:
- DocumentExtractor / PageImageExtractor: Text extraction from XLSX, DOCX and page images
- SlidingWindowChunker: Overlapping fixed-size chunking
- Embedder: OpenAI embedding service
- VectorStore: Qdrant client for chunk vectors
- DocumentStore: Redis store for extracted documents
- DocumentIndexer: Vectorization pipeline
- Retriever: Semantic search regrouped into ranked documents
- IngestionService: Upload -> extraction -> storage
"""

from src.rag.chunking import Chunk, SlidingWindowChunker, chunk_text
from src.rag.document_store import (
    DocumentStore,
    StoreIOError,
    derive_key,
    get_document_store,
)
from src.rag.embedder import Embedder, EmbeddingError, get_embedder
from src.rag.extractors import (
    DocumentExtractor,
    ExtractionError,
    UnsupportedFormatError,
    get_extractor,
)
from src.rag.indexer import DocumentIndexer, IndexingResult, VectorizeSummary, get_indexer
from src.rag.ingestion import IngestionResult, IngestionService, get_ingestion_service
from src.rag.models import RankedDocument, StoredDocument, VectorMatch
from src.rag.page_extractor import PageImage, PageImageExtractor, get_page_extractor
from src.rag.retriever import Retriever, get_retriever
from src.rag.vector_store import IndexQueryError, VectorStore, get_vector_store

__all__ = [
    "Chunk",
    "DocumentExtractor",
    "DocumentIndexer",
    "DocumentStore",
    "Embedder",
    "EmbeddingError",
    "ExtractionError",
    "IndexQueryError",
    "IndexingResult",
    "IngestionResult",
    "IngestionService",
    "PageImage",
    "PageImageExtractor",
    "RankedDocument",
    "Retriever",
    "SlidingWindowChunker",
    "StoreIOError",
    "StoredDocument",
    "UnsupportedFormatError",
    "VectorMatch",
    "VectorStore",
    "VectorizeSummary",
    "chunk_text",
    "derive_key",
    "get_document_store",
    "get_embedder",
    "get_extractor",
    "get_indexer",
    "get_ingestion_service",
    "get_page_extractor",
    "get_retriever",
    "get_vector_store",
]
