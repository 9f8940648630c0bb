"""FastAPI dependency injection.

Provides the pipeline components to API routes. Tests replace them through
``app.dependency_overrides``.
"""

from typing import Annotated

from fastapi import Depends

from src.core.config import Settings, get_settings
from src.rag.document_store import DocumentStore, get_document_store
from src.rag.indexer import DocumentIndexer, get_indexer
from src.rag.ingestion import IngestionService, get_ingestion_service
from src.rag.retriever import Retriever, get_retriever
from src.rag.vector_store import VectorStore, get_vector_store

# Type aliases for cleaner signatures
AppSettings = Annotated[Settings, Depends(get_settings)]
Documents = Annotated[DocumentStore, Depends(get_document_store)]
Indexer = Annotated[DocumentIndexer, Depends(get_indexer)]
Ingestion = Annotated[IngestionService, Depends(get_ingestion_service)]
Search = Annotated[Retriever, Depends(get_retriever)]
VectorIndex = Annotated[VectorStore, Depends(get_vector_store)]
