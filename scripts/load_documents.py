#!/usr/bin/env python3
"""Load every supported file in a directory into the knowledge base.

Run with: python scripts/load_documents.py path/to/files [--vectorize]
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.core.logging import setup_logging
from src.rag.document_store import StoreIOError
from src.rag.extractors import ExtractionError
from src.rag.indexer import (
    DocumentIndexer,
    DocumentNotFoundError,
    EmptyDocumentError,
    get_indexer,
)
from src.rag.ingestion import IngestionService, IngestionTimeoutError, get_ingestion_service
from src.rag.vector_store import VectorStoreError

# Failures that only affect the current file
FILE_ERRORS = (
    ExtractionError,
    IngestionTimeoutError,
    StoreIOError,
    DocumentNotFoundError,
    EmptyDocumentError,
    VectorStoreError,
)


async def load_documents(
    directory: Path,
    vectorize: bool,
    ingestion: IngestionService | None = None,
    indexer: DocumentIndexer | None = None,
) -> int:
    """Ingest each file in directory. Returns the number of failures."""
    if ingestion is None:
        ingestion = get_ingestion_service()
    if indexer is None:
        indexer = get_indexer()
    failures = 0

    for path in sorted(p for p in directory.iterdir() if p.is_file()):
        if not ingestion.extractor.supports(None, path.name):
            print(f"- Skipping {path.name} (unsupported type)")
            continue

        try:
            result = await ingestion.ingest_file(path.read_bytes(), path.name)
            print(f"✓ Stored {path.name} as {result.key}")

            summary = result.vectorize_summary
            if vectorize and summary is None:
                summary = await indexer.vectorize(result.key)
        except FILE_ERRORS as e:
            failures += 1
            print(f"✗ {path.name}: {e}")
            continue

        if summary is not None:
            print(f"  vectorized {summary.successful}/{summary.total_chunks} chunks")

    return failures


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("directory", type=Path)
    parser.add_argument("--vectorize", action="store_true", help="Embed each document after storing")
    args = parser.parse_args()

    if not args.directory.is_dir():
        parser.error(f"{args.directory} is not a directory")

    setup_logging()
    failures = asyncio.run(load_documents(args.directory, args.vectorize))
    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())
