"""Prometheus metrics for the ingestion and retrieval pipeline.

Exposed at /metrics by the API app.
"""

from prometheus_client import Counter, Histogram

DOCUMENTS_INGESTED = Counter(
    "kb_documents_ingested_total",
    "Uploaded files processed by the ingestion pipeline",
    ["source_type", "status"],  # source_type: xlsx, docx, pages
)

DOCUMENTS_VECTORIZED = Counter(
    "kb_documents_vectorized_total",
    "Vectorize operations by outcome",
    ["status"],
)

CHUNKS_EMBEDDED = Counter(
    "kb_chunks_embedded_total",
    "Document chunks embedded and upserted",
    ["status"],
)

RETRIEVAL_LATENCY = Histogram(
    "kb_retrieval_duration_seconds",
    "Query embedding plus vector search latency",
    ["operation"],  # operation: search, retrieve
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0],
)

INGESTION_LATENCY = Histogram(
    "kb_ingestion_duration_seconds",
    "End-to-end ingestion latency",
    ["source_type"],
    buckets=[0.5, 1.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0],
)
