"""Data model shared by the ingestion and retrieval pipeline.

StoredDocument is persisted as JSON with camelCase keys, which is the shape
the management UI reads and writes.
"""

from dataclasses import dataclass, field
from datetime import datetime

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class StoredDocument(BaseModel):
    """Extracted text of one uploaded file plus its vectorization state."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    title: str
    text: str = ""
    original_filename: str | None = None
    # Older records carry the key under "redisKey"
    key: str | None = Field(default=None, validation_alias=AliasChoices("key", "redisKey"))
    vectorized: bool = False
    vectorized_at: datetime | None = None
    vector_chunks: int = 0

    def to_json(self) -> str:
        """Serialize for storage."""
        return self.model_dump_json(by_alias=True, exclude_none=True)


@dataclass
class VectorMatch:
    """A chunk returned by a similarity query."""

    id: str
    score: float
    metadata: dict = field(default_factory=dict)

    @property
    def source(self) -> str | None:
        return self.metadata.get("source")

    @property
    def title(self) -> str:
        return self.metadata.get("title", "")

    @property
    def text(self) -> str:
        return self.metadata.get("text", "")


@dataclass
class RankedDocument:
    """A source document reconstructed from its matching chunks."""

    key: str
    document: StoredDocument
    average_score: float
    matched_chunk_count: int
