"""Redis-backed store for extracted documents.

Documents are JSON blobs keyed by a namespaced, sanitized filename
(e.g. ``docs:annual_report``). Writes are last-writer-wins; two filenames
that sanitize to the same key overwrite each other.
"""

import logging
import re

import redis.asyncio as redis
from pydantic import ValidationError
from redis.exceptions import RedisError

from src.core.config import get_settings
from src.rag.models import StoredDocument

logger = logging.getLogger(__name__)

DEFAULT_PREFIX = "docs:"

_NON_ALNUM = re.compile(r"[^A-Za-z0-9]")


class StoreIOError(Exception):
    """Raised when the key-value store cannot be read or written."""


class DocumentParseError(StoreIOError):
    """Raised when a stored record is not a valid document."""


def sanitize_filename(filename: str) -> str:
    """Drop the extension, replace non-alphanumerics with '_' and lowercase."""
    dot = filename.rfind(".")
    base = filename[:dot] if dot > 0 else filename
    return _NON_ALNUM.sub("_", base).lower()


def derive_key(filename: str, prefix: str = DEFAULT_PREFIX) -> str:
    """Build the storage key for an uploaded file name."""
    return f"{prefix}{sanitize_filename(filename)}"


class DocumentStore:
    """Async get/set/delete of StoredDocuments in Redis."""

    SCAN_COUNT = 500

    def __init__(self, client: redis.Redis, prefix: str = DEFAULT_PREFIX):
        self.client = client
        self.prefix = prefix

    def key_for(self, filename: str) -> str:
        return derive_key(filename, self.prefix)

    async def ping(self) -> bool:
        try:
            return bool(await self.client.ping())
        except RedisError as e:
            raise StoreIOError(f"Redis ping failed: {e}") from e

    async def get(self, key: str) -> StoredDocument | None:
        """Fetch a document, or None if the key does not exist.

        Raises:
            StoreIOError: Redis is unreachable
            DocumentParseError: The stored value is not a document
        """
        try:
            raw = await self.client.get(key)
        except RedisError as e:
            raise StoreIOError(f"Failed to read {key}: {e}") from e

        if raw is None:
            return None

        try:
            document = StoredDocument.model_validate_json(raw)
        except ValidationError as e:
            raise DocumentParseError(f"Invalid document format for {key}: {e}") from e

        if document.key is None:
            document.key = key
        return document

    async def set(self, key: str, document: StoredDocument) -> None:
        """Store a document under key, overwriting any previous value."""
        try:
            await self.client.set(key, document.to_json())
        except RedisError as e:
            raise StoreIOError(f"Failed to write {key}: {e}") from e

    async def delete(self, key: str) -> bool:
        """Delete a document. Returns True if something was removed."""
        try:
            removed = await self.client.delete(key)
        except RedisError as e:
            raise StoreIOError(f"Failed to delete {key}: {e}") from e
        return bool(removed)

    async def list_keys(self, prefix: str | None = None) -> list[str]:
        """List keys starting with prefix (defaults to the document namespace)."""
        pattern = f"{prefix if prefix is not None else self.prefix}*"
        keys = []
        try:
            async for key in self.client.scan_iter(match=pattern, count=self.SCAN_COUNT):
                keys.append(key.decode() if isinstance(key, bytes) else key)
        except RedisError as e:
            raise StoreIOError(f"Failed to list keys for {pattern}: {e}") from e
        return sorted(keys)

    async def get_all(self, prefix: str | None = None) -> list[StoredDocument]:
        """Load every document in the namespace.

        Records that fail to parse are skipped with a warning.
        """
        documents = []
        for key in await self.list_keys(prefix):
            try:
                document = await self.get(key)
            except DocumentParseError as e:
                logger.warning(f"[DocumentStore] Skipping {key}: {e}")
                continue
            if document is not None:
                documents.append(document)
        return documents

    async def search(self, term: str, prefix: str | None = None) -> list[StoredDocument]:
        """Case-insensitive substring match over title and text."""
        documents = await self.get_all(prefix)
        needle = term.strip().lower()
        if not needle:
            return documents
        return [d for d in documents if needle in f"{d.title} {d.text}".lower()]


# Singleton instance
_document_store: DocumentStore | None = None


def get_document_store() -> DocumentStore:
    """Get or create the global DocumentStore instance."""
    global _document_store

    if _document_store is None:
        settings = get_settings()
        client = redis.from_url(settings.get_redis_url, decode_responses=True)
        _document_store = DocumentStore(client, prefix=settings.document_key_prefix)

    return _document_store
