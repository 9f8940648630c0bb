"""API route modules."""

from . import auth, health, ingest, knowledge

__all__ = ["auth", "health", "ingest", "knowledge"]
