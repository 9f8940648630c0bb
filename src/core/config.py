"""Application configuration using Pydantic Settings.

All configuration is loaded from environment variables (or a local .env file).
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    # ============================================
    # Application
    # ============================================
    app_name: str = "Knowledge Base Chatbot"
    app_version: str = "0.1.0"
    environment: str = "development"
    debug: bool = False

    # API Server
    api_prefix: str = "/api"
    allowed_origins: list[str] = ["http://localhost:3000"]

    # ============================================
    # Shared password (bearer token for mutating requests)
    # ============================================
    enrich_password: str = Field(
        default="", description="Shared secret expected as 'Authorization: Bearer <password>'"
    )

    # ============================================
    # Redis (document store)
    # ============================================
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_auth: str = ""
    redis_db: int = 0

    # Explicit REDIS_URL takes precedence if set
    redis_url: str | None = None

    document_key_prefix: str = "docs:"

    @property
    def get_redis_url(self) -> str:
        """Get Redis URL - explicit or constructed from components."""
        if self.redis_url:
            return self.redis_url
        auth = f":{self.redis_auth}@" if self.redis_auth else ""
        return f"redis://{auth}{self.redis_host}:{self.redis_port}/{self.redis_db}"

    # ============================================
    # Qdrant (Vector Database)
    # ============================================
    qdrant_url: str = "http://localhost:6333"
    qdrant_collection: str = "documents"
    qdrant_api_key: str | None = None
    qdrant_timeout: int = 60

    # ============================================
    # OpenAI
    # ============================================
    openai_api_key: str = ""
    openai_base_url: str | None = None
    openai_timeout: float = 120.0

    # ============================================
    # Embeddings
    # ============================================
    embedding_model: str = Field(
        default="text-embedding-3-small", description="OpenAI embedding model name"
    )
    embedding_dimensions: int = Field(
        default=1536, description="Embedding vector dimensions (must match model)"
    )

    # ============================================
    # Extraction
    # ============================================
    vision_model: str = "gpt-4o"
    vision_batch_size: int = Field(default=20, ge=1)
    ingestion_timeout_seconds: float = 300.0
    auto_vectorize: bool = False

    # ============================================
    # Chunking & retrieval
    # ============================================
    chunk_size: int = Field(default=2000, gt=0)
    chunk_overlap_percent: int = Field(default=40, ge=0, lt=100)
    retrieval_top_k: int = Field(default=5, ge=1)

    # ============================================
    # Logging
    # ============================================
    log_level: str = "INFO"
    log_format: str = "console"  # "json" or "console"

    @field_validator("document_key_prefix")
    @classmethod
    def ensure_prefix_separator(cls, v: str) -> str:
        """Namespace prefixes always end with ':'."""
        v = v.strip()
        if v and not v.endswith(":"):
            v += ":"
        return v


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
