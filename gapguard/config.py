"""Typed settings configuration - single source of truth."""

from functools import lru_cache

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database
    database_url: str | None = None

    # Cache
    redis_url: str | None = None  # Redis >= 7.0 (EXPIRE NX); unset uses the in-memory limiter

    # AI providers
    openai_api_key: SecretStr | None = None
    openai_model: str = "gpt-4o-mini"
    gemini_api_key: SecretStr | None = None
    gemini_embedding_model: str = "text-embedding-004"

    # File fetch for extraction
    file_fetch_timeout_seconds: float = 30.0

    # Embedding backend (generic HTTP contract); empty means "not configured"
    embedding_url: str = ""
    embedding_dim: int = 768

    # Embedding call policy
    embedding_timeout_ms: int = 10000
    embedding_max_attempts: int = 3
    embedding_backoff_base_ms: int = 1000
    embedding_backoff_max_ms: int = 8000
    retry_jitter_min_ms: int = 0
    retry_jitter_max_ms: int = 250

    # Upload limits (bytes)
    max_file_size_docx: int = 10 * 1024 * 1024
    max_file_size_pdf_image: int = 20 * 1024 * 1024
    min_text_length: int = 10

    # Chunking
    chunk_size: int = 1000
    chunk_overlap: int = 100
    min_chunk_chars: int = 20

    # Rate limiting (ingestion requests per window)
    ingest_max_requests: int = 100
    ingest_window_seconds: int = 24 * 3600

    # Retrieval
    retrieval_top_k: int = 5
    retrieval_min_similarity: float = 0.5

    # Gap engine
    expiring_soon_days: int = 30

    # Rule suggestions
    max_rule_suggestions: int = 5

    # Stub identity used when a request carries no bearer token
    dev_user_id: str = "dev-user"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
