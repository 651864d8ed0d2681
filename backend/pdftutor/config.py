"""
Application configuration using Pydantic Settings.
All config is loaded from environment variables / .env file.
"""

from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    # ── App ──────────────────────────────────────────────
    APP_NAME: str = "pdftutor"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: str = "http://localhost:3000"  # comma-separated

    # ── Supabase ─────────────────────────────────────────
    SUPABASE_URL: str
    SUPABASE_KEY: str  # anon/public key
    SUPABASE_SERVICE_KEY: str = ""  # service_role key (ingestion writes bypass RLS)
    STORAGE_BUCKET: str = "pdfs"

    # ── Security ─────────────────────────────────────────
    JWT_SECRET_KEY: str
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRY_MINUTES: int = 1440

    # ── LLM (Provider-Agnostic) ──────────────────────────
    LLM_PROVIDER: str = "gemini"  # gemini | openai | groq
    LLM_MODEL: str = "gemini-2.5-flash"
    QUIZ_MODEL: str = ""  # empty = reuse LLM_MODEL
    LLM_API_KEY: str = ""
    LLM_TEMPERATURE: float = 0.7

    # ── Embedding ────────────────────────────────────────
    EMBEDDING_PROVIDER: str = "gemini"  # gemini | openai
    EMBEDDING_MODEL: str = "gemini-embedding-001"
    EMBEDDING_DIMENSIONS: int = 768  # pgvector column width
    EMBEDDING_NATIVE_DIMENSIONS: int = 3072  # model output width, 0 = unchecked
    EMBEDDING_TIMEOUT_SECONDS: float = 30.0  # per chunk
    EMBEDDING_BATCH_TIMEOUT_SECONDS: float = 120.0  # per batch
    EMBEDDING_BATCH_SIZE: int = 32
    INSERT_SLICE_SIZE: int = 50

    # ── Chunking (~4 chars/token => ~2000 tokens) ────────
    CHUNK_MAX_CHARS: int = 8000
    CHUNK_OVERLAP_CHARS: int = 800

    # ── Retrieval / Prompting ────────────────────────────
    RETRIEVAL_TOP_K: int = 5
    RETRIEVAL_PROBES: int = 10
    PROMPT_MAX_CHUNKS: int = 5
    CITATION_EXCERPT_CHARS: int = 280

    # ── Upload ───────────────────────────────────────────
    MAX_UPLOAD_MB: int = 50

    # ── Rate limit (best-effort, per process) ────────────
    CHAT_MIN_INTERVAL_MS: int = 500
    RATE_LIMIT_MAX_CALLERS: int = 10_000

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
    }

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]


@lru_cache
def get_settings() -> Settings:
    """Cached settings instance (singleton)."""
    return Settings()
