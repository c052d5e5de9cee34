"""
Server configuration and environment settings.
"""

from pathlib import Path
from functools import lru_cache
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Server settings
    app_name: str = "Hybrid RAG API"
    app_version: str = "1.0.0"
    debug: bool = False

    # CORS settings
    cors_origins: list[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Storage and model settings
    data_dir: Path = Path("./data")
    embedding_model: str = "sentence-transformers/paraphrase-multilingual-MiniLM-L12-v2"

    # LLM settings
    gemini_api_key: str | None = None
    completion_model: str = "gemini-2.5-flash-lite"
    provider_timeout_seconds: float = 20.0

    # Retrieval settings
    cache_enabled: bool = True
    faq_enabled: bool = True
    relevance_floor: float = 0.5
    context_window: int = 1
    approximate_vectors: bool = True
    stemmer_language: str = "spanish"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
