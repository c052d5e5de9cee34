"""
Dependency injection for FastAPI.

Provides the singleton RAG engine built from the application settings.
"""

import logging
from typing import Optional

from ..engine import RAGEngine, build_engine
from ..indexing import EmbeddingProvider, SentenceTransformerEmbedder, VectorIndexConfig
from ..retrieval import (
    CompletionProvider,
    GeminiCompletionProvider,
    RetrievalConfig,
    SearchConfig,
    UnconfiguredCompletionProvider,
)
from .config import Settings, get_settings

logger = logging.getLogger(__name__)

# Global singleton instances
_engine: Optional[RAGEngine] = None
_completion_available: bool = False


def _init_completion_provider(settings: Settings) -> CompletionProvider:
    """Initialize the Google Gemini completion provider."""
    global _completion_available

    if settings.gemini_api_key:
        try:
            provider = GeminiCompletionProvider(
                api_key=settings.gemini_api_key,
                model=settings.completion_model,
                timeout=settings.provider_timeout_seconds,
            )
            _completion_available = True
            logger.info(f"Gemini completion provider initialized ({settings.completion_model})")
            return provider
        except Exception as e:
            logger.warning(f"Could not initialize Gemini client: {e}")
            _completion_available = False
            return UnconfiguredCompletionProvider(str(e))

    logger.warning("GEMINI_API_KEY not set - completion calls will fail")
    _completion_available = False
    return UnconfiguredCompletionProvider()


def create_engine(
    settings: Optional[Settings] = None,
    embedding_provider: Optional[EmbeddingProvider] = None,
    completion_provider: Optional[CompletionProvider] = None,
) -> RAGEngine:
    """Build an engine from settings, with optional provider overrides."""
    global _completion_available
    settings = settings or get_settings()

    logger.info("Loading RAG engine...")
    logger.info(f"  Data dir: {settings.data_dir}")
    logger.info(f"  Model: {settings.embedding_model}")

    if embedding_provider is None:
        embedding_provider = SentenceTransformerEmbedder(
            model_name=settings.embedding_model,
            timeout=settings.provider_timeout_seconds,
        )
    if completion_provider is None:
        completion_provider = _init_completion_provider(settings)
    else:
        _completion_available = True

    config = RetrievalConfig(
        cache_enabled=settings.cache_enabled,
        faq_enabled=settings.faq_enabled,
        search=SearchConfig(
            relevance_floor=settings.relevance_floor,
            context_window=settings.context_window,
        ),
    )
    return build_engine(
        embedding_provider=embedding_provider,
        completion_provider=completion_provider,
        data_dir=settings.data_dir,
        config=config,
        vector_config=VectorIndexConfig(use_graph=settings.approximate_vectors),
        stemmer_language=settings.stemmer_language,
    )


def set_engine(engine: Optional[RAGEngine]):
    """Install (or clear) the process-wide engine."""
    global _engine, _completion_available
    _engine = engine
    if engine is not None:
        _completion_available = not isinstance(
            engine.orchestrator.completion_provider, UnconfiguredCompletionProvider
        )


def get_engine() -> RAGEngine:
    """
    Get the singleton RAG engine instance.

    This is the main dependency for API endpoints.
    Stores are loaded once on first call.
    """
    global _engine

    if _engine is None:
        _engine = create_engine()

    return _engine


def is_completion_available() -> bool:
    """Check if a completion provider is configured."""
    return _completion_available


def startup_load():
    """
    Pre-load the RAG engine on server startup.

    Call this in FastAPI's lifespan to ensure stores are loaded
    before handling requests.
    """
    logger.info("Pre-loading RAG engine on startup...")
    get_engine()
    logger.info("Startup complete")


async def shutdown_flush():
    """Flush every store of the engine, if one was created."""
    if _engine is not None:
        logger.info("Flushing stores...")
        await _engine.flush()
