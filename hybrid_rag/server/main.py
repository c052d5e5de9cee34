"""
FastAPI Application Entry Point.

Hybrid RAG API - Tiered retrieval with semantic caching

Run with:
    uvicorn hybrid_rag.server.main:app --host 0.0.0.0 --port 8000

Or for development:
    uvicorn hybrid_rag.server.main:app --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import get_settings
from .api import router
from .dependencies import shutdown_flush, startup_load

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Loads every store on startup and flushes them on shutdown so that
    background cache writes are not lost.
    """
    logger.info("Starting Hybrid RAG API Server...")

    startup_load()

    yield

    logger.info("Shutting down Hybrid RAG API Server...")
    await shutdown_flush()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""

    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="""
## Hybrid RAG API

Question answering over an uploaded document corpus.

### Features

- **Semantic caches**: embedding reuse, curated FAQs and generated answers
  keyed by question meaning and corpus version

- **Hierarchical search**: BM25 ranking that puts matching titles and
  section headers ahead of plain content

- **Semantic fallback**: approximate nearest-neighbour search over chunk
  embeddings plus whole-document heuristics

- **LLM Integration**: Google Gemini for answer generation
""",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE"],
        allow_headers=["*"],
    )

    # Include API routes
    app.include_router(router, prefix="/rag", tags=["RAG"])

    # Root endpoint
    @app.get("/", tags=["Root"])
    async def root():
        """Root endpoint with API information."""
        return {
            "name": settings.app_name,
            "version": settings.app_version,
            "docs": "/docs",
            "health": "/rag/health",
            "ask": "/rag/ask",
            "stats": "/rag/stats",
        }

    return app


# Create the app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "hybrid_rag.server.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
