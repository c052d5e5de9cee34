"""
Hybrid RAG Engine - Tiered retrieval and semantic caching

Answers questions over an uploaded document corpus by going through
cheaper tiers before paying for a completion call.

Tiers:
    - Response cache: answers to similar questions over the same corpus
    - FAQ cache: curated answers
    - Lexical: hierarchical (title-first) BM25 search with adjacent chunks
    - Semantic: vector passages and whole-document heuristics

Packages:
    - models: Documents, chunks and search results
    - parsers: Generic and structural chunkers
    - indexing: Lexical index, vector index, embeddings and ingestion
    - caching: Embedding, FAQ and response caches
    - retrieval: Hierarchical search, completion providers and the orchestrator
    - server: FastAPI application
"""

__version__ = "1.0.0"
__author__ = "Hybrid RAG Engine"

# Core models
from .models import (
    Chunk,
    ChunkType,
    ContextBundle,
    Document,
    OriginKind,
    SearchResult,
)

# Parsers
from .parsers import StructuredChunker, TextChunker, chunk_text

# Indexing
from .indexing import (
    CachingEmbedder,
    ChunkVectorStore,
    DocumentIngestor,
    DocumentRegistry,
    EmbeddingProvider,
    LexicalIndex,
    SentenceTransformerEmbedder,
    VectorIndex,
    VectorIndexConfig,
)

# Caching
from .caching import EmbeddingCache, FAQCache, ResponseCache, compute_corpus_hash

# Retrieval
from .retrieval import (
    AnswerResult,
    CompletionProvider,
    GeminiCompletionProvider,
    HierarchicalSearcher,
    RetrievalConfig,
    RetrievalOrchestrator,
    Route,
    SearchConfig,
)

from .engine import RAGEngine, build_engine
from .errors import CompletionError, DimensionMismatchError, EmbeddingError, RAGError

__all__ = [
    # Models
    "Chunk",
    "ChunkType",
    "ContextBundle",
    "Document",
    "OriginKind",
    "SearchResult",
    # Parsers
    "StructuredChunker",
    "TextChunker",
    "chunk_text",
    # Indexing
    "CachingEmbedder",
    "ChunkVectorStore",
    "DocumentIngestor",
    "DocumentRegistry",
    "EmbeddingProvider",
    "LexicalIndex",
    "SentenceTransformerEmbedder",
    "VectorIndex",
    "VectorIndexConfig",
    # Caching
    "EmbeddingCache",
    "FAQCache",
    "ResponseCache",
    "compute_corpus_hash",
    # Retrieval
    "AnswerResult",
    "CompletionProvider",
    "GeminiCompletionProvider",
    "HierarchicalSearcher",
    "RetrievalConfig",
    "RetrievalOrchestrator",
    "Route",
    "SearchConfig",
    # Engine
    "RAGEngine",
    "build_engine",
    # Errors
    "CompletionError",
    "DimensionMismatchError",
    "EmbeddingError",
    "RAGError",
]
