"""
Indexing components for the hybrid retrieval engine.

This package contains:
- text: Normalization, stop-words and stemming
- lexical: Per-document BM25 lexical index with pooled statistics
- vector_index: Approximate nearest-neighbour index (proximity graph)
- vector_store: Chunk-level vector store with document removal
- embedder: Embedding providers and the caching front
- pipeline: Document registry and ingestion
"""

from .text import TextAnalyzer, normalize_text, strip_diacritics

from .lexical import BM25Config, DocumentLexicalIndex, LexicalEntry, LexicalIndex

from .vector_index import VectorHit, VectorIndex, VectorIndexConfig

from .vector_store import ChunkVectorStore

from .embedder import CachingEmbedder, EmbeddingProvider, SentenceTransformerEmbedder

from .pipeline import DocumentIngestor, DocumentRegistry, IngestReport

__all__ = [
    # Text analysis
    "TextAnalyzer",
    "normalize_text",
    "strip_diacritics",
    # Lexical index
    "BM25Config",
    "DocumentLexicalIndex",
    "LexicalEntry",
    "LexicalIndex",
    # Vector index
    "VectorHit",
    "VectorIndex",
    "VectorIndexConfig",
    "ChunkVectorStore",
    # Embeddings
    "CachingEmbedder",
    "EmbeddingProvider",
    "SentenceTransformerEmbedder",
    # Ingestion
    "DocumentIngestor",
    "DocumentRegistry",
    "IngestReport",
]
