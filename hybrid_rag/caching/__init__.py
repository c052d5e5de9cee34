"""
Semantic caches of the retrieval engine.

This package contains:
- base: CacheEntry, shared eviction/statistics, text and vector similarity
- embedding_cache: question text -> embedding
- faq_cache: question embedding -> curated answer
- response_cache: (question embedding, corpus hash) -> generated answer
"""

from .base import CacheEntry, SemanticCache, cosine_similarity, normalize_question
from .embedding_cache import EmbeddingCache, EmbeddingCacheConfig, text_similarity
from .faq_cache import FAQCache, FAQCacheConfig, FAQMatch
from .response_cache import (
    CachedResponse,
    ResponseCache,
    ResponseCacheConfig,
    compute_corpus_hash,
    NO_DOCUMENTS_HASH,
)

__all__ = [
    # Shared
    "CacheEntry",
    "SemanticCache",
    "cosine_similarity",
    "normalize_question",
    # Embedding cache
    "EmbeddingCache",
    "EmbeddingCacheConfig",
    "text_similarity",
    # FAQ cache
    "FAQCache",
    "FAQCacheConfig",
    "FAQMatch",
    # Response cache
    "CachedResponse",
    "ResponseCache",
    "ResponseCacheConfig",
    "compute_corpus_hash",
    "NO_DOCUMENTS_HASH",
]
