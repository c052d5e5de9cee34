"""
Data models for the hybrid retrieval engine.

This package contains:
- document: Documents, origins, chunks and chunk types
- search: Search results and assembled context
"""

from .document import (
    OriginKind,
    ChunkType,
    Chunk,
    Document,
    HtmlSection,
    WebPage,
    utc_now_iso,
)

from .search import SearchResult, ContextBundle

__all__ = [
    # Documents
    "OriginKind",
    "ChunkType",
    "Chunk",
    "Document",
    "HtmlSection",
    "WebPage",
    "utc_now_iso",
    # Search models
    "SearchResult",
    "ContextBundle",
]
