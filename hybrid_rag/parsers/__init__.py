"""
Chunkers for extracted document text.

This package contains:
- chunker: Line-oriented chunking for generic text (titles, tables, content)
- structured: Structure-aware chunking for HTML, spreadsheets and web pages
"""

from typing import Optional

from ..models import Chunk, Document
from .chunker import (
    ChunkerConfig,
    TextChunker,
    chunk_text,
    classify_line,
    count_tokens,
    is_table_line,
    is_title_line,
)
from .structured import (
    StructuredChunker,
    StructuredChunkerConfig,
    extract_html_sections,
    split_long_text,
)


def chunk_for_embedding(
    document: Document,
    text_chunker: Optional[TextChunker] = None,
    structured_chunker: Optional[StructuredChunker] = None,
) -> list[Chunk]:
    """Structural chunks when the origin has structure, generic chunks otherwise."""
    structured_chunker = structured_chunker or StructuredChunker()
    chunks = structured_chunker.chunk_document(document)
    if chunks:
        return chunks
    return (text_chunker or TextChunker()).chunk(document.text)


__all__ = [
    # Generic text
    "ChunkerConfig",
    "TextChunker",
    "chunk_text",
    "classify_line",
    "count_tokens",
    "is_table_line",
    "is_title_line",
    # Structured origins
    "StructuredChunker",
    "StructuredChunkerConfig",
    "extract_html_sections",
    "split_long_text",
    "chunk_for_embedding",
]
