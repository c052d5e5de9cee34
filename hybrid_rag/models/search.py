"""
Search result models for the retrieval pipeline.

This module defines data models for lexical and semantic search results
and the context handed to the completion stage.
"""

from dataclasses import dataclass, field
from typing import Optional

from .document import ChunkType


@dataclass
class SearchResult:
    """A ranked chunk with its normalized score."""
    doc_id: str
    doc_name: str
    chunk_id: str
    chunk_index: int
    type: ChunkType
    text: str
    score: float
    section: Optional[str] = None
    raw_score: float = 0.0
    matched_terms: list[str] = field(default_factory=list)
    metadata: dict = field(default_factory=dict)

    def get_citation(self) -> str:
        """Generate a citation string."""
        parts = [self.doc_name or self.doc_id]
        if self.section:
            parts.append(self.section)
        parts.append(f"chunk {self.chunk_index}")
        return " - ".join(parts)

    def to_dict(self) -> dict:
        return {
            "doc_id": self.doc_id,
            "doc_name": self.doc_name,
            "chunk_id": self.chunk_id,
            "chunk_index": self.chunk_index,
            "type": self.type.value,
            "section": self.section,
            "text": self.text,
            "score": self.score,
            "raw_score": self.raw_score,
            "matched_terms": list(self.matched_terms),
            "citation": self.get_citation(),
        }


@dataclass
class ContextBundle:
    """Context assembled for the completion stage."""
    text: str
    sources: list[SearchResult] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.text.strip()
