"""
Retrieval configuration and result dataclasses.

This module defines:
- SearchConfig: Hierarchical search parameters (boosts, floor, top-K)
- RetrievalConfig: Orchestrator parameters (tiers, limits, prompts)
- Route: Which tier produced an answer
- AnswerResult: Complete result of answering a question
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from ..models import ChunkType, SearchResult

logger = logging.getLogger(__name__)


DEFAULT_TYPE_BOOSTS = {
    ChunkType.TITLE: 1.8,
    ChunkType.SECTION_HEADER: 1.6,
    ChunkType.TABLE_HEADER: 1.4,
    ChunkType.LIST: 1.2,
    ChunkType.CONTENT: 1.0,
}

DEFAULT_SYSTEM_PROMPT = (
    "Eres un asistente que responde siguiendo el contexto y los documentos cargados. "
    "Responde únicamente con la información provista; si no está en el contexto, dilo. "
    "Responde en texto plano, sin Markdown ni encabezados."
)

MEMORY_SUMMARY_PROMPT = (
    "Resume la conversación en español, máximo 1200 caracteres. "
    "Conserva nombres, cargos, correos y datos clave."
)


@dataclass
class SearchConfig:
    """Configuration for hierarchical lexical search."""
    type_boosts: dict = field(default_factory=lambda: dict(DEFAULT_TYPE_BOOSTS))
    relevance_floor: float = 0.5
    top_k: int = 5
    list_top_k: int = 10
    # Queries with at least this many terms need min_matched_terms matches
    multi_term_threshold: int = 3
    min_matched_terms: int = 2
    context_window: int = 1
    max_citations: int = 3


@dataclass
class RetrievalConfig:
    """Configuration for the retrieval orchestrator."""
    cache_enabled: bool = True
    faq_enabled: bool = True
    search: SearchConfig = field(default_factory=SearchConfig)

    # Semantic fallback
    semantic_passages: int = 8
    keyword_snippets_per_doc: int = 6
    keyword_snippets_total: int = 8
    max_snippet_chars: int = 500
    per_document_chars: int = 60000
    total_document_chars: int = 180000

    # Completion
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    no_answer_text: str = "No se obtuvo respuesta."

    # Conversation memory
    memory_enabled: bool = True
    memory_summary_prompt: str = MEMORY_SUMMARY_PROMPT
    memory_summarize_above: int = 2500
    memory_summary_max_chars: int = 2000
    memory_fallback_chars: int = 4000


class Route(Enum):
    """Tier that produced an answer."""
    RESPONSE_CACHE = "response_cache"
    FAQ = "faq"
    LEXICAL = "lexical"
    SEMANTIC = "semantic"


@dataclass
class AnswerResult:
    """Complete result of answering a question."""
    question: str
    answer: str
    route: Route
    context: str = ""
    sources: list[SearchResult] = field(default_factory=list)
    top_score: Optional[float] = None
    cached_similarity: Optional[float] = None
    used_documents: list[str] = field(default_factory=list)
    completion_called: bool = False

    def to_dict(self) -> dict:
        return {
            "question": self.question,
            "answer": self.answer,
            "route": self.route.value,
            "context": self.context,
            "sources": [s.to_dict() for s in self.sources],
            "top_score": self.top_score,
            "cached_similarity": self.cached_similarity,
            "used_documents": list(self.used_documents),
            "completion_called": self.completion_called,
        }
