"""
Request and response schemas for the Hybrid RAG API.
"""

from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, Field


# ============================================================================
# Enums
# ============================================================================

class RouteType(str, Enum):
    """Tier that produced an answer."""
    RESPONSE_CACHE = "response_cache"
    FAQ = "faq"
    LEXICAL = "lexical"
    SEMANTIC = "semantic"


class OriginType(str, Enum):
    """How a document's text was extracted."""
    PLAIN = "plain"
    HTML = "html"
    SPREADSHEET = "spreadsheet"
    WEB_PAGES = "web_pages"


# ============================================================================
# Questions
# ============================================================================

class AskRequest(BaseModel):
    """Question from the conversational channel."""

    question: str = Field(
        ...,
        min_length=1,
        max_length=4000,
        description="Question text",
        examples=["¿Cuál es el horario de Cálculo I?"]
    )
    requester_id: Optional[str] = Field(
        None,
        description="Requester identifier, enables conversation memory"
    )


class SourceItem(BaseModel):
    """A chunk cited as a source of an answer."""
    doc_id: str
    doc_name: str
    chunk_index: int
    type: str
    section: Optional[str] = None
    text: str
    score: float
    citation: str


class AskResponse(BaseModel):
    """Answer to a question."""
    question: str
    answer: str
    route: RouteType
    sources: list[SourceItem] = Field(default_factory=list)
    top_score: Optional[float] = None
    cached_similarity: Optional[float] = None
    used_documents: list[str] = Field(default_factory=list)
    completion_called: bool = False


# ============================================================================
# Documents
# ============================================================================

class HtmlSectionItem(BaseModel):
    heading_path: list[str] = Field(default_factory=list)
    text: str
    url: Optional[str] = None


class WebPageItem(BaseModel):
    url: str
    text: str
    title: Optional[str] = None


class DocumentRequest(BaseModel):
    """A document whose text has already been extracted."""

    doc_id: Optional[str] = Field(None, description="Document id (generated when missing)")
    name: str = Field(..., min_length=1, description="Display name")
    text: str = Field(..., description="Extracted text")
    origin: OriginType = Field(default=OriginType.PLAIN)
    source_url: Optional[str] = None
    html: Optional[str] = Field(None, description="Raw HTML, split into heading sections on ingest")
    html_sections: list[HtmlSectionItem] = Field(default_factory=list)
    web_pages: list[WebPageItem] = Field(default_factory=list)


class IngestResponse(BaseModel):
    doc_id: str
    lexical_chunks: int
    embedding_chunks: int
    embedded: int
    replaced: bool


class DocumentSummary(BaseModel):
    doc_id: str
    name: str
    origin: OriginType
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    source_url: Optional[str] = None
    characters: int


# ============================================================================
# FAQs
# ============================================================================

class FAQCreateRequest(BaseModel):
    question: str = Field(..., min_length=1)
    answer: str = Field(..., min_length=1)
    category: Optional[str] = None


class FAQUpdateRequest(BaseModel):
    question: Optional[str] = None
    answer: Optional[str] = None
    category: Optional[str] = None
    enabled: Optional[bool] = None


class FAQItem(BaseModel):
    id: str
    question: str
    answer: str
    category: str
    enabled: bool
    hit_count: int


# ============================================================================
# Maintenance and status
# ============================================================================

class CleanupRequest(BaseModel):
    max_age_days: Optional[int] = Field(None, ge=0, description="Age threshold in days")


class InvalidateRequest(BaseModel):
    corpus_hash: Optional[str] = Field(None, description="Corpus hash (default: current corpus)")


class HealthResponse(BaseModel):
    """Health check response."""
    status: str = Field(..., description="Service status")
    documents: int
    vectors: int
    completion_available: bool


class StatsResponse(BaseModel):
    """Index and cache statistics."""
    documents: int
    corpus_hash: str
    lexical_index: dict[str, Any]
    vector_index: dict[str, Any]
    embedding_cache: dict[str, Any]
    faq_cache: dict[str, Any]
    response_cache: dict[str, Any]


class ErrorResponse(BaseModel):
    """Error response."""
    error: str
    message: str
