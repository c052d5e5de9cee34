"""
API route definitions for the Hybrid RAG Server.
"""

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException

from ..caching import CacheEntry
from ..engine import RAGEngine
from ..errors import CompletionError, DimensionMismatchError
from ..models import Document, HtmlSection, OriginKind, WebPage
from ..parsers import extract_html_sections
from .dependencies import get_engine, is_completion_available
from .schemas import (
    AskRequest,
    AskResponse,
    CleanupRequest,
    DocumentRequest,
    DocumentSummary,
    ErrorResponse,
    FAQCreateRequest,
    FAQItem,
    FAQUpdateRequest,
    HealthResponse,
    IngestResponse,
    InvalidateRequest,
    RouteType,
    SourceItem,
    StatsResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _faq_item(entry: CacheEntry) -> FAQItem:
    return FAQItem(
        id=entry.entry_id,
        question=entry.question,
        answer=entry.payload.get("answer", ""),
        category=entry.payload.get("category", "general"),
        enabled=bool(entry.payload.get("enabled", True)),
        hit_count=entry.hit_count,
    )


def _to_document(request: DocumentRequest) -> Document:
    html_sections = [
        HtmlSection(heading_path=s.heading_path, text=s.text, url=s.url or "")
        for s in request.html_sections
    ]
    origin = OriginKind(request.origin.value)
    if request.html:
        html_sections = extract_html_sections(request.html, base_url=request.source_url or "")
        origin = OriginKind.HTML
    return Document(
        doc_id=request.doc_id or f"doc-{uuid.uuid4().hex[:12]}",
        name=request.name,
        text=request.text,
        origin=origin,
        source_url=request.source_url or "",
        html_sections=html_sections,
        web_pages=[WebPage(url=p.url, text=p.text, title=p.title or "") for p in request.web_pages],
    )


# ============================================================================
# PRIMARY ENDPOINT
# ============================================================================

@router.post(
    "/ask",
    response_model=AskResponse,
    responses={
        502: {"model": ErrorResponse, "description": "Completion provider failed"},
        500: {"model": ErrorResponse, "description": "Internal server error"},
    },
    summary="Answer a question",
    description="""
Answer a question against the indexed corpus.

Tiers are tried in order and the first one that can serve the question wins:
- **response_cache**: a similar question was already answered over the same corpus
- **faq**: a curated FAQ matches the question
- **lexical**: title-first BM25 search found relevant chunks
- **semantic**: vector passages and whole-document heuristics
"""
)
async def ask(request: AskRequest, engine: RAGEngine = Depends(get_engine)) -> AskResponse:
    try:
        logger.info(f"Processing question: {request.question[:100]}...")
        result = await engine.ask(request.question, request.requester_id)
        logger.info(f"Question answered - Route: {result.route.value}, Completion: {result.completion_called}")
        return AskResponse(
            question=result.question,
            answer=result.answer,
            route=RouteType(result.route.value),
            sources=[SourceItem(**s.to_dict()) for s in result.sources],
            top_score=result.top_score,
            cached_similarity=result.cached_similarity,
            used_documents=result.used_documents,
            completion_called=result.completion_called,
        )
    except ValueError as e:
        raise HTTPException(status_code=422, detail={"error": "invalid_question", "message": str(e)})
    except CompletionError as e:
        logger.error(f"Completion failed: {e}")
        raise HTTPException(status_code=502, detail={"error": "completion_error", "message": str(e)})
    except Exception as e:
        logger.exception(f"Error processing question: {e}")
        raise HTTPException(status_code=500, detail={"error": "ask_error", "message": str(e)})


# ============================================================================
# DOCUMENTS
# ============================================================================

@router.post("/documents", response_model=IngestResponse, summary="Ingest or replace a document")
async def ingest_document(request: DocumentRequest, engine: RAGEngine = Depends(get_engine)) -> IngestResponse:
    try:
        report = await engine.ingest(_to_document(request))
        return IngestResponse(**report.to_dict())
    except DimensionMismatchError as e:
        logger.error(f"Embedding dimension conflict: {e}")
        raise HTTPException(status_code=409, detail={"error": "dimension_mismatch", "message": str(e)})
    except Exception as e:
        logger.exception(f"Error ingesting document: {e}")
        raise HTTPException(status_code=500, detail={"error": "ingest_error", "message": str(e)})


@router.delete("/documents/{doc_id}", summary="Remove a document")
async def remove_document(doc_id: str, engine: RAGEngine = Depends(get_engine)):
    if not await engine.remove(doc_id):
        raise HTTPException(status_code=404, detail={"error": "not_found", "message": f"Unknown document: {doc_id}"})
    return {"doc_id": doc_id, "removed": True}


@router.get("/documents", response_model=list[DocumentSummary], summary="List documents")
async def list_documents(engine: RAGEngine = Depends(get_engine)) -> list[DocumentSummary]:
    return [
        DocumentSummary(
            doc_id=d.doc_id,
            name=d.name,
            origin=d.origin.value,
            created_at=d.created_at,
            updated_at=d.updated_at,
            source_url=d.source_url or None,
            characters=len(d.text),
        )
        for d in engine.registry.list_documents()
    ]


# ============================================================================
# STATUS
# ============================================================================

@router.get("/stats", response_model=StatsResponse, summary="Index and cache statistics")
async def get_stats(engine: RAGEngine = Depends(get_engine)) -> StatsResponse:
    try:
        return StatsResponse(**engine.stats())
    except Exception as e:
        logger.exception(f"Error getting stats: {e}")
        raise HTTPException(status_code=500, detail={"error": "stats_error", "message": str(e)})


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health_check(engine: RAGEngine = Depends(get_engine)) -> HealthResponse:
    return HealthResponse(
        status="healthy",
        documents=len(engine.registry),
        vectors=len(engine.vector_store),
        completion_available=is_completion_available(),
    )


# ============================================================================
# MAINTENANCE
# ============================================================================

@router.post("/maintenance/rebuild", summary="Rebuild the vector index graph")
async def rebuild_vectors(engine: RAGEngine = Depends(get_engine)):
    try:
        return engine.rebuild_vectors()
    except Exception as e:
        logger.exception(f"Error rebuilding vector index: {e}")
        raise HTTPException(status_code=500, detail={"error": "rebuild_error", "message": str(e)})


@router.post("/maintenance/cleanup", summary="Age-based cache cleanup")
async def cleanup_caches(request: CleanupRequest, engine: RAGEngine = Depends(get_engine)):
    return engine.cleanup(request.max_age_days)


@router.post("/maintenance/invalidate", summary="Invalidate cached responses for a corpus hash")
async def invalidate_responses(request: InvalidateRequest, engine: RAGEngine = Depends(get_engine)):
    return engine.invalidate(request.corpus_hash)


# ============================================================================
# FAQS
# ============================================================================

@router.get("/faqs", response_model=list[FAQItem], summary="List FAQs")
async def list_faqs(
    category: str | None = None,
    enabled_only: bool = False,
    engine: RAGEngine = Depends(get_engine),
) -> list[FAQItem]:
    return [_faq_item(e) for e in engine.faq_cache.list_entries(category, enabled_only)]


@router.post("/faqs", response_model=FAQItem, summary="Create or update a FAQ")
async def create_faq(request: FAQCreateRequest, engine: RAGEngine = Depends(get_engine)) -> FAQItem:
    entry = await engine.add_faq(request.question, request.answer, request.category)
    if entry is None:
        raise HTTPException(status_code=422, detail={"error": "invalid_faq", "message": "Question and answer are required"})
    return _faq_item(entry)


@router.patch("/faqs/{faq_id}", response_model=FAQItem, summary="Edit a FAQ")
async def update_faq(faq_id: str, request: FAQUpdateRequest, engine: RAGEngine = Depends(get_engine)) -> FAQItem:
    entry = await engine.update_faq(faq_id, **request.model_dump())
    if entry is None:
        raise HTTPException(status_code=404, detail={"error": "not_found", "message": f"Unknown FAQ: {faq_id}"})
    return _faq_item(entry)
