"""
Retrieval orchestrator: the tiered answer path for one question.

Tiers, in order:
1. Response cache (same question meaning over the same corpus)
2. FAQ cache (curated answers, no completion call)
3. Hierarchical lexical search with adjacent-chunk context
4. Semantic fallback: similar chunk passages, keyword snippets and
   whole-document inclusion heuristics

Tiers 3 and 4 call the completion provider. That call and its
bookkeeping (response cache, history, conversation memory) run in a task
shielded from caller cancellation, so an abandoned request still
populates the caches.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

from ..caching import FAQCache, ResponseCache, compute_corpus_hash
from ..errors import DimensionMismatchError
from ..indexing import CachingEmbedder, ChunkVectorStore, DocumentRegistry, LexicalIndex, normalize_text
from ..models import Document, OriginKind, SearchResult
from .config import AnswerResult, RetrievalConfig, Route
from .intent import extract_question_terms, wants_full_information
from .llm import CompletionProvider
from .memory import ConversationMemory, HistoryLog
from .search import HierarchicalSearcher

logger = logging.getLogger(__name__)


@dataclass
class SemanticContext:
    """Context assembled by the semantic fallback."""
    text: str = ""
    passages: list[SearchResult] = field(default_factory=list)
    used_documents: list[str] = field(default_factory=list)


def _haystack(document: Document) -> str:
    return normalize_text(f"{document.name} {document.source_url or ''} {document.text}")


class RetrievalOrchestrator:
    """Answers questions against the indexed corpus."""

    def __init__(
        self,
        registry: DocumentRegistry,
        lexical_index: LexicalIndex,
        vector_store: ChunkVectorStore,
        embedder: CachingEmbedder,
        completion_provider: CompletionProvider,
        faq_cache: Optional[FAQCache] = None,
        response_cache: Optional[ResponseCache] = None,
        history: Optional[HistoryLog] = None,
        memory: Optional[ConversationMemory] = None,
        config: Optional[RetrievalConfig] = None,
    ):
        self.registry = registry
        self.lexical_index = lexical_index
        self.vector_store = vector_store
        self.embedder = embedder
        self.completion_provider = completion_provider
        self.faq_cache = faq_cache
        self.response_cache = response_cache
        self.history = history
        self.memory = memory
        self.config = config or RetrievalConfig()
        self.searcher = HierarchicalSearcher(lexical_index, self.config.search)
        self._background: set[asyncio.Task] = set()

    async def answer(self, question: str, requester_id: Optional[str] = None) -> AnswerResult:
        """Answer a question through the first tier that can serve it.

        Args:
            question: Question text from the conversational channel
            requester_id: Optional requester, enables conversation memory

        Returns:
            AnswerResult with the answer, the route taken and its context

        Raises:
            ValueError: If the question is empty
            CompletionError: If the completion provider fails or times out
        """
        if not question or not question.strip():
            raise ValueError("Question must not be empty")
        question = question.strip()
        cfg = self.config

        documents = self.registry.list_documents()
        corpus_hash = compute_corpus_hash(documents)

        embedding = None
        if (cfg.cache_enabled and self.response_cache is not None) or (cfg.faq_enabled and self.faq_cache is not None):
            embedding = await self.embedder.embed(question)

        # 1. Response cache
        if cfg.cache_enabled and self.response_cache is not None:
            cached = self.response_cache.lookup(question, embedding, corpus_hash)
            if cached is not None:
                logger.info(f"[ORCHESTRATOR] Served from response cache ({cached.similarity:.2f})")
                return AnswerResult(
                    question=question,
                    answer=cached.answer,
                    route=Route.RESPONSE_CACHE,
                    cached_similarity=cached.similarity,
                )

        # 2. FAQ cache
        if cfg.faq_enabled and self.faq_cache is not None:
            match = self.faq_cache.find(embedding)
            if match is not None:
                self.faq_cache.record_hit(match.entry.entry_id)
                logger.info(f"[ORCHESTRATOR] Served from FAQ ({match.category}, {match.similarity:.2f})")
                return AnswerResult(
                    question=question,
                    answer=match.answer,
                    route=Route.FAQ,
                    cached_similarity=match.similarity,
                )

        # 3. Hierarchical lexical search
        if len(self.lexical_index) > 0:
            results = self.searcher.search(question)
            if results and results[0].score >= cfg.search.relevance_floor:
                bundle = self.searcher.build_context(results)
                if not bundle.is_empty:
                    logger.info(f"[ORCHESTRATOR] Lexical route (top {results[0].score:.3f}, {results[0].doc_id})")
                    used = list(dict.fromkeys(r.doc_id for r in bundle.sources))
                    return await self._complete(
                        question=question,
                        requester_id=requester_id,
                        route=Route.LEXICAL,
                        context=f"Contexto:\n{bundle.text}",
                        sources=bundle.sources,
                        top_score=results[0].score,
                        used_documents=used,
                        embedding=embedding,
                        corpus_hash=corpus_hash,
                        document_count=len(documents),
                    )

        # 4. Semantic fallback
        if embedding is None:
            embedding = await self.embedder.embed(question)
        semantic = self.build_semantic_context(question, documents, embedding)
        logger.info(
            f"[ORCHESTRATOR] Semantic route ({len(semantic.passages)} passages, "
            f"{len(semantic.used_documents)} documents)"
        )
        return await self._complete(
            question=question,
            requester_id=requester_id,
            route=Route.SEMANTIC,
            context=semantic.text,
            sources=semantic.passages[:cfg.search.max_citations],
            top_score=semantic.passages[0].score if semantic.passages else None,
            used_documents=semantic.used_documents,
            embedding=embedding,
            corpus_hash=corpus_hash,
            document_count=len(documents),
        )

    # -------------------------------------------------------------------------
    # Semantic fallback
    # -------------------------------------------------------------------------

    def build_semantic_context(
        self,
        question: str,
        documents: list[Document],
        embedding: Optional[list[float]],
    ) -> SemanticContext:
        """Passages, keyword snippets and whole documents for a question."""
        cfg = self.config
        terms = extract_question_terms(question)
        target_terms = terms[:3]
        haystacks = {d.doc_id: _haystack(d) for d in documents}

        def term_hits(document: Document) -> int:
            return sum(1 for term in target_terms if term in haystacks[document.doc_id])

        # Stable sort: term hits first, then documents with a web origin
        ordered = sorted(
            documents,
            key=lambda d: (
                -term_hits(d),
                not (d.source_url or d.origin in (OriginKind.HTML, OriginKind.WEB_PAGES)),
            ),
        )
        used: list[str] = []

        # Document notes
        notes, total = [], 0
        for document in ordered:
            if target_terms and term_hits(document) == 0:
                break
            extracted = document.text[:cfg.per_document_chars]
            source = f"\nFuente: {document.source_url}" if document.source_url else ""
            note = f"{document.name}{source}\nTexto extraído ({document.name}):\n{extracted}"
            if total + len(note) > cfg.total_document_chars:
                break
            notes.append(note)
            total += len(note)
            used.append(document.doc_id)

        # Whole-document inclusion
        full_block = ""
        if terms and (wants_full_information(question) or len(terms) <= 2):
            candidates = [d for d in documents if terms[0] in haystacks[d.doc_id]]
            if candidates:
                best = max(candidates, key=lambda d: d.updated_at or d.created_at or "")
                source = f"Fuente: {best.source_url}\n" if best.source_url else ""
                full_block = (
                    f"DOCUMENTO COMPLETO PARA RESPONDER:\n{source}"
                    f"{best.text[:cfg.total_document_chars]}\n\n"
                    "Instrucción: devuelve el documento completo sin omitir información."
                )
                used.append(best.doc_id)

        # Semantic passages, keyword snippets when there are none
        passages: list[SearchResult] = []
        if embedding is not None:
            try:
                passages = self.vector_store.search_similar_chunks(embedding, k=cfg.semantic_passages)
            except DimensionMismatchError as e:
                logger.warning(f"[ORCHESTRATOR] Skipping vector passages: {e}")
        snippets = [p.text for p in passages if p.text]
        if not snippets:
            snippets = self.keyword_snippets(ordered, target_terms)
        used.extend(p.doc_id for p in passages)

        parts = []
        if notes:
            parts.append("Documentos: " + "\n\n".join(notes))
        if full_block:
            parts.append(full_block)
        if snippets:
            parts.append("Fragmentos relevantes:\n" + "\n".join(snippets))

        return SemanticContext(
            text="\n".join(parts),
            passages=passages,
            used_documents=list(dict.fromkeys(used)),
        )

    def keyword_snippets(self, documents: list[Document], target_terms: list[str]) -> list[str]:
        """Lines mentioning all (else any) of the target terms."""
        cfg = self.config
        if not target_terms:
            return []
        snippets: list[str] = []
        for document in documents:
            lines = [line.strip() for line in document.text.splitlines() if line.strip()]
            normalized = [normalize_text(line) for line in lines]
            matches = [l for l, n in zip(lines, normalized) if all(t in n for t in target_terms)]
            if not matches:
                matches = [l for l, n in zip(lines, normalized) if any(t in n for t in target_terms)]
            snippets.extend(
                m for m in matches[:cfg.keyword_snippets_per_doc] if len(m) <= cfg.max_snippet_chars
            )
            if len(snippets) >= cfg.keyword_snippets_total:
                break
        return snippets[:cfg.keyword_snippets_total]

    # -------------------------------------------------------------------------
    # Completion
    # -------------------------------------------------------------------------

    def build_prompt(self, question: str, context: str, memory: str = "") -> str:
        parts = []
        if memory:
            parts.append(f"Memoria de conversación:\n{memory}")
        if context:
            parts.append(context)
        parts.append(f"Pregunta: {question}")
        return "\n\n".join(parts)

    async def _complete(
        self,
        question: str,
        requester_id: Optional[str],
        route: Route,
        context: str,
        sources: list[SearchResult],
        top_score: Optional[float],
        used_documents: list[str],
        embedding: Optional[list[float]],
        corpus_hash: str,
        document_count: int,
    ) -> AnswerResult:
        memory = ""
        if self.config.memory_enabled and self.memory is not None:
            memory = self.memory.get(requester_id)
        prompt = self.build_prompt(question, context, memory)

        task = asyncio.ensure_future(self._complete_and_record(
            question, prompt, route, requester_id, used_documents, embedding, corpus_hash, document_count
        ))
        self._track(task)
        answer = await asyncio.shield(task)

        return AnswerResult(
            question=question,
            answer=answer,
            route=route,
            context=context,
            sources=list(sources),
            top_score=top_score,
            used_documents=used_documents,
            completion_called=True,
        )

    async def _complete_and_record(
        self,
        question: str,
        prompt: str,
        route: Route,
        requester_id: Optional[str],
        used_documents: list[str],
        embedding: Optional[list[float]],
        corpus_hash: str,
        document_count: int,
    ) -> str:
        answer = await self.completion_provider.complete(self.config.system_prompt, prompt)
        answer = (answer or "").strip() or self.config.no_answer_text

        if self.config.cache_enabled and self.response_cache is not None:
            self.response_cache.store(question, answer, embedding, corpus_hash, document_count)

        if self.history is not None:
            await asyncio.to_thread(
                self.history.append, question, answer, route.value, requester_id, used_documents
            )

        if requester_id and self.config.memory_enabled and self.memory is not None:
            self._track(asyncio.ensure_future(self._update_memory(requester_id, question, answer)))
        return answer

    async def _update_memory(self, requester_id: str, question: str, answer: str):
        try:
            await self.memory.update(requester_id, question, answer, self.completion_provider)
        except Exception as e:
            logger.error(f"[MEMORY] Could not update memory for {requester_id}: {e}")

    def _track(self, task: asyncio.Task):
        self._background.add(task)
        task.add_done_callback(self._on_background_done)

    def _on_background_done(self, task: asyncio.Task):
        self._background.discard(task)
        if task.cancelled():
            return
        # Read here so a failure after the caller left is still reported
        error = task.exception()
        if error is not None:
            logger.error(f"[ASK] Background task failed: {error!r}")

    async def drain(self):
        """Wait for completion and memory tasks still running in the background."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
