"""
Engine assembly: every store, the ingestor and the orchestrator wired together.

The server and the CLI build one ``RAGEngine`` per process with
``build_engine`` and call ``flush()`` before exiting.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .caching import EmbeddingCache, FAQCache, ResponseCache, compute_corpus_hash
from .indexing import (
    CachingEmbedder,
    ChunkVectorStore,
    DocumentIngestor,
    DocumentRegistry,
    EmbeddingProvider,
    IngestReport,
    LexicalIndex,
    TextAnalyzer,
    VectorIndexConfig,
)
from .models import Document
from .retrieval import (
    AnswerResult,
    CompletionProvider,
    ConversationMemory,
    HistoryLog,
    RetrievalConfig,
    RetrievalOrchestrator,
)
from .storage import PersistentStore

logger = logging.getLogger(__name__)

# File layout under the data directory
DOCUMENTS_FILE = "documents.json"
LEXICAL_FILE = "lexical_indices.json"
VECTOR_DIR = "vector_index"
EMBEDDING_CACHE_FILE = "embedding_cache.json"
FAQ_CACHE_FILE = "faq_cache.json"
RESPONSE_CACHE_FILE = "response_cache.json"
HISTORY_FILE = "history.jsonl"
MEMORY_FILE = "memory.json"


@dataclass
class RAGEngine:
    """All components of one engine instance."""
    registry: DocumentRegistry
    lexical_index: LexicalIndex
    vector_store: ChunkVectorStore
    embedding_cache: EmbeddingCache
    faq_cache: FAQCache
    response_cache: ResponseCache
    history: HistoryLog
    memory: ConversationMemory
    embedder: CachingEmbedder
    ingestor: DocumentIngestor
    orchestrator: RetrievalOrchestrator
    data_dir: Optional[Path] = None
    loaded: dict = field(default_factory=dict)

    @property
    def stores(self) -> dict[str, PersistentStore]:
        return {
            "documents": self.registry,
            "lexical": self.lexical_index,
            "vectors": self.vector_store,
            "embedding_cache": self.embedding_cache,
            "faq_cache": self.faq_cache,
            "response_cache": self.response_cache,
            "memory": self.memory,
        }

    def load(self) -> dict[str, bool]:
        """Load every persisted store. Missing or unreadable stores start empty."""
        self.loaded = {name: store.load() for name, store in self.stores.items()}
        logger.info(
            f"[ENGINE] Loaded {len(self.registry)} documents, {len(self.vector_store)} vectors, "
            f"{len(self.response_cache)} cached responses"
        )
        return self.loaded

    async def flush(self):
        """Finish background work and durably write every store."""
        await self.orchestrator.drain()
        for name, store in self.stores.items():
            if not await store.flush():
                logger.error(f"[ENGINE] Flush failed for {name}")

    # -------------------------------------------------------------------------
    # Questions and documents
    # -------------------------------------------------------------------------

    async def ask(self, question: str, requester_id: Optional[str] = None) -> AnswerResult:
        return await self.orchestrator.answer(question, requester_id)

    async def ingest(self, document: Document) -> IngestReport:
        return await self.ingestor.ingest(document)

    async def remove(self, doc_id: str) -> bool:
        return await self.ingestor.remove(doc_id)

    def corpus_hash(self) -> str:
        return compute_corpus_hash(self.registry.list_documents())

    # -------------------------------------------------------------------------
    # FAQ administration
    # -------------------------------------------------------------------------

    async def add_faq(self, question: str, answer: str, category: Optional[str] = None):
        embedding = await self.embedder.embed(question)
        return self.faq_cache.upsert(question, answer, embedding=embedding, category=category)

    async def update_faq(self, faq_id: str, **updates):
        """Edit a FAQ, re-embedding its question when it changes."""
        updates = {k: v for k, v in updates.items() if v is not None}
        if updates.get("question"):
            updates["embedding"] = await self.embedder.embed(updates["question"])
        return self.faq_cache.update(faq_id, **updates)

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    def rebuild_vectors(self, show_progress: bool = False) -> dict:
        rebuilt = self.vector_store.rebuild(show_progress=show_progress)
        return {"rebuilt": rebuilt, **self.vector_store.stats()}

    def cleanup(self, max_age_days: Optional[int] = None) -> dict:
        """Age-based cleanup of the embedding and response caches."""
        embedding = self.embedding_cache.cleanup_old(max_age_days)
        responses = self.response_cache.cleanup_old(max_age_days)
        return {"embedding_cache": embedding, "response_cache": {"removed": responses, "remaining": len(self.response_cache)}}

    def invalidate(self, corpus_hash: Optional[str] = None) -> dict:
        """Drop cached responses for a corpus hash (default: the current one)."""
        corpus_hash = corpus_hash or self.corpus_hash()
        removed = self.response_cache.invalidate(corpus_hash)
        return {"corpus_hash": corpus_hash, "removed": removed}

    def stats(self) -> dict:
        return {
            "documents": len(self.registry),
            "corpus_hash": self.corpus_hash(),
            "lexical_index": self.lexical_index.stats(),
            "vector_index": self.vector_store.stats(),
            "embedding_cache": self.embedding_cache.stats(),
            "faq_cache": self.faq_cache.stats(),
            "response_cache": self.response_cache.stats(),
        }


def build_engine(
    embedding_provider: EmbeddingProvider,
    completion_provider: CompletionProvider,
    data_dir: Optional[str | Path] = None,
    config: Optional[RetrievalConfig] = None,
    vector_config: Optional[VectorIndexConfig] = None,
    stemmer_language: str = "spanish",
    load: bool = True,
) -> RAGEngine:
    """Assemble an engine.

    Args:
        embedding_provider: Source of question and chunk embeddings
        completion_provider: Source of generated answers
        data_dir: Directory for persisted state (None keeps everything in memory)
        config: Orchestrator configuration
        vector_config: Vector index configuration
        stemmer_language: Snowball stemmer language for the lexical index
        load: Load persisted state right away

    Returns:
        Ready-to-use RAGEngine
    """
    config = config or RetrievalConfig()
    data_dir = Path(data_dir) if data_dir is not None else None

    def path(name: str) -> Optional[Path]:
        return data_dir / name if data_dir is not None else None

    registry = DocumentRegistry(path(DOCUMENTS_FILE))
    lexical_index = LexicalIndex(path(LEXICAL_FILE), analyzer=TextAnalyzer(language=stemmer_language))
    vector_store = ChunkVectorStore(path(VECTOR_DIR), config=vector_config)
    embedding_cache = EmbeddingCache(path(EMBEDDING_CACHE_FILE))
    faq_cache = FAQCache(path(FAQ_CACHE_FILE))
    response_cache = ResponseCache(path(RESPONSE_CACHE_FILE))
    history = HistoryLog(path(HISTORY_FILE))
    memory = ConversationMemory(
        path(MEMORY_FILE),
        summarize_above=config.memory_summarize_above,
        summary_max_chars=config.memory_summary_max_chars,
        fallback_chars=config.memory_fallback_chars,
        summary_prompt=config.memory_summary_prompt,
    )
    embedder = CachingEmbedder(embedding_provider, embedding_cache)

    engine = RAGEngine(
        registry=registry,
        lexical_index=lexical_index,
        vector_store=vector_store,
        embedding_cache=embedding_cache,
        faq_cache=faq_cache,
        response_cache=response_cache,
        history=history,
        memory=memory,
        embedder=embedder,
        ingestor=DocumentIngestor(registry, lexical_index, vector_store, embedder),
        orchestrator=RetrievalOrchestrator(
            registry=registry,
            lexical_index=lexical_index,
            vector_store=vector_store,
            embedder=embedder,
            completion_provider=completion_provider,
            faq_cache=faq_cache,
            response_cache=response_cache,
            history=history,
            memory=memory,
            config=config,
        ),
        data_dir=data_dir,
    )
    if load and data_dir is not None:
        engine.load()
    return engine
