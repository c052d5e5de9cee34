"""
Response cache: final answers keyed by question embedding and corpus hash.

An entry is only eligible when its corpus hash equals the current one, so
any change to the document set (identity or update time) implicitly
invalidates every answer produced before it.
"""

import hashlib
import logging
import time
from dataclasses import dataclass
from typing import Iterable, Optional

from ..models import Document
from .base import DAY_SECONDS, CacheEntry, SemanticCache, cosine_similarity, new_entry_id, normalize_question

logger = logging.getLogger(__name__)

NO_DOCUMENTS_HASH = "no-docs"


def compute_corpus_hash(documents: Iterable[Document]) -> str:
    """Fingerprint of the document set's identities and update times."""
    keys = sorted(f"{d.doc_id}-{d.updated_at or d.created_at}" for d in documents)
    if not keys:
        return NO_DOCUMENTS_HASH
    return hashlib.md5("|".join(keys).encode("utf-8")).hexdigest()


@dataclass
class ResponseCacheConfig:
    """Configuration for the response cache."""
    threshold: float = 0.90
    max_entries: int = 500
    max_age_days: int = 30
    keep_min_hits: int = 5
    min_question_length: int = 10


@dataclass
class CachedResponse:
    """A response cache hit."""
    answer: str
    similarity: float
    hit_count: int
    original_question: str
    entry_id: str


class ResponseCache(SemanticCache):
    """(question embedding, corpus hash) -> answer text."""

    store_name = "response cache"
    id_prefix = "resp"
    cost_per_hit = 0.002

    def __init__(self, path=None, config: Optional[ResponseCacheConfig] = None):
        super().__init__(path)
        self.config = config or ResponseCacheConfig()

    def is_cacheable(self, question: str) -> bool:
        return bool(question) and len(question.strip()) >= self.config.min_question_length

    def lookup(
        self,
        question: str,
        embedding,
        corpus_hash: str,
        threshold: Optional[float] = None,
    ) -> Optional[CachedResponse]:
        """Best cached answer for a similar question over the same corpus."""
        if embedding is None or not self.is_cacheable(question) or not self.entries:
            return None
        threshold = self.config.threshold if threshold is None else threshold

        best, best_similarity = None, 0.0
        for entry in self.entries:
            if entry.corpus_hash != corpus_hash or entry.embedding is None:
                continue
            similarity = cosine_similarity(embedding, entry.embedding)
            if similarity > best_similarity and similarity >= threshold:
                best, best_similarity = entry, similarity

        if best is None:
            self._record_miss()
            logger.info("[CACHE] Response MISS")
            return None

        self._record_hit(best)
        self.schedule_save()
        logger.info(f"[CACHE] Response HIT (similarity {best_similarity:.2f}, hits {best.hit_count})")
        return CachedResponse(
            answer=best.payload,
            similarity=best_similarity,
            hit_count=best.hit_count,
            original_question=best.question,
            entry_id=best.entry_id,
        )

    def store(
        self,
        question: str,
        answer: str,
        embedding,
        corpus_hash: str,
        document_count: int = 0,
    ) -> Optional[CacheEntry]:
        """Cache an answer produced for ``question`` over the current corpus."""
        if embedding is None or not answer or not answer.strip() or not self.is_cacheable(question):
            return None
        now = time.time()
        entry = CacheEntry(
            entry_id=new_entry_id(self.id_prefix),
            key=normalize_question(question),
            question=question.strip(),
            payload=answer.strip(),
            embedding=[float(x) for x in embedding],
            created_at=now,
            last_used_at=now,
            updated_at=now,
            corpus_hash=corpus_hash,
            metadata={"document_count": document_count},
        )
        self.entries.append(entry)
        logger.info(f"[CACHE] Response stored (total {len(self.entries)})")
        self._evict(self.config.max_entries)
        self.schedule_save()
        return entry

    def cleanup_old(self, max_age_days: Optional[int] = None) -> int:
        """Remove entries unused for ``max_age_days`` unless they are popular."""
        days = self.config.max_age_days if max_age_days is None else max_age_days
        cutoff = time.time() - days * DAY_SECONDS
        removed = self._remove_where(
            lambda e: e.last_used_at <= cutoff and e.hit_count < self.config.keep_min_hits
        )
        if removed:
            self.schedule_save()
            logger.info(f"[CACHE] Response cleanup: {removed} entries older than {days} days removed")
        return removed

    def invalidate(self, corpus_hash: str) -> int:
        """Drop every entry created for ``corpus_hash``."""
        removed = self._remove_where(lambda e: e.corpus_hash == corpus_hash)
        if removed:
            self.schedule_save()
            logger.info(f"[CACHE] Response invalidation: {removed} entries for {corpus_hash}")
        return removed
