"""
Embedding reuse cache keyed by question text.

Lookup tries an exact match on the normalized text, then the best
token-set Jaccard match at or above the threshold. Hits update counters in
memory only; the store is persisted on the next insertion or flush.
"""

import logging
import time
from dataclasses import dataclass
from typing import Optional

from .base import DAY_SECONDS, CacheEntry, SemanticCache, new_entry_id, normalize_question

logger = logging.getLogger(__name__)


@dataclass
class EmbeddingCacheConfig:
    """Configuration for the embedding cache."""
    threshold: float = 0.95
    max_entries: int = 5000
    trim_to: int = 4000
    max_length_ratio: float = 0.5
    max_age_days: int = 90


def text_similarity(a: str, b: str, max_length_ratio: float = 0.5) -> float:
    """Token-set Jaccard similarity of two normalized texts.

    Returns 0.0 without comparing when their lengths differ by more than
    ``max_length_ratio`` of the longer one.
    """
    if a == b:
        return 1.0
    if abs(len(a) - len(b)) > max(len(a), len(b)) * max_length_ratio:
        return 0.0
    set_a, set_b = set(a.split()), set(b.split())
    union = set_a | set_b
    if not union:
        return 0.0
    return len(set_a & set_b) / len(union)


class EmbeddingCache(SemanticCache):
    """Question text -> embedding vector."""

    store_name = "embedding cache"
    id_prefix = "emb"
    cost_per_hit = 0.00002

    def __init__(self, path=None, config: Optional[EmbeddingCacheConfig] = None):
        super().__init__(path)
        self.config = config or EmbeddingCacheConfig()
        self._by_key: dict[str, CacheEntry] = {}

    def _reindex(self):
        self._by_key = {e.key: e for e in self.entries}

    def get(self, text: str) -> Optional[list[float]]:
        """Cached embedding for ``text`` or a near-identical question."""
        key = normalize_question(text)
        if not key:
            return None

        entry = self._by_key.get(key)
        if entry is not None:
            self._record_hit(entry)
            logger.info(f"[CACHE] Embedding HIT (exact): \"{text[:60]}\"")
            return entry.payload

        best, best_similarity = None, 0.0
        for candidate in self.entries:
            similarity = text_similarity(key, candidate.key, self.config.max_length_ratio)
            if similarity > best_similarity and similarity >= self.config.threshold:
                best, best_similarity = candidate, similarity
        if best is not None:
            self._record_hit(best)
            logger.info(f"[CACHE] Embedding HIT ({best_similarity:.1%} similar): \"{text[:60]}\"")
            return best.payload

        self._record_miss()
        return None

    def put(self, text: str, embedding: list[float]) -> Optional[CacheEntry]:
        """Store an embedding; an existing entry with the same normalized text is updated."""
        key = normalize_question(text)
        if not key or embedding is None:
            return None
        embedding = [float(x) for x in embedding]
        now = time.time()

        entry = self._by_key.get(key)
        if entry is not None:
            entry.payload = embedding
            entry.updated_at = now
        else:
            entry = CacheEntry(
                entry_id=new_entry_id(self.id_prefix),
                key=key,
                question=text,
                payload=embedding,
                created_at=now,
                last_used_at=now,
                updated_at=now,
            )
            self.entries.append(entry)
            self._by_key[key] = entry

        if self._evict(self.config.max_entries, self.config.trim_to):
            self._reindex()
        self.schedule_save()
        return entry

    def cleanup_old(self, max_age_days: Optional[int] = None) -> dict:
        """Remove entries unused for ``max_age_days`` (default 90)."""
        days = self.config.max_age_days if max_age_days is None else max_age_days
        cutoff = time.time() - days * DAY_SECONDS
        removed = self._remove_where(lambda e: (e.last_used_at or e.created_at) < cutoff)
        if removed:
            self._reindex()
            self.schedule_save()
            logger.info(f"[CACHE] Embedding cleanup: {removed} entries older than {days} days removed")
        return {"removed": removed, "remaining": len(self.entries)}

    def clear(self) -> int:
        removed = super().clear()
        self._by_key = {}
        return removed

    def from_payload(self, payload: dict):
        super().from_payload(payload)
        self._reindex()
