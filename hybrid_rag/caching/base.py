"""
Shared cache entry model and behaviour.

The embedding, FAQ and response caches all hold an ordered list of
``CacheEntry`` objects, update ``hit_count``/``last_used_at`` on hits,
evict by usage on overflow and persist through ``PersistentStore``.
"""

import logging
import re
import time
import unicodedata
import uuid
from dataclasses import dataclass, field
from typing import Any, Optional

import numpy as np

from ..storage import PersistentStore

logger = logging.getLogger(__name__)

DAY_SECONDS = 24 * 60 * 60
NON_WORD = re.compile(r"[^\w\s]")


def normalize_question(text: str) -> str:
    """Case-fold, strip diacritics and punctuation, collapse whitespace."""
    decomposed = unicodedata.normalize("NFD", str(text or "").lower())
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return " ".join(NON_WORD.sub(" ", stripped).split())


def cosine_similarity(a, b) -> float:
    """Cosine similarity; 0.0 for mismatched lengths or zero vectors."""
    if a is None or b is None:
        return 0.0
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape or va.size == 0:
        return 0.0
    magnitude = np.linalg.norm(va) * np.linalg.norm(vb)
    if magnitude == 0:
        return 0.0
    return float(va @ vb / magnitude)


def new_entry_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


@dataclass
class CacheEntry:
    """A cached item.

    ``key`` is the normalized question text; similarity caches also keep
    the question ``embedding``. ``payload`` is an embedding, an answer text
    or a dict depending on the cache.
    """
    entry_id: str
    key: str
    question: str
    payload: Any
    embedding: Optional[list[float]] = None
    hit_count: int = 0
    created_at: float = field(default_factory=time.time)
    last_used_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)
    corpus_hash: Optional[str] = None
    metadata: dict = field(default_factory=dict)

    def touch(self, now: Optional[float] = None):
        self.hit_count += 1
        self.last_used_at = now or time.time()

    def to_dict(self) -> dict:
        return {
            "entry_id": self.entry_id,
            "key": self.key,
            "question": self.question,
            "payload": self.payload,
            "embedding": self.embedding,
            "hit_count": self.hit_count,
            "created_at": self.created_at,
            "last_used_at": self.last_used_at,
            "updated_at": self.updated_at,
            "corpus_hash": self.corpus_hash,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CacheEntry":
        created = data.get("created_at", time.time())
        return cls(
            entry_id=data["entry_id"],
            key=data.get("key", ""),
            question=data.get("question", ""),
            payload=data.get("payload"),
            embedding=data.get("embedding"),
            hit_count=data.get("hit_count", 0),
            created_at=created,
            last_used_at=data.get("last_used_at", created),
            updated_at=data.get("updated_at", created),
            corpus_hash=data.get("corpus_hash"),
            metadata=dict(data.get("metadata", {})),
        )


class SemanticCache(PersistentStore):
    """Base class: entry list, hit/miss counters, eviction and statistics."""

    store_name = "cache"
    id_prefix = "entry"
    cost_per_hit = 0.0

    def __init__(self, path=None):
        super().__init__(path)
        self.entries: list[CacheEntry] = []
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self.entries)

    def get_entry(self, entry_id: str) -> Optional[CacheEntry]:
        for entry in self.entries:
            if entry.entry_id == entry_id:
                return entry
        return None

    def _record_hit(self, entry: CacheEntry):
        entry.touch()
        self.hits += 1

    def _record_miss(self):
        self.misses += 1

    def _evict(self, max_entries: int, retain: Optional[int] = None) -> int:
        """Keep the most used entries once the store exceeds ``max_entries``.

        Entries are ranked by hit count, then recency. Returns the number evicted.
        """
        if len(self.entries) <= max_entries:
            return 0
        keep = max_entries if retain is None else min(retain, max_entries)
        self.entries.sort(key=lambda e: (e.hit_count, e.last_used_at), reverse=True)
        evicted = len(self.entries) - keep
        del self.entries[keep:]
        logger.info(f"[CACHE] {self.store_name}: evicted {evicted} entries (limit {max_entries})")
        return evicted

    def _remove_where(self, predicate) -> int:
        before = len(self.entries)
        self.entries = [e for e in self.entries if not predicate(e)]
        return before - len(self.entries)

    def clear(self) -> int:
        removed = len(self.entries)
        self.entries = []
        self.schedule_save()
        logger.info(f"[CACHE] {self.store_name}: cleared {removed} entries")
        return removed

    def top_entries(self, limit: int = 10) -> list[CacheEntry]:
        used = [e for e in self.entries if e.hit_count > 0]
        return sorted(used, key=lambda e: e.hit_count, reverse=True)[:limit]

    def stats(self, top_n: int = 10) -> dict:
        lookups = self.hits + self.misses
        return {
            "entries": len(self.entries),
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": round(self.hits / lookups, 4) if lookups else 0.0,
            "entry_hits": sum(e.hit_count for e in self.entries),
            "estimated_savings": round(self.hits * self.cost_per_hit, 6),
            "top_entries": [
                {"question": e.question[:100], "hit_count": e.hit_count, "last_used_at": e.last_used_at}
                for e in self.top_entries(top_n)
            ],
        }

    def to_payload(self) -> dict:
        return {
            "stats": {"hits": self.hits, "misses": self.misses},
            "entries": [e.to_dict() for e in self.entries],
        }

    def from_payload(self, payload: dict):
        self.entries = [CacheEntry.from_dict(e) for e in payload.get("entries", [])]
        stats = payload.get("stats", {})
        self.hits = stats.get("hits", 0)
        self.misses = stats.get("misses", 0)
