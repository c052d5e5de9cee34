"""
FAQ cache: curated question -> answer pairs matched by embedding.

Matching uses cosine similarity against every enabled entry's question
embedding and keeps the single best match at or above the threshold.
Administrative edits (answer, category, enabled flag) never touch the
hit statistics.
"""

import logging
import time
from dataclasses import dataclass
from typing import Optional

from .base import CacheEntry, SemanticCache, cosine_similarity, new_entry_id, normalize_question

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("question", "answer", "category", "enabled", "embedding")


@dataclass
class FAQCacheConfig:
    """Configuration for the FAQ cache."""
    threshold: float = 0.85
    default_category: str = "general"


@dataclass
class FAQMatch:
    """A FAQ hit."""
    entry: CacheEntry
    similarity: float

    @property
    def answer(self) -> str:
        return self.entry.payload["answer"]

    @property
    def category(self) -> str:
        return self.entry.payload.get("category", "general")


class FAQCache(SemanticCache):
    """Question embedding -> {answer, category, enabled}."""

    store_name = "FAQ cache"
    id_prefix = "faq"

    def __init__(self, path=None, config: Optional[FAQCacheConfig] = None):
        super().__init__(path)
        self.config = config or FAQCacheConfig()

    @staticmethod
    def is_enabled(entry: CacheEntry) -> bool:
        return bool(entry.payload.get("enabled", True))

    def find(self, embedding, threshold: Optional[float] = None) -> Optional[FAQMatch]:
        """Best enabled FAQ whose question is similar enough to ``embedding``."""
        if embedding is None:
            return None
        threshold = self.config.threshold if threshold is None else threshold

        best, best_similarity = None, 0.0
        for entry in self.entries:
            if entry.embedding is None or not self.is_enabled(entry):
                continue
            similarity = cosine_similarity(embedding, entry.embedding)
            if similarity > best_similarity and similarity >= threshold:
                best, best_similarity = entry, similarity

        if best is None:
            self._record_miss()
            return None
        logger.info(f"[CACHE] FAQ HIT ({best_similarity:.2f}): \"{best.question[:60]}\"")
        return FAQMatch(entry=best, similarity=best_similarity)

    def record_hit(self, entry_id: str) -> Optional[CacheEntry]:
        """Count a served FAQ answer."""
        entry = self.get_entry(entry_id)
        if entry is not None:
            self._record_hit(entry)
            self.schedule_save()
        return entry

    def upsert(
        self,
        question: str,
        answer: str,
        embedding: Optional[list[float]] = None,
        category: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> Optional[CacheEntry]:
        """Create a FAQ or update the one with the same normalized question."""
        key = normalize_question(question)
        if not key or not answer:
            return None
        now = time.time()

        for entry in self.entries:
            if entry.key == key:
                entry.payload = {
                    **entry.payload,
                    "answer": answer,
                    "category": category or entry.payload.get("category", self.config.default_category),
                }
                if embedding is not None:
                    entry.embedding = [float(x) for x in embedding]
                entry.updated_at = now
                entry.metadata.update(metadata or {})
                self.schedule_save()
                return entry

        entry = CacheEntry(
            entry_id=new_entry_id(self.id_prefix),
            key=key,
            question=question.strip(),
            payload={
                "answer": answer,
                "category": category or self.config.default_category,
                "enabled": True,
            },
            embedding=[float(x) for x in embedding] if embedding is not None else None,
            created_at=now,
            last_used_at=now,
            updated_at=now,
            metadata=dict(metadata or {}),
        )
        self.entries.append(entry)
        logger.info(f"[CACHE] FAQ created: \"{question[:60]}\" ({entry.payload['category']})")
        self.schedule_save()
        return entry

    def update(self, entry_id: str, **updates) -> Optional[CacheEntry]:
        """Edit question, answer, category, enabled flag or embedding."""
        entry = self.get_entry(entry_id)
        if entry is None:
            return None
        unknown = set(updates) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValueError(f"Cannot update FAQ fields: {sorted(unknown)}")

        if "question" in updates and updates["question"]:
            entry.question = updates["question"].strip()
            entry.key = normalize_question(entry.question)
        if "embedding" in updates and updates["embedding"] is not None:
            entry.embedding = [float(x) for x in updates["embedding"]]
        payload = dict(entry.payload)
        for name in ("answer", "category", "enabled"):
            if name in updates and updates[name] is not None:
                payload[name] = updates[name]
        entry.payload = payload
        entry.updated_at = time.time()
        self.schedule_save()
        return entry

    def set_enabled(self, entry_id: str, enabled: bool) -> Optional[CacheEntry]:
        return self.update(entry_id, enabled=enabled)

    def delete(self, entry_id: str) -> bool:
        removed = self._remove_where(lambda e: e.entry_id == entry_id)
        if removed:
            self.schedule_save()
        return bool(removed)

    def list_entries(self, category: Optional[str] = None, enabled_only: bool = False) -> list[CacheEntry]:
        return [
            e for e in self.entries
            if (category is None or e.payload.get("category") == category)
            and (not enabled_only or self.is_enabled(e))
        ]

    def top(self, limit: int = 10) -> list[CacheEntry]:
        enabled = [e for e in self.entries if self.is_enabled(e)]
        return sorted(enabled, key=lambda e: e.hit_count, reverse=True)[:limit]

    def stats(self, top_n: int = 10) -> dict:
        stats = super().stats(top_n)
        categories: dict[str, dict] = {}
        for entry in self.entries:
            category = entry.payload.get("category", self.config.default_category)
            bucket = categories.setdefault(category, {"count": 0, "hits": 0})
            bucket["count"] += 1
            bucket["hits"] += entry.hit_count
        stats["enabled"] = sum(1 for e in self.entries if self.is_enabled(e))
        stats["categories"] = categories
        return stats
