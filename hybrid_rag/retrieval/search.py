"""
Hierarchical (title-first) search over the lexical index.

Raw BM25 scores are boosted by chunk type, normalized into [0, 1) with
``score / (1 + score)`` and split into a title/header bucket and a content
bucket. The title bucket always comes first, so a matching heading ranks
ahead of matching content whatever their raw scores.
"""

import logging
from typing import Optional

from ..indexing import LexicalIndex
from ..models import ContextBundle, SearchResult
from .config import SearchConfig
from .intent import is_list_query

logger = logging.getLogger(__name__)


def normalize_score(score: float) -> float:
    """Map a non-negative score into [0, 1)."""
    return min(1.0, score / (1.0 + score))


class HierarchicalSearcher:
    """Title-first ranking of chunks across every indexed document."""

    def __init__(self, lexical_index: LexicalIndex, config: Optional[SearchConfig] = None):
        self.lexical_index = lexical_index
        self.config = config or SearchConfig()

    def top_k_for(self, query: str) -> int:
        return self.config.list_top_k if is_list_query(query) else self.config.top_k

    def search(self, query: str, top_k: Optional[int] = None) -> list[SearchResult]:
        """Rank chunks for a query.

        Args:
            query: Natural-language question
            top_k: Maximum results (default depends on list-style detection)

        Returns:
            Results above the relevance floor, title bucket first
        """
        if not query or not query.strip():
            return []
        terms = self.lexical_index.analyzer.query_terms(query)
        if not terms:
            return []
        top_k = top_k or self.top_k_for(query)

        title_bucket: list[SearchResult] = []
        content_bucket: list[SearchResult] = []
        for entry, raw_score, matched in self.lexical_index.score_terms(terms):
            if len(terms) >= self.config.multi_term_threshold and len(matched) < self.config.min_matched_terms:
                continue
            boosted = raw_score * self.config.type_boosts.get(entry.type, 1.0)
            result = SearchResult(
                doc_id=entry.doc_id,
                doc_name=entry.doc_name,
                chunk_id=entry.chunk_id,
                chunk_index=entry.chunk_index,
                type=entry.type,
                text=entry.text,
                score=normalize_score(boosted),
                section=entry.section,
                raw_score=raw_score,
                matched_terms=matched,
            )
            (title_bucket if entry.type.is_heading else content_bucket).append(result)

        title_bucket.sort(key=lambda r: r.score, reverse=True)
        content_bucket.sort(key=lambda r: r.score, reverse=True)
        ranked = [r for r in title_bucket + content_bucket if r.score >= self.config.relevance_floor]

        top_score = f"{ranked[0].score:.3f}" if ranked else "-"
        logger.info(f"[SEARCH] \"{query[:60]}\" terms={terms} -> {len(ranked)} results (top {top_score})")
        return ranked[:top_k]

    def build_context(self, results: list[SearchResult], window: Optional[int] = None) -> ContextBundle:
        """Top result plus its neighbouring chunks, in document order.

        Args:
            results: Ranked search results
            window: Chunks to include on each side of the top result

        Returns:
            Context text and up to ``max_citations`` results as sources
        """
        if not results:
            return ContextBundle(text="")
        window = self.config.context_window if window is None else window
        top = results[0]
        doc_index = self.lexical_index.get_document(top.doc_id)
        if doc_index is None:
            return ContextBundle(text="")

        start = max(0, top.chunk_index - window)
        end = min(len(doc_index.entries), top.chunk_index + window + 1)
        texts = [e.text for e in doc_index.entries[start:end]]
        return ContextBundle(
            text="\n".join(texts).strip(),
            sources=results[:self.config.max_citations],
        )
