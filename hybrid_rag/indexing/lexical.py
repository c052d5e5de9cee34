"""
BM25 lexical index over document chunks.

Each document owns a ``DocumentLexicalIndex`` holding one ``LexicalEntry``
per chunk (stemmed tokens, term frequencies and positions). Entries are
rebuilt wholesale when a document changes.

Scoring pools every chunk of every document into one BM25 corpus, so
N, document frequency and average chunk length are cross-document: a
term's idf shifts as unrelated documents are added.
"""

import logging
import math
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from typing import Iterator, Optional

import numpy as np
from rank_bm25 import BM25Okapi

from ..models import Chunk, ChunkType, utc_now_iso
from ..storage import PersistentStore
from .text import TextAnalyzer

logger = logging.getLogger(__name__)


@dataclass
class BM25Config:
    """BM25 parameters."""
    k1: float = 1.5
    b: float = 0.75


@dataclass
class LexicalEntry:
    """Index entry for a single chunk."""
    chunk_id: str
    doc_id: str
    doc_name: str
    chunk_index: int
    type: ChunkType
    text: str
    section: Optional[str] = None
    tokens: list[str] = field(default_factory=list)
    term_freqs: dict[str, int] = field(default_factory=dict)
    positions: dict[str, list[int]] = field(default_factory=dict)
    token_count: int = 0

    @property
    def length(self) -> int:
        return len(self.tokens)

    def to_dict(self) -> dict:
        return {
            "chunk_id": self.chunk_id,
            "doc_id": self.doc_id,
            "doc_name": self.doc_name,
            "chunk_index": self.chunk_index,
            "type": self.type.value,
            "section": self.section,
            "text": self.text,
            "tokens": self.tokens,
            "term_freqs": self.term_freqs,
            "positions": self.positions,
            "length": self.length,
            "token_count": self.token_count,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "LexicalEntry":
        return cls(
            chunk_id=data["chunk_id"],
            doc_id=data["doc_id"],
            doc_name=data.get("doc_name", data["doc_id"]),
            chunk_index=data["chunk_index"],
            type=ChunkType(data.get("type", "content")),
            text=data.get("text", ""),
            section=data.get("section"),
            tokens=list(data.get("tokens", [])),
            term_freqs={k: int(v) for k, v in data.get("term_freqs", {}).items()},
            positions={k: list(v) for k, v in data.get("positions", {}).items()},
            token_count=data.get("token_count", 0),
        )


@dataclass
class DocumentLexicalIndex:
    """All lexical entries of one document, in chunk order."""
    doc_id: str
    doc_name: str
    entries: list[LexicalEntry] = field(default_factory=list)
    indexed_at: str = field(default_factory=utc_now_iso)

    @property
    def total_tokens(self) -> int:
        return sum(e.length for e in self.entries)

    def chunk_type_counts(self) -> dict[str, int]:
        return dict(Counter(e.type.value for e in self.entries))

    def to_dict(self) -> dict:
        return {
            "doc_id": self.doc_id,
            "doc_name": self.doc_name,
            "indexed_at": self.indexed_at,
            "total_chunks": len(self.entries),
            "total_tokens": self.total_tokens,
            "chunk_types": self.chunk_type_counts(),
            "entries": [e.to_dict() for e in self.entries],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "DocumentLexicalIndex":
        return cls(
            doc_id=data["doc_id"],
            doc_name=data.get("doc_name", data["doc_id"]),
            entries=[LexicalEntry.from_dict(e) for e in data.get("entries", [])],
            indexed_at=data.get("indexed_at", ""),
        )


class PooledBM25(BM25Okapi):
    """BM25Okapi with the non-negative idf ``ln((N - df + 0.5)/(df + 0.5) + 1)``."""

    def _calc_idf(self, nd):
        for word, freq in nd.items():
            self.idf[word] = math.log((self.corpus_size - freq + 0.5) / (freq + 0.5) + 1)


class LexicalIndex(PersistentStore):
    """Per-document lexical entries scored as one pooled BM25 corpus."""

    store_name = "lexical index"

    def __init__(
        self,
        path=None,
        analyzer: Optional[TextAnalyzer] = None,
        config: Optional[BM25Config] = None,
    ):
        super().__init__(path)
        self.analyzer = analyzer or TextAnalyzer()
        self.config = config or BM25Config()
        self.documents: dict[str, DocumentLexicalIndex] = {}
        self._scorer: Optional[PooledBM25] = None
        self._scorer_entries: list[LexicalEntry] = []
        self._dirty = True

    # -------------------------------------------------------------------------
    # Building
    # -------------------------------------------------------------------------

    def build_entry(self, doc_id: str, doc_name: str, chunk: Chunk) -> LexicalEntry:
        """Analyze one chunk into an index entry."""
        tokens = self.analyzer.analyze(chunk.text)
        positions: dict[str, list[int]] = defaultdict(list)
        for pos, token in enumerate(tokens):
            positions[token].append(pos)
        return LexicalEntry(
            chunk_id=f"{doc_id}-chunk-{chunk.index}",
            doc_id=doc_id,
            doc_name=doc_name,
            chunk_index=chunk.index,
            type=chunk.type,
            text=chunk.text,
            section=chunk.section,
            tokens=tokens,
            term_freqs=dict(Counter(tokens)),
            positions=dict(positions),
            token_count=chunk.token_count,
        )

    def index_document(self, doc_id: str, doc_name: str, chunks: list[Chunk]) -> DocumentLexicalIndex:
        """Replace a document's entries with entries built from ``chunks``.

        Args:
            doc_id: Document identifier
            doc_name: Display name
            chunks: Chunks in reading order (may be empty)

        Returns:
            The document's new lexical index
        """
        doc_index = DocumentLexicalIndex(
            doc_id=doc_id,
            doc_name=doc_name,
            entries=[self.build_entry(doc_id, doc_name, c) for c in chunks],
        )
        self.documents[doc_id] = doc_index
        self._dirty = True
        logger.info(f"[LEXICAL] Indexed {doc_id}: {len(doc_index.entries)} chunks, {doc_index.total_tokens} terms")
        self.schedule_save()
        return doc_index

    def remove_document(self, doc_id: str) -> bool:
        if self.documents.pop(doc_id, None) is None:
            return False
        self._dirty = True
        logger.info(f"[LEXICAL] Removed {doc_id}")
        self.schedule_save()
        return True

    def clear(self):
        self.documents.clear()
        self._dirty = True
        self.schedule_save()

    # -------------------------------------------------------------------------
    # Access
    # -------------------------------------------------------------------------

    def __len__(self) -> int:
        return sum(len(d.entries) for d in self.documents.values())

    def __contains__(self, doc_id: str) -> bool:
        return doc_id in self.documents

    def get_document(self, doc_id: str) -> Optional[DocumentLexicalIndex]:
        return self.documents.get(doc_id)

    def iter_entries(self) -> Iterator[LexicalEntry]:
        for doc_index in self.documents.values():
            yield from doc_index.entries

    # -------------------------------------------------------------------------
    # Scoring
    # -------------------------------------------------------------------------

    def _ensure_scorer(self) -> Optional[PooledBM25]:
        if not self._dirty:
            return self._scorer
        entries = list(self.iter_entries())
        self._scorer_entries = entries
        # BM25Okapi divides by the corpus size and the average length
        if entries and any(e.length for e in entries):
            self._scorer = PooledBM25(
                [e.tokens for e in entries],
                k1=self.config.k1,
                b=self.config.b,
            )
        else:
            self._scorer = None
        self._dirty = False
        return self._scorer

    def idf(self, term: str) -> float:
        scorer = self._ensure_scorer()
        if scorer is None:
            return 0.0
        return scorer.idf.get(term, 0.0)

    def average_length(self) -> float:
        scorer = self._ensure_scorer()
        return float(scorer.avgdl) if scorer is not None else 0.0

    def score_terms(self, terms: list[str]) -> list[tuple[LexicalEntry, float, list[str]]]:
        """Raw BM25 scores of every entry matching at least one term.

        Args:
            terms: Stemmed query terms

        Returns:
            (entry, raw score, matched terms) in index order
        """
        if not terms:
            return []
        scorer = self._ensure_scorer()
        if scorer is None:
            return []

        scores = np.asarray(scorer.get_scores(terms), dtype=np.float64)
        results = []
        for entry, score in zip(self._scorer_entries, scores):
            matched = [t for t in terms if t in entry.term_freqs]
            if matched:
                results.append((entry, float(score), matched))
        return results

    def score_query(self, query: str) -> list[tuple[LexicalEntry, float, list[str]]]:
        return self.score_terms(self.analyzer.query_terms(query))

    def stats(self) -> dict:
        scorer = self._ensure_scorer()
        return {
            "documents": len(self.documents),
            "chunks": len(self),
            "vocabulary": len(scorer.idf) if scorer is not None else 0,
            "avg_chunk_length": round(self.average_length(), 2),
            "k1": self.config.k1,
            "b": self.config.b,
        }

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def to_payload(self) -> dict:
        return {doc_id: d.to_dict() for doc_id, d in self.documents.items()}

    def from_payload(self, payload: dict):
        self.documents = {
            doc_id: DocumentLexicalIndex.from_dict(data) for doc_id, data in payload.items()
        }
        self._dirty = True
