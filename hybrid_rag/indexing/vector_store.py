"""
Chunk-level vector store built on ``VectorIndex``.

Keeps one vector per embedded chunk with ``doc_id``/``chunk`` metadata,
removes a document by copying the remaining vectors into a fresh index,
and rebuilds the proximity graph every ``rebuild_interval`` insertions.
"""

import logging
from pathlib import Path
from typing import Optional

from ..errors import DimensionMismatchError
from ..models import Chunk, ChunkType, SearchResult
from ..storage import PersistentStore
from .vector_index import VectorIndex, VectorIndexConfig

logger = logging.getLogger(__name__)


class ChunkVectorStore(PersistentStore):
    """Vector index over chunk embeddings, persisted as a directory."""

    store_name = "vector store"

    def __init__(
        self,
        path: Optional[str | Path] = None,
        config: Optional[VectorIndexConfig] = None,
        rebuild_interval: int = 1000,
    ):
        super().__init__(path)
        self.config = config or VectorIndexConfig()
        self.rebuild_interval = rebuild_interval
        self.index = VectorIndex(self.config)

    def __len__(self) -> int:
        return len(self.index)

    @property
    def dimension(self) -> Optional[int]:
        return self.index.dimension

    def index_document_chunks(
        self,
        doc_id: str,
        doc_name: str,
        chunks: list[Chunk],
        embeddings: list[Optional[list[float]]],
    ) -> int:
        """Append embedded chunks of a document.

        Chunks whose embedding is None are skipped.

        Returns:
            Number of vectors added

        Raises:
            DimensionMismatchError: If an embedding does not match the index
        """
        added = 0
        for chunk, embedding in zip(chunks, embeddings):
            if embedding is None:
                continue
            before = len(self.index)
            self.index.add(embedding, {
                "doc_id": doc_id,
                "doc_name": doc_name,
                "chunk_index": chunk.index,
                "type": chunk.type.value,
                "section": chunk.section,
                "text": chunk.text,
                "meta": dict(chunk.metadata),
            })
            added += 1
            # Incremental insertion never revisits older nodes
            if self.index.graph_built and (before + 1) % self.rebuild_interval == 0:
                logger.info(f"[VECTOR] {before + 1} vectors, periodic rebuild")
                self.index.rebuild()

        if added:
            logger.info(f"[VECTOR] Indexed {added} chunk vectors for {doc_id} (total {len(self.index)})")
            self.schedule_save()
        return added

    def search_similar_chunks(self, query_embedding, k: int = 10, ef: Optional[int] = None) -> list[SearchResult]:
        """Most similar chunks to a query embedding.

        Raises:
            DimensionMismatchError: If the query does not match the index
        """
        if query_embedding is None or len(self.index) == 0:
            return []
        results = []
        for hit in self.index.search(query_embedding, k=k, ef=ef):
            meta = hit.metadata
            results.append(SearchResult(
                doc_id=meta.get("doc_id", ""),
                doc_name=meta.get("doc_name", ""),
                chunk_id=f"{meta.get('doc_id', '')}-vec-{hit.id}",
                chunk_index=meta.get("chunk_index", 0),
                type=ChunkType(meta.get("type", "content")),
                text=meta.get("text", ""),
                score=hit.score,
                section=meta.get("section"),
                raw_score=hit.distance,
                metadata=dict(meta.get("meta", {})),
            ))
        return results

    def document_ids(self) -> set[str]:
        return {m.get("doc_id") for m in self.index.metadata if m.get("doc_id")}

    def check_dimension(self, embeddings: list[Optional[list[float]]], replacing: Optional[str] = None):
        """Fail before any mutation if ``embeddings`` cannot be added.

        Vectors of ``replacing`` are ignored since they are about to be removed;
        an index left empty accepts any dimension.

        Raises:
            DimensionMismatchError: If an embedding does not match the surviving vectors
        """
        expected = self.index.dimension
        if expected is not None and replacing is not None:
            survivors = sum(1 for m in self.index.metadata if m.get("doc_id") != replacing)
            if survivors == 0:
                expected = None
        for embedding in embeddings:
            if embedding is None:
                continue
            actual = len(embedding)
            if expected is None:
                expected = actual
            elif actual != expected:
                raise DimensionMismatchError(expected, actual, "add")

    def remove_document(self, doc_id: str) -> int:
        """Drop every vector of a document. Returns the number removed."""
        before = len(self.index)
        self.index = self.index.without(lambda meta: meta.get("doc_id") == doc_id)
        removed = before - len(self.index)
        if removed:
            logger.info(f"[VECTOR] Removed {removed} vectors of {doc_id}")
            self.schedule_save()
        return removed

    def rebuild(self, show_progress: bool = False) -> bool:
        if len(self.index) == 0:
            logger.info("[VECTOR] Nothing to rebuild")
            return False
        self.index.rebuild(show_progress=show_progress)
        self.schedule_save()
        return True

    def clear(self):
        self.index = VectorIndex(self.config)
        self.schedule_save()

    def stats(self) -> dict:
        stats = self.index.stats()
        stats["unique_documents"] = len(self.document_ids())
        stats["total_chunks"] = len(self.index)
        stats["rebuild_interval"] = self.rebuild_interval
        return stats

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def to_payload(self) -> dict:
        return self.index.snapshot()

    def from_payload(self, payload: VectorIndex):
        if payload.config != self.config:
            logger.warning(
                f"[VECTOR] Saved index config {payload.config} differs from {self.config}, re-indexing"
            )
            payload = payload.reconfigured(self.config)
        self.index = payload

    def _exists(self) -> bool:
        return self.path is not None and (self.path / "config.json").exists()

    def _write_payload(self, payload: dict):
        VectorIndex.write_snapshot(payload, self.path)

    def _read_payload(self) -> VectorIndex:
        return VectorIndex.load(self.path)
