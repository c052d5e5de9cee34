"""
Approximate nearest-neighbour index over embeddings.

Vectors live in a dense float32 array; the proximity graph is an arena of
neighbour-id lists indexed by vector id. Below ``linear_threshold`` vectors
(or with the graph disabled) every search is an exact FAISS flat scan.
Once the threshold is reached the graph is built over all vectors and then
extended on every insertion:

- the new node links to its M nearest of the ``min(2M, n-1)`` closest
  existing vectors, and each of those links back
- a neighbour whose degree exceeds M is pruned back to its M closest

Graph search is greedy best-first from a random entry point with a result
set bounded by ``ef``. It is approximate: recall is high for reasonable
``ef`` but the true k nearest are not guaranteed.
"""

import heapq
import json
import logging
import random
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Callable, Optional

import faiss
import numpy as np
from tqdm import tqdm

from ..errors import DimensionMismatchError

logger = logging.getLogger(__name__)

COSINE = "cosine"
EUCLIDEAN = "euclidean"


@dataclass
class VectorIndexConfig:
    """Configuration for the approximate vector index."""
    metric: str = COSINE  # cosine or euclidean
    m: int = 16  # max neighbours per node
    use_graph: bool = True
    linear_threshold: int = 100
    seed: Optional[int] = None

    def __post_init__(self):
        if self.metric not in (COSINE, EUCLIDEAN):
            raise ValueError(f"Unknown metric: {self.metric}")


@dataclass
class VectorHit:
    """A search hit. ``score`` is a similarity for cosine, a distance for euclidean."""
    id: int
    score: float
    distance: float
    metadata: dict = field(default_factory=dict)


class VectorIndex:
    """Vector store with an HNSW-like single-layer proximity graph."""

    def __init__(self, config: Optional[VectorIndexConfig] = None, dimension: Optional[int] = None):
        self.config = config or VectorIndexConfig()
        self.dimension: Optional[int] = None
        self.metadata: list[dict] = []
        self.graph: list[list[int]] = []
        self.graph_built = False
        self._vectors = np.zeros((0, 0), dtype=np.float32)
        self._count = 0
        self._flat: Optional[faiss.Index] = None
        self._rng = random.Random(self.config.seed)
        if dimension is not None:
            self._init_storage(dimension)

    # -------------------------------------------------------------------------
    # Storage
    # -------------------------------------------------------------------------

    def _init_storage(self, dimension: int, capacity: int = 64):
        self.dimension = dimension
        self._vectors = np.zeros((capacity, dimension), dtype=np.float32)
        if self.config.metric == COSINE:
            # Inner product over normalized vectors = cosine similarity
            self._flat = faiss.IndexFlatIP(dimension)
        else:
            self._flat = faiss.IndexFlatL2(dimension)

    def _grow(self, needed: int):
        capacity = self._vectors.shape[0]
        if needed <= capacity:
            return
        new_capacity = max(needed, capacity * 2)
        grown = np.zeros((new_capacity, self.dimension), dtype=np.float32)
        grown[:self._count] = self._vectors[:self._count]
        self._vectors = grown

    def _index_flat(self, vector: np.ndarray):
        row = vector.reshape(1, -1).astype(np.float32)
        if self.config.metric == COSINE:
            row = self._normalize(row)
        self._flat.add(np.ascontiguousarray(row, dtype=np.float32))

    @staticmethod
    def _normalize(vectors: np.ndarray) -> np.ndarray:
        norms = np.linalg.norm(vectors, axis=1, keepdims=True)
        norms[norms == 0] = 1.0
        return vectors / norms

    def _as_vector(self, vector, operation: str) -> np.ndarray:
        arr = np.asarray(vector, dtype=np.float32).reshape(-1)
        if self.dimension is not None and arr.shape[0] != self.dimension:
            raise DimensionMismatchError(self.dimension, arr.shape[0], operation)
        return arr

    def __len__(self) -> int:
        return self._count

    @property
    def vectors(self) -> np.ndarray:
        """View of the stored vectors (n x dimension)."""
        return self._vectors[:self._count]

    def get_vector(self, vector_id: int) -> np.ndarray:
        return self._vectors[vector_id].copy()

    # -------------------------------------------------------------------------
    # Distances
    # -------------------------------------------------------------------------

    def _distances(self, query: np.ndarray, ids) -> np.ndarray:
        """Exact float64 distances from ``query`` to the given vector ids."""
        ids = np.asarray(ids, dtype=np.int64)
        if ids.size == 0:
            return np.zeros(0, dtype=np.float64)
        rows = self._vectors[ids].astype(np.float64)
        q = query.astype(np.float64)
        if self.config.metric == EUCLIDEAN:
            return np.sqrt(((rows - q) ** 2).sum(axis=1))
        norms = np.linalg.norm(rows, axis=1) * np.linalg.norm(q)
        dots = rows @ q
        with np.errstate(divide="ignore", invalid="ignore"):
            sims = np.where(norms > 0, dots / np.where(norms > 0, norms, 1.0), 0.0)
        return 1.0 - sims

    def _to_score(self, distance: float) -> float:
        return 1.0 - distance if self.config.metric == COSINE else distance

    def _find_k_nearest(self, query: np.ndarray, k: int, exclude: Optional[int] = None) -> list[tuple[float, int]]:
        """Exact k nearest by a FAISS flat scan, re-scored in float64."""
        n = self._count if exclude is None else exclude
        if k <= 0 or n <= 0:
            return []
        if n < self._flat.ntotal:
            # Only the first ``n`` vectors are eligible (graph rebuild order)
            distances = self._distances(query, np.arange(n))
            order = np.argsort(distances, kind="stable")[:k]
            return [(float(distances[i]), int(i)) for i in order]

        q = query.reshape(1, -1)
        if self.config.metric == COSINE:
            q = self._normalize(q.copy())
        _, ids = self._flat.search(np.ascontiguousarray(q, dtype=np.float32), min(k, n))
        found = [int(i) for i in ids[0] if i >= 0]
        distances = self._distances(query, found)
        pairs = sorted(zip(distances.tolist(), found))
        return [(float(d), i) for d, i in pairs]

    # -------------------------------------------------------------------------
    # Insertion and graph maintenance
    # -------------------------------------------------------------------------

    def add(self, vector, metadata: Optional[dict] = None) -> int:
        """Add a vector and return its id.

        Raises:
            DimensionMismatchError: If the dimension differs from the first vector's
        """
        arr = self._as_vector(vector, "add")
        if self.dimension is None:
            self._init_storage(arr.shape[0])

        vector_id = self._count
        self._grow(vector_id + 1)
        self._vectors[vector_id] = arr
        self._index_flat(arr)
        self.metadata.append(dict(metadata or {}))
        self._count += 1

        if self.config.use_graph:
            if self.graph_built:
                self._add_to_graph(vector_id)
            elif self._count >= self.config.linear_threshold:
                self.rebuild()
        return vector_id

    def _add_to_graph(self, new_id: int):
        m = self.config.m
        if new_id == 0:
            self.graph = [[]]
            return
        # Only vectors inserted before this one are candidates
        neighbours = self._find_k_nearest(self._vectors[new_id], min(2 * m, new_id), exclude=new_id)
        connections = []
        for _, neighbour_id in neighbours[:m]:
            connections.append(neighbour_id)
            links = self.graph[neighbour_id]
            if new_id not in links:
                links.append(new_id)
            if len(links) > m:
                self._prune(neighbour_id)
        if len(self.graph) <= new_id:
            self.graph.extend([] for _ in range(new_id + 1 - len(self.graph)))
        self.graph[new_id] = connections

    def _prune(self, node_id: int):
        links = self.graph[node_id]
        distances = self._distances(self._vectors[node_id], links)
        order = np.argsort(distances, kind="stable")[:self.config.m]
        self.graph[node_id] = [links[i] for i in order]

    def rebuild(self, show_progress: bool = False):
        """Clear the graph and re-insert every vector in id order."""
        if not self.config.use_graph:
            return
        logger.info(f"[VECTOR] Rebuilding graph over {self._count} vectors...")
        self.graph = []
        ids = range(self._count)
        for vector_id in tqdm(ids, desc="Graph", disable=not show_progress):
            self.graph.append([])
            self._add_to_graph(vector_id)
        self.graph_built = self._count > 0
        logger.info(f"[VECTOR] Graph rebuilt ({self._count} nodes)")

    # -------------------------------------------------------------------------
    # Search
    # -------------------------------------------------------------------------

    def _search_graph(self, query: np.ndarray, k: int, ef: int) -> list[tuple[float, int]]:
        entry = self._rng.randrange(self._count)
        entry_distance = float(self._distances(query, [entry])[0])
        visited = {entry}
        candidates = [(entry_distance, entry)]  # min-heap
        results = [(-entry_distance, entry)]  # max-heap of the ef best

        while candidates:
            distance, current = heapq.heappop(candidates)
            if len(results) >= ef and distance > -results[0][0]:
                break
            fresh = [n for n in self.graph[current] if n not in visited]
            if not fresh:
                continue
            visited.update(fresh)
            for d, neighbour in zip(self._distances(query, fresh).tolist(), fresh):
                heapq.heappush(candidates, (d, neighbour))
                heapq.heappush(results, (-d, neighbour))
                if len(results) > ef:
                    heapq.heappop(results)

        ranked = sorted((-neg, i) for neg, i in results)
        return ranked[:k]

    def search(self, query, k: int = 10, ef: Optional[int] = None) -> list[VectorHit]:
        """Find the k closest vectors.

        Args:
            query: Query vector
            k: Number of results
            ef: Result-set bound for graph search (default ``max(2k, 50)``)

        Returns:
            Hits ordered closest first

        Raises:
            DimensionMismatchError: If the query dimension differs from the index
        """
        arr = self._as_vector(query, "search")
        if self._count == 0:
            return []
        k = min(k, self._count)
        if k <= 0:
            return []
        ef = ef or max(2 * k, 50)

        use_graph = (
            self.config.use_graph
            and self.graph_built
            and self._count >= self.config.linear_threshold
        )
        ranked = self._search_graph(arr, k, ef) if use_graph else self._find_k_nearest(arr, k)
        return [
            VectorHit(id=i, score=self._to_score(d), distance=d, metadata=self.metadata[i])
            for d, i in ranked
        ]

    # -------------------------------------------------------------------------
    # Bulk operations
    # -------------------------------------------------------------------------

    def without(self, predicate: Callable[[dict], bool]) -> "VectorIndex":
        """Copy every vector whose metadata does not match ``predicate`` into a fresh index."""
        return self._copy(self.config, predicate)

    def reconfigured(self, config: VectorIndexConfig) -> "VectorIndex":
        """Copy every vector into a fresh index using ``config``."""
        return self._copy(config, lambda meta: False)

    def _copy(self, config: VectorIndexConfig, predicate: Callable[[dict], bool]) -> "VectorIndex":
        fresh = VectorIndex(VectorIndexConfig(**asdict(config)))
        for vector_id in range(self._count):
            if predicate(self.metadata[vector_id]):
                continue
            fresh._append_raw(self._vectors[vector_id], self.metadata[vector_id])
        if fresh.config.use_graph and len(fresh) >= fresh.config.linear_threshold:
            fresh.rebuild()
        return fresh

    def _append_raw(self, vector: np.ndarray, metadata: dict):
        """Append without touching the graph. An empty index takes the vector's dimension."""
        if self.dimension is None:
            self._init_storage(vector.shape[0])
        vector_id = self._count
        self._grow(vector_id + 1)
        self._vectors[vector_id] = vector
        self._index_flat(vector)
        self.metadata.append(dict(metadata))
        self._count += 1

    def clear(self):
        self.dimension = None
        self.metadata = []
        self.graph = []
        self.graph_built = False
        self._vectors = np.zeros((0, 0), dtype=np.float32)
        self._count = 0
        self._flat = None

    def stats(self) -> dict:
        degrees = [len(links) for links in self.graph]
        return {
            "vector_count": self._count,
            "dimension": self.dimension,
            "metric": self.config.metric,
            "use_graph": self.config.use_graph,
            "graph_built": self.graph_built,
            "avg_connections": round(sum(degrees) / len(degrees), 2) if degrees else 0.0,
            "m": self.config.m,
        }

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def snapshot(self) -> dict:
        """Copy of the full state, safe to write from another thread."""
        return {
            "config": asdict(self.config),
            "dimension": self.dimension,
            "graph_built": self.graph_built,
            "vectors": self.vectors.copy(),
            "metadata": [dict(m) for m in self.metadata],
            "graph": [list(links) for links in self.graph],
        }

    @staticmethod
    def write_snapshot(snapshot: dict, directory: str | Path):
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)

        with open(directory / "config.json", "w", encoding="utf-8") as f:
            json.dump({
                "config": snapshot["config"],
                "dimension": snapshot["dimension"],
                "graph_built": snapshot["graph_built"],
                "vector_count": len(snapshot["metadata"]),
            }, f, indent=2)
        with open(directory / "vectors.npy", "wb") as f:
            np.save(f, snapshot["vectors"])
        with open(directory / "metadata.json", "w", encoding="utf-8") as f:
            json.dump(snapshot["metadata"], f, ensure_ascii=False, indent=2)
        with open(directory / "graph.json", "w", encoding="utf-8") as f:
            json.dump(snapshot["graph"], f)

    def save(self, directory: str | Path):
        """Save vectors, metadata, graph and configuration to ``directory``."""
        self.write_snapshot(self.snapshot(), directory)

    @classmethod
    def load(cls, directory: str | Path) -> "VectorIndex":
        """Load an index saved with ``save``."""
        directory = Path(directory)
        with open(directory / "config.json", "r", encoding="utf-8") as f:
            header = json.load(f)
        with open(directory / "metadata.json", "r", encoding="utf-8") as f:
            metadata = json.load(f)
        graph_path = directory / "graph.json"
        graph = []
        if graph_path.exists():
            with open(graph_path, "r", encoding="utf-8") as f:
                graph = json.load(f)

        index = cls(VectorIndexConfig(**header["config"]))
        # An emptied index forgets its dimension
        if header.get("dimension") is not None and header.get("vector_count", len(metadata)) > 0:
            vectors = np.load(directory / "vectors.npy")
            for vector, meta in zip(vectors, metadata):
                index._append_raw(np.asarray(vector, dtype=np.float32), meta)
        index.graph = [list(links) for links in graph]
        index.graph_built = bool(header.get("graph_built")) and len(index.graph) == len(index)
        return index
