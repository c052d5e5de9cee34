"""
Embedding providers.

- EmbeddingProvider: async interface ``embed(text) -> vector | None``
- SentenceTransformerEmbedder: local sentence-transformers model, run in a
  worker thread with a bounded timeout
- CachingEmbedder: fronts a provider with the embedding reuse cache and
  turns provider failures into ``None`` (no semantic signal)
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional

import numpy as np

from ..caching import EmbeddingCache
from ..errors import EmbeddingError

logger = logging.getLogger(__name__)

MAX_EMBED_CHARS = 4000


class EmbeddingProvider(ABC):
    """Produces fixed-dimension embeddings."""

    @abstractmethod
    async def embed(self, text: str) -> Optional[list[float]]:
        """Embed one text. May raise ``EmbeddingError`` or return None."""

    async def embed_many(self, texts: list[str]) -> list[Optional[list[float]]]:
        """Embed several texts (sequentially unless overridden)."""
        return [await self.embed(text) for text in texts]


class SentenceTransformerEmbedder(EmbeddingProvider):
    """Embeddings from a local sentence-transformers model."""

    def __init__(
        self,
        model_name: str = "sentence-transformers/paraphrase-multilingual-MiniLM-L12-v2",
        device: Optional[str] = None,
        timeout: float = 20.0,
        batch_size: int = 32,
    ):
        """Initialize the embedder with a sentence transformer model.

        Args:
            model_name: Name of the sentence transformer model
            device: Device to use ('cpu', 'cuda', or None for auto)
            timeout: Seconds before a call is treated as failed
            batch_size: Batch size for ``embed_many``
        """
        from sentence_transformers import SentenceTransformer

        logger.info(f"Loading embedding model: {model_name}...")
        self.model_name = model_name
        self.model = SentenceTransformer(model_name, device=device)
        self.embedding_dim = self.model.get_sentence_embedding_dimension()
        self.timeout = timeout
        self.batch_size = batch_size
        logger.info(f"Model loaded. Embedding dimension: {self.embedding_dim}")

    def _encode(self, texts: list[str]) -> np.ndarray:
        return self.model.encode(
            [t[:MAX_EMBED_CHARS] for t in texts],
            convert_to_numpy=True,
            batch_size=self.batch_size,
            show_progress_bar=False,
        )

    async def embed(self, text: str) -> Optional[list[float]]:
        if not text or not text.strip():
            return None
        vectors = await self._run([text])
        return vectors[0]

    async def embed_many(self, texts: list[str]) -> list[Optional[list[float]]]:
        if not texts:
            return []
        return await self._run(texts)

    async def _run(self, texts: list[str]) -> list[list[float]]:
        try:
            vectors = await asyncio.wait_for(asyncio.to_thread(self._encode, texts), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise EmbeddingError(f"Embedding timed out after {self.timeout}s") from e
        except Exception as e:
            raise EmbeddingError(f"Embedding failed: {e}") from e
        return [v.astype(float).tolist() for v in vectors]


class CachingEmbedder:
    """Embedding provider fronted by the embedding cache.

    Failures and timeouts are logged and returned as None so callers can
    skip the semantic layer instead of failing the request.
    """

    def __init__(self, provider: EmbeddingProvider, cache: Optional[EmbeddingCache] = None):
        self.provider = provider
        self.cache = cache

    async def embed(self, text: str) -> Optional[list[float]]:
        if not text or not text.strip():
            return None
        if self.cache is not None:
            cached = self.cache.get(text)
            if cached is not None:
                return cached
        try:
            embedding = await self.provider.embed(text)
        except Exception as e:
            logger.warning(f"[EMBED] Embedding unavailable, skipping semantic layer: {e}")
            return None
        if embedding is not None and self.cache is not None:
            self.cache.put(text, embedding)
        return embedding

    async def embed_many(self, texts: list[str]) -> list[Optional[list[float]]]:
        """Embed chunk texts without caching them; None for the whole batch on failure."""
        try:
            return await self.provider.embed_many(texts)
        except Exception as e:
            logger.warning(f"[EMBED] Batch embedding failed for {len(texts)} texts: {e}")
            return [None] * len(texts)
