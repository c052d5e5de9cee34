"""
Shared fixtures: deterministic providers and a temporary engine.
"""

import hashlib
import re

import pytest

from hybrid_rag.engine import build_engine
from hybrid_rag.errors import CompletionError, EmbeddingError
from hybrid_rag.indexing import EmbeddingProvider, normalize_text
from hybrid_rag.models import Document
from hybrid_rag.retrieval import CompletionProvider

EMBEDDING_DIM = 64
WORD = re.compile(r"\w+")


class HashingEmbedder(EmbeddingProvider):
    """Bag-of-words vectors: identical texts embed identically."""

    def __init__(self, dimension: int = EMBEDDING_DIM):
        self.dimension = dimension
        self.calls = 0

    async def embed(self, text):
        self.calls += 1
        vector = [0.0] * self.dimension
        for token in WORD.findall(normalize_text(text)):
            vector[int(hashlib.md5(token.encode("utf-8")).hexdigest(), 16) % self.dimension] += 1.0
        return vector if any(vector) else None


class FailingEmbedder(EmbeddingProvider):
    async def embed(self, text):
        raise EmbeddingError("embedding provider down")


class RecordingCompletion(CompletionProvider):
    """Returns a fixed answer and records every prompt."""

    def __init__(self, answer: str = "Respuesta generada"):
        self.answer = answer
        self.calls: list[tuple[str, str]] = []

    async def complete(self, system_prompt, user_prompt):
        self.calls.append((system_prompt, user_prompt))
        return self.answer


class FailingCompletion(CompletionProvider):
    def __init__(self):
        self.calls = 0

    async def complete(self, system_prompt, user_prompt):
        self.calls += 1
        raise CompletionError("model unavailable")


@pytest.fixture
def embedder():
    return HashingEmbedder()


@pytest.fixture
def failing_embedder():
    return FailingEmbedder()


@pytest.fixture
def completion():
    return RecordingCompletion()


@pytest.fixture
def failing_completion():
    return FailingCompletion()


@pytest.fixture
def schedule_doc():
    return Document(
        doc_id="doc-a",
        name="horarios.txt",
        text="# Horarios de Clase\nCálculo I: Lunes 8-10am, Aula 301",
        updated_at="2026-01-01T00:00:00+00:00",
    )


@pytest.fixture
def scholarship_doc():
    return Document(
        doc_id="doc-b",
        name="becas.txt",
        text=(
            "BECAS Y APOYOS\n"
            "La beca de excelencia cubre el 50% de la matrícula.\n"
            "Las solicitudes de apoyo económico se entregan en bienestar universitario."
        ),
        updated_at="2026-01-01T00:00:00+00:00",
    )


@pytest.fixture
def engine(tmp_path, embedder, completion):
    return build_engine(
        embedding_provider=embedder,
        completion_provider=completion,
        data_dir=tmp_path / "data",
    )
