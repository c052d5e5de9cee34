"""
Error types raised by the retrieval engine.

Input errors never raise (empty input gives empty output) and persistence
errors are logged, so only three failure kinds surface to callers:
- DimensionMismatchError: a vector does not match the index dimension
- EmbeddingError: the embedding provider failed (callers usually degrade)
- CompletionError: the completion provider failed or timed out
"""


class RAGError(Exception):
    """Base class for engine errors."""


class DimensionMismatchError(RAGError, ValueError):
    """Raised when a vector's dimension differs from the index dimension."""

    def __init__(self, expected: int, actual: int, operation: str = "add"):
        self.expected = expected
        self.actual = actual
        self.operation = operation
        super().__init__(
            f"Vector dimension mismatch on {operation}: index holds {expected}-d vectors, got {actual}-d"
        )


class EmbeddingError(RAGError):
    """Raised by embedding providers when a text cannot be embedded."""


class CompletionError(RAGError):
    """Raised when the completion provider fails or times out."""
