"""
Embedding errors.
"""


class EmbeddingError(Exception):
    """Base class for embedding failures."""


class DimensionMismatchError(EmbeddingError, ValueError):
    """Two vectors of different length were compared. Indicates version skew."""

    def __init__(self, left: int, right: int):
        super().__init__(f"Embeddings must have the same dimension (got {left} and {right})")
        self.left = left
        self.right = right


class MalformedEmbeddingError(EmbeddingError, ValueError):
    """A stored vector string could not be parsed into a valid vector."""
