"""
TF-IDF embeddings with feature hashing.

Tokens are weighted by term frequency times inverse document frequency and
accumulated into a fixed-size vector at hash(token) mod D, then L2
normalized. Hash collisions are accepted: the vector stays the same size no
matter how large the vocabulary grows.
"""

import asyncio
import hashlib
import math
import threading
from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass, field
from functools import lru_cache
from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Sequence

import numpy as np

from ..core.config import EMBEDDING_DIMENSION, MIN_TOKEN_LENGTH
from ..util.logging import logger
from .errors import DimensionMismatchError, MalformedEmbeddingError
from .tokenizer import STOP_WORDS, tokenize

VECTOR_DELIMITER = ","


class IEmbeddingProvider(ABC):
    """Abstract interface for embedding providers."""

    @abstractmethod
    def embed_text(self, text: str) -> np.ndarray:
        """Generate embedding vector for given text."""
        pass

    @abstractmethod
    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        pass

    async def embed(self, text: str) -> np.ndarray:
        """Generate an embedding off the event loop."""
        return await asyncio.to_thread(self.embed_text, text)


@dataclass(frozen=True)
class CorpusStatistics:
    """Immutable document-frequency snapshot. Replaced whole, never mutated."""

    document_frequency: Mapping[str, int] = field(default_factory=lambda: MappingProxyType({}))
    total_documents: int = 0

    @classmethod
    def from_documents(cls, documents: Iterable[str]) -> "CorpusStatistics":
        frequency: Dict[str, int] = {}
        total = 0
        for document in documents:
            total += 1
            # A token counts once per document however often it repeats
            for token in set(tokenize(document)):
                frequency[token] = frequency.get(token, 0) + 1
        return cls(MappingProxyType(frequency), total)

    def idf(self, token: str) -> float:
        """ln((N + 1) / (df + 1)) + 1, or 1.0 before any corpus exists."""
        if self.total_documents == 0:
            return 1.0
        docs_with_token = self.document_frequency.get(token, 0)
        return math.log((self.total_documents + 1) / (docs_with_token + 1)) + 1.0

    @property
    def unique_tokens(self) -> int:
        return len(self.document_frequency)


@lru_cache(maxsize=65536)
def _token_digest(token: str) -> int:
    return int.from_bytes(hashlib.md5(token.encode("utf-8")).digest()[:8], "big")


class TfidfHashEmbedding(IEmbeddingProvider):
    """
    TF-IDF feature-hashing embedding model.

    Corpus statistics are held as a single immutable snapshot. rebuild_corpus
    builds a new snapshot and swaps it in under a lock, so an embedding is
    always computed against one complete corpus, never a half-built one.
    """

    def __init__(self, dimension: int = EMBEDDING_DIMENSION):
        if dimension < 1:
            raise ValueError(f"dimension must be >= 1: {dimension}")
        self.dimension = dimension
        self._corpus = CorpusStatistics()
        self._lock = threading.Lock()

    @property
    def corpus(self) -> CorpusStatistics:
        return self._corpus

    def get_dimension(self) -> int:
        return self.dimension

    def bucket(self, token: str) -> int:
        """Vector position for a token."""
        return _token_digest(token) % self.dimension

    def embed_text(self, text: str) -> np.ndarray:
        """Embed text as a unit-length vector, or the zero vector if no tokens survive."""
        tokens = tokenize(text)
        vector = np.zeros(self.dimension, dtype=np.float32)
        if not tokens:
            return vector

        corpus = self._corpus
        total = len(tokens)
        for token, count in Counter(tokens).items():
            tf = count / total
            vector[self.bucket(token)] += tf * corpus.idf(token)

        norm = float(np.linalg.norm(vector))
        if norm > 0.0:
            vector /= norm
        return vector

    def rebuild_corpus(self, documents: Iterable[str]) -> CorpusStatistics:
        """Replace document frequencies and document count from a full document set."""
        snapshot = CorpusStatistics.from_documents(documents)
        with self._lock:
            self._corpus = snapshot

        logger.debug(
            f"Corpus updated: {snapshot.total_documents} documents, {snapshot.unique_tokens} unique tokens"
        )
        return snapshot

    def similarity(self, a: Sequence[float], b: Sequence[float]) -> float:
        return cosine_similarity(a, b)

    def serialize(self, vector: Sequence[float]) -> str:
        return serialize_vector(vector)

    def deserialize(self, value: str) -> np.ndarray:
        return deserialize_vector(value, self.dimension)

    def get_corpus_stats(self) -> Dict[str, int]:
        """Corpus statistics for status reporting."""
        corpus = self._corpus
        return {
            "total_documents": corpus.total_documents,
            "unique_words": corpus.unique_tokens,
            "embedding_dimension": self.dimension,
            "min_word_length": MIN_TOKEN_LENGTH,
            "stop_words_count": len(STOP_WORDS),
        }


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity clamped to [0, 1].

    A zero vector scores 0 against everything, itself included. Vectors of
    different length raise DimensionMismatchError.
    """
    left = np.asarray(a, dtype=np.float64)
    right = np.asarray(b, dtype=np.float64)
    if left.shape != right.shape:
        raise DimensionMismatchError(left.size, right.size)

    denominator = float(np.linalg.norm(left)) * float(np.linalg.norm(right))
    if denominator <= 0.0:
        return 0.0

    score = float(np.dot(left, right)) / denominator
    return min(max(score, 0.0), 1.0)


def serialize_vector(vector: Sequence[float]) -> str:
    """Comma-joined decimal text. repr of a float32 value parses back to the same float32."""
    return VECTOR_DELIMITER.join(repr(float(value)) for value in np.asarray(vector, dtype=np.float32))


def deserialize_vector(value: str, dimension: int = EMBEDDING_DIMENSION) -> np.ndarray:
    """Parse a stored vector, rejecting anything that is not `dimension` finite floats."""
    if value is None or not value.strip():
        raise MalformedEmbeddingError("Empty embedding string")

    try:
        vector = np.array([float(part) for part in value.split(VECTOR_DELIMITER)], dtype=np.float32)
    except ValueError as e:
        raise MalformedEmbeddingError(f"Unparsable embedding: {e}") from e

    if vector.size != dimension:
        raise MalformedEmbeddingError(f"Expected {dimension} components, found {vector.size}")
    if not np.all(np.isfinite(vector)):
        raise MalformedEmbeddingError("Embedding contains non-finite values")
    return vector
