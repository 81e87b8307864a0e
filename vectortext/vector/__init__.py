"""
Embedding model, corpus statistics, embedding index and retrieval engine.
"""

# Package initialization for vector module
from .corpus import CorpusStore
from .embeddings import (
    CorpusStatistics,
    IEmbeddingProvider,
    TfidfHashEmbedding,
    cosine_similarity,
    deserialize_vector,
    serialize_vector,
)
from .errors import DimensionMismatchError, EmbeddingError, MalformedEmbeddingError
from .index import IEmbeddingIndex, SimpleInMemoryEmbeddingIndex, SqliteEmbeddingIndex
from .retrieval import NOT_INDEXED_MESSAGE, ResultKind, RetrievalEngine, SearchResult
from .tokenizer import STOP_WORDS, tokenize

__all__ = [
    'CorpusStore',
    'CorpusStatistics',
    'IEmbeddingProvider',
    'TfidfHashEmbedding',
    'cosine_similarity',
    'deserialize_vector',
    'serialize_vector',
    'DimensionMismatchError',
    'EmbeddingError',
    'MalformedEmbeddingError',
    'IEmbeddingIndex',
    'SimpleInMemoryEmbeddingIndex',
    'SqliteEmbeddingIndex',
    'NOT_INDEXED_MESSAGE',
    'ResultKind',
    'RetrievalEngine',
    'SearchResult',
    'STOP_WORDS',
    'tokenize',
]
