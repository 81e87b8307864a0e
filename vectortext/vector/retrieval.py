"""
Semantic message retrieval.

1. Embed the query with the shared embedding model
2. Scan stored message embeddings (all at once, or page by page)
3. Score each by cosine similarity and keep those at or above the threshold
4. Rank by similarity, then newer first, then higher id
5. Format the top results for display, or pack them into a bounded context block

Every call is independent. Search never raises to its caller: an empty
index yields a "not indexed" entry and a failure yields an error entry.
"""

import asyncio
import heapq
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterable, List, Optional, Tuple

import numpy as np

from ..core.config import (
    DEFAULT_CONTEXT_LENGTH,
    DEFAULT_CONTEXT_RESULTS,
    DEFAULT_MAX_RESULTS,
    DEFAULT_SEARCH_BATCH_SIZE,
    DEFAULT_SIMILARITY_THRESHOLD,
    EXCERPT_LENGTH,
)
from ..core.schema import Message
from ..util.logging import logger
from .embeddings import TfidfHashEmbedding
from .errors import MalformedEmbeddingError
from .index import IEmbeddingIndex

NOT_INDEXED_MESSAGE = "No messages have been indexed yet. Please wait for indexing to complete."
CONTEXT_HEADER = "Relevant messages:\n\n"
DATE_FORMAT = "%b %d, %Y at %I:%M %p"


class ResultKind(str, Enum):
    MATCH = "match"
    NOT_INDEXED = "not_indexed"
    ERROR = "error"


@dataclass(frozen=True)
class SearchResult:
    """One entry of a search response: a formatted match, or an explanation."""

    kind: ResultKind
    text: str
    message_id: Optional[int] = None
    thread_id: Optional[int] = None
    sender: Optional[str] = None
    timestamp: Optional[int] = None
    similarity: Optional[float] = None

    @property
    def is_match(self) -> bool:
        return self.kind == ResultKind.MATCH

    @property
    def relevance(self) -> Optional[int]:
        if self.similarity is None:
            return None
        return int(self.similarity * 100)

    def to_dict(self) -> dict:
        return {
            "message_id": self.message_id,
            "thread_id": self.thread_id,
            "sender": self.sender,
            "timestamp": self.timestamp,
            "relevance": self.relevance,
            "similarity": self.similarity,
            "text": self.text,
        }


@dataclass(frozen=True)
class _Candidate:
    message: Message
    similarity: float

    @property
    def rank_key(self) -> Tuple[float, int, int]:
        return (-self.similarity, -self.message.date, -self.message.id)


def format_timestamp(timestamp_ms: int) -> str:
    """Display date, or the raw epoch-ms value when it is outside the representable range."""
    try:
        return datetime.fromtimestamp(timestamp_ms / 1000).strftime(DATE_FORMAT)
    except (ValueError, OverflowError, OSError):
        return str(timestamp_ms)


def truncate(body: str, limit: int = EXCERPT_LENGTH) -> str:
    return body[:limit] + ("..." if len(body) > limit else "")


class RetrievalEngine:
    """Query-time search over the embedding index. Read-only on index and corpus."""

    def __init__(self, model: TfidfHashEmbedding, index: IEmbeddingIndex):
        self.model = model
        self.index = index

    async def search(self, query: str, max_results: int = DEFAULT_MAX_RESULTS,
                     similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD) -> List[SearchResult]:
        """Search the whole index in one read. Suited to small corpora."""
        try:
            query_vector = await self.model.embed(query)
            messages = await asyncio.to_thread(self.index.get_all_with_embeddings)

            if not messages:
                logger.warning("No messages with embeddings found")
                return [SearchResult(kind=ResultKind.NOT_INDEXED, text=NOT_INDEXED_MESSAGE)]

            candidates = self._score(query_vector, messages, similarity_threshold)
            top = self._rank(candidates, max_results)

            logger.log_search("full", query, len(candidates), len(top))
            return [self._format(candidate) for candidate in top]
        except Exception as e:
            logger.exception(f"Error retrieving relevant messages: {e}")
            return [SearchResult(kind=ResultKind.ERROR, text=f"Error searching messages: {e}")]

    async def search_batched(self, query: str, max_results: int = DEFAULT_MAX_RESULTS,
                             similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
                             batch_size: int = DEFAULT_SEARCH_BATCH_SIZE) -> List[SearchResult]:
        """Same results as search(), reading the index `batch_size` rows at a time."""
        try:
            query_vector = await self.model.embed(query)
            scanned, matches, top = await self._scan_batched(
                query_vector, max_results, similarity_threshold, batch_size
            )

            if scanned == 0:
                logger.warning("No messages with embeddings found")
                return [SearchResult(kind=ResultKind.NOT_INDEXED, text=NOT_INDEXED_MESSAGE)]

            logger.log_search("batched", query, matches, len(top))
            return [self._format(candidate) for candidate in top]
        except Exception as e:
            logger.exception(f"Error in batched retrieval: {e}")
            return [SearchResult(kind=ResultKind.ERROR, text=f"Error searching messages: {e}")]

    async def build_context(self, query: str, max_results: int = DEFAULT_CONTEXT_RESULTS,
                            max_context_length: int = DEFAULT_CONTEXT_LENGTH,
                            similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
                            batch_size: int = DEFAULT_SEARCH_BATCH_SIZE) -> Optional[str]:
        """
        Concatenate the best matches into a context block of at most
        `max_context_length` characters.

        Records are never cut: the block stops before the first record that
        would overflow. Returns None when nothing matches or nothing fits.
        """
        try:
            query_vector = await self.model.embed(query)
            _, _, top = await self._scan_batched(query_vector, max_results, similarity_threshold, batch_size)
        except Exception as e:
            logger.exception(f"Error building RAG context: {e}")
            return None

        if not top:
            return None

        parts = [CONTEXT_HEADER]
        length = len(CONTEXT_HEADER)
        included = 0

        for position, candidate in enumerate(top, start=1):
            message = candidate.message
            record = (
                f"Message {position}:\n"
                f"From: {message.address}\n"
                f"Date: {format_timestamp(message.date)}\n"
                f"Content: {message.body}\n"
            )
            if length + len(record) > max_context_length:
                break
            parts.append(record)
            parts.append("\n")
            length += len(record) + 1
            included += 1

        if included == 0:
            logger.debug(f"No record fits a {max_context_length}-character context")
            return None

        return "".join(parts).strip()

    # === Private Helper Methods ===

    async def _scan_batched(self, query_vector: np.ndarray, max_results: int,
                            similarity_threshold: float, batch_size: int) -> Tuple[int, int, List[_Candidate]]:
        """Page through the index keeping only a running top-k. Returns (scanned, matches, top)."""
        batch_size = max(1, batch_size)
        offset = 0
        scanned = 0
        matches = 0
        top: List[_Candidate] = []

        while True:
            batch = await asyncio.to_thread(self.index.get_paged, batch_size, offset)
            if not batch:
                break

            candidates = self._score(query_vector, batch, similarity_threshold)
            matches += len(candidates)
            top = self._rank(top + candidates, max_results)

            scanned += len(batch)
            offset += batch_size
            logger.debug(f"Processed batch: offset={offset}, results so far={matches}")

            if len(batch) < batch_size:
                break
            # Yield between batches so a cancelled search stops here
            await asyncio.sleep(0)

        return scanned, matches, top

    def _score(self, query_vector: np.ndarray, messages: Iterable[Message],
               similarity_threshold: float) -> List[_Candidate]:
        candidates = []
        for message in messages:
            try:
                stored = self.model.deserialize(message.embedding)
            except MalformedEmbeddingError as e:
                logger.log_embedding_skipped(message.id, str(e))
                continue

            similarity = self.model.similarity(query_vector, stored)
            if similarity >= similarity_threshold:
                candidates.append(_Candidate(message, similarity))
        return candidates

    @staticmethod
    def _rank(candidates: List[_Candidate], max_results: int) -> List[_Candidate]:
        return heapq.nsmallest(max(0, max_results), candidates, key=lambda c: c.rank_key)

    @staticmethod
    def _format(candidate: _Candidate) -> SearchResult:
        message = candidate.message
        relevance = int(candidate.similarity * 100)
        text = (
            f"[{relevance}% relevant]\n"
            f"From: {message.address}\n"
            f"Date: {format_timestamp(message.date)}\n"
            f"Message: {truncate(message.body)}"
        )
        return SearchResult(
            kind=ResultKind.MATCH,
            text=text,
            message_id=message.id,
            thread_id=message.thread_id,
            sender=message.address,
            timestamp=message.date,
            similarity=candidate.similarity,
        )
