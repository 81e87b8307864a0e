"""
Corpus statistics ownership.

The embedding model holds the statistics; this store decides when they are
rebuilt and always rebuilds from a complete snapshot of message bodies taken
before the rebuild starts.
"""

import time
from typing import Callable, Iterable, List, Optional

from ..util.logging import logger
from .embeddings import CorpusStatistics, TfidfHashEmbedding


class CorpusStore:
    """Single writer of the embedding model's corpus statistics."""

    def __init__(self, model: TfidfHashEmbedding):
        self.model = model
        self.last_rebuilt_at: Optional[float] = None
        self.rebuild_count = 0

    @property
    def statistics(self) -> CorpusStatistics:
        return self.model.corpus

    def rebuild(self, documents: Iterable[str]) -> CorpusStatistics:
        """Rebuild from an already materialized document set."""
        snapshot: List[str] = list(documents)
        start = time.monotonic()
        try:
            stats = self.model.rebuild_corpus(snapshot)
        except Exception as e:
            logger.log_corpus_rebuild(len(snapshot), 0, status="failed", details={"error": str(e)})
            raise

        self.last_rebuilt_at = time.time()
        self.rebuild_count += 1
        logger.log_corpus_rebuild(stats.total_documents, stats.unique_tokens, details={
            "duration_ms": round((time.monotonic() - start) * 1000, 2),
        })
        return stats

    def rebuild_from(self, fetch_documents: Callable[[], Iterable[str]]) -> CorpusStatistics:
        """Take a snapshot via `fetch_documents`, then rebuild from it."""
        return self.rebuild(list(fetch_documents()))

    def is_stale(self, max_age_sec: float) -> bool:
        """True if the corpus was never built or is older than `max_age_sec`."""
        if self.last_rebuilt_at is None:
            return True
        return (time.time() - self.last_rebuilt_at) > max_age_sec
