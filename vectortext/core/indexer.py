"""
Background indexer.

Keeps the embedding index in sync with the message store. A pass rebuilds
corpus statistics once from a snapshot of every message body, then embeds
pending messages batch by batch, reporting progress after each batch.

"Pending" means "no current-version embedding", so an interrupted pass can
simply be run again: finished messages are skipped and nothing is rolled back.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import AsyncIterator, List, Optional, Tuple

import numpy as np

from ..util.logging import logger
from ..vector.corpus import CorpusStore
from ..vector.embeddings import TfidfHashEmbedding
from ..vector.index import IEmbeddingIndex
from .config import INDEX_BATCH_SIZE, INDEX_INTERVAL_SEC
from .schema import Message


@dataclass(frozen=True)
class IndexProgress:
    processed: int
    failed: int
    total: int
    batch_number: int
    message: str
    done: bool = False
    cancelled: bool = False

    @property
    def fraction(self) -> float:
        if self.total == 0:
            return 1.0
        return min(self.processed / self.total, 1.0)


def _is_set(event) -> bool:
    return event is not None and event.is_set()


class EmbeddingIndexer:
    """Sole writer of stored embeddings and corpus statistics."""

    def __init__(self, model: TfidfHashEmbedding, index: IEmbeddingIndex,
                 corpus_store: Optional[CorpusStore] = None):
        self.model = model
        self.index = index
        self.corpus_store = corpus_store or CorpusStore(model)
        # Binds to an event loop only once a pass has to wait for it
        self._pass_lock = asyncio.Lock()

    async def run_indexing_pass(self, batch_size: int = INDEX_BATCH_SIZE,
                                cancel_event=None) -> AsyncIterator[IndexProgress]:
        """
        Run one indexing pass, yielding progress after every batch.

        `cancel_event` is any object with is_set() (threading.Event or
        asyncio.Event); it is checked between batches. Entries written before
        cancellation stay written.
        """
        batch_size = max(1, batch_size)

        async with self._pass_lock:
            total = await asyncio.to_thread(self.index.count_pending)
            if total == 0:
                logger.debug("No messages need embedding")
                yield IndexProgress(0, 0, 0, 0, "No messages need embedding", done=True)
                return

            logger.info(f"Found {total} messages needing embeddings")

            # One rebuild per pass, from a snapshot taken before any batch runs
            snapshot = await asyncio.to_thread(self.index.get_all_bodies)
            await asyncio.to_thread(self.corpus_store.rebuild, snapshot)

            processed = 0
            failed = 0
            batch_number = 0
            cursor = 0

            while True:
                if _is_set(cancel_event):
                    logger.info(f"Indexing cancelled after {processed} / {total} messages")
                    yield IndexProgress(processed, failed, total, batch_number,
                                        f"Indexing cancelled: {processed} / {total} messages indexed",
                                        done=True, cancelled=True)
                    return

                batch = await asyncio.to_thread(self.index.get_pending, batch_size, cursor)
                if not batch:
                    break

                batch_number += 1
                cursor = batch[-1].id

                embedded = await asyncio.to_thread(self._embed_batch, batch)
                timestamp = int(time.time() * 1000)
                for message, vector in embedded:
                    if vector is None:
                        failed += 1
                        continue
                    if await asyncio.to_thread(self.index.upsert, message.id, vector, self.index.version, timestamp):
                        processed += 1

                logger.log_index_batch(batch_number, processed, failed, total)
                yield IndexProgress(processed, failed, total, batch_number,
                                    f"Indexed {processed} / {total} messages")

                # Let cancellation and readers in between batches
                await asyncio.sleep(0)

            logger.info(f"Embedding generation complete: {processed} / {total} messages")
            yield IndexProgress(processed, failed, total, batch_number,
                                f"Indexing complete! {processed} messages indexed", done=True)

    async def index_all(self, batch_size: int = INDEX_BATCH_SIZE, cancel_event=None) -> IndexProgress:
        """Run a pass to completion and return its final progress."""
        last = None
        async for progress in self.run_indexing_pass(batch_size, cancel_event):
            last = progress
        return last

    async def force_reindex(self, batch_size: int = INDEX_BATCH_SIZE, cancel_event=None) -> IndexProgress:
        """Drop every stored embedding, then re-embed the whole store."""
        cleared = await asyncio.to_thread(self.index.clear)
        logger.info(f"Force re-index: cleared {cleared} embeddings")
        return await self.index_all(batch_size, cancel_event)

    async def run_periodically(self, stop_event: asyncio.Event,
                               interval_sec: float = INDEX_INTERVAL_SEC,
                               batch_size: int = INDEX_BATCH_SIZE) -> int:
        """Run passes every `interval_sec` until `stop_event` is set. Returns passes run."""
        passes = 0
        while not stop_event.is_set():
            try:
                await self.index_all(batch_size, cancel_event=stop_event)
            except Exception as e:
                # Error isolation: a failed pass is retried on the next tick
                logger.exception(f"Indexing pass failed: {e}")
            passes += 1

            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval_sec)
            except asyncio.TimeoutError:
                pass
        return passes

    def _embed_batch(self, batch: List[Message]) -> List[Tuple[Message, Optional[np.ndarray]]]:
        results = []
        for message in batch:
            try:
                results.append((message, self.model.embed_text(message.body)))
            except Exception as e:
                logger.log_embedding_skipped(message.id, f"embedding failed: {e}")
                results.append((message, None))
        return results
