"""
Embedding index: message id -> (vector, version, generated-at).

Scans are ordered strictly by message id so paging is stable while the
indexer writes. Each write replaces vector, version and timestamp together.
"""

import threading
import time
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Sequence

from ..core import dao
from ..core.config import EMBEDDING_VERSION
from ..core.schema import Message
from .embeddings import serialize_vector


def _now_ms() -> int:
    return int(time.time() * 1000)


class IEmbeddingIndex(ABC):
    """Abstract interface for per-message embedding storage."""

    version: int = EMBEDDING_VERSION

    @abstractmethod
    def get_pending(self, limit: int, after_id: int = 0) -> List[Message]:
        """Messages lacking a current-version embedding, id order, after `after_id`."""
        pass

    @abstractmethod
    def count_pending(self) -> int:
        pass

    @abstractmethod
    def get_all_with_embeddings(self) -> List[Message]:
        """Full scan of current-version embeddings."""
        pass

    @abstractmethod
    def get_paged(self, limit: int, offset: int) -> List[Message]:
        """Bounded page of current-version embeddings."""
        pass

    @abstractmethod
    def upsert(self, message_id: int, vector: Sequence[float], version: int,
               timestamp: Optional[int] = None) -> bool:
        """Store a vector for a message. Returns False if the message is gone."""
        pass

    @abstractmethod
    def get_all_bodies(self) -> List[str]:
        """Snapshot of every message body for corpus rebuilds."""
        pass

    @abstractmethod
    def count_total(self) -> int:
        pass

    @abstractmethod
    def count_embedded(self) -> int:
        pass

    @abstractmethod
    def clear(self) -> int:
        """Remove every stored embedding. Returns how many were removed."""
        pass


class SqliteEmbeddingIndex(IEmbeddingIndex):
    """Embedding index over the SQLite message store."""

    def __init__(self, version: int = EMBEDDING_VERSION):
        self.version = version

    def get_pending(self, limit: int, after_id: int = 0) -> List[Message]:
        return dao.get_messages_needing_embedding(limit, self.version, after_id)

    def count_pending(self) -> int:
        return dao.count_messages_needing_embedding(self.version)

    def get_all_with_embeddings(self) -> List[Message]:
        return dao.get_messages_with_embeddings(self.version)

    def get_paged(self, limit: int, offset: int) -> List[Message]:
        return dao.get_messages_with_embeddings_paged(limit, offset, self.version)

    def upsert(self, message_id: int, vector: Sequence[float], version: int,
               timestamp: Optional[int] = None) -> bool:
        return dao.update_embedding(message_id, serialize_vector(vector), version, timestamp or _now_ms())

    def get_all_bodies(self) -> List[str]:
        return dao.get_all_message_bodies()

    def count_total(self) -> int:
        return dao.get_total_message_count()

    def count_embedded(self) -> int:
        return dao.get_embedded_message_count(self.version)

    def clear(self) -> int:
        return dao.clear_embeddings()


class SimpleInMemoryEmbeddingIndex(IEmbeddingIndex):
    """In-memory embedding index. Rows are replaced whole under a lock."""

    def __init__(self, messages: Iterable[Message] = (), version: int = EMBEDDING_VERSION):
        self.version = version
        self._messages: Dict[int, Message] = {}
        self._lock = threading.Lock()
        for message in messages:
            self.add_message(message)

    def add_message(self, message: Message) -> None:
        with self._lock:
            self._messages[message.id] = message

    def delete_message(self, message_id: int) -> None:
        with self._lock:
            self._messages.pop(message_id, None)

    def get(self, message_id: int) -> Optional[Message]:
        return self._messages.get(message_id)

    def _ordered(self) -> List[Message]:
        with self._lock:
            return [self._messages[key] for key in sorted(self._messages)]

    def _is_current(self, message: Message) -> bool:
        return message.has_embedding and message.embedding_version == self.version

    def get_pending(self, limit: int, after_id: int = 0) -> List[Message]:
        pending = [m for m in self._ordered() if m.id > after_id and not self._is_current(m)]
        return pending[:limit]

    def count_pending(self) -> int:
        return sum(1 for m in self._ordered() if not self._is_current(m))

    def get_all_with_embeddings(self) -> List[Message]:
        return [m for m in self._ordered() if self._is_current(m)]

    def get_paged(self, limit: int, offset: int) -> List[Message]:
        return self.get_all_with_embeddings()[offset:offset + limit]

    def upsert(self, message_id: int, vector: Sequence[float], version: int,
               timestamp: Optional[int] = None) -> bool:
        embedding = serialize_vector(vector)
        with self._lock:
            message = self._messages.get(message_id)
            if message is None:
                return False
            self._messages[message_id] = replace(
                message,
                embedding=embedding,
                embedding_version=version,
                last_indexed=timestamp or _now_ms(),
            )
        return True

    def get_all_bodies(self) -> List[str]:
        return [m.body for m in self._ordered()]

    def count_total(self) -> int:
        return len(self._messages)

    def count_embedded(self) -> int:
        return len(self.get_all_with_embeddings())

    def clear(self) -> int:
        with self._lock:
            cleared = 0
            for message_id, message in list(self._messages.items()):
                if message.has_embedding:
                    self._messages[message_id] = replace(message, embedding=None, last_indexed=None)
                    cleared += 1
        return cleared
