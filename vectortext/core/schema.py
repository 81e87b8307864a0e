"""
Typed records for the message store.
The store owns messages and threads; the search core only references them.
"""

from dataclasses import dataclass
from typing import Optional

# Message.type values
TYPE_INBOX = 1
TYPE_SENT = 2
TYPE_DRAFT = 3
TYPE_OUTBOX = 4
TYPE_FAILED = 5
TYPE_QUEUED = 6


@dataclass
class Thread:
    id: int
    recipient: str
    recipient_name: Optional[str] = None
    last_message: Optional[str] = None
    last_message_date: int = 0
    message_count: int = 0
    unread_count: int = 0
    is_pinned: bool = False
    is_archived: bool = False
    is_muted: bool = False

    @property
    def display_name(self) -> str:
        return self.recipient_name or self.recipient


@dataclass
class Message:
    id: int
    thread_id: int
    address: str
    body: str
    date: int  # epoch milliseconds
    type: int = TYPE_INBOX
    is_read: bool = False
    embedding: Optional[str] = None
    embedding_version: int = 1
    last_indexed: Optional[int] = None

    @property
    def has_embedding(self) -> bool:
        return bool(self.embedding)

    @property
    def is_sent(self) -> bool:
        return self.type == TYPE_SENT

    @property
    def is_received(self) -> bool:
        return self.type == TYPE_INBOX

    @property
    def type_label(self) -> str:
        if self.type == TYPE_INBOX:
            return "received"
        if self.type == TYPE_SENT:
            return "sent"
        return "unknown"
