"""
Message store data access.
Threads and messages, plus the embedding columns the background indexer
maintains. All embedding scans are ordered by message id, an immutable key,
so paging never skips or repeats rows while small writes land.
"""

import time
from typing import List, Optional

from .db import get_db
from .schema import Message, Thread, TYPE_INBOX
from ..util.logging import logger

_MESSAGE_COLUMNS = (
    "id, thread_id, address, body, date, type, is_read, "
    "embedding, embedding_version, last_indexed"
)
_THREAD_COLUMNS = (
    "id, recipient, recipient_name, last_message, last_message_date, "
    "message_count, unread_count, is_pinned, is_archived, is_muted"
)
_HAS_EMBEDDING = "embedding IS NOT NULL AND embedding != ''"


def _row_to_message(row) -> Message:
    (msg_id, thread_id, address, body, date, msg_type, is_read,
     embedding, embedding_version, last_indexed) = row
    return Message(
        id=msg_id,
        thread_id=thread_id,
        address=address,
        body=body or "",
        date=date,
        type=msg_type,
        is_read=bool(is_read),
        embedding=embedding,
        embedding_version=embedding_version if embedding_version is not None else 1,
        last_indexed=last_indexed,
    )


def _row_to_thread(row) -> Thread:
    (thread_id, recipient, recipient_name, last_message, last_message_date,
     message_count, unread_count, is_pinned, is_archived, is_muted) = row
    return Thread(
        id=thread_id,
        recipient=recipient,
        recipient_name=recipient_name,
        last_message=last_message,
        last_message_date=last_message_date or 0,
        message_count=message_count or 0,
        unread_count=unread_count or 0,
        is_pinned=bool(is_pinned),
        is_archived=bool(is_archived),
        is_muted=bool(is_muted),
    )


# === Threads ===

def add_thread(thread_id: int, recipient: str, recipient_name: Optional[str] = None,
               is_pinned: bool = False, is_archived: bool = False, is_muted: bool = False) -> Thread:
    """Create or replace a thread row."""
    with get_db() as conn:
        conn.execute(
            "INSERT OR REPLACE INTO threads (id, recipient, recipient_name, is_pinned, is_archived, is_muted) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (thread_id, recipient, recipient_name, is_pinned, is_archived, is_muted)
        )
        conn.commit()
    return get_thread(thread_id)


def get_thread(thread_id: int) -> Optional[Thread]:
    """Get a thread by id."""
    with get_db() as conn:
        row = conn.execute(
            f"SELECT {_THREAD_COLUMNS} FROM threads WHERE id = ?", (thread_id,)
        ).fetchone()
    return _row_to_thread(row) if row else None


def list_threads(limit: int, include_archived: bool = False) -> List[Thread]:
    """List threads, pinned first, then most recent activity."""
    query = f"SELECT {_THREAD_COLUMNS} FROM threads"
    if not include_archived:
        query += " WHERE is_archived = 0"
    query += " ORDER BY is_pinned DESC, last_message_date DESC, id DESC LIMIT ?"

    with get_db() as conn:
        rows = conn.execute(query, (limit,)).fetchall()
    return [_row_to_thread(row) for row in rows]


# === Messages ===

def add_message(thread_id: int, address: str, body: str, date: int,
                msg_type: int = TYPE_INBOX, is_read: bool = False) -> int:
    """Insert a message and refresh its thread's preview. Returns the new id."""
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(
            "INSERT INTO messages (thread_id, address, body, date, type, is_read) VALUES (?, ?, ?, ?, ?, ?)",
            (thread_id, address, body, date, msg_type, is_read)
        )
        message_id = cursor.lastrowid

        cursor.execute(
            '''
            UPDATE threads SET
                message_count = message_count + 1,
                unread_count = unread_count + ?,
                last_message = CASE WHEN ? >= last_message_date THEN ? ELSE last_message END,
                last_message_date = MAX(last_message_date, ?)
            WHERE id = ?
            ''',
            (0 if is_read or msg_type != TYPE_INBOX else 1, date, body, date, thread_id)
        )
        conn.commit()
    return message_id


def delete_message(message_id: int) -> bool:
    """Delete a message. Its stored embedding is removed with the row."""
    with get_db() as conn:
        cursor = conn.cursor()
        row = cursor.execute("SELECT thread_id FROM messages WHERE id = ?", (message_id,)).fetchone()
        if not row:
            return False
        cursor.execute("DELETE FROM messages WHERE id = ?", (message_id,))
        cursor.execute(
            "UPDATE threads SET message_count = MAX(message_count - 1, 0) WHERE id = ?", (row[0],)
        )
        conn.commit()
    return True


def get_message(message_id: int) -> Optional[Message]:
    """Get a message by id."""
    with get_db() as conn:
        row = conn.execute(
            f"SELECT {_MESSAGE_COLUMNS} FROM messages WHERE id = ?", (message_id,)
        ).fetchone()
    return _row_to_message(row) if row else None


def list_messages(thread_id: Optional[int], limit: int) -> List[Message]:
    """Most recent messages, optionally restricted to one thread."""
    with get_db() as conn:
        if thread_id is None:
            rows = conn.execute(
                f"SELECT {_MESSAGE_COLUMNS} FROM messages ORDER BY date DESC, id DESC LIMIT ?",
                (limit,)
            ).fetchall()
        else:
            rows = conn.execute(
                f"SELECT {_MESSAGE_COLUMNS} FROM messages WHERE thread_id = ? ORDER BY date DESC, id DESC LIMIT ?",
                (thread_id, limit)
            ).fetchall()
    return [_row_to_message(row) for row in rows]


def get_messages_for_thread(thread_id: int, limit: int) -> List[Message]:
    """Up to `limit` of a thread's most recent messages, oldest first."""
    messages = list_messages(thread_id, limit)
    messages.reverse()
    return messages


# === Embedding operations ===

def get_messages_needing_embedding(limit: int, version: int, after_id: int = 0) -> List[Message]:
    """Messages without a current-version embedding, in id order after `after_id`."""
    with get_db() as conn:
        rows = conn.execute(
            f'''
            SELECT {_MESSAGE_COLUMNS} FROM messages
            WHERE (embedding IS NULL OR embedding = '' OR embedding_version != ?)
              AND id > ?
            ORDER BY id ASC LIMIT ?
            ''',
            (version, after_id, limit)
        ).fetchall()
    return [_row_to_message(row) for row in rows]


def count_messages_needing_embedding(version: int) -> int:
    """Number of messages without a current-version embedding."""
    with get_db() as conn:
        row = conn.execute(
            "SELECT COUNT(*) FROM messages WHERE embedding IS NULL OR embedding = '' OR embedding_version != ?",
            (version,)
        ).fetchone()
    return row[0]


def get_messages_with_embeddings(version: Optional[int] = None) -> List[Message]:
    """All messages that carry an embedding, ordered by id."""
    query = f"SELECT {_MESSAGE_COLUMNS} FROM messages WHERE {_HAS_EMBEDDING}"
    params: tuple = ()
    if version is not None:
        query += " AND embedding_version = ?"
        params = (version,)
    query += " ORDER BY id ASC"

    with get_db() as conn:
        rows = conn.execute(query, params).fetchall()
    return [_row_to_message(row) for row in rows]


def get_messages_with_embeddings_paged(limit: int, offset: int, version: Optional[int] = None) -> List[Message]:
    """One page of messages that carry an embedding, ordered by id."""
    query = f"SELECT {_MESSAGE_COLUMNS} FROM messages WHERE {_HAS_EMBEDDING}"
    params: tuple = ()
    if version is not None:
        query += " AND embedding_version = ?"
        params = (version,)
    query += " ORDER BY id ASC LIMIT ? OFFSET ?"

    with get_db() as conn:
        rows = conn.execute(query, params + (limit, offset)).fetchall()
    return [_row_to_message(row) for row in rows]


def update_embedding(message_id: int, embedding: str, version: int, timestamp: Optional[int] = None) -> bool:
    """Write vector, version and timestamp in one statement."""
    if timestamp is None:
        timestamp = int(time.time() * 1000)

    with get_db() as conn:
        cursor = conn.execute(
            "UPDATE messages SET embedding = ?, embedding_version = ?, last_indexed = ? WHERE id = ?",
            (embedding, version, timestamp, message_id)
        )
        conn.commit()
        updated = cursor.rowcount > 0

    if not updated:
        logger.warning(f"update_embedding: message {message_id} no longer exists")
    return updated


def clear_embeddings() -> int:
    """Drop every stored embedding so the next pass re-indexes everything."""
    with get_db() as conn:
        cursor = conn.execute(
            f"UPDATE messages SET embedding = NULL, last_indexed = NULL WHERE {_HAS_EMBEDDING}"
        )
        conn.commit()
        return cursor.rowcount


def get_all_message_bodies() -> List[str]:
    """Snapshot of every message body, for corpus rebuilds."""
    with get_db() as conn:
        rows = conn.execute("SELECT body FROM messages ORDER BY id ASC").fetchall()
    return [row[0] or "" for row in rows]


def get_total_message_count() -> int:
    with get_db() as conn:
        return conn.execute("SELECT COUNT(*) FROM messages").fetchone()[0]


def get_embedded_message_count(version: Optional[int] = None) -> int:
    query = f"SELECT COUNT(*) FROM messages WHERE {_HAS_EMBEDDING}"
    params: tuple = ()
    if version is not None:
        query += " AND embedding_version = ?"
        params = (version,)

    with get_db() as conn:
        return conn.execute(query, params).fetchone()[0]
