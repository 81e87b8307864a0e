"""
SQLite access for the message store.
"""

import sqlite3
from contextlib import contextmanager
from typing import Generator

from . import config


@contextmanager
def get_db() -> Generator[sqlite3.Connection, None, None]:
    """Get a SQLite database connection."""
    config.ensure_db_directory()
    conn = sqlite3.connect(config.get_db_path())
    conn.execute("PRAGMA foreign_keys = ON")
    try:
        yield conn
    finally:
        conn.close()


def init_db():
    """Initialize the database with required tables."""
    with get_db() as conn:
        cursor = conn.cursor()

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS threads (
                id INTEGER PRIMARY KEY,
                recipient TEXT NOT NULL,
                recipient_name TEXT,
                last_message TEXT,
                last_message_date INTEGER DEFAULT 0,
                message_count INTEGER DEFAULT 0,
                unread_count INTEGER DEFAULT 0,
                is_pinned BOOLEAN DEFAULT FALSE,
                is_archived BOOLEAN DEFAULT FALSE,
                is_muted BOOLEAN DEFAULT FALSE
            )
        ''')

        # Embedding columns live on the message row so a vector, its version
        # and its timestamp are always written together
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS messages (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                thread_id INTEGER NOT NULL REFERENCES threads(id) ON DELETE CASCADE,
                address TEXT NOT NULL,
                body TEXT NOT NULL DEFAULT '',
                date INTEGER NOT NULL,
                type INTEGER NOT NULL DEFAULT 1,
                is_read BOOLEAN DEFAULT FALSE,
                embedding TEXT,
                embedding_version INTEGER DEFAULT 1,
                last_indexed INTEGER
            )
        ''')

        cursor.execute('CREATE INDEX IF NOT EXISTS idx_messages_thread_id ON messages(thread_id)')
        cursor.execute('CREATE INDEX IF NOT EXISTS idx_messages_date ON messages(date DESC)')
        cursor.execute('CREATE INDEX IF NOT EXISTS idx_messages_last_indexed ON messages(last_indexed)')

        conn.commit()


def health_check():
    """Check database health."""
    try:
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT name FROM sqlite_master WHERE type='table';")
            tables = cursor.fetchall()

            table_names = [table[0] for table in tables]
            required_tables = ['threads', 'messages']

            return all(table in table_names for table in required_tables)
    except sqlite3.Error:
        return False
