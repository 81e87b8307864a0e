"""
Shared fixtures for the message search tests.
"""

import pytest

from vectortext.core import config, dao
from vectortext.core.db import init_db
from vectortext.core.schema import Message, TYPE_INBOX
from vectortext.vector.embeddings import TfidfHashEmbedding
from vectortext.vector.index import SimpleInMemoryEmbeddingIndex, SqliteEmbeddingIndex

BASE_TS = 1_700_000_000_000  # Nov 2023, epoch ms
MINUTE_MS = 60_000
ADDRESS = "+15550001"


def make_message(message_id, body, date=None, thread_id=1, address=ADDRESS,
                 msg_type=TYPE_INBOX, embedding=None, embedding_version=1):
    return Message(
        id=message_id,
        thread_id=thread_id,
        address=address,
        body=body,
        date=BASE_TS + message_id * MINUTE_MS if date is None else date,
        type=msg_type,
        embedding=embedding,
        embedding_version=embedding_version,
    )


def build_indexed_memory_index(model, bodies, dates=None):
    """In-memory index with corpus rebuilt and every message embedded."""
    messages = [
        make_message(i + 1, body, None if dates is None else dates[i])
        for i, body in enumerate(bodies)
    ]
    index = SimpleInMemoryEmbeddingIndex(messages)
    model.rebuild_corpus(bodies)
    for message in messages:
        index.upsert(message.id, model.embed_text(message.body), index.version)
    return index


@pytest.fixture
def temp_db(tmp_path, monkeypatch):
    """Point the store at a fresh SQLite file."""
    db_path = tmp_path / "vectortext_test.db"
    monkeypatch.setattr(config, "DB_PATH", str(db_path))
    init_db()
    return db_path


@pytest.fixture
def model():
    return TfidfHashEmbedding(dimension=384)


@pytest.fixture
def sample_bodies():
    return [
        "dinner at seven",
        "lunch plans tomorrow",
        "see you at dinner tonight",
    ]


@pytest.fixture(params=["sqlite", "memory"])
def populated_index(request, tmp_path, monkeypatch):
    """Five un-embedded messages in either index implementation, ids 1..5."""
    bodies = [
        "gate code is 4411",
        "roof repair quote arrived",
        "dinner reservation confirmed",
        "pick up groceries",
        "roof repair scheduled friday",
    ]
    if request.param == "sqlite":
        monkeypatch.setattr(config, "DB_PATH", str(tmp_path / "index.db"))
        init_db()
        dao.add_thread(1, ADDRESS, "Sarah")
        for i, body in enumerate(bodies):
            dao.add_message(1, ADDRESS, body, BASE_TS + (i + 1) * MINUTE_MS)
        return SqliteEmbeddingIndex()

    return SimpleInMemoryEmbeddingIndex([make_message(i + 1, body) for i, body in enumerate(bodies)])
