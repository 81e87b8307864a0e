"""
Embedding index behaviour, shared by the SQLite and in-memory implementations.
"""

import numpy as np

from vectortext.vector.index import SimpleInMemoryEmbeddingIndex

from conftest import make_message


def _vector(seed):
    vector = np.zeros(384, dtype=np.float32)
    vector[seed % 384] = 1.0
    return vector


def test_everything_pending_initially(populated_index):
    assert populated_index.count_total() == 5
    assert populated_index.count_pending() == 5
    assert populated_index.count_embedded() == 0
    assert populated_index.get_all_with_embeddings() == []
    assert [m.id for m in populated_index.get_pending(10)] == [1, 2, 3, 4, 5]


def test_pending_respects_limit_and_cursor(populated_index):
    assert [m.id for m in populated_index.get_pending(2)] == [1, 2]
    assert [m.id for m in populated_index.get_pending(2, after_id=2)] == [3, 4]
    assert populated_index.get_pending(10, after_id=5) == []


def test_upsert_moves_message_out_of_pending(populated_index):
    assert populated_index.upsert(2, _vector(2), populated_index.version, timestamp=1234)

    assert populated_index.count_pending() == 4
    assert populated_index.count_embedded() == 1
    embedded = populated_index.get_all_with_embeddings()
    assert [m.id for m in embedded] == [2]
    assert embedded[0].last_indexed == 1234
    assert embedded[0].embedding_version == populated_index.version


def test_upsert_unknown_message_returns_false(populated_index):
    assert not populated_index.upsert(999, _vector(1), populated_index.version)
    assert populated_index.count_embedded() == 0


def test_stale_version_is_pending(populated_index):
    populated_index.upsert(1, _vector(1), populated_index.version - 1)

    assert [m.id for m in populated_index.get_pending(10)][0] == 1
    assert populated_index.get_all_with_embeddings() == []


def test_upsert_overwrites(populated_index):
    populated_index.upsert(3, _vector(3), populated_index.version, timestamp=1)
    populated_index.upsert(3, _vector(4), populated_index.version, timestamp=2)

    stored = populated_index.get_all_with_embeddings()
    assert len(stored) == 1
    assert stored[0].last_indexed == 2
    assert stored[0].embedding.split(",")[4] == "1.0"


def test_paged_scan_in_id_order(populated_index):
    for message_id in [5, 1, 3, 2, 4]:
        populated_index.upsert(message_id, _vector(message_id), populated_index.version)

    pages = [populated_index.get_paged(2, offset) for offset in (0, 2, 4, 6)]
    assert [[m.id for m in page] for page in pages] == [[1, 2], [3, 4], [5], []]


def test_bodies_snapshot(populated_index):
    bodies = populated_index.get_all_bodies()
    assert len(bodies) == 5
    assert bodies[0] == "gate code is 4411"


def test_clear_removes_embeddings(populated_index):
    populated_index.upsert(1, _vector(1), populated_index.version)
    populated_index.upsert(2, _vector(2), populated_index.version)

    assert populated_index.clear() == 2
    assert populated_index.count_pending() == 5
    assert populated_index.count_embedded() == 0


def test_in_memory_delete_drops_embedding():
    index = SimpleInMemoryEmbeddingIndex([make_message(1, "dinner tonight"), make_message(2, "lunch plans")])
    index.upsert(1, _vector(1), index.version)

    index.delete_message(1)

    assert index.get(1) is None
    assert index.get_all_with_embeddings() == []
    assert index.count_total() == 1


def test_in_memory_upsert_replaces_record():
    index = SimpleInMemoryEmbeddingIndex([make_message(1, "dinner tonight")])
    original = index.get(1)

    index.upsert(1, _vector(1), index.version)

    assert original.embedding is None
    assert index.get(1) is not original
    assert index.get(1).has_embedding
