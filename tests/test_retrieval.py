"""
Retrieval engine: ranking, batching, formatting and context building.
"""

import asyncio
from unittest.mock import MagicMock, patch

import pytest

from vectortext.vector.embeddings import TfidfHashEmbedding
from vectortext.vector.index import SimpleInMemoryEmbeddingIndex
from vectortext.vector.retrieval import (
    CONTEXT_HEADER,
    NOT_INDEXED_MESSAGE,
    ResultKind,
    RetrievalEngine,
    SearchResult,
    format_timestamp,
    truncate,
)

from conftest import ADDRESS, BASE_TS, build_indexed_memory_index, make_message

VARIED_BODIES = [
    "dinner at seven tonight",
    "roof repair quote arrived this morning",
    "pick up groceries and milk for dinner",
    "gate code is 4411 for the back entrance",
    "lunch plans tomorrow with the team",
    "roof repair scheduled friday afternoon",
    "dinner reservation confirmed for saturday",
    "car service appointment moved to monday",
    "movie tickets for friday night",
    "groceries delivered to the front porch",
    "dentist appointment reminder tuesday",
    "dinner dinner dinner party planning",
]


def run(coro):
    return asyncio.run(coro)


def ids(results):
    return [r.message_id for r in results]


@pytest.fixture
def engine(model, sample_bodies):
    return RetrievalEngine(model, build_indexed_memory_index(model, sample_bodies))


@pytest.fixture
def large_engine(model):
    bodies = [VARIED_BODIES[i % len(VARIED_BODIES)] + f" note{i}" for i in range(60)]
    return RetrievalEngine(model, build_indexed_memory_index(model, bodies))


class TestSearch:

    def test_dinner_query_ranks_dinner_messages_first(self, engine):
        results = run(engine.search("dinner", 5, 0.1))

        assert all(r.kind == ResultKind.MATCH for r in results)
        assert set(ids(results)[:2]) == {1, 3}
        if len(results) == 3:
            assert ids(results)[2] == 2

    def test_empty_index_returns_not_indexed(self, model):
        engine = RetrievalEngine(model, SimpleInMemoryEmbeddingIndex())

        results = run(engine.search("anything", 5, 0.15))

        assert len(results) == 1
        assert results[0].kind == ResultKind.NOT_INDEXED
        assert results[0].text == NOT_INDEXED_MESSAGE
        assert not results[0].is_match

    def test_unembedded_messages_count_as_not_indexed(self, model):
        index = SimpleInMemoryEmbeddingIndex([make_message(1, "dinner at seven")])
        results = run(RetrievalEngine(model, index).search("dinner"))
        assert results[0].kind == ResultKind.NOT_INDEXED

    def test_no_match_is_empty_list(self, engine):
        assert run(engine.search("xylophone", 5, 0.15)) == []

    def test_stop_word_query_matches_nothing(self, engine):
        assert run(engine.search("the and of", 5, 0.15)) == []

    def test_results_sorted_by_similarity(self, large_engine):
        results = run(large_engine.search("roof repair dinner", 10, 0.05))
        similarities = [r.similarity for r in results]
        assert similarities == sorted(similarities, reverse=True)
        assert all(0.05 <= s <= 1.0 for s in similarities)

    def test_max_results_bound(self, large_engine):
        assert len(run(large_engine.search("dinner", 3, 0.01))) == 3
        assert run(large_engine.search("dinner", 0, 0.01)) == []

    def test_ties_prefer_newer_then_higher_id(self, model):
        dates = [BASE_TS, BASE_TS + 5, BASE_TS + 5, BASE_TS + 1]
        index = build_indexed_memory_index(model, ["dinner tonight"] * 4, dates)

        results = run(RetrievalEngine(model, index).search("dinner tonight", 10, 0.1))

        assert ids(results) == [3, 2, 4, 1]
        assert len({r.similarity for r in results}) == 1

    def test_raising_threshold_never_adds_results(self, large_engine):
        previous = None
        for threshold in [0.0, 0.05, 0.1, 0.2, 0.4, 0.8]:
            found = set(ids(run(large_engine.search("dinner groceries friday", 100, threshold))))
            if previous is not None:
                assert found <= previous
            previous = found

    def test_malformed_embedding_is_skipped(self, model, sample_bodies):
        index = build_indexed_memory_index(model, sample_bodies)
        index.add_message(make_message(4, "dinner party", embedding="not,a,vector"))
        engine = RetrievalEngine(model, index)

        with patch("vectortext.vector.retrieval.logger") as mock_logger:
            results = run(engine.search("dinner", 10, 0.1))

        assert 4 not in ids(results)
        assert {1, 3} <= set(ids(results))
        mock_logger.log_embedding_skipped.assert_called_once()
        assert mock_logger.log_embedding_skipped.call_args[0][0] == 4

    def test_wrong_dimension_rows_are_skipped(self, sample_bodies):
        small = TfidfHashEmbedding(dimension=16)
        index = build_indexed_memory_index(small, sample_bodies)
        engine = RetrievalEngine(TfidfHashEmbedding(dimension=384), index)

        results = run(engine.search("dinner", 5, 0.0))

        assert results == []

    def test_out_of_range_date_keeps_other_matches(self, model):
        index = build_indexed_memory_index(model, ["dinner at seven", "dinner tonight"], [BASE_TS, 10 ** 18])

        results = run(RetrievalEngine(model, index).search("dinner", 5, 0.1))

        assert [r.kind for r in results] == [ResultKind.MATCH, ResultKind.MATCH]
        assert sorted(ids(results)) == [1, 2]
        far_future = next(r for r in results if r.message_id == 2)
        assert f"Date: {10 ** 18}\n" in far_future.text

    def test_index_failure_becomes_error_result(self, model):
        index = MagicMock()
        index.get_all_with_embeddings.side_effect = RuntimeError("disk gone")

        results = run(RetrievalEngine(model, index).search("dinner"))

        assert len(results) == 1
        assert results[0].kind == ResultKind.ERROR
        assert results[0].text == "Error searching messages: disk gone"

    def test_search_is_read_only(self, engine, model):
        corpus_before = model.corpus
        stored_before = [(m.id, m.embedding) for m in engine.index.get_all_with_embeddings()]

        run(engine.search("dinner", 5, 0.1))
        run(engine.search_batched("dinner", 5, 0.1, batch_size=2))

        assert model.corpus is corpus_before
        assert [(m.id, m.embedding) for m in engine.index.get_all_with_embeddings()] == stored_before


class TestBatchedSearch:

    @pytest.mark.parametrize("batch_size", [1, 7, 50, 1000])
    def test_matches_full_search(self, large_engine, batch_size):
        for query in ["dinner", "roof repair", "friday appointment", "groceries porch"]:
            full = run(large_engine.search(query, 8, 0.1))
            batched = run(large_engine.search_batched(query, 8, 0.1, batch_size=batch_size))

            assert ids(batched) == ids(full)
            assert [r.similarity for r in batched] == [r.similarity for r in full]
            assert [r.text for r in batched] == [r.text for r in full]

    def test_empty_index_returns_not_indexed(self, model):
        engine = RetrievalEngine(model, SimpleInMemoryEmbeddingIndex())
        results = run(engine.search_batched("anything", 5, 0.15))
        assert [r.kind for r in results] == [ResultKind.NOT_INDEXED]

    @pytest.mark.parametrize("batch_size, expected_calls", [(3, 4), (5, 3), (100, 1)])
    def test_pages_until_short_batch(self, model, batch_size, expected_calls):
        index = build_indexed_memory_index(model, [f"dinner note{i}" for i in range(10)])
        spy = MagicMock(wraps=index)

        run(RetrievalEngine(model, spy).search_batched("dinner", 5, 0.1, batch_size=batch_size))

        assert spy.get_paged.call_count == expected_calls
        offsets = [c.args[1] for c in spy.get_paged.call_args_list]
        assert offsets == [batch_size * i for i in range(expected_calls)]
        spy.get_all_with_embeddings.assert_not_called()

    def test_cancel_stops_between_pages(self, model):
        index = build_indexed_memory_index(model, [f"dinner note{i}" for i in range(10)])
        spy = MagicMock(wraps=index)
        engine = RetrievalEngine(model, spy)
        page_count = 6

        async def scenario():
            loop = asyncio.get_running_loop()
            first_page = asyncio.Event()

            def get_paged(limit, offset):
                loop.call_soon_threadsafe(first_page.set)
                return index.get_paged(limit, offset)

            spy.get_paged.side_effect = get_paged
            task = asyncio.create_task(engine.search_batched("dinner", 5, 0.1, batch_size=2))
            await first_page.wait()
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        run(scenario())

        assert 1 <= spy.get_paged.call_count < page_count

    def test_non_positive_batch_size_still_scans(self, engine):
        results = run(engine.search_batched("dinner", 5, 0.1, batch_size=0))
        assert set(ids(results)[:2]) == {1, 3}

    def test_page_failure_becomes_error_result(self, model):
        index = MagicMock()
        index.get_paged.side_effect = RuntimeError("locked")

        results = run(RetrievalEngine(model, index).search_batched("dinner"))

        assert results[0].kind == ResultKind.ERROR
        assert "locked" in results[0].text


class TestFormatting:

    def test_match_text_layout(self, engine):
        result = run(engine.search("dinner", 1, 0.1))[0]
        lines = result.text.split("\n")

        assert lines[0] == f"[{result.relevance}% relevant]"
        assert lines[1] == f"From: {ADDRESS}"
        assert lines[2] == f"Date: {format_timestamp(result.timestamp)}"
        assert lines[3].startswith("Message: ")
        assert result.relevance == int(result.similarity * 100)
        assert result.sender == ADDRESS
        assert result.thread_id == 1

    def test_long_body_is_truncated(self, model):
        body = "dinner " + "x" * 400
        index = build_indexed_memory_index(model, [body])

        result = run(RetrievalEngine(model, index).search("dinner", 1, 0.01))[0]

        excerpt = result.text.split("Message: ", 1)[1]
        assert excerpt == body[:200] + "..."

    def test_truncate(self):
        assert truncate("short") == "short"
        assert truncate("a" * 200) == "a" * 200
        assert truncate("a" * 201) == "a" * 200 + "..."
        assert truncate("abcdef", 3) == "abc..."

    def test_format_timestamp_out_of_range(self):
        assert format_timestamp(10 ** 18) == str(10 ** 18)

    def test_format_timestamp_shape(self):
        text = format_timestamp(BASE_TS)
        assert " at " in text
        assert text.endswith(("AM", "PM"))

    def test_to_dict(self):
        result = SearchResult(
            kind=ResultKind.MATCH, text="t", message_id=7, thread_id=2,
            sender=ADDRESS, timestamp=BASE_TS, similarity=0.456,
        )
        data = result.to_dict()
        assert data["message_id"] == 7
        assert data["relevance"] == 45
        assert data["sender"] == ADDRESS


class TestBuildContext:

    def test_context_layout(self, engine):
        context = run(engine.build_context("dinner", 3, 1000, 0.1))

        assert context.startswith(CONTEXT_HEADER.strip())
        assert "Message 1:\nFrom: " in context
        assert "Content: " in context
        assert len(context) <= 1000

    def test_context_bounded_by_max_results(self, large_engine):
        context = run(large_engine.build_context("dinner", 2, 10_000, 0.05))
        assert context.count("Content: ") == 2
        assert "Message 3:" not in context

    def test_no_match_gives_none(self, engine):
        assert run(engine.build_context("xylophone", 3, 1000)) is None

    def test_first_record_too_long_gives_none(self, engine):
        assert run(engine.build_context("dinner", 3, 50, 0.1)) is None

    def test_stops_before_record_that_would_overflow(self, engine):
        single = run(engine.build_context("dinner", 1, 10_000, 0.1))

        # header + record + newline must fit; one character less fits nothing
        assert run(engine.build_context("dinner", 3, len(single) + 1, 0.1)) == single
        assert run(engine.build_context("dinner", 3, len(single), 0.1)) is None

    def test_records_are_never_cut(self, large_engine):
        full = run(large_engine.build_context("dinner", 5, 100_000, 0.05))
        for limit in [150, 300, 450, 600]:
            context = run(large_engine.build_context("dinner", 5, limit, 0.05))
            if context is None:
                continue
            assert len(context) <= limit
            assert full.startswith(context)
            assert context.endswith(tuple(
                line for line in full.split("\n") if line.startswith("Content: ")
            ))

    def test_out_of_range_date_in_context(self, model):
        index = build_indexed_memory_index(model, ["dinner at seven", "dinner tonight"], [BASE_TS, 10 ** 18])

        context = run(RetrievalEngine(model, index).build_context("dinner", 3, 10_000, 0.1))

        assert context.count("Content: ") == 2
        assert f"Date: {10 ** 18}\n" in context

    def test_empty_index_gives_none(self, model):
        engine = RetrievalEngine(model, SimpleInMemoryEmbeddingIndex())
        assert run(engine.build_context("dinner")) is None

    def test_failure_gives_none(self, model):
        index = MagicMock()
        index.get_paged.side_effect = RuntimeError("locked")
        assert run(RetrievalEngine(model, index).build_context("dinner")) is None
