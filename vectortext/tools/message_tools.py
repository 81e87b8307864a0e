"""
Message tools exposed to the natural-language front end.

- search_messages: semantic search over indexed messages
- list_threads: conversations with basic metadata
- list_messages: recent messages, optionally for one thread
- get_thread_summary: statistics and excerpts for a thread
- get_index_status: how much of the store is indexed
"""

from datetime import datetime
from typing import Any, Dict, List

from ..core import dao
from ..core.config import EXCERPT_LENGTH
from ..util.logging import logger
from ..vector.embeddings import TfidfHashEmbedding
from ..vector.index import IEmbeddingIndex
from ..vector.retrieval import ResultKind, RetrievalEngine
from .models import ErrorCode, ParameterType, Tool, ToolFailure, ToolParameterSpec, ToolResult, ToolSuccess
from .router import ToolRouter

LIST_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
MS_PER_DAY = 1000 * 60 * 60 * 24


def clamp(value, lower, upper):
    return max(lower, min(upper, value))


def _format_date(timestamp_ms: int) -> str:
    try:
        return datetime.fromtimestamp(timestamp_ms / 1000).strftime(LIST_DATE_FORMAT)
    except (ValueError, OverflowError, OSError):
        return str(timestamp_ms)


class SearchMessagesTool(Tool):
    """Searches messages using semantic similarity with TF-IDF embeddings."""

    name = "search_messages"
    description = (
        "Searches messages using semantic similarity. "
        "Finds relevant messages based on meaning, not just keywords. "
        "Use natural language queries like 'messages about dinner plans' or 'when did Sarah send the gate code?'"
    )
    parameters = [
        ToolParameterSpec(
            name="query",
            type=ParameterType.STRING,
            description="The search query or question, in natural language",
            required=True,
        ),
        ToolParameterSpec(
            name="max_results",
            type=ParameterType.INTEGER,
            description="Maximum number of message excerpts to return (default: 10, max: 20)",
            default=10,
        ),
        ToolParameterSpec(
            name="similarity_threshold",
            type=ParameterType.NUMBER,
            description="Minimum similarity score for results, between 0.0 and 1.0 (default: 0.15)",
            default=0.15,
        ),
    ]

    MAX_RESULTS_CEILING = 20

    def __init__(self, engine: RetrievalEngine):
        self.engine = engine

    async def execute(self, arguments: Dict[str, Any]) -> ToolResult:
        query = arguments["query"].strip()
        if not query:
            return ToolFailure(ErrorCode.INVALID_PARAMS, "Query cannot be empty")

        max_results = clamp(arguments["max_results"], 1, self.MAX_RESULTS_CEILING)
        threshold = clamp(arguments["similarity_threshold"], 0.0, 1.0)

        results = await self.engine.search_batched(query, max_results, threshold)

        if results and results[0].kind == ResultKind.ERROR:
            return ToolFailure(ErrorCode.INTERNAL_ERROR, results[0].text)

        base = {"query": query, "threshold": threshold, "max_results": max_results}

        if results and results[0].kind == ResultKind.NOT_INDEXED:
            return ToolSuccess({**base, "found": False, "indexed": False, "message": results[0].text})

        matches = [r for r in results if r.is_match]
        if not matches:
            return ToolSuccess({
                **base,
                "found": False,
                "indexed": True,
                "message": "No messages found matching the query. "
                           "Try lowering the similarity threshold or using different search terms.",
            })

        return ToolSuccess({
            **base,
            "found": True,
            "indexed": True,
            "count": len(matches),
            "results": "\n\n---\n\n".join(r.text for r in matches),
            "matches": [r.to_dict() for r in matches],
        })


class ListThreadsTool(Tool):
    """Lists message threads (conversations)."""

    name = "list_threads"
    description = "Lists all message threads (conversations) with basic metadata"
    parameters = [
        ToolParameterSpec(
            name="limit",
            type=ParameterType.INTEGER,
            description="Maximum number of threads to return (default: 50, max: 200)",
            default=50,
        ),
        ToolParameterSpec(
            name="include_archived",
            type=ParameterType.BOOLEAN,
            description="Include archived threads in results (default: false)",
            default=False,
        ),
    ]

    MAX_LIMIT = 200

    def __init__(self, store=dao):
        self.store = store

    async def execute(self, arguments: Dict[str, Any]) -> ToolResult:
        limit = clamp(arguments["limit"], 1, self.MAX_LIMIT)
        include_archived = arguments["include_archived"]

        threads = self.store.list_threads(limit, include_archived)
        formatted = [
            {
                "thread_id": thread.id,
                "recipient": thread.recipient,
                "recipient_name": thread.display_name,
                "last_message": thread.last_message or "",
                "last_message_date": thread.last_message_date,
                "message_count": thread.message_count,
                "unread_count": thread.unread_count,
                "is_pinned": thread.is_pinned,
                "is_archived": thread.is_archived,
                "is_muted": thread.is_muted,
            }
            for thread in threads
        ]

        logger.debug(f"Listed {len(formatted)} threads")
        return ToolSuccess({
            "threads": formatted,
            "count": len(formatted),
            "limit": limit,
            "include_archived": include_archived,
        })


class ListMessagesTool(Tool):
    """Lists recent messages from one thread or from all threads."""

    name = "list_messages"
    description = "Lists recent messages from a specific thread or all threads"
    parameters = [
        ToolParameterSpec(
            name="thread_id",
            type=ParameterType.INTEGER,
            description="Thread to list messages from; omit to list from all threads",
        ),
        ToolParameterSpec(
            name="limit",
            type=ParameterType.INTEGER,
            description="Maximum number of messages to return (default: 20, max: 100)",
            default=20,
        ),
    ]

    MAX_LIMIT = 100

    def __init__(self, store=dao):
        self.store = store

    async def execute(self, arguments: Dict[str, Any]) -> ToolResult:
        thread_id = arguments.get("thread_id")
        limit = clamp(arguments["limit"], 1, self.MAX_LIMIT)

        messages = self.store.list_messages(thread_id, limit)
        formatted = [
            {
                "message_id": message.id,
                "thread_id": message.thread_id,
                "address": message.address,
                "body": message.body,
                "date": message.date,
                "formatted_date": _format_date(message.date),
                "type": message.type_label,
                "read": message.is_read,
            }
            for message in messages
        ]

        return ToolSuccess({
            "messages": formatted,
            "count": len(formatted),
            "thread_id": thread_id,
            "limit": limit,
        })


class GetThreadSummaryTool(Tool):
    """Statistics, date range and key excerpts for one thread."""

    name = "get_thread_summary"
    description = (
        "Generates a summary of a message thread including statistics, "
        "date range, message count, and key excerpts"
    )
    parameters = [
        ToolParameterSpec(
            name="thread_id",
            type=ParameterType.INTEGER,
            description="The ID of the thread to summarize",
            required=True,
        ),
        ToolParameterSpec(
            name="max_messages",
            type=ParameterType.INTEGER,
            description="Maximum number of messages to analyze (default: 1000)",
            default=1000,
        ),
        ToolParameterSpec(
            name="include_excerpts",
            type=ParameterType.BOOLEAN,
            description="Include message excerpts in summary (default: true)",
            default=True,
        ),
    ]

    EXCERPTS_EACH_END = 3

    def __init__(self, store=dao):
        self.store = store

    async def execute(self, arguments: Dict[str, Any]) -> ToolResult:
        thread_id = arguments["thread_id"]
        max_messages = max(1, arguments["max_messages"])

        thread = self.store.get_thread(thread_id)
        if thread is None:
            return ToolFailure(ErrorCode.INVALID_PARAMS, f"Thread not found: {thread_id}")

        messages = self.store.get_messages_for_thread(thread_id, max_messages)
        if not messages:
            return ToolSuccess({
                "thread_id": thread_id,
                "recipient": thread.display_name,
                "message_count": 0,
                "summary": "No messages in this thread",
            })

        return ToolSuccess(self._summarize(thread_id, thread.display_name, messages, arguments["include_excerpts"]))

    def _summarize(self, thread_id: int, recipient: str, messages: List, include_excerpts: bool) -> Dict[str, Any]:
        ordered = sorted(messages, key=lambda m: (m.date, m.id))
        sent = sum(1 for m in ordered if m.is_sent)
        received = sum(1 for m in ordered if m.is_received)
        first_date = ordered[0].date
        last_date = ordered[-1].date
        span_days = (last_date - first_date) // MS_PER_DAY

        description = (
            f"Conversation with {recipient} spanning {span_days} days. "
            f"Total of {len(ordered)} messages: {sent} sent, {received} received."
        )
        if span_days > 0:
            description += f" Average {len(ordered) / span_days:.1f} messages per day."

        summary = {
            "thread_id": thread_id,
            "recipient": recipient,
            "message_count": len(ordered),
            "sent_count": sent,
            "received_count": received,
            "first_message_date": _format_date(first_date),
            "last_message_date": _format_date(last_date),
            "time_span_days": span_days,
            "average_message_length": int(sum(len(m.body) for m in ordered) / len(ordered)),
            "description": description,
        }

        if include_excerpts:
            edge = self.EXCERPTS_EACH_END
            if len(ordered) <= edge * 2:
                excerpts = [self._excerpt(m) for m in ordered]
            else:
                excerpts = [self._excerpt(m) for m in ordered[:edge]]
                excerpts.append({"separator": f"... ({len(ordered) - edge * 2} messages omitted) ..."})
                excerpts.extend(self._excerpt(m) for m in ordered[-edge:])
            summary["excerpts"] = excerpts

        return summary

    @staticmethod
    def _excerpt(message) -> Dict[str, str]:
        return {
            "date": _format_date(message.date),
            "type": "sent" if message.is_sent else "received",
            "body": message.body[:EXCERPT_LENGTH],
        }


class GetIndexStatusTool(Tool):
    """Reports indexing progress and corpus statistics."""

    name = "get_index_status"
    description = "Reports how many messages are indexed for semantic search and the corpus statistics"
    parameters: List[ToolParameterSpec] = []

    def __init__(self, index: IEmbeddingIndex, model: TfidfHashEmbedding):
        self.index = index
        self.model = model

    async def execute(self, arguments: Dict[str, Any]) -> ToolResult:
        total = self.index.count_total()
        embedded = self.index.count_embedded()
        return ToolSuccess({
            "total_messages": total,
            "embedded_messages": embedded,
            "pending_messages": max(total - embedded, 0),
            "percent_indexed": round(embedded * 100.0 / total, 1) if total else 0.0,
            "embedding_version": self.index.version,
            "indexed": embedded > 0,
            "corpus": self.model.get_corpus_stats(),
        })


def build_default_router(engine: RetrievalEngine, index: IEmbeddingIndex, store=dao):
    """Router with every message tool registered."""
    return ToolRouter([
        SearchMessagesTool(engine),
        ListThreadsTool(store),
        ListMessagesTool(store),
        GetThreadSummaryTool(store),
        GetIndexStatusTool(index, engine.model),
    ])
