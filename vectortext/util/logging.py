"""
Structured logging for indexing, retrieval and tool dispatch.
Message bodies are private data and never reach the log untruncated.
"""

import logging
from typing import Any, Dict, List

from ..core.config import LOG_LEVEL

# Fields that may carry message text
SENSITIVE_FIELDS = ['body', 'query', 'content', 'text', 'message', 'arguments']


class StructuredLogger:
    """Structured logger for search, indexing and tool operations."""

    def __init__(self, name: str = "vectortext"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))

        # Create handler if not already set
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def log_operation(self, operation: str, status: str, details: Dict[str, Any] = None, level: int = logging.INFO):
        """Log a structured operation."""
        message = f"Operation: {operation}, Status: {status}"
        if details:
            message += f", Details: {details}"

        self.logger.log(level, message)

    def log_search(self, mode: str, query: str, matches: int, returned: int, status: str = "success"):
        """Log a semantic search run."""
        self.log_operation(f"search.{mode}", status, {
            "query": sanitize_payload(query),
            "matches": matches,
            "returned": returned,
        })

    def log_tool_call(self, tool_name: str, arguments: Dict[str, Any], success: bool,
                      execution_time: float = 0.0, error: str = None):
        """Log a dispatched tool call."""
        details = {
            "tool": tool_name,
            "arguments": sanitize_payload(arguments, sensitive_fields=['query', 'body']),
            "execution_time": round(execution_time, 4),
        }
        if error:
            details["error"] = error

        self.log_operation(
            f"tool.{tool_name}",
            "success" if success else "failed",
            details,
            level=logging.INFO if success else logging.WARNING,
        )

    def log_index_batch(self, batch_number: int, processed: int, failed: int, total: int):
        """Log progress of an indexing batch."""
        self.log_operation("index.batch", "progress", {
            "batch": batch_number,
            "processed": processed,
            "failed": failed,
            "total": total,
        })

    def log_corpus_rebuild(self, total_documents: int, unique_tokens: int, status: str = "success", details: Dict[str, Any] = None):
        """Log a corpus statistics rebuild."""
        log_details = {"total_documents": total_documents, "unique_tokens": unique_tokens}
        if details:
            log_details.update(details)

        self.log_operation("corpus.rebuild", status, log_details)

    def log_embedding_skipped(self, message_id: int, reason: str):
        """Log a single message skipped during a scan or indexing pass."""
        self.log_operation("embedding.skipped", "degraded", {
            "message_id": message_id,
            "reason": reason,
        }, level=logging.WARNING)

    # Standard logging methods for compatibility
    def info(self, message: str) -> None:
        """Log an info message."""
        self.logger.info(message)

    def warning(self, message: str) -> None:
        """Log a warning message."""
        self.logger.warning(message)

    def error(self, message: str) -> None:
        """Log an error message."""
        self.logger.error(message)

    def debug(self, message: str) -> None:
        """Log a debug message."""
        self.logger.debug(message)

    def exception(self, message: str) -> None:
        """Log an error message with the active traceback."""
        self.logger.exception(message)


# Global logger instance
logger = StructuredLogger()


def sanitize_payload(payload: Any, reveal_sensitive: bool = False, sensitive_fields: List[str] = None) -> Any:
    """Sanitize payloads for logging: truncate long strings, mask message text."""
    if sensitive_fields is None:
        sensitive_fields = SENSITIVE_FIELDS

    if isinstance(payload, dict):
        sanitized = {}
        for k, v in payload.items():
            if reveal_sensitive or k not in sensitive_fields:
                sanitized[k] = sanitize_payload(v, reveal_sensitive, sensitive_fields)
            elif isinstance(v, str):
                sanitized[k] = f"[REDACTED:{len(v)} chars]"
            else:
                sanitized[k] = "[REDACTED]"
        return sanitized
    elif isinstance(payload, str):
        # Truncate long strings
        return payload[:50] + "..." if len(payload) > 50 else payload
    elif isinstance(payload, list):
        return [sanitize_payload(item, reveal_sensitive, sensitive_fields) for item in payload]
    elif isinstance(payload, int) and not isinstance(payload, bool) and payload.bit_length() > 64:
        # Oversized ints are summarized, never rendered in full
        return f"[INT:{payload.bit_length()} bits]"
    else:
        return payload
