"""
Runtime configuration for the message search core.
Everything is read from the environment; defaults suit an on-device index.
"""

import os
from pathlib import Path

# Database path configuration
DB_PATH = os.getenv("VECTORTEXT_DB_PATH", "./data/vectortext.db")

# Debug flag and log verbosity
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG" if DEBUG else "INFO").upper()

# Embedding model configuration
EMBEDDING_DIMENSION = int(os.getenv("EMBEDDING_DIMENSION", "384"))
EMBEDDING_VERSION = int(os.getenv("EMBEDDING_VERSION", "1"))  # 1 = TF-IDF word hashing
MIN_TOKEN_LENGTH = 3

# Retrieval configuration
DEFAULT_MAX_RESULTS = int(os.getenv("DEFAULT_MAX_RESULTS", "5"))
DEFAULT_SIMILARITY_THRESHOLD = float(os.getenv("DEFAULT_SIMILARITY_THRESHOLD", "0.15"))
DEFAULT_SEARCH_BATCH_SIZE = int(os.getenv("SEARCH_BATCH_SIZE", "50"))  # stays under cursor window limits
EXCERPT_LENGTH = 200
DEFAULT_CONTEXT_RESULTS = 3
DEFAULT_CONTEXT_LENGTH = int(os.getenv("CONTEXT_LENGTH", "1000"))

# Background indexer configuration
INDEX_BATCH_SIZE = int(os.getenv("INDEX_BATCH_SIZE", "100"))
INDEX_INTERVAL_SEC = int(os.getenv("INDEX_INTERVAL_SEC", "3600"))

# Version string
VERSION = "1.0.0"


def debug_enabled():
    """Check if debug mode is enabled."""
    return os.getenv("DEBUG", "false").lower() == "true"


def get_db_path() -> str:
    """Current database path. Looked up per call so tests can repoint it."""
    return DB_PATH


def ensure_db_directory():
    """Ensure the database directory exists."""
    Path(get_db_path()).parent.mkdir(parents=True, exist_ok=True)


def validate_config():
    """Validate configuration and return any issues."""
    issues = []

    if EMBEDDING_DIMENSION < 1:
        issues.append("EMBEDDING_DIMENSION must be >= 1")

    if EMBEDDING_VERSION < 1:
        issues.append("EMBEDDING_VERSION must be >= 1")

    if not 0.0 <= DEFAULT_SIMILARITY_THRESHOLD <= 1.0:
        issues.append(f"Invalid DEFAULT_SIMILARITY_THRESHOLD: {DEFAULT_SIMILARITY_THRESHOLD}")

    if DEFAULT_SEARCH_BATCH_SIZE < 1:
        issues.append("SEARCH_BATCH_SIZE must be >= 1")

    if INDEX_BATCH_SIZE < 1:
        issues.append("INDEX_BATCH_SIZE must be >= 1")

    if INDEX_INTERVAL_SEC < 1:
        issues.append("INDEX_INTERVAL_SEC must be >= 1")

    return issues


def get_embedding_provider():
    """Get the configured embedding model."""
    from ..vector.embeddings import TfidfHashEmbedding
    return TfidfHashEmbedding(EMBEDDING_DIMENSION)


def get_embedding_index():
    """Get the SQLite-backed embedding index for the current schema version."""
    from ..vector.index import SqliteEmbeddingIndex
    return SqliteEmbeddingIndex(EMBEDDING_VERSION)
