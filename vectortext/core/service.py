"""
Wiring for the search core: one embedding model shared by the indexer
(writer) and the retrieval engine and tools (readers).
"""

from dataclasses import dataclass
from typing import Optional

from ..tools.message_tools import build_default_router
from ..tools.router import ToolRouter
from ..util.logging import logger
from ..vector.corpus import CorpusStore
from ..vector.embeddings import TfidfHashEmbedding
from ..vector.index import IEmbeddingIndex
from ..vector.retrieval import RetrievalEngine
from . import dao
from .config import get_embedding_index, get_embedding_provider, validate_config
from .db import init_db
from .indexer import EmbeddingIndexer


@dataclass
class SearchCore:
    model: TfidfHashEmbedding
    index: IEmbeddingIndex
    corpus_store: CorpusStore
    engine: RetrievalEngine
    indexer: EmbeddingIndexer
    router: ToolRouter

    @classmethod
    def create(cls, index: Optional[IEmbeddingIndex] = None,
               model: Optional[TfidfHashEmbedding] = None, store=dao) -> "SearchCore":
        """Build the core. Without an explicit index, the SQLite store is initialized and used."""
        issues = validate_config()
        if issues:
            raise ValueError(f"Configuration invalid: {issues}")

        if index is None:
            init_db()
            index = get_embedding_index()
        model = model or get_embedding_provider()

        corpus_store = CorpusStore(model)
        engine = RetrievalEngine(model, index)
        indexer = EmbeddingIndexer(model, index, corpus_store)
        router = build_default_router(engine, index, store)

        logger.info(f"Search core ready (dimension={model.dimension}, version={index.version})")
        return cls(model, index, corpus_store, engine, indexer, router)
