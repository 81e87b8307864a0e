"""
Local semantic search over a private message store.

TF-IDF feature-hashed embeddings, a batched retrieval engine and a small
tool dispatcher that exposes search to a natural-language front end.
"""

__version__ = "1.0.0"
