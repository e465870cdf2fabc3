"""
Retrieval
=========

Semantic search over past conversation turns.

Components:
- embeddings.py: Generate vector embeddings from text
- vectorstore.py: Store vectors and search them by cosine similarity

The long-term memory layer (galt.memory.long_term) indexes every turn
here and queries it when assembling context for a new turn, so relevant
older turns can be brought back even after they've scrolled out of the
recent window.
"""

from galt.rag.embeddings import EmbeddingGenerator
from galt.rag.vectorstore import VectorDocument, VectorStore

__all__ = [
    "EmbeddingGenerator",
    "VectorDocument",
    "VectorStore",
]
