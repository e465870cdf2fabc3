"""
Vector Store
============

A small file-based vector index for conversation turns.

Documents are kept in memory for search and persisted to two files:
- documents.json: id, content and metadata for every document
- embeddings.npy: the embedding matrix, one row per document

Search is brute-force cosine similarity over the matrix, which is plenty
for a bot's conversation history:

    cos(A, B) = (A · B) / (||A|| * ||B||)

Metadata filters narrow the candidates (e.g. to one conversation and one
participant) and explicit ids can be excluded (turns the caller already
has).
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

import numpy as np

from galt.utils.logger import Logger

logger = Logger("VectorStore")


@dataclass
class VectorDocument:
    """
    A document stored in the vector store.

    Attributes:
        id: Unique identifier (the turn id)
        content: The original text
        embedding: The vector embedding
        metadata: Filterable data (conversation, participant, role, timestamp)
        score: Similarity score, set on search results only
    """
    id: str
    content: str
    embedding: list[float]
    metadata: dict[str, Any] = field(default_factory=dict)
    score: float | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "content": self.content,
            "metadata": self.metadata,
        }


class VectorStore:
    """
    File-backed vector store with cosine similarity search.

    Example:
        store = VectorStore(Path("memory/vectors"))
        store.add(VectorDocument(
            id="4f1c...",
            content="The deploy failed with a 502",
            embedding=[0.1, -0.2, ...],
            metadata={"conversation_id": "D456:U123"},
        ))

        results = store.search(query_vector, top_k=5,
                               filter_metadata={"conversation_id": "D456:U123"})
    """

    def __init__(self, storage_path: Path | None = None):
        """
        Initialize the vector store.

        Args:
            storage_path: Directory for the data files; None keeps everything in memory
        """
        self.storage_path = storage_path
        self._documents: dict[str, VectorDocument] = {}
        self._embeddings: np.ndarray | None = None
        # Row order of _embeddings, aligned with the ids
        self._ids: list[str] = []

        if storage_path is not None:
            storage_path.mkdir(parents=True, exist_ok=True)
            self._load()

        logger.info(f"Vector store initialized with {len(self._documents)} documents")

    @property
    def documents_file(self) -> Path | None:
        return self.storage_path / "documents.json" if self.storage_path else None

    @property
    def embeddings_file(self) -> Path | None:
        return self.storage_path / "embeddings.npy" if self.storage_path else None

    def _load(self) -> None:
        """Load documents and embeddings from disk."""
        if not self.documents_file.exists() or not self.embeddings_file.exists():
            return

        try:
            with open(self.documents_file) as f:
                docs_data = json.load(f)
            embeddings = np.load(self.embeddings_file)
        except (OSError, ValueError) as e:
            logger.error("Error loading vector store", e)
            return

        if len(docs_data) != len(embeddings):
            logger.warning("Vector store files are out of sync, starting empty")
            return

        for doc_data, row in zip(docs_data, embeddings):
            doc = VectorDocument(
                id=doc_data["id"],
                content=doc_data["content"],
                embedding=row.tolist(),
                metadata=doc_data.get("metadata", {}),
            )
            self._documents[doc.id] = doc
            self._ids.append(doc.id)

        self._embeddings = embeddings if len(embeddings) else None
        logger.debug(f"Loaded {len(self._documents)} documents from disk")

    def save(self) -> None:
        """
        Write documents and embeddings to disk.

        Blocking; async callers run it with asyncio.to_thread().
        """
        if self.storage_path is None:
            return

        docs_list = [self._documents[doc_id].to_dict() for doc_id in self._ids]
        with open(self.documents_file, "w") as f:
            json.dump(docs_list, f)

        if self._embeddings is not None:
            np.save(self.embeddings_file, self._embeddings)
        else:
            self.embeddings_file.unlink(missing_ok=True)

        logger.debug(f"Saved {len(self._documents)} documents to disk")

    def add(self, document: VectorDocument) -> None:
        """
        Add a document, replacing any document with the same id.

        Raises:
            ValueError: If the embedding dimension doesn't match the store
        """
        embedding = np.asarray(document.embedding, dtype=float)

        if self._embeddings is not None and embedding.shape[0] != self._embeddings.shape[1]:
            raise ValueError(
                f"Embedding has dimension {embedding.shape[0]}, "
                f"store expects {self._embeddings.shape[1]}"
            )

        if document.id in self._documents:
            self._embeddings[self._ids.index(document.id)] = embedding
        elif self._embeddings is None:
            self._embeddings = embedding.reshape(1, -1)
            self._ids.append(document.id)
        else:
            self._embeddings = np.vstack([self._embeddings, embedding])
            self._ids.append(document.id)

        self._documents[document.id] = document

    def search(
        self,
        query_vector: list[float],
        top_k: int = 10,
        filter_metadata: dict[str, Any] | None = None,
        exclude_ids: Iterable[str] = ()
    ) -> list[VectorDocument]:
        """
        Find the documents most similar to a query vector.

        Args:
            query_vector: The query embedding
            top_k: Number of results to return
            filter_metadata: Every given key must match the document's metadata
            exclude_ids: Document ids never to return

        Returns:
            Up to top_k documents, highest similarity first, with score set
        """
        if self._embeddings is None or top_k <= 0:
            return []

        query = np.asarray(query_vector, dtype=float)
        query_norm = np.linalg.norm(query) or 1.0
        doc_norms = np.linalg.norm(self._embeddings, axis=1)
        doc_norms = np.where(doc_norms == 0, 1, doc_norms)

        similarities = np.dot(self._embeddings, query) / (doc_norms * query_norm)

        excluded = set(exclude_ids)
        candidates: list[tuple[str, float]] = []
        for doc_id, score in zip(self._ids, similarities):
            if doc_id in excluded:
                continue
            if filter_metadata:
                metadata = self._documents[doc_id].metadata
                if not all(metadata.get(k) == v for k, v in filter_metadata.items()):
                    continue
            candidates.append((doc_id, float(score)))

        candidates.sort(key=lambda item: item[1], reverse=True)

        results = []
        for doc_id, score in candidates[:top_k]:
            doc = self._documents[doc_id]
            results.append(VectorDocument(
                id=doc.id,
                content=doc.content,
                embedding=doc.embedding,
                metadata=doc.metadata,
                score=score,
            ))
        return results

    def delete(self, doc_id: str) -> bool:
        """Delete a document by id. Returns True if it existed."""
        if doc_id not in self._documents:
            return False

        row = self._ids.index(doc_id)
        del self._documents[doc_id]
        del self._ids[row]

        if self._ids:
            self._embeddings = np.delete(self._embeddings, row, axis=0)
        else:
            self._embeddings = None
        return True

    def find_ids(self, filter_metadata: dict[str, Any]) -> list[str]:
        """Ids of every document whose metadata matches all given keys."""
        return [
            doc_id for doc_id in self._ids
            if all(self._documents[doc_id].metadata.get(k) == v for k, v in filter_metadata.items())
        ]

    def __len__(self) -> int:
        return len(self._documents)
