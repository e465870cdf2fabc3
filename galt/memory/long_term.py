"""
Long-Term Memory
================

Persistent, searchable memory of every conversation turn.

Each turn appended to the conversation log is also embedded and stored
in the vector store, so a later turn can pull back older messages that
are relevant to it even after they have been evicted from the recent
window. Files live under the memory directory:

    memory/
    └── vectors/
        ├── documents.json   # turn text + metadata
        └── embeddings.npy   # one row per turn

Searches are always scoped to one conversation and one participant.
"""

import asyncio
from datetime import datetime
from typing import Iterable

from galt.memory.short_term import ConversationTurn
from galt.rag.embeddings import EmbeddingGenerator
from galt.rag.vectorstore import VectorDocument, VectorStore
from galt.utils.logger import Logger

logger = Logger("LongTermMemory")


class LongTermMemory:
    """
    Embedding-backed store of past turns.

    Example:
        ltm = LongTermMemory(embeddings, VectorStore(Path("memory/vectors")))

        await ltm.index(turn)
        similar = await ltm.search("D456:U123", "U123", "the deploy issue", top_k=10)
    """

    def __init__(self, embeddings: EmbeddingGenerator, store: VectorStore):
        self.embeddings = embeddings
        self.store = store
        # Serializes writes so the store never changes while being saved
        self._write_lock = asyncio.Lock()

    async def index(self, turn: ConversationTurn) -> None:
        """
        Embed a turn and persist it.

        Raises:
            openai.OpenAIError: When embedding fails
            OSError: When the store can't be written
        """
        embedding = await self.embeddings.generate(turn.content)

        async with self._write_lock:
            self.store.add(VectorDocument(
                id=turn.id,
                content=turn.content,
                embedding=embedding,
                metadata={
                    "conversation_id": turn.conversation_id,
                    "participant_id": turn.participant_id,
                    "role": turn.role,
                    "created_at": turn.created_at.isoformat(),
                },
            ))
            await asyncio.to_thread(self.store.save)

        logger.debug(f"Indexed {turn.role} turn {turn.id[:8]} for {turn.conversation_id}")

    async def search(
        self,
        conversation_id: str,
        participant_id: str,
        query_text: str,
        top_k: int = 10,
        exclude_ids: Iterable[str] = ()
    ) -> list[ConversationTurn]:
        """
        Find past turns similar to a query.

        Args:
            conversation_id: Only turns of this conversation
            participant_id: Only turns with this participant
            query_text: Text to compare against
            top_k: Maximum number of turns
            exclude_ids: Turn ids the caller already has

        Returns:
            Matching turns, most similar first
        """
        if top_k <= 0 or len(self.store) == 0:
            return []

        query_vector = await self.embeddings.generate(query_text)
        documents = self.store.search(
            query_vector,
            top_k=top_k,
            filter_metadata={
                "conversation_id": conversation_id,
                "participant_id": participant_id,
            },
            exclude_ids=exclude_ids,
        )
        return [self._to_turn(doc) for doc in documents]

    async def forget_conversation(self, conversation_id: str) -> int:
        """Delete every stored turn of a conversation. Returns how many."""
        async with self._write_lock:
            doc_ids = self.store.find_ids({"conversation_id": conversation_id})
            for doc_id in doc_ids:
                self.store.delete(doc_id)
            if doc_ids:
                await asyncio.to_thread(self.store.save)

        logger.info(f"Forgot {len(doc_ids)} turns for {conversation_id}")
        return len(doc_ids)

    @staticmethod
    def _to_turn(doc: VectorDocument) -> ConversationTurn:
        return ConversationTurn(
            participant_id=doc.metadata["participant_id"],
            conversation_id=doc.metadata["conversation_id"],
            role=doc.metadata["role"],
            content=doc.content,
            created_at=datetime.fromisoformat(doc.metadata["created_at"]),
            id=doc.id,
        )
