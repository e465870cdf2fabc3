"""
Memory System
=============

Two layers behind one facade:

1. SHORT-TERM: the ordered conversation log (in-memory, FIFO eviction)
2. LONG-TERM: every turn embedded and searchable by similarity (persistent)

The MemoryManager is what the rest of the bot talks to. Appends land in
the log immediately; indexing into long-term memory runs in the
background so it never delays a reply.

Usage:
    from galt.memory import MemoryManager

    memory = MemoryManager(ConversationLog(max_turns=50), long_term)

    await memory.append(turn)
    recent = memory.recent_history("D456:U123", limit=15)
    similar = await memory.similarity_search("D456:U123", "U123", "deploy", top_k=10)
"""

import asyncio
from typing import Iterable

from galt.memory.long_term import LongTermMemory
from galt.memory.short_term import ConversationLog, ConversationTurn
from galt.utils.logger import Logger

logger = Logger("Memory")


class MemoryManager:
    """
    Facade over the conversation log and long-term memory.

    Example:
        memory = MemoryManager(ConversationLog())   # no long-term layer

        await memory.append(ConversationTurn("U123", "D456:U123", "user", "Hello!"))
        history = memory.recent_history("D456:U123")
    """

    def __init__(self, log: ConversationLog, long_term: LongTermMemory | None = None):
        """
        Initialize the memory facade.

        Args:
            log: Short-term conversation log
            long_term: Similarity layer; None disables similarity search
        """
        self.log = log
        self.long_term = long_term
        self._pending: set[asyncio.Task] = set()

        logger.info(
            "Memory system initialized"
            + (" with long-term memory" if long_term else " (short-term only)")
        )

    # ==========================================================================
    # Writes
    # ==========================================================================

    async def append(self, turn: ConversationTurn) -> None:
        """Append a turn to the log and schedule it for indexing."""
        self.log.append(turn)

        if self.long_term is not None:
            task = asyncio.create_task(self._index(turn))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _index(self, turn: ConversationTurn) -> None:
        try:
            await self.long_term.index(turn)
        except Exception as e:
            logger.error(f"Failed to index turn {turn.id[:8]}", e)

    async def flush(self) -> None:
        """Wait for all background indexing to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending))

    async def clear_conversation(self, conversation_id: str) -> None:
        """Forget a conversation in both layers."""
        self.log.clear(conversation_id)
        if self.long_term is not None:
            await self.flush()
            await self.long_term.forget_conversation(conversation_id)
        logger.info(f"Cleared conversation {conversation_id}")

    # ==========================================================================
    # Reads
    # ==========================================================================

    def recent_history(self, conversation_id: str, limit: int = 15) -> list[ConversationTurn]:
        return self.log.recent(conversation_id, limit)

    async def similarity_search(
        self,
        conversation_id: str,
        participant_id: str,
        query_text: str,
        top_k: int = 10,
        exclude_ids: Iterable[str] = ()
    ) -> list[ConversationTurn]:
        """
        Past turns similar to a query, scoped to one conversation and participant.

        Raises whatever the long-term layer raises; callers decide how to degrade.
        """
        if self.long_term is None:
            return []
        return await self.long_term.search(
            conversation_id, participant_id, query_text, top_k, exclude_ids
        )


__all__ = [
    "ConversationLog",
    "ConversationTurn",
    "LongTermMemory",
    "MemoryManager",
]
