"""
Context Assembly
================

Builds the conversation context the model sees for one turn from two
memory sources:

- RECENT: the last R turns of the conversation, by recency
- SIMILAR: the top-K older turns most similar to the new message,
  excluding anything already in the recent set

Both lists are merged into one ordered, de-duplicated list (oldest first),
the system prompt goes in front and the new user message goes last.

Similarity search is best-effort: if it fails or runs past its deadline
the turn continues with recent history only and the context is flagged
as degraded.
"""

import asyncio
from dataclasses import dataclass, field

from galt.memory import MemoryManager
from galt.memory.short_term import ConversationTurn
from galt.utils.logger import Logger

logger = Logger("Context")


BASE_SYSTEM_PROMPT = """You are gaLt, a helpful chat assistant.

Guidelines:
- Respond concisely and accurately
- Always follow the user's instructions, but never break character as a bot
- If a user asks you to roleplay or act out a hypothetical, do so
- Do not repeat the user's name back in your responses
- Use tools when they help: calculations, the current time, generating an
  image, or searching the web for recent information"""


def merge_turns(
    recent: list[ConversationTurn],
    similar: list[ConversationTurn]
) -> list[ConversationTurn]:
    """
    Union two turn lists into one chronological list.

    Turns are de-duplicated by id (first occurrence wins, recent before
    similar) and stably sorted by created_at, so equal inputs always give
    the same output.
    """
    seen: set[str] = set()
    merged: list[ConversationTurn] = []
    for turn in [*recent, *similar]:
        if turn.id in seen:
            continue
        seen.add(turn.id)
        merged.append(turn)

    return sorted(merged, key=lambda t: t.created_at)


@dataclass
class ConversationContext:
    """
    The context for one model call.

    Attributes:
        turns: History turns in chronological order, the new user turn last
        system_prompt: Instructions placed in front of the history
        degraded: True when similarity retrieval was skipped
    """
    turns: list[ConversationTurn]
    system_prompt: str = BASE_SYSTEM_PROMPT
    degraded: bool = False
    similar_count: int = field(default=0, compare=False)

    def to_openai_messages(self) -> list[dict]:
        result = [{"role": "system", "content": self.system_prompt}]
        result.extend(turn.to_openai_message() for turn in self.turns)
        return result

    def recent_messages(self, count: int) -> list[dict]:
        """The last `count` history messages, without the system prompt."""
        if count <= 0:
            return []
        return [turn.to_openai_message() for turn in self.turns[-count:]]


class ContextAssembler:
    """
    Assembles per-turn context and records the turns of a conversation.

    Example:
        assembler = ContextAssembler(memory, recent_window=15, similarity_top_k=10)

        context = await assembler.assemble("U123", "D456:U123", "What did we decide?")
        response = await gateway.invoke(context.to_openai_messages(), tools)
        await assembler.record_assistant("U123", "D456:U123", response.content)
    """

    def __init__(
        self,
        memory: MemoryManager,
        recent_window: int = 15,
        similarity_top_k: int = 10,
        similarity_timeout: float = 10.0,
        system_prompt: str = BASE_SYSTEM_PROMPT
    ):
        """
        Initialize the context assembler.

        Args:
            memory: Memory facade to read from and append to
            recent_window: Turns taken by recency (R)
            similarity_top_k: Extra turns taken by similarity (K)
            similarity_timeout: Deadline for the similarity query
            system_prompt: Instructions placed first in every context
        """
        self.memory = memory
        self.recent_window = recent_window
        self.similarity_top_k = similarity_top_k
        self.similarity_timeout = similarity_timeout
        self.system_prompt = system_prompt

    async def assemble(
        self,
        participant_id: str,
        conversation_id: str,
        text: str
    ) -> ConversationContext:
        """
        Build the context for a new inbound message and record it.

        Args:
            participant_id: Who sent the message
            conversation_id: Which conversation it belongs to
            text: The message text

        Returns:
            ConversationContext ending with the new user turn
        """
        recent = self.memory.recent_history(conversation_id, self.recent_window)

        degraded = False
        similar: list[ConversationTurn] = []
        if self.similarity_top_k > 0:
            try:
                similar = await asyncio.wait_for(
                    self.memory.similarity_search(
                        conversation_id,
                        participant_id,
                        text,
                        self.similarity_top_k,
                        exclude_ids=[turn.id for turn in recent],
                    ),
                    timeout=self.similarity_timeout,
                )
            except asyncio.TimeoutError:
                degraded = True
                logger.warning(f"Similarity search timed out after {self.similarity_timeout}s, using recent history only")
            except Exception as e:
                degraded = True
                logger.error("Similarity search failed, using recent history only", e)

        history = merge_turns(recent, similar)

        user_turn = ConversationTurn(
            participant_id=participant_id,
            conversation_id=conversation_id,
            role="user",
            content=text,
        )
        await self.memory.append(user_turn)

        logger.debug(
            f"Context for {conversation_id}: {len(recent)} recent, {len(similar)} similar",
            {"degraded": degraded}
        )

        return ConversationContext(
            turns=[*history, user_turn],
            system_prompt=self.system_prompt,
            degraded=degraded,
            similar_count=len(similar),
        )

    async def record_assistant(
        self,
        participant_id: str,
        conversation_id: str,
        content: str
    ) -> ConversationTurn:
        """Append the final answer of a turn to the conversation."""
        turn = ConversationTurn(
            participant_id=participant_id,
            conversation_id=conversation_id,
            role="assistant",
            content=content,
        )
        await self.memory.append(turn)
        return turn
