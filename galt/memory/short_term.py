"""
Short-Term Memory
=================

The ordered, in-memory conversation log.

- One log per conversation, turns kept in append order
- Turns are immutable once created
- Count-based FIFO eviction: once a conversation holds more than
  max_turns turns, the oldest are dropped

Concurrent turns for the same conversation are not serialized; their
appends land in the order they happen.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

Role = Literal["user", "assistant"]


def _new_turn_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class ConversationTurn:
    """
    One message in a conversation.

    Attributes:
        participant_id: Who the conversation is with (Slack user id)
        conversation_id: Which conversation the turn belongs to
        role: "user" or "assistant"
        content: The message text
        created_at: When the turn was created
        id: Random identity assigned at creation
    """
    participant_id: str
    conversation_id: str
    role: Role
    content: str
    created_at: datetime = field(default_factory=datetime.now)
    id: str = field(default_factory=_new_turn_id)

    def to_openai_message(self) -> dict:
        return {"role": self.role, "content": self.content}


class ConversationLog:
    """
    In-memory conversation storage with FIFO eviction.

    Example:
        log = ConversationLog(max_turns=50)
        log.append(ConversationTurn("U123", "D456:U123", "user", "Hello!"))

        recent = log.recent("D456:U123", limit=15)
    """

    def __init__(self, max_turns: int = 50):
        """
        Initialize the log.

        Args:
            max_turns: Maximum turns kept per conversation
        """
        self.max_turns = max_turns
        self._conversations: dict[str, list[ConversationTurn]] = {}

    def append(self, turn: ConversationTurn) -> None:
        """Append a turn, evicting the oldest ones over the cap."""
        turns = self._conversations.setdefault(turn.conversation_id, [])
        turns.append(turn)

        if len(turns) > self.max_turns:
            del turns[: len(turns) - self.max_turns]

    def recent(self, conversation_id: str, limit: int = 15) -> list[ConversationTurn]:
        """
        Get the most recent turns, oldest first.

        Args:
            conversation_id: The conversation
            limit: Maximum number of turns to return
        """
        if limit <= 0:
            return []
        return list(self._conversations.get(conversation_id, [])[-limit:])

    def all_turns(self, conversation_id: str) -> list[ConversationTurn]:
        return list(self._conversations.get(conversation_id, []))

    def clear(self, conversation_id: str) -> None:
        self._conversations.pop(conversation_id, None)

    def get_conversation_count(self) -> int:
        return len(self._conversations)

    def get_turn_count(self, conversation_id: str | None = None) -> int:
        """Turns in one conversation, or across all of them."""
        if conversation_id is not None:
            return len(self._conversations.get(conversation_id, []))
        return sum(len(turns) for turns in self._conversations.values())
