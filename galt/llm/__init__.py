"""
LLM Layer
=========

Everything the bot needs to talk to chat completion models:

- backends.py: ChatBackend (one OpenAI-compatible endpoint), ModelResponse,
  TokenUsage and the classified BackendError
- gateway.py: ModelGateway, which routes calls between the primary and
  secondary backend and owns the failover breaker
"""

from galt.llm.backends import BackendError, BackendSlot, ChatBackend, ModelResponse, TokenUsage
from galt.llm.gateway import ModelBackendState, ModelGateway

__all__ = [
    "BackendError",
    "BackendSlot",
    "ChatBackend",
    "ModelBackendState",
    "ModelGateway",
    "ModelResponse",
    "TokenUsage",
]
