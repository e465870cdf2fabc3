"""
Agent System
============

The agent turns one inbound message into one reply:
1. Assembles context (recent and similar turns)
2. Calls the model through the gateway
3. Runs any requested tools, then asks the model for the final answer
4. Formats the answer for delivery

This module provides:
- Agent / AgentReply: the orchestration loop and its result
- ContextAssembler: builds context and records turns
- ToolExecutor: validates and runs tool requests
- ResponseFormatter: splits answers into deliverable segments
"""

from galt.agent.context import ContextAssembler, ConversationContext, merge_turns
from galt.agent.core import Agent, AgentReply
from galt.agent.formatter import FormattedResponse, ResponseFormatter, Segment
from galt.agent.tools_executor import ToolExecutor

__all__ = [
    "Agent",
    "AgentReply",
    "ContextAssembler",
    "ConversationContext",
    "FormattedResponse",
    "ResponseFormatter",
    "Segment",
    "ToolExecutor",
    "merge_turns",
]
