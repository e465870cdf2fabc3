"""
gaLt Bot - Conversational Slack Assistant
=========================================

A chat bot built around an agent orchestration loop:

- Model gateway with automatic failover between a primary and a
  secondary LLM backend
- Conversation memory: recent turns plus similarity-recalled older turns
- Tool calling (calculator, clock, image generation, web search) with
  one tool round-trip per turn
- Long answers split into paged Slack message segments
"""

__version__ = "1.0.0"
