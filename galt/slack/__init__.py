"""
Slack Integration
=================

The chat transport:
- Bolt app and Socket Mode connection
- Event handlers (mentions, DMs, the /galt command)
- Rendering formatted replies as Slack messages and file uploads
"""

from galt.slack.app import create_slack_app, create_socket_handler
from galt.slack.handlers import SlackHandlers, register_handlers

__all__ = ["SlackHandlers", "create_slack_app", "create_socket_handler", "register_handlers"]
