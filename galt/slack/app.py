"""
Slack Bolt App
==============

Creates the Slack Bolt application and its Socket Mode connection.

Socket Mode keeps a WebSocket open to Slack, so the bot receives events
without exposing a public URL.
"""

from slack_bolt.adapter.socket_mode.async_handler import AsyncSocketModeHandler
from slack_bolt.async_app import AsyncApp

from galt.utils.config import SlackConfig
from galt.utils.logger import Logger

logger = Logger("SlackApp")


def create_slack_app(config: SlackConfig) -> AsyncApp:
    """Create the Bolt app from the Slack credentials."""
    app = AsyncApp(
        token=config.bot_token,
        signing_secret=config.signing_secret,
    )

    logger.info("Slack Bolt app created")
    return app


async def create_socket_handler(app: AsyncApp, config: SlackConfig) -> AsyncSocketModeHandler:
    """Create the Socket Mode handler that delivers events to the app."""
    handler = AsyncSocketModeHandler(app=app, app_token=config.app_token)

    logger.info("Socket Mode handler created")
    return handler
