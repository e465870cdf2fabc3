"""
Slack Event Handlers
====================

Handles Slack events and routes them to the agent.

Event Types:
- app_mention: Someone mentions @gaLt in a channel (reply goes in the thread)
- message.im: Direct messages to the bot
- /galt: help, status, summarize and clear

Each inbound message becomes one agent turn:

    participant_id  = the Slack user
    conversation_id = "<channel>:<user>"

Replies are a single Slack message whose legacy attachments carry the
formatted segments; images produced by tools are uploaded to the same
thread.

Slack can deliver the same event more than once (retries after a slow
ack, reconnects), so events are de-duplicated by channel + ts for five
minutes before they reach the agent.
"""

import re
import time
from typing import TYPE_CHECKING, Callable

from slack_bolt.async_app import AsyncAck, AsyncApp, AsyncSay
from slack_sdk.errors import SlackApiError
from slack_sdk.web.async_client import AsyncWebClient

from galt.agent.formatter import FormattedResponse, ResponseFormatter
from galt.utils.logger import Logger

if TYPE_CHECKING:
    from galt.agent import Agent
    from galt.llm import ModelGateway
    from galt.utils.metrics import MetricsRecorder

logger = Logger("Handlers")

MENTION_PATTERN = re.compile(r"<@[A-Z0-9]+>")
SEGMENT_COLOR = "#5865F2"
DEDUP_TTL_SECONDS = 300.0
DEFAULT_SUMMARY_COUNT = 15
MAX_SUMMARY_COUNT = 100

HELP_TEXT = """*gaLt* - your chat assistant

*Commands:*
- `/galt help` - Show this help message
- `/galt status` - Show which model is answering and today's usage
- `/galt summarize [count]` - Summarize the last messages of your conversation here (default 15)
- `/galt clear` - Clear your conversation history in this channel

*Usage:*
- Mention me (@gaLt) in a channel, I'll answer in the thread
- DM me for a private conversation
- I can do maths, tell the time anywhere, generate an image and search the web
"""


def conversation_id_for(channel_id: str, user_id: str) -> str:
    return f"{channel_id}:{user_id}"


def parse_summary_count(text: str) -> int | None:
    """Turn count from `summarize [count]`; None when the count is not 1-100."""
    parts = text.split()
    if len(parts) == 1:
        return DEFAULT_SUMMARY_COUNT
    if len(parts) != 2 or not parts[1].isdigit():
        return None
    count = int(parts[1])
    return count if 1 <= count <= MAX_SUMMARY_COUNT else None


class EventDeduplicator:
    """Remembers event keys for a while and reports repeats."""

    def __init__(self, ttl_seconds: float = DEDUP_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._seen: dict[str, float] = {}

    def is_duplicate(self, key: str) -> bool:
        """True if the key was seen within the TTL; records it otherwise."""
        now = self._clock()
        self._seen = {k: expires for k, expires in self._seen.items() if expires > now}

        if key in self._seen:
            return True
        self._seen[key] = now + self.ttl_seconds
        return False


def render_attachments(formatted: FormattedResponse) -> list[dict]:
    """Turn formatted segments into Slack legacy attachments."""
    attachments = []
    for segment in formatted.segments:
        text = segment.text
        if segment.metadata:
            text += f"\n\n_{segment.metadata}_"

        attachment = {"color": SEGMENT_COLOR, "text": text, "mrkdwn_in": ["text"]}
        if segment.title:
            attachment["title"] = segment.title
        if segment.context_note:
            attachment["author_name"] = segment.context_note
        if segment.page_marker:
            attachment["footer"] = segment.page_marker
        attachments.append(attachment)
    return attachments


class SlackHandlers:
    """
    Slack listeners bound to the agent that answers them.

    Example:
        handlers = SlackHandlers(agent, formatter, gateway, metrics)
        app.event("app_mention")(handlers.handle_mention)
    """

    def __init__(
        self,
        agent: "Agent",
        formatter: ResponseFormatter,
        gateway: "ModelGateway",
        metrics: "MetricsRecorder | None" = None,
        deduplicator: EventDeduplicator | None = None
    ):
        self.agent = agent
        self.formatter = formatter
        self.gateway = gateway
        self.metrics = metrics
        self.deduplicator = deduplicator or EventDeduplicator()

    async def handle_mention(self, event: dict, say: AsyncSay, client: AsyncWebClient) -> None:
        """Answer an @mention in the thread it came from."""
        user_id = event.get("user")
        channel_id = event.get("channel")
        thread_ts = event.get("thread_ts") or event.get("ts")
        text = MENTION_PATTERN.sub("", event.get("text", "")).strip()

        if self.deduplicator.is_duplicate(f"{channel_id}:{event.get('ts')}"):
            logger.debug(f"Ignoring duplicate mention {event.get('ts')}")
            return

        if not text:
            await say(text="Hi! How can I help you?", thread_ts=thread_ts)
            return

        logger.info(f"Mention from {user_id} in {channel_id}: {text[:50]}...")
        await self._answer(client, say, user_id, channel_id, text, thread_ts)

    async def handle_message(self, event: dict, say: AsyncSay, client: AsyncWebClient) -> None:
        """Answer a direct message."""
        # Channel messages arrive as app_mention when they concern the bot
        if event.get("channel_type") != "im":
            return
        if event.get("bot_id") or event.get("subtype"):
            return

        user_id = event.get("user")
        channel_id = event.get("channel")
        text = event.get("text", "").strip()
        if not text:
            return

        if self.deduplicator.is_duplicate(f"{channel_id}:{event.get('ts')}"):
            logger.debug(f"Ignoring duplicate DM {event.get('ts')}")
            return

        logger.info(f"DM from {user_id}: {text[:50]}...")
        await self._answer(client, say, user_id, channel_id, text, thread_ts=None)

    async def _answer(
        self,
        client: AsyncWebClient,
        say: AsyncSay,
        user_id: str,
        channel_id: str,
        text: str,
        thread_ts: str | None
    ) -> None:
        try:
            reply = await self.agent.process(
                participant_id=user_id,
                conversation_id=conversation_id_for(channel_id, user_id),
                text=text,
            )

            if reply.failed:
                await say(text=reply.content, thread_ts=thread_ts)
                return

            formatted = self.formatter.format(
                reply.content,
                attachments=reply.attachments,
                tools_used=reply.tools_used,
                token_usage=reply.token_usage,
                used_memory=reply.used_memory,
            )
            await self._deliver(client, channel_id, thread_ts, formatted)

        except Exception as e:
            logger.error("Error answering message", e)
            await say(
                text="Sorry, I encountered an error processing your request.",
                thread_ts=thread_ts
            )

    async def _deliver(
        self,
        client: AsyncWebClient,
        channel_id: str,
        thread_ts: str | None,
        formatted: FormattedResponse
    ) -> None:
        """Post the segments, then upload any files into the same thread."""
        fallback = formatted.segments[0].text[:300] if formatted.segments else ""
        response = await client.chat_postMessage(
            channel=channel_id,
            thread_ts=thread_ts,
            text=fallback or "(empty response)",
            attachments=render_attachments(formatted),
        )

        if not formatted.attachments:
            return

        try:
            await client.files_upload_v2(
                channel=channel_id,
                thread_ts=thread_ts or response.get("ts"),
                file_uploads=[
                    {"file": attachment.data, "filename": attachment.filename, "title": attachment.filename}
                    for attachment in formatted.attachments
                ],
            )
        except SlackApiError as e:
            logger.error("Failed to upload tool attachments", e)
            await client.chat_postMessage(
                channel=channel_id,
                thread_ts=thread_ts or response.get("ts"),
                text="I generated a file but couldn't upload it.",
            )

    async def handle_command(self, ack: AsyncAck, command: dict, say: AsyncSay) -> None:
        """Handle `/galt help|status|summarize [count]|clear`."""
        await ack()

        user_id = command.get("user_id")
        channel_id = command.get("channel_id")
        text = command.get("text", "").strip().lower()

        if text in ("", "help"):
            await say(text=HELP_TEXT)
        elif text == "status":
            await say(text=self._status_text())
        elif text == "clear":
            await self.agent.clear_conversation(conversation_id_for(channel_id, user_id))
            await say(text="Conversation history cleared! Starting fresh.")
        elif text.split()[0] == "summarize":
            count = parse_summary_count(text)
            if count is None:
                await say(text="Usage: `/galt summarize [count]` with a count between 1 and 100")
                return
            reply = await self.agent.summarize_conversation(conversation_id_for(channel_id, user_id), count)
            await say(text=reply.content)
        else:
            await say(text=f"Unknown command: `{text}`. Try `/galt help`")

    def _status_text(self) -> str:
        state = self.gateway.describe()
        lines = [
            "*Bot Status*",
            f"- Answering with: {state['active']} ({state['model']})",
        ]
        if state["degraded_until"]:
            lines.append(f"- Primary retry after: {state['degraded_until']}")
        lines.append(f"- Tools available: {len(self.agent.registry)}")

        today = self.metrics.get_day() if self.metrics else None
        if today is not None:
            lines.append(
                f"- Today: {today.requests} requests, {today.total_tokens} tokens, "
                f"{today.tool_calls.total} tool calls, ${today.cost_usd + today.image_cost_usd:.4f}"
            )
        return "\n".join(lines)


def register_handlers(
    app: AsyncApp,
    agent: "Agent",
    formatter: ResponseFormatter,
    gateway: "ModelGateway",
    metrics: "MetricsRecorder | None" = None
) -> SlackHandlers:
    """Register all event handlers with the Slack app."""
    handlers = SlackHandlers(agent, formatter, gateway, metrics)

    app.event("app_mention")(handlers.handle_mention)
    app.event("message")(handlers.handle_message)
    app.command("/galt")(handlers.handle_command)

    logger.info("Registered Slack event handlers")
    return handlers
