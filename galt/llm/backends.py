"""
Chat Backends
=============

A backend is one OpenAI-compatible chat completion endpoint. The bot runs
two of them, a primary (Gemini through its OpenAI-compatible API by default)
and a secondary (OpenAI), and the ModelGateway decides which one answers.

Every backend speaks the same contract:

    response = await backend.complete(messages, tools)
    response.content      # answer text
    response.tool_calls   # list[ToolInvocationRequest]
    response.usage        # TokenUsage

and reports failures as BackendError with an HTTP-like status code so the
gateway can classify them without knowing the SDK.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import openai
from openai import AsyncOpenAI

from galt.tools import ToolInvocationRequest
from galt.utils.logger import Logger

logger = Logger("Backend")


class BackendSlot(str, Enum):
    """Which side of the breaker a backend sits on."""
    PRIMARY = "primary"
    SECONDARY = "secondary"


class BackendError(Exception):
    """
    A classified backend failure.

    Attributes:
        status_code: HTTP status (timeouts are 504, connection failures 503);
            None when the failure has no meaningful status
        backend: Name of the backend that failed
    """

    def __init__(self, status_code: int | None, message: str, backend: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.backend = backend

    def __str__(self) -> str:
        prefix = f"[{self.backend}] " if self.backend else ""
        status = f"{self.status_code}: " if self.status_code is not None else ""
        return f"{prefix}{status}{self.args[0]}"


@dataclass(frozen=True)
class TokenUsage:
    """Token counters for one or more model calls."""
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )

    @classmethod
    def from_openai(cls, usage: Any) -> "TokenUsage":
        if usage is None:
            return cls()
        return cls(
            input_tokens=usage.prompt_tokens or 0,
            output_tokens=usage.completion_tokens or 0,
            total_tokens=usage.total_tokens or 0,
        )


@dataclass
class ModelResponse:
    """
    One chat completion, independent of the backend that produced it.

    Attributes:
        content: Answer text (may be empty when only tools were requested)
        tool_calls: Tool requests, in the order the model listed them
        usage: Token counters for this call
        backend: The slot that served the call (set by the gateway)
        model: Model name reported by the backend
    """
    content: str
    tool_calls: list[ToolInvocationRequest] = field(default_factory=list)
    usage: TokenUsage = field(default_factory=TokenUsage)
    backend: BackendSlot | None = None
    model: str = ""

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)

    def to_assistant_message(self) -> dict:
        """
        Render this response as the assistant message that requested the
        tools, so a follow-up call can be given the matching tool results.
        """
        message: dict[str, Any] = {"role": "assistant", "content": self.content or None}
        if self.tool_calls:
            message["tool_calls"] = [
                {
                    "id": call.invocation_id,
                    "type": "function",
                    "function": {
                        "name": call.tool_name,
                        "arguments": call.raw_arguments,
                    },
                }
                for call in self.tool_calls
            ]
        return message


class ChatBackend:
    """
    An OpenAI-compatible chat completion backend.

    Example:
        backend = ChatBackend(
            name="primary",
            api_key="...",
            model="gemini-1.5-flash",
            base_url="https://generativelanguage.googleapis.com/v1beta/openai/",
        )
        response = await backend.complete([{"role": "user", "content": "hi"}])
    """

    def __init__(
        self,
        name: str,
        api_key: str,
        model: str,
        base_url: str | None = None,
        client: AsyncOpenAI | None = None
    ):
        """
        Initialize the backend.

        Args:
            name: Label used in logs and errors
            api_key: API key for the endpoint
            model: Chat model to request
            base_url: Endpoint root; None uses the SDK default
            client: Pre-built client (tests inject a mock here)
        """
        self.name = name
        self.model = model
        # The gateway owns retries and timeouts
        self.client = client or AsyncOpenAI(api_key=api_key, base_url=base_url, max_retries=0)

    async def complete(
        self,
        messages: list[dict],
        tools: list[dict] | None = None,
        max_tokens: int | None = None
    ) -> ModelResponse:
        """
        Run one chat completion.

        Args:
            messages: OpenAI-format chat messages
            tools: OpenAI function declarations (omitted when empty)
            max_tokens: Optional output cap

        Returns:
            ModelResponse with text, tool requests and usage

        Raises:
            BackendError: On any API, timeout or connection failure
        """
        kwargs: dict[str, Any] = {"model": self.model, "messages": messages}
        if tools:
            kwargs["tools"] = tools
            kwargs["tool_choice"] = "auto"
        if max_tokens is not None:
            kwargs["max_tokens"] = max_tokens

        try:
            response = await self.client.chat.completions.create(**kwargs)
        except openai.APIStatusError as e:
            raise BackendError(e.status_code, e.message, self.name) from e
        except openai.APITimeoutError as e:
            raise BackendError(504, "Request timed out", self.name) from e
        except openai.APIConnectionError as e:
            raise BackendError(503, f"Connection failed: {e}", self.name) from e

        return self._parse_response(response)

    def _parse_response(self, response: Any) -> ModelResponse:
        if not response.choices:
            raise BackendError(None, "Response contained no choices", self.name)

        message = response.choices[0].message
        tool_calls = [
            ToolInvocationRequest.from_raw(tc.function.name, tc.function.arguments, tc.id)
            for tc in (message.tool_calls or [])
        ]

        if tool_calls:
            logger.debug(f"{self.name} requested {len(tool_calls)} tool calls")

        return ModelResponse(
            content=message.content or "",
            tool_calls=tool_calls,
            usage=TokenUsage.from_openai(getattr(response, "usage", None)),
            model=getattr(response, "model", None) or self.model,
        )
