"""
Tools System
============

Tools are named, schema-validated operations the model may request during
a turn. Each tool declares:

- a name and a description (shown to the model),
- a pydantic model describing its arguments (rendered as JSON Schema for
  the model, and used to validate requests before the tool body runs),
- an async execute function that returns a JSON-friendly payload or raises.

How a tool request flows:
1. The model answers with tool calls -> ToolInvocationRequest
2. The ToolExecutor looks the tool up in the ToolRegistry, validates the
   arguments and runs it -> ToolInvocationResult
3. The result is sent back to the model as a "tool" message tied to the
   originating invocation id

This module provides:
- Tool dataclass for defining tools
- ToolInvocationRequest / ToolInvocationResult
- Attachment for binary tool output (generated images)
- ToolRegistry for managing available tools
"""

import json
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from pydantic import BaseModel

from galt.utils.logger import Logger

if TYPE_CHECKING:
    from galt.utils.config import Config
    from galt.utils.metrics import MetricsRecorder

logger = Logger("Tools")

# Tool payload strings longer than this are cut before going back to the model
MAX_PAYLOAD_STRING = 2000


@dataclass(frozen=True)
class Attachment:
    """
    Binary output produced by a tool and delivered with the reply.

    Attachments never reach the model; the payload sent back to it only
    mentions their size.
    """
    filename: str
    data: bytes = field(repr=False)
    content_type: str = "application/octet-stream"


@dataclass(frozen=True)
class ToolInvocationRequest:
    """
    One tool call requested by the model.

    Attributes:
        tool_name: The requested tool
        arguments: Decoded JSON arguments
        invocation_id: The model's tool call id (used to correlate results)
        raw_arguments: The arguments exactly as the model sent them
        parse_error: Set when raw_arguments was not a JSON object
    """
    tool_name: str
    arguments: dict[str, Any]
    invocation_id: str
    raw_arguments: str = "{}"
    parse_error: str | None = None

    @classmethod
    def from_raw(cls, tool_name: str, raw_arguments: str | None, invocation_id: str) -> "ToolInvocationRequest":
        """Decode the model's argument string, keeping any decode error."""
        raw = raw_arguments or "{}"
        try:
            arguments = json.loads(raw)
        except json.JSONDecodeError as e:
            return cls(tool_name, {}, invocation_id, raw, f"Invalid JSON arguments: {e}")

        if not isinstance(arguments, dict):
            return cls(tool_name, {}, invocation_id, raw, "Tool arguments must be a JSON object")

        return cls(tool_name, arguments, invocation_id, raw)


@dataclass(frozen=True)
class ToolInvocationResult:
    """
    Outcome of one ToolInvocationRequest.

    Attributes:
        invocation_id: The originating request's id
        tool_name: The requested tool
        success: Whether the tool body ran and returned normally
        payload: The tool's return value (success only)
        error: What went wrong (failure only)
    """
    invocation_id: str
    tool_name: str
    success: bool
    payload: Any = None
    error: str | None = None

    @classmethod
    def ok(cls, request: ToolInvocationRequest, payload: Any) -> "ToolInvocationResult":
        return cls(request.invocation_id, request.tool_name, True, payload=payload)

    @classmethod
    def failed(cls, request: ToolInvocationRequest, error: str) -> "ToolInvocationResult":
        return cls(request.invocation_id, request.tool_name, False, error=error)

    @property
    def attachments(self) -> list[Attachment]:
        """Attachments found at the top level of a successful payload."""
        if not self.success:
            return []
        if isinstance(self.payload, Attachment):
            return [self.payload]
        if isinstance(self.payload, dict):
            return [v for v in self.payload.values() if isinstance(v, Attachment)]
        return []

    def to_message(self) -> str:
        """Format the result as content for the model."""
        if self.success:
            return json.dumps(sanitize_payload(self.payload), default=str)
        return f"Error: {self.error}"

    def to_openai_message(self) -> dict:
        return {
            "role": "tool",
            "tool_call_id": self.invocation_id,
            "content": self.to_message(),
        }


def sanitize_payload(value: Any) -> Any:
    """
    Make a tool payload safe to send back to the model.

    Binary data is replaced by a size summary and very long strings are
    truncated, recursively through dicts and lists.
    """
    if isinstance(value, Attachment):
        return f"[binary omitted: {len(value.data)} bytes]"
    if isinstance(value, (bytes, bytearray)):
        return f"[binary omitted: {len(value)} bytes]"
    if isinstance(value, str) and len(value) > MAX_PAYLOAD_STRING:
        omitted = len(value) - MAX_PAYLOAD_STRING
        return value[:MAX_PAYLOAD_STRING] + f"... [omitted {omitted} chars]"
    if isinstance(value, dict):
        return {k: sanitize_payload(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [sanitize_payload(v) for v in value]
    return value


@dataclass
class Tool:
    """
    Definition of a tool.

    Attributes:
        name: Unique identifier for the tool
        description: What the tool does (shown to the model)
        args_model: Pydantic model the arguments must validate against
        execute: Async function receiving the validated arguments
        single_use_per_turn: Only the first valid request per turn runs

    Example:
        class EchoArgs(BaseModel):
            text: str

        async def echo(args: EchoArgs) -> dict:
            return {"echo": args.text}

        tool = Tool(
            name="echo",
            description="Repeat the given text",
            args_model=EchoArgs,
            execute=echo,
        )
    """
    name: str
    description: str
    args_model: type[BaseModel]
    execute: Callable[[Any], Awaitable[Any]]
    single_use_per_turn: bool = False

    def validate(self, arguments: dict[str, Any]) -> BaseModel:
        """
        Validate raw arguments.

        Raises:
            pydantic.ValidationError: If the arguments don't match args_model
        """
        return self.args_model.model_validate(arguments)

    def to_openai_function(self) -> dict:
        """Convert to OpenAI function calling format."""
        schema = self.args_model.model_json_schema()
        schema.pop("title", None)
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": schema,
            },
        }


class ToolRegistry:
    """
    Registry of the tools available to the model.

    Example:
        registry = ToolRegistry()
        registry.register(calculator_tool)

        tool = registry.get("calculator")
        functions = registry.get_openai_functions()
    """

    def __init__(self):
        self._tools: dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        """
        Register a tool.

        Raises:
            ValueError: If a tool with this name already exists
        """
        if tool.name in self._tools:
            raise ValueError(f"Tool '{tool.name}' is already registered")

        self._tools[tool.name] = tool
        logger.debug(f"Registered tool: {tool.name}")

    def unregister(self, name: str) -> bool:
        return self._tools.pop(name, None) is not None

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def get_all(self) -> list[Tool]:
        return list(self._tools.values())

    def get_openai_functions(self) -> list[dict]:
        """Get all tool declarations in OpenAI function format."""
        return [tool.to_openai_function() for tool in self._tools.values()]

    def list_names(self) -> list[str]:
        return list(self._tools.keys())

    def __len__(self) -> int:
        return len(self._tools)


def build_default_registry(
    config: "Config",
    metrics: "MetricsRecorder | None" = None
) -> ToolRegistry:
    """
    Build the registry with every tool the configuration allows.

    Tool modules import from this package, so they are imported here
    rather than at module level.
    """
    from galt.tools.calculator import calculator_tool
    from galt.tools.clock import time_tool
    from galt.tools.image_generation import create_image_tool
    from galt.tools.web_search import create_web_search_tool

    registry = ToolRegistry()
    registry.register(calculator_tool)
    registry.register(time_tool)
    registry.register(create_image_tool(
        api_key=config.secondary.api_key,
        model=config.tools.image_model,
        metrics=metrics,
        image_cost_usd=config.pricing.image_cost_usd,
    ))

    if config.tools.tavily_api_key:
        registry.register(create_web_search_tool(config.tools.tavily_api_key))
    else:
        logger.info("TAVILY_API_KEY not set, web_search disabled")

    logger.info(f"Registered {len(registry)} tools: {', '.join(registry.list_names())}")
    return registry


__all__ = [
    "Attachment",
    "Tool",
    "ToolInvocationRequest",
    "ToolInvocationResult",
    "ToolRegistry",
    "build_default_registry",
    "sanitize_payload",
]
