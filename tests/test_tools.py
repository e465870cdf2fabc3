"""
Tests for the tool registry, tool data types and the built-in tools.
Run with: pytest tests/test_tools.py
"""

import base64
import json
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from pydantic import BaseModel

from galt.tools import (
    MAX_PAYLOAD_STRING,
    Attachment,
    Tool,
    ToolInvocationRequest,
    ToolInvocationResult,
    ToolRegistry,
    sanitize_payload,
)
from galt.tools.calculator import CalculatorArgs, calculate, calculator_tool
from galt.tools.clock import TimeArgs, create_time_tool
from galt.tools.image_generation import ImageArgs, create_image_tool
from galt.tools.web_search import WebSearchArgs, create_web_search_tool


# ---------------------------------------------------------------------------
# Requests, results and sanitization
# ---------------------------------------------------------------------------

def test_request_from_raw_decodes_arguments():
    request = ToolInvocationRequest.from_raw("calculator", '{"a": 1}', "call_1")

    assert request.arguments == {"a": 1}
    assert request.parse_error is None
    assert request.raw_arguments == '{"a": 1}'


def test_request_from_raw_keeps_decode_errors():
    assert ToolInvocationRequest.from_raw("x", "{nope", "1").parse_error.startswith("Invalid JSON")
    assert ToolInvocationRequest.from_raw("x", "[1, 2]", "1").parse_error == "Tool arguments must be a JSON object"
    assert ToolInvocationRequest.from_raw("x", None, "1").arguments == {}


def test_sanitize_truncates_long_strings_and_hides_binary():
    payload = {"text": "y" * (MAX_PAYLOAD_STRING + 5), "blob": b"\x00\x01", "items": [Attachment("f", b"abc")]}

    clean = sanitize_payload(payload)

    assert clean["text"].endswith("... [omitted 5 chars]")
    assert clean["blob"] == "[binary omitted: 2 bytes]"
    assert clean["items"] == ["[binary omitted: 3 bytes]"]


def test_failed_result_message():
    request = ToolInvocationRequest.from_raw("calculator", "{}", "1")
    result = ToolInvocationResult.failed(request, "boom")

    assert result.to_message() == "Error: boom"
    assert result.attachments == []


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

def test_registry_rejects_duplicate_names():
    registry = ToolRegistry()
    registry.register(calculator_tool)

    with pytest.raises(ValueError):
        registry.register(calculator_tool)


def test_registry_renders_openai_declarations():
    registry = ToolRegistry()
    registry.register(calculator_tool)

    [declaration] = registry.get_openai_functions()

    assert declaration["type"] == "function"
    assert declaration["function"]["name"] == "calculator"
    parameters = declaration["function"]["parameters"]
    assert parameters["type"] == "object"
    assert set(parameters["required"]) == {"operation", "a", "b"}
    assert "title" not in parameters


def test_registry_lookup_and_unregister():
    class NoArgs(BaseModel):
        pass

    registry = ToolRegistry()
    registry.register(Tool("noop", "Does nothing", NoArgs, AsyncMock()))

    assert registry.get("noop") is not None
    assert registry.list_names() == ["noop"]
    assert registry.unregister("noop") is True
    assert registry.get("noop") is None
    assert len(registry) == 0


# ---------------------------------------------------------------------------
# calculator
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
@pytest.mark.parametrize("operation,expected", [("add", 8), ("subtract", 4), ("multiply", 12), ("divide", 3)])
async def test_calculator(operation, expected):
    result = await calculate(CalculatorArgs(operation=operation, a=6, b=2))

    assert result["result"] == expected


@pytest.mark.asyncio
async def test_calculator_divide_by_zero_raises():
    with pytest.raises(ZeroDivisionError):
        await calculate(CalculatorArgs(operation="divide", a=1, b=0))


# ---------------------------------------------------------------------------
# get_time
# ---------------------------------------------------------------------------

FIXED = datetime(2025, 3, 2, 14, 5, 9, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_get_time_formats():
    tool = create_time_tool(clock=lambda zone: FIXED.astimezone(zone))

    iso = await tool.execute(TimeArgs(format="iso"))
    unix = await tool.execute(TimeArgs(format="unix"))
    human = await tool.execute(TimeArgs(timezone="Europe/London"))

    assert iso["time"] == "2025-03-02T14:05:09+00:00"
    assert unix["time"] == str(int(FIXED.timestamp()))
    assert human["time"].startswith("Sunday, March 02, 2025 at 02:05:09 PM")
    assert human["timezone"] == "Europe/London"


@pytest.mark.asyncio
async def test_get_time_unknown_zone_raises():
    tool = create_time_tool()

    with pytest.raises(ValueError, match="Invalid timezone"):
        await tool.execute(TimeArgs(timezone="Mars/Olympus_Mons"))


# ---------------------------------------------------------------------------
# generate_image
# ---------------------------------------------------------------------------

def image_client(data) -> MagicMock:
    client = MagicMock()
    client.images.generate = AsyncMock(return_value=SimpleNamespace(data=data))
    return client


@pytest.mark.asyncio
async def test_generate_image_returns_attachment_and_records_cost():
    png = b"\x89PNG fake"
    client = image_client([SimpleNamespace(b64_json=base64.b64encode(png).decode(), url=None)])
    metrics = AsyncMock()
    tool = create_image_tool("sk-test", metrics=metrics, image_cost_usd=0.04, client=client)

    payload = await tool.execute(ImageArgs(prompt="a red fox", size="1792x1024"))

    assert payload["image"].data == png
    assert payload["image"].content_type == "image/png"
    assert payload["size"] == "1024x1024"
    kwargs = client.images.generate.await_args.kwargs
    assert kwargs["size"] == "1024x1024"
    assert kwargs["quality"] == "low"
    metrics.record_image_generation.assert_awaited_once_with(0.04)
    assert tool.single_use_per_turn is True


@pytest.mark.asyncio
async def test_generate_image_without_data_raises():
    tool = create_image_tool("sk-test", client=image_client([]))

    with pytest.raises(RuntimeError):
        await tool.execute(ImageArgs(prompt="nothing"))


# ---------------------------------------------------------------------------
# web_search
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_web_search_returns_sources():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={
            "answer": "Python 3.13 is the latest release.",
            "results": [{"title": "Python", "url": "https://python.org", "content": "x" * 500}],
        })

    tool = create_web_search_tool("tvly-key", transport=httpx.MockTransport(handler))

    payload = await tool.execute(WebSearchArgs(query="latest python", count=3, deep=True, max_snippet_length=50))

    assert seen["auth"] == "Bearer tvly-key"
    assert seen["body"]["max_results"] == 3
    assert seen["body"]["search_depth"] == "advanced"
    assert payload["summary"] == "Python 3.13 is the latest release."
    assert len(payload["sources"][0]["snippet"]) == 50
    assert payload["meta"]["reliable"] is True


@pytest.mark.asyncio
async def test_web_search_no_results():
    tool = create_web_search_tool("k", transport=httpx.MockTransport(lambda r: httpx.Response(200, json={"results": []})))

    payload = await tool.execute(WebSearchArgs(query="zzzz"))

    assert payload["sources"] == []
    assert payload["meta"]["reliable"] is False


@pytest.mark.asyncio
async def test_web_search_http_error_raises():
    tool = create_web_search_tool("k", transport=httpx.MockTransport(lambda r: httpx.Response(401)))

    with pytest.raises(RuntimeError, match="Tavily API error: 401"):
        await tool.execute(WebSearchArgs(query="anything"))


def test_web_search_count_is_bounded():
    with pytest.raises(ValueError):
        WebSearchArgs(query="q", count=11)
