"""
Tests for the tool executor.
Run with: pytest tests/test_tools_executor.py
"""

import asyncio
from unittest.mock import AsyncMock

import pytest
from pydantic import BaseModel

from conftest import call
from galt.agent.tools_executor import ToolExecutor
from galt.tools import Attachment, Tool, ToolRegistry
from galt.tools.calculator import calculator_tool


class PromptArgs(BaseModel):
    prompt: str


def make_image_tool(log: list) -> Tool:
    async def fake_generate(args: PromptArgs) -> dict:
        log.append(args.prompt)
        return {"image": Attachment("img.png", b"\x89PNG" + b"0" * 10, "image/png"), "prompt": args.prompt}

    return Tool(
        name="generate_image",
        description="Generate an image",
        args_model=PromptArgs,
        execute=fake_generate,
        single_use_per_turn=True,
    )


@pytest.fixture
def generated() -> list:
    return []


@pytest.fixture
def registry(generated) -> ToolRegistry:
    registry = ToolRegistry()
    registry.register(calculator_tool)
    registry.register(make_image_tool(generated))
    return registry


@pytest.mark.asyncio
async def test_second_image_request_in_turn_is_ignored(registry, generated):
    """[imageGen(A), imageGen(B), calculator(C)] -> [success, duplicate-ignored, success]."""
    executor = ToolExecutor(registry)
    requests = [
        call("generate_image", '{"prompt": "A"}', "1"),
        call("generate_image", '{"prompt": "B"}', "2"),
        call("calculator", '{"operation": "add", "a": 2, "b": 3}', "3"),
    ]

    results = await executor.execute_all(requests)

    assert [r.success for r in results] == [True, False, True]
    assert results[1].error.startswith("Duplicate request ignored")
    assert generated == ["A"]
    assert results[2].payload["result"] == 5


@pytest.mark.asyncio
async def test_three_image_requests_run_only_the_first(registry, generated):
    executor = ToolExecutor(registry)
    requests = [
        call("generate_image", '{"prompt": "A"}', "1"),
        call("generate_image", '{"prompt": "B"}', "2"),
        call("generate_image", '{"prompt": "C"}', "3"),
    ]

    results = await executor.execute_all(requests)

    assert generated == ["A"]
    assert [r.invocation_id for r in results] == ["1", "2", "3"]
    assert results[0].success
    assert [r.error.startswith("Duplicate request ignored") for r in results[1:]] == [True, True]
    assert [a.filename for r in results for a in r.attachments] == ["img.png"]


@pytest.mark.asyncio
async def test_results_keep_request_order_and_ids(registry):
    executor = ToolExecutor(registry)
    requests = [
        call("calculator", '{"operation": "multiply", "a": 3, "b": 4}', "a"),
        call("missing_tool", "{}", "b"),
        call("calculator", '{"operation": "subtract", "a": 10, "b": 4}', "c"),
    ]

    results = await executor.execute_all(requests)

    assert [r.invocation_id for r in results] == ["a", "b", "c"]
    assert [r.tool_name for r in results] == ["calculator", "missing_tool", "calculator"]


@pytest.mark.asyncio
async def test_unknown_tool_fails_without_executing(registry):
    executor = ToolExecutor(registry)

    [result] = await executor.execute_all([call("launch_rockets")])

    assert not result.success
    assert result.error == "Tool 'launch_rockets' not found"


@pytest.mark.asyncio
async def test_invalid_json_arguments_fail(registry):
    executor = ToolExecutor(registry)

    [result] = await executor.execute_all([call("calculator", '{"operation": "add", ')])

    assert not result.success
    assert "Invalid JSON arguments" in result.error


@pytest.mark.asyncio
async def test_validation_failure_does_not_invoke_tool(registry):
    body = AsyncMock(return_value={"result": 0})
    registry.register(Tool("strict", "Strict args", PromptArgs, body))
    executor = ToolExecutor(registry)

    [result] = await executor.execute_all([call("strict", '{"prompt": 42}')])

    assert not result.success
    assert result.error.startswith("Invalid arguments")
    body.assert_not_awaited()


@pytest.mark.asyncio
async def test_invalid_first_image_request_does_not_take_the_slot(registry, generated):
    executor = ToolExecutor(registry)
    requests = [
        call("generate_image", '{"wrong": "field"}', "1"),
        call("generate_image", '{"prompt": "B"}', "2"),
    ]

    results = await executor.execute_all(requests)

    assert [r.success for r in results] == [False, True]
    assert generated == ["B"]


@pytest.mark.asyncio
async def test_raising_tool_is_isolated_from_siblings(registry):
    executor = ToolExecutor(registry)
    requests = [
        call("calculator", '{"operation": "divide", "a": 1, "b": 0}', "1"),
        call("calculator", '{"operation": "divide", "a": 9, "b": 3}', "2"),
    ]

    results = await executor.execute_all(requests)

    assert not results[0].success
    assert "Division by zero" in results[0].error
    assert results[1].success
    assert results[1].payload["result"] == 3


@pytest.mark.asyncio
async def test_slow_tool_times_out(registry):
    async def slow(args):
        await asyncio.sleep(1)

    registry.register(Tool("slow", "Takes forever", PromptArgs, slow))
    executor = ToolExecutor(registry, tool_timeout=0.01)

    [result] = await executor.execute_all([call("slow", '{"prompt": "x"}')])

    assert not result.success
    assert "timed out" in result.error


@pytest.mark.asyncio
async def test_every_result_is_reported_to_metrics(registry):
    metrics = AsyncMock()
    executor = ToolExecutor(registry, metrics=metrics)
    requests = [
        call("generate_image", '{"prompt": "A"}', "1"),
        call("generate_image", '{"prompt": "B"}', "2"),
        call("nope", "{}", "3"),
    ]

    await executor.execute_all(requests)

    reported = [c.args for c in metrics.record_tool_call.await_args_list]
    assert reported == [("generate_image", True), ("generate_image", False), ("nope", False)]


@pytest.mark.asyncio
async def test_metrics_failure_does_not_break_execution(registry):
    metrics = AsyncMock()
    metrics.record_tool_call.side_effect = RuntimeError("disk full")
    executor = ToolExecutor(registry, metrics=metrics)

    [result] = await executor.execute_all([call("calculator", '{"operation": "add", "a": 1, "b": 1}')])

    assert result.success


@pytest.mark.asyncio
async def test_single_use_slot_resets_between_batches(registry, generated):
    executor = ToolExecutor(registry)

    await executor.execute_all([call("generate_image", '{"prompt": "first turn"}')])
    await executor.execute_all([call("generate_image", '{"prompt": "second turn"}')])

    assert generated == ["first turn", "second turn"]


@pytest.mark.asyncio
async def test_binary_payload_is_not_sent_back_to_model(registry):
    executor = ToolExecutor(registry)

    [result] = await executor.execute_all([call("generate_image", '{"prompt": "A"}', "img")])
    message = result.to_openai_message()

    assert message["role"] == "tool"
    assert message["tool_call_id"] == "img"
    assert "[binary omitted: 14 bytes]" in message["content"]
    assert len(result.attachments) == 1
