"""
Tool Executor
=============

Runs the tool calls requested by one model response.

For each request, in the order the model listed them:
1. Unknown tool name          -> failure, nothing runs
2. Arguments weren't valid JSON -> failure with the decode error
3. Arguments fail validation  -> failure with the validation error
4. Single-use tool already used in this batch -> "Duplicate request ignored"
5. Otherwise run the tool under a timeout; an exception or timeout
   becomes that request's failure

One failing request never stops the others. Every result is reported to
the metrics sink.

Requests run one after another, never concurrently, so the single-use
check and any side effects happen in request order.
"""

import asyncio

from pydantic import ValidationError

from galt.tools import ToolInvocationRequest, ToolInvocationResult, ToolRegistry
from galt.utils.logger import Logger
from galt.utils.metrics import MetricsRecorder

logger = Logger("ToolExecutor")


class ToolExecutor:
    """
    Validates and executes tool requests.

    Example:
        executor = ToolExecutor(registry, metrics, tool_timeout=60)

        results = await executor.execute_all(response.tool_calls)
        messages.extend(r.to_openai_message() for r in results)
    """

    def __init__(
        self,
        registry: ToolRegistry,
        metrics: MetricsRecorder | None = None,
        tool_timeout: float = 60.0
    ):
        self.registry = registry
        self.metrics = metrics
        self.tool_timeout = tool_timeout

    async def execute_all(self, requests: list[ToolInvocationRequest]) -> list[ToolInvocationResult]:
        """
        Execute a batch of requests from one model response.

        Returns:
            One result per request, in request order
        """
        used_single_use: set[str] = set()
        results = []

        for request in requests:
            result = await self.execute_one(request, used_single_use)
            results.append(result)
            await self._report(result)

        succeeded = sum(1 for r in results if r.success)
        logger.info(f"Executed {len(results)} tool calls ({succeeded} succeeded)")
        return results

    async def execute_one(
        self,
        request: ToolInvocationRequest,
        used_single_use: set[str] | None = None
    ) -> ToolInvocationResult:
        """
        Execute a single request.

        Args:
            request: The tool request
            used_single_use: Names of single-use tools already run in this
                batch; updated when this request takes the slot
        """
        tool = self.registry.get(request.tool_name)
        if tool is None:
            logger.warning(f"Model requested unknown tool: {request.tool_name}")
            return ToolInvocationResult.failed(request, f"Tool '{request.tool_name}' not found")

        if request.parse_error:
            logger.warning(f"Bad arguments for {request.tool_name}: {request.parse_error}")
            return ToolInvocationResult.failed(request, request.parse_error)

        try:
            args = tool.validate(request.arguments)
        except ValidationError as e:
            logger.warning(f"Invalid arguments for {request.tool_name}", {"errors": e.errors(include_url=False)})
            return ToolInvocationResult.failed(request, f"Invalid arguments: {e}")

        if tool.single_use_per_turn and used_single_use is not None:
            if tool.name in used_single_use:
                logger.info(f"Ignoring repeated {tool.name} request {request.invocation_id}")
                return ToolInvocationResult.failed(
                    request,
                    f"Duplicate request ignored: {tool.name} can only run once per turn"
                )
            used_single_use.add(tool.name)

        logger.info(f"Executing tool: {tool.name}")
        try:
            payload = await asyncio.wait_for(tool.execute(args), timeout=self.tool_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Tool {tool.name} timed out after {self.tool_timeout}s")
            return ToolInvocationResult.failed(request, f"Tool timed out after {self.tool_timeout}s")
        except Exception as e:
            logger.error(f"Tool {tool.name} failed", e)
            return ToolInvocationResult.failed(request, str(e) or type(e).__name__)

        logger.debug(f"Tool {tool.name} succeeded")
        return ToolInvocationResult.ok(request, payload)

    async def _report(self, result: ToolInvocationResult) -> None:
        if self.metrics is None:
            return
        try:
            await self.metrics.record_tool_call(result.tool_name, result.success)
        except Exception as e:
            logger.warning(f"Failed to record tool metrics: {e}")
