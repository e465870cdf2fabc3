"""
Agent Core
==========

The agent answers one inbound message per call to process().

Agent Loop:
    User Message
         │
         ▼
    Assemble Context (recent + similar turns)
         │
         ▼
    Model call #1 with all tools declared
         │
    ┌─── Has Tool Calls? ───┐
    │                       │
    Yes                     No
    │                       │
    ▼                       │
    Execute Tools           │
    │                       │
    ▼                       │
    Model call #2 with      │
    the tool results        │
    │                       │
    └──────────┬────────────┘
               ▼
    Record answer, usage and metrics
               │
               ▼
          AgentReply

There is exactly one tool round-trip per turn: tool calls in the second
response are ignored. A turn therefore makes at most two model calls.
"""

from dataclasses import dataclass, field

from galt.agent.context import ContextAssembler, ConversationContext
from galt.agent.tools_executor import ToolExecutor
from galt.llm.backends import BackendError, BackendSlot, ModelResponse, TokenUsage
from galt.llm.gateway import ModelGateway
from galt.tools import Attachment, ToolInvocationResult, ToolRegistry
from galt.utils.logger import Logger
from galt.utils.metrics import MetricsRecorder, Pricing

logger = Logger("Agent")

APOLOGY = "Sorry, I ran into a problem while answering that. Please try again in a moment."
NOTHING_TO_SUMMARIZE = "No messages found to summarize."

SUMMARY_SYSTEM_PROMPT = (
    "You create clear, concise summaries of conversations. "
    "Summarize the main topics and key points discussed."
)
SUMMARY_REQUEST = (
    "Please provide a concise summary of the following conversation. Focus on the main topics "
    "discussed, key points, and any decisions or conclusions reached:\n\n{transcript}"
)
SPEAKERS = {"user": "User", "assistant": "gaLt"}


@dataclass
class AgentReply:
    """
    The outcome of one turn.

    Attributes:
        content: Final answer text (an apology when failed)
        tools_used: Distinct names of the tools that succeeded, in request order
        token_usage: Usage summed across the turn's model calls
        attachments: Binary outputs produced by tools
        backend: Slot that produced the final answer
        failed: True when no answer could be produced
        context_degraded: True when similar history could not be retrieved
        used_memory: True when older similar turns were part of the context
    """
    content: str
    tools_used: list[str] = field(default_factory=list)
    token_usage: TokenUsage = field(default_factory=TokenUsage)
    attachments: list[Attachment] = field(default_factory=list)
    backend: BackendSlot | None = None
    failed: bool = False
    context_degraded: bool = False
    used_memory: bool = False


class Agent:
    """
    Drives one conversational turn through context, model and tools.

    Example:
        agent = Agent(gateway, assembler, executor, registry, metrics, pricing)

        reply = await agent.process("U123", "D456:U123", "What's 17 * 23?")
        print(reply.content, reply.tools_used)
    """

    def __init__(
        self,
        gateway: ModelGateway,
        assembler: ContextAssembler,
        executor: ToolExecutor,
        registry: ToolRegistry,
        metrics: MetricsRecorder | None = None,
        pricing: Pricing | None = None,
        second_pass_context: int = 6
    ):
        """
        Initialize the agent.

        Args:
            gateway: Routes model calls between backends
            assembler: Builds context and records turns
            executor: Runs tool requests
            registry: Tools declared to the model
            metrics: Usage sink (optional)
            pricing: Token prices for cost estimates (optional)
            second_pass_context: History messages sent with the tool results
        """
        self.gateway = gateway
        self.assembler = assembler
        self.executor = executor
        self.registry = registry
        self.metrics = metrics
        self.pricing = pricing or Pricing()
        self.second_pass_context = second_pass_context

        logger.info(f"Agent initialized with {len(registry)} tools")

    async def process(
        self,
        participant_id: str,
        conversation_id: str,
        text: str
    ) -> AgentReply:
        """
        Answer one inbound message.

        Never raises: failures are logged and come back as an AgentReply
        with failed=True and an apology.
        """
        logger.info(f"Processing message from {participant_id}: {text[:50]}...")
        await self._record_request()

        context = None
        try:
            context = await self.assembler.assemble(participant_id, conversation_id, text)
            reply = await self._run(context)
        except BackendError as e:
            logger.error(f"Model call failed for {conversation_id}", e)
            return self._failure(context)
        except Exception as e:
            logger.error(f"Unexpected error processing message for {conversation_id}", e)
            return self._failure(context)

        await self.assembler.record_assistant(participant_id, conversation_id, reply.content)
        await self._record_usage(reply.token_usage)

        logger.info(
            f"Generated response ({len(reply.content)} chars)",
            {
                "backend": reply.backend.value if reply.backend else None,
                "tools": reply.tools_used,
                "tokens": reply.token_usage.total_tokens,
            }
        )
        return reply

    async def _run(self, context: ConversationContext) -> AgentReply:
        tools = self.registry.get_openai_functions() or None

        first = await self.gateway.invoke(context.to_openai_messages(), tools)

        if not first.has_tool_calls:
            return AgentReply(
                content=first.content,
                token_usage=first.usage,
                backend=first.backend,
                context_degraded=context.degraded,
                used_memory=context.similar_count > 0,
            )

        results = await self.executor.execute_all(first.tool_calls)
        attachments = [a for result in results for a in result.attachments]
        tools_used = tools_that_ran(results)

        content, usage, backend = await self._final_answer(context, first, results, tools)

        return AgentReply(
            content=content,
            tools_used=tools_used,
            token_usage=usage,
            attachments=attachments,
            backend=backend,
            context_degraded=context.degraded,
            used_memory=context.similar_count > 0,
        )

    async def _final_answer(
        self,
        context: ConversationContext,
        first: ModelResponse,
        results: list[ToolInvocationResult],
        tools: list[dict] | None
    ) -> tuple[str, TokenUsage, BackendSlot | None]:
        """
        Second model call: turn the tool results into the answer.

        Falls back to the first response's text, or a summary of the tool
        outcomes, when the call fails.
        """
        messages = [
            {"role": "system", "content": context.system_prompt},
            *context.recent_messages(self.second_pass_context),
            first.to_assistant_message(),
            *(result.to_openai_message() for result in results),
        ]

        try:
            second = await self.gateway.invoke(messages, tools)
        except BackendError as e:
            logger.error("Final-answer call failed, answering from tool results", e)
            return first.content or summarize_tool_results(results), first.usage, first.backend

        if second.has_tool_calls:
            logger.warning(
                f"Ignoring {len(second.tool_calls)} tool calls in the final answer",
                {"tools": [call.tool_name for call in second.tool_calls]}
            )

        content = second.content or first.content or summarize_tool_results(results)
        return content, first.usage + second.usage, second.backend

    def _failure(self, context: ConversationContext | None) -> AgentReply:
        return AgentReply(
            content=APOLOGY,
            failed=True,
            context_degraded=context.degraded if context else False,
        )

    async def _record_request(self) -> None:
        if self.metrics is None:
            return
        try:
            await self.metrics.record_request()
        except Exception as e:
            logger.warning(f"Failed to record request metrics: {e}")

    async def _record_usage(self, usage: TokenUsage) -> None:
        if self.metrics is None:
            return
        try:
            await self.metrics.record_token_usage(
                usage.input_tokens,
                usage.output_tokens,
                usage.total_tokens,
                self.pricing.token_cost(usage.input_tokens, usage.output_tokens),
            )
        except Exception as e:
            logger.warning(f"Failed to record token usage: {e}")

    async def clear_conversation(self, conversation_id: str) -> None:
        """Forget a conversation's history, e.g. on `/galt clear`."""
        await self.assembler.memory.clear_conversation(conversation_id)

    async def summarize_conversation(self, conversation_id: str, limit: int = 15) -> AgentReply:
        """
        Summarize the last `limit` turns of a conversation, e.g. on `/galt summarize`.

        One tool-less model call through the gateway. The summary is not
        recorded as a turn. Never raises: a failed call comes back as an
        apology with failed=True.
        """
        turns = self.assembler.memory.recent_history(conversation_id, limit)
        if not turns:
            return AgentReply(content=NOTHING_TO_SUMMARIZE)

        transcript = "\n".join(f"{SPEAKERS.get(t.role, t.role)}: {t.content}" for t in turns)
        messages = [
            {"role": "system", "content": SUMMARY_SYSTEM_PROMPT},
            {"role": "user", "content": SUMMARY_REQUEST.format(transcript=transcript)},
        ]

        await self._record_request()
        try:
            response = await self.gateway.invoke(messages)
        except Exception as e:
            logger.error(f"Summary failed for {conversation_id}", e)
            return self._failure(None)

        await self._record_usage(response.usage)
        logger.info(f"Summarized {len(turns)} turns of {conversation_id}")
        return AgentReply(
            content=response.content or "Unable to generate summary.",
            token_usage=response.usage,
            backend=response.backend,
        )


def tools_that_ran(results: list[ToolInvocationResult]) -> list[str]:
    """Distinct names of the tools that succeeded, in request order."""
    return list(dict.fromkeys(r.tool_name for r in results if r.success))


def summarize_tool_results(results: list[ToolInvocationResult]) -> str:
    """Plain-text answer listing which tools worked, used when the model can't answer."""
    succeeded = [r.tool_name for r in results if r.success]
    failed = [r.tool_name for r in results if not r.success]

    parts = []
    if succeeded:
        parts.append(f"Completed: {', '.join(succeeded)}.")
    if failed:
        parts.append(f"Failed: {', '.join(failed)}.")
    return " ".join(parts) or "Done."
