"""
Shared fakes for the test suite.

No test touches the network: chat backends, embeddings and Slack are
replaced by the small fakes below or by unittest.mock.
"""

from datetime import datetime, timedelta

import pytest

from galt.llm.backends import BackendError, ModelResponse, TokenUsage
from galt.tools import ToolInvocationRequest


class FakeBackend:
    """
    Stand-in for ChatBackend that replays scripted outcomes.

    Each queued item is either a ModelResponse (returned) or an
    Exception (raised). When the queue runs dry the default reply is used.
    """

    def __init__(self, name: str, model: str = "fake-model", default: str = "ok"):
        self.name = name
        self.model = model
        self.default = default
        self.queue: list = []
        self.calls: list[dict] = []

    def push(self, *outcomes) -> "FakeBackend":
        self.queue.extend(outcomes)
        return self

    def fail_with(self, status_code: int | None, times: int = 1) -> "FakeBackend":
        for _ in range(times):
            self.queue.append(BackendError(status_code, "scripted failure", self.name))
        return self

    async def complete(self, messages, tools=None, max_tokens=None) -> ModelResponse:
        self.calls.append({"messages": messages, "tools": tools, "max_tokens": max_tokens})
        outcome = self.queue.pop(0) if self.queue else reply(f"{self.default} from {self.name}")
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2025, 3, 2, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeEmbeddings:
    """Embeds text as letter counts over a tiny alphabet, so similar words land close."""

    ALPHABET = "abcdefghijklmnopqrstuvwxyz"

    def __init__(self):
        self.calls: list[str] = []

    async def generate(self, text: str) -> list[float]:
        self.calls.append(text)
        lowered = text.lower()
        vector = [float(lowered.count(ch)) for ch in self.ALPHABET]
        # Keep every vector non-zero
        vector.append(1.0)
        return vector


def reply(content: str = "", tool_calls=None, input_tokens: int = 0, output_tokens: int = 0) -> ModelResponse:
    return ModelResponse(
        content=content,
        tool_calls=list(tool_calls or []),
        usage=TokenUsage(input_tokens, output_tokens, input_tokens + output_tokens),
    )


def call(tool_name: str, arguments: str = "{}", invocation_id: str | None = None) -> ToolInvocationRequest:
    return ToolInvocationRequest.from_raw(tool_name, arguments, invocation_id or f"call_{tool_name}")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def primary() -> FakeBackend:
    return FakeBackend("primary", model="gemini-1.5-flash")


@pytest.fixture
def secondary() -> FakeBackend:
    return FakeBackend("secondary", model="gpt-4o-mini")
