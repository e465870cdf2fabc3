"""
Usage Metrics
=============

Daily counters for requests, token usage, tool calls and image generation,
persisted as JSON so they survive restarts:

    data/
    └── metrics.json   # [{"date": "2025-03-02", "requests": 12, ...}, ...]

The recorder is a fire-and-forget sink: callers await it, but a failure to
write the file is logged here and never reaches the turn that produced the
numbers.

Usage:
    metrics = MetricsRecorder(Path("data"))

    await metrics.record_tool_call("calculator", success=True)
    await metrics.record_token_usage(120, 45, 165, cost_usd=0.0001)
"""

import asyncio
import json
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path

from galt.utils.logger import Logger

logger = Logger("Metrics")


@dataclass
class ToolCounters:
    total: int = 0
    success: int = 0
    failure: int = 0

    def add(self, success: bool) -> None:
        self.total += 1
        if success:
            self.success += 1
        else:
            self.failure += 1


@dataclass
class DayStats:
    """
    Counters for one calendar day.

    Attributes:
        date: YYYY-MM-DD
        requests: Turns processed
        input_tokens / output_tokens / total_tokens: Summed model usage
        cost_usd: Estimated token cost
        tool_calls: Totals across all tools
        by_tool: Per-tool totals
        images: Generated images
        image_cost_usd: Estimated image cost
    """
    date: str
    requests: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    cost_usd: float = 0.0
    tool_calls: ToolCounters = field(default_factory=ToolCounters)
    by_tool: dict[str, ToolCounters] = field(default_factory=dict)
    images: int = 0
    image_cost_usd: float = 0.0

    @classmethod
    def from_dict(cls, data: dict) -> "DayStats":
        return cls(
            date=data["date"],
            requests=data.get("requests", 0),
            input_tokens=data.get("input_tokens", 0),
            output_tokens=data.get("output_tokens", 0),
            total_tokens=data.get("total_tokens", 0),
            cost_usd=data.get("cost_usd", 0.0),
            tool_calls=ToolCounters(**data.get("tool_calls", {})),
            by_tool={
                name: ToolCounters(**counters)
                for name, counters in data.get("by_tool", {}).items()
            },
            images=data.get("images", 0),
            image_cost_usd=data.get("image_cost_usd", 0.0),
        )


@dataclass(frozen=True)
class Pricing:
    """
    Cost estimates for the metrics sink.

    Token prices are per million tokens, image cost is per generated image.
    """
    input_per_million_usd: float = 0.25
    output_per_million_usd: float = 2.0
    image_cost_usd: float = 0.04

    def token_cost(self, input_tokens: int, output_tokens: int) -> float:
        return (
            input_tokens * self.input_per_million_usd
            + output_tokens * self.output_per_million_usd
        ) / 1_000_000


class MetricsRecorder:
    """
    Records usage counters bucketed by day.

    Example:
        metrics = MetricsRecorder(Path("data"))
        await metrics.record_request()
        today = metrics.get_day()
        print(today.requests)
    """

    def __init__(self, data_dir: Path | None = None, clock=datetime.now):
        """
        Initialize the recorder.

        Args:
            data_dir: Directory for metrics.json; None keeps counters in memory only
            clock: Returns the current datetime (injectable for tests)
        """
        self.data_file = data_dir / "metrics.json" if data_dir else None
        self._clock = clock
        self._by_day: dict[str, DayStats] = {}
        self._write_lock = asyncio.Lock()
        self._load()

    def _load(self) -> None:
        if self.data_file is None or not self.data_file.exists():
            return

        try:
            raw = json.loads(self.data_file.read_text() or "[]")
            for day in raw:
                stats = DayStats.from_dict(day)
                self._by_day[stats.date] = stats
            logger.debug(f"Loaded metrics for {len(self._by_day)} days")
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Failed to load metrics.json: {e}")

    def _save_sync(self, content: str) -> None:
        self.data_file.parent.mkdir(parents=True, exist_ok=True)
        staging = self.data_file.with_name(self.data_file.name + ".tmp")
        staging.write_text(content)
        staging.replace(self.data_file)

    async def _persist(self) -> None:
        if self.data_file is None:
            return
        # One writer at a time; the dump is taken on the loop so counters can't change mid-dump
        async with self._write_lock:
            content = json.dumps([asdict(day) for day in self.get_all_days()], indent=2)
            try:
                await asyncio.to_thread(self._save_sync, content)
            except OSError as e:
                logger.warning(f"Failed to persist metrics: {e}")

    def _today(self) -> DayStats:
        key = self._clock().strftime("%Y-%m-%d")
        day = self._by_day.get(key)
        if day is None:
            day = DayStats(date=key)
            self._by_day[key] = day
        return day

    # ==========================================================================
    # Recording
    # ==========================================================================

    async def record_request(self) -> None:
        self._today().requests += 1
        await self._persist()

    async def record_tool_call(self, tool_name: str, success: bool) -> None:
        day = self._today()
        day.tool_calls.add(success)
        day.by_tool.setdefault(tool_name, ToolCounters()).add(success)
        await self._persist()

    async def record_token_usage(
        self,
        input_tokens: int,
        output_tokens: int,
        total_tokens: int,
        cost_usd: float = 0.0
    ) -> None:
        """Record model usage for one turn (summed across its model calls)."""
        day = self._today()
        day.input_tokens += input_tokens
        day.output_tokens += output_tokens
        day.total_tokens += total_tokens
        day.cost_usd += cost_usd
        await self._persist()

    async def record_image_generation(self, cost_usd: float) -> None:
        day = self._today()
        day.images += 1
        day.image_cost_usd += cost_usd
        await self._persist()

    # ==========================================================================
    # Reading
    # ==========================================================================

    def get_day(self, date: str | None = None) -> DayStats | None:
        """Get counters for a YYYY-MM-DD date (today when omitted)."""
        key = date or self._clock().strftime("%Y-%m-%d")
        return self._by_day.get(key)

    def get_all_days(self) -> list[DayStats]:
        return sorted(self._by_day.values(), key=lambda d: d.date)
