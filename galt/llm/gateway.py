"""
Model Gateway
=============

One call interface over the primary and secondary backends, with automatic,
self-healing failover.

Breaker states:

    PRIMARY (closed) ──retryable error──▶ SECONDARY (open)
          ▲                                    │
          │                              cool-down elapses
          │                                    ▼
          └──────probe succeeds────── recovery probe on PRIMARY
                                               │
                                        probe fails: new cool-down

- A PRIMARY call failing with a status in the retryable set trips the
  breaker and the same turn is retried on SECONDARY right away, so the
  caller only ever sees the SECONDARY outcome.
- While the breaker is open every turn goes straight to SECONDARY.
- At the end of the cool-down a minimal call (no tools, one token) probes
  PRIMARY out-of-band. It never blocks a user-facing turn.
- Any other error propagates unchanged, without a transition.

The state is a frozen value object replaced as a whole through
_compare_and_swap(), so concurrent turns see either the old or the new
(active, degraded_until) pair, never a mix.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Callable

from galt.llm.backends import BackendError, BackendSlot, ChatBackend, ModelResponse
from galt.utils.logger import Logger

if TYPE_CHECKING:
    from apscheduler.schedulers.asyncio import AsyncIOScheduler

logger = Logger("Gateway")

PROBE_JOB_ID = "primary-recovery-probe"
PROBE_MESSAGES = [{"role": "user", "content": "ping"}]


@dataclass(frozen=True)
class ModelBackendState:
    """
    Which backend serves new turns.

    Attributes:
        active: The slot that answers
        degraded_until: End of the current cool-down (None when closed)
    """
    active: BackendSlot = BackendSlot.PRIMARY
    degraded_until: datetime | None = None


CLOSED = ModelBackendState()


class ModelGateway:
    """
    Routes chat completions between a primary and a secondary backend.

    Example:
        gateway = ModelGateway(primary, secondary, cooldown_seconds=300)

        response = await gateway.invoke(messages, tools)
        print(response.backend)   # BackendSlot.PRIMARY or SECONDARY
    """

    def __init__(
        self,
        primary: ChatBackend,
        secondary: ChatBackend | None,
        retryable_status_codes: frozenset[int],
        cooldown_seconds: float = 300.0,
        call_timeout: float = 60.0,
        scheduler: "AsyncIOScheduler | None" = None,
        clock: Callable[[], datetime] = datetime.now
    ):
        """
        Initialize the gateway.

        Args:
            primary: Preferred backend
            secondary: Fallback backend; None disables failover
            retryable_status_codes: Statuses that trip the breaker
            cooldown_seconds: How long to stay on SECONDARY before probing
            call_timeout: Deadline for each backend call
            scheduler: Runs recovery probes; without one, the first turn that
                sees an expired cool-down starts the probe as a background task
            clock: Returns the current time (injectable for tests)
        """
        self.backends = {BackendSlot.PRIMARY: primary}
        if secondary is not None:
            self.backends[BackendSlot.SECONDARY] = secondary

        self.retryable_status_codes = frozenset(retryable_status_codes)
        self.cooldown = timedelta(seconds=cooldown_seconds)
        self.call_timeout = call_timeout
        self.scheduler = scheduler
        self._clock = clock

        self._state = CLOSED
        self._probe_task: asyncio.Task | None = None

        logger.info(
            f"Gateway initialized: primary={primary.model}"
            + (f", secondary={secondary.model}" if secondary else ", no secondary")
        )

    # ==========================================================================
    # State
    # ==========================================================================

    @property
    def state(self) -> ModelBackendState:
        return self._state

    @property
    def active_backend(self) -> BackendSlot:
        return self._state.active

    def _compare_and_swap(self, expected: ModelBackendState, new: ModelBackendState) -> bool:
        """
        Replace the state only if it is still the one the caller observed.

        No await happens between the check and the assignment, so on one
        event loop this is atomic.
        """
        if self._state is not expected:
            return False
        self._state = new
        return True

    def is_retryable(self, error: BackendError) -> bool:
        return error.status_code in self.retryable_status_codes

    def describe(self) -> dict:
        """Current routing state for status reports."""
        state = self._state
        active = self.backends.get(state.active)
        return {
            "active": state.active.value,
            "model": active.model if active else None,
            "degraded_until": state.degraded_until.isoformat() if state.degraded_until else None,
        }

    # ==========================================================================
    # Invocation
    # ==========================================================================

    async def invoke(self, messages: list[dict], tools: list[dict] | None = None) -> ModelResponse:
        """
        Answer one model call on whichever backend the breaker allows.

        Args:
            messages: OpenAI-format chat messages
            tools: Tool declarations for this call

        Returns:
            ModelResponse tagged with the slot that served it

        Raises:
            BackendError: Non-retryable PRIMARY errors, any SECONDARY error,
                or a retryable PRIMARY error when no secondary is configured
        """
        observed = self._state

        if observed.active is BackendSlot.PRIMARY:
            try:
                return await self._call(BackendSlot.PRIMARY, messages, tools)
            except BackendError as e:
                if not self.is_retryable(e) or BackendSlot.SECONDARY not in self.backends:
                    raise
                logger.warning(f"Primary failed with {e.status_code}, failing over to secondary")
                self._trip(observed)
        else:
            self._maybe_start_probe(observed)

        return await self._call(BackendSlot.SECONDARY, messages, tools)

    async def _call(
        self,
        slot: BackendSlot,
        messages: list[dict],
        tools: list[dict] | None,
        max_tokens: int | None = None
    ) -> ModelResponse:
        backend = self.backends[slot]
        try:
            response = await asyncio.wait_for(
                backend.complete(messages, tools, max_tokens=max_tokens),
                timeout=self.call_timeout,
            )
        except asyncio.TimeoutError as e:
            raise BackendError(504, f"No response within {self.call_timeout}s", backend.name) from e

        response.backend = slot
        return response

    # ==========================================================================
    # Breaker transitions
    # ==========================================================================

    def _trip(self, observed: ModelBackendState) -> None:
        """Open the breaker. A no-op when another turn already opened it."""
        degraded_until = self._clock() + self.cooldown
        opened = ModelBackendState(BackendSlot.SECONDARY, degraded_until)

        if self._compare_and_swap(observed, opened):
            logger.warning(f"Breaker open: routing to secondary until {degraded_until.isoformat()}")
            self._schedule_probe(degraded_until)

    def _schedule_probe(self, run_at: datetime) -> None:
        if self.scheduler is None:
            return

        from apscheduler.triggers.date import DateTrigger

        self.scheduler.add_job(
            self.probe_primary,
            trigger=DateTrigger(run_date=run_at),
            id=PROBE_JOB_ID,
            replace_existing=True,
            misfire_grace_time=None,
            coalesce=True,
        )
        logger.debug(f"Recovery probe scheduled for {run_at.isoformat()}")

    def _maybe_start_probe(self, observed: ModelBackendState) -> None:
        """
        Start the probe from a turn once the cool-down is over.

        Without a scheduler this is the only trigger. With one, it only
        fires when a whole extra cool-down has passed and the scheduled
        probe evidently never ran.
        """
        if observed.degraded_until is None:
            return
        due = observed.degraded_until
        if self.scheduler is not None:
            due += self.cooldown
        if self._clock() < due:
            return
        if self._probe_task is not None and not self._probe_task.done():
            return

        self._probe_task = asyncio.create_task(self.probe_primary())

    async def probe_primary(self) -> bool:
        """
        Probe PRIMARY with a minimal call and close the breaker on success.

        Returns:
            True if the gateway is on PRIMARY afterwards
        """
        observed = self._state
        if observed.active is BackendSlot.PRIMARY:
            return True

        try:
            await self._call(BackendSlot.PRIMARY, PROBE_MESSAGES, None, max_tokens=1)
        except Exception as e:
            # Any failure, classified or not, re-arms the cool-down
            self._rearm(observed, e)
            return False

        if self._compare_and_swap(observed, CLOSED):
            logger.info("Recovery probe succeeded, breaker closed: routing to primary")
        return self._state.active is BackendSlot.PRIMARY

    def _rearm(self, observed: ModelBackendState, error: Exception) -> None:
        degraded_until = self._clock() + self.cooldown
        rearmed = ModelBackendState(BackendSlot.SECONDARY, degraded_until)
        if self._compare_and_swap(observed, rearmed):
            logger.warning(
                f"Recovery probe failed ({type(error).__name__}: {error}); "
                f"staying on secondary until {degraded_until.isoformat()}"
            )
            self._schedule_probe(degraded_until)
