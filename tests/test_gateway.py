"""
Tests for the model gateway and its failover breaker.
Run with: pytest tests/test_gateway.py
"""

import asyncio
from unittest.mock import MagicMock

import pytest

from conftest import FakeBackend, reply
from galt.llm.backends import BackendError, BackendSlot
from galt.llm.gateway import CLOSED, PROBE_JOB_ID, ModelBackendState, ModelGateway
from galt.utils.config import DEFAULT_RETRYABLE_STATUS_CODES


def make_gateway(primary, secondary, clock, scheduler=None, cooldown=300.0, timeout=60.0):
    return ModelGateway(
        primary,
        secondary,
        retryable_status_codes=DEFAULT_RETRYABLE_STATUS_CODES,
        cooldown_seconds=cooldown,
        call_timeout=timeout,
        scheduler=scheduler,
        clock=clock,
    )


# ---------------------------------------------------------------------------
# Routing on PRIMARY
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_primary_answers_when_healthy(primary, secondary, clock):
    gateway = make_gateway(primary, secondary, clock)

    response = await gateway.invoke([{"role": "user", "content": "hi"}])

    assert response.content == "ok from primary"
    assert response.backend is BackendSlot.PRIMARY
    assert secondary.calls == []
    assert gateway.state is CLOSED


@pytest.mark.asyncio
@pytest.mark.parametrize("status", sorted(DEFAULT_RETRYABLE_STATUS_CODES))
async def test_retryable_status_fails_over_within_same_turn(primary, secondary, clock, status):
    """Every member of the retryable set trips the breaker and the turn is answered by SECONDARY."""
    primary.fail_with(status)
    gateway = make_gateway(primary, secondary, clock)

    response = await gateway.invoke([{"role": "user", "content": "hi"}])

    assert response.backend is BackendSlot.SECONDARY
    assert response.content == "ok from secondary"
    assert gateway.active_backend is BackendSlot.SECONDARY
    assert gateway.state.degraded_until == clock.now + gateway.cooldown


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [401, 402, 408, 409, 422, 502, None])
async def test_non_retryable_status_propagates_without_transition(primary, secondary, clock, status):
    primary.fail_with(status)
    gateway = make_gateway(primary, secondary, clock)

    with pytest.raises(BackendError) as exc_info:
        await gateway.invoke([{"role": "user", "content": "hi"}])

    assert exc_info.value.status_code == status
    assert gateway.state is CLOSED
    assert secondary.calls == []


@pytest.mark.asyncio
async def test_503_scenario_caller_sees_only_secondary_answer(primary, secondary, clock):
    """PRIMARY returns 503, SECONDARY answers "Y": the caller gets "Y" and no error."""
    primary.fail_with(503)
    secondary.push(reply("Y"))
    gateway = make_gateway(primary, secondary, clock)

    response = await gateway.invoke([{"role": "user", "content": "hi"}])

    assert response.content == "Y"
    assert gateway.state.active is BackendSlot.SECONDARY
    assert gateway.state.degraded_until == clock.now + gateway.cooldown


@pytest.mark.asyncio
async def test_retryable_error_without_secondary_propagates(primary, clock):
    primary.fail_with(503)
    gateway = make_gateway(primary, None, clock)

    with pytest.raises(BackendError):
        await gateway.invoke([{"role": "user", "content": "hi"}])
    assert gateway.state is CLOSED


@pytest.mark.asyncio
async def test_secondary_error_propagates(primary, secondary, clock):
    primary.fail_with(429)
    secondary.fail_with(500)
    gateway = make_gateway(primary, secondary, clock)

    with pytest.raises(BackendError) as exc_info:
        await gateway.invoke([{"role": "user", "content": "hi"}])

    assert exc_info.value.backend == "secondary"
    assert gateway.active_backend is BackendSlot.SECONDARY


@pytest.mark.asyncio
async def test_timeout_is_classified_as_504_and_fails_over(secondary, clock):
    class SlowBackend(FakeBackend):
        async def complete(self, messages, tools=None, max_tokens=None):
            await asyncio.sleep(1)

    gateway = make_gateway(SlowBackend("primary"), secondary, clock, timeout=0.01)

    response = await gateway.invoke([{"role": "user", "content": "hi"}])

    assert response.backend is BackendSlot.SECONDARY


# ---------------------------------------------------------------------------
# While degraded
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_degraded_turns_skip_primary(primary, secondary, clock):
    primary.fail_with(500)
    gateway = make_gateway(primary, secondary, clock, scheduler=MagicMock())

    await gateway.invoke([{"role": "user", "content": "first"}])
    await gateway.invoke([{"role": "user", "content": "second"}])
    await gateway.invoke([{"role": "user", "content": "third"}])

    assert len(primary.calls) == 1
    assert len(secondary.calls) == 3


@pytest.mark.asyncio
async def test_trip_schedules_probe_at_cooldown_end(primary, secondary, clock):
    scheduler = MagicMock()
    primary.fail_with(429)
    gateway = make_gateway(primary, secondary, clock, scheduler=scheduler)

    await gateway.invoke([{"role": "user", "content": "hi"}])

    scheduler.add_job.assert_called_once()
    kwargs = scheduler.add_job.call_args.kwargs
    assert kwargs["id"] == PROBE_JOB_ID
    assert kwargs["replace_existing"] is True
    assert kwargs["trigger"].run_date.replace(tzinfo=None) == clock.now + gateway.cooldown


def test_trip_is_idempotent(primary, secondary, clock):
    """A second turn tripping the breaker it saw closed is a no-op."""
    scheduler = MagicMock()
    gateway = make_gateway(primary, secondary, clock, scheduler=scheduler)

    observed = gateway.state
    gateway._trip(observed)
    opened = gateway.state
    clock.advance(5)
    gateway._trip(observed)

    assert gateway.state is opened
    assert scheduler.add_job.call_count == 1


def test_compare_and_swap_rejects_stale_state(primary, secondary, clock):
    gateway = make_gateway(primary, secondary, clock)
    stale = ModelBackendState()

    assert gateway._compare_and_swap(stale, ModelBackendState(BackendSlot.SECONDARY, clock.now)) is False
    assert gateway.state is CLOSED


# ---------------------------------------------------------------------------
# Recovery probe
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_probe_success_restores_primary(primary, secondary, clock):
    primary.fail_with(503)
    gateway = make_gateway(primary, secondary, clock, scheduler=MagicMock())
    await gateway.invoke([{"role": "user", "content": "hi"}])

    clock.advance(300)
    recovered = await gateway.probe_primary()

    assert recovered is True
    assert gateway.state is CLOSED
    probe_call = primary.calls[-1]
    assert probe_call["tools"] is None
    assert probe_call["max_tokens"] == 1

    response = await gateway.invoke([{"role": "user", "content": "again"}])
    assert response.backend is BackendSlot.PRIMARY


@pytest.mark.asyncio
async def test_probe_failure_rearms_cooldown(primary, secondary, clock):
    scheduler = MagicMock()
    primary.fail_with(503, times=2)
    gateway = make_gateway(primary, secondary, clock, scheduler=scheduler)
    await gateway.invoke([{"role": "user", "content": "hi"}])

    clock.advance(300)
    recovered = await gateway.probe_primary()

    assert recovered is False
    assert gateway.active_backend is BackendSlot.SECONDARY
    assert gateway.state.degraded_until == clock.now + gateway.cooldown
    assert scheduler.add_job.call_count == 2


@pytest.mark.asyncio
async def test_unexpected_probe_error_rearms_cooldown(primary, secondary, clock):
    scheduler = MagicMock()
    primary.fail_with(503)
    primary.push(RuntimeError("malformed completion"))
    gateway = make_gateway(primary, secondary, clock, scheduler=scheduler)
    await gateway.invoke([{"role": "user", "content": "hi"}])

    clock.advance(300)
    recovered = await gateway.probe_primary()

    assert recovered is False
    assert gateway.state.degraded_until == clock.now + gateway.cooldown
    assert scheduler.add_job.call_count == 2

    clock.advance(300)
    assert await gateway.probe_primary() is True
    assert gateway.state is CLOSED


@pytest.mark.asyncio
async def test_probe_job_runs_even_when_late(primary, secondary, clock):
    scheduler = MagicMock()
    primary.fail_with(503)
    gateway = make_gateway(primary, secondary, clock, scheduler=scheduler)

    await gateway.invoke([{"role": "user", "content": "hi"}])

    kwargs = scheduler.add_job.call_args.kwargs
    assert kwargs["misfire_grace_time"] is None
    assert kwargs["coalesce"] is True


@pytest.mark.asyncio
async def test_lost_scheduled_probe_is_started_by_a_later_turn(primary, secondary, clock):
    primary.fail_with(503)
    gateway = make_gateway(primary, secondary, clock, scheduler=MagicMock())
    await gateway.invoke([{"role": "user", "content": "hi"}])

    # Within one extra cool-down the scheduled job is trusted
    clock.advance(301)
    await gateway.invoke([{"role": "user", "content": "waiting"}])
    assert gateway._probe_task is None

    clock.advance(300)
    response = await gateway.invoke([{"role": "user", "content": "much later"}])
    assert response.backend is BackendSlot.SECONDARY

    await gateway._probe_task
    assert gateway.state is CLOSED


@pytest.mark.asyncio
async def test_concurrent_probes_close_breaker_once(primary, secondary, clock):
    primary.fail_with(500)
    gateway = make_gateway(primary, secondary, clock, scheduler=MagicMock())
    await gateway.invoke([{"role": "user", "content": "hi"}])

    clock.advance(300)
    results = await asyncio.gather(gateway.probe_primary(), gateway.probe_primary())

    assert results == [True, True]
    assert gateway.state is CLOSED


@pytest.mark.asyncio
async def test_probe_on_closed_breaker_does_nothing(primary, secondary, clock):
    gateway = make_gateway(primary, secondary, clock)

    assert await gateway.probe_primary() is True
    assert primary.calls == []


@pytest.mark.asyncio
async def test_without_scheduler_expired_cooldown_starts_background_probe(primary, secondary, clock):
    primary.fail_with(503)
    gateway = make_gateway(primary, secondary, clock)
    await gateway.invoke([{"role": "user", "content": "hi"}])

    clock.advance(301)
    response = await gateway.invoke([{"role": "user", "content": "during probe"}])
    assert response.backend is BackendSlot.SECONDARY

    await gateway._probe_task
    assert gateway.state is CLOSED


def test_describe_reports_active_backend(primary, secondary, clock):
    gateway = make_gateway(primary, secondary, clock)

    assert gateway.describe() == {"active": "primary", "model": "gemini-1.5-flash", "degraded_until": None}
