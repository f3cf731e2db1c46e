"""Outbox / EventPublisher tests."""

from unittest.mock import AsyncMock

import pytest

from homedesk.automation.engine import RuleFetchError
from homedesk.events.models import DomainEvent, OutboundEvent
from homedesk.events.publisher import EventPublisher, Outbox


@pytest.mark.asyncio
async def test_publish_routes_events_in_recorded_order():
    calls = []
    bus = AsyncMock()
    bus.broadcast.side_effect = lambda e: calls.append(("broadcast", e.type))
    engine = AsyncMock()
    engine.fire.side_effect = lambda e: calls.append(("fire", e.trigger))

    outbox = Outbox()
    outbox.record(OutboundEvent(type="JOB_STATUS_CHANGE", payload={"businessId": 1}))
    outbox.record(DomainEvent(trigger="job_completed", tenant_id=1))
    assert len(outbox) == 2

    await EventPublisher(bus, engine).publish(outbox)

    assert calls == [("broadcast", "JOB_STATUS_CHANGE"), ("fire", "job_completed")]
    assert len(outbox) == 0


@pytest.mark.asyncio
async def test_rule_fetch_error_is_contained():
    bus = AsyncMock()
    engine = AsyncMock()
    engine.fire.side_effect = RuleFetchError("timeout")

    outbox = Outbox()
    outbox.record(DomainEvent(trigger="new_customer", tenant_id=1))
    outbox.record(OutboundEvent(type="NEW_REVIEW", payload={"businessId": 1}))

    await EventPublisher(bus, engine).publish(outbox)

    bus.broadcast.assert_awaited_once()


@pytest.mark.asyncio
async def test_other_engine_errors_propagate():
    engine = AsyncMock()
    engine.fire.side_effect = RuntimeError("bug")
    outbox = Outbox()
    outbox.record(DomainEvent(trigger="new_customer", tenant_id=1))

    with pytest.raises(RuntimeError):
        await EventPublisher(AsyncMock(), engine).publish(outbox)
