"""AutomationEngine tests — rule selection, conditions, dispatch, failures.

Learn: The engine only needs a RuleStore and a bus, so these tests use an
in-memory store and a real EventBus with fake connections. No database.
"""

import asyncio

import pytest

from homedesk.automation.actions import ActionRegistry, default_registry
from homedesk.automation.engine import AutomationEngine, RuleFetchError
from homedesk.automation.models import Action, AutomationRule
from homedesk.events.models import DomainEvent
from homedesk.realtime.bus import EventBus


class MemoryRuleStore:
    def __init__(self, rules=None, delay: float = 0.0, error: Exception | None = None):
        self.rules = list(rules or [])
        self.delay = delay
        self.error = error
        self.calls = []

    async def list_rules(self, tenant_id):
        self.calls.append(tenant_id)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return [r for r in self.rules if r.tenant_id == tenant_id]


def _rule(rule_id=1, tenant_id=5, trigger="job_completed", conditions=None,
          actions=None, is_active=True, name="Thank-you SMS"):
    return AutomationRule(
        id=rule_id,
        tenant_id=tenant_id,
        name=name,
        trigger=trigger,
        conditions=conditions or {},
        actions=tuple(actions or [
            Action("send_sms", {"to": "{{contact.phone}}", "message": "Thanks!"}),
        ]),
        is_active=is_active,
    )


@pytest.fixture()
def bus():
    return EventBus()


@pytest.mark.asyncio
async def test_job_completed_rule_sends_sms_and_notifies_dashboard(bus, make_connection):
    dashboard = make_connection()
    bus.register_tenant(5, dashboard)
    engine = AutomationEngine(bus, MemoryRuleStore([_rule()]))

    fired = await engine.evaluate_and_fire(5, "job_completed", {"jobId": 42})

    assert len(fired) == 1
    assert fired[0].action.type == "send_sms"
    # No contact in the context, so the placeholder is left in place.
    assert fired[0].result == {"channel": "sms", "to": "{{contact.phone}}", "message": "Thanks!"}

    frames = dashboard.frames_of("AUTOMATION_TRIGGERED")
    assert len(frames) == 1
    payload = frames[0]["payload"]
    assert payload["businessId"] == 5
    assert payload["automation"]["id"] == 1
    assert payload["action"] == {
        "type": "send_sms",
        "params": {"to": "{{contact.phone}}", "message": "Thanks!"},
    }
    assert payload["context"] == {"jobId": 42}


@pytest.mark.asyncio
async def test_templates_resolve_against_context(bus):
    engine = AutomationEngine(bus, MemoryRuleStore([_rule()]))

    fired = await engine.evaluate_and_fire(
        5, "job_completed", {"jobId": 42, "contact": {"phone": "+15551234567"}},
    )

    assert fired[0].params["to"] == "+15551234567"
    assert fired[0].result["to"] == "+15551234567"


@pytest.mark.asyncio
async def test_inactive_rule_never_fires(bus, make_connection):
    dashboard = make_connection()
    bus.register_tenant(5, dashboard)
    store = MemoryRuleStore([
        _rule(rule_id=1, trigger="new_customer", name="Welcome"),
        _rule(rule_id=2, trigger="new_customer", name="Paused", is_active=False),
    ])
    engine = AutomationEngine(bus, store)

    fired = await engine.evaluate_and_fire(5, "new_customer", {})

    assert [f.rule.id for f in fired] == [1]
    assert len(dashboard.frames_of("AUTOMATION_TRIGGERED")) == 1


@pytest.mark.asyncio
async def test_other_triggers_and_businesses_are_ignored(bus):
    store = MemoryRuleStore([
        _rule(rule_id=1, trigger="new_message"),
        _rule(rule_id=2, tenant_id=6),
    ])
    engine = AutomationEngine(bus, store)

    assert await engine.evaluate_and_fire(5, "job_completed", {}) == []


@pytest.mark.asyncio
async def test_conditions_are_all_or_nothing(bus):
    store = MemoryRuleStore([
        _rule(conditions={"status": "completed", "priority": "high"}),
    ])
    engine = AutomationEngine(bus, store)

    assert await engine.evaluate_and_fire(5, "job_completed", {"status": "completed"}) == []
    assert await engine.evaluate_and_fire(
        5, "job_completed", {"status": "completed", "priority": "low"},
    ) == []
    fired = await engine.evaluate_and_fire(
        5, "job_completed", {"status": "completed", "priority": "high", "extra": 1},
    )
    assert len(fired) == 1


@pytest.mark.asyncio
async def test_conditions_do_not_coerce_types(bus):
    engine = AutomationEngine(bus, MemoryRuleStore([_rule(conditions={"jobId": "42"})]))
    assert await engine.evaluate_and_fire(5, "job_completed", {"jobId": 42}) == []


@pytest.mark.asyncio
async def test_actions_run_in_list_order(bus, make_connection):
    dashboard = make_connection()
    bus.register_tenant(5, dashboard)
    rule = _rule(actions=[
        Action("notify_staff", {"message": "Job done"}),
        Action("send_email", {"to": "{{contact.email}}", "subject": "Thanks"}),
        Action("send_sms", {"to": "+1", "message": "Thanks"}),
    ])
    engine = AutomationEngine(bus, MemoryRuleStore([rule]))

    fired = await engine.evaluate_and_fire(5, "job_completed", {"contact": {"email": "a@b.c"}})

    assert [f.action.type for f in fired] == ["notify_staff", "send_email", "send_sms"]
    frames = dashboard.frames_of("AUTOMATION_TRIGGERED")
    assert [f["payload"]["action"]["type"] for f in frames] == [
        "notify_staff", "send_email", "send_sms",
    ]


@pytest.mark.asyncio
async def test_unknown_action_is_skipped_and_rest_still_run(bus, make_connection):
    dashboard = make_connection()
    bus.register_tenant(5, dashboard)
    rule = _rule(actions=[
        Action("launch_rocket", {}),
        Action("send_sms", {"to": "+1", "message": "Thanks"}),
    ])
    engine = AutomationEngine(bus, MemoryRuleStore([rule]))

    fired = await engine.evaluate_and_fire(5, "job_completed", {})

    assert [f.action.type for f in fired] == ["send_sms"]
    assert len(dashboard.frames_of("AUTOMATION_TRIGGERED")) == 1


@pytest.mark.asyncio
async def test_failing_handler_reports_error_in_frame(bus, make_connection):
    dashboard = make_connection()
    bus.register_tenant(5, dashboard)
    registry = ActionRegistry()

    @registry.register("flaky")
    async def flaky(ctx):
        raise RuntimeError("provider down")

    registry.register("send_sms", default_registry().get("send_sms"))
    rule = _rule(actions=[Action("flaky", {}), Action("send_sms", {"to": "+1"})])
    engine = AutomationEngine(bus, MemoryRuleStore([rule]), actions=registry)

    fired = await engine.evaluate_and_fire(5, "job_completed", {})

    assert fired[0].result == {"error": "provider down"}
    assert fired[1].result["channel"] == "sms"
    frames = dashboard.frames_of("AUTOMATION_TRIGGERED")
    assert frames[0]["payload"]["result"] == {"error": "provider down"}


@pytest.mark.asyncio
async def test_rule_fetch_error_propagates(bus):
    engine = AutomationEngine(bus, MemoryRuleStore(error=ConnectionError("db down")))

    with pytest.raises(RuleFetchError, match="db down"):
        await engine.evaluate_and_fire(5, "job_completed", {})


@pytest.mark.asyncio
async def test_slow_rule_fetch_times_out(bus, make_connection):
    dashboard = make_connection()
    bus.register_tenant(5, dashboard)
    engine = AutomationEngine(bus, MemoryRuleStore([_rule()], delay=1.0), fetch_timeout=0.05)

    with pytest.raises(RuleFetchError, match="Timed out"):
        await engine.evaluate_and_fire(5, "job_completed", {})
    assert dashboard.sent == []


@pytest.mark.asyncio
async def test_fire_unpacks_domain_event(bus):
    store = MemoryRuleStore([_rule(trigger="new_customer")])
    engine = AutomationEngine(bus, store)

    fired = await engine.fire(DomainEvent(trigger="new_customer", tenant_id=5, context={}))

    assert len(fired) == 1
    assert store.calls == [5]


@pytest.mark.asyncio
async def test_same_business_evaluations_do_not_interleave(bus):
    order = []
    registry = ActionRegistry()

    @registry.register("step")
    async def step(ctx):
        order.append((ctx.context["run"], ctx.params["n"]))
        await asyncio.sleep(0)
        return {}

    rule = _rule(actions=[Action("step", {"n": 1}), Action("step", {"n": 2})])
    engine = AutomationEngine(bus, MemoryRuleStore([rule]), actions=registry)

    await asyncio.gather(
        engine.evaluate_and_fire(5, "job_completed", {"run": "a"}),
        engine.evaluate_and_fire(5, "job_completed", {"run": "b"}),
    )

    assert order == [("a", 1), ("a", 2), ("b", 1), ("b", 2)]


@pytest.mark.asyncio
async def test_business_locks_are_released_after_evaluation(bus):
    engine = AutomationEngine(bus, MemoryRuleStore([_rule(tenant_id=5), _rule(2, tenant_id=6)]))

    await engine.evaluate_and_fire(5, "job_completed", {})
    await asyncio.gather(*(
        engine.evaluate_and_fire(tenant_id, "job_completed", {})
        for tenant_id in (5, 5, 6, 7)
    ))

    assert engine._locks == {}


@pytest.mark.asyncio
async def test_business_lock_is_released_when_rule_fetch_fails(bus):
    engine = AutomationEngine(bus, MemoryRuleStore(error=RuntimeError("db down")))

    with pytest.raises(RuleFetchError):
        await engine.evaluate_and_fire(5, "job_completed", {})

    assert engine._locks == {}
