"""Automation engine — evaluate a trigger against a business's rules.

Learn: evaluate_and_fire() is the whole algorithm:

1. Load the business's rules from the RuleStore (bounded by a timeout)
2. Keep rules that are active AND listen for this trigger
3. For each, check conditions via the ConditionMatcher (all-or-nothing)
4. Run the rule's actions in list order through the ActionRegistry
5. After each action, broadcast AUTOMATION_TRIGGERED to the business

Failure semantics:
- Rule storage down or slow → RuleFetchError, propagated to the caller.
  The triggering write has already committed; the caller logs and moves on.
- Unknown action type → warning, skipped, remaining actions still run.
- A handler that raises → logged; the frame is still broadcast with the
  error in its result.

Ordering: evaluations for the same business are serialized with a
per-business asyncio.Lock, so two concurrent triggers never interleave
their actions. Different businesses run independently.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, Optional, Protocol

import structlog

from homedesk.automation.actions import (
    ActionContext,
    ActionRegistry,
    UnknownActionError,
    default_registry,
    render_params,
    unresolved_placeholders,
)
from homedesk.automation.conditions import ConditionMatcher, ExactMatcher
from homedesk.automation.models import AutomationRule, FiredAction
from homedesk.events.models import DomainEvent, OutboundEvent
from homedesk.events.types import AUTOMATION_TRIGGERED

logger = structlog.get_logger()


class RuleFetchError(Exception):
    """Raised when a business's rules can't be loaded (error or timeout)."""
    pass


class RuleStore(Protocol):
    async def list_rules(self, tenant_id: int) -> list[AutomationRule]: ...


class Broadcaster(Protocol):
    async def broadcast(self, event: OutboundEvent) -> int: ...


class AutomationEngine:
    """Matches domain events to rules and dispatches their actions."""

    def __init__(
        self,
        bus: Broadcaster,
        rules: RuleStore,
        actions: Optional[ActionRegistry] = None,
        matcher: Optional[ConditionMatcher] = None,
        fetch_timeout: float = 5.0,
    ):
        self.bus = bus
        self.rules = rules
        self.actions = actions or default_registry()
        self.matcher = matcher or ExactMatcher()
        self.fetch_timeout = fetch_timeout
        # business id -> (lock, holders + waiters); dropped when the count hits zero
        self._locks: dict[int, tuple[asyncio.Lock, int]] = {}

    async def fire(self, event: DomainEvent) -> list[FiredAction]:
        return await self.evaluate_and_fire(event.tenant_id, event.trigger, event.context)

    async def evaluate_and_fire(
        self,
        tenant_id: int,
        trigger: str,
        context: Optional[dict[str, Any]] = None,
    ) -> list[FiredAction]:
        """Run every matching rule for ``trigger``. Returns the dispatched actions.

        Raises:
            RuleFetchError: if the rule set could not be loaded in time
        """
        context = dict(context or {})

        async with self._serialized(tenant_id):
            rules = await self._fetch_rules(tenant_id)
            candidates = [r for r in rules if r.is_active and r.trigger == trigger]

            fired: list[FiredAction] = []
            for rule in candidates:
                if not self.matcher.matches(rule.conditions, context):
                    logger.debug(
                        "automation.conditions_not_met",
                        business_id=tenant_id,
                        automation_id=rule.id,
                    )
                    continue
                fired.extend(await self._run_actions(tenant_id, rule, context))

        logger.info(
            "automation.evaluated",
            business_id=tenant_id,
            trigger=trigger,
            candidates=len(candidates),
            actions_dispatched=len(fired),
        )
        return fired

    @asynccontextmanager
    async def _serialized(self, tenant_id: int):
        lock, users = self._locks.get(tenant_id, (None, 0))
        if lock is None:
            lock = asyncio.Lock()
        self._locks[tenant_id] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            lock, users = self._locks[tenant_id]
            if users <= 1:
                del self._locks[tenant_id]
            else:
                self._locks[tenant_id] = (lock, users - 1)

    async def _fetch_rules(self, tenant_id: int) -> list[AutomationRule]:
        try:
            rules = await asyncio.wait_for(
                self.rules.list_rules(tenant_id), timeout=self.fetch_timeout
            )
        except asyncio.TimeoutError as e:
            raise RuleFetchError(
                f"Timed out after {self.fetch_timeout}s loading automations "
                f"for business {tenant_id}"
            ) from e
        except RuleFetchError:
            raise
        except Exception as e:
            raise RuleFetchError(
                f"Could not load automations for business {tenant_id}: {e}"
            ) from e
        return list(rules)

    async def _run_actions(
        self,
        tenant_id: int,
        rule: AutomationRule,
        context: dict[str, Any],
    ) -> list[FiredAction]:
        fired: list[FiredAction] = []

        for action in rule.actions:
            try:
                handler = self.actions.get(action.type)
            except UnknownActionError:
                logger.warning(
                    "automation.unknown_action",
                    business_id=tenant_id,
                    automation_id=rule.id,
                    action_type=action.type,
                )
                continue

            params = render_params(action.params, context)
            missing = unresolved_placeholders(params)
            if missing:
                logger.warning(
                    "automation.unresolved_placeholders",
                    automation_id=rule.id,
                    placeholders=missing,
                )

            try:
                result = await handler(
                    ActionContext(
                        tenant_id=tenant_id,
                        rule=rule,
                        action=action,
                        params=params,
                        context=context,
                    )
                )
            except Exception as e:
                logger.error(
                    "automation.action_failed",
                    business_id=tenant_id,
                    automation_id=rule.id,
                    action_type=action.type,
                    error=str(e),
                )
                result = {"error": str(e)}

            fired.append(FiredAction(rule=rule, action=action, params=params, result=result))

            await self.bus.broadcast(
                OutboundEvent(
                    type=AUTOMATION_TRIGGERED,
                    payload={
                        "businessId": tenant_id,
                        "automation": rule.to_dict(),
                        "action": action.to_dict(),
                        "context": context,
                        "result": result,
                    },
                )
            )

        return fired
