"""Automation service — CRUD for rules, plus the engine's rule store.

Learn: Two consumers read the automations table:

1. The REST API, which manages rules through AutomationService using the
   request's session.
2. The AutomationEngine, which loads rules through SqlRuleStore. The
   engine runs after the request's transaction has committed, so the
   store opens its own short-lived session per fetch instead of borrowing
   the request's.

Rows become AutomationRule value objects at this boundary (to_rule), so
the engine never sees the ORM.
"""

from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from homedesk.automation.models import Action, AutomationRule
from homedesk.db.models import Automation, Business
from homedesk.services.business_service import BusinessNotFoundError


# Fields a partial update can't set back to NULL; only description can be cleared.
_REQUIRED_FIELDS = {"name", "trigger", "conditions", "actions", "is_active"}


class AutomationNotFoundError(Exception):
    pass


def to_rule(automation: Automation) -> AutomationRule:
    return AutomationRule(
        id=automation.id,
        tenant_id=automation.business_id,
        name=automation.name,
        description=automation.description,
        trigger=automation.trigger,
        conditions=dict(automation.conditions or {}),
        actions=tuple(Action.from_dict(a) for a in (automation.actions or [])),
        is_active=automation.is_active,
    )


def _dump_actions(actions: list[Any]) -> list[dict[str, Any]]:
    # Accept pydantic ActionSpec objects or plain dicts.
    return [a.model_dump() if hasattr(a, "model_dump") else dict(a) for a in actions]


class AutomationService:
    """Business logic for automation rule management."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_automation(
        self,
        business_id: int,
        name: str,
        trigger: str,
        actions: list[Any],
        conditions: Optional[dict[str, Any]] = None,
        description: Optional[str] = None,
        is_active: bool = True,
    ) -> Automation:
        if not await self.db.get(Business, business_id):
            raise BusinessNotFoundError(f"Business {business_id} not found")

        automation = Automation(
            business_id=business_id,
            name=name,
            description=description,
            trigger=trigger,
            conditions=conditions or {},
            actions=_dump_actions(actions),
            is_active=is_active,
        )
        self.db.add(automation)
        await self.db.commit()
        return automation

    async def get_automation(self, automation_id: int) -> Optional[Automation]:
        return await self.db.get(Automation, automation_id)

    async def list_automations(self, business_id: int) -> list[Automation]:
        result = await self.db.execute(
            select(Automation)
            .where(Automation.business_id == business_id)
            .order_by(Automation.id)
        )
        return list(result.scalars().all())

    async def update_automation(self, automation_id: int, **changes: Any) -> Automation:
        """Partial update. None clears description and leaves required fields untouched."""
        automation = await self.get_automation(automation_id)
        if not automation:
            raise AutomationNotFoundError(f"Automation {automation_id} not found")

        for key, value in changes.items():
            if value is None and key in _REQUIRED_FIELDS:
                continue
            if key == "actions":
                value = _dump_actions(value)
            setattr(automation, key, value)

        await self.db.commit()
        return automation


class SqlRuleStore:
    """RuleStore backed by the automations table."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def list_rules(self, tenant_id: int) -> list[AutomationRule]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(Automation)
                .where(Automation.business_id == tenant_id)
                .order_by(Automation.id)
            )
            return [to_rule(a) for a in result.scalars().all()]
