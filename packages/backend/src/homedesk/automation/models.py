"""Rule value objects.

The engine never touches ORM rows directly: rule storage converts them to
these frozen dataclasses, which keeps the engine testable without a
database and guarantees it cannot mutate a rule.
"""

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass(frozen=True)
class Action:
    """One typed, parameterized side effect, e.g. send_sms."""

    type: str
    params: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Action":
        return cls(type=str(data.get("type") or ""), params=dict(data.get("params") or {}))

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "params": self.params}


@dataclass(frozen=True)
class AutomationRule:
    """A business's trigger + conditions + actions."""

    id: int
    tenant_id: int
    name: str
    trigger: str
    conditions: dict[str, Any] = field(default_factory=dict)
    actions: tuple[Action, ...] = ()
    is_active: bool = True
    description: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "business_id": self.tenant_id,
            "name": self.name,
            "description": self.description,
            "trigger": self.trigger,
            "conditions": self.conditions,
            "actions": [action.to_dict() for action in self.actions],
            "is_active": self.is_active,
        }


@dataclass(frozen=True)
class FiredAction:
    """Record of one dispatched action (returned by the engine)."""

    rule: AutomationRule
    action: Action
    params: dict[str, Any]
    result: dict[str, Any]
