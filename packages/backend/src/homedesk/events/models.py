"""Event envelopes — what services emit and what subscribers receive.

Learn: Two shapes, deliberately separate:

- DomainEvent: produced by a service after its write commits. Carries the
  trigger name and the context automation rules match against. Never
  persisted; consumed once.
- OutboundEvent: the {type, payload} frame sent over WebSocket. The
  payload's businessId decides which tenant subscribers receive it.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass(frozen=True)
class DomainEvent:
    """A committed state change that may activate automation rules."""

    trigger: str
    tenant_id: int
    context: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class OutboundEvent:
    """A realtime frame: {"type": ..., "payload": {...}}."""

    type: str
    payload: dict[str, Any] = field(default_factory=dict)

    @property
    def tenant_id(self) -> Optional[int]:
        """The businessId this event is scoped to, if any."""
        return self.payload.get("businessId")

    def to_wire(self) -> dict[str, Any]:
        return {"type": self.type, "payload": self.payload}

    def to_json(self) -> str:
        return json.dumps(self.to_wire(), default=str)

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> "OutboundEvent":
        return cls(type=data["type"], payload=data.get("payload") or {})
