"""Post-commit event publishing.

Learn: Services never broadcast while a transaction is open. During a
unit of work they record events in an Outbox; once the write commits, the
route hands the drained outbox to EventPublisher:

- OutboundEvent → EventBus.broadcast (WebSocket fan-out)
- DomainEvent   → AutomationEngine.fire (rule evaluation)

Events are published in the order they were recorded, so a
JOB_STATUS_CHANGE frame goes out before the automations it triggers.
A RuleFetchError is logged here and not re-raised: the HTTP mutation
already succeeded and its response must not turn into a 500.
"""

from typing import Union

import structlog

from homedesk.automation.engine import AutomationEngine, RuleFetchError
from homedesk.events.models import DomainEvent, OutboundEvent
from homedesk.realtime.bus import EventBus

logger = structlog.get_logger()

Event = Union[DomainEvent, OutboundEvent]


class Outbox:
    """Events recorded by a service, published after commit."""

    def __init__(self):
        self._items: list[Event] = []

    def record(self, event: Event) -> None:
        self._items.append(event)

    def drain(self) -> list[Event]:
        items, self._items = self._items, []
        return items

    def __len__(self) -> int:
        return len(self._items)


class EventPublisher:
    def __init__(self, bus: EventBus, engine: AutomationEngine):
        self.bus = bus
        self.engine = engine

    async def publish(self, outbox: Outbox) -> None:
        for event in outbox.drain():
            if isinstance(event, OutboundEvent):
                await self.bus.broadcast(event)
                continue

            try:
                await self.engine.fire(event)
            except RuleFetchError as e:
                logger.warning(
                    "automation.evaluation_failed",
                    business_id=event.tenant_id,
                    trigger=event.trigger,
                    error=str(e),
                )
