"""Event bus registry — tracks live subscribers and fans events out to them.

Learn: Two maps are the only shared mutable state in the realtime core:

    tenant id  → set of operator connections (one per open dashboard tab)
    visitor id → the single live chat-widget connection for that visitor

Delivery is fire-and-forget, at-most-once. No queueing, no retries: a
subscriber that is offline when an event fires never sees it, and the
dashboard catches up by refetching over REST.

Broadcast snapshots the recipient list before the first await, so a
connection that unregisters mid-broadcast can never corrupt the iteration.
Each send is bounded by send_timeout; a socket that stops reading is
skipped for that event like any other failed send.

The bus is a plain object built by the app factory and handed to the
gateway and the automation engine. Tests build as many as they like.
"""

import asyncio
from typing import Any, Optional, Protocol

import structlog

from homedesk.events.models import OutboundEvent
from homedesk.events.types import NEW_CHAT_MESSAGE

logger = structlog.get_logger()


class Connection(Protocol):
    """Anything the bus can push text frames to."""

    @property
    def is_open(self) -> bool: ...

    async def send_text(self, data: str) -> None: ...


class Relay(Protocol):
    """Cross-process publisher (see homedesk.realtime.relay)."""

    async def publish(self, event: OutboundEvent) -> None: ...


class EventBus:
    """Subscriber registry + broadcaster for one process."""

    def __init__(self, relay: Optional[Relay] = None, send_timeout: float = 5.0):
        self._tenants: dict[int, set[Connection]] = {}
        self._visitors: dict[str, Connection] = {}
        self.relay = relay
        self.send_timeout = send_timeout

    # ─── Tenant subscribers ──────────────────────────────

    def register_tenant(self, tenant_id: int, connection: Connection) -> None:
        """Add an operator connection. Registering twice is a no-op."""
        self._tenants.setdefault(tenant_id, set()).add(connection)

    def unregister_tenant(self, tenant_id: int, connection: Connection) -> None:
        """Remove an operator connection. Safe to call repeatedly."""
        connections = self._tenants.get(tenant_id)
        if connections is None:
            return
        connections.discard(connection)
        if not connections:
            del self._tenants[tenant_id]

    def tenant_connections(self, tenant_id: int) -> list[Connection]:
        return list(self._tenants.get(tenant_id, ()))

    # ─── Visitor subscribers ─────────────────────────────

    def register_visitor(self, visitor_id: str, connection: Connection) -> None:
        """Map a visitor to its connection. The newest connection wins."""
        previous = self._visitors.get(visitor_id)
        self._visitors[visitor_id] = connection
        if previous is not None and previous is not connection:
            logger.info("realtime.visitor_replaced", visitor_id=visitor_id)

    def unregister_visitor(
        self,
        visitor_id: str,
        connection: Optional[Connection] = None,
    ) -> None:
        """Drop a visitor mapping.

        When ``connection`` is given, the mapping is only removed if it still
        points at that connection. A stale socket closing after the visitor
        reconnected must not evict the fresh one.
        """
        current = self._visitors.get(visitor_id)
        if current is None:
            return
        if connection is not None and current is not connection:
            return
        del self._visitors[visitor_id]

    def visitor_connection(self, visitor_id: str) -> Optional[Connection]:
        return self._visitors.get(visitor_id)

    # ─── Delivery ────────────────────────────────────────

    async def broadcast(self, event: OutboundEvent) -> int:
        """Deliver locally, then hand the event to the relay (if any).

        Never raises. Returns the number of local connections that
        accepted the frame.
        """
        sent = await self.deliver(event)
        if self.relay is not None:
            await self.relay.publish(event)
        return sent

    async def deliver(self, event: OutboundEvent) -> int:
        """Send an event to this process's subscribers only."""
        recipients = self._recipients(event)
        if not recipients:
            return 0

        data = event.to_json()
        # Concurrent, each send time-bounded: one stalled socket can't hold up the rest.
        results = await asyncio.gather(*(self._send(c, data) for c in recipients))
        sent = sum(1 for ok in results if ok)

        logger.debug(
            "realtime.broadcast",
            type=event.type,
            tenant_id=event.tenant_id,
            recipients=len(recipients),
            sent=sent,
        )
        return sent

    def _recipients(self, event: OutboundEvent) -> list[Connection]:
        recipients: list[Connection] = []
        tenant_id = event.tenant_id
        if tenant_id is not None:
            recipients.extend(self._tenants.get(tenant_id, ()))
        if event.type == NEW_CHAT_MESSAGE:
            # There is no visitor → conversation ownership map, so chat
            # messages go to every connected visitor.
            recipients.extend(self._visitors.values())
        return recipients

    async def _send(self, connection: Connection, data: str) -> bool:
        if not connection.is_open:
            return False
        try:
            await asyncio.wait_for(connection.send_text(data), timeout=self.send_timeout)
        except asyncio.TimeoutError:
            logger.debug("realtime.send_timed_out", timeout=self.send_timeout)
            return False
        except Exception as e:
            logger.debug("realtime.send_failed", error=str(e))
            return False
        return True

    # ─── Introspection ───────────────────────────────────

    def stats(self) -> dict[str, Any]:
        """Connection counts for the health endpoint."""
        return {
            "tenant_connections": sum(len(c) for c in self._tenants.values()),
            "tenants_connected": len(self._tenants),
            "visitor_connections": len(self._visitors),
            "connections_by_tenant": {
                tenant_id: len(connections)
                for tenant_id, connections in self._tenants.items()
            },
        }
