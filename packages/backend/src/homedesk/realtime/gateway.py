"""Realtime gateway — one connection's life from open to close.

Learn: The gateway sits between a raw socket and the EventBus:

1. classify() decides who is connecting from the query string:
   ?tenantId=5 → operator dashboard for business 5
   ?visitorId=abc → anonymous chat-widget visitor
   tenantId wins when both are given. (?businessId= is accepted as an
   alias of tenantId for older dashboard builds.)
2. GatewaySession.open() registers the connection and, for operators,
   pushes an INITIAL_STATS snapshot exactly once.
3. Inbound frames are parsed and routed by "type". Chat and read-receipt
   frames are logged only; the authoritative write goes through REST,
   which then broadcasts. Everything else is logged as unhandled.
   Malformed frames are dropped without a reply; the socket stays open.
4. GatewaySession.close() unregisters exactly once, however many times
   it is called.

There is no reconnect logic here: a client that drops and comes back is a
brand-new connection with a brand-new registration.
"""

import json
from collections.abc import AsyncIterator, Mapping
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Protocol

import structlog

from homedesk.events.models import OutboundEvent
from homedesk.events.types import INITIAL_STATS, MESSAGE_READ, NEW_CHAT_MESSAGE
from homedesk.realtime.bus import EventBus

logger = structlog.get_logger()

StatsSnapshot = Callable[[int], Awaitable[dict[str, Any]]]


class MalformedMessageError(Exception):
    """Inbound frame isn't a JSON object with a string "type"."""
    pass


class GatewayConnection(Protocol):
    @property
    def is_open(self) -> bool: ...

    async def send_text(self, data: str) -> None: ...

    def iter_text(self) -> AsyncIterator[str]: ...


# ─── Identity ────────────────────────────────────────────


@dataclass(frozen=True)
class Identity:
    tenant_id: Optional[int] = None
    visitor_id: Optional[str] = None

    @property
    def is_tenant(self) -> bool:
        return self.tenant_id is not None


def _parse_tenant_id(raw: Optional[str]) -> Optional[int]:
    if not raw:
        return None
    try:
        value = int(raw)
    except ValueError:
        return None
    return value if value > 0 else None


def classify(params: Mapping[str, str]) -> Optional[Identity]:
    """Work out who a connection belongs to. None if neither id is usable."""
    tenant_id = _parse_tenant_id(params.get("tenantId") or params.get("businessId"))
    if tenant_id is not None:
        return Identity(tenant_id=tenant_id)

    visitor_id = (params.get("visitorId") or "").strip()
    if visitor_id:
        return Identity(visitor_id=visitor_id)
    return None


# ─── Inbound frames ──────────────────────────────────────


@dataclass(frozen=True)
class InboundMessage:
    type: str
    payload: dict[str, Any] = field(default_factory=dict)


def parse_inbound(raw: str) -> InboundMessage:
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as e:
        raise MalformedMessageError(f"Invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise MalformedMessageError("Frame must be a JSON object")

    msg_type = data.get("type")
    if not isinstance(msg_type, str) or not msg_type:
        raise MalformedMessageError("Frame is missing 'type'")

    payload = data.get("payload")
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise MalformedMessageError("'payload' must be an object")

    return InboundMessage(type=msg_type, payload=payload)


# ─── Sessions ────────────────────────────────────────────


class GatewaySession:
    """State machine for one connection: connecting → open → closed."""

    def __init__(self, gateway: "Gateway", connection: GatewayConnection, identity: Identity):
        self.gateway = gateway
        self.connection = connection
        self.identity = identity
        self.state = "connecting"

    async def open(self) -> None:
        if self.state != "connecting":
            return

        bus = self.gateway.bus
        if self.identity.is_tenant:
            bus.register_tenant(self.identity.tenant_id, self.connection)
            logger.info("realtime.tenant_connected", business_id=self.identity.tenant_id)
        else:
            bus.register_visitor(self.identity.visitor_id, self.connection)
            logger.info("realtime.visitor_connected", visitor_id=self.identity.visitor_id)
        self.state = "open"

        if self.identity.is_tenant:
            await self._send_initial_stats()

    async def _send_initial_stats(self) -> None:
        snapshot = self.gateway.snapshot
        if snapshot is None:
            return
        tenant_id = self.identity.tenant_id
        try:
            stats = await snapshot(tenant_id)
            frame = OutboundEvent(type=INITIAL_STATS, payload={"businessId": tenant_id, **stats})
            await self.connection.send_text(frame.to_json())
        except Exception as e:
            logger.warning("realtime.initial_stats_failed", business_id=tenant_id, error=str(e))

    async def handle(self, raw: str) -> None:
        try:
            message = parse_inbound(raw)
        except MalformedMessageError as e:
            logger.info("realtime.malformed_message", error=str(e))
            return

        handler = self.gateway.handlers.get(message.type)
        if handler is None:
            logger.info("realtime.unhandled_message", type=message.type)
            return
        await handler(self, message)

    def close(self) -> None:
        if self.state == "closed":
            return
        was_open = self.state == "open"
        self.state = "closed"
        if not was_open:
            return

        bus = self.gateway.bus
        if self.identity.is_tenant:
            bus.unregister_tenant(self.identity.tenant_id, self.connection)
            logger.info("realtime.tenant_disconnected", business_id=self.identity.tenant_id)
        else:
            bus.unregister_visitor(self.identity.visitor_id, self.connection)
            logger.info("realtime.visitor_disconnected", visitor_id=self.identity.visitor_id)


InboundHandler = Callable[[GatewaySession, InboundMessage], Awaitable[None]]


async def _on_chat_message(session: GatewaySession, message: InboundMessage) -> None:
    # Persisted and broadcast by POST /conversations/{id}/messages.
    logger.debug(
        "realtime.inbound_chat_message",
        conversation_id=message.payload.get("conversationId"),
    )


async def _on_message_read(session: GatewaySession, message: InboundMessage) -> None:
    # Persisted and broadcast by POST /conversations/{id}/read.
    logger.debug(
        "realtime.inbound_message_read",
        conversation_id=message.payload.get("conversationId"),
    )


class Gateway:
    """Accepts connections on behalf of an EventBus."""

    def __init__(self, bus: EventBus, snapshot: Optional[StatsSnapshot] = None):
        self.bus = bus
        self.snapshot = snapshot
        self.handlers: dict[str, InboundHandler] = {
            NEW_CHAT_MESSAGE: _on_chat_message,
            MESSAGE_READ: _on_message_read,
        }

    def session(self, connection: GatewayConnection, identity: Identity) -> GatewaySession:
        return GatewaySession(self, connection, identity)

    async def run(self, connection: GatewayConnection, identity: Identity) -> None:
        """Drive a connection until the peer goes away."""
        session = self.session(connection, identity)
        await session.open()
        try:
            async for raw in connection.iter_text():
                await session.handle(raw)
        finally:
            session.close()
