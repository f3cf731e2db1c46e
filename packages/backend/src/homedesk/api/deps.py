"""Shared route dependencies.

Learn: The app factory builds one EventBus, one AutomationEngine, and one
EventPublisher and hangs them on app.state. Routes (and the WebSocket
endpoint) reach them through these dependencies instead of importing
module globals, so each test app gets its own isolated set.
"""

from fastapi.requests import HTTPConnection

from homedesk.automation.engine import AutomationEngine
from homedesk.events.publisher import EventPublisher
from homedesk.realtime.bus import EventBus


def get_bus(conn: HTTPConnection) -> EventBus:
    return conn.app.state.bus


def get_engine(conn: HTTPConnection) -> AutomationEngine:
    return conn.app.state.engine


def get_publisher(conn: HTTPConnection) -> EventPublisher:
    return conn.app.state.publisher
