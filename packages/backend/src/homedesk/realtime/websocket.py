"""WebSocket endpoint — real-time event delivery to dashboards and chat widgets.

Learn: Clients connect to /ws?tenantId=5 (operator) or /ws?visitorId=abc
(chat widget). The handler:
1. Classifies the connection; refuses it if neither id is usable
2. Accepts, then hands the socket to the Gateway
3. The Gateway registers it with the EventBus and reads frames until
   the client disconnects, then unregisters it

This is a long-lived connection, one per browser tab.
"""

from collections.abc import AsyncIterator

from fastapi import APIRouter, WebSocket, status
from starlette.websockets import WebSocketState

from homedesk.realtime.gateway import Gateway, classify

router = APIRouter()


class WebSocketConnection:
    """Adapts a Starlette WebSocket to the bus/gateway connection protocol."""

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket

    @property
    def is_open(self) -> bool:
        return (
            self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    async def send_text(self, data: str) -> None:
        await self.websocket.send_text(data)

    async def iter_text(self) -> AsyncIterator[str]:
        while True:
            message = await self.websocket.receive()
            if message["type"] == "websocket.disconnect":
                return
            text = message.get("text")
            if text is None:
                text = (message.get("bytes") or b"").decode("utf-8", errors="replace")
            yield text


@router.websocket("/ws")
async def realtime_websocket(websocket: WebSocket):
    """WebSocket endpoint for business operators and site visitors."""
    identity = classify(websocket.query_params)
    if identity is None:
        await websocket.close(
            code=status.WS_1008_POLICY_VIOLATION,
            reason="tenantId or visitorId required",
        )
        return

    await websocket.accept()

    gateway: Gateway = websocket.app.state.gateway
    try:
        await gateway.run(WebSocketConnection(websocket), identity)
    finally:
        if websocket.application_state == WebSocketState.CONNECTED and (
            websocket.client_state == WebSocketState.CONNECTED
        ):
            await websocket.close()
