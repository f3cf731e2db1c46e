"""WebSocket endpoint tests via Starlette's TestClient.

Learn: TestClient runs the app on its own event loop in a worker thread,
so these tests swap in a gateway with an in-memory stats snapshot instead
of touching the SQLite fixture (which belongs to pytest's loop).
"""

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from homedesk.main import create_app
from homedesk.realtime.gateway import Gateway


@pytest.fixture()
def ws_app():
    app = create_app()

    async def snapshot(business_id):
        return {"activeCustomers": 1, "scheduledJobs": 0, "newMessages": 2, "avgReview": 5.0}

    app.state.gateway = Gateway(app.state.bus, snapshot=snapshot)
    return app


def test_connection_without_identity_is_refused(ws_app):
    client = TestClient(ws_app)
    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect("/ws"):
            pass
    assert exc.value.code == 1008


def test_operator_receives_initial_stats(ws_app):
    client = TestClient(ws_app)
    with client.websocket_connect("/ws?tenantId=5") as ws:
        frame = ws.receive_json()
        assert frame == {
            "type": "INITIAL_STATS",
            "payload": {
                "businessId": 5,
                "activeCustomers": 1,
                "scheduledJobs": 0,
                "newMessages": 2,
                "avgReview": 5.0,
            },
        }
        assert ws_app.state.bus.stats()["connections_by_tenant"] == {5: 1}


def test_visitor_connects_without_stats(ws_app):
    client = TestClient(ws_app)
    with client.websocket_connect("/ws?visitorId=visitor-1") as ws:
        ws.send_text("not json")
        ws.send_json({"type": "NEW_CHAT_MESSAGE", "payload": {"conversationId": 1}})
    assert ws_app.state.bus.visitor_connection("visitor-1") is None
