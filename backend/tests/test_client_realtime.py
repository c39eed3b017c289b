# tests/test_client_realtime.py — RealtimeConnection against a stub socket server
import asyncio

import pytest
from aiohttp import web
from aiohttp import test_utils

from taskboard_client.realtime import RealtimeConnection, RealtimeAuthError
from taskboard_client.store import ClientStore, TASK_STATUS_UPDATED, NEW_COMMENT_ADDED

GOOD_TOKEN = "good-token"


async def stub_ws_handler(request):
    """Mimics /ws: rejects bad tokens with a close code, otherwise pushes two events"""
    ws = web.WebSocketResponse()
    await ws.prepare(request)
    if request.query.get("token") != GOOD_TOKEN:
        await ws.close(code=4003, message=b"Authentication error: Invalid token")
        return ws

    await ws.send_json({"type": "connected", "data": {"uid": "u1", "session_id": "s-1"}})
    await ws.send_json({"type": TASK_STATUS_UPDATED, "data": {"task_uid": "t1", "status": "done"}})
    await ws.send_json({"type": "notification_created", "data": {"uid": "n1", "is_read": False}})
    async for msg in ws:
        frame = msg.json()
        if frame.get("type") == "subscribe":
            await ws.send_json({"type": "subscribed", "topic": frame["topic"]})
    return ws


@pytest.fixture
def stub_app():
    app = web.Application()
    app.router.add_get("/ws", stub_ws_handler)
    return app


async def _wait_for(predicate, timeout=2.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


@pytest.mark.asyncio
async def test_rejected_handshake_raises(stub_app):
    store = ClientStore()
    async with test_utils.TestServer(stub_app) as server:
        conn = RealtimeConnection(str(server.make_url("/")), "bad-token", store)
        with pytest.raises(RealtimeAuthError) as exc:
            await conn.connect()
    assert exc.value.code == 4003
    assert exc.value.reason == "Authentication error: Invalid token"
    assert not store.state.socket_connected


@pytest.mark.asyncio
async def test_events_flow_into_store(stub_app):
    store = ClientStore()
    async with test_utils.TestServer(stub_app) as server:
        conn = RealtimeConnection(str(server.make_url("/")), GOOD_TOKEN, store)
        await conn.connect()
        assert conn.session_id == "s-1"
        assert store.state.socket_connected

        await _wait_for(lambda: store.state.unread_count == 1)
        assert store.drain_realtime_updates(TASK_STATUS_UPDATED) == [{"task_uid": "t1", "status": "done"}]

        await conn.subscribe("project:p1")
        await conn.close()
    assert not store.state.socket_connected


def test_handle_message_routing():
    store = ClientStore()
    conn = RealtimeConnection("http://localhost:1337", "tok", store)
    conn.handle_message({"type": NEW_COMMENT_ADDED, "data": {"comment_uid": "c1"}})
    conn.handle_message({"type": "pong"})
    conn.handle_message({"type": "error", "detail": "Unknown message type"})
    assert store.pending_updates(NEW_COMMENT_ADDED) == 1
    assert conn.url == "http://localhost:1337/ws?token=tok"
