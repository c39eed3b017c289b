# routers/websocket_router.py — Authenticated realtime channel
import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, Query

from auth import AuthService, TokenError, TokenExpired
from broadcaster import ConnectionManager, get_broadcaster, make_frame

router = APIRouter(tags=["WebSocket"])
logger = logging.getLogger("taskboard.ws")

# Close codes sent when the handshake token is rejected
WS_TOKEN_MISSING = 4001
WS_TOKEN_INVALID = 4003
WS_TOKEN_EXPIRED = 4004


async def _reject(websocket: WebSocket, code: int, reason: str):
    # Accept first so the close code reaches the client instead of a bare 403
    await websocket.accept()
    await websocket.close(code=code, reason=reason)
    logger.info(f"WS rejected: {reason} ({code})")


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    token: Optional[str] = Query(None),
):
    """Realtime channel. Connect with ?token=<bearer token>."""
    manager: ConnectionManager = websocket.app.state.broadcaster

    if not token:
        await _reject(websocket, WS_TOKEN_MISSING, "Authentication error: token required")
        return
    try:
        claims = AuthService.verify_token(token)
    except TokenExpired:
        await _reject(websocket, WS_TOKEN_EXPIRED, "Authentication error: Token expired")
        return
    except TokenError:
        await _reject(websocket, WS_TOKEN_INVALID, "Authentication error: Invalid token")
        return

    session_id = await manager.connect(websocket, claims.uid, claims.role)
    await websocket.send_json(make_frame("connected", {
        "uid": claims.uid,
        "session_id": session_id,
    }))

    try:
        while True:
            data = await websocket.receive_json()
            msg_type = data.get("type", "") if isinstance(data, dict) else ""

            if msg_type == "ping":
                await websocket.send_json({"type": "pong", "timestamp": datetime.now(timezone.utc).isoformat()})

            elif msg_type == "subscribe":
                topic = data.get("topic", "")
                if topic:
                    manager.subscribe(session_id, topic)
                    await websocket.send_json({"type": "subscribed", "topic": topic})

            elif msg_type == "unsubscribe":
                topic = data.get("topic", "")
                if topic:
                    manager.unsubscribe(session_id, topic)
                    await websocket.send_json({"type": "unsubscribed", "topic": topic})

            else:
                await websocket.send_json({"type": "error", "detail": f"Unknown message type: {msg_type!r}"})

    except WebSocketDisconnect:
        manager.disconnect(session_id)
    except Exception as e:
        logger.error(f"WebSocket error: {e}")
        manager.disconnect(session_id)


@router.get("/ws/stats")
async def websocket_stats(manager: ConnectionManager = Depends(get_broadcaster)):
    """Get WebSocket connection statistics"""
    return manager.get_stats()
