# broadcaster.py — Realtime event fan-out
# One ConnectionManager per application, stored on app.state and handed to
# handlers through the get_broadcaster dependency.
import uuid
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional, Set

from fastapi import Request, WebSocket

logger = logging.getLogger("taskboard.ws")

# Event names pushed to clients
TASK_STATUS_UPDATED = "task_status_updated"
NEW_COMMENT_ADDED = "new_comment_added"
NOTIFICATION_CREATED = "notification_created"


def task_topic(task_uid: str) -> str:
    return f"task:{task_uid}"


def project_topic(project_uid: str) -> str:
    return f"project:{project_uid}"


def make_frame(event: str, payload: Any) -> dict:
    return {
        "type": event,
        "data": payload,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@dataclass
class Session:
    session_id: str
    uid: str
    role: str
    websocket: WebSocket
    topics: Set[str] = field(default_factory=set)

    def wants(self, topics: Set[str]) -> bool:
        # Sessions without subscriptions receive every event
        if not self.topics:
            return True
        return bool(self.topics & topics)


class ConnectionManager:
    """Registry of live sockets with unacknowledged, best-effort delivery.

    Nothing is queued or persisted: a session that is not connected when an
    event is published never sees it, and a send failure drops the session.
    """

    def __init__(self):
        self._sessions: Dict[str, Session] = {}

    async def connect(self, websocket: WebSocket, uid: str, role: str) -> str:
        await websocket.accept()
        session_id = str(uuid.uuid4())
        self._sessions[session_id] = Session(session_id, uid, role, websocket)
        logger.info(f"WS connected: session={session_id[:8]} user={uid[:8]}")
        return session_id

    def disconnect(self, session_id: str):
        session = self._sessions.pop(session_id, None)
        if session:
            logger.info(f"WS disconnected: session={session_id[:8]} user={session.uid[:8]}")

    def subscribe(self, session_id: str, topic: str):
        if session_id in self._sessions:
            self._sessions[session_id].topics.add(topic)

    def unsubscribe(self, session_id: str, topic: str):
        if session_id in self._sessions:
            self._sessions[session_id].topics.discard(topic)

    async def _send(self, session: Session, frame: dict) -> bool:
        try:
            await session.websocket.send_json(frame)
            return True
        except Exception as e:
            logger.warning(f"WS send failed, dropping session={session.session_id[:8]}: {e}")
            self.disconnect(session.session_id)
            return False

    async def publish(self, event: str, payload: Any, topics: Iterable[str] = ()) -> int:
        """Push an event to every interested session. Returns delivered count."""
        wanted = set(topics)
        frame = make_frame(event, payload)
        delivered = 0
        for session in list(self._sessions.values()):
            if not session.wants(wanted):
                continue
            if await self._send(session, frame):
                delivered += 1
        logger.info(f"Published {event} to {delivered} session(s)")
        return delivered

    async def send_to_user(self, uid: str, event: str, payload: Any) -> int:
        frame = make_frame(event, payload)
        delivered = 0
        for session in list(self._sessions.values()):
            if session.uid != uid:
                continue
            if await self._send(session, frame):
                delivered += 1
        return delivered

    def get_session(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    def online_users(self) -> list:
        return sorted({s.uid for s in self._sessions.values()})

    def get_stats(self) -> dict:
        topics = set()
        for s in self._sessions.values():
            topics |= s.topics
        return {
            "total_connections": len(self._sessions),
            "users": len(self.online_users()),
            "topics": len(topics),
        }


def get_broadcaster(request: Request) -> ConnectionManager:
    """Dependency returning the application's broadcaster"""
    return request.app.state.broadcaster
