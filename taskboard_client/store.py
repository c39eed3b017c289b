# taskboard_client/store.py — Client-side state container
# Holds auth state, the current user, the notification inbox and the inbound
# realtime events. Changes go through the reducer methods; listeners run
# after every change and whitelisted keys are persisted as JSON.
import os
import json
import logging
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

logger = logging.getLogger("taskboard.client")

TASK_STATUS_UPDATED = "task_status_updated"
NEW_COMMENT_ADDED = "new_comment_added"
NOTIFICATION_CREATED = "notification_created"
BUFFERED_EVENTS = (TASK_STATUS_UPDATED, NEW_COMMENT_ADDED)

DEFAULT_BUFFER_SIZE = int(os.getenv("REALTIME_BUFFER_SIZE", "100"))

PERSISTED_KEYS = (
    "auth_token", "current_user", "is_authenticated", "notifications",
    "unread_count", "is_sidebar_collapsed", "global_search_query", "active_modal",
)


@dataclass
class GlobalState:
    auth_token: str = ""
    current_user: Optional[Dict[str, Any]] = None
    is_authenticated: bool = False
    notifications: List[Dict[str, Any]] = field(default_factory=list)
    unread_count: int = 0
    socket_connected: bool = False
    # (sequence, payload) pairs; the sequence orders events across buffers
    realtime_updates: Dict[str, Deque[Tuple[int, dict]]] = field(default_factory=dict)
    is_sidebar_collapsed: bool = False
    global_search_query: str = ""
    active_modal: str = ""


class ClientStore:
    """Single state object shared by the session, the socket and the views."""

    def __init__(self, persist_path: Optional[str] = None, buffer_size: int = DEFAULT_BUFFER_SIZE):
        if buffer_size < 1:
            raise ValueError("buffer_size must be at least 1")
        self.buffer_size = buffer_size
        self.persist_path = Path(persist_path) if persist_path else None
        self.state = GlobalState(realtime_updates=self._empty_buffers())
        self._listeners: List[Callable[[GlobalState], None]] = []
        self._reset_hooks: List[Callable[[], None]] = []
        self._sequence = 0
        self._rehydrate()

    def _empty_buffers(self) -> Dict[str, Deque[Tuple[int, dict]]]:
        return {name: deque(maxlen=self.buffer_size) for name in BUFFERED_EVENTS}

    # ------------------------------------------------------------
    # Subscription & persistence
    # ------------------------------------------------------------

    def subscribe(self, listener: Callable[[GlobalState], None]) -> Callable[[], None]:
        """Register a change listener; returns a function that removes it"""
        self._listeners.append(listener)

        def _unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return _unsubscribe

    def on_reset(self, hook: Callable[[], None]):
        """Run hook whenever reset_auth clears the session (e.g. close the socket)"""
        self._reset_hooks.append(hook)

    def _changed(self):
        self._persist()
        for listener in list(self._listeners):
            listener(self.state)

    def snapshot(self) -> dict:
        return {key: getattr(self.state, key) for key in PERSISTED_KEYS}

    def _persist(self):
        if not self.persist_path:
            return
        self.persist_path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.persist_path.with_suffix(self.persist_path.suffix + ".tmp")
        tmp.write_text(json.dumps(self.snapshot()))
        tmp.replace(self.persist_path)

    def _rehydrate(self):
        if not self.persist_path or not self.persist_path.exists():
            return
        try:
            saved = json.loads(self.persist_path.read_text())
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable persisted state {self.persist_path}: {e}")
            return
        for key in PERSISTED_KEYS:
            if key in saved:
                setattr(self.state, key, saved[key])

    # ------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------

    def set_auth_token(self, token: str):
        self.state.auth_token = token
        self._changed()

    def set_current_user(self, user: Optional[dict]):
        self.state.current_user = user
        self._changed()

    def set_is_authenticated(self, value: bool):
        self.state.is_authenticated = value
        self._changed()

    def login_success(self, token: str, user: dict):
        self.state.auth_token = token
        self.state.current_user = user
        self.state.is_authenticated = True
        self._changed()

    def reset_auth(self):
        """Clear every auth field and close the realtime connection"""
        self.state.auth_token = ""
        self.state.current_user = None
        self.state.is_authenticated = False
        self.state.notifications = []
        self.state.unread_count = 0
        self.state.socket_connected = False
        self.state.realtime_updates = self._empty_buffers()
        for hook in list(self._reset_hooks):
            hook()
        self._changed()

    # ------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------

    def set_notifications(self, notifications: List[dict]):
        self.state.notifications = list(notifications)
        self.state.unread_count = sum(1 for n in notifications if not n.get("is_read"))
        self._changed()

    def add_notification(self, notification: dict):
        self.state.notifications.insert(0, notification)
        if not notification.get("is_read"):
            self.state.unread_count += 1
        self._changed()

    def mark_notification_read(self, uid: str):
        for notif in self.state.notifications:
            if notif.get("uid") == uid and not notif.get("is_read"):
                notif["is_read"] = True
                self.state.unread_count = sum(1 for n in self.state.notifications if not n.get("is_read"))
                self._changed()
                return

    # ------------------------------------------------------------
    # Realtime
    # ------------------------------------------------------------

    def set_socket_connected(self, value: bool):
        self.state.socket_connected = value
        self._changed()

    def add_realtime_update(self, event_type: str, payload: dict):
        buffer = self.state.realtime_updates.get(event_type)
        if buffer is None:
            logger.debug(f"Ignoring unbuffered realtime event {event_type}")
            return
        # deque(maxlen) drops the oldest event once full
        self._sequence += 1
        buffer.append((self._sequence, payload))
        self._changed()

    def pending_updates(self, event_type: str) -> int:
        return len(self.state.realtime_updates.get(event_type, ()))

    def drain_realtime_updates(self, event_type: str) -> List[dict]:
        """Return buffered events in arrival order and empty the buffer"""
        buffer = self.state.realtime_updates.get(event_type)
        if not buffer:
            return []
        events = [payload for _, payload in buffer]
        buffer.clear()
        self._changed()
        return events

    @property
    def last_sequence(self) -> int:
        return self._sequence

    def updates_since(self, position: int, event_types=BUFFERED_EVENTS) -> List[Tuple[str, dict]]:
        """(event_type, payload) pairs buffered after `position`, in arrival order.

        Reading leaves the buffers intact, so several views can follow the
        same store.
        """
        found = []
        for event_type in event_types:
            for seq, payload in self.state.realtime_updates.get(event_type, ()):
                if seq > position:
                    found.append((seq, event_type, payload))
        found.sort(key=lambda item: item[0])
        return [(event_type, payload) for _, event_type, payload in found]

    def cursor(self, *event_types: str) -> "UpdateCursor":
        return UpdateCursor(self, event_types or BUFFERED_EVENTS)

    def clear_realtime_updates(self, event_type: str):
        buffer = self.state.realtime_updates.get(event_type)
        if buffer:
            buffer.clear()
            self._changed()

    # ------------------------------------------------------------
    # UI chrome
    # ------------------------------------------------------------

    def toggle_sidebar(self):
        self.state.is_sidebar_collapsed = not self.state.is_sidebar_collapsed
        self._changed()

    def set_global_search_query(self, query: str):
        self.state.global_search_query = query
        self._changed()

    def set_active_modal(self, modal: str):
        self.state.active_modal = modal
        self._changed()


class UpdateCursor:
    """One consumer's read position over the store's realtime buffers.

    Starts at the newest event so only events that arrive afterwards are
    returned. Events dropped by a full buffer are skipped.
    """

    def __init__(self, store: ClientStore, event_types=BUFFERED_EVENTS):
        self.store = store
        self.event_types = tuple(event_types)
        self.position = store.last_sequence

    def read(self) -> List[Tuple[str, dict]]:
        events = self.store.updates_since(self.position, self.event_types)
        self.position = self.store.last_sequence
        return events
