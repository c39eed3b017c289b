# taskboard_client/realtime.py — Socket client feeding the ClientStore
import json
import asyncio
import logging
from typing import Optional
from urllib.parse import urlencode

import aiohttp

from taskboard_client.store import (
    ClientStore, TASK_STATUS_UPDATED, NEW_COMMENT_ADDED, NOTIFICATION_CREATED,
)

logger = logging.getLogger("taskboard.client")


class RealtimeAuthError(Exception):
    """The server closed the handshake (missing, invalid or expired token)"""

    def __init__(self, code: int, reason: str = ""):
        self.code = code
        self.reason = reason
        super().__init__(f"{code}: {reason}")


class RealtimeConnection:
    """One authenticated /ws connection.

    `connect()` waits for the server's `connected` frame, then a background
    task reads frames and routes them into the store until `close()`.
    """

    def __init__(self, base_url: str, token: str, store: ClientStore,
                 session: Optional[aiohttp.ClientSession] = None):
        self.url = f"{base_url.rstrip('/')}/ws?{urlencode({'token': token})}"
        self.store = store
        self.session_id: Optional[str] = None
        self._http = session
        self._owns_http = session is None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._reader: Optional[asyncio.Task] = None

    @property
    def connected(self) -> bool:
        return self._ws is not None and not self._ws.closed

    async def connect(self):
        if self._http is None:
            self._http = aiohttp.ClientSession()
        self._ws = await self._http.ws_connect(self.url, heartbeat=30)

        msg = await self._ws.receive()
        if msg.type in (aiohttp.WSMsgType.CLOSE, aiohttp.WSMsgType.CLOSING, aiohttp.WSMsgType.CLOSED):
            code = self._ws.close_code or (msg.data if isinstance(msg.data, int) else 0)
            reason = msg.extra or ""
            await self._cleanup()
            raise RealtimeAuthError(code, reason)

        frame = json.loads(msg.data)
        if frame.get("type") == "connected":
            self.session_id = frame["data"]["session_id"]
        else:
            self.handle_message(frame)

        self.store.set_socket_connected(True)
        self._reader = asyncio.create_task(self._read_loop())
        logger.info(f"Realtime connected: session={str(self.session_id)[:8]}")

    async def _read_loop(self):
        try:
            async for msg in self._ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    self.handle_message(json.loads(msg.data))
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    logger.warning(f"Realtime connection error: {self._ws.exception()}")
                    break
        finally:
            self.store.set_socket_connected(False)

    def handle_message(self, frame: dict):
        """Route one server frame into the store"""
        event = frame.get("type")
        data = frame.get("data")
        if event in (TASK_STATUS_UPDATED, NEW_COMMENT_ADDED):
            self.store.add_realtime_update(event, data)
        elif event == NOTIFICATION_CREATED:
            self.store.add_notification(data)
        elif event == "error":
            logger.warning(f"Realtime server error: {frame.get('detail')}")
        else:
            logger.debug(f"Realtime frame ignored: {event}")

    async def subscribe(self, topic: str):
        await self._ws.send_json({"type": "subscribe", "topic": topic})

    async def unsubscribe(self, topic: str):
        await self._ws.send_json({"type": "unsubscribe", "topic": topic})

    async def ping(self):
        await self._ws.send_json({"type": "ping"})

    async def close(self):
        if self._reader is not None:
            self._reader.cancel()
            try:
                await self._reader
            except asyncio.CancelledError:
                pass
            self._reader = None
        await self._cleanup()
        self.store.set_socket_connected(False)

    async def _cleanup(self):
        if self._ws is not None and not self._ws.closed:
            await self._ws.close()
        self._ws = None
        if self._owns_http and self._http is not None:
            await self._http.close()
            self._http = None
