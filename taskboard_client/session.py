# taskboard_client/session.py — Login/logout orchestration over api + store + socket
import asyncio
import logging
from typing import List, Optional, Set

from taskboard_client.api import TaskboardAPI
from taskboard_client.realtime import RealtimeConnection
from taskboard_client.store import ClientStore

logger = logging.getLogger("taskboard.client")


class TaskboardSession:
    """Ties the REST client, the store and the realtime socket together.

    Set `realtime_url=None` to run without a socket (e.g. against an
    in-process app).
    """

    def __init__(self, api: TaskboardAPI, store: ClientStore, realtime_url: Optional[str] = None):
        self.api = api
        self.store = store
        self.realtime_url = realtime_url
        self.realtime: Optional[RealtimeConnection] = None
        self._closing: Set[asyncio.Task] = set()
        self._unclosed: List[RealtimeConnection] = []
        store.on_reset(self._on_reset)
        if store.state.auth_token:
            api.token = store.state.auth_token

    async def register(self, name: str, email: str, password: str, role: str,
                       avatar_url: Optional[str] = None) -> dict:
        """Create an account and sign in with the token that comes back"""
        created = await self.api.register(name, email, password, role, avatar_url)
        await self._start(created["token"])
        return created

    async def login(self, email: str, password: str) -> dict:
        result = await self.api.login(email, password)
        await self._start(result["token"])
        return result

    async def _start(self, token: str):
        self.api.token = token
        self.store.set_auth_token(token)
        me = await self.api.get_me()
        self.store.login_success(token, me)
        await self.refresh_notifications()
        if self.realtime_url:
            self.realtime = RealtimeConnection(self.realtime_url, token, self.store)
            await self.realtime.connect()

    async def logout(self):
        if self.realtime is not None:
            await self.realtime.close()
            self.realtime = None
        self.api.token = ""
        self.store.reset_auth()
        await self.wait_closed()
        logger.info("Signed out")

    def _on_reset(self):
        # reset_auth may be called directly (e.g. on a 401); close any live socket
        if self.realtime is None:
            return
        conn, self.realtime = self.realtime, None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop to close it on; wait_closed() finishes the job
            self._unclosed.append(conn)
            return
        task = loop.create_task(conn.close())
        self._closing.add(task)
        task.add_done_callback(self._close_done)

    def _close_done(self, task: asyncio.Task):
        self._closing.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning(f"Realtime close failed: {task.exception()}")

    async def wait_closed(self):
        """Finish closing the sockets reset_auth dropped"""
        while self._unclosed:
            await self._unclosed.pop().close()
        if self._closing:
            await asyncio.gather(*list(self._closing), return_exceptions=True)

    async def refresh_notifications(self):
        self.store.set_notifications(await self.api.get_notifications())

    async def mark_notification_read(self, notification_uid: str):
        await self.api.mark_notification_read(notification_uid)
        self.store.mark_notification_read(notification_uid)
