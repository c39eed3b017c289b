# taskboard_client/views.py — View-models for dashboard, project board and task detail
# Views hold the data a screen shows, call the API and fold realtime events
# from the store back in. They never render anything.
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from taskboard_client.api import APIClientError, TaskboardAPI
from taskboard_client.store import ClientStore, TASK_STATUS_UPDATED, NEW_COMMENT_ADDED

logger = logging.getLogger("taskboard.client")

BOARD_COLUMNS = ("to_do", "in_progress", "done")
# Statuses drawn in another column
COLUMN_ALIASES = {"completed": "done"}
COMPLETED_STATUS = "completed"


def _parse_timestamp(value) -> Optional[datetime]:
    """ISO timestamp as an aware datetime; naive values are taken as UTC"""
    if not value:
        return None
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _is_stale(event: dict, task: dict) -> bool:
    """True when the task already holds a newer write than the event"""
    event_at = _parse_timestamp(event.get("updated_at"))
    current_at = _parse_timestamp(task.get("updated_at"))
    if event_at is None or current_at is None:
        return False
    return event_at < current_at


class DashboardView:
    def __init__(self, api: TaskboardAPI, store: ClientStore):
        self.api = api
        self.store = store
        self.projects: List[dict] = []
        self.recent_activities: List[dict] = []
        self._updates = store.cursor(TASK_STATUS_UPDATED, NEW_COMMENT_ADDED)

    async def refresh(self):
        data = await self.api.get_dashboard()
        self.projects = data["projects"]
        self.recent_activities = data["recent_activities"]

    async def sync(self) -> bool:
        """Re-fetch when any task or comment event arrived since the last sync"""
        if not self._updates.read():
            return False
        await self.refresh()
        return True


class ProjectBoardView:
    """Kanban board for one project"""

    def __init__(self, api: TaskboardAPI, store: ClientStore, project_uid: str):
        self.api = api
        self.store = store
        self.project_uid = project_uid
        self.project: Optional[dict] = None
        self.tasks: List[dict] = []
        self._updates = store.cursor(TASK_STATUS_UPDATED, NEW_COMMENT_ADDED)

    async def load(self):
        self.project = await self.api.get_project(self.project_uid)
        self.tasks = await self.api.list_project_tasks(self.project_uid)

    def _find(self, task_uid: str) -> Optional[dict]:
        for task in self.tasks:
            if task["uid"] == task_uid:
                return task
        return None

    @property
    def columns(self) -> Dict[str, List[dict]]:
        grouped: Dict[str, List[dict]] = {name: [] for name in BOARD_COLUMNS}
        for task in self.tasks:
            column = COLUMN_ALIASES.get(task["status"], task["status"])
            grouped.setdefault(column, []).append(task)
        return grouped

    async def move_task(self, task_uid: str, status: str) -> dict:
        """Move a card at once and roll it back if the server refuses"""
        task = self._find(task_uid)
        if task is None:
            raise KeyError(task_uid)

        previous = task["status"]
        task["status"] = status
        try:
            updated = await self.api.update_task_status(task_uid, status)
        except APIClientError:
            task["status"] = previous
            logger.warning(f"Move of task {task_uid[:8]} to {status} rejected; reverted to {previous}")
            raise
        task.update(updated)
        return task

    async def sync(self) -> bool:
        """Fold buffered events into the board. Returns True when the board changed."""
        changed = False
        refetch = False
        for event_type, event in self._updates.read():
            if event_type == NEW_COMMENT_ADDED:
                refetch = True
                continue
            task = self._find(event["task_uid"])
            if task is None:
                refetch = True
                continue
            if _is_stale(event, task):
                # Delivery order is not commit order
                continue
            task["status"] = event["status"]
            task["updated_at"] = event["updated_at"]
            changed = True

        if refetch:
            await self.load()
            changed = True
        return changed


class TaskDetailView:
    def __init__(self, api: TaskboardAPI, store: ClientStore, task_uid: str):
        self.api = api
        self.store = store
        self.task_uid = task_uid
        self.task: Optional[dict] = None
        self._updates = store.cursor(TASK_STATUS_UPDATED, NEW_COMMENT_ADDED)

    @property
    def comments(self) -> List[dict]:
        return self.task["comments"] if self.task else []

    async def load(self):
        self.task = await self.api.get_task(self.task_uid)

    async def add_comment(self, content: str, mentions: Optional[List[str]] = None) -> dict:
        comment = await self.api.add_comment(self.task_uid, content, mentions)
        if self.task is not None:
            self.task["comments"].insert(0, comment)
        return comment

    async def mark_complete(self) -> dict:
        updated = await self.api.update_task_status(self.task_uid, COMPLETED_STATUS)
        if self.task is not None:
            self.task.update(updated)
        return updated

    async def sync(self) -> bool:
        """Reload when a buffered event concerns this task"""
        events = self._updates.read()
        if not any(e.get("task_uid") == self.task_uid for _, e in events):
            return False
        await self.load()
        return True
