# taskboard_client/api.py — REST client for the Taskboard API
import logging
from typing import Any, Dict, List, Optional

import httpx

logger = logging.getLogger("taskboard.client")


class APIClientError(Exception):
    """Non-2xx response from the API"""

    def __init__(self, status_code: int, detail: Any, code: Optional[str] = None):
        self.status_code = status_code
        self.detail = detail
        self.code = code
        super().__init__(f"{status_code} {code or ''} {detail}".strip())


class TaskboardAPI:
    """Thin async wrapper around httpx.AsyncClient.

    Pass `transport` to run against an in-process app (httpx.ASGITransport).
    """

    def __init__(self, base_url: str, token: str = "", transport: Optional[httpx.AsyncBaseTransport] = None,
                 timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self._client = httpx.AsyncClient(base_url=self.base_url, transport=transport, timeout=timeout)

    async def close(self):
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.close()

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"} if self.token else {}

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        resp = await self._client.request(method, path, headers=self._headers(), **kwargs)
        if resp.status_code >= 400:
            try:
                body = resp.json()
            except ValueError:
                body = {"detail": resp.text}
            logger.debug(f"{method} {path} failed: {resp.status_code} {body}")
            raise APIClientError(resp.status_code, body.get("detail"), body.get("code"))
        return resp.json()

    # --- Auth & users ---

    async def register(self, name: str, email: str, password: str, role: str,
                       avatar_url: Optional[str] = None) -> dict:
        payload = {"name": name, "email": email, "password": password, "role": role}
        if avatar_url:
            payload["avatar_url"] = avatar_url
        return await self._request("POST", "/api/users", json=payload)

    async def login(self, email: str, password: str) -> dict:
        return await self._request("POST", "/api/auth/login", json={"email": email, "password": password})

    async def get_me(self) -> dict:
        return await self._request("GET", "/api/users/me")

    async def update_profile(self, uid: str, **changes) -> dict:
        return await self._request("PUT", f"/api/users/{uid}", json=changes)

    # --- Projects ---

    async def create_project(self, title: str, description: str, due_date: str, priority: str,
                             milestones: Optional[list] = None) -> dict:
        payload = {"title": title, "description": description, "due_date": due_date, "priority": priority}
        if milestones is not None:
            payload["milestones"] = milestones
        return await self._request("POST", "/api/projects", json=payload)

    async def list_projects(self) -> List[dict]:
        return await self._request("GET", "/api/projects")

    async def get_project(self, project_uid: str) -> dict:
        return await self._request("GET", f"/api/projects/{project_uid}")

    async def list_project_tasks(self, project_uid: str) -> List[dict]:
        return await self._request("GET", f"/api/projects/{project_uid}/tasks")

    # --- Tasks ---

    async def create_task(self, project_uid: str, title: str, **fields) -> dict:
        return await self._request("POST", "/api/tasks", json={"project_uid": project_uid, "title": title, **fields})

    async def get_task(self, task_uid: str) -> dict:
        return await self._request("GET", f"/api/tasks/{task_uid}")

    async def update_task(self, task_uid: str, **changes) -> dict:
        return await self._request("PATCH", f"/api/tasks/{task_uid}", json=changes)

    async def delete_task(self, task_uid: str) -> dict:
        return await self._request("DELETE", f"/api/tasks/{task_uid}")

    async def update_task_status(self, task_uid: str, status: str) -> dict:
        return await self._request("PATCH", f"/api/tasks/{task_uid}/status", json={"status": status})

    async def add_comment(self, task_uid: str, content: str, mentions: Optional[List[str]] = None) -> dict:
        payload: Dict[str, Any] = {"content": content}
        if mentions:
            payload["mentions"] = mentions
        return await self._request("POST", f"/api/tasks/{task_uid}/comments", json=payload)

    # --- Notifications & dashboard ---

    async def get_notifications(self, unread_only: bool = False) -> List[dict]:
        params = {"unread_only": "true"} if unread_only else None
        return await self._request("GET", "/api/notifications", params=params)

    async def mark_notification_read(self, notification_uid: str) -> dict:
        return await self._request("POST", f"/api/notifications/{notification_uid}/read")

    async def get_dashboard(self) -> dict:
        return await self._request("GET", "/api/dashboard-data")

    # --- Team ---

    async def list_team(self) -> List[dict]:
        return await self._request("GET", "/api/team/members")

    async def add_team_member(self, name: str, role: str = "member", avatar_url: Optional[str] = None) -> dict:
        payload = {"name": name, "role": role}
        if avatar_url:
            payload["avatar_url"] = avatar_url
        return await self._request("POST", "/api/team/members", json=payload)

    async def update_team_member(self, member_uid: str, **changes) -> dict:
        return await self._request("PUT", f"/api/team/members/{member_uid}", json=changes)

    async def remove_team_member(self, member_uid: str) -> dict:
        return await self._request("DELETE", f"/api/team/members/{member_uid}")
