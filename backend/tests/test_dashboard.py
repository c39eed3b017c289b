# tests/test_dashboard.py — Dashboard summary tests
import pytest
from httpx import AsyncClient

from tests.conftest import get_auth_headers


@pytest.mark.asyncio
async def test_dashboard_empty(client: AsyncClient, test_user):
    resp = await client.get("/api/dashboard-data", headers=get_auth_headers(test_user))
    assert resp.status_code == 200
    assert resp.json() == {"projects": [], "recent_activities": []}


@pytest.mark.asyncio
async def test_dashboard_counts_and_activity(client: AsyncClient, test_user, test_project, test_task):
    headers = get_auth_headers(test_user)
    second = (await client.post("/api/tasks", json={
        "project_uid": test_project.uid, "title": "Book venue",
    }, headers=headers)).json()
    await client.patch(f"/api/tasks/{second['uid']}/status", json={"status": "completed"}, headers=headers)

    resp = await client.get("/api/dashboard-data", headers=headers)
    assert resp.status_code == 200
    data = resp.json()
    assert len(data["projects"]) == 1
    summary = data["projects"][0]
    assert summary["uid"] == test_project.uid
    assert summary["task_count"] == 2
    assert summary["completed_count"] == 1

    actions = [a["action"] for a in data["recent_activities"]]
    assert actions == ["updated_status", "created_task"]


@pytest.mark.asyncio
async def test_dashboard_requires_token(client: AsyncClient):
    resp = await client.get("/api/dashboard-data")
    assert resp.status_code == 401
