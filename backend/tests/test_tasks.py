# tests/test_tasks.py — Task cards, status changes and comments
import asyncio
from datetime import datetime

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from models import ActivityFeed, Notification, Task
from routers import tasks as tasks_router
from tests.conftest import get_auth_headers


@pytest.mark.asyncio
class TestTaskCrud:
    async def test_create_task(self, client: AsyncClient, test_user, test_project):
        resp = await client.post("/api/tasks", json={
            "project_uid": test_project.uid,
            "title": "Draft blog post",
            "due_date": "2024-12-15",
            "priority": "Medium",
        }, headers=get_auth_headers(test_user))
        assert resp.status_code == 201
        data = resp.json()
        assert data["status"] == "to_do"
        assert data["project_uid"] == test_project.uid
        assert data["created_by"] == test_user.uid

    async def test_create_task_unknown_project(self, client: AsyncClient, test_user):
        resp = await client.post("/api/tasks", json={
            "project_uid": "missing", "title": "Orphan",
        }, headers=get_auth_headers(test_user))
        assert resp.status_code == 404

    async def test_get_task_detail(self, client: AsyncClient, test_user, test_task):
        resp = await client.get(f"/api/tasks/{test_task.uid}", headers=get_auth_headers(test_user))
        assert resp.status_code == 200
        data = resp.json()
        assert data["title"] == "Write press release"
        assert data["comments"] == []
        assert data["activity"] == []

    async def test_update_task_records_changes(self, client: AsyncClient, test_user, test_task, db_session):
        resp = await client.patch(
            f"/api/tasks/{test_task.uid}",
            json={"title": "Write and send press release", "priority": "High"},
            headers=get_auth_headers(test_user),
        )
        assert resp.status_code == 200
        assert resp.json()["title"] == "Write and send press release"

        rows = (await db_session.execute(
            select(ActivityFeed).where(ActivityFeed.task_uid == test_task.uid)
        )).scalars().all()
        assert len(rows) == 1
        assert rows[0].action == "updated_task"
        assert rows[0].details["title"] == {"from": "Write press release", "to": "Write and send press release"}
        assert rows[0].details["priority"] == {"from": None, "to": "High"}

    async def test_delete_task(self, client: AsyncClient, test_user, test_task):
        headers = get_auth_headers(test_user)
        resp = await client.delete(f"/api/tasks/{test_task.uid}", headers=headers)
        assert resp.status_code == 200
        assert resp.json() == {"status": "deleted", "task_uid": test_task.uid}
        resp = await client.get(f"/api/tasks/{test_task.uid}", headers=headers)
        assert resp.status_code == 404


@pytest.mark.asyncio
class TestStatusUpdate:
    async def test_status_update_writes_activity_and_broadcasts(
        self, client: AsyncClient, test_user, test_task, db_session, broadcaster,
    ):
        resp = await client.patch(
            f"/api/tasks/{test_task.uid}/status",
            json={"status": "in_progress"},
            headers=get_auth_headers(test_user),
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "in_progress"

        rows = (await db_session.execute(
            select(ActivityFeed).where(ActivityFeed.task_uid == test_task.uid)
        )).scalars().all()
        assert len(rows) == 1
        assert rows[0].action == "updated_status"
        assert rows[0].user_uid == test_user.uid
        assert rows[0].details == {"from": "to_do", "to": "in_progress"}

        events = broadcaster.events("task_status_updated")
        assert len(events) == 1
        assert events[0]["task_uid"] == test_task.uid
        assert events[0]["status"] == "in_progress"
        assert events[0]["updated_at"]
        assert f"task:{test_task.uid}" in broadcaster.published[0]["topics"]
        assert f"project:{test_task.project_uid}" in broadcaster.published[0]["topics"]

    async def test_updated_at_advances(self, client: AsyncClient, test_user, test_task):
        before = test_task.updated_at
        resp = await client.patch(
            f"/api/tasks/{test_task.uid}/status",
            json={"status": "done"},
            headers=get_auth_headers(test_user),
        )
        assert resp.status_code == 200
        after = datetime.fromisoformat(resp.json()["updated_at"].replace("Z", "+00:00"))
        assert after.replace(tzinfo=None) >= before.replace(tzinfo=None)

    async def test_unknown_task_is_bad_request(self, client: AsyncClient, test_user, broadcaster):
        resp = await client.patch(
            "/api/tasks/does-not-exist/status",
            json={"status": "done"},
            headers=get_auth_headers(test_user),
        )
        assert resp.status_code == 400
        assert resp.json()["code"] == "not_found"
        assert broadcaster.published == []

    async def test_missing_status(self, client: AsyncClient, test_user, test_task, broadcaster):
        resp = await client.patch(
            f"/api/tasks/{test_task.uid}/status", json={}, headers=get_auth_headers(test_user),
        )
        assert resp.status_code == 400
        assert resp.json()["fields"] == ["status"]
        assert broadcaster.published == []

    async def test_requires_token(self, client: AsyncClient, test_task, broadcaster):
        resp = await client.patch(f"/api/tasks/{test_task.uid}/status", json={"status": "done"})
        assert resp.status_code == 401
        assert broadcaster.published == []

    async def test_concurrent_updates_both_recorded(
        self, client: AsyncClient, test_user, test_task, db_session, broadcaster,
    ):
        headers = get_auth_headers(test_user)
        r1, r2 = await asyncio.gather(
            client.patch(f"/api/tasks/{test_task.uid}/status", json={"status": "in_progress"}, headers=headers),
            client.patch(f"/api/tasks/{test_task.uid}/status", json={"status": "done"}, headers=headers),
        )
        assert r1.status_code == r2.status_code == 200

        rows = (await db_session.execute(
            select(ActivityFeed).where(ActivityFeed.task_uid == test_task.uid)
        )).scalars().all()
        assert len(rows) == 2
        assert len(broadcaster.events("task_status_updated")) == 2

        await db_session.refresh(test_task)
        latest = max(rows, key=lambda row: row.created_at)
        assert test_task.status == latest.details["to"]

    async def test_failed_activity_write_rolls_back_status(
        self, client: AsyncClient, test_user, test_task, db_session, broadcaster, monkeypatch,
    ):
        def broken_activity(db, task_uid, user_uid, action, details, at):
            # action is NOT NULL, so the commit fails
            db.add(ActivityFeed(task_uid=task_uid, user_uid=user_uid, action=None,
                                details=details, created_at=at))

        monkeypatch.setattr(tasks_router, "_record_activity", broken_activity)
        resp = await client.patch(
            f"/api/tasks/{test_task.uid}/status",
            json={"status": "done"},
            headers=get_auth_headers(test_user),
        )
        assert resp.status_code == 500
        assert resp.json()["code"] == "internal_error"

        await db_session.refresh(test_task)
        assert test_task.status == "to_do"
        rows = (await db_session.execute(
            select(ActivityFeed).where(ActivityFeed.task_uid == test_task.uid)
        )).scalars().all()
        assert rows == []
        assert broadcaster.published == []


@pytest.mark.asyncio
class TestComments:
    async def test_add_comment_broadcasts(self, client: AsyncClient, test_user, test_task, broadcaster):
        resp = await client.post(
            f"/api/tasks/{test_task.uid}/comments",
            json={"content": "Looks good"},
            headers=get_auth_headers(test_user),
        )
        assert resp.status_code == 201
        comment = resp.json()
        assert comment["content"] == "Looks good"
        assert comment["user_uid"] == test_user.uid

        events = broadcaster.events("new_comment_added")
        assert events == [{
            "comment_uid": comment["uid"],
            "task_uid": test_task.uid,
            "user_uid": test_user.uid,
            "content": "Looks good",
            "created_at": events[0]["created_at"],
        }]
        assert broadcaster.direct == []

    async def test_mention_creates_notification(
        self, client: AsyncClient, test_user, other_user, test_task, db_session, broadcaster,
    ):
        resp = await client.post(
            f"/api/tasks/{test_task.uid}/comments",
            json={"content": "@other can you check?", "mentions": [other_user.uid, test_user.uid, "ghost"]},
            headers=get_auth_headers(test_user),
        )
        assert resp.status_code == 201

        notifs = (await db_session.execute(select(Notification))).scalars().all()
        assert [n.user_uid for n in notifs] == [other_user.uid]
        assert notifs[0].notification_type == "mention"
        assert "Test User" in notifs[0].content

        assert len(broadcaster.direct) == 1
        sent = broadcaster.direct[0]
        assert sent["uid"] == other_user.uid
        assert sent["type"] == "notification_created"
        assert sent["data"]["uid"] == notifs[0].uid
        assert sent["data"]["is_read"] is False

    async def test_comments_newest_first(self, client: AsyncClient, test_user, test_task):
        headers = get_auth_headers(test_user)
        for text in ("first", "second"):
            resp = await client.post(f"/api/tasks/{test_task.uid}/comments", json={"content": text}, headers=headers)
            assert resp.status_code == 201
        resp = await client.get(f"/api/tasks/{test_task.uid}/comments", headers=headers)
        assert [c["content"] for c in resp.json()] == ["second", "first"]

    async def test_comment_on_unknown_task(self, client: AsyncClient, test_user, broadcaster):
        resp = await client.post("/api/tasks/nope/comments", json={"content": "hi"},
                                 headers=get_auth_headers(test_user))
        assert resp.status_code == 404
        assert broadcaster.published == []

    async def test_empty_comment_rejected(self, client: AsyncClient, test_user, test_task):
        resp = await client.post(f"/api/tasks/{test_task.uid}/comments", json={"content": ""},
                                 headers=get_auth_headers(test_user))
        assert resp.status_code == 400
        assert resp.json()["code"] == "missing_field"

    async def test_deleting_task_removes_comments(self, client: AsyncClient, test_user, test_task, db_session):
        headers = get_auth_headers(test_user)
        await client.post(f"/api/tasks/{test_task.uid}/comments", json={"content": "bye"}, headers=headers)
        await client.delete(f"/api/tasks/{test_task.uid}", headers=headers)
        remaining = (await db_session.execute(select(Task).where(Task.uid == test_task.uid))).scalar_one_or_none()
        assert remaining is None
