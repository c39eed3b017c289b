# routers/tasks.py — Task cards, status changes, comments
import logging
from datetime import date, datetime
from typing import Optional, List, Any, Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from auth import get_current_user, CurrentUser
from broadcaster import (
    ConnectionManager, get_broadcaster, task_topic, project_topic,
    TASK_STATUS_UPDATED, NEW_COMMENT_ADDED, NOTIFICATION_CREATED,
)
from database import get_db_session
from errors import NotFound
from models import (
    Project, Task, Comment, ActivityFeed, Notification, User,
    DEFAULT_TASK_STATUS, utcnow,
)
from routers.notifications import NotificationOut

router = APIRouter(prefix="/api/tasks", tags=["Tasks"])
logger = logging.getLogger("taskboard.tasks")


# ============================================================
# SCHEMAS
# ============================================================

class TaskCreate(BaseModel):
    project_uid: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1, max_length=500)
    description: Optional[str] = None
    due_date: Optional[date] = None
    priority: Optional[str] = None
    status: str = Field(default=DEFAULT_TASK_STATUS, min_length=1, max_length=50)


class TaskUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=500)
    description: Optional[str] = None
    due_date: Optional[date] = None
    priority: Optional[str] = None


class StatusUpdate(BaseModel):
    status: str = Field(..., min_length=1, max_length=50)


class CommentCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=10000)
    mentions: Optional[List[str]] = None


class TaskOut(BaseModel):
    uid: str
    project_uid: str
    title: str
    description: Optional[str] = None
    due_date: Optional[date] = None
    priority: Optional[str] = None
    status: str
    created_by: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class CommentOut(BaseModel):
    uid: str
    task_uid: str
    user_uid: str
    content: str
    mentions: Optional[List[str]] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class ActivityOut(BaseModel):
    uid: str
    task_uid: str
    user_uid: str
    action: str
    details: Dict[str, Any] = {}
    created_at: datetime

    model_config = {"from_attributes": True}


class TaskDetailOut(TaskOut):
    comments: List[CommentOut] = []
    activity: List[ActivityOut] = []


# ============================================================
# HELPERS
# ============================================================

async def _get_task(db: AsyncSession, task_uid: str, not_found_status: int = 404) -> Task:
    result = await db.execute(select(Task).where(Task.uid == task_uid))
    task = result.scalar_one_or_none()
    if not task:
        raise NotFound("Task not found", status_code=not_found_status)
    return task


def _record_activity(db: AsyncSession, task_uid: str, user_uid: str, action: str,
                     details: dict, at: datetime):
    db.add(ActivityFeed(
        task_uid=task_uid,
        user_uid=user_uid,
        action=action,
        details=details,
        created_at=at,
    ))


def _topics(task: Task) -> list:
    return [task_topic(task.uid), project_topic(task.project_uid)]


# ============================================================
# TASK ENDPOINTS
# ============================================================

@router.post("", response_model=TaskOut, status_code=201)
async def create_task(
    data: TaskCreate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Create a task card under a project"""
    project = await db.execute(select(Project.uid).where(Project.uid == data.project_uid))
    if not project.scalar_one_or_none():
        raise NotFound("Project not found")

    now = utcnow()
    task = Task(
        project_uid=data.project_uid,
        title=data.title,
        description=data.description,
        due_date=data.due_date,
        priority=data.priority,
        status=data.status,
        created_by=user.uid,
        created_at=now,
        updated_at=now,
    )
    db.add(task)
    await db.flush()
    _record_activity(db, task.uid, user.uid, "created_task", {"title": task.title, "status": task.status}, now)
    await db.commit()
    return task


@router.get("/{task_uid}", response_model=TaskDetailOut)
async def get_task(
    task_uid: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Task with its comments and activity, newest first"""
    stmt = (
        select(Task)
        .where(Task.uid == task_uid)
        .options(selectinload(Task.comments), selectinload(Task.activity))
    )
    result = await db.execute(stmt)
    task = result.scalar_one_or_none()
    if not task:
        raise NotFound("Task not found")
    return task


@router.patch("/{task_uid}", response_model=TaskOut)
async def update_task(
    task_uid: str,
    data: TaskUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Update task details (status has its own endpoint)"""
    task = await _get_task(db, task_uid)

    changes = {}
    for field_name in ("title", "description", "due_date", "priority"):
        new = getattr(data, field_name)
        if new is None:
            continue
        old = getattr(task, field_name)
        if new != old:
            changes[field_name] = {
                "from": old.isoformat() if isinstance(old, date) else old,
                "to": new.isoformat() if isinstance(new, date) else new,
            }
            setattr(task, field_name, new)

    if changes:
        now = utcnow()
        task.updated_at = now
        _record_activity(db, task.uid, user.uid, "updated_task", changes, now)
        await db.commit()
    return task


@router.delete("/{task_uid}")
async def delete_task(
    task_uid: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Delete a task together with its comments and activity"""
    task = await _get_task(db, task_uid)
    await db.delete(task)
    await db.commit()
    logger.info(f"Task {task_uid[:8]} deleted by user={user.uid[:8]}")
    return {"status": "deleted", "task_uid": task_uid}


@router.patch("/{task_uid}/status", response_model=TaskOut)
async def update_task_status(
    task_uid: str,
    data: StatusUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    broadcaster: ConnectionManager = Depends(get_broadcaster),
):
    """Move a task to a new status (Kanban drag-and-drop).

    The status write and its activity row commit together; the
    task_status_updated event goes out only after the commit.
    """
    task = await _get_task(db, task_uid, not_found_status=400)

    previous = task.status
    now = utcnow()
    task.status = data.status
    task.updated_at = now
    _record_activity(db, task.uid, user.uid, "updated_status", {"from": previous, "to": data.status}, now)
    await db.commit()

    await broadcaster.publish(
        TASK_STATUS_UPDATED,
        {"task_uid": task.uid, "status": data.status, "updated_at": now.isoformat()},
        topics=_topics(task),
    )
    return task


# ============================================================
# COMMENT ENDPOINTS
# ============================================================

@router.get("/{task_uid}/comments", response_model=List[CommentOut])
async def list_comments(
    task_uid: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await _get_task(db, task_uid)
    result = await db.execute(
        select(Comment)
        .where(Comment.task_uid == task_uid)
        .order_by(Comment.created_at.desc())
    )
    return result.scalars().all()


@router.post("/{task_uid}/comments", response_model=CommentOut, status_code=201)
async def add_comment(
    task_uid: str,
    data: CommentCreate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    broadcaster: ConnectionManager = Depends(get_broadcaster),
):
    """Add a comment; mentioned users also get a notification"""
    task = await _get_task(db, task_uid)

    now = utcnow()
    comment = Comment(
        task_uid=task.uid,
        user_uid=user.uid,
        content=data.content,
        mentions=data.mentions or None,
        created_at=now,
    )
    db.add(comment)

    notifications = []
    mentioned = [uid for uid in dict.fromkeys(data.mentions or []) if uid != user.uid]
    if mentioned:
        users = await db.execute(select(User.uid).where(User.uid.in_(mentioned)))
        author = await db.execute(select(User.name).where(User.uid == user.uid))
        author_name = author.scalar_one_or_none() or "Someone"
        for uid in users.scalars().all():
            notif = Notification(
                user_uid=uid,
                notification_type="mention",
                content=f'{author_name} mentioned you on "{task.title}"',
                is_read=False,
                created_at=now,
            )
            db.add(notif)
            notifications.append(notif)

    await db.commit()

    await broadcaster.publish(
        NEW_COMMENT_ADDED,
        {
            "comment_uid": comment.uid,
            "task_uid": task.uid,
            "user_uid": user.uid,
            "content": comment.content,
            "created_at": now.isoformat(),
        },
        topics=_topics(task),
    )
    for notif in notifications:
        await broadcaster.send_to_user(
            notif.user_uid,
            NOTIFICATION_CREATED,
            NotificationOut.model_validate(notif).model_dump(mode="json"),
        )
    return comment
