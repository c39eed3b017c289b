# routers/notifications.py — Per-user notification inbox
from datetime import datetime

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy import select, func, update
from sqlalchemy.ext.asyncio import AsyncSession

from auth import get_current_user, CurrentUser
from database import get_db_session
from errors import NotFound
from models import Notification

router = APIRouter(prefix="/api/notifications", tags=["Notifications"])


# --- Schemas ---

class NotificationOut(BaseModel):
    uid: str
    user_uid: str
    notification_type: str
    content: str
    is_read: bool
    created_at: datetime

    model_config = {"from_attributes": True}


# ============================================================
# LIST
# ============================================================

@router.get("")
async def list_notifications(
    unread_only: bool = Query(default=False),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db_session),
    user: CurrentUser = Depends(get_current_user),
):
    """Notifications for the caller, newest first"""
    query = select(Notification).where(Notification.user_uid == user.uid)
    if unread_only:
        query = query.where(Notification.is_read.is_(False))
    query = query.order_by(Notification.created_at.desc()).offset(offset).limit(limit)
    result = await db.execute(query)
    return [NotificationOut.model_validate(n) for n in result.scalars().all()]


# ============================================================
# COUNT
# ============================================================

@router.get("/count")
async def notification_count(
    db: AsyncSession = Depends(get_db_session),
    user: CurrentUser = Depends(get_current_user),
):
    unread = (await db.execute(
        select(func.count(Notification.uid)).where(
            Notification.user_uid == user.uid,
            Notification.is_read.is_(False),
        )
    )).scalar() or 0
    return {"unread": unread}


# ============================================================
# MARK READ
# ============================================================

@router.post("/read-all")
async def mark_all_read(
    db: AsyncSession = Depends(get_db_session),
    user: CurrentUser = Depends(get_current_user),
):
    result = await db.execute(
        update(Notification)
        .where(Notification.user_uid == user.uid, Notification.is_read.is_(False))
        .values(is_read=True)
    )
    await db.commit()
    return {"marked": result.rowcount or 0}


@router.post("/{notification_uid}/read", response_model=NotificationOut)
async def mark_read(
    notification_uid: str,
    db: AsyncSession = Depends(get_db_session),
    user: CurrentUser = Depends(get_current_user),
):
    result = await db.execute(
        select(Notification).where(
            Notification.uid == notification_uid,
            Notification.user_uid == user.uid,
        )
    )
    notif = result.scalar_one_or_none()
    if not notif:
        raise NotFound("Notification not found")
    notif.is_read = True
    await db.commit()
    return notif
