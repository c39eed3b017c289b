# routers/team.py — Team roster management (admins and managers)
from datetime import datetime
from typing import Optional, List

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from auth import get_current_user, require_role, CurrentUser
from database import get_db_session
from errors import NotFound
from models import TeamMember, User, MANAGER_ROLES, utcnow

router = APIRouter(prefix="/api/team", tags=["Team"])


# --- Schemas ---

class MemberCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    role: str = Field(default="member", min_length=1, max_length=50)
    avatar_url: Optional[str] = None
    user_uid: Optional[str] = None


class MemberUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    role: Optional[str] = Field(None, min_length=1, max_length=50)
    avatar_url: Optional[str] = None


class MemberOut(BaseModel):
    uid: str
    name: str
    role: str
    avatar_url: Optional[str] = None
    user_uid: Optional[str] = None
    added_by: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


async def _get_member(db: AsyncSession, member_uid: str) -> TeamMember:
    result = await db.execute(select(TeamMember).where(TeamMember.uid == member_uid))
    member = result.scalar_one_or_none()
    if not member:
        raise NotFound("Team member not found")
    return member


# --- Endpoints ---

@router.get("/members", response_model=List[MemberOut])
async def list_members(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    result = await db.execute(select(TeamMember).order_by(TeamMember.created_at.asc()))
    return result.scalars().all()


@router.post("/members", response_model=MemberOut, status_code=201)
async def add_member(
    data: MemberCreate,
    user: CurrentUser = Depends(require_role(*MANAGER_ROLES)),
    db: AsyncSession = Depends(get_db_session),
):
    if data.user_uid:
        linked = await db.execute(select(User.uid).where(User.uid == data.user_uid))
        if not linked.scalar_one_or_none():
            raise NotFound("Linked user not found")

    now = utcnow()
    member = TeamMember(
        name=data.name,
        role=data.role,
        avatar_url=data.avatar_url,
        user_uid=data.user_uid,
        added_by=user.uid,
        created_at=now,
        updated_at=now,
    )
    db.add(member)
    await db.commit()
    return member


@router.put("/members/{member_uid}", response_model=MemberOut)
async def update_member(
    member_uid: str,
    data: MemberUpdate,
    user: CurrentUser = Depends(require_role(*MANAGER_ROLES)),
    db: AsyncSession = Depends(get_db_session),
):
    member = await _get_member(db, member_uid)
    if data.name is not None:
        member.name = data.name
    if data.role is not None:
        member.role = data.role
    if data.avatar_url is not None:
        member.avatar_url = data.avatar_url or None
    member.updated_at = utcnow()
    await db.commit()
    return member


@router.delete("/members/{member_uid}")
async def remove_member(
    member_uid: str,
    user: CurrentUser = Depends(require_role(*MANAGER_ROLES)),
    db: AsyncSession = Depends(get_db_session),
):
    member = await _get_member(db, member_uid)
    await db.delete(member)
    await db.commit()
    return {"status": "deleted", "member_uid": member_uid}
