# routers/users.py — Registration and profile management
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from auth import AuthService, UserRegister, CurrentUser, get_current_user
from database import get_db_session
from errors import DuplicateEmail, Forbidden, NotFound
from models import User, utcnow

router = APIRouter(prefix="/api/users", tags=["Users"])


# --- Schemas ---

class UserOut(BaseModel):
    uid: str
    name: str
    email: str
    role: str
    avatar_url: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class RegisteredUserOut(UserOut):
    token: str


class UserUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    email: Optional[EmailStr] = None
    avatar_url: Optional[str] = None
    password: Optional[str] = Field(None, min_length=1, max_length=72)


# --- Helpers ---

async def _get_user(db: AsyncSession, uid: str) -> User:
    result = await db.execute(select(User).where(User.uid == uid))
    user = result.scalar_one_or_none()
    if not user:
        raise NotFound("User not found")
    return user


# --- Endpoints ---

@router.post("", response_model=RegisteredUserOut, status_code=201)
async def register(
    user_data: UserRegister,
    db: AsyncSession = Depends(get_db_session),
):
    """Register a new user account and return it with a fresh token"""
    user = await AuthService.register_user(user_data, db)
    token = AuthService.issue_token(user.uid, user.role)
    return RegisteredUserOut(**UserOut.model_validate(user).model_dump(), token=token)


@router.get("/me", response_model=UserOut)
async def get_me(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    return await _get_user(db, user.uid)


@router.get("/{uid}", response_model=UserOut)
async def get_user(
    uid: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    return await _get_user(db, uid)


@router.put("/{uid}", response_model=UserOut)
async def update_user(
    uid: str,
    data: UserUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Update a profile. Users edit themselves; admins may edit anyone."""
    if uid != user.uid and user.role.lower() != "admin":
        raise Forbidden("You can only update your own profile")

    target = await _get_user(db, uid)

    if data.email is not None and data.email != target.email:
        dupe = await db.execute(select(User.uid).where(User.email == data.email))
        if dupe.scalar_one_or_none():
            raise DuplicateEmail()
        target.email = data.email
    if data.name is not None:
        target.name = data.name
    if data.avatar_url is not None:
        target.avatar_url = data.avatar_url or None
    if data.password:
        target.password_hash = AuthService.hash_password(data.password)

    target.updated_at = utcnow()
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise DuplicateEmail()
    await db.refresh(target)
    return target
