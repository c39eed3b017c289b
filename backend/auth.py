# auth.py — Token service & authentication for Taskboard
# Features:
# - Signed HS256 bearer tokens carrying {uid, role}, 24h expiry
# - Distinguishable missing / invalid / expired token failures
# - bcrypt password hashing
# - Login that costs one bcrypt comparison whether or not the email exists
# - Role gate dependency for team management

import os
import secrets
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any

import bcrypt
from jose import jwt, JWTError, ExpiredSignatureError
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from errors import (
    DuplicateEmail, InvalidCredentials, Forbidden,
    token_missing, token_expired, token_invalid,
)
from models import User, utcnow

logger = logging.getLogger("taskboard.auth")

# ============================================================
# CONFIGURATION
# ============================================================

SECRET_KEY = os.getenv("JWT_SECRET_KEY", "")
if not SECRET_KEY:
    SECRET_KEY = secrets.token_urlsafe(64)
    logger.warning(
        "⚠️  JWT_SECRET_KEY not set. Generated ephemeral key; tokens will not "
        "survive a restart. Set JWT_SECRET_KEY in production!"
    )

ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_HOURS = int(os.getenv("ACCESS_TOKEN_EXPIRE_HOURS", "24"))
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

security = HTTPBearer(auto_error=False)


# ============================================================
# PYDANTIC SCHEMAS
# ============================================================

class UserRegister(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=72)
    role: str = Field(..., min_length=1, max_length=50)
    avatar_url: Optional[str] = None


class UserLogin(BaseModel):
    # Same normalisation as registration so the stored spelling matches
    email: EmailStr
    password: str = Field(..., min_length=1)


class LoginResponse(BaseModel):
    token: str
    uid: str
    role: str


class TokenClaims(BaseModel):
    uid: str
    role: str


class CurrentUser(TokenClaims):
    pass


# ============================================================
# TOKEN ERRORS
# ============================================================

class TokenError(Exception):
    """Token could not be verified"""


class TokenExpired(TokenError):
    pass


class TokenInvalid(TokenError):
    pass


# ============================================================
# AUTH SERVICE
# ============================================================

class AuthService:
    """Token issuing/verification and credential checks"""

    @staticmethod
    def hash_password(password: str) -> str:
        salt = bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
        return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")

    @staticmethod
    def verify_password(password: str, password_hash: str) -> bool:
        try:
            return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
        except ValueError:
            # Malformed stored hash or over-long password
            return False

    @staticmethod
    def issue_token(uid: str, role: str, expires_delta: Optional[timedelta] = None) -> str:
        now = datetime.now(timezone.utc)
        to_encode: Dict[str, Any] = {
            "sub": uid,
            "uid": uid,
            "role": role,
            "type": "access",
            "iat": now,
            "exp": now + (expires_delta or timedelta(hours=ACCESS_TOKEN_EXPIRE_HOURS)),
        }
        return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)

    @staticmethod
    def verify_token(token: str) -> TokenClaims:
        try:
            payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        except ExpiredSignatureError:
            raise TokenExpired("Token expired")
        except JWTError:
            raise TokenInvalid("Invalid token")

        if payload.get("type") != "access":
            raise TokenInvalid("Invalid token type")
        uid = payload.get("uid")
        role = payload.get("role")
        if not uid or role is None:
            raise TokenInvalid("Token is missing identity claims")
        return TokenClaims(uid=uid, role=role)

    @staticmethod
    async def register_user(user_data: UserRegister, db: AsyncSession) -> User:
        stmt = select(User).where(User.email == user_data.email)
        result = await db.execute(stmt)
        if result.scalar_one_or_none():
            raise DuplicateEmail()

        now = utcnow()
        user = User(
            name=user_data.name,
            email=user_data.email,
            password_hash=AuthService.hash_password(user_data.password),
            role=user_data.role,
            avatar_url=user_data.avatar_url,
            created_at=now,
            updated_at=now,
        )
        db.add(user)
        try:
            await db.commit()
        except IntegrityError:
            # Another registration for this email committed after our check
            await db.rollback()
            raise DuplicateEmail()
        await db.refresh(user)
        logger.info(f"Registered user uid={user.uid[:8]} role={user.role}")
        return user

    @staticmethod
    async def authenticate_user(email: str, password: str, db: AsyncSession) -> User:
        stmt = select(User).where(User.email == email)
        result = await db.execute(stmt)
        user = result.scalar_one_or_none()

        if user is None:
            # Same bcrypt cost as a real comparison
            AuthService.verify_password(password, _DUMMY_HASH)
            raise InvalidCredentials()
        if not AuthService.verify_password(password, user.password_hash):
            raise InvalidCredentials()
        return user


_DUMMY_HASH = AuthService.hash_password(secrets.token_urlsafe(16))


# ============================================================
# FASTAPI DEPENDENCIES
# ============================================================

def claims_from_token(token: Optional[str]) -> TokenClaims:
    """Verify a raw token, mapping failures onto distinguishable 401s"""
    if not token:
        raise token_missing()
    try:
        return AuthService.verify_token(token)
    except TokenExpired:
        raise token_expired()
    except TokenError:
        raise token_invalid()


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> CurrentUser:
    claims = claims_from_token(credentials.credentials if credentials else None)
    return CurrentUser(uid=claims.uid, role=claims.role)


def require_role(*roles: str):
    """Dependency factory: require user to have one of the specified roles"""
    async def _check(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if user.role.lower() not in roles:
            raise Forbidden()
        return user
    return _check
