# routers/auth.py — Login endpoint
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from auth import AuthService, UserLogin, LoginResponse
from database import get_db_session

router = APIRouter(prefix="/api/auth", tags=["Authentication"])


@router.post("/login", response_model=LoginResponse)
async def login(
    credentials: UserLogin,
    db: AsyncSession = Depends(get_db_session),
):
    """Authenticate and receive a bearer token"""
    user = await AuthService.authenticate_user(credentials.email, credentials.password, db)
    token = AuthService.issue_token(user.uid, user.role)
    return LoginResponse(token=token, uid=user.uid, role=user.role)
