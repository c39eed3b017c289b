# routers/projects.py — Projects and their task lists
from datetime import date, datetime
from typing import Optional, List, Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from auth import get_current_user, CurrentUser
from database import get_db_session
from errors import NotFound
from models import Project, Task, DEFAULT_PROJECT_STATUS, utcnow
from routers.tasks import TaskOut

router = APIRouter(prefix="/api/projects", tags=["Projects"])


# --- Schemas ---

class ProjectCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    due_date: date
    priority: str = Field(..., min_length=1, max_length=50)
    milestones: Optional[List[Any]] = None


class ProjectUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, min_length=1)
    due_date: Optional[date] = None
    priority: Optional[str] = Field(None, min_length=1, max_length=50)
    status: Optional[str] = Field(None, min_length=1, max_length=50)
    milestones: Optional[List[Any]] = None


class ProjectOut(BaseModel):
    uid: str
    title: str
    description: str
    due_date: date
    priority: str
    status: str
    milestones: Optional[List[Any]] = None
    created_by: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


# --- Helpers ---

async def _get_project(db: AsyncSession, project_uid: str) -> Project:
    result = await db.execute(select(Project).where(Project.uid == project_uid))
    project = result.scalar_one_or_none()
    if not project:
        raise NotFound("Project not found")
    return project


# --- Endpoints ---

@router.post("", response_model=ProjectOut, status_code=201)
async def create_project(
    data: ProjectCreate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Create a project owned by the caller; status starts as active"""
    now = utcnow()
    project = Project(
        title=data.title,
        description=data.description,
        due_date=data.due_date,
        priority=data.priority,
        status=DEFAULT_PROJECT_STATUS,
        milestones=data.milestones,
        created_by=user.uid,
        created_at=now,
        updated_at=now,
    )
    db.add(project)
    await db.commit()
    return project


@router.get("", response_model=List[ProjectOut])
async def list_projects(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    result = await db.execute(select(Project).order_by(Project.created_at.desc()))
    return result.scalars().all()


@router.get("/{project_uid}", response_model=ProjectOut)
async def get_project(
    project_uid: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    return await _get_project(db, project_uid)


@router.patch("/{project_uid}", response_model=ProjectOut)
async def update_project(
    project_uid: str,
    data: ProjectUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    project = await _get_project(db, project_uid)
    changes = data.model_dump(exclude_unset=True, exclude_none=True)
    for field_name, value in changes.items():
        setattr(project, field_name, value)
    if changes:
        project.updated_at = utcnow()
        await db.commit()
    return project


@router.get("/{project_uid}/tasks", response_model=List[TaskOut])
async def list_project_tasks(
    project_uid: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Tasks on the project's board, oldest first"""
    await _get_project(db, project_uid)
    result = await db.execute(
        select(Task)
        .where(Task.project_uid == project_uid)
        .order_by(Task.created_at.asc())
    )
    return result.scalars().all()
