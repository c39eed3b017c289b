# routers/dashboard.py — Project summary and recent activity
from typing import List

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy import select, func, case
from sqlalchemy.ext.asyncio import AsyncSession

from auth import get_current_user, CurrentUser
from database import get_db_session
from models import Project, Task, ActivityFeed
from routers.projects import ProjectOut
from routers.tasks import ActivityOut

router = APIRouter(prefix="/api", tags=["Dashboard"])

DONE_STATUSES = ("done", "completed")


class ProjectSummary(ProjectOut):
    task_count: int = 0
    completed_count: int = 0


class DashboardOut(BaseModel):
    projects: List[ProjectSummary]
    recent_activities: List[ActivityOut]


@router.get("/dashboard-data", response_model=DashboardOut)
async def dashboard_data(
    activity_limit: int = Query(default=20, ge=1, le=100),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    projects = (await db.execute(
        select(Project).order_by(Project.created_at.desc())
    )).scalars().all()

    counts_stmt = (
        select(
            Task.project_uid,
            func.count(Task.uid),
            func.sum(case((Task.status.in_(DONE_STATUSES), 1), else_=0)),
        )
        .group_by(Task.project_uid)
    )
    counts = {
        project_uid: (total or 0, done or 0)
        for project_uid, total, done in (await db.execute(counts_stmt)).all()
    }

    activities = (await db.execute(
        select(ActivityFeed).order_by(ActivityFeed.created_at.desc()).limit(activity_limit)
    )).scalars().all()

    summaries = []
    for p in projects:
        total, done = counts.get(p.uid, (0, 0))
        summaries.append(ProjectSummary(
            **ProjectOut.model_validate(p).model_dump(),
            task_count=total,
            completed_count=done,
        ))

    return DashboardOut(
        projects=summaries,
        recent_activities=[ActivityOut.model_validate(a) for a in activities],
    )
