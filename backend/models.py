# models.py — Database models for Taskboard
# - String UUID primary keys (column name "uid")
# - Free-form role and task status strings
# - Append-only activity feed for task mutations
# - Per-user notifications, team roster

import uuid
from datetime import datetime, timezone
from sqlalchemy import (
    Column, String, Date, DateTime, JSON, Boolean, ForeignKey, Text, Index,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def utcnow():
    return datetime.now(timezone.utc)


def new_uuid():
    return str(uuid.uuid4())


# Statuses observed on the Kanban board. The column stays a plain string so
# clients may introduce their own.
TASK_STATUSES = ("to_do", "in_progress", "done", "completed")
DEFAULT_TASK_STATUS = "to_do"
DEFAULT_PROJECT_STATUS = "active"

# Roles allowed to manage the team roster
MANAGER_ROLES = ("admin", "manager")


# ============================================================
# USERS
# ============================================================

class User(Base):
    __tablename__ = "users"

    uid = Column(String, primary_key=True, default=new_uuid)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, nullable=False, index=True)
    password_hash = Column(String, nullable=False)
    role = Column(String, nullable=False, default="member", index=True)
    avatar_url = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    notifications = relationship("Notification", back_populates="user", cascade="all, delete-orphan")


# ============================================================
# PROJECTS & TASKS
# ============================================================

class Project(Base):
    __tablename__ = "projects"

    uid = Column(String, primary_key=True, default=new_uuid)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    due_date = Column(Date, nullable=False)
    priority = Column(String, nullable=False)
    status = Column(String, nullable=False, default=DEFAULT_PROJECT_STATUS, index=True)
    milestones = Column(JSON, nullable=True)
    created_by = Column(String, ForeignKey("users.uid"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    tasks = relationship("Task", back_populates="project", cascade="all, delete-orphan")


class Task(Base):
    """Card on a project's Kanban board"""
    __tablename__ = "tasks"

    uid = Column(String, primary_key=True, default=new_uuid)
    project_uid = Column(String, ForeignKey("projects.uid", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    due_date = Column(Date, nullable=True)
    priority = Column(String, nullable=True)
    status = Column(String, nullable=False, default=DEFAULT_TASK_STATUS, index=True)
    created_by = Column(String, ForeignKey("users.uid"), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    project = relationship("Project", back_populates="tasks")
    comments = relationship(
        "Comment", back_populates="task", cascade="all, delete-orphan",
        order_by="Comment.created_at.desc()",
    )
    activity = relationship(
        "ActivityFeed", back_populates="task", cascade="all, delete-orphan",
        order_by="ActivityFeed.created_at.desc()",
    )

    __table_args__ = (
        Index("idx_task_project_status", "project_uid", "status"),
    )


class Comment(Base):
    """Comment on a task. Never edited after creation."""
    __tablename__ = "comments"

    uid = Column(String, primary_key=True, default=new_uuid)
    task_uid = Column(String, ForeignKey("tasks.uid", ondelete="CASCADE"), nullable=False, index=True)
    user_uid = Column(String, ForeignKey("users.uid"), nullable=False)
    content = Column(Text, nullable=False)
    mentions = Column(JSON, nullable=True)  # list of user uids
    created_at = Column(DateTime(timezone=True), default=utcnow)

    task = relationship("Task", back_populates="comments")


# ============================================================
# ACTIVITY FEED (Append-only — never update or delete)
# ============================================================

class ActivityFeed(Base):
    __tablename__ = "activity_feed"

    uid = Column(String, primary_key=True, default=new_uuid)
    task_uid = Column(String, ForeignKey("tasks.uid", ondelete="CASCADE"), nullable=False, index=True)
    user_uid = Column(String, ForeignKey("users.uid"), nullable=False)
    action = Column(String, nullable=False)  # "updated_status", "updated_task", "created_task"
    details = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)

    task = relationship("Task", back_populates="activity")

    __table_args__ = (
        Index("idx_activity_task_time", "task_uid", "created_at"),
    )


# ============================================================
# NOTIFICATIONS
# ============================================================

class Notification(Base):
    __tablename__ = "notifications"

    uid = Column(String, primary_key=True, default=new_uuid)
    user_uid = Column(String, ForeignKey("users.uid"), nullable=False, index=True)
    notification_type = Column(String, nullable=False)
    content = Column(Text, nullable=False)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)

    user = relationship("User", back_populates="notifications")

    __table_args__ = (
        Index("idx_notification_user_time", "user_uid", "created_at"),
    )


# ============================================================
# TEAM
# ============================================================

class TeamMember(Base):
    __tablename__ = "team_members"

    uid = Column(String, primary_key=True, default=new_uuid)
    name = Column(String, nullable=False)
    role = Column(String, nullable=False, default="member")
    avatar_url = Column(String, nullable=True)
    user_uid = Column(String, ForeignKey("users.uid"), nullable=True, index=True)
    added_by = Column(String, ForeignKey("users.uid"), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
