from __future__ import annotations

import datetime as dt

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Table,
    Text,
)
from sqlalchemy.dialects.sqlite import JSON as SQLiteJSON
from sqlalchemy.orm import declarative_base, relationship, validates

from .duration import check_minutes

Base = declarative_base()


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


UTC = dt.timezone.utc

TASK_STATUSES = ("To Do", "In Progress", "Completed", "Blocked", "Archived")
MAX_ASSIGNEES = 5
MIN_PRIORITY = 1
MAX_PRIORITY = 10


def _as_utc(value: dt.datetime) -> dt.datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


task_assignees = Table(
    "task_assignees",
    Base.metadata,
    Column("task_id", Integer, ForeignKey("tasks.id"), primary_key=True),
    Column("user_id", Integer, ForeignKey("users.id"), primary_key=True),
)

subtask_assignees = Table(
    "subtask_assignees",
    Base.metadata,
    Column("subtask_id", Integer, ForeignKey("subtasks.id"), primary_key=True),
    Column("user_id", Integer, ForeignKey("users.id"), primary_key=True),
)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(150), nullable=False, unique=True)
    display_name = Column(String(150), nullable=True)
    department = Column(String(100), nullable=True, index=True)
    roles = Column(SQLiteJSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class Project(Base):
    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    owner = relationship("User")


class _TimedItem:
    """Shared validation for the time and status fields of tasks and subtasks."""

    @validates("time_taken")
    def _validate_time_taken(self, key, value):
        return check_minutes(value)

    @validates("status")
    def _validate_status(self, key, value):
        if value not in TASK_STATUSES:
            raise ValueError(f"Unsupported status: {value}")
        return value

    @validates("priority")
    def _validate_priority(self, key, value):
        if isinstance(value, bool) or not isinstance(value, int) or not MIN_PRIORITY <= value <= MAX_PRIORITY:
            raise ValueError(f"Priority must be between {MIN_PRIORITY} and {MAX_PRIORITY}")
        return value

    @validates("created_at", "archived_at")
    def _normalize_timestamp(self, key, value):
        return _as_utc(value) if value is not None else None

    def mark_archived(self, now: dt.datetime) -> None:
        if self.archived:
            return
        self.archived = True
        self.archived_at = _as_utc(now)

    def mark_unarchived(self) -> None:
        self.archived = False
        self.archived_at = None


class Task(_TimedItem, Base):
    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False, default="")
    priority = Column(Integer, nullable=False, default=5)
    status = Column(String(20), nullable=False, default="To Do", index=True)
    tags = Column(String(200), nullable=False, default="")
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=False, index=True)
    due_date = Column(Date, nullable=True)
    archived = Column(Boolean, nullable=False, default=False, index=True)
    archived_at = Column(DateTime(timezone=True), nullable=True)
    time_taken = Column(Integer, nullable=True)  # minutes
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    owner = relationship("User", foreign_keys=[owner_id])
    project = relationship("Project")
    assignees = relationship("User", secondary=task_assignees, order_by="User.id")
    subtasks = relationship("Subtask", back_populates="parent_task", order_by="Subtask.id")


class Subtask(_TimedItem, Base):
    __tablename__ = "subtasks"

    id = Column(Integer, primary_key=True, index=True)
    parent_task_id = Column(Integer, ForeignKey("tasks.id"), nullable=False, index=True)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False, default="")
    priority = Column(Integer, nullable=False, default=5)
    status = Column(String(20), nullable=False, default="To Do", index=True)
    tags = Column(String(200), nullable=False, default="")
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    due_date = Column(Date, nullable=True)
    archived = Column(Boolean, nullable=False, default=False, index=True)
    archived_at = Column(DateTime(timezone=True), nullable=True)
    time_taken = Column(Integer, nullable=True)  # minutes
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    parent_task = relationship("Task", back_populates="subtasks")
    owner = relationship("User", foreign_keys=[owner_id])
    project = relationship("Project")
    assignees = relationship("User", secondary=subtask_assignees, order_by="User.id")
