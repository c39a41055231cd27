"""Read access to tasks, subtasks and their scope entities for reporting."""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Protocol, Sequence, Union

from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from .aggregation import SCOPE_DEPARTMENT, SCOPE_PROJECT, SCOPE_USER, DateRange
from .errors import StoreError
from .models import Project, Subtask, Task, User

logger = logging.getLogger(__name__)

WorkItemRecord = Union[Task, Subtask]


@dataclass(frozen=True)
class ScopeEntity:
    kind: str
    identifier: str
    display_name: str
    owner_name: Optional[str] = None


@dataclass(frozen=True)
class ScopeFilter:
    kind: str
    identifier: str
    date_range: Optional[DateRange] = None


@dataclass(frozen=True)
class UserRecord:
    id: int
    username: str
    display_name: str
    department: str


class ReportStore(Protocol):
    def find_scope_entity(self, kind: str, identifier: str) -> Optional[ScopeEntity]:
        ...

    def find_work_items(self, scope_filter: ScopeFilter) -> List[WorkItemRecord]:
        ...

    def find_subtasks(self, parent_task_ids: Sequence[int]) -> List[Subtask]:
        ...

    def resolve_user(self, user_id: int) -> Optional[UserRecord]:
        ...


def _to_int(identifier: str) -> Optional[int]:
    try:
        return int(str(identifier).strip())
    except (TypeError, ValueError):
        return None


def _utc_naive(value: dt.datetime) -> dt.datetime:
    # sqlite keeps naive UTC wall times
    return value.astimezone(dt.timezone.utc).replace(tzinfo=None)


class SqlReportStore:
    """``ReportStore`` backed by a SQLAlchemy session."""

    def __init__(self, db: Session):
        self.db = db

    def find_scope_entity(self, kind: str, identifier: str) -> Optional[ScopeEntity]:
        try:
            if kind == SCOPE_PROJECT:
                project_id = _to_int(identifier)
                if project_id is None:
                    return None
                project = self.db.query(Project).filter(Project.id == project_id).one_or_none()
                if not project:
                    return None
                owner = project.owner.username if project.owner else None
                return ScopeEntity(kind, str(project.id), project.name, owner)
            if kind == SCOPE_USER:
                user_id = _to_int(identifier)
                if user_id is None:
                    return None
                user = self.db.query(User).filter(User.id == user_id).one_or_none()
                if not user:
                    return None
                return ScopeEntity(kind, str(user.id), user.display_name or user.username)
            if kind == SCOPE_DEPARTMENT:
                name = str(identifier).strip()
                if not name:
                    return None
                member = (
                    self.db.query(User)
                    .filter(func.lower(func.trim(User.department)) == name.lower())
                    .first()
                )
                if not member:
                    return None
                return ScopeEntity(kind, name, member.department.strip())
        except SQLAlchemyError as exc:
            logger.exception("Scope lookup failed for %s %s", kind, identifier)
            raise StoreError("Failed to look up report scope") from exc
        raise ValueError(f"Unsupported scope kind: {kind}")

    def find_work_items(self, scope_filter: ScopeFilter) -> List[WorkItemRecord]:
        try:
            tasks = self._scoped_query(Task, scope_filter).all()
            subtasks = self._scoped_query(Subtask, scope_filter).all()
        except SQLAlchemyError as exc:
            logger.exception("Work item query failed for %s", scope_filter)
            raise StoreError("Failed to load work items") from exc
        return [*tasks, *subtasks]

    def find_subtasks(self, parent_task_ids: Sequence[int]) -> List[Subtask]:
        if not parent_task_ids:
            return []
        try:
            return (
                self.db.query(Subtask)
                .options(selectinload(Subtask.assignees), selectinload(Subtask.project))
                .filter(Subtask.parent_task_id.in_(list(parent_task_ids)))
                .order_by(Subtask.id.asc())
                .all()
            )
        except SQLAlchemyError as exc:
            logger.exception("Subtask query failed")
            raise StoreError("Failed to load subtasks") from exc

    def resolve_user(self, user_id: int) -> Optional[UserRecord]:
        try:
            user = self.db.query(User).filter(User.id == user_id).one_or_none()
        except SQLAlchemyError as exc:
            logger.exception("User lookup failed for %s", user_id)
            raise StoreError("Failed to resolve user") from exc
        if not user:
            return None
        return UserRecord(
            id=user.id,
            username=user.username,
            display_name=user.display_name or user.username,
            department=user.department or "",
        )

    def _scoped_query(self, model, scope_filter: ScopeFilter):
        assignees = model.assignees
        query = self.db.query(model).options(selectinload(model.assignees), selectinload(model.project))
        query = query.filter(model.archived.is_(False))
        if scope_filter.kind == SCOPE_PROJECT:
            query = query.filter(model.project_id == _to_int(scope_filter.identifier))
        elif scope_filter.kind == SCOPE_USER:
            user_id = _to_int(scope_filter.identifier)
            query = query.filter(or_(model.owner_id == user_id, assignees.any(User.id == user_id)))
        elif scope_filter.kind == SCOPE_DEPARTMENT:
            member_ids = self._department_member_ids(scope_filter.identifier)
            query = query.filter(
                or_(model.owner_id.in_(member_ids), assignees.any(User.id.in_(member_ids)))
            )
        else:
            raise ValueError(f"Unsupported scope kind: {scope_filter.kind}")
        if scope_filter.date_range is not None:
            query = query.filter(
                model.created_at >= _utc_naive(scope_filter.date_range.start_at),
                model.created_at <= _utc_naive(scope_filter.date_range.end_at),
            )
        return query.order_by(model.created_at.desc(), model.id.asc())

    def _department_member_ids(self, department: str) -> List[int]:
        name = str(department).strip().lower()
        rows: Iterable = (
            self.db.query(User.id).filter(func.lower(func.trim(User.department)) == name).all()
        )
        return [row[0] for row in rows]
