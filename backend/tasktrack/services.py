from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .aggregation import hierarchy_breakdown
from .duration import format_duration, parse_duration
from .errors import InvalidWorkItem, StoreError, WorkItemNotFound
from .models import MAX_ASSIGNEES, Project, Subtask, Task, User
from .queries import UserDirectory, to_work_item
from .store import SqlReportStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TaskTimeSummary:
    task_id: int
    title: str
    own_minutes: int
    subtask_minutes: int
    subtask_count: int
    total_minutes: int

    @property
    def own_display(self) -> str:
        return format_duration(self.own_minutes)

    @property
    def subtask_display(self) -> str:
        return format_duration(self.subtask_minutes)

    @property
    def total_display(self) -> str:
        return format_duration(self.total_minutes)


def _commit(db: Session, item: Union[Task, Subtask]) -> None:
    try:
        db.add(item)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Saving %s failed", type(item).__name__.lower())
        raise StoreError("Failed to save work item") from exc
    db.refresh(item)


def _load_assignees(db: Session, assignee_ids: Iterable[int]) -> List[User]:
    ids = list(dict.fromkeys(assignee_ids))
    if len(ids) > MAX_ASSIGNEES:
        raise InvalidWorkItem(f"A work item can have at most {MAX_ASSIGNEES} assignees")
    if not ids:
        return []
    users = db.query(User).filter(User.id.in_(ids)).all()
    missing = set(ids) - {user.id for user in users}
    if missing:
        raise InvalidWorkItem(f"Unknown assignee ids: {', '.join(str(i) for i in sorted(missing))}")
    return sorted(users, key=lambda user: user.id)


def _set_time(db: Session, item: Union[Task, Subtask], time_text: Optional[str]) -> Union[Task, Subtask]:
    minutes = parse_duration(time_text)
    item.time_taken = minutes
    _commit(db, item)
    logger.info(
        "Logged %s on %s %s", format_duration(minutes), type(item).__name__.lower(), item.id
    )
    return item


def log_task_time(db: Session, task_id: int, time_text: Optional[str]) -> Task:
    """Replace the logged time of a task; the stored value is untouched on error."""
    task = db.get(Task, task_id)
    if not task:
        raise WorkItemNotFound("Task not found")
    return _set_time(db, task, time_text)


def log_subtask_time(db: Session, subtask_id: int, time_text: Optional[str]) -> Subtask:
    subtask = db.get(Subtask, subtask_id)
    if not subtask:
        raise WorkItemNotFound("Subtask not found")
    return _set_time(db, subtask, time_text)


def create_task(
    db: Session,
    title: str,
    owner_id: int,
    project_id: int,
    time_taken: Optional[str] = None,
    assignee_ids: Iterable[int] = (),
    description: str = "",
    priority: int = 5,
    status: str = "To Do",
    tags: str = "",
    due_date: Optional[dt.date] = None,
    created_at: Optional[dt.datetime] = None,
) -> Task:
    """Create a task. Time text is validated before anything is written."""
    minutes = parse_duration(time_taken)
    if not db.get(Project, project_id):
        raise WorkItemNotFound("Project not found")
    assignees = _load_assignees(db, assignee_ids)
    try:
        task = Task(
            title=title,
            description=description,
            priority=priority,
            status=status,
            tags=tags,
            owner_id=owner_id,
            project_id=project_id,
            due_date=due_date,
            time_taken=minutes,
        )
    except ValueError as exc:
        raise InvalidWorkItem(str(exc)) from exc
    if created_at is not None:
        task.created_at = created_at
    task.assignees = assignees
    _commit(db, task)
    logger.info("Created task %s in project %s", task.id, project_id)
    return task


def create_subtask(
    db: Session,
    parent_task_id: int,
    title: str,
    owner_id: int,
    time_taken: Optional[str] = None,
    assignee_ids: Iterable[int] = (),
    description: str = "",
    priority: int = 5,
    status: str = "To Do",
    tags: str = "",
    due_date: Optional[dt.date] = None,
    created_at: Optional[dt.datetime] = None,
) -> Subtask:
    minutes = parse_duration(time_taken)
    parent = db.get(Task, parent_task_id)
    if not parent:
        raise WorkItemNotFound("Task not found")
    assignees = _load_assignees(db, assignee_ids)
    try:
        subtask = Subtask(
            parent_task_id=parent.id,
            project_id=parent.project_id,
            title=title,
            description=description,
            priority=priority,
            status=status,
            tags=tags,
            owner_id=owner_id,
            due_date=due_date,
            time_taken=minutes,
        )
    except ValueError as exc:
        raise InvalidWorkItem(str(exc)) from exc
    if created_at is not None:
        subtask.created_at = created_at
    subtask.assignees = assignees
    _commit(db, subtask)
    logger.info("Created subtask %s under task %s", subtask.id, parent.id)
    return subtask


def set_archived(db: Session, item: Union[Task, Subtask], archived: bool, now: Optional[dt.datetime] = None) -> None:
    if archived:
        item.mark_archived(now or dt.datetime.now(dt.timezone.utc))
    else:
        item.mark_unarchived()
    _commit(db, item)


def task_time_summary(db: Session, task_id: int) -> TaskTimeSummary:
    """Own time, subtask time and the hierarchy-inclusive total of a task."""
    task = db.get(Task, task_id)
    if not task:
        raise WorkItemNotFound("Task not found")
    store = SqlReportStore(db)
    users = UserDirectory(store.resolve_user)
    subtasks = [to_work_item(subtask, users) for subtask in store.find_subtasks([task.id])]
    totals = hierarchy_breakdown(to_work_item(task, users), subtasks)
    return TaskTimeSummary(
        task_id=task.id,
        title=task.title,
        own_minutes=totals.own_minutes,
        subtask_minutes=totals.subtask_minutes,
        subtask_count=totals.subtask_count,
        total_minutes=totals.total_minutes,
    )
