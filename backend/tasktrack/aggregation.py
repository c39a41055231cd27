"""Summing logged time across task hierarchies and report scopes.

Everything here works on :class:`WorkItem`, the single shape tasks and subtasks
are mapped into before aggregation. The functions are pure and keep no state.
"""

from __future__ import annotations

import datetime as dt
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .duration import format_duration
from .models import TASK_STATUSES

UTC = dt.timezone.utc

SCOPE_PROJECT = "project"
SCOPE_USER = "user"
SCOPE_DEPARTMENT = "department"
SCOPE_KINDS = (SCOPE_PROJECT, SCOPE_USER, SCOPE_DEPARTMENT)

KIND_TASK = "task"
KIND_SUBTASK = "subtask"


@dataclass(frozen=True)
class UserRef:
    id: int
    username: str
    display_name: str
    department: str = ""

    @property
    def label(self) -> str:
        return self.display_name or self.username


@dataclass(frozen=True)
class WorkItem:
    kind: str
    id: int
    title: str
    status: str
    owner: Optional[UserRef]
    assignees: Tuple[UserRef, ...]
    project_id: int
    project_name: str
    created_at: dt.datetime
    minutes: Optional[int] = None
    archived: bool = False
    parent_task_id: Optional[int] = None
    priority: Optional[int] = None
    due_date: Optional[dt.date] = None
    tags: str = ""
    description: str = ""

    @property
    def member_ids(self) -> List[int]:
        ids = [self.owner.id] if self.owner else []
        ids.extend(user.id for user in self.assignees if user.id not in ids)
        return ids


@dataclass(frozen=True)
class DateRange:
    """Inclusive calendar-day range, resolved to instants in ``tz``."""

    start: dt.date
    end: dt.date
    tz: dt.tzinfo = UTC

    @property
    def start_at(self) -> dt.datetime:
        return dt.datetime.combine(self.start, dt.time.min, tzinfo=self.tz)

    @property
    def end_at(self) -> dt.datetime:
        # last millisecond of the end day
        return dt.datetime.combine(self.end, dt.time(23, 59, 59, 999000), tzinfo=self.tz)

    def contains(self, moment: dt.datetime) -> bool:
        return self.start_at <= ensure_utc(moment) <= self.end_at


@dataclass(frozen=True)
class Scope:
    kind: str
    identifier: str


@dataclass
class ScopeAggregate:
    items: List[WorkItem] = field(default_factory=list)
    total_minutes: int = 0
    status_counts: Dict[str, int] = field(default_factory=dict)

    @property
    def total_display(self) -> str:
        return format_duration(self.total_minutes)

    @property
    def count(self) -> int:
        return len(self.items)


@dataclass(frozen=True)
class HierarchyTotal:
    own_minutes: int
    subtask_minutes: int
    subtask_count: int

    @property
    def total_minutes(self) -> int:
        return self.own_minutes + self.subtask_minutes

    @property
    def total_display(self) -> str:
        return format_duration(self.total_minutes)


@dataclass(frozen=True)
class MemberTotal:
    user: UserRef
    item_count: int
    minutes: int


def ensure_utc(value: dt.datetime) -> dt.datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def hierarchy_breakdown(task: WorkItem, subtasks: Iterable[WorkItem]) -> HierarchyTotal:
    own = task.minutes or 0
    counted = [
        subtask
        for subtask in subtasks
        if subtask.kind == KIND_SUBTASK and subtask.parent_task_id == task.id and not subtask.archived
    ]
    return HierarchyTotal(
        own_minutes=own,
        subtask_minutes=sum(subtask.minutes or 0 for subtask in counted),
        subtask_count=len(counted),
    )


def sum_hierarchy(task: WorkItem, subtasks: Iterable[WorkItem]) -> int:
    """Own minutes of ``task`` plus those of its non-archived direct subtasks."""
    return hierarchy_breakdown(task, subtasks).total_minutes


def _normalize_department(value: Optional[str]) -> str:
    return (value or "").strip().lower()


def matches_scope(item: WorkItem, scope: Scope) -> bool:
    if scope.kind == SCOPE_PROJECT:
        return str(item.project_id) == str(scope.identifier)
    if scope.kind == SCOPE_USER:
        return str(scope.identifier) in {str(member_id) for member_id in item.member_ids}
    if scope.kind == SCOPE_DEPARTMENT:
        wanted = _normalize_department(scope.identifier)
        if not wanted:
            return False
        members = ([item.owner] if item.owner else []) + list(item.assignees)
        return any(_normalize_department(user.department) == wanted for user in members)
    raise ValueError(f"Unsupported scope kind: {scope.kind}")


def in_date_range(item: WorkItem, date_range: Optional[DateRange]) -> bool:
    if date_range is None:
        return True
    return date_range.contains(item.created_at)


def sort_items(items: Iterable[WorkItem]) -> List[WorkItem]:
    """Newest first; equal timestamps fall back to id, then kind."""
    ordered = sorted(items, key=lambda item: (item.id, item.kind))
    return sorted(ordered, key=lambda item: ensure_utc(item.created_at), reverse=True)


def count_by_status(items: Iterable[WorkItem], statuses: Sequence[str] = TASK_STATUSES) -> Dict[str, int]:
    counts: Dict[str, int] = OrderedDict((status, 0) for status in statuses)
    for item in items:
        if item.status in counts:
            counts[item.status] += 1
    return counts


def sum_by_scope(
    items: Iterable[WorkItem],
    scope: Scope,
    date_range: Optional[DateRange] = None,
    statuses: Sequence[str] = TASK_STATUSES,
) -> ScopeAggregate:
    """Aggregate the non-archived items of ``scope`` created within ``date_range``.

    Each item contributes its own minutes only. A task's subtasks are matched and
    counted on their own, so hierarchy-inclusive totals would count them twice.
    Items whose status is not listed in ``statuses`` are left out.
    """
    matched = [
        item
        for item in items
        if not item.archived
        and item.status in statuses
        and matches_scope(item, scope)
        and in_date_range(item, date_range)
    ]
    ordered = sort_items(matched)
    return ScopeAggregate(
        items=ordered,
        total_minutes=sum(item.minutes or 0 for item in ordered),
        status_counts=count_by_status(ordered, statuses),
    )


def minutes_by_project(items: Iterable[WorkItem]) -> List[Tuple[str, int, int]]:
    """(project name, item count, minutes) sorted by project name."""
    totals: Dict[Tuple[str, int], List[int]] = {}
    for item in items:
        bucket = totals.setdefault((item.project_name, item.project_id), [0, 0])
        bucket[0] += 1
        bucket[1] += item.minutes or 0
    return [
        (name, count, minutes)
        for (name, _), (count, minutes) in sorted(totals.items(), key=lambda entry: (entry[0][0].lower(), entry[0][1]))
    ]


def member_breakdown(items: Iterable[WorkItem]) -> List[MemberTotal]:
    """Owners and assignees with the items they take part in.

    A member is credited with the full own time of every item they own or are
    assigned to, so the member rows can add up to more than the scope total.
    """
    users: Dict[int, UserRef] = {}
    counts: Dict[int, int] = {}
    minutes: Dict[int, int] = {}
    for item in items:
        members = ([item.owner] if item.owner else []) + list(item.assignees)
        seen = set()
        for user in members:
            if user.id in seen:
                continue
            seen.add(user.id)
            users.setdefault(user.id, user)
            counts[user.id] = counts.get(user.id, 0) + 1
            minutes[user.id] = minutes.get(user.id, 0) + (item.minutes or 0)
    ordered = sorted(users.values(), key=lambda user: (user.label.lower(), user.id))
    return [MemberTotal(user=user, item_count=counts[user.id], minutes=minutes[user.id]) for user in ordered]
