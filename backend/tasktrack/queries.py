"""Resolve report requests into aggregated report models."""

from __future__ import annotations

import calendar
import datetime as dt
import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union
from zoneinfo import ZoneInfo

from .aggregation import (
    KIND_SUBTASK,
    KIND_TASK,
    SCOPE_DEPARTMENT,
    SCOPE_PROJECT,
    SCOPE_USER,
    DateRange,
    Scope,
    ScopeAggregate,
    UserRef,
    WorkItem,
    ensure_utc,
    hierarchy_breakdown,
    member_breakdown,
    minutes_by_project,
    sum_by_scope,
)
from .config import settings
from .duration import format_duration
from .errors import InvalidDateRange, InvalidReportRequest, ScopeNotFound
from .models import TASK_STATUSES, Subtask
from .store import ReportStore, ScopeEntity, ScopeFilter, WorkItemRecord

logger = logging.getLogger(__name__)

LOCAL_TZ = ZoneInfo(settings.timezone)

TASK_COMPLETION = "task-completion"
LOGGED_TIME = "logged-time"
TEAM_SUMMARY = "team-summary"

TIMEFRAMES = ("week", "month")

_ISO_DATE = re.compile(r"^[0-9]{4}-[0-9]{2}-[0-9]{2}$", re.ASCII)


@dataclass(frozen=True)
class ReportType:
    kind: str
    title: str
    scopes: Tuple[str, ...]
    columns: Tuple[str, ...]
    requires_date_range: bool = True
    requires_timeframe: bool = False
    statuses: Tuple[str, ...] = TASK_STATUSES


REPORT_TYPES: Dict[str, ReportType] = {
    TASK_COMPLETION: ReportType(
        kind=TASK_COMPLETION,
        title="Task Completion Report",
        scopes=(SCOPE_PROJECT, SCOPE_USER),
        columns=("Title", "Status", "Owner", "Assignees", "Logged Time", "Project", "Priority", "Deadline", "Created"),
    ),
    LOGGED_TIME: ReportType(
        kind=LOGGED_TIME,
        title="Logged Time Report",
        scopes=(SCOPE_PROJECT, SCOPE_USER, SCOPE_DEPARTMENT),
        columns=("Title", "Type", "Status", "Owner", "Assignees", "Logged Time", "Project", "Created"),
        requires_date_range=False,
    ),
    TEAM_SUMMARY: ReportType(
        kind=TEAM_SUMMARY,
        title="Team Summary Report",
        scopes=(SCOPE_PROJECT,),
        columns=("Title", "Status", "Owner", "Assignees", "Logged Time", "Deadline", "Created"),
        requires_timeframe=True,
        statuses=("To Do", "In Progress", "Completed"),
    ),
}


@dataclass(frozen=True)
class ReportRequest:
    report_type: ReportType
    scope: Scope
    format: str
    date_range: Optional[DateRange] = None
    timeframe: Optional[str] = None


@dataclass
class Breakdown:
    title: str
    headers: List[str]
    rows: List[List[str]]


@dataclass
class ReportMetadata:
    report_kind: str
    title: str
    scope_kind: str
    scope_identifier: str
    scope_name: str
    start_date: Optional[str]
    end_date: Optional[str]
    generated_at: str
    details: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def range_label(self) -> str:
        if self.start_date and self.end_date:
            return f"{self.start_date} to {self.end_date}"
        return "All time"


@dataclass
class ReportModel:
    metadata: ReportMetadata
    columns: List[str]
    rows: List[List[str]]
    status_counts: Dict[str, int]
    total_minutes: int
    total_display: str
    items: List[WorkItem]
    breakdowns: List[Breakdown] = field(default_factory=list)

    @property
    def item_count(self) -> int:
        return len(self.items)


@dataclass
class EmptyResult:
    scope_kind: str
    scope_name: str
    start_date: Optional[str]
    end_date: Optional[str]

    @property
    def message(self) -> str:
        noun = {SCOPE_PROJECT: "project", SCOPE_USER: "user", SCOPE_DEPARTMENT: "department"}[self.scope_kind]
        if self.start_date and self.end_date:
            return (
                f'No tasks found for {noun} "{self.scope_name}" in the specified date range '
                f"({self.start_date} to {self.end_date}). Please try a different date range or {noun}."
            )
        return f'No tasks found for {noun} "{self.scope_name}". Please try a different {noun}.'


ReportResult = Union[ReportModel, EmptyResult]


def parse_date(value: str, label: str) -> dt.date:
    text = str(value).strip()
    message = f"Invalid {label} format. Please use ISO format (YYYY-MM-DD)"
    # newer fromisoformat also takes week dates and compact forms
    if not _ISO_DATE.match(text):
        raise InvalidDateRange(message)
    try:
        return dt.date.fromisoformat(text)
    except ValueError as exc:
        raise InvalidDateRange(message) from exc


def resolve_date_range(
    start: Optional[str], end: Optional[str], tz: dt.tzinfo = LOCAL_TZ
) -> Optional[DateRange]:
    """Parse both bounds; ``None`` when neither is given."""
    if not start and not end:
        return None
    if not start or not end:
        raise InvalidDateRange("Both start_date and end_date are required for a date range")
    start_date = parse_date(start, "start date")
    end_date = parse_date(end, "end date")
    if start_date > end_date:
        raise InvalidDateRange("Start date cannot be after end date")
    return DateRange(start_date, end_date, tz)


def resolve_timeframe(start: Optional[str], timeframe: Optional[str], tz: dt.tzinfo = LOCAL_TZ) -> DateRange:
    """Seven days from ``start``, or ``start`` through the end of its month."""
    if not start:
        raise InvalidDateRange("start_date is required for a timeframe report")
    normalized = (timeframe or "").strip().lower()
    if normalized not in TIMEFRAMES:
        raise InvalidReportRequest("Timeframe must be either week or month")
    start_date = parse_date(start, "start date")
    if normalized == "week":
        return DateRange(start_date, start_date + dt.timedelta(days=6), tz)
    last_day = calendar.monthrange(start_date.year, start_date.month)[1]
    return DateRange(start_date, start_date.replace(day=last_day), tz)


class UserDirectory:
    """Per-request cache over ``ReportStore.resolve_user``."""

    def __init__(self, resolve: Callable):
        self._resolve = resolve
        self._cache: Dict[int, Optional[UserRef]] = {}

    def get(self, user_id: Optional[int]) -> Optional[UserRef]:
        if user_id is None:
            return None
        if user_id not in self._cache:
            record = self._resolve(user_id)
            self._cache[user_id] = (
                UserRef(record.id, record.username, record.display_name, record.department or "")
                if record
                else None
            )
        return self._cache[user_id]


def _project_name(record: WorkItemRecord, fallback: Optional[str]) -> str:
    project = getattr(record, "project", None)
    if project is not None and getattr(project, "name", None):
        return project.name
    return fallback or f"Project {record.project_id}"


def to_work_item(
    record: WorkItemRecord, users: UserDirectory, project_name: Optional[str] = None
) -> WorkItem:
    """Map a task or subtask row into the shared ``WorkItem`` shape."""
    assignees = tuple(
        user for user in (users.get(assignee.id) for assignee in (record.assignees or [])) if user
    )
    kind = KIND_SUBTASK if isinstance(record, Subtask) else KIND_TASK
    return WorkItem(
        kind=kind,
        id=record.id,
        title=record.title,
        status=record.status,
        owner=users.get(record.owner_id),
        assignees=assignees,
        project_id=record.project_id,
        project_name=_project_name(record, project_name),
        created_at=ensure_utc(record.created_at),
        minutes=record.time_taken,
        archived=bool(record.archived),
        parent_task_id=record.parent_task_id if kind == KIND_SUBTASK else None,
        priority=record.priority,
        due_date=record.due_date,
        tags=(record.tags or "").strip(),
        description=(record.description or "").strip(),
    )


def _format_local_date(value: dt.datetime) -> str:
    return ensure_utc(value).astimezone(LOCAL_TZ).date().isoformat()


def _assignee_label(item: WorkItem) -> str:
    return ", ".join(user.label for user in item.assignees) or "Unassigned"


def _row_for(report_type: ReportType, item: WorkItem) -> List[str]:
    values = {
        "Title": item.title,
        "Type": "Subtask" if item.kind == KIND_SUBTASK else "Task",
        "Status": item.status,
        "Owner": item.owner.label if item.owner else "No owner",
        "Assignees": _assignee_label(item),
        "Logged Time": format_duration(item.minutes),
        "Project": item.project_name,
        "Priority": str(item.priority) if item.priority is not None else "Not set",
        "Deadline": item.due_date.isoformat() if item.due_date else "No deadline",
        "Created": _format_local_date(item.created_at),
    }
    return [values[column] for column in report_type.columns]


def _member_table(items: Sequence[WorkItem], title: str) -> Breakdown:
    return Breakdown(
        title=title,
        headers=["Member", "Department", "Items", "Logged Time"],
        rows=[
            [total.user.label, total.user.department or "Not set", str(total.item_count), format_duration(total.minutes)]
            for total in member_breakdown(items)
        ],
    )


def _hierarchy_table(store: ReportStore, items: Sequence[WorkItem], users: UserDirectory) -> Breakdown:
    tasks = [item for item in items if item.kind == KIND_TASK]
    subtasks = [to_work_item(record, users) for record in store.find_subtasks([task.id for task in tasks])]
    rows = []
    for task in tasks:
        totals = hierarchy_breakdown(task, subtasks)
        rows.append(
            [
                task.title,
                format_duration(totals.own_minutes),
                str(totals.subtask_count),
                format_duration(totals.subtask_minutes),
                totals.total_display,
            ]
        )
    return Breakdown(
        title="Task Totals Including Subtasks",
        headers=["Task", "Own Time", "Subtasks", "Subtask Time", "Total"],
        rows=rows,
    )


def _breakdowns(
    store: ReportStore, request: ReportRequest, aggregate: ScopeAggregate, users: UserDirectory
) -> List[Breakdown]:
    kind = request.report_type.kind
    if kind == LOGGED_TIME:
        tables = [
            Breakdown(
                title="Logged Time per Project",
                headers=["Project", "Items", "Logged Time"],
                rows=[
                    [name, str(count), format_duration(minutes)]
                    for name, count, minutes in minutes_by_project(aggregate.items)
                ],
            ),
            _member_table(aggregate.items, "Logged Time per Member"),
        ]
        if any(item.kind == KIND_TASK for item in aggregate.items):
            tables.append(_hierarchy_table(store, aggregate.items, users))
        return tables
    if kind == TEAM_SUMMARY:
        return [_member_table(aggregate.items, "Team Members")]
    return []


def _details(request: ReportRequest, entity: ScopeEntity) -> List[Tuple[str, str]]:
    details = []
    if entity.owner_name:
        details.append(("Project Owner", entity.owner_name))
    if request.timeframe:
        details.append(("Timeframe", request.timeframe.capitalize()))
    return details


def build_report(
    store: ReportStore, request: ReportRequest, now: Optional[dt.datetime] = None
) -> ReportResult:
    """Fetch, normalize and aggregate the work items of ``request``.

    Returns :class:`EmptyResult` when nothing matches.
    """
    scope = request.scope
    entity = store.find_scope_entity(scope.kind, scope.identifier)
    if entity is None:
        raise ScopeNotFound(f"{scope.kind.capitalize()} not found")

    date_range = request.date_range
    records = store.find_work_items(ScopeFilter(scope.kind, entity.identifier, date_range))
    users = UserDirectory(store.resolve_user)
    fallback_project = entity.display_name if scope.kind == SCOPE_PROJECT else None
    items = [to_work_item(record, users, fallback_project) for record in records]

    aggregate = sum_by_scope(
        items, Scope(scope.kind, entity.identifier), date_range, request.report_type.statuses
    )
    start_iso = date_range.start.isoformat() if date_range else None
    end_iso = date_range.end.isoformat() if date_range else None
    logger.debug(
        "Scope %s %s matched %d of %d candidates", scope.kind, entity.identifier, aggregate.count, len(items)
    )
    if not aggregate.items:
        return EmptyResult(scope.kind, entity.display_name, start_iso, end_iso)

    generated = ensure_utc(now or dt.datetime.now(dt.timezone.utc)).astimezone(LOCAL_TZ)
    metadata = ReportMetadata(
        report_kind=request.report_type.kind,
        title=f"{request.report_type.title} - {scope.kind.capitalize()}: {entity.display_name}",
        scope_kind=scope.kind,
        scope_identifier=entity.identifier,
        scope_name=entity.display_name,
        start_date=start_iso,
        end_date=end_iso,
        generated_at=generated.strftime("%Y-%m-%d %H:%M"),
        details=_details(request, entity),
    )
    return ReportModel(
        metadata=metadata,
        columns=list(request.report_type.columns),
        rows=[_row_for(request.report_type, item) for item in aggregate.items],
        status_counts=dict(aggregate.status_counts),
        total_minutes=aggregate.total_minutes,
        total_display=aggregate.total_display,
        items=aggregate.items,
        breakdowns=_breakdowns(store, request, aggregate, users),
    )
