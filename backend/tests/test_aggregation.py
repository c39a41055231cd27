from __future__ import annotations

import datetime as dt

from tasktrack.aggregation import (
    KIND_SUBTASK,
    KIND_TASK,
    SCOPE_DEPARTMENT,
    SCOPE_PROJECT,
    SCOPE_USER,
    DateRange,
    Scope,
    UserRef,
    WorkItem,
    hierarchy_breakdown,
    matches_scope,
    member_breakdown,
    minutes_by_project,
    sum_by_scope,
    sum_hierarchy,
)
from tasktrack.duration import format_duration

UTC = dt.timezone.utc
ALICE = UserRef(1, "alice", "Alice", "Engineering")
BOB = UserRef(2, "bob", "Bob", "Design")
CAROL = UserRef(3, "carol", "", "engineering ")


def _item(
    item_id: int,
    minutes=None,
    kind: str = KIND_TASK,
    parent=None,
    archived: bool = False,
    created=dt.datetime(2024, 1, 10, 12, 0, tzinfo=UTC),
    project_id: int = 1,
    project_name: str = "Apollo",
    owner: UserRef = ALICE,
    assignees=(),
    status: str = "To Do",
) -> WorkItem:
    return WorkItem(
        kind=kind,
        id=item_id,
        title=f"{kind} {item_id}",
        status=status,
        owner=owner,
        assignees=tuple(assignees),
        project_id=project_id,
        project_name=project_name,
        created_at=created,
        minutes=minutes,
        archived=archived,
        parent_task_id=parent,
    )


def test_hierarchy_sums_task_and_subtasks():
    task = _item(1, 60)
    subtasks = [_item(10, 30, KIND_SUBTASK, parent=1), _item(11, 45, KIND_SUBTASK, parent=1)]

    total = sum_hierarchy(task, subtasks)

    assert total == 135
    assert format_duration(total) == "2 hours 15 minutes"


def test_hierarchy_skips_archived_and_foreign_subtasks():
    task = _item(1, 60)
    subtasks = [
        _item(10, 30, KIND_SUBTASK, parent=1),
        _item(11, 45, KIND_SUBTASK, parent=1, archived=True),
        _item(12, 120, KIND_SUBTASK, parent=2),
        _item(13, None, KIND_SUBTASK, parent=1),
    ]

    totals = hierarchy_breakdown(task, subtasks)

    assert totals.own_minutes == 60
    assert totals.subtask_minutes == 30
    assert totals.subtask_count == 2
    assert totals.total_display == "1 hour 30 minutes"


def test_hierarchy_of_task_without_time():
    assert sum_hierarchy(_item(1), []) == 0


def test_sum_by_scope_excludes_archived_and_out_of_range_items():
    items = [
        _item(1, 60),
        _item(2, 30, archived=True),
        _item(3, 45, created=dt.datetime(2024, 2, 1, 9, 0, tzinfo=UTC)),
        _item(4, 15, project_id=2, project_name="Gemini"),
    ]
    date_range = DateRange(dt.date(2024, 1, 1), dt.date(2024, 1, 31))

    aggregate = sum_by_scope(items, Scope(SCOPE_PROJECT, "1"), date_range)

    assert [item.id for item in aggregate.items] == [1]
    assert aggregate.total_minutes == 60
    assert aggregate.status_counts["To Do"] == 1
    assert aggregate.status_counts["Completed"] == 0


def test_single_day_range_keeps_items_from_that_day():
    items = [
        _item(1, 15, created=dt.datetime(2024, 1, 10, 0, 0, tzinfo=UTC)),
        _item(2, 15, created=dt.datetime(2024, 1, 10, 23, 59, 59, tzinfo=UTC)),
        _item(3, 15, created=dt.datetime(2024, 1, 11, 0, 0, tzinfo=UTC)),
    ]
    day = dt.date(2024, 1, 10)

    aggregate = sum_by_scope(items, Scope(SCOPE_PROJECT, "1"), DateRange(day, day))

    assert sorted(item.id for item in aggregate.items) == [1, 2]
    assert aggregate.total_display == "30 minutes"


def test_sum_by_scope_counts_subtasks_with_their_own_time_only():
    items = [_item(1, 60), _item(10, 30, KIND_SUBTASK, parent=1)]

    aggregate = sum_by_scope(items, Scope(SCOPE_PROJECT, "1"))

    assert aggregate.total_minutes == 90
    assert aggregate.count == 2


def test_sum_by_scope_applies_status_filter():
    items = [_item(1, 60, status="Blocked"), _item(2, 30, status="Completed")]

    aggregate = sum_by_scope(items, Scope(SCOPE_PROJECT, "1"), statuses=("To Do", "In Progress", "Completed"))

    assert [item.id for item in aggregate.items] == [2]
    assert "Blocked" not in aggregate.status_counts


def test_items_sorted_newest_first_with_id_tiebreak():
    same = dt.datetime(2024, 1, 5, 8, 0, tzinfo=UTC)
    items = [
        _item(5, created=same),
        _item(2, created=same),
        _item(9, created=dt.datetime(2024, 1, 6, 8, 0, tzinfo=UTC)),
    ]

    aggregate = sum_by_scope(items, Scope(SCOPE_PROJECT, "1"))

    assert [item.id for item in aggregate.items] == [9, 2, 5]


def test_user_scope_matches_owner_or_assignee():
    owned = _item(1, owner=BOB)
    assigned = _item(2, owner=ALICE, assignees=[BOB])
    other = _item(3, owner=ALICE)

    scope = Scope(SCOPE_USER, "2")

    assert matches_scope(owned, scope)
    assert matches_scope(assigned, scope)
    assert not matches_scope(other, scope)


def test_department_scope_ignores_case_and_whitespace():
    item = _item(1, owner=BOB, assignees=[CAROL])

    assert matches_scope(item, Scope(SCOPE_DEPARTMENT, "ENGINEERING"))
    assert matches_scope(item, Scope(SCOPE_DEPARTMENT, " design"))
    assert not matches_scope(item, Scope(SCOPE_DEPARTMENT, "Sales"))
    assert not matches_scope(item, Scope(SCOPE_DEPARTMENT, ""))


def test_minutes_by_project_groups_by_name():
    items = [
        _item(1, 60, project_id=2, project_name="gemini"),
        _item(2, 30),
        _item(3, 45),
    ]

    assert minutes_by_project(items) == [("Apollo", 2, 75), ("gemini", 1, 60)]


def test_member_breakdown_credits_owner_and_assignees_once():
    items = [
        _item(1, 60, owner=ALICE, assignees=[ALICE, BOB]),
        _item(2, 30, owner=BOB),
    ]

    totals = {total.user.username: (total.item_count, total.minutes) for total in member_breakdown(items)}

    assert totals == {"alice": (1, 60), "bob": (2, 90)}
