from __future__ import annotations

import datetime as dt
import io

from fastapi.testclient import TestClient
from openpyxl import load_workbook

UTC = dt.timezone.utc
XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _project_with_work(seed):
    alice = seed.user("alice", "Engineering")
    bob = seed.user("bob", "Engineering")
    project = seed.project("Apollo", alice)
    build = seed.task(project, alice, "Build", "1 hour", assignees=[bob], status="In Progress")
    seed.subtask(build, bob, "Wire up", "30 minutes")
    seed.task(project, bob, "Ship", "45 minutes", status="Completed", created_at=dt.datetime(2024, 1, 20, tzinfo=UTC))
    return project, build


def test_healthz(client: TestClient):
    resp = client.get("/healthz")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_log_time_flow(client: TestClient, seed):
    _, build = _project_with_work(seed)
    task_id = build.id

    resp = client.put(f"/tasks/{task_id}/time", json={"time_taken": "2 hours 15 minutes"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["kind"] == "task"
    assert data["time_taken"] == 135
    assert data["time_display"] == "2 hours 15 minutes"
    assert data["updated_at"].endswith("+00:00")

    bad = client.put(f"/tasks/{task_id}/time", json={"time_taken": "1 hour 5 minutes"})
    assert bad.status_code == 400
    assert "15-minute increments" in bad.json()["detail"]

    summary = client.get(f"/tasks/{task_id}/time")
    assert summary.status_code == 200
    body = summary.json()
    assert body["own_minutes"] == 135
    assert body["subtask_count"] == 1
    assert body["total_minutes"] == 165
    assert body["total_display"] == "2 hours 45 minutes"


def test_log_subtask_time_and_missing_items(client: TestClient, seed):
    _, build = _project_with_work(seed)
    subtask_id = seed.subtask(build, build.owner, "Test", None).id

    resp = client.put(f"/subtasks/{subtask_id}/time", json={"time_taken": "45 minutes"})
    assert resp.status_code == 200
    assert resp.json()["kind"] == "subtask"
    assert resp.json()["time_taken"] == 45

    cleared = client.put(f"/subtasks/{subtask_id}/time", json={"time_taken": ""})
    assert cleared.json()["time_display"] == "Not specified"

    assert client.put("/tasks/99999/time", json={"time_taken": "1 hour"}).status_code == 404
    assert client.put("/subtasks/99999/time", json={"time_taken": "1 hour"}).status_code == 404
    assert client.get("/tasks/99999/time").status_code == 404


def test_pdf_report_download(client: TestClient, seed):
    project, _ = _project_with_work(seed)

    resp = client.get(
        f"/reports/task-completion/project/{project.id}",
        params={"format": "pdf", "start_date": "2024-01-01", "end_date": "2024-01-31"},
    )

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("application/pdf")
    disposition = resp.headers["content-disposition"]
    assert disposition.startswith("attachment;")
    assert f"task-completion-report-{project.id}-" in disposition
    assert disposition.endswith('.pdf"')
    assert int(resp.headers["content-length"]) == len(resp.content)
    assert resp.content.startswith(b"%PDF")


def test_excel_report_download(client: TestClient, seed):
    project, _ = _project_with_work(seed)

    resp = client.get(
        f"/reports/logged-time/project/{project.id}",
        params={"format": "Excel"},
    )

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith(XLSX)
    sheet = load_workbook(io.BytesIO(resp.content))["Report"]
    assert sheet["A1"].value == "Title"
    titles = [row[0] for row in sheet.iter_rows(min_row=2, max_row=4, values_only=True)]
    assert titles[0] == "Ship"
    assert sorted(titles) == ["Build", "Ship", "Wire up"]
    first_column = [row[0] for row in sheet.iter_rows(values_only=True)]
    assert "Task Totals Including Subtasks" in first_column


def test_department_and_team_reports(client: TestClient, seed):
    project, _ = _project_with_work(seed)

    department = client.get("/reports/logged-time/department/engineering", params={"format": "pdf"})
    assert department.status_code == 200
    assert "logged-time-report-engineering-" in department.headers["content-disposition"]

    team = client.get(
        f"/reports/team-summary/project/{project.id}",
        params={"format": "excel", "start_date": "2024-01-01", "timeframe": "month"},
    )
    assert team.status_code == 200
    assert team.headers["content-type"].startswith(XLSX)


def test_empty_report_returns_message(client: TestClient, seed):
    alice = seed.user("alice")
    project = seed.project("Quiet", alice)

    resp = client.get(
        f"/reports/task-completion/project/{project.id}",
        params={"format": "pdf", "start_date": "2024-01-01", "end_date": "2024-01-31"},
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is False
    assert body["type"] == "NO_DATA_FOUND"
    assert 'project "Quiet"' in body["message"]


def test_report_errors(client: TestClient, seed):
    project, _ = _project_with_work(seed)
    url = f"/reports/task-completion/project/{project.id}"

    bad_format = client.get(url, params={"format": "json", "start_date": "2024-01-01", "end_date": "2024-01-31"})
    assert bad_format.status_code == 400
    assert bad_format.json()["error"] == "Invalid report request"

    reversed_range = client.get(url, params={"format": "pdf", "start_date": "2024-02-01", "end_date": "2024-01-01"})
    assert reversed_range.status_code == 400
    assert reversed_range.json() == {
        "error": "Invalid date range",
        "message": "Start date cannot be after end date",
    }

    missing = client.get(
        "/reports/task-completion/project/99999",
        params={"format": "pdf", "start_date": "2024-01-01", "end_date": "2024-01-31"},
    )
    assert missing.status_code == 404
    assert missing.json()["message"] == "Project not found"

    unknown_department = client.get("/reports/logged-time/department/Sales", params={"format": "pdf"})
    assert unknown_department.status_code == 404
