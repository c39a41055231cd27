from __future__ import annotations

from typing import Optional, Union

from fastapi import Depends, FastAPI, HTTPException, Query, Response
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from . import models
from .config import settings
from .database import engine, get_db
from .errors import TaskTrackError
from .logging_config import configure_logging
from .reports import generate_report
from .schemas import (
    ErrorResponse,
    ReportMessageResponse,
    TaskTimeSummaryResponse,
    TimeLogRequest,
    WorkItemTimeResponse,
)
from .services import log_subtask_time, log_task_time, task_time_summary
from .store import SqlReportStore

configure_logging()
models.Base.metadata.create_all(bind=engine)

app = FastAPI(title=settings.app_name)


def _http_error(exc: TaskTrackError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.message)


def _time_view(item: Union[models.Task, models.Subtask], kind: str) -> WorkItemTimeResponse:
    return WorkItemTimeResponse(
        id=item.id,
        kind=kind,
        title=item.title,
        time_taken=item.time_taken,
        updated_at=item.updated_at,
    )


@app.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}


@app.get(
    "/reports/{report_type}/{scope_kind}/{scope_id}",
    responses={
        200: {"model": ReportMessageResponse},
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
def download_report(
    report_type: str,
    scope_kind: str,
    scope_id: str,
    format: Optional[str] = Query(default=None),
    start_date: Optional[str] = Query(default=None),
    end_date: Optional[str] = Query(default=None),
    timeframe: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
) -> Response:
    outcome = generate_report(
        SqlReportStore(db),
        report_type,
        scope_kind,
        scope_id,
        format,
        start_date=start_date,
        end_date=end_date,
        timeframe=timeframe,
    )
    if outcome.status == "success":
        headers = {
            "Content-Disposition": f'attachment; filename="{outcome.filename}"',
            "Content-Length": str(outcome.content_length),
        }
        return Response(outcome.content, media_type=outcome.media_type, headers=headers)
    if outcome.status == "empty":
        body = ReportMessageResponse(type=outcome.error, message=outcome.message)
        return JSONResponse(status_code=outcome.http_status, content=body.model_dump())
    body = ErrorResponse(error=outcome.error, message=outcome.message)
    return JSONResponse(status_code=outcome.http_status, content=body.model_dump())


@app.put("/tasks/{task_id}/time", response_model=WorkItemTimeResponse)
def update_task_time(task_id: int, payload: TimeLogRequest, db: Session = Depends(get_db)) -> WorkItemTimeResponse:
    try:
        task = log_task_time(db, task_id, payload.time_taken)
    except TaskTrackError as exc:
        raise _http_error(exc) from exc
    return _time_view(task, "task")


@app.put("/subtasks/{subtask_id}/time", response_model=WorkItemTimeResponse)
def update_subtask_time(
    subtask_id: int, payload: TimeLogRequest, db: Session = Depends(get_db)
) -> WorkItemTimeResponse:
    try:
        subtask = log_subtask_time(db, subtask_id, payload.time_taken)
    except TaskTrackError as exc:
        raise _http_error(exc) from exc
    return _time_view(subtask, "subtask")


@app.get("/tasks/{task_id}/time", response_model=TaskTimeSummaryResponse)
def get_task_time(task_id: int, db: Session = Depends(get_db)) -> TaskTimeSummaryResponse:
    try:
        summary = task_time_summary(db, task_id)
    except TaskTrackError as exc:
        raise _http_error(exc) from exc
    return TaskTimeSummaryResponse.model_validate(summary)
