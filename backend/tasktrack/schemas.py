from __future__ import annotations

import datetime as dt
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, model_serializer
from typing_extensions import Literal

from .duration import format_duration


def _serialize_datetime(value: dt.datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=dt.timezone.utc)
    else:
        value = value.astimezone(dt.timezone.utc)
    return value.isoformat()


class TimeLogRequest(BaseModel):
    time_taken: Optional[str] = None


class WorkItemTimeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    kind: Literal["task", "subtask"]
    title: str
    time_taken: Optional[int]
    updated_at: dt.datetime

    @model_serializer(mode="plain", when_used="json")
    def _serialize(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind,
            "title": self.title,
            "time_taken": self.time_taken,
            "time_display": format_duration(self.time_taken),
            "updated_at": _serialize_datetime(self.updated_at),
        }


class TaskTimeSummaryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    task_id: int
    title: str
    own_minutes: int
    own_display: str
    subtask_count: int
    subtask_minutes: int
    subtask_display: str
    total_minutes: int
    total_display: str


class ReportMessageResponse(BaseModel):
    success: bool = False
    type: str
    message: str


class ErrorResponse(BaseModel):
    error: str
    message: str
