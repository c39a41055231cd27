"""Report request handling.

A request moves through ``received -> validated -> queried`` and then ends in
``empty`` (nothing matched, no document is rendered) or ``responded`` (document
bytes). An error outcome keeps the last state reached. Requests are independent
and never retried.
"""

from __future__ import annotations

import datetime as dt
import enum
import logging
import re
from dataclasses import dataclass
from typing import Callable, Optional

from .aggregation import SCOPE_KINDS, Scope
from .errors import InvalidReportRequest, RenderFailure, StoreError, TaskTrackError
from .queries import (
    LOCAL_TZ,
    REPORT_TYPES,
    EmptyResult,
    ReportModel,
    ReportRequest,
    build_report,
    resolve_date_range,
    resolve_timeframe,
)
from .rendering import FILE_EXTENSIONS, MEDIA_TYPES, render_report
from .store import ReportStore

logger = logging.getLogger(__name__)

NO_DATA_FOUND = "NO_DATA_FOUND"


class ReportState(str, enum.Enum):
    RECEIVED = "received"
    VALIDATED = "validated"
    QUERIED = "queried"
    EMPTY = "empty"
    AGGREGATED = "aggregated"
    RENDERED = "rendered"
    RESPONDED = "responded"


@dataclass
class ReportOutcome:
    status: str  # success | empty | error
    http_status: int
    state: ReportState
    content: Optional[bytes] = None
    message: Optional[str] = None
    error: Optional[str] = None
    media_type: Optional[str] = None
    filename: Optional[str] = None

    @property
    def content_length(self) -> int:
        return len(self.content) if self.content is not None else 0

    @property
    def payload(self):
        return self.content if self.status == "success" else self.message


def _slug(value: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", value.strip().lower()).strip("-")
    return slug or "unknown"


def build_filename(report_kind: str, scope_identifier: str, report_format: str, day: dt.date) -> str:
    return f"{report_kind}-report-{_slug(scope_identifier)}-{day.isoformat()}.{FILE_EXTENSIONS[report_format]}"


def validate_request(
    report_type: Optional[str],
    scope_kind: Optional[str],
    scope_id: Optional[str],
    report_format: Optional[str],
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    timeframe: Optional[str] = None,
) -> ReportRequest:
    """Check every parameter without touching the store."""
    report_kind = REPORT_TYPES.get((report_type or "").strip().lower())
    if report_kind is None:
        raise InvalidReportRequest(
            f"Unsupported report type. Expected one of: {', '.join(sorted(REPORT_TYPES))}"
        )
    kind = (scope_kind or "").strip().lower()
    if kind not in SCOPE_KINDS or kind not in report_kind.scopes:
        raise InvalidReportRequest(
            f"{report_kind.title} supports scopes: {', '.join(report_kind.scopes)}"
        )
    identifier = (scope_id or "").strip()
    if not identifier:
        raise InvalidReportRequest(f"{kind.capitalize()} identifier is required")
    if not report_format:
        raise InvalidReportRequest("format is a required parameter")
    normalized_format = report_format.strip().lower()
    if normalized_format not in MEDIA_TYPES:
        raise InvalidReportRequest("Format must be either pdf or excel")

    if report_kind.requires_timeframe:
        date_range = resolve_timeframe(start_date, timeframe, LOCAL_TZ)
        return ReportRequest(report_kind, Scope(kind, identifier), normalized_format, date_range, timeframe.strip().lower())
    if report_kind.requires_date_range and (not start_date or not end_date):
        raise InvalidReportRequest("start_date and end_date are required parameters")
    date_range = resolve_date_range(start_date, end_date, LOCAL_TZ)
    return ReportRequest(report_kind, Scope(kind, identifier), normalized_format, date_range)


def _error_outcome(exc: TaskTrackError, state: ReportState) -> ReportOutcome:
    message = exc.message
    if exc.status_code >= 500:
        message = "Failed to generate report. Please try again later."
    return ReportOutcome(
        status="error",
        http_status=exc.status_code,
        state=state,
        message=message,
        error=exc.error,
    )


def _advance(state: ReportState, request: ReportRequest) -> ReportState:
    logger.debug("Report %s %s=%s -> %s", request.report_type.kind, request.scope.kind, request.scope.identifier, state.value)
    return state


def generate_report(
    store: ReportStore,
    report_type: Optional[str],
    scope_kind: Optional[str],
    scope_id: Optional[str],
    report_format: Optional[str],
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    timeframe: Optional[str] = None,
    *,
    renderer: Callable[[ReportModel, str], bytes] = render_report,
    today: Optional[dt.date] = None,
) -> ReportOutcome:
    logger.info("Report request received: %s %s=%s format=%s", report_type, scope_kind, scope_id, report_format)
    try:
        request = validate_request(
            report_type, scope_kind, scope_id, report_format, start_date, end_date, timeframe
        )
    except TaskTrackError as exc:
        logger.warning("Report request rejected: %s", exc.message)
        return _error_outcome(exc, ReportState.RECEIVED)

    state = _advance(ReportState.VALIDATED, request)
    try:
        result = build_report(store, request)
    except TaskTrackError as exc:
        log = logger.error if exc.status_code >= 500 else logger.warning
        log("Report query failed for %s %s: %s", request.scope.kind, request.scope.identifier, exc.message)
        return _error_outcome(exc, state)
    except Exception as exc:
        logger.exception("Unexpected error building report for %s %s", request.scope.kind, request.scope.identifier)
        return _error_outcome(StoreError(str(exc) or type(exc).__name__), state)
    state = _advance(ReportState.QUERIED, request)

    if isinstance(result, EmptyResult):
        logger.info("Report for %s %s matched no items", request.scope.kind, request.scope.identifier)
        return ReportOutcome(
            status="empty",
            http_status=200,
            state=ReportState.EMPTY,
            message=result.message,
            error=NO_DATA_FOUND,
        )

    state = _advance(ReportState.AGGREGATED, request)
    try:
        content = renderer(result, request.format)
    except TaskTrackError as exc:
        logger.error("Rendering failed for %s %s: %s", request.scope.kind, request.scope.identifier, exc.message)
        return _error_outcome(exc, state)
    except Exception as exc:
        logger.exception("Unexpected error rendering report for %s %s", request.scope.kind, request.scope.identifier)
        return _error_outcome(RenderFailure(str(exc) or type(exc).__name__), state)
    _advance(ReportState.RENDERED, request)

    day = today or dt.datetime.now(LOCAL_TZ).date()
    filename = build_filename(request.report_type.kind, result.metadata.scope_identifier, request.format, day)
    logger.info("Report %s rendered (%d bytes, %d items)", filename, len(content), result.item_count)
    return ReportOutcome(
        status="success",
        http_status=200,
        state=ReportState.RESPONDED,
        content=content,
        media_type=MEDIA_TYPES[request.format],
        filename=filename,
    )
