"""Turn report models into PDF or spreadsheet bytes."""

from __future__ import annotations

import io
import logging
from typing import Callable, Dict, List, Sequence

from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.units import cm
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas

from .config import settings
from .errors import RenderFailure
from .queries import Breakdown, ReportModel

logger = logging.getLogger(__name__)

FORMAT_PDF = "pdf"
FORMAT_EXCEL = "excel"

MEDIA_TYPES: Dict[str, str] = {
    FORMAT_PDF: "application/pdf",
    FORMAT_EXCEL: "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}
FILE_EXTENSIONS: Dict[str, str] = {FORMAT_PDF: "pdf", FORMAT_EXCEL: "xlsx"}

FONT = "Helvetica"
FONT_BOLD = "Helvetica-Bold"
BODY_SIZE = 9
LINE_HEIGHT = 0.45 * cm
MARGIN = 1.5 * cm
MAX_COLUMN_WIDTH = 60


def _wrap_text(text: str, width: float, font: str = FONT, size: int = BODY_SIZE) -> List[str]:
    words = text.split()
    if not words:
        return [""]
    lines: List[str] = []
    current = words[0]
    for word in words[1:]:
        tentative = f"{current} {word}"
        if stringWidth(tentative, font, size) > width:
            lines.append(current)
            current = word
        else:
            current = tentative
    lines.append(current)
    return lines


def _summary_rows(model: ReportModel) -> List[List[str]]:
    rows = [[status, str(count)] for status, count in model.status_counts.items()]
    rows.append(["Total Items", str(model.item_count)])
    rows.append(["Total Logged Time", model.total_display])
    return rows


def _metadata_rows(model: ReportModel) -> List[List[str]]:
    meta = model.metadata
    rows = [
        ["Report", meta.title],
        [meta.scope_kind.capitalize(), meta.scope_name],
        ["Date Range", meta.range_label],
        ["Generated At", meta.generated_at],
    ]
    rows.extend([label, value] for label, value in meta.details)
    return rows


class _PdfTableWriter:
    """Draws wrapped tables onto a canvas, starting new pages as needed."""

    def __init__(self, pdf: canvas.Canvas, page_size):
        self.pdf = pdf
        self.width, self.height = page_size
        self.y = self.height - MARGIN

    @property
    def usable_width(self) -> float:
        return self.width - 2 * MARGIN

    def ensure_space(self, required: float) -> None:
        if self.y - required < MARGIN:
            self.pdf.showPage()
            self.y = self.height - MARGIN

    def heading(self, text: str, size: int = 12) -> None:
        self.ensure_space(size * 1.6)
        self.pdf.setFont(FONT_BOLD, size)
        self.pdf.drawString(MARGIN, self.y, text)
        self.y -= size * 1.6

    def table(self, headers: Sequence[str], rows: Sequence[Sequence[str]], weights: Sequence[float] = ()) -> None:
        weights = list(weights) or [1.0] * len(headers)
        total = sum(weights)
        widths = [self.usable_width * weight / total for weight in weights]
        self._row(headers, widths, bold=True)
        self.pdf.line(MARGIN, self.y + LINE_HEIGHT * 0.6, self.width - MARGIN, self.y + LINE_HEIGHT * 0.6)
        for row in rows:
            self._row(row, widths)
        self.y -= LINE_HEIGHT * 0.5

    def _row(self, cells: Sequence[str], widths: Sequence[float], bold: bool = False) -> None:
        font = FONT_BOLD if bold else FONT
        wrapped = [_wrap_text(str(cell), width - 0.2 * cm, font) for cell, width in zip(cells, widths)]
        line_count = max(len(lines) for lines in wrapped)
        self.ensure_space(line_count * LINE_HEIGHT)
        self.pdf.setFont(font, BODY_SIZE)
        x = MARGIN
        for lines, width in zip(wrapped, widths):
            offset = self.y
            for line in lines:
                self.pdf.drawString(x, offset, line)
                offset -= LINE_HEIGHT
            x += width
        self.y -= line_count * LINE_HEIGHT


def _column_weights(columns: Sequence[str]) -> List[float]:
    wide = {"Title": 3.0, "Assignees": 2.2, "Owner": 1.6, "Project": 1.6, "Logged Time": 1.8}
    return [wide.get(column, 1.0) for column in columns]


def _render_pdf(model: ReportModel) -> bytes:
    buffer = io.BytesIO()
    page_size = landscape(A4)
    pdf = canvas.Canvas(buffer, pagesize=page_size)
    pdf.setTitle(f"{settings.report_title_prefix} {model.metadata.title}")
    writer = _PdfTableWriter(pdf, page_size)

    writer.heading(model.metadata.title, size=15)
    for label, value in _metadata_rows(model)[1:]:
        writer.ensure_space(LINE_HEIGHT)
        pdf.setFont(FONT_BOLD, BODY_SIZE + 1)
        pdf.drawString(MARGIN, writer.y, f"{label}:")
        pdf.setFont(FONT, BODY_SIZE + 1)
        pdf.drawString(MARGIN + 3.5 * cm, writer.y, value)
        writer.y -= LINE_HEIGHT * 1.2
    writer.y -= LINE_HEIGHT

    writer.heading("Work Items")
    writer.table(model.columns, model.rows, _column_weights(model.columns))

    writer.heading("Summary")
    writer.table(["Status", "Count"], _summary_rows(model), [2.0, 1.0])

    for breakdown in model.breakdowns:
        _pdf_breakdown(writer, breakdown)

    pdf.save()
    return buffer.getvalue()


def _pdf_breakdown(writer: _PdfTableWriter, breakdown: Breakdown) -> None:
    writer.heading(breakdown.title)
    if not breakdown.rows:
        writer.table(breakdown.headers, [["-"] * len(breakdown.headers)])
        return
    writer.table(breakdown.headers, breakdown.rows, [2.5] + [1.0] * (len(breakdown.headers) - 1))


def _autosize(ws) -> None:
    widths: Dict[int, int] = {}
    for row in ws.iter_rows():
        for cell in row:
            if cell.value is None:
                continue
            widths[cell.column] = max(widths.get(cell.column, 0), len(str(cell.value)))
    for column, width in widths.items():
        ws.column_dimensions[get_column_letter(column)].width = min(width + 2, MAX_COLUMN_WIDTH)


def _render_excel(model: ReportModel) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = "Report"
    ws.append(model.columns)
    for cell in ws[1]:
        cell.font = Font(bold=True)
    for row in model.rows:
        ws.append(list(row))

    ws.append([])
    for label, value in _metadata_rows(model):
        ws.append([label, value])
    ws.append([])
    ws.append(["Status", "Count"])
    for label, value in _summary_rows(model):
        ws.append([label, int(value) if value.isdigit() else value])

    for breakdown in model.breakdowns:
        ws.append([])
        ws.append([breakdown.title])
        ws.append(breakdown.headers)
        for row in breakdown.rows:
            ws.append(list(row))

    _autosize(ws)
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


RENDERERS: Dict[str, Callable[[ReportModel], bytes]] = {
    FORMAT_PDF: _render_pdf,
    FORMAT_EXCEL: _render_excel,
}


def render_report(model: ReportModel, report_format: str) -> bytes:
    """Render ``model`` fully in memory; raises ``RenderFailure`` on any error."""
    renderer = RENDERERS.get(report_format)
    if renderer is None:
        raise RenderFailure(f"Unsupported report format: {report_format}")
    try:
        content = renderer(model)
    except Exception as exc:
        logger.exception("Rendering %s report failed", report_format)
        raise RenderFailure(f"Failed to render {report_format} report") from exc
    if not content:
        raise RenderFailure(f"Renderer produced no {report_format} output")
    return content
