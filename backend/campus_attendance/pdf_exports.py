from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date
from io import BytesIO
from pathlib import Path
from typing import Any, Sequence

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas
from reportlab.platypus import Table, TableStyle

from .config import settings
from .exceptions import NothingToExportError, ReportRenderError
from .schemas import MonthlyAttendanceData
from .timeutil import EMPTY_CLOCK, EMPTY_HOURS, format_clock, format_hours, weekday_abbr

logger = logging.getLogger(__name__)

PAGE_SIZE = landscape(A4)
PAGE_WIDTH, PAGE_HEIGHT = PAGE_SIZE
LEFT_MARGIN = 20 * mm
RIGHT_MARGIN = 20 * mm
CONTENT_WIDTH = PAGE_WIDTH - LEFT_MARGIN - RIGHT_MARGIN
LABEL_COL_WIDTH = 25 * mm

SINGLE_START_Y = 16 * mm
COMBINED_START_Y = 12 * mm
SECTION_GAP = 6 * mm
BOTTOM_THRESHOLD = 20 * mm

TABLE_FONT_SIZE = 7
TITLE_FONT_SIZE = 11
CELL_PADDING = 0.6 * mm
SUMMARY_SPAN = 10

PLAIN_ROW_HEIGHT = 6 * mm
PLAIN_HEADER_FONT_SIZE = 9
PLAIN_CELL_FONT_SIZE = 6

REPORT_TITLE = "ATTENDANCE REPORT"
FOOTER_LABEL = "Generated by Campus Attendance"
FOOTER_RULE_Y = 11 * mm
FOOTER_TEXT_Y = 7.6 * mm
FOOTER_FONT_SIZE = 8
MEDIA_TYPE = "application/pdf"

PALETTE = {
    "text": colors.HexColor("#0F172A"),
    "muted": colors.HexColor("#64748B"),
    "line": colors.HexColor("#D1D5DB"),
    "grid": colors.HexColor("#CBD5E1"),
    "band": colors.HexColor("#2196F3"),
    "summary_header": colors.HexColor("#E0F2FE"),
    "in_row": colors.HexColor("#E8F5E9"),
    "out_row": colors.HexColor("#FFF3E0"),
    "work_row": colors.HexColor("#EDF2F7"),
    "present_fill": colors.HexColor("#DCFFDC"),
    "present_text": colors.HexColor("#007800"),
    "absent_fill": colors.HexColor("#FFE0E0"),
    "absent_text": colors.HexColor("#A00000"),
}

(
    ROW_TITLE,
    ROW_IDENTITY,
    ROW_SUMMARY_HEADER,
    ROW_SUMMARY_VALUES,
    ROW_DAY_NUMBERS,
    ROW_DAY_NAMES,
    ROW_IN,
    ROW_OUT,
    ROW_WORK,
    ROW_STATUS,
) = range(10)


def _sanitize_filename_part(value: Any) -> str:
    return re.sub(r"[^A-Za-z0-9]", "_", str(value))


def single_report_filename(data: MonthlyAttendanceData) -> str:
    name = _sanitize_filename_part(data.user_name or "Unknown")
    return f"attendance_{name}_{data.month}_{data.year}.pdf"


def combined_report_filename(day: date | None = None) -> str:
    return f"attendance_combined_{(day or date.today()).isoformat()}.pdf"


def _band_widths(total_cols: int) -> dict[int, list[int]]:
    half = (total_cols - 1) // 2
    rem = (total_cols - 1) - (half * 2)
    summary = [SUMMARY_SPAN, SUMMARY_SPAN, total_cols - (SUMMARY_SPAN * 2)]
    return {
        ROW_TITLE: [total_cols],
        ROW_IDENTITY: [half + 1, half + rem],
        ROW_SUMMARY_HEADER: summary,
        ROW_SUMMARY_VALUES: summary,
    }


def _spanned(cells: Sequence[str], widths: Sequence[int]) -> list[str]:
    row: list[str] = []
    for text, width in zip(cells, widths):
        row.append(text)
        row.extend([""] * (width - 1))
    return row


def build_section_rows(data: MonthlyAttendanceData) -> list[list[str]]:
    """Lay out one user's month as the ten fixed label rows.

    Every row has ``1 + days_in_month`` cells; banded rows repeat empty
    strings under their spans.
    """
    days = range(1, data.days_in_month + 1)
    total_cols = 1 + len(days)
    widths = _band_widths(total_cols)
    summary = data.summary
    records = [data.record_for(day) for day in days]

    return [
        _spanned([REPORT_TITLE], widths[ROW_TITLE]),
        _spanned(
            [f"Employee Name: {data.user_name}", f"Report Month: {data.month}-{data.year}"],
            widths[ROW_IDENTITY],
        ),
        _spanned(["Present Days", "Absent Days", "Total Working Hours"], widths[ROW_SUMMARY_HEADER]),
        _spanned(
            [str(summary.present), str(summary.absent), format_hours(summary.total_working_hours)],
            widths[ROW_SUMMARY_VALUES],
        ),
        [""] + [str(day) for day in days],
        ["Day"] + [weekday_abbr(data.year, data.month_number, day) for day in days],
        ["IN"] + [format_clock(record.checkin_time) if record else EMPTY_CLOCK for record in records],
        ["OUT"]
        + [
            format_clock(record.checkout_time) if record and record.checkout_time is not None else EMPTY_CLOCK
            for record in records
        ],
        ["WORK"] + [format_hours(record.working_hours) if record else EMPTY_HOURS for record in records],
        ["Status"] + ["P" if record else "A" for record in records],
    ]


def _span_commands(total_cols: int) -> list[tuple[Any, ...]]:
    commands: list[tuple[Any, ...]] = []
    for row_index, widths in _band_widths(total_cols).items():
        start = 0
        for width in widths:
            if width > 1:
                commands.append(("SPAN", (start, row_index), (start + width - 1, row_index)))
            start += width
    return commands


def _section_table(data: MonthlyAttendanceData) -> Table:
    rows = build_section_rows(data)
    days = data.days_in_month
    day_width = (CONTENT_WIDTH - LABEL_COL_WIDTH) / days

    table = Table(rows, colWidths=[LABEL_COL_WIDTH] + [day_width] * days, hAlign="LEFT")

    style_commands: list[tuple[Any, ...]] = [
        ("FONT", (0, 0), (-1, -1), "Helvetica", TABLE_FONT_SIZE),
        ("TEXTCOLOR", (0, 0), (-1, -1), PALETTE["text"]),
        ("GRID", (0, 0), (-1, -1), 0.3, PALETTE["grid"]),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ("ALIGN", (1, ROW_DAY_NUMBERS), (-1, -1), "CENTER"),
        ("LEFTPADDING", (0, 0), (-1, -1), CELL_PADDING),
        ("RIGHTPADDING", (0, 0), (-1, -1), CELL_PADDING),
        ("TOPPADDING", (0, 0), (-1, -1), CELL_PADDING),
        ("BOTTOMPADDING", (0, 0), (-1, -1), CELL_PADDING),
        ("BACKGROUND", (0, ROW_TITLE), (-1, ROW_TITLE), PALETTE["band"]),
        ("TEXTCOLOR", (0, ROW_TITLE), (-1, ROW_TITLE), colors.white),
        ("FONT", (0, ROW_TITLE), (-1, ROW_TITLE), "Helvetica-Bold", TITLE_FONT_SIZE),
        ("FONT", (0, ROW_IDENTITY), (0, ROW_IDENTITY), "Helvetica-Bold", TABLE_FONT_SIZE),
        ("BACKGROUND", (0, ROW_SUMMARY_HEADER), (-1, ROW_SUMMARY_HEADER), PALETTE["summary_header"]),
        ("FONT", (0, ROW_SUMMARY_HEADER), (-1, ROW_SUMMARY_HEADER), "Helvetica-Bold", TABLE_FONT_SIZE),
        ("BACKGROUND", (0, ROW_DAY_NUMBERS), (-1, ROW_DAY_NUMBERS), PALETTE["band"]),
        ("TEXTCOLOR", (0, ROW_DAY_NUMBERS), (-1, ROW_DAY_NUMBERS), colors.white),
        ("FONT", (0, ROW_DAY_NUMBERS), (-1, ROW_DAY_NUMBERS), "Helvetica-Bold", TABLE_FONT_SIZE),
        ("BACKGROUND", (0, ROW_IN), (-1, ROW_IN), PALETTE["in_row"]),
        ("BACKGROUND", (0, ROW_OUT), (-1, ROW_OUT), PALETTE["out_row"]),
        ("BACKGROUND", (0, ROW_WORK), (-1, ROW_WORK), PALETTE["work_row"]),
        ("FONT", (0, ROW_IN), (0, ROW_STATUS), "Helvetica-Bold", TABLE_FONT_SIZE),
    ]

    for column, status in enumerate(rows[ROW_STATUS][1:], start=1):
        fill, text = (
            (PALETTE["present_fill"], PALETTE["present_text"])
            if status == "P"
            else (PALETTE["absent_fill"], PALETTE["absent_text"])
        )
        style_commands.extend(
            [
                ("BACKGROUND", (column, ROW_STATUS), (column, ROW_STATUS), fill),
                ("TEXTCOLOR", (column, ROW_STATUS), (column, ROW_STATUS), text),
                ("FONT", (column, ROW_STATUS), (column, ROW_STATUS), "Helvetica-Bold", TABLE_FONT_SIZE),
            ]
        )

    style_commands.extend(_span_commands(1 + days))
    table.setStyle(TableStyle(style_commands))
    return table


def _plain_section_height(data: MonthlyAttendanceData) -> float:
    return len(build_section_rows(data)) * PLAIN_ROW_HEIGHT


def _draw_plain_section(canv: canvas.Canvas, data: MonthlyAttendanceData, top: float) -> float:
    rows = build_section_rows(data)
    cell_width = (CONTENT_WIDTH - LABEL_COL_WIDTH) / data.days_in_month
    baseline = top + PLAIN_ROW_HEIGHT - (1.5 * mm)

    canv.saveState()
    canv.setFillColor(PALETTE["text"])
    canv.setFont("Helvetica-Bold", PLAIN_HEADER_FONT_SIZE)
    for row in rows[:ROW_DAY_NUMBERS]:
        canv.drawString(LEFT_MARGIN, PAGE_HEIGHT - baseline, "    ".join(cell for cell in row if cell))
        baseline += PLAIN_ROW_HEIGHT

    canv.setFont("Helvetica", PLAIN_CELL_FONT_SIZE)
    for row in rows[ROW_DAY_NUMBERS:]:
        canv.drawString(LEFT_MARGIN, PAGE_HEIGHT - baseline, row[0])
        for index, cell in enumerate(row[1:]):
            canv.drawString(LEFT_MARGIN + LABEL_COL_WIDTH + (index * cell_width), PAGE_HEIGHT - baseline, cell)
        baseline += PLAIN_ROW_HEIGHT
    canv.restoreState()

    return top + (len(rows) * PLAIN_ROW_HEIGHT)


@dataclass
class _PreparedSection:
    data: MonthlyAttendanceData
    table: Table | None
    height: float


def _prepare_section(canv: canvas.Canvas, data: MonthlyAttendanceData) -> _PreparedSection:
    try:
        table = _section_table(data)
        _, height = table.wrapOn(canv, CONTENT_WIDTH, PAGE_HEIGHT)
        return _PreparedSection(data=data, table=table, height=height)
    except Exception:
        logger.warning(
            "Table layout failed for user %s (%s %s); using plain text rendering",
            data.user_id,
            data.month,
            data.year,
            exc_info=True,
        )
        return _PreparedSection(data=data, table=None, height=_plain_section_height(data))


def _draw_section(canv: canvas.Canvas, section: _PreparedSection, top: float) -> float:
    if section.table is None:
        return _draw_plain_section(canv, section.data, top)
    section.table.drawOn(canv, LEFT_MARGIN, PAGE_HEIGHT - top - section.height)
    return top + section.height


def plan_section_positions(
    heights: Sequence[float],
    *,
    start_y: float = COMBINED_START_Y,
    gap: float = SECTION_GAP,
    page_height: float = PAGE_HEIGHT,
    bottom_threshold: float = BOTTOM_THRESHOLD,
) -> list[tuple[int, float]]:
    """Return ``(page_index, top_offset)`` for each section, packed top-down.

    A section moves to a fresh page when the cursor already sits inside the
    bottom threshold, or when the section would cross it. The first section
    of a page is always placed, whatever its height.
    """
    limit = page_height - bottom_threshold
    positions: list[tuple[int, float]] = []
    page = 0
    cursor = start_y
    page_has_section = False

    for height in heights:
        if page_has_section and (cursor > limit or cursor + height > limit):
            page += 1
            cursor = start_y
        positions.append((page, cursor))
        cursor += height + gap
        page_has_section = True

    return positions


class NumberedCanvas(canvas.Canvas):
    """Canvas that defers page output until the total page count is known."""

    def __init__(self, *args: Any, footer_label: str = FOOTER_LABEL, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.footer_label = footer_label
        self._pending_pages: list[dict[str, Any]] = []

    def showPage(self) -> None:
        self._pending_pages.append(dict(self.__dict__))
        self._startPage()

    def save(self) -> None:
        page_count = len(self._pending_pages)
        for page_state in self._pending_pages:
            self.__dict__.update(page_state)
            self._draw_footer(f"Page {self._pageNumber} of {page_count}")
            canvas.Canvas.showPage(self)
        canvas.Canvas.save(self)

    def _draw_footer(self, page_label: str) -> None:
        self.saveState()
        self.setStrokeColor(PALETTE["line"])
        self.setLineWidth(0.5)
        self.line(LEFT_MARGIN, FOOTER_RULE_Y, PAGE_WIDTH - RIGHT_MARGIN, FOOTER_RULE_Y)

        self.setFillColor(PALETTE["muted"])
        self.setFont("Helvetica", FOOTER_FONT_SIZE)
        self.drawString(LEFT_MARGIN, FOOTER_TEXT_Y, self.footer_label)
        self.drawRightString(PAGE_WIDTH - RIGHT_MARGIN, FOOTER_TEXT_Y, page_label)
        self.restoreState()


def _render_document(
    datas: Sequence[MonthlyAttendanceData],
    *,
    start_y: float,
    footer_label: str = FOOTER_LABEL,
) -> bytes:
    buffer = BytesIO()
    try:
        canv = NumberedCanvas(buffer, pagesize=PAGE_SIZE, footer_label=footer_label)
        canv.setTitle("Attendance Report")

        sections = [_prepare_section(canv, data) for data in datas]
        positions = plan_section_positions([section.height for section in sections], start_y=start_y)

        current_page = 0
        for section, (page, top) in zip(sections, positions):
            while current_page < page:
                canv.showPage()
                current_page += 1
            _draw_section(canv, section, top)

        canv.showPage()
        canv.save()
    except Exception as exc:
        logger.exception("Attendance PDF rendering failed for %d section(s)", len(datas))
        raise ReportRenderError(f"Failed to generate PDF: {exc}") from exc

    return buffer.getvalue()


def generate_single_report(data: MonthlyAttendanceData | None, *, footer_label: str = FOOTER_LABEL) -> bytes:
    if data is None:
        raise NothingToExportError("Nothing to export")
    return _render_document([data], start_y=SINGLE_START_Y, footer_label=footer_label)


def generate_combined_report(
    datas: Sequence[MonthlyAttendanceData],
    *,
    footer_label: str = FOOTER_LABEL,
) -> bytes:
    if not datas:
        raise NothingToExportError("Nothing to export")
    return _render_document(list(datas), start_y=COMBINED_START_Y, footer_label=footer_label)


def save_single_report(data: MonthlyAttendanceData, directory: Path | str | None = None) -> Path:
    target_dir = Path(directory) if directory is not None else (settings.report_output_dir or Path.cwd())
    content = generate_single_report(data)
    out_path = target_dir / single_report_filename(data)

    try:
        target_dir.mkdir(parents=True, exist_ok=True)
        out_path.write_bytes(content)
    except OSError as exc:
        raise ReportRenderError(f"Failed to write PDF to disk ({out_path}): {exc}") from exc

    logger.info("Saved attendance report -> %s", out_path)
    return out_path
