"""Excel export for tabular reports using openpyxl."""
from __future__ import annotations

import io
import re
from typing import Any

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from backend.depot.schemas.reports import ReportData

# ── Shared styling constants ────────────────────────────────────────────────

_HEADER_FONT = Font(name="Calibri", bold=True, color="FFFFFF", size=11)
_HEADER_FILL = PatternFill(start_color="1F4E79", end_color="1F4E79", fill_type="solid")
_QTY_FMT = "#,##0.000"
_RIGHT = Alignment(horizontal="right")
_LEFT = Alignment(horizontal="left")
_QTY_RE = re.compile(r"^-?\d+\.\d{3}$")


def _auto_width(ws: Any) -> None:
    """Auto-fit column widths based on content."""
    for col_idx in range(1, ws.max_column + 1):
        max_len = 0
        col_letter = get_column_letter(col_idx)
        for row in ws.iter_rows(min_col=col_idx, max_col=col_idx, values_only=False):
            cell = row[0]
            if cell.value is not None:
                max_len = max(max_len, len(str(cell.value)))
        ws.column_dimensions[col_letter].width = min(max_len + 4, 40)


def _write_header_row(ws: Any, row: int, values: list[str]) -> None:
    """Write a styled header row."""
    for col, val in enumerate(values, 1):
        cell = ws.cell(row=row, column=col, value=val)
        cell.font = _HEADER_FONT
        cell.fill = _HEADER_FILL
        cell.alignment = _LEFT


def _write_title(ws: Any, title: str, subtitle: str) -> int:
    """Write report title and subtitle, return next available row."""
    ws.cell(row=1, column=1, value=title).font = Font(name="Calibri", bold=True, size=14)
    ws.cell(row=2, column=1, value=subtitle).font = Font(name="Calibri", size=10, italic=True)
    return 4


def _to_workbook(ws: Any, wb: Workbook) -> io.BytesIO:
    """Finalize workbook and return as BytesIO."""
    _auto_width(ws)
    buf = io.BytesIO()
    wb.save(buf)
    buf.seek(0)
    return buf


def _cell_value(value: str) -> str | float:
    if _QTY_RE.match(value):
        return float(value)
    return value


def export_report_excel(report: ReportData) -> io.BytesIO:
    wb = Workbook()
    ws = wb.active
    ws.title = report.title[:31]

    row = _write_title(ws, report.title, report.subtitle)
    _write_header_row(ws, row, report.columns)
    row += 1

    for values in report.rows:
        for col, raw in enumerate(values, 1):
            value = _cell_value(raw)
            cell = ws.cell(row=row, column=col, value=value)
            if isinstance(value, float):
                cell.number_format = _QTY_FMT
                cell.alignment = _RIGHT
        row += 1

    ws.cell(row=row + 1, column=1, value=f"Rows: {len(report.rows)}").font = Font(
        name="Calibri", size=9, italic=True
    )
    ws.cell(
        row=row + 2,
        column=1,
        value=f"Generated: {report.generated_at.strftime('%Y-%m-%d %H:%M UTC')}",
    ).font = Font(name="Calibri", size=9, italic=True)
    return _to_workbook(ws, wb)
