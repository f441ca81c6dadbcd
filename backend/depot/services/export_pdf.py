"""PDF export for tabular reports using fpdf2."""
from __future__ import annotations

import io
from pathlib import Path

from fpdf import FPDF
from fpdf.enums import XPos, YPos

from backend.depot.schemas.reports import ReportData

# ── Shared helpers ──────────────────────────────────────────────────────────

_COL_BG = (31, 78, 121)   # dark blue header
_LINE_H = 7
_PAGE_W = 277  # A4 landscape minus margins
_FONT_DIR = Path(__file__).parent / "fonts"
_FONT = "DejaVuSans"


def _setup_font(pdf: FPDF) -> None:
    """Embed DejaVu Sans so names in any script render (built-in fonts are latin-1 only)."""
    pdf.add_font(_FONT, "", str(_FONT_DIR / "DejaVuSans.ttf"))
    pdf.add_font(_FONT, "B", str(_FONT_DIR / "DejaVuSans-Bold.ttf"))


def _new_pdf(title: str, subtitle: str) -> FPDF:
    """Create a landscape PDF with title and subtitle."""
    pdf = FPDF(orientation="L")
    pdf.add_page()
    pdf.set_auto_page_break(auto=True, margin=15)
    _setup_font(pdf)
    pdf.set_font(_FONT, "B", 16)
    pdf.cell(0, 10, title, new_x=XPos.LMARGIN, new_y=YPos.NEXT)
    pdf.set_font(_FONT, "", 9)
    pdf.cell(0, 6, subtitle, new_x=XPos.LMARGIN, new_y=YPos.NEXT)
    pdf.ln(4)
    return pdf


def _header_row(pdf: FPDF, headers: list[str], widths: list[float]) -> None:
    """Draw a colored header row."""
    pdf.set_fill_color(*_COL_BG)
    pdf.set_text_color(255, 255, 255)
    pdf.set_font(_FONT, "B", 9)
    for h, w in zip(headers, widths):
        pdf.cell(w, _LINE_H, h, border=1, fill=True)
    pdf.ln()
    pdf.set_text_color(0, 0, 0)


def _data_row(pdf: FPDF, values: list[str], widths: list[float]) -> None:
    """Draw a data row, truncating cells that would overflow."""
    pdf.set_font(_FONT, "", 8)
    for v, w in zip(values, widths):
        text = v
        while text and pdf.get_string_width(text) > w - 2:
            text = text[:-1]
        pdf.cell(w, _LINE_H, text, border="B")
    pdf.ln()


def _to_bytes(pdf: FPDF) -> io.BytesIO:
    """Output PDF to BytesIO."""
    buf = io.BytesIO()
    pdf.output(buf)
    buf.seek(0)
    return buf


def export_report_pdf(report: ReportData) -> io.BytesIO:
    pdf = _new_pdf(report.title, report.subtitle)
    width = _PAGE_W / max(len(report.columns), 1)
    widths = [width] * len(report.columns)

    _header_row(pdf, report.columns, widths)
    for values in report.rows:
        if pdf.will_page_break(_LINE_H):
            pdf.add_page()
            _header_row(pdf, report.columns, widths)
        _data_row(pdf, values, widths)

    pdf.ln(3)
    pdf.set_font(_FONT, "", 8)
    pdf.cell(
        0,
        6,
        f"Rows: {len(report.rows)}  |  Generated: "
        f"{report.generated_at.strftime('%Y-%m-%d %H:%M UTC')}",
        new_x=XPos.LMARGIN,
        new_y=YPos.NEXT,
    )
    return _to_bytes(pdf)
