"""Flatten assembled records into tabular rows and serialize them to CSV or PDF."""

from __future__ import annotations

import csv
from datetime import datetime
from io import BytesIO, StringIO
from typing import Any, Iterable
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.cidfonts import UnicodeCIDFont
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from assembly import display_value
from schemas import AssembledRecord

FIXED_COLUMNS = ["Date", "Time", "Category", "Notes"]
UNKNOWN_CATEGORY = "Unknown"
BOM = "\ufeff"

# Built-in CID font with CJK glyphs; legacy category names are Chinese
PDF_FONT = "STSong-Light"
pdfmetrics.registerFont(UnicodeCIDFont(PDF_FONT))

styles = getSampleStyleSheet()
title_style = ParagraphStyle(
    "ExportTitle",
    parent=styles["Heading1"],
    fontName=PDF_FONT,
    fontSize=16,
    spaceAfter=6,
    textColor=colors.HexColor("#2d3748"),
)
cell_style = ParagraphStyle(
    "ExportCell",
    parent=styles["Normal"],
    fontName=PDF_FONT,
    fontSize=8,
    leading=10,
    textColor=colors.HexColor("#2d3748"),
)
header_style = ParagraphStyle("ExportHeader", parent=cell_style, textColor=colors.HexColor("#1a202c"))


def _cell(value: Any) -> str:
    if value is None:
        return ""
    return display_value(value)


def export_rows(records: Iterable[AssembledRecord]) -> tuple[list[str], list[dict[str, str]]]:
    """One row per record; dynamic columns are only those populated somewhere in the batch."""
    columns = list(FIXED_COLUMNS)
    rows = []
    for record in records:
        row = {
            "Date": record.record_date,
            "Time": record.record_time or "",
            "Category": record.category_name or UNKNOWN_CATEGORY,
            "Notes": record.notes or "",
        }
        for field_name, value in record.data.items():
            if field_name in FIXED_COLUMNS:
                continue
            if field_name not in columns:
                columns.append(field_name)
            row[field_name] = _cell(value)
        rows.append(row)
    return columns, rows


def to_csv(columns: list[str], rows: list[dict[str, str]]) -> str:
    """Delimited text with a header row, every cell quoted, and a leading BOM for spreadsheets."""
    output = StringIO()
    writer = csv.writer(output, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(columns)
    for row in rows:
        writer.writerow([row.get(column, "") for column in columns])
    return BOM + output.getvalue()


def to_pdf(columns: list[str], rows: list[dict[str, str]], title: str = "Health Records") -> bytes:
    """Paginated table layout of the same rows; the header row repeats on every page."""
    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=landscape(A4),
        rightMargin=12 * mm,
        leftMargin=12 * mm,
        topMargin=12 * mm,
        bottomMargin=12 * mm,
        title=title,
    )

    story = [
        Paragraph(escape(title), title_style),
        Paragraph(f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M')}", cell_style),
        Spacer(1, 4 * mm),
    ]

    data = [[Paragraph(escape(column), header_style) for column in columns]]
    for row in rows:
        data.append([Paragraph(escape(row.get(column, "")), cell_style) for column in columns])
    if not rows:
        data.append([Paragraph("No records in this period", cell_style)] + [""] * (len(columns) - 1))

    col_width = doc.width / len(columns)
    table = Table(data, colWidths=[col_width] * len(columns), repeatRows=1)
    table.setStyle(
        TableStyle(
            [
                ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#edf2f7")),
                ("VALIGN", (0, 0), (-1, -1), "TOP"),
                ("GRID", (0, 0), (-1, -1), 0.5, colors.HexColor("#cbd5e0")),
                ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, colors.HexColor("#f7fafc")]),
            ]
        )
    )
    story.append(table)

    doc.build(story)
    return buffer.getvalue()
