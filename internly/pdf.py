"""Weekly report PDF rendering with reportlab."""

from __future__ import annotations

import re
from datetime import date
from pathlib import Path
from typing import IO
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from internly.models import DailyLog

NO_REFLECTION = "No reflection was provided for this week."

DESCRIPTION_LIMIT = 200

INDIGO = colors.HexColor("#6366f1")
SLATE_100 = colors.HexColor("#f1f5f9")
SLATE_50 = colors.HexColor("#f8fafc")
SLATE_400 = colors.HexColor("#94a3b8")

_TAG_RE = re.compile(r"<[^>]*>")


def report_filename(week_label: str) -> str:
    return f"Internly_WeeklyReport_{re.sub(r'[^a-zA-Z0-9]', '_', week_label)}.pdf"


def _plain(text: str, limit: int | None = None) -> str:
    text = _TAG_RE.sub("", text or "")
    return text[:limit] if limit else text


def _hours(value: float) -> str:
    return f"{value:g}"


def generate_weekly_report_pdf(
    target: str | Path | IO[bytes],
    logs: list[DailyLog],
    week_label: str,
    reflection: str,
    user_name: str,
    generated_on: date | None = None,
) -> None:
    """Render one week's logs and reflection to *target* (a path or binary stream)."""
    generated_on = generated_on or date.today()
    margin = 20 * mm
    doc = SimpleDocTemplate(
        str(target) if isinstance(target, Path) else target,
        pagesize=A4,
        leftMargin=margin,
        rightMargin=margin,
        topMargin=margin,
        bottomMargin=margin,
        title=f"Internly Weekly Report - {week_label}",
        author=user_name,
    )
    styles = getSampleStyleSheet()
    cell = ParagraphStyle("cell", parent=styles["Normal"], fontSize=7.5, leading=9)
    body = ParagraphStyle("body", parent=styles["Normal"], fontSize=9, leading=12)

    elements = [
        Paragraph("INTERNLY", styles["Title"]),
        Paragraph("Weekly Internship Report", styles["Heading3"]),
        Paragraph(f"Intern: {escape(user_name)} &nbsp;&nbsp; Period: {escape(week_label)}", body),
        Spacer(1, 8 * mm),
        Paragraph("Daily Activity Log", styles["Heading2"]),
    ]

    rows: list[list[object]] = [["Date", "Activity", "Description", "Supervisor", "Hours"]]
    total = 0.0
    for log in sorted(logs, key=lambda entry: entry.day):
        rows.append([
            f"{log.day:%b %d, %Y}",
            Paragraph(escape(", ".join(log.activity_type)), cell),
            Paragraph(escape(_plain(log.task_description, DESCRIPTION_LIMIT)), cell),
            Paragraph(escape(log.supervisor), cell),
            _hours(log.daily_hours),
        ])
        total += log.daily_hours
    rows.append(["Total Hours:", "", "", "", _hours(round(total, 2))])

    width = doc.width
    table = Table(rows, colWidths=[25 * mm, 30 * mm, width - 95 * mm, 25 * mm, 15 * mm], repeatRows=1)
    style = [
        ("BACKGROUND", (0, 0), (-1, 0), SLATE_100),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, -1), 8),
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
        ("LINEBELOW", (0, 0), (-1, -2), 0.5, SLATE_100),
        ("BACKGROUND", (0, -1), (-1, -1), INDIGO),
        ("TEXTCOLOR", (0, -1), (-1, -1), colors.white),
        ("FONTNAME", (0, -1), (-1, -1), "Helvetica-Bold"),
        ("SPAN", (0, -1), (3, -1)),
    ]
    for i in range(1, len(rows) - 1, 2):
        style.append(("BACKGROUND", (0, i), (-1, i), SLATE_50))
    table.setStyle(TableStyle(style))
    elements.append(table)

    elements.append(Spacer(1, 10 * mm))
    elements.append(Paragraph("Weekly Learning &amp; Reflections", styles["Heading2"]))
    for paragraph in (reflection or NO_REFLECTION).splitlines() or [NO_REFLECTION]:
        elements.append(Paragraph(escape(paragraph) or "&nbsp;", body))

    footer = f"Generated by Internly • {generated_on:%B %d, %Y}"

    def draw_footer(canvas, document):
        canvas.saveState()
        canvas.setStrokeColor(SLATE_100)
        canvas.line(margin, 15 * mm, A4[0] - margin, 15 * mm)
        canvas.setFont("Helvetica", 7)
        canvas.setFillColor(SLATE_400)
        canvas.drawString(margin, 10 * mm, footer)
        canvas.restoreState()

    doc.build(elements, onFirstPage=draw_footer, onLaterPages=draw_footer)
