"""Tests for internly/pdf.py."""

import io
from datetime import date

from conftest import make_log

from internly.pdf import generate_weekly_report_pdf, report_filename


def test_report_filename_is_safe():
    assert report_filename("Jan 6 - Jan 12, 2025") == "Internly_WeeklyReport_Jan_6___Jan_12__2025.pdf"


def test_renders_to_stream():
    logs = [
        make_log("2025-01-07", 4, task_description="<b>Fixed</b> the & login bug", supervisor="Engr. Cruz"),
        make_log("2025-01-06", 8, activity_type=["Meeting", "Research"]),
    ]
    buffer = io.BytesIO()
    generate_weekly_report_pdf(buffer, logs, "Jan 6 - Jan 12, 2025", "Learned a lot.\n\nMore next week.",
                               "Ana Reyes", generated_on=date(2025, 1, 13))
    data = buffer.getvalue()
    assert data.startswith(b"%PDF")
    assert len(data) > 1000


def test_renders_to_path_without_reflection(tmp_path):
    target = tmp_path / report_filename("Week 1")
    generate_weekly_report_pdf(target, [], "Week 1", "", "Ana Reyes")
    assert target.exists()
    assert target.read_bytes().startswith(b"%PDF")


def test_long_reports_span_pages():
    logs = [make_log(f"2025-01-{day:02d}", 8, task_description="debugging the sync layer " * 20) for day in range(1, 29)]
    buffer = io.BytesIO()
    generate_weekly_report_pdf(buffer, logs, "January", "Done.", "Ana Reyes")
    # one /Type /Pages node plus at least two /Type /Page nodes
    assert buffer.getvalue().count(b"/Type /Page") >= 3
