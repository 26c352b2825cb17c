"""Tests for internly/models.py — document mapping, patches and validation."""

import pytest

from internly.models import (
    UNSET,
    Attachment,
    DailyLog,
    DailyLogPatch,
    Notification,
    PendingSignup,
    User,
    UserPatch,
    WeeklyReport,
    validate_daily_log,
)


def test_user_from_dict_defaults():
    u = User.from_dict({"name": "Ana", "email": "ana@example.com"}, uid="u1")
    assert u.id == "u1"
    assert u.total_required_hours == 480
    assert u.supervisors == []
    assert u.reminder_enabled is True
    assert u.end_date is None


def test_user_to_dict_uses_document_keys():
    u = User(id="u1", name="Ana", total_required_hours=300, start_date="2025-01-06")
    d = u.to_dict()
    assert d["totalRequiredHours"] == 300
    assert d["startDate"] == "2025-01-06"
    assert "total_required_hours" not in d


def test_daily_log_from_document():
    data = {
        "userId": "u1",
        "entryDate": "2025-01-06",
        "activityType": ["Coding", "Meeting"],
        "taskDescription": "Built the login page",
        "supervisor": "Engr. Cruz",
        "dailyHours": 8,
        "attachments": [{"id": "a1", "name": "shot.png", "url": "https://x/shot.png", "type": "image/png"}],
    }
    log = DailyLog.from_dict(data, doc_id="log1")
    assert log.id == "log1"
    assert log.daily_hours == 8.0
    assert log.day.isoformat() == "2025-01-06"
    assert log.attachments[0].name == "shot.png"


def test_daily_log_omits_empty_attachments():
    log = DailyLog(id="l1", entry_date="2025-01-06", activity_type=["Coding"], daily_hours=4)
    assert "attachments" not in log.to_dict()


def test_weekly_report_embeds_logs():
    report = WeeklyReport.from_dict({
        "weekStart": "2025-01-06",
        "weekEnd": "2025-01-12",
        "reflection": "Learned a lot",
        "logs": [{"entryDate": "2025-01-06", "dailyHours": 4}, "not-a-log"],
    }, doc_id="r1")
    assert report.id == "r1"
    assert len(report.logs) == 1
    assert report.to_dict()["logs"][0]["entryDate"] == "2025-01-06"


def test_notification_link_only_when_set():
    assert "link" not in Notification(title="Hi").to_dict()
    assert Notification(title="Hi", link="/reports").to_dict()["link"] == "/reports"


def test_pending_signup_from_empty():
    p = PendingSignup.from_dict({})
    assert p.email == ""
    assert p.token_expires_at == 0


# ── Patches ───────────────────────────────────────────────────


def test_patch_from_camel_case_keys():
    patch = UserPatch.from_dict({"totalRequiredHours": 600, "endDate": "2025-06-30"})
    assert patch.total_required_hours == 600
    assert patch.name is UNSET
    assert patch.to_fields() == {"totalRequiredHours": 600, "endDate": "2025-06-30"}


def test_patch_rejects_unknown_keys():
    with pytest.raises(TypeError):
        DailyLogPatch.from_dict({"favouriteColour": "blue"})


def test_patch_apply_only_touches_set_fields():
    log = DailyLog(id="l1", entry_date="2025-01-06", activity_type=["Coding"], supervisor="Cruz", daily_hours=4)
    updated = DailyLogPatch(daily_hours=6).apply(log)
    assert updated.daily_hours == 6
    assert updated.supervisor == "Cruz"
    assert log.daily_hours == 4


def test_patch_apply_converts_attachments():
    log = DailyLog(id="l1", entry_date="2025-01-06")
    patch = DailyLogPatch(attachments=[{"id": "a1", "name": "doc.pdf", "url": "u", "type": "application/pdf"}])
    updated = patch.apply(log)
    assert isinstance(updated.attachments[0], Attachment)
    assert patch.to_fields()["attachments"][0]["name"] == "doc.pdf"


def test_empty_patch():
    assert UserPatch().is_empty() is True
    assert UserPatch(name="Ana").is_empty() is False


# ── Validation ────────────────────────────────────────────────


def test_validate_daily_log_ok():
    log = DailyLog(entry_date="2025-01-06", activity_type=["Coding"], daily_hours=8)
    assert validate_daily_log(log) == []


def test_validate_daily_log_errors():
    log = DailyLog(entry_date="06/01/2025", activity_type=["Napping"], daily_hours=30)
    errors = validate_daily_log(log)
    assert any("entry date" in e for e in errors)
    assert any("Napping" in e for e in errors)
    assert any("between 0 and 24" in e for e in errors)


def test_validate_daily_log_needs_activity():
    log = DailyLog(entry_date="2025-01-06", activity_type=[], daily_hours=2)
    assert validate_daily_log(log) == ["Select at least one activity type"]
