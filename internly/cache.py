"""Local cache store: a JSON-file key-value store for instant and offline reads.

Holds known users, the current-user marker, daily logs, weekly reports,
the remembered login email and a pending sign-up. Reads never raise; a
missing or corrupt file is an empty cache.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from internly.fileio import read_json, write_json_atomic
from internly.models import DailyLog, PendingSignup, User, UserPatch, WeeklyReport
from internly.workspace import cache_path

KEYS = {
    "USERS": "internly_users",
    "CURRENT_USER": "internly_current_user",
    "DAILY_LOGS": "internly_daily_logs",
    "WEEKLY_REPORTS": "internly_weekly_reports",
    "REMEMBER_ME": "internly_remember_me",
    "PENDING_SIGNUP": "internly_pending_signup",
}


class LocalCache:
    def __init__(self, path: Path | None = None):
        self.path = path or cache_path()

    # ── raw key access ────────────────────────────────────────

    def _get(self, key: str, fallback: Any) -> Any:
        value = read_json(self.path).get(KEYS[key])
        return fallback if value is None else value

    def _set(self, key: str, value: Any) -> None:
        data = read_json(self.path)
        data[KEYS[key]] = value
        write_json_atomic(self.path, data)

    def _remove(self, key: str) -> None:
        data = read_json(self.path)
        if data.pop(KEYS[key], None) is not None:
            write_json_atomic(self.path, data)

    # ── users ─────────────────────────────────────────────────

    def get_current_user(self) -> User | None:
        data = self._get("CURRENT_USER", None)
        return User.from_dict(data) if isinstance(data, dict) else None

    def set_current_user(self, user: User) -> None:
        self.upsert_user(user)
        self._set("CURRENT_USER", user.to_dict())

    def clear_current_user(self) -> None:
        """Drop the current-user marker; cached logs and reports stay."""
        self._remove("CURRENT_USER")

    def get_users(self) -> list[User]:
        return [User.from_dict(u) for u in self._get("USERS", []) if isinstance(u, dict)]

    def get_user(self, user_id: str) -> User | None:
        for user in self.get_users():
            if user.id == user_id:
                return user
        return None

    def find_user_by_email(self, email: str) -> User | None:
        wanted = email.strip().lower()
        for user in self.get_users():
            if user.email.lower() == wanted:
                return user
        return None

    def upsert_user(self, user: User) -> None:
        users = [u for u in self.get_users() if u.id != user.id]
        users.append(user)
        self._set("USERS", [u.to_dict() for u in users])

    def update_user(self, user_id: str, patch: UserPatch) -> User:
        user = self.get_user(user_id)
        if user is None:
            raise KeyError(f"User not cached: {user_id}")
        updated = patch.apply(user)
        self.upsert_user(updated)
        current = self.get_current_user()
        if current is not None and current.id == user_id:
            self._set("CURRENT_USER", updated.to_dict())
        return updated

    # ── daily logs ────────────────────────────────────────────

    def _all_logs(self) -> list[DailyLog]:
        return [DailyLog.from_dict(entry) for entry in self._get("DAILY_LOGS", []) if isinstance(entry, dict)]

    def get_daily_logs(self, user_id: str) -> list[DailyLog]:
        return [log for log in self._all_logs() if log.user_id == user_id]

    def replace_daily_logs(self, user_id: str, logs: list[DailyLog]) -> None:
        others = [log for log in self._all_logs() if log.user_id != user_id]
        self._set("DAILY_LOGS", [log.to_dict() for log in others + list(logs)])

    def put_daily_log(self, log: DailyLog) -> None:
        logs = [entry for entry in self._all_logs() if entry.id != log.id]
        logs.append(log)
        self._set("DAILY_LOGS", [entry.to_dict() for entry in logs])

    def remove_daily_log(self, log_id: str) -> None:
        logs = self._all_logs()
        kept = [entry for entry in logs if entry.id != log_id]
        if len(kept) != len(logs):
            self._set("DAILY_LOGS", [entry.to_dict() for entry in kept])

    # ── weekly reports ────────────────────────────────────────

    def _all_reports(self) -> list[WeeklyReport]:
        return [WeeklyReport.from_dict(r) for r in self._get("WEEKLY_REPORTS", []) if isinstance(r, dict)]

    def get_weekly_reports(self, user_id: str) -> list[WeeklyReport]:
        return [r for r in self._all_reports() if r.user_id == user_id]

    def replace_weekly_reports(self, user_id: str, reports: list[WeeklyReport]) -> None:
        others = [r for r in self._all_reports() if r.user_id != user_id]
        self._set("WEEKLY_REPORTS", [r.to_dict() for r in others + list(reports)])

    def save_weekly_report(self, report: WeeklyReport) -> WeeklyReport:
        """Upsert on (user_id, week_start), keeping the original id and created_at."""
        reports = self._all_reports()
        for i, existing in enumerate(reports):
            if existing.user_id == report.user_id and existing.week_start == report.week_start:
                report.id = existing.id or report.id
                report.created_at = existing.created_at or report.created_at
                reports[i] = report
                break
        else:
            reports.append(report)
        self._set("WEEKLY_REPORTS", [r.to_dict() for r in reports])
        return report

    # ── login helpers ─────────────────────────────────────────

    def remember_email(self, email: str | None) -> None:
        if email:
            self._set("REMEMBER_ME", email)
        else:
            self._remove("REMEMBER_ME")

    def get_remembered_email(self) -> str:
        return str(self._get("REMEMBER_ME", ""))

    def store_pending_signup(self, pending: PendingSignup) -> None:
        self._set("PENDING_SIGNUP", pending.to_dict())

    def get_pending_signup(self) -> PendingSignup | None:
        data = self._get("PENDING_SIGNUP", None)
        return PendingSignup.from_dict(data) if isinstance(data, dict) else None

    def clear_pending_signup(self) -> None:
        self._remove("PENDING_SIGNUP")
