"""Remote document store adapter: domain entities under the per-user layout.

Layout:
    users/{uid}
    users/{uid}/dailyLogs/{logId}
    users/{uid}/weeklyReports/{reportId}
    users/{uid}/notifications/{notificationId}
    supervisors/{supervisorId}            (shared)
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone

from internly.auth import AuthSession
from internly.docstore import MAX_BATCH_OPERATIONS, SERVER_TIMESTAMP, DocumentStore, doc_path, new_id
from internly.errors import NotFoundError, best_effort
from internly.models import (
    NOTIFICATION_TYPES,
    DailyLog,
    DailyLogPatch,
    Notification,
    Supervisor,
    User,
    UserPatch,
    WeeklyReport,
)

logger = logging.getLogger(__name__)

USERS = "users"
DAILY_LOGS = "dailyLogs"
WEEKLY_REPORTS = "weeklyReports"
NOTIFICATIONS = "notifications"
SUPERVISORS = "supervisors"

PER_USER_COLLECTIONS = (DAILY_LOGS, WEEKLY_REPORTS, NOTIFICATIONS)


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def user_path(uid: str) -> str:
    return doc_path(USERS, uid)


def subcollection(uid: str, name: str) -> str:
    return doc_path(USERS, uid, name)


class RemoteStore:
    """Reads and writes domain entities, scoped to the session's owner."""

    def __init__(self, db: DocumentStore, session: AuthSession | None = None, page_size: int = 50):
        self.db = db
        self.session = session
        self.page_size = page_size

    def resolve_uid(self, fallback: str | None = None) -> str:
        """The live session uid, else the caller-supplied id."""
        uid = (self.session.current_uid if self.session else None) or fallback
        if not uid:
            raise ValueError("No active session and no owner id supplied")
        return uid

    # ── Users ─────────────────────────────────────────────────

    def save_user(self, user: User) -> User:
        uid = self.resolve_uid(user.id)
        saved = replace(user, id=uid)
        self.db.set(user_path(uid), {**saved.to_dict(), "updatedAt": SERVER_TIMESTAMP}, merge=True)
        return saved

    def get_user(self, uid: str) -> User | None:
        data = self.db.get(user_path(uid))
        return User.from_dict(data, uid=uid) if data is not None else None

    def update_user(self, uid: str, patch: UserPatch) -> User:
        """Merge patch fields into the profile. Raises NotFoundError if absent."""
        self.db.update(user_path(uid), {**patch.to_fields(), "updatedAt": SERVER_TIMESTAMP})
        user = self.get_user(uid)
        if user is None:
            raise NotFoundError(f"User not found: {uid}")
        return user

    def find_user_by_email(self, email: str) -> User | None:
        snaps = self.db.query(USERS, where=[("email", "==", email)], limit=1)
        return User.from_dict(snaps[0].data, uid=snaps[0].id) if snaps else None

    def _append_supervisor(self, uid: str, name: str) -> bool:
        data = self.db.get(user_path(uid))
        if data is None:
            return False
        supervisors = list(data.get("supervisors") or [])
        if name in supervisors:
            return False
        self.db.update(user_path(uid), {"supervisors": supervisors + [name]})
        logger.info("Added supervisor %r to user %s", name, uid)
        return True

    # ── Daily logs ────────────────────────────────────────────

    def get_daily_logs(self, user_id: str | None = None) -> list[DailyLog]:
        uid = self.resolve_uid(user_id)
        snaps = self.db.query(subcollection(uid, DAILY_LOGS), order_by="entryDate", descending=True)
        return [replace(DailyLog.from_dict(s.data, doc_id=s.id), id=s.id, user_id=uid) for s in snaps]

    def add_daily_log(self, log: DailyLog) -> DailyLog:
        uid = self.resolve_uid(log.user_id)
        now = now_iso()
        created = replace(log, id=log.id or new_id(), user_id=uid, created_at=now, updated_at=now)
        self.db.set(doc_path(subcollection(uid, DAILY_LOGS), created.id), {
            **created.to_dict(),
            "_createdAt": SERVER_TIMESTAMP,
            "_updatedAt": SERVER_TIMESTAMP,
        })
        if created.supervisor:
            best_effort("supervisor auto-append", self._append_supervisor, uid, created.supervisor)
        return created

    def update_daily_log(self, log_id: str, patch: DailyLogPatch, user_id: str | None = None) -> DailyLog:
        """Merge patch fields into a log. Raises NotFoundError if the log is absent."""
        uid = self.resolve_uid(user_id)
        path = doc_path(subcollection(uid, DAILY_LOGS), log_id)
        existing = self.db.get(path)
        if existing is None:
            raise NotFoundError(f"Log not found: {log_id}")

        now = now_iso()
        self.db.update(path, {**patch.to_fields(), "updatedAt": now, "_updatedAt": SERVER_TIMESTAMP})
        updated = replace(patch.apply(DailyLog.from_dict(existing, doc_id=log_id)), id=log_id, updated_at=now)
        if isinstance(patch.supervisor, str) and patch.supervisor:
            best_effort("supervisor auto-append", self._append_supervisor, uid, patch.supervisor)
        return updated

    def delete_daily_log(self, log_id: str, user_id: str | None = None) -> None:
        uid = self.resolve_uid(user_id)
        self.db.delete(doc_path(subcollection(uid, DAILY_LOGS), log_id))

    # ── Weekly reports ────────────────────────────────────────

    def get_weekly_reports(self, user_id: str | None = None) -> list[WeeklyReport]:
        uid = self.resolve_uid(user_id)
        snaps = self.db.query(subcollection(uid, WEEKLY_REPORTS), order_by="weekStart", descending=True)
        return [replace(WeeklyReport.from_dict(s.data, doc_id=s.id), id=s.id, user_id=uid) for s in snaps]

    def save_weekly_report(self, report: WeeklyReport) -> WeeklyReport:
        """Upsert keyed on (owner, week_start); an existing report keeps its id and created_at."""
        uid = self.resolve_uid(report.user_id)
        collection = subcollection(uid, WEEKLY_REPORTS)
        existing = self.db.query(collection, where=[("weekStart", "==", report.week_start)], limit=1)

        if existing:
            saved = replace(
                report,
                id=existing[0].id,
                user_id=uid,
                created_at=existing[0].data.get("createdAt") or now_iso(),
            )
            fields = saved.to_dict()
            del fields["id"], fields["createdAt"]
            self.db.update(doc_path(collection, saved.id), {**fields, "_updatedAt": SERVER_TIMESTAMP})
        else:
            saved = replace(report, id=report.id or new_id(), user_id=uid, created_at=report.created_at or now_iso())
            self.db.set(doc_path(collection, saved.id), {
                **saved.to_dict(),
                "_createdAt": SERVER_TIMESTAMP,
                "_updatedAt": SERVER_TIMESTAMP,
            })
        return saved

    # ── Notifications ─────────────────────────────────────────

    def get_notifications(self, user_id: str | None = None, max_results: int | None = None) -> list[Notification]:
        uid = self.resolve_uid(user_id)
        snaps = self.db.query(
            subcollection(uid, NOTIFICATIONS),
            order_by="createdAt",
            descending=True,
            limit=max_results or self.page_size,
        )
        return [replace(Notification.from_dict(s.data, doc_id=s.id), id=s.id, user_id=uid) for s in snaps]

    def create_notification(self, notification: Notification) -> Notification:
        if notification.type not in NOTIFICATION_TYPES:
            raise ValueError(f"Invalid notification type: {notification.type}")
        uid = self.resolve_uid(notification.user_id)
        created = replace(notification, id=new_id(), user_id=uid, created_at=now_iso())
        self.db.set(
            doc_path(subcollection(uid, NOTIFICATIONS), created.id),
            {**created.to_dict(), "_createdAt": SERVER_TIMESTAMP},
        )
        return created

    def mark_notification_read(self, notification_id: str, user_id: str | None = None) -> None:
        uid = self.resolve_uid(user_id)
        self.db.update(doc_path(subcollection(uid, NOTIFICATIONS), notification_id), {"read": True})

    def mark_all_notifications_read(self, user_id: str | None = None) -> int:
        uid = self.resolve_uid(user_id)
        unread = self.db.query(subcollection(uid, NOTIFICATIONS), where=[("read", "==", False)])
        for start in range(0, len(unread), MAX_BATCH_OPERATIONS):
            batch = self.db.batch()
            for snap in unread[start:start + MAX_BATCH_OPERATIONS]:
                batch.update(snap.path, {"read": True})
            batch.commit()
        return len(unread)

    def delete_notification(self, notification_id: str, user_id: str | None = None) -> None:
        uid = self.resolve_uid(user_id)
        self.db.delete(doc_path(subcollection(uid, NOTIFICATIONS), notification_id))

    # ── Supervisors (shared) ──────────────────────────────────

    def get_supervisors(self) -> list[Supervisor]:
        return [Supervisor.from_dict(s.data, doc_id=s.id) for s in self.db.query(SUPERVISORS)]

    def add_supervisor(self, supervisor: Supervisor) -> Supervisor:
        created = replace(supervisor, id=new_id(), created_at=now_iso())
        self.db.set(doc_path(SUPERVISORS, created.id), {**created.to_dict(), "_createdAt": SERVER_TIMESTAMP})
        return created

    def delete_supervisor(self, supervisor_id: str) -> None:
        self.db.delete(doc_path(SUPERVISORS, supervisor_id))
