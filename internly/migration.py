"""Legacy layout migration and store maintenance.

The legacy layout kept every user's documents in shared top-level
collections (dailyLogs, weeklyReports, notifications), told apart only by
a userId field. The current layout nests them under users/{uid}/.

migrate_flat_to_subcollections runs on every login and copies at most one
batch per collection per call. The admin operations below walk the whole
store and are run by hand from cli/admin.py.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any

from internly.docstore import MAX_BATCH_OPERATIONS, SERVER_TIMESTAMP, DocumentStore, doc_path, new_id
from internly.models import DailyLog, User, WeeklyReport
from internly.remote import (
    DAILY_LOGS,
    NOTIFICATIONS,
    PER_USER_COLLECTIONS,
    USERS,
    WEEKLY_REPORTS,
    subcollection,
    user_path,
)

logger = logging.getLogger(__name__)

MIGRATION_BATCH_LIMIT = 490

SCHEMA_MARKER_ID = "_schema_"

LEGACY_COLLECTIONS = (*PER_USER_COLLECTIONS, "time_logs")

SHARED_COLLECTIONS = (USERS, "conversations", "chatUsers", "supervisors", "appMetadata")

VERSION_MARKER = "appMetadata/version"


# ── Per-login migration ───────────────────────────────────────


@dataclass
class MigrationResult:
    logs: int = 0
    reports: int = 0
    notifications: int = 0

    @property
    def total(self) -> int:
        return self.logs + self.reports + self.notifications

    def to_dict(self) -> dict[str, int]:
        return {"logs": self.logs, "reports": self.reports, "notifications": self.notifications}


_RESULT_FIELDS = {DAILY_LOGS: "logs", WEEKLY_REPORTS: "reports", NOTIFICATIONS: "notifications"}


def migrate_flat_to_subcollections(db: DocumentStore, uid: str) -> MigrationResult:
    """Copy one user's flat-layout documents into their subcollections.

    Documents already present at the destination (by id) and schema markers
    are skipped. At most MIGRATION_BATCH_LIMIT documents per collection are
    copied per call; the rest follow on later calls. Originals are never
    deleted here.
    """
    result = MigrationResult()
    for name in PER_USER_COLLECTIONS:
        flat = db.query(name, where=[("userId", "==", uid)])
        if not flat:
            continue

        destination = subcollection(uid, name)
        existing = {snap.id for snap in db.query(destination)}

        batch = db.batch()
        for snap in flat:
            if snap.id == SCHEMA_MARKER_ID or snap.id in existing:
                continue
            batch.set(doc_path(destination, snap.id), snap.data)
            if len(batch) >= MIGRATION_BATCH_LIMIT:
                break
        setattr(result, _RESULT_FIELDS[name], batch.commit())

    if result.total:
        logger.info(
            "Flat → subcollections for %s: %d logs, %d reports, %d notifications",
            uid, result.logs, result.reports, result.notifications,
        )
    return result


# ── Local cache → remote ──────────────────────────────────────


@dataclass
class UploadResult:
    profile: bool = False
    logs: int = 0
    reports: int = 0


def upload_local_data(
    db: DocumentStore,
    uid: str,
    user: User,
    logs: list[DailyLog],
    reports: list[WeeklyReport],
) -> UploadResult:
    """Push cached data for a user who has no remote profile yet.

    The profile is written only when absent. Logs are skipped when a remote
    log already exists for the same entry date, reports when one exists for
    the same week start. Each collection is capped at one batch.
    """
    result = UploadResult()
    if db.get(user_path(uid)) is None:
        db.set(user_path(uid), {**replace(user, id=uid).to_dict(), "updatedAt": SERVER_TIMESTAMP}, merge=True)
        result.profile = True

    log_dates = {snap.data.get("entryDate") for snap in db.query(subcollection(uid, DAILY_LOGS))}
    batch = db.batch()
    for log in logs:
        if log.entry_date in log_dates:
            continue
        log_id = log.id or new_id()
        batch.set(doc_path(subcollection(uid, DAILY_LOGS), log_id), {
            **replace(log, id=log_id, user_id=uid).to_dict(),
            "_createdAt": SERVER_TIMESTAMP,
            "_updatedAt": SERVER_TIMESTAMP,
        })
        log_dates.add(log.entry_date)
        if len(batch) >= MIGRATION_BATCH_LIMIT:
            break
    result.logs = batch.commit()

    weeks = {snap.data.get("weekStart") for snap in db.query(subcollection(uid, WEEKLY_REPORTS))}
    batch = db.batch()
    for report in reports:
        if report.week_start in weeks:
            continue
        report_id = report.id or new_id()
        batch.set(doc_path(subcollection(uid, WEEKLY_REPORTS), report_id), {
            **replace(report, id=report_id, user_id=uid).to_dict(),
            "_createdAt": SERVER_TIMESTAMP,
            "_updatedAt": SERVER_TIMESTAMP,
        })
        weeks.add(report.week_start)
        if len(batch) >= MIGRATION_BATCH_LIMIT:
            break
    result.reports = batch.commit()

    logger.info(
        "Uploaded local data for %s: profile=%s, %d logs, %d reports",
        uid, result.profile, result.logs, result.reports,
    )
    return result


# ── Admin: whole-store migration ──────────────────────────────


@dataclass
class CollectionStats:
    read: int = 0
    migrated: int = 0
    skipped: int = 0

    def to_dict(self) -> dict[str, int]:
        return {"read": self.read, "migrated": self.migrated, "skipped": self.skipped}


def migrate_all_users(db: DocumentStore, dry_run: bool = False) -> dict[str, CollectionStats]:
    """Copy every flat-layout document into its owner's subcollection.

    Commits in successive batches of MIGRATION_BATCH_LIMIT. Documents with no
    userId, and documents already at their destination, count as skipped.
    """
    stats: dict[str, CollectionStats] = {}
    for name in PER_USER_COLLECTIONS:
        snaps = db.query(name)
        col_stats = stats[name] = CollectionStats(read=len(snaps))

        batch = db.batch()
        for snap in snaps:
            if snap.id == SCHEMA_MARKER_ID:
                continue
            uid = snap.data.get("userId")
            if not uid:
                logger.warning("%s/%s has no userId, skipping", name, snap.id)
                col_stats.skipped += 1
                continue
            target = doc_path(subcollection(uid, name), snap.id)
            if db.exists(target):
                col_stats.skipped += 1
                continue
            if not dry_run:
                batch.set(target, snap.data)
                if len(batch) >= MIGRATION_BATCH_LIMIT:
                    logger.info("Committed batch of %d %s", batch.commit(), name)
            col_stats.migrated += 1
        if not dry_run and len(batch):
            logger.info("Committed final batch of %d %s", batch.commit(), name)

        logger.info(
            "%s: %d read, %d migrated, %d skipped%s",
            name, col_stats.read, col_stats.migrated, col_stats.skipped, " (dry run)" if dry_run else "",
        )
    return stats


# ── Admin: legacy cleanup ─────────────────────────────────────


def _user_ids(db: DocumentStore) -> list[str]:
    return [snap.id for snap in db.query(USERS) if snap.id != SCHEMA_MARKER_ID]


def _delete_paths(db: DocumentStore, paths: list[str]) -> None:
    for start in range(0, len(paths), MAX_BATCH_OPERATIONS):
        batch = db.batch()
        for path in paths[start:start + MAX_BATCH_OPERATIONS]:
            batch.delete(path)
        batch.commit()


def cleanup_legacy(db: DocumentStore, dry_run: bool = False) -> int:
    """Delete the flat collections, every schema marker and the version marker.

    Returns the number of documents deleted (or that would be, on a dry run).
    Per-user subcollections, profiles, chat data and real supervisor
    documents are left alone.
    """
    doomed: list[str] = []
    for name in LEGACY_COLLECTIONS:
        snaps = db.query(name)
        if not snaps:
            logger.info("%s/ already empty", name)
            continue
        logger.info("%s/ deleting %d doc(s)", name, len(snaps))
        doomed.extend(snap.path for snap in snaps)

    markers = [doc_path(name, SCHEMA_MARKER_ID) for name in SHARED_COLLECTIONS]
    for uid in _user_ids(db):
        markers.extend(doc_path(subcollection(uid, name), SCHEMA_MARKER_ID) for name in PER_USER_COLLECTIONS)
    markers.append(VERSION_MARKER)
    for path in markers:
        if path not in doomed and db.exists(path):
            logger.info("%s deleting", path)
            doomed.append(path)

    if not dry_run:
        _delete_paths(db, doomed)
    logger.info("Cleanup %s %d doc(s)", "would delete" if dry_run else "deleted", len(doomed))
    return len(doomed)


# ── Admin: layout report ──────────────────────────────────────


@dataclass
class UserLayout:
    uid: str
    name: str = ""
    counts: dict[str, int] = field(default_factory=dict)


@dataclass
class LayoutReport:
    users: list[UserLayout] = field(default_factory=list)
    flat: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "users": [{"uid": u.uid, "name": u.name, "counts": dict(u.counts)} for u in self.users],
            "flat": dict(self.flat),
        }


def _count(db: DocumentStore, collection: str) -> int:
    return sum(1 for snap in db.query(collection) if snap.id != SCHEMA_MARKER_ID)


def verify_layout(db: DocumentStore) -> LayoutReport:
    """Per-user subcollection counts next to the remaining flat counts."""
    report = LayoutReport()
    for snap in db.query(USERS):
        if snap.id == SCHEMA_MARKER_ID:
            continue
        report.users.append(UserLayout(
            uid=snap.id,
            name=str(snap.data.get("name") or snap.data.get("email") or snap.id),
            counts={name: _count(db, subcollection(snap.id, name)) for name in PER_USER_COLLECTIONS},
        ))
    report.flat = {name: _count(db, name) for name in PER_USER_COLLECTIONS}
    return report
