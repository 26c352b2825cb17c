"""Reconciliation controller: the in-memory view and which source backs it.

On every session change the controller decides whether the remote store
or the local cache is authoritative, runs the flat-layout migration, and
recomputes statistics. Mutations are applied locally first and then
persisted; failed persists are queued and retried on the next session.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Any

from internly.auth import AuthIdentity, AuthSession
from internly.cache import LocalCache
from internly.calculations import compute_hour_stats, empty_stats, filter_logs_in_range
from internly.docstore import new_id
from internly.errors import BestEffort, NotFoundError, TransientRemoteError, ValidationError, best_effort
from internly.migration import migrate_flat_to_subcollections, upload_local_data
from internly.models import (
    DailyLog,
    DailyLogPatch,
    HourStats,
    User,
    UserPatch,
    WeeklyReport,
    validate_daily_log,
)
from internly.remote import RemoteStore, now_iso

logger = logging.getLogger(__name__)

UNAUTHENTICATED = "unauthenticated"
AUTHENTICATED = "authenticated"
OFFLINE = "offline"


@dataclass
class AppState:
    status: str = UNAUTHENTICATED
    user: User | None = None
    logs: list[DailyLog] = field(default_factory=list)
    reports: list[WeeklyReport] = field(default_factory=list)
    stats: HourStats = field(default_factory=HourStats)

    @property
    def read_only(self) -> bool:
        return self.status == UNAUTHENTICATED


@dataclass
class Mutation:
    kind: str  # add_log, update_log, delete_log, update_user, save_report
    uid: str
    payload: Any = None
    target_id: str = ""


@dataclass
class RollbackToken:
    mutation: Mutation
    previous: AppState
    settled: bool = False


def _sort_logs(logs: list[DailyLog]) -> list[DailyLog]:
    return sorted(logs, key=lambda log: log.entry_date, reverse=True)


def _sort_reports(reports: list[WeeklyReport]) -> list[WeeklyReport]:
    return sorted(reports, key=lambda r: r.week_start, reverse=True)


def validate_user_patch(patch: UserPatch) -> list[str]:
    """Validate a profile patch. Returns a list of error strings (empty = valid)."""
    errors = []
    fields = patch.set_fields()
    if "name" in fields and not str(fields["name"]).strip():
        errors.append("Name is required.")
    if "total_required_hours" in fields:
        hours = fields["total_required_hours"]
        if not isinstance(hours, (int, float)) or isinstance(hours, bool) or hours < 1:
            errors.append("Total required hours must be at least 1.")
    for key in ("start_date", "end_date"):
        value = fields.get(key)
        if value:
            try:
                date.fromisoformat(value)
            except (TypeError, ValueError):
                errors.append(f"Invalid {key}: {value!r}")
    return errors


class Controller:
    def __init__(
        self,
        remote: RemoteStore,
        cache: LocalCache,
        session: AuthSession,
        today: date | str | None = None,
        revert_on_failure: bool = False,
    ):
        self.remote = remote
        self.cache = cache
        self.session = session
        self.today = today
        self.revert_on_failure = revert_on_failure
        self.state = AppState()
        self.pending: list[Mutation] = []
        self._unsubscribe = session.on_change(self.handle_auth_change)

    def close(self) -> None:
        self._unsubscribe()

    def _stats(self, user: User | None, logs: list[DailyLog]) -> HourStats:
        if user is None:
            return empty_stats()
        return compute_hour_stats(logs, user.total_required_hours, today=self.today)

    def _with(self, status: str, user: User | None, logs: list[DailyLog], reports: list[WeeklyReport]) -> AppState:
        self.state = AppState(
            status=status,
            user=user,
            logs=_sort_logs(logs),
            reports=_sort_reports(reports),
            stats=self._stats(user, logs),
        )
        return self.state

    # ── Session transitions ───────────────────────────────────

    def handle_auth_change(self, identity: AuthIdentity | None) -> AppState:
        if identity is None:
            return self.session_cleared()
        return self.session_established(identity)

    def _cached_profile(self, identity: AuthIdentity) -> User | None:
        cached = self.cache.get_user(identity.uid)
        if cached is None and identity.email:
            cached = self.cache.find_user_by_email(identity.email)
        return cached

    def _load_from_cache(self, uid: str, status: str) -> AppState:
        user = self.cache.get_user(uid)
        if user is None:
            current = self.cache.get_current_user()
            user = current if current is not None and current.id == uid else None
        if user is None:
            return self._with(status, None, [], [])
        return self._with(
            status,
            user,
            self.cache.get_daily_logs(user.id),
            self.cache.get_weekly_reports(user.id),
        )

    def session_established(self, identity: AuthIdentity) -> AppState:
        """Load the profile for a freshly signed-in identity and make it authoritative."""
        uid = identity.uid
        try:
            user = self.remote.get_user(uid)
            if user is None:
                cached = self._cached_profile(identity)
                if cached is None:
                    logger.warning("No remote or cached profile for %s", uid)
                    return self._with(AUTHENTICATED, None, [], [])
                upload_local_data(
                    self.remote.db,
                    uid,
                    cached,
                    self.cache.get_daily_logs(cached.id),
                    self.cache.get_weekly_reports(cached.id),
                )
                user = self.remote.get_user(uid)
                if user is None:
                    raise TransientRemoteError(f"Uploaded profile for {uid} could not be read back")
        except TransientRemoteError as e:
            logger.error("Remote store unavailable for %s, serving cache: %s", uid, e)
            return self._load_from_cache(uid, OFFLINE)

        self.cache.set_current_user(user)
        self.state = AppState(status=AUTHENTICATED, user=user)
        best_effort("flat layout migration", migrate_flat_to_subcollections, self.remote.db, uid)
        return self.data_refreshed()

    def session_cleared(self) -> AppState:
        """Forget the signed-in user. Cached logs and reports are kept."""
        self.cache.clear_current_user()
        self.state = AppState()
        return self.state

    def data_refreshed(self) -> AppState:
        """Reload logs and reports for the current user from the remote store.

        Queued writes are retried first. Any that still have not landed are
        laid back over the fetched data so the local view keeps them.
        """
        user = self.state.user
        if user is None:
            return self.state
        self.flush_pending()
        try:
            logs = self.remote.get_daily_logs(user.id)
            reports = self.remote.get_weekly_reports(user.id)
        except TransientRemoteError as e:
            logger.error("Refresh failed for %s, serving cache: %s", user.id, e)
            return self._load_from_cache(user.id, OFFLINE)

        user, logs, reports = self._overlay_pending(user, logs, reports)
        self.cache.set_current_user(user)
        self.cache.replace_daily_logs(user.id, logs)
        self.cache.replace_weekly_reports(user.id, reports)
        return self._with(AUTHENTICATED, user, logs, reports)

    def _overlay_pending(
        self,
        user: User,
        logs: list[DailyLog],
        reports: list[WeeklyReport],
    ) -> tuple[User, list[DailyLog], list[WeeklyReport]]:
        for mutation in self.pending:
            if mutation.uid != user.id:
                continue
            kind = mutation.kind
            if kind in ("add_log", "update_log"):
                log: DailyLog = mutation.payload
                logs = [entry for entry in logs if entry.id != log.id] + [log]
            elif kind == "delete_log":
                logs = [entry for entry in logs if entry.id != mutation.target_id]
            elif kind == "update_user":
                user = mutation.payload.apply(user)
            elif kind == "save_report":
                report: WeeklyReport = mutation.payload
                reports = [r for r in reports if r.week_start != report.week_start] + [report]
        return user, logs, reports

    def load_unauthenticated(self) -> AppState:
        """Read-only view of a previously cached user, with no remote sync."""
        if self.session.current is not None:
            return self.state
        user = self.cache.get_current_user()
        if user is None:
            return self._with(UNAUTHENTICATED, None, [], [])
        return self._with(
            UNAUTHENTICATED,
            user,
            self.cache.get_daily_logs(user.id),
            self.cache.get_weekly_reports(user.id),
        )

    # ── Optimistic writes ─────────────────────────────────────

    def _require_user(self) -> User:
        if self.state.user is None or self.state.read_only:
            raise ValueError("Sign in to make changes")
        return self.state.user

    def apply_optimistic(self, mutation: Mutation) -> RollbackToken:
        """Apply a mutation to the in-memory state and the cache immediately."""
        token = RollbackToken(mutation=mutation, previous=copy.deepcopy(self.state))
        state = self.state
        kind = mutation.kind

        if kind == "add_log":
            log: DailyLog = mutation.payload
            state.logs = _sort_logs([log] + [entry for entry in state.logs if entry.id != log.id])
            self.cache.put_daily_log(log)
        elif kind == "update_log":
            updated: DailyLog = mutation.payload
            state.logs = _sort_logs([updated if entry.id == updated.id else entry for entry in state.logs])
            self.cache.put_daily_log(updated)
        elif kind == "delete_log":
            state.logs = [entry for entry in state.logs if entry.id != mutation.target_id]
            self.cache.remove_daily_log(mutation.target_id)
        elif kind == "update_user":
            state.user = mutation.payload.apply(state.user)
            self.cache.set_current_user(state.user)
        elif kind == "save_report":
            report = self.cache.save_weekly_report(mutation.payload)
            mutation.payload = report
            state.reports = _sort_reports(
                [report] + [r for r in state.reports if r.week_start != report.week_start]
            )
        else:
            raise ValueError(f"Unknown mutation: {kind}")

        state.stats = self._stats(state.user, state.logs)
        return token

    def _send(self, mutation: Mutation) -> Any:
        kind = mutation.kind
        if kind == "add_log":
            return self.remote.add_daily_log(mutation.payload)
        if kind == "update_log":
            log: DailyLog = mutation.payload
            patch = DailyLogPatch(
                entry_date=log.entry_date,
                activity_type=log.activity_type,
                task_description=log.task_description,
                supervisor=log.supervisor,
                daily_hours=log.daily_hours,
                attachments=log.attachments,
            )
            return self.remote.update_daily_log(log.id, patch, user_id=mutation.uid)
        if kind == "delete_log":
            return self.remote.delete_daily_log(mutation.target_id, user_id=mutation.uid)
        if kind == "update_user":
            return self.remote.update_user(mutation.uid, mutation.payload)
        if kind == "save_report":
            return self.remote.save_weekly_report(mutation.payload)
        raise ValueError(f"Unknown mutation: {kind}")

    def confirm_or_revert(self, token: RollbackToken, outcome: BestEffort[Any]) -> bool:
        """Settle an optimistic write once its remote persist has finished.

        A failure is queued for retry, or reverted when revert_on_failure is set.
        """
        if token.settled:
            return outcome.ok
        token.settled = True
        if outcome.ok:
            return True

        if self.revert_on_failure:
            self._revert(token)
            logger.warning("Reverted %s after failed persist", token.mutation.kind)
        else:
            self.pending.append(token.mutation)
            logger.warning("Queued %s for retry (%d pending)", token.mutation.kind, len(self.pending))
        return False

    def _revert(self, token: RollbackToken) -> None:
        previous = token.previous
        self.state = previous
        uid = token.mutation.uid
        self.cache.replace_daily_logs(uid, previous.logs)
        self.cache.replace_weekly_reports(uid, previous.reports)
        if previous.user is not None:
            self.cache.set_current_user(previous.user)

    def _commit(self, mutation: Mutation) -> BestEffort[Any]:
        token = self.apply_optimistic(mutation)
        outcome = best_effort(f"persist {mutation.kind}", self._send, mutation)
        self.confirm_or_revert(token, outcome)
        return outcome

    def flush_pending(self) -> int:
        """Retry queued writes for the signed-in user, in order. Returns how many landed.

        Retrying stops at the first failure so later writes never overtake
        earlier ones. Writes whose target no longer exists are dropped.
        """
        uid = self.session.current_uid
        if not self.pending or uid is None:
            return 0

        sent = 0
        remaining: list[Mutation] = []
        blocked = False
        for mutation in self.pending:
            if mutation.uid != uid or blocked:
                remaining.append(mutation)
                continue
            outcome = best_effort(f"retry {mutation.kind}", self._send, mutation)
            if outcome.ok:
                sent += 1
            elif isinstance(outcome.error, NotFoundError):
                logger.warning("Dropped queued %s: %s", mutation.kind, outcome.error)
            else:
                remaining.append(mutation)
                blocked = True
        self.pending = remaining
        if sent:
            logger.info("Flushed %d queued write(s), %d still pending", sent, len(remaining))
        return sent

    # ── Mutations ─────────────────────────────────────────────

    def add_log(self, log: DailyLog) -> DailyLog:
        errors = validate_daily_log(log)
        if errors:
            raise ValidationError(errors)
        user = self._require_user()
        now = now_iso()
        log = replace(log, id=log.id or new_id(), user_id=user.id, created_at=now, updated_at=now)
        self._commit(Mutation("add_log", user.id, payload=log, target_id=log.id))
        return log

    def update_log(self, log_id: str, patch: DailyLogPatch) -> DailyLog:
        user = self._require_user()
        existing = next((entry for entry in self.state.logs if entry.id == log_id), None)
        if existing is None:
            raise NotFoundError(f"Log not found: {log_id}")
        updated = replace(patch.apply(existing), updated_at=now_iso())
        errors = validate_daily_log(updated)
        if errors:
            raise ValidationError(errors)
        self._commit(Mutation("update_log", user.id, payload=updated, target_id=log_id))
        return updated

    def delete_log(self, log_id: str) -> None:
        user = self._require_user()
        self._commit(Mutation("delete_log", user.id, target_id=log_id))

    def update_user(self, patch: UserPatch) -> User:
        errors = validate_user_patch(patch)
        if errors:
            raise ValidationError(errors)
        user = self._require_user()
        self._commit(Mutation("update_user", user.id, payload=patch, target_id=user.id))
        return self.state.user or user

    def save_weekly_report(
        self,
        week_start: date | str,
        week_end: date | str,
        reflection: str,
        logs: list[DailyLog] | None = None,
    ) -> WeeklyReport:
        """Save (or overwrite) the report for a week; logs default to that week's entries."""
        user = self._require_user()
        start, end = str(week_start), str(week_end)
        report = WeeklyReport(
            id=new_id(),
            user_id=user.id,
            week_start=start,
            week_end=end,
            reflection=reflection,
            logs=list(logs) if logs is not None else filter_logs_in_range(self.state.logs, start, end),
            created_at=now_iso(),
        )
        mutation = Mutation("save_report", user.id, payload=report)
        self._commit(mutation)
        return mutation.payload
