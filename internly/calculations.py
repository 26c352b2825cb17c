"""Hour statistics, week buckets and burndown projections.

Pure functions over an in-memory list of DailyLog entries. "Today" can be
passed explicitly; it defaults to the configured timezone's current date.
"""

from __future__ import annotations

from datetime import date, timedelta

from internly.models import BurndownPoint, DailyLog, HourStats, WeekBucket
from internly.workspace import today_str


def _today(today: date | str | None) -> date:
    if today is None:
        return date.fromisoformat(today_str())
    if isinstance(today, str):
        return date.fromisoformat(today[:10])
    return today


def _as_date(value: date | str) -> date:
    return date.fromisoformat(value[:10]) if isinstance(value, str) else value


def week_bounds(day: date) -> tuple[date, date]:
    """Monday-start week containing *day*: (monday, sunday)."""
    monday = day - timedelta(days=day.weekday())
    return monday, monday + timedelta(days=6)


def weeks_between(later: date, earlier: date) -> int:
    """Whole weeks between two dates, truncated toward zero."""
    days = (later - earlier).days
    return int(days / 7)


def empty_stats(total_required: float = 0) -> HourStats:
    return HourStats(total_required=total_required)


# ── Hour stats ────────────────────────────────────────────────


def compute_hour_stats(
    logs: list[DailyLog],
    total_required: float,
    today: date | str | None = None,
) -> HourStats:
    """Totals, this-week hours, remaining, progress and weekly average."""
    now = _today(today)
    week_start, week_end = week_bounds(now)

    total_rendered = sum(log.daily_hours for log in logs)
    hours_this_week = sum(log.daily_hours for log in logs if week_start <= log.day <= week_end)

    remaining = max(0.0, total_required - total_rendered)
    progress = min(100.0, total_rendered / total_required * 100) if total_required > 0 else 0.0

    weekly_average = 0.0
    if logs:
        first = min(log.day for log in logs)
        weeks_active = max(1, weeks_between(now, first) + 1)
        weekly_average = total_rendered / weeks_active

    return HourStats(
        total_required=total_required,
        total_rendered=round(total_rendered, 2),
        hours_this_week=round(hours_this_week, 2),
        remaining=round(remaining, 2),
        progress_percentage=round(progress, 1),
        weekly_average=round(weekly_average, 1),
        days_logged=len({log.entry_date for log in logs}),
    )


# ── Weeks ─────────────────────────────────────────────────────


def _short(d: date) -> str:
    return f"{d:%b} {d.day}"


def group_logs_into_weeks(logs: list[DailyLog]) -> list[WeekBucket]:
    """Monday-start weeks that contain logs, most recent first.

    Week numbers count from the earliest week as 1.
    """
    if not logs:
        return []

    starts = sorted({week_bounds(log.day)[0] for log in logs})
    buckets = []
    for number, start in enumerate(starts, start=1):
        end = start + timedelta(days=6)
        buckets.append(WeekBucket(start=start, end=end, label=f"Week {number}: {_short(start)} - {_short(end)}"))
    buckets.reverse()
    return buckets


def filter_logs_in_range(logs: list[DailyLog], start: date | str, end: date | str) -> list[DailyLog]:
    """Logs whose entry date falls within [start, end], oldest first."""
    lo, hi = _as_date(start), _as_date(end)
    return sorted((log for log in logs if lo <= log.day <= hi), key=lambda log: log.day)


# ── Burndown ──────────────────────────────────────────────────


def compute_burndown(
    logs: list[DailyLog],
    total_required: float,
    start_date: date | str,
    end_date: date | str | None = None,
    today: date | str | None = None,
) -> list[BurndownPoint]:
    """Remaining hours per 7-day bucket against a linear ideal line.

    The span runs from start_date to end_date (or today). Empty when there
    are no logs, so a chart never renders only the flat target line.
    """
    if not logs:
        return []

    start = _as_date(start_date)
    end = _as_date(end_date) if end_date else _today(today)
    total_weeks = max(1, weeks_between(end, start) + 1)

    ordered = sorted(logs, key=lambda log: log.day)
    points = []
    cumulative = 0.0
    for i in range(total_weeks):
        bucket_start = start + timedelta(days=7 * i)
        bucket_end = bucket_start + timedelta(days=6)
        cumulative += sum(log.daily_hours for log in ordered if bucket_start <= log.day <= bucket_end)
        ideal = total_required - (total_required / total_weeks) * (i + 1)
        points.append(BurndownPoint(
            week=f"Wk {i + 1}",
            remaining=max(0.0, round(total_required - cumulative, 2)),
            ideal=max(0.0, round(ideal, 2)),
        ))
    return points
