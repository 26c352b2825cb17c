"""Typed dataclasses for the Internly data model.

All models use from_dict/to_dict for document and cache serialization.
camelCase in stored documents is mapped to snake_case in Python.
Unknown keys are ignored; missing keys use defaults.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from datetime import date
from typing import Any

ACTIVITY_TYPES = [
    "Technical",
    "Administrative",
    "Meeting",
    "Field Work",
    "Coding",
    "Documentation",
    "Research",
    "Training",
    "Presentation",
    "Other",
]

NOTIFICATION_TYPES = {"reminder", "system", "achievement", "report_due"}

DEFAULT_REQUIRED_HOURS = 480


def iso(value: Any) -> str:
    """Normalize a stored timestamp (ISO string, datetime, None) to an ISO string."""
    if value is None:
        return ""
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


# ── User ──────────────────────────────────────────────────────


@dataclass
class User:
    id: str = ""
    name: str = ""
    email: str = ""
    total_required_hours: float = DEFAULT_REQUIRED_HOURS
    start_date: str = ""
    end_date: str | None = None
    created_at: str = ""
    supervisors: list[str] = field(default_factory=list)
    reminder_enabled: bool = True
    profile_image: str | None = None

    @classmethod
    def from_dict(cls, d: dict[str, Any], uid: str = "") -> User:
        reminder = d.get("reminderEnabled")
        return cls(
            id=str(d.get("id") or uid),
            name=str(d.get("name") or ""),
            email=str(d.get("email") or ""),
            total_required_hours=float(d.get("totalRequiredHours") or DEFAULT_REQUIRED_HOURS),
            start_date=str(d.get("startDate") or ""),
            end_date=d.get("endDate") or None,
            created_at=iso(d.get("createdAt")),
            supervisors=list(d.get("supervisors") or []),
            reminder_enabled=True if reminder is None else bool(reminder),
            profile_image=d.get("profileImage") or None,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "totalRequiredHours": self.total_required_hours,
            "startDate": self.start_date,
            "endDate": self.end_date,
            "createdAt": self.created_at,
            "supervisors": list(self.supervisors),
            "reminderEnabled": self.reminder_enabled,
            "profileImage": self.profile_image,
        }


# ── Daily logs ────────────────────────────────────────────────


@dataclass
class Attachment:
    id: str = ""
    name: str = ""
    url: str = ""
    type: str = ""

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Attachment:
        return cls(
            id=str(d.get("id", "")),
            name=str(d.get("name", "")),
            url=str(d.get("url", "")),
            type=str(d.get("type", "")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "url": self.url, "type": self.type}


@dataclass
class DailyLog:
    id: str = ""
    user_id: str = ""
    entry_date: str = ""  # ISO date, no time component
    activity_type: list[str] = field(default_factory=list)
    task_description: str = ""
    supervisor: str = ""
    daily_hours: float = 0.0
    attachments: list[Attachment] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""

    @property
    def day(self) -> date:
        return date.fromisoformat(self.entry_date[:10])

    @classmethod
    def from_dict(cls, d: dict[str, Any], doc_id: str = "") -> DailyLog:
        return cls(
            id=str(d.get("id") or doc_id),
            user_id=str(d.get("userId") or ""),
            entry_date=str(d.get("entryDate") or ""),
            activity_type=list(d.get("activityType") or []),
            task_description=str(d.get("taskDescription") or ""),
            supervisor=str(d.get("supervisor") or ""),
            daily_hours=float(d.get("dailyHours") or 0),
            attachments=[Attachment.from_dict(a) for a in (d.get("attachments") or []) if isinstance(a, dict)],
            created_at=iso(d.get("createdAt")),
            updated_at=iso(d.get("updatedAt")),
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "userId": self.user_id,
            "entryDate": self.entry_date,
            "activityType": list(self.activity_type),
            "taskDescription": self.task_description,
            "supervisor": self.supervisor,
            "dailyHours": self.daily_hours,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        if self.attachments:
            d["attachments"] = [a.to_dict() for a in self.attachments]
        return d


def validate_daily_log(log: DailyLog) -> list[str]:
    """Validate a daily log. Returns a list of error strings (empty = valid)."""
    errors = []
    try:
        date.fromisoformat(log.entry_date)
    except (TypeError, ValueError):
        errors.append(f"Invalid entry date: {log.entry_date!r}")
    if not log.activity_type:
        errors.append("Select at least one activity type")
    for tag in log.activity_type:
        if tag not in ACTIVITY_TYPES:
            errors.append(f"Invalid activity type: {tag}")
    if not isinstance(log.daily_hours, (int, float)) or isinstance(log.daily_hours, bool):
        errors.append("daily_hours must be numeric")
    elif not 0 <= log.daily_hours <= 24:
        errors.append("daily_hours must be between 0 and 24")
    return errors


# ── Weekly reports ────────────────────────────────────────────


@dataclass
class WeeklyReport:
    id: str = ""
    user_id: str = ""
    week_start: str = ""
    week_end: str = ""
    reflection: str = ""
    logs: list[DailyLog] = field(default_factory=list)
    created_at: str = ""

    @classmethod
    def from_dict(cls, d: dict[str, Any], doc_id: str = "") -> WeeklyReport:
        return cls(
            id=str(d.get("id") or doc_id),
            user_id=str(d.get("userId") or ""),
            week_start=str(d.get("weekStart") or ""),
            week_end=str(d.get("weekEnd") or ""),
            reflection=str(d.get("reflection") or ""),
            logs=[DailyLog.from_dict(entry) for entry in (d.get("logs") or []) if isinstance(entry, dict)],
            created_at=iso(d.get("createdAt")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "weekStart": self.week_start,
            "weekEnd": self.week_end,
            "reflection": self.reflection,
            "logs": [entry.to_dict() for entry in self.logs],
            "createdAt": self.created_at,
        }


# ── Notifications & supervisors ───────────────────────────────


@dataclass
class Notification:
    id: str = ""
    user_id: str = ""
    type: str = "system"
    title: str = ""
    message: str = ""
    read: bool = False
    link: str | None = None
    created_at: str = ""

    @classmethod
    def from_dict(cls, d: dict[str, Any], doc_id: str = "") -> Notification:
        return cls(
            id=str(d.get("id") or doc_id),
            user_id=str(d.get("userId") or ""),
            type=str(d.get("type") or "system"),
            title=str(d.get("title") or ""),
            message=str(d.get("message") or ""),
            read=bool(d.get("read", False)),
            link=d.get("link") or None,
            created_at=iso(d.get("createdAt")),
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "userId": self.user_id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "read": self.read,
            "createdAt": self.created_at,
        }
        if self.link:
            d["link"] = self.link
        return d


@dataclass
class Supervisor:
    id: str = ""
    name: str = ""
    email: str | None = None
    department: str | None = None
    added_by: str = ""
    created_at: str = ""

    @classmethod
    def from_dict(cls, d: dict[str, Any], doc_id: str = "") -> Supervisor:
        return cls(
            id=str(d.get("id") or doc_id),
            name=str(d.get("name") or ""),
            email=d.get("email") or None,
            department=d.get("department") or None,
            added_by=str(d.get("addedBy") or ""),
            created_at=iso(d.get("createdAt")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "department": self.department,
            "addedBy": self.added_by,
            "createdAt": self.created_at,
        }


# ── Patches ───────────────────────────────────────────────────


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"


UNSET: Any = _Unset()


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(p.title() for p in rest)


def _snake(name: str) -> str:
    return "".join(f"_{c.lower()}" if c.isupper() else c for c in name)


class _Patch:
    """Shared behaviour for typed partial updates."""

    @classmethod
    def from_dict(cls, d: dict[str, Any]):
        """Build a patch from camelCase document keys. Unknown keys raise TypeError."""
        return cls(**{_snake(k): v for k, v in d.items()})

    def set_fields(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not UNSET}

    def to_fields(self) -> dict[str, Any]:
        """Document fields (camelCase) for the attributes that were set."""
        out = {}
        for name, value in self.set_fields().items():
            if name == "attachments":
                value = [a.to_dict() if isinstance(a, Attachment) else a for a in value]
            out[_camel(name)] = value
        return out

    def is_empty(self) -> bool:
        return not self.set_fields()

    def apply(self, entity: Any) -> Any:
        changes = self.set_fields()
        if "attachments" in changes:
            changes["attachments"] = [
                Attachment.from_dict(a) if isinstance(a, dict) else a for a in changes["attachments"]
            ]
        return replace(entity, **changes)


@dataclass
class UserPatch(_Patch):
    name: Any = UNSET
    email: Any = UNSET
    total_required_hours: Any = UNSET
    start_date: Any = UNSET
    end_date: Any = UNSET
    supervisors: Any = UNSET
    reminder_enabled: Any = UNSET
    profile_image: Any = UNSET


@dataclass
class DailyLogPatch(_Patch):
    entry_date: Any = UNSET
    activity_type: Any = UNSET
    task_description: Any = UNSET
    supervisor: Any = UNSET
    daily_hours: Any = UNSET
    attachments: Any = UNSET


# ── Aggregates ────────────────────────────────────────────────


@dataclass
class HourStats:
    total_required: float = 0.0
    total_rendered: float = 0.0
    hours_this_week: float = 0.0
    remaining: float = 0.0
    progress_percentage: float = 0.0
    weekly_average: float = 0.0
    days_logged: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalRequired": self.total_required,
            "totalRendered": self.total_rendered,
            "hoursThisWeek": self.hours_this_week,
            "remaining": self.remaining,
            "progressPercentage": self.progress_percentage,
            "weeklyAverage": self.weekly_average,
            "daysLogged": self.days_logged,
        }


@dataclass
class WeekBucket:
    start: date
    end: date
    label: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"start": self.start.isoformat(), "end": self.end.isoformat(), "label": self.label}


@dataclass
class BurndownPoint:
    week: str = ""
    remaining: float = 0.0
    ideal: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {"week": self.week, "remaining": self.remaining, "ideal": self.ideal}


# ── Sign-up ───────────────────────────────────────────────────


@dataclass
class PendingSignup:
    name: str = ""
    email: str = ""
    total_required_hours: float = DEFAULT_REQUIRED_HOURS
    start_date: str = ""
    verification_token: str = ""
    token_expires_at: int = 0  # epoch millis
    google_uid: str | None = None
    profile_image: str | None = None

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> PendingSignup:
        if not d or not isinstance(d, dict):
            return cls()
        return cls(
            name=str(d.get("name", "")),
            email=str(d.get("email", "")),
            total_required_hours=float(d.get("totalRequiredHours") or DEFAULT_REQUIRED_HOURS),
            start_date=str(d.get("startDate", "")),
            verification_token=str(d.get("verificationToken", "")),
            token_expires_at=int(d.get("tokenExpiresAt") or 0),
            google_uid=d.get("googleUid") or None,
            profile_image=d.get("profileImage") or None,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "email": self.email,
            "totalRequiredHours": self.total_required_hours,
            "startDate": self.start_date,
            "verificationToken": self.verification_token,
            "tokenExpiresAt": self.token_expires_at,
            "googleUid": self.google_uid,
            "profileImage": self.profile_image,
        }


# ── Chat ──────────────────────────────────────────────────────


@dataclass
class ChatUser:
    uid: str = ""
    name: str = ""
    email: str = ""
    profile_image: str | None = None
    online: bool = False
    last_seen: str = ""

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> ChatUser:
        return cls(
            uid=str(d.get("uid", "")),
            name=str(d.get("name") or ""),
            email=str(d.get("email") or ""),
            profile_image=d.get("profileImage") or None,
            online=bool(d.get("online", False)),
            last_seen=iso(d.get("lastSeen")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "uid": self.uid,
            "name": self.name,
            "email": self.email,
            "profileImage": self.profile_image,
            "online": self.online,
            "lastSeen": self.last_seen,
        }

    def details(self) -> dict[str, Any]:
        """Denormalized participant entry stored on conversations."""
        return {"name": self.name, "email": self.email, "profileImage": self.profile_image}


@dataclass
class Conversation:
    id: str = ""
    participants: list[str] = field(default_factory=list)
    participant_details: dict[str, dict[str, Any]] = field(default_factory=dict)
    last_message: str | None = None
    last_message_time: str = ""
    last_message_sender_id: str | None = None
    unread_count: dict[str, int] = field(default_factory=dict)
    is_group: bool = False
    group_name: str | None = None
    group_avatar: str | None = None
    created_by: str | None = None
    nicknames: dict[str, str] = field(default_factory=dict)
    typing: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, d: dict[str, Any], doc_id: str = "") -> Conversation:
        return cls(
            id=doc_id or str(d.get("id", "")),
            participants=list(d.get("participants") or []),
            participant_details=dict(d.get("participantDetails") or {}),
            last_message=d.get("lastMessage"),
            last_message_time=iso(d.get("lastMessageTime")),
            last_message_sender_id=d.get("lastMessageSenderId"),
            unread_count={k: int(v) for k, v in (d.get("unreadCount") or {}).items()},
            is_group=bool(d.get("isGroup", False)),
            group_name=d.get("groupName"),
            group_avatar=d.get("groupAvatar"),
            created_by=d.get("createdBy"),
            nicknames=dict(d.get("nicknames") or {}),
            typing={k: iso(v) for k, v in (d.get("typing") or {}).items()},
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "participants": list(self.participants),
            "participantDetails": dict(self.participant_details),
            "lastMessage": self.last_message,
            "lastMessageTime": self.last_message_time,
            "lastMessageSenderId": self.last_message_sender_id,
            "unreadCount": dict(self.unread_count),
            "isGroup": self.is_group,
            "groupName": self.group_name,
            "groupAvatar": self.group_avatar,
            "createdBy": self.created_by,
            "nicknames": dict(self.nicknames),
            "typing": dict(self.typing),
        }


@dataclass
class Message:
    id: str = ""
    sender_id: str = ""
    text: str | None = None
    image_url: str | None = None
    timestamp: str = ""
    read: bool = False
    status: str = "sent"  # sent, delivered, seen
    read_by: dict[str, bool] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, d: dict[str, Any], doc_id: str = "") -> Message:
        return cls(
            id=doc_id or str(d.get("id", "")),
            sender_id=str(d.get("senderId", "")),
            text=d.get("text"),
            image_url=d.get("imageUrl"),
            timestamp=iso(d.get("timestamp")),
            read=bool(d.get("read", False)),
            status=str(d.get("status") or "sent"),
            read_by=dict(d.get("readBy") or {}),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "senderId": self.sender_id,
            "text": self.text,
            "imageUrl": self.image_url,
            "timestamp": self.timestamp,
            "read": self.read,
            "status": self.status,
            "readBy": dict(self.read_by),
        }
