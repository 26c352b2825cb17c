"""Workspace root, settings, timezone and path helpers for Internly."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo

from internly.fileio import read_yaml

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"

STORE_BACKENDS = {"memory", "json", "firestore"}


def workspace_root() -> Path:
    """Directory holding settings.yaml, the local cache and the JSON store."""
    return Path(
        os.environ.get("INTERNLY_ROOT", str(Path.home() / "internly"))
    ).expanduser().resolve()


# ── Path helpers ──────────────────────────────────────────────

def settings_path(root: Path | None = None) -> Path:
    if root is None:
        root = workspace_root()
    return root / "settings.yaml"


def cache_path(root: Path | None = None) -> Path:
    if root is None:
        root = workspace_root()
    return root / "cache" / "local_cache.json"


def store_path(root: Path | None = None) -> Path:
    if root is None:
        root = workspace_root()
    return root / "store" / "documents.json"


# ── Settings ──────────────────────────────────────────────────


@dataclass
class Settings:
    timezone: str = "UTC"
    store_backend: str = "json"
    firestore_project: str = ""
    firestore_credentials: str = ""
    verification_secret: str = "internly-default-secret-change-me"
    firebase_api_key: str = ""
    resend_api_key: str = ""
    email_from: str = "Internly <noreply@internly.app>"
    cloudinary_url: str = ""
    notification_page_size: int = 50
    default_required_hours: float = 480
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Settings:
        if not d or not isinstance(d, dict):
            return cls()
        backend = str(d.get("store_backend", "json")).strip().lower()
        if backend not in STORE_BACKENDS:
            raise ValueError(f"Unknown store_backend: {backend!r}")
        return cls(
            timezone=str(d.get("timezone", "UTC")),
            store_backend=backend,
            firestore_project=str(d.get("firestore_project", "") or ""),
            firestore_credentials=str(d.get("firestore_credentials", "") or ""),
            verification_secret=str(d.get("verification_secret", cls.verification_secret)),
            firebase_api_key=str(d.get("firebase_api_key", "") or ""),
            resend_api_key=str(d.get("resend_api_key", "") or ""),
            email_from=str(d.get("email_from", cls.email_from)),
            cloudinary_url=str(d.get("cloudinary_url", "") or ""),
            notification_page_size=int(d.get("notification_page_size", 50)),
            default_required_hours=float(d.get("default_required_hours", 480)),
            log_level=str(d.get("log_level", "INFO")).upper(),
        )


# Environment variables win over settings.yaml for secrets.
_ENV_OVERRIDES = {
    "VERIFICATION_SECRET": "verification_secret",
    "FIREBASE_API_KEY": "firebase_api_key",
    "RESEND_API_KEY": "resend_api_key",
    "CLOUDINARY_URL": "cloudinary_url",
    "GOOGLE_APPLICATION_CREDENTIALS": "firestore_credentials",
}


def load_settings(root: Path | None = None) -> Settings:
    """Load settings.yaml and apply environment overrides."""
    settings = Settings.from_dict(read_yaml(settings_path(root)))
    for env_name, attr in _ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value:
            setattr(settings, attr, value)
    return settings


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


# ── Calendar ──────────────────────────────────────────────────


def get_user_timezone(root: Path | None = None) -> ZoneInfo:
    """Configured timezone, defaulting to UTC."""
    try:
        return ZoneInfo(load_settings(root).timezone)
    except (ValueError, KeyError):
        return ZoneInfo("UTC")


def today_str(root: Path | None = None) -> str:
    """Today's date (YYYY-MM-DD) in the configured timezone."""
    return datetime.now(get_user_timezone(root)).date().isoformat()


def now_local(root: Path | None = None) -> datetime:
    return datetime.now(get_user_timezone(root))
