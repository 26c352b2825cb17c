"""Shared test fixtures for Internly tests."""

from __future__ import annotations

import os
from pathlib import Path

import pytest
import yaml

from internly.auth import AuthIdentity, AuthSession
from internly.cache import LocalCache
from internly.controller import Controller
from internly.docstore import MemoryDocumentStore
from internly.errors import AuthenticationError, TransientRemoteError
from internly.models import DailyLog, User
from internly.remote import RemoteStore
from internly.workspace import cache_path

SECRET = "test-secret"


def make_log(entry_date: str, hours: float, user_id: str = "u1", log_id: str = "", **kwargs) -> DailyLog:
    return DailyLog(
        id=log_id,
        user_id=user_id,
        entry_date=entry_date,
        activity_type=kwargs.pop("activity_type", ["Coding"]),
        task_description=kwargs.pop("task_description", f"Work on {entry_date}"),
        supervisor=kwargs.pop("supervisor", ""),
        daily_hours=hours,
        **kwargs,
    )


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """Create a temporary workspace with settings.yaml."""
    root = tmp_path / "workspace"
    root.mkdir(parents=True)

    settings = {
        "timezone": "UTC",
        "store_backend": "memory",
        "verification_secret": SECRET,
        "notification_page_size": 20,
        "default_required_hours": 480,
        "log_level": "DEBUG",
    }
    (root / "settings.yaml").write_text(
        yaml.dump(settings, default_flow_style=False), encoding="utf-8"
    )

    os.environ["INTERNLY_ROOT"] = str(root)
    yield root
    if "INTERNLY_ROOT" in os.environ:
        del os.environ["INTERNLY_ROOT"]


# ── Fakes ─────────────────────────────────────────────────────


class FlakyStore(MemoryDocumentStore):
    """Memory store that raises TransientRemoteError while ``down`` is set."""

    def __init__(self, path: Path | None = None):
        super().__init__(path)
        self.down = False

    def _check(self) -> None:
        if self.down:
            raise TransientRemoteError("store unavailable")

    def get(self, path):
        self._check()
        return super().get(path)

    def set(self, path, data, merge=False):
        self._check()
        super().set(path, data, merge)

    def update(self, path, fields):
        self._check()
        super().update(path, fields)

    def delete(self, path):
        self._check()
        super().delete(path)

    def query(self, collection, where=None, order_by=None, descending=False, limit=None):
        self._check()
        return super().query(collection, where, order_by, descending, limit)

    def _commit(self, ops):
        self._check()
        super()._commit(ops)


class FakeAuthProvider:
    """In-memory email/password accounts."""

    def __init__(self):
        self.accounts: dict[str, tuple[str, str]] = {}
        self.sign_outs = 0
        self.resets: list[str] = []

    def add(self, email: str, password: str, uid: str) -> None:
        self.accounts[email.lower()] = (password, uid)

    def create_account(self, email: str, password: str) -> AuthIdentity:
        if email.lower() in self.accounts:
            raise AuthenticationError("email-already-in-use")
        uid = f"uid-{len(self.accounts) + 1}"
        self.add(email, password, uid)
        return AuthIdentity(uid=uid, email=email)

    def sign_in_with_password(self, email: str, password: str) -> AuthIdentity:
        account = self.accounts.get(email.lower())
        if account is None:
            raise AuthenticationError("user-not-found")
        if account[0] != password:
            raise AuthenticationError("wrong-password")
        return AuthIdentity(uid=account[1], email=email)

    def sign_out(self) -> None:
        self.sign_outs += 1

    def send_password_reset(self, email: str) -> None:
        if email.lower() not in self.accounts:
            raise AuthenticationError("user-not-found")
        self.resets.append(email)


class RecordingMailer:
    """Keeps every message instead of sending it."""

    def __init__(self, accept: bool = True):
        self.accept = accept
        self.sent: list[dict[str, str]] = []

    def send(self, to: str, subject: str, html_body: str) -> bool:
        self.sent.append({"to": to, "subject": subject, "html": html_body})
        return self.accept


# ── Core fixtures ─────────────────────────────────────────────


@pytest.fixture
def db() -> FlakyStore:
    return FlakyStore()


@pytest.fixture
def session() -> AuthSession:
    return AuthSession()


@pytest.fixture
def cache(workspace: Path) -> LocalCache:
    return LocalCache(cache_path(workspace))


@pytest.fixture
def remote(db, session) -> RemoteStore:
    return RemoteStore(db, session, page_size=20)


@pytest.fixture
def controller(remote, cache, session) -> Controller:
    ctrl = Controller(remote, cache, session, today="2025-01-08")
    yield ctrl
    ctrl.close()


@pytest.fixture
def provider() -> FakeAuthProvider:
    return FakeAuthProvider()


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture
def user() -> User:
    return User(
        id="u1",
        name="Ana Reyes",
        email="ana@example.com",
        total_required_hours=100,
        start_date="2025-01-06",
        end_date="2025-01-19",
    )
