"""Authentication: the live session, the provider contract and the Firebase REST client."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Protocol

import requests

from internly.errors import AuthenticationError, TransientRemoteError

logger = logging.getLogger(__name__)

IDENTITY_TOOLKIT_URL = "https://identitytoolkit.googleapis.com/v1/accounts:{action}?key={key}"

MIN_PASSWORD_LENGTH = 6

RESET_SENT_MESSAGE = "If an account exists for that email, a password reset link has been sent."

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

AUTH_MESSAGES = {
    "wrong-password": "Incorrect password. Please try again.",
    "user-not-found": "No account found with this email. Please sign up first.",
    "invalid-credential": "Invalid email or password.",
    "too-many-requests": "Too many attempts. Please try again later.",
    "email-already-in-use": "An account with this email already exists. Please log in instead.",
    "weak-password": f"Password must be at least {MIN_PASSWORD_LENGTH} characters.",
    "invalid-email": "Please enter a valid email address.",
    "user-disabled": "This account has been disabled.",
    "profile-not-found": "Account data not found on this device. Please sign up again.",
}

GENERIC_AUTH_MESSAGE = "Something went wrong. Please try again."

# Identity Toolkit error strings → provider-neutral codes.
FIREBASE_ERROR_CODES = {
    "EMAIL_NOT_FOUND": "user-not-found",
    "INVALID_PASSWORD": "wrong-password",
    "INVALID_LOGIN_CREDENTIALS": "invalid-credential",
    "TOO_MANY_ATTEMPTS_TRY_LATER": "too-many-requests",
    "EMAIL_EXISTS": "email-already-in-use",
    "WEAK_PASSWORD": "weak-password",
    "INVALID_EMAIL": "invalid-email",
    "MISSING_EMAIL": "invalid-email",
    "USER_DISABLED": "user-disabled",
}


def describe_auth_error(code: str) -> str:
    """User-facing copy for an authentication error code."""
    return AUTH_MESSAGES.get(code, GENERIC_AUTH_MESSAGE)


# ── Session ───────────────────────────────────────────────────


@dataclass(frozen=True)
class AuthIdentity:
    uid: str
    email: str = ""
    display_name: str | None = None
    photo_url: str | None = None


AuthListener = Callable[["AuthIdentity | None"], None]


class AuthSession:
    """Holds the signed-in identity and notifies listeners when it changes."""

    def __init__(self) -> None:
        self._current: AuthIdentity | None = None
        self._listeners: list[AuthListener] = []

    @property
    def current(self) -> AuthIdentity | None:
        return self._current

    @property
    def current_uid(self) -> str | None:
        return self._current.uid if self._current else None

    def on_change(self, listener: AuthListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self) -> None:
        for listener in list(self._listeners):
            listener(self._current)

    def sign_in(self, identity: AuthIdentity) -> None:
        self._current = identity
        self._emit()

    def sign_out(self) -> None:
        if self._current is None:
            return
        self._current = None
        self._emit()


# ── Providers ─────────────────────────────────────────────────


class AuthProvider(Protocol):
    def create_account(self, email: str, password: str) -> AuthIdentity: ...

    def sign_in_with_password(self, email: str, password: str) -> AuthIdentity: ...

    def sign_out(self) -> None: ...

    def send_password_reset(self, email: str) -> None: ...


class FirebaseAuthClient:
    """Email/password accounts through the Identity Toolkit REST API."""

    def __init__(self, api_key: str, timeout: float = 10.0):
        if not api_key:
            raise ValueError("firebase_api_key is not configured")
        self.api_key = api_key
        self.timeout = timeout
        self.id_token: str | None = None

    def _post(self, action: str, payload: dict[str, Any]) -> dict[str, Any]:
        url = IDENTITY_TOOLKIT_URL.format(action=action, key=self.api_key)
        try:
            response = requests.post(url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error("Identity Toolkit %s request failed: %s", action, e)
            raise TransientRemoteError(str(e)) from e

        try:
            data = response.json()
        except ValueError:
            data = {}
        if response.status_code == 200:
            return data

        raw = str(data.get("error", {}).get("message", ""))
        # Messages look like "WEAK_PASSWORD : Password should be at least 6 characters"
        key = raw.split(":")[0].strip()
        if key not in FIREBASE_ERROR_CODES and response.status_code >= 500:
            raise TransientRemoteError(f"Identity Toolkit {action} returned {response.status_code}")
        raise AuthenticationError(FIREBASE_ERROR_CODES.get(key, key.lower() or "unknown"))

    def _identity(self, data: dict[str, Any]) -> AuthIdentity:
        self.id_token = data.get("idToken")
        return AuthIdentity(
            uid=data.get("localId", ""),
            email=data.get("email", ""),
            display_name=data.get("displayName") or None,
            photo_url=data.get("profilePicture") or None,
        )

    def create_account(self, email: str, password: str) -> AuthIdentity:
        return self._identity(self._post("signUp", {
            "email": email, "password": password, "returnSecureToken": True,
        }))

    def sign_in_with_password(self, email: str, password: str) -> AuthIdentity:
        return self._identity(self._post("signInWithPassword", {
            "email": email, "password": password, "returnSecureToken": True,
        }))

    def sign_out(self) -> None:
        self.id_token = None

    def send_password_reset(self, email: str) -> None:
        self._post("sendOobCode", {"requestType": "PASSWORD_RESET", "email": email})


def request_password_reset(provider: AuthProvider, email: str) -> str:
    """Ask the provider for a reset email.

    The reply is the same whether or not the account exists.
    """
    try:
        provider.send_password_reset(email.strip())
    except (AuthenticationError, TransientRemoteError) as e:
        logger.warning("Password reset for %s not sent: %s", email, e)
    return RESET_SENT_MESSAGE


# ── Validation ────────────────────────────────────────────────


def validate_signup(
    name: str,
    email: str,
    password: str | None,
    confirm_password: str | None,
    total_hours: float,
    start_date: str,
) -> list[str]:
    """Validate a sign-up form. Returns a list of error strings (empty = valid).

    A password of None skips the password checks (federated sign-up).
    """
    errors = []
    if not name.strip():
        errors.append("Name is required.")
    if not _EMAIL_RE.match(email.strip()):
        errors.append(AUTH_MESSAGES["invalid-email"])
    if password is not None:
        if password != confirm_password:
            errors.append("Passwords do not match.")
        if len(password) < MIN_PASSWORD_LENGTH:
            errors.append(AUTH_MESSAGES["weak-password"])
    try:
        if float(total_hours) < 1:
            errors.append("Total required hours must be at least 1.")
    except (TypeError, ValueError):
        errors.append("Total required hours must be a number.")
    try:
        date.fromisoformat(start_date)
    except (TypeError, ValueError):
        errors.append(f"Invalid start date: {start_date!r}")
    return errors
