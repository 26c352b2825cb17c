"""Stateless email verification codes.

A code is bound to an email address and an expiry by an HMAC-SHA256
signature over ``code|lower(email)|expiresAtMillis``. The signature and
expiry travel with the client; nothing is stored server-side.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
import time
from dataclasses import dataclass
from typing import Any

from internly.errors import VerificationError

CODE_TTL_MS = 10 * 60 * 1000

INVALID_CODE_MESSAGE = "Invalid verification code."
EXPIRED_CODE_MESSAGE = "Code has expired. Please request a new one."


def now_millis() -> int:
    return int(time.time() * 1000)


def generate_code() -> str:
    """Uniformly random six-digit code."""
    return str(100000 + secrets.randbelow(900000))


def sign_code(secret: str, code: str, email: str, expires_at: int) -> str:
    message = f"{code}|{email.lower()}|{expires_at}"
    return hmac.new(secret.encode(), message.encode(), hashlib.sha256).hexdigest()


@dataclass(frozen=True)
class VerificationTicket:
    code: str
    token: str
    expires_at: int  # epoch millis

    def public(self) -> dict[str, Any]:
        """What the client keeps: everything except the code."""
        return {"token": self.token, "expiresAt": self.expires_at}


def issue_code(secret: str, email: str, now_ms: int | None = None) -> VerificationTicket:
    code = generate_code()
    expires_at = (now_millis() if now_ms is None else now_ms) + CODE_TTL_MS
    return VerificationTicket(code=code, token=sign_code(secret, code, email, expires_at), expires_at=expires_at)


def verify_code(
    secret: str,
    code: str,
    email: str,
    token: str,
    expires_at: int | str,
    now_ms: int | None = None,
) -> None:
    """Raise VerificationError unless the signature matches and has not expired.

    The signature is checked before the expiry.
    """
    if not code or not email or not token or not expires_at:
        raise VerificationError("Missing required fields.")
    try:
        expires = int(expires_at)
    except (TypeError, ValueError):
        raise VerificationError(INVALID_CODE_MESSAGE) from None

    expected = sign_code(secret, str(code).strip(), email, expires)
    if not hmac.compare_digest(expected, str(token)):
        raise VerificationError(INVALID_CODE_MESSAGE)
    if (now_millis() if now_ms is None else now_ms) > expires:
        raise VerificationError(EXPIRED_CODE_MESSAGE)
