"""Error taxonomy and the best-effort helper for non-critical side effects."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class InternlyError(Exception):
    """Base class for every error raised by the Internly core."""


class NotFoundError(InternlyError):
    """Entity id does not exist under the resolved owner scope."""


class AuthenticationError(InternlyError):
    """Sign-in or account creation was rejected by the auth provider."""

    def __init__(self, code: str, message: str | None = None):
        from internly.auth import describe_auth_error

        self.code = code
        self.message = message or describe_auth_error(code)
        super().__init__(self.message)


class TransientRemoteError(InternlyError):
    """Remote store or network unavailable; callers fall back to the cache."""


class VerificationError(InternlyError):
    """Verification code signature mismatch or expiry."""


class ValidationError(InternlyError):
    """Input rejected before any I/O was attempted."""

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class DeliveryError(InternlyError):
    """Outbound email could not be delivered."""


@dataclass
class BestEffort(Generic[T]):
    """Outcome of a non-critical operation. Never raised, only inspected."""

    ok: bool
    value: T | None = None
    error: Exception | None = None


def best_effort(label: str, fn: Callable[..., T], *args: Any, **kwargs: Any) -> BestEffort[T]:
    """Run *fn*, logging and capturing any failure instead of propagating it."""
    try:
        return BestEffort(ok=True, value=fn(*args, **kwargs))
    except Exception as e:
        logger.warning("%s failed (non-critical): %s", label, e)
        return BestEffort(ok=False, error=e)
