"""Account lifecycle: sign-up with email verification, login, logout, reset."""

from __future__ import annotations

import logging
from datetime import date

from internly.auth import AuthIdentity, AuthProvider, AuthSession, request_password_reset, validate_signup
from internly.cache import LocalCache
from internly.controller import OFFLINE, AppState, Controller
from internly.errors import AuthenticationError, TransientRemoteError, ValidationError, best_effort
from internly.mailer import EmailSender, send_verification_email
from internly.models import DEFAULT_REQUIRED_HOURS, PendingSignup, User
from internly.remote import RemoteStore, now_iso
from internly.verification import issue_code, verify_code

logger = logging.getLogger(__name__)

ACCOUNT_EXISTS = "An account with this email already exists. Please log in instead."
NO_PENDING_SIGNUP = "No pending signup found. Please sign up again."


class AccountService:
    def __init__(
        self,
        provider: AuthProvider,
        session: AuthSession,
        cache: LocalCache,
        remote: RemoteStore,
        mailer: EmailSender,
        verification_secret: str,
        controller: Controller | None = None,
        default_required_hours: float = DEFAULT_REQUIRED_HOURS,
    ):
        self.provider = provider
        self.session = session
        self.cache = cache
        self.remote = remote
        self.mailer = mailer
        self.verification_secret = verification_secret
        self.controller = controller
        self.default_required_hours = default_required_hours
        # Held in memory only until the code is verified.
        self._pending_password: str | None = None

    # ── Sign-up ───────────────────────────────────────────────

    def _issue_and_store(self, pending: PendingSignup) -> PendingSignup:
        ticket = issue_code(self.verification_secret, pending.email)
        send_verification_email(self.mailer, pending.email, pending.name, ticket.code)
        pending.verification_token = ticket.token
        pending.token_expires_at = ticket.expires_at
        self.cache.store_pending_signup(pending)
        logger.info("Verification code sent to %s", pending.email)
        return pending

    def sign_up(
        self,
        name: str,
        email: str,
        password: str,
        confirm_password: str,
        total_hours: float,
        start_date: str,
    ) -> PendingSignup:
        """Validate the form, email a code and remember the sign-up until it is verified."""
        errors = validate_signup(name, email, password, confirm_password, total_hours, start_date)
        if errors:
            raise ValidationError(errors)
        email = email.strip()
        if self.cache.find_user_by_email(email) is not None:
            raise ValidationError([ACCOUNT_EXISTS])

        pending = self._issue_and_store(PendingSignup(
            name=name.strip(),
            email=email,
            total_required_hours=float(total_hours),
            start_date=start_date,
        ))
        self._pending_password = password
        return pending

    def sign_up_with_identity(self, identity: AuthIdentity, start_date: str | None = None) -> PendingSignup:
        """Start a sign-up for an identity that already signed in with a federated provider."""
        email = identity.email.strip()
        if self.cache.find_user_by_email(email) is not None:
            raise ValidationError([ACCOUNT_EXISTS])
        name = identity.display_name or email.split("@")[0] or "User"
        start = start_date or date.today().isoformat()
        errors = validate_signup(name, email, None, None, self.default_required_hours, start)
        if errors:
            raise ValidationError(errors)
        return self._issue_and_store(PendingSignup(
            name=name,
            email=email,
            total_required_hours=self.default_required_hours,
            start_date=start,
            google_uid=identity.uid,
            profile_image=identity.photo_url,
        ))

    def resend_code(self) -> PendingSignup:
        pending = self.cache.get_pending_signup()
        if pending is None:
            raise ValidationError([NO_PENDING_SIGNUP])
        return self._issue_and_store(pending)

    def verify_signup(self, code: str, password: str | None = None) -> User:
        """Check the code, create the account and profile, then leave the user signed out."""
        pending = self.cache.get_pending_signup()
        if pending is None:
            raise ValidationError([NO_PENDING_SIGNUP])
        verify_code(
            self.verification_secret,
            code,
            pending.email,
            pending.verification_token,
            pending.token_expires_at,
        )

        if pending.google_uid:
            uid = pending.google_uid
        else:
            password = password or self._pending_password
            if not password:
                raise ValidationError(["Enter your password to finish signing up."])
            uid = self.provider.create_account(pending.email, password).uid

        user = User(
            id=uid,
            name=pending.name,
            email=pending.email,
            total_required_hours=pending.total_required_hours,
            start_date=pending.start_date,
            created_at=now_iso(),
            profile_image=pending.profile_image,
        )
        self.cache.upsert_user(user)
        # A missed remote write is repaired by the upload on first login.
        best_effort("initial profile write", self.remote.save_user, user)

        self.cache.clear_pending_signup()
        self._pending_password = None
        best_effort("provider sign-out", self.provider.sign_out)
        logger.info("Account created for %s (%s)", user.email, uid)
        return user

    # ── Sessions ──────────────────────────────────────────────

    def login(self, email: str, password: str, remember_me: bool = False) -> AppState | None:
        """Sign in; the controller reconciles data when the session changes.

        A provider account with no profile, remote or cached, is signed back
        out and rejected.
        """
        identity = self.provider.sign_in_with_password(email.strip(), password)
        self.session.sign_in(identity)
        if self.controller is None:
            self.cache.remember_email(email.strip() if remember_me else None)
            return None

        state = self.controller.state
        if state.user is None:
            self.logout()
            if state.status == OFFLINE:
                raise TransientRemoteError(f"Profile for {identity.uid} is not cached and the store is unreachable")
            logger.warning("No profile found for %s", identity.uid)
            raise AuthenticationError("profile-not-found")
        self.cache.remember_email(email.strip() if remember_me else None)
        return state

    def logout(self) -> None:
        best_effort("provider sign-out", self.provider.sign_out)
        self.session.sign_out()
        if self.controller is None:
            self.cache.clear_current_user()
        elif self.controller.state.user is not None:
            self.controller.session_cleared()

    def request_password_reset(self, email: str) -> str:
        return request_password_reset(self.provider, email)
