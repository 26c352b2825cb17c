"""Wiring: build the store, session, cache and services from the workspace."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from internly.accounts import AccountService
from internly.auth import AuthProvider, AuthSession, FirebaseAuthClient
from internly.cache import LocalCache
from internly.chat import ChatService
from internly.controller import Controller
from internly.docstore import DocumentStore, open_document_store
from internly.mailer import EmailSender, ResendEmailSender
from internly.remote import RemoteStore
from internly.uploads import configure_uploads
from internly.workspace import Settings, cache_path, load_settings, workspace_root

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    db: DocumentStore
    session: AuthSession
    cache: LocalCache
    remote: RemoteStore
    controller: Controller
    chat: ChatService
    provider: AuthProvider | None = None
    mailer: EmailSender | None = None
    accounts: AccountService | None = None
    uploads_enabled: bool = False


def build_services(
    root: Path | None = None,
    db: DocumentStore | None = None,
    provider: AuthProvider | None = None,
    mailer: EmailSender | None = None,
) -> Services:
    """Assemble everything the web app and CLIs need.

    Pieces that need credentials (auth provider, mailer) are left out when
    the settings do not configure them, unless passed in explicitly.
    """
    if root is None:
        root = workspace_root()
    settings = load_settings(root)
    if db is None:
        db = open_document_store(settings, root)
    if provider is None and settings.firebase_api_key:
        provider = FirebaseAuthClient(settings.firebase_api_key)
    if mailer is None and settings.resend_api_key:
        mailer = ResendEmailSender(settings.resend_api_key, settings.email_from)

    session = AuthSession()
    cache = LocalCache(cache_path(root))
    remote = RemoteStore(db, session, page_size=settings.notification_page_size)
    controller = Controller(remote, cache, session)
    accounts = None
    if provider is not None and mailer is not None:
        accounts = AccountService(
            provider,
            session,
            cache,
            remote,
            mailer,
            settings.verification_secret,
            controller=controller,
            default_required_hours=settings.default_required_hours,
        )
    else:
        logger.info("Accounts disabled: auth provider or mailer not configured")

    return Services(
        settings=settings,
        db=db,
        session=session,
        cache=cache,
        remote=remote,
        controller=controller,
        chat=ChatService(db, session),
        provider=provider,
        mailer=mailer,
        accounts=accounts,
        uploads_enabled=configure_uploads(settings),
    )
