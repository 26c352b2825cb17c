"""Internly core library — OJT hour tracking, sync and aggregation.

Public API re-exports for convenient imports:
    from internly import compute_hour_stats, Controller, RemoteStore, ...
"""

# Workspace & settings
from internly.workspace import (
    Settings,
    workspace_root,
    load_settings,
    configure_logging,
    get_user_timezone,
    today_str,
    now_local,
    settings_path,
    cache_path,
    store_path,
)

# File I/O
from internly.fileio import (
    read_text,
    read_json,
    read_yaml,
    write_json_atomic,
)

# Errors
from internly.errors import (
    InternlyError,
    NotFoundError,
    AuthenticationError,
    TransientRemoteError,
    VerificationError,
    ValidationError,
    DeliveryError,
    BestEffort,
    best_effort,
)

# Models
from internly.models import (
    ACTIVITY_TYPES,
    NOTIFICATION_TYPES,
    User,
    Attachment,
    DailyLog,
    WeeklyReport,
    Notification,
    Supervisor,
    UserPatch,
    DailyLogPatch,
    HourStats,
    WeekBucket,
    BurndownPoint,
    PendingSignup,
    ChatUser,
    Conversation,
    Message,
    validate_daily_log,
)

# Aggregates
from internly.calculations import (
    compute_hour_stats,
    group_logs_into_weeks,
    filter_logs_in_range,
    compute_burndown,
    week_bounds,
)

# Storage
from internly.cache import LocalCache
from internly.docstore import (
    DocumentStore,
    MemoryDocumentStore,
    WriteBatch,
    MAX_BATCH_OPERATIONS,
    open_document_store,
)
from internly.remote import RemoteStore
from internly.migration import (
    migrate_flat_to_subcollections,
    upload_local_data,
    migrate_all_users,
    cleanup_legacy,
    verify_layout,
)

# Sessions & accounts
from internly.auth import AuthIdentity, AuthSession, FirebaseAuthClient, describe_auth_error
from internly.controller import AppState, Controller, RollbackToken
from internly.accounts import AccountService
from internly.verification import issue_code, sign_code, verify_code

# Collaborators
from internly.chat import ChatService
from internly.mailer import ResendEmailSender, send_verification_email
from internly.pdf import generate_weekly_report_pdf, report_filename
from internly.services import Services, build_services
