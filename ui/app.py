from __future__ import annotations

import io
import os
import secrets
from datetime import date
from functools import lru_cache
from typing import Any, Callable

from internly import (
    AppState,
    AuthenticationError,
    ChatUser,
    Conversation,
    DailyLog,
    DailyLogPatch,
    DeliveryError,
    NotFoundError,
    Services,
    TransientRemoteError,
    UserPatch,
    ValidationError,
    VerificationError,
    build_services,
    compute_burndown,
    configure_logging,
    filter_logs_in_range,
    generate_weekly_report_pdf,
    group_logs_into_weeks,
    issue_code,
    load_settings,
    report_filename,
    send_verification_email,
    verify_code,
    week_bounds,
)
from internly.uploads import MAX_IMAGE_BYTES, upload_image, validate_image

from fastapi import Body, Depends, FastAPI, File, HTTPException, UploadFile, status
from fastapi.responses import HTMLResponse, JSONResponse, Response
from fastapi.security import HTTPBasic, HTTPBasicCredentials


# ── HTML helpers ──────────────────────────────────────────────

def _escape(s: str) -> str:
    return (
        s.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
    )


# ── Services ──────────────────────────────────────────────────

@lru_cache(maxsize=1)
def _default_services() -> Services:
    configure_logging(load_settings().log_level)
    services = build_services()
    services.controller.load_unauthenticated()
    return services


def get_services() -> Services:
    return _default_services()


# ── Auth ──────────────────────────────────────────────────────

app = FastAPI(title="Internly", version="0.1.0")

security = HTTPBasic(auto_error=False)


def get_current_user(credentials: HTTPBasicCredentials | None = Depends(security)) -> str:
    expected_username = os.environ.get("INTERNLY_USERNAME", "")
    expected_password = os.environ.get("INTERNLY_PASSWORD", "")

    if credentials is None:
        if not expected_username or not expected_password:
            return "guest"
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Basic"},
        )

    if not expected_username or not expected_password:
        return "guest"

    correct_username = secrets.compare_digest(credentials.username.encode("utf-8"), expected_username.encode("utf-8"))
    correct_password = secrets.compare_digest(credentials.password.encode("utf-8"), expected_password.encode("utf-8"))

    if not (correct_username and correct_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Basic"},
        )

    return credentials.username


def _call(fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """Run a core operation, mapping core errors to HTTP errors."""
    try:
        return fn(*args, **kwargs)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail="; ".join(e.errors))
    except (VerificationError, TypeError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except AuthenticationError as e:
        raise HTTPException(status_code=401, detail=e.message)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except DeliveryError as e:
        raise HTTPException(status_code=502, detail=str(e))
    except TransientRemoteError as e:
        raise HTTPException(status_code=503, detail=str(e))


def _parse(fn: Callable[[dict[str, Any]], Any], payload: dict[str, Any]) -> Any:
    """Build a model from a request payload; malformed values are a 400."""
    try:
        return fn(payload)
    except (TypeError, ValueError) as e:
        raise HTTPException(status_code=400, detail=f"Invalid payload: {e}")


def _accounts(services: Services):
    if services.accounts is None:
        raise HTTPException(status_code=503, detail="Accounts are not configured")
    return services.accounts


def _state_dict(state: AppState) -> dict[str, Any]:
    return {
        "status": state.status,
        "readOnly": state.read_only,
        "user": state.user.to_dict() if state.user else None,
        "logs": [log.to_dict() for log in state.logs],
        "reports": [report.to_dict() for report in state.reports],
        "stats": state.stats.to_dict(),
    }


# ── Health & dashboard ────────────────────────────────────────

@app.get("/healthz")
def healthz() -> dict[str, str]:
    return {"ok": "true"}


@app.get("/", response_class=HTMLResponse)
def index(username: str = Depends(get_current_user), services: Services = Depends(get_services)) -> HTMLResponse:
    state = services.controller.state
    stats = state.stats
    name = state.user.name if state.user else "(signed out)"

    rows = []
    for log in state.logs[:30]:
        rows.append(
            f"<tr><td>{_escape(log.entry_date)}</td>"
            f"<td>{_escape(', '.join(log.activity_type))}</td>"
            f"<td>{_escape(log.task_description[:120])}</td>"
            f"<td>{_escape(log.supervisor)}</td>"
            f"<td>{log.daily_hours:g}</td></tr>"
        )

    html = f"""<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8" />
  <meta name="viewport" content="width=device-width, initial-scale=1" />
  <title>Internly</title>
  <style>
    body {{ font-family: -apple-system, 'Segoe UI', Roboto, sans-serif; background: #0f172a; color: #e2e8f0; margin: 0; }}
    .container {{ max-width: 960px; margin: 0 auto; padding: 24px; }}
    .card {{ background: #1e293b; border-radius: 12px; padding: 16px; margin-bottom: 16px; }}
    .grid {{ display: grid; grid-template-columns: repeat(auto-fit, minmax(160px, 1fr)); gap: 12px; }}
    .muted {{ color: #94a3b8; }}
    .big {{ font-size: 28px; font-weight: 700; }}
    table {{ width: 100%; border-collapse: collapse; font-size: 13px; }}
    td, th {{ text-align: left; padding: 6px; border-bottom: 1px solid #334155; }}
  </style>
</head>
<body>
  <div class="container">
    <header>
      <h1>Internly</h1>
      <div class="muted">{_escape(name)} · <code>{_escape(state.status)}</code></div>
    </header>

    <section class="card grid">
      <div><div class="muted">Rendered</div><div class="big">{stats.total_rendered:g}h</div></div>
      <div><div class="muted">Remaining</div><div class="big">{stats.remaining:g}h</div></div>
      <div><div class="muted">Progress</div><div class="big">{stats.progress_percentage:g}%</div></div>
      <div><div class="muted">This week</div><div class="big">{stats.hours_this_week:g}h</div></div>
      <div><div class="muted">Weekly avg</div><div class="big">{stats.weekly_average:g}h</div></div>
      <div><div class="muted">Days logged</div><div class="big">{stats.days_logged}</div></div>
    </section>

    <section class="card">
      <h2>Recent logs</h2>
      {'<table><tr><th>Date</th><th>Activity</th><th>Description</th><th>Supervisor</th><th>Hours</th></tr>' + ''.join(rows) + '</table>' if rows else '<div class="muted">No logs yet.</div>'}
    </section>
  </div>
</body>
</html>"""
    return HTMLResponse(html)


# ── Verification & uploads ────────────────────────────────────

@app.post("/api/send-verification")
def api_send_verification(payload: dict[str, Any] = Body(...), services: Services = Depends(get_services)) -> Any:
    email = str(payload.get("email") or "").strip()
    if not email:
        return JSONResponse(status_code=400, content={"error": "Email is required"})
    if services.mailer is None:
        return JSONResponse(status_code=500, content={"error": "Email delivery is not configured"})

    ticket = issue_code(services.settings.verification_secret, email.lower())
    try:
        send_verification_email(services.mailer, email, payload.get("name"), ticket.code)
    except DeliveryError as e:
        return JSONResponse(status_code=500, content={"error": f"Failed to send verification email: {e}"})
    return ticket.public()


@app.post("/api/verify-code")
def api_verify_code(payload: dict[str, Any] = Body(...), services: Services = Depends(get_services)) -> Any:
    try:
        verify_code(
            services.settings.verification_secret,
            str(payload.get("code") or ""),
            str(payload.get("email") or ""),
            str(payload.get("token") or ""),
            payload.get("expiresAt") or 0,
        )
    except VerificationError as e:
        return JSONResponse(status_code=400, content={"verified": False, "error": str(e)})
    return {"verified": True}


@app.post("/api/upload-image")
def api_upload_image(
    image: UploadFile | None = File(default=None),
    username: str = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> Any:
    if not services.uploads_enabled:
        return JSONResponse(status_code=500, content={"error": "Image upload not configured"})
    if image is None:
        return JSONResponse(status_code=400, content={"error": "No image provided"})

    data = image.file.read(MAX_IMAGE_BYTES + 1)
    errors = validate_image(image.content_type, len(data))
    if errors:
        return JSONResponse(status_code=400, content={"error": "; ".join(errors)})
    stem = os.path.splitext(image.filename or "image")[0]
    return {"url": upload_image(data, f"chat_{stem}_{secrets.token_hex(4)}")}


# ── Session ───────────────────────────────────────────────────

@app.post("/api/signup")
def api_signup(payload: dict[str, Any] = Body(...), services: Services = Depends(get_services)) -> dict[str, Any]:
    pending = _call(
        _accounts(services).sign_up,
        str(payload.get("name") or ""),
        str(payload.get("email") or ""),
        str(payload.get("password") or ""),
        str(payload.get("confirmPassword") or ""),
        payload.get("totalRequiredHours", services.settings.default_required_hours),
        str(payload.get("startDate") or ""),
    )
    return {"ok": True, "email": pending.email, "expiresAt": pending.token_expires_at}


@app.post("/api/signup/resend")
def api_signup_resend(services: Services = Depends(get_services)) -> dict[str, Any]:
    pending = _call(_accounts(services).resend_code)
    return {"ok": True, "expiresAt": pending.token_expires_at}


@app.post("/api/signup/verify")
def api_signup_verify(payload: dict[str, Any] = Body(...), services: Services = Depends(get_services)) -> dict[str, Any]:
    user = _call(_accounts(services).verify_signup, str(payload.get("code") or ""), payload.get("password"))
    return {"ok": True, "user": user.to_dict()}


@app.post("/api/login")
def api_login(payload: dict[str, Any] = Body(...), services: Services = Depends(get_services)) -> dict[str, Any]:
    _call(
        _accounts(services).login,
        str(payload.get("email") or ""),
        str(payload.get("password") or ""),
        bool(payload.get("rememberMe", False)),
    )
    return _state_dict(services.controller.state)


@app.post("/api/logout")
def api_logout(services: Services = Depends(get_services)) -> dict[str, Any]:
    if services.accounts is not None:
        services.accounts.logout()
    else:
        services.session.sign_out()
    return {"ok": True}


@app.post("/api/password-reset")
def api_password_reset(payload: dict[str, Any] = Body(...), services: Services = Depends(get_services)) -> dict[str, Any]:
    return {"message": _accounts(services).request_password_reset(str(payload.get("email") or ""))}


# ── State & aggregates ────────────────────────────────────────

@app.get("/api/state")
def api_get_state(username: str = Depends(get_current_user), services: Services = Depends(get_services)) -> dict[str, Any]:
    return _state_dict(services.controller.state)


@app.post("/api/refresh")
def api_refresh(username: str = Depends(get_current_user), services: Services = Depends(get_services)) -> dict[str, Any]:
    controller = services.controller
    state = controller.data_refreshed() if services.session.current else controller.load_unauthenticated()
    return _state_dict(state)


@app.get("/api/stats")
def api_get_stats(username: str = Depends(get_current_user), services: Services = Depends(get_services)) -> dict[str, Any]:
    return services.controller.state.stats.to_dict()


@app.get("/api/weeks")
def api_get_weeks(username: str = Depends(get_current_user), services: Services = Depends(get_services)) -> dict[str, Any]:
    return {"weeks": [w.to_dict() for w in group_logs_into_weeks(services.controller.state.logs)]}


@app.get("/api/burndown")
def api_get_burndown(username: str = Depends(get_current_user), services: Services = Depends(get_services)) -> dict[str, Any]:
    state = services.controller.state
    if state.user is None or not state.user.start_date:
        return {"points": []}
    points = compute_burndown(
        state.logs,
        state.user.total_required_hours,
        state.user.start_date,
        state.user.end_date,
        today=services.controller.today,
    )
    return {"points": [p.to_dict() for p in points]}


# ── Daily logs ────────────────────────────────────────────────

@app.get("/api/logs")
def api_list_logs(username: str = Depends(get_current_user), services: Services = Depends(get_services)) -> dict[str, Any]:
    return {"logs": [log.to_dict() for log in services.controller.state.logs]}


@app.post("/api/logs")
def api_create_log(
    payload: dict[str, Any] = Body(...),
    username: str = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    log = _call(services.controller.add_log, _parse(DailyLog.from_dict, payload))
    return {"ok": True, "log": log.to_dict()}


@app.put("/api/logs/{log_id}")
def api_update_log(
    log_id: str,
    payload: dict[str, Any] = Body(...),
    username: str = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    patch = _parse(DailyLogPatch.from_dict, payload)
    log = _call(services.controller.update_log, log_id, patch)
    return {"ok": True, "log": log.to_dict()}


@app.delete("/api/logs/{log_id}")
def api_delete_log(log_id: str, username: str = Depends(get_current_user), services: Services = Depends(get_services)) -> dict[str, Any]:
    _call(services.controller.delete_log, log_id)
    return {"ok": True, "log_id": log_id}


# ── User settings ─────────────────────────────────────────────

@app.put("/api/user")
def api_update_user(
    payload: dict[str, Any] = Body(...),
    username: str = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    patch = _parse(UserPatch.from_dict, payload)
    user = _call(services.controller.update_user, patch)
    return {"ok": True, "user": user.to_dict()}


# ── Weekly reports ────────────────────────────────────────────

def _week(week_start: str | None) -> tuple[date, date]:
    try:
        day = date.fromisoformat(week_start) if week_start else date.today()
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid date: {week_start}")
    return week_bounds(day)


@app.get("/api/reports")
def api_list_reports(username: str = Depends(get_current_user), services: Services = Depends(get_services)) -> dict[str, Any]:
    return {"reports": [r.to_dict() for r in services.controller.state.reports]}


@app.post("/api/reports")
def api_save_report(
    payload: dict[str, Any] = Body(...),
    username: str = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    start, end = _week(payload.get("weekStart"))
    report = _call(services.controller.save_weekly_report, start, end, str(payload.get("reflection") or ""))
    return {"ok": True, "report": report.to_dict()}


@app.get("/api/reports/pdf")
def api_report_pdf(
    weekStart: str | None = None,
    label: str | None = None,
    username: str = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> Response:
    """Export a week as PDF; exporting also saves the report."""
    controller = services.controller
    start, end = _week(weekStart)
    existing = next((r for r in controller.state.reports if r.week_start == start.isoformat()), None)
    reflection = existing.reflection if existing else ""
    report = _call(controller.save_weekly_report, start, end, reflection)

    week_label = label or f"{start:%b} {start.day} - {end:%b} {end.day}, {end.year}"
    buffer = io.BytesIO()
    generate_weekly_report_pdf(
        buffer,
        report.logs or filter_logs_in_range(controller.state.logs, start, end),
        week_label,
        report.reflection,
        controller.state.user.name if controller.state.user else "",
    )
    return Response(
        content=buffer.getvalue(),
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{report_filename(week_label)}"'},
    )


# ── Notifications ─────────────────────────────────────────────

def _owner(services: Services) -> str:
    user = services.controller.state.user
    if services.session.current is None or user is None:
        raise HTTPException(status_code=401, detail="Sign in to continue")
    return user.id


@app.get("/api/notifications")
def api_list_notifications(username: str = Depends(get_current_user), services: Services = Depends(get_services)) -> dict[str, Any]:
    notifications = _call(services.remote.get_notifications, _owner(services))
    return {"notifications": [n.to_dict() for n in notifications]}


@app.post("/api/notifications/read-all")
def api_read_all_notifications(username: str = Depends(get_current_user), services: Services = Depends(get_services)) -> dict[str, Any]:
    return {"ok": True, "updated": _call(services.remote.mark_all_notifications_read, _owner(services))}


@app.post("/api/notifications/{notification_id}/read")
def api_read_notification(
    notification_id: str,
    username: str = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    _call(services.remote.mark_notification_read, notification_id, _owner(services))
    return {"ok": True}


@app.delete("/api/notifications/{notification_id}")
def api_delete_notification(
    notification_id: str,
    username: str = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    _call(services.remote.delete_notification, notification_id, _owner(services))
    return {"ok": True}


# ── Chat ──────────────────────────────────────────────────────

def _chat_me(services: Services) -> ChatUser:
    uid = _owner(services)
    user = services.controller.state.user
    return ChatUser(uid=uid, name=user.name, email=user.email, profile_image=user.profile_image, online=True)


def _member_conversation(services: Services, conversation_id: str, uid: str) -> Conversation:
    conversation = _call(services.chat.get_conversation, conversation_id)
    if uid not in conversation.participants:
        raise HTTPException(status_code=404, detail=f"Conversation not found: {conversation_id}")
    return conversation


@app.get("/api/chat/users")
def api_list_chat_users(username: str = Depends(get_current_user), services: Services = Depends(get_services)) -> dict[str, Any]:
    _owner(services)
    return {"users": [u.to_dict() for u in _call(services.chat.list_chat_users)]}


@app.post("/api/chat/presence")
def api_chat_presence(
    payload: dict[str, Any] = Body(...),
    username: str = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Register the signed-in user in the chat directory and set online status."""
    me = _chat_me(services)
    _call(services.chat.upsert_chat_user, me)
    online = bool(payload.get("online", True))
    if not online:
        _call(services.chat.set_online_status, me.uid, False)
    return {"ok": True, "uid": me.uid, "online": online}


@app.get("/api/chat/conversations")
def api_list_conversations(username: str = Depends(get_current_user), services: Services = Depends(get_services)) -> dict[str, Any]:
    conversations = _call(services.chat.list_conversations, _owner(services))
    return {"conversations": [c.to_dict() for c in conversations]}


@app.post("/api/chat/conversations")
def api_open_conversation(
    payload: dict[str, Any] = Body(...),
    username: str = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Open a direct conversation with ``otherUid``, or create a group from ``memberUids`` and ``name``."""
    me = _chat_me(services)
    chat = services.chat

    def lookup(uid: str) -> ChatUser:
        found = _call(chat.get_chat_user, uid)
        if found is None:
            raise HTTPException(status_code=404, detail=f"Chat user not found: {uid}")
        return found

    if payload.get("memberUids"):
        members = [lookup(str(uid)) for uid in payload["memberUids"]]
        conversation_id = _call(chat.create_group_conversation, me, members, str(payload.get("name") or ""))
    else:
        other_uid = str(payload.get("otherUid") or "")
        if not other_uid or other_uid == me.uid:
            raise HTTPException(status_code=400, detail="otherUid must name another chat user")
        conversation_id = _call(chat.get_or_create_conversation, me, lookup(other_uid))
    return {"ok": True, "conversation": _call(chat.get_conversation, conversation_id).to_dict()}


@app.get("/api/chat/conversations/{conversation_id}/messages")
def api_list_messages(
    conversation_id: str,
    username: str = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    _member_conversation(services, conversation_id, _owner(services))
    return {"messages": [m.to_dict() for m in _call(services.chat.list_messages, conversation_id)]}


@app.post("/api/chat/conversations/{conversation_id}/messages")
def api_send_message(
    conversation_id: str,
    payload: dict[str, Any] = Body(...),
    username: str = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    uid = _owner(services)
    conversation = _member_conversation(services, conversation_id, uid)
    recipients = [p for p in conversation.participants if p != uid]
    message_id = _call(
        services.chat.send_message,
        conversation_id,
        uid,
        recipients,
        text=payload.get("text") or None,
        image_url=payload.get("imageUrl") or None,
    )
    return {"ok": True, "id": message_id}


@app.post("/api/chat/conversations/{conversation_id}/read")
def api_read_conversation(
    conversation_id: str,
    username: str = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Reset the unread counter and mark other people's messages as seen."""
    uid = _owner(services)
    _member_conversation(services, conversation_id, uid)
    chat = services.chat
    _call(chat.mark_conversation_read, conversation_id, uid)
    seen = _call(chat.mark_messages_seen, conversation_id, uid, _call(chat.list_messages, conversation_id))
    return {"ok": True, "seen": seen}


@app.post("/api/chat/conversations/{conversation_id}/typing")
def api_chat_typing(
    conversation_id: str,
    payload: dict[str, Any] = Body(...),
    username: str = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    uid = _owner(services)
    _member_conversation(services, conversation_id, uid)
    outcome = services.chat.set_typing_status(conversation_id, uid, bool(payload.get("typing")))
    return {"ok": outcome.ok}


@app.put("/api/chat/conversations/{conversation_id}/nicknames/{member_uid}")
def api_set_nickname(
    conversation_id: str,
    member_uid: str,
    payload: dict[str, Any] = Body(...),
    username: str = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    _member_conversation(services, conversation_id, _owner(services))
    _call(services.chat.set_nickname, conversation_id, member_uid, str(payload.get("nickname") or ""))
    return {"ok": True}


@app.delete("/api/chat/conversations/{conversation_id}/members/{member_uid}")
def api_kick_member(
    conversation_id: str,
    member_uid: str,
    username: str = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    uid = _owner(services)
    _member_conversation(services, conversation_id, uid)
    _call(services.chat.kick_group_member, conversation_id, member_uid, uid)
    return {"ok": True}
