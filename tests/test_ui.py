"""Tests for ui/app.py — the FastAPI surface."""

import re

import pytest
from fastapi.testclient import TestClient

from conftest import SECRET, FakeAuthProvider, RecordingMailer

import ui.app as web
from internly.models import Notification
from internly.services import build_services
from internly.verification import issue_code

LOG = {
    "entryDate": "2025-01-06",
    "activityType": ["Coding"],
    "taskDescription": "Built the attendance page",
    "supervisor": "Engr. Cruz",
    "dailyHours": 8,
}


@pytest.fixture
def services(workspace):
    return build_services(workspace, provider=FakeAuthProvider(), mailer=RecordingMailer())


@pytest.fixture
def client(services):
    web.app.dependency_overrides[web.get_services] = lambda: services
    yield TestClient(web.app)
    web.app.dependency_overrides.clear()
    services.controller.close()


@pytest.fixture
def signed_in(client, services):
    """Sign up, verify and log in through the API."""
    r = client.post("/api/signup", json={
        "name": "Ana Reyes",
        "email": "ana@example.com",
        "password": "hunter22",
        "confirmPassword": "hunter22",
        "totalRequiredHours": 100,
        "startDate": "2025-01-06",
    })
    assert r.status_code == 200
    code = re.search(r">(\d{6})<", services.mailer.sent[-1]["html"]).group(1)
    assert client.post("/api/signup/verify", json={"code": code}).status_code == 200
    r = client.post("/api/login", json={"email": "ana@example.com", "password": "hunter22"})
    assert r.status_code == 200
    return r.json()


def test_healthz(client):
    assert client.get("/healthz").json() == {"ok": "true"}


def test_dashboard_html(client):
    r = client.get("/")
    assert r.status_code == 200
    assert "Internly" in r.text
    assert "No logs yet." in r.text


def test_basic_auth_gate(client, monkeypatch):
    monkeypatch.setenv("INTERNLY_USERNAME", "admin")
    monkeypatch.setenv("INTERNLY_PASSWORD", "pw")
    assert client.get("/api/state").status_code == 401
    assert client.get("/api/state", auth=("admin", "wrong")).status_code == 401
    assert client.get("/api/state", auth=("admin", "pw")).status_code == 200


# ── Verification & uploads ────────────────────────────────────


def test_send_verification(client, services):
    r = client.post("/api/send-verification", json={"email": "Ana@Example.com", "name": "Ana"})
    assert r.status_code == 200
    body = r.json()
    assert set(body) == {"token", "expiresAt"}
    assert services.mailer.sent[0]["to"] == "Ana@Example.com"


def test_send_verification_needs_email(client):
    assert client.post("/api/send-verification", json={}).status_code == 400


def test_verify_code(client):
    ticket = issue_code(SECRET, "ana@example.com")
    payload = {"code": ticket.code, "email": "ana@example.com", "token": ticket.token, "expiresAt": ticket.expires_at}
    assert client.post("/api/verify-code", json=payload).json() == {"verified": True}

    payload["email"] = "bea@example.com"
    r = client.post("/api/verify-code", json=payload)
    assert r.status_code == 400
    assert r.json() == {"verified": False, "error": "Invalid verification code."}


def test_upload_not_configured(client):
    r = client.post("/api/upload-image", files={"image": ("a.png", b"\x89PNG", "image/png")})
    assert r.status_code == 500


def test_upload_image(client, services, monkeypatch):
    services.uploads_enabled = True
    monkeypatch.setattr(web, "upload_image", lambda data, name: f"https://cdn.example/{name}.png")

    r = client.post("/api/upload-image", files={"image": ("photo.png", b"\x89PNG", "image/png")})
    assert r.status_code == 200
    assert r.json()["url"].startswith("https://cdn.example/chat_photo_")

    r = client.post("/api/upload-image", files={"image": ("notes.txt", b"hello", "text/plain")})
    assert r.status_code == 400
    assert r.json()["error"] == "File must be an image"


# ── Session ───────────────────────────────────────────────────


def test_signup_validation(client):
    r = client.post("/api/signup", json={"name": "", "email": "nope", "password": "1", "confirmPassword": "2"})
    assert r.status_code == 400
    assert "Name is required." in r.json()["detail"]


def test_login_flow(signed_in):
    assert signed_in["status"] == "authenticated"
    assert signed_in["readOnly"] is False
    assert signed_in["user"]["email"] == "ana@example.com"


def test_login_wrong_password(client, signed_in):
    r = client.post("/api/login", json={"email": "ana@example.com", "password": "nope"})
    assert r.status_code == 401
    assert r.json()["detail"] == "Incorrect password. Please try again."


def test_logout(client, signed_in):
    assert client.post("/api/logout").json() == {"ok": True}
    assert client.get("/api/state").json()["status"] == "unauthenticated"


def test_password_reset(client):
    r = client.post("/api/password-reset", json={"email": "nobody@example.com"})
    assert r.status_code == 200
    assert "password reset link" in r.json()["message"]


# ── Data ──────────────────────────────────────────────────────


def test_writes_need_a_session(client):
    assert client.post("/api/logs", json=LOG).status_code == 409


def test_log_crud_and_aggregates(client, services, signed_in):
    r = client.post("/api/logs", json=LOG)
    assert r.status_code == 200
    log_id = r.json()["log"]["id"]
    client.post("/api/logs", json={**LOG, "entryDate": "2025-01-13", "dailyHours": 4})

    stats = client.get("/api/stats").json()
    assert stats["totalRendered"] == 12
    assert stats["remaining"] == 88
    assert stats["daysLogged"] == 2

    weeks = client.get("/api/weeks").json()["weeks"]
    assert [w["start"] for w in weeks] == ["2025-01-13", "2025-01-06"]
    assert client.get("/api/burndown").json()["points"][0]["week"] == "Wk 1"

    r = client.put(f"/api/logs/{log_id}", json={"dailyHours": 6})
    assert r.json()["log"]["dailyHours"] == 6
    assert client.get("/api/stats").json()["totalRendered"] == 10

    assert client.delete(f"/api/logs/{log_id}").status_code == 200
    assert len(client.get("/api/logs").json()["logs"]) == 1
    assert services.remote.get_user(signed_in["user"]["id"]).supervisors == ["Engr. Cruz"]


def test_invalid_log_rejected(client, signed_in):
    r = client.post("/api/logs", json={**LOG, "dailyHours": 30})
    assert r.status_code == 400
    assert "between 0 and 24" in r.json()["detail"]


def test_update_unknown_log(client, signed_in):
    assert client.put("/api/logs/ghost", json={"dailyHours": 1}).status_code == 404


def test_update_user(client, signed_in):
    r = client.put("/api/user", json={"totalRequiredHours": 200})
    assert r.json()["user"]["totalRequiredHours"] == 200
    assert client.put("/api/user", json={"favouriteColour": "blue"}).status_code == 400
    assert client.put("/api/user", json={"totalRequiredHours": 0}).status_code == 400


def test_reports_and_pdf(client, signed_in):
    client.post("/api/logs", json=LOG)
    r = client.post("/api/reports", json={"weekStart": "2025-01-08", "reflection": "Good week"})
    report = r.json()["report"]
    assert report["weekStart"] == "2025-01-06"
    assert len(report["logs"]) == 1

    r = client.get("/api/reports/pdf", params={"weekStart": "2025-01-06"})
    assert r.status_code == 200
    assert r.headers["content-type"] == "application/pdf"
    assert "Internly_WeeklyReport_Jan_6___Jan_12__2025.pdf" in r.headers["content-disposition"]
    assert r.content.startswith(b"%PDF")

    reports = client.get("/api/reports").json()["reports"]
    assert len(reports) == 1
    assert reports[0]["reflection"] == "Good week"


def test_report_bad_date(client, signed_in):
    assert client.post("/api/reports", json={"weekStart": "soon"}).status_code == 400


def test_notifications(client, services, signed_in):
    services.remote.create_notification(Notification(type="reminder", title="Log today"))
    services.remote.create_notification(Notification(type="achievement", title="Halfway"))

    items = client.get("/api/notifications").json()["notifications"]
    assert len(items) == 2
    assert client.post(f"/api/notifications/{items[0]['id']}/read").status_code == 200
    assert client.post("/api/notifications/read-all").json()["updated"] == 1
    assert client.delete(f"/api/notifications/{items[1]['id']}").status_code == 200
    assert len(client.get("/api/notifications").json()["notifications"]) == 1
    assert client.post("/api/notifications/ghost/read").status_code == 404


def test_notifications_need_a_session(client):
    assert client.get("/api/notifications").status_code == 401


def test_login_without_profile(client, services):
    services.provider.add("ghost@example.com", "hunter22", "ghost")
    r = client.post("/api/login", json={"email": "ghost@example.com", "password": "hunter22"})
    assert r.status_code == 401
    assert r.json()["detail"] == "Account data not found on this device. Please sign up again."
    assert client.get("/api/state").json()["status"] == "unauthenticated"


def test_malformed_log_payload(client, signed_in):
    r = client.post("/api/logs", json={**LOG, "dailyHours": "abc"})
    assert r.status_code == 400
    assert r.json()["detail"].startswith("Invalid payload")


# ── Chat ──────────────────────────────────────────────────────


def _chat_user(services, uid, name):
    services.db.set(f"chatUsers/{uid}", {"uid": uid, "name": name, "email": f"{uid}@example.com", "online": True})


def test_chat_needs_a_session(client):
    assert client.get("/api/chat/conversations").status_code == 401


def test_direct_chat(client, services, signed_in):
    me = signed_in["user"]["id"]
    _chat_user(services, "bea", "Bea")

    assert client.post("/api/chat/presence", json={}).json()["uid"] == me
    users = client.get("/api/chat/users").json()["users"]
    assert {u["uid"] for u in users} == {me, "bea"}

    conversation = client.post("/api/chat/conversations", json={"otherUid": "bea"}).json()["conversation"]
    conv_id = conversation["id"]
    assert conversation["participants"] == [me, "bea"]
    again = client.post("/api/chat/conversations", json={"otherUid": "bea"}).json()["conversation"]
    assert again["id"] == conv_id

    assert client.post(f"/api/chat/conversations/{conv_id}/messages", json={"text": "Hi Bea"}).status_code == 200
    services.db.add(f"conversations/{conv_id}/messages", {
        "senderId": "bea",
        "text": "Hello!",
        "timestamp": "2999-01-01T00:00:00+00:00",
        "readBy": {"bea": True},
    })
    services.db.update(f"conversations/{conv_id}", {f"unreadCount.{me}": 1})

    messages = client.get(f"/api/chat/conversations/{conv_id}/messages").json()["messages"]
    assert [m["text"] for m in messages] == ["Hi Bea", "Hello!"]

    assert client.post(f"/api/chat/conversations/{conv_id}/read").json()["seen"] == 1
    listed = client.get("/api/chat/conversations").json()["conversations"]
    assert len(listed) == 1
    assert listed[0]["unreadCount"] == {me: 0, "bea": 1}
    assert client.post(f"/api/chat/conversations/{conv_id}/typing", json={"typing": True}).json() == {"ok": True}


def test_chat_with_unknown_user(client, signed_in):
    assert client.post("/api/chat/conversations", json={"otherUid": "nobody"}).status_code == 404


def test_chat_hides_other_conversations(client, services, signed_in):
    services.db.set("conversations/c9", {"participants": ["bea", "cal"]})
    assert client.get("/api/chat/conversations/c9/messages").status_code == 404
    assert client.post("/api/chat/conversations/c9/messages", json={"text": "hey"}).status_code == 404


def test_group_chat(client, services, signed_in):
    me = signed_in["user"]["id"]
    _chat_user(services, "bea", "Bea")
    _chat_user(services, "cal", "Cal")

    r = client.post("/api/chat/conversations", json={"memberUids": ["bea", "cal"], "name": "Team"})
    group = r.json()["conversation"]
    assert group["isGroup"] is True
    assert group["createdBy"] == me
    conv_id = group["id"]

    assert client.put(f"/api/chat/conversations/{conv_id}/nicknames/bea", json={"nickname": "B"}).status_code == 200
    assert client.delete(f"/api/chat/conversations/{conv_id}/members/cal").status_code == 200
    assert client.delete(f"/api/chat/conversations/{conv_id}/members/{me}").status_code == 409

    listed = client.get("/api/chat/conversations").json()["conversations"][0]
    assert listed["participants"] == [me, "bea"]
    assert listed["nicknames"] == {"bea": "B"}
    messages = client.get(f"/api/chat/conversations/{conv_id}/messages").json()["messages"]
    assert messages[-1]["text"] == "Cal was removed from the group"
