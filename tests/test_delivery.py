"""Tests for internly/mailer.py and internly/uploads.py — outbound collaborators."""

import pytest
import requests

from conftest import RecordingMailer

from internly import mailer as mailer_module
from internly import uploads
from internly.errors import DeliveryError
from internly.mailer import (
    RESEND_URL,
    VERIFICATION_SUBJECT,
    ResendEmailSender,
    render_verification_email,
    send_verification_email,
)
from internly.uploads import MAX_IMAGE_BYTES, configure_uploads, upload_image, validate_image
from internly.workspace import Settings


class FakeResponse:
    def __init__(self, status_code, text=""):
        self.status_code = status_code
        self.text = text


def test_render_escapes_name():
    body = render_verification_email("<script>", "123456")
    assert "&lt;script&gt;" in body
    assert "123456" in body
    assert "Hi there" in render_verification_email(None, "123456")


def test_send_verification_email():
    mailer = RecordingMailer()
    send_verification_email(mailer, "ana@example.com", "Ana", "654321")
    assert mailer.sent[0]["subject"] == VERIFICATION_SUBJECT
    assert "654321" in mailer.sent[0]["html"]


def test_send_verification_email_failure():
    with pytest.raises(DeliveryError):
        send_verification_email(RecordingMailer(accept=False), "ana@example.com", "Ana", "654321")


@pytest.mark.parametrize("status,accepted", [(200, True), (202, True), (422, False)])
def test_resend_sender_status(monkeypatch, status, accepted):
    sent = []

    def fake_post(url, json=None, headers=None, timeout=None):
        sent.append((url, json, headers))
        return FakeResponse(status, "error detail")

    monkeypatch.setattr(mailer_module.requests, "post", fake_post)
    sender = ResendEmailSender("re_key", "Internly <noreply@internly.app>")
    assert sender.send("ana@example.com", "Hello", "<p>Hi</p>") is accepted

    url, payload, headers = sent[0]
    assert url == RESEND_URL
    assert payload["to"] == ["ana@example.com"]
    assert headers["Authorization"] == "Bearer re_key"


def test_resend_sender_network_failure(monkeypatch):
    def fake_post(*args, **kwargs):
        raise requests.Timeout("slow")

    monkeypatch.setattr(mailer_module.requests, "post", fake_post)
    assert ResendEmailSender("re_key").send("ana@example.com", "Hello", "<p>Hi</p>") is False


# ── Uploads ───────────────────────────────────────────────────


def test_validate_image():
    assert validate_image("image/png", 1024) == []
    assert validate_image("application/pdf", 1024) == ["File must be an image"]
    assert validate_image("image/jpeg", MAX_IMAGE_BYTES + 1) == ["Image must be under 5MB"]
    assert validate_image(None, 0) == ["File must be an image"]


def test_uploads_disabled_without_credentials():
    assert configure_uploads(Settings()) is False


def test_upload_image_returns_secure_url(monkeypatch):
    calls = []

    def fake_upload(stream, public_id=None, folder=None):
        calls.append((public_id, folder))
        return {"secure_url": f"https://res.cloudinary.com/demo/{folder}/{public_id}.png"}

    monkeypatch.setattr(uploads.cloudinary.uploader, "upload", fake_upload)
    url = upload_image(b"\x89PNG", "chat_photo")
    assert url == "https://res.cloudinary.com/demo/internly/chat_photo.png"
    assert calls == [("chat_photo", "internly")]
