"""Outbound email through the Resend HTTP API."""

from __future__ import annotations

import html
import logging
from typing import Protocol

import requests

from internly.errors import DeliveryError

logger = logging.getLogger(__name__)

RESEND_URL = "https://api.resend.com/emails"

VERIFICATION_SUBJECT = "Your Internly Verification Code"


class EmailSender(Protocol):
    def send(self, to: str, subject: str, html_body: str) -> bool: ...


class ResendEmailSender:
    def __init__(self, api_key: str, sender: str = "Internly <noreply@internly.app>", timeout: float = 10.0):
        self.api_key = api_key
        self.sender = sender
        self.timeout = timeout

    def send(self, to: str, subject: str, html_body: str) -> bool:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        data = {
            "from": self.sender,
            "to": [to],
            "subject": subject,
            "html": html_body,
        }
        try:
            response = requests.post(RESEND_URL, json=data, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error("Email to %s not sent: %s", to, e)
            return False

        # Resend answers 200 or 202 when the message is accepted
        if response.status_code in (200, 202):
            return True
        logger.error("Email to %s rejected: %s %s", to, response.status_code, response.text)
        return False


def render_verification_email(name: str | None, code: str) -> str:
    greeting = html.escape(name or "there")
    return f"""\
<div style="font-family: -apple-system, 'Segoe UI', Roboto, sans-serif; max-width: 480px; margin: 0 auto; padding: 32px;">
  <h2 style="color: #1e1e2e; text-align: center;">Verify your email</h2>
  <p style="color: #64748b; font-size: 14px; text-align: center;">
    Hi {greeting}, use the code below to verify your Internly account:
  </p>
  <div style="background: #f1f5f9; border-radius: 12px; padding: 24px; text-align: center;">
    <span style="font-size: 36px; font-weight: 700; letter-spacing: 8px; color: #6366f1; font-family: monospace;">{code}</span>
  </div>
  <p style="color: #94a3b8; font-size: 13px; text-align: center;">This code expires in 10 minutes.</p>
  <p style="color: #94a3b8; font-size: 12px; text-align: center;">
    If you didn't request this code, you can safely ignore this email.
  </p>
</div>
"""


def send_verification_email(sender: EmailSender, to: str, name: str | None, code: str) -> None:
    if not sender.send(to, VERIFICATION_SUBJECT, render_verification_email(name, code)):
        raise DeliveryError(f"Failed to send verification email to {to}")
