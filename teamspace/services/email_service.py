"""
Outbound mail over Resend.

``EmailService.send`` is the mail transport. The message builders below are
shared by the in-request critical path (password reset) and the Celery email
tasks (verification, welcome, password changed).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import resend

from teamspace.core.config import settings
from teamspace.core.errors import DownstreamServiceError

logger = logging.getLogger(__name__)

APP_NAME = "Teamspace"


@dataclass(frozen=True)
class EmailMessage:
    subject: str
    html: str
    text: str


# ---------------------------------------------------------------------------
# Message builders
# ---------------------------------------------------------------------------

def _button(url: str, label: str) -> str:
    return f"""
        <p>
            <a href="{url}"
               style="background:#6366f1;color:#fff;padding:12px 24px;
                      border-radius:6px;text-decoration:none;display:inline-block;">
                {label}
            </a>
        </p>
    """


def verification_message(token: str) -> EmailMessage:
    url = f"{settings.FRONTEND_URL}/auth/verify-email?token={token}"
    return EmailMessage(
        subject=f"Verify Your Email - {APP_NAME}",
        html=f"""
            <h2>Verify your email address</h2>
            <p>Thanks for signing up for {APP_NAME}. Confirm your address to activate your account.</p>
            {_button(url, "Verify Email")}
            <p>This link expires in {settings.EMAIL_VERIFICATION_TTL_HOURS} hours.</p>
        """,
        text=f"Verify your email address: {url}",
    )


def welcome_message(display_name: str) -> EmailMessage:
    url = f"{settings.FRONTEND_URL}/dashboard"
    return EmailMessage(
        subject=f"Welcome to {APP_NAME}!",
        html=f"""
            <h2>Welcome, {display_name}!</h2>
            <p>Your email is verified and your account is ready.</p>
            {_button(url, "Get Started")}
        """,
        text=f"Welcome, {display_name}! Your account is ready: {url}",
    )


def password_reset_message(display_name: str, token: str) -> EmailMessage:
    url = f"{settings.FRONTEND_URL}/auth/reset-password?token={token}"
    minutes = settings.PASSWORD_RESET_TOKEN_TTL_MINUTES
    return EmailMessage(
        subject=f"Reset Your Password - {APP_NAME}",
        html=f"""
            <h2>Reset your password</h2>
            <p>Hi {display_name}, we received a request to reset your {APP_NAME} password.</p>
            {_button(url, "Reset Password")}
            <p>This link expires in {minutes} minutes.</p>
            <p>If you did not request a password reset, you can safely ignore this email.</p>
        """,
        text=f"Reset your password (expires in {minutes} minutes): {url}",
    )


def password_changed_message(display_name: str) -> EmailMessage:
    return EmailMessage(
        subject=f"Password Changed Successfully - {APP_NAME}",
        html=f"""
            <h2>Your password was changed</h2>
            <p>Hi {display_name}, the password for your {APP_NAME} account was just changed.</p>
            <p>If this wasn't you, reset your password immediately.</p>
        """,
        text=f"Hi {display_name}, the password for your {APP_NAME} account was just changed.",
    )


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------

class EmailService:
    """Thin wrapper over the Resend API."""

    def __init__(self, api_key: str | None = None, sender: str | None = None) -> None:
        self.api_key = api_key or settings.RESEND_API_KEY
        self.sender = sender or settings.EMAIL_FROM

    def send(self, to: str, subject: str, html: str, text: str | None = None) -> str:
        """
        Send one message and return the provider's delivery id.

        Raises:
            DownstreamServiceError: if Resend rejects the message or is unreachable.
        """
        resend.api_key = self.api_key
        params: resend.Emails.SendParams = {
            "from": self.sender,
            "to": [to],
            "subject": subject,
            "html": html,
        }
        if text:
            params["text"] = text
        try:
            response = resend.Emails.send(params)
        except Exception as exc:
            logger.warning("Resend delivery to %s failed: %s", to, exc)
            raise DownstreamServiceError("Failed to send email", code="EMAIL_DELIVERY_FAILED") from exc
        return response["id"]

    def send_message(self, to: str, message: EmailMessage) -> str:
        return self.send(to, message.subject, message.html, message.text)
