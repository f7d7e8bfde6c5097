"""
Email background tasks.

Verification, welcome and password-changed emails. These are non-critical:
the request that queues them never waits on delivery.
"""

from teamspace.services.email_service import (
    EmailService,
    password_changed_message,
    verification_message,
    welcome_message,
)
from teamspace.workers.celery_app import celery_app


def _countdown(retries: int) -> int:
    return 60 * (retries + 1)


@celery_app.task(name="teamspace.workers.email_tasks.send_verification_email", bind=True, max_retries=3)
def send_verification_email(self, to_email: str, token: str) -> dict[str, str]:  # type: ignore[no-untyped-def]
    """
    Send the email-verification link via Resend.

    Args:
        to_email: Recipient email address.
        token: Verification token stored in email_verifications.

    Returns:
        Dict with status and message_id.
    """
    try:
        message_id = EmailService().send_message(to_email, verification_message(token))
        return {"status": "sent", "message_id": message_id}
    except Exception as exc:
        raise self.retry(exc=exc, countdown=_countdown(self.request.retries))


@celery_app.task(name="teamspace.workers.email_tasks.send_welcome_email", bind=True, max_retries=3)
def send_welcome_email(self, to_email: str, display_name: str) -> dict[str, str]:  # type: ignore[no-untyped-def]
    """Send the welcome email after a first successful verification."""
    try:
        message_id = EmailService().send_message(to_email, welcome_message(display_name))
        return {"status": "sent", "message_id": message_id}
    except Exception as exc:
        raise self.retry(exc=exc, countdown=_countdown(self.request.retries))


@celery_app.task(name="teamspace.workers.email_tasks.send_password_changed_email", bind=True, max_retries=3)
def send_password_changed_email(self, to_email: str, display_name: str) -> dict[str, str]:  # type: ignore[no-untyped-def]
    try:
        message_id = EmailService().send_message(to_email, password_changed_message(display_name))
        return {"status": "sent", "message_id": message_id}
    except Exception as exc:
        raise self.retry(exc=exc, countdown=_countdown(self.request.retries))
