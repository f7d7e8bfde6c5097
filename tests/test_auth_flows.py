"""
Registration, verification, login and password reset tests.

Outbound mail is a MagicMock; Celery enqueueing is patched out.
"""

from datetime import timedelta
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy import select

from teamspace.core.errors import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    DownstreamServiceError,
    RateLimitError,
    ValidationError,
)
from teamspace.core.security import (
    decode_access_token,
    password_reset_counter_key,
    password_reset_redis_key,
    password_reset_user_key,
)
from teamspace.models.base import utcnow
from teamspace.models.email_verification import EmailVerification
from teamspace.schemas.auth import LoginRequest, ProfileUpdateRequest, RegisterRequest
from teamspace.services.account_service import AccountService
from teamspace.services.auth_service import RESET_REQUESTED_MESSAGE, AuthService, _enqueue
from teamspace.workers.maintenance_tasks import purge_verifications
from tests.conftest import TEST_PASSWORD, make_user


@pytest.fixture
def mailer() -> MagicMock:
    mailer = MagicMock()
    mailer.send_message.return_value = "delivery-1"
    return mailer


@pytest.fixture
def auth(db, redis, mailer) -> AuthService:
    return AuthService(db, redis, email=mailer)


@pytest.fixture
def enqueued():
    with patch("teamspace.services.auth_service._enqueue") as mock:
        yield mock


def register_request(email="erin@acme.io", name="Erin") -> RegisterRequest:
    return RegisterRequest(email=email, password=TEST_PASSWORD, display_name=name)


async def token_for(db, user_id) -> str:
    result = await db.execute(select(EmailVerification.token).where(EmailVerification.user_id == user_id))
    return result.scalars().first()


# ---------------------------------------------------------------------------
# Register / Login
# ---------------------------------------------------------------------------

class TestRegisterAndLogin:
    async def test_register_queues_verification(self, db, auth, enqueued):
        response = await auth.register(register_request(email="Erin@Acme.io"))

        assert response.user.email == "erin@acme.io"
        assert response.user.email_verified is False
        assert response.previously_deleted is False
        token = await token_for(db, response.user.id)
        enqueued.assert_called_once_with("send_verification_email", to_email="erin@acme.io", token=token)

    async def test_duplicate_email_is_a_conflict(self, auth, alice, enqueued):
        with pytest.raises(ConflictError):
            await auth.register(register_request(email="alice@acme.io", name="Other Alice"))

    async def test_deleted_email_can_register_again(self, db, auth, alice, enqueued):
        await AccountService(db).soft_delete_user(alice.id)
        response = await auth.register(register_request(email="alice@acme.io", name="Alice Again"))
        assert response.previously_deleted is True
        assert response.user.id != alice.id

    async def test_login_requires_verified_email(self, db, auth):
        await make_user(db, "Frank", verified=False)
        with pytest.raises(AuthorizationError):
            await auth.login(LoginRequest(email="frank@acme.io", password=TEST_PASSWORD))

    async def test_login_rejects_bad_password(self, auth, alice):
        with pytest.raises(AuthenticationError):
            await auth.login(LoginRequest(email="alice@acme.io", password="wrong-password"))

    async def test_login_issues_token(self, auth, alice):
        response = await auth.login(LoginRequest(email="ALICE@acme.io", password=TEST_PASSWORD))
        payload = decode_access_token(response.access_token)
        assert payload["sub"] == str(alice.id)
        assert response.user.display_name == "Alice"

    async def test_deleted_user_cannot_log_in(self, db, auth, alice):
        await AccountService(db).soft_delete_user(alice.id)
        with pytest.raises(AuthenticationError):
            await auth.login(LoginRequest(email="alice@acme.io", password=TEST_PASSWORD))

    async def test_profile_update_applies_present_fields(self, auth, alice):
        alice.phone = "+1 555 0100"
        updated = await auth.update_profile(alice, ProfileUpdateRequest(display_name="Alice B", phone=None))
        assert updated.display_name == "Alice B"
        assert updated.phone is None


# ---------------------------------------------------------------------------
# Email verification
# ---------------------------------------------------------------------------

class TestVerifyEmail:
    async def test_second_verification_is_a_quiet_success(self, db, auth, enqueued):
        registered = await auth.register(register_request())
        token = await token_for(db, registered.user.id)
        enqueued.reset_mock()

        first = await auth.verify_email(token)
        second = await auth.verify_email(token)

        assert first.already_verified is False
        assert second.already_verified is True
        enqueued.assert_called_once_with("send_welcome_email", to_email="erin@acme.io", display_name="Erin")

    async def test_expired_token_is_rejected(self, db, auth):
        user = await make_user(db, "Gina", verified=False)
        db.add(EmailVerification(user_id=user.id, token="stale", expires_at=utcnow() - timedelta(minutes=1)))
        await db.flush()

        with pytest.raises(ValidationError):
            await auth.verify_email("stale")

    async def test_resend_for_verified_user(self, auth, alice, enqueued):
        with pytest.raises(ValidationError):
            await auth.resend_verification("alice@acme.io")
        enqueued.assert_not_called()

    async def test_resend_for_unknown_email_is_generic(self, auth, enqueued):
        response = await auth.resend_verification("nobody@acme.io")
        assert "If an account with that email exists" in response.message
        enqueued.assert_not_called()

    async def test_purge_removes_expired_and_settled_rows(self, db, alice):
        pending = await make_user(db, "Hank", verified=False)
        db.add_all(
            [
                EmailVerification(user_id=pending.id, token="live", expires_at=utcnow() + timedelta(hours=1)),
                EmailVerification(user_id=pending.id, token="old", expires_at=utcnow() - timedelta(hours=1)),
                EmailVerification(user_id=alice.id, token="done", expires_at=utcnow() + timedelta(hours=1)),
            ]
        )
        await db.flush()

        assert await purge_verifications(db) == 2
        remaining = (await db.execute(select(EmailVerification.token))).scalars().all()
        assert remaining == ["live"]


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------

class TestPasswordReset:
    async def test_rate_limited_after_three_requests(self, auth, redis, alice, mailer):
        for _ in range(3):
            assert (await auth.forgot_password("alice@acme.io")).message == RESET_REQUESTED_MESSAGE

        with pytest.raises(RateLimitError):
            await auth.forgot_password("alice@acme.io")
        assert mailer.send_message.call_count == 3
        assert redis.ttls[password_reset_counter_key("alice@acme.io")] == 3600

    async def test_unknown_email_is_silent(self, auth, mailer):
        response = await auth.forgot_password("nobody@acme.io")
        assert response.message == RESET_REQUESTED_MESSAGE
        mailer.send_message.assert_not_called()

    async def test_mail_failure_propagates_and_revokes_token(self, auth, redis, alice, mailer):
        mailer.send_message.side_effect = DownstreamServiceError("Resend unavailable", code="EMAIL_DELIVERY_FAILED")

        with pytest.raises(DownstreamServiceError):
            await auth.forgot_password("alice@acme.io")

        assert redis.store.get(password_reset_user_key(str(alice.id))) is None
        assert not any(key.startswith("pwd_reset:") for key in redis.store)

    async def test_new_request_revokes_previous_token(self, auth, redis, alice):
        await auth.forgot_password("alice@acme.io")
        first = redis.store[password_reset_user_key(str(alice.id))]
        await auth.forgot_password("alice@acme.io")
        second = redis.store[password_reset_user_key(str(alice.id))]

        assert first != second
        assert (await auth.verify_reset_token(first)).valid is False
        assert (await auth.verify_reset_token(second)).valid is True

    async def test_reset_password_end_to_end(self, auth, redis, alice, mailer, enqueued):
        await auth.forgot_password("alice@acme.io")
        token = redis.store[password_reset_user_key(str(alice.id))]
        sent_to, message = mailer.send_message.call_args.args
        assert sent_to == "alice@acme.io"
        assert token in message.html

        await auth.reset_password(token, "brand-new-password")

        assert password_reset_redis_key(token) not in redis.store
        assert (await auth.verify_reset_token(token)).valid is False
        enqueued.assert_called_once_with(
            "send_password_changed_email", to_email="alice@acme.io", display_name="Alice"
        )
        login = await auth.login(LoginRequest(email="alice@acme.io", password="brand-new-password"))
        assert login.user.id == alice.id

    async def test_reset_rejects_bad_token_and_short_password(self, auth):
        with pytest.raises(ValidationError):
            await auth.reset_password("not-a-token", "brand-new-password")
        with pytest.raises(ValidationError):
            await auth.reset_password("not-a-token", "short")


class TestEnqueue:
    def test_broker_failure_is_swallowed(self, caplog):
        with patch(
            "teamspace.workers.email_tasks.send_welcome_email.delay", side_effect=ConnectionError("broker down")
        ) as delay:
            _enqueue("send_welcome_email", to_email="erin@acme.io", display_name="Erin")

        delay.assert_called_once_with(to_email="erin@acme.io", display_name="Erin")
        assert "Failed to queue send_welcome_email" in caplog.text
