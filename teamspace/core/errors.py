"""
Domain error taxonomy.

Services raise these; only the HTTP layer (main.py) maps them to status codes.
Messages follow a shared vocabulary ("... not found", "... already exists",
"... already a member") so callers can match on them.
"""

from __future__ import annotations

from typing import Any


class DomainError(Exception):
    """Base class for all errors raised by domain services."""

    code = "DOMAIN_ERROR"

    def __init__(self, message: str, code: str | None = None, **extra: Any) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.extra = extra

    def to_detail(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, **self.extra}


class ValidationError(DomainError):
    code = "VALIDATION_ERROR"


class AuthenticationError(DomainError):
    code = "NOT_AUTHENTICATED"


class AuthorizationError(DomainError):
    code = "FORBIDDEN"


class NotFoundError(DomainError):
    code = "NOT_FOUND"


class ConflictError(DomainError):
    code = "CONFLICT"


class DeletionBlockedError(ConflictError):
    """Account deletion attempted while blocking factors remain."""

    code = "DELETION_BLOCKED"

    def __init__(self, blocking_factors: list[str]) -> None:
        super().__init__(
            "Cannot delete account: " + "; ".join(blocking_factors),
            blocking_factors=blocking_factors,
        )
        self.blocking_factors = blocking_factors


class RateLimitError(DomainError):
    code = "RATE_LIMITED"


class DownstreamServiceError(DomainError):
    """A critical external collaborator (mail transport, blob store) failed."""

    code = "DOWNSTREAM_FAILURE"
