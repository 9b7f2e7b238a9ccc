"""Service-level error taxonomy.

Service functions raise these; ``vidtube.middleware.error_handler`` turns them
into JSON responses. Each class carries the HTTP status it maps to.
"""

from __future__ import annotations


class ServiceError(Exception):
    """Base for every error a service operation may raise on purpose."""

    status_code: int = 500
    code: str = "internal"

    def __init__(self, message: str = "Internal server error") -> None:
        super().__init__(message)
        self.message = message


class InvalidArgumentError(ServiceError):
    """Malformed input. Caller-fixable, never retried."""

    status_code = 400
    code = "invalid_argument"


class WeakPasswordError(InvalidArgumentError):
    """Password does not meet the strength policy."""

    code = "weak_password"


class DuplicateIdentityError(InvalidArgumentError):
    """Username or email already taken (store uniqueness constraint)."""

    code = "duplicate_identity"


class UnauthenticatedError(ServiceError):
    """Missing, bad, expired or replayed credential."""

    status_code = 401
    code = "unauthenticated"


class InvalidCredentialError(UnauthenticatedError):
    """Identifier/password pair rejected."""

    code = "invalid_credential"


class TokenReuseDetectedError(UnauthenticatedError):
    """A refresh token that was already rotated away was presented again.

    Callers see a plain 401; the distinct class exists for the audit log.
    """


class NotFoundError(ServiceError):
    """Identity or target vanished."""

    status_code = 404
    code = "not_found"


class ConflictRetryError(ServiceError):
    """Lost a compare-and-swap race. Safe to retry immediately."""

    status_code = 409
    code = "conflict_retry"


class InternalError(ServiceError):
    """Store or signing failure. Surfaced opaquely."""
