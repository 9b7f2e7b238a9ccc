"""
RS256 JWT token management.

Access tokens are short-lived and never stored. Refresh tokens carry a random
`jti` so every issuance is a distinct string, which the session layer relies
on when it compares the presented token with the stored one.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import jwt

from vidtube.config import get_settings

ACCESS = "access"
REFRESH = "refresh"

_keys: tuple[str, str] | None = None


@dataclass(frozen=True)
class TokenPair:
    """A freshly signed access/refresh pair."""

    access_token: str
    refresh_token: str


def _load_keys() -> tuple[str, str]:
    """(private PEM, public PEM), read once from the configured paths."""
    global _keys  # noqa: PLW0603
    if _keys is None:
        settings = get_settings()
        _keys = (
            Path(settings.jwt_private_key_path).read_text(),
            Path(settings.jwt_public_key_path).read_text(),
        )
    return _keys


def reset_keys() -> None:
    """Forget the cached key pair so the next call rereads settings."""
    global _keys  # noqa: PLW0603
    _keys = None


def _sign(subject: str, token_type: str, lifetime: timedelta, **claims: Any) -> str:  # noqa: ANN401
    settings = get_settings()
    private_key, _ = _load_keys()
    now = datetime.now(timezone.utc)
    payload: dict[str, Any] = {
        "sub": str(subject),
        "iat": now,
        "exp": now + lifetime,
        "iss": settings.jwt_issuer,
        "type": token_type,
        **claims,
    }
    return jwt.encode(payload, private_key, algorithm=settings.jwt_algorithm)


def create_access_token(user_id: str, username: str) -> str:
    """
    Create a short-lived access token.

    Args:
        user_id: The user's database ID.
        username: The user's username, carried for display only.
    """
    minutes = get_settings().jwt_access_token_expire_minutes
    return _sign(user_id, ACCESS, timedelta(minutes=minutes), username=username, jti=str(uuid.uuid4()))


def create_refresh_token(user_id: str, *, token_id: str | None = None) -> str:
    """
    Create a long-lived refresh token.

    Args:
        user_id: The user's database ID.
        token_id: Unique token identifier (JTI). Generated when omitted.
    """
    days = get_settings().jwt_refresh_token_expire_days
    return _sign(user_id, REFRESH, timedelta(days=days), jti=token_id or str(uuid.uuid4()))


def issue_token_pair(user_id: str, username: str) -> TokenPair:
    """Sign a new access/refresh pair for a user."""
    return TokenPair(
        access_token=create_access_token(user_id, username),
        refresh_token=create_refresh_token(user_id),
    )


def verify_token(token: str, expected_type: str = ACCESS) -> dict[str, Any]:
    """
    Verify signature, issuer, expiry and token type; return the claims.

    Raises:
        jwt.InvalidTokenError: On any failure. Expiry is reported as
            "Token has expired".
    """
    settings = get_settings()
    _, public_key = _load_keys()
    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            public_key,
            algorithms=[settings.jwt_algorithm],
            issuer=settings.jwt_issuer,
            options={"require": ["sub", "exp", "iat", "type"]},
        )
    except jwt.ExpiredSignatureError:
        msg = "Token has expired"
        raise jwt.InvalidTokenError(msg) from None

    if payload.get("type") != expected_type:
        msg = f"Expected token type '{expected_type}', got '{payload.get('type')}'"
        raise jwt.InvalidTokenError(msg)
    return payload
