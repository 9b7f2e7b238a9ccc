"""Session cookie helpers.

Both cookies are HttpOnly; they are marked Secure everywhere except local
development.
"""

from __future__ import annotations

from typing import Literal, cast

from fastapi import Response

from vidtube.config import get_settings


def _cookie_options() -> dict[str, object]:
    settings = get_settings()
    return {
        "httponly": True,
        "secure": settings.secure_cookies,
        "samesite": cast(Literal["lax", "strict", "none"], settings.cookie_samesite.lower()),
        "path": "/",
    }


def set_session_cookies(response: Response, access_token: str, refresh_token: str) -> None:
    """Attach access and refresh cookies to a response."""
    settings = get_settings()
    options = _cookie_options()
    response.set_cookie(
        settings.access_cookie_name,
        access_token,
        max_age=settings.jwt_access_token_expire_minutes * 60,
        **options,  # type: ignore[arg-type]
    )
    response.set_cookie(
        settings.refresh_cookie_name,
        refresh_token,
        max_age=settings.jwt_refresh_token_expire_days * 86400,
        **options,  # type: ignore[arg-type]
    )


def clear_session_cookies(response: Response) -> None:
    """Expire both session cookies."""
    settings = get_settings()
    options = _cookie_options()
    response.delete_cookie(settings.access_cookie_name, **options)  # type: ignore[arg-type]
    response.delete_cookie(settings.refresh_cookie_name, **options)  # type: ignore[arg-type]
