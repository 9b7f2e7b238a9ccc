"""FastAPI authentication dependencies."""

from __future__ import annotations

from fastapi import Depends, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from vidtube.auth.service import authenticate
from vidtube.config import get_settings
from vidtube.database import get_session
from vidtube.db.models import User

_bearer = HTTPBearer(auto_error=False)


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
    db: AsyncSession = Depends(get_session),
) -> User:
    """
    Resolve the caller from the access-token cookie or a Bearer header.

    Raises UnauthenticatedError (401) on any failure.
    """
    token = request.cookies.get(get_settings().access_cookie_name)
    if not token and credentials is not None:
        token = credentials.credentials
    return await authenticate(db, token or "")
