"""Session cookie helpers.

Sessions are issued elsewhere; route handlers only read the numeric user id
stored in the session cookie.
"""

from __future__ import annotations

from typing import Any, cast

from fastapi import HTTPException, Request, status

from .config import ServiceSettings


def _cookie_name(request: Request) -> str:
    settings = cast(Any, request.app.state).settings
    if isinstance(settings, ServiceSettings):
        return settings.session_cookie_name
    return "session"


def parse_user_id(raw: str | None) -> int:
    """Return the user id carried by a session cookie value.

    Raises 401 when the cookie is missing and 400 when it is not numeric.
    """

    if raw is None or not raw.strip():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    cleaned = raw.strip()
    if not cleaned.isdigit():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid user id")
    return int(cleaned)


def get_current_user_id(request: Request) -> int:
    """FastAPI dependency resolving the authenticated user id."""

    return parse_user_id(request.cookies.get(_cookie_name(request)))
