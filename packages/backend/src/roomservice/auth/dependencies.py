"""FastAPI auth dependencies.

Learn: Browsers' EventSource can't set an Authorization header, so the
token is looked for in three places, in order:

1. Authorization: Bearer <jwt>   (API clients, the Python StreamAgent)
2. "session" cookie              (browser sessions)
3. ?token=<jwt> query param      (EventSource fallback)

A bad token is treated the same as no token: the caller is anonymous.
Endpoints that need staff use require_staff, which answers 401 before any
stream is opened.
"""

from typing import Optional

import structlog
from fastapi import Depends, Header, HTTPException, Query, Request

from roomservice.auth.jwt import TokenError, verify_token
from roomservice.config import settings

logger = structlog.get_logger()

SESSION_COOKIE = "session"


class CurrentIdentity:
    """The authenticated caller: a user id plus the role from the token."""

    def __init__(self, user_id: str, role: Optional[str] = None):
        self.user_id = user_id
        self.role = role

    @property
    def is_staff(self) -> bool:
        return self.role in settings.staff_roles


def _extract_token(
    request: Request,
    authorization: Optional[str],
    token: Optional[str],
) -> Optional[str]:
    if authorization and authorization.startswith("Bearer "):
        return authorization[7:]
    cookie = request.cookies.get(SESSION_COOKIE)
    if cookie:
        return cookie
    return token


async def get_current_identity_optional(
    request: Request,
    authorization: Optional[str] = Header(None),
    token: Optional[str] = Query(None, include_in_schema=False),
) -> Optional[CurrentIdentity]:
    """Resolve the caller's identity, or None for anonymous guests."""
    raw = _extract_token(request, authorization, token)
    if not raw:
        return None
    try:
        payload = verify_token(raw)
    except TokenError as e:
        logger.info("auth.token_rejected", error=str(e))
        return None
    return CurrentIdentity(user_id=payload["sub"], role=payload.get("role"))


async def require_staff(
    identity: Optional[CurrentIdentity] = Depends(get_current_identity_optional),
) -> CurrentIdentity:
    """Require a staff role (admin, manager, kitchen) — 401 otherwise."""
    if identity is None or not identity.is_staff:
        raise HTTPException(
            status_code=401,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return identity
