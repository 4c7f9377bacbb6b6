"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Two token sources are checked in priority order:
  1. JWT cookie ("access_token") -- set by POST /signin and /signup.
  2. Authorization: Bearer <token> header -- API clients.

Both converge on a Principal after the token verifies AND the user it names
still exists in the organisation the token was issued for. A deleted user's
token therefore stops working immediately even though it has not expired.

try_get_current_principal() is the soft variant (returns None on failure).
get_current_principal() wraps it and raises HTTP 401 if unauthenticated.

Layer rule: no imports from api/ or directory/. This module may import from
fastapi because it is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

import logging

from fastapi import HTTPException, Request

from auth.models import Principal
from auth.store import RepositoryError, UserStore
from auth.tokens import decode_access_token, read_auth_cookie
from core.errors import ErrorCode

logger = logging.getLogger("userdir.auth")


def try_get_current_principal(request: Request) -> Principal | None:
    """Attempt to authenticate the request via cookie or Bearer header.

    Returns the Principal on success, None on any failure. Never raises for
    bad tokens; a storage failure while loading the user propagates so it is
    reported as a 500 rather than masquerading as a 401.
    """
    user_store: UserStore = request.app.state.user_store

    token: str | None = read_auth_cookie(request)
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:]
    if not token:
        return None

    payload = decode_access_token(token)
    if payload is None:
        return None

    try:
        user = user_store.get_by_id(payload["user_id"], organisation=payload["organisation"])
    except RepositoryError:
        logger.exception("Could not load principal for user_id=%s", payload["user_id"])
        raise
    if user is None:
        return None
    return Principal.from_user(user)


def get_current_principal(request: Request) -> Principal:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(principal: Principal = Depends(get_current_principal)): ...
    """
    principal = try_get_current_principal(request)
    if principal is None:
        raise HTTPException(
            status_code=401,
            detail={"code": ErrorCode.UNAUTHORIZED.value, "message": "Authentication required."},
        )
    return principal
