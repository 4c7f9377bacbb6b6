"""
auth/tokens.py -- JWT and password hashing utilities.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry the
       identity (sub), user_id, organisation, role, and expiry. Verification
       returns None on any failure -- the auth dependency turns that into a 401.
       Tokens are stateless: there is no server-side session or revocation list,
       so logout only removes the client's copy.

  Passwords: bcrypt directly. The _DUMMY_HASH constant enables timing
       equalization in authenticate_user() so response time does not reveal
       whether an identity exists [C1].

  SECRET_KEY: sourced from core.config.get_settings(), which validates it at
       startup (dev mode generates one, production refuses to start without it).

Layer rule: no imports from api/ or directory/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

from core.config import get_settings

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

logger = logging.getLogger("userdir.auth")

_settings = get_settings()

_ALGORITHM = "HS256"
_COOKIE_NAME = "access_token"

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    auth.validators.validate_password() caps input at 72 bytes, the most
    bcrypt will consume, so callers never hit truncation.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except (ValueError, TypeError):
        return False


# Computed once at module load so the first signin attempt is not measurably
# slower than later ones. verify_password() always runs, even for an unknown
# identity, so bcrypt's work factor hides which identities exist [C1].
_DUMMY_HASH: str = hash_password("userdir_timing_dummy")


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def create_access_token(user: User, expire_seconds: int = 0) -> str:
    """Encode a signed JWT bound to one user.

    Args:
        user:           The stored user. Must have an id.
        expire_seconds: Token lifetime. If 0 (default), uses
                        Settings.token_expire_seconds.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds
    expire = datetime.now(timezone.utc) + timedelta(seconds=duration)
    payload = {
        "sub": user.identity,
        "user_id": user.id,
        "organisation": user.organisation,
        "role": user.role,
        "exp": expire,
    }
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM)


def decode_access_token(token: str) -> dict | None:
    """Decode and verify a JWT. Returns the payload dict or None on any failure.

    Expired tokens, bad signatures and tokens missing the identity claims all
    come back as None.
    """
    try:
        payload = jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM])
    except JWTError:
        return None
    if not isinstance(payload.get("user_id"), int) or "organisation" not in payload:
        return None
    return payload


# ---------------------------------------------------------------------------
# Credential check (constant-time) [C1]
# ---------------------------------------------------------------------------


def authenticate_user(store: UserStore, organisation: str, name: str, password: str) -> User | None:
    """Check an organisation/name/password triple with timing equalization.

    Always runs bcrypt whether or not the account exists:
    - Unknown account: bcrypt runs against _DUMMY_HASH (same cost as real check)
    - Wrong password: bcrypt runs against the real hash (same cost)

    Returns the User on success, None on any failure.
    """
    user = store.get_by_name(organisation, name)
    if user is None or not user.hashed_password:
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, user.hashed_password):
        return None
    return user


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_auth_cookie(response, token: str) -> None:
    """Write the JWT as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": not sent on cross-site POST (CSRF mitigation).
    secure: only sent over HTTPS when SECURE_COOKIES=true.
    max_age: matches the JWT expiry so both expire together.
    """
    response.set_cookie(
        _COOKIE_NAME,
        value=token,
        httponly=True,
        samesite="lax",
        secure=_settings.secure_cookies,
        max_age=_settings.token_expire_seconds,
    )


def clear_auth_cookie(response) -> None:
    response.delete_cookie(_COOKIE_NAME)


def read_auth_cookie(request) -> str | None:
    return request.cookies.get(_COOKIE_NAME)
