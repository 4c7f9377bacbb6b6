"""
auth/validators.py -- Credential checks that run before any write.

Both functions are pure: no I/O, no settings, no exceptions for bad input.
They answer True/False and let the caller decide which error code to raise.

validate_email() is syntactic only. check_deliverability=False keeps it from
doing DNS lookups, so it is safe to call inside a request handler.
"""

from __future__ import annotations

import re

from email_validator import EmailNotValidError
from email_validator import validate_email as _check_email

PASSWORD_MIN_LENGTH = 8
# bcrypt ignores (4.x) or rejects (5.x) input past 72 bytes.
PASSWORD_MAX_BYTES = 72

_LOWER = re.compile(r"[a-z]")
_UPPER = re.compile(r"[A-Z]")
_DIGIT = re.compile(r"\d")


def validate_password(candidate) -> bool:
    """Return True if candidate meets the password policy.

    Policy: at least 8 characters, at most 72 UTF-8 bytes, and at least one
    lowercase letter, one uppercase letter, and one digit.
    """
    if not isinstance(candidate, str):
        return False
    if len(candidate) < PASSWORD_MIN_LENGTH:
        return False
    if len(candidate.encode("utf-8")) > PASSWORD_MAX_BYTES:
        return False
    return all(pattern.search(candidate) for pattern in (_LOWER, _UPPER, _DIGIT))


def validate_email(candidate) -> bool:
    """Return True if candidate is a syntactically valid email address."""
    if not isinstance(candidate, str) or not candidate:
        return False
    try:
        _check_email(candidate, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True
