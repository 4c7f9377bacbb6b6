"""
core/errors.py -- Error codes and domain exceptions shared by every layer.

Services raise DirectoryError subclasses; api/main.py owns the single
exception handler that turns them into the {ok: false, code} envelope. The
code is a fixed enumeration so nothing internal (tracebacks, driver messages)
ever crosses the HTTP boundary.

Layer rule: core/ is the kernel. No imports from api/, auth/, or directory/.
"""

from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    SERVER_ERROR = "SERVER_ERROR"
    USER_ALREADY_REGISTERED = "USER_ALREADY_REGISTERED"
    PASSWORD_NOT_VALIDATED = "PASSWORD_NOT_VALIDATED"
    EMAIL_NOT_VALIDATED = "EMAIL_NOT_VALIDATED"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    UNAUTHORIZED = "UNAUTHORIZED"
    INVALID_PAYLOAD = "INVALID_PAYLOAD"


class DirectoryError(Exception):
    """Base class for errors that map onto a response code and HTTP status."""

    code: ErrorCode = ErrorCode.SERVER_ERROR
    status_code: int = 500

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.code.value)


class PasswordNotValidated(DirectoryError):
    code = ErrorCode.PASSWORD_NOT_VALIDATED
    status_code = 400


class EmailNotValidated(DirectoryError):
    code = ErrorCode.EMAIL_NOT_VALIDATED
    status_code = 400


class UserAlreadyRegistered(DirectoryError):
    code = ErrorCode.USER_ALREADY_REGISTERED
    status_code = 409


class InvalidCredentials(DirectoryError):
    """Raised for both unknown users and wrong passwords -- callers cannot tell them apart."""

    code = ErrorCode.INVALID_CREDENTIALS
    status_code = 401


class ServerError(DirectoryError):
    code = ErrorCode.SERVER_ERROR
    status_code = 500
