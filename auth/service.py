"""
auth/service.py -- Signin, signup, logout and token renewal.

AuthService is constructed with the UserStore it works against (see
api/main.py lifespan), so tests can hand it an isolated store.

Signup never pre-checks for an existing account. The insert is the check:
UserStore.create_user() returns Conflict when the UNIQUE(organisation, name)
constraint rejects the row, which keeps concurrent signups for the same name
race-free.

Layer rule: no imports from api/ or directory/.
"""

from __future__ import annotations

import logging

from auth.models import NewUser, Principal, User
from auth.store import Conflict, Failure, RepositoryError, UserStore
from auth.tokens import authenticate_user, create_access_token, hash_password
from auth.validators import validate_email, validate_password
from core.errors import (
    EmailNotValidated,
    InvalidCredentials,
    PasswordNotValidated,
    ServerError,
    UserAlreadyRegistered,
)

logger = logging.getLogger("userdir.auth")


class AuthService:
    """Maps raw credentials to a signed token and back."""

    def __init__(self, store: UserStore) -> None:
        self._store = store

    def signin(self, organisation: str, name: str, password: str) -> tuple[str, User]:
        """Verify credentials and return (token, user).

        Unknown account and wrong password raise the same InvalidCredentials
        so the response cannot be used to enumerate accounts.
        """
        try:
            user = authenticate_user(self._store, organisation, name, password)
            if user is None:
                logger.info("Signin rejected for organisation=%s", organisation)
                raise InvalidCredentials("Invalid organisation, name or password.")
            self._store.update_last_login(user.id)
            user = self._store.get_by_id(user.id) or user
        except RepositoryError as exc:
            logger.exception("Signin failed on storage for organisation=%s", organisation)
            raise ServerError() from exc
        logger.info("Signin succeeded for user_id=%s", user.id)
        return self.issue_token(user), user

    def signup(self, payload: NewUser, organisation: str) -> User:
        """Validate and create a user in ``organisation``.

        Raises PasswordNotValidated / EmailNotValidated before touching the
        store, UserAlreadyRegistered when the name is taken in the organisation,
        ServerError on any other storage failure.
        """
        if not validate_password(payload.password):
            raise PasswordNotValidated()
        if not validate_email(payload.email):
            raise EmailNotValidated()

        user = User(
            name=payload.name,
            organisation=organisation,
            email=payload.email,
            hashed_password=hash_password(payload.password),
            status=payload.status,
            availability=payload.availability,
            role=payload.role,
        )
        outcome = self._store.create_user(user)
        if isinstance(outcome, Conflict):
            raise UserAlreadyRegistered()
        if isinstance(outcome, Failure):
            logger.error("Signup failed for identity=%s: %s", user.identity, outcome.detail)
            raise ServerError()
        logger.info("Created user_id=%s identity=%s", outcome.user.id, outcome.user.identity)
        return outcome.user

    def logout(self) -> None:
        """Best-effort logout.

        Tokens are stateless, so there is nothing to revoke server-side. The
        HTTP layer clears the cookie; a copied Bearer token stays valid until
        it expires.
        """
        logger.debug("Logout requested; no server-side session to clear")

    def signin_token(self, principal: Principal) -> tuple[str, User]:
        """Re-issue a token for an already-authenticated principal without a password check."""
        try:
            user = self._store.get_by_id(principal.id, organisation=principal.organisation)
        except RepositoryError as exc:
            logger.exception("Token renewal failed on storage for user_id=%s", principal.id)
            raise ServerError() from exc
        if user is None:
            raise InvalidCredentials("Account no longer exists.")
        return self.issue_token(user), user

    def issue_token(self, user: User) -> str:
        return create_access_token(user)
