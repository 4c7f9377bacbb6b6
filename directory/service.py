"""
directory/service.py -- Organisation-scoped user directory operations.

Every method takes the authenticated Principal and passes
principal.organisation down to the store, so no statement issued from here
can read or change another tenant's rows. That includes the single-record
operations: a foreign id behaves exactly like a missing one.

Caller-supplied filters and patches go through fixed allow-lists. The tenant
key is added after the caller's filters, so an ``organisation`` value in the
query string can never replace it.

Storage failures are logged here with full detail and re-raised as
ServerError, which carries only the SERVER_ERROR code to the client.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping

from auth.models import NOT_AVAILABLE, NewUser, Principal, User, make_identity
from auth.service import AuthService
from auth.store import Conflict, Failure, RepositoryError, UserStore
from auth.tokens import hash_password
from auth.validators import validate_email, validate_password
from core.errors import EmailNotValidated, PasswordNotValidated, ServerError, UserAlreadyRegistered

logger = logging.getLogger("userdir.directory")

# Attributes a caller may filter GET / by. organisation is deliberately absent.
FILTERABLE_FIELDS = frozenset({"name", "email", "status", "availability", "role"})

# Attributes a caller may change through PUT /{id}. Any authenticated member of
# the organisation may call it, role included; roles are a flat attribute with
# no admin gate.
PATCHABLE_FIELDS = frozenset({"name", "email", "password", "status", "availability", "role"})

# PUT / on the caller's own record cannot change its role.
SELF_PATCHABLE_FIELDS = PATCHABLE_FIELDS - {"role"}

# Patchable attributes that may be cleared to null.
_NULLABLE_FIELDS = frozenset({"status"})


class DirectoryService:
    def __init__(self, store: UserStore, auth_service: AuthService) -> None:
        self._store = store
        self._auth = auth_service

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_available(self, principal: Principal) -> list[User]:
        """Users in the caller's organisation who are not marked "not available"."""
        try:
            return self._store.find_users(
                {"organisation": principal.organisation},
                exclude={"availability": NOT_AVAILABLE},
            )
        except RepositoryError as exc:
            logger.exception("list_available failed for organisation=%s", principal.organisation)
            raise ServerError() from exc

    def list_filtered(self, principal: Principal, filters: Mapping[str, str]) -> list[User]:
        """Users in the caller's organisation matching every allow-listed equality filter.

        Keys outside FILTERABLE_FIELDS are dropped, not rejected.
        """
        where = {key: value for key, value in filters.items() if key in FILTERABLE_FIELDS}
        ignored = set(filters) - FILTERABLE_FIELDS
        if ignored:
            logger.debug("Ignoring non-filterable keys: %s", sorted(ignored))
        where["organisation"] = principal.organisation
        try:
            return self._store.find_users(where)
        except RepositoryError as exc:
            logger.exception("list_filtered failed for organisation=%s", principal.organisation)
            raise ServerError() from exc

    def get_by_id(self, principal: Principal, user_id: int) -> User | None:
        try:
            return self._store.get_by_id(user_id, organisation=principal.organisation)
        except RepositoryError as exc:
            logger.exception("get_by_id failed for user_id=%s", user_id)
            raise ServerError() from exc

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_user(self, principal: Principal, payload: NewUser) -> User:
        """Create a user in the caller's organisation. Same rules as signup."""
        return self._auth.signup(payload, principal.organisation)

    def update_by_id(self, principal: Principal, user_id: int, patch: Mapping[str, object]) -> User | None:
        """Apply ``patch`` to a user in the caller's organisation.

        Returns None if no such user exists in the organisation. A new
        password or email is validated first; a new name re-derives the
        identity and raises UserAlreadyRegistered if the name is taken in the
        organisation.
        """
        fields = self._prepare_patch(principal, patch)
        outcome = self._store.update_user(user_id, organisation=principal.organisation, **fields)
        if isinstance(outcome, Conflict):
            raise UserAlreadyRegistered()
        if isinstance(outcome, Failure):
            logger.error("update failed for user_id=%s: %s", user_id, outcome.detail)
            raise ServerError()
        return outcome.user

    def update_self(self, principal: Principal, patch: Mapping[str, object]) -> User | None:
        """Patch the caller's own record. A role in the patch is dropped."""
        own = {key: value for key, value in patch.items() if key in SELF_PATCHABLE_FIELDS}
        return self.update_by_id(principal, principal.id, own)

    def delete_by_id(self, principal: Principal, user_id: int) -> None:
        """Delete a user in the caller's organisation. Deleting a missing id is not an error."""
        try:
            deleted = self._store.delete_user(user_id, organisation=principal.organisation)
        except RepositoryError as exc:
            logger.exception("delete_by_id failed for user_id=%s", user_id)
            raise ServerError() from exc
        if deleted:
            logger.info("Deleted user_id=%s from organisation=%s", user_id, principal.organisation)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _prepare_patch(self, principal: Principal, patch: Mapping[str, object]) -> dict:
        fields: dict = {}
        for key, value in patch.items():
            if key not in PATCHABLE_FIELDS:
                continue
            if value is None and key not in _NULLABLE_FIELDS:
                continue
            fields[key] = value

        if "password" in fields:
            password = fields.pop("password")
            if not validate_password(password):
                raise PasswordNotValidated()
            fields["hashed_password"] = hash_password(password)
        if "email" in fields and not validate_email(fields["email"]):
            raise EmailNotValidated()
        if "name" in fields:
            fields["identity"] = make_identity(principal.organisation, fields["name"])
        return fields
