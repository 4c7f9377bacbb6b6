"""Unit tests for auth/store.py -- UserStore repository behaviour.

Covers:
- create_user() returns Success with id, identity and created_at populated
- create_user() returns Conflict for a duplicate name in one organisation, leaving one row
- the same name in two organisations is two distinct users, even when the
  hyphenated identities collide
- find_users() equality filters, exclusions, and last_login_at DESC ordering
- find_users() / update_user() reject column names outside the whitelists
- organisation-scoped get/update/delete never touch another tenant's row
- delete_user() on a missing id returns False instead of raising
- read failures surface as RepositoryError, write failures as Failure
"""

import pytest
from conftest import make_user, seed

from auth.store import Conflict, Failure, RepositoryError, Success


class TestCreate:
    def test_create_returns_stored_user(self, store):
        outcome = store.create_user(make_user("bob", "acme", status="onboarding"))
        assert isinstance(outcome, Success)
        user = outcome.user
        assert user.id is not None
        assert user.identity == "acme-bob"
        assert user.organisation == "acme"
        assert user.status == "onboarding"
        assert user.availability == "available"
        assert user.last_login_at is None
        assert user.created_at

    def test_duplicate_name_in_organisation_is_conflict(self, store):
        seed(store, make_user("bob", "acme"))
        outcome = store.create_user(make_user("bob", "acme", email="other@acme.io"))
        assert isinstance(outcome, Conflict)
        matches = store.find_users({"organisation": "acme"})
        assert len(matches) == 1
        assert matches[0].email == "bob@acme.io"

    def test_same_name_in_other_organisation_is_allowed(self, store):
        seed(store, make_user("bob", "acme"))
        outcome = store.create_user(make_user("bob", "globex"))
        assert isinstance(outcome, Success)
        assert outcome.user.identity == "globex-bob"

    def test_colliding_identity_strings_in_different_organisations(self, store):
        """("a-b", "c") and ("a", "b-c") both display as "a-b-c" but are separate accounts."""
        first = seed(store, make_user("c", "a-b"))
        outcome = store.create_user(make_user("b-c", "a"))
        assert isinstance(outcome, Success)
        assert outcome.user.identity == first.identity == "a-b-c"
        assert store.get_by_name("a", "b-c").id == outcome.user.id
        assert store.get_by_name("a-b", "c").id == first.id
        assert store.get_by_name("a", "c") is None


class TestFind:
    @pytest.fixture
    def populated(self, store):
        """Four acme users with distinct last_login_at values plus one globex user."""
        ids = {}
        for name, availability, last_login in [
            ("ann", "available", "2024-03-01T10:00:00+00:00"),
            ("ben", "not available", "2024-03-04T10:00:00+00:00"),
            ("cat", "available", None),
            ("dan", "available", "2024-03-02T10:00:00+00:00"),
        ]:
            user = seed(store, make_user(name, "acme", availability=availability))
            if last_login:
                store.update_user(user.id, last_login_at=last_login)
            ids[name] = user.id
        seed(store, make_user("eve", "globex"))
        return ids

    def test_orders_by_last_login_desc_with_never_logged_in_last(self, store, populated):
        users = store.find_users({"organisation": "acme"})
        assert [u.name for u in users] == ["ben", "dan", "ann", "cat"]

    def test_exclude_removes_matching_rows(self, store, populated):
        users = store.find_users({"organisation": "acme"}, exclude={"availability": "not available"})
        assert [u.name for u in users] == ["dan", "ann", "cat"]

    def test_where_combines_filters(self, store, populated):
        users = store.find_users({"organisation": "acme", "name": "dan"})
        assert [u.id for u in users] == [populated["dan"]]

    def test_where_is_tenant_exact(self, store, populated):
        users = store.find_users({"organisation": "globex"})
        assert {u.organisation for u in users} == {"globex"}

    def test_unknown_filter_column_raises(self, store):
        with pytest.raises(ValueError):
            store.find_users({"hashed_password": "x"})


class TestScopedAccess:
    def test_get_by_id_scoped_to_organisation(self, store):
        user = seed(store, make_user("bob", "acme"))
        assert store.get_by_id(user.id, organisation="acme").id == user.id
        assert store.get_by_id(user.id, organisation="globex") is None
        assert store.get_by_id(user.id).id == user.id

    def test_update_in_other_organisation_matches_nothing(self, store):
        user = seed(store, make_user("bob", "acme"))
        outcome = store.update_user(user.id, organisation="globex", status="hijacked")
        assert outcome == Success(None)
        assert store.get_by_id(user.id).status is None

    def test_update_returns_fresh_record(self, store):
        user = seed(store, make_user("bob", "acme"))
        outcome = store.update_user(user.id, organisation="acme", availability="not available")
        assert isinstance(outcome, Success)
        assert outcome.user.availability == "not available"

    def test_rename_to_taken_name_is_conflict(self, store):
        seed(store, make_user("bob", "acme"))
        other = seed(store, make_user("rob", "acme"))
        outcome = store.update_user(other.id, organisation="acme", name="bob", identity="acme-bob")
        assert isinstance(outcome, Conflict)

    def test_update_rejects_immutable_fields(self, store):
        user = seed(store, make_user("bob", "acme"))
        with pytest.raises(ValueError):
            store.update_user(user.id, organisation_id="globex")
        with pytest.raises(ValueError):
            store.update_user(user.id, organisation="acme", created_at="1970-01-01")

    def test_delete_scoped_and_idempotent(self, store):
        user = seed(store, make_user("bob", "acme"))
        assert store.delete_user(user.id, organisation="globex") is False
        assert store.get_by_id(user.id) is not None
        assert store.delete_user(user.id, organisation="acme") is True
        assert store.delete_user(user.id, organisation="acme") is False

    def test_update_last_login_stamps_timestamp(self, store):
        user = seed(store, make_user("bob", "acme"))
        store.update_last_login(user.id)
        assert store.get_by_id(user.id).last_login_at is not None


class TestStorageFailures:
    def test_reads_raise_repository_error_after_drop(self, store):
        from sqlalchemy import text

        with store.engine.connect() as conn:
            conn.execute(text("DROP TABLE users"))
            conn.commit()
        with pytest.raises(RepositoryError):
            store.get_by_name("acme", "bob")

    def test_create_returns_failure_after_drop(self, store):
        from sqlalchemy import text

        with store.engine.connect() as conn:
            conn.execute(text("DROP TABLE users"))
            conn.commit()
        outcome = store.create_user(make_user("bob", "acme"))
        assert isinstance(outcome, Failure)
        assert "OperationalError" in outcome.detail

    def test_ping(self, store):
        assert store.ping() is True
