"""
Smoke tests for the SQLRepository against a temporary SQLite database.
"""
from __future__ import annotations

import pytest

from kraal.db.models import User
from kraal.domain.validation import user_changeset, user_create_changeset
from kraal.repositories.sql_repository import NotFoundError, SQLRepository


def test_insert_and_read_back(db_env):
    repo = SQLRepository()
    first = repo.insert(user_create_changeset(User(), {"email": "a@example.com"}))
    second = repo.insert(user_create_changeset(User(), {"email": "b@example.com"}))

    assert first.ok and second.ok
    assert [u.email for u in repo.all(User)] == ["a@example.com", "b@example.com"]
    assert repo.get(User, first.record.id).email == "a@example.com"
    assert repo.get_by(User, email="b@example.com").id == second.record.id
    assert repo.get(User, 999) is None


def test_get_or_raise_names_the_missing_record(db_env):
    repo = SQLRepository()
    with pytest.raises(NotFoundError) as excinfo:
        repo.get_or_raise(User, 12)
    assert excinfo.value.model is User
    assert excinfo.value.record_id == 12


def test_invalid_changeset_never_reaches_the_database(db_env):
    repo = SQLRepository()
    cs = user_create_changeset(User(), {})

    result = repo.insert(cs)

    assert not result.ok
    assert result.changeset is cs
    assert cs.action == "insert"
    assert repo.all(User) == []


def test_unique_violation_becomes_a_field_error(db_env):
    repo = SQLRepository()
    assert repo.insert(user_create_changeset(User(), {"email": "a@example.com"})).ok

    result = repo.insert(user_create_changeset(User(), {"email": "a@example.com"}))

    assert result.errors == {"email": ["has already been taken"]}


def test_update_of_deleted_record_is_stale(db_env):
    repo = SQLRepository()
    user = repo.insert(user_create_changeset(User(), {"email": "a@example.com"})).record
    assert repo.delete(user).ok

    result = repo.update(user_changeset(user, {"roles": {"admin": True}}))

    assert not result.ok
    assert result.reason == "stale"
    assert result.errors == {}


def test_update_does_not_mutate_the_callers_record(db_env):
    repo = SQLRepository()
    user = repo.insert(user_create_changeset(User(), {"email": "a@example.com"})).record

    result = repo.update(user_changeset(user, {"roles": {"admin": True}}))

    assert result.ok
    assert result.record.roles["admin"] is True
    assert user.roles["admin"] is False
