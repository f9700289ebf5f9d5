"""Changeset builders for the accounts records."""

from __future__ import annotations

from datetime import date
from typing import Any, Mapping

from .changeset import (
    Changeset,
    cast,
    cast_embed,
    put_embed,
    unique_constraint,
    validate_required,
)
from .roles import Roles, load_roles, roles_changeset

PROFILE_TYPES: dict[str, Any] = {
    "first_name": str,
    "last_name": str,
    "birth_date": date,
}


def user_create_changeset(user, attrs: Mapping[Any, Any] | None) -> Changeset:
    """Creation: email is required and unique; roles come from the nested ``roles`` map."""
    changeset = cast(user, attrs, {"email": str})
    nested = changeset.params.get("roles")
    if nested is None:
        put_embed(changeset, "roles", roles_changeset(Roles(), {}))
    elif isinstance(nested, Mapping):
        put_embed(changeset, "roles", roles_changeset(Roles(), nested))
    else:
        changeset.add_error("roles", "is invalid")
    validate_required(changeset, ["email"])
    return unique_constraint(changeset, "email", constraint="uq_users_email")


def user_changeset(user, attrs: Mapping[Any, Any] | None) -> Changeset:
    """Update: only the embedded roles may change; email is never cast."""
    changeset = cast(user, attrs, {})
    cast_embed(changeset, "roles", roles_changeset, load_roles)
    return validate_required(changeset, [])


def activation_token_changeset(token, attrs: Mapping[Any, Any] | None) -> Changeset:
    # No writable fields yet; expiry and consumption are not modelled.
    return cast(token, attrs, {})


def profile_changeset(profile, attrs: Mapping[Any, Any] | None) -> Changeset:
    changeset = cast(profile, attrs, PROFILE_TYPES)
    return validate_required(changeset, list(PROFILE_TYPES))
