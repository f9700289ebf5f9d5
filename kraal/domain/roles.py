"""Roles: the role assignments embedded in every user record."""

from __future__ import annotations

from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .changeset import Changeset, cast


class Roles(BaseModel):
    model_config = ConfigDict(frozen=True)

    admin: bool = False
    moderator: bool = False
    groups: list[str] = Field(default_factory=list)


ROLE_TYPES: dict[str, Any] = {
    "admin": bool,
    "moderator": bool,
    "groups": list[str],
}


def default_roles() -> dict[str, Any]:
    return Roles().model_dump(mode="json")


def load_roles(stored: Any) -> Roles:
    """Rebuild Roles from the JSON column; unreadable data falls back to the defaults."""
    if isinstance(stored, Roles):
        return stored
    if not stored:
        return Roles()
    try:
        return Roles.model_validate(stored)
    except ValidationError:
        return Roles()


def roles_changeset(roles: Roles, attrs: Mapping[Any, Any] | None) -> Changeset:
    changeset = cast(roles, attrs, ROLE_TYPES)
    groups = changeset.changes.get("groups")
    if groups is None and "groups" in changeset.changes:
        # a blank groups value clears the list
        changeset.changes["groups"] = []
    elif groups:
        changeset.changes["groups"] = sorted({g.strip() for g in groups if g and g.strip()})
    for flag in ("admin", "moderator"):
        if flag in changeset.changes and changeset.changes[flag] is None:
            changeset.changes[flag] = False
    return changeset
