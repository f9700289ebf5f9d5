"""Validation rules for accounts records (changesets, roles, builders)."""

from .changeset import Changeset, Result
from .roles import Roles

__all__ = ["Changeset", "Result", "Roles"]
