"""
Changesets: staged, validated transformations from raw attributes to records.

A changeset is built by ``cast`` from an untrusted mapping, refined by
validators (``validate_required``, ``unique_constraint``, embeds) and
finally applied to a record by the persistence layer. Nothing in here raises
for bad input; problems are collected in ``errors``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from typing import Any, Callable, Mapping, Optional

from pydantic import BaseModel, TypeAdapter, ValidationError

BLANK = "can't be blank"
INVALID = "is invalid"
TAKEN = "has already been taken"


@dataclass
class Constraint:
    name: str
    field: str
    message: str
    patterns: tuple[str, ...] = ()

    def matches(self, error_text: str) -> bool:
        return any(pattern in error_text for pattern in (self.name, *self.patterns))


@dataclass
class Changeset:
    data: Any
    params: dict[str, Any] = field(default_factory=dict)
    changes: dict[str, Any] = field(default_factory=dict)
    errors: dict[str, list[str]] = field(default_factory=dict)
    embeds: dict[str, "Changeset"] = field(default_factory=dict)
    constraints: list[Constraint] = field(default_factory=list)
    action: Optional[str] = None

    @property
    def valid(self) -> bool:
        return not self.errors and all(embed.valid for embed in self.embeds.values())

    def add_error(self, name: str, message: str) -> "Changeset":
        self.errors.setdefault(name, []).append(message)
        return self

    def get_field(self, name: str, default: Any = None) -> Any:
        if name in self.changes:
            return self.changes[name]
        return getattr(self.data, name, default)

    def errors_dict(self) -> dict[str, Any]:
        """Nested view of every error, embedded changesets included."""
        out: dict[str, Any] = {name: list(messages) for name, messages in self.errors.items()}
        for name, embed in self.embeds.items():
            nested = embed.errors_dict()
            if nested:
                out[name] = nested
        return out

    def apply_constraint_error(self, error_text: str) -> bool:
        """Map a database constraint violation onto field errors. Returns False if none matched."""
        for constraint in self.constraints:
            if constraint.matches(error_text):
                self.add_error(constraint.field, constraint.message)
                return True
        return False


@dataclass
class Result:
    """Outcome of a boundary operation: a record, or the reason it was refused."""

    record: Any = None
    changeset: Optional[Changeset] = None
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.changeset is None and self.reason is None

    @property
    def errors(self) -> dict[str, Any]:
        if self.changeset is not None:
            return self.changeset.errors_dict()
        return {}

    @classmethod
    def success(cls, record: Any) -> "Result":
        return cls(record=record)

    @classmethod
    def failure(cls, changeset: Changeset | None = None, reason: str | None = None) -> "Result":
        if changeset is None and reason is None:
            reason = "error"
        return cls(changeset=changeset, reason=reason)


@lru_cache(maxsize=None)
def _adapter(type_: Any) -> TypeAdapter:
    return TypeAdapter(type_)


def _key(raw: Any) -> str:
    if isinstance(raw, Enum):
        raw = raw.value
    return str(raw)


def normalize_params(attrs: Mapping[Any, Any] | None) -> dict[str, Any]:
    if attrs is None:
        return {}
    if not isinstance(attrs, Mapping):
        raise TypeError(f"expected a mapping of attributes, got {type(attrs).__name__}")
    return {_key(k): v for k, v in attrs.items()}


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def cast(data: Any, attrs: Mapping[Any, Any] | None, types: Mapping[str, Any]) -> Changeset:
    """
    Build a changeset keeping only the permitted fields in ``types``.

    Blank strings are treated as missing, strings are stripped, and each value
    is coerced with pydantic in lax mode. Unknown keys are dropped silently.
    """
    params = normalize_params(attrs)
    changeset = Changeset(data=data, params=params)
    for name, type_ in types.items():
        if name not in params:
            continue
        value = params[name]
        if _is_blank(value):
            coerced = None
        else:
            if isinstance(value, str):
                value = value.strip()
            try:
                coerced = _adapter(type_).validate_python(value)
            except ValidationError:
                changeset.add_error(name, INVALID)
                continue
        if coerced != getattr(data, name, None):
            changeset.changes[name] = coerced
    return changeset


def validate_required(changeset: Changeset, fields: list[str] | tuple[str, ...]) -> Changeset:
    for name in fields:
        if name in changeset.errors:
            continue
        if _is_blank(changeset.get_field(name)):
            changeset.add_error(name, BLANK)
    return changeset


def unique_constraint(changeset: Changeset, name: str, *, constraint: str, message: str = TAKEN) -> Changeset:
    """Translate a violation of ``constraint`` into an error on ``name`` at write time."""
    table = getattr(changeset.data, "__tablename__", None)
    patterns = (f"{table}.{name}",) if table else ()
    changeset.constraints.append(Constraint(name=constraint, field=name, message=message, patterns=patterns))
    return changeset


def put_embed(changeset: Changeset, name: str, embed: Changeset) -> Changeset:
    changeset.embeds[name] = embed
    return changeset


def cast_embed(
    changeset: Changeset,
    name: str,
    build: Callable[[Any, Mapping[str, Any]], Changeset],
    load: Callable[[Any], Any],
) -> Changeset:
    """Cast ``params[name]`` through ``build`` against the currently stored embedded value."""
    if name not in changeset.params:
        return changeset
    value = changeset.params[name]
    if not isinstance(value, Mapping):
        return changeset.add_error(name, INVALID)
    current = load(getattr(changeset.data, name, None))
    return put_embed(changeset, name, build(current, value))


def apply_changes(changeset: Changeset, target: Any = None) -> Any:
    """Write changes onto ``target`` (defaults to the changeset data) and return it."""
    data = changeset.data if target is None else target
    if isinstance(data, BaseModel):
        updates = dict(changeset.changes)
        for name, embed in changeset.embeds.items():
            updates[name] = apply_changes(embed)
        return data.model_copy(update=updates)
    for name, value in changeset.changes.items():
        setattr(data, name, value)
    for name, embed in changeset.embeds.items():
        embedded = apply_changes(embed)
        if isinstance(embedded, BaseModel):
            embedded = embedded.model_dump(mode="json")
        setattr(data, name, embedded)
    return data


def foreign_key_constraint(changeset: Changeset, name: str, *, constraint: str, message: str = "does not exist") -> Changeset:
    """Translate a violation of the foreign key on ``name`` into a field error at write time."""
    changeset.constraints.append(
        Constraint(name=constraint, field=name, message=message, patterns=("FOREIGN KEY constraint failed",))
    )
    return changeset
