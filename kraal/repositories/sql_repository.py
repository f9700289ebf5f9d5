"""High-level data access helpers backed by SQLAlchemy."""
from __future__ import annotations

import logging
from typing import Any, Optional, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from kraal.db.session import get_session, transaction
from kraal.domain.changeset import Changeset, Result, apply_changes

logger = logging.getLogger("kraal.repository")

T = TypeVar("T")


class NotFoundError(LookupError):
    """Raised when a record looked up by id does not exist."""

    def __init__(self, model: type, record_id: Any):
        super().__init__(f"{model.__name__} with id={record_id!r} not found")
        self.model = model
        self.record_id = record_id


class SQLRepository:
    """Persistence gateway: CRUD helpers wrapping the SQLAlchemy session."""

    # -------------------------- reads --------------------------
    def all(self, model: type[T]) -> list[T]:
        with get_session() as session:
            return list(session.execute(select(model).order_by(model.id)).scalars().all())

    def get(self, model: type[T], record_id: Any) -> Optional[T]:
        with get_session() as session:
            return session.get(model, record_id)

    def get_or_raise(self, model: type[T], record_id: Any) -> T:
        record = self.get(model, record_id)
        if record is None:
            raise NotFoundError(model, record_id)
        return record

    def get_by(self, model: type[T], **filters: Any) -> Optional[T]:
        with get_session() as session:
            stmt = select(model).filter_by(**filters).limit(1)
            return session.execute(stmt).scalars().first()

    # -------------------------- writes --------------------------
    def insert(self, changeset: Changeset, session: Session | None = None) -> Result:
        """Insert the changeset's record. With ``session`` the caller owns the transaction."""
        changeset.action = "insert"
        if not changeset.valid:
            return Result.failure(changeset)
        if session is not None:
            record = apply_changes(changeset)
            session.add(record)
            session.flush()
            session.refresh(record)
            return Result.success(record)
        try:
            with transaction() as own:
                record = apply_changes(changeset)
                own.add(record)
                own.flush()
                own.refresh(record)
        except IntegrityError as exc:
            return self._constraint_failure(changeset, exc)
        return Result.success(record)

    def update(self, changeset: Changeset) -> Result:
        changeset.action = "update"
        if not changeset.valid:
            return Result.failure(changeset)
        model = type(changeset.data)
        try:
            with transaction() as session:
                target = session.get(model, changeset.data.id)
                if target is None:
                    return Result.failure(reason="stale")
                apply_changes(changeset, target)
                session.flush()
                session.refresh(target)
        except IntegrityError as exc:
            return self._constraint_failure(changeset, exc)
        return Result.success(target)

    def delete(self, record: Any) -> Result:
        model = type(record)
        try:
            with transaction() as session:
                target = session.get(model, record.id)
                if target is None:
                    return Result.failure(reason="stale")
                session.delete(target)
                session.flush()
        except IntegrityError as exc:
            logger.warning("Delete of %s id=%s refused: %s", model.__name__, record.id, exc.orig)
            return Result.failure(reason=f"constraint violation: {exc.orig}")
        return Result.success(record)

    # -------------------------- helpers --------------------------
    @staticmethod
    def constraint_errors(changeset: Changeset, exc: IntegrityError) -> bool:
        return changeset.apply_constraint_error(str(exc.orig))

    def _constraint_failure(self, changeset: Changeset, exc: IntegrityError) -> Result:
        if not self.constraint_errors(changeset, exc):
            raise exc
        logger.info("Constraint violation on %s: %s", type(changeset.data).__name__, changeset.errors_dict())
        return Result.failure(changeset)
