"""
The accounts boundary.

Every other part of the system manipulates users, profiles and activation
tokens through ``AccountsService``. Write operations return a ``Result``
holding either the stored record or the changeset explaining why it was
refused; lookups by id raise ``NotFoundError``.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
import secrets
from typing import Any, Mapping, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from kraal.db.models import ActivationToken, Profile, User
from kraal.db.session import transaction
from kraal.domain.changeset import Changeset, Result, foreign_key_constraint, unique_constraint
from kraal.domain.validation import (
    activation_token_changeset,
    profile_changeset,
    user_changeset,
    user_create_changeset,
)
from kraal.repositories.sql_repository import NotFoundError, SQLRepository
from kraal.services import notifications

logger = logging.getLogger("kraal.accounts")

__all__ = ["AccountsService", "NotFoundError", "Result"]


def _new_token_value() -> str:
    return secrets.token_urlsafe(24)


@dataclass
class AccountsService:
    """CRUD for users, activation tokens and profiles, plus the signup workflow."""

    repository: Optional[SQLRepository] = None

    def __post_init__(self):
        if self.repository is None:
            self.repository = SQLRepository()

    # -------------------------------------- users --------------------------------------
    def list_users(self) -> list[User]:
        return self.repository.all(User)

    def get_user(self, user_id: Any) -> User:
        """Raises NotFoundError when no user has this id."""
        return self.repository.get_or_raise(User, user_id)

    def create_user(self, attrs: Mapping[Any, Any] | None = None) -> Result:
        """
        Insert the user and its activation token atomically, queue the
        activation email in the same transaction, and try to deliver it once
        the transaction has committed.
        """
        changeset = user_create_changeset(User(), attrs or {})
        if not changeset.valid:
            return Result.failure(changeset)
        token_changeset = activation_token_changeset(ActivationToken(token=_new_token_value()), {})
        unique_constraint(token_changeset, "token", constraint="activation_tokens_token_key")
        try:
            with transaction() as session:
                inserted = self.repository.insert(changeset, session=session)
                if not inserted.ok:
                    raise _StepFailed(inserted)
                user = inserted.record
                token_changeset.data.user_id = user.id
                issued = self.repository.insert(token_changeset, session=session)
                if not issued.ok:
                    raise _StepFailed(issued)
                message = notifications.enqueue_email(
                    session, notifications.render_activation_email(issued.record, user)
                )
                message_id = message.id
        except _StepFailed as failed:
            logger.info("User creation aborted: %s", failed.result.errors or failed.result.reason)
            return failed.result
        except IntegrityError as exc:
            for step in (changeset, token_changeset):
                if self.repository.constraint_errors(step, exc):
                    logger.info("User creation refused: %s", step.errors_dict())
                    return Result.failure(step)
            raise

        logger.info("Created user %s (%s)", user.id, user.email)
        try:
            if not notifications.dispatch([message_id]):
                logger.warning("Activation email for user %s queued for retry", user.id)
        except SQLAlchemyError:
            # the message stays pending in the outbox; drain_outbox picks it up
            logger.exception("Dispatching activation email for user %s failed", user.id)
        return Result.success(user)

    def activate_user(self, activation_token_id: Any, user_id: Any) -> Result:
        # Token validity, the activation flag and token consumption are undefined.
        raise NotImplementedError("activate_user has no defined behaviour yet")

    def update_user(self, user: User, attrs: Mapping[Any, Any]) -> Result:
        return self.repository.update(user_changeset(user, attrs))

    def delete_user(self, user: User) -> Result:
        result = self.repository.delete(user)
        if result.ok:
            logger.info("Deleted user %s", user.id)
        return result

    def change_user(self, user: User) -> Changeset:
        return user_changeset(user, {})

    # -------------------------------------- activation tokens --------------------------------------
    def list_activation_tokens(self) -> list[ActivationToken]:
        return self.repository.all(ActivationToken)

    def get_activation_token(self, token_id: Any) -> ActivationToken:
        """Raises NotFoundError when no activation token has this id."""
        return self.repository.get_or_raise(ActivationToken, token_id)

    def get_activation_token_for_user(self, user: User) -> Optional[ActivationToken]:
        return self.repository.get_by(ActivationToken, user_id=user.id)

    def create_activation_token(self, user: User) -> Result:
        changeset = activation_token_changeset(ActivationToken(token=_new_token_value(), user_id=user.id), {})
        foreign_key_constraint(changeset, "user_id", constraint="activation_tokens_user_id_fkey")
        return self.repository.insert(changeset)

    def update_activation_token(self, token: ActivationToken, attrs: Mapping[Any, Any]) -> Result:
        return self.repository.update(activation_token_changeset(token, attrs))

    def delete_activation_token(self, token: ActivationToken) -> Result:
        return self.repository.delete(token)

    def change_activation_token(self, token: ActivationToken) -> Changeset:
        return activation_token_changeset(token, {})

    # -------------------------------------- profiles --------------------------------------
    def get_profile(self, user: User) -> Optional[Profile]:
        return self.repository.get_by(Profile, user_id=user.id)

    def create_profile(self, user: User, attrs: Mapping[Any, Any]) -> Result:
        changeset = profile_changeset(Profile(user_id=user.id), attrs)
        unique_constraint(changeset, "user_id", constraint="profiles_user_id_key", message="already has a profile")
        foreign_key_constraint(changeset, "user_id", constraint="profiles_user_id_fkey")
        return self.repository.insert(changeset)

    def update_profile(self, profile: Profile, attrs: Mapping[Any, Any]) -> Result:
        return self.repository.update(profile_changeset(profile, attrs))

    def delete_profile(self, profile: Profile) -> Result:
        return self.repository.delete(profile)

    def change_profile(self, profile: Profile) -> Changeset:
        return profile_changeset(profile, {})


class _StepFailed(Exception):
    """Aborts the sign-up transaction, carrying the failed step's result."""

    def __init__(self, result: Result):
        super().__init__("sign-up step failed")
        self.result = result
