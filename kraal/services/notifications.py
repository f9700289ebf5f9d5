"""
Activation emails and the email outbox.

Messages are rendered and queued inside the transaction that creates the
user, then delivered after commit. A failed delivery stays queued with a
backoff so ``drain_outbox`` can retry it; delivery is at-least-once.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import logging
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from kraal.core.config import get_settings
from kraal.core import mailer
from kraal.db.models import ActivationToken, OutboxMessage, User
from kraal.db.session import get_session

logger = logging.getLogger("kraal.notifications")

ACTIVATION_KIND = "activation"


@dataclass(frozen=True)
class EmailMessage:
    kind: str
    recipient: str
    subject: str
    html_body: str
    text_body: str


def compute_backoff_seconds(*, attempt: int) -> int:
    # attempt=1 -> 2s, attempt=2 -> 4s, attempt=3 -> 8s, capped at 5 minutes
    return min(300, max(2, 2 ** attempt))


def activation_url(token: ActivationToken, user: User) -> str:
    base = get_settings().public_base_url.rstrip("/")
    return f"{base}/activate/{user.id}/{token.token}"


def render_activation_email(token: ActivationToken, user: User) -> EmailMessage:
    url = activation_url(token, user)
    html_body = f"""
        <p>Hello!</p>
        <p>Your account has been created. Confirm your email address to activate it:</p>
        <p><a href="{url}" style="background:#0ea5e9;color:#fff;padding:12px 18px;border-radius:8px;text-decoration:none;">Activate my account</a></p>
        <p>If the button does not work, copy and paste this link into your browser:</p>
        <p><a href="{url}">{url}</a></p>
        """
    return EmailMessage(
        kind=ACTIVATION_KIND,
        recipient=user.email,
        subject="Activate your account",
        html_body=html_body,
        text_body=f"Hello! Activate your account: {url}",
    )


def enqueue_email(session: Session, message: EmailMessage) -> OutboxMessage:
    """Queue ``message`` in the caller's transaction; it is only visible once that commits."""
    entity = OutboxMessage(
        kind=message.kind,
        recipient=message.recipient,
        subject=message.subject,
        html_body=message.html_body,
        text_body=message.text_body,
        status="pending",
        attempts=0,
        max_attempts=get_settings().email_outbox_max_attempts,
        next_attempt_at=datetime.now(timezone.utc),
    )
    session.add(entity)
    session.flush()
    return entity


def _deliver(session: Session, entity: OutboxMessage) -> bool:
    now = datetime.now(timezone.utc)
    entity.attempts = int(entity.attempts or 0) + 1
    try:
        mailer.send_email(entity.subject, entity.recipient, entity.html_body, entity.text_body)
    except Exception as exc:  # any transport failure keeps the message queued
        entity.last_error = f"{type(exc).__name__}: {exc}"
        if entity.attempts >= entity.max_attempts:
            entity.status = "failed"
            logger.error(
                "Giving up on %s email %s to %s after %s attempts: %s",
                entity.kind, entity.id, entity.recipient, entity.attempts, entity.last_error,
            )
        else:
            entity.next_attempt_at = now + timedelta(seconds=compute_backoff_seconds(attempt=entity.attempts))
            logger.warning(
                "Delivery of %s email %s to %s failed (attempt %s/%s): %s",
                entity.kind, entity.id, entity.recipient, entity.attempts, entity.max_attempts, entity.last_error,
            )
        session.commit()
        return False
    entity.status = "sent"
    entity.last_error = None
    session.commit()
    return True


def dispatch(message_ids: Iterable[int]) -> int:
    """Deliver the given pending messages now, ignoring their backoff. Returns how many were sent."""
    sent = 0
    with get_session() as session:
        for message_id in message_ids:
            entity = session.get(OutboxMessage, message_id)
            if entity is None or entity.status != "pending":
                continue
            if _deliver(session, entity):
                sent += 1
    return sent


def drain_outbox(limit: int = 100, now: Optional[datetime] = None) -> int:
    """Retry every pending message whose backoff has elapsed. Returns how many were sent."""
    now = now or datetime.now(timezone.utc)
    limit = max(1, min(int(limit), 2000))
    sent = 0
    with get_session() as session:
        stmt = (
            select(OutboxMessage)
            .where(OutboxMessage.status == "pending", OutboxMessage.next_attempt_at <= now)
            .order_by(OutboxMessage.created_at, OutboxMessage.id)
            .limit(limit)
        )
        for entity in session.execute(stmt).scalars().all():
            if _deliver(session, entity):
                sent += 1
    if sent:
        logger.info("Outbox drained: %s message(s) sent", sent)
    return sent


def pending_messages(recipient: str | None = None) -> list[OutboxMessage]:
    with get_session() as session:
        stmt = select(OutboxMessage).where(OutboxMessage.status == "pending")
        if recipient:
            stmt = stmt.where(OutboxMessage.recipient == recipient)
        return list(session.execute(stmt.order_by(OutboxMessage.id)).scalars().all())
