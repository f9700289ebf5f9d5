"""
Activation email rendering and outbox retries.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from kraal.core import config as core_config
from kraal.core import mailer
from kraal.db.models import ActivationToken, OutboxMessage, User
from kraal.db.session import get_session
from kraal.services import notifications
from kraal.services.accounts import AccountsService


def _later(hours: int = 1) -> datetime:
    return datetime.now(timezone.utc) + timedelta(hours=hours)


def _message(message_id: int) -> OutboxMessage:
    with get_session() as session:
        return session.get(OutboxMessage, message_id)


@pytest.mark.parametrize(
    "attempt,expected",
    [(0, 2), (1, 2), (2, 4), (3, 8), (8, 256), (9, 300), (20, 300)],
)
def test_backoff_is_exponential_and_capped(attempt, expected):
    assert notifications.compute_backoff_seconds(attempt=attempt) == expected


def test_failed_activation_email_stays_queued(db_env, failing_mailer):
    result = AccountsService().create_user({"email": "a@example.com"})

    assert result.ok
    assert failing_mailer == ["a@example.com"]
    pending = notifications.pending_messages("a@example.com")
    assert len(pending) == 1
    assert pending[0].attempts == 1
    assert pending[0].kind == notifications.ACTIVATION_KIND
    assert "smtp down" in pending[0].last_error


def test_drain_outbox_respects_backoff(db_env, failing_mailer):
    AccountsService().create_user({"email": "a@example.com"})

    assert notifications.drain_outbox() == 0
    assert failing_mailer == ["a@example.com"]


def test_drain_outbox_delivers_after_recovery(db_env, failing_mailer, monkeypatch):
    AccountsService().create_user({"email": "a@example.com"})
    delivered: list[str] = []
    monkeypatch.setattr(mailer, "send_email", lambda subject, to, html, text=None: delivered.append(to) or True)

    assert notifications.drain_outbox(now=_later()) == 1

    assert delivered == ["a@example.com"]
    assert notifications.pending_messages() == []


def test_message_is_marked_failed_after_max_attempts(db_env, failing_mailer):
    AccountsService().create_user({"email": "a@example.com"})
    message_id = notifications.pending_messages()[0].id

    notifications.drain_outbox(now=_later(1))
    notifications.drain_outbox(now=_later(2))

    message = _message(message_id)
    assert message.status == "failed"
    assert message.attempts == 3
    assert notifications.pending_messages() == []
    assert notifications.drain_outbox(now=_later(3)) == 0
    assert len(failing_mailer) == 3


def test_dispatch_skips_messages_already_sent(db_env, sent_emails):
    AccountsService().create_user({"email": "a@example.com"})
    with get_session() as session:
        message_id = session.query(OutboxMessage.id).scalar()

    assert notifications.dispatch([message_id]) == 0
    assert len(sent_emails) == 1


def test_unconfigured_smtp_is_recorded_as_a_failure(db_env, monkeypatch):
    for name in ("SMTP_HOST", "SMTP_USER", "SMTP_PASSWORD", "SMTP_FROM"):
        monkeypatch.delenv(name, raising=False)
    core_config.get_settings.cache_clear()

    AccountsService().create_user({"email": "a@example.com"})

    pending = notifications.pending_messages()
    assert len(pending) == 1
    assert pending[0].last_error.startswith("MailerNotConfigured")


def test_render_activation_email_links_to_the_token(db_env):
    message = notifications.render_activation_email(ActivationToken(token="tok123"), User(id=7, email="a@example.com"))

    assert message.recipient == "a@example.com"
    assert message.kind == "activation"
    assert "https://kraal.test/activate/7/tok123" in message.html_body
    assert message.text_body.endswith("https://kraal.test/activate/7/tok123")
