from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Make the kraal package importable when running the tests from a checkout
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from kraal.core import config as core_config  # noqa: E402
from kraal.core import mailer  # noqa: E402
from kraal.db import models  # noqa: E402
from kraal.db import session as db_session  # noqa: E402


def _reset_caches() -> None:
    core_config.get_settings.cache_clear()
    db_session.get_engine.cache_clear()
    db_session._get_sessionmaker.cache_clear()  # type: ignore[attr-defined]


@pytest.fixture()
def db_env(tmp_path, monkeypatch):
    """Configure a temporary SQLite database and reset the settings/engine caches."""
    db_file = tmp_path / "test.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{db_file}")
    monkeypatch.setenv("PUBLIC_BASE_URL", "https://kraal.test")
    monkeypatch.setenv("EMAIL_OUTBOX_MAX_ATTEMPTS", "3")
    _reset_caches()

    engine = db_session.get_engine()
    models.Base.metadata.drop_all(bind=engine)
    models.Base.metadata.create_all(bind=engine)

    yield db_file

    models.Base.metadata.drop_all(bind=engine)
    engine.dispose()
    _reset_caches()


@pytest.fixture()
def sent_emails(monkeypatch):
    """Capture outgoing email instead of talking to SMTP."""
    outbox: list[dict] = []

    def fake_send(subject, to_email, html_body, text_body=None):
        outbox.append({"subject": subject, "to": to_email, "html": html_body, "text": text_body})
        return True

    monkeypatch.setattr(mailer, "send_email", fake_send)
    return outbox


@pytest.fixture()
def failing_mailer(monkeypatch):
    calls: list[str] = []

    def broken_send(subject, to_email, html_body, text_body=None):
        calls.append(to_email)
        raise ConnectionRefusedError("smtp down")

    monkeypatch.setattr(mailer, "send_email", broken_send)
    return calls
