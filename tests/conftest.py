"""
Shared fixtures for the inbox assistant test suite.

Storage-backed tests run against an in-memory SQLite database that
replaces the session factory used by get_db_session, so repositories are
exercised for real without touching data/inbox.db.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from sqlalchemy.orm import sessionmaker

from src.email_processing.models import Message, MessageCategory
from src.storage.database import build_engine
from src.storage.models import Base

BASE_TIME = datetime(2025, 10, 14, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def memory_db():
    """In-memory database patched into src.storage.database.SessionLocal."""
    engine = build_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    TestSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    with patch("src.storage.database.SessionLocal", TestSession):
        yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def make_message():
    """Factory for Message objects with sensible defaults."""
    counter = {"n": 0}

    def _make(message_id=None, body="Hello", category=MessageCategory.GENERAL, **kwargs):
        counter["n"] += 1
        kwargs.setdefault("sender_name", f"Customer {counter['n']}")
        kwargs.setdefault("sender_handle", f"customer{counter['n']}@example.com")
        kwargs.setdefault("timestamp", BASE_TIME - timedelta(minutes=counter["n"]))
        return Message(
            id=message_id or f"msg-{counter['n']}",
            body=body,
            category=category,
            **kwargs
        )

    return _make
