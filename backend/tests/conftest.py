from __future__ import annotations

import os
import uuid
from datetime import datetime, timedelta, timezone

# Settings are read at import time; point the app at SQLite before anything imports liveblog.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["CRON_SECRET"] = "test-cron-secret"
os.environ["SCHEDULER_ENABLED"] = "false"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from liveblog.api.routes.internal import get_fanout
from liveblog.db.base import Base
from liveblog.db.session import get_db
from liveblog.main import app
from liveblog.models import (
    EngagementWidget,
    Liveblog,
    PushSubscription,
    SponsorSlot,
    Update,
)
from liveblog.services.publish import FanoutChannels

CRON_SECRET = "test-cron-secret"
UA = "pytest-agent/1.0"


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    yield eng
    Base.metadata.drop_all(eng)
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def fanout():
    return FanoutChannels()


@pytest.fixture
def client(session_factory, fanout):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_fanout] = lambda: fanout
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def utc(minutes: float = 0) -> datetime:
    """Now (UTC) shifted by `minutes`."""
    return datetime.now(timezone.utc) + timedelta(minutes=minutes)


def _id() -> str:
    return str(uuid.uuid4())


def make_liveblog(db, **overrides) -> Liveblog:
    values = {"id": _id(), "title": "Match day", "status": "active", "privacy": "public", "settings": {}}
    values.update(overrides)
    lb = Liveblog(**values)
    db.add(lb)
    db.commit()
    return lb


def make_update(db, liveblog_id: str, **overrides) -> Update:
    values = {
        "id": _id(),
        "liveblog_id": liveblog_id,
        "content": {"type": "text", "text": "Kick-off!"},
        "status": "published",
        "pinned": False,
        "published_at": utc(-1),
    }
    values.update(overrides)
    row = Update(**values)
    db.add(row)
    db.commit()
    return row


def make_widget(db, **overrides) -> EngagementWidget:
    values = {"id": _id(), "type": "hot-take", "status": "active", "config": {}}
    values.update(overrides)
    widget = EngagementWidget(**values)
    db.add(widget)
    db.commit()
    return widget


def make_sponsor_slot(db, liveblog_id: str, **overrides) -> SponsorSlot:
    values = {"id": _id(), "liveblog_id": liveblog_id, "name": "Acme Boots", "status": "scheduled"}
    values.update(overrides)
    slot = SponsorSlot(**values)
    db.add(slot)
    db.commit()
    return slot


def make_push_subscription(db, liveblog_id: str, endpoint: str) -> PushSubscription:
    sub = PushSubscription(
        id=_id(),
        liveblog_id=liveblog_id,
        endpoint=endpoint,
        keys={"p256dh": "key", "auth": "auth"},
    )
    db.add(sub)
    db.commit()
    return sub
