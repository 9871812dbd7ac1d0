"""Shared fixtures: a SQLite file database per test and a ledger on a controllable clock."""

import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from activity_ledger.db import create_tables
from activity_ledger.models.activity import ActivityOperation, ResourceType
from activity_ledger.models.user import User, UserRole
from activity_ledger.schemas.activity import ActivityCreate
from activity_ledger.services.ledger import ActivityLedger

START = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def _build_test_engine(db_file: Path) -> Engine:
    return create_engine(
        f"sqlite:///{db_file}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )


class TickingClock:
    """Advances by a fixed step on every read so timestamps are strictly increasing."""

    def __init__(self, start: datetime = START, step: timedelta = timedelta(seconds=1)):
        self.current = start
        self.step = step
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            value = self.current
            self.current = self.current + self.step
            return value

    def advance(self, **kwargs) -> None:
        with self._lock:
            self.current = self.current + timedelta(**kwargs)


class Workspace:
    """Records mutations the way the surrounding application would."""

    def __init__(self, ledger: ActivityLedger, db):
        self.ledger = ledger
        self.db = db

    def put(self, resource_type: str, resource_id: str, **fields) -> None:
        self.ledger.resources.patch(self.db, resource_type, resource_id, fields)

    def live(self, resource_type: str, resource_id: str):
        return self.ledger.resources.read_current(self.db, resource_type, resource_id)

    def drive(self, drive_id: str = "drive-1", **fields):
        fields.setdefault("name", "Team drive")
        fields.setdefault("isTrashed", False)
        self.put("drive", drive_id, **fields)

    def page(self, page_id: str = "page-1", drive_id: str = "drive-1", user_id: str = "alice", **fields):
        """Create a page and record its creation."""
        fields.setdefault("title", "Untitled")
        fields.setdefault("isTrashed", False)
        self.put("page", page_id, **fields)
        return self.record(
            operation=ActivityOperation.CREATE,
            resource_type=ResourceType.PAGE,
            resource_id=page_id,
            page_id=page_id,
            drive_id=drive_id,
            user_id=user_id,
            resource_title=fields["title"],
            new_values=fields,
        )

    def edit(self, page_id: str = "page-1", drive_id: str = "drive-1", user_id: str = "alice",
             is_ai_generated: bool = False, **changes):
        """Apply field changes to a page and record an update activity."""
        before = self.live("page", page_id) or {}
        after = dict(before)
        after.update(changes)
        self.put("page", page_id, **changes)
        entry = ActivityCreate.from_snapshots(
            before, after,
            operation=ActivityOperation.UPDATE,
            resource_type=ResourceType.PAGE,
            resource_id=page_id,
            resource_title=after.get("title"),
            page_id=page_id,
            drive_id=drive_id,
            user_id=user_id,
            is_ai_generated=is_ai_generated,
        )
        return self.ledger.record_activity(self.db, entry)

    def record(self, **fields):
        return self.ledger.record_activity(self.db, ActivityCreate(**fields))


@pytest.fixture
def engine(tmp_path: Path) -> Engine:
    engine = _build_test_engine(tmp_path / "ledger.db")
    create_tables(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    session.add_all([
        User(id="alice", name="Alice", email="alice@example.com", role=UserRole.EDITOR, subscription_tier="free"),
        User(id="bob", name="Bob", email="bob@example.com", role=UserRole.EDITOR, subscription_tier="pro"),
        User(id="vera", name="Vera", email="vera@example.com", role=UserRole.VIEWER, subscription_tier="free"),
        User(id="owner", name="Owner", email="owner@example.com", role=UserRole.ADMIN, subscription_tier="business"),
    ])
    session.commit()
    yield session
    session.close()


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def ledger(clock):
    return ActivityLedger(clock=clock)


@pytest.fixture
def workspace(ledger, db):
    ws = Workspace(ledger, db)
    ws.drive()
    db.commit()
    return ws
