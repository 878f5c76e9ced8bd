"""Pytest configuration and fixtures."""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from trackr.assignees import AssigneeResolver
from trackr.channels import DeliveryChannel, DeliveryError, SendReceipt
from trackr.dispatcher import NotificationDispatcher
from trackr.ledger import NotificationLedger
from trackr.models import Base, Task, TaskAssignment, User
from trackr.notification_config import NotificationConfig
from trackr.read_model import TaskReader, UserDirectory
from trackr.scanner import ScheduledScanRunner

# Fixed evaluation time for scans
SCAN_TIME = datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)


def naive_utc(moment: datetime) -> datetime:
    """Convert to the naive UTC form stored in the database."""
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


class FakeChannel(DeliveryChannel):
    """In-memory delivery channel that records sends and peak concurrency."""

    def __init__(self, fail_for=(), delay: float = 0):
        self.sent = []
        self.fail_for = set(fail_for)
        self.delay = delay
        self.in_flight = 0
        self.peak = 0

    async def send(self, address: str, subject: str, body: str) -> SendReceipt:
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1
        if address in self.fail_for:
            raise DeliveryError(f"rejected {address}")
        self.sent.append((address, subject, body))
        return SendReceipt(id=f"msg-{len(self.sent)}")


@pytest.fixture
def db_session():
    """Create an in-memory database session for testing."""
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    Session = sessionmaker(bind=engine)
    session = Session()
    yield session
    session.close()


@pytest.fixture
def now():
    return SCAN_TIME


@pytest.fixture
def users(db_session):
    """Alice and Bob have email addresses, Carol does not."""
    alice = User(name="Alice Smith", email="alice@example.com")
    bob = User(name="Bob Jones", email="bob@example.com")
    carol = User(name="Carol White", email=None)
    db_session.add_all([alice, bob, carol])
    db_session.commit()
    return {"alice": alice, "bob": bob, "carol": carol}


@pytest.fixture
def make_channel():
    """Build a FakeChannel, e.g. make_channel(fail_for={...}, delay=1)."""
    return FakeChannel


@pytest.fixture
def channel(make_channel):
    return make_channel()


@pytest.fixture
def config():
    return NotificationConfig()


@pytest.fixture
def make_task(db_session, now):
    """Create a task due `due_in` from the scan time, assigned to the given users."""

    def _make_task(
        name: str,
        due_in: Optional[timedelta],
        assignees=(),
        status: str = "pending",
    ) -> Task:
        task = Task(
            name=name,
            status=status,
            project_name="Website",
            due_date=naive_utc(now + due_in) if due_in is not None else None,
        )
        db_session.add(task)
        db_session.flush()
        for user in assignees:
            db_session.add(TaskAssignment(task_id=task.id, user_id=user.id))
        db_session.commit()
        return task

    return _make_task


@pytest.fixture
def make_runner(db_session):
    """Wire a scan runner against the test session."""

    def _make_runner(channel, config, tasks=None) -> ScheduledScanRunner:
        return ScheduledScanRunner(
            tasks=tasks or TaskReader(db_session),
            resolver=AssigneeResolver(UserDirectory(db_session)),
            ledger=NotificationLedger(db_session),
            dispatcher=NotificationDispatcher(channel, config.dispatch_timeout),
            config=config,
            base_url="https://trackr.test",
        )

    return _make_runner
