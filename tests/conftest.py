"""
Pytest configuration and shared fixtures for tests
"""

from datetime import date

import pytest
from sqlmodel import Session, SQLModel, create_engine
from sqlalchemy.pool import StaticPool

from slot_engine import db_models  # noqa: F401
from slot_engine.config import reset_config
from slot_engine.models import Timeframe
from slot_engine.repositories import SlotRepository, SubscriptionRepository
from tests.factories import MORNING


@pytest.fixture(autouse=True)
def clean_config(monkeypatch):
    """Isolate every test from SLOT_ENGINE_* variables of the host"""
    monkeypatch.delenv("SLOT_ENGINE_SCAN_BATCH_SIZE", raising=False)
    monkeypatch.delenv("SLOT_ENGINE_PAGE_SIZE", raising=False)
    monkeypatch.delenv("SLOT_ENGINE_SCAN_MONTHS", raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture(name="db_engine")
def db_engine_fixture():
    """Create in-memory SQLite database engine for testing"""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,  # Keep single connection for in-memory DB
    )
    SQLModel.metadata.create_all(engine)
    return engine


@pytest.fixture(name="db_session")
def db_session_fixture(db_engine):
    """Create database session for testing"""
    with Session(db_engine) as session:
        yield session
        session.rollback()  # Rollback any uncommitted changes after test


@pytest.fixture
def seeded_store(db_session):
    """
    Store with one Monday occurrence (capacity 2, package pkg-a only),
    one unrestricted fixed-date occurrence and an active pkg-a subscription
    """
    slots = SlotRepository(db_session)
    slots.create_occurrence(
        MORNING,
        capacity=2,
        room_id="room-1",
        weekday=1,
        allowed_package_ids=["pkg-a"],
        occurrence_id="slot-mon",
    )
    slots.create_occurrence(
        Timeframe(name="Afternoon", start_time="14:00", end_time="15:30"),
        capacity=1,
        room_id="room-2",
        fixed_date=date(2024, 12, 4),
        occurrence_id="slot-fixed",
    )
    SubscriptionRepository(db_session).add_subscription(
        "student-1", "pkg-a", total_slots=10, subscription_id="sub-1"
    )
    return db_session
