from datetime import date, datetime
from typing import Optional

import pytest
from sqlalchemy.orm import sessionmaker

import festbook.models  # noqa: F401
from festbook.database import Base, build_engine
from festbook.domain.bookings.service import BookingService
from festbook.domain.slots.repository import SlotStore
from festbook.models import SlotStatus
from festbook.services.notification_service import NotificationDelivery, NotificationMessage
from festbook.shared.clock import FixedClock

CUSTOMER_ID = "c0000000-0000-4000-8000-000000000001"
PERFORMER_ID = "p0000000-0000-4000-8000-000000000001"
OTHER_PERFORMER_ID = "p0000000-0000-4000-8000-000000000002"

# 09:00 UTC; visit dates below are well after this
NOW = datetime(2026, 12, 1, 9, 0)
VISIT_DATE = date(2026, 12, 20)


class RecordingDelivery(NotificationDelivery):
    """Collects deliveries; can be told to fail or raise"""

    def __init__(self, fail_with: Optional[str] = None, raise_error: Optional[Exception] = None):
        self.sent: list[tuple[str, NotificationMessage]] = []
        self.fail_with = fail_with
        self.raise_error = raise_error

    async def deliver(self, user_id, message):
        if self.raise_error:
            raise self.raise_error
        self.sent.append((user_id, message))
        if self.fail_with:
            return False, self.fail_with
        return True, None

    def kinds(self) -> list[str]:
        return [message.kind for _, message in self.sent]


@pytest.fixture
def engine(tmp_path):
    # File-backed so several sessions (and threads) see the same data
    engine = build_engine(f"sqlite:///{tmp_path / 'festbook_test.db'}")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


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
def clock():
    return FixedClock(NOW)


@pytest.fixture
def service(db, clock):
    return BookingService(db, clock=clock)


@pytest.fixture
def delivery():
    return RecordingDelivery()


@pytest.fixture
def make_slot(db):
    def _make(
        start_time: str = "18:00",
        on: date = VISIT_DATE,
        performer_id: str = PERFORMER_ID,
        price: Optional[int] = 5000,
        status: SlotStatus = SlotStatus.FREE,
    ):
        hour = int(start_time[:2])
        slot = SlotStore.create_slot(
            db,
            performer_id=performer_id,
            date=on,
            start_time=start_time,
            end_time=f"{(hour + 1) % 24:02d}{start_time[2:]}",
            price=price,
            status=status,
        )
        db.commit()
        return slot

    return _make


@pytest.fixture
def booking(service, make_slot):
    """A pending booking on a fresh 18:00 slot"""
    slot = make_slot()
    result = service.create_booking(CUSTOMER_ID, PERFORMER_ID, slot.id)
    assert result.ok
    return result.booking
