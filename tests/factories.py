"""
Builders for canonical model instances used across tests
"""

from datetime import date, datetime

from slot_engine.models import (
    PackageSubscription,
    SlotOccurrence,
    SlotStatus,
    StudentSlot,
    SubscriptionStatus,
    Timeframe,
)
from slot_engine.time_window import SERVICE_TZ

# 2024-12-02 is a Monday (weekday 1 with 0=Sunday)
MONDAY = date(2024, 12, 2)
MORNING = Timeframe(name="Morning", start_time="09:00", end_time="10:00")


def service_time(day: date, hour: int, minute: int = 0, second: int = 0) -> datetime:
    """Aware datetime in the service timezone"""
    return datetime(day.year, day.month, day.day, hour, minute, second, tzinfo=SERVICE_TZ)


def make_occurrence(**overrides) -> SlotOccurrence:
    values = dict(
        id="slot-mon",
        timeframe=MORNING,
        capacity=2,
        room_id="room-1",
        weekday_pattern=1,
    )
    values.update(overrides)
    return SlotOccurrence(**values)


def make_subscription(**overrides) -> PackageSubscription:
    values = dict(
        id="sub-1",
        student_id="student-1",
        package_id="pkg-a",
        status=SubscriptionStatus.ACTIVE,
        total_slots=10,
    )
    values.update(overrides)
    return PackageSubscription(**values)


def make_student_slot(**overrides) -> StudentSlot:
    values = dict(
        id="booking-1",
        student_id="student-1",
        slot_occurrence_id="slot-mon",
        date=MONDAY,
        status=SlotStatus.BOOKED,
        timeframe=MORNING,
        room_id="room-1",
    )
    values.update(overrides)
    return StudentSlot(**values)
