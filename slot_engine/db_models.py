"""
Database models using SQLModel
Provides type-safe ORM with Pydantic validation
"""

import uuid
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import DateTime
from sqlmodel import SQLModel, Field


def utc_now() -> datetime:
    """Timezone-aware UTC timestamp for created_at / updated_at columns"""
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class SlotOccurrenceRecord(SQLModel, table=True):
    """Bookable occurrence template (branch slot)"""

    __tablename__ = "slot_occurrences"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=36)
    timeframe_name: str = Field(max_length=100)
    start_time: str = Field(max_length=12)  # HH:MM or HH:MM:SS
    end_time: str = Field(max_length=12)
    room_id: Optional[str] = Field(default=None, max_length=36)
    capacity: int = Field(ge=0)

    # Exactly one of these should be set; with neither the occurrence is unbookable
    fixed_date: Optional[date] = Field(default=None, index=True)
    weekday: Optional[int] = Field(default=None, ge=0, le=6, index=True)  # 0=Sunday

    allowed_package_ids: str = Field(default="[]")  # JSON list of package ids
    created_at: datetime = Field(default_factory=utc_now, sa_type=DateTime(timezone=True))


class PackageSubscriptionRecord(SQLModel, table=True):
    """Package subscription of a student"""

    __tablename__ = "package_subscriptions"

    # Insertion order is the repository order callers rely on
    seq: Optional[int] = Field(default=None, primary_key=True)
    id: str = Field(default_factory=new_id, unique=True, index=True, max_length=36)
    student_id: str = Field(index=True, max_length=36)
    package_id: str = Field(max_length=36)
    package_name: Optional[str] = Field(default=None, max_length=255)
    status: str = Field(default="Active", max_length=20)
    total_slots: int = Field(default=0, ge=0)
    used_slots: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=utc_now, sa_type=DateTime(timezone=True))


class StudentSlotRecord(SQLModel, table=True):
    """Booking of a student against an occurrence on a date; never hard-deleted"""

    __tablename__ = "student_slots"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=36)
    student_id: str = Field(index=True, max_length=36)
    slot_occurrence_id: str = Field(foreign_key="slot_occurrences.id", index=True)
    subscription_id: str = Field(max_length=36)
    session_date: date = Field(index=True)
    status: str = Field(default="Booked", max_length=20, index=True)
    room_id: Optional[str] = Field(default=None, max_length=36)
    parent_note: Optional[str] = Field(default=None, max_length=1000)
    created_at: datetime = Field(default_factory=utc_now, sa_type=DateTime(timezone=True), index=True)
    updated_at: datetime = Field(default_factory=utc_now, sa_type=DateTime(timezone=True))
