"""
Type-safe data models for the reservation engine
Uses dataclasses and enums for better type safety and IDE support
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Dict, FrozenSet, Generic, Iterator, List, Optional, TypeVar

T = TypeVar("T")


class SlotStatus(str, Enum):
    """Lifecycle status of a student slot (booking record)"""

    BOOKED = "Booked"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"
    NO_SHOW = "NoShow"
    RESCHEDULED = "Rescheduled"


# Statuses that consume capacity of an occurrence on a date
ACTIVE_SLOT_STATUSES = frozenset({SlotStatus.BOOKED, SlotStatus.COMPLETED})


class SubscriptionStatus(str, Enum):
    """Status of a package subscription; only ACTIVE is usable for booking"""

    ACTIVE = "Active"
    INACTIVE = "Inactive"
    EXPIRED = "Expired"
    REFUNDED = "Refunded"
    PENDING = "Pending"
    UNKNOWN = "Unknown"


class ClassificationWindow(str, Enum):
    """Where a dated session sits relative to now"""

    PAST = "Past"
    CURRENT = "Current"
    UPCOMING = "Upcoming"


def sunday_based_weekday(day: date) -> int:
    """Weekday of a date with 0=Sunday..6=Saturday"""
    return (day.weekday() + 1) % 7


@dataclass(frozen=True)
class Timeframe:
    """Time-of-day window of a session, e.g. 09:00 to 10:30"""

    name: str
    start_time: str
    end_time: str


@dataclass
class SlotOccurrence:
    """A bookable timeframe x room x (fixed date | weekday) template"""

    id: str
    timeframe: Optional[Timeframe]
    capacity: int
    room_id: Optional[str] = None
    fixed_date: Optional[date] = None
    weekday_pattern: Optional[int] = None
    allowed_package_ids: FrozenSet[str] = field(default_factory=frozenset)
    booked_count: Optional[int] = None

    @property
    def is_bookable(self) -> bool:
        """An occurrence with neither a fixed date nor a weekday can never be matched"""
        return self.fixed_date is not None or self.weekday_pattern is not None

    def matches(self, day: date) -> bool:
        """Check whether this occurrence runs on the given calendar date"""
        if self.fixed_date is not None:
            return self.fixed_date == day
        if self.weekday_pattern is not None:
            return sunday_based_weekday(day) == self.weekday_pattern
        return False

    def remaining_capacity(self) -> Optional[int]:
        """Capacity left on the queried date, None when the store did not report bookings"""
        if self.booked_count is None:
            return None
        return max(self.capacity - self.booked_count, 0)


@dataclass
class StudentSlot:
    """One committed reservation of a student against an occurrence on a date"""

    id: str
    student_id: str
    slot_occurrence_id: str
    date: date
    status: SlotStatus
    timeframe: Optional[Timeframe] = None
    room_id: Optional[str] = None
    parent_note: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class PackageSubscription:
    """Entitlement of a student to book occurrences within a package scope"""

    id: str
    student_id: str
    package_id: str
    status: SubscriptionStatus
    total_slots: int = 0
    used_slots: int = 0
    package_name: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status == SubscriptionStatus.ACTIVE

    @property
    def remaining_slots(self) -> int:
        return max(self.total_slots - self.used_slots, 0)


@dataclass
class Page(Generic[T]):
    """One page of a paginated repository response"""

    items: List[T]
    total_count: Optional[int] = None
    total_pages: Optional[int] = None


@dataclass(frozen=True)
class DateRange:
    """Inclusive calendar date range"""

    start: date
    end: date

    def __post_init__(self):
        if self.start > self.end:
            raise ValueError(f"start {self.start} is after end {self.end}")

    def __contains__(self, day: date) -> bool:
        return self.start <= day <= self.end

    def days(self) -> Iterator[date]:
        """Iterate every date in the range, both ends included"""
        current = self.start
        while current <= self.end:
            yield current
            current += timedelta(days=1)

    def months(self) -> List["DateRange"]:
        """Split the range into per-calendar-month sub-ranges, earliest first"""
        result = []
        current = self.start
        while current <= self.end:
            if current.month == 12:
                next_month = date(current.year + 1, 1, 1)
            else:
                next_month = date(current.year, current.month + 1, 1)
            month_end = min(next_month - timedelta(days=1), self.end)
            result.append(DateRange(current, month_end))
            current = next_month
        return result


@dataclass
class DateAvailability:
    """
    Availability of a single date.

    resolved=False marks an unchecked date: its query failed, which is not
    the same thing as having no open slots.
    """

    date: date
    resolved: bool
    slot_count: int = 0
    candidates: List[SlotOccurrence] = field(default_factory=list)

    @classmethod
    def unchecked(cls, day: date) -> "DateAvailability":
        return cls(date=day, resolved=False)


@dataclass
class MonthAvailability:
    """Per-date results of one scanned calendar month"""

    year: int
    month: int
    dates: Dict[date, DateAvailability] = field(default_factory=dict)

    @property
    def unchecked_dates(self) -> List[date]:
        return sorted(d for d, a in self.dates.items() if not a.resolved)


@dataclass
class BookingFailure:
    """A date of a bulk booking that could not be booked"""

    date: date
    reason: str
    code: str


@dataclass
class BulkBookingResult:
    """Outcome of a best-effort recurring booking"""

    booked: List[StudentSlot] = field(default_factory=list)
    failed: List[BookingFailure] = field(default_factory=list)
