"""
Repository pattern for database access
Provides clean separation between business logic and data access

These are the local SQLModel-backed stores. They return the canonical
models from slot_engine.models, never table records, and raise the
repository errors from slot_engine.exceptions.
"""

import json
import logging
import threading
from datetime import date
from typing import Callable, ContextManager, Iterable, List, Optional, Union

from sqlmodel import Session, func, select

from slot_engine.database import get_session
from slot_engine.db_models import (
    PackageSubscriptionRecord,
    SlotOccurrenceRecord,
    StudentSlotRecord,
    utc_now,
)
from slot_engine.exceptions import RecordConflict, RecordForbidden, RecordNotFound
from slot_engine.models import (
    ACTIVE_SLOT_STATUSES,
    DateRange,
    Page,
    PackageSubscription,
    SlotOccurrence,
    SlotStatus,
    StudentSlot,
    SubscriptionStatus,
    Timeframe,
    sunday_based_weekday,
)

logger = logging.getLogger(__name__)

# Serializes the capacity check and insert of BookingRepository.create
_booking_lock = threading.Lock()

_ACTIVE_STATUS_VALUES = [s.value for s in ACTIVE_SLOT_STATUSES]

# Outcomes external attendance jobs may record for a Booked slot
_ATTENDANCE_STATUSES = frozenset({SlotStatus.COMPLETED, SlotStatus.NO_SHOW})


def _paginate(items: list, page_index: int, page_size: int) -> Page:
    total_count = len(items)
    total_pages = (total_count + page_size - 1) // page_size
    start = (page_index - 1) * page_size
    return Page(
        items=items[start:start + page_size],
        total_count=total_count,
        total_pages=total_pages,
    )


def _to_timeframe(record: SlotOccurrenceRecord) -> Timeframe:
    return Timeframe(
        name=record.timeframe_name,
        start_time=record.start_time,
        end_time=record.end_time,
    )


def _to_occurrence(
    record: SlotOccurrenceRecord, booked_count: Optional[int] = None
) -> SlotOccurrence:
    return SlotOccurrence(
        id=record.id,
        timeframe=_to_timeframe(record),
        capacity=record.capacity,
        room_id=record.room_id,
        fixed_date=record.fixed_date,
        weekday_pattern=record.weekday,
        allowed_package_ids=frozenset(json.loads(record.allowed_package_ids or "[]")),
        booked_count=booked_count,
    )


def _to_student_slot(
    record: StudentSlotRecord, occurrence: Optional[SlotOccurrenceRecord]
) -> StudentSlot:
    return StudentSlot(
        id=record.id,
        student_id=record.student_id,
        slot_occurrence_id=record.slot_occurrence_id,
        date=record.session_date,
        status=SlotStatus(record.status),
        timeframe=_to_timeframe(occurrence) if occurrence else None,
        room_id=record.room_id,
        parent_note=record.parent_note,
        created_at=record.created_at,
    )


def _to_subscription(record: PackageSubscriptionRecord) -> PackageSubscription:
    try:
        status = SubscriptionStatus(record.status)
    except ValueError:
        status = SubscriptionStatus.UNKNOWN
    return PackageSubscription(
        id=record.id,
        student_id=record.student_id,
        package_id=record.package_id,
        status=status,
        total_slots=record.total_slots,
        used_slots=record.used_slots,
        package_name=record.package_name,
    )


class SubscriptionRepository:
    """Repository for PackageSubscription operations"""

    def __init__(self, session: Session):
        self.session = session

    def add_subscription(
        self,
        student_id: str,
        package_id: str,
        status: SubscriptionStatus = SubscriptionStatus.ACTIVE,
        total_slots: int = 0,
        used_slots: int = 0,
        package_name: Optional[str] = None,
        subscription_id: Optional[str] = None,
    ) -> PackageSubscription:
        """Add a package subscription for a student"""
        record = PackageSubscriptionRecord(
            student_id=student_id,
            package_id=package_id,
            status=status.value,
            total_slots=total_slots,
            used_slots=used_slots,
            package_name=package_name,
        )
        if subscription_id:
            record.id = subscription_id
        self.session.add(record)
        self.session.commit()
        self.session.refresh(record)
        return _to_subscription(record)

    def list_by_student(self, student_id: str) -> List[PackageSubscription]:
        """Get all subscriptions of a student in insertion order"""
        statement = (
            select(PackageSubscriptionRecord)
            .where(PackageSubscriptionRecord.student_id == student_id)
            .order_by(PackageSubscriptionRecord.seq)
        )
        return [_to_subscription(r) for r in self.session.exec(statement)]

    def set_status(self, subscription_id: str, status: SubscriptionStatus) -> bool:
        """Change a subscription's status (expiry, refund)"""
        statement = select(PackageSubscriptionRecord).where(
            PackageSubscriptionRecord.id == subscription_id
        )
        record = self.session.exec(statement).first()
        if record is None:
            return False
        record.status = status.value
        self.session.commit()
        return True

    def active_package_ids(self, student_id: str) -> set[str]:
        return {
            s.package_id for s in self.list_by_student(student_id) if s.is_active
        }


class SlotRepository:
    """Repository for slot occurrence operations"""

    def __init__(self, session: Session):
        self.session = session

    def create_occurrence(
        self,
        timeframe: Timeframe,
        capacity: int,
        room_id: Optional[str] = None,
        fixed_date: Optional[date] = None,
        weekday: Optional[int] = None,
        allowed_package_ids: Iterable[str] = (),
        occurrence_id: Optional[str] = None,
    ) -> SlotOccurrence:
        """Create an occurrence template (authoring is normally done by the back office)"""
        record = SlotOccurrenceRecord(
            timeframe_name=timeframe.name,
            start_time=timeframe.start_time,
            end_time=timeframe.end_time,
            room_id=room_id,
            capacity=capacity,
            fixed_date=fixed_date,
            weekday=weekday,
            allowed_package_ids=json.dumps(sorted(allowed_package_ids)),
        )
        if occurrence_id:
            record.id = occurrence_id
        self.session.add(record)
        self.session.commit()
        self.session.refresh(record)
        return _to_occurrence(record)

    def get(self, occurrence_id: str) -> SlotOccurrence:
        """Get occurrence by ID"""
        record = self.session.get(SlotOccurrenceRecord, occurrence_id)
        if record is None:
            raise RecordNotFound(
                f"Slot {occurrence_id} not found", details={"occurrence_id": occurrence_id}
            )
        return _to_occurrence(record)

    def query(
        self,
        student_id: str,
        date_or_range: Union[date, DateRange],
        page_index: int = 1,
        page_size: int = 100,
    ) -> Page[SlotOccurrence]:
        """
        Get one page of occurrences a student may book on a date or in a range.

        Only occurrences whose allowed packages are unrestricted or include
        one of the student's active packages are returned. Single-date
        queries also report the number of active bookings per occurrence.
        """
        if isinstance(date_or_range, DateRange):
            statement = select(SlotOccurrenceRecord).where(
                (
                    (SlotOccurrenceRecord.fixed_date >= date_or_range.start)
                    & (SlotOccurrenceRecord.fixed_date <= date_or_range.end)
                )
                | (
                    SlotOccurrenceRecord.fixed_date.is_(None)
                    & SlotOccurrenceRecord.weekday.is_not(None)
                )
            )
        else:
            statement = select(SlotOccurrenceRecord).where(
                (SlotOccurrenceRecord.fixed_date == date_or_range)
                | (
                    SlotOccurrenceRecord.fixed_date.is_(None)
                    & (SlotOccurrenceRecord.weekday == sunday_based_weekday(date_or_range))
                )
            )
        statement = statement.order_by(SlotOccurrenceRecord.start_time, SlotOccurrenceRecord.id)

        package_ids = SubscriptionRepository(self.session).active_package_ids(student_id)
        records = []
        for record in self.session.exec(statement):
            allowed = set(json.loads(record.allowed_package_ids or "[]"))
            if not allowed or allowed & package_ids:
                records.append(record)

        page = _paginate(records, page_index, page_size)
        booking_repo = BookingRepository(self.session)
        items = []
        for record in page.items:
            booked = None
            if not isinstance(date_or_range, DateRange):
                booked = booking_repo.count_active(record.id, date_or_range)
            items.append(_to_occurrence(record, booked))
        logger.debug(
            f"Slot query for student {student_id} on {date_or_range}: page {page_index}/{page.total_pages}"
        )
        return Page(items=items, total_count=page.total_count, total_pages=page.total_pages)


class BookingRepository:
    """Repository for StudentSlot operations"""

    def __init__(self, session: Session):
        self.session = session

    def _get_record(self, slot_id: str) -> StudentSlotRecord:
        record = self.session.get(StudentSlotRecord, slot_id)
        if record is None:
            raise RecordNotFound(f"Student slot {slot_id} not found", details={"slot_id": slot_id})
        return record

    def _to_model(self, record: StudentSlotRecord) -> StudentSlot:
        occurrence = self.session.get(SlotOccurrenceRecord, record.slot_occurrence_id)
        return _to_student_slot(record, occurrence)

    def count_active(self, occurrence_id: str, day: date) -> int:
        """Count Booked and Completed slots of an occurrence on a date"""
        statement = select(func.count()).select_from(StudentSlotRecord).where(
            StudentSlotRecord.slot_occurrence_id == occurrence_id,
            StudentSlotRecord.session_date == day,
            StudentSlotRecord.status.in_(_ACTIVE_STATUS_VALUES),
        )
        return self.session.exec(statement).one()

    def create(
        self,
        student_id: str,
        occurrence_id: str,
        subscription_id: str,
        room_id: Optional[str],
        day: date,
        note: Optional[str] = None,
    ) -> StudentSlot:
        """
        Create a booking, enforcing capacity.

        Raises:
            RecordNotFound: unknown occurrence or subscription
            RecordForbidden: subscription belongs to another student
            RecordConflict: date mismatch, duplicate booking or capacity exhausted
        """
        with _booking_lock:
            occurrence = self.session.get(SlotOccurrenceRecord, occurrence_id)
            if occurrence is None:
                raise RecordNotFound(
                    f"Slot {occurrence_id} not found", details={"occurrence_id": occurrence_id}
                )

            statement = select(PackageSubscriptionRecord).where(
                PackageSubscriptionRecord.id == subscription_id
            )
            subscription = self.session.exec(statement).first()
            if subscription is None:
                raise RecordNotFound(
                    f"Subscription {subscription_id} not found",
                    details={"subscription_id": subscription_id},
                )
            if subscription.student_id != student_id:
                raise RecordForbidden(
                    f"Subscription {subscription_id} does not belong to student {student_id}"
                )

            if not _to_occurrence(occurrence).matches(day):
                raise RecordConflict(f"Slot {occurrence_id} does not run on {day.isoformat()}")

            duplicate = self.session.exec(
                select(StudentSlotRecord).where(
                    StudentSlotRecord.student_id == student_id,
                    StudentSlotRecord.slot_occurrence_id == occurrence_id,
                    StudentSlotRecord.session_date == day,
                    StudentSlotRecord.status.in_(_ACTIVE_STATUS_VALUES),
                )
            ).first()
            if duplicate is not None:
                raise RecordConflict(
                    f"Student {student_id} already booked slot {occurrence_id} on {day.isoformat()}"
                )

            active = self.count_active(occurrence_id, day)
            if active >= occurrence.capacity:
                raise RecordConflict(
                    f"Capacity {occurrence.capacity} reached for slot {occurrence_id} on {day.isoformat()}"
                )

            record = StudentSlotRecord(
                student_id=student_id,
                slot_occurrence_id=occurrence_id,
                subscription_id=subscription_id,
                session_date=day,
                status=SlotStatus.BOOKED.value,
                room_id=room_id or occurrence.room_id,
                parent_note=note or None,
            )
            self.session.add(record)
            self.session.commit()
            self.session.refresh(record)

        logger.info(
            f"Student slot {record.id} booked: student={student_id}, slot={occurrence_id}, date={day}"
        )
        return _to_student_slot(record, occurrence)

    def cancel(self, slot_id: str, student_id: str) -> None:
        """
        Transition a Booked slot to Cancelled; the row itself is kept.

        Raises:
            RecordNotFound: unknown slot
            RecordForbidden: slot belongs to another student
            RecordConflict: slot is not Booked
        """
        record = self._get_record(slot_id)
        if record.student_id != student_id:
            raise RecordForbidden(f"Student slot {slot_id} does not belong to student {student_id}")
        if record.status != SlotStatus.BOOKED.value:
            raise RecordConflict(f"Student slot {slot_id} is {record.status}, not Booked")

        record.status = SlotStatus.CANCELLED.value
        record.updated_at = utc_now()
        self.session.commit()
        logger.info(f"Student slot {slot_id} cancelled")

    def update_status(self, slot_id: str, status: SlotStatus) -> StudentSlot:
        """
        Record attendance for a Booked slot; used by batch jobs for Completed and NoShow.

        Cancellation goes through cancel() and is final.

        Raises:
            RecordNotFound: unknown slot
            RecordConflict: the slot is not Booked or the target status is not an attendance outcome
        """
        record = self._get_record(slot_id)
        if status not in _ATTENDANCE_STATUSES:
            raise RecordConflict(
                f"Student slot {slot_id} cannot be set to {status.value} by a status update",
                details={"slot_id": slot_id, "status": status.value},
            )
        if record.status != SlotStatus.BOOKED.value:
            raise RecordConflict(
                f"Student slot {slot_id} is {record.status}, not Booked",
                details={"slot_id": slot_id, "status": record.status},
            )
        record.status = status.value
        record.updated_at = utc_now()
        self.session.commit()
        self.session.refresh(record)
        return self._to_model(record)

    def get(self, slot_id: str) -> StudentSlot:
        """Get student slot by ID"""
        return self._to_model(self._get_record(slot_id))

    def list_by_student(
        self, student_id: str, page_index: int = 1, page_size: int = 100
    ) -> Page[StudentSlot]:
        """Get one page of a student's slots, earliest date first"""
        statement = (
            select(StudentSlotRecord)
            .where(StudentSlotRecord.student_id == student_id)
            .order_by(StudentSlotRecord.session_date, StudentSlotRecord.created_at)
        )
        records = list(self.session.exec(statement))
        page = _paginate(records, page_index, page_size)
        return Page(
            items=[self._to_model(r) for r in page.items],
            total_count=page.total_count,
            total_pages=page.total_pages,
        )


class ScopedSlotRepository:
    """
    SlotRepository that opens its own session per call.

    A Session must not be shared between threads; the availability scan
    queries dates from worker threads, so it is given this wrapper.
    """

    def __init__(self, session_factory: Callable[[], ContextManager[Session]] = get_session):
        self.session_factory = session_factory

    def get(self, occurrence_id: str) -> SlotOccurrence:
        with self.session_factory() as session:
            return SlotRepository(session).get(occurrence_id)

    def query(
        self,
        student_id: str,
        date_or_range: Union[date, DateRange],
        page_index: int = 1,
        page_size: int = 100,
    ) -> Page[SlotOccurrence]:
        with self.session_factory() as session:
            return SlotRepository(session).query(student_id, date_or_range, page_index, page_size)
