"""
Booking orchestrator - validates and commits a single reservation.

Every precondition is checked before the store is written to. The store's
create call is the only place capacity is enforced for real; a rejection
there surfaces as SlotFull and is never retried here.
"""

import logging
from datetime import date, datetime
from typing import Optional

from slot_engine.exceptions import (
    AccessDenied,
    DateSlotMismatch,
    InvalidBookingRequest,
    OccurrenceNotFound,
    RecordConflict,
    RecordForbidden,
    RecordNotFound,
    SlotFull,
)
from slot_engine.models import SlotOccurrence, StudentSlot
from slot_engine.services.package_validator import PackageValidator
from slot_engine.time_window import to_service_tz

logger = logging.getLogger(__name__)

MAX_NOTE_LENGTH = 1000


def ensure_date_matches(occurrence: SlotOccurrence, day: date) -> None:
    """
    Check that an occurrence runs on a date.

    Raises:
        DateSlotMismatch: naming the required date or weekday
    """
    if occurrence.matches(day):
        return
    raise DateSlotMismatch(
        occurrence.id,
        day,
        required_date=occurrence.fixed_date,
        required_weekday=occurrence.weekday_pattern if occurrence.fixed_date is None else None,
    )


class BookingOrchestrator:
    """Single-reservation booking flow"""

    def __init__(self, slot_repository, booking_repository, package_validator: PackageValidator):
        self.slot_repository = slot_repository
        self.booking_repository = booking_repository
        self.package_validator = package_validator

    def _load_occurrence(self, occurrence_id: str) -> SlotOccurrence:
        try:
            return self.slot_repository.get(occurrence_id)
        except RecordNotFound as e:
            raise OccurrenceNotFound(occurrence_id) from e
        except RecordForbidden as e:
            raise AccessDenied(e.message, details=e.details) from e

    def book(
        self,
        student_id: str,
        occurrence_id: str,
        day: date,
        room_id: Optional[str] = None,
        subscription_id: Optional[str] = None,
        note: Optional[str] = None,
        occurrence: Optional[SlotOccurrence] = None,
    ) -> StudentSlot:
        """
        Book an occurrence on a date for a student.

        Args:
            student_id: Student to book for
            occurrence_id: Occurrence (branch slot) to book
            day: Calendar date of the session
            room_id: Room to book; None lets the store assign one
            subscription_id: Subscription to charge; resolved by PackageValidator when None
            note: Optional parent note
            occurrence: Already-loaded occurrence (e.g. a scan candidate) to skip the lookup

        Returns:
            The created StudentSlot

        Raises:
            InvalidBookingRequest, OccurrenceNotFound, DateSlotMismatch,
            NoActiveSubscription, PackageNotAllowedForSlot, SlotFull,
            AccessDenied, RepositoryUnavailable
        """
        if not student_id or not occurrence_id or not day:
            raise InvalidBookingRequest(
                "student_id, occurrence_id and date are required",
                details={"student_id": student_id, "occurrence_id": occurrence_id},
            )
        if isinstance(day, datetime):
            day = to_service_tz(day).date()
        if note and len(note) > MAX_NOTE_LENGTH:
            raise InvalidBookingRequest(f"Note exceeds {MAX_NOTE_LENGTH} characters")

        if occurrence is None:
            occurrence = self._load_occurrence(occurrence_id)
        elif occurrence.id != occurrence_id:
            raise InvalidBookingRequest(
                f"Occurrence {occurrence.id} passed for booking of {occurrence_id}"
            )

        ensure_date_matches(occurrence, day)

        if not subscription_id:
            subscription_id = self.package_validator.validate(student_id, occurrence).id

        # Optimistic pre-check; unassigned rooms defer the capacity check to the store
        if room_id is not None and occurrence.remaining_capacity() == 0:
            logger.info(f"Slot {occurrence_id} on {day} reported full before booking")
            raise SlotFull(occurrence_id, day)

        try:
            slot = self.booking_repository.create(
                student_id, occurrence_id, subscription_id, room_id, day, note
            )
        except RecordConflict as e:
            logger.warning(f"Booking of slot {occurrence_id} on {day} rejected: {e.message}")
            raise SlotFull(occurrence_id, day, e.message) from e
        except RecordNotFound as e:
            if "subscription_id" in e.details:
                raise InvalidBookingRequest(e.message, details=e.details) from e
            raise OccurrenceNotFound(occurrence_id) from e
        except RecordForbidden as e:
            raise AccessDenied(e.message, details=e.details) from e

        logger.info(f"Booked slot {occurrence_id} on {day} for student {student_id}: {slot.id}")
        return slot
