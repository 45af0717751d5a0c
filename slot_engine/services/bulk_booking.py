"""
Bulk booking planner - books a recurring series date by date.

Each date is booked on its own; one failing date never undoes or stops
the others.
"""

import logging
from datetime import date
from typing import Iterable, List, Optional

from slot_engine.exceptions import BookingEngineError, InvalidBookingRequest
from slot_engine.models import BookingFailure, BulkBookingResult, DateRange, sunday_based_weekday
from slot_engine.services.booking_orchestrator import BookingOrchestrator

logger = logging.getLogger(__name__)


def expand_dates(start_date: date, end_date: date, weekdays: Iterable[int]) -> List[date]:
    """
    Dates in [start_date, end_date] whose weekday (0=Sunday..6=Saturday) is selected.

    Raises:
        InvalidBookingRequest: empty weekday set, weekday outside 0..6 or start after end
    """
    wanted = set(weekdays)
    if not wanted:
        raise InvalidBookingRequest("At least one weekday is required")
    invalid = sorted(w for w in wanted if not isinstance(w, int) or not 0 <= w <= 6)
    if invalid:
        raise InvalidBookingRequest(
            f"Weekdays must be between 0 (Sunday) and 6 (Saturday), got {invalid}",
            details={"weekdays": invalid},
        )
    if start_date > end_date:
        raise InvalidBookingRequest(
            f"Start date {start_date.isoformat()} is after end date {end_date.isoformat()}",
            details={"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
        )

    return [d for d in DateRange(start_date, end_date).days() if sunday_based_weekday(d) in wanted]


class BulkBookingPlanner:
    """Expands a recurring request into dates and books each one"""

    def __init__(self, orchestrator: BookingOrchestrator):
        self.orchestrator = orchestrator

    def plan(
        self,
        student_id: str,
        occurrence_id: str,
        subscription_id: Optional[str],
        start_date: date,
        end_date: date,
        weekdays: Iterable[int],
        note: Optional[str] = None,
        room_id: Optional[str] = None,
    ) -> BulkBookingResult:
        """
        Book every matching date independently.

        Returns:
            BulkBookingResult with the created slots and a failure per rejected date

        Raises:
            InvalidBookingRequest: the request itself is malformed (no date is booked)
        """
        dates = expand_dates(start_date, end_date, weekdays)
        result = BulkBookingResult()

        for day in dates:
            try:
                slot = self.orchestrator.book(
                    student_id,
                    occurrence_id,
                    day,
                    room_id=room_id,
                    subscription_id=subscription_id,
                    note=note,
                )
                result.booked.append(slot)
            except BookingEngineError as e:
                logger.info(f"Bulk booking of slot {occurrence_id} failed on {day}: {e.message}")
                result.failed.append(BookingFailure(date=day, reason=e.message, code=e.code))

        logger.info(
            f"Bulk booking for student {student_id}: {len(result.booked)} booked, "
            f"{len(result.failed)} failed out of {len(dates)} dates"
        )
        return result
