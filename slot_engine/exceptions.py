"""
Domain exceptions for the reservation engine.

Every failure the engine reports maps to exactly one of these kinds. The
repository errors at the bottom are raised by store adapters and are
translated by the services; RepositoryUnavailable is the only one that
passes through untouched so callers can apply their own retry policy.
"""

from datetime import date
from typing import Any, Dict, Optional


class BookingEngineError(Exception):
    """Base exception for all reservation engine errors"""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class InvalidBookingRequest(BookingEngineError):
    """Raised when a request is missing required fields or is malformed"""


class NoActiveSubscription(BookingEngineError):
    """Raised when a student holds no Active package subscription"""

    def __init__(self, student_id: str) -> None:
        super().__init__(
            f"Student {student_id} has no active package subscription",
            details={"student_id": student_id},
        )


class PackageNotAllowedForSlot(BookingEngineError):
    """Raised when none of the student's active packages may be used for the occurrence"""

    def __init__(self, student_id: str, occurrence_id: str) -> None:
        super().__init__(
            f"No active package of student {student_id} is allowed for slot {occurrence_id}",
            details={"student_id": student_id, "occurrence_id": occurrence_id},
        )


WEEKDAY_NAMES = {
    0: "Sunday",
    1: "Monday",
    2: "Tuesday",
    3: "Wednesday",
    4: "Thursday",
    5: "Friday",
    6: "Saturday",
}


class DateSlotMismatch(BookingEngineError):
    """Raised when the requested date does not match the occurrence's date or weekday"""

    def __init__(
        self,
        occurrence_id: str,
        requested_date: date,
        required_date: Optional[date] = None,
        required_weekday: Optional[int] = None,
    ) -> None:
        if required_date is not None:
            requirement = f"only runs on {required_date.isoformat()}"
        elif required_weekday is not None:
            requirement = f"only runs on {WEEKDAY_NAMES.get(required_weekday, required_weekday)}"
        else:
            requirement = "has neither a fixed date nor a weekday and cannot be booked"
        super().__init__(
            f"Date {requested_date.isoformat()} does not match slot {occurrence_id}: it {requirement}",
            details={
                "occurrence_id": occurrence_id,
                "requested_date": requested_date.isoformat(),
                "required_date": required_date.isoformat() if required_date else None,
                "required_weekday": required_weekday,
            },
        )


class SlotFull(BookingEngineError):
    """Raised when the store rejects a booking for exhausted capacity or a concurrent conflict"""

    def __init__(self, occurrence_id: str, day: date, reason: Optional[str] = None) -> None:
        message = f"Slot {occurrence_id} on {day.isoformat()} is full"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(
            message,
            details={"occurrence_id": occurrence_id, "date": day.isoformat()},
        )


class NotCancellable(BookingEngineError):
    """Raised when a slot is not Booked or its session is already over"""

    def __init__(self, slot_id: str, reason: str) -> None:
        super().__init__(
            f"Slot {slot_id} cannot be cancelled: {reason}",
            details={"slot_id": slot_id, "reason": reason},
        )


class OccurrenceNotFound(BookingEngineError):
    """Raised when a booking references an occurrence the store does not know"""

    def __init__(self, occurrence_id: str) -> None:
        super().__init__(
            f"Slot {occurrence_id} not found",
            details={"occurrence_id": occurrence_id},
        )


class AccessDenied(BookingEngineError):
    """Raised when the store refuses the operation for this caller"""


# Repository boundary


class RepositoryError(BookingEngineError):
    """Base for errors raised by store adapters"""


class RecordNotFound(RepositoryError):
    """The requested record does not exist"""


class RecordConflict(RepositoryError):
    """The write conflicts with current state (capacity exhausted, concurrent write, wrong status)"""


class RecordForbidden(RepositoryError):
    """The caller may not read or modify the record"""


class RepositoryUnavailable(RepositoryError):
    """Transport or backend failure; safe for the caller to retry later"""
