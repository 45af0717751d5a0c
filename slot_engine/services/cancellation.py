"""
Cancellation service - turns a Booked slot into a Cancelled one.

A slot is never deleted. Whether it may be cancelled depends only on its
status and on where its session sits relative to now.
"""

import logging
from datetime import datetime
from typing import Callable

from slot_engine.exceptions import (
    AccessDenied,
    NotCancellable,
    RecordConflict,
    RecordForbidden,
    RecordNotFound,
)
from slot_engine.models import ClassificationWindow, SlotStatus, StudentSlot
from slot_engine.services.schedule import can_cancel
from slot_engine.time_window import classify, now_in_service_tz

logger = logging.getLogger(__name__)


class CancellationService:
    """Validates and commits cancellation of an existing reservation"""

    def __init__(self, booking_repository, clock: Callable[[], datetime] = now_in_service_tz):
        self.booking_repository = booking_repository
        self.clock = clock

    def can_cancel(self, slot: StudentSlot) -> bool:
        return can_cancel(slot, self.clock())

    def _load_slot(self, slot_id: str) -> StudentSlot:
        try:
            return self.booking_repository.get(slot_id)
        except RecordNotFound as e:
            raise NotCancellable(slot_id, "slot does not exist") from e
        except RecordForbidden as e:
            raise AccessDenied(e.message, details=e.details) from e

    def cancel(self, slot_id: str, student_id: str) -> None:
        """
        Cancel a student's slot.

        Raises:
            NotCancellable: the slot is unknown, not Booked, or its session is over
            AccessDenied: the slot belongs to someone else
            RepositoryUnavailable: the store failed
        """
        slot = self._load_slot(slot_id)
        if slot.student_id != student_id:
            raise AccessDenied(
                f"Slot {slot_id} does not belong to student {student_id}",
                details={"slot_id": slot_id, "student_id": student_id},
            )

        now = self.clock()
        if slot.status != SlotStatus.BOOKED:
            raise NotCancellable(slot_id, f"status is {slot.status.value}")
        if classify(slot.date, slot.timeframe, now) == ClassificationWindow.PAST:
            raise NotCancellable(slot_id, "session has already ended")

        try:
            self.booking_repository.cancel(slot_id, student_id)
        except (RecordNotFound, RecordConflict) as e:
            raise NotCancellable(slot_id, e.message) from e
        except RecordForbidden as e:
            raise AccessDenied(e.message, details=e.details) from e

        logger.info(f"Cancelled slot {slot_id} of student {student_id}")
