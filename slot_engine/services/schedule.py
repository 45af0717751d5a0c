"""
Schedule view - a student's booked sessions grouped by time window.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional

from slot_engine.config import get_config
from slot_engine.models import (
    ClassificationWindow,
    SlotOccurrence,
    SlotStatus,
    StudentSlot,
    sunday_based_weekday,
)
from slot_engine.pagination import fetch_all_pages
from slot_engine.time_window import classify, now_in_service_tz, to_service_tz

logger = logging.getLogger(__name__)

CANCELLABLE_WINDOWS = frozenset({ClassificationWindow.UPCOMING, ClassificationWindow.CURRENT})


@dataclass
class ScheduleBuckets:
    """Slots split by window: past newest first, upcoming earliest first"""

    past: List[StudentSlot] = field(default_factory=list)
    current: List[StudentSlot] = field(default_factory=list)
    upcoming: List[StudentSlot] = field(default_factory=list)


def can_cancel(slot: StudentSlot, now: Optional[datetime] = None) -> bool:
    """A slot is cancellable while Booked and its session has not ended"""
    if slot.status != SlotStatus.BOOKED:
        return False
    return classify(slot.date, slot.timeframe, now) in CANCELLABLE_WINDOWS


def _start_key(slot: StudentSlot):
    start_time = slot.timeframe.start_time if slot.timeframe else ""
    return (slot.date, start_time)


def group_by_window(slots: Iterable[StudentSlot], now: Optional[datetime] = None) -> ScheduleBuckets:
    """Classify every slot once and sort each bucket for display"""
    now = now or now_in_service_tz()
    buckets = ScheduleBuckets()
    for slot in slots:
        window = classify(slot.date, slot.timeframe, now)
        if window == ClassificationWindow.PAST:
            buckets.past.append(slot)
        elif window == ClassificationWindow.CURRENT:
            buckets.current.append(slot)
        else:
            buckets.upcoming.append(slot)

    buckets.past.sort(key=_start_key, reverse=True)
    buckets.current.sort(key=_start_key)
    buckets.upcoming.sort(key=_start_key)
    return buckets


def next_occurrence_date(occurrence: SlotOccurrence, now: Optional[datetime] = None) -> Optional[date]:
    """
    Next date on which an occurrence runs.

    Fixed-date occurrences return their date. For weekday occurrences the
    search starts today; when today's session has already started the
    same weekday of the following week is returned. Occurrences with
    neither a date nor a weekday return None.
    """
    if occurrence.fixed_date is not None:
        return occurrence.fixed_date
    if occurrence.weekday_pattern is None:
        return None

    now = to_service_tz(now) if now is not None else now_in_service_tz()
    today = now.date()
    candidate = today + timedelta(days=(occurrence.weekday_pattern - sunday_based_weekday(today)) % 7)
    if candidate == today and classify(today, occurrence.timeframe, now) != ClassificationWindow.UPCOMING:
        candidate += timedelta(days=7)
    return candidate


def load_student_schedule(
    booking_repository,
    student_id: str,
    now: Optional[datetime] = None,
    include_cancelled: bool = False,
    page_size: Optional[int] = None,
) -> ScheduleBuckets:
    """Page through all of a student's slots and group them by window"""
    size = page_size or get_config().page_size
    slots = fetch_all_pages(
        lambda page_index, ps: booking_repository.list_by_student(student_id, page_index, ps),
        size,
    )
    if not include_cancelled:
        slots = [s for s in slots if s.status != SlotStatus.CANCELLED]
    logger.debug(f"Loaded {len(slots)} slots for student {student_id}")
    return group_by_window(slots, now)
