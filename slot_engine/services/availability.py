"""
Availability aggregator - scans a calendar range for dates with open slots.

Dates are queried in fixed-width batches: the dates of one batch run
concurrently, the next batch starts only after the previous one finished.
Months are produced nearest first so a calendar can render the current
month before the rest of the range is known.
"""

import asyncio
import logging
import threading
from datetime import date, datetime, timedelta
from typing import AsyncIterator, Callable, Dict, Iterable, List, Optional

from slot_engine.config import get_config
from slot_engine.models import DateAvailability, DateRange, MonthAvailability
from slot_engine.pagination import fetch_all_pages
from slot_engine.time_window import now_in_service_tz, to_service_tz

logger = logging.getLogger(__name__)


class ScanSession:
    """
    Caller-owned state of one availability scan.

    Holds the cancellation token and the per-date results. Results only
    ever move forward: once a date is resolved, a later failed check of
    that date does not turn it back into an unchecked date.
    A cancelled session stays cancelled and scans nothing further.
    """

    def __init__(self):
        self._cancel_event = threading.Event()
        self.results: Dict[date, DateAvailability] = {}

    def cancel(self) -> None:
        """
        Stop the scan after the batch currently in flight.

        Cancellation is permanent; scan again with a new ScanSession.
        """
        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def record(self, availability: DateAvailability) -> DateAvailability:
        """Merge a date result and return the value kept for that date"""
        existing = self.results.get(availability.date)
        if existing is not None and existing.resolved and not availability.resolved:
            logger.debug(f"Keeping resolved result for {availability.date} over failed re-check")
            return existing
        self.results[availability.date] = availability
        return availability

    @property
    def checked_dates(self) -> List[date]:
        return sorted(d for d, a in self.results.items() if a.resolved)

    def open_dates(self) -> List[date]:
        """Resolved dates with at least one bookable slot"""
        return sorted(d for d, a in self.results.items() if a.resolved and a.slot_count > 0)

    def unchecked_dates(self) -> List[date]:
        """Dates whose query failed; their availability is unknown, not zero"""
        return sorted(d for d, a in self.results.items() if not a.resolved)


class AvailabilityAggregator:
    """Per-date availability of the slots a student may book"""

    def __init__(
        self,
        slot_repository,
        batch_size: Optional[int] = None,
        page_size: Optional[int] = None,
        months: Optional[int] = None,
        clock: Callable[[], datetime] = now_in_service_tz,
    ):
        """
        Args:
            slot_repository: Store exposing query(student_id, date, page_index, page_size);
                called from worker threads, so it must be safe to share across threads
            batch_size: Dates queried concurrently (default from config)
            page_size: Page size used when paging the store (default from config)
            months: Months covered by a scan without an explicit range (default from config)
            clock: Returns the current instant
        """
        config = get_config()
        self.slot_repository = slot_repository
        self.batch_size = batch_size or config.scan_batch_size
        self.page_size = page_size or config.page_size
        self.months = months or config.scan_months
        self.clock = clock

    def today(self) -> date:
        return to_service_tz(self.clock()).date()

    def default_range(self) -> DateRange:
        """Today through the end of the last month of the scan window"""
        today = self.today()
        year, month = today.year, today.month + self.months
        year += (month - 1) // 12
        month = (month - 1) % 12 + 1
        return DateRange(today, date(year, month, 1) - timedelta(days=1))

    def check_date(
        self, student_id: str, day: date, page_size: Optional[int] = None
    ) -> DateAvailability:
        """
        Query every page of slots for one date and keep those running that day.

        Occurrences the store reports as full are not counted. A failed
        query yields an unchecked (unresolved) result instead of raising.
        """
        size = page_size or self.page_size
        try:
            items = fetch_all_pages(
                lambda page_index, ps: self.slot_repository.query(student_id, day, page_index, ps),
                size,
            )
        except Exception as e:
            logger.warning(f"Availability check failed for {day}: {e}")
            return DateAvailability.unchecked(day)

        candidates = [
            o for o in items if o.matches(day) and o.remaining_capacity() != 0
        ]
        return DateAvailability(
            date=day, resolved=True, slot_count=len(candidates), candidates=candidates
        )

    async def _check_batch(
        self, student_id: str, days: List[date], page_size: int
    ) -> List[DateAvailability]:
        return await asyncio.gather(
            *(asyncio.to_thread(self.check_date, student_id, day, page_size) for day in days)
        )

    async def scan(
        self,
        student_id: str,
        date_range: Optional[DateRange] = None,
        page_size: Optional[int] = None,
        session: Optional[ScanSession] = None,
    ) -> AsyncIterator[MonthAvailability]:
        """
        Scan a date range month by month, nearest month first.

        Dates before today are skipped. Each call starts from the first
        month again; cancel through the session to stop early.

        Args:
            student_id: Student whose bookable slots are scanned
            date_range: Dates to scan (default: today through the scan window)
            page_size: Page size for store queries
            session: Caller-owned scan state; a fresh one is used when omitted.
                An already cancelled session yields nothing.

        Yields:
            MonthAvailability for every scanned month
        """
        if session is not None and session.cancelled:
            logger.info(
                f"Scan session for student {student_id} is already cancelled; "
                f"start a new ScanSession to scan again"
            )
            return
        session = session or ScanSession()
        size = page_size or self.page_size
        date_range = date_range or self.default_range()
        today = self.today()

        if date_range.end < today:
            logger.info(f"Scan range {date_range.start}..{date_range.end} is entirely in the past")
            return
        if date_range.start < today:
            date_range = DateRange(today, date_range.end)

        for month_range in date_range.months():
            if session.cancelled:
                logger.info(f"Availability scan for student {student_id} cancelled")
                return

            month = MonthAvailability(year=month_range.start.year, month=month_range.start.month)
            days = list(month_range.days())
            for i in range(0, len(days), self.batch_size):
                if session.cancelled:
                    logger.info(f"Availability scan for student {student_id} cancelled")
                    return
                for result in await self._check_batch(student_id, days[i:i + self.batch_size], size):
                    month.dates[result.date] = session.record(result)

            logger.info(
                f"Scanned {month.year}-{month.month:02d} for student {student_id}: "
                f"{sum(1 for a in month.dates.values() if a.slot_count > 0)} open, "
                f"{len(month.unchecked_dates)} unchecked"
            )
            yield month

    async def recheck(
        self,
        session: ScanSession,
        student_id: str,
        dates: Iterable[date],
        page_size: Optional[int] = None,
    ) -> Dict[date, DateAvailability]:
        """Re-query specific dates (usually the unchecked ones) and merge into the session"""
        size = page_size or self.page_size
        days = sorted(set(dates))
        merged: Dict[date, DateAvailability] = {}
        for i in range(0, len(days), self.batch_size):
            for result in await self._check_batch(student_id, days[i:i + self.batch_size], size):
                merged[result.date] = session.record(result)
        return merged
