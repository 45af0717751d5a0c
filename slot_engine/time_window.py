"""
Past / current / upcoming classification of dated sessions.

All sessions are local to the service region, so session instants are
built at a fixed UTC+7 offset no matter where the code runs.
"""

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

from slot_engine.models import ClassificationWindow, Timeframe

logger = logging.getLogger(__name__)

SERVICE_TZ = timezone(timedelta(hours=7), "UTC+07:00")


def now_in_service_tz() -> datetime:
    """Current instant expressed in the service timezone"""
    return datetime.now(SERVICE_TZ)


def today_in_service_tz() -> date:
    """Today's calendar date in the service timezone"""
    return now_in_service_tz().date()


def to_service_tz(moment: datetime) -> datetime:
    """Convert an instant to the service timezone; naive values are taken as service-local"""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=SERVICE_TZ)
    return moment.astimezone(SERVICE_TZ)


def normalize_time(value: str) -> str:
    """Normalize a time-of-day string to HH:MM:SS (append :00 when only HH:MM is given)"""
    value = value.strip()
    if len(value) == 5:
        return f"{value}:00"
    return value


def parse_time_of_day(value: str) -> time:
    """Parse HH:MM or HH:MM:SS (fractional seconds allowed) into a time"""
    return time.fromisoformat(normalize_time(value))


def session_bounds(day: date, timeframe: Timeframe) -> tuple[datetime, datetime]:
    """Start and end instants of a session on a date, anchored at UTC+7"""
    start = datetime.combine(day, parse_time_of_day(timeframe.start_time), SERVICE_TZ)
    end = datetime.combine(day, parse_time_of_day(timeframe.end_time), SERVICE_TZ)
    return start, end


def classify(
    day: Optional[date],
    timeframe: Optional[Timeframe],
    now: Optional[datetime] = None,
) -> ClassificationWindow:
    """
    Classify a dated session relative to now.

    Never raises. A missing date or timeframe, or one that cannot be parsed,
    classifies as UPCOMING so that a single malformed record never blocks a
    calendar view.

    Both boundaries are inclusive: a session is CURRENT from its first to
    its last second.
    """
    if day is None or timeframe is None:
        return ClassificationWindow.UPCOMING

    try:
        start, end = session_bounds(day, timeframe)
        current = to_service_tz(now) if now is not None else now_in_service_tz()
    except (TypeError, ValueError, AttributeError, OverflowError) as e:
        logger.debug(f"Could not classify {day} {timeframe}: {e}; treating as upcoming")
        return ClassificationWindow.UPCOMING

    if end < current:
        return ClassificationWindow.PAST
    if start <= current <= end:
        return ClassificationWindow.CURRENT
    return ClassificationWindow.UPCOMING
