"""
Normalization of raw backend payloads into the canonical engine models.

The backend returns the same record in several shapes depending on the
endpoint (a date reachable as ``date`` or ``branchSlot.date``, a timeframe
as ``timeframe`` or ``timeFrame``, statuses as names or enum indexes).
Everything is resolved here, at the adapter boundary, so the engine never
branches on alternate field names.
"""

import logging
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional, TypeVar

from slot_engine.models import (
    Page,
    PackageSubscription,
    SlotOccurrence,
    SlotStatus,
    StudentSlot,
    SubscriptionStatus,
    Timeframe,
)
from slot_engine.time_window import to_service_tz

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Backend enum order for StudentSlot.status when sent as an integer
_SLOT_STATUS_BY_INDEX = [
    SlotStatus.BOOKED,
    SlotStatus.COMPLETED,
    SlotStatus.CANCELLED,
    SlotStatus.NO_SHOW,
    SlotStatus.RESCHEDULED,
]


def _first(data: Dict[str, Any], *keys: str) -> Any:
    """Return the first non-empty value among dotted key paths"""
    for key in keys:
        value: Any = data
        for part in key.split("."):
            if not isinstance(value, dict):
                value = None
                break
            value = value.get(part)
        if value is not None and value != "":
            return value
    return None


def _optional_str(value: Any) -> Optional[str]:
    return str(value) if value is not None else None


def parse_service_date(value: Any) -> Optional[date]:
    """
    Parse a backend date into a calendar date in the service timezone.

    Accepts date objects, datetimes, plain YYYY-MM-DD strings and ISO
    date-times. Offset-aware values are converted to UTC+7 first, so
    ``2024-12-01T17:00:00Z`` is the 2nd of December.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return to_service_tz(value).date() if value.tzinfo else value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if len(text) == 10:
        return date.fromisoformat(text)
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        return parsed.date()
    return to_service_tz(parsed).date()


def parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).strip())


def parse_timeframe(data: Optional[Dict[str, Any]]) -> Optional[Timeframe]:
    if not data:
        return None
    start = _first(data, "startTime", "start_time")
    end = _first(data, "endTime", "end_time")
    if not start or not end:
        return None
    name = _first(data, "name", "timeframeName") or f"{start}-{end}"
    return Timeframe(name=str(name), start_time=str(start), end_time=str(end))


def _slot_status_at(index: int) -> SlotStatus:
    if not 0 <= index < len(_SLOT_STATUS_BY_INDEX):
        raise ValueError(f"Slot status index out of range: {index}")
    return _SLOT_STATUS_BY_INDEX[index]


def parse_slot_status(value: Any) -> SlotStatus:
    """Map a status name or enum index to SlotStatus"""
    if isinstance(value, int) and not isinstance(value, bool):
        return _slot_status_at(value)
    text = str(value if value is not None else "").strip()
    if not text:
        return SlotStatus.BOOKED
    if text.isdigit():
        return _slot_status_at(int(text))
    for status in SlotStatus:
        if status.value.lower() == text.lower():
            return status
    raise ValueError(f"Unknown slot status: {value!r}")


def parse_subscription_status(value: Any) -> SubscriptionStatus:
    text = str(value or "").strip().lower()
    for status in SubscriptionStatus:
        if status.value.lower() == text:
            return status
    return SubscriptionStatus.UNKNOWN


def parse_occurrence(data: Dict[str, Any]) -> SlotOccurrence:
    """Build a SlotOccurrence from a BranchSlot payload"""
    timeframe = parse_timeframe(_first(data, "timeframe", "timeFrame"))
    if timeframe is None:
        timeframe = parse_timeframe(data)

    weekday = _first(data, "weekDate", "weekDay", "weekday")
    allowed = _first(data, "allowedPackageIds")
    if allowed is None:
        allowed = [
            pkg.get("id") for pkg in (data.get("allowedPackages") or []) if pkg.get("id")
        ]
    booked = _first(data, "bookedCount", "currentBookings")

    return SlotOccurrence(
        id=str(data["id"]),
        timeframe=timeframe,
        capacity=int(_first(data, "capacity", "maxCapacity") or 0),
        room_id=_optional_str(_first(data, "roomId", "room.id")),
        fixed_date=parse_service_date(_first(data, "date", "fixedDate")),
        weekday_pattern=int(weekday) if weekday is not None else None,
        allowed_package_ids=frozenset(str(p) for p in allowed),
        booked_count=int(booked) if booked is not None else None,
    )


def parse_student_slot(data: Dict[str, Any]) -> StudentSlot:
    """Build a StudentSlot from a StudentSlot payload"""
    timeframe = parse_timeframe(
        _first(data, "timeframe", "timeFrame", "branchSlot.timeframe", "branchSlot.timeFrame")
    )
    slot_date = parse_service_date(_first(data, "branchSlot.date", "date"))
    if slot_date is None:
        raise ValueError(f"Student slot {data.get('id')} has no date")

    return StudentSlot(
        id=str(data["id"]),
        student_id=str(_first(data, "studentId", "student.id")),
        slot_occurrence_id=str(_first(data, "branchSlotId", "branchSlot.id", "slotOccurrenceId")),
        date=slot_date,
        status=parse_slot_status(data.get("status")),
        timeframe=timeframe,
        room_id=_optional_str(_first(data, "roomId", "room.id")),
        parent_note=data.get("parentNote") or None,
        created_at=parse_timestamp(_first(data, "createdDate", "createdAt")),
    )


def parse_subscription(data: Dict[str, Any]) -> PackageSubscription:
    """Build a PackageSubscription from a subscription payload"""
    return PackageSubscription(
        id=str(data["id"]),
        student_id=str(_first(data, "studentId", "student.id") or ""),
        package_id=str(_first(data, "packageId", "package.id")),
        status=parse_subscription_status(data.get("status")),
        total_slots=int(_first(data, "totalSlots", "totalSlot") or 0),
        used_slots=int(_first(data, "usedSlots", "usedSlot") or 0),
        package_name=_first(data, "packageName", "package.name"),
    )


def unwrap_items(payload: Any) -> List[Dict[str, Any]]:
    """Extract the item list from a bare list, an {items: [...]} envelope or a single object"""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        if isinstance(payload.get("items"), list):
            return payload["items"]
        if payload.get("id") is not None:
            return [payload]
    return []


def parse_page(payload: Any, parse_item: Callable[[Dict[str, Any]], T]) -> Page[T]:
    """
    Parse a paginated payload, skipping items that cannot be normalized.

    A malformed record is logged and dropped rather than failing the whole
    page.
    """
    items = []
    for raw in unwrap_items(payload):
        try:
            items.append(parse_item(raw))
        except (KeyError, TypeError, ValueError, IndexError) as e:
            logger.warning(f"Skipping malformed record {raw.get('id') if isinstance(raw, dict) else raw!r}: {e}")

    total_count = None
    total_pages = None
    if isinstance(payload, dict):
        total_count = payload.get("totalCount")
        total_pages = payload.get("totalPages")
    return Page(items=items, total_count=total_count, total_pages=total_pages)
