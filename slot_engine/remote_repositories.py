"""
Repositories backed by the childcare REST API.
Every payload is normalized into the canonical models before it leaves this module.
"""

import logging
from datetime import date
from typing import List, Optional, Union

from slot_engine.api_client import ApiClient, get_api_client
from slot_engine.models import (
    DateRange,
    Page,
    PackageSubscription,
    SlotOccurrence,
    StudentSlot,
)
from slot_engine.normalizers import (
    parse_occurrence,
    parse_page,
    parse_student_slot,
    parse_subscription,
    unwrap_items,
)
from slot_engine.exceptions import RepositoryUnavailable

logger = logging.getLogger(__name__)


class ApiSlotRepository:
    """Slot occurrences available to a student"""

    def __init__(self, client: Optional[ApiClient] = None):
        self.client = client or get_api_client()

    def query(
        self,
        student_id: str,
        date_or_range: Union[date, DateRange],
        page_index: int = 1,
        page_size: int = 100,
    ) -> Page[SlotOccurrence]:
        """Get one page of occurrences offered to a student on a date or in a range"""
        params = {"pageIndex": page_index, "pageSize": page_size}
        if isinstance(date_or_range, DateRange):
            params["startDate"] = date_or_range.start.isoformat()
            params["endDate"] = date_or_range.end.isoformat()
        else:
            params["date"] = date_or_range.isoformat()

        payload = self.client.get(f"BranchSlot/available-for-student/{student_id}", params)
        return parse_page(payload, parse_occurrence)

    def get(self, occurrence_id: str) -> SlotOccurrence:
        """Get a single occurrence by ID"""
        payload = self.client.get(f"BranchSlot/{occurrence_id}")
        try:
            return parse_occurrence(payload)
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise RepositoryUnavailable(
                f"Malformed slot {occurrence_id} returned by backend: {e}"
            ) from e


class ApiSubscriptionRepository:
    """Package subscriptions of a student"""

    def __init__(self, client: Optional[ApiClient] = None):
        self.client = client or get_api_client()

    def list_by_student(self, student_id: str) -> List[PackageSubscription]:
        """Get all subscriptions of a student in backend order"""
        payload = self.client.get(f"PackageSubscription/student/{student_id}")
        return parse_page(payload, parse_subscription).items


class ApiBookingRepository:
    """Student slot (booking) commands and queries"""

    def __init__(self, client: Optional[ApiClient] = None):
        self.client = client or get_api_client()

    def create(
        self,
        student_id: str,
        occurrence_id: str,
        subscription_id: str,
        room_id: Optional[str],
        day: date,
        note: Optional[str] = None,
    ) -> StudentSlot:
        """Book a slot; the backend auto-assigns a room when room_id is None"""
        data = {
            "studentId": student_id,
            "branchSlotId": occurrence_id,
            "packageSubscriptionId": subscription_id,
            "roomId": room_id,
            # Noon keeps the calendar day stable across any timezone conversion
            "date": f"{day.isoformat()}T12:00:00.000+07:00",
            "parentNote": note or "",
        }
        payload = self.client.post("StudentSlot/book", data)
        items = unwrap_items(payload)
        if not items:
            raise RepositoryUnavailable("Booking response did not contain the created slot")
        try:
            return parse_student_slot(items[0])
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise RepositoryUnavailable(f"Malformed booking response: {e}") from e

    def cancel(self, slot_id: str, student_id: str) -> None:
        self.client.delete("StudentSlot/cancel", {"slotId": slot_id, "studentId": student_id})

    def get(self, slot_id: str) -> StudentSlot:
        payload = self.client.get(f"StudentSlot/{slot_id}")
        try:
            return parse_student_slot(payload)
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise RepositoryUnavailable(f"Malformed slot {slot_id} returned by backend: {e}") from e

    def list_by_student(
        self, student_id: str, page_index: int = 1, page_size: int = 100
    ) -> Page[StudentSlot]:
        payload = self.client.get(
            "StudentSlot/paged",
            {"studentId": student_id, "pageIndex": page_index, "pageSize": page_size},
        )
        return parse_page(payload, parse_student_slot)
