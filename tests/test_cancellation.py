"""
Tests for cancellation of booked slots
"""

from datetime import timedelta
from unittest.mock import Mock

import pytest

from slot_engine.exceptions import (
    AccessDenied,
    NotCancellable,
    RecordConflict,
    RecordForbidden,
    RecordNotFound,
    RepositoryUnavailable,
)
from slot_engine.models import SlotStatus
from slot_engine.remote_repositories import ApiBookingRepository
from slot_engine.repositories import BookingRepository, SlotRepository, SubscriptionRepository
from slot_engine.services.booking_orchestrator import BookingOrchestrator
from slot_engine.services.cancellation import CancellationService
from slot_engine.services.package_validator import PackageValidator
from slot_engine.services.schedule import can_cancel
from tests.factories import MONDAY, make_student_slot, service_time

BEFORE_SESSION = service_time(MONDAY, 8, 0)
DURING_SESSION = service_time(MONDAY, 9, 30)
AFTER_SESSION = service_time(MONDAY, 10, 0, 1)


class TestCanCancel:
    """Tests for the cancellation precondition"""

    @pytest.mark.parametrize("now", [BEFORE_SESSION, DURING_SESSION])
    def test_booked_upcoming_or_current(self, now):
        assert can_cancel(make_student_slot(), now) is True

    def test_booked_past(self):
        assert can_cancel(make_student_slot(), AFTER_SESSION) is False

    @pytest.mark.parametrize(
        "status",
        [SlotStatus.CANCELLED, SlotStatus.COMPLETED, SlotStatus.NO_SHOW, SlotStatus.RESCHEDULED],
    )
    @pytest.mark.parametrize("now", [BEFORE_SESSION, DURING_SESSION, AFTER_SESSION])
    def test_not_booked_never_cancellable(self, status, now):
        """Test only Booked slots can be cancelled, whatever the window"""
        assert can_cancel(make_student_slot(status=status), now) is False

    def test_missing_timeframe_is_cancellable(self):
        """Test a slot without timeframe classifies as upcoming"""
        assert can_cancel(make_student_slot(timeframe=None), AFTER_SESSION + timedelta(days=30)) is True


class TestCancellationService:
    """Tests for CancellationService.cancel with a mocked store"""

    def _service(self, slot=None, now=BEFORE_SESSION):
        repo = Mock()
        repo.get.return_value = slot or make_student_slot()
        return CancellationService(repo, clock=lambda: now), repo

    def test_cancel(self):
        service, repo = self._service()
        service.cancel("booking-1", "student-1")
        repo.cancel.assert_called_once_with("booking-1", "student-1")

    def test_cancel_during_session(self):
        service, repo = self._service(now=DURING_SESSION)
        service.cancel("booking-1", "student-1")
        repo.cancel.assert_called_once()

    def test_cancel_after_session(self):
        """Test a finished session cannot be cancelled and the store is not touched"""
        service, repo = self._service(now=AFTER_SESSION)
        with pytest.raises(NotCancellable):
            service.cancel("booking-1", "student-1")
        repo.cancel.assert_not_called()

    def test_cancel_not_booked(self):
        service, repo = self._service(slot=make_student_slot(status=SlotStatus.COMPLETED))
        with pytest.raises(NotCancellable) as exc_info:
            service.cancel("booking-1", "student-1")
        assert "Completed" in exc_info.value.message
        repo.cancel.assert_not_called()

    def test_cancel_other_students_slot(self):
        service, repo = self._service()
        with pytest.raises(AccessDenied):
            service.cancel("booking-1", "student-2")
        repo.cancel.assert_not_called()

    def test_unknown_slot(self):
        service, repo = self._service()
        repo.get.side_effect = RecordNotFound("missing")
        with pytest.raises(NotCancellable):
            service.cancel("missing", "student-1")

    @pytest.mark.parametrize(
        "store_error,expected",
        [
            (RecordConflict("already cancelled"), NotCancellable),
            (RecordNotFound("gone"), NotCancellable),
            (RecordForbidden("no"), AccessDenied),
            (RepositoryUnavailable("down"), RepositoryUnavailable),
        ],
    )
    def test_store_errors_are_mapped(self, store_error, expected):
        service, repo = self._service()
        repo.cancel.side_effect = store_error
        with pytest.raises(expected):
            service.cancel("booking-1", "student-1")

    def test_malformed_backend_slot(self):
        """Test a slot with an unknown status index surfaces as RepositoryUnavailable"""
        client = Mock()
        client.get.return_value = {"id": "b1", "branchSlotId": "slot-1", "date": "2024-12-02", "status": 9}
        service = CancellationService(ApiBookingRepository(client), clock=lambda: BEFORE_SESSION)

        with pytest.raises(RepositoryUnavailable):
            service.cancel("b1", "student-1")
        client.delete.assert_not_called()

    def test_can_cancel_uses_clock(self):
        service, _ = self._service(now=AFTER_SESSION)
        assert service.can_cancel(make_student_slot()) is False


class TestBookCancelRoundTrip:
    """book() then cancel() against the SQLite store"""

    def test_round_trip(self, seeded_store):
        """Test booking then cancelling succeeds and a second cancel fails"""
        bookings = BookingRepository(seeded_store)
        orchestrator = BookingOrchestrator(
            SlotRepository(seeded_store),
            bookings,
            PackageValidator(SubscriptionRepository(seeded_store)),
        )
        service = CancellationService(bookings, clock=lambda: BEFORE_SESSION)

        slot = orchestrator.book("student-1", "slot-mon", MONDAY)
        service.cancel(slot.id, "student-1")

        assert bookings.get(slot.id).status == SlotStatus.CANCELLED
        with pytest.raises(NotCancellable):
            service.cancel(slot.id, "student-1")

    def test_cancel_frees_capacity(self, seeded_store):
        """Test a cancelled booking no longer counts against capacity"""
        subs = SubscriptionRepository(seeded_store)
        subs.add_subscription("student-2", "pkg-a")
        subs.add_subscription("student-3", "pkg-a")
        bookings = BookingRepository(seeded_store)
        orchestrator = BookingOrchestrator(
            SlotRepository(seeded_store), bookings, PackageValidator(subs)
        )

        first = orchestrator.book("student-1", "slot-mon", MONDAY)
        orchestrator.book("student-2", "slot-mon", MONDAY)
        CancellationService(bookings, clock=lambda: BEFORE_SESSION).cancel(first.id, "student-1")

        assert orchestrator.book("student-3", "slot-mon", MONDAY).status == SlotStatus.BOOKED
