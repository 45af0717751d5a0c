"""
Tests for the HTTP client and the API-backed repositories
"""

from datetime import date
from unittest.mock import Mock, patch

import pytest
import requests

from slot_engine.api_client import ApiClient, get_api_client
from slot_engine.exceptions import (
    RecordConflict,
    RecordForbidden,
    RecordNotFound,
    RepositoryUnavailable,
)
from slot_engine.models import DateRange, SlotStatus
from slot_engine.remote_repositories import (
    ApiBookingRepository,
    ApiSlotRepository,
    ApiSubscriptionRepository,
)


def _response(status_code=200, payload=None, text=""):
    response = Mock()
    response.status_code = status_code
    response.ok = status_code < 400
    response.content = b"x" if payload is not None else b""
    response.text = text
    if payload is None:
        response.json.side_effect = ValueError("no json")
    else:
        response.json.return_value = payload
    return response


@pytest.fixture
def client():
    return ApiClient("https://api.test/api/", token="secret", timeout=5)


class TestApiClient:
    """Tests for ApiClient request handling"""

    def test_get_sends_auth_and_params(self, client):
        with patch.object(client.session, "request", return_value=_response(payload={"ok": True})) as mock_request:
            assert client.get("BranchSlot/1", {"a": 1}) == {"ok": True}

        args, kwargs = mock_request.call_args
        assert args == ("GET", "https://api.test/api/BranchSlot/1")
        assert kwargs["headers"]["Authorization"] == "Bearer secret"
        assert kwargs["params"] == {"a": 1}
        assert kwargs["timeout"] == 5
        assert kwargs["json"] is None

    def test_post_sends_json(self, client):
        with patch.object(client.session, "request", return_value=_response(payload={"id": "x"})) as mock_request:
            client.post("StudentSlot/book", {"studentId": "s"})
        kwargs = mock_request.call_args.kwargs
        assert kwargs["json"] == {"studentId": "s"}
        assert kwargs["headers"]["Content-Type"] == "application/json"

    def test_empty_body(self, client):
        with patch.object(client.session, "request", return_value=_response(204)):
            assert client.delete("StudentSlot/cancel") is None

    @pytest.mark.parametrize(
        "status_code,error",
        [
            (404, RecordNotFound),
            (409, RecordConflict),
            (422, RecordConflict),
            (401, RecordForbidden),
            (403, RecordForbidden),
            (500, RepositoryUnavailable),
            (503, RepositoryUnavailable),
            (400, RepositoryUnavailable),
        ],
    )
    def test_status_mapping(self, client, status_code, error):
        response = _response(status_code, payload={"message": "backend says no"})
        with patch.object(client.session, "request", return_value=response):
            with pytest.raises(error) as exc_info:
                client.get("StudentSlot/1")
        assert exc_info.value.message == "backend says no"
        assert exc_info.value.details["status_code"] == status_code

    def test_transport_error(self, client):
        with patch.object(client.session, "request", side_effect=requests.exceptions.Timeout("slow")):
            with pytest.raises(RepositoryUnavailable):
                client.get("BranchSlot/1")

    def test_invalid_json(self, client):
        response = _response(200)
        response.content = b"<html>"
        with patch.object(client.session, "request", return_value=response):
            with pytest.raises(RepositoryUnavailable):
                client.get("BranchSlot/1")

    def test_get_api_client_requires_base_url(self, monkeypatch):
        monkeypatch.delenv("SLOT_ENGINE_API_BASE_URL", raising=False)
        with patch("slot_engine.api_client._client", None), patch(
            "slot_engine.api_client.get_config"
        ) as mock_config:
            mock_config.return_value.api_base_url = None
            with pytest.raises(ValueError):
                get_api_client()


class TestApiSlotRepository:
    """Tests for ApiSlotRepository"""

    def test_query_date(self):
        client = Mock()
        client.get.return_value = {
            "items": [{"id": "s1", "startTime": "09:00", "endTime": "10:00", "capacity": 3, "weekDate": 1}],
            "totalCount": 1,
            "totalPages": 1,
        }
        page = ApiSlotRepository(client).query("student-1", date(2024, 12, 2), 1, 50)

        client.get.assert_called_once_with(
            "BranchSlot/available-for-student/student-1",
            {"pageIndex": 1, "pageSize": 50, "date": "2024-12-02"},
        )
        assert page.items[0].weekday_pattern == 1
        assert page.total_pages == 1

    def test_query_range(self):
        client = Mock()
        client.get.return_value = []
        ApiSlotRepository(client).query("student-1", DateRange(date(2024, 12, 1), date(2024, 12, 31)))
        params = client.get.call_args.args[1]
        assert params["startDate"] == "2024-12-01"
        assert params["endDate"] == "2024-12-31"

    def test_get_malformed(self):
        client = Mock()
        client.get.return_value = {"name": "no id"}
        with pytest.raises(RepositoryUnavailable):
            ApiSlotRepository(client).get("s1")


class TestApiSubscriptionRepository:
    def test_list_by_student(self):
        client = Mock()
        client.get.return_value = [
            {"id": "sub-2", "packageId": "pkg-b", "status": "Expired"},
            {"id": "sub-1", "packageId": "pkg-a", "status": "Active"},
        ]
        subscriptions = ApiSubscriptionRepository(client).list_by_student("student-1")

        client.get.assert_called_once_with("PackageSubscription/student/student-1")
        assert [s.id for s in subscriptions] == ["sub-2", "sub-1"]


class TestApiBookingRepository:
    """Tests for ApiBookingRepository"""

    def test_create(self):
        client = Mock()
        client.post.return_value = {
            "id": "b1",
            "studentId": "student-1",
            "branchSlotId": "slot-1",
            "date": "2024-12-02T12:00:00.000+07:00",
            "status": "Booked",
        }
        slot = ApiBookingRepository(client).create("student-1", "slot-1", "sub-1", None, date(2024, 12, 2), None)

        endpoint, data = client.post.call_args.args
        assert endpoint == "StudentSlot/book"
        assert data["date"] == "2024-12-02T12:00:00.000+07:00"
        assert data["roomId"] is None
        assert data["parentNote"] == ""
        assert slot.date == date(2024, 12, 2)
        assert slot.status == SlotStatus.BOOKED

    def test_create_empty_response(self):
        client = Mock()
        client.post.return_value = None
        with pytest.raises(RepositoryUnavailable):
            ApiBookingRepository(client).create("student-1", "slot-1", "sub-1", "r1", date(2024, 12, 2))

    def test_create_conflict_propagates(self):
        client = Mock()
        client.post.side_effect = RecordConflict("full")
        with pytest.raises(RecordConflict):
            ApiBookingRepository(client).create("student-1", "slot-1", "sub-1", "r1", date(2024, 12, 2))

    def test_create_unknown_status_index(self):
        client = Mock()
        client.post.return_value = {
            "id": "b1",
            "branchSlotId": "slot-1",
            "date": "2024-12-02",
            "status": 9,
        }
        with pytest.raises(RepositoryUnavailable):
            ApiBookingRepository(client).create("student-1", "slot-1", "sub-1", "r1", date(2024, 12, 2))

    def test_get_unknown_status_index(self):
        """Test an out-of-range status index is reported as a backend fault"""
        client = Mock()
        client.get.return_value = {"id": "b1", "branchSlotId": "slot-1", "date": "2024-12-02", "status": 9}
        with pytest.raises(RepositoryUnavailable):
            ApiBookingRepository(client).get("b1")

    def test_cancel(self):
        client = Mock()
        ApiBookingRepository(client).cancel("b1", "student-1")
        client.delete.assert_called_once_with("StudentSlot/cancel", {"slotId": "b1", "studentId": "student-1"})

    def test_list_by_student(self):
        client = Mock()
        client.get.return_value = {"items": [], "totalCount": 0, "totalPages": 0}
        page = ApiBookingRepository(client).list_by_student("student-1", 2, 10)
        client.get.assert_called_once_with(
            "StudentSlot/paged", {"studentId": "student-1", "pageIndex": 2, "pageSize": 10}
        )
        assert page.items == []
