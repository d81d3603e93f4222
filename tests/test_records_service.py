"""Tests for the records service fetch flow against a mocked backend."""

import httpx
import pytest

from recordlens.core.config import ApiConfig, DisplayConfig
from recordlens.core.exceptions import ApiError
from recordlens.crypto.envelope import EnvelopeDecoder, seal
from recordlens.data.api_client import create_backend_client
from recordlens.services.records_service import RecordsService
from tests.conftest import TEST_SECRET

LOGIN_ISO = "2025-10-25T14:07:45.867Z"


def _enc(value):
    return seal(value, TEST_SECRET)


class TestRecordsService:
    """Fetch, decode and total resolution."""

    def setup_method(self):
        self.requests = []
        self.routes = {}

    def _handler(self, request):
        self.requests.append(request)
        route = self.routes[request.url.path]
        body = route(request) if callable(route) else route
        if isinstance(body, httpx.Response):
            return body
        return httpx.Response(200, json=body)

    def _service(self, display=None):
        client = create_backend_client(ApiConfig(), transport=httpx.MockTransport(self._handler))
        return RecordsService(client, EnvelopeDecoder(TEST_SECRET), display or DisplayConfig(timezone="UTC"))

    def test_fetch_users_from_encrypted_body(self):
        users = [
            {
                "id": 1,
                "username": "ana",
                "first_name": _enc("Ana"),
                "last_name": _enc("Reyes"),
                "email": _enc("ana@example.org"),
                "roles": ["admin", None, ""],
            },
            {"id": 2, "username": "bhw2", "first_name": None, "last_name": None, "roles": None},
        ]
        self.routes["/api/users"] = {"encrypted_data": _enc({"users": users, "total": 12})}

        result = self._service().fetch_users(page=1, limit=2)

        assert result.error is None
        assert result.total == 12
        assert [u["display_name"] for u in result.rows] == ["Ana Reyes", "bhw2"]
        assert result.rows[0]["email"] == "ana@example.org"
        assert result.rows[0]["roles"] == ["admin"]
        assert result.rows[1]["roles"] == []
        assert self.requests[0].url.params["page"] == "1"
        assert self.requests[0].url.params["limit"] == "2"

    def test_undecodable_body_reports_error(self):
        self.routes["/api/users"] = {"encrypted_data": "deadbeef:cafebabe"}

        result = self._service().fetch_users()

        assert result.rows == []
        assert result.total == 0
        assert result.error == "Failed to decrypt users data"

    def test_fetch_audit_logs_prepares_rows(self):
        row = {
            "id": 7,
            "action_type": "UPDATE",
            "table_name": "patients",
            "username": "nurse1",
            "first_name": _enc("Lea"),
            "last_name": None,
            "old_data": _enc({"status": "Active", "city": "Manila"}),
            "new_data": _enc({"status": "Inactive", "city": "Manila"}),
        }
        login = {
            "id": 8,
            "action_type": "LOGIN",
            "table_name": "users",
            "username": "nurse1",
            "new_data": _enc({"login_time": LOGIN_ISO}),
            "old_data": None,
        }
        self.routes["/api/audit"] = {"logs": [row, login], "total": 120}

        result = self._service().fetch_audit_logs(page=3, limit=2)

        update, session = result.rows
        assert update["summary"] == "Updated status"
        assert update["author"] == "Lea"
        assert update["new_raw"] == {"status": "Inactive", "city": "Manila"}
        assert update["new_data"] == "Status Inactive, City Manila"
        assert update["old_data"] == "Status Active, City Manila"

        assert session["summary"] == "Login Time 2025-10-25 14:07:45"
        assert session["author"] == "nurse1"
        assert session["new_data"] == "Login Time 2025-10-25 14:07:45"
        assert session["old_data"] == ""

        assert result.total == 120
        assert len(self.requests) == 1

    def test_audit_filters_and_probe(self):
        row = {"action_type": "DELETE", "table_name": "patients", "old_data": _enc({"id": 4})}

        def audit(request):
            if request.url.params["limit"] == "1":
                return {"logs": [row], "total": 42}
            return {"logs": [row] * 10}

        self.routes["/api/audit"] = audit

        result = self._service().fetch_audit_logs(
            page=2, limit=10, search="reyes", action="DELETE", table=None
        )

        assert result.total == 42
        assert result.rows[0]["summary"] == "Deleted patients: 4"

        page_request, probe_request = self.requests
        assert page_request.url.params["page"] == "2"
        assert page_request.url.params["action_type"] == "DELETE"
        assert "table_name" not in page_request.url.params
        assert probe_request.url.params["page"] == "1"
        assert probe_request.url.params["limit"] == "1"
        assert probe_request.url.params["search"] == "reyes"
        assert probe_request.url.params["action_type"] == "DELETE"

    def test_failing_probe_keeps_page_total(self):
        def audit(request):
            if request.url.params["limit"] == "1":
                return httpx.Response(500)
            return {"logs": [{"action_type": "LOGOUT"}] * 10, "total": 10}

        self.routes["/api/audit"] = audit

        result = self._service().fetch_audit_logs(limit=10)

        assert result.total == 10
        assert result.rows[0]["summary"] == "User logged out"

    def test_failing_total_requests_do_not_open_breaker(self):
        def audit(request):
            if request.url.params["limit"] == "1":
                return httpx.Response(500)
            return {"logs": [{"action_type": "LOGOUT"}] * 10, "total": 10}

        self.routes["/api/audit"] = audit
        service = self._service()

        for _ in range(service.client.config.breaker_threshold + 1):
            assert service.fetch_audit_logs(limit=10).total == 10

        assert service.client.breaker.status()["failures"] == 0
        assert service.client.breaker.status()["state"] == "closed"

    def test_fetch_patients_decodes_configured_fields(self):
        patients = [
            {"id": 1, "first_name": _enc("Jose"), "last_name": _enc("Rizal"), "city": "Calamba"},
        ]
        self.routes["/api/patients"] = {"encrypted_data": _enc({"patients": patients, "total": 1})}

        result = self._service().fetch_patients()

        assert result.rows == [{"id": 1, "first_name": "Jose", "last_name": "Rizal", "city": "Calamba"}]
        assert result.meta.total == 1

    def test_primary_request_failure_raises(self):
        self.routes["/api/patients"] = httpx.Response(500)
        with pytest.raises(ApiError):
            self._service().fetch_patients()


class TestPayloadHandling:
    def setup_method(self):
        client = create_backend_client(
            ApiConfig(), transport=httpx.MockTransport(lambda r: httpx.Response(200, json={}))
        )
        self.service = RecordsService(client, EnvelopeDecoder(TEST_SECRET))

    def test_encrypted_body_decodes_whole(self):
        body = {"encrypted_data": _enc({"data": [{"id": 2}], "total": 5})}
        assert self.service.decode_body(body, "logs") == ({"data": [{"id": 2}], "total": 5}, None)

    def test_undecodable_body(self):
        body = {"encrypted_data": "deadbeef:cafebabe"}
        assert self.service.decode_body(body, "logs") == ([], "Failed to decrypt logs data")

    def test_plain_bodies(self):
        assert self.service.decode_body({"data": [1]}, "users") == ([1], None)
        assert self.service.decode_body([{"id": 1}], "users") == ([{"id": 1}], None)

    def test_rows_from_list_key_then_data(self):
        assert RecordsService.rows_for([{"id": 1}, "x", None], "logs") == [{"id": 1}]
        assert RecordsService.rows_for({"logs": [{"id": 3}], "data": [{"id": 4}]}, "logs") == [{"id": 3}]
        assert RecordsService.rows_for({"data": [{"id": 2}], "total": 5}, "logs") == [{"id": 2}]

    def test_map_without_rows_has_none(self):
        assert RecordsService.rows_for({"total": 5}, "logs") == []
