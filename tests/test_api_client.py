"""Tests for the backend API client using a mocked transport."""

from unittest.mock import patch

import httpx
import pytest

from recordlens.core.config import ApiConfig
from recordlens.core.exceptions import ApiError, CircuitBreakerError
from recordlens.data.api_client import create_backend_client
from recordlens.utils.reliability import BreakerState


def _client(handler, **config):
    return create_backend_client(ApiConfig(**config), transport=httpx.MockTransport(handler))


class TestBackendClient:
    def setup_method(self):
        self.requests = []

    def _record(self, response):
        def handler(request):
            self.requests.append(request)
            return response

        return handler

    def test_get_returns_json_body(self):
        client = _client(self._record(httpx.Response(200, json={"data": [1, 2]})))
        assert client.get("/api/users") == {"data": [1, 2]}

        request = self.requests[0]
        assert str(request.url) == "http://backend.test/api/users"
        assert request.headers["Authorization"] == "Bearer test-token"
        assert request.headers["Accept"] == "application/json"

    def test_none_params_are_dropped(self):
        client = _client(self._record(httpx.Response(200, json={})))
        client.get("/api/audit", params={"page": 2, "search": None})

        params = self.requests[0].url.params
        assert params["page"] == "2"
        assert "search" not in params

    def test_no_token_means_no_authorization_header(self, monkeypatch):
        monkeypatch.delenv("API_TOKEN")
        client = _client(self._record(httpx.Response(200, json={})))
        client.get("/api/health")
        assert "Authorization" not in self.requests[0].headers

    def test_http_error_becomes_api_error(self):
        client = _client(self._record(httpx.Response(500, text="boom")))
        with pytest.raises(ApiError) as exc:
            client.get("/api/users")

        assert exc.value.status_code == 500
        assert exc.value.details == {"status_code": 500, "path": "/api/users"}
        # Status errors are not retried
        assert len(self.requests) == 1

    def test_invalid_json_becomes_api_error(self):
        client = _client(self._record(httpx.Response(200, text="<html>")))
        with pytest.raises(ApiError, match="invalid JSON"):
            client.get("/api/users")

    @patch("time.sleep")
    def test_transport_errors_are_retried(self, mock_sleep):
        def handler(request):
            self.requests.append(request)
            raise httpx.ConnectError("connection refused", request=request)

        client = _client(handler)
        with pytest.raises(ApiError, match="Backend unreachable"):
            client.get("/api/users")
        assert len(self.requests) == 3

    def test_circuit_breaker_opens_after_repeated_failures(self):
        client = _client(self._record(httpx.Response(502)))
        for _ in range(5):
            with pytest.raises(ApiError):
                client.get("/api/users")

        with pytest.raises(CircuitBreakerError):
            client.get("/api/users")
        assert len(self.requests) == 5

    @patch("time.sleep")
    def test_retry_attempts_come_from_config(self, mock_sleep):
        def handler(request):
            self.requests.append(request)
            raise httpx.ReadTimeout("slow", request=request)

        client = _client(handler, retry_attempts=2, retry_backoff_max=0.5)
        with pytest.raises(ApiError, match="Backend timeout"):
            client.get("/api/users")
        assert len(self.requests) == 2
        assert all(call.args[0] <= 0.5 for call in mock_sleep.call_args_list)

    def test_uncounted_failures_leave_breaker_closed(self):
        client = _client(self._record(httpx.Response(502)), breaker_threshold=1)
        for _ in range(3):
            with pytest.raises(ApiError):
                client.get("/api/audit", params={"limit": 1}, count_failure=False)
        assert client.breaker.state is BreakerState.CLOSED

        with pytest.raises(ApiError):
            client.get("/api/audit")
        with pytest.raises(CircuitBreakerError):
            client.get("/api/audit", count_failure=False)
        assert len(self.requests) == 4

    def test_each_client_has_its_own_breaker(self):
        failing = _client(self._record(httpx.Response(502)), breaker_threshold=1)
        with pytest.raises(ApiError):
            failing.get("/api/users")
        assert failing.breaker.state is BreakerState.OPEN

        healthy = _client(self._record(httpx.Response(200, json={"data": []})))
        assert healthy.get("/api/users") == {"data": []}

    def test_health_check_healthy(self):
        client = _client(self._record(httpx.Response(200, json={"version": "1.4.0", "uptime": 9})))
        assert client.health_check() == {"status": "healthy", "version": "1.4.0"}
        assert self.requests[0].url.path == "/api/health"

    def test_health_check_never_raises(self):
        client = _client(self._record(httpx.Response(503)))
        health = client.health_check()
        assert health["status"] == "unhealthy"
        assert health["error_type"] == "ApiError"

    def test_context_manager_closes_client(self):
        with _client(self._record(httpx.Response(200, json={}))) as client:
            client.get("/api/users")
        assert client.client.is_closed
