"""
Backend REST API client with reliability patterns.

Wraps the records console's backend (users, audit trail, patients) behind
a small synchronous client. Responses are returned as raw JSON bodies;
unwrapping encrypted payloads is the records service's job.
"""

from typing import Any, Dict, Optional

import httpx
import structlog
from httpx import HTTPStatusError, TimeoutException, TransportError

from recordlens.core.config import ApiConfig
from recordlens.core.exceptions import ApiError
from recordlens.utils.reliability import BackendBreaker, retry_policy

logger = structlog.get_logger(__name__)

BREAKER_NAME = "backend_api"


class BackendClient:
    """
    Authenticated JSON client for the records backend.
    """

    def __init__(self, config: ApiConfig, transport: Optional[httpx.BaseTransport] = None):
        self.config = config
        self.client = httpx.Client(
            base_url=config.base_url,
            timeout=httpx.Timeout(config.timeout),
            headers=self._get_headers(),
            follow_redirects=True,
            transport=transport,
        )
        self.breaker = BackendBreaker(
            BREAKER_NAME,
            failure_threshold=config.breaker_threshold,
            recovery_timeout=config.breaker_recovery,
        )
        self._retrying = retry_policy(
            config.retry_attempts,
            config.retry_backoff_max,
            retry_on=(TimeoutException, TransportError),
        )

        logger.info(
            "Backend client initialized",
            base_url=config.base_url,
            authenticated=bool(config.token),
        )

    def _get_headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.config.token:
            headers["Authorization"] = f"Bearer {self.config.token}"
        return headers

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> "BackendClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _send(self, method: str, path: str, params: Optional[Dict[str, Any]]) -> httpx.Response:
        response = self.client.request(method, path, params=params)
        response.raise_for_status()
        return response

    def get(self, path: str, params: Optional[Dict[str, Any]] = None, count_failure: bool = True) -> Any:
        """
        GET a JSON resource.

        Args:
            path: API path (without base URL)
            params: Query parameters; ``None`` values are dropped
            count_failure: Whether an ``ApiError`` counts toward opening the
                breaker. Best-effort requests whose failures the caller
                swallows pass ``False``.

        Returns:
            Decoded JSON body

        Raises:
            CircuitBreakerError: While the breaker is open
            ApiError: On HTTP, timeout, transport or JSON errors
        """
        self.breaker.check()
        clean_params = {k: v for k, v in (params or {}).items() if v is not None}
        logger.debug("Backend request", method="GET", path=path, params=sorted(clean_params))

        try:
            body = self._get_json(path, clean_params)
        except ApiError:
            if count_failure:
                self.breaker.record_failure()
            raise
        self.breaker.record_success()
        return body

    def _get_json(self, path: str, params: Dict[str, Any]) -> Any:
        try:
            response = self._retrying(self._send, "GET", path, params)
            return response.json()

        except HTTPStatusError as e:
            logger.error(
                "Backend HTTP error",
                status_code=e.response.status_code,
                response_text=e.response.text[:500],
                path=path,
            )
            raise ApiError(
                f"Backend HTTP error: {e.response.status_code}",
                status_code=e.response.status_code,
                path=path,
            ) from e

        except TimeoutException as e:
            logger.error("Backend timeout", path=path, error=str(e))
            raise ApiError(f"Backend timeout: {e}", path=path) from e

        except TransportError as e:
            logger.error("Backend transport error", path=path, error=str(e))
            raise ApiError(f"Backend unreachable: {e}", path=path) from e

        except ValueError as e:
            logger.error("Backend returned invalid JSON", path=path)
            raise ApiError("Backend returned invalid JSON", path=path) from e

    def health_check(self) -> Dict[str, Any]:
        """
        Perform health check on the backend.

        Returns:
            Health status information
        """
        try:
            body = self.get(self.config.health_path)
            details = body if isinstance(body, dict) else {}
            return {"status": "healthy", **{k: details[k] for k in ("version", "name") if k in details}}
        except Exception as e:
            return {"status": "unhealthy", "error": str(e), "error_type": type(e).__name__}


def create_backend_client(
    config: ApiConfig, transport: Optional[httpx.BaseTransport] = None
) -> BackendClient:
    """
    Factory function to create the backend client.

    Args:
        config: API configuration
        transport: Optional httpx transport (tests use ``httpx.MockTransport``)

    Returns:
        Configured backend client
    """
    return BackendClient(config, transport)
