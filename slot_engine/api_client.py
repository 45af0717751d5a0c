"""
Slot store API client - unified HTTP client for the childcare backend.
Centralizes headers, authentication, and the HTTP status to repository error mapping.
"""

import logging
import requests
from typing import Dict, Any, Optional

from slot_engine.config import get_config
from slot_engine.exceptions import (
    RecordConflict,
    RecordForbidden,
    RecordNotFound,
    RepositoryUnavailable,
)

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "Accept": "application/json",
    "User-Agent": "slot-engine/1.0",
}


class ApiClient:
    """HTTP client for the slot, subscription and booking endpoints"""

    def __init__(self, base_url: str, token: Optional[str] = None, timeout: int = 30):
        """
        Initialize API client.

        Args:
            base_url: API root, e.g. https://api.example.com/api
            token: Optional bearer token
            timeout: Request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.session = requests.Session()

    def _get_headers(self, content_type: Optional[str] = None) -> Dict[str, str]:
        headers = DEFAULT_HEADERS.copy()
        if content_type:
            headers["Content-Type"] = content_type
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _error_message(self, response: requests.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return response.text[:200]
        if isinstance(data, dict):
            return str(data.get("message") or data.get("title") or data)
        return str(data)

    def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """
        Send a request and decode the JSON body.

        Raises:
            RecordNotFound: HTTP 404
            RecordConflict: HTTP 409 or 422
            RecordForbidden: HTTP 401 or 403
            RepositoryUnavailable: 5xx, other statuses, timeouts and connection errors
        """
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        headers = self._get_headers(content_type="application/json" if data is not None else None)

        try:
            logger.debug(f"{method} {endpoint} with params={params}")
            response = self.session.request(
                method, url, headers=headers, params=params, json=data, timeout=self.timeout
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"Transport error for {method} {endpoint}: {e}")
            raise RepositoryUnavailable(
                f"{method} {endpoint} failed: {e}", details={"endpoint": endpoint}
            ) from e

        if response.ok:
            if not response.content:
                return None
            try:
                return response.json()
            except ValueError as e:
                raise RepositoryUnavailable(
                    f"{method} {endpoint} returned invalid JSON",
                    details={"endpoint": endpoint},
                ) from e

        message = self._error_message(response)
        details = {"endpoint": endpoint, "status_code": response.status_code}
        logger.warning(f"HTTP {response.status_code} error for {method} {endpoint}: {message}")

        if response.status_code == 404:
            raise RecordNotFound(message, details=details)
        if response.status_code in (409, 422):
            raise RecordConflict(message, details=details)
        if response.status_code in (401, 403):
            raise RecordForbidden(message, details=details)
        raise RepositoryUnavailable(message, details=details)

    def get(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return self._request("GET", endpoint, params=params)

    def post(self, endpoint: str, data: Dict[str, Any]) -> Any:
        return self._request("POST", endpoint, data=data)

    def delete(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return self._request("DELETE", endpoint, params=params)


# Singleton instance for convenience
_client: Optional[ApiClient] = None


def get_api_client() -> ApiClient:
    """Get singleton API client instance built from configuration"""
    global _client
    if _client is None:
        config = get_config()
        if not config.api_base_url:
            raise ValueError("SLOT_ENGINE_API_BASE_URL must be set to use the remote store")
        _client = ApiClient(config.api_base_url, config.api_token, config.api_timeout)
    return _client
