"""
HTTP client shared by the Vault and GitHub providers.

Connection-level failures are retried with exponential backoff. HTTP status
errors are not retried and surface as ``httpx.HTTPStatusError``.
"""

import time
from typing import Any, Dict, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..exceptions import FailedToError
from ..logger import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT = 10.0
RETRY_ATTEMPTS = 3


def decode_json(response: httpx.Response, action: str) -> Dict[str, Any]:
    """JSON object body of ``response``; anything else fails ``action``."""
    try:
        data = response.json()
    except ValueError as e:
        raise FailedToError(action, e) from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise FailedToError(action, ValueError("response body is not a JSON object"))
    return data


def _retry_policy() -> Dict[str, Any]:
    return {
        "stop": stop_after_attempt(RETRY_ATTEMPTS),
        "wait": wait_exponential(multiplier=0.5, min=0.5, max=4),
        "retry": retry_if_exception_type(httpx.TransportError),
        "reraise": True,
    }


class HTTPClient:
    """Thin httpx wrapper with retries and request logging."""

    def __init__(
        self,
        base_url: str,
        headers: Optional[Dict[str, str]] = None,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.headers = dict(headers or {})
        self.timeout = timeout
        self.transport = transport

        self.client = httpx.Client(
            base_url=self.base_url,
            headers=self.headers,
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    def close(self) -> None:
        """Close the underlying connection pool."""
        self.client.close()
        logger.debug("HTTP client closed", base_url=self.base_url)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def set_header(self, name: str, value: str) -> None:
        self.headers[name] = value
        self.client.headers[name] = value

    def async_client(self) -> httpx.AsyncClient:
        """New async client sharing this client's settings."""
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=self.headers,
            timeout=httpx.Timeout(self.timeout),
            transport=self.transport,
        )

    def _completed(self, method: str, url: str, response: httpx.Response, start: float):
        logger.debug(
            "HTTP request completed",
            method=method,
            url=url,
            status_code=response.status_code,
            duration_ms=round((time.time() - start) * 1000, 2),
        )
        response.raise_for_status()
        return response

    def _failed(self, method: str, url: str, error: Exception, start: float) -> None:
        logger.error(
            "HTTP request failed",
            method=method,
            url=url,
            error=str(error),
            duration_ms=round((time.time() - start) * 1000, 2),
        )

    def request(self, method: str, url: str, json: Any = None) -> httpx.Response:
        start = time.time()
        try:
            for attempt in Retrying(**_retry_policy()):
                with attempt:
                    response = self.client.request(method, url, json=json)
            return self._completed(method, url, response, start)
        except httpx.HTTPError as e:
            self._failed(method, url, e, start)
            raise

    async def arequest(
        self, client: httpx.AsyncClient, method: str, url: str, json: Any = None
    ) -> httpx.Response:
        start = time.time()
        try:
            async for attempt in AsyncRetrying(**_retry_policy()):
                with attempt:
                    response = await client.request(method, url, json=json)
            return self._completed(method, url, response, start)
        except httpx.HTTPError as e:
            self._failed(method, url, e, start)
            raise

    def get(self, url: str) -> httpx.Response:
        return self.request("GET", url)

    def post(self, url: str, json: Any = None) -> httpx.Response:
        return self.request("POST", url, json=json)
