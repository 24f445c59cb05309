"""HTTP transport to the DocuRight backend.

Thin wrapper over ``httpx.AsyncClient``: maps transport exceptions onto the
NetworkError taxonomy and extracts user-presentable messages from error
bodies. Status handling (401 retry, refresh) belongs to the callers.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from docuright.errors import RequestTimeout, ServerError, TransportFailure

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "The server could not complete the request"


def extract_error_message(response: httpx.Response, fallback: str = GENERIC_ERROR_MESSAGE) -> str:
    """Pull ``error`` or ``message`` out of a JSON error body, else fallback."""
    try:
        body = response.json()
    except ValueError:
        return fallback
    if isinstance(body, dict):
        for key in ("error", "message", "detail"):
            value = body.get(key)
            if isinstance(value, str) and value.strip():
                return value
    return fallback


def ensure_success(response: httpx.Response, fallback: str = GENERIC_ERROR_MESSAGE) -> httpx.Response:
    """Raise ServerError carrying the extracted message unless response is 2xx."""
    if response.is_success:
        return response
    raise ServerError(extract_error_message(response, fallback), status_code=response.status_code)


class ApiTransport:
    """Async JSON/binary transport bound to one backend base URL."""

    def __init__(
        self,
        base_url: str = "http://localhost:8080/api",
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self._owns_client = client is None

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        token: str | None = None,
    ) -> httpx.Response:
        """Issue a request. Raises NetworkError subclasses on transport failure only."""
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        try:
            response = await self._client.request(method, path, json=json, headers=headers)
        except httpx.TimeoutException as e:
            logger.warning("%s %s timed out", method, path)
            raise RequestTimeout(f"Request to {path} timed out") from e
        except httpx.RequestError as e:
            # Connection, protocol, decoding and redirect failures alike
            logger.warning("%s %s failed (%s)", method, path, type(e).__name__)
            raise TransportFailure(f"Could not reach the server ({type(e).__name__})") from e
        logger.debug("%s %s -> %d", method, path, response.status_code)
        return response

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
