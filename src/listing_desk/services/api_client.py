"""Shared async HTTP client for the listing backend's PHP endpoints.

Every response is normalized into either a parsed JSON payload or a
``TransportError`` carrying a message that can be shown to the user as-is.
The backend wraps payloads as ``{"success": bool, "message": str, "data": ...}``.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from listing_desk.app.config import Settings, get_settings
from listing_desk.domain.errors import TransportError

logger = logging.getLogger(__name__)

EMPTY_RESPONSE_MESSAGE = "Empty response from server. The API may have encountered an error."
INVALID_RESPONSE_MESSAGE = "Invalid response from server"
NETWORK_ERROR_MESSAGE = (
    "Network error. Please check your connection and ensure the backend server is running."
)
GENERIC_FAILURE_MESSAGE = "Request failed"

STATUS_MESSAGES: dict[int, str] = {
    401: "Authentication required. Please log in to continue.",
    403: "Access denied. You do not have permission to perform this action.",
}


class ApiClient:
    """Thin wrapper over ``httpx.AsyncClient`` with the backend's error conventions."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._token = token if token is not None else self.settings.api_token
        self._transport = transport

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: dict | None = None,
        json_body: Any = None,
    ) -> Any:
        """Send a JSON request and return the parsed body, or raise ``TransportError``."""
        response = await self._send(method, path, params=params, json=json_body)
        return self._parse(response)

    async def post_multipart(
        self,
        path: str,
        *,
        files: dict[str, tuple[str, bytes, str]],
        data: dict[str, str] | None = None,
    ) -> httpx.Response:
        """POST a multipart form. The raw response is returned for caller-side parsing."""
        return await self._send("POST", path, files=files, data=data)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        url = self.settings.endpoint(path)
        try:
            async with httpx.AsyncClient(
                timeout=self.settings.request_timeout_seconds,
                transport=self._transport,
            ) as client:
                return await client.request(method, url, headers=self._headers(), **kwargs)
        except httpx.RequestError as exc:
            logger.warning("%s %s failed: %s", method, url, exc)
            raise TransportError(0, NETWORK_ERROR_MESSAGE) from exc

    def _parse(self, response: httpx.Response) -> Any:
        status = response.status_code or 500
        text = response.text

        if not text or not text.strip():
            logger.error("Empty response from %s", response.request.url)
            raise TransportError(status, EMPTY_RESPONSE_MESSAGE)

        content_type = response.headers.get("content-type", "")
        if "application/json" not in content_type:
            logger.error("Non-JSON response from %s: %s", response.request.url, text[:500])
            raise TransportError(status, text[:200] or INVALID_RESPONSE_MESSAGE)

        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            logger.error("JSON parse error from %s: %s", response.request.url, exc)
            raise TransportError(
                status, "Invalid JSON response from server. Response: " + text[:200]
            ) from exc

        if response.is_success:
            return data

        body = data if isinstance(data, dict) else {}
        message = body.get("message") or GENERIC_FAILURE_MESSAGE
        if message == GENERIC_FAILURE_MESSAGE:
            message = STATUS_MESSAGES.get(status, message)
        raise TransportError(status, message, errors=body.get("errors"), payload=body or None)


def unwrap(payload: Any, key: str | None = None) -> Any:
    """Pull ``data`` (or ``data[key]``) out of the backend envelope."""
    if not isinstance(payload, dict):
        return payload
    data = payload.get("data", payload)
    if key is not None and isinstance(data, dict) and key in data:
        return data[key]
    return data
