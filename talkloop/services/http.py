"""HTTP plumbing shared by every provider adapter.

Maps vendor responses onto the service error taxonomy:

- 408, 429 and 5xx become ``TransientServiceError`` (retried)
- any other 4xx becomes ``VendorRejectionError`` with the vendor's message
- bodies that are not the expected JSON become ``ResponseParseError``
"""

from __future__ import annotations

import json
from typing import Any

import httpx

from talkloop.logging_config import get_logger, sanitize_for_log
from talkloop.services.exceptions import (
    RateLimitError,
    ResponseParseError,
    TransientServiceError,
    VendorRejectionError,
)

logger: Any = get_logger(__name__)

RAW_SNIPPET_LIMIT = 200
TRANSIENT_STATUS_CODES = frozenset({408, 429})


def body_snippet(response: httpx.Response, limit: int = RAW_SNIPPET_LIMIT) -> str:
    """First characters of a response body, for error messages."""
    try:
        text = response.text
    except Exception:
        return f"<{len(response.content)} bytes>"
    return text if len(text) <= limit else f"{text[:limit]}..."


def extract_error_message(response: httpx.Response) -> str:
    """Vendor error message from a JSON body, else the HTTP reason phrase.

    Understands ``{"error": {"message": ...}}``, ``{"error": "..."}``,
    ``{"detail": ...}`` and ``{"message": ...}``.
    """
    try:
        payload = response.json()
    except (json.JSONDecodeError, UnicodeDecodeError, ValueError):
        payload = None

    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str) and error:
            return error
        detail = payload.get("detail")
        if isinstance(detail, dict) and detail.get("message"):
            return str(detail["message"])
        if detail:
            return str(detail)
        if payload.get("message"):
            return str(payload["message"])

    return response.reason_phrase or f"HTTP {response.status_code}"


def _retry_after(response: httpx.Response) -> float:
    try:
        return float(response.headers.get("retry-after", 60))
    except ValueError:
        return 60.0


def raise_for_vendor_status(response: httpx.Response, *, stage: str) -> None:
    """Raise the matching service error for a non-2xx response."""
    status = response.status_code
    if status < 400:
        return

    message = extract_error_message(response)
    if status == 429:
        raise RateLimitError(
            f"Rate limited: {message}", stage=stage, retry_after=_retry_after(response)
        )
    if status in TRANSIENT_STATUS_CODES or status >= 500:
        raise TransientServiceError(message, stage=stage, status_code=status)
    raise VendorRejectionError(message, stage=stage, status_code=status)


def parse_json(response: httpx.Response, *, stage: str) -> Any:
    """Decode a JSON body or raise ``ResponseParseError`` with a snippet."""
    try:
        return response.json()
    except (json.JSONDecodeError, UnicodeDecodeError, ValueError) as e:
        snippet = body_snippet(response)
        raise ResponseParseError(
            f"Response is not valid JSON: {snippet}", stage=stage, raw=snippet
        ) from e


class HTTPProvider:
    """Owns (or borrows) the ``httpx.AsyncClient`` used by one adapter.

    Pass ``client`` to share a connection pool or to inject a mock
    transport in tests; a borrowed client is never closed here.
    """

    stage: str = ""
    provider: str = ""

    def __init__(self, *, client: httpx.AsyncClient | None = None) -> None:
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            # Per-attempt timeouts come from the request executor
            self._client = httpx.AsyncClient(timeout=None)
            self._owns_client = True
        return self._client

    async def open(self) -> None:
        _ = self.client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self):
        await self.open()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def _send(
        self,
        method: str,
        url: str,
        *,
        json_body: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """One HTTP round trip, classified into the service error taxonomy."""
        if json_body is not None:
            logger.debug(f"{self.provider} request: {sanitize_for_log(json_body)}")
        try:
            response = await self.client.request(method, url, json=json_body, **kwargs)
        except httpx.TimeoutException as e:
            raise TransientServiceError(
                f"{self.provider} request timed out", stage=self.stage
            ) from e
        except httpx.TransportError as e:
            raise TransientServiceError(
                f"{self.provider} connection failed: {e}", stage=self.stage
            ) from e

        raise_for_vendor_status(response, stage=self.stage)
        return response
