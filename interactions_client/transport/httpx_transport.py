"""
httpx_transport.py - HTTP transport for the interactions API.

- POST {base}/{version}/interactions?alt=sse, streamed as raw bytes
- GET {base}/{version}/interactions/{id}
- Separate connect/read timeouts
- Non-2xx responses raise ApiReportedError with a truncated body
- Connection failures raise TransportError; nothing is retried here
- Security: the API key never appears in logs
"""

import json
import logging
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from interactions_client.core.errors import ApiReportedError, ConfigurationError, MalformedResponseError, TransportError
from interactions_client.core.interfaces import Transport
from interactions_client.protocol.diagnostics import NullWireTap, WireTap

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com"
ERROR_BODY_LIMIT = 200
REQUEST_ID_HEADER = "x-goog-request-id"


def _error_from_response(status_code: int, body: str, request_id: Optional[str]) -> ApiReportedError:
    message = body[:ERROR_BODY_LIMIT]
    code = None
    try:
        payload = json.loads(body)
    except ValueError:
        payload = None
    if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
        err = payload["error"]
        if isinstance(err.get("message"), str):
            message = err["message"][:ERROR_BODY_LIMIT]
        if err.get("status") is not None:
            code = str(err["status"])
    return ApiReportedError(message, status_code=status_code, code=code, request_id=request_id)


class HttpxTransport(Transport):
    def __init__(
        self,
        base_url: Optional[str] = None,
        version: str = "v1beta",
        api_key: Optional[str] = None,
        api_key_header: str = "X-Goog-Api-Key",
        connect_timeout: float = 5.0,
        read_timeout: float = 120.0,
        wire_tap: Optional[WireTap] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            base_url: API root, without the version segment.
            version: API version path segment.
            api_key: Sent in ``api_key_header`` on every request.
            connect_timeout: Socket connect timeout in seconds.
            read_timeout: Socket read timeout in seconds (per chunk when streaming).
            wire_tap: Receives request and response-status diagnostics.
            client: Pre-built httpx client; the transport then does not own it.
        """
        if not version:
            raise ConfigurationError("API version cannot be empty")
        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self.version = version
        self.api_key = api_key
        self.api_key_header = api_key_header
        self.wire_tap = wire_tap or NullWireTap()
        self.timeout = httpx.Timeout(connect=connect_timeout, read=read_timeout, write=10.0, pool=5.0)
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=self.timeout)

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{self.version}/{path}"

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers[self.api_key_header] = self.api_key
        return headers

    async def stream_interaction(self, body: Dict[str, Any], *, request_id: int = 0) -> AsyncIterator[bytes]:
        url = self._url("interactions")
        content = json.dumps(body, ensure_ascii=False).encode("utf-8")
        self.wire_tap.on_request(request_id, "POST", url, content)
        try:
            async with self._client.stream(
                "POST",
                url,
                params={"alt": "sse"},
                content=content,
                headers={**self._headers(), "Accept": "text/event-stream"},
                timeout=self.timeout,
            ) as response:
                self.wire_tap.on_response_status(request_id, response.status_code)
                logger.info(f"Interactions API stream response: status={response.status_code}")
                if response.status_code >= 300:
                    raw = await response.aread()
                    err = _error_from_response(
                        response.status_code,
                        raw.decode("utf-8", errors="replace"),
                        response.headers.get(REQUEST_ID_HEADER),
                    )
                    logger.error(f"Interactions API error ({response.status_code}): {err.message[:100]}")
                    raise err
                async for chunk in response.aiter_bytes():
                    if chunk:
                        yield chunk
        except httpx.HTTPError as e:
            logger.error(f"Transport error while streaming: {type(e).__name__}: {str(e)[:100]}")
            raise TransportError(f"{type(e).__name__}: {e}") from e

    async def get_interaction(self, interaction_id: str, *, request_id: int = 0) -> Dict[str, Any]:
        url = self._url(f"interactions/{interaction_id}")
        self.wire_tap.on_request(request_id, "GET", url, None)
        try:
            response = await self._client.get(url, headers=self._headers(), timeout=self.timeout)
        except httpx.HTTPError as e:
            logger.error(f"Transport error fetching interaction {interaction_id}: {type(e).__name__}")
            raise TransportError(f"{type(e).__name__}: {e}") from e

        self.wire_tap.on_response_status(request_id, response.status_code)
        if response.status_code >= 300:
            raise _error_from_response(response.status_code, response.text, response.headers.get(REQUEST_ID_HEADER))
        try:
            payload = response.json()
        except ValueError as e:
            raise MalformedResponseError(f"Interaction {interaction_id} response is not JSON: {e}") from e
        if not isinstance(payload, dict):
            raise MalformedResponseError(f"Interaction {interaction_id} response is not a JSON object")
        return payload

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
