"""Shared HTTP transport for the chat backend and speech providers.

Wraps one pooled ``httpx.AsyncClient`` and turns httpx failures into the
service error taxonomy: network problems become ``TransportFailure``,
timeouts ``TimeoutFailure`` and non-2xx answers ``ProviderError``.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

import httpx

from companion.config import TIMEOUT_HTTP_CONNECT
from companion.core.errors import ProviderError, TimeoutFailure, TransportFailure
from companion.core.logging import get_logger

_log = get_logger("core.transport")

POOL_LIMITS = httpx.Limits(
    max_connections=100,
    max_keepalive_connections=20,
)

_DETAIL_KEYS = ("error", "message", "detail", "err_msg", "title")
_MAX_DETAIL_LEN = 200


def build_timeout(seconds: float) -> httpx.Timeout:
    return httpx.Timeout(seconds, connect=min(TIMEOUT_HTTP_CONNECT, seconds))


def _detail_from_json(data: Any) -> str:
    if isinstance(data, str):
        return data
    if isinstance(data, dict):
        for key in _DETAIL_KEYS:
            value = data.get(key)
            if not value:
                continue
            nested = _detail_from_json(value)
            if nested:
                return nested
    if isinstance(data, list) and data:
        return _detail_from_json(data[0])
    return ""


def extract_error_detail(response: httpx.Response) -> str:
    """Best-effort human-readable error detail from a provider response.

    The body must already be read.
    """
    try:
        detail = _detail_from_json(response.json())
    except ValueError:
        detail = response.text.strip()
    detail = " ".join(str(detail).split())
    if len(detail) > _MAX_DETAIL_LEN:
        detail = detail[:_MAX_DETAIL_LEN - 3] + "..."
    return detail


def raise_for_provider_status(response: httpx.Response, provider: str, label: str) -> None:
    """Raise ``ProviderError`` for a non-2xx response.

    Message format: ``"<label>: <status> <detail>"``.
    """
    if response.is_success:
        return
    detail = extract_error_detail(response)
    message = f"{label}: {response.status_code}"
    if detail:
        message = f"{message} {detail}"
    _log.warning("provider error", provider=provider, status=response.status_code, detail=detail[:80])
    raise ProviderError(message, provider=provider, status=response.status_code, detail=detail)


def _describe(exc: httpx.HTTPError) -> str:
    text = str(exc).strip()
    return text or type(exc).__name__


class HttpTransport:
    """Async HTTP client shared by every adapter.

    Pass ``client`` to inject a pre-built ``httpx.AsyncClient`` (for example
    one backed by ``httpx.MockTransport`` in tests).
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None) -> None:
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                limits=POOL_LIMITS,
                timeout=build_timeout(30.0),
                follow_redirects=True,
            )
            self._owns_client = True
            _log.debug("Client created")
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client and not self._client.is_closed:
            await self._client.aclose()
            _log.debug("Client closed")

    async def __aenter__(self) -> "HttpTransport":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def request(
        self,
        method: str,
        url: str,
        *,
        provider: str,
        timeout: float,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send a request and return the response whatever its status."""
        try:
            return await self.client.request(method, url, timeout=build_timeout(timeout), **kwargs)
        except httpx.TimeoutException as e:
            _log.error("request timeout", provider=provider, timeout=timeout)
            raise TimeoutFailure(
                f"{provider} request timed out after {timeout:g}s", timeout_s=timeout
            ) from e
        except httpx.HTTPError as e:
            _log.error("request failed", provider=provider, error=_describe(e)[:100])
            raise TransportFailure(f"{provider} unreachable: {_describe(e)}") from e

    @asynccontextmanager
    async def stream(
        self,
        method: str,
        url: str,
        *,
        provider: str,
        timeout: float,
        **kwargs: Any,
    ) -> AsyncIterator[httpx.Response]:
        """Open a streaming request; headers are available before the body.

        Network failures while the body is consumed inside the ``async with``
        block are translated the same way as in ``request``.
        """
        try:
            async with self.client.stream(
                method, url, timeout=build_timeout(timeout), **kwargs
            ) as response:
                yield response
        except httpx.TimeoutException as e:
            _log.error("stream timeout", provider=provider, timeout=timeout)
            raise TimeoutFailure(
                f"{provider} request timed out after {timeout:g}s", timeout_s=timeout
            ) from e
        except httpx.HTTPError as e:
            _log.error("stream failed", provider=provider, error=_describe(e)[:100])
            raise TransportFailure(f"{provider} unreachable: {_describe(e)}") from e
