import mimetypes
import time
from typing import Any, Callable, Dict, Optional

import httpx

from companion.config import ServiceConfig
from companion.core.errors import (
    CompanionError,
    InvalidInputError,
    NotConfiguredError,
    ProviderError,
)
from companion.core.logging import get_logger, logged
from companion.core.results import GENERIC_ERROR, ChatResult, ResetResult
from companion.core.transport import HttpTransport, extract_error_detail

_log = get_logger("llm.chat")

PROVIDER = "backend"
NOT_CONFIGURED = "Server URL not configured"
FILE_TAG = "[Archivo adjunto: {name} ({mime})]"
DEFAULT_FILE_TYPE = "application/octet-stream"

# Receives (delta_text, accumulated_text) for each streamed chunk
ChunkCallback = Callable[[str, str], None]


def describe_attachment(file_name: str, file_type: Optional[str] = None) -> str:
    """Textual tag standing in for an attached file."""
    mime = file_type or mimetypes.guess_type(file_name)[0] or DEFAULT_FILE_TYPE
    return FILE_TAG.format(name=file_name, mime=mime)


def _backend_error(response: httpx.Response) -> ProviderError:
    detail = extract_error_detail(response)
    message = detail or f"Server error ({response.status_code})"
    return ProviderError(message, provider=PROVIDER, status=response.status_code, detail=detail)


class ChatClient:
    """Client for the companion chat backend (``/chat``, ``/session/reset``)."""

    def __init__(self, config: ServiceConfig, transport: HttpTransport) -> None:
        self.config = config
        self.transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.config.auth_token:
            headers["Authorization"] = f"Bearer {self.config.auth_token}"
        return headers

    def _require_server(self) -> str:
        if not self.config.server_url:
            raise NotConfiguredError(NOT_CONFIGURED)
        return self.config.server_url

    async def chat(
        self,
        message: str,
        session_id: Optional[str] = None,
        on_chunk: Optional[ChunkCallback] = None,
    ) -> ChatResult:
        """Send one user message and return the assistant reply.

        With ``on_chunk`` the backend is asked to stream; every decoded chunk
        is delivered in arrival order and the full text is still returned.
        """
        try:
            server_url = self._require_server()
            if not message or not message.strip():
                raise InvalidInputError("Message cannot be empty", field="message")

            resolved_session = session_id or self.config.session_id
            body = {
                "message": message,
                "sessionId": resolved_session,
                "stream": on_chunk is not None,
            }
            url = f"{server_url}/chat"
            _log.info("chat start", session=resolved_session, msg_len=len(message), stream=on_chunk is not None)

            if on_chunk is not None:
                return await self._chat_stream(url, body, resolved_session, on_chunk)
            return await self._chat_once(url, body, resolved_session)
        except CompanionError as e:
            _log.error("chat failed", error=e.message[:100])
            return ChatResult.from_error(e)

    async def _chat_once(self, url: str, body: Dict[str, Any], session_id: str) -> ChatResult:
        start_time = time.perf_counter()
        response = await self.transport.request(
            "POST",
            url,
            provider=PROVIDER,
            timeout=self.config.chat_timeout,
            headers=self._headers(),
            json=body,
        )
        latency_ms = int((time.perf_counter() - start_time) * 1000)
        _log.info("chat latency", latency_ms=latency_ms, status=response.status_code)

        if not response.is_success:
            raise _backend_error(response)

        try:
            data = response.json()
        except ValueError:
            raise ProviderError("Invalid response from server", provider=PROVIDER, status=response.status_code)
        if not isinstance(data, dict):
            raise ProviderError("Invalid response from server", provider=PROVIDER, status=response.status_code)

        if not data.get("success"):
            raise ProviderError(str(data.get("error") or GENERIC_ERROR), provider=PROVIDER)

        return ChatResult(
            response=str(data.get("response") or ""),
            session_id=data.get("sessionId") or session_id,
            latency_ms=latency_ms,
        )

    async def _chat_stream(
        self,
        url: str,
        body: Dict[str, Any],
        session_id: str,
        on_chunk: ChunkCallback,
    ) -> ChatResult:
        start_time = time.perf_counter()
        accumulated = ""
        chunk_count = 0

        async with self.transport.stream(
            "POST",
            url,
            provider=PROVIDER,
            timeout=self.config.chat_timeout,
            headers=self._headers(),
            json=body,
        ) as response:
            latency_ms = int((time.perf_counter() - start_time) * 1000)
            _log.info("chat latency", latency_ms=latency_ms, status=response.status_code)

            if not response.is_success:
                await response.aread()
                raise _backend_error(response)

            async for delta in response.aiter_text():
                if not delta:
                    continue
                accumulated += delta
                chunk_count += 1
                try:
                    on_chunk(delta, accumulated)
                except Exception as e:
                    _log.warning("Chunk callback failed", chunk=chunk_count, error=str(e)[:100])

        dur_ms = int((time.perf_counter() - start_time) * 1000)
        _log.info("chat stream done", chunks=chunk_count, text_len=len(accumulated), dur_ms=dur_ms)
        return ChatResult(response=accumulated, session_id=session_id, latency_ms=latency_ms)

    async def chat_with_file(
        self,
        message: Optional[str],
        file_uri: str,
        file_name: str,
        file_type: Optional[str] = None,
        on_chunk: Optional[ChunkCallback] = None,
    ) -> ChatResult:
        """Chat about an attached file.

        Only a textual description of the file (name and type) reaches the
        backend; the file content is not uploaded.
        """
        if not self.config.server_url:
            return ChatResult.failure(NOT_CONFIGURED, NotConfiguredError.kind)

        description = describe_attachment(file_name, file_type)
        if message and message.strip():
            full_message = f"{message}\n\n{description}"
        else:
            full_message = description
        _log.debug("chat with file", file_uri=file_uri, file_name=file_name)
        return await self.chat(full_message, None, on_chunk)

    @logged()
    async def reset_session(self, session_id: Optional[str] = None) -> ResetResult:
        """Ask the backend to forget a conversation session."""
        try:
            server_url = self._require_server()
            resolved_session = session_id or self.config.session_id
            response = await self.transport.request(
                "POST",
                f"{server_url}/session/reset",
                provider=PROVIDER,
                timeout=self.config.chat_timeout,
                headers=self._headers(),
                json={"sessionId": resolved_session},
            )
        except CompanionError as e:
            _log.error("session reset failed", error=e.message[:100])
            return ResetResult.from_error(e)

        if not response.is_success:
            _log.warning("session reset rejected", status=response.status_code)
            return ResetResult.failure(
                f"Server error ({response.status_code})", ProviderError.kind
            )
        _log.info("session reset", session=resolved_session)
        return ResetResult()
