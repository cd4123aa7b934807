"""Tests for companion.llm.chat_client.ChatClient."""

import httpx
import pytest

from companion.config import ServiceConfig
from companion.core.errors import ErrorKind
from companion.llm.chat_client import ChatClient, describe_attachment


def _ok_reply(response="¡Hola!", session_id="mobile-main"):
    return lambda req: httpx.Response(
        200, json={"success": True, "response": response, "sessionId": session_id}
    )


# ---------------------------------------------------------------------------
# chat(): validation
# ---------------------------------------------------------------------------


class TestChatValidation:

    async def test_missing_server_url(self, make_transport):
        transport, recorder = make_transport(_ok_reply())
        client = ChatClient(ServiceConfig(), transport)

        result = await client.chat("hola")

        assert result.ok is False
        assert result.error == "Server URL not configured"
        assert result.kind == ErrorKind.NOT_CONFIGURED
        assert recorder.call_count == 0

    @pytest.mark.parametrize("message", ["", "   ", None])
    async def test_empty_message(self, config, make_transport, message):
        transport, recorder = make_transport(_ok_reply())

        result = await ChatClient(config, transport).chat(message)

        assert result.ok is False
        assert result.error == "Message cannot be empty"
        assert result.kind == ErrorKind.INVALID_INPUT
        assert recorder.call_count == 0

    async def test_url_checked_before_message(self, make_transport):
        transport, _ = make_transport(_ok_reply())

        result = await ChatClient(ServiceConfig(), transport).chat("")

        assert result.error == "Server URL not configured"


# ---------------------------------------------------------------------------
# chat(): single response
# ---------------------------------------------------------------------------


class TestChatOnce:

    async def test_request_shape(self, config, make_transport):
        transport, recorder = make_transport(_ok_reply())

        result = await ChatClient(config, transport).chat("hola", session_id="s1")

        request = recorder.requests[0]
        assert request.method == "POST"
        assert str(request.url) == "https://bot.example.com/chat"
        assert request.headers["Authorization"] == "Bearer secret-token"
        assert request.headers["Content-Type"] == "application/json"
        assert recorder.json_body() == {"message": "hola", "sessionId": "s1", "stream": False}
        assert result.ok is True
        assert result.response == "¡Hola!"
        assert result.latency_ms >= 0

    async def test_default_session_and_no_auth(self, make_transport):
        transport, recorder = make_transport(_ok_reply())
        config = ServiceConfig(server_url="https://bot.example.com")

        await ChatClient(config, transport).chat("hola")

        assert "Authorization" not in recorder.requests[0].headers
        assert recorder.json_body()["sessionId"] == "mobile-main"

    async def test_session_id_from_server(self, config, make_transport):
        transport, _ = make_transport(_ok_reply(session_id="server-session"))

        result = await ChatClient(config, transport).chat("hola")

        assert result.session_id == "server-session"

    async def test_backend_reports_failure(self, config, make_transport):
        transport, _ = make_transport(
            lambda req: httpx.Response(200, json={"success": False, "error": "Model overloaded"})
        )

        result = await ChatClient(config, transport).chat("hola")

        assert result.ok is False
        assert result.error == "Model overloaded"

    async def test_backend_failure_without_reason(self, config, make_transport):
        transport, _ = make_transport(lambda req: httpx.Response(200, json={"success": False}))

        result = await ChatClient(config, transport).chat("hola")

        assert result.error == "Unknown error"

    async def test_http_error_status(self, config, make_transport):
        transport, _ = make_transport(lambda req: httpx.Response(502, text=""))

        result = await ChatClient(config, transport).chat("hola")

        assert result.ok is False
        assert result.error == "Server error (502)"
        assert result.kind == ErrorKind.PROVIDER_ERROR

    async def test_http_error_with_detail(self, config, make_transport):
        transport, _ = make_transport(lambda req: httpx.Response(401, json={"error": "Unauthorized"}))

        result = await ChatClient(config, transport).chat("hola")

        assert result.error == "Unauthorized"

    async def test_invalid_json(self, config, make_transport):
        transport, _ = make_transport(lambda req: httpx.Response(200, text="not json"))

        result = await ChatClient(config, transport).chat("hola")

        assert result.error == "Invalid response from server"

    async def test_unreachable(self, config, make_transport):
        def handler(request):
            raise httpx.ConnectError("Network request failed", request=request)

        transport, _ = make_transport(handler)

        result = await ChatClient(config, transport).chat("hola")

        assert result.ok is False
        assert result.kind == ErrorKind.TRANSPORT_FAILURE
        assert "Network request failed" in result.error

    async def test_timeout(self, config, make_transport):
        def handler(request):
            raise httpx.ReadTimeout("read timed out", request=request)

        transport, _ = make_transport(handler)

        result = await ChatClient(config, transport).chat("hola")

        assert result.kind == ErrorKind.TIMEOUT
        assert result.error == "backend request timed out after 60s"


# ---------------------------------------------------------------------------
# chat(): streaming
# ---------------------------------------------------------------------------


class TestChatStreaming:

    async def test_chunks_delivered_in_order(self, config, make_transport, chunked):
        transport, recorder = make_transport(
            lambda req: httpx.Response(200, content=chunked(b"Hola", b", ", b"mundo"))
        )
        chunks = []

        result = await ChatClient(config, transport).chat(
            "hola", on_chunk=lambda delta, acc: chunks.append((delta, acc))
        )

        assert result.ok is True
        assert result.response == "Hola, mundo"
        assert chunks == [("Hola", "Hola"), (", ", "Hola, "), ("mundo", "Hola, mundo")]
        assert recorder.json_body()["stream"] is True

    async def test_accumulated_text_grows_monotonically(self, config, make_transport, chunked):
        transport, _ = make_transport(
            lambda req: httpx.Response(200, content=chunked(b"a", b"bc", b"", b"def"))
        )
        accumulated = []

        result = await ChatClient(config, transport).chat(
            "hola", on_chunk=lambda delta, acc: accumulated.append(acc)
        )

        assert "".join(a[len(b):] for a, b in zip(accumulated, [""] + accumulated)) == result.response
        for previous, current in zip(accumulated, accumulated[1:]):
            assert current.startswith(previous)
        assert accumulated[-1] == "abcdef"

    async def test_split_utf8_sequence(self, config, make_transport, chunked):
        transport, _ = make_transport(
            lambda req: httpx.Response(200, content=chunked("¿Qué".encode()[:5], "¿Qué".encode()[5:]))
        )
        deltas = []

        result = await ChatClient(config, transport).chat(
            "hola", on_chunk=lambda delta, acc: deltas.append(delta)
        )

        assert result.response == "¿Qué"
        assert "".join(deltas) == "¿Qué"

    async def test_stream_http_error(self, config, make_transport):
        transport, _ = make_transport(lambda req: httpx.Response(503, json={"error": "busy"}))
        chunks = []

        result = await ChatClient(config, transport).chat(
            "hola", on_chunk=lambda delta, acc: chunks.append(delta)
        )

        assert result.ok is False
        assert result.error == "busy"
        assert chunks == []

    async def test_failing_chunk_callback_does_not_abort(self, config, make_transport, chunked):
        transport, _ = make_transport(lambda req: httpx.Response(200, content=chunked(b"a", b"b")))

        def on_chunk(delta, acc):
            raise RuntimeError("render failed")

        result = await ChatClient(config, transport).chat("hola", on_chunk=on_chunk)

        assert result.ok is True
        assert result.response == "ab"


# ---------------------------------------------------------------------------
# chat_with_file()
# ---------------------------------------------------------------------------


class TestChatWithFile:

    def test_describe_attachment(self):
        assert describe_attachment("foto.jpg", "image/jpeg") == "[Archivo adjunto: foto.jpg (image/jpeg)]"

    def test_describe_attachment_guesses_type(self):
        assert describe_attachment("notes.txt") == "[Archivo adjunto: notes.txt (text/plain)]"
        assert describe_attachment("blob") == "[Archivo adjunto: blob (application/octet-stream)]"

    async def test_message_with_attachment(self, config, make_transport):
        transport, recorder = make_transport(_ok_reply())

        result = await ChatClient(config, transport).chat_with_file(
            "¿Qué ves?", "file:///tmp/foto.jpg", "foto.jpg", "image/jpeg"
        )

        assert result.ok is True
        assert recorder.json_body()["message"] == "¿Qué ves?\n\n[Archivo adjunto: foto.jpg (image/jpeg)]"

    async def test_attachment_only(self, config, make_transport):
        transport, recorder = make_transport(_ok_reply())

        await ChatClient(config, transport).chat_with_file("", "file:///tmp/a.pdf", "a.pdf", "application/pdf")

        assert recorder.json_body()["message"] == "[Archivo adjunto: a.pdf (application/pdf)]"

    async def test_missing_server_url(self, make_transport):
        transport, recorder = make_transport(_ok_reply())

        result = await ChatClient(ServiceConfig(), transport).chat_with_file(
            "hi", "file:///tmp/a.pdf", "a.pdf"
        )

        assert result.error == "Server URL not configured"
        assert recorder.call_count == 0

    async def test_streams_when_callback_given(self, config, make_transport, chunked):
        transport, recorder = make_transport(lambda req: httpx.Response(200, content=chunked(b"ok")))
        chunks = []

        result = await ChatClient(config, transport).chat_with_file(
            "mira", "file:///tmp/a.png", "a.png", on_chunk=lambda d, a: chunks.append(d)
        )

        assert result.response == "ok"
        assert chunks == ["ok"]
        assert recorder.json_body()["stream"] is True


# ---------------------------------------------------------------------------
# reset_session()
# ---------------------------------------------------------------------------


class TestResetSession:

    async def test_reset(self, config, make_transport):
        transport, recorder = make_transport(lambda req: httpx.Response(200, json={"ok": True}))

        result = await ChatClient(config, transport).reset_session()

        assert result.ok is True
        assert str(recorder.requests[0].url) == "https://bot.example.com/session/reset"
        assert recorder.json_body() == {"sessionId": "mobile-main"}
        assert recorder.requests[0].headers["Authorization"] == "Bearer secret-token"

    async def test_explicit_session(self, config, make_transport):
        transport, recorder = make_transport(lambda req: httpx.Response(204))

        await ChatClient(config, transport).reset_session("other")

        assert recorder.json_body() == {"sessionId": "other"}

    async def test_server_error(self, config, make_transport):
        transport, _ = make_transport(lambda req: httpx.Response(404))

        result = await ChatClient(config, transport).reset_session()

        assert result.ok is False
        assert result.error == "Server error (404)"

    async def test_missing_server_url(self, make_transport):
        transport, recorder = make_transport(lambda req: httpx.Response(200))

        result = await ChatClient(ServiceConfig(), transport).reset_session()

        assert result.kind == ErrorKind.NOT_CONFIGURED
        assert recorder.call_count == 0
