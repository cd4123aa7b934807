"""Root conftest: shared config and mock-transport fixtures."""

import json
from typing import Callable

import httpx
import pytest

from companion.config import ServiceConfig
from companion.core.transport import HttpTransport


class RecordingHandler:
    """Wraps an ``httpx.MockTransport`` handler and keeps every request."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]):
        self.handler = handler
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)

    @property
    def call_count(self) -> int:
        return len(self.requests)

    def json_body(self, index: int = -1) -> dict:
        return json.loads(self.requests[index].content)


@pytest.fixture
def config() -> ServiceConfig:
    """Fully configured service settings pointing at fake hosts."""
    return ServiceConfig(
        server_url="https://bot.example.com",
        auth_token="secret-token",
        deepgram_api_key="dg-key",
        elevenlabs_api_key="el-key",
        cartesia_api_key="ca-key",
    )


@pytest.fixture
async def make_transport():
    """Factory: ``make_transport(handler) -> (HttpTransport, RecordingHandler)``."""
    clients: list[httpx.AsyncClient] = []

    def _make(handler):
        recorder = RecordingHandler(handler)
        client = httpx.AsyncClient(transport=httpx.MockTransport(recorder))
        clients.append(client)
        return HttpTransport(client), recorder

    yield _make

    for client in clients:
        await client.aclose()


@pytest.fixture
def chunked():
    """Factory for async byte streams yielding ``parts`` one by one."""

    def _chunked(*parts: bytes):
        async def _gen():
            for part in parts:
                yield part

        return _gen()

    return _chunked
