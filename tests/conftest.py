"""Shared fixtures for the DocuRight client core test suite."""

from __future__ import annotations

import json
from typing import Any, Awaitable, Callable, Union

import httpx
import pytest
import pytest_asyncio

from docuright.sessions.manager import TokenLifecycleManager
from docuright.storage.backends import MemoryBackend
from docuright.storage.store import PersistentStore
from docuright.transport import ApiTransport
from docuright.usage.meter import UsageMeter

BASE_URL = "http://docuright.test/api"

Reply = Union[
    httpx.Response,
    Exception,
    Callable[[httpx.Request], Union[httpx.Response, Awaitable[httpx.Response]]],
]


def auth_body(access: str = "access-1", refresh: str = "refresh-1", user_id: int = 1) -> dict[str, Any]:
    """Login/register/refresh response body."""
    return {
        "accessToken": access,
        "refreshToken": refresh,
        "user": {
            "id": user_id,
            "email": "ada@example.com",
            "fullName": "Ada Lovelace",
            "emailVerified": True,
            "authProvider": "local",
        },
    }


class FakeBackend:
    """Scriptable stand-in for the DocuRight API.

    Replies queue per (method, path); the last queued reply is reused once the
    queue drains. Every request is recorded in ``calls``.
    """

    def __init__(self) -> None:
        self.calls: list[httpx.Request] = []
        self._routes: dict[tuple[str, str], list[Reply]] = {}

    def on(self, method: str, path: str, *replies: Reply) -> None:
        self._routes.setdefault((method.upper(), path), []).extend(replies)

    def calls_to(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.calls if r.method == method.upper() and _api_path(r) == path]

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        queue = self._routes.get((request.method, _api_path(request)))
        if not queue:
            return httpx.Response(404, json={"error": "Not found"})
        reply = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            result = reply(request)
            if not isinstance(result, httpx.Response):
                result = await result
            return result
        return reply


def _api_path(request: httpx.Request) -> str:
    path = request.url.path
    return path[len("/api"):] if path.startswith("/api") else path


def request_json(request: httpx.Request) -> Any:
    return json.loads(request.content)


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def transport(backend: FakeBackend) -> ApiTransport:
    client = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(backend.handler))
    return ApiTransport(client=client)


@pytest.fixture
def storage() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture
def store(storage: MemoryBackend) -> PersistentStore:
    return PersistentStore(storage)


@pytest.fixture
def meter(store: PersistentStore) -> UsageMeter:
    return UsageMeter(store)


@pytest_asyncio.fixture
async def manager(transport: ApiTransport, store: PersistentStore, meter: UsageMeter):
    mgr = TokenLifecycleManager(transport, store, usage_meter=meter)
    yield mgr
    await mgr.aclose()
