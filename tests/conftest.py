"""
Pytest configuration and common fixtures for wagate tests.

Provides a scripted fake protocol adapter, a fake aiohttp session and a
lifecycle manager wired to temporary storage.
"""

import asyncio
from collections.abc import Callable
from typing import Any
from unittest.mock import MagicMock

import aiohttp
import pytest

from wagate.adapter.interface import CredentialState
from wagate.core.config.settings import settings
from wagate.core.logging.context import clear_request_context
from wagate.core.tasks import TaskSupervisor
from wagate.messaging.content import ContentBuilder
from wagate.sessions.auto_reply import AutoReplyResponder
from wagate.sessions.credentials import CredentialStore
from wagate.sessions.manager import SessionLifecycleManager
from wagate.sessions.reconnection import ReconnectionStrategy
from wagate.sessions.registry import SessionRegistry

# ---------------------------------------------------------------------------
# Fake protocol adapter
# ---------------------------------------------------------------------------


class FakeConnection:
    """
    Adapter connection whose events are pushed by the test.

    Emitting None ends the stream; emitting an exception raises it from
    ``events()``, like a socket dying mid-stream.
    """

    def __init__(self, session_id: str, credentials: CredentialState, script=()):
        self.session_id = session_id
        self.credentials = credentials
        self.user: dict[str, Any] | None = None
        self.sent: list[tuple[str, dict, dict | None]] = []
        self.ended = False
        self.fail_sends = False
        self._queue: asyncio.Queue = asyncio.Queue()
        for event in script:
            self._queue.put_nowait(event)

    def emit(self, event) -> None:
        self._queue.put_nowait(event)

    async def events(self):
        while True:
            event = await self._queue.get()
            if event is None:
                return
            if isinstance(event, Exception):
                raise event
            yield event

    async def send(self, jid, content, options=None):
        if self.fail_sends:
            raise RuntimeError("socket write failed")
        self.sent.append((jid, content, options))
        return {"key": {"id": f"MSG{len(self.sent)}", "remoteJid": jid}}

    async def end(self) -> None:
        self.ended = True
        self._queue.put_nowait(None)


class FakeAdapterFactory:
    """Records every connect; each connection starts with ``script`` queued."""

    def __init__(self, script=()):
        self.script = list(script)
        self.connections: list[FakeConnection] = []
        self.fail_connects = 0

    async def connect(self, session_id: str, credentials: CredentialState) -> FakeConnection:
        if self.fail_connects:
            self.fail_connects -= 1
            raise ConnectionError("handshake failed")
        connection = FakeConnection(session_id, credentials, self.script)
        self.connections.append(connection)
        return connection

    def latest(self) -> FakeConnection:
        return self.connections[-1]


class RecordingBus:
    """Subscriber bus that keeps every published event."""

    def __init__(self):
        self.published: list[tuple[str, str, dict]] = []

    async def publish(self, room: str, event: str, data: dict) -> None:
        self.published.append((room, event, data))

    def events(self, name: str) -> list[dict]:
        return [data for _, event, data in self.published if event == name]


class GatedSleep:
    """Replacement for asyncio.sleep that records delays and waits for release."""

    def __init__(self, blocking: bool = True):
        self.delays: list[float] = []
        self.blocking = blocking
        self.gate = asyncio.Event()

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        if self.blocking:
            await self.gate.wait()
        else:
            await asyncio.sleep(0)

    def release(self) -> None:
        self.gate.set()


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll until ``predicate()`` holds; fails the test on timeout."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


# ---------------------------------------------------------------------------
# Fake aiohttp session
# ---------------------------------------------------------------------------


class FakeResponse:
    def __init__(
        self,
        status: int = 200,
        body: Any = None,
        data: bytes = b"",
        headers: dict[str, str] | None = None,
    ):
        self.status = status
        self._body = body
        self._data = data
        self.headers = headers or {}

    async def json(self, content_type=None):
        if self._body is None:
            raise ValueError("response is not JSON")
        return self._body

    async def read(self) -> bytes:
        return self._data

    def raise_for_status(self) -> None:
        if self.status >= 400:
            raise aiohttp.ClientResponseError(
                request_info=MagicMock(), history=(), status=self.status, message="error"
            )

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False


class FakeHTTPSession:
    """
    Stand-in for aiohttp.ClientSession.

    Responses are consumed in order; an exception instance in the list is
    raised instead. When the list runs out, a bare 200 is returned.
    """

    def __init__(self, responses=None):
        self.responses = list(responses or [])
        self.requests: list[tuple[str, str, dict]] = []

    def _next(self):
        item = self.responses.pop(0) if self.responses else FakeResponse()
        if isinstance(item, Exception):
            raise item
        return item

    def post(self, url: str, **kwargs):
        self.requests.append(("POST", url, kwargs))
        return self._next()

    def get(self, url: str, **kwargs):
        self.requests.append(("GET", url, kwargs))
        return self._next()

    async def close(self) -> None:
        pass


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_log_context():
    yield
    clear_request_context()


@pytest.fixture
def adapter_factory() -> FakeAdapterFactory:
    return FakeAdapterFactory()


@pytest.fixture
def bus() -> RecordingBus:
    return RecordingBus()


@pytest.fixture
def registry(tmp_path) -> SessionRegistry:
    return SessionRegistry(tmp_path / "data" / "sessions.json")


@pytest.fixture
def credential_store(tmp_path) -> CredentialStore:
    return CredentialStore(tmp_path / "credentials")


@pytest.fixture
def http_session() -> FakeHTTPSession:
    return FakeHTTPSession()


@pytest.fixture
def reconnect_sleep() -> GatedSleep:
    return GatedSleep()


@pytest.fixture
async def manager(
    registry, credential_store, adapter_factory, bus, http_session, reconnect_sleep
):
    """Lifecycle manager with a mocked dispatcher and deterministic backoff."""
    supervisor = TaskSupervisor()
    manager = SessionLifecycleManager(
        registry=registry,
        credentials=credential_store,
        adapter_factory=adapter_factory,
        dispatcher=MagicMock(),
        content_builder=ContentBuilder(http_session),
        bus=bus,
        supervisor=supervisor,
        reconnection=ReconnectionStrategy(rand=lambda: 0.5),
        auto_reply=AutoReplyResponder.from_settings(enabled=True, ping_pong=True),
        sleep=reconnect_sleep,
    )
    yield manager
    reconnect_sleep.release()
    await manager.shutdown()
    await supervisor.shutdown()


@pytest.fixture
def gateway_settings(monkeypatch, tmp_path):
    """Point the global settings at temporary storage with permissive limits."""
    monkeypatch.setattr(settings, "data_dir", str(tmp_path / "data"))
    monkeypatch.setattr(settings, "credentials_dir", str(tmp_path / "credentials"))
    monkeypatch.setattr(settings, "log_dir", str(tmp_path / "logs"))
    monkeypatch.setattr(settings, "admin_api_key", "test-admin-key")
    monkeypatch.setattr(settings, "user_api_keys", ["user-key-a", "user-key-b"])
    monkeypatch.setattr(settings, "spam_cooldown_ms", 0)
    monkeypatch.setattr(settings, "webhook_default_url", "")
    monkeypatch.setattr(settings, "autoreply_enabled", False)
    return settings
