"""Shared pytest fixtures for the hec-shipper test suite."""

import threading

import pytest
from werkzeug.serving import make_server

from hec_shipper.collector import ReceivedEvents, create_collector_app
from hec_shipper.config import Config
from hec_shipper.decoder import encode_record


class FakeResponse:
    def __init__(self, status_code: int = 200, content: bytes = b""):
        self.status_code = status_code
        self.content = content
        self.closed = False

    def close(self):
        self.closed = True


class FakeConnection:
    """Stands in for an upstream Connection; records every post()."""

    def __init__(self, status: int = 200, content: bytes = b"", error: Exception | None = None):
        self.status = status
        self.content = content
        self.error = error
        self.calls: list[dict] = []
        self.responses: list[FakeResponse] = []

    def post(self, path: str, data: bytes, headers: dict):
        self.calls.append({"path": path, "data": data, "headers": headers})
        if self.error is not None:
            raise self.error
        resp = FakeResponse(self.status, self.content)
        self.responses.append(resp)
        return resp


class SessionRecorder:
    """Shared behaviour for FakeSession objects handed out by an Upstream."""

    def __init__(self):
        self.status = 200
        self.content = b""
        self.error: Exception | None = None
        self.calls: list[dict] = []
        self.sessions: list["FakeSession"] = []
        self._lock = threading.Lock()

    def factory(self):
        session = FakeSession(self)
        self.sessions.append(session)
        return session

    def respond(self, **call):
        with self._lock:
            self.calls.append(call)
        if self.error is not None:
            raise self.error
        return FakeResponse(self.status, self.content)


class FakeSession:
    def __init__(self, recorder: SessionRecorder):
        self._recorder = recorder
        self.closed = False

    def post(self, url, data=None, headers=None, timeout=None, verify=True):
        return self._recorder.respond(
            url=url, data=data, headers=headers, timeout=timeout, verify=verify
        )

    def close(self):
        self.closed = True


@pytest.fixture()
def fake_connection():
    """Factory for FakeConnection objects."""
    return FakeConnection


@pytest.fixture()
def session_recorder() -> SessionRecorder:
    return SessionRecorder()


@pytest.fixture()
def make_chunk():
    """Build a msgpack chunk from record bodies sharing one timestamp."""

    def _make(*bodies, timestamp: float = 1000.5, event_time: bool = True) -> bytes:
        return b"".join(
            encode_record(body, timestamp=timestamp, event_time=event_time) for body in bodies
        )

    return _make


@pytest.fixture()
def config() -> Config:
    return Config(splunk_token="test-token")


@pytest.fixture()
def collector_server():
    """Start mock collectors on random ports. Returns a starter function.

    ``start(**app_kwargs)`` returns ``(port, store)``.
    """
    servers = []

    def _start(**kwargs):
        store = ReceivedEvents()
        app = create_collector_app(store=store, **kwargs)
        server = make_server("127.0.0.1", 0, app, threaded=True)
        t = threading.Thread(target=server.serve_forever, daemon=True)
        t.start()
        servers.append(server)
        return server.server_port, store

    yield _start

    for server in servers:
        server.shutdown()
        server.server_close()
