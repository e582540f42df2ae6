import json
from unittest.mock import MagicMock

import pytest
import requests

from attendance_core.config import DEFAULT_CONFIG
from attendance_core.store import MemoryStore


BASE_URL = "https://attendance.example.test"
AUTH_BASE_URL = "https://accounts.example.test"


def make_response(status=200, text="", headers=None, json_body=None):
    """A real requests.Response with canned status, body and headers."""
    resp = requests.Response()
    resp.status_code = status
    body = json.dumps(json_body) if json_body is not None else text
    resp._content = body.encode("utf-8")
    resp.encoding = "utf-8"
    resp.headers.update(headers or {})
    resp.url = BASE_URL
    return resp


class FakeSocket:
    def __init__(self, url, header, on_open, on_message, on_error, on_close):
        self.url = url
        self.header = header
        self._on_open = on_open
        self._on_message = on_message
        self._on_error = on_error
        self._on_close = on_close
        self.sent = []
        self.closed = False

    def send(self, data):
        self.sent.append(json.loads(data))

    def close(self):
        self.closed = True

    # Server-side events
    def open(self):
        self._on_open(self)

    def receive(self, raw):
        self._on_message(self, raw if isinstance(raw, str) else json.dumps(raw))

    def fail(self, error="boom", code=1006):
        self._on_error(self, Exception(error))
        self._on_close(self, code, error)


class SocketFactory:
    def __init__(self):
        self.sockets = []
        self.live_at_open = []
        self.error = None

    def __call__(self, url, header, **callbacks):
        if self.error:
            raise self.error
        self.live_at_open.append([s for s in self.sockets if not s.closed])
        sock = FakeSocket(url, header, **callbacks)
        self.sockets.append(sock)
        return sock

    @property
    def last(self):
        return self.sockets[-1]


class FakeTimer:
    def __init__(self, delay, callback):
        self.delay = delay
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self):
        self.cancelled = True

    def fire(self):
        assert not self.cancelled, "timer was cancelled"
        self.fired = True
        self.callback()


class TimerFactory:
    def __init__(self):
        self.timers = []

    def __call__(self, delay, callback):
        timer = FakeTimer(delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def pending(self):
        return [t for t in self.timers if not t.cancelled and not t.fired]


class Recorder:
    """Subscriber that records (signal, payload) pairs."""

    def __init__(self):
        self.events = []

    def __call__(self, signal, payload=None):
        self.events.append((signal, payload))

    @property
    def signals(self):
        return [signal for signal, _ in self.events]


@pytest.fixture
def config():
    cfg = dict(DEFAULT_CONFIG)
    cfg["baseUrl"] = BASE_URL
    cfg["authBaseUrl"] = AUTH_BASE_URL
    return cfg


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def session():
    return MagicMock()


@pytest.fixture
def sockets():
    return SocketFactory()


@pytest.fixture
def timers():
    return TimerFactory()


@pytest.fixture
def recorder():
    return Recorder()
