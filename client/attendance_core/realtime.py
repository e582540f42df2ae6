"""
RealtimeChannel — one persistent SignalR (ASP.NET, websocket transport)
connection with an explicit state machine and bounded reconnects.

  IDLE → CONNECTING → CONNECTED → DISCONNECTED → RECONNECTING → CONNECTING …
                                                 └→ FAILED (budget exhausted)

Threads: websocket-client runs each socket on its own daemon thread and
reconnects are armed on a single threading.Timer owned by the channel. All
state changes happen under one RLock. Every socket gets a generation number;
callbacks from a socket that has since been replaced or stopped are dropped,
so a late close from an old socket can never trigger a reconnect.

Signals are emitted while the lock is held (keeps lifecycle order). Subscribers
must return quickly: hand real work to another thread.
"""

import itertools
import json
import random
import threading
from urllib.parse import quote

import websocket

from .config import log
from .constants import (
    SIGNALR_HUB_NAME, SIGNALR_CLIENT_PROTOCOL, SIGNALR_UPDATE_METHOD,
    SIGNALR_JOIN_METHOD, MAX_RECONNECT_ATTEMPTS, RECONNECT_BASE_DELAY_MS,
    RECONNECT_MAX_DELAY_MS, USER_AGENT, WS_PING_INTERVAL_SEC, WS_PING_TIMEOUT_SEC,
)
from .dispatcher import NotificationDispatcher
from .errors import ConnectionFailed, ParseError
from .models import ConnectionState, Signal


def reconnect_delay_ms(attempt):
    """Backoff for the n-th reconnect: 2s, 4s, 8s, 16s, then capped at 30s."""
    return min(RECONNECT_MAX_DELAY_MS, RECONNECT_BASE_DELAY_MS * (2 ** attempt))


def hub_updates(raw, hub_name):
    """
    Parse one inbound frame. Returns the args of every `update` call for
    `hub_name`, in arrival order. Raises ParseError on malformed frames.
    """
    try:
        envelope = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise ParseError(f"Invalid JSON frame: {e}") from e
    if not isinstance(envelope, dict):
        raise ParseError(f"Unexpected frame type: {type(envelope).__name__}")

    messages = envelope.get("M")
    if messages is None:
        return []           # keep-alive / init frame
    if not isinstance(messages, list):
        raise ParseError("Frame 'M' is not a list")

    updates = []
    for message in messages:
        if not isinstance(message, dict):
            continue
        hub = str(message.get("H", ""))
        method = str(message.get("M", ""))
        if hub.lower() == hub_name.lower() and method.lower() == SIGNALR_UPDATE_METHOD:
            updates.append(message.get("A", []))
    return updates


# ─── Default factories (replaced in tests) ───────────────────────

def open_websocket(url, header, on_open, on_message, on_error, on_close):
    """Create a WebSocketApp and run it on a daemon thread."""
    ws = websocket.WebSocketApp(
        url,
        header=header,
        on_open=on_open,
        on_message=on_message,
        on_error=on_error,
        on_close=on_close,
    )
    thread = threading.Thread(
        target=ws.run_forever,
        kwargs={"ping_interval": WS_PING_INTERVAL_SEC, "ping_timeout": WS_PING_TIMEOUT_SEC},
        name="signalr-ws",
        daemon=True,
    )
    thread.start()
    return ws


def start_timer(delay_sec, callback):
    timer = threading.Timer(delay_sec, callback)
    timer.daemon = True
    timer.start()
    return timer


class RealtimeChannel:
    """Owns a single SignalR connection. Construct one per monitored session."""

    def __init__(self, config, dispatcher=None, socket_factory=None, timer_factory=None):
        base_url = config["baseUrl"]
        self._base_url = base_url
        scheme, _, host = base_url.partition("://")
        self._ws_base = ("wss://" if scheme == "https" else "ws://") + host
        self._hub = config.get("hubName", SIGNALR_HUB_NAME)
        self._protocol = config.get("clientProtocol", SIGNALR_CLIENT_PROTOCOL)
        self.max_reconnect_attempts = int(config.get("maxReconnectAttempts", MAX_RECONNECT_ATTEMPTS))

        self._dispatcher = dispatcher or NotificationDispatcher()
        self._socket_factory = socket_factory or open_websocket
        self._timer_factory = timer_factory or start_timer

        self._lock = threading.RLock()
        self._state = ConnectionState.IDLE
        self._attempts = 0
        self._ws = None
        self._generation = 0
        self._timer = None
        self._timer_id = 0
        self._message_ids = itertools.count()
        self._token = None
        self._cookie = None
        self.connection_id = None

    # ─── Read-only state ─────────────────────────────────────

    @property
    def state(self):
        return self._state

    @property
    def reconnect_attempts(self):
        return self._attempts

    @property
    def is_connected(self):
        return self._state is ConnectionState.CONNECTED

    @property
    def dispatcher(self):
        return self._dispatcher

    def status(self):
        with self._lock:
            return {
                "state": self._state.value,
                "isConnected": self.is_connected,
                "reconnectAttempts": self._attempts,
                "reconnectPending": self._timer is not None,
            }

    # ─── Subscribers ─────────────────────────────────────────

    def add_subscriber(self, callback):
        self._dispatcher.subscribe(callback)

    def remove_subscriber(self, callback):
        self._dispatcher.unsubscribe(callback)

    # ─── URL / headers ───────────────────────────────────────

    def build_url(self, connection_token):
        connection_data = quote(json.dumps([{"name": self._hub}], separators=(",", ":")))
        return (
            f"{self._ws_base}/signalr/connect"
            f"?transport=webSockets"
            f"&clientProtocol={self._protocol}"
            f"&connectionToken={quote(connection_token, safe='')}"
            f"&connectionData={connection_data}"
            f"&tid={random.randint(0, 9)}"
        )

    def _headers(self):
        return {
            "Cookie": self._cookie or "",
            "User-Agent": USER_AGENT,
            "Origin": self._base_url,
            "Referer": f"{self._base_url}/Attendance",
        }

    # ─── Lifecycle ───────────────────────────────────────────

    def start(self, connection_token, session_cookie):
        """
        Replace any existing connection with a new one. True if the open was
        initiated; asynchronous failures arrive later as signals.
        """
        with self._lock:
            self._cancel_timer()
            self._close_socket()
            self._token = connection_token
            self._cookie = session_cookie
            self._attempts = 0
            return self._open()

    def stop(self):
        """Disable reconnects, close the socket, go DISCONNECTED. Idempotent."""
        with self._lock:
            self._attempts = self.max_reconnect_attempts
            active = self._ws is not None or self._timer is not None
            self._cancel_timer()
            self._close_socket()
            if self._state is ConnectionState.IDLE:
                return
            self._state = ConnectionState.DISCONNECTED
            if active:
                log.info("Realtime channel stopped")
                self._emit(Signal.DISCONNECTED, {"code": 1000, "reason": "stopped"})

    def _open(self):
        self._generation += 1
        generation = self._generation
        self._state = ConnectionState.CONNECTING
        url = self.build_url(self._token)
        log.info("Realtime connecting (attempt %d/%d)", self._attempts, self.max_reconnect_attempts)
        try:
            self._ws = self._socket_factory(
                url,
                self._headers(),
                on_open=lambda ws: self._on_open(generation),
                on_message=lambda ws, message: self._on_message(generation, message),
                on_error=lambda ws, error: self._on_error(generation, error),
                on_close=lambda ws, code=None, reason=None: self._on_close(generation, code, reason),
            )
            return True
        except Exception as e:
            log.error("Error starting websocket connection: %s", e)
            self._ws = None
            self._state = ConnectionState.DISCONNECTED
            self._emit(Signal.DISCONNECTED, {"code": None, "reason": str(e)})
            self._schedule_reconnect()
            return False

    def _close_socket(self):
        self._generation += 1
        ws, self._ws = self._ws, None
        if ws is not None:
            try:
                ws.close()
            except Exception as e:
                log.warning("Websocket close warning: %s", e)

    # ─── Socket callbacks ────────────────────────────────────

    def _on_open(self, generation):
        with self._lock:
            if generation != self._generation:
                return
            self._attempts = 0
            self._state = ConnectionState.CONNECTED
            log.info("Realtime channel connected (hub=%s)", self._hub)
            self.send(self._hub, SIGNALR_JOIN_METHOD)
            self._emit(Signal.CONNECTED)

    def _on_message(self, generation, raw):
        with self._lock:
            if generation != self._generation:
                return
            try:
                updates = hub_updates(raw, self._hub)
            except ParseError as e:
                log.warning("Error parsing realtime message: %s", e)
                log.debug("Dropped frame: %r", raw[:500] if isinstance(raw, str) else raw)
                return
            for args in updates:
                self._emit(Signal.NEW_DATA_AVAILABLE, {"args": args})

    def _on_error(self, generation, error):
        # websocket-client follows every error with on_close; the policy runs there.
        if generation == self._generation:
            log.warning("Websocket error: %s", error)

    def _on_close(self, generation, code, reason):
        with self._lock:
            if generation != self._generation:
                return
            self._ws = None
            self._generation += 1
            self._state = ConnectionState.DISCONNECTED
            log.warning("Realtime connection closed: %s %s", code, reason or "")
            self._emit(Signal.DISCONNECTED, {"code": code, "reason": f"Connection closed: {code}"})
            self._schedule_reconnect()

    # ─── Reconnect policy ────────────────────────────────────

    def _schedule_reconnect(self):
        if self._attempts >= self.max_reconnect_attempts:
            self._state = ConnectionState.FAILED
            log.error("Realtime channel gave up after %d attempts", self._attempts)
            error = ConnectionFailed(f"Gave up after {self._attempts} reconnect attempts")
            self._emit(Signal.CONNECTION_FAILED, {"attempts": self._attempts, "error": error})
            return

        self._attempts += 1
        delay_ms = reconnect_delay_ms(self._attempts)
        self._state = ConnectionState.RECONNECTING
        log.info("Reconnect %d/%d in %dms", self._attempts, self.max_reconnect_attempts, delay_ms)
        self._emit(Signal.RECONNECTING, {"attempt": self._attempts, "delay_ms": delay_ms})

        self._cancel_timer()
        self._timer_id += 1
        timer_id = self._timer_id
        self._timer = self._timer_factory(delay_ms / 1000.0, lambda: self._reconnect_due(timer_id))

    def _reconnect_due(self, timer_id):
        with self._lock:
            if timer_id != self._timer_id:
                return
            self._timer = None
            if self._state in (ConnectionState.CONNECTED, ConnectionState.CONNECTING):
                log.info("Reconnect skipped: connection already active")
                return
            self._open()

    def _cancel_timer(self):
        self._timer_id += 1
        timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()

    # ─── Outbound ────────────────────────────────────────────

    def send(self, hub, method, args=None):
        """Invoke a hub method. False if not connected or the send failed."""
        with self._lock:
            if self._ws is None or not self.is_connected:
                return False
            message = {"H": hub, "M": method, "A": list(args or []), "I": next(self._message_ids)}
            try:
                self._ws.send(json.dumps(message))
                return True
            except (websocket.WebSocketException, OSError) as e:
                log.warning("Realtime send failed: %s", e)
                return False

    def _emit(self, signal, payload=None):
        self._dispatcher.notify(signal, payload)
