"""
LiveMonitor — keeps an attendance list current.

  realtime signal CONNECTED / NEW_DATA_AVAILABLE → refresh on a worker thread
  channel down (no token, DISCONNECTED, FAILED)  → poll every poll_interval

Polling stops again as soon as the channel reports CONNECTED. Refreshes go
through RecordFeed, so whichever fetch was issued last wins no matter which
one finishes last.
"""

import threading

from .config import log
from .constants import POLL_INTERVAL_SEC, STORAGE_KEYS
from .errors import FetchError, Unauthorized
from .feed import RecordFeed
from .models import Signal
from .realtime import start_timer


def run_in_thread(fn):
    threading.Thread(target=fn, daemon=True).start()


class LiveMonitor:
    def __init__(self, employee_id, fetcher, channel, negotiator, store,
                 feed=None, on_update=None, on_unauthorized=None,
                 poll_interval=POLL_INTERVAL_SEC, length=None,
                 run_async=None, timer_factory=None):
        self.employee_id = employee_id
        self._fetcher = fetcher
        self._channel = channel
        self._negotiator = negotiator
        self._store = store
        self.feed = feed or RecordFeed()
        self._on_update = on_update
        self._on_unauthorized = on_unauthorized
        self._poll_interval = poll_interval
        self._length = length
        self._run_async = run_async or run_in_thread
        self._timer_factory = timer_factory or start_timer

        self._lock = threading.Lock()
        self._running = False
        self._poll_timer = None
        self.signal_count = 0

    @property
    def polling(self):
        return self._poll_timer is not None

    # ─── Lifecycle ───────────────────────────────────────────

    def start(self):
        """Initial load, then realtime if a token can be negotiated. True if realtime started."""
        self._running = True
        self.refresh()
        self._channel.add_subscriber(self._on_signal)

        cookie = self._store.get(STORAGE_KEYS["session_cookie"]) or ""
        token = self._negotiator.negotiate(cookie)
        if not token:
            log.warning("No connection token, realtime unavailable, polling every %ds",
                        self._poll_interval)
            self._enable_polling()
            return False

        if not self._channel.start(token, cookie):
            self._enable_polling()
            return False
        return True

    def stop(self):
        self._running = False
        self._disable_polling()
        self._channel.remove_subscriber(self._on_signal)
        self._channel.stop()
        log.info("Live monitor stopped (%d realtime signals)", self.signal_count)

    # ─── Refresh ─────────────────────────────────────────────

    def refresh(self):
        """Fetch once and commit if still the newest. Returns the new records or None."""
        seq = self.feed.next_sequence()
        try:
            page = self._fetcher.fetch(self.employee_id, length=self._length)
        except Unauthorized as e:
            log.warning("Session rejected during refresh: %s", e)
            if self._on_unauthorized:
                self._on_unauthorized()
            return None
        except FetchError as e:
            log.warning("Refresh failed, keeping previous records: %s", e)
            return None

        added = self.feed.commit(seq, page)
        if added is None:
            log.info("Discarded stale refresh #%d (newer data already shown)", seq)
            return None
        if added:
            log.info("%d new attendance record(s)", len(added))
        if self._on_update:
            try:
                self._on_update(self.feed.records, added)
            except Exception as e:
                log.error("on_update callback failed: %s", e, exc_info=True)
        return added

    def _refresh_logged(self):
        """refresh() for worker threads and poll ticks: unexpected errors are logged, not raised."""
        try:
            self.refresh()
        except Exception as e:
            log.error("Refresh failed: %s", e, exc_info=True)

    # ─── Realtime signals ────────────────────────────────────

    def _on_signal(self, signal, payload=None):
        if signal is Signal.NEW_DATA_AVAILABLE:
            self.signal_count += 1
            self._run_async(self._refresh_logged)
        elif signal is Signal.CONNECTED:
            self._disable_polling()
            self._run_async(self._refresh_logged)
        elif signal in (Signal.DISCONNECTED, Signal.CONNECTION_FAILED):
            if signal is Signal.CONNECTION_FAILED:
                log.warning("Realtime updates unavailable, falling back to polling")
            self._enable_polling()

    # ─── Polling fallback ────────────────────────────────────

    def _enable_polling(self):
        with self._lock:
            if not self._running or self._poll_timer is not None:
                return
            self._poll_timer = self._timer_factory(self._poll_interval, self._poll_tick)
            log.info("Polling enabled (every %ds)", self._poll_interval)

    def _disable_polling(self):
        with self._lock:
            timer, self._poll_timer = self._poll_timer, None
        if timer is not None:
            timer.cancel()
            log.info("Polling disabled")

    def _poll_tick(self):
        with self._lock:
            if self._poll_timer is None or not self._running:
                return
            self._poll_timer = None
        if self._channel.is_connected:
            return
        try:
            self._refresh_logged()
        finally:
            self._enable_polling()
