"""
NotificationDispatcher — ordered in-process fan-out of channel signals.
"""

import threading

from .config import log


class NotificationDispatcher:
    """
    Callbacks are invoked as fn(signal, payload) in registration order.
    A failing callback is logged and skipped; the rest still run.
    """

    def __init__(self):
        self._subscribers = []
        self._lock = threading.Lock()

    def subscribe(self, callback):
        if not callable(callback):
            log.warning("Ignoring non-callable subscriber: %r", callback)
            return
        with self._lock:
            if callback not in self._subscribers:
                self._subscribers.append(callback)

    def unsubscribe(self, callback):
        with self._lock:
            try:
                self._subscribers.remove(callback)
            except ValueError:
                pass

    def __len__(self):
        with self._lock:
            return len(self._subscribers)

    def notify(self, signal, payload=None):
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(signal, payload)
            except Exception as e:
                log.error("Subscriber %r failed on %s: %s", callback, signal, e, exc_info=True)
