"""
Credential store — identity + session cookie persistence.

Only the employee ID and the server-issued session cookie are ever stored.
Passwords stay in memory for the length of one login attempt.

Writes of the two keys are not atomic as a pair. A reader racing a login may
see the new identity with the old cookie for a moment; the next fetch then
fails with Unauthorized and the caller re-authenticates.
"""

import json
import threading
from abc import ABC, abstractmethod
from pathlib import Path

from .config import log, store_file


class CredentialStore(ABC):
    """get/set/delete by key. Values are strings."""

    @abstractmethod
    def get(self, key):
        ...

    @abstractmethod
    def set(self, key, value):
        ...

    @abstractmethod
    def delete(self, key):
        ...


class MemoryStore(CredentialStore):
    def __init__(self, initial=None):
        self._data = dict(initial or {})

    def get(self, key):
        return self._data.get(key)

    def set(self, key, value):
        self._data[key] = value

    def delete(self, key):
        self._data.pop(key, None)

    def snapshot(self):
        return dict(self._data)


class JsonFileStore(CredentialStore):
    """Key/value pairs in a single JSON file (created on first write)."""

    def __init__(self, path=None):
        self._path = Path(path) if path else store_file()
        self._lock = threading.Lock()

    @property
    def path(self):
        return self._path

    def _read(self):
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, IOError) as e:
            log.warning("Credential store %s unreadable: %s", self._path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data):
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(data, indent=2), encoding="utf-8")

    def get(self, key):
        with self._lock:
            return self._read().get(key)

    def set(self, key, value):
        with self._lock:
            data = self._read()
            data[key] = value
            self._write(data)

    def delete(self, key):
        with self._lock:
            data = self._read()
            if key in data:
                del data[key]
                self._write(data)
