"""
Paths, logging setup, config load/save, safe_print.
"""

import os
import json
import sys
import logging
from pathlib import Path

from .constants import (
    DEFAULT_BASE_URL, DEFAULT_AUTH_BASE_URL, SIGNALR_HUB_NAME,
    SIGNALR_CLIENT_PROTOCOL, MAX_RECONNECT_ATTEMPTS, POLL_INTERVAL_SEC,
    DEFAULT_RECORDS_LENGTH,
)


# ─── Paths ───────────────────────────────────────────────────────
# One data directory per user. ATTENDANCE_HOME overrides it (tests, portable installs).
_FOLDER_NAME = ".attendance-client"


def data_dir():
    override = os.environ.get("ATTENDANCE_HOME")
    if override:
        return Path(override)
    return Path.home() / _FOLDER_NAME


def config_file():
    return data_dir() / "config.json"


def log_file():
    return data_dir() / "client.log"


def store_file():
    return data_dir() / "session.json"


# ─── Safe print (no crash on a closed/odd console) ───────────────

def safe_print(*args, **kwargs):
    try:
        print(*args, **kwargs)
    except Exception:
        pass


# ─── Logging ─────────────────────────────────────────────────────

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

log = logging.getLogger("attendance")


def setup_logging(verbose=False, to_file=True):
    """Attach file + console handlers to the client logger. Safe to call twice."""
    level = logging.DEBUG if verbose else logging.INFO
    log.setLevel(level)
    if log.handlers:
        for handler in log.handlers:
            handler.setLevel(level)
        return log

    if to_file:
        path = log_file()
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            if path.exists() and path.stat().st_size > 1_000_000:
                path.write_text("")
            file_handler = logging.FileHandler(str(path), encoding="utf-8")
            file_handler.setLevel(level)
            file_handler.setFormatter(logging.Formatter(LOG_FORMAT, LOG_DATEFMT))
            log.addHandler(file_handler)
        except OSError as e:
            safe_print(f"Log file unavailable ({e}); logging to console only")

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT, LOG_DATEFMT))
    log.addHandler(console_handler)
    return log


# ─── Config Management ──────────────────────────────────────────

DEFAULT_CONFIG = {
    "baseUrl": DEFAULT_BASE_URL,
    "authBaseUrl": DEFAULT_AUTH_BASE_URL,
    "hubName": SIGNALR_HUB_NAME,
    "clientProtocol": SIGNALR_CLIENT_PROTOCOL,
    "maxReconnectAttempts": MAX_RECONNECT_ATTEMPTS,
    "pollIntervalSec": POLL_INTERVAL_SEC,
    "recordsLength": DEFAULT_RECORDS_LENGTH,
}

_ENV_OVERRIDES = {
    "ATTENDANCE_BASE_URL": "baseUrl",
    "ATTENDANCE_AUTH_BASE_URL": "authBaseUrl",
}


def load_config(path=None):
    """Defaults, then the JSON file (if any), then environment overrides."""
    config = dict(DEFAULT_CONFIG)
    path = Path(path) if path else config_file()
    if path.exists():
        try:
            with open(path, "r", encoding="utf-8") as f:
                stored = json.load(f)
            if isinstance(stored, dict):
                config.update(stored)
            else:
                log.warning("Ignoring config %s: not a JSON object", path)
        except (json.JSONDecodeError, IOError) as e:
            log.warning("Ignoring unreadable config %s: %s", path, e)

    for env_name, key in _ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value:
            config[key] = value

    config["baseUrl"] = config["baseUrl"].rstrip("/")
    config["authBaseUrl"] = config["authBaseUrl"].rstrip("/")
    return config


def save_config(config, path=None):
    """Save config dict to disk."""
    path = Path(path) if path else config_file()
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(config, f, indent=2)
    log.info("Config saved to %s", path)
