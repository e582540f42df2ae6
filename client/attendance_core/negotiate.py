"""
SignalR connection-token negotiation.

First look at the attendance page (Set-Cookie headers, then markup); if the
token is not there, ask /signalr/negotiate. Returns None instead of raising:
no token simply means the monitor stays in polling mode.
"""

import json
import re
import time

import requests

from .config import log
from .constants import NEGOTIATE_TIMEOUT_SEC, SIGNALR_CLIENT_PROTOCOL, SIGNALR_HUB_NAME

_COOKIE_PATTERNS = (
    re.compile(r"connectionToken=([^;]+)"),
    re.compile(r"SignalR\.ConnectionToken=([^;]+)"),
    re.compile(r"__SignalRToken=([^;]+)"),
)

_PAGE_PATTERNS = (
    re.compile(r'connectionToken=([^";&\s]+)'),
    re.compile(r'SignalR\.ConnectionToken=([^";]+)'),
    re.compile(r'"ConnectionToken":"([^"]+)"'),
)

_URL_TOKEN = re.compile(r"connectionToken=([^&]+)")


def _first_match(patterns, text):
    for pattern in patterns:
        match = pattern.search(text or "")
        if match:
            return match.group(1)
    return None


def token_from_negotiate_payload(data):
    """{"ConnectionToken": ...} or {"Url": "...connectionToken=..."} → token."""
    if not isinstance(data, dict):
        return None
    if data.get("ConnectionToken"):
        return data["ConnectionToken"]
    url = data.get("Url") or ""
    match = _URL_TOKEN.search(url)
    return match.group(1) if match else None


class TokenNegotiator:
    def __init__(self, config, session):
        self._base_url = config["baseUrl"]
        self._hub = config.get("hubName", SIGNALR_HUB_NAME)
        self._protocol = config.get("clientProtocol", SIGNALR_CLIENT_PROTOCOL)
        self._session = session

    def negotiate(self, session_cookie):
        headers = {"Cookie": session_cookie or "", "Referer": f"{self._base_url}/Attendance"}
        token = self._from_attendance_page(headers)
        if token:
            return token
        log.info("No token on attendance page, trying negotiate endpoint")
        return self._from_negotiate_endpoint(headers)

    def _from_attendance_page(self, headers):
        try:
            resp = self._session.get(
                f"{self._base_url}/Attendance", headers=headers, timeout=NEGOTIATE_TIMEOUT_SEC,
            )
        except requests.RequestException as e:
            log.warning("Attendance page fetch failed: %s", e)
            return None

        token = _first_match(_COOKIE_PATTERNS, resp.headers.get("Set-Cookie", ""))
        if token:
            log.info("Connection token acquired from cookies")
            return token
        token = _first_match(_PAGE_PATTERNS, resp.text)
        if token:
            log.info("Connection token acquired from page markup")
        return token

    def _from_negotiate_endpoint(self, headers):
        params = {
            "clientProtocol": self._protocol,
            "connectionData": json.dumps([{"name": self._hub}], separators=(",", ":")),
            "_": str(int(time.time() * 1000)),
        }
        headers = {**headers, "X-Requested-With": "XMLHttpRequest"}
        try:
            resp = self._session.get(
                f"{self._base_url}/signalr/negotiate",
                params=params, headers=headers, timeout=NEGOTIATE_TIMEOUT_SEC,
            )
        except requests.RequestException as e:
            log.warning("Negotiation error: %s", e)
            return None

        if resp.status_code != 200:
            log.warning("Negotiation failed: HTTP %d", resp.status_code)
            return None
        try:
            token = token_from_negotiate_payload(resp.json())
        except ValueError:
            log.warning("Negotiation returned non-JSON body")
            return None
        if token:
            log.info("Connection token acquired from negotiation")
        else:
            log.warning("Negotiation response had no connection token")
        return token
