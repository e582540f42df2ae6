"""
Session authentication — two-step login handshake against the identity provider.

  1. GET  {auth}/Account/Login?ReturnUrl=...   → anti-forgery token
  2. POST {auth}/Account/Login (redirects off) → session cookie

The server exposes no explicit "login ok" field. Success is inferred from the
raw submission response (see is_login_success); keep the heuristic until the
upstream service offers something better.
"""

import re
import threading
from urllib.parse import quote

import requests

from .config import log
from .constants import (
    LOGIN_TIMEOUT_SEC, FETCH_TIMEOUT_SEC, LOGIN_FORM_MARKER,
    LANDING_PAGE_MARKER, REDIRECT_STATUSES, STORAGE_KEYS,
)
from .attendance import attendance_url
from .errors import (
    AuthError, PageUnreachable, TokenNotFound, InvalidCredentials, LoginInProgress,
)
from .http_client import create_session, origin_of
from .models import SessionArtifacts


# ─── Token extraction ────────────────────────────────────────────

_TOKEN_PATTERNS = (
    re.compile(r'name="__RequestVerificationToken"[^>]*value="([^"]*)"', re.IGNORECASE),
    re.compile(r"name='__RequestVerificationToken'[^>]*value='([^']*)'", re.IGNORECASE),
    # Reversed attribute order: value first, then name.
    re.compile(
        r"""value=["']([^"']*)["'][^>]*name=["']__RequestVerificationToken["']""",
        re.IGNORECASE,
    ),
)


def extract_token(html):
    """Return the anti-forgery token from login markup, or None."""
    if not html:
        return None
    for pattern in _TOKEN_PATTERNS:
        match = pattern.search(html)
        if match and match.group(1):
            return match.group(1)
    return None


# ─── Success heuristic ───────────────────────────────────────────

def is_login_success(status_code, body):
    """
    Redirect, OR no login-form markup in the body, OR landing-page markup.
    """
    if status_code in REDIRECT_STATUSES:
        return True
    body = body or ""
    return LOGIN_FORM_MARKER not in body or LANDING_PAGE_MARKER in body


# ─── Cookie capture ──────────────────────────────────────────────

# requests folds repeated Set-Cookie headers into one comma-joined string.
# Split only on commas that start a new "name=" pair (not inside Expires dates).
_SET_COOKIE_SPLIT = re.compile(r",\s*(?=[^;,\s]+=)")


def cookie_header_from(response):
    """Reduce a response's Set-Cookie header(s) to a Cookie header value."""
    values = []
    raw_headers = getattr(getattr(response, "raw", None), "headers", None)
    if raw_headers is not None and hasattr(raw_headers, "getlist"):
        values = list(raw_headers.getlist("Set-Cookie"))
    if not values:
        merged = response.headers.get("Set-Cookie", "")
        values = _SET_COOKIE_SPLIT.split(merged) if merged else []

    pairs = {}
    for value in values:
        pair = value.split(";", 1)[0].strip()
        if "=" not in pair:
            continue
        name, _, cookie_value = pair.partition("=")
        pairs[name.strip()] = cookie_value.strip()
    return "; ".join(f"{name}={value}" for name, value in pairs.items())


# ─── Authenticator ───────────────────────────────────────────────

class SessionAuthenticator:
    """Owns the login handshake and the identity/cookie keys of the store."""

    def __init__(self, config, store, session=None):
        self._base_url = config["baseUrl"]
        self._auth_base = config["authBaseUrl"]
        self._store = store
        self._session = session or create_session()
        self._in_flight = set()
        self._in_flight_lock = threading.Lock()

    @property
    def login_page_url(self):
        return_url = quote(self._base_url + "/", safe="")
        return f"{self._auth_base}/Account/Login?ReturnUrl={return_url}"

    def authenticate(self, employee_id, password) -> SessionArtifacts:
        """
        Run the handshake once. Raises an AuthError subclass on failure;
        the store is only written on success.
        """
        with self._in_flight_lock:
            if employee_id in self._in_flight:
                raise LoginInProgress(f"Login already in progress for {employee_id}")
            self._in_flight.add(employee_id)
        try:
            return self._authenticate(employee_id, password)
        finally:
            with self._in_flight_lock:
                self._in_flight.discard(employee_id)

    def _authenticate(self, employee_id, password):
        self._session.cookies.clear()

        # Step 1: login page → token
        try:
            page = self._session.get(self.login_page_url, timeout=LOGIN_TIMEOUT_SEC)
        except requests.RequestException as e:
            raise PageUnreachable(f"Login page unreachable: {e}") from e
        if not page.ok:
            raise PageUnreachable(f"Failed to load login page: HTTP {page.status_code}")

        html = page.text
        token = extract_token(html)
        if not token:
            log.error("Security token not found in login page")
            log.debug("Login page body: %s", html[:2000])
            raise TokenNotFound(body=html)

        # Step 2: submit credentials, inspect the raw response
        form = {
            "__RequestVerificationToken": token,
            "EmployeeID": employee_id,
            "Password": password,
            "RememberMe": "false",
        }
        headers = {
            "Content-Type": "application/x-www-form-urlencoded",
            "Referer": self.login_page_url,
            "Origin": origin_of(self._auth_base),
        }
        try:
            resp = self._session.post(
                f"{self._auth_base}/Account/Login",
                data=form,
                headers=headers,
                allow_redirects=False,
                timeout=LOGIN_TIMEOUT_SEC,
            )
        except requests.RequestException as e:
            raise PageUnreachable(f"Login submission failed: {e}") from e

        if not is_login_success(resp.status_code, resp.text):
            log.warning("Login rejected for %s (HTTP %d)", employee_id, resp.status_code)
            raise InvalidCredentials("Invalid employee ID or password")

        cookie = cookie_header_from(resp)
        self._store.set(STORAGE_KEYS["employee_id"], employee_id)
        if cookie:
            self._store.set(STORAGE_KEYS["session_cookie"], cookie)
        else:
            # Never pair the new identity with a previous identity's cookie.
            self._store.delete(STORAGE_KEYS["session_cookie"])
            log.warning("Login accepted but no session cookie was issued")
        log.info("Login OK | employee=%s | status=%d", employee_id, resp.status_code)

        return SessionArtifacts(
            employee_id=employee_id,
            anti_forgery_token=token,
            session_cookie=cookie,
        )

    def login(self, employee_id, password):
        """bool wrapper around authenticate(). Never raises for auth failures."""
        try:
            self.authenticate(employee_id, password)
            return True
        except AuthError as e:
            log.error("Login error: %s", e)
            return False

    def logout(self):
        self._store.delete(STORAGE_KEYS["employee_id"])
        self._store.delete(STORAGE_KEYS["session_cookie"])
        self._session.cookies.clear()
        log.info("Logged out, stored session cleared")

    def stored_identity(self):
        return self._store.get(STORAGE_KEYS["employee_id"])

    def session_cookie(self):
        return self._store.get(STORAGE_KEYS["session_cookie"])

    def test_access(self, employee_id):
        """True if the stored session can still query attendance data."""
        headers = {
            "Content-Type": "application/x-www-form-urlencoded",
            "Referer": f"{self._base_url}/Attendance",
            "Cookie": self.session_cookie() or "",
        }
        try:
            resp = self._session.post(
                attendance_url(self._base_url, employee_id),
                data={"draw": "1", "start": "0", "length": "1"},
                headers=headers,
                allow_redirects=False,
                timeout=FETCH_TIMEOUT_SEC,
            )
        except requests.RequestException as e:
            log.warning("Access test network error: %s", e)
            return False
        return 200 <= resp.status_code < 300
