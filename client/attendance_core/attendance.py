"""
Attendance data fetch — DataTables-style query against IndexData.

Every request carries the stored session cookie. No retries here: whoever
triggered the fetch (manual refresh, notification, poll) owns that policy.
"""

from datetime import datetime
from urllib.parse import quote

import requests

from .config import log
from .constants import (
    ATTENDANCE_COLUMNS, DEFAULT_RECORDS_LENGTH, FETCH_TIMEOUT_SEC, STORAGE_KEYS,
)
from .errors import FetchError, ServerError, Unauthorized
from .http_client import create_session, origin_of
from .models import AttendancePage, AttendanceRecord

MONTH_NAMES = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)


def month_name(month=None):
    """
    None → current month; 1..12 (int or digit string) or an English month
    name in any case → canonical name. Raises ValueError otherwise.
    """
    if month is None:
        month = datetime.now().month
    if isinstance(month, str):
        text = month.strip()
        if not text.isdigit():
            for name in MONTH_NAMES:
                if name.lower() == text.lower():
                    return name
            raise ValueError(f"Unknown month: {month!r}")
        month = int(text)
    if isinstance(month, bool) or not isinstance(month, int) or not 1 <= month <= 12:
        raise ValueError(f"Month out of range: {month!r}")
    return MONTH_NAMES[month - 1]


def attendance_url(base_url, employee_id, year=None, month=None):
    year = year or datetime.now().year
    return (
        f"{base_url}/Attendance/IndexData/{year}"
        f"?month={quote(month_name(month))}&eid={quote(str(employee_id))}"
    )


def build_payload(length=DEFAULT_RECORDS_LENGTH, start=0, draw=1):
    """Form body the DataTables endpoint expects (newest first)."""
    form = {"draw": str(draw)}
    for index, column in enumerate(ATTENDANCE_COLUMNS):
        prefix = f"columns[{index}]"
        form[f"{prefix}[data]"] = column
        form[f"{prefix}[name]"] = ""
        form[f"{prefix}[searchable]"] = "true"
        form[f"{prefix}[orderable]"] = "true"
        form[f"{prefix}[search][value]"] = ""
        form[f"{prefix}[search][regex]"] = "false"
    form.update({
        "order[0][column]": "1",
        "order[0][dir]": "desc",
        "start": str(start),
        "length": str(length),
        "search[value]": "",
        "search[regex]": "false",
    })
    return form


def parse_page(payload):
    """IndexData JSON → AttendancePage. Raises ServerError on a bad shape."""
    if not isinstance(payload, dict):
        raise ServerError("Attendance payload is not a JSON object")
    rows = payload.get("data") or []
    if not isinstance(rows, list):
        raise ServerError("Attendance payload 'data' is not a list")
    try:
        records = [AttendanceRecord.from_api(row) for row in rows if isinstance(row, dict)]
        total = payload.get("recordsTotal")
        total_count = int(total) if total else len(records)
    except (TypeError, ValueError) as e:
        raise ServerError(f"Malformed attendance payload: {e}") from e
    return AttendancePage(records=records, total_count=total_count)


class AttendanceFetcher:
    """Authenticated attendance queries for one base URL."""

    def __init__(self, config, store, session=None):
        self._base_url = config["baseUrl"]
        self._default_length = config.get("recordsLength", DEFAULT_RECORDS_LENGTH)
        self._store = store
        self._session = session or create_session()

    def fetch(self, employee_id, length=None, year=None, month=None) -> AttendancePage:
        url = attendance_url(self._base_url, employee_id, year, month)
        headers = {
            "Content-Type": "application/x-www-form-urlencoded",
            "Accept": "application/json, text/javascript, */*; q=0.01",
            "X-Requested-With": "XMLHttpRequest",
            "Cookie": self._store.get(STORAGE_KEYS["session_cookie"]) or "",
            "Origin": origin_of(self._base_url),
            "Referer": f"{self._base_url}/Attendance",
        }
        form = build_payload(length or self._default_length)

        try:
            resp = self._session.post(
                url, data=form, headers=headers,
                allow_redirects=False, timeout=FETCH_TIMEOUT_SEC,
            )
        except requests.RequestException as e:
            raise ServerError(f"Network error: {e}") from e

        if resp.status_code in (401, 403):
            raise Unauthorized(f"Session rejected: HTTP {resp.status_code}", resp.status_code)
        if resp.is_redirect and "Account/Login" in resp.headers.get("Location", ""):
            raise Unauthorized("Session expired (redirected to login)", resp.status_code)
        if not resp.ok or resp.is_redirect:
            raise ServerError(f"API error: HTTP {resp.status_code}", resp.status_code)

        try:
            payload = resp.json()
        except ValueError as e:
            if "__RequestVerificationToken" in resp.text:
                raise Unauthorized("Session expired (login page returned)", resp.status_code) from e
            raise ServerError("Attendance response is not JSON", resp.status_code) from e

        page = parse_page(payload)
        log.info("Attendance OK | employee=%s | %d/%d records",
                 employee_id, len(page.records), page.total_count)
        return page

    def fetch_or_none(self, employee_id, **opts):
        """fetch() that returns None on FetchError, so the caller keeps its stale list."""
        try:
            return self.fetch(employee_id, **opts)
        except FetchError as e:
            log.warning("Attendance fetch error: %s", e)
            return None
