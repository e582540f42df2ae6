"""
Data shapes shared across the client: session artifacts, attendance records,
connection state and channel signals.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional


@dataclass(frozen=True)
class SessionArtifacts:
    employee_id: str
    anti_forgery_token: str       # consumed by the login attempt that fetched it
    session_cookie: str           # Cookie header value, "" if the server set none


class AccessStatus(str, Enum):
    GRANTED = "ACCESS_GRANTED"
    DENIED = "ACCESS_DENIED"

    @classmethod
    def from_access_result(cls, value):
        """1 (or "1") → GRANTED; anything else, including missing → DENIED."""
        if isinstance(value, bool):
            return cls.DENIED
        if value == 1 or (isinstance(value, str) and value.strip() == "1"):
            return cls.GRANTED
        return cls.DENIED


class ConnectionState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    DISCONNECTED = "disconnected"
    FAILED = "failed"


class Signal(str, Enum):
    NEW_DATA_AVAILABLE = "NEW_DATA_AVAILABLE"
    CONNECTED = "CONNECTED"
    DISCONNECTED = "DISCONNECTED"
    RECONNECTING = "RECONNECTING"
    CONNECTION_FAILED = "CONNECTION_FAILED"


_NET_DATE = re.compile(r"/Date\((-?\d+)\)/")


def parse_net_date(value):
    """'/Date(1700000000000)/' → aware UTC datetime; None if unparsable."""
    if not value:
        return None
    match = _NET_DATE.search(str(value))
    if not match:
        return None
    try:
        return datetime.fromtimestamp(int(match.group(1)) / 1000, tz=timezone.utc)
    except (ValueError, OverflowError, OSError):
        return None


def _parse_temperature(value):
    if value in (None, ""):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class AttendanceRecord:
    record_id: Optional[int]
    timestamp: Optional[datetime]
    temperature: Optional[float]
    employee_id: str
    employee_name: str
    machine_name: str
    status: AccessStatus

    @classmethod
    def from_api(cls, row):
        """Build a record from one row of the IndexData JSON payload."""
        return cls(
            record_id=row.get("Id"),
            timestamp=parse_net_date(row.get("DateTimeStamp") or row.get("Date")),
            temperature=_parse_temperature(row.get("Temperature")),
            employee_id=str(row.get("EmployeeID") or row.get("EmployeeId") or ""),
            employee_name=row.get("Name") or row.get("EmployeeName") or "",
            machine_name=row.get("MachineName") or row.get("Device") or "",
            status=AccessStatus.from_access_result(row.get("AccessResult")),
        )

    @property
    def granted(self) -> bool:
        return self.status is AccessStatus.GRANTED

    @property
    def key(self):
        """Identity used for new-record detection."""
        stamp = self.timestamp.isoformat() if self.timestamp else ""
        return (self.employee_id, stamp, self.status.value)


@dataclass
class AttendancePage:
    records: List[AttendanceRecord] = field(default_factory=list)
    total_count: int = 0
