"""
Constants: endpoints, protocol values, timeouts, reconnect policy, storage keys.
"""

CLIENT_VERSION = "1.2.0"

# ─── Endpoints ───────────────────────────────────────────────────
DEFAULT_BASE_URL = "https://attendance.caraga.nia.gov.ph"
DEFAULT_AUTH_BASE_URL = "https://accounts.nia.gov.ph"

USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"

# ─── SignalR ─────────────────────────────────────────────────────
SIGNALR_HUB_NAME = "biohub"
SIGNALR_CLIENT_PROTOCOL = "1.5"
SIGNALR_UPDATE_METHOD = "update"
SIGNALR_JOIN_METHOD = "Join"
WS_PING_INTERVAL_SEC = 30
WS_PING_TIMEOUT_SEC = 10

# ─── Reconnect policy ────────────────────────────────────────────
MAX_RECONNECT_ATTEMPTS = 5
RECONNECT_BASE_DELAY_MS = 1000
RECONNECT_MAX_DELAY_MS = 30000

# ─── Network ─────────────────────────────────────────────────────
LOGIN_TIMEOUT_SEC = 20
FETCH_TIMEOUT_SEC = 25
NEGOTIATE_TIMEOUT_SEC = 15
POLL_INTERVAL_SEC = 30          # Fallback refresh while the channel is down

# ─── Attendance query ────────────────────────────────────────────
DEFAULT_RECORDS_LENGTH = 50
ATTENDANCE_COLUMNS = (
    "Id",
    "DateTimeStamp",
    "Temperature",
    "Name",
    "EmployeeID",
    "MachineName",
)

# ─── Login heuristics ────────────────────────────────────────────
# Markup seen on the login form / post-login landing page.
LOGIN_FORM_MARKER = "Login"
LANDING_PAGE_MARKER = "Dashboard"
REDIRECT_STATUSES = frozenset({301, 302, 303, 307, 308})

# ─── Credential store keys ───────────────────────────────────────
STORAGE_KEYS = {
    "employee_id": "employeeId",
    "session_cookie": "sessionCookies",
}

LOGIN_FAILED_MESSAGE = "Login failed. Please check your credentials."
