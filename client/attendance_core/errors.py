"""
Client error taxonomy.

Authentication and fetch errors are raised by the low-level calls and turned
into bool / None results at the edges (login(), fetch_or_none()). Channel
errors never leave the channel manager; they are logged and fed into the
reconnect policy.
"""


class ClientError(Exception):
    """Base class for every error raised by attendance_core."""


# ─── Authentication ──────────────────────────────────────────────

class AuthError(ClientError):
    pass


class PageUnreachable(AuthError):
    """Login page (or submission endpoint) could not be reached."""


class TokenNotFound(AuthError):
    """No anti-forgery token in the login page markup."""

    def __init__(self, message="Security token not found", body=""):
        super().__init__(message)
        self.body = body


class InvalidCredentials(AuthError):
    pass


class LoginInProgress(AuthError):
    """Another login for the same identity has not finished yet."""


# ─── Data fetch ──────────────────────────────────────────────────

class FetchError(ClientError):
    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code


class Unauthorized(FetchError):
    """Session cookie missing, expired or rejected."""


class ServerError(FetchError):
    """5xx, unexpected status, network failure or malformed payload."""


# ─── Realtime channel ────────────────────────────────────────────

class ChannelError(ClientError):
    pass


class ConnectionFailed(ChannelError):
    """Reconnect budget exhausted."""


class ParseError(ChannelError):
    """Inbound envelope is not valid JSON or has the wrong shape."""
