"""
HTTP sessions with connection pooling, browser-like headers, and CA bundle.

Login and attendance sessions are built with retries disabled: the caller
decides whether to retry. Only connection-token negotiation opts into the
urllib3 retry policy.
"""

import os

import certifi
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .constants import USER_AGENT

_negotiate_retry = Retry(
    total=3,
    backoff_factor=1,                           # Wait 1s, 2s, 4s between retries
    status_forcelist=[502, 503, 504],
    allowed_methods=["HEAD", "GET"],
)

_no_retry = Retry(total=0, redirect=0, raise_on_status=False)

DEFAULT_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
}


def _get_ca_bundle():
    """CA bundle path: env var if it points at a file, else certifi."""
    env_ca = os.environ.get("REQUESTS_CA_BUNDLE") or os.environ.get("SSL_CERT_FILE")
    if env_ca and os.path.isfile(env_ca):
        return env_ca
    return certifi.where()


def create_session(retry=False):
    """Create a requests.Session with pooling, headers and SSL verification."""
    session = requests.Session()
    adapter = HTTPAdapter(
        pool_connections=2,
        pool_maxsize=4,
        max_retries=_negotiate_retry if retry else _no_retry,
    )
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    session.headers.update(DEFAULT_HEADERS)
    session.verify = _get_ca_bundle()
    return session


def origin_of(url):
    """'https://host/path' -> 'https://host'."""
    scheme, _, rest = url.partition("://")
    return f"{scheme}://{rest.split('/')[0]}"
