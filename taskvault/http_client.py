"""Shared HTTP client for calls to the identity provider and the task API."""

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

_session: requests.Session | None = None


def get_session() -> requests.Session:
    """Return a shared requests.Session that never retries.

    A failed token exchange or task call is terminal for that attempt; an
    authorization code is single-use, so a transparent retry could spend it twice.
    """
    global _session
    if _session is None:
        _session = requests.Session()
        adapter = HTTPAdapter(max_retries=Retry(total=0, raise_on_status=False))
        _session.mount("http://", adapter)
        _session.mount("https://", adapter)
    return _session


def reset_session() -> None:
    global _session
    _session = None
