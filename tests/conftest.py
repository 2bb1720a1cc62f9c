"""
Shared test fixtures and helpers for the KVSessions test suite.
"""

from typing import List, Optional

import pytest
import pytest_asyncio

from kvsessions import (
    DBOptions,
    Request,
    Response,
    SessionOptions,
    SessionStore,
    StoreConfig,
)

HASH_KEY = b"h" * 64
BLOCK_KEY = b"b" * 32


# ============================================================================
# Request Helpers
# ============================================================================


def make_scope(
    method: str = "GET",
    path: str = "/",
    headers: Optional[List[tuple]] = None,
) -> dict:
    """Build a minimal ASGI HTTP scope."""
    raw_headers = []
    if headers:
        for name, value in headers:
            raw_headers.append(
                (name.encode("latin-1") if isinstance(name, str) else name,
                 value.encode("latin-1") if isinstance(value, str) else value)
            )
    return {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": method,
        "path": path,
        "headers": raw_headers,
        "scheme": "http",
        "client": ("127.0.0.1", 12345),
    }


def make_request(cookies: Optional[dict] = None, **kwargs) -> Request:
    """Build a Request carrying the given cookies."""
    headers = list(kwargs.pop("headers", []) or [])
    if cookies:
        headers.append(("cookie", "; ".join(f"{k}={v}" for k, v in cookies.items())))
    return Request(make_scope(headers=headers, **kwargs))


def cookie_value(response: Response, name: str) -> Optional[str]:
    """Value of the last Set-Cookie for ``name`` on the response."""
    value = None
    for header in response.get_headers("set-cookie"):
        pair = header.split(";", 1)[0]
        key, _, val = pair.partition("=")
        if key == name:
            value = val
    return value


def set_cookie_header(response: Response, name: str) -> Optional[str]:
    """Full Set-Cookie header for ``name``."""
    for header in reversed(response.get_headers("set-cookie")):
        if header.startswith(f"{name}="):
            return header
    return None


class FakeClock:
    """Settable time source."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "sessions.db")


@pytest.fixture
def config(db_path):
    return StoreConfig(
        db=DBOptions(path=db_path, bucket_name="sessions"),
        session=SessionOptions(max_age=3600),
    )


@pytest_asyncio.fixture
async def store(config, clock):
    store = await SessionStore.open(config, (HASH_KEY, BLOCK_KEY), clock=clock)
    yield store
    await store.close()
