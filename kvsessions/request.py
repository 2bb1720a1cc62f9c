"""
Request - Minimal ASGI request wrapper for session lookup.

Provides:
- Header access over the ASGI scope (case-insensitive)
- Cookie parsing
- A per-request ``state`` dict (holds the session registry)
"""

from __future__ import annotations

from http.cookies import CookieError, SimpleCookie
from typing import Any, Dict, List, Mapping, Optional, Tuple


class Request:
    """
    Request object wrapping an ASGI HTTP scope.

    Example:
        >>> request = Request(scope)
        >>> request.cookie("app")
        'MTcw...'
    """

    def __init__(self, scope: Mapping[str, Any]):
        self.scope = scope

        # State
        self.state: Dict[str, Any] = {}

        # Cached values
        self._headers: Optional[Dict[str, List[str]]] = None
        self._cookies: Optional[Dict[str, str]] = None

    @classmethod
    def from_headers(cls, headers: List[Tuple[str, str]], *, path: str = "/", method: str = "GET") -> "Request":
        """Build a request from (name, value) string pairs."""
        scope = {
            "type": "http",
            "method": method,
            "path": path,
            "headers": [(k.lower().encode("latin-1"), v.encode("latin-1")) for k, v in headers],
        }
        return cls(scope)

    # ========================================================================
    # Basic Properties
    # ========================================================================

    @property
    def method(self) -> str:
        """HTTP method (GET, POST, etc.)."""
        return self.scope.get("method", "GET")

    @property
    def path(self) -> str:
        """Request path (decoded)."""
        return self.scope.get("path", "/")

    # ========================================================================
    # Headers
    # ========================================================================

    @property
    def headers(self) -> Dict[str, List[str]]:
        """Headers keyed by lower-case name."""
        if self._headers is None:
            parsed: Dict[str, List[str]] = {}
            for name, value in self.scope.get("headers", []):
                if isinstance(name, bytes):
                    name = name.decode("latin-1")
                if isinstance(value, bytes):
                    value = value.decode("latin-1")
                parsed.setdefault(name.lower(), []).append(value)
            self._headers = parsed
        return self._headers

    def header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Get single header (case-insensitive)."""
        values = self.headers.get(name.lower())
        if not values:
            return default
        return values[0]

    # ========================================================================
    # Cookies
    # ========================================================================

    @property
    def cookies(self) -> Mapping[str, str]:
        """
        Get parsed cookies from every Cookie header.

        Each ``;``-separated pair is parsed on its own, so one malformed
        cookie does not hide the others. The first value of a name wins.
        """
        if self._cookies is None:
            cookies: Dict[str, str] = {}
            for cookie_header in self.headers.get("cookie", []):
                for pair in cookie_header.split(";"):
                    pair = pair.strip()
                    if not pair:
                        continue
                    cookie = SimpleCookie()
                    try:
                        cookie.load(pair)
                    except CookieError:
                        continue
                    for key, morsel in cookie.items():
                        cookies.setdefault(key, morsel.value)
            self._cookies = cookies
        return self._cookies

    def cookie(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Get single cookie value."""
        return self.cookies.get(name, default)
