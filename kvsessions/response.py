"""
Response - Minimal HTTP response carrying Set-Cookie headers.

Provides:
- RFC 6265 Set-Cookie building from session options
- Multiple header values (one Set-Cookie per cookie)
- ASGI ``http.response.start`` / ``http.response.body`` sending
"""

from __future__ import annotations

from datetime import datetime, timezone
from email.utils import formatdate
from typing import Any, Callable, List, Optional, Tuple

from .config import SessionOptions

_EPOCH = datetime.fromtimestamp(1, tz=timezone.utc)


class Response:
    """
    Response object collecting headers for the host application.

    Example:
        >>> response = Response()
        >>> response.set_cookie("app", "token", max_age=3600, httponly=True)
        >>> response.get_headers("set-cookie")
        ['app=token; Max-Age=3600; Path=/; HttpOnly']
    """

    def __init__(self, content: bytes = b"", status: int = 200, headers: Optional[List[Tuple[str, str]]] = None):
        self.content = content
        self.status = status
        self.headers: List[Tuple[str, str]] = list(headers or [])

    # ========================================================================
    # Header Helpers
    # ========================================================================

    def add_header(self, name: str, value: str) -> None:
        """Add header (supports multiple values)."""
        if "\r" in value or "\n" in value:
            raise ValueError(f"Header {name!r} contains a line break")
        self.headers.append((name.lower(), value))

    def get_headers(self, name: str) -> List[str]:
        """All values of a header, in insertion order."""
        name = name.lower()
        return [value for key, value in self.headers if key == name]

    def cookies(self) -> List[str]:
        """All Set-Cookie header values."""
        return self.get_headers("set-cookie")

    # ========================================================================
    # Cookie Helpers
    # ========================================================================

    def set_cookie(
        self,
        name: str,
        value: str,
        *,
        max_age: Optional[int] = None,
        expires: Optional[datetime] = None,
        path: str = "/",
        domain: Optional[str] = None,
        secure: bool = False,
        httponly: bool = False,
        samesite: Optional[str] = None,
    ) -> None:
        """
        Set a cookie.

        Args:
            name: Cookie name
            value: Cookie value
            max_age: Max age in seconds (emitted as given, negative included)
            expires: Expiration datetime
            path: Cookie path
            domain: Cookie domain
            secure: Secure flag
            httponly: HttpOnly flag
            samesite: SameSite policy (strict, lax, none)
        """
        cookie_parts = [f"{name}={value}"]

        if max_age is not None:
            cookie_parts.append(f"Max-Age={max_age}")

        if expires:
            cookie_parts.append(f"Expires={formatdate(expires.timestamp(), usegmt=True)}")

        if path:
            cookie_parts.append(f"Path={path}")

        if domain:
            cookie_parts.append(f"Domain={domain}")

        if secure:
            cookie_parts.append("Secure")

        if httponly:
            cookie_parts.append("HttpOnly")

        if samesite:
            cookie_parts.append(f"SameSite={samesite.capitalize()}")

        self.add_header("set-cookie", "; ".join(cookie_parts))

    def set_session_cookie(self, name: str, value: str, options: SessionOptions, now: Optional[float] = None) -> None:
        """
        Set a cookie from session options.

        Positive max-age also sets Expires; negative max-age sets an
        Expires in the past so clients drop the cookie; zero sets neither.
        """
        expires = None
        max_age: Optional[int] = None
        if options.max_age > 0:
            max_age = options.max_age
            if now is None:
                now = datetime.now(timezone.utc).timestamp()
            expires = datetime.fromtimestamp(int(now) + options.max_age, tz=timezone.utc)
        elif options.max_age < 0:
            max_age = options.max_age
            expires = _EPOCH

        self.set_cookie(
            name,
            value,
            max_age=max_age,
            expires=expires,
            path=options.path,
            domain=options.domain,
            secure=options.secure,
            httponly=options.http_only,
            samesite=options.same_site,
        )

    # ========================================================================
    # ASGI
    # ========================================================================

    async def send_asgi(self, send: Callable[[dict], Any]) -> None:
        """Send this response over an ASGI ``send`` callable."""
        raw_headers = [
            (name.encode("latin-1"), value.encode("latin-1")) for name, value in self.headers
        ]
        await send({"type": "http.response.start", "status": self.status, "headers": raw_headers})
        await send({"type": "http.response.body", "body": self.content, "more_body": False})
