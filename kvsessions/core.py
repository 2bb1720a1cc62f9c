"""
KVSessions - Core types.

- Session: transient, per-request state container
- generate_session_id: opaque random identifier
"""

from __future__ import annotations

import base64
import secrets
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional

from .config import SessionOptions

if TYPE_CHECKING:
    from .faults import CookieDecodeFault
    from .request import Request
    from .response import Response
    from .store import SessionStore

SESSION_ID_BYTES = 32


def generate_session_id() -> str:
    """
    Generate a session identifier.

    32 cryptographically random bytes, base32 encoded with the trailing
    padding stripped: 52 characters from A-Z and 2-7.
    """
    raw = secrets.token_bytes(SESSION_ID_BYTES)
    return base64.b32encode(raw).decode("ascii").rstrip("=")


@dataclass(eq=False)
class Session:
    """
    Session state for one cookie name within one request.

    Attributes:
        name: Cookie name the session travels under
        id: Identifier (empty until first save)
        values: Application data
        options: Cookie options, mutable until save
        is_new: False only when a valid record was loaded
        cookie_error: Fault raised while decoding the inbound cookie, if any

    Example:
        >>> session = await store.get(request, "app")
        >>> session["uid"] = "42"
        >>> await session.save(request, response)
    """

    name: str
    store: Optional["SessionStore"] = field(default=None, repr=False)
    id: str = ""
    values: dict[Any, Any] = field(default_factory=dict)
    options: SessionOptions = field(default_factory=SessionOptions)
    is_new: bool = True
    cookie_error: Optional["CookieDecodeFault"] = field(default=None, repr=False)

    def __getitem__(self, key: Any) -> Any:
        return self.values[key]

    def __setitem__(self, key: Any, value: Any) -> None:
        self.values[key] = value

    def __delitem__(self, key: Any) -> None:
        del self.values[key]

    def __contains__(self, key: Any) -> bool:
        return key in self.values

    def get(self, key: Any, default: Any = None) -> Any:
        return self.values.get(key, default)

    def clear(self) -> None:
        self.values.clear()

    def invalidate(self) -> None:
        """Mark the session for deletion on the next save."""
        self.options.max_age = -1

    async def save(self, request: "Request", response: "Response") -> None:
        """Persist this session through the store that created it."""
        if self.store is None:
            raise RuntimeError(f"Session {self.name!r} is not bound to a store")
        await self.store.save(request, response, self)
