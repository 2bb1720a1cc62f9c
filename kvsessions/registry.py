"""
KVSessions - Per-request session registry.

Keeps one Session per cookie name for the lifetime of a single request so
repeated lookups return the same instance and the store is read once.
The registry lives in ``request.state`` and is never persisted.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Dict, Iterator

if TYPE_CHECKING:
    from .core import Session
    from .request import Request
    from .response import Response
    from .store import SessionStore

REGISTRY_STATE_KEY = "kvsessions.registry"


class SessionRegistry:
    """Sessions loaded during one request, keyed by cookie name."""

    def __init__(self, request: "Request"):
        self.request = request
        self._sessions: Dict[str, "Session"] = {}

    @classmethod
    def for_request(cls, request: "Request") -> "SessionRegistry":
        """Return the registry attached to the request, creating it once."""
        registry = request.state.get(REGISTRY_STATE_KEY)
        if registry is None:
            registry = cls(request)
            request.state[REGISTRY_STATE_KEY] = registry
        return registry

    async def get(self, store: "SessionStore", name: str) -> "Session":
        session = self._sessions.get(name)
        if session is None:
            session = await store.new(self.request, name)
            self._sessions[name] = session
        return session

    async def save(self, response: "Response") -> None:
        """Save every registered session; the first failure aborts."""
        for session in list(self._sessions.values()):
            await session.save(self.request, response)

    def __contains__(self, name: str) -> bool:
        return name in self._sessions

    def __iter__(self) -> Iterator["Session"]:
        return iter(self._sessions.values())

    def __len__(self) -> int:
        return len(self._sessions)
