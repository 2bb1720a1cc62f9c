"""
KVSessions - Session store.

SessionStore drives the session lifecycle against the embedded database:
1. Lookup - decode the identifier from the request cookie
2. Load - read the record, drop it if expired, decode values
3. Mutation - the application reads/writes session values
4. Save - persist the record, then emit the secured cookie
5. Delete - negative max-age removes the record and expires the cookie

Expiration is enforced lazily on load; there is no background sweeper.
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable

from .backend import KVBackend
from .config import StoreConfig
from .core import Session, generate_session_id
from .faults import CookieDecodeFault, MalformedRecordFault, hash_session_id
from .record import decode_record, encode_record
from .registry import SessionRegistry
from .request import Request
from .response import Response
from .securecookie import SecureCookie, codecs_from_pairs, decode_multi, encode_multi
from .serializers import ValuesSerializer, get_serializer

__all__ = ["SessionStore", "session_store"]


class SessionStore:
    """
    File-backed session store.

    The store owns one database handle for the life of the process. Build
    it once at startup with ``SessionStore.open`` (or ``session_store``)
    and pass it to request handlers.

    Example:
        >>> store = await SessionStore.open(
        ...     StoreConfig(session=SessionOptions(max_age=3600)),
        ...     (hash_key, block_key),
        ... )
        >>> session = await store.get(request, "app")
        >>> session["uid"] = "42"
        >>> await store.save(request, response, session)
        >>> await store.close()
    """

    def __init__(
        self,
        config: StoreConfig,
        *key_pairs,
        clock: Callable[[], float] = time.time,
        logger: logging.Logger | None = None,
    ):
        """
        Build the store without opening the database.

        Args:
            config: Store configuration (defaults applied to a copy)
            *key_pairs: (hash_key, block_key) pairs, newest first
            clock: Time source returning Unix seconds
            logger: Optional logger

        Raises:
            ConfigFault: Invalid configuration or keys
        """
        self.config = config.with_defaults()
        self.clock = clock
        self.codecs: list[SecureCookie] = codecs_from_pairs(
            *key_pairs,
            max_age=self.config.cookie_max_age,
            clock=self._now,
        )
        self.serializer: ValuesSerializer = get_serializer(self.config.serializer)
        self.backend = KVBackend(self.config.db.path)
        self.logger = logger or logging.getLogger("kvsessions.store")

    @classmethod
    async def open(cls, config: StoreConfig, *key_pairs, **kwargs) -> "SessionStore":
        """
        Create a store and open its database.

        Raises:
            ConfigFault: Invalid configuration or keys
            BackingStoreFault: Database cannot be opened
        """
        store = cls(config, *key_pairs, **kwargs)
        await store.backend.open(store.bucket)
        return store

    @property
    def bucket(self) -> str:
        return self.config.db.bucket_name

    def _now(self) -> float:
        return self.clock()

    # ========================================================================
    # Lookup
    # ========================================================================

    async def get(self, request: Request, name: str) -> Session:
        """
        Return the session for ``name``, registering it for this request.

        Repeated calls within one request return the same instance.
        """
        return await SessionRegistry.for_request(request).get(self, name)

    async def new(self, request: Request, name: str) -> Session:
        """
        Look up or create a session without registering it.

        A cookie that fails to decode leaves the session new and is kept
        on ``session.cookie_error``.

        Raises:
            BackingStoreFault: Database failure while loading
        """
        session = Session(
            name=name,
            store=self,
            options=self.config.session.copy(),
            is_new=True,
        )

        token = request.cookie(name)
        if token is None:
            return session

        try:
            session_id = decode_multi(name, token, self.codecs)
        except CookieDecodeFault as fault:
            session.cookie_error = fault
            self.logger.debug(f"Session cookie {name!r} rejected: {fault.reason}")
            return session

        if not isinstance(session_id, str) or not session_id:
            session.cookie_error = CookieDecodeFault("identifier is not a string", cookie_name=name)
            return session

        session.id = session_id
        session.is_new = not await self._load(session)
        return session

    async def _load(self, session: Session) -> bool:
        """
        Load stored values into the session.

        Returns:
            True if a live record was found
        """
        async with self.backend.update(self.bucket, "load") as tx:
            data = await tx.get(session.id)
            if data is None:
                return False

            try:
                record = decode_record(data)
            except MalformedRecordFault as fault:
                self.logger.debug(f"Ignoring unreadable session {hash_session_id(session.id)}: {fault.reason}")
                return False

            if record.is_expired(self._now()):
                await tx.delete(session.id)
                self.logger.debug(f"Removed expired session {hash_session_id(session.id)}")
                return False

        try:
            session.values = self.serializer.deserialize(record.values)
        except MalformedRecordFault as fault:
            self.logger.debug(f"Ignoring undecodable session values {hash_session_id(session.id)}: {fault.reason}")
            session.values = {}
            return False
        return True

    # ========================================================================
    # Save
    # ========================================================================

    async def save(self, request: Request, response: Response, session: Session) -> None:
        """
        Persist the session and set its cookie on the response.

        Negative ``options.max_age`` deletes the record and expires the
        cookie. Otherwise the record is written before the cookie, so a
        failed write never leaves a cookie behind.

        Raises:
            MalformedRecordFault: Values cannot be serialized
            BackingStoreFault: Database failure
            CookieEncodeFault: Cookie cannot be produced (record already stored)
        """
        if session.options.max_age < 0:
            if session.id:
                await self.backend.delete(self.bucket, session.id)
                self.logger.debug(f"Deleted session {hash_session_id(session.id)}")
            response.set_session_cookie(session.name, "", session.options)
            return

        if not session.id:
            session.id = generate_session_id()

        values = self.serializer.serialize(session.values)
        record = encode_record(values, session.options.max_age, self._now())
        await self.backend.put(self.bucket, session.id, record)

        encoded = encode_multi(session.name, session.id, self.codecs)
        response.set_session_cookie(session.name, encoded, session.options, now=self._now())
        self.logger.debug(f"Saved session {hash_session_id(session.id)} for cookie {session.name!r}")

    async def save_all(self, request: Request, response: Response) -> None:
        """Save every session registered for this request."""
        await SessionRegistry.for_request(request).save(response)

    # ========================================================================
    # Shutdown
    # ========================================================================

    async def close(self) -> None:
        """Close the database. Later operations raise StoreClosedFault."""
        await self.backend.close()


@asynccontextmanager
async def session_store(config: StoreConfig, *key_pairs, **kwargs) -> AsyncIterator[SessionStore]:
    """
    Open a store for the duration of a block and always close it.

    Example:
        >>> async with session_store(config, (hash_key, block_key)) as store:
        ...     app.state.sessions = store
        ...     await serve(app)
    """
    store = await SessionStore.open(config, *key_pairs, **kwargs)
    try:
        yield store
    finally:
        await store.close()
