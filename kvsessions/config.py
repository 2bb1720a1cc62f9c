"""
KVSessions - Store configuration.

StoreConfig groups:
- DBOptions: database file path and bucket name
- SessionOptions: default cookie options copied into every new session
- serializer / cookie_max_age: values encoding and cookie timestamp window

Zero or empty values are replaced by defaults when the store is built.
Configuration may also be loaded from the environment (KVS_ prefix, ``__``
for nesting) and ``.env`` files.
"""

from __future__ import annotations

import json
import os
import re
from copy import copy
from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, Literal, Optional

from dotenv import dotenv_values

from .faults import ConfigFault

DEFAULT_DB_PATH = "./sessions.db"
DEFAULT_BUCKET_NAME = "sessions"
DEFAULT_MAX_AGE = 60 * 60 * 24 * 30
DEFAULT_COOKIE_PATH = "/"
DEFAULT_SERIALIZER = "pickle"

_BUCKET_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@dataclass
class DBOptions:
    """
    Embedded database options.

    Attributes:
        path: Database file path
        bucket_name: Namespace (table) holding session records
    """

    path: str = ""
    bucket_name: str = ""


@dataclass
class SessionOptions:
    """
    Cookie options.

    Attributes:
        max_age: Lifetime in seconds; 0 means default, < 0 deletes on save
        path: Cookie path
        domain: Cookie domain
        secure: Secure flag (HTTPS only)
        http_only: HttpOnly flag
        same_site: SameSite policy
    """

    max_age: int = 0
    path: str = ""
    domain: Optional[str] = None
    secure: bool = False
    http_only: bool = False
    same_site: Optional[Literal["strict", "lax", "none"]] = None

    def copy(self) -> "SessionOptions":
        return copy(self)


@dataclass
class StoreConfig:
    """
    Session store configuration.

    Example:
        >>> config = StoreConfig(
        ...     db=DBOptions(path="/var/lib/app/sessions.db", bucket_name="sessions"),
        ...     session=SessionOptions(max_age=3600, http_only=True),
        ... )
    """

    db: DBOptions = field(default_factory=DBOptions)
    session: SessionOptions = field(default_factory=SessionOptions)
    serializer: str = ""
    cookie_max_age: int = 0

    def with_defaults(self) -> "StoreConfig":
        """
        Return a copy with defaults applied to every zero-valued option.

        Raises:
            ConfigFault: Invalid bucket name or negative cookie max age
        """
        db = replace(
            self.db,
            path=self.db.path or DEFAULT_DB_PATH,
            bucket_name=self.db.bucket_name or DEFAULT_BUCKET_NAME,
        )
        session = replace(
            self.session,
            max_age=self.session.max_age or DEFAULT_MAX_AGE,
            path=self.session.path or DEFAULT_COOKIE_PATH,
        )
        config = StoreConfig(
            db=db,
            session=session,
            serializer=self.serializer or DEFAULT_SERIALIZER,
            cookie_max_age=self.cookie_max_age or DEFAULT_MAX_AGE,
        )
        config.validate()
        return config

    def validate(self) -> None:
        if not _BUCKET_RE.match(self.db.bucket_name):
            raise ConfigFault(
                f"bucket name {self.db.bucket_name!r} must be alphanumeric or underscore",
                field="db.bucket_name",
            )
        if self.cookie_max_age < 0:
            raise ConfigFault("must not be negative", field="cookie_max_age")
        if self.session.same_site not in (None, "strict", "lax", "none"):
            raise ConfigFault(
                f"unsupported SameSite policy {self.session.same_site!r}",
                field="session.same_site",
            )

    # ========================================================================
    # Loading
    # ========================================================================

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StoreConfig":
        """
        Build configuration from a nested dictionary.

        Example:
            >>> StoreConfig.from_dict({"db": {"path": "s.db"}, "session": {"max_age": 60}})
        """
        data = dict(data)
        db = _instantiate(DBOptions, data.pop("db", {}) or {}, "db")
        session = _instantiate(SessionOptions, data.pop("session", {}) or {}, "session")
        top = _instantiate(_TopLevel, data, "")
        return cls(db=db, session=session, serializer=top.serializer, cookie_max_age=top.cookie_max_age)

    @classmethod
    def from_env(
        cls,
        prefix: str = "KVS_",
        env_file: Optional[str] = None,
        environ: Optional[Dict[str, str]] = None,
    ) -> "StoreConfig":
        """
        Load configuration from a .env file and environment variables.

        Environment variables override the .env file. Nested keys use
        double underscores: KVS_DB__PATH, KVS_SESSION__MAX_AGE.

        Args:
            prefix: Environment variable prefix
            env_file: Optional path to a .env file
            environ: Environment mapping (defaults to os.environ)
        """
        raw: Dict[str, Optional[str]] = {}
        if env_file:
            raw.update(dotenv_values(env_file))
        raw.update(os.environ if environ is None else environ)

        data: Dict[str, Any] = {}
        for key, value in raw.items():
            if not key.startswith(prefix) or value is None:
                continue
            _set_nested(data, key[len(prefix):], value)
        return cls.from_dict(data)


@dataclass
class _TopLevel:
    serializer: str = ""
    cookie_max_age: int = 0


def _instantiate(config_class: type, data: Dict[str, Any], section: str):
    if not isinstance(data, dict):
        raise ConfigFault("expected a mapping", field=section or None)
    known = {f.name: f for f in fields(config_class)}
    for key in data:
        if key not in known:
            name = f"{section}.{key}" if section else key
            raise ConfigFault("unknown option", field=name)
    return config_class(**data)


def _set_nested(data: Dict[str, Any], key: str, value: str) -> None:
    """Convert DB__BUCKET_NAME to {"db": {"bucket_name": ...}}."""
    parts = key.lower().split("__")
    current = data
    for part in parts[:-1]:
        current = current.setdefault(part, {})
        if not isinstance(current, dict):
            raise ConfigFault("cannot nest options under a scalar value", field=part)
    current[parts[-1]] = _parse_value(value)


def _parse_value(value: str) -> Any:
    """Parse string value to appropriate type."""
    if value.lower() in ("true", "yes", "on"):
        return True
    if value.lower() in ("false", "no", "off"):
        return False
    if value == "":
        return value

    try:
        return int(value)
    except ValueError:
        pass

    if value.startswith(("{", "[")):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            pass

    return value
