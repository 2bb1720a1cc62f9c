"""
KVSessions - Fault definitions.

Errors in KVSessions are typed fault signals, not bare exceptions:
- Fault: Base fault class (code, message, domain, severity)
- FaultDomain: Functional area of a fault
- Severity: Severity levels

Session store faults:
- ConfigFault: Invalid configuration at construction
- BackingStoreFault / StoreClosedFault: Database level failures
- MalformedRecordFault: Stored or outgoing record cannot be (de)serialized
- CookieDecodeFault / CookieEncodeFault: Secure cookie failures
"""

from __future__ import annotations

import hashlib
from enum import Enum
from typing import Any, Optional


# ============================================================================
# Severity & Domain
# ============================================================================

class Severity(str, Enum):
    """
    Fault severity levels.

    Determines logging level and whether the host should alert.
    """
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    FATAL = "fatal"


class FaultDomain:
    """
    Fault domains (taxonomy).

    Identifies the functional area where a fault occurred.
    """

    def __init__(self, name: str, description: str = ""):
        self.name = name
        self.value = name
        self.description = description

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return f"FaultDomain(name='{self.name}')"

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, FaultDomain):
            return self.name == other.name
        return str(self) == str(other)

    def __hash__(self) -> int:
        return hash(self.name)


FaultDomain.CONFIG = FaultDomain("config", "Configuration errors")
FaultDomain.IO = FaultDomain("io", "Backing store I/O")
FaultDomain.SESSION = FaultDomain("session", "Session record errors")
FaultDomain.SECURITY = FaultDomain("security", "Cookie authentication and encryption")


DOMAIN_DEFAULTS = {
    FaultDomain.CONFIG: {"severity": Severity.FATAL, "retryable": False},
    FaultDomain.IO: {"severity": Severity.ERROR, "retryable": False},
    FaultDomain.SESSION: {"severity": Severity.WARN, "retryable": False},
    FaultDomain.SECURITY: {"severity": Severity.WARN, "retryable": False},
}


# ============================================================================
# Fault - Base Class
# ============================================================================

class Fault(Exception):
    """
    Base fault class - structured, typed fault object.

    Attributes:
        code: Stable machine-readable identifier (e.g., "STORE_CLOSED")
        message: Human-readable summary
        severity: Fault severity
        domain: Fault domain
        retryable: Whether this fault can be retried
        public: Whether safe to expose to client
        metadata: Additional context data

    Subclasses declare ``code``, ``message`` and ``domain`` as class
    attributes and may override them per instance.
    """

    def __init__(
        self,
        code: str | None = None,
        message: str | None = None,
        *,
        domain: FaultDomain | None = None,
        severity: Optional[Severity] = None,
        retryable: Optional[bool] = None,
        public: bool = False,
        metadata: Optional[dict[str, Any]] = None,
    ):
        self.code = code if code is not None else getattr(self, "code", None)
        self.message = message if message is not None else getattr(self, "message", None)
        self.domain = domain if domain is not None else getattr(self, "domain", None)

        if self.code is None or self.message is None or self.domain is None:
            raise TypeError(f"{self.__class__.__name__} missing required code, message, or domain")

        super().__init__(self.message)

        defaults = DOMAIN_DEFAULTS.get(self.domain, {"severity": Severity.ERROR, "retryable": False})
        self.severity = severity or getattr(type(self), "severity", None) or defaults["severity"]
        if retryable is None:
            retryable = getattr(type(self), "retryable", None)
        self.retryable = retryable if retryable is not None else defaults["retryable"]
        self.public = public or getattr(type(self), "public", False)
        self.metadata = metadata or {}

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(code={self.code!r}, domain={self.domain.value}, "
            f"severity={self.severity.value}, public={self.public})"
        )

    def to_dict(self) -> dict[str, Any]:
        """
        Serialize fault to dictionary.

        Returns:
            Dictionary representation suitable for logging/serialization
        """
        return {
            "code": self.code,
            "message": self.message,
            "domain": self.domain.value,
            "severity": self.severity.value,
            "retryable": self.retryable,
            "public": self.public,
            "metadata": self.metadata,
        }


def hash_session_id(session_id: str) -> str:
    """Hash session ID for logs and fault metadata (privacy)."""
    return f"sha256:{hashlib.sha256(session_id.encode()).hexdigest()[:16]}"


# ============================================================================
# Configuration Faults
# ============================================================================

class ConfigFault(Fault):
    """
    Invalid or missing configuration at store construction.

    Fatal to store creation.
    """

    code = "SESSION_CONFIG_INVALID"
    message = "Invalid session store configuration"
    domain = FaultDomain.CONFIG

    def __init__(self, reason: str, *, field: str | None = None, **kwargs):
        super().__init__(**kwargs)
        self.reason = reason
        self.field = field
        if field:
            self.message = f"Invalid session store configuration ({field}): {reason}"
        else:
            self.message = f"Invalid session store configuration: {reason}"
        self.args = (self.message,)


# ============================================================================
# Backing Store Faults
# ============================================================================

class BackingStoreFault(Fault):
    """
    Database level failure (open, transaction, get/put/delete).

    The enclosing session operation is aborted and nothing is committed.
    """

    code = "SESSION_BACKING_STORE_ERROR"
    message = "Session backing store error"
    domain = FaultDomain.IO

    def __init__(self, operation: str, cause: str | None = None, **kwargs):
        super().__init__(**kwargs)
        self.operation = operation
        self.cause = cause
        if cause:
            self.message = f"Session backing store failed during {operation}: {cause}"
        else:
            self.message = f"Session backing store failed during {operation}"
        self.args = (self.message,)


class StoreClosedFault(BackingStoreFault):
    """Operation attempted on a closed (or never opened) store."""

    code = "SESSION_STORE_CLOSED"
    message = "Session store is closed"

    def __init__(self, operation: str, **kwargs):
        super().__init__(operation, "store is closed", **kwargs)


# ============================================================================
# Record Faults
# ============================================================================

class MalformedRecordFault(Fault):
    """
    Session record bytes cannot be decoded, or values cannot be serialized.

    Treated as "not found" when loading; fatal when saving.
    """

    code = "SESSION_RECORD_MALFORMED"
    message = "Malformed session record"
    domain = FaultDomain.SESSION

    def __init__(self, reason: str, **kwargs):
        super().__init__(**kwargs)
        self.reason = reason
        self.message = f"Malformed session record: {reason}"
        self.args = (self.message,)


# ============================================================================
# Cookie Faults
# ============================================================================

class CookieDecodeFault(Fault):
    """
    Inbound cookie failed authentication, decryption or decoding.

    The session proceeds as new; the fault is kept for optional logging.
    """

    code = "SESSION_COOKIE_DECODE_FAILED"
    message = "Session cookie could not be decoded"
    domain = FaultDomain.SECURITY
    public = True

    def __init__(self, reason: str, *, cookie_name: str | None = None, **kwargs):
        super().__init__(**kwargs)
        self.reason = reason
        self.cookie_name = cookie_name
        self.message = f"Session cookie could not be decoded: {reason}"
        self.args = (self.message,)


class CookieEncodeFault(Fault):
    """
    Outbound cookie could not be produced.

    The record may already be persisted; it stays orphaned until it expires
    or is overwritten.
    """

    code = "SESSION_COOKIE_ENCODE_FAILED"
    message = "Session cookie could not be encoded"
    domain = FaultDomain.SECURITY
    severity = Severity.ERROR

    def __init__(self, reason: str, *, cookie_name: str | None = None, **kwargs):
        super().__init__(**kwargs)
        self.reason = reason
        self.cookie_name = cookie_name
        self.message = f"Session cookie could not be encoded: {reason}"
        self.args = (self.message,)
