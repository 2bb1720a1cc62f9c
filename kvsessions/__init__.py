"""
KVSessions - File-backed web sessions for async Python applications.

Session values live in an embedded SQLite key-value file; the client cookie
carries only the session identifier, authenticated (and optionally
encrypted) by a secure-cookie codec with key rotation.

Philosophy:
- The cookie is a reference, never the payload
- Expired records disappear lazily, on the next read
- Records are written before cookies are emitted
- Every failure is a typed fault raised to the caller
"""

from .config import (
    DBOptions,
    SessionOptions,
    StoreConfig,
)

from .core import (
    Session,
    generate_session_id,
)

from .store import (
    SessionStore,
    session_store,
)

from .backend import KVBackend

from .record import (
    SessionRecord,
    encode_record,
    decode_record,
)

from .registry import SessionRegistry

from .request import Request
from .response import Response

from .securecookie import (
    SecureCookie,
    codecs_from_pairs,
    encode_multi,
    decode_multi,
    generate_random_key,
)

from .serializers import get_serializer

from .faults import (
    Fault,
    FaultDomain,
    Severity,
    ConfigFault,
    BackingStoreFault,
    StoreClosedFault,
    MalformedRecordFault,
    CookieDecodeFault,
    CookieEncodeFault,
)

__all__ = [
    # Configuration
    "DBOptions",
    "SessionOptions",
    "StoreConfig",
    # Sessions
    "Session",
    "SessionStore",
    "SessionRegistry",
    "session_store",
    "generate_session_id",
    # Storage
    "KVBackend",
    "SessionRecord",
    "encode_record",
    "decode_record",
    "get_serializer",
    # HTTP
    "Request",
    "Response",
    # Cookies
    "SecureCookie",
    "codecs_from_pairs",
    "encode_multi",
    "decode_multi",
    "generate_random_key",
    # Faults
    "Fault",
    "FaultDomain",
    "Severity",
    "ConfigFault",
    "BackingStoreFault",
    "StoreClosedFault",
    "MalformedRecordFault",
    "CookieDecodeFault",
    "CookieEncodeFault",
]

__version__ = "0.1.0"
