"""
KVSessions - Wire record codec.

A stored session is a compact binary message with two fields:

    field 1 (length-delimited): values   serialized session values
    field 2 (varint, int64):    expires_at   Unix seconds, 0 = never

The layout follows the protobuf wire format so records written by older
deployments of the store stay readable across restarts. Unknown fields
are skipped on decode.
"""

from __future__ import annotations

import time
from dataclasses import dataclass

from .faults import MalformedRecordFault

__all__ = ["SessionRecord", "encode_record", "decode_record", "expiry_for"]

_FIELD_VALUES = 1
_FIELD_EXPIRES_AT = 2

_WIRE_VARINT = 0
_WIRE_FIXED64 = 1
_WIRE_BYTES = 2
_WIRE_FIXED32 = 5

_MAX_VARINT_BYTES = 10
_UINT64_MASK = (1 << 64) - 1


@dataclass(frozen=True)
class SessionRecord:
    """Decoded session record."""

    values: bytes = b""
    expires_at: int = 0

    def is_expired(self, now: float | None = None) -> bool:
        """A record with a nonzero expiry in the past is logically absent."""
        if self.expires_at <= 0:
            return False
        if now is None:
            now = time.time()
        return self.expires_at < int(now)


def expiry_for(max_age: int, now: float | None = None) -> int:
    """Absolute expiry for a max-age; 0 when max-age is not positive."""
    if max_age <= 0:
        return 0
    if now is None:
        now = time.time()
    return int(now) + int(max_age)


def encode_record(values: bytes, max_age: int, now: float | None = None) -> bytes:
    """
    Pack serialized values and an expiry computed from max-age.

    Args:
        values: Serialized session values
        max_age: Session lifetime in seconds (<= 0 means no expiry)
        now: Current Unix time (defaults to time.time())

    Returns:
        Record bytes
    """
    if not isinstance(values, (bytes, bytearray)):
        raise MalformedRecordFault(f"values must be bytes, not {type(values).__name__}")

    out = bytearray()
    out += _encode_varint((_FIELD_VALUES << 3) | _WIRE_BYTES)
    out += _encode_varint(len(values))
    out += values
    out += _encode_varint((_FIELD_EXPIRES_AT << 3) | _WIRE_VARINT)
    out += _encode_varint(expiry_for(max_age, now) & _UINT64_MASK)
    return bytes(out)


def decode_record(data: bytes) -> SessionRecord:
    """
    Unpack record bytes.

    Raises:
        MalformedRecordFault: Truncated or structurally invalid input
    """
    if not isinstance(data, (bytes, bytearray, memoryview)):
        raise MalformedRecordFault(f"record must be bytes, not {type(data).__name__}")

    buf = bytes(data)
    values = b""
    expires_at = 0
    pos = 0

    while pos < len(buf):
        key, pos = _decode_varint(buf, pos)
        field_number, wire_type = key >> 3, key & 0x7
        if field_number == 0:
            raise MalformedRecordFault("field number 0 is invalid")

        if wire_type == _WIRE_VARINT:
            value, pos = _decode_varint(buf, pos)
            if field_number == _FIELD_EXPIRES_AT:
                expires_at = _to_int64(value)
        elif wire_type == _WIRE_BYTES:
            length, pos = _decode_varint(buf, pos)
            end = pos + length
            if end > len(buf):
                raise MalformedRecordFault("length-delimited field runs past end of record")
            if field_number == _FIELD_VALUES:
                values = buf[pos:end]
            pos = end
        elif wire_type == _WIRE_FIXED64:
            pos = _skip(buf, pos, 8)
        elif wire_type == _WIRE_FIXED32:
            pos = _skip(buf, pos, 4)
        else:
            raise MalformedRecordFault(f"unsupported wire type {wire_type}")

    return SessionRecord(values=values, expires_at=expires_at)


# ============================================================================
# Varint helpers
# ============================================================================

def _encode_varint(value: int) -> bytes:
    out = bytearray()
    while True:
        bits = value & 0x7F
        value >>= 7
        if value:
            out.append(bits | 0x80)
        else:
            out.append(bits)
            return bytes(out)


def _decode_varint(buf: bytes, pos: int) -> tuple[int, int]:
    result = 0
    shift = 0
    for _ in range(_MAX_VARINT_BYTES):
        if pos >= len(buf):
            raise MalformedRecordFault("truncated varint")
        byte = buf[pos]
        pos += 1
        result |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return result & _UINT64_MASK, pos
        shift += 7
    raise MalformedRecordFault("varint too long")


def _to_int64(value: int) -> int:
    if value >= 1 << 63:
        return value - (1 << 64)
    return value


def _skip(buf: bytes, pos: int, size: int) -> int:
    if pos + size > len(buf):
        raise MalformedRecordFault("fixed-width field runs past end of record")
    return pos + size
