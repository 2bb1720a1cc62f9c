"""
KVSessions - Pluggable serializers for session values.

The values mapping is serialized before it is embedded in a record:
- pickle (default): structure preserving, arbitrary Python objects
- msgpack: compact, cross-language
- json: safe, human-readable

Serialization failures are raised as MalformedRecordFault.
"""

from __future__ import annotations

import json
import logging
import pickle
from typing import Any, Protocol

from .faults import ConfigFault, MalformedRecordFault

logger = logging.getLogger("kvsessions.serializers")


class ValuesSerializer(Protocol):
    """Converts a session values mapping to bytes and back."""

    name: str

    def serialize(self, values: dict[Any, Any]) -> bytes:
        ...

    def deserialize(self, data: bytes) -> dict[Any, Any]:
        ...


class PickleSerializer:
    """
    Pickle serializer - keeps tuples, sets, datetimes and custom classes.

    Values are only ever read back from the server-side store, never from
    client input.
    """

    name = "pickle"

    def serialize(self, values: dict[Any, Any]) -> bytes:
        try:
            return pickle.dumps(values, protocol=pickle.HIGHEST_PROTOCOL)
        except (pickle.PicklingError, TypeError, AttributeError) as e:
            raise MalformedRecordFault(f"pickle serialization failed: {e}") from e

    def deserialize(self, data: bytes) -> dict[Any, Any]:
        try:
            values = pickle.loads(data)
        except Exception as e:
            raise MalformedRecordFault(f"pickle deserialization failed: {e}") from e
        return _require_mapping(values)


class MsgpackSerializer:
    """
    MessagePack serializer - compact binary, cross-language.

    Requires `msgpack` package: pip install kvsessions[msgpack]
    """

    name = "msgpack"

    def __init__(self):
        try:
            import msgpack
        except ImportError:
            raise ConfigFault(
                "msgpack serializer requires the 'msgpack' package "
                "(pip install kvsessions[msgpack])",
                field="serializer",
            )
        self._msgpack = msgpack

    def serialize(self, values: dict[Any, Any]) -> bytes:
        try:
            return self._msgpack.packb(values, use_bin_type=True)
        except (TypeError, ValueError, OverflowError) as e:
            raise MalformedRecordFault(f"msgpack serialization failed: {e}") from e

    def deserialize(self, data: bytes) -> dict[Any, Any]:
        try:
            values = self._msgpack.unpackb(data, raw=False, strict_map_key=False)
        except Exception as e:
            raise MalformedRecordFault(f"msgpack deserialization failed: {e}") from e
        return _require_mapping(values)


class JsonSerializer:
    """JSON serializer - string keys and JSON primitives only."""

    name = "json"

    def serialize(self, values: dict[Any, Any]) -> bytes:
        try:
            return json.dumps(values, ensure_ascii=False, separators=(",", ":")).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise MalformedRecordFault(f"JSON serialization failed: {e}") from e

    def deserialize(self, data: bytes) -> dict[Any, Any]:
        try:
            values = json.loads(data.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise MalformedRecordFault(f"JSON deserialization failed: {e}") from e
        return _require_mapping(values)


def _require_mapping(values: Any) -> dict[Any, Any]:
    if not isinstance(values, dict):
        raise MalformedRecordFault(f"session values must decode to a mapping, got {type(values).__name__}")
    return values


_SERIALIZERS = {
    "pickle": PickleSerializer,
    "msgpack": MsgpackSerializer,
    "json": JsonSerializer,
}


def get_serializer(name: str = "pickle") -> ValuesSerializer:
    """
    Factory for serializer instances.

    Args:
        name: "pickle", "msgpack", or "json"

    Raises:
        ConfigFault: Unknown serializer name
    """
    cls = _SERIALIZERS.get(name)
    if cls is None:
        raise ConfigFault(
            f"unknown serializer {name!r}, options: {sorted(_SERIALIZERS)}",
            field="serializer",
        )
    logger.debug(f"Using {name} values serializer")
    return cls()
