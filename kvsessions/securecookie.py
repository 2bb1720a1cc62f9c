"""
KVSessions - Secure cookie codec.

Authenticates (and optionally encrypts) cookie values:

    value -> JSON -> [AES-CTR(iv || ciphertext)] -> base64url
    mac   = HMAC-SHA256(hash_key, "name|timestamp|payload")
    token = base64url("timestamp|payload|mac")

The cookie name is part of the MAC, so a token minted for one cookie is
rejected under another name. Timestamps older than ``max_age`` are rejected.

Key rotation: ``codecs_from_pairs`` builds an ordered codec chain. Encoding
uses the first (newest) codec; decoding tries each codec in order.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import secrets
import time
from typing import Any, Callable, Optional, Sequence

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from .faults import ConfigFault, CookieDecodeFault, CookieEncodeFault

__all__ = [
    "SecureCookie",
    "codecs_from_pairs",
    "encode_multi",
    "decode_multi",
    "generate_random_key",
]

DEFAULT_MAX_AGE = 86400 * 30
DEFAULT_MAX_LENGTH = 4096
_BLOCK_KEY_SIZES = (16, 24, 32)
_IV_SIZE = 16


def generate_random_key(length: int = 32) -> bytes:
    """Cryptographically random key material."""
    return secrets.token_bytes(length)


class SecureCookie:
    """
    HMAC-authenticated, optionally AES-encrypted cookie value codec.

    Args:
        hash_key: HMAC key (required, 32 or 64 bytes recommended)
        block_key: AES key of 16, 24 or 32 bytes (None disables encryption)
        max_age: Maximum token age in seconds (0 disables the check)
        max_length: Maximum encoded token length (0 disables the check)
        clock: Time source returning Unix seconds

    Example:
        >>> codec = SecureCookie(generate_random_key(64), generate_random_key(32))
        >>> token = codec.encode("app", "ABCDEF")
        >>> codec.decode("app", token)
        'ABCDEF'
    """

    def __init__(
        self,
        hash_key: bytes,
        block_key: Optional[bytes] = None,
        *,
        max_age: int = DEFAULT_MAX_AGE,
        max_length: int = DEFAULT_MAX_LENGTH,
        clock: Callable[[], float] = time.time,
    ):
        if isinstance(hash_key, str):
            hash_key = hash_key.encode("utf-8")
        if isinstance(block_key, str):
            block_key = block_key.encode("utf-8")
        if not hash_key:
            raise ConfigFault("hash key must not be empty", field="key_pairs")
        if block_key and len(block_key) not in _BLOCK_KEY_SIZES:
            raise ConfigFault(
                f"block key must be 16, 24 or 32 bytes, got {len(block_key)}",
                field="key_pairs",
            )
        if max_age < 0 or max_length < 0:
            raise ConfigFault("max_age and max_length must not be negative", field="key_pairs")

        self._hash_key = hash_key
        self._block_key = block_key or None
        self.max_age = max_age
        self.max_length = max_length
        self._clock = clock

    @property
    def encrypts(self) -> bool:
        return self._block_key is not None

    # ========================================================================
    # Encode / Decode
    # ========================================================================

    def encode(self, name: str, value: Any) -> str:
        """
        Encode a JSON-serializable value into a cookie-safe token.

        Raises:
            CookieEncodeFault: Value cannot be serialized or token too long
        """
        try:
            payload = json.dumps(value, separators=(",", ":")).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise CookieEncodeFault(f"value is not serializable: {e}", cookie_name=name) from e

        if self._block_key is not None:
            payload = self._encrypt(payload)
        payload = base64.urlsafe_b64encode(payload)

        timestamp = str(int(self._clock())).encode("ascii")
        mac = self._mac(name, timestamp, payload)
        token = base64.urlsafe_b64encode(b"|".join((timestamp, payload, mac))).decode("ascii")

        if self.max_length and len(token) > self.max_length:
            raise CookieEncodeFault(
                f"encoded value is {len(token)} bytes, limit is {self.max_length}",
                cookie_name=name,
            )
        return token

    def decode(self, name: str, token: str) -> Any:
        """
        Verify and decode a token produced by ``encode``.

        Raises:
            CookieDecodeFault: Token too long, malformed, tampered, expired,
                or not decryptable
        """
        if self.max_length and len(token) > self.max_length:
            raise CookieDecodeFault("value too long", cookie_name=name)

        try:
            raw = _b64decode(token.encode("ascii"))
        except (binascii.Error, ValueError, UnicodeEncodeError) as e:
            raise CookieDecodeFault("value is not valid base64", cookie_name=name) from e

        parts = raw.split(b"|")
        if len(parts) != 3:
            raise CookieDecodeFault("value is not a signed token", cookie_name=name)
        timestamp, payload, mac = parts

        if not hmac.compare_digest(mac, self._mac(name, timestamp, payload)):
            raise CookieDecodeFault("the value is not valid (MAC mismatch)", cookie_name=name)

        try:
            issued_at = int(timestamp)
        except ValueError as e:
            raise CookieDecodeFault("invalid timestamp", cookie_name=name) from e
        if self.max_age and issued_at < int(self._clock()) - self.max_age:
            raise CookieDecodeFault("expired timestamp", cookie_name=name)

        try:
            data = _b64decode(payload)
        except (binascii.Error, ValueError) as e:
            raise CookieDecodeFault("payload is not valid base64", cookie_name=name) from e

        if self._block_key is not None:
            data = self._decrypt(data, name)

        try:
            return json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise CookieDecodeFault("payload is not valid JSON", cookie_name=name) from e

    # ========================================================================
    # Primitives
    # ========================================================================

    def _mac(self, name: str, timestamp: bytes, payload: bytes) -> bytes:
        message = b"|".join((name.encode("utf-8"), timestamp, payload))
        digest = hmac.new(self._hash_key, message, hashlib.sha256).digest()
        return base64.urlsafe_b64encode(digest)

    def _encrypt(self, data: bytes) -> bytes:
        iv = secrets.token_bytes(_IV_SIZE)
        encryptor = Cipher(algorithms.AES(self._block_key), modes.CTR(iv)).encryptor()
        return iv + encryptor.update(data) + encryptor.finalize()

    def _decrypt(self, data: bytes, name: str) -> bytes:
        if len(data) <= _IV_SIZE:
            raise CookieDecodeFault("the value could not be decrypted", cookie_name=name)
        iv, ciphertext = data[:_IV_SIZE], data[_IV_SIZE:]
        decryptor = Cipher(algorithms.AES(self._block_key), modes.CTR(iv)).decryptor()
        return decryptor.update(ciphertext) + decryptor.finalize()


def _b64decode(data: bytes) -> bytes:
    """
    Strict base64url decode.

    Rejects characters outside the alphabet and any input that is not the
    canonical encoding of its result, so every altered token fails.
    """
    decoded = base64.b64decode(data, altchars=b"-_", validate=True)
    if base64.urlsafe_b64encode(decoded) != data:
        raise binascii.Error("non-canonical base64")
    return decoded


# ============================================================================
# Codec chain
# ============================================================================

def codecs_from_pairs(*keys: Optional[bytes], **options: Any) -> list[SecureCookie]:
    """
    Build a codec chain from (hash_key, block_key) pairs.

    Keys are given either flat (hash1, block1, hash2, block2, ...) or as
    tuples ((hash1, block1), (hash2,), ...), never both in one call. A
    trailing flat hash key without a block key, or a one-element tuple,
    produces an authenticate-only codec.

    Raises:
        ConfigFault: No keys supplied, flat and tuple forms mixed, or a key
            is invalid
    """
    if not keys:
        raise ConfigFault("at least one hash key is required", field="key_pairs")

    grouped = [isinstance(key, (tuple, list)) for key in keys]
    if any(grouped) and not all(grouped):
        raise ConfigFault("pass keys either flat or as (hash_key, block_key) tuples, not both", field="key_pairs")

    if all(grouped):
        pairs = []
        for pair in keys:
            if len(pair) not in (1, 2):
                raise ConfigFault("key pairs must hold a hash key and an optional block key", field="key_pairs")
            pairs.append((pair[0], pair[1] if len(pair) == 2 else None))
    else:
        pairs = [
            (keys[i], keys[i + 1] if i + 1 < len(keys) else None)
            for i in range(0, len(keys), 2)
        ]

    return [SecureCookie(hash_key, block_key, **options) for hash_key, block_key in pairs]


def encode_multi(name: str, value: Any, codecs: Sequence[SecureCookie]) -> str:
    """Encode with the first (newest) codec of the chain."""
    if not codecs:
        raise CookieEncodeFault("no codecs configured", cookie_name=name)
    return codecs[0].encode(name, value)


def decode_multi(name: str, token: str, codecs: Sequence[SecureCookie]) -> Any:
    """
    Decode with each codec in order; the first success wins.

    Raises:
        CookieDecodeFault: No codec accepted the token (the first codec's
            fault is raised)
    """
    if not codecs:
        raise CookieDecodeFault("no codecs configured", cookie_name=name)

    first_fault: Optional[CookieDecodeFault] = None
    for codec in codecs:
        try:
            return codec.decode(name, token)
        except CookieDecodeFault as fault:
            if first_fault is None:
                first_fault = fault
    raise first_fault
