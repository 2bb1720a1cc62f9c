"""
Tests for the secure cookie codec and key rotation (securecookie.py).
"""

import pytest

from kvsessions.faults import ConfigFault, CookieDecodeFault, CookieEncodeFault
from kvsessions.securecookie import (
    SecureCookie,
    codecs_from_pairs,
    decode_multi,
    encode_multi,
    generate_random_key,
)
from tests.conftest import BLOCK_KEY, HASH_KEY, FakeClock


def _tamper(token: str) -> str:
    mid = len(token) // 2
    replacement = "A" if token[mid] != "A" else "B"
    return token[:mid] + replacement + token[mid + 1:]


class TestSecureCookie:

    def test_round_trip_authenticated(self):
        codec = SecureCookie(HASH_KEY)
        token = codec.encode("app", "SESSIONID")
        assert codec.decode("app", token) == "SESSIONID"
        assert not codec.encrypts

    def test_round_trip_encrypted(self):
        codec = SecureCookie(HASH_KEY, BLOCK_KEY)
        token = codec.encode("app", {"id": "SESSIONID"})
        assert codec.decode("app", token) == {"id": "SESSIONID"}
        assert codec.encrypts

    def test_encrypted_value_not_visible(self):
        import base64

        codec = SecureCookie(HASH_KEY, BLOCK_KEY)
        token = codec.encode("app", "VISIBLE-MARKER")
        assert b"VISIBLE-MARKER" not in base64.urlsafe_b64decode(token)

    def test_tokens_are_cookie_safe(self):
        token = SecureCookie(HASH_KEY, BLOCK_KEY).encode("app", "x" * 40)
        assert all(c.isalnum() or c in "-_=" for c in token)

    def test_tampered_token_rejected(self):
        codec = SecureCookie(HASH_KEY, BLOCK_KEY)
        token = codec.encode("app", "SESSIONID")
        with pytest.raises(CookieDecodeFault):
            codec.decode("app", _tamper(token))

    @pytest.mark.parametrize("encrypted", [False, True])
    def test_every_altered_position_rejected(self, encrypted):
        codec = SecureCookie(HASH_KEY, BLOCK_KEY if encrypted else None)
        token = codec.encode("app", "SESSIONID")
        for i, original in enumerate(token):
            for replacement in "AQgw-_0=":
                if replacement == original:
                    continue
                altered = token[:i] + replacement + token[i + 1:]
                with pytest.raises(CookieDecodeFault):
                    codec.decode("app", altered)

    @pytest.mark.parametrize("suffix", ["!", "..", "%", "*", "A", "AAAA", "===="])
    def test_appended_junk_rejected(self, suffix):
        codec = SecureCookie(HASH_KEY)
        token = codec.encode("app", "SESSIONID")
        with pytest.raises(CookieDecodeFault):
            codec.decode("app", token + suffix)

    def test_standard_alphabet_rejected(self):
        codec = SecureCookie(HASH_KEY)
        token = codec.encode("app", "SESSIONID")
        altered = token.replace("-", "+").replace("_", "/")
        if altered != token:
            with pytest.raises(CookieDecodeFault):
                codec.decode("app", altered)

    def test_wrong_name_rejected(self):
        codec = SecureCookie(HASH_KEY)
        token = codec.encode("app", "SESSIONID")
        with pytest.raises(CookieDecodeFault) as exc_info:
            codec.decode("other", token)
        assert "MAC" in exc_info.value.reason

    def test_wrong_key_rejected(self):
        token = SecureCookie(HASH_KEY).encode("app", "SESSIONID")
        with pytest.raises(CookieDecodeFault):
            SecureCookie(b"k" * 64).decode("app", token)

    def test_garbage_rejected(self):
        codec = SecureCookie(HASH_KEY)
        for junk in ("", "not base64!", "aGVsbG8="):
            with pytest.raises(CookieDecodeFault):
                codec.decode("app", junk)

    def test_expired_timestamp(self):
        clock = FakeClock()
        codec = SecureCookie(HASH_KEY, max_age=60, clock=clock)
        token = codec.encode("app", "SESSIONID")
        clock.advance(30)
        assert codec.decode("app", token) == "SESSIONID"
        clock.advance(31)
        with pytest.raises(CookieDecodeFault) as exc_info:
            codec.decode("app", token)
        assert exc_info.value.reason == "expired timestamp"

    def test_zero_max_age_never_expires(self):
        clock = FakeClock()
        codec = SecureCookie(HASH_KEY, max_age=0, clock=clock)
        token = codec.encode("app", "SESSIONID")
        clock.advance(10 * 365 * 86400)
        assert codec.decode("app", token) == "SESSIONID"

    def test_encode_too_long(self):
        codec = SecureCookie(HASH_KEY, max_length=32)
        with pytest.raises(CookieEncodeFault):
            codec.encode("app", "x" * 100)

    def test_decode_too_long(self):
        codec = SecureCookie(HASH_KEY, max_length=32)
        with pytest.raises(CookieDecodeFault) as exc_info:
            codec.decode("app", "A" * 33)
        assert exc_info.value.reason == "value too long"

    def test_unserializable_value(self):
        with pytest.raises(CookieEncodeFault):
            SecureCookie(HASH_KEY).encode("app", object())

    def test_fault_carries_cookie_name(self):
        with pytest.raises(CookieDecodeFault) as exc_info:
            SecureCookie(HASH_KEY).decode("app", "garbage")
        assert exc_info.value.cookie_name == "app"


class TestKeyValidation:

    def test_empty_hash_key(self):
        with pytest.raises(ConfigFault):
            SecureCookie(b"")

    @pytest.mark.parametrize("size", [1, 15, 17, 31, 33, 64])
    def test_bad_block_key_size(self, size):
        with pytest.raises(ConfigFault):
            SecureCookie(HASH_KEY, b"x" * size)

    @pytest.mark.parametrize("size", [16, 24, 32])
    def test_valid_block_key_sizes(self, size):
        codec = SecureCookie(HASH_KEY, b"x" * size)
        assert codec.decode("app", codec.encode("app", 1)) == 1

    def test_negative_limits(self):
        with pytest.raises(ConfigFault):
            SecureCookie(HASH_KEY, max_age=-1)

    def test_generate_random_key(self):
        assert len(generate_random_key()) == 32
        assert len(generate_random_key(64)) == 64
        assert generate_random_key() != generate_random_key()


class TestCodecChain:

    def test_flat_pairs(self):
        codecs = codecs_from_pairs(HASH_KEY, BLOCK_KEY, b"k" * 64)
        assert len(codecs) == 2
        assert codecs[0].encrypts
        assert not codecs[1].encrypts

    def test_tuple_pairs(self):
        codecs = codecs_from_pairs((HASH_KEY, BLOCK_KEY), (b"k" * 64,))
        assert len(codecs) == 2
        assert not codecs[1].encrypts

    def test_no_keys(self):
        with pytest.raises(ConfigFault):
            codecs_from_pairs()

    def test_mixed_forms_rejected(self):
        with pytest.raises(ConfigFault):
            codecs_from_pairs(b"x" * 64, (b"y" * 32, b"z" * 32))
        with pytest.raises(ConfigFault):
            codecs_from_pairs((b"y" * 32, b"z" * 32), b"x" * 64)

    def test_tuple_pairs_keep_their_keys(self):
        codecs = codecs_from_pairs((b"x" * 64,), (b"y" * 32, b"z" * 32))
        assert codecs[0]._hash_key == b"x" * 64
        assert not codecs[0].encrypts
        assert codecs[1]._hash_key == b"y" * 32
        assert codecs[1]._block_key == b"z" * 32

    def test_bad_tuple_length(self):
        with pytest.raises(ConfigFault):
            codecs_from_pairs((HASH_KEY, BLOCK_KEY, b"extra"))

    def test_options_forwarded(self):
        codecs = codecs_from_pairs(HASH_KEY, max_age=10, max_length=100)
        assert codecs[0].max_age == 10
        assert codecs[0].max_length == 100

    def test_rotation_decodes_old_tokens(self):
        old_key = b"o" * 64
        old_token = encode_multi("app", "OLD", codecs_from_pairs(old_key))

        rotated = codecs_from_pairs(HASH_KEY, BLOCK_KEY, old_key, None)
        assert decode_multi("app", old_token, rotated) == "OLD"

        new_token = encode_multi("app", "NEW", rotated)
        assert codecs_from_pairs(HASH_KEY, BLOCK_KEY)[0].decode("app", new_token) == "NEW"

    def test_retired_key_rejected(self):
        token = encode_multi("app", "OLD", codecs_from_pairs(b"o" * 64))
        with pytest.raises(CookieDecodeFault):
            decode_multi("app", token, codecs_from_pairs(HASH_KEY))

    def test_empty_chain(self):
        with pytest.raises(CookieEncodeFault):
            encode_multi("app", "x", [])
        with pytest.raises(CookieDecodeFault):
            decode_multi("app", "x", [])
