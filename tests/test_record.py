"""
Tests for the wire record codec (record.py).
"""

import pytest

from kvsessions.faults import MalformedRecordFault
from kvsessions.record import SessionRecord, decode_record, encode_record, expiry_for


NOW = 1_700_000_000


class TestEncodeRecord:

    def test_round_trip(self):
        data = encode_record(b"\x80\x05payload", 3600, now=NOW)
        record = decode_record(data)
        assert record.values == b"\x80\x05payload"
        assert record.expires_at == NOW + 3600

    def test_zero_max_age_never_expires(self):
        record = decode_record(encode_record(b"v", 0, now=NOW))
        assert record.expires_at == 0
        assert not record.is_expired(NOW + 10**9)

    def test_negative_max_age_never_expires(self):
        record = decode_record(encode_record(b"v", -1, now=NOW))
        assert record.expires_at == 0

    def test_empty_values(self):
        record = decode_record(encode_record(b"", 60, now=NOW))
        assert record.values == b""

    def test_large_values(self):
        blob = bytes(range(256)) * 1000
        assert decode_record(encode_record(blob, 60, now=NOW)).values == blob

    def test_protobuf_layout(self):
        # field 1 (bytes) then field 2 (varint 150)
        data = encode_record(b"ab", 150, now=0)
        assert data == b"\x0a\x02ab\x10\x96\x01"

    def test_rejects_non_bytes(self):
        with pytest.raises(MalformedRecordFault):
            encode_record("text", 60, now=NOW)


class TestDecodeRecord:

    def test_empty_input_is_empty_record(self):
        assert decode_record(b"") == SessionRecord(values=b"", expires_at=0)

    def test_missing_expiry_defaults_to_zero(self):
        assert decode_record(b"\x0a\x01x").expires_at == 0

    def test_negative_expiry(self):
        data = b"\x10" + b"\xff" * 9 + b"\x01"
        assert decode_record(data).expires_at == -1

    def test_unknown_fields_skipped(self):
        data = b"\x0a\x01x" + b"\x1a\x03abc" + b"\x21" + b"\x00" * 8 + b"\x2d" + b"\x00" * 4 + b"\x10\x05"
        record = decode_record(data)
        assert record.values == b"x"
        assert record.expires_at == 5

    @pytest.mark.parametrize("data", [
        b"\x0a",                 # missing length
        b"\x0a\x05ab",           # length past end
        b"\x10\x80",             # truncated varint
        b"\x10" + b"\x80" * 11,  # varint too long
        b"\x0b",                 # wire type 3
        b"\x00\x01",             # field number 0
        b"\x21\x00",             # truncated fixed64
    ])
    def test_malformed(self, data):
        with pytest.raises(MalformedRecordFault):
            decode_record(data)

    def test_rejects_non_bytes(self):
        with pytest.raises(MalformedRecordFault):
            decode_record(None)


class TestExpiry:

    def test_expiry_for(self):
        assert expiry_for(60, now=NOW) == NOW + 60
        assert expiry_for(0, now=NOW) == 0

    def test_is_expired(self):
        record = SessionRecord(values=b"", expires_at=NOW)
        assert not record.is_expired(NOW)
        assert record.is_expired(NOW + 1)
