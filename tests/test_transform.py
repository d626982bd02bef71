"""Tests for the reversible payload transform."""

import base64

import pytest

from book_catalog.core.errors import DecodeError
from book_catalog.storage.transform import ReversibleTransform, _shift, _xor


class TestRoundTrip:

    @pytest.mark.parametrize("text", [
        "",
        "plain ascii",
        "測試書籍 第一集",
        "emoji 📚 and tabs\t\n",
        '{"title":"X","series":"1"}',
    ])
    def test_decode_inverts_encode(self, transform, text):
        """Verify decode(encode(t)) == t for assorted text."""
        assert transform.decode(transform.encode(text)) == text

    def test_token_is_ascii_base64(self, transform):
        token = transform.encode("書名")
        assert token.isascii()
        base64.b64decode(token, validate=True)

    def test_value_round_trip(self, transform):
        value = [{"id": "1", "title": "測試", "count": 3, "tags": None}]
        assert transform.decode_value(transform.encode_value(value)) == value

    def test_known_vector(self):
        """'A' XOR 'A' is 0x00, shifted to 0x01, base64 'AQ=='."""
        assert ReversibleTransform("A").encode("A") == "AQ=="
        assert ReversibleTransform("A").decode("AQ==") == "A"


class TestPrimitives:

    def test_xor_is_self_inverse(self):
        data = "書籍 data".encode("utf-8")
        key = b"key"
        assert _xor(_xor(data, key), key) == data

    def test_shift_wraps_modulo_256(self):
        assert _shift(b"\xff", 1) == b"\x00"
        assert _shift(b"\x00", -1) == b"\xff"


class TestFailures:

    def test_empty_key_rejected(self):
        with pytest.raises(ValueError):
            ReversibleTransform("")

    def test_invalid_base64(self, transform):
        with pytest.raises(DecodeError):
            transform.decode("not base64!!")

    def test_non_ascii_token(self, transform):
        with pytest.raises(DecodeError):
            transform.decode("é")

    def test_non_json_payload(self, transform):
        with pytest.raises(DecodeError):
            transform.decode_value(transform.encode("not json"))

    def test_wrong_key_fails_to_parse(self):
        """'a' ^ 'b' flips the opening brace into 'x', so parsing fails."""
        token = ReversibleTransform("alpha").encode_value({"a": 1})
        with pytest.raises(DecodeError):
            ReversibleTransform("bravo").decode_value(token)
