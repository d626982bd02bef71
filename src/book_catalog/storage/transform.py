"""
Reversible Transform

A deterministic, invertible text obfuscation pipeline applied to serialized
payloads before they are chunked:

1. UTF-8 encode the text.
2. XOR every byte with the repeating UTF-8 bytes of the key (self-inverse).
3. Shift every byte up by one, modulo 256.
4. Base64 encode the result into an ASCII-safe token.

Decoding runs the steps backwards.

Security Note
-------------
This is obfuscation, NOT encryption. A repeating-key XOR is trivially broken
by anyone who looks at a couple of tokens. Do not use it to protect anything a
motivated reader should not see, and do not treat it as an integrity check.
"""

from __future__ import annotations

import base64
import binascii
import json
from typing import Any

from ..core.errors import DecodeError


def _xor(data: bytes, key: bytes) -> bytes:
    klen = len(key)
    return bytes(b ^ key[i % klen] for i, b in enumerate(data))


def _shift(data: bytes, delta: int) -> bytes:
    return bytes((b + delta) % 256 for b in data)


class ReversibleTransform:
    """
    Keyed text <-> token transform.

    ``decode(encode(text)) == text`` for every ``str``. Tokens produced with
    one key decode to garbage (usually a ``DecodeError``) under another.
    """

    def __init__(self, key: str) -> None:
        if not key:
            raise ValueError("Transform key must be a non-empty string.")
        self._key = key.encode("utf-8")

    def encode(self, text: str) -> str:
        raw = text.encode("utf-8")
        return base64.b64encode(_shift(_xor(raw, self._key), 1)).decode("ascii")

    def decode(self, token: str) -> str:
        """
        Invert ``encode``.

        Raises
        ------
        DecodeError
            If ``token`` is not valid base64 or does not decode to UTF-8 text.
        """
        try:
            packed = base64.b64decode(token.encode("ascii"), validate=True)
        except (binascii.Error, UnicodeEncodeError, ValueError) as exc:
            raise DecodeError("Payload is not valid base64") from exc

        raw = _xor(_shift(packed, -1), self._key)

        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecodeError("Payload did not decode to UTF-8 text") from exc

    # ------------------------------------------------------------------
    # Structured payloads
    # ------------------------------------------------------------------

    def encode_value(self, value: Any) -> str:
        """Serialize ``value`` to canonical JSON and encode it."""
        return self.encode(dumps_canonical(value))

    def decode_value(self, token: str) -> Any:
        """
        Decode ``token`` and parse the JSON it carries.

        Raises
        ------
        DecodeError
            If any stage fails, including JSON parsing.
        """
        text = self.decode(token)
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise DecodeError("Decoded payload is not valid JSON") from exc


def dumps_canonical(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))
