"""
Verification code codec.

Wire format: ``IL2-<serial>-<hash8>``

- serial: decimal, non-negative, digits only
- hash8:  first 8 hex characters of the ledger record hash, upper-cased

Decoding is strict and never defaults: anything else raises
InvalidCodeFormat.
"""

from __future__ import annotations

import re
from typing import NamedTuple

from certifier.app.errors import InvalidCodeFormat

CODE_PREFIX = "IL2"
HASH8_LENGTH = 8

_DIGITS = re.compile(r"[0-9]+")
_HEX = re.compile(r"[0-9a-fA-F]+")


class DecodedCode(NamedTuple):
    serial: int
    hash8: str


class CodeCodec:
    @staticmethod
    def encode(serial: int, record_hash: str) -> str:
        if isinstance(serial, bool) or not isinstance(serial, int) or serial < 0:
            raise ValueError(f"serial must be a non-negative integer, got {serial!r}")

        prefix = record_hash[:HASH8_LENGTH]
        if len(prefix) != HASH8_LENGTH or not _HEX.fullmatch(prefix):
            raise ValueError(
                "record_hash must start with at least 8 hex characters"
            )

        return f"{CODE_PREFIX}-{serial}-{prefix.upper()}"

    @staticmethod
    def decode(code: str) -> DecodedCode:
        if not isinstance(code, str):
            raise InvalidCodeFormat(code, "code must be a string")

        parts = code.strip().split("-")
        if len(parts) != 3:
            raise InvalidCodeFormat(code, "expected three '-'-separated segments")

        prefix, serial_text, hash8 = parts

        if prefix != CODE_PREFIX:
            raise InvalidCodeFormat(code, f"prefix must be {CODE_PREFIX!r}")

        if not _DIGITS.fullmatch(serial_text):
            raise InvalidCodeFormat(code, "serial must be a non-negative integer")

        if len(hash8) != HASH8_LENGTH or not _HEX.fullmatch(hash8):
            raise InvalidCodeFormat(code, "hash segment must be 8 hex characters")

        return DecodedCode(serial=int(serial_text), hash8=hash8.upper())
