"""Unit tests for latchkey/utils/ulid.py — session / request id generation."""

from __future__ import annotations

import re

from latchkey.utils.ulid import generate_ulid

# Crockford Base32 charset: 0-9 and A-Z, excluding I, L, O, U
ULID_CHARSET = re.compile(r"^[0-9A-HJKMNP-TV-Z]{26}$")


def test_generate_ulid_format() -> None:
    result = generate_ulid()
    assert isinstance(result, str)
    assert ULID_CHARSET.match(result), f"Invalid ULID: {result!r}"


def test_generate_ulid_unique() -> None:
    ulids = [generate_ulid() for _ in range(1000)]
    assert len(set(ulids)) == 1000
