"""Token generation strategies for the key issuer.

Two narrow strategy interfaces are supplied to ApiKeyIssuer at construction:

  TokenGenerator.generate(environment, key_type, size_bytes) -> token
  RecordMutator.mutate(candidate) -> candidate

The default generator encodes ``size_bytes`` of CSPRNG output as a fixed-length
base-62 string (digits + upper + lower case letters): safe in URLs and
headers without escaping. 16 bytes → 22 characters.
"""

from __future__ import annotations

import math
import secrets
import string
from typing import Protocol, runtime_checkable

from latchkey.constants import TOKEN_LOG_PREFIX_CHARS
from latchkey.models.api_key import ApiKey

BASE62_ALPHABET: str = string.digits + string.ascii_uppercase + string.ascii_lowercase


@runtime_checkable
class TokenGenerator(Protocol):
    """Produces one secret token per (environment, key type) pair."""

    def generate(self, environment: str, key_type: str, size_bytes: int) -> str:
        ...


@runtime_checkable
class RecordMutator(Protocol):
    """Adjusts a candidate ApiKey (notes, meta, expiry...) before it is persisted.

    Must not alter ``token`` — the issuer rejects the batch if it does.
    """

    def mutate(self, candidate: ApiKey) -> ApiKey:
        ...


def base62_length(size_bytes: int) -> int:
    """Number of base-62 digits needed to hold ``size_bytes`` of entropy."""
    return math.ceil(size_bytes * 8 / math.log2(len(BASE62_ALPHABET)))


def encode_base62(data: bytes) -> str:
    """Encode bytes as a base-62 string, left-padded to a fixed width.

    The width depends only on ``len(data)``, so every token of a given key
    size has the same length.
    """
    width = base62_length(len(data))
    number = int.from_bytes(data, "big")
    digits: list[str] = []
    while number:
        number, rem = divmod(number, 62)
        digits.append(BASE62_ALPHABET[rem])
    return "".join(reversed(digits)).rjust(width, BASE62_ALPHABET[0])


def create_random_base62_id(size_bytes: int) -> str:
    """Uniformly random base-62 token carrying ``size_bytes`` of entropy."""
    if size_bytes <= 0:
        raise ValueError(f"size_bytes must be positive, got {size_bytes}")
    return encode_base62(secrets.token_bytes(size_bytes))


class Base62TokenGenerator:
    """Default TokenGenerator — environment and key type do not affect the token."""

    def generate(self, environment: str, key_type: str, size_bytes: int) -> str:
        return create_random_base62_id(size_bytes)


def mask_token(token: str) -> str:
    """Loggable form of a token: a short prefix only."""
    if not token:
        return ""
    return token[:TOKEN_LOG_PREFIX_CHARS] + "..."
