"""ULID generation utility for Latchkey.

Provides ``generate_ulid()``, used for:
  - per-request session ids (when the client did not send a session cookie)
  - request_id correlation keys in structured log entries

ULID specification (https://github.com/ulid/spec):
  - 26 characters, Crockford Base32 encoded (0-9A-HJKMNP-TV-Z)
  - 48-bit millisecond timestamp + 80-bit random component
  - URL-safe — no special characters, no padding
"""

from __future__ import annotations

from ulid import ULID


def generate_ulid() -> str:
    """Generate a new ULID as a 26-character uppercase string.

    Returns:
        str: A 26-character ULID string (e.g., ``"01KJ0JRVHYA7KX32VPN5ZSCTMV"``).
    """
    return str(ULID())
