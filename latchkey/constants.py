"""Shared constants for Latchkey.

Provider identity, transport conventions and issuance defaults live here.
No magic strings in other modules — import from here.
"""

# ─── Provider Identity ────────────────────────────────────────────────────────

# Identity-provider name carried on every synthesized authentication attempt.
# Downstream code treats "apikey" sessions the same way as any other provider.
PROVIDER_NAME: str = "apikey"

# Realm presented in the WWW-Authenticate challenge. Distinguishes this
# provider from any other configured authentication method.
REALM: str = "/auth/" + PROVIDER_NAME

# Placeholder username on the synthesized AuthenticateRequest — the token
# itself travels in the password slot of the request object.
SYNTHETIC_USER_NAME: str = "ApiKey"

# ─── Issuance Defaults ───────────────────────────────────────────────────────

DEFAULT_ENVIRONMENTS: tuple[str, ...] = ("Live", "Test")
DEFAULT_KEY_TYPES: tuple[str, ...] = ("ApiKey",)

# Bytes of entropy per generated token. 16 bytes → 22 base-62 characters.
DEFAULT_KEY_SIZE_BYTES: int = 16

# Separator for the environment / key-type lists in config and env vars.
ITEM_SEPARATOR: str = ","

# ─── Transport ───────────────────────────────────────────────────────────────

# URL schemes considered encrypted for the secure-connection policy.
SECURE_SCHEMES: frozenset[str] = frozenset({"https", "wss"})

# Cookie carrying the per-client session id (read if present, never required).
SESSION_COOKIE_NAME: str = "latchkey-sid"

# Characters of a token that may appear in logs ("Ab3x…").
TOKEN_LOG_PREFIX_CHARS: int = 4
