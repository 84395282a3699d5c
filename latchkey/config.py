"""Config loading for Latchkey.

Reads `.latchkey/config.yaml` (or `~/.latchkey/config.yaml`).
Raises SystemExit on parse errors, a missing `version` field or invalid
API-key settings. If no config file is found, returns default values
(safe to run without config).

Config search order:
  1. `config_path` argument (if provided — for testing or explicit override)
  2. LATCHKEY_CONFIG environment variable (if set)
  3. `.latchkey/config.yaml` (working directory — for development)
  4. `~/.latchkey/config.yaml` (home directory — for production deployments)

Environment variable overrides (applied after file parsing):
  LATCHKEY_PORT                       — overrides server.port
  LATCHKEY_KEYS_DB_PATH               — overrides store.path
  LATCHKEY_REQUIRE_SECURE_CONNECTION  — overrides apikey.require_secure_connection
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from typing import Any, NoReturn, Optional

import yaml

from latchkey.constants import (
    DEFAULT_ENVIRONMENTS,
    DEFAULT_KEY_SIZE_BYTES,
    DEFAULT_KEY_TYPES,
    ITEM_SEPARATOR,
)
from latchkey.utils.logger import get_logger

logger = get_logger(__name__)

# ─── Version constants ────────────────────────────────────────────────────────

SUPPORTED_CONFIG_VERSION = 1

SUPPORTED_VERSIONS: frozenset[int] = frozenset({1})

DEFAULT_KEYS_DB_PATH = "~/.latchkey/keys.db"

DEFAULT_CONFIG_PATHS = [
    ".latchkey/config.yaml",
    os.path.expanduser("~/.latchkey/config.yaml"),
]

_TRUE_VALUES: frozenset[str] = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES: frozenset[str] = frozenset({"0", "false", "no", "off"})


# ─── Dataclasses ─────────────────────────────────────────────────────────────


@dataclass
class ApiKeyConfig:
    """API-key provider settings.

    init_schema:               create the api_keys table on startup (idempotent)
    require_secure_connection: refuse Basic-Auth API keys over plain HTTP
    environments:              ordered environment tags — one key per tag at registration
    key_types:                 ordered key-type tags — crossed with environments
    key_size_bytes:            bytes of entropy per generated token
    """

    init_schema: bool = True
    require_secure_connection: bool = True
    environments: list[str] = field(default_factory=lambda: list(DEFAULT_ENVIRONMENTS))
    key_types: list[str] = field(default_factory=lambda: list(DEFAULT_KEY_TYPES))
    key_size_bytes: int = DEFAULT_KEY_SIZE_BYTES


@dataclass
class StoreConfig:
    """Key store location."""

    path: str = DEFAULT_KEYS_DB_PATH


@dataclass
class ServerConfig:
    """Server binding configuration."""

    host: str = "127.0.0.1"
    port: int = 4343


@dataclass
class Config:
    """Root configuration object populated from .latchkey/config.yaml.

    All fields have safe defaults — Latchkey can start without any config file.
    """

    version: int = SUPPORTED_CONFIG_VERSION
    apikey: ApiKeyConfig = field(default_factory=ApiKeyConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    path: Optional[str] = None  # Path to the loaded config file

    @classmethod
    def defaults(cls) -> "Config":
        """Return a fully-default Config (no file required)."""
        return cls()

    @classmethod
    def from_dict(cls, raw: dict, path: Optional[str] = None) -> "Config":
        """Construct Config from a parsed YAML dict.

        Merges user-supplied values onto defaults; unknown keys are silently ignored.

        Args:
            raw:  Parsed YAML dict (must already be validated for version field).
            path: Path to the config file (stored in Config.path).

        Returns:
            Config with all fields populated from raw + defaults for missing fields.

        Raises:
            SystemExit(1): On an empty environment / key-type list or a
                           non-positive key_size_bytes.
        """
        # ── API keys ──────────────────────────────────────────────────────────
        apikey_raw = raw.get("apikey") or {}
        environments = _parse_item_list(
            apikey_raw.get("environments"), DEFAULT_ENVIRONMENTS, "apikey.environments"
        )
        key_types = _parse_item_list(
            apikey_raw.get("key_types"), DEFAULT_KEY_TYPES, "apikey.key_types"
        )
        key_size_bytes = _parse_key_size(
            apikey_raw.get("key_size_bytes", DEFAULT_KEY_SIZE_BYTES)
        )
        apikey = ApiKeyConfig(
            init_schema=_parse_flag(apikey_raw.get("init_schema", True), "apikey.init_schema"),
            require_secure_connection=_parse_flag(
                apikey_raw.get("require_secure_connection", True),
                "apikey.require_secure_connection",
            ),
            environments=environments,
            key_types=key_types,
            key_size_bytes=key_size_bytes,
        )

        # ── Store ─────────────────────────────────────────────────────────────
        store_raw = raw.get("store") or {}
        store = StoreConfig(path=store_raw.get("path", DEFAULT_KEYS_DB_PATH))

        # ── Server ────────────────────────────────────────────────────────────
        server_raw = raw.get("server") or {}
        server = ServerConfig(
            host=server_raw.get("host", "127.0.0.1"),
            port=server_raw.get("port", 4343),
        )

        return cls(
            version=raw.get("version", SUPPORTED_CONFIG_VERSION),
            apikey=apikey,
            store=store,
            server=server,
            path=path,
        )


# ─── Value parsing ────────────────────────────────────────────────────────────


def _fail(msg: str) -> NoReturn:
    print(msg, file=sys.stderr)
    raise SystemExit(1)


def _parse_item_list(value: Any, default: tuple[str, ...], name: str) -> list[str]:
    """Parse a comma-separated string or YAML list into an ordered list of tags.

    Order is preserved (it drives issuance order); blanks are dropped.
    None means "not configured" and yields the default.
    """
    if value is None:
        return list(default)
    if isinstance(value, str):
        items = [item.strip() for item in value.split(ITEM_SEPARATOR)]
    elif isinstance(value, (list, tuple)):
        items = [str(item).strip() for item in value]
    else:
        _fail(f"CONFIG ERROR: {name} must be a comma-separated string or a list.")
    items = [item for item in items if item]
    if not items:
        _fail(f"CONFIG ERROR: {name} must contain at least one value.")
    return items


def _parse_key_size(value: Any) -> int:
    try:
        size = int(value)
    except (TypeError, ValueError):
        _fail(f"CONFIG ERROR: apikey.key_size_bytes is not a valid integer: {value!r}")
    if size <= 0:
        _fail(f"CONFIG ERROR: apikey.key_size_bytes must be positive, got {size}.")
    return size


def _parse_flag(value: Any, name: str) -> bool:
    """Accept a YAML bool or one of the on/off words; anything else is fatal."""
    if isinstance(value, bool):
        return value
    word = str(value).strip().lower()
    if word in _TRUE_VALUES:
        return True
    if word in _FALSE_VALUES:
        return False
    _fail(f"CONFIG ERROR: {name} must be true or false, got '{value}'")


# ─── Config loading ───────────────────────────────────────────────────────────


def load_config(config_path: Optional[str] = None) -> Config:
    """Load and validate Latchkey configuration.

    Search order:
      1. ``config_path`` argument
      2. ``LATCHKEY_CONFIG`` environment variable
      3. ``.latchkey/config.yaml``
      4. ``~/.latchkey/config.yaml``

    If no file is found at any of these paths, returns default Config (not an error).
    If a file is found but invalid, writes error to stderr and raises SystemExit(1).

    Environment overrides are applied afterwards regardless of whether a
    config file was found.

    Raises:
        SystemExit(1): On YAML parse error, missing ``version`` field, unsupported
                       version, invalid API-key settings, or invalid env overrides.
    """
    search_paths: list[str] = []
    if config_path:
        search_paths.append(config_path)
    env_config = os.environ.get("LATCHKEY_CONFIG")
    if env_config:
        search_paths.append(env_config)
    search_paths.extend(DEFAULT_CONFIG_PATHS)

    found_path: Optional[str] = None
    for candidate in search_paths:
        expanded = os.path.expanduser(candidate)
        if os.path.isfile(expanded):
            found_path = expanded
            break

    # ── No config file found ─────────────────────────────────────────────────
    if found_path is None:
        logger.info("No config file found — using defaults", searched=search_paths)
        config = Config.defaults()
        _apply_env_overrides(config)
        return config

    # ── Parse config file ─────────────────────────────────────────────────────
    logger.info("Loading config", path=found_path)

    try:
        with open(found_path) as fh:
            raw = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        _fail(
            f"CONFIG ERROR: Failed to parse {found_path}: {exc}\n"
            "Latchkey refuses to start with an invalid config. "
            "Check the YAML syntax and try again."
        )
    except OSError as exc:
        _fail(f"CONFIG ERROR: Could not read {found_path}: {exc}")

    if not isinstance(raw, dict):
        if raw is None:
            _fail(
                f"CONFIG ERROR: {found_path} is missing the required 'version' field.\n"
                "Add 'version: 1' to the top of your config file."
            )
        _fail(
            f"CONFIG ERROR: {found_path} is not a valid YAML mapping.\n"
            "The config file must be a YAML dictionary at the top level."
        )

    # ── Version validation ────────────────────────────────────────────────────
    version = raw.get("version")
    if version is None:
        _fail(
            f"CONFIG ERROR: {found_path} is missing the required 'version' field.\n"
            "Add 'version: 1' to the top of your config file."
        )

    if version not in SUPPORTED_VERSIONS:
        _fail(
            f"CONFIG ERROR: Unsupported config version: {version}. "
            f"Supported versions: {sorted(SUPPORTED_VERSIONS)}."
        )

    config = Config.from_dict(raw, path=found_path)
    _apply_env_overrides(config)

    # ── Security warnings ─────────────────────────────────────────────────────
    if not config.apikey.require_secure_connection:
        logger.warning(
            "SECURITY WARNING: apikey.require_secure_connection is disabled. "
            "API keys will be accepted over unencrypted connections."
        )

    logger.info(
        "Config loaded",
        path=found_path,
        version=config.version,
        environments=config.apikey.environments,
        key_types=config.apikey.key_types,
    )
    return config


def _apply_env_overrides(config: Config) -> None:
    """Apply environment variable overrides to a Config object in-place.

    Raises:
        SystemExit(1): If LATCHKEY_PORT is not an integer or
                       LATCHKEY_REQUIRE_SECURE_CONNECTION is not a boolean word.
    """
    env_port = os.environ.get("LATCHKEY_PORT")
    if env_port is not None:
        try:
            config.server.port = int(env_port)
        except ValueError:
            _fail(
                f"CONFIG ERROR: LATCHKEY_PORT environment variable is not a valid "
                f"integer: '{env_port}'"
            )

    env_db_path = os.environ.get("LATCHKEY_KEYS_DB_PATH")
    if env_db_path:
        config.store.path = env_db_path

    env_secure = os.environ.get("LATCHKEY_REQUIRE_SECURE_CONNECTION")
    if env_secure is not None:
        config.apikey.require_secure_connection = _parse_flag(
            env_secure, "LATCHKEY_REQUIRE_SECURE_CONNECTION"
        )
