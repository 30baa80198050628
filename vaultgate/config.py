"""Config loading for VaultGate.

Reads `.vaultgate/config.yaml` (or `~/.vaultgate/config.yaml`).
Raises SystemExit on parse errors or missing `version` field.
If no config file is found, returns default values (safe to run without config).

Config search order:
  1. `config_path` argument (if provided: for testing or explicit override)
  2. VAULTGATE_CONFIG environment variable (if set)
  3. `.vaultgate/config.yaml` (working directory: for development)
  4. `~/.vaultgate/config.yaml` (home directory: for production deployments)

Environment variable overrides (applied after the file, always win):
  VAULTGATE_PORT                : server.port
  VAULTGATE_KEYS_DB_PATH        : keys.path
  VAULTGATE_RATE_LIMIT          : rate_limit.limit
  VAULTGATE_RATE_WINDOW_SECONDS : rate_limit.window_seconds
  VAULTGATE_RATE_FAIL_MODE      : rate_limit.fail_mode
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from typing import NoReturn, Optional

import yaml

from vaultgate.constants import (
    DEFAULT_API_KEY_HEADER,
    DEFAULT_MAX_WINDOWS,
    DEFAULT_RATE_LIMIT,
    DEFAULT_RATE_WINDOW_SECONDS,
)
from vaultgate.utils.logger import get_logger

logger = get_logger(__name__)

# ─── Version constants ────────────────────────────────────────────────────────

SUPPORTED_CONFIG_VERSION = 1

SUPPORTED_VERSIONS: frozenset[int] = frozenset({1})

# ─── Validation sets ─────────────────────────────────────────────────────────

VALID_KEY_BACKENDS: frozenset[str] = frozenset({"sqlite", "memory"})
VALID_COUNTER_BACKENDS: frozenset[str] = frozenset({"memory", "sqlite"})
VALID_FAIL_MODES: frozenset[str] = frozenset({"closed", "open"})

DEFAULT_CONFIG_PATHS = [
    ".vaultgate/config.yaml",
    os.path.expanduser("~/.vaultgate/config.yaml"),
]


def _config_error(message: str) -> NoReturn:
    """Print a config error to stderr and exit non-zero."""
    print(f"CONFIG ERROR: {message}", file=sys.stderr)
    raise SystemExit(1)


# ─── Dataclasses ─────────────────────────────────────────────────────────────


@dataclass
class ServerConfig:
    """HTTP binding configuration."""

    host: str = "127.0.0.1"
    port: int = 8080


@dataclass
class KeyStoreConfig:
    """API key store configuration.

    backend: "sqlite" (durable, default) | "memory" (ephemeral, tests/dev)
    """

    backend: str = "sqlite"
    path: str = "~/.vaultgate/keys.db"


@dataclass
class AuthConfig:
    """Request authentication configuration."""

    header: str = DEFAULT_API_KEY_HEADER


@dataclass
class RateLimitConfig:
    """Fixed-window rate limit policy + counter store selection.

    fail_mode: what the limiter does when the counter store is unavailable.
      "closed": deny with 503 (default; protected data stays protected)
      "open"  : admit and log a warning
    """

    limit: int = DEFAULT_RATE_LIMIT
    window_seconds: int = DEFAULT_RATE_WINDOW_SECONDS
    backend: str = "memory"
    path: str = "~/.vaultgate/ratelimit.db"
    fail_mode: str = "closed"
    max_windows: int = DEFAULT_MAX_WINDOWS


@dataclass
class Config:
    """Root configuration object populated from .vaultgate/config.yaml.

    All fields have safe defaults: VaultGate can start without any config file.
    """

    version: int = SUPPORTED_CONFIG_VERSION
    server: ServerConfig = field(default_factory=ServerConfig)
    keys: KeyStoreConfig = field(default_factory=KeyStoreConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    path: Optional[str] = None  # Path to the loaded config file

    @classmethod
    def defaults(cls) -> "Config":
        """Return a fully-default Config (no file required)."""
        return cls()

    @classmethod
    def from_dict(cls, raw: dict, path: Optional[str] = None) -> "Config":
        """Construct Config from a parsed YAML dict.

        Merges user-supplied values onto defaults; unknown keys are silently ignored.

        Raises:
            SystemExit(1): On invalid enum values or non-positive rate limit numbers.
        """
        # ── Server ────────────────────────────────────────────────────────────
        server_raw = raw.get("server") or {}
        server = ServerConfig(
            host=server_raw.get("host", "127.0.0.1"),
            port=server_raw.get("port", 8080),
        )

        # ── Keys ──────────────────────────────────────────────────────────────
        keys_raw = raw.get("keys") or {}
        keys_backend = keys_raw.get("backend", "sqlite")
        if keys_backend not in VALID_KEY_BACKENDS:
            _config_error(
                f"Invalid keys.backend: '{keys_backend}'. "
                f"Supported values: {sorted(VALID_KEY_BACKENDS)}."
            )
        keys = KeyStoreConfig(
            backend=keys_backend,
            path=keys_raw.get("path", "~/.vaultgate/keys.db"),
        )

        # ── Auth ──────────────────────────────────────────────────────────────
        auth_raw = raw.get("auth") or {}
        header = str(auth_raw.get("header", DEFAULT_API_KEY_HEADER)).strip().lower()
        if not header:
            _config_error("auth.header must be a non-empty header name.")
        auth = AuthConfig(header=header)

        # ── Rate limit ────────────────────────────────────────────────────────
        rl_raw = raw.get("rate_limit") or {}
        rl_backend = rl_raw.get("backend", "memory")
        if rl_backend not in VALID_COUNTER_BACKENDS:
            _config_error(
                f"Invalid rate_limit.backend: '{rl_backend}'. "
                f"Supported values: {sorted(VALID_COUNTER_BACKENDS)}."
            )
        fail_mode = rl_raw.get("fail_mode", "closed")
        if fail_mode not in VALID_FAIL_MODES:
            _config_error(
                f"Invalid rate_limit.fail_mode: '{fail_mode}'. "
                f"Supported values: {sorted(VALID_FAIL_MODES)}."
            )
        rate_limit = RateLimitConfig(
            limit=rl_raw.get("limit", DEFAULT_RATE_LIMIT),
            window_seconds=rl_raw.get("window_seconds", DEFAULT_RATE_WINDOW_SECONDS),
            backend=rl_backend,
            path=rl_raw.get("path", "~/.vaultgate/ratelimit.db"),
            fail_mode=fail_mode,
            max_windows=rl_raw.get("max_windows", DEFAULT_MAX_WINDOWS),
        )
        _validate_rate_limit(rate_limit)

        return cls(
            version=raw.get("version", SUPPORTED_CONFIG_VERSION),
            server=server,
            keys=keys,
            auth=auth,
            rate_limit=rate_limit,
            path=path,
        )


def _validate_rate_limit(rate_limit: RateLimitConfig) -> None:
    """Reject policies that could never admit a request."""
    for name in ("limit", "window_seconds", "max_windows"):
        value = getattr(rate_limit, name)
        if not isinstance(value, int) or isinstance(value, bool) or value < 1:
            _config_error(f"rate_limit.{name} must be a positive integer, got {value!r}.")


# ─── Config loading ───────────────────────────────────────────────────────────


def load_config(config_path: Optional[str] = None) -> Config:
    """Load and validate VaultGate configuration.

    If no file is found at any search path, returns default Config (not an error).
    If a file is found but invalid, writes error to stderr and raises SystemExit(1).
    Environment overrides are applied in both cases.

    Raises:
        SystemExit(1): On YAML parse error, missing ``version`` field, unsupported
                       version, invalid enum value, or invalid env override.
    """
    search_paths: list[str] = []
    if config_path:
        search_paths.append(config_path)
    env_config = os.environ.get("VAULTGATE_CONFIG")
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
        logger.info("No config file found, using defaults", searched=search_paths)
        config = Config.defaults()
        _apply_env_overrides(config)
        return config

    # ── Parse config file ─────────────────────────────────────────────────────
    logger.info("Loading config", path=found_path)

    try:
        with open(found_path) as fh:
            raw = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        _config_error(
            f"Failed to parse {found_path}: {exc}\n"
            "VaultGate refuses to start with an invalid config. "
            "Check the YAML syntax and try again."
        )
    except OSError as exc:
        _config_error(f"Could not read {found_path}: {exc}")

    if not isinstance(raw, dict):
        if raw is None:
            _config_error(
                f"{found_path} is missing the required 'version' field.\n"
                "Add 'version: 1' to the top of your config file."
            )
        _config_error(
            f"{found_path} is not a valid YAML mapping.\n"
            "The config file must be a YAML dictionary at the top level."
        )

    # ── Version validation ────────────────────────────────────────────────────
    version = raw.get("version")
    if version is None:
        _config_error(
            f"{found_path} is missing the required 'version' field.\n"
            "Add 'version: 1' to the top of your config file."
        )
    if version not in SUPPORTED_VERSIONS:
        _config_error(
            f"Unsupported config version: {version}. "
            f"Supported versions: {sorted(SUPPORTED_VERSIONS)}."
        )

    config = Config.from_dict(raw, path=found_path)
    _apply_env_overrides(config)

    # ── Security warnings ─────────────────────────────────────────────────────
    if config.server.host == "0.0.0.0":
        logger.warning(
            "SECURITY WARNING: VaultGate is configured to bind on 0.0.0.0 (all interfaces). "
            "Key management endpoints remain loopback-only, but the data API is "
            "network-accessible. Put a TLS-terminating proxy in front of it."
        )

    if config.rate_limit.fail_mode == "open":
        logger.warning(
            "rate_limit.fail_mode is 'open': requests are admitted unthrottled "
            "while the counter store is unavailable"
        )

    logger.info(
        "Config loaded",
        path=found_path,
        version=config.version,
        keys_backend=config.keys.backend,
        rate_limit=config.rate_limit.limit,
        rate_window_seconds=config.rate_limit.window_seconds,
        counter_backend=config.rate_limit.backend,
    )
    return config


def _env_int(name: str) -> Optional[int]:
    """Read a positive integer env var; SystemExit(1) if set but invalid."""
    raw = os.environ.get(name)
    if raw is None:
        return None
    try:
        value = int(raw)
    except ValueError:
        _config_error(f"{name} environment variable is not a valid integer: '{raw}'")
    if value < 1:
        _config_error(f"{name} environment variable must be positive: '{raw}'")
    return value


def _apply_env_overrides(config: Config) -> None:
    """Apply environment variable overrides to a Config object in-place.

    Called for both file-loaded and default configs so env vars always take
    precedence over any file value.

    Raises:
        SystemExit(1): If an override is set but invalid.
    """
    port = _env_int("VAULTGATE_PORT")
    if port is not None:
        config.server.port = port

    keys_path = os.environ.get("VAULTGATE_KEYS_DB_PATH")
    if keys_path:
        config.keys.path = keys_path

    limit = _env_int("VAULTGATE_RATE_LIMIT")
    if limit is not None:
        config.rate_limit.limit = limit

    window = _env_int("VAULTGATE_RATE_WINDOW_SECONDS")
    if window is not None:
        config.rate_limit.window_seconds = window

    fail_mode = os.environ.get("VAULTGATE_RATE_FAIL_MODE")
    if fail_mode is not None:
        fail_mode = fail_mode.strip().lower()
        if fail_mode not in VALID_FAIL_MODES:
            _config_error(
                f"VAULTGATE_RATE_FAIL_MODE must be one of {sorted(VALID_FAIL_MODES)}, "
                f"got '{fail_mode}'"
            )
        config.rate_limit.fail_mode = fail_mode
