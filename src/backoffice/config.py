"""Back-office configuration loading and validation.

Reads ``backoffice.toml`` from a config directory (or an explicit file path),
resolves ``${VAR}`` references against the environment, and returns a
validated :class:`BackofficeConfig` dataclass.

Example::

    [backoffice]
    base_url = "${BACKOFFICE_API_BASE_URL}"
    timeout_s = 10

    [backoffice.lists]
    page_size = 25
    debounce_ms = 300

    [backoffice.logging]
    level = "DEBUG"
    format = "json"
"""

from __future__ import annotations

import os
import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

CONFIG_FILE_NAME = "backoffice.toml"

# Environment variable that overrides [backoffice].base_url.
BASE_URL_ENV_VAR = "BACKOFFICE_API_BASE_URL"

DEFAULT_BASE_URL = "http://localhost:3000"
DEFAULT_PAGE_SIZE = 10
DEFAULT_DEBOUNCE_MS = 300

_LOG_FORMATS = ("text", "json")

# Pattern matching ${VAR_NAME}: alphanumeric + underscore variable names.
_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


class ConfigError(Exception):
    """Raised when back-office configuration is missing, malformed, or invalid."""


@dataclass
class LoggingConfig:
    """Logging configuration from [backoffice.logging] section."""

    level: str = "INFO"
    format: str = "text"  # "text" or "json"
    log_root: str | None = None


@dataclass
class ListsConfig:
    """List page defaults from [backoffice.lists] section."""

    page_size: int = DEFAULT_PAGE_SIZE
    debounce_ms: int = DEFAULT_DEBOUNCE_MS

    @property
    def debounce_s(self) -> float:
        return self.debounce_ms / 1000


@dataclass
class BackofficeConfig:
    """Parsed representation of a backoffice.toml file."""

    base_url: str = DEFAULT_BASE_URL
    timeout_s: float | None = None
    lists: ListsConfig = field(default_factory=ListsConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def resolve_env_vars(value: Any) -> Any:
    """Recursively resolve ``${VAR_NAME}`` references in config values.

    Walks dicts, lists, and strings.  Non-string leaf values (int, bool,
    float, None) are returned unchanged.

    Raises
    ------
    ConfigError
        If a referenced environment variable is not set.
    """
    if isinstance(value, dict):
        return {k: resolve_env_vars(v) for k, v in value.items()}

    if isinstance(value, list):
        return [resolve_env_vars(item) for item in value]

    if isinstance(value, str):
        return _resolve_string(value)

    return value


def _resolve_string(s: str) -> str:
    """Replace all ``${VAR_NAME}`` occurrences in *s* with env var values.

    Collects all missing variable names and reports them in a single error.
    """
    missing: list[str] = []

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        env_value = os.environ.get(var_name)
        if env_value is None:
            missing.append(var_name)
            return match.group(0)
        return env_value

    result = _ENV_VAR_PATTERN.sub(_replace, s)

    if missing:
        vars_str = ", ".join(missing)
        raise ConfigError(
            f"Unresolved environment variable(s) in config value: {vars_str} (original: {s!r})"
        )

    return result


def _parse_base_url(section: dict[str, Any]) -> str:
    env_value = os.environ.get(BASE_URL_ENV_VAR, "").strip()
    raw = env_value or section.get("base_url")
    if raw is None:
        raise ConfigError(
            f"Missing required field: backoffice.base_url (or set {BASE_URL_ENV_VAR})"
        )
    if not isinstance(raw, str) or not raw.strip():
        raise ConfigError("backoffice.base_url must be a non-empty string")
    base_url = raw.strip().rstrip("/")
    if not base_url.startswith(("http://", "https://")):
        raise ConfigError(f"backoffice.base_url must be an http(s) URL, got {base_url!r}")
    return base_url


def _parse_timeout(section: dict[str, Any]) -> float | None:
    raw = section.get("timeout_s")
    if raw is None:
        return None
    if isinstance(raw, bool) or not isinstance(raw, int | float) or raw <= 0:
        raise ConfigError(f"backoffice.timeout_s must be a positive number, got {raw!r}")
    return float(raw)


def _positive_int(
    section: dict[str, Any], key: str, default: int, *, allow_zero: bool = False
) -> int:
    raw = section.get(key, default)
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise ConfigError(f"backoffice.lists.{key} must be an integer, got {raw!r}")
    if raw < 0 or (raw == 0 and not allow_zero):
        raise ConfigError(f"backoffice.lists.{key} must be positive, got {raw}")
    return raw


def _parse_lists(section: Any) -> ListsConfig:
    if section is None:
        return ListsConfig()
    if not isinstance(section, dict):
        raise ConfigError("[backoffice.lists] must be a table")
    return ListsConfig(
        page_size=_positive_int(section, "page_size", DEFAULT_PAGE_SIZE),
        debounce_ms=_positive_int(section, "debounce_ms", DEFAULT_DEBOUNCE_MS, allow_zero=True),
    )


def _parse_logging(section: Any) -> LoggingConfig:
    if section is None:
        return LoggingConfig()
    if not isinstance(section, dict):
        raise ConfigError("[backoffice.logging] must be a table")

    level = str(section.get("level", "INFO")).upper()
    fmt = str(section.get("format", "text")).lower()
    if fmt not in _LOG_FORMATS:
        raise ConfigError(
            f"backoffice.logging.format must be one of {', '.join(_LOG_FORMATS)}, got {fmt!r}"
        )
    log_root = section.get("log_root")
    if log_root is not None and not isinstance(log_root, str):
        raise ConfigError("backoffice.logging.log_root must be a string when set")
    return LoggingConfig(level=level, format=fmt, log_root=log_root or None)


def parse_config(data: dict[str, Any]) -> BackofficeConfig:
    """Validate already-parsed TOML *data* into a :class:`BackofficeConfig`."""
    data = resolve_env_vars(data)

    section = data.get("backoffice")
    if not isinstance(section, dict):
        raise ConfigError("Missing [backoffice] section in config")

    return BackofficeConfig(
        base_url=_parse_base_url(section),
        timeout_s=_parse_timeout(section),
        lists=_parse_lists(section.get("lists")),
        logging=_parse_logging(section.get("logging")),
    )


def load_config(path: Path) -> BackofficeConfig:
    """Load and validate ``backoffice.toml``.

    Parameters
    ----------
    path:
        Directory containing ``backoffice.toml``, or the file itself.

    Raises
    ------
    ConfigError
        If the file is missing, contains invalid TOML, or lacks required fields.
    """
    path = Path(path)
    toml_path = path / CONFIG_FILE_NAME if path.is_dir() else path

    if not toml_path.exists():
        raise ConfigError(f"Config file not found: {toml_path}")

    try:
        data = tomllib.loads(toml_path.read_bytes().decode())
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML in {toml_path}: {exc}") from exc

    return parse_config(data)


def default_config() -> BackofficeConfig:
    """Configuration from the environment alone (no file).

    ``BACKOFFICE_API_BASE_URL`` is used when set; otherwise the local dev
    server URL.
    """
    return parse_config({"backoffice": {"base_url": DEFAULT_BASE_URL}})
