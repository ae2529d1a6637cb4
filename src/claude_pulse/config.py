"""
Configuration for claude-pulse.

Settings live in ``<data dir>/config.json``:

    {
      "version": 1,
      "watch": {
        "status_dir": "~/.claude/claude-pulse-status",
        "use_polling": false,
        "poll_interval_seconds": 1.0
      }
    }

A missing file means defaults. Environment variables override file values.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
import json
import logging
import os
from pathlib import Path

from .paths import DEFAULT_STATUS_DIR, resolve_data_dir

logger = logging.getLogger("claude_pulse")

CONFIG_VERSION = 1
CONFIG_FILE_NAME = "config.json"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def resolve_config_path() -> Path:
    """Config file location, read from CLAUDE_PULSE_DATA_DIR at call time."""
    return resolve_data_dir() / CONFIG_FILE_NAME


class ConfigError(Exception):
    """Raised when the config file exists but cannot be used."""


@dataclass(frozen=True)
class WatchConfig:
    """File watching settings."""

    status_dir: str | None = None
    use_polling: bool = False
    poll_interval_seconds: float = 1.0

    def resolved_status_dir(self) -> Path:
        """Status directory as a Path, falling back to the default location."""
        if self.status_dir:
            return Path(self.status_dir).expanduser()
        return DEFAULT_STATUS_DIR


@dataclass(frozen=True)
class PulseConfig:
    """Top-level configuration."""

    version: int = CONFIG_VERSION
    watch: WatchConfig = field(default_factory=WatchConfig)


def load_config(path: Path | None = None) -> PulseConfig:
    """
    Load configuration from disk and apply environment overrides.

    Args:
        path: Config file to read (defaults to resolve_config_path())

    Returns:
        PulseConfig

    Raises:
        ConfigError: If the file is unreadable, not JSON, or has bad values
    """
    config_path = path or resolve_config_path()
    config = PulseConfig()

    if config_path.exists():
        try:
            raw = json.loads(config_path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError) as exc:
            raise ConfigError(f"Cannot read config file {config_path}: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Invalid JSON in config file {config_path}: {exc}") from exc
        config = _parse_config(raw)

    return replace(config, watch=_apply_env_overrides(config.watch))


def load_config_or_default(path: Path | None = None) -> PulseConfig:
    """Like load_config(), but logs and returns defaults on ConfigError."""
    try:
        return load_config(path)
    except ConfigError as exc:
        logger.warning("Invalid config file; using defaults: %s", exc)
        return replace(PulseConfig(), watch=_apply_env_overrides(WatchConfig()))


def _parse_config(raw: object) -> PulseConfig:
    # Validate the JSON document and build the dataclasses.
    if not isinstance(raw, dict):
        raise ConfigError("Config file must contain a JSON object")

    version = raw.get("version", CONFIG_VERSION)
    if version != CONFIG_VERSION:
        raise ConfigError(f"Unsupported config version: {version!r}")

    watch_raw = raw.get("watch", {})
    if not isinstance(watch_raw, dict):
        raise ConfigError("'watch' must be an object")

    status_dir = watch_raw.get("status_dir")
    if status_dir is not None and not isinstance(status_dir, str):
        raise ConfigError("'watch.status_dir' must be a string")

    use_polling = watch_raw.get("use_polling", False)
    if not isinstance(use_polling, bool):
        raise ConfigError("'watch.use_polling' must be a boolean")

    interval = watch_raw.get("poll_interval_seconds", WatchConfig.poll_interval_seconds)
    if isinstance(interval, bool) or not isinstance(interval, (int, float)) or interval <= 0:
        raise ConfigError("'watch.poll_interval_seconds' must be a positive number")

    return PulseConfig(
        version=version,
        watch=WatchConfig(
            status_dir=status_dir,
            use_polling=use_polling,
            poll_interval_seconds=float(interval),
        ),
    )


def _apply_env_overrides(watch: WatchConfig) -> WatchConfig:
    # Environment wins over the file; unparseable values are ignored.
    status_dir = os.getenv("CLAUDE_PULSE_STATUS_DIR") or watch.status_dir
    use_polling = _get_bool_env("CLAUDE_PULSE_USE_POLLING", default=watch.use_polling)
    interval = _get_float_env(
        "CLAUDE_PULSE_POLL_INTERVAL",
        default=watch.poll_interval_seconds,
    )
    return WatchConfig(
        status_dir=status_dir,
        use_polling=use_polling,
        poll_interval_seconds=interval,
    )


def _get_bool_env(name: str, *, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    return default


def _get_float_env(name: str, *, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        parsed = float(raw)
    except ValueError:
        return default
    if parsed <= 0:
        return default
    return parsed
