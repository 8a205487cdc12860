"""Configuration loading utilities for the credentials file monitor."""
from __future__ import annotations

import logging
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional, Union

import yaml  # type: ignore

from .fingerprint import FingerprintStrategy
from .monitor import DEFAULT_POLL_INTERVAL, DEFAULT_STOP_TIMEOUT

logger = logging.getLogger(__name__)

DEFAULT_TARGET = Path("~/.aws/credentials")


class ConfigError(Exception):
    """Raised when the configuration file is missing or invalid."""


@dataclass
class MonitorConfig:
    """Options describing how the file monitor should behave."""

    target: Path
    poll_interval: float = DEFAULT_POLL_INTERVAL
    fingerprint: FingerprintStrategy = FingerprintStrategy.STAT
    stop_timeout: float = DEFAULT_STOP_TIMEOUT


@dataclass
class ReloadConfig:
    """What to do once a change has been detected."""

    confirm: bool = True
    command: List[str] = field(default_factory=list)
    command_timeout: Optional[float] = None


@dataclass
class AppConfig:
    """Top-level configuration structure."""

    monitor: MonitorConfig
    reload: ReloadConfig = field(default_factory=ReloadConfig)


def default_config(target: Optional[Union[str, Path]] = None) -> AppConfig:
    """Configuration used when no file is given on the command line."""

    target_path = Path(target) if target is not None else DEFAULT_TARGET
    return AppConfig(monitor=MonitorConfig(target=target_path.expanduser()))


def load_config(path: Path) -> AppConfig:
    """Load and validate the YAML configuration file."""

    if not path.exists():
        raise ConfigError(f"Configuration file not found: {path}")

    try:
        data = yaml.safe_load(path.read_text())
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse YAML configuration: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigError("Configuration root must be a mapping")

    monitor_cfg = _parse_monitor_config(data.get("monitor"), config_path=path)
    reload_cfg = _parse_reload_config(data.get("reload"))

    logger.debug("Loaded configuration from %s (target=%s)", path, monitor_cfg.target)
    return AppConfig(monitor=monitor_cfg, reload=reload_cfg)


def _parse_monitor_config(raw: Any, *, config_path: Path) -> MonitorConfig:
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError("'monitor' section must be a mapping")

    target_raw = raw.get("target", str(DEFAULT_TARGET))
    if not isinstance(target_raw, str) or not target_raw.strip():
        raise ConfigError("monitor.target must be a non-empty string")

    target = Path(target_raw).expanduser()
    if not target.is_absolute():
        target = (config_path.parent / target).resolve()

    poll_interval = _parse_positive_number(
        raw.get("poll_interval", DEFAULT_POLL_INTERVAL), "monitor.poll_interval"
    )
    stop_timeout = _parse_positive_number(
        raw.get("stop_timeout", DEFAULT_STOP_TIMEOUT), "monitor.stop_timeout"
    )

    strategy_raw = raw.get("fingerprint", FingerprintStrategy.STAT.value)
    try:
        strategy = FingerprintStrategy(strategy_raw)
    except ValueError as exc:
        allowed = ", ".join(option.value for option in FingerprintStrategy)
        raise ConfigError(f"monitor.fingerprint must be one of: {allowed}") from exc

    return MonitorConfig(
        target=target,
        poll_interval=poll_interval,
        fingerprint=strategy,
        stop_timeout=stop_timeout,
    )


def _parse_reload_config(raw: Any) -> ReloadConfig:
    if raw is None:
        return ReloadConfig()
    if not isinstance(raw, dict):
        raise ConfigError("'reload' section must be a mapping")

    confirm = raw.get("confirm", True)
    if not isinstance(confirm, bool):
        raise ConfigError("reload.confirm must be a boolean")

    command = _parse_command(raw.get("command"))

    timeout_raw = raw.get("command_timeout")
    command_timeout = None
    if timeout_raw is not None:
        command_timeout = _parse_positive_number(timeout_raw, "reload.command_timeout")

    return ReloadConfig(confirm=confirm, command=command, command_timeout=command_timeout)


def _parse_command(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        try:
            return shlex.split(value)
        except ValueError as exc:
            raise ConfigError(f"reload.command could not be parsed: {exc}") from exc
    if not isinstance(value, list):
        raise ConfigError("reload.command must be a string or a list of strings")
    items: List[str] = []
    for elem in value:
        if not isinstance(elem, str):
            raise ConfigError("reload.command must contain only strings")
        items.append(elem)
    return items


def _parse_positive_number(value: Any, field_name: str) -> float:
    if isinstance(value, bool):
        raise ConfigError(f"{field_name} must be numeric")
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{field_name} must be numeric") from exc
    if number <= 0:
        raise ConfigError(f"{field_name} must be positive")
    return number
