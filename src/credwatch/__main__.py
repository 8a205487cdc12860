"""Command-line entry point for the credentials file monitor."""
from __future__ import annotations

import argparse
import logging
import shlex
from pathlib import Path
from typing import List, Optional

from .config import AppConfig, ConfigError, default_config, load_config
from .fingerprint import FingerprintStrategy
from .monitor import FileChangeMonitor, MonitorError
from .reload import (
    CommandReloader,
    MainThreadDispatcher,
    ReloadError,
    ReloadPrompt,
    console_confirm,
)

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="credwatch",
        description="Watch a credentials file and offer to reload it when it changes",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to a YAML configuration file",
    )
    parser.add_argument(
        "--target",
        default=None,
        help="Credentials file to watch (overrides the configuration; default: ~/.aws/credentials)",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Polling interval in seconds",
    )
    parser.add_argument(
        "--fingerprint",
        choices=[option.value for option in FingerprintStrategy],
        default=None,
        help="How to detect changes: file metadata or content hash",
    )
    parser.add_argument(
        "--command",
        default=None,
        help="Command to run after a reload is confirmed (receives CREDWATCH_FILE)",
    )
    parser.add_argument(
        "--yes",
        action="store_true",
        help="Reload without asking",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    return parser


def resolve_config(args: argparse.Namespace) -> AppConfig:
    """Merge the configuration file (if any) with command-line overrides."""

    if args.config is not None:
        app_config = load_config(Path(args.config))
    else:
        app_config = default_config()

    if args.target is not None:
        app_config.monitor.target = Path(args.target).expanduser()
    if args.interval is not None:
        if args.interval <= 0:
            raise ConfigError("--interval must be positive")
        app_config.monitor.poll_interval = args.interval
    if args.fingerprint is not None:
        app_config.monitor.fingerprint = FingerprintStrategy(args.fingerprint)
    if args.command is not None:
        app_config.reload.command = shlex.split(args.command)
    if args.yes:
        app_config.reload.confirm = False
    return app_config


def _log_reload(path: Path) -> None:
    logger.info("Credentials file %s accepted for reload", path)


def run(app_config: AppConfig, dispatcher: MainThreadDispatcher) -> None:
    """Monitor until interrupted, handling notifications on this thread."""

    reload_cfg = app_config.reload
    if reload_cfg.command:
        reload = CommandReloader(reload_cfg.command, timeout=reload_cfg.command_timeout)
    else:
        reload = _log_reload

    if reload_cfg.confirm:
        prompt = ReloadPrompt(reload, console_confirm)
    else:
        prompt = ReloadPrompt(reload, lambda _title, _message: True)

    def handle_change(path: Path) -> None:
        try:
            prompt(path)
        except ReloadError as exc:
            logger.error("%s", exc)

    monitor_cfg = app_config.monitor
    monitor = FileChangeMonitor(
        monitor_cfg.target,
        dispatcher.wrap(handle_change),
        monitor_cfg.poll_interval,
        strategy=monitor_cfg.fingerprint,
        stop_timeout=monitor_cfg.stop_timeout,
    )
    monitor.start()
    try:
        while not dispatcher.closed:
            dispatcher.run_pending(timeout=monitor_cfg.poll_interval)
    except KeyboardInterrupt:
        logger.info("Monitor interrupted by user")
    finally:
        monitor.stop()
        stats = monitor.stats
        logger.info(
            "Monitor stopped after %s polls, %s notifications",
            stats.ticks,
            stats.notifications,
        )


def main(argv: Optional[List[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
    )

    try:
        app_config = resolve_config(args)
    except ConfigError as exc:
        logging.error("%s", exc)
        raise SystemExit(2) from exc

    try:
        run(app_config, MainThreadDispatcher())
    except MonitorError as exc:
        logging.error("%s", exc)
        raise SystemExit(2) from exc


if __name__ == "__main__":
    main()
