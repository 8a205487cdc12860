"""Single-file monitoring loop with a simple polling backend."""
from __future__ import annotations

import logging
import os
import threading
import time
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Union

from .fingerprint import Fingerprint, FingerprintState, FingerprintStrategy, take_fingerprint

DEFAULT_POLL_INTERVAL = 3.0
DEFAULT_STOP_TIMEOUT = 5.0

ChangeCallback = Callable[[Path], None]


class MonitorError(Exception):
    """Base class for errors raised synchronously by the monitor."""


class InvalidTargetError(MonitorError, ValueError):
    """Raised when the target path cannot be monitored."""


class AlreadyRunningError(MonitorError, RuntimeError):
    """Raised when ``start()`` is called on a running monitor."""


class NotRunningError(MonitorError, RuntimeError):
    """Raised when ``stop()`` is called on a stopped monitor."""


class MonitorState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"


@dataclass
class MonitorStats:
    """Counters emitted by the monitor for observability."""

    ticks: int = 0
    skipped_ticks: int = 0
    notifications: int = 0
    callback_failures: int = 0


class FileChangeMonitor:
    """Polls one file and calls back once per observed change.

    The callback runs on the monitor's own thread. Owners that need the
    notification on a particular thread have to hand it over themselves.

    Usage:
        monitor = FileChangeMonitor("~/.aws/credentials", on_change)
        monitor.start()
        # ... do other things ...
        monitor.stop()
    """

    def __init__(
        self,
        target: Union[str, Path],
        on_change: ChangeCallback,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        *,
        strategy: FingerprintStrategy = FingerprintStrategy.STAT,
        logger: Optional[logging.Logger] = None,
        stop_timeout: float = DEFAULT_STOP_TIMEOUT,
        thread_name: str = "credentials-file-monitor",
    ):
        if poll_interval <= 0:
            raise ValueError("poll_interval must be positive")
        if stop_timeout <= 0:
            raise ValueError("stop_timeout must be positive")

        self._target = _validate_target(target)
        self._on_change = on_change
        self._poll_interval = float(poll_interval)
        self._strategy = FingerprintStrategy(strategy)
        self._logger = logger if logger is not None else logging.getLogger(__name__)
        self._stop_timeout = stop_timeout
        self._thread_name = thread_name

        # Guards state, baseline and stats. Never held while the callback runs.
        self._lock = threading.Lock()
        # Serialises fingerprint-and-compare steps. Not held while the callback runs.
        self._tick_lock = threading.Lock()
        self._state = MonitorState.STOPPED
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._baseline: Optional[Fingerprint] = None
        self._stats = MonitorStats()

    @property
    def target(self) -> Path:
        return self._target

    @property
    def poll_interval(self) -> float:
        return self._poll_interval

    @property
    def strategy(self) -> FingerprintStrategy:
        return self._strategy

    @property
    def state(self) -> MonitorState:
        with self._lock:
            return self._state

    @property
    def is_running(self) -> bool:
        return self.state is MonitorState.RUNNING

    @property
    def stats(self) -> MonitorStats:
        with self._lock:
            return replace(self._stats)

    @property
    def baseline(self) -> Optional[Fingerprint]:
        with self._lock:
            return self._baseline

    def start(self) -> None:
        """Take a baseline fingerprint and start polling in the background."""

        with self._lock:
            if self._state is MonitorState.RUNNING:
                raise AlreadyRunningError(f"Already monitoring {self._target}")

            baseline = take_fingerprint(self._target, self._strategy)
            self._baseline = baseline
            stop_event = threading.Event()
            thread = threading.Thread(
                target=self._run,
                args=(stop_event,),
                name=self._thread_name,
                daemon=True,
            )
            self._stop_event = stop_event
            self._thread = thread
            self._state = MonitorState.RUNNING
            thread.start()

        self._logger.info("Monitoring content of %s", self._target)
        self._logger.debug("Initial fingerprint of %s: %s", self._target, baseline.describe())

    def stop(self) -> None:
        """Stop polling; no new callback starts once this returns."""

        with self._lock:
            if self._state is MonitorState.STOPPED:
                raise NotRunningError(f"Not monitoring {self._target}")
            self._state = MonitorState.STOPPED
            self._stop_event.set()
            thread = self._thread
            self._thread = None

        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self._stop_timeout)
            if thread.is_alive():
                self._logger.warning(
                    "Monitor thread for %s still busy in a callback after %.1fs",
                    self._target,
                    self._stop_timeout,
                )

        self._logger.info("Stopped monitoring content of %s", self._target)

    def poll(self) -> bool:
        """Run one tick. Returns True when the callback was dispatched.

        On a monitor that has never been started the first call only records
        the baseline.
        """

        with self._lock:
            stop_event = self._stop_event if self._state is MonitorState.RUNNING else None
        return self._tick(stop_event)

    def __enter__(self) -> "FileChangeMonitor":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self.is_running:
            self.stop()

    def _run(self, stop_event: threading.Event) -> None:
        interval = self._poll_interval
        next_tick = time.monotonic() + interval
        while not stop_event.wait(max(next_tick - time.monotonic(), 0.0)):
            try:
                self._tick(stop_event)
            except Exception:
                self._logger.exception("Poll of %s failed", self._target)

            now = time.monotonic()
            next_tick += interval
            if next_tick <= now:
                missed = int((now - next_tick) // interval) + 1
                next_tick += missed * interval
                with self._lock:
                    self._stats.skipped_ticks += missed
                self._logger.debug("Poll of %s overran; skipped %s tick(s)", self._target, missed)

    def _tick(self, stop_event: Optional[threading.Event]) -> bool:
        # The callback runs outside the tick lock.
        with self._tick_lock:
            current = take_fingerprint(self._target, self._strategy)
            with self._lock:
                self._stats.ticks += 1
                previous = self._baseline
                if previous is None:
                    self._baseline = current
                    return False
                if current == previous:
                    changed = False
                elif stop_event is not None and stop_event.is_set():
                    return False
                else:
                    changed = True
                    self._baseline = current
                    self._stats.notifications += 1

        if not changed:
            self._logger.debug("No change on %s", self._target)
            return False

        self._log_transition(previous, current)
        try:
            self._on_change(self._target)
        except Exception:
            with self._lock:
                self._stats.callback_failures += 1
            self._logger.exception("Change callback failed for %s", self._target)
        return True

    def _log_transition(self, previous: Optional[Fingerprint], current: Fingerprint) -> None:
        before = previous.describe() if previous is not None else "unknown"
        if current.state is FingerprintState.UNREADABLE:
            self._logger.warning("Unable to read %s: %s", self._target, current.describe())
        self._logger.debug("Change detected on %s: %s -> %s", self._target, before, current.describe())


def _validate_target(target: Union[str, Path]) -> Path:
    raw = os.fspath(target)
    if not raw:
        raise InvalidTargetError("Target path must not be empty")

    path = Path(os.path.abspath(os.path.expanduser(raw)))
    if not path.name or path.parent == path:
        raise InvalidTargetError(f"Target {path} has no parent directory")

    parent = path.parent
    if parent.exists() and not parent.is_dir():
        raise InvalidTargetError(f"Parent of {path} is not a directory")
    return path
