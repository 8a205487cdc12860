"""Owner-side handling of a changed credentials file.

The monitor only reports that the file changed. Everything here belongs to
the owner: asking whether to reload, moving that question onto the owner's
thread, and performing the reload itself.
"""
from __future__ import annotations

import logging
import os
import queue
import subprocess
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple, Union

from .monitor import DEFAULT_POLL_INTERVAL, ChangeCallback, FileChangeMonitor

logger = logging.getLogger(__name__)

RELOAD_TITLE = "Credentials File Changed"

ConfirmCallback = Callable[[str, str], bool]
ReloadCallback = Callable[[Path], None]


class ReloadError(Exception):
    """Raised when reloading from the changed file fails."""


def build_reload_message(path: Union[str, Path]) -> str:
    return (
        f"The credentials file '{Path(path)}' has been changed in the file system. "
        "Do you want to reload the credentials from the updated file content?"
    )


def console_confirm(
    title: str,
    message: str,
    *,
    default: bool = True,
    input_func: Callable[[str], str] = input,
) -> bool:
    """Ask a yes/no question on the terminal. Empty input or EOF picks ``default``."""

    choices = "[Y/n]" if default else "[y/N]"
    prompt = f"{title}\n{message} {choices} "
    while True:
        try:
            answer = input_func(prompt).strip().lower()
        except EOFError:
            return default
        if not answer:
            return default
        if answer in ("y", "yes"):
            return True
        if answer in ("n", "no"):
            return False


class ReloadPrompt:
    """Change callback that asks before reloading."""

    def __init__(self, reload: ReloadCallback, confirm: ConfirmCallback = console_confirm):
        self._reload = reload
        self._confirm = confirm

    def __call__(self, path: Path) -> bool:
        if not self._confirm(RELOAD_TITLE, build_reload_message(path)):
            logger.info("Reload of %s declined", path)
            return False
        logger.info("Reloading credentials from %s", path)
        self._reload(path)
        return True


class MainThreadDispatcher:
    """Hands callbacks from the poll thread to whichever thread drains the queue."""

    def __init__(self) -> None:
        self._queue: "queue.Queue[Optional[Tuple[ChangeCallback, Path]]]" = queue.Queue()
        self._closed = False

    def wrap(self, callback: ChangeCallback) -> ChangeCallback:
        def enqueue(path: Path) -> None:
            if self._closed:
                logger.debug("Dispatcher closed; dropping notification for %s", path)
                return
            self._queue.put((callback, path))

        return enqueue

    def run_pending(self, timeout: Optional[float] = None) -> int:
        """Run queued callbacks on the calling thread.

        Blocks up to ``timeout`` seconds for the first item, then drains
        whatever else is queued. Returns the number of callbacks run.
        """

        try:
            item = self._queue.get(timeout=timeout)
        except queue.Empty:
            return 0

        handled = 0
        while item is not None:
            callback, path = item
            try:
                callback(path)
            except Exception:
                logger.exception("Queued change handler failed for %s", path)
            handled += 1
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                break
        return handled

    def close(self) -> None:
        self._closed = True
        # Wake up a consumer blocked in run_pending().
        self._queue.put(None)

    @property
    def closed(self) -> bool:
        return self._closed


class CommandReloader:
    """Reloads by running an external command with the changed path in its environment."""

    ENV_VAR = "CREDWATCH_FILE"

    def __init__(self, command: Sequence[str], timeout: Optional[float] = None):
        if not command:
            raise ValueError("command must not be empty")
        self._command: List[str] = list(command)
        self._timeout = timeout

    def __call__(self, path: Path) -> None:
        env = dict(os.environ)
        env[self.ENV_VAR] = str(path)
        logger.debug("Running reload command %s", self._command)
        try:
            completed = subprocess.run(
                self._command,
                env=env,
                timeout=self._timeout,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise ReloadError(f"Reload command {self._command[0]!r} failed: {exc}") from exc

        if completed.returncode != 0:
            raise ReloadError(
                f"Reload command {self._command[0]!r} exited with status {completed.returncode}"
            )


def create_credentials_monitor(
    target: Union[str, Path],
    reload: ReloadCallback,
    *,
    confirm: ConfirmCallback = console_confirm,
    dispatcher: Optional[MainThreadDispatcher] = None,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
    **kwargs,
) -> FileChangeMonitor:
    """Build a stopped monitor that prompts for a reload on every change."""

    prompt = ReloadPrompt(reload, confirm)

    def on_change(path: Path) -> None:
        prompt(path)

    callback = dispatcher.wrap(on_change) if dispatcher is not None else on_change
    return FileChangeMonitor(target, callback, poll_interval, **kwargs)
