"""Watch a credentials file and offer to reload it when it changes."""

from .fingerprint import Fingerprint, FingerprintState, FingerprintStrategy, take_fingerprint
from .monitor import (
    AlreadyRunningError,
    FileChangeMonitor,
    InvalidTargetError,
    MonitorError,
    MonitorState,
    MonitorStats,
    NotRunningError,
)
from .reload import MainThreadDispatcher, ReloadPrompt, create_credentials_monitor

__all__ = [
    "AlreadyRunningError",
    "FileChangeMonitor",
    "Fingerprint",
    "FingerprintState",
    "FingerprintStrategy",
    "InvalidTargetError",
    "MainThreadDispatcher",
    "MonitorError",
    "MonitorState",
    "MonitorStats",
    "NotRunningError",
    "ReloadPrompt",
    "create_credentials_monitor",
    "take_fingerprint",
]
