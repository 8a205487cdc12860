"""Cheap, comparable snapshots of a single file's state."""
from __future__ import annotations

import hashlib
import stat as stat_module
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple, Union


_CHUNK_SIZE = 8192


class FingerprintState(str, Enum):
    """What the monitor observed when it looked at the target."""

    PRESENT = "present"
    MISSING = "missing"
    UNREADABLE = "unreadable"


class FingerprintStrategy(str, Enum):
    """How a present file is summarised."""

    STAT = "stat"
    SHA256 = "sha256"


@dataclass(frozen=True)
class Fingerprint:
    """A single observation of the watched file.

    ``missing`` and ``unreadable`` are ordinary values, so moving into or out
    of either state counts as a change. ``detail`` only carries the OS error
    text for logging and takes no part in equality.
    """

    state: FingerprintState
    mtime_ns: Optional[int] = None
    size: Optional[int] = None
    digest: Optional[str] = None
    detail: Optional[str] = field(default=None, compare=False)

    @classmethod
    def missing(cls) -> "Fingerprint":
        return cls(state=FingerprintState.MISSING)

    @classmethod
    def unreadable(cls, detail: Optional[str] = None) -> "Fingerprint":
        return cls(state=FingerprintState.UNREADABLE, detail=detail)

    @property
    def exists(self) -> bool:
        return self.state is FingerprintState.PRESENT

    def describe(self) -> str:
        if self.state is FingerprintState.MISSING:
            return "missing"
        if self.state is FingerprintState.UNREADABLE:
            return f"unreadable ({self.detail})" if self.detail else "unreadable"
        if self.digest is not None:
            return f"sha256={self.digest[:12]} size={self.size}"
        return f"mtime_ns={self.mtime_ns} size={self.size}"


def take_fingerprint(
    path: Union[str, Path],
    strategy: FingerprintStrategy = FingerprintStrategy.STAT,
) -> Fingerprint:
    """Fingerprint ``path`` without ever raising ``OSError``.

    The ``stat`` strategy is a single ``stat()`` call. The ``sha256`` strategy
    hashes the content and leaves the modification time out, so rewriting a
    file with identical bytes yields an equal fingerprint.
    """

    target = Path(path)
    try:
        stat_result = target.stat()
    except (FileNotFoundError, NotADirectoryError):
        return Fingerprint.missing()
    except OSError as exc:
        return Fingerprint.unreadable(_error_detail(exc))

    if not stat_module.S_ISREG(stat_result.st_mode):
        return Fingerprint.unreadable("not a regular file")

    if strategy is FingerprintStrategy.STAT:
        return Fingerprint(
            state=FingerprintState.PRESENT,
            mtime_ns=stat_result.st_mtime_ns,
            size=stat_result.st_size,
        )

    try:
        digest, size = _hash_file(target)
    except FileNotFoundError:
        # Removed between stat() and open().
        return Fingerprint.missing()
    except OSError as exc:
        return Fingerprint.unreadable(_error_detail(exc))

    return Fingerprint(state=FingerprintState.PRESENT, size=size, digest=digest)


def _hash_file(path: Path) -> Tuple[str, int]:
    sha256 = hashlib.sha256()
    size = 0
    with path.open("rb") as handle:
        while True:
            chunk = handle.read(_CHUNK_SIZE)
            if not chunk:
                break
            sha256.update(chunk)
            size += len(chunk)
    return sha256.hexdigest(), size


def _error_detail(exc: OSError) -> str:
    return exc.strerror or exc.__class__.__name__
