"""Advisory file locks guarding an install target.

Two installer runs against the same binary directory would race on the
binary, the service descriptor and the environment file. :class:`LockManager`
serialises them with an exclusive ``flock`` on a lock file kept under the
runtime directory. Lock files persist after release for diagnostics.
"""
from __future__ import annotations

import fcntl
import hashlib
import json
import os
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from .errors import LockTimeoutError

_POLL_INTERVAL = 0.05


@dataclass(frozen=True, slots=True)
class LockHandle:
    """Details about an acquired lock."""

    path: Path
    wait_ms: int


class LockManager:
    """Acquire per-target advisory locks under *lock_dir*."""

    def __init__(self, lock_dir: Path, default_timeout: float = 30.0) -> None:
        """Store the lock directory and the default acquisition timeout."""
        self.lock_dir = lock_dir
        self.default_timeout = default_timeout

    def lock_path(self, target: Path) -> Path:
        """Return the lock file used for *target*."""
        resolved = str(target.expanduser().absolute())
        digest = hashlib.sha256(resolved.encode("utf-8")).hexdigest()[:16]
        return self.lock_dir / f"install-{digest}.lock"

    @contextmanager
    def install_lock(self, target: Path, *, timeout: float | None = None) -> Iterator[LockHandle]:
        """Hold the exclusive lock for *target* for the duration of the block."""
        path = self.lock_path(target)
        with self._acquire(path, target=target, timeout=timeout) as handle:
            yield handle

    @contextmanager
    def _acquire(
        self,
        path: Path,
        *,
        target: Path,
        timeout: float | None,
    ) -> Iterator[LockHandle]:
        limit = self.default_timeout if timeout is None else timeout
        path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(path, os.O_RDWR | os.O_CREAT, 0o600)
        started = time.monotonic()
        try:
            while True:
                try:
                    fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                    break
                except BlockingIOError:
                    if time.monotonic() - started >= limit:
                        raise LockTimeoutError(
                            f"Timed out after {limit:.1f}s waiting for lock {path}; "
                            "another installer appears to be running against "
                            f"{target}."
                        ) from None
                    time.sleep(_POLL_INTERVAL)
            wait_ms = int((time.monotonic() - started) * 1000)
            self._write_metadata(fd, path, target)
            try:
                yield LockHandle(path=path, wait_ms=wait_ms)
            finally:
                fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)

    @staticmethod
    def _write_metadata(fd: int, path: Path, target: Path) -> None:
        payload = {
            "pid": os.getpid(),
            "path": str(path),
            "target": str(target),
            "acquired_at": datetime.now(tz=UTC).isoformat(timespec="seconds"),
        }
        data = json.dumps(payload).encode("utf-8")
        os.ftruncate(fd, 0)
        os.lseek(fd, 0, os.SEEK_SET)
        os.write(fd, data)


__all__ = ["LockHandle", "LockManager", "LockTimeoutError"]
