"""Owner-only environment file holding the ``K3S_*`` service variables."""
from __future__ import annotations

import os
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from pathlib import Path

ENV_FILE_UMASK = 0o377


@contextmanager
def restricted_umask(mask: int = ENV_FILE_UMASK) -> Iterator[None]:
    """Apply *mask* as the process umask for the duration of the block."""
    previous = os.umask(mask)
    try:
        yield
    finally:
        os.umask(previous)


def render_env_file(pairs: Iterable[tuple[str, str]]) -> str:
    """Return ``KEY=value`` lines for *pairs*, sorted by key."""
    return "".join(f"{key}={value}\n" for key, value in sorted(pairs))


def write_env_file(path: Path, pairs: Iterable[tuple[str, str]]) -> bool:
    """Write *pairs* to *path*; return True when the content changed.

    The file is created under a ``0377`` umask so it is never readable by
    anyone but its owner, not even briefly.
    """
    content = render_env_file(pairs)
    if path.exists() and path.read_text(encoding="utf-8") == content:
        return False
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f".{path.name}.{os.getpid()}.tmp")
    tmp_path.unlink(missing_ok=True)
    with restricted_umask():
        fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)
        os.replace(tmp_path, path)
    finally:
        tmp_path.unlink(missing_ok=True)
    return True


__all__ = ["ENV_FILE_UMASK", "render_env_file", "restricted_umask", "write_env_file"]
