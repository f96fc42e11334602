"""Content hashes of installed files, used to decide whether to restart."""
from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from .providers.artifact import sha256_file

LOGGER = logging.getLogger(__name__)

ABSENT = "absent"


@dataclass(frozen=True, slots=True)
class HashSnapshot:
    """Ordered ``(path, digest)`` pairs; missing files record :data:`ABSENT`."""

    entries: tuple[tuple[Path, str], ...]

    def changed_paths(self, other: HashSnapshot) -> list[Path]:
        """Return paths whose digest differs between the two snapshots."""
        before = dict(self.entries)
        after = dict(other.entries)
        return [path for path in sorted(set(before) | set(after)) if before.get(path) != after.get(path)]


def take_snapshot(paths: Iterable[Path]) -> HashSnapshot:
    """Hash every path in *paths*; unreadable files count as absent."""
    entries = []
    for path in paths:
        digest = ABSENT
        if path.is_file():
            try:
                digest = sha256_file(path)
            except OSError as exc:
                LOGGER.debug("Could not hash %s: %s", path, exc)
        entries.append((path, digest))
    return HashSnapshot(entries=tuple(entries))


__all__ = ["ABSENT", "HashSnapshot", "take_snapshot"]
