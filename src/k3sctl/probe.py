"""Detect the process supervisor available on the host."""
from __future__ import annotations

import logging
import os
from enum import Enum
from pathlib import Path

from .errors import SupervisorNotFoundError

LOGGER = logging.getLogger(__name__)


class SupervisorKind(str, Enum):
    """Supported init systems."""

    SYSTEMD = "systemd"
    OPENRC = "openrc"


def detect_supervisor(
    *,
    openrc_run: Path = Path("/sbin/openrc-run"),
    systemd_runtime: Path = Path("/run/systemd"),
) -> SupervisorKind:
    """Return the supervisor in use, preferring openrc when both are present."""
    if openrc_run.is_file() and os.access(openrc_run, os.X_OK):
        LOGGER.debug("Found openrc run-script interpreter at %s", openrc_run)
        return SupervisorKind.OPENRC
    if systemd_runtime.is_dir():
        LOGGER.debug("Found systemd runtime directory at %s", systemd_runtime)
        return SupervisorKind.SYSTEMD
    raise SupervisorNotFoundError(
        "Can not find systemd or openrc to use as a process supervisor for k3s"
    )


__all__ = ["SupervisorKind", "detect_supervisor"]
