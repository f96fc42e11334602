"""Best-effort SELinux labelling of the installed binary."""
from __future__ import annotations

import logging
import shutil
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class SELinuxLabeler:
    """Add a ``bin_t`` file context for a path when SELinux is enforcing."""

    getenforce_bin: str = "getenforce"
    semanage_bin: str = "semanage"
    restorecon_bin: str = "restorecon"
    context_type: str = "bin_t"

    def enabled(self) -> bool:
        """Return True when ``getenforce`` exists and does not report Disabled."""
        if shutil.which(self.getenforce_bin) is None:
            return False
        result = self._run_command([self.getenforce_bin])
        if result is None or result.returncode != 0:
            return False
        return (result.stdout or "").strip() != "Disabled"

    def label(self, path: Path) -> bool:
        """Label *path*; return True when SELinux was active. Failures are logged only."""
        if not self.enabled():
            return False
        listing = self._run_command([self.semanage_bin, "fcontext", "-l"])
        known = listing is not None and str(path) in (listing.stdout or "")
        if not known:
            self._run_command(
                [self.semanage_bin, "fcontext", "-a", "-t", self.context_type, str(path)]
            )
        self._run_command([self.restorecon_bin, "-v", str(path)])
        return True

    def _run_command(self, args: Sequence[str]) -> subprocess.CompletedProcess[str] | None:
        try:
            result = subprocess.run(  # noqa: S603, S607
                list(args),
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError as exc:
            LOGGER.warning("%s could not be executed: %s", args[0], exc)
            return None
        if result.returncode != 0:
            message = (result.stderr or result.stdout or "no output").strip()
            LOGGER.warning("%s failed (exit %s): %s", " ".join(args), result.returncode, message)
        return result


__all__ = ["SELinuxLabeler"]
