"""Systemd provider for the k3s service unit."""
from __future__ import annotations

import logging
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from ..config import PRODUCT
from ..errors import ServiceError
from ..identity import ServiceIdentity
from ..probe import SupervisorKind
from ..templates import TemplateEngine
from .descriptor import KERNEL_MODULES, DescriptorSpec

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class SystemdProvider:
    """Render and manage the systemd unit for the k3s service."""

    templates: TemplateEngine
    systemd_dir: Path = Path("/etc/systemd/system")
    systemctl_bin: str = "systemctl"
    kind: SupervisorKind = SupervisorKind.SYSTEMD

    def write_descriptor(self, identity: ServiceIdentity, spec: DescriptorSpec) -> bool:
        """Render the unit file for *identity*; return True when it changed."""
        context = {
            "service_type": spec.service_type,
            "env_file": identity.env_file_path,
            "kernel_modules": KERNEL_MODULES,
            "binary_path": spec.binary_path,
            "exec_command": spec.exec_command,
        }
        return self.templates.render_to_path(
            "systemd/service.j2",
            identity.descriptor_path,
            context,
            mode=0o644,
        )

    def disable_stale(self, identity: ServiceIdentity) -> None:
        """Remove any previous unit and environment file and disable the unit."""
        identity.descriptor_path.unlink(missing_ok=True)
        identity.env_file_path.unlink(missing_ok=True)
        try:
            self._systemctl("disable", identity.name, check=False)
        except ServiceError as exc:
            LOGGER.debug("Ignoring failure to disable stale unit %s: %s", identity.name, exc)

    def enable(self, identity: ServiceIdentity) -> None:
        """Enable the unit file and reload systemd."""
        self._systemctl("enable", identity.descriptor_path)
        self._reload_daemon()

    def restart(self, identity: ServiceIdentity) -> None:
        """Restart the unit so new configuration always takes effect."""
        self._systemctl("restart", identity.name)

    def stop(self, unit: str) -> None:
        """Stop *unit*, ignoring failures."""
        try:
            self._systemctl("stop", unit, check=False)
        except ServiceError as exc:
            LOGGER.debug("Ignoring failure to stop %s: %s", unit, exc)

    def deregister(self, identity: ServiceIdentity) -> None:
        """Disable the unit, clear its failed state and reload systemd."""
        try:
            self._systemctl("disable", identity.name, check=False)
            self._systemctl("reset-failed", identity.name, check=False)
        except ServiceError as exc:
            LOGGER.debug("Ignoring failure to deregister %s: %s", identity.name, exc)
            return
        self._reload_daemon()

    def registered_services(self) -> list[Path]:
        """Return the product unit files present in the unit directory."""
        if not self.systemd_dir.is_dir():
            return []
        return sorted(self.systemd_dir.glob(f"{PRODUCT}*.service"))

    # ------------------------------------------------------------------
    def _reload_daemon(self) -> None:
        try:
            self._systemctl("daemon-reload")
        except ServiceError as exc:
            if "not found" in str(exc).lower():
                return
            raise

    def _systemctl(
        self,
        command: str,
        unit_or_path: str | Path | None = None,
        *,
        check: bool = True,
    ) -> subprocess.CompletedProcess[str]:
        args: list[str] = [self.systemctl_bin, command]
        if unit_or_path is not None:
            args.append(str(unit_or_path))
        return self._run_command(
            args,
            check=check,
            error_prefix=f"{self.systemctl_bin} {command}",
        )

    def _run_command(
        self,
        args: Sequence[str],
        *,
        check: bool,
        error_prefix: str,
    ) -> subprocess.CompletedProcess[str]:
        try:
            result = subprocess.run(  # noqa: S603, S607
                list(args),
                capture_output=True,
                text=True,
                check=False,
            )
        except FileNotFoundError as exc:
            raise ServiceError(f"{args[0]} not found: {exc}") from exc
        if check and result.returncode != 0:
            stdout = getattr(result, "stdout", "") or ""
            stderr = getattr(result, "stderr", "") or ""
            message = stderr.strip() or stdout.strip() or "no output"
            raise ServiceError(f"{error_prefix} failed (exit {result.returncode}): {message}")
        return result


__all__ = ["SystemdProvider"]
