"""OpenRC provider for the k3s init script."""
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
from .descriptor import RESPAWN_DELAY, DescriptorSpec

LOGGER = logging.getLogger(__name__)

RUNLEVEL = "default"


@dataclass(slots=True)
class OpenRCProvider:
    """Render and manage the openrc init script and its log rotation."""

    templates: TemplateEngine
    openrc_dir: Path = Path("/etc/init.d")
    rc_update_bin: str = "rc-update"
    kind: SupervisorKind = SupervisorKind.OPENRC

    def write_descriptor(self, identity: ServiceIdentity, spec: DescriptorSpec) -> bool:
        """Render the init script and logrotate entry; return True when either changed."""
        log_file = identity.log_file or Path("/var/log") / f"{identity.name}.log"
        context = {
            "service_name": identity.name,
            "binary_path": spec.binary_path,
            "exec_command": spec.exec_command,
            "log_file": log_file,
            "respawn_delay": RESPAWN_DELAY,
            "global_env_file": spec.global_env_file,
            "env_file": identity.env_file_path,
        }
        changed = self.templates.render_to_path(
            "openrc/service.j2",
            identity.descriptor_path,
            context,
            mode=0o755,
        )
        if identity.logrotate_path is not None:
            rotated = self.templates.render_to_path(
                "openrc/logrotate.j2",
                identity.logrotate_path,
                {"log_file": log_file},
                mode=0o644,
            )
            changed = changed or rotated
        return changed

    def disable_stale(self, identity: ServiceIdentity) -> None:
        """Drop the service from the default runlevel and remove its files."""
        self._rc_update("delete", identity.name, check=False)
        identity.descriptor_path.unlink(missing_ok=True)
        identity.env_file_path.unlink(missing_ok=True)

    def enable(self, identity: ServiceIdentity) -> None:
        """Add the service to the default runlevel."""
        self._rc_update("add", identity.name)

    def restart(self, identity: ServiceIdentity) -> None:
        """Restart the service through its init script."""
        self._run_command(
            [str(identity.descriptor_path), "restart"],
            check=True,
            error_prefix=f"{identity.descriptor_path} restart",
        )

    def stop(self, unit: str) -> None:
        """Stop the init script named *unit*, ignoring failures."""
        script = self.openrc_dir / unit
        try:
            self._run_command([str(script), "stop"], check=False, error_prefix=f"{script} stop")
        except ServiceError as exc:
            LOGGER.debug("Ignoring failure to stop %s: %s", unit, exc)

    def deregister(self, identity: ServiceIdentity) -> None:
        """Drop the service from the default runlevel."""
        self._rc_update("delete", identity.name, check=False)

    def registered_services(self) -> list[Path]:
        """Return the product init scripts present in the openrc directory."""
        if not self.openrc_dir.is_dir():
            return []
        return sorted(path for path in self.openrc_dir.glob(f"{PRODUCT}*") if path.is_file())

    # ------------------------------------------------------------------
    def _rc_update(
        self,
        command: str,
        service: str,
        *,
        check: bool = True,
    ) -> subprocess.CompletedProcess[str] | None:
        args = [self.rc_update_bin, command, service, RUNLEVEL]
        try:
            return self._run_command(
                args,
                check=check,
                error_prefix=f"{self.rc_update_bin} {command}",
            )
        except ServiceError:
            if check:
                raise
            LOGGER.debug("Ignoring failure of %s", " ".join(args))
            return None

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
        except OSError as exc:
            raise ServiceError(f"{args[0]} could not be executed: {exc}") from exc
        if check and result.returncode != 0:
            message = (result.stderr or result.stdout or "no output").strip()
            raise ServiceError(f"{error_prefix} failed (exit {result.returncode}): {message}")
        return result


__all__ = ["OpenRCProvider"]
