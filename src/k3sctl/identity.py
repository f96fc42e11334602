"""Names and paths derived from the resolved service identity."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import assert_never

from .config import PRODUCT, InstallConfig
from .exec_mode import ExecPlan, resolve_service_name
from .probe import SupervisorKind

SYMLINK_NAMES = ("kubectl", "crictl")
KILLALL_SCRIPT = f"{PRODUCT}-killall.sh"


@dataclass(frozen=True, slots=True)
class ServiceIdentity:
    """The service name and the files that describe it to the supervisor."""

    name: str
    kind: SupervisorKind
    descriptor_path: Path
    env_file_path: Path
    log_file: Path | None = None
    logrotate_path: Path | None = None

    @property
    def unit_name(self) -> str:
        """Return the name the supervisor knows the service by."""
        if self.kind is SupervisorKind.SYSTEMD:
            return f"{self.name}.service"
        if self.kind is SupervisorKind.OPENRC:
            return self.name
        assert_never(self.kind)


@dataclass(frozen=True, slots=True)
class InstallLayout:
    """Files placed in the binary directory."""

    bin_dir: Path
    binary_path: Path
    symlinks: tuple[Path, ...]
    killall_script: Path
    uninstall_script: Path


def resolve_identity(
    config: InstallConfig,
    plan: ExecPlan,
    kind: SupervisorKind,
) -> ServiceIdentity:
    """Return the :class:`ServiceIdentity` for *plan* under supervisor *kind*."""
    return identity_for_name(config, resolve_service_name(plan, config.name), kind)


def identity_for_name(
    config: InstallConfig,
    name: str,
    kind: SupervisorKind,
) -> ServiceIdentity:
    """Return the :class:`ServiceIdentity` of the service called *name*."""
    if kind is SupervisorKind.SYSTEMD:
        unit = config.systemd_dir / f"{name}.service"
        return ServiceIdentity(
            name=name,
            kind=kind,
            descriptor_path=unit,
            env_file_path=unit.with_name(f"{unit.name}.env"),
        )
    if kind is SupervisorKind.OPENRC:
        return ServiceIdentity(
            name=name,
            kind=kind,
            descriptor_path=config.paths.openrc_dir / name,
            env_file_path=config.paths.config_dir / f"{name}.env",
            log_file=config.paths.log_dir / f"{name}.log",
            logrotate_path=config.paths.logrotate_dir / name,
        )
    assert_never(kind)


def resolve_layout(config: InstallConfig, identity: ServiceIdentity) -> InstallLayout:
    """Return the :class:`InstallLayout` under the configured binary directory."""
    bin_dir = config.bin_dir
    return InstallLayout(
        bin_dir=bin_dir,
        binary_path=config.binary_path,
        symlinks=tuple(bin_dir / link for link in SYMLINK_NAMES),
        killall_script=bin_dir / KILLALL_SCRIPT,
        uninstall_script=bin_dir / f"{identity.name}-uninstall.sh",
    )


__all__ = [
    "InstallLayout",
    "KILLALL_SCRIPT",
    "SYMLINK_NAMES",
    "ServiceIdentity",
    "identity_for_name",
    "resolve_identity",
    "resolve_layout",
]
