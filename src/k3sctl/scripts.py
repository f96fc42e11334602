"""Generate the operator teardown scripts and convenience symlinks."""
from __future__ import annotations

import logging
import os
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from .config import PRODUCT, HostPaths
from .identity import InstallLayout, ServiceIdentity
from .providers.artifact import chown_root
from .templates import TemplateEngine

LOGGER = logging.getLogger(__name__)

CNI_BRIDGE = "cni0"
CNI_INTERFACES = ("cni0", "flannel.1")
SCRIPT_MODE = 0o755


def shim_pattern(paths: HostPaths) -> str:
    """Return the pattern matching runtime shim command lines."""
    return f"{paths.data_dir}/data/[^/]*/bin/containerd-shim"


def mount_roots(paths: HostPaths) -> tuple[Path, ...]:
    """Return the mount roots torn down by killall."""
    return (paths.run_dir, paths.data_dir)


def state_dirs(paths: HostPaths) -> tuple[Path, ...]:
    """Return the persisted state removed by a full uninstall."""
    return (paths.config_dir, paths.data_dir)


@dataclass(slots=True)
class ScriptGenerator:
    """Render ``k3s-killall.sh`` and the per-service uninstall script."""

    templates: TemplateEngine
    paths: HostPaths
    systemd_dir: Path
    chown: Callable[[Path], None] = chown_root

    def write_killall(self, layout: InstallLayout) -> bool:
        """Write the killall script; return True when it changed."""
        context = {
            "data_dir": self.paths.data_dir,
            "systemd_dir": self.systemd_dir,
            "openrc_dir": self.paths.openrc_dir,
            "product": PRODUCT,
            "shim_pattern": shim_pattern(self.paths),
            "mount_roots": mount_roots(self.paths),
            "bridge": CNI_BRIDGE,
            "interfaces": CNI_INTERFACES,
            "cni_dir": self.paths.cni_dir,
        }
        return self._render("scripts/killall.sh.j2", layout.killall_script, context)

    def write_uninstall(self, layout: InstallLayout, identity: ServiceIdentity) -> bool:
        """Write the uninstall script for *identity*; return True when it changed."""
        context = {
            "killall_script": layout.killall_script,
            "service_name": identity.name,
            "service_file": identity.descriptor_path,
            "env_file": identity.env_file_path,
            "uninstall_script": layout.uninstall_script,
            "systemd_dir": self.systemd_dir,
            "openrc_dir": self.paths.openrc_dir,
            "product": PRODUCT,
            "symlinks": layout.symlinks,
            "state_dirs": state_dirs(self.paths),
            "binary_path": layout.binary_path,
        }
        return self._render("scripts/uninstall.sh.j2", layout.uninstall_script, context)

    def _render(self, template: str, destination: Path, context: dict[str, object]) -> bool:
        changed = self.templates.render_to_path(template, destination, context, mode=SCRIPT_MODE)
        self.chown(destination)
        return changed


def create_symlinks(layout: InstallLayout) -> list[Path]:
    """Link the helper command names to the binary; existing entries are kept."""
    created: list[Path] = []
    for link in layout.symlinks:
        if link.exists() or link.is_symlink():
            LOGGER.debug("Skipping %s symlink to %s, already exists", link, PRODUCT)
            continue
        try:
            os.symlink(layout.binary_path.name, link)
        except OSError as exc:
            LOGGER.warning("Could not create symlink %s: %s", link, exc)
            continue
        created.append(link)
    return created


__all__ = [
    "CNI_BRIDGE",
    "CNI_INTERFACES",
    "ScriptGenerator",
    "create_symlinks",
    "mount_roots",
    "shim_pattern",
    "state_dirs",
]
