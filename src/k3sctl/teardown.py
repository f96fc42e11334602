"""Native counterparts of the killall and uninstall scripts.

The planning helpers are pure functions over text captured from the host
(``ps``, ``/proc/self/mounts``, ``ip link``) so the kill set, the unmount
order and the interface list can be computed and tested without touching a
live system. :class:`Teardown` gathers that text once and acts on it.
"""
from __future__ import annotations

import logging
import os
import re
import shutil
import signal
import subprocess
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from .config import HostPaths
from .identity import InstallLayout, ServiceIdentity
from .providers.descriptor import ServiceProvider
from .scripts import CNI_BRIDGE, CNI_INTERFACES, mount_roots, shim_pattern, state_dirs

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ProcessEntry:
    """One row of the process table."""

    pid: int
    ppid: int
    args: str


def parse_process_table(text: str) -> list[ProcessEntry]:
    """Parse ``ps -e -o pid= -o ppid= -o args=`` output."""
    entries: list[ProcessEntry] = []
    for line in text.splitlines():
        parts = line.split(None, 2)
        if len(parts) < 2:
            continue
        try:
            pid, ppid = int(parts[0]), int(parts[1])
        except ValueError:
            continue
        entries.append(ProcessEntry(pid=pid, ppid=ppid, args=parts[2] if len(parts) > 2 else ""))
    return entries


def children_map(entries: Iterable[ProcessEntry]) -> dict[int, list[int]]:
    """Return the parent -> children adjacency of *entries*."""
    children: dict[int, list[int]] = {}
    for entry in entries:
        children.setdefault(entry.ppid, []).append(entry.pid)
    return children


def find_roots(entries: Iterable[ProcessEntry], pattern: str) -> list[int]:
    """Return the pids whose command line matches *pattern*."""
    matcher = re.compile(pattern)
    return [entry.pid for entry in entries if matcher.search(entry.args)]


def descendants(children: Mapping[int, Sequence[int]], roots: Iterable[int]) -> list[int]:
    """Return *roots* and all their descendants in depth-first pre-order."""
    ordered: list[int] = []
    seen: set[int] = set()
    for root in roots:
        stack = [root]
        while stack:
            pid = stack.pop()
            if pid in seen:
                continue
            seen.add(pid)
            ordered.append(pid)
            stack.extend(reversed(children.get(pid, ())))
    return ordered


def select_mounts(mount_lines: Iterable[str], roots: Iterable[Path]) -> list[str]:
    """Return mount points under any of *roots*, deepest first."""
    prefixes = tuple(str(root) for root in roots)
    points = []
    for line in mount_lines:
        fields = line.split()
        if len(fields) < 2:
            continue
        if fields[1].startswith(prefixes):
            points.append(fields[1])
    return sorted(points, reverse=True)


def bridge_members(link_output: str, bridge: str) -> list[str]:
    """Return interface names listed by ``ip link show master <bridge>``."""
    members: list[str] = []
    for line in link_output.splitlines():
        if bridge not in line:
            continue
        parts = line.split(": ")
        if len(parts) < 2:
            continue
        name = parts[1].split("@", 1)[0].strip()
        if name and name not in members:
            members.append(name)
    return members


@dataclass(slots=True)
class TeardownReport:
    """What a killall pass did."""

    stopped: list[str] = field(default_factory=list)
    killed: list[int] = field(default_factory=list)
    unmounted: list[str] = field(default_factory=list)
    interfaces: list[str] = field(default_factory=list)


@dataclass(slots=True)
class UninstallReport:
    """What an uninstall pass removed, and why it may have stopped early."""

    service: str
    removed: list[Path] = field(default_factory=list)
    remaining_services: list[Path] = field(default_factory=list)

    @property
    def shared_kept(self) -> bool:
        """Return True when other services kept the shared files in place."""
        return bool(self.remaining_services)


@dataclass(slots=True)
class Teardown:
    """Stop services, kill runtime processes and clean host state."""

    paths: HostPaths
    providers: Sequence[ServiceProvider]
    mounts_file: Path = Path("/proc/self/mounts")
    ip_bin: str = "ip"
    ps_bin: str = "ps"
    umount_bin: str = "umount"

    def killall(self) -> TeardownReport:
        """Run every killall step; individual failures are logged and skipped."""
        report = TeardownReport()
        for provider in self.providers:
            for descriptor in provider.registered_services():
                provider.stop(descriptor.name)
                report.stopped.append(descriptor.name)

        report.killed = self._kill_shim_trees()
        report.unmounted = self._unmount(mount_roots(self.paths))
        report.interfaces = self._remove_interfaces()
        shutil.rmtree(self.paths.cni_dir, ignore_errors=True)
        return report

    def uninstall(
        self,
        provider: ServiceProvider,
        identity: ServiceIdentity,
        layout: InstallLayout,
    ) -> UninstallReport:
        """Remove *identity*; the shared install stays while other services exist."""
        self.killall()
        report = UninstallReport(service=identity.name)
        provider.deregister(identity)
        for path in (identity.descriptor_path, identity.env_file_path, identity.logrotate_path):
            if path is not None and _remove_file(path):
                report.removed.append(path)
        if _remove_file(layout.uninstall_script):
            report.removed.append(layout.uninstall_script)

        for other in self.providers:
            report.remaining_services.extend(other.registered_services())
        if report.shared_kept:
            LOGGER.info(
                "Additional services installed, keeping shared files: %s",
                ", ".join(path.name for path in report.remaining_services),
            )
            return report

        for link in layout.symlinks:
            if link.is_symlink():
                link.unlink()
                report.removed.append(link)
        for directory in state_dirs(self.paths):
            if directory.exists():
                shutil.rmtree(directory, ignore_errors=True)
                report.removed.append(directory)
        for path in (layout.binary_path, layout.killall_script):
            if _remove_file(path):
                report.removed.append(path)
        return report

    # ------------------------------------------------------------------
    def _kill_shim_trees(self) -> list[int]:
        result = self._run_command([self.ps_bin, "-e", "-o", "pid=", "-o", "ppid=", "-o", "args="])
        if result is None or result.returncode != 0:
            return []
        entries = parse_process_table(result.stdout or "")
        roots = find_roots(entries, shim_pattern(self.paths))
        killed: list[int] = []
        for pid in descendants(children_map(entries), roots):
            try:
                os.kill(pid, signal.SIGTERM)
            except ProcessLookupError:
                continue
            except PermissionError as exc:
                LOGGER.warning("Could not signal process %s: %s", pid, exc)
                continue
            killed.append(pid)
        return killed

    def _unmount(self, roots: Sequence[Path]) -> list[str]:
        try:
            lines = self.mounts_file.read_text(encoding="utf-8").splitlines()
        except OSError as exc:
            LOGGER.warning("Could not read %s: %s", self.mounts_file, exc)
            return []
        unmounted: list[str] = []
        for point in select_mounts(lines, roots):
            result = self._run_command([self.umount_bin, point])
            if result is not None and result.returncode == 0:
                unmounted.append(point)
        return unmounted

    def _remove_interfaces(self) -> list[str]:
        result = self._run_command([self.ip_bin, "link", "show", "master", CNI_BRIDGE])
        members = bridge_members(result.stdout or "", CNI_BRIDGE) if result is not None else []
        removed: list[str] = []
        for name in [*members, *CNI_INTERFACES]:
            outcome = self._run_command([self.ip_bin, "link", "delete", name])
            if outcome is not None and outcome.returncode == 0:
                removed.append(name)
        return removed

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
            LOGGER.debug("%s failed (exit %s): %s", " ".join(args), result.returncode, message)
        return result


def _remove_file(path: Path) -> bool:
    if not (path.exists() or path.is_symlink()):
        return False
    path.unlink()
    return True


__all__ = [
    "ProcessEntry",
    "Teardown",
    "TeardownReport",
    "UninstallReport",
    "bridge_members",
    "children_map",
    "descendants",
    "find_roots",
    "parse_process_table",
    "select_mounts",
]
