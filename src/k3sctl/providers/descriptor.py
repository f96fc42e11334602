"""Shared shape of the supervisor providers."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from ..identity import ServiceIdentity
from ..probe import SupervisorKind

KERNEL_MODULES = ("br_netfilter", "overlay")
RESPAWN_DELAY = 5


@dataclass(frozen=True, slots=True)
class DescriptorSpec:
    """Values rendered into a service descriptor."""

    binary_path: Path
    exec_command: str
    service_type: str
    global_env_file: Path


class ServiceProvider(Protocol):
    """Operations the installer needs from a process supervisor."""

    kind: SupervisorKind

    def write_descriptor(self, identity: ServiceIdentity, spec: DescriptorSpec) -> bool:
        """Render the descriptor for *identity*; return True when it changed."""
        ...

    def disable_stale(self, identity: ServiceIdentity) -> None:
        """Forget any previous registration of *identity*."""
        ...

    def enable(self, identity: ServiceIdentity) -> None:
        """Register *identity* to start at boot."""
        ...

    def restart(self, identity: ServiceIdentity) -> None:
        """Restart the running service."""
        ...

    def stop(self, unit: str) -> None:
        """Stop *unit*, ignoring failures."""
        ...

    def deregister(self, identity: ServiceIdentity) -> None:
        """Remove *identity* from the supervisor's boot set."""
        ...

    def registered_services(self) -> list[Path]:
        """Return the product descriptors currently installed."""
        ...


__all__ = ["DescriptorSpec", "KERNEL_MODULES", "RESPAWN_DELAY", "ServiceProvider"]
