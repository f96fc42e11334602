"""Host integrations: artifact handling, SELinux and process supervisors."""
from __future__ import annotations

from typing import assert_never

from ..config import InstallConfig
from ..probe import SupervisorKind
from ..templates import TemplateEngine
from .artifact import ArtifactInstaller, ArtifactVerifier, ReleaseArtifact
from .descriptor import DescriptorSpec, ServiceProvider
from .openrc import OpenRCProvider
from .selinux import SELinuxLabeler
from .systemd import SystemdProvider


def service_provider_for(
    kind: SupervisorKind,
    templates: TemplateEngine,
    config: InstallConfig,
) -> ServiceProvider:
    """Return the provider that manages services under *kind*."""
    if kind is SupervisorKind.SYSTEMD:
        return SystemdProvider(templates=templates, systemd_dir=config.systemd_dir)
    if kind is SupervisorKind.OPENRC:
        return OpenRCProvider(templates=templates, openrc_dir=config.paths.openrc_dir)
    assert_never(kind)


__all__ = [
    "ArtifactInstaller",
    "ArtifactVerifier",
    "DescriptorSpec",
    "OpenRCProvider",
    "ReleaseArtifact",
    "SELinuxLabeler",
    "ServiceProvider",
    "SystemdProvider",
    "service_provider_for",
]
