"""Idempotent install-and-service-lifecycle orchestration.

:class:`Installer` runs the whole sequence for one service:

1. detect the supervisor and resolve the launch plan, identity and layout;
2. take the install lock and hash the binary and service files;
3. fetch, verify and install the binary (skipped when the installed binary
   already matches the published checksum, or when downloads are disabled);
4. write the symlinks and teardown scripts unless the binary directory is
   read-only;
5. drop any stale registration, write the environment file and descriptor,
   and enable the service;
6. restart the service only when the hashes taken in step 2 changed.
"""
from __future__ import annotations

import logging
import os
import tempfile
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from .arch import resolve_arch
from .config import PRODUCT, InstallConfig
from .envfile import write_env_file
from .errors import BinaryNotExecutableError
from .exec_mode import ExecPlan, resolve_exec_plan, resolve_service_type
from .identity import InstallLayout, ServiceIdentity, resolve_identity, resolve_layout
from .locking import LockManager
from .logging import ConsoleReporter, OperationScope
from .probe import SupervisorKind, detect_supervisor
from .providers import (
    ArtifactInstaller,
    ArtifactVerifier,
    DescriptorSpec,
    SELinuxLabeler,
    ServiceProvider,
    service_provider_for,
)
from .providers.artifact import Downloader, chown_root
from .releases import RedirectResolver, ReleaseResolver
from .scripts import ScriptGenerator, create_symlinks
from .snapshot import take_snapshot
from .templates import TemplateEngine
from .transport import HttpFetcher

LOGGER = logging.getLogger(__name__)

TMP_PREFIX = f"{PRODUCT}-install."


class Fetcher(Downloader, RedirectResolver, Protocol):
    """Transport capable of downloads and redirect lookups."""


@dataclass(slots=True)
class InstallReport:
    """Outcome of one installer run."""

    service: str
    supervisor: SupervisorKind
    launch: str
    version: str | None = None
    downloaded: bool = False
    restarted: bool = False
    changed_paths: list[Path] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "service": self.service,
            "supervisor": self.supervisor.value,
            "launch": self.launch,
            "version": self.version,
            "downloaded": self.downloaded,
            "restarted": self.restarted,
            "changed_paths": [str(path) for path in self.changed_paths],
        }


class Installer:
    """Drive a single install against the configured target."""

    def __init__(
        self,
        config: InstallConfig,
        *,
        templates: TemplateEngine,
        locks: LockManager,
        reporter: ConsoleReporter | None = None,
        fetcher: Fetcher | None = None,
        selinux: SELinuxLabeler | None = None,
        chown: Callable[[Path], None] = chown_root,
        provider_factory: Callable[
            [SupervisorKind, TemplateEngine, InstallConfig], ServiceProvider
        ] = service_provider_for,
    ) -> None:
        """Wire the collaborators; anything omitted talks to the real host."""
        self.config = config
        self.templates = templates
        self.locks = locks
        self.reporter = reporter or ConsoleReporter()
        self.fetcher: Fetcher = fetcher or HttpFetcher()
        self.selinux = selinux or SELinuxLabeler()
        self.chown = chown
        self.provider_factory = provider_factory
        self.releases = ReleaseResolver(self.fetcher, config.github_url)

    def run(self, op: OperationScope | None = None) -> InstallReport:
        """Install the binary and (re)configure its service."""
        config = self.config
        kind = detect_supervisor(
            openrc_run=config.paths.openrc_run,
            systemd_runtime=config.paths.systemd_runtime,
        )
        plan = resolve_exec_plan(config.exec_command, config.args, config.cluster)
        identity = resolve_identity(config, plan, kind)
        layout = resolve_layout(config, identity)
        provider = self.provider_factory(kind, self.templates, config)
        _step(op, "resolve", f"{kind.value}:{identity.name}:{plan.launch}")

        report = InstallReport(service=identity.name, supervisor=kind, launch=plan.launch)
        tracked = (layout.binary_path, identity.descriptor_path, identity.env_file_path)

        with self.locks.install_lock(config.bin_dir, timeout=config.lock_timeout) as lock:
            if op is not None:
                op.set_lock_wait_ms(lock.wait_ms)
            before = take_snapshot(tracked)

            self._install_binary(layout, report, op)
            if not config.bin_dir_read_only:
                self._install_helpers(layout, identity, op)

            provider.disable_stale(identity)
            self.reporter.info(f"env: Creating environment file {identity.env_file_path}")
            write_env_file(identity.env_file_path, config.service_environment)
            self._write_descriptor(provider, identity, layout, plan)
            self._enable(provider, identity)
            _step(op, "service.enable", identity.unit_name)

            if config.skip_start:
                _step(op, "service.start", "skip-start", status="skipped")
                return report

            after = take_snapshot(tracked)
            report.changed_paths = before.changed_paths(after)
            if not report.changed_paths:
                self.reporter.info("No change detected so skipping service start")
                _step(op, "service.start", "unchanged", status="skipped")
                return report

            self._start(provider, identity)
            report.restarted = True
            _step(op, "service.start", identity.unit_name)
        return report

    # ------------------------------------------------------------------
    def _install_binary(
        self,
        layout: InstallLayout,
        report: InstallReport,
        op: OperationScope | None,
    ) -> None:
        config = self.config
        if config.skip_download:
            self.reporter.info(f"Skipping {PRODUCT} download and verify")
            binary = layout.binary_path
            if not (binary.is_file() and os.access(binary, os.X_OK)):
                raise BinaryNotExecutableError(
                    f"Executable {PRODUCT} binary not found at {binary}"
                )
            _step(op, "binary", "skip-download", status="skipped")
            return

        arch = resolve_arch(config.arch)
        verifier = ArtifactVerifier(self.fetcher, self.releases)
        installer = ArtifactInstaller(
            self.fetcher,
            self.releases,
            selinux=self.selinux,
            chown=self.chown,
        )
        with tempfile.TemporaryDirectory(prefix=TMP_PREFIX) as tmp:
            workdir = Path(tmp)
            if not config.version:
                self.reporter.info("Finding latest release")
            version = self.releases.resolve(config.version)
            report.version = version
            self.reporter.info(f"Using {version} as release")

            self.reporter.info(
                f"Downloading hash {self.releases.manifest_url(version, arch)}"
            )
            artifact = verifier.expected_artifact(version, arch, workdir)
            if verifier.installed_matches(artifact, layout.binary_path):
                self.reporter.info(
                    f"Skipping binary downloaded, installed {PRODUCT} matches hash"
                )
                _step(op, "binary", version, status="skipped")
                return

            self.reporter.info(
                f"Downloading binary {self.releases.binary_url(version, arch)}"
            )
            staged = installer.download(artifact, workdir)
            self.reporter.info("Verifying binary download")
            installer.verify(artifact, staged)
            self.reporter.info(f"Installing {PRODUCT} to {layout.binary_path}")
            installer.install(staged, layout.binary_path)
        report.downloaded = True
        _step(op, "binary", version)

    def _install_helpers(
        self,
        layout: InstallLayout,
        identity: ServiceIdentity,
        op: OperationScope | None,
    ) -> None:
        for link in create_symlinks(layout):
            self.reporter.info(f"Creating {link} symlink to {PRODUCT}")
        scripts = ScriptGenerator(
            templates=self.templates,
            paths=self.config.paths,
            systemd_dir=self.config.systemd_dir,
            chown=self.chown,
        )
        self.reporter.info(f"Creating killall script {layout.killall_script}")
        scripts.write_killall(layout)
        self.reporter.info(f"Creating uninstall script {layout.uninstall_script}")
        scripts.write_uninstall(layout, identity)
        _step(op, "scripts", str(layout.bin_dir))

    def _write_descriptor(
        self,
        provider: ServiceProvider,
        identity: ServiceIdentity,
        layout: InstallLayout,
        plan: ExecPlan,
    ) -> None:
        spec = DescriptorSpec(
            binary_path=layout.binary_path,
            exec_command=plan.launch,
            service_type=resolve_service_type(plan, self.config.service_type),
            global_env_file=self.config.paths.environment_file,
        )
        self.reporter.info(
            f"{provider.kind.value}: Creating service file {identity.descriptor_path}"
        )
        provider.write_descriptor(identity, spec)

    def _enable(self, provider: ServiceProvider, identity: ServiceIdentity) -> None:
        if provider.kind is SupervisorKind.SYSTEMD:
            self.reporter.info(f"systemd: Enabling {identity.name} unit")
        else:
            self.reporter.info(
                f"openrc: Enabling {identity.name} service for default runlevel"
            )
        provider.enable(identity)

    def _start(self, provider: ServiceProvider, identity: ServiceIdentity) -> None:
        self.reporter.info(f"{provider.kind.value}: Starting {identity.name}")
        provider.restart(identity)


def _step(
    op: OperationScope | None,
    name: str,
    detail: str,
    *,
    status: str = "success",
) -> None:
    if op is not None:
        op.add_step(name, status=status, detail=detail)


__all__ = ["Fetcher", "InstallReport", "Installer"]
