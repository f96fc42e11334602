"""Checksum verification and installation of the release binary."""
from __future__ import annotations

import errno
import hashlib
import logging
import os
import shutil
import tempfile
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from ..arch import ArchSpec
from ..errors import IntegrityError
from ..releases import ReleaseResolver
from .selinux import SELinuxLabeler

LOGGER = logging.getLogger(__name__)

_HASH_CHUNK = 1024 * 1024


class Downloader(Protocol):
    """Subset of the transport used by the artifact components."""

    def download(self, url: str, destination: Path) -> Path:
        """Fetch *url* into *destination*, failing on non-2xx responses."""
        ...


@dataclass(frozen=True, slots=True)
class ReleaseArtifact:
    """A release binary and the hash its checksum listing promises."""

    version: str
    arch: ArchSpec
    expected_hash: str


def sha256_file(path: Path) -> str:
    """Return the hex SHA-256 digest of *path*."""
    digest = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(_HASH_CHUNK), b""):
            digest.update(chunk)
    return digest.hexdigest()


def parse_checksum_manifest(text: str) -> dict[str, str]:
    """Parse ``<sha256>  <filename>`` lines into a filename -> hash mapping."""
    entries: dict[str, str] = {}
    for line in text.splitlines():
        parts = line.split()
        if len(parts) != 2:
            continue
        digest, filename = parts
        entries[filename.lstrip("*")] = digest.lower()
    return entries


class ArtifactVerifier:
    """Resolve the expected binary hash and compare it with the installed one."""

    def __init__(self, fetcher: Downloader, releases: ReleaseResolver) -> None:
        """Bind the transport and release locator."""
        self.fetcher = fetcher
        self.releases = releases

    def expected_artifact(self, version: str, arch: ArchSpec, workdir: Path) -> ReleaseArtifact:
        """Download the checksum listing and return the artifact it describes."""
        manifest_path = workdir / f"{arch.binary_name}.hash"
        self.fetcher.download(self.releases.manifest_url(version, arch), manifest_path)
        entries = parse_checksum_manifest(manifest_path.read_text(encoding="utf-8"))
        expected = entries.get(arch.binary_name)
        if not expected:
            raise IntegrityError(
                f"Checksum listing for {version} has no entry for {arch.binary_name}"
            )
        return ReleaseArtifact(version=version, arch=arch, expected_hash=expected)

    def installed_matches(self, artifact: ReleaseArtifact, binary_path: Path) -> bool:
        """Return True when *binary_path* is executable and already has the expected hash."""
        if not (binary_path.is_file() and os.access(binary_path, os.X_OK)):
            return False
        return sha256_file(binary_path) == artifact.expected_hash


class ArtifactInstaller:
    """Download, verify and move the release binary into place."""

    def __init__(
        self,
        fetcher: Downloader,
        releases: ReleaseResolver,
        *,
        selinux: SELinuxLabeler | None = None,
        chown: Callable[[Path], None] | None = None,
    ) -> None:
        """Bind the transport, release locator and host integration hooks."""
        self.fetcher = fetcher
        self.releases = releases
        self.selinux = selinux or SELinuxLabeler()
        self.chown = chown or chown_root

    def download(self, artifact: ReleaseArtifact, workdir: Path) -> Path:
        """Fetch the binary for *artifact* into *workdir*."""
        staged = workdir / f"{artifact.arch.binary_name}.bin"
        self.fetcher.download(self.releases.binary_url(artifact.version, artifact.arch), staged)
        return staged

    def verify(self, artifact: ReleaseArtifact, staged: Path) -> None:
        """Raise :class:`IntegrityError` unless *staged* matches the expected hash."""
        actual = sha256_file(staged)
        if actual != artifact.expected_hash:
            raise IntegrityError(
                f"Download sha256 does not match {artifact.expected_hash}, got {actual}"
            )

    def install(self, staged: Path, destination: Path) -> Path:
        """Make *staged* executable, root-owned, and replace *destination* with it."""
        staged.chmod(0o755)
        self.chown(staged)
        destination.parent.mkdir(parents=True, exist_ok=True)
        replace_file(staged, destination)
        if self.selinux.label(destination):
            LOGGER.info("SELinux is enabled, labelled %s", destination)
        return destination


def replace_file(source: Path, destination: Path) -> None:
    """Replace *destination* with *source* in a single rename.

    Across filesystems the file is first copied next to *destination* so the
    final step is still a same-directory rename.
    """
    try:
        os.replace(source, destination)
        return
    except OSError as exc:
        if exc.errno != errno.EXDEV:
            raise
    fd, tmp_name = tempfile.mkstemp(dir=str(destination.parent), prefix=f".{destination.name}.")
    os.close(fd)
    tmp_path = Path(tmp_name)
    try:
        shutil.copy2(source, tmp_path)
        os.replace(tmp_path, destination)
    finally:
        tmp_path.unlink(missing_ok=True)
    source.unlink(missing_ok=True)


def chown_root(path: Path) -> None:
    """Give *path* to ``root:root`` when running as root; otherwise leave it."""
    if os.geteuid() != 0:
        LOGGER.debug("Not running as root; leaving ownership of %s unchanged", path)
        return
    try:
        os.chown(path, 0, 0)
    except OSError as exc:
        LOGGER.warning("Could not chown %s to root: %s", path, exc)


__all__ = [
    "ArtifactInstaller",
    "ArtifactVerifier",
    "Downloader",
    "ReleaseArtifact",
    "chown_root",
    "parse_checksum_manifest",
    "replace_file",
    "sha256_file",
]
