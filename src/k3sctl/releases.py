"""Locate release versions and their assets on the release host.

The latest version is discovered by following the redirect of
``<github_url>/latest``; the last path segment of the final URL is taken as
the version tag. That redirect shape is an external contract of the release
host and is not second-guessed here.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol
from urllib.parse import urlsplit

from .arch import ArchSpec
from .errors import TransportError

LOGGER = logging.getLogger(__name__)


class RedirectResolver(Protocol):
    """Subset of the transport needed to discover the latest release."""

    def resolve_final_url(self, url: str) -> str:
        """Return the effective URL after following redirects."""
        ...


@dataclass(slots=True)
class ReleaseResolver:
    """Resolve release versions and build asset URLs."""

    fetcher: RedirectResolver
    github_url: str = "https://github.com/rancher/k3s/releases"

    def resolve(self, pinned: str | None) -> str:
        """Return *pinned* verbatim, or look up the latest release tag."""
        if pinned:
            return pinned
        final_url = self.fetcher.resolve_final_url(f"{self.github_url}/latest")
        version = _last_path_segment(final_url)
        if not version:
            raise TransportError(f"Could not determine latest release from {final_url}")
        return version

    def manifest_url(self, version: str, arch: ArchSpec) -> str:
        """Return the checksum listing URL for *version* and *arch*."""
        return f"{self.github_url}/download/{version}/{arch.manifest_name}"

    def binary_url(self, version: str, arch: ArchSpec) -> str:
        """Return the binary download URL for *version* and *arch*."""
        return f"{self.github_url}/download/{version}/{arch.binary_name}"


def _last_path_segment(url: str) -> str:
    path = urlsplit(url).path.rstrip("/")
    return path.rsplit("/", 1)[-1]


__all__ = ["RedirectResolver", "ReleaseResolver"]
