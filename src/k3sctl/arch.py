"""Map machine architectures onto published release artifacts."""
from __future__ import annotations

import platform
from dataclasses import dataclass
from enum import Enum
from typing import assert_never

from .config import PRODUCT
from .errors import UnsupportedArchitectureError


class Arch(str, Enum):
    """Canonical architectures with published binaries."""

    AMD64 = "amd64"
    ARM64 = "arm64"
    ARM = "arm"


_ALIASES = {
    "amd64": Arch.AMD64,
    "x86_64": Arch.AMD64,
    "arm64": Arch.ARM64,
    "aarch64": Arch.ARM64,
}


@dataclass(frozen=True, slots=True)
class ArchSpec:
    """Canonical architecture plus the suffix used in artifact file names."""

    arch: Arch
    suffix: str

    @property
    def binary_name(self) -> str:
        """Return the release asset name of the binary."""
        return f"{PRODUCT}{self.suffix}"

    @property
    def manifest_name(self) -> str:
        """Return the release asset name of the checksum listing."""
        return f"sha256sum-{self.arch.value}.txt"


def artifact_suffix(arch: Arch) -> str:
    """Return the artifact suffix for *arch*."""
    if arch is Arch.AMD64:
        return ""
    if arch is Arch.ARM64:
        return "-arm64"
    if arch is Arch.ARM:
        return "-armhf"
    assert_never(arch)


def resolve_arch(raw: str | None = None) -> ArchSpec:
    """Resolve *raw* (or the host machine type) into an :class:`ArchSpec`."""
    value = (raw if raw is not None else platform.machine()).strip()
    arch = _ALIASES.get(value)
    if arch is None and value.startswith("arm"):
        arch = Arch.ARM
    if arch is None:
        raise UnsupportedArchitectureError(f"Unsupported architecture {value}")
    return ArchSpec(arch=arch, suffix=artifact_suffix(arch))


__all__ = ["Arch", "ArchSpec", "artifact_suffix", "resolve_arch"]
