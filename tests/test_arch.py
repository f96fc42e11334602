"""Architecture resolution tests."""
from __future__ import annotations

import pytest

from k3sctl.arch import Arch, resolve_arch
from k3sctl.errors import UnsupportedArchitectureError
from k3sctl.exit_codes import ExitCode


@pytest.mark.parametrize(
    ("raw", "arch", "suffix"),
    [
        ("amd64", Arch.AMD64, ""),
        ("x86_64", Arch.AMD64, ""),
        ("arm64", Arch.ARM64, "-arm64"),
        ("aarch64", Arch.ARM64, "-arm64"),
        ("armv7l", Arch.ARM, "-armhf"),
        ("arm", Arch.ARM, "-armhf"),
    ],
)
def test_resolve_arch_aliases(raw: str, arch: Arch, suffix: str) -> None:
    """Documented aliases map onto canonical architectures."""
    spec = resolve_arch(raw)

    assert spec.arch is arch
    assert spec.suffix == suffix


def test_artifact_names_follow_suffix() -> None:
    """Asset names embed the suffix and canonical architecture."""
    spec = resolve_arch("aarch64")

    assert spec.binary_name == "k3s-arm64"
    assert spec.manifest_name == "sha256sum-arm64.txt"
    assert resolve_arch("x86_64").binary_name == "k3s"


@pytest.mark.parametrize("raw", ["i386", "mips", "ppc64le", ""])
def test_unknown_architecture_is_fatal(raw: str) -> None:
    """Anything else is an environment error."""
    with pytest.raises(UnsupportedArchitectureError) as excinfo:
        resolve_arch(raw)

    assert excinfo.value.exit_code is ExitCode.ENVIRONMENT
    assert "Unsupported architecture" in str(excinfo.value)


def test_resolve_arch_defaults_to_host(monkeypatch: pytest.MonkeyPatch) -> None:
    """Without an override the host machine type is used."""
    monkeypatch.setattr("k3sctl.arch.platform.machine", lambda: "x86_64")

    assert resolve_arch().arch is Arch.AMD64
