"""Tests for the openrc provider."""
from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

import pytest

from k3sctl.errors import ServiceError
from k3sctl.identity import ServiceIdentity
from k3sctl.probe import SupervisorKind
from k3sctl.providers.descriptor import DescriptorSpec
from k3sctl.providers.openrc import OpenRCProvider
from k3sctl.templates import TemplateEngine


class DummyResult:
    """Simple stand-in for ``subprocess.CompletedProcess``."""

    def __init__(self, returncode: int = 0, stdout: str = "", stderr: str = "") -> None:
        """Initialise the dummy result."""
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


@pytest.fixture
def provider(tmp_path: Path) -> OpenRCProvider:
    """Return a provider writing into the temporary path."""
    openrc_dir = tmp_path / "init.d"
    openrc_dir.mkdir()
    return OpenRCProvider(templates=TemplateEngine.with_overrides(None), openrc_dir=openrc_dir)


def _identity(tmp_path: Path, name: str = "k3s") -> ServiceIdentity:
    return ServiceIdentity(
        name=name,
        kind=SupervisorKind.OPENRC,
        descriptor_path=tmp_path / "init.d" / name,
        env_file_path=tmp_path / "etc" / f"{name}.env",
        log_file=tmp_path / "log" / f"{name}.log",
        logrotate_path=tmp_path / "logrotate.d" / name,
    )


def _record_commands(
    monkeypatch: pytest.MonkeyPatch,
    returncode: int = 0,
) -> list[list[str]]:
    calls: list[list[str]] = []

    def fake_run(
        self: OpenRCProvider,
        args: Sequence[str],
        *,
        check: bool,
        error_prefix: str,
    ) -> DummyResult:
        calls.append(list(args))
        if check and returncode != 0:
            raise ServiceError(f"{error_prefix} failed (exit {returncode}): no output")
        return DummyResult(returncode=returncode)

    monkeypatch.setattr(OpenRCProvider, "_run_command", fake_run)
    return calls


def test_write_descriptor_renders_script_and_logrotate(
    tmp_path: Path,
    provider: OpenRCProvider,
) -> None:
    """The run script supervises the binary and logs to the service log."""
    identity = _identity(tmp_path)
    spec = DescriptorSpec(
        binary_path=Path("/usr/local/bin/k3s"),
        exec_command="server --disable-agent",
        service_type="notify",
        global_env_file=Path("/etc/environment"),
    )

    assert provider.write_descriptor(identity, spec) is True

    script = identity.descriptor_path.read_text(encoding="utf-8")
    assert script.startswith("#!/sbin/openrc-run")
    assert "supervisor=supervise-daemon" in script
    assert 'command="/usr/local/bin/k3s"' in script
    assert f'command_args="server --disable-agent >>{identity.log_file} 2>&1"' in script
    assert "respawn_delay=5" in script
    assert "source /etc/environment" in script
    assert f"source {identity.env_file_path}" in script
    assert identity.descriptor_path.stat().st_mode & 0o777 == 0o755

    assert identity.logrotate_path is not None
    rotation = identity.logrotate_path.read_text(encoding="utf-8")
    assert rotation.startswith(f"{identity.log_file} {{")
    for directive in ("missingok", "notifempty", "copytruncate"):
        assert directive in rotation

    assert provider.write_descriptor(identity, spec) is False


def test_disable_stale_tolerates_rc_update_failure(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
    provider: OpenRCProvider,
) -> None:
    """Stale scripts are removed whether or not rc-update knew them."""
    calls = _record_commands(monkeypatch, returncode=1)
    identity = _identity(tmp_path)
    identity.descriptor_path.write_text("old")

    provider.disable_stale(identity)

    assert not identity.descriptor_path.exists()
    assert calls == [["rc-update", "delete", "k3s", "default"]]


def test_enable_and_restart_commands(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
    provider: OpenRCProvider,
) -> None:
    """Enable adds the default runlevel; restart runs the script."""
    calls = _record_commands(monkeypatch)
    identity = _identity(tmp_path, "k3s-agent")

    provider.enable(identity)
    provider.restart(identity)

    assert calls == [
        ["rc-update", "add", "k3s-agent", "default"],
        [str(identity.descriptor_path), "restart"],
    ]


def test_enable_failure_raises(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
    provider: OpenRCProvider,
) -> None:
    """Enable failures propagate as provider errors."""
    _record_commands(monkeypatch, returncode=1)

    with pytest.raises(ServiceError):
        provider.enable(_identity(tmp_path))


def test_registered_services_lists_product_scripts(provider: OpenRCProvider) -> None:
    """Only product scripts are reported."""
    (provider.openrc_dir / "k3s").write_text("x")
    (provider.openrc_dir / "sshd").write_text("x")

    assert [path.name for path in provider.registered_services()] == ["k3s"]
