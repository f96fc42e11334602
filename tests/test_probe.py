"""Supervisor detection tests."""
from __future__ import annotations

from pathlib import Path

import pytest

from k3sctl.errors import SupervisorNotFoundError
from k3sctl.exit_codes import ExitCode
from k3sctl.probe import SupervisorKind, detect_supervisor


def _openrc_run(tmp_path: Path) -> Path:
    script = tmp_path / "sbin" / "openrc-run"
    script.parent.mkdir(parents=True)
    script.write_text("#!/bin/sh\n")
    script.chmod(0o755)
    return script


def test_openrc_is_preferred_when_both_present(tmp_path: Path) -> None:
    """The openrc interpreter is checked first."""
    systemd = tmp_path / "run" / "systemd"
    systemd.mkdir(parents=True)

    kind = detect_supervisor(openrc_run=_openrc_run(tmp_path), systemd_runtime=systemd)

    assert kind is SupervisorKind.OPENRC


def test_systemd_detected_from_runtime_directory(tmp_path: Path) -> None:
    """The systemd runtime directory selects systemd."""
    systemd = tmp_path / "run" / "systemd"
    systemd.mkdir(parents=True)

    kind = detect_supervisor(openrc_run=tmp_path / "missing", systemd_runtime=systemd)

    assert kind is SupervisorKind.SYSTEMD


def test_non_executable_openrc_run_is_ignored(tmp_path: Path) -> None:
    """A non-executable openrc-run does not count."""
    script = _openrc_run(tmp_path)
    script.chmod(0o644)
    systemd = tmp_path / "run" / "systemd"
    systemd.mkdir(parents=True)

    assert detect_supervisor(openrc_run=script, systemd_runtime=systemd) is SupervisorKind.SYSTEMD


def test_missing_supervisor_is_fatal(tmp_path: Path) -> None:
    """Neither supervisor present is an environment error."""
    with pytest.raises(SupervisorNotFoundError) as excinfo:
        detect_supervisor(
            openrc_run=tmp_path / "openrc-run",
            systemd_runtime=tmp_path / "systemd",
        )

    assert excinfo.value.exit_code is ExitCode.ENVIRONMENT
