"""Teardown script generation and symlink tests."""
from __future__ import annotations

import os
from collections.abc import Callable

from k3sctl.config import InstallConfig
from k3sctl.exec_mode import resolve_exec_plan
from k3sctl.identity import InstallLayout, ServiceIdentity, resolve_identity, resolve_layout
from k3sctl.probe import SupervisorKind
from k3sctl.scripts import ScriptGenerator, create_symlinks
from k3sctl.templates import TemplateEngine


def _generator(
    config: InstallConfig,
) -> tuple[ScriptGenerator, ServiceIdentity, InstallLayout]:
    plan = resolve_exec_plan(config.exec_command, config.args, config.cluster)
    identity = resolve_identity(config, plan, SupervisorKind.SYSTEMD)
    layout = resolve_layout(config, identity)
    generator = ScriptGenerator(
        templates=TemplateEngine.with_overrides(None),
        paths=config.paths,
        systemd_dir=config.systemd_dir,
        chown=lambda path: None,
    )
    return generator, identity, layout


def test_killall_script_walks_one_process_snapshot(
    make_config: Callable[..., InstallConfig],
) -> None:
    """The killall script stops services, kills shim trees and unmounts."""
    config = make_config()
    generator, _, layout = _generator(config)

    assert generator.write_killall(layout) is True

    script = layout.killall_script.read_text(encoding="utf-8")
    assert script.startswith("#!/bin/sh\n")
    assert f"for service in {config.systemd_dir}/k3s*.service" in script
    assert f"for service in {config.paths.openrc_dir}/k3s*" in script
    assert script.count("ps -e -o pid= -o ppid= -o args=") == 1
    assert f"{config.paths.data_dir}/data/[^/]*/bin/containerd-shim" in script
    assert f"do_unmount '{config.paths.run_dir}'" in script
    assert f"do_unmount '{config.paths.data_dir}'" in script
    assert "sort -r" in script
    assert "ip link show master cni0" in script
    assert "ip link delete flannel.1" in script
    assert f"rm -rf {config.paths.cni_dir}/" in script
    assert os.access(layout.killall_script, os.X_OK)
    assert generator.write_killall(layout) is False


def test_uninstall_script_guards_shared_files(
    make_config: Callable[..., InstallConfig],
) -> None:
    """The uninstall script stops before shared files when other services remain."""
    config = make_config()
    generator, identity, layout = _generator(config)

    generator.write_uninstall(layout, identity)

    script = layout.uninstall_script.read_text(encoding="utf-8")
    lines = script.splitlines()
    guard = next(i for i, line in enumerate(lines) if "Additional k3s services installed" in line)
    assert lines.index(str(layout.killall_script)) < guard
    assert guard < lines.index(f"rm -f {config.binary_path}")
    assert f"rm -f {identity.descriptor_path}" in lines
    assert f"rm -f {identity.env_file_path}" in lines
    assert f"rm -rf {config.paths.data_dir}" in lines
    assert f"rm -rf {config.paths.config_dir}" in lines
    assert "trap remove_uninstall EXIT" in script
    assert layout.uninstall_script.name == "k3s-uninstall.sh"


def test_create_symlinks_only_when_missing(
    make_config: Callable[..., InstallConfig],
) -> None:
    """Existing kubectl or crictl entries are left alone."""
    _, _, layout = _generator(make_config())
    layout.bin_dir.mkdir(parents=True)
    (layout.bin_dir / "kubectl").write_text("real kubectl")

    created = create_symlinks(layout)

    assert created == [layout.bin_dir / "crictl"]
    assert os.readlink(layout.bin_dir / "crictl") == "k3s"
    assert (layout.bin_dir / "kubectl").read_text() == "real kubectl"
    assert create_symlinks(layout) == []
