"""Pytest configuration helpers for the test suite."""

from __future__ import annotations

import os
from collections.abc import Callable, Mapping
from pathlib import Path

import pytest
import yaml

from k3sctl.config import InstallConfig, load_config


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip expensive tests during mutation runs."""
    if not os.environ.get("MUTANT_UNDER_TEST"):
        return
    skip_marker = pytest.mark.skip(reason="Skipped during mutation run to avoid timeouts.")
    for item in items:
        if "mutation_timeout" in item.keywords:
            item.add_marker(skip_marker)


def host_overrides(root: Path) -> dict[str, object]:
    """Return overrides that keep every host path under *root*."""
    return {
        "bin_dir": str(root / "bin"),
        "systemd_dir": str(root / "systemd"),
        "logs_dir": str(root / "logs"),
        "github_url": "https://releases.test/k3s",
        "paths": {
            "openrc_dir": str(root / "init.d"),
            "config_dir": str(root / "etc" / "rancher" / "k3s"),
            "data_dir": str(root / "var" / "lib" / "rancher" / "k3s"),
            "run_dir": str(root / "run" / "k3s"),
            "cni_dir": str(root / "var" / "lib" / "cni"),
            "logrotate_dir": str(root / "logrotate.d"),
            "log_dir": str(root / "var" / "log"),
            "environment_file": str(root / "etc" / "environment"),
            "lock_dir": str(root / "run" / "k3sctl"),
            "openrc_run": str(root / "sbin" / "openrc-run"),
            "systemd_runtime": str(root / "run" / "systemd"),
        },
    }


@pytest.fixture
def make_config(tmp_path: Path) -> Callable[..., InstallConfig]:
    """Return a factory building configs rooted in the temporary directory."""

    def factory(
        env: Mapping[str, str] | None = None,
        **overrides: object,
    ) -> InstallConfig:
        merged = host_overrides(tmp_path)
        merged.update(overrides)
        return load_config(
            config_file=tmp_path / "install.yml",
            env=dict(env or {}),
            overrides=merged,
        )

    return factory


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    """Write a YAML config keeping every host path under the temporary directory."""
    path = tmp_path / "install.yml"
    path.write_text(yaml.safe_dump(host_overrides(tmp_path)), encoding="utf-8")
    return path
