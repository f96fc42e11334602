"""Configuration loader for k3sctl.

This module centralises the logic for reading installer settings from
multiple sources:

1. Built-in defaults.
2. ``/etc/rancher/k3s/install.yml`` (or an override path).
3. Environment variables prefixed with ``INSTALL_K3S_`` plus the cluster
   join variables ``K3S_URL``, ``K3S_TOKEN`` and ``K3S_CLUSTER_SECRET``.
4. Explicit overrides supplied programmatically (CLI flags and arguments).

Environment keys use double underscores to express nesting, e.g.::

    export INSTALL_K3S_BIN_DIR=/opt/bin
    export INSTALL_K3S_PATHS__DATA_DIR=/srv/k3s

The environment is read exactly once, here. The resulting configuration is
exposed as immutable ``dataclasses`` and handed to every component; it also
carries the snapshot of ``K3S_*`` variables that end up in the service
environment file.
"""
from __future__ import annotations

import os
import shlex
from collections.abc import Mapping, MutableMapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import cast

try:  # PyYAML is a runtime dependency (declared in pyproject.toml).
    import yaml
except Exception as exc:  # pragma: no cover - import failure covered in tests
    raise RuntimeError(
        "PyYAML is required to load k3sctl configuration. Install with "
        "`pip install k3sctl` or ensure PyYAML>=6.0 is available."
    ) from exc

from .errors import ConfigError

PRODUCT = "k3s"
ENV_PREFIX = "INSTALL_K3S_"
SERVICE_ENV_PREFIX = "K3S_"
CONFIG_ENV_VAR = f"{ENV_PREFIX}CONFIG_FILE"
RESERVED_ENV_KEYS = {CONFIG_ENV_VAR}
CLUSTER_ENV_KEYS = {
    "K3S_URL": "url",
    "K3S_TOKEN": "token",
    "K3S_CLUSTER_SECRET": "cluster_secret",
}
SECRET_MARKERS = ("TOKEN", "SECRET", "PASSWORD")
MASK = "********"


@dataclass(frozen=True)
class ClusterConfig:
    """Remote server settings that switch the service into agent mode."""

    url: str | None = None
    token: str | None = None
    cluster_secret: str | None = None

    @property
    def has_secret(self) -> bool:
        """Return True when either join secret is present."""
        return bool(self.token) or bool(self.cluster_secret)

    def to_dict(self, *, mask_secrets: bool = True) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "url": self.url,
            "token": _mask(self.token) if mask_secrets else self.token,
            "cluster_secret": (
                _mask(self.cluster_secret) if mask_secrets else self.cluster_secret
            ),
        }


@dataclass(frozen=True)
class HostPaths:
    """Host locations touched by the installer and the teardown scripts."""

    openrc_dir: Path = Path("/etc/init.d")
    config_dir: Path = Path("/etc/rancher/k3s")
    data_dir: Path = Path("/var/lib/rancher/k3s")
    run_dir: Path = Path("/run/k3s")
    cni_dir: Path = Path("/var/lib/cni")
    logrotate_dir: Path = Path("/etc/logrotate.d")
    log_dir: Path = Path("/var/log")
    environment_file: Path = Path("/etc/environment")
    lock_dir: Path = Path("/run/k3sctl")
    openrc_run: Path = Path("/sbin/openrc-run")
    systemd_runtime: Path = Path("/run/systemd")

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {name: str(getattr(self, name)) for name in _PATH_KEYS}


_PATH_KEYS = (
    "openrc_dir",
    "config_dir",
    "data_dir",
    "run_dir",
    "cni_dir",
    "logrotate_dir",
    "log_dir",
    "environment_file",
    "lock_dir",
    "openrc_run",
    "systemd_runtime",
)


@dataclass(frozen=True)
class InstallConfig:
    """Resolved configuration values for a single installer run."""

    config_file: Path
    exec_command: str
    args: tuple[str, ...]
    skip_download: bool
    skip_start: bool
    version: str | None
    bin_dir: Path
    bin_dir_read_only: bool
    systemd_dir: Path
    name: str | None
    service_type: str | None
    arch: str | None
    github_url: str
    lock_timeout: float
    logs_dir: Path
    templates_dir: Path | None
    cluster: ClusterConfig
    paths: HostPaths
    service_environment: tuple[tuple[str, str], ...] = field(default_factory=tuple)

    @property
    def binary_path(self) -> Path:
        """Return the final location of the installed binary."""
        return self.bin_dir / PRODUCT

    def to_dict(self, *, mask_secrets: bool = True) -> dict[str, object]:
        """Return a JSON-serialisable representation of the config."""
        environment = {
            key: (_mask(value) if mask_secrets and _is_secret(key) else value)
            for key, value in self.service_environment
        }
        return {
            "config_file": str(self.config_file),
            "exec": self.exec_command,
            "args": list(self.args),
            "skip_download": self.skip_download,
            "skip_start": self.skip_start,
            "version": self.version,
            "bin_dir": str(self.bin_dir),
            "bin_dir_read_only": self.bin_dir_read_only,
            "systemd_dir": str(self.systemd_dir),
            "name": self.name,
            "type": self.service_type,
            "arch": self.arch,
            "github_url": self.github_url,
            "lock_timeout": self.lock_timeout,
            "logs_dir": str(self.logs_dir),
            "templates_dir": str(self.templates_dir) if self.templates_dir else None,
            "cluster": self.cluster.to_dict(mask_secrets=mask_secrets),
            "paths": self.paths.to_dict(),
            "service_environment": environment,
        }


DEFAULTS: dict[str, object] = {
    "config_file": "/etc/rancher/k3s/install.yml",
    "exec": "",
    "args": [],
    "skip_download": False,
    "skip_start": False,
    "version": None,
    "bin_dir": "/usr/local/bin",
    "bin_dir_read_only": False,
    "systemd_dir": "/etc/systemd/system",
    "name": None,
    "type": None,
    "arch": None,
    "github_url": "https://github.com/rancher/k3s/releases",
    "lock_timeout": 30.0,
    "logs_dir": "/var/log/k3sctl",
    "templates_dir": None,
    "cluster": {
        "url": None,
        "token": None,
        "cluster_secret": None,
    },
    "paths": {name: str(getattr(HostPaths(), name)) for name in _PATH_KEYS},
}

ALLOWED_TOP_LEVEL_KEYS = set(DEFAULTS.keys())
BOOLEAN_KEYS = {"skip_download", "skip_start", "bin_dir_read_only"}
LIST_KEYS = {"args"}
NUMERIC_KEYS = {"lock_timeout"}


def load_config(
    config_file: str | os.PathLike[str] | None = None,
    *,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, object] | None = None,
) -> InstallConfig:
    """Load and merge configuration sources into an :class:`InstallConfig`."""
    merged: dict[str, object] = _deep_copy(DEFAULTS)
    resolved_env = dict(os.environ if env is None else env)

    config_default = _expect_str(merged["config_file"], "config_file")
    config_path = _determine_config_path(config_default, config_file, resolved_env)

    file_values = _load_yaml_file(config_path)
    if file_values:
        _deep_merge(merged, file_values)

    env_values = _build_env_overrides(resolved_env)
    if env_values:
        _deep_merge(merged, env_values)

    if overrides:
        _deep_merge(merged, dict(overrides))

    merged["config_file"] = str(config_path)

    _validate_structure(merged)

    return _build_install_config(merged, _collect_service_environment(resolved_env))


def _determine_config_path(
    default_path: str,
    cli_override: str | os.PathLike[str] | None,
    env: Mapping[str, str],
) -> Path:
    if cli_override:
        return Path(cli_override)
    if env.get(CONFIG_ENV_VAR):
        return Path(env[CONFIG_ENV_VAR])
    return Path(default_path)


def _load_yaml_file(path: Path) -> dict[str, object]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:  # pragma: no cover - PyYAML owns detailed error
        raise ConfigError(f"Failed to parse config file {path}: {exc}") from exc
    if not isinstance(data, Mapping):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level.")
    return _as_dict(data, f"file:{path}")


def _validate_structure(raw: Mapping[str, object]) -> None:
    unknown_keys = set(raw.keys()) - ALLOWED_TOP_LEVEL_KEYS
    if unknown_keys:
        joined = ", ".join(sorted(unknown_keys))
        raise ConfigError(f"Unknown configuration keys: {joined}.")

    cluster = raw.get("cluster")
    if cluster is not None:
        cluster_map = _as_dict(cluster, "cluster")
        unknown = set(cluster_map.keys()) - {"url", "token", "cluster_secret"}
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ConfigError(f"Unknown cluster configuration keys: {joined}.")

    paths = raw.get("paths")
    if paths is not None:
        paths_map = _as_dict(paths, "paths")
        unknown = set(paths_map.keys()) - set(_PATH_KEYS)
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ConfigError(f"Unknown paths configuration keys: {joined}.")

    args = raw.get("args")
    if args is not None and (
        isinstance(args, (str, bytes)) or not isinstance(args, (list, tuple))
    ):
        raise ConfigError("args must be a list of strings.")

    name = raw.get("name")
    if isinstance(name, str) and "/" in name:
        raise ConfigError(f"Service name may not contain '/': {name!r}.")


def _build_install_config(
    raw: Mapping[str, object],
    service_environment: tuple[tuple[str, str], ...],
) -> InstallConfig:
    bin_dir_read_only = _expect_bool(raw.get("bin_dir_read_only"), "bin_dir_read_only")
    skip_download = _expect_bool(raw.get("skip_download"), "skip_download")
    if bin_dir_read_only:
        skip_download = True

    cluster_mapping = _as_dict(raw.get("cluster"), "cluster")
    cluster = ClusterConfig(
        url=_optional_str(cluster_mapping.get("url")),
        token=_optional_str(cluster_mapping.get("token")),
        cluster_secret=_optional_str(cluster_mapping.get("cluster_secret")),
    )

    paths_mapping = _as_dict(raw.get("paths"), "paths")
    default_paths = HostPaths()
    paths = HostPaths(
        **{
            key: _to_path(paths_mapping.get(key, getattr(default_paths, key)))
            for key in _PATH_KEYS
        }
    )

    raw_args = raw.get("args") or []
    args = tuple(str(item) for item in cast(list[object], raw_args))

    return InstallConfig(
        config_file=_to_path(raw.get("config_file")),
        exec_command=_optional_str(raw.get("exec")) or "",
        args=args,
        skip_download=skip_download,
        skip_start=_expect_bool(raw.get("skip_start"), "skip_start"),
        version=_optional_str(raw.get("version")),
        bin_dir=_to_path(raw.get("bin_dir")),
        bin_dir_read_only=bin_dir_read_only,
        systemd_dir=_to_path(raw.get("systemd_dir")),
        name=_optional_str(raw.get("name")),
        service_type=_optional_str(raw.get("type")),
        arch=_optional_str(raw.get("arch")),
        github_url=(_optional_str(raw.get("github_url")) or "").rstrip("/"),
        lock_timeout=_expect_positive_float(
            raw.get("lock_timeout"), "lock_timeout", default=30.0
        ),
        logs_dir=_to_path(raw.get("logs_dir")),
        templates_dir=_optional_path(raw.get("templates_dir")),
        cluster=cluster,
        paths=paths,
        service_environment=service_environment,
    )


def _build_env_overrides(env: Mapping[str, str]) -> dict[str, object]:
    overrides: dict[str, object] = {}
    for key, value in env.items():
        if key in RESERVED_ENV_KEYS:
            continue
        if key in CLUSTER_ENV_KEYS:
            if value:
                _assign_nested(overrides, ["cluster", CLUSTER_ENV_KEYS[key]], value)
            continue
        if not key.startswith(ENV_PREFIX):
            continue
        suffix = key[len(ENV_PREFIX) :]
        path_segments = [segment.lower() for segment in suffix.split("__") if segment]
        if not path_segments:
            continue
        if path_segments[0] not in ALLOWED_TOP_LEVEL_KEYS:
            # Unrelated INSTALL_K3S_* variables are ignored rather than rejected.
            continue
        if not value.strip():
            continue
        _assign_nested(overrides, path_segments, _coerce_value(path_segments[-1], value))
    return overrides


def _collect_service_environment(env: Mapping[str, str]) -> tuple[tuple[str, str], ...]:
    return tuple(
        sorted((key, value) for key, value in env.items() if key.startswith(SERVICE_ENV_PREFIX))
    )


def _assign_nested(tree: MutableMapping[str, object], path: list[str], value: object) -> None:
    current: MutableMapping[str, object] = tree
    for segment in path[:-1]:
        existing = current.get(segment)
        if existing is None:
            new_child: MutableMapping[str, object] = {}
            current[segment] = new_child
            current = new_child
            continue
        if isinstance(existing, MutableMapping):
            current = cast(MutableMapping[str, object], existing)
            continue
        raise ConfigError(
            "Environment overrides conflict with existing scalar value at "
            f"{'.'.join(path)}"
        )
    current[path[-1]] = value


def _deep_merge(target: MutableMapping[str, object], overrides: Mapping[str, object]) -> None:
    for key, value in overrides.items():
        existing = target.get(key)
        if isinstance(existing, MutableMapping) and isinstance(value, Mapping):
            _deep_merge(existing, _as_dict(value, f"merge.{key}"))
            continue
        target[key] = value


def _deep_copy(source: Mapping[str, object]) -> dict[str, object]:
    result: dict[str, object] = {}
    for key, value in source.items():
        if isinstance(value, Mapping):
            result[key] = _deep_copy(_as_dict(value, f"copy.{key}"))
        elif isinstance(value, list):
            result[key] = list(value)
        else:
            result[key] = value
    return result


def _coerce_value(key: str, raw: str) -> object:
    raw = raw.strip()
    if key in LIST_KEYS:
        return shlex.split(raw)
    if key not in BOOLEAN_KEYS and key not in NUMERIC_KEYS:
        return raw
    try:
        parsed = yaml.safe_load(raw)
    except yaml.YAMLError:  # pragma: no cover - treat as string if parsing fails
        return raw
    return parsed


def _is_secret(key: str) -> bool:
    upper = key.upper()
    return any(marker in upper for marker in SECRET_MARKERS)


def _mask(value: str | None) -> str | None:
    if not value:
        return value
    return MASK


def _optional_str(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _expect_bool(value: object, label: str) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1", "on"}:
            return True
        if lowered in {"false", "no", "0", "off", ""}:
            return False
    if isinstance(value, int):
        return bool(value)
    raise ConfigError(f"Expected {label} to be a boolean. Got {value!r}.")


def _optional_path(value: object) -> Path | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return _to_path(value)


def _to_path(value: object) -> Path:
    if value is None:
        raise ConfigError("Expected a filesystem path, received None.")
    if isinstance(value, Path):
        return value.expanduser()
    if isinstance(value, str):
        return Path(value).expanduser()
    raise ConfigError(f"Cannot convert value {value!r} to Path.")


def _expect_str(value: object, key: str) -> str:
    if isinstance(value, str):
        return value
    raise ConfigError(f"Expected {key} to resolve to a string. Got {value!r}.")


def _expect_positive_float(
    value: object | None,
    label: str,
    *,
    default: float,
) -> float:
    if value is None:
        return float(default)
    if isinstance(value, bool):
        raise ConfigError(f"Expected {label} to be a number. Got boolean {value!r}.")
    if isinstance(value, (int, float)):
        numeric = float(value)
    elif isinstance(value, str):
        try:
            numeric = float(value)
        except ValueError as exc:
            raise ConfigError(f"Invalid number for {label}: {value!r}.") from exc
    else:
        raise ConfigError(
            f"Expected {label} to be numeric. Got {type(value).__name__}."
        )
    if numeric <= 0:
        raise ConfigError(f"{label} must be greater than zero. Got {numeric}.")
    return numeric


def _as_dict(value: object | None, label: str) -> dict[str, object]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"Expected {label} to be a mapping. Got {type(value).__name__}.")
    result: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            raise ConfigError(f"Mapping {label} must use string keys. Got {key!r}.")
        result[key] = item
    return result


__all__ = [
    "ClusterConfig",
    "ConfigError",
    "HostPaths",
    "InstallConfig",
    "PRODUCT",
    "SERVICE_ENV_PREFIX",
    "load_config",
]
