"""Exception hierarchy shared by the installer components.

Every error carries the :class:`~k3sctl.exit_codes.ExitCode` the CLI should
terminate with. Components raise; only the CLI converts errors into a process
exit.
"""
from __future__ import annotations

from .exit_codes import ExitCode


class K3sctlError(RuntimeError):
    """Base class for unrecoverable installer errors."""

    exit_code: ExitCode = ExitCode.PROVIDER


class ConfigError(K3sctlError):
    """Raised when configuration parsing or validation fails."""

    exit_code = ExitCode.VALIDATION


class ExecModeError(ConfigError):
    """Raised when the launch command cannot be resolved."""


class SupervisorNotFoundError(K3sctlError):
    """Raised when neither systemd nor openrc is present on the host."""

    exit_code = ExitCode.ENVIRONMENT


class UnsupportedArchitectureError(K3sctlError):
    """Raised for machine architectures without a published artifact."""

    exit_code = ExitCode.ENVIRONMENT


class BinaryNotExecutableError(K3sctlError):
    """Raised when a skipped download leaves no usable binary behind."""

    exit_code = ExitCode.ENVIRONMENT


class LockTimeoutError(K3sctlError):
    """Raised when the install lock cannot be acquired in time."""

    exit_code = ExitCode.ENVIRONMENT


class TransportError(K3sctlError):
    """Raised when a download or redirect lookup fails."""

    exit_code = ExitCode.TRANSPORT


class IntegrityError(K3sctlError):
    """Raised when a downloaded artifact does not match its manifest hash."""

    exit_code = ExitCode.INTEGRITY


class ServiceError(K3sctlError):
    """Raised when a supervisor command fails."""

    exit_code = ExitCode.PROVIDER


class HostIOError(K3sctlError):
    """Raised when reading or writing a host file fails."""

    exit_code = ExitCode.ENVIRONMENT


__all__ = [
    "BinaryNotExecutableError",
    "ConfigError",
    "ExecModeError",
    "HostIOError",
    "IntegrityError",
    "K3sctlError",
    "LockTimeoutError",
    "ServiceError",
    "SupervisorNotFoundError",
    "TransportError",
    "UnsupportedArchitectureError",
]
