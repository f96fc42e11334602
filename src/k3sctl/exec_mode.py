"""Resolve the launch command and execution mode of the service.

The launch command is assembled from the configured ``exec`` string followed
by any trailing arguments. When it starts with a flag (or is empty) the mode
is inferred from the cluster settings: no remote URL means ``server``; a URL
means ``agent``, which additionally requires a join token or cluster secret.
A leading bare word is always taken literally as the command.
"""
from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import assert_never

from .config import ClusterConfig
from .errors import ExecModeError


class ExecMode(str, Enum):
    """Whether the service runs a cluster server or joins one as an agent."""

    SERVER = "server"
    AGENT = "agent"


@dataclass(frozen=True, slots=True)
class ExecPlan:
    """Resolved launch command for the service."""

    command: str
    mode: ExecMode
    launch: str

    @property
    def default_service_type(self) -> str:
        """Return the systemd ``Type=`` matching the mode."""
        if self.mode is ExecMode.SERVER:
            return "notify"
        if self.mode is ExecMode.AGENT:
            return "exec"
        assert_never(self.mode)


def resolve_exec_plan(
    exec_command: str,
    args: Sequence[str],
    cluster: ClusterConfig,
) -> ExecPlan:
    """Combine *exec_command* and *args* into an :class:`ExecPlan`."""
    words = exec_command.split()
    for arg in args:
        words.extend(arg.split())

    if not words or words[0].startswith("-"):
        if not cluster.url:
            command = ExecMode.SERVER.value
        else:
            if not cluster.has_secret:
                raise ExecModeError(
                    "Defaulted k3s exec command to 'agent' because K3S_URL is defined, "
                    "but K3S_TOKEN or K3S_CLUSTER_SECRET is not defined."
                )
            command = ExecMode.AGENT.value
        words.insert(0, command)
    else:
        command = words[0]

    mode = ExecMode.SERVER if command == ExecMode.SERVER.value else ExecMode.AGENT
    return ExecPlan(command=command, mode=mode, launch=" ".join(words))


def resolve_service_name(plan: ExecPlan, override: str | None) -> str:
    """Return the service name, namespacing explicit overrides under ``k3s-``."""
    if override:
        return f"k3s-{override}"
    if plan.mode is ExecMode.SERVER:
        return "k3s"
    return f"k3s-{plan.command}"


def resolve_service_type(plan: ExecPlan, override: str | None) -> str:
    """Return the systemd service type, honouring an explicit override."""
    return override or plan.default_service_type


__all__ = [
    "ExecMode",
    "ExecPlan",
    "resolve_exec_plan",
    "resolve_service_name",
    "resolve_service_type",
]
