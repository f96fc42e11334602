"""Launch command and exec mode resolution tests."""
from __future__ import annotations

import pytest

from k3sctl.config import ClusterConfig
from k3sctl.errors import ExecModeError
from k3sctl.exec_mode import (
    ExecMode,
    resolve_exec_plan,
    resolve_service_name,
    resolve_service_type,
)

URL = "https://server:6443"


def test_no_url_and_no_args_is_server() -> None:
    """With nothing configured the service runs as a server."""
    plan = resolve_exec_plan("", [], ClusterConfig())

    assert plan.mode is ExecMode.SERVER
    assert plan.launch == "server"
    assert plan.default_service_type == "notify"


def test_url_and_token_infers_agent() -> None:
    """A remote URL plus a token selects agent mode."""
    plan = resolve_exec_plan("", [], ClusterConfig(url=URL, token="tok"))

    assert plan.mode is ExecMode.AGENT
    assert plan.launch == "agent"
    assert plan.default_service_type == "exec"


def test_cluster_secret_satisfies_agent_requirement() -> None:
    """The cluster secret is an alternative to the token."""
    plan = resolve_exec_plan("", [], ClusterConfig(url=URL, cluster_secret="s"))

    assert plan.mode is ExecMode.AGENT


def test_url_without_secret_is_fatal() -> None:
    """Agent inference without a join secret never silently defaults."""
    with pytest.raises(ExecModeError) as excinfo:
        resolve_exec_plan("", [], ClusterConfig(url=URL))

    assert "K3S_TOKEN or K3S_CLUSTER_SECRET" in str(excinfo.value)


def test_leading_flags_are_prefixed_with_inferred_command() -> None:
    """Flags are appended after the inferred command word."""
    plan = resolve_exec_plan("--disable-agent", ["--node-label  a=b"], ClusterConfig())

    assert plan.command == "server"
    assert plan.launch == "server --disable-agent --node-label a=b"


def test_explicit_command_word_wins() -> None:
    """A leading bare word is taken literally even when a URL is set."""
    plan = resolve_exec_plan("", ["server", "--cluster-init"], ClusterConfig(url=URL))

    assert plan.mode is ExecMode.SERVER
    assert plan.launch == "server --cluster-init"


def test_unknown_command_word_runs_as_agent_mode() -> None:
    """Any command other than server is treated as the agent mode."""
    plan = resolve_exec_plan("agent", [], ClusterConfig())

    assert plan.mode is ExecMode.AGENT
    assert plan.command == "agent"


def test_service_names() -> None:
    """Service names default from the mode; overrides get the product prefix."""
    server = resolve_exec_plan("", [], ClusterConfig())
    agent = resolve_exec_plan("agent", [], ClusterConfig())

    assert resolve_service_name(server, None) == "k3s"
    assert resolve_service_name(agent, None) == "k3s-agent"
    assert resolve_service_name(server, "edge") == "k3s-edge"


def test_service_type_override() -> None:
    """An explicit service type replaces the mode default."""
    server = resolve_exec_plan("", [], ClusterConfig())

    assert resolve_service_type(server, None) == "notify"
    assert resolve_service_type(server, "simple") == "simple"
