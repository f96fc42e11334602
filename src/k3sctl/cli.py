"""Typer-powered command line for ``k3sctl``.

``k3sctl install`` performs the idempotent install of the k3s binary and its
service; ``killall`` and ``uninstall`` are native equivalents of the scripts
the installer leaves in the binary directory.
"""
from __future__ import annotations

import json
import signal
import textwrap
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from types import FrameType
from typing import NoReturn

import typer
from rich.console import Console
from rich.table import Table

from . import __version__
from .config import PRODUCT, InstallConfig, load_config
from .errors import ConfigError, HostIOError, K3sctlError
from .exit_codes import ExitCode
from .identity import identity_for_name, resolve_layout
from .installer import Installer
from .locking import LockManager
from .logging import ConsoleReporter, OperationScope, StructuredLogger
from .probe import detect_supervisor
from .providers import OpenRCProvider, SystemdProvider, service_provider_for
from .teardown import Teardown
from .templates import TemplateEngine

console = Console()
err_console = Console(stderr=True)

CONFIG_FILE_OPTION = typer.Option(
    None,
    "--config-file",
    dir_okay=False,
    help="Override the path to the installer's YAML config file.",
)

app = typer.Typer(
    add_completion=False,
    help=textwrap.dedent(
        """
        Install k3s and manage its service.

        Settings come from the YAML config file, INSTALL_K3S_* and K3S_*
        environment variables, and the command line options, in that order.
        """
    ).strip(),
)
config_app = typer.Typer(help="Inspect the effective installer configuration.")
app.add_typer(config_app, name="config")


@dataclass(slots=True)
class RuntimeOptions:
    """Global options collected by the root callback."""

    config_file: Path | None = None
    lock_timeout: float | None = None


@dataclass
class RuntimeContext:
    """Aggregated runtime objects shared by commands."""

    config: InstallConfig
    locks: LockManager
    logger: StructuredLogger
    templates: TemplateEngine
    reporter: ConsoleReporter


def _build_runtime(
    ctx: typer.Context,
    overrides: Mapping[str, object] | None = None,
) -> RuntimeContext:
    options = ctx.obj if isinstance(ctx.obj, RuntimeOptions) else RuntimeOptions()
    reporter = ConsoleReporter(console=console, err_console=err_console)
    merged: dict[str, object] = {
        key: value for key, value in (overrides or {}).items() if value is not None
    }
    if options.lock_timeout is not None:
        merged["lock_timeout"] = options.lock_timeout
    try:
        config = load_config(config_file=options.config_file, overrides=merged)
    except ConfigError as exc:
        reporter.error(str(exc))
        raise typer.Exit(code=int(exc.exit_code)) from exc
    return RuntimeContext(
        config=config,
        locks=LockManager(config.paths.lock_dir, config.lock_timeout),
        logger=StructuredLogger(config.logs_dir),
        templates=TemplateEngine.with_overrides(config.templates_dir),
        reporter=reporter,
    )


def _command_error(
    runtime: RuntimeContext,
    op: OperationScope,
    exc: K3sctlError,
) -> NoReturn:
    """Report *exc* and terminate with its exit code."""
    message = str(exc)
    rc = int(exc.exit_code)
    runtime.reporter.error(message)
    op.error(message, errors=[f"{type(exc).__name__}: {message}"], rc=rc)
    raise typer.Exit(code=rc)


def _exit_on_sigterm(signum: int, frame: FrameType | None) -> None:
    raise SystemExit(128 + signum)


@app.callback(invoke_without_command=True)
def _root(  # noqa: D401 - Typer displays help for us, docstring optional.
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show the k3sctl version and exit.",
    ),
    config_file: Path | None = CONFIG_FILE_OPTION,
    lock_timeout: float | None = typer.Option(
        None,
        "--lock-timeout",
        help="Override lock acquisition timeout in seconds.",
    ),
) -> None:
    """Entry point callback invoked for every CLI execution."""
    ctx.obj = RuntimeOptions(config_file=config_file, lock_timeout=lock_timeout)
    if version:
        console.print(f"k3sctl {__version__}")
        raise typer.Exit(code=int(ExitCode.OK))

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
        raise typer.Exit(code=int(ExitCode.OK))


@app.command(
    "install",
    context_settings={"allow_extra_args": True, "ignore_unknown_options": True},
)
def install(
    ctx: typer.Context,
    exec_command: str | None = typer.Option(
        None,
        "--exec",
        help="Launch command, e.g. 'server' or 'agent --node-label x=y'.",
    ),
    release: str | None = typer.Option(
        None,
        "--version",
        help="Install this release instead of the latest one.",
    ),
    bin_dir: Path | None = typer.Option(
        None,
        "--bin-dir",
        file_okay=False,
        help="Directory receiving the binary, symlinks and scripts.",
    ),
    bin_dir_read_only: bool = typer.Option(
        False,
        "--bin-dir-read-only",
        help="Treat the binary directory as read-only (implies --skip-download).",
    ),
    systemd_dir: Path | None = typer.Option(
        None,
        "--systemd-dir",
        file_okay=False,
        help="Directory receiving the systemd unit and its environment file.",
    ),
    skip_download: bool = typer.Option(
        False,
        "--skip-download",
        help="Use the binary already present in the binary directory.",
    ),
    skip_start: bool = typer.Option(
        False,
        "--skip-start",
        help="Enable the service without (re)starting it.",
    ),
    name: str | None = typer.Option(
        None,
        "--name",
        help="Service name suffix; the service is named k3s-<name>.",
    ),
    service_type: str | None = typer.Option(
        None,
        "--type",
        help="Override the systemd service type.",
    ),
    arch: str | None = typer.Option(
        None,
        "--arch",
        help="Override the detected machine architecture.",
    ),
) -> None:
    """Install k3s and (re)configure its service.

    Extra arguments are appended to the launch command, so
    ``k3sctl install server --disable-agent`` runs ``k3s server --disable-agent``.
    Use ``--`` before launch flags that collide with installer options.
    """
    overrides: dict[str, object] = {
        "exec": exec_command,
        "version": release,
        "bin_dir": str(bin_dir) if bin_dir else None,
        "systemd_dir": str(systemd_dir) if systemd_dir else None,
        "name": name,
        "type": service_type,
        "arch": arch,
    }
    if ctx.args:
        overrides["args"] = list(ctx.args)
    if skip_download:
        overrides["skip_download"] = True
    if skip_start:
        overrides["skip_start"] = True
    if bin_dir_read_only:
        overrides["bin_dir_read_only"] = True

    runtime = _build_runtime(ctx, overrides)
    config = runtime.config
    previous_handler = signal.signal(signal.SIGTERM, _exit_on_sigterm)
    with runtime.logger.operation(
        "install",
        args=config.to_dict(),
        target={"kind": "install", "bin_dir": str(config.bin_dir)},
    ) as op:
        installer = Installer(
            config,
            templates=runtime.templates,
            locks=runtime.locks,
            reporter=runtime.reporter,
        )
        try:
            report = installer.run(op)
        except K3sctlError as exc:
            _command_error(runtime, op, exc)
        except OSError as exc:
            _command_error(runtime, op, HostIOError(str(exc)))
        finally:
            signal.signal(signal.SIGTERM, previous_handler)
        changed = len(report.changed_paths) + int(report.downloaded)
        op.success(
            f"Installed {report.service}.",
            changed=changed,
            context=report.to_dict(),
        )


@app.command("killall")
def killall(ctx: typer.Context) -> None:
    """Stop k3s services and clean up runtime processes, mounts and interfaces."""
    runtime = _build_runtime(ctx)
    with runtime.logger.operation("killall", target={"kind": "host"}) as op:
        teardown = _teardown(runtime)
        report = teardown.killall()
        for unit in report.stopped:
            runtime.reporter.info(f"Stopped {unit}")
        runtime.reporter.info(
            f"Killed {len(report.killed)} processes, unmounted {len(report.unmounted)} "
            f"mount points, removed {len(report.interfaces)} interfaces"
        )
        op.success(
            "Killall completed.",
            changed=len(report.killed) + len(report.unmounted) + len(report.interfaces),
            context={"stopped": report.stopped, "unmounted": report.unmounted},
        )


@app.command("uninstall")
def uninstall(
    ctx: typer.Context,
    name: str | None = typer.Option(
        None,
        "--name",
        help="Service name suffix used at install time (k3s-<name>).",
    ),
) -> None:
    """Remove a k3s service; shared files stay while other k3s services remain."""
    runtime = _build_runtime(ctx, {"name": name})
    config = runtime.config
    service_name = f"{PRODUCT}-{config.name}" if config.name else PRODUCT
    with runtime.logger.operation(
        "uninstall",
        args={"name": config.name},
        target={"kind": "service", "name": service_name},
    ) as op:
        try:
            kind = detect_supervisor(
                openrc_run=config.paths.openrc_run,
                systemd_runtime=config.paths.systemd_runtime,
            )
            identity = identity_for_name(config, service_name, kind)
            layout = resolve_layout(config, identity)
            provider = service_provider_for(kind, runtime.templates, config)
            with runtime.locks.install_lock(config.bin_dir, timeout=config.lock_timeout) as lock:
                op.set_lock_wait_ms(lock.wait_ms)
                report = _teardown(runtime).uninstall(provider, identity, layout)
        except K3sctlError as exc:
            _command_error(runtime, op, exc)
        except OSError as exc:
            _command_error(runtime, op, HostIOError(str(exc)))

        for path in report.removed:
            runtime.reporter.info(f"Removed {path}")
        if report.shared_kept:
            runtime.reporter.info(
                f"Additional {PRODUCT} services installed, skipping uninstall of {PRODUCT}"
            )
            op.warning(
                f"Removed {service_name}; shared files kept.",
                warnings=[str(path) for path in report.remaining_services],
                changed=len(report.removed),
            )
            return
        op.success(f"Uninstalled {service_name}.", changed=len(report.removed))


@config_app.command("show")
def config_show(
    ctx: typer.Context,
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Emit configuration as JSON instead of a table.",
    ),
) -> None:
    """Display the effective configuration after merges."""
    runtime = _build_runtime(ctx)
    data = runtime.config.to_dict()

    with runtime.logger.operation(
        "config show",
        args={"json": json_output},
        target={"kind": "config"},
    ) as op:
        if json_output:
            console.print_json(data=data)
            op.success("Rendered configuration as JSON.", changed=0)
            return

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Key", style="bold")
        table.add_column("Value")

        for key, value in data.items():
            if isinstance(value, (dict, list)):
                rendered = json.dumps(value, indent=2, sort_keys=True)
            else:
                rendered = str(value)
            table.add_row(key, rendered)

        console.print(table)
        op.success("Rendered configuration table.", changed=0)


def _teardown(runtime: RuntimeContext) -> Teardown:
    config = runtime.config
    providers: Sequence[SystemdProvider | OpenRCProvider] = (
        SystemdProvider(templates=runtime.templates, systemd_dir=config.systemd_dir),
        OpenRCProvider(templates=runtime.templates, openrc_dir=config.paths.openrc_dir),
    )
    return Teardown(paths=config.paths, providers=providers)


__all__ = ["app"]
