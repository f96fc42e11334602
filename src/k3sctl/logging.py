"""Structured operation logging and console reporting.

Every CLI operation is wrapped in :meth:`StructuredLogger.operation`, which
appends one JSON record per operation to ``operations.jsonl`` under the
configured log directory. The logger never aborts an install: when the
directory cannot be created or a write fails it disables itself and carries
on silently.

:class:`ConsoleReporter` prints the human-facing progress lines with the
fixed ``[INFO]`` / ``[ERROR]`` tags.
"""
from __future__ import annotations

import json
import logging
import os
import time
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

from rich.console import Console

LOGGER = logging.getLogger(__name__)

INFO_TAG = "[INFO] "
ERROR_TAG = "[ERROR] "
_SECRET_MARKERS = ("token", "secret", "password")


def _sanitize(value: object, *, key: str | None = None) -> object:
    if key is not None and any(marker in key.lower() for marker in _SECRET_MARKERS):
        return "********" if value else value
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, Mapping):
        return {str(k): _sanitize(item, key=str(k)) for k, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_sanitize(item) for item in value]
    return str(value)


def _timestamp() -> str:
    return datetime.now(tz=UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(slots=True)
class OperationScope:
    """Collects steps and the final result of one logged operation."""

    command: str
    args: Mapping[str, object]
    target: Mapping[str, object]
    started_at: str = field(default_factory=_timestamp)
    steps: list[dict[str, object]] = field(default_factory=list)
    lock_wait_ms: int | None = None
    result: dict[str, object] | None = None
    _started: float = field(default_factory=time.monotonic)

    def add_step(self, name: str, *, status: str = "success", detail: str | None = None) -> None:
        """Record an intermediate step."""
        step: dict[str, object] = {"name": name, "status": status}
        if detail is not None:
            step["detail"] = detail
        self.steps.append(step)

    def set_lock_wait_ms(self, wait_ms: int) -> None:
        """Record how long the operation waited for its lock."""
        self.lock_wait_ms = wait_ms

    def success(
        self,
        message: str,
        *,
        changed: int = 0,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation successful."""
        self._finish("success", message, rc=0, changed=changed, context=context)

    def warning(
        self,
        message: str,
        *,
        warnings: Sequence[str] | None = None,
        errors: Sequence[str] | None = None,
        changed: int = 0,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation completed with warnings."""
        self._finish(
            "warning",
            message,
            rc=0,
            changed=changed,
            context=context,
            warnings=list(warnings or []),
            errors=list(errors or []),
        )

    def error(
        self,
        message: str,
        *,
        errors: Sequence[str] | None = None,
        rc: int = 1,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation failed."""
        self._finish(
            "error",
            message,
            rc=rc,
            changed=0,
            context=context,
            errors=list(errors or [message]),
        )

    def _finish(
        self,
        status: str,
        message: str,
        *,
        rc: int,
        changed: int,
        context: Mapping[str, object] | None,
        warnings: list[str] | None = None,
        errors: list[str] | None = None,
    ) -> None:
        result: dict[str, object] = {
            "status": status,
            "message": message,
            "rc": rc,
            "changed": changed,
        }
        if warnings is not None:
            result["warnings"] = warnings
        if errors is not None:
            result["errors"] = errors
        if context:
            result["context"] = _sanitize(dict(context))
        self.result = result

    def to_record(self) -> dict[str, object]:
        """Return the JSON-safe record for this operation."""
        duration_ms = int((time.monotonic() - self._started) * 1000)
        record: dict[str, object] = {
            "ts": self.started_at,
            "pid": os.getpid(),
            "command": self.command,
            "args": _sanitize(dict(self.args)),
            "target": _sanitize(dict(self.target)),
            "steps": list(self.steps),
            "duration_ms": duration_ms,
            "result": self.result,
        }
        if self.lock_wait_ms is not None:
            record["lock_wait_ms"] = self.lock_wait_ms
        return record


class StructuredLogger:
    """Append-only JSON operation log."""

    def __init__(self, log_dir: Path) -> None:
        """Prepare the log directory, disabling the logger when unavailable."""
        self._log_dir = log_dir
        self._operations_log_path = log_dir / "operations.jsonl"
        self._enabled = True
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            LOGGER.debug("Structured logging disabled for %s: %s", log_dir, exc)
            self._enabled = False

    @property
    def path(self) -> Path:
        """Return the operations log path."""
        return self._operations_log_path

    @contextmanager
    def operation(
        self,
        command: str,
        *,
        args: Mapping[str, object] | None = None,
        target: Mapping[str, object] | None = None,
    ) -> Iterator[OperationScope]:
        """Yield an :class:`OperationScope` and persist it on exit."""
        scope = OperationScope(command=command, args=dict(args or {}), target=dict(target or {}))
        try:
            yield scope
        except BaseException as exc:
            if scope.result is None:
                scope.error(f"{type(exc).__name__}: {exc}".rstrip(": "))
            raise
        finally:
            if scope.result is None:
                scope.success("Operation completed.")
            self._write(scope.to_record())

    def _write(self, record: Mapping[str, object]) -> None:
        if not self._enabled:
            return
        try:
            with self._operations_log_path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(record, sort_keys=True) + "\n")
        except OSError as exc:
            LOGGER.debug("Disabling structured logging after write failure: %s", exc)
            self._enabled = False


class ConsoleReporter:
    """Print tagged progress lines for the operator."""

    def __init__(self, console: Console | None = None, err_console: Console | None = None) -> None:
        """Bind the stdout and stderr consoles."""
        self.console = console or Console(highlight=False)
        self.err_console = err_console or Console(stderr=True, highlight=False)

    def info(self, message: str) -> None:
        """Emit an informational line."""
        LOGGER.info(message)
        self.console.print(
            f"{INFO_TAG} {message}", markup=False, highlight=False, soft_wrap=True
        )

    def error(self, message: str) -> None:
        """Emit a fatal error line on stderr."""
        LOGGER.error(message)
        self.err_console.print(
            f"{ERROR_TAG} {message}", markup=False, highlight=False, soft_wrap=True
        )


__all__ = ["ConsoleReporter", "OperationScope", "StructuredLogger"]
