"""Structured operation logging for tfgate.

Every CLI operation appends one JSON record to ``operations.jsonl`` and a
summary line to the human-readable ``tfgate.log``. Module code logs through
``logging.getLogger(__name__)``; those records land in the same human log and,
when verbose output is requested, on the console via :mod:`rich`.

Logging must never break a run: when the log directory cannot be created or a
write fails, the logger disables itself and the command carries on.
"""
from __future__ import annotations

import json
import logging
import os
import time
import uuid
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

from . import __version__

LOGGER_NAME = "tfgate"
OPERATIONS_LOG = "operations.jsonl"
HUMAN_LOG = "tfgate.log"
HUMAN_LOG_MAX_BYTES = 5 * 1024 * 1024
HUMAN_LOG_BACKUPS = 3

_HUMAN_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

logging.getLogger(LOGGER_NAME).addHandler(logging.NullHandler())


def _timestamp() -> str:
    return datetime.now(tz=UTC).isoformat(timespec="seconds").replace("+00:00", "Z")


def _json_safe(value: object) -> object:
    """Return *value* converted into something ``json.dumps`` accepts."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, Mapping):
        return {str(key): _json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(item) for item in value]
    return str(value)


@dataclass(slots=True)
class OperationScope:
    """Mutable record of a single CLI operation."""

    command: str
    args: dict[str, object]
    target: dict[str, object]
    op_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    started_at: str = field(default_factory=_timestamp)
    steps: list[dict[str, object]] = field(default_factory=list)
    result: dict[str, object] | None = None
    _started: float = field(default_factory=time.perf_counter)

    def add_step(
        self,
        name: str,
        *,
        status: str = "success",
        detail: object | None = None,
    ) -> None:
        """Append a named step to the operation record."""
        step: dict[str, object] = {"name": name, "status": status}
        if detail is not None:
            step["detail"] = _json_safe(detail)
        self.steps.append(step)

    def success(
        self,
        message: str,
        *,
        changed: int = 0,
        warnings: Sequence[str] = (),
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Record a successful outcome."""
        self._set_result(
            "success",
            message,
            changed=changed,
            warnings=warnings,
            errors=(),
            rc=0,
            context=context,
        )

    def warning(
        self,
        message: str,
        *,
        warnings: Sequence[str] = (),
        errors: Sequence[str] = (),
        changed: int = 0,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Record an outcome that completed with warnings."""
        self._set_result(
            "warning",
            message,
            changed=changed,
            warnings=warnings,
            errors=errors,
            rc=0,
            context=context,
        )

    def error(
        self,
        message: str,
        *,
        errors: Sequence[str] | None = None,
        warnings: Sequence[str] = (),
        rc: int | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Record a failed outcome; *errors* defaults to ``[message]``."""
        self._set_result(
            "error",
            message,
            changed=0,
            warnings=warnings,
            errors=list(errors) if errors else [message],
            rc=rc,
            context=context,
        )

    def to_record(self) -> dict[str, object]:
        """Return the JSON record written to ``operations.jsonl``."""
        return {
            "timestamp": self.started_at,
            "op_id": self.op_id,
            "command": self.command,
            "args": _json_safe(self.args),
            "target": _json_safe(self.target),
            "steps": list(self.steps),
            "result": self.result,
            "duration_ms": int((time.perf_counter() - self._started) * 1000),
            "context": {"tfgate_version": __version__, "pid": os.getpid()},
        }

    def _set_result(
        self,
        status: str,
        message: str,
        *,
        changed: int,
        warnings: Sequence[str],
        errors: Sequence[str],
        rc: int | None,
        context: Mapping[str, object] | None,
    ) -> None:
        self.result = {
            "status": status,
            "message": message,
            "changed": changed,
            "warnings": [str(item) for item in warnings],
            "errors": [str(item) for item in errors],
            "rc": rc,
            "context": _json_safe(dict(context or {})),
        }


class StructuredLogger:
    """Write operation records and human-readable logs under *logs_dir*."""

    def __init__(self, logs_dir: Path) -> None:
        """Prepare the log directory; disable logging if it is unavailable."""
        self.logs_dir = Path(logs_dir).expanduser()
        self._operations_log_path = self.logs_dir / OPERATIONS_LOG
        self._human_log_path = self.logs_dir / HUMAN_LOG
        self._logger = logging.getLogger(LOGGER_NAME)
        self._logger.setLevel(logging.DEBUG)
        self._enabled = True
        try:
            self.logs_dir.mkdir(parents=True, exist_ok=True)
        except OSError:
            self._enabled = False
            return
        self._attach_file_handler()

    @property
    def enabled(self) -> bool:
        """Return whether operation records are still being written."""
        return self._enabled

    def set_verbose(self, verbose: bool, *, console: Console | None = None) -> None:
        """Toggle DEBUG output on the console."""
        for existing in list(self._logger.handlers):
            if getattr(existing, "_tfgate_console", False):
                self._logger.removeHandler(existing)
        if not verbose:
            return
        handler = RichHandler(
            console=console or Console(stderr=True),
            show_path=False,
            markup=False,
        )
        handler.setLevel(logging.DEBUG)
        handler._tfgate_console = True  # type: ignore[attr-defined]
        self._logger.addHandler(handler)

    @contextmanager
    def operation(
        self,
        command: str,
        *,
        args: Mapping[str, object] | None = None,
        target: Mapping[str, object] | None = None,
    ) -> Iterator[OperationScope]:
        """Yield an :class:`OperationScope` and persist it on exit."""
        scope = OperationScope(
            command=command,
            args=dict(args or {}),
            target=dict(target or {}),
        )
        self._logger.debug("operation %s started (op_id=%s)", command, scope.op_id)
        try:
            yield scope
        except Exception as exc:
            if scope.result is None:
                scope.error(f"Unhandled error: {exc}", errors=[repr(exc)])
            raise
        finally:
            self._write(scope)

    def _attach_file_handler(self) -> None:
        for handler in list(self._logger.handlers):
            if getattr(handler, "_tfgate_human_log", False):
                self._logger.removeHandler(handler)
                handler.close()
        try:
            handler = RotatingFileHandler(
                self._human_log_path,
                maxBytes=HUMAN_LOG_MAX_BYTES,
                backupCount=HUMAN_LOG_BACKUPS,
                encoding="utf-8",
            )
        except OSError:
            return
        handler.setLevel(logging.INFO)
        handler.setFormatter(logging.Formatter(_HUMAN_FORMAT))
        handler._tfgate_human_log = True  # type: ignore[attr-defined]
        self._logger.addHandler(handler)

    def _write(self, scope: OperationScope) -> None:
        result = scope.result or {}
        status = result.get("status", "unknown")
        level = logging.ERROR if status == "error" else logging.INFO
        self._logger.log(
            level,
            "%s status=%s message=%s",
            scope.command,
            status,
            result.get("message", ""),
        )
        if not self._enabled:
            return
        try:
            with self._operations_log_path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(scope.to_record(), sort_keys=True) + "\n")
        except OSError:
            self._enabled = False


__all__ = ["LOGGER_NAME", "OperationScope", "StructuredLogger"]
