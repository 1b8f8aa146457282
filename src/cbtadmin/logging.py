"""Structured operation logging for cbtadmin.

Every command runs inside an :class:`OperationScope`. The scope collects the
individual steps performed against the admin API and writes a single JSON
record to ``operations.jsonl`` when it closes. Logging is best effort: when the
log directory cannot be created or a write fails, the logger disables itself
and the command carries on.
"""
from __future__ import annotations

import json
import logging
import time
import uuid
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from pathlib import Path
from types import TracebackType

LOGGER = logging.getLogger(__name__)

OPERATIONS_LOG_NAME = "operations.jsonl"


def _sanitize(value: object) -> object:
    """Return a JSON-safe representation of *value*."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, Mapping):
        return {str(key): _sanitize(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_sanitize(item) for item in value]
    return str(value)


class OperationScope:
    """Collects steps and the final result of a single command."""

    def __init__(
        self,
        logger: StructuredLogger,
        command: str,
        *,
        args: Mapping[str, object] | None = None,
        target: Mapping[str, object] | None = None,
    ) -> None:
        self._logger = logger
        self.command = command
        self.op_id = uuid.uuid4().hex
        self.args = dict(args or {})
        self.target = dict(target or {})
        self.steps: list[dict[str, object]] = []
        self.result: dict[str, object] | None = None
        self._started = time.perf_counter()
        self._timestamp = datetime.now(UTC).isoformat()

    def __enter__(self) -> OperationScope:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self.result is None:
            if exc is None:
                self.success("Completed.")
            else:
                self.error(str(exc) or type(exc).__name__)
        self._logger._write(self._record())

    def add_step(
        self,
        name: str,
        *,
        status: str = "success",
        detail: str | None = None,
    ) -> None:
        """Record a step performed during the operation."""
        step: dict[str, object] = {"name": name, "status": status}
        if detail:
            step["detail"] = detail
        self.steps.append(step)

    def success(
        self,
        message: str,
        *,
        changed: int = 0,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as successful."""
        self._finish("success", message, changed=changed, context=context)

    def warning(
        self,
        message: str,
        *,
        warnings: Iterable[str] = (),
        errors: Iterable[str] = (),
        changed: int = 0,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as completed with warnings."""
        self._finish(
            "warning",
            message,
            warnings=list(warnings),
            errors=list(errors),
            changed=changed,
            context=context,
        )

    def error(
        self,
        message: str,
        *,
        errors: Iterable[str] | None = None,
        rc: int | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as failed."""
        self._finish(
            "error",
            message,
            errors=list(errors) if errors else [message],
            rc=rc,
            context=context,
        )

    def _finish(
        self,
        status: str,
        message: str,
        *,
        warnings: list[str] | None = None,
        errors: list[str] | None = None,
        changed: int = 0,
        rc: int | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        result: dict[str, object] = {
            "status": status,
            "message": message,
            "changed": changed,
            "warnings": warnings or [],
            "errors": errors or [],
        }
        if rc is not None:
            result["rc"] = rc
        if context:
            result["context"] = _sanitize(context)
        self.result = result

    def _record(self) -> dict[str, object]:
        return {
            "timestamp": self._timestamp,
            "op_id": self.op_id,
            "command": self.command,
            "args": _sanitize(self.args),
            "target": _sanitize(self.target),
            "steps": self.steps,
            "result": self.result,
            "duration_ms": int((time.perf_counter() - self._started) * 1000),
        }


class StructuredLogger:
    """Append JSON operation records under *log_dir*."""

    def __init__(self, log_dir: Path) -> None:
        self.log_dir = Path(log_dir)
        self._operations_log_path = self.log_dir / OPERATIONS_LOG_NAME
        self._enabled = True
        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            LOGGER.warning("Operation log disabled; cannot create %s: %s", self.log_dir, exc)
            self._enabled = False

    def operation(
        self,
        command: str,
        *,
        args: Mapping[str, object] | None = None,
        target: Mapping[str, object] | None = None,
    ) -> OperationScope:
        """Return a scope that records *command* when it closes."""
        return OperationScope(self, command, args=args, target=target)

    def _write(self, record: Mapping[str, object]) -> None:
        LOGGER.debug("operation %s finished: %s", record.get("command"), record.get("result"))
        if not self._enabled:
            return
        try:
            with self._operations_log_path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(record, sort_keys=True) + "\n")
        except OSError as exc:
            LOGGER.warning("Operation log disabled after write failure: %s", exc)
            self._enabled = False


__all__ = ["OPERATIONS_LOG_NAME", "OperationScope", "StructuredLogger"]
