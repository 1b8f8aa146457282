"""Failure-mode tests for the structured logging subsystem."""
from __future__ import annotations

import json
from pathlib import Path

import pytest

from cbtadmin.logging import StructuredLogger


def _records(logger: StructuredLogger) -> list[dict[str, object]]:
    text = logger._operations_log_path.read_text(encoding="utf-8")  # type: ignore[attr-defined]
    return [json.loads(line) for line in text.splitlines()]


def test_structured_logger_disables_when_directory_unavailable(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Logger gracefully disables itself when log directory cannot be created."""
    log_dir = tmp_path / "logs"

    original_mkdir = Path.mkdir

    def fail_mkdir(self: Path, *args: object, **kwargs: object) -> None:
        if self == log_dir:
            raise PermissionError("no access")
        original_mkdir(self, *args, **kwargs)

    monkeypatch.setattr(Path, "mkdir", fail_mkdir)

    logger = StructuredLogger(log_dir)
    assert logger._enabled is False  # type: ignore[attr-defined]

    with logger.operation("demo", args={"foo": "bar"}) as op:
        op.success("done", changed=0)

    assert not log_dir.exists()


def test_structured_logger_disables_after_write_failure(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Write failures mark the logger disabled so subsequent writes are skipped."""
    logger = StructuredLogger(tmp_path / "logs")
    operations_path = logger._operations_log_path  # type: ignore[attr-defined]

    original_open = Path.open

    def fail_once(self: Path, *args: object, **kwargs: object) -> object:
        if self == operations_path:
            raise OSError("disk full")
        return original_open(self, *args, **kwargs)

    monkeypatch.setattr(Path, "open", fail_once)

    with logger.operation("demo") as op:
        op.success("done", changed=0)

    assert logger._enabled is False  # type: ignore[attr-defined]

    # Subsequent operations should not raise even though logger is disabled.
    with logger.operation("demo-2") as op:
        op.success("done", changed=0)


def test_operation_record_contains_steps_and_result(tmp_path: Path) -> None:
    """Closing a scope appends one JSON line with steps and result."""
    logger = StructuredLogger(tmp_path / "logs")

    with logger.operation(
        "walkthrough",
        args={"instance_id": "inst"},
        target={"kind": "instance", "name": "inst"},
    ) as op:
        op.add_step("instances.list", detail="exists=False")
        op.add_step("instance.create", status="skipped")
        op.success("Instance walkthrough complete.", changed=1)

    (record,) = _records(logger)
    assert record["command"] == "walkthrough"
    assert record["args"] == {"instance_id": "inst"}
    assert record["target"] == {"kind": "instance", "name": "inst"}
    assert record["steps"] == [
        {"name": "instances.list", "status": "success", "detail": "exists=False"},
        {"name": "instance.create", "status": "skipped"},
    ]
    assert record["result"]["status"] == "success"
    assert record["result"]["changed"] == 1
    assert isinstance(record["duration_ms"], int)
    assert record["op_id"]


def test_operation_scope_warning_sanitises_context(tmp_path: Path) -> None:
    """Warnings should be recorded with JSON-safe context values."""
    logger = StructuredLogger(tmp_path / "logs")

    class Custom:
        def __str__(self) -> str:
            return "<custom>"

    with logger.operation("demo", args={"path": Path("foo")}) as op:
        op.warning(
            "warned",
            warnings=("note",),
            errors=("err",),
            changed=1,
            context={"path": Path("/var/lib"), "obj": Custom()},
        )

    (record,) = _records(logger)
    result = record["result"]
    assert record["args"] == {"path": "foo"}
    assert result["status"] == "warning"
    assert result["warnings"] == ["note"]
    assert result["errors"] == ["err"]
    assert result["context"] == {"path": "/var/lib", "obj": "<custom>"}


def test_operation_scope_error_defaults_error_list(tmp_path: Path) -> None:
    """Errors should default to the message when not provided."""
    logger = StructuredLogger(tmp_path / "logs")

    with logger.operation("demo") as op:
        op.error("boom", errors=None, rc=1, context={"value": {1, 2}})

    (record,) = _records(logger)
    result = record["result"]
    assert result["status"] == "error"
    assert result["errors"] == ["boom"]
    assert result["rc"] == 1
    assert result["context"] == {"value": "{1, 2}"}


def test_unhandled_exception_is_recorded_and_propagates(tmp_path: Path) -> None:
    """An exception escaping the scope is logged as an error and re-raised."""
    logger = StructuredLogger(tmp_path / "logs")

    with pytest.raises(RuntimeError, match="kaboom"):
        with logger.operation("demo"):
            raise RuntimeError("kaboom")

    (record,) = _records(logger)
    assert record["result"]["status"] == "error"
    assert record["result"]["errors"] == ["kaboom"]


def test_scope_without_result_defaults_to_success(tmp_path: Path) -> None:
    """A scope that closes cleanly without a result is recorded as successful."""
    logger = StructuredLogger(tmp_path / "logs")

    with logger.operation("demo") as op:
        op.add_step("noop")

    (record,) = _records(logger)
    assert record["result"]["status"] == "success"
