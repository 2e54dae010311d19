# src/ptask/core/errors.py

"""
Error taxonomy of the task service.

Hierarchy:
    PtaskError
    ├── ValidationError        - bad input shape/value (names field + value)
    ├── NotFoundError          - referenced task id is absent
    ├── InvalidTransitionError - illegal status change
    ├── CorruptDataError       - persisted document fails schema validation
    ├── BusyError              - write lock not acquired in time
    └── StorageIOError         - underlying storage failure (permission denied, ...)

Every error carries its context as keyword arguments so callers can render it
without parsing the message.
"""

from __future__ import annotations

from typing import Any


class PtaskError(Exception):
    """Base error for all task service failures."""

    def __init__(self, message: str, **context: Any) -> None:
        self.message = message
        self.context: dict[str, Any] = context
        super().__init__(message)

    @property
    def error_type(self) -> str:
        return self.__class__.__name__

    def to_dict(self) -> dict[str, Any]:
        """JSON-compatible representation (context values are stringified)."""
        out: dict[str, Any] = {"error": self.error_type, "message": self.message}
        for k, v in self.context.items():
            out[k] = v if v is None or isinstance(v, (str, int, float, bool)) else str(v)
        return out

    def __repr__(self) -> str:
        return f"{self.error_type}({self.message!r})"


class ValidationError(PtaskError):
    def __init__(self, field: str, value: Any, reason: str) -> None:
        super().__init__(f"invalid {field} {value!r}: {reason}", field=field, value=value, reason=reason)
        self.field = field
        self.value = value
        self.reason = reason


class NotFoundError(PtaskError):
    def __init__(self, task_id: str) -> None:
        super().__init__(f"task {task_id!r} not found", task_id=task_id)
        self.task_id = task_id


class InvalidTransitionError(PtaskError):
    def __init__(self, task_id: str, current: str, target: str) -> None:
        super().__init__(
            f"task {task_id!r} cannot move from {current} to {target}",
            task_id=task_id,
            current=current,
            target=target,
        )
        self.task_id = task_id
        self.current = current
        self.target = target


class CorruptDataError(PtaskError):
    def __init__(self, path: Any, detail: str) -> None:
        super().__init__(f"task document {path} is corrupt: {detail}", path=str(path), detail=detail)
        self.path = str(path)
        self.detail = detail


class BusyError(PtaskError):
    def __init__(self, path: Any, timeout: float) -> None:
        super().__init__(
            f"task document {path} is busy (write lock not acquired within {timeout:g}s)",
            path=str(path),
            timeout=timeout,
        )
        self.path = str(path)
        self.timeout = timeout


class StorageIOError(PtaskError):
    """Wraps an OSError raised while reading or writing the task document."""

    def __init__(self, path: Any, operation: str, cause: OSError) -> None:
        super().__init__(
            f"failed to {operation} {path}: {cause.strerror or cause}",
            path=str(path),
            operation=operation,
        )
        self.path = str(path)
        self.operation = operation
        self.cause = cause
