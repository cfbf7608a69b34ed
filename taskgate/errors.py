"""
TASKGATE error taxonomy.

Every failure raised by the control plane derives from TaskGateError so the
CLI (or any other caller) can decide between retrying, correcting input, and
re-requesting approval without string matching.
"""

from __future__ import annotations

from typing import Any


class TaskGateError(Exception):
    """Base class for all control-plane failures."""

    def __init__(self, message: str, *, task_id: str | None = None):
        super().__init__(message)
        self.message = message
        self.task_id = task_id


class ConfigurationError(TaskGateError):
    """Catalog or config source is missing or unparsable."""


class ValidationError(TaskGateError):
    """
    Schema or shape violations, aggregated over a whole validation pass.

    `errors` maps a field (or catalog key) to every message recorded for it,
    so one exception reports everything the operator has to fix.
    """

    def __init__(
        self,
        message: str,
        errors: dict[str, list[str]] | None = None,
        *,
        task_id: str | None = None,
    ):
        self.errors = {k: list(v) for k, v in (errors or {}).items()}
        super().__init__(self._render(message, self.errors), task_id=task_id)

    @staticmethod
    def _render(message: str, errors: dict[str, list[str]]) -> str:
        if not errors:
            return message
        lines = [message]
        for field, messages in errors.items():
            for msg in messages:
                lines.append(f"  - {field}: {msg}")
        return "\n".join(lines)

    @property
    def fields(self) -> list[str]:
        return list(self.errors)


class TaskPermissionError(TaskGateError, PermissionError):
    """A path is outside the allow-list or matches a deny pattern."""

    def __init__(self, message: str, *, path: str | None = None, task_id: str | None = None):
        super().__init__(message, task_id=task_id)
        self.path = path


class ApprovalDeniedError(TaskPermissionError):
    """The operator (or decision source) refused to approve the task."""


class NotFoundError(TaskGateError, LookupError):
    """Unknown task id, or a missing spec / test file."""

    def __init__(self, message: str, *, path: str | None = None, task_id: str | None = None):
        super().__init__(message, task_id=task_id)
        self.path = path


class ExecutionError(TaskGateError):
    """A generation, test, or scan step failed underneath a task."""

    def __init__(
        self,
        message: str,
        *,
        step: str | None = None,
        task_id: str | None = None,
        result: Any = None,
    ):
        super().__init__(message, task_id=task_id)
        self.step = step
        self.result = result
