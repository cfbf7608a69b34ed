"""
TASKGATE Task Executors

One executor per catalog task. Executors are stateless between runs;
everything they touch goes through the catalog, the gateway and the
workspace handed to them.
"""

from __future__ import annotations

from taskgate.errors import NotFoundError
from taskgate.tasks.base import BaseTask, TaskPlan, TaskResult
from taskgate.tasks.create_client import CreateClientTask
from taskgate.tasks.refactor_suggestions import RefactorSuggestionsTask
from taskgate.tasks.security_audit import SecurityAuditTask
from taskgate.tasks.test_client import TestClientTask
from taskgate.tasks.update_docs import UpdateDocsTask

EXECUTORS: dict[str, type[BaseTask]] = {
    cls.task_id: cls
    for cls in (
        CreateClientTask,
        TestClientTask,
        UpdateDocsTask,
        SecurityAuditTask,
        RefactorSuggestionsTask,
    )
}


def executor_for(task_id: str) -> type[BaseTask]:
    try:
        return EXECUTORS[task_id]
    except KeyError:
        raise NotFoundError(f"No executor registered for task '{task_id}'", task_id=task_id) from None


__all__ = [
    "BaseTask",
    "CreateClientTask",
    "EXECUTORS",
    "RefactorSuggestionsTask",
    "SecurityAuditTask",
    "TaskPlan",
    "TaskResult",
    "TestClientTask",
    "UpdateDocsTask",
    "executor_for",
]
