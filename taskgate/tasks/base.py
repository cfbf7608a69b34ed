"""
TASKGATE Task Executors: shared template

Every executor runs the same gate, in this order:

  1. fill declared defaults and validate inputs against the catalog
  2. task-specific input checks and the plan of affected paths (read-only)
  3. validate_paths() -> PathGrant, fail closed
  4. request_approval(); a denial raises before anything is written
  5. perform() the work with the grant in hand
  6. a structured TaskResult

Subclasses define:
  - task_id: str, the catalog key
  - plan(): affected paths plus anything worth computing before approval
  - perform(): the side effects
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping

from loguru import logger
from pydantic import BaseModel, Field

from taskgate.approval import ApprovalGateway, PathGrant
from taskgate.catalog import TaskCatalog, TaskDefinition
from taskgate.config_loader import TaskGateConfig
from taskgate.errors import ApprovalDeniedError, TaskGateError
from taskgate.event_bus import EventBus, bus
from taskgate.fetch import HttpSpecFetcher, SpecFetcher
from taskgate.runner import ProcessRunner
from taskgate.workspace import Workspace


class TaskResult(BaseModel):
    """What every executor hands back on success (and on reported failures)."""
    success: bool
    task_id: str
    summary: str = ""
    artifacts: list[str] = Field(default_factory=list)
    findings: list[dict[str, Any]] = Field(default_factory=list)
    next_steps: list[str] = Field(default_factory=list)
    reports: list[str] = Field(default_factory=list)
    details: dict[str, Any] = Field(default_factory=dict)


@dataclass
class TaskPlan:
    """Read-only preparation done before approval is requested."""
    affected_paths: list[str]
    data: dict[str, Any] = field(default_factory=dict)


def report_stamp(moment: datetime | None = None) -> str:
    moment = moment or datetime.now(timezone.utc)
    return moment.strftime("%Y-%m-%d_%H%M%S")


class BaseTask(ABC):
    task_id: str = "unknown"

    def __init__(
        self,
        catalog: TaskCatalog,
        gateway: ApprovalGateway,
        workspace: Workspace,
        config: TaskGateConfig | None = None,
        runner: ProcessRunner | None = None,
        fetcher: SpecFetcher | None = None,
        events: EventBus | None = None,
    ):
        self.catalog = catalog
        self.gateway = gateway
        self.workspace = workspace
        self.config = config or TaskGateConfig()
        self.runner = runner or ProcessRunner()
        self.fetcher = fetcher or HttpSpecFetcher()
        self.events = events or bus

    @property
    def definition(self) -> TaskDefinition:
        return self.catalog.get_task(self.task_id)

    def execute(self, inputs: Mapping[str, Any]) -> TaskResult:
        definition = self.definition
        resolved = self.catalog.apply_defaults(self.task_id, inputs)
        self.catalog.validate_inputs(self.task_id, resolved)

        self.events.emit("task.started", self.task_id, {"inputs": sorted(resolved)})
        try:
            plan = self.plan(resolved)
            grant = self.gateway.validate_paths(self.catalog, self.task_id, plan.affected_paths)

            if not self.gateway.request_approval(self.task_id, definition, resolved, plan.affected_paths):
                logger.warning(f"[TASK] {self.task_id} denied; nothing was changed")
                raise ApprovalDeniedError(
                    f"Approval denied for task '{self.task_id}'",
                    task_id=self.task_id,
                )
            self.events.emit("task.approved", self.task_id, {"paths": plan.affected_paths})

            result = self.perform(resolved, plan, grant)
        except TaskGateError as e:
            self.events.emit("task.failed", self.task_id, {"error": type(e).__name__, "message": e.message})
            raise

        self.events.emit("task.completed", self.task_id, {"success": result.success, "summary": result.summary})
        logger.info(f"[TASK] {self.task_id} finished: {result.summary}")
        return result

    @abstractmethod
    def plan(self, inputs: dict[str, Any]) -> TaskPlan:
        """Compute affected paths. Must not write anything."""
        ...

    @abstractmethod
    def perform(self, inputs: dict[str, Any], plan: TaskPlan, grant: PathGrant) -> TaskResult:
        ...

    def _progress(self, message: str) -> None:
        logger.info(f"[TASK] {self.task_id}: {message}")
        self.events.emit("task.progress", self.task_id, {"message": message})
