"""
TASKGATE Approval & Audit Gateway

Every task invocation passes through here twice:

  1. validate_paths(): fail-closed allow/deny check, returns a PathGrant
  2. request_approval(): gate on the task's requires_approval flag

Each request_approval() call appends exactly one AuditEntry, whatever the
outcome, including unattended auto-approvals and decision sources that blow
up mid-prompt (recorded as DENIED).
"""

from __future__ import annotations

import getpass
import os
import socket
import sys
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, Mapping, Protocol

from loguru import logger
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm
from rich.table import Table

from taskgate.audit_logger import AuditEntry, AuditLogger, AuditStats, Outcome
from taskgate.catalog import TaskCatalog, TaskDefinition, normalize_path
from taskgate.errors import TaskPermissionError
from taskgate.redaction import redact_mapping

console = Console()


def operator_identity() -> str:
    """TASKGATE_OPERATOR wins; otherwise user@host of the current process."""
    explicit = os.environ.get("TASKGATE_OPERATOR")
    if explicit:
        return explicit
    try:
        user = getpass.getuser()
    except (OSError, KeyError):
        user = "unknown"
    return f"{user}@{socket.gethostname()}"


# ---------------------------------------------------------------------------
# Request lifecycle
# ---------------------------------------------------------------------------

class ApprovalState(str, Enum):
    REQUESTED = "REQUESTED"
    AUTO_APPROVED = "AUTO_APPROVED"
    AWAITING_DECISION = "AWAITING_DECISION"
    APPROVED = "APPROVED"
    DENIED = "DENIED"


_TRANSITIONS: dict[ApprovalState, set[ApprovalState]] = {
    ApprovalState.REQUESTED: {ApprovalState.AUTO_APPROVED, ApprovalState.AWAITING_DECISION},
    ApprovalState.AWAITING_DECISION: {ApprovalState.APPROVED, ApprovalState.DENIED},
    ApprovalState.AUTO_APPROVED: set(),
    ApprovalState.APPROVED: set(),
    ApprovalState.DENIED: set(),
}


@dataclass
class ApprovalRequest:
    """A single pass through the gate. Inputs are already redacted."""
    task_id: str
    definition: TaskDefinition
    inputs: dict[str, Any]
    affected_paths: tuple[str, ...]
    state: ApprovalState = ApprovalState.REQUESTED
    history: list[ApprovalState] = field(default_factory=lambda: [ApprovalState.REQUESTED])

    def transition(self, new_state: ApprovalState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal approval transition {self.state.value} -> {new_state.value}")
        logger.debug(f"[APPROVAL] {self.task_id}: {self.state.value} -> {new_state.value}")
        self.state = new_state
        self.history.append(new_state)


@dataclass(frozen=True)
class Decision:
    approved: bool
    operator: str
    notes: str | None = None


class DecisionSource(Protocol):
    def decide(self, request: ApprovalRequest) -> Decision: ...


# ---------------------------------------------------------------------------
# Decision sources
# ---------------------------------------------------------------------------

class StaticDecision:
    """Fixed answer. Used for simulated approval in tests and for --yes."""

    def __init__(self, approved: bool, operator: str = "test-operator", notes: str | None = None):
        self.approved = approved
        self.operator = operator
        self.notes = notes

    def decide(self, request: ApprovalRequest) -> Decision:
        return Decision(self.approved, self.operator, self.notes)


class NoOperatorDecision:
    """Non-interactive sessions with nobody to ask are denied."""

    def decide(self, request: ApprovalRequest) -> Decision:
        return Decision(False, "system", "No operator available")


class InteractiveDecision:
    """Show the request to a human and ask for a yes/no."""

    def __init__(self, operator: str | None = None, prompt_console: Console | None = None):
        self.operator = operator or operator_identity()
        self.console = prompt_console or console

    def decide(self, request: ApprovalRequest) -> Decision:
        definition = request.definition
        body = [
            f"[bold]{definition.name}[/] ([cyan]{request.task_id}[/])",
            definition.description,
            "",
            "Scopes: " + ", ".join(sorted(s.value for s in definition.scopes)),
        ]
        self.console.print(Panel("\n".join(body), title="Approval required", border_style="yellow"))

        if request.affected_paths:
            table = Table(title="Affected paths", border_style="dim")
            table.add_column("Path")
            for path in request.affected_paths:
                table.add_row(path)
            self.console.print(table)

        if request.inputs:
            table = Table(title="Inputs", border_style="dim")
            table.add_column("Name")
            table.add_column("Value")
            for name, value in sorted(request.inputs.items()):
                table.add_row(name, str(value))
            self.console.print(table)

        approved = Confirm.ask(f"[bold]Approve {request.task_id}?[/]", console=self.console)
        return Decision(approved, self.operator)


def default_decision_source() -> DecisionSource:
    if sys.stdin is not None and sys.stdin.isatty():
        return InteractiveDecision()
    return NoOperatorDecision()


# ---------------------------------------------------------------------------
# Path grants
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PathGrant:
    """Proof that these normalized paths passed allow/deny validation for one task."""
    task_id: str
    paths: frozenset[str]

    def covers(self, path: str | Path) -> bool:
        normalized = normalize_path(path)
        return normalized is not None and normalized in self.paths


# ---------------------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------------------

class ApprovalGateway:
    def __init__(
        self,
        audit_log: AuditLogger,
        decision_source: DecisionSource | None = None,
        operator: str | None = None,
    ):
        self.audit_log = audit_log
        self.decision_source = decision_source
        self.operator = operator or operator_identity()
        self.last_request: ApprovalRequest | None = None

    @classmethod
    def for_catalog(
        cls,
        catalog: TaskCatalog,
        project_root: Path,
        decision_source: DecisionSource | None = None,
        operator: str | None = None,
    ) -> "ApprovalGateway":
        """Gateway writing to the catalog's audit log, resolved under project_root."""
        log_path = Path(catalog.audit_log_path)
        if not log_path.is_absolute():
            log_path = project_root / log_path
        return cls(AuditLogger(log_path), decision_source=decision_source, operator=operator)

    def validate_paths(self, catalog: TaskCatalog, task_id: str, paths: Iterable[str]) -> PathGrant:
        """Fail closed on the first path the task may not touch."""
        paths = list(paths)
        for path in paths:
            if not catalog.is_path_allowed(task_id, path):
                logger.warning(f"[APPROVAL] {task_id}: path rejected: {path}")
                raise TaskPermissionError(
                    f"Path not allowed for task '{task_id}': {path}",
                    path=str(path),
                    task_id=task_id,
                )
        return PathGrant(task_id, frozenset(normalize_path(p) for p in paths))

    def request_approval(
        self,
        task_id: str,
        definition: TaskDefinition,
        inputs: Mapping[str, Any],
        affected_paths: Iterable[str],
    ) -> bool:
        request = ApprovalRequest(
            task_id=task_id,
            definition=definition,
            inputs=redact_mapping(dict(inputs)),
            affected_paths=tuple(str(p) for p in affected_paths),
        )
        self.last_request = request

        if not definition.requires_approval:
            request.transition(ApprovalState.AUTO_APPROVED)
            self._record(request, Outcome.AUTO_APPROVED, self.operator, "Approval not required")
            return True

        request.transition(ApprovalState.AWAITING_DECISION)
        source = self.decision_source or default_decision_source()
        try:
            decision = source.decide(request)
        except (Exception, KeyboardInterrupt) as e:
            logger.warning(f"[APPROVAL] {task_id}: decision source failed: {e!r}")
            decision = Decision(False, self.operator, f"Decision source failed: {type(e).__name__}")

        if decision.approved:
            request.transition(ApprovalState.APPROVED)
            self._record(request, Outcome.APPROVED, decision.operator, decision.notes)
        else:
            request.transition(ApprovalState.DENIED)
            self._record(request, Outcome.DENIED, decision.operator, decision.notes)
        return decision.approved

    def _record(self, request: ApprovalRequest, outcome: Outcome, operator: str, notes: str | None) -> None:
        self.audit_log.append(AuditEntry(
            task_id=request.task_id,
            operator=operator,
            outcome=outcome,
            affected_paths=request.affected_paths,
            inputs=request.inputs,
            notes=notes,
        ))

    # -----------------------------------------------------------------------
    # Read side
    # -----------------------------------------------------------------------

    def read_audit_log(
        self,
        limit: int | None = None,
        task_id: str | None = None,
        operator: str | None = None,
    ) -> list[AuditEntry]:
        """Entries newest first. A missing or empty log reads as []."""
        return self.audit_log.read(limit=limit, task_id=task_id, operator=operator)

    def get_audit_stats(self) -> AuditStats:
        return self.audit_log.stats()

    def clear(self) -> int:
        return self.audit_log.clear()

    def purge(self, older_than: datetime) -> int:
        return self.audit_log.purge(older_than)
