"""
test-client: run a generated driver's tests through pytest and parse the outcome.
"""

from __future__ import annotations

import re
from typing import Any

from taskgate.approval import PathGrant
from taskgate.errors import NotFoundError
from taskgate.runner import ProcessResult
from taskgate.scaffold.driver_scaffolder import snake_case
from taskgate.tasks.base import BaseTask, TaskPlan, TaskResult

_COUNT = re.compile(r"(\d+) (passed|failed|errors?|skipped|xfailed|xpassed|warnings?)")
_FAILED = re.compile(r"^(?:FAILED|ERROR) (\S+)(?: - (.*))?$", re.MULTILINE)
_COVERAGE = re.compile(r"^TOTAL\s+\d+\s+\d+(?:\s+\d+\s+\d+)?\s+(\d+(?:\.\d+)?)%", re.MULTILINE)
_DURATION = re.compile(r" in ([\d.]+)s")


def parse_pytest_output(output: str) -> dict[str, Any]:
    """Counts, failures and coverage from pytest's terminal summary."""
    counts = {"passed": 0, "failed": 0, "errors": 0, "skipped": 0, "xfailed": 0, "xpassed": 0}
    summary_lines = [line for line in output.splitlines() if _COUNT.search(line) and " in " in line]
    if summary_lines:
        for number, label in _COUNT.findall(summary_lines[-1]):
            if label.startswith("warning"):
                continue
            key = "errors" if label.startswith("error") else label
            counts[key] = int(number)

    failures = [
        {"test": test, "message": (message or "").strip()}
        for test, message in _FAILED.findall(output)
    ]

    coverage = None
    match = _COVERAGE.search(output)
    if match:
        coverage = float(match.group(1))

    duration = None
    if summary_lines:
        timing = _DURATION.search(summary_lines[-1])
        if timing:
            duration = float(timing.group(1))

    return {
        **counts,
        "total": counts["passed"] + counts["failed"] + counts["errors"] + counts["skipped"],
        "failures": failures,
        "coverage": coverage,
        "duration": duration,
    }


class TestClientTask(BaseTask):
    task_id = "test-client"
    __test__ = False

    def locate_test_files(self, name: str, test_type: str) -> list[str]:
        snake = snake_case(name)
        testing = self.config.testing
        found: list[str] = []
        if test_type in ("unit", "all"):
            unit = f"{testing.unit_dir}/test_{snake}_driver.py"
            if self.workspace.exists(unit):
                found.append(unit)
        if test_type in ("integration", "all"):
            for rel in self.workspace.iter_files([testing.integration_dir], {".py"}):
                filename = rel.rsplit("/", 1)[-1]
                if filename.startswith(f"test_{snake}"):
                    found.append(rel)
        return found

    def plan(self, inputs: dict[str, Any]) -> TaskPlan:
        name, test_type = inputs["name"], inputs.get("test_type", "unit")
        files = self.locate_test_files(name, test_type)
        if not files:
            raise NotFoundError(
                f"No {test_type} tests found for {name}",
                path=self.config.testing.unit_dir,
                task_id=self.task_id,
            )
        return TaskPlan(affected_paths=files)

    def build_command(self, inputs: dict[str, Any], files: list[str]) -> list[str]:
        command = [*self.config.testing.command, *files]
        command.append("-v" if inputs.get("verbose") else "-q")
        if inputs.get("stop_on_failure"):
            command.append("-x")
        if inputs.get("filter"):
            command += ["-k", inputs["filter"]]
        if inputs.get("coverage"):
            module = f"{self.config.scaffold.package}.drivers.{snake_case(inputs['name'])}_driver"
            command += [f"--cov={module}", "--cov-report=term"]
        return command

    def perform(self, inputs: dict[str, Any], plan: TaskPlan, grant: PathGrant) -> TaskResult:
        name = inputs["name"]
        timeout = inputs.get("timeout") or self.config.testing.timeout
        command = self.build_command(inputs, plan.affected_paths)

        self._progress(f"Running {len(plan.affected_paths)} test file(s) for {name}")
        outcome = self.runner.run(command, cwd=self.workspace.root, timeout=timeout)
        return self._result(name, outcome, plan.affected_paths, timeout)

    def _result(self, name: str, outcome: ProcessResult, files: list[str], timeout: float) -> TaskResult:
        parsed = parse_pytest_output(outcome.output)
        details = {
            **parsed,
            "command": outcome.command,
            "returncode": outcome.returncode,
            "timed_out": outcome.timed_out,
            "test_files": files,
        }

        if outcome.timed_out:
            return TaskResult(
                success=False,
                task_id=self.task_id,
                summary=f"Tests for {name} timed out after {timeout}s",
                findings=parsed["failures"],
                next_steps=["Raise the timeout input or narrow the run with filter"],
                details=details,
            )

        success = outcome.returncode == 0 and parsed["failed"] == 0 and parsed["errors"] == 0
        summary = (
            f"{name}: {parsed['passed']} passed, {parsed['failed']} failed, "
            f"{parsed['errors']} errors, {parsed['skipped']} skipped"
        )
        if parsed["coverage"] is not None:
            summary += f", {parsed['coverage']:.1f}% coverage"

        next_steps = []
        if not success:
            next_steps.append("Inspect the failures listed in findings")
            if outcome.returncode not in (0, 1) and not parsed["failures"]:
                next_steps.append("pytest exited abnormally; check details.command and the raw output")
        return TaskResult(
            success=success,
            task_id=self.task_id,
            summary=summary,
            findings=parsed["failures"],
            next_steps=next_steps,
            details=details,
        )
