"""
create-client: scaffold a protocol-client driver from an API specification.
"""

from __future__ import annotations

import ast
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from taskgate.approval import PathGrant
from taskgate.errors import ExecutionError, ValidationError
from taskgate.scaffold import ArtifactKind, DriverScaffolder, NetworkKind, ScaffoldOptions, parse_specification
from taskgate.tasks.base import BaseTask, TaskPlan, TaskResult


class CreateClientTask(BaseTask):
    task_id = "create-client"

    def _scaffolder(self, inputs: dict[str, Any]) -> DriverScaffolder:
        scaffold = self.config.scaffold
        try:
            options = ScaffoldOptions(
                package=scaffold.package,
                src_root=scaffold.src_root,
                tests_dir=scaffold.tests_dir,
                docs_dir=scaffold.docs_dir,
                native_currency=inputs.get("native_currency"),
                decimals=inputs.get("decimals"),
                default_endpoint=inputs.get("default_endpoint") or "",
            )
        except PydanticValidationError as e:
            errors: dict[str, list[str]] = {}
            for err in e.errors():
                field = ".".join(str(part) for part in err["loc"]) or "options"
                errors.setdefault(field, []).append(err["msg"])
            raise ValidationError("Invalid scaffold options", errors, task_id=self.task_id) from e
        return DriverScaffolder(options)

    def plan(self, inputs: dict[str, Any]) -> TaskPlan:
        name = inputs["name"]
        scaffolder = self._scaffolder(inputs)
        paths = scaffolder.artifact_paths(name)

        existing = [path for path in paths.values() if self.workspace.exists(path)]
        if existing:
            raise ValidationError(
                f"Client '{name}' already exists",
                {"name": [f"{path} already exists" for path in existing]},
                task_id=self.task_id,
            )
        return TaskPlan(affected_paths=list(paths.values()), data={"scaffolder": scaffolder, "paths": paths})

    def perform(self, inputs: dict[str, Any], plan: TaskPlan, grant: PathGrant) -> TaskResult:
        name = inputs["name"]
        scaffolder: DriverScaffolder = plan.data["scaffolder"]

        self._progress(f"Parsing specification {inputs['spec_source']}")
        spec = parse_specification(
            inputs["spec_source"],
            fetcher=self.fetcher,
            auth_token=inputs.get("auth_token"),
            base_dir=self.workspace.root,
        )
        kind = NetworkKind(inputs.get("network_type") or NetworkKind.NON_EVM.value)
        artifacts = scaffolder.generate_artifacts(name, spec, kind)

        # Nothing is written unless every generated module parses
        for artifact in artifacts:
            if artifact.path.endswith(".py"):
                try:
                    ast.parse(artifact.content, filename=artifact.path)
                except SyntaxError as e:
                    raise ExecutionError(
                        f"Generated {artifact.path} is not valid Python: {e.msg} (line {e.lineno})",
                        step="syntax-check",
                        task_id=self.task_id,
                    ) from e

        written = []
        for artifact in artifacts:
            self.workspace.write_text(artifact.path, artifact.content, grant)
            written.append(artifact.path)

        paths = plan.data["paths"]
        details: dict[str, Any] = {
            "dialect": spec.dialect.value,
            "spec_methods": spec.method_names,
            "network_type": kind.value,
        }

        tests_passed: bool | None = None
        if inputs.get("run_tests"):
            self._progress("Running generated tests")
            outcome = self.runner.run(
                [*self.config.testing.command, paths[ArtifactKind.TEST_SUITE], "-q"],
                cwd=self.workspace.root,
                timeout=self.config.testing.timeout,
            )
            tests_passed = outcome.ok
            details["tests"] = {
                "passed": outcome.ok,
                "returncode": outcome.returncode,
                "timed_out": outcome.timed_out,
                "output": outcome.output[-4000:],
            }

        next_steps = [
            f"Review {paths[ArtifactKind.CLIENT_CLASS]} and replace every TODO placeholder",
            f"Register {name}Driver with the driver registry",
            f"Add {name} network settings to your configuration",
        ]
        if tests_passed is None:
            next_steps.append(f"Run the generated tests: taskgate run test-client --input name={name}")
        elif not tests_passed:
            next_steps.insert(0, f"Fix the failing tests in {paths[ArtifactKind.TEST_SUITE]}")

        return TaskResult(
            success=tests_passed is not False,
            task_id=self.task_id,
            summary=f"Generated {name}Driver from a {spec.dialect.value} spec ({len(spec.methods)} methods)",
            artifacts=written,
            next_steps=next_steps,
            details=details,
        )
