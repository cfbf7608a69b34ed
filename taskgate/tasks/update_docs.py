"""
update-docs: keep driver reference pages, the README driver table and the
changelog in step with the drivers on disk.

All changes are computed before approval and shown as unified diffs;
`preview_only` stops there.
"""

from __future__ import annotations

import ast
import difflib
import re
from dataclasses import dataclass, field
from typing import Any

from taskgate.approval import PathGrant
from taskgate.errors import ValidationError
from taskgate.scaffold import templates
from taskgate.scaffold.driver_scaffolder import snake_case
from taskgate.tasks.base import BaseTask, TaskPlan, TaskResult

README_START = "<!-- taskgate:drivers:start -->"
README_END = "<!-- taskgate:drivers:end -->"
UNRELEASED = "## [Unreleased]"


# ---------------------------------------------------------------------------
# Driver discovery
# ---------------------------------------------------------------------------

@dataclass
class DriverInfo:
    name: str
    class_name: str
    path: str
    network_type: str = "unknown"
    native_currency: str = "-"
    operations: list[tuple[str, str | None, str]] = field(default_factory=list)

    @property
    def status(self) -> str:
        labels = {status for _, _, status in self.operations}
        if not labels & {"implemented", "custom"}:
            return "stub"
        if labels <= {"implemented", "custom"}:
            return "complete"
        return "partial"


def _rpc_method(func: ast.FunctionDef) -> str | None:
    for node in ast.walk(func):
        if (
            isinstance(node, ast.Call)
            and isinstance(node.func, ast.Attribute)
            and node.func.attr == "_rpc_call"
            and node.args
            and isinstance(node.args[0], ast.Constant)
            and isinstance(node.args[0].value, str)
        ):
            return node.args[0].value
    return None


def _raised_name(func: ast.FunctionDef) -> str | None:
    for node in ast.walk(func):
        if isinstance(node, ast.Raise) and node.exc is not None:
            target = node.exc.func if isinstance(node.exc, ast.Call) else node.exc
            if isinstance(target, ast.Name):
                return target.id
    return None


def classify_operation(func: ast.FunctionDef) -> tuple[str | None, str]:
    rpc_method = _rpc_method(func)
    if rpc_method is not None:
        return rpc_method, "implemented"
    raised = _raised_name(func)
    if raised == "NotImplementedError":
        return None, "placeholder"
    if raised is not None and raised != "ConfigurationError":
        return None, "not implemented"

    body = list(func.body)
    if body and isinstance(body[0], ast.Expr) and isinstance(body[0].value, ast.Constant):
        body = body[1:]
    if len(body) == 1 and isinstance(body[0], ast.Return) and (
        body[0].value is None or (isinstance(body[0].value, ast.Constant) and body[0].value.value is None)
    ):
        return None, "unsupported"
    return None, "custom"


def _constant(tree: ast.Module, name: str) -> str | None:
    for node in tree.body:
        if isinstance(node, ast.Assign) and any(
            isinstance(t, ast.Name) and t.id == name for t in node.targets
        ):
            if isinstance(node.value, ast.Constant):
                return str(node.value.value)
    return None


def extract_driver_info(path: str, source: str) -> DriverInfo | None:
    """Read a driver module without importing it. None if it holds no *Driver class."""
    try:
        tree = ast.parse(source, filename=path)
    except SyntaxError:
        return None

    for node in tree.body:
        if isinstance(node, ast.ClassDef) and node.name.endswith("Driver") and node.name != "Driver":
            info = DriverInfo(
                name=node.name[: -len("Driver")],
                class_name=node.name,
                path=path,
                network_type=_constant(tree, "NETWORK_TYPE") or "unknown",
                native_currency=_constant(tree, "NATIVE_CURRENCY") or "-",
            )
            for item in node.body:
                if isinstance(item, ast.FunctionDef) and item.name in templates.OPERATION_ORDER:
                    rpc_method, status = classify_operation(item)
                    info.operations.append((item.name, rpc_method, status))
            return info
    return None


# ---------------------------------------------------------------------------
# Renderers
# ---------------------------------------------------------------------------

def replace_block(content: str, start: str, end: str, block: str) -> str | None:
    """Swap the marker-delimited block (markers included) for `block`. None if markers are missing."""
    pattern = re.compile(re.escape(start) + r".*?" + re.escape(end), re.DOTALL)
    if not pattern.search(content):
        return None
    return pattern.sub(lambda _: block, content, count=1)


def render_readme_table(drivers: list[DriverInfo]) -> str:
    lines = [
        README_START,
        "| Network | Driver | Type | Currency | Status |",
        "|---|---|---|---|---|",
    ]
    for d in drivers:
        lines.append(f"| {d.name} | `{d.class_name}` | {d.network_type} | {d.native_currency} | {d.status} |")
    lines.append(README_END)
    return "\n".join(lines)


def render_driver_page(info: DriverInfo, package: str) -> str:
    module = info.path.rsplit("/", 1)[-1].removesuffix(".py")
    return (
        f"# {info.name} Driver\n\n"
        f"## Overview\n\n"
        f"`{info.class_name}` is a {info.network_type} driver. "
        f"Native currency: {info.native_currency}.\n\n"
        f"```python\n"
        f"from {package}.drivers.{module} import {info.class_name}\n"
        f"```\n\n"
        f"## Operation Support\n\n"
        f"{templates.render_status_block(info.operations)}\n"
    )


def insert_changelog_entry(content: str, entry: str) -> str:
    line = f"- {entry.strip()}"
    if not content.strip():
        return f"# Changelog\n\n{UNRELEASED}\n\n{line}\n"

    lines = content.splitlines()
    for i, existing in enumerate(lines):
        if existing.strip() == UNRELEASED:
            j = i + 1
            while j < len(lines) and not lines[j].strip():
                j += 1
            lines[i + 1:j] = [""]
            lines.insert(i + 2, line)
            return "\n".join(lines) + "\n"

    for i, existing in enumerate(lines):
        if existing.startswith("## "):
            lines[i:i] = [UNRELEASED, "", line, ""]
            return "\n".join(lines) + "\n"

    return content.rstrip("\n") + f"\n\n{UNRELEASED}\n\n{line}\n"


def unified_diff(path: str, old: str, new: str) -> dict[str, Any]:
    diff = list(difflib.unified_diff(
        old.splitlines(keepends=True),
        new.splitlines(keepends=True),
        fromfile=f"a/{path}",
        tofile=f"b/{path}",
    ))
    additions = sum(1 for line in diff if line.startswith("+") and not line.startswith("+++"))
    deletions = sum(1 for line in diff if line.startswith("-") and not line.startswith("---"))
    return {"file": path, "diff": "".join(diff), "additions": additions, "deletions": deletions}


# ---------------------------------------------------------------------------
# Task
# ---------------------------------------------------------------------------

class UpdateDocsTask(BaseTask):
    task_id = "update-docs"

    @property
    def drivers_dir(self) -> str:
        scaffold = self.config.scaffold
        return f"{scaffold.src_root}/{scaffold.package.replace('.', '/')}/drivers"

    def discover_drivers(self, names: list[str] | None = None) -> list[DriverInfo]:
        wanted = {n.lower() for n in names or []}
        drivers = []
        for rel in self.workspace.iter_files([self.drivers_dir], {".py"}):
            if not rel.endswith("_driver.py"):
                continue
            info = extract_driver_info(rel, self.workspace.read_text(rel))
            if info is None:
                continue
            if wanted and info.name.lower() not in wanted and snake_case(info.name) not in wanted:
                continue
            drivers.append(info)
        return sorted(drivers, key=lambda d: d.name)

    def _read(self, rel: str) -> str:
        return self.workspace.read_text(rel) if self.workspace.exists(rel) else ""

    def plan(self, inputs: dict[str, Any]) -> TaskPlan:
        update_type = inputs.get("update_type", "all")
        entry = (inputs.get("changelog_entry") or "").strip()
        if update_type == "changelog" and not entry:
            raise ValidationError(
                "Nothing to add to the changelog",
                {"changelog_entry": ["is required when update_type is changelog"]},
                task_id=self.task_id,
            )
        bad_names = [n for n in inputs.get("driver_names") or [] if not isinstance(n, str) or not n.strip()]
        if bad_names:
            raise ValidationError(
                "Invalid driver names",
                {"driver_names": [f"{n!r} is not a driver name" for n in bad_names]},
                task_id=self.task_id,
            )

        changes: list[tuple[str, str, str]] = []
        drivers: list[DriverInfo] = []

        if update_type in ("drivers", "all"):
            drivers = self.discover_drivers(inputs.get("driver_names"))
            for info in drivers:
                rel = f"{self.config.scaffold.docs_dir}/{snake_case(info.name)}.md"
                old = self._read(rel)
                block = templates.render_status_block(info.operations)
                if old:
                    new = replace_block(old, templates.STATUS_START, templates.STATUS_END, block) or old
                else:
                    new = render_driver_page(info, self.config.scaffold.package)
                changes.append((rel, old, new))

            if not inputs.get("driver_names"):
                old = self._read("README.md")
                table = render_readme_table(drivers)
                new = replace_block(old, README_START, README_END, table)
                if new is None:
                    new = old.rstrip("\n") + ("\n\n" if old.strip() else "") + f"## Supported Networks\n\n{table}\n"
                changes.append(("README.md", old, new))

        if update_type in ("changelog", "all") and entry:
            old = self._read("CHANGELOG.md")
            changes.append(("CHANGELOG.md", old, insert_changelog_entry(old, entry)))

        changes = [(rel, old, new) for rel, old, new in changes if old != new]
        return TaskPlan(
            affected_paths=[rel for rel, _, _ in changes],
            data={"changes": changes, "drivers": drivers},
        )

    def perform(self, inputs: dict[str, Any], plan: TaskPlan, grant: PathGrant) -> TaskResult:
        changes: list[tuple[str, str, str]] = plan.data["changes"]
        drivers: list[DriverInfo] = plan.data["drivers"]
        diffs = [unified_diff(rel, old, new) for rel, old, new in changes]
        preview = bool(inputs.get("preview_only"))

        written = []
        if not preview:
            for rel, _, new in changes:
                self.workspace.write_text(rel, new, grant)
                written.append(rel)

        additions = sum(d["additions"] for d in diffs)
        deletions = sum(d["deletions"] for d in diffs)
        verb = "Would change" if preview else "Changed"
        summary = f"{verb} {len(diffs)} file(s): +{additions} -{deletions}"
        if not diffs:
            summary = "Documentation already up to date"

        next_steps = []
        if preview and diffs:
            next_steps.append("Re-run without preview_only to apply these changes")
        stubs = [d.name for d in drivers if d.status != "complete"]
        if stubs:
            next_steps.append(f"Finish placeholder operations in: {', '.join(stubs)}")

        return TaskResult(
            success=True,
            task_id=self.task_id,
            summary=summary,
            artifacts=written,
            next_steps=next_steps,
            details={
                "preview_only": preview,
                "diffs": diffs,
                "drivers": [
                    {"name": d.name, "class": d.class_name, "network_type": d.network_type, "status": d.status}
                    for d in drivers
                ],
            },
        )
