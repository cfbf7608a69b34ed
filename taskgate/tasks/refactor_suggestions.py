"""
refactor-suggestions: run the analysis engines and write a report.

The scan is read-only, so it runs during planning; the report and any
patch files it will produce are then known up front and go through path
validation and approval together.
"""

from __future__ import annotations

import difflib
from datetime import datetime, timezone
from typing import Any

from taskgate.analysis import ComplexityScanner, Risk, ScanReport, Suggestion, UnusedCodeDetector
from taskgate.analysis.report import render_json, render_markdown
from taskgate.approval import PathGrant
from taskgate.catalog import normalize_path
from taskgate.errors import ValidationError
from taskgate.tasks.base import BaseTask, TaskPlan, TaskResult, report_stamp

PATCHABLE_TITLES = {"Commented-out code"}


def removal_patch(path: str, source: str, start: int, end: int) -> str:
    """Unified diff deleting lines start..end (1-based, inclusive)."""
    lines = source.splitlines(keepends=True)
    if lines and not lines[-1].endswith("\n"):
        lines[-1] += "\n"
    remaining = lines[: start - 1] + lines[end:]
    return "".join(difflib.unified_diff(lines, remaining, fromfile=f"a/{path}", tofile=f"b/{path}"))


class RefactorSuggestionsTask(BaseTask):
    task_id = "refactor-suggestions"

    def _check(self, inputs: dict[str, Any]) -> list[str]:
        errors: dict[str, list[str]] = {}
        threshold = inputs.get("complexity_threshold", self.config.analysis.complexity_threshold)
        if threshold < 1:
            errors["complexity_threshold"] = ["must be at least 1"]

        scan_paths = list(inputs.get("scan_paths") or self.config.analysis.scan_paths)
        for path in scan_paths:
            if not isinstance(path, str) or normalize_path(path) is None:
                errors.setdefault("scan_paths", []).append(f"{path!r} is not a path inside the project")
        if errors:
            raise ValidationError("Invalid refactor-suggestions inputs", errors, task_id=self.task_id)
        return scan_paths

    def analyze(self, inputs: dict[str, Any], scan_paths: list[str]) -> ScanReport:
        analysis = self.config.analysis
        analysis_type = inputs.get("analysis_type", "full")
        report = ScanReport()

        if analysis_type in ("full", "complexity"):
            self._progress("Scanning complexity")
            scanner = ComplexityScanner(
                threshold=inputs.get("complexity_threshold", analysis.complexity_threshold),
                scan_paths=scan_paths,
                exclude=analysis.exclude,
                workers=analysis.workers,
            )
            report = report.merge(scanner.scan(self.workspace))

        if analysis_type in ("full", "unused"):
            self._progress("Detecting unused code")
            detector = UnusedCodeDetector(
                min_comment_length=analysis.min_comment_length,
                scan_paths=scan_paths,
                exclude=analysis.exclude,
                workers=analysis.workers,
            )
            report = report.merge(detector.scan(self.workspace))

        return report.filter_by_risk(Risk(inputs.get("risk_threshold", "low")))

    def attach_patches(self, suggestions: list[Suggestion]) -> None:
        sources: dict[str, str] = {}
        for s in suggestions:
            if s.title not in PATCHABLE_TITLES or s.start_line is None:
                continue
            if s.file_path not in sources:
                sources[s.file_path] = self.workspace.read_text(s.file_path)
            s.patch = removal_patch(s.file_path, sources[s.file_path], s.start_line, s.end_line or s.start_line)

    def plan(self, inputs: dict[str, Any]) -> TaskPlan:
        scan_paths = self._check(inputs)
        report = self.analyze(inputs, scan_paths)

        stamp = report_stamp()
        base = f"{self.config.reports.dir}/refactor"
        fmt = inputs.get("output_format", "both")
        paths = []
        if fmt in ("markdown", "both"):
            paths.append(f"{base}/{stamp}.md")
        if fmt in ("json", "both"):
            paths.append(f"{base}/{stamp}.json")

        patches: dict[str, str] = {}
        if inputs.get("generate_patches"):
            self.attach_patches(report.suggestions)
            for s in report.suggestions:
                if s.patch:
                    patches[f"{base}/patches/{stamp}/patch_{s.id}.diff"] = s.patch

        return TaskPlan(
            affected_paths=[*paths, *patches],
            data={"report": report, "reports": paths, "patches": patches, "scan_paths": scan_paths},
        )

    def perform(self, inputs: dict[str, Any], plan: TaskPlan, grant: PathGrant) -> TaskResult:
        report: ScanReport = plan.data["report"]
        generated_at = datetime.now(timezone.utc).isoformat()

        for rel in plan.data["reports"]:
            if rel.endswith(".md"):
                content = render_markdown(report, "Refactoring Suggestions", generated_at)
            else:
                content = render_json(report, generated_at)
            self.workspace.write_text(rel, content, grant)

        for rel, patch in plan.data["patches"].items():
            self.workspace.write_text(rel, patch, grant)

        summary = report.summary()
        by_risk = summary["by_risk"]
        next_steps = []
        if by_risk["high"]:
            next_steps.append(f"Split the {by_risk['high']} high-risk method(s) first")
        if plan.data["patches"]:
            next_steps.append("Review the patch files, then apply with `git apply`")
        if report.skipped:
            next_steps.append(f"{len(report.skipped)} file(s) could not be analyzed; see the report")

        return TaskResult(
            success=True,
            task_id=self.task_id,
            summary=(
                f"{summary['total']} suggestion(s) in {summary['files_scanned']} file(s): "
                f"{by_risk['high']} high, {by_risk['medium']} medium, {by_risk['low']} low"
            ),
            findings=[s.to_dict() for s in report.suggestions],
            artifacts=list(plan.data["patches"]),
            reports=list(plan.data["reports"]),
            next_steps=next_steps,
            details={
                "summary": summary,
                "scan_paths": plan.data["scan_paths"],
                "skipped": [{"path": s.path, "reason": s.reason} for s in report.skipped],
            },
        )
