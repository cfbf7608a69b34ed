"""
Markdown and JSON renderings of a ScanReport.
"""

from __future__ import annotations

import json
from typing import Any

from taskgate.analysis.suggestion import Risk, ScanReport, Suggestion


def _line_range(s: Suggestion) -> str:
    if s.start_line is None:
        return "-"
    if s.end_line is None or s.end_line == s.start_line:
        return str(s.start_line)
    return f"{s.start_line}-{s.end_line}"


def _cell(text: str) -> str:
    return text.replace("|", "\\|").replace("\n", " ")


def render_markdown(report: ScanReport, title: str, generated_at: str) -> str:
    summary = report.summary()
    lines = [
        f"# {title}",
        "",
        f"**Generated:** {generated_at}",
        "",
        "## Summary",
        "",
        f"- **Total suggestions:** {summary['total']}",
        f"- **Files scanned:** {summary['files_scanned']}",
        f"- **Files skipped:** {summary['files_skipped']}",
        "",
        "### By Type",
        "",
    ]
    for kind, count in summary["by_type"].items():
        lines.append(f"- {kind}: {count}")
    lines += ["", "### By Risk", ""]
    for risk, count in summary["by_risk"].items():
        lines.append(f"- {risk}: {count}")
    lines.append("")

    if not report.suggestions:
        lines += ["No suggestions. Nothing to refactor.", ""]

    for risk in (Risk.HIGH, Risk.MEDIUM, Risk.LOW):
        group = [s for s in report.suggestions if s.risk is risk]
        if not group:
            continue
        lines += [
            f"## {risk.value.capitalize()} Risk ({len(group)})",
            "",
            "| File | Lines | Type | Title | Current | Expected |",
            "|------|-------|------|-------|---------|----------|",
        ]
        for s in group:
            lines.append(
                f"| `{_cell(s.file_path)}` | {_line_range(s)} | {s.type.value} | {_cell(s.title)} "
                f"| {'' if s.current_metric is None else s.current_metric} "
                f"| {'' if s.expected_metric is None else s.expected_metric} |"
            )
        lines.append("")
        for s in group:
            lines += [f"### {s.title}", "", f"`{s.file_path}:{_line_range(s)}` ({s.id})", "", s.description, ""]

    if report.skipped:
        lines += ["## Skipped Files", ""]
        for skipped in report.skipped:
            lines.append(f"- `{skipped.path}`: {skipped.reason}")
        lines.append("")

    return "\n".join(lines)


def report_to_dict(report: ScanReport, generated_at: str) -> dict[str, Any]:
    return {
        "generated_at": generated_at,
        "summary": report.summary(),
        "suggestions": [s.to_dict() for s in report.suggestions],
        "skipped": [{"path": s.path, "reason": s.reason} for s in report.skipped],
    }


def render_json(report: ScanReport, generated_at: str) -> str:
    return json.dumps(report_to_dict(report, generated_at), indent=2) + "\n"
