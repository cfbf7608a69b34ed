"""
security-audit: dangerous-call patterns, dependency vulnerabilities and
hardcoded credentials, with every piece of evidence redacted before it is
returned or written.
"""

from __future__ import annotations

import json
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from loguru import logger

from taskgate.approval import PathGrant
from taskgate.errors import ExecutionError
from taskgate.redaction import redact_text
from taskgate.tasks.base import BaseTask, TaskPlan, TaskResult, report_stamp

SEVERITY_LEVELS = {"low": 1, "medium": 2, "high": 3, "critical": 4}

SOURCE_EXTENSIONS = {".py", ".php", ".js", ".jsx", ".mjs", ".cjs", ".ts", ".tsx"}

# (pattern, severity, message)
DANGEROUS_PATTERNS: list[tuple[re.Pattern[str], str, str]] = [
    (re.compile(r"(?<![.\w])eval\s*\("), "critical", "Use of eval() - arbitrary code execution"),
    (re.compile(r"(?<![.\w])exec\s*\("), "high", "Use of exec() - ensure input is trusted"),
    (re.compile(r"\bos\.(?:system|popen)\s*\("), "high", "Shell command via os module - prefer subprocess with a list"),
    (re.compile(r"\bsubprocess\.\w+\(.*shell\s*=\s*True"), "high", "subprocess with shell=True - shell injection risk"),
    (re.compile(r"(?<![.\w])(?:shell_exec|passthru|system)\s*\("), "high", "Shell execution call - ensure input validation"),
    (re.compile(r"\bpickle\.loads?\s*\("), "medium", "Unpickling data - potential code execution"),
    (re.compile(r"\byaml\.load\s*\((?![^)]*SafeLoader)"), "medium", "yaml.load without SafeLoader - use yaml.safe_load"),
    (re.compile(r"(?<![.\w])unserialize\s*\("), "medium", "unserialize() - potential object injection"),
    (re.compile(r"\bverify\s*=\s*False\b"), "medium", "TLS certificate verification disabled"),
    (re.compile(r"\$_(?:GET|POST|REQUEST|COOKIE)\["), "low", "Direct superglobal access - ensure input validation"),
    (re.compile(r"\bhashlib\.(?:md5|sha1)\s*\("), "low", "Weak hash function"),
]

_DUMMY = r"(?!example|dummy|test|changeme|password|secret|placeholder|xxx+|12345678)"

SECRET_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"(?i)api[_-]?key\s*[:=]\s*[\"']?([a-zA-Z0-9_\-]{32,})"),
    re.compile(r"(?i)secret\s*[:=]\s*[\"']?([a-zA-Z0-9_\-]{32,})"),
    re.compile(r"(?i)password\s*[:=]\s*[\"']?" + _DUMMY + r"([^\s\"']{8,})"),
    re.compile(r"(?i)token\s*[:=]\s*[\"']?([a-zA-Z0-9_\-]{32,})"),
    re.compile(r"-----BEGIN [A-Z ]*PRIVATE KEY-----"),
]


def _is_comment(line: str) -> bool:
    stripped = line.strip()
    return stripped.startswith(("#", "//", "*", "/*"))


def finding(
    kind: str,
    tool: str,
    severity: str,
    message: str,
    file: str | None = None,
    line: int | None = None,
    evidence: str = "",
    **extra: Any,
) -> dict[str, Any]:
    return {
        "type": kind,
        "tool": tool,
        "severity": severity,
        "file": file,
        "line": line,
        "message": message,
        "evidence": evidence,
        **extra,
    }


def filter_by_severity(findings: list[dict[str, Any]], threshold: str) -> list[dict[str, Any]]:
    minimum = SEVERITY_LEVELS.get(threshold, 2)
    return [f for f in findings if SEVERITY_LEVELS.get(f["severity"], 1) >= minimum]


def redact_findings(findings: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return [
        {k: redact_text(v) if isinstance(v, str) and k != "file" else v for k, v in f.items()}
        for f in findings
    ]


def summarize(findings: list[dict[str, Any]]) -> dict[str, Any]:
    summary: dict[str, Any] = {"total_findings": len(findings), **{level: 0 for level in SEVERITY_LEVELS}}
    for f in findings:
        if f["severity"] in SEVERITY_LEVELS:
            summary[f["severity"]] += 1
    summary["passed"] = not findings
    return summary


def recommendations_for(findings: list[dict[str, Any]]) -> list[dict[str, Any]]:
    def count(**match: str) -> int:
        return sum(1 for f in findings if all(f.get(k) == v for k, v in match.items()))

    recs = []
    critical, high = count(severity="critical"), count(severity="high")
    deps, secrets = count(type="dependency_vulnerability"), count(type="hardcoded_credential")
    if critical:
        recs.append({
            "priority": "critical",
            "action": "Immediate action required",
            "description": f"Address {critical} critical issue(s) before the next release.",
            "count": critical,
        })
    if high:
        recs.append({
            "priority": "high",
            "action": "Address within current sprint",
            "description": f"Resolve {high} high-severity issue(s).",
            "count": high,
        })
    if deps:
        recs.append({
            "priority": "high",
            "action": "Update vulnerable dependencies",
            "description": f"Upgrade {deps} vulnerable package(s) to a fixed version.",
            "count": deps,
        })
    if secrets:
        recs.append({
            "priority": "critical",
            "action": "Remove hardcoded credentials",
            "description": f"Move {secrets} credential(s) to environment variables and rotate them.",
            "count": secrets,
        })
    return recs


def render_markdown(result: dict[str, Any]) -> str:
    summary = result["summary"]
    lines = [
        "# Security Audit Report",
        "",
        f"**Generated:** {result['generated_at']}",
        f"**Scan type:** {result['scan_type']}",
        f"**Severity threshold:** {result['severity_threshold']}",
        "",
        "## Summary",
        "",
        f"- **Total findings:** {summary['total_findings']}",
    ]
    for level in ("critical", "high", "medium", "low"):
        lines.append(f"- {level.capitalize()}: {summary[level]}")
    lines += ["", "**Status:** " + ("PASSED" if summary["passed"] else "ISSUES FOUND"), ""]

    if result["findings"]:
        lines += [
            "## Findings",
            "",
            "| Severity | Type | Location | Message |",
            "|---|---|---|---|",
        ]
        for f in result["findings"]:
            location = f["file"] or "-"
            if f["line"]:
                location += f":{f['line']}"
            message = f["message"].replace("|", "\\|")
            lines.append(f"| {f['severity']} | {f['type']} | `{location}` | {message} |")
        lines.append("")

    if result.get("recommendations"):
        lines += ["## Recommendations", ""]
        for rec in result["recommendations"]:
            lines.append(f"- **[{rec['priority']}] {rec['action']}:** {rec['description']}")
        lines.append("")

    for note in result.get("notes", []):
        lines.append(f"> {note}")
    return "\n".join(lines) + "\n"


class SecurityAuditTask(BaseTask):
    task_id = "security-audit"

    def plan(self, inputs: dict[str, Any]) -> TaskPlan:
        stamp = report_stamp()
        base = f"{self.config.reports.dir}/security/{stamp}"
        fmt = inputs.get("output_format", "both")
        paths = []
        if fmt in ("markdown", "both"):
            paths.append(f"{base}.md")
        if fmt in ("json", "both"):
            paths.append(f"{base}.json")
        return TaskPlan(affected_paths=paths)

    # -----------------------------------------------------------------------
    # Scans
    # -----------------------------------------------------------------------

    def scan_patterns(self) -> tuple[list[dict[str, Any]], list[str]]:
        findings, notes = [], []
        files = self.workspace.iter_files(
            self.config.security.scan_paths, SOURCE_EXTENSIONS, self.config.analysis.exclude
        )
        for rel in files:
            try:
                source = self.workspace.read_text(rel)
            except (OSError, UnicodeDecodeError) as e:
                notes.append(f"Skipped {rel}: {e}")
                continue
            for number, line in enumerate(source.splitlines(), start=1):
                if _is_comment(line):
                    continue
                for pattern, severity, message in DANGEROUS_PATTERNS:
                    if pattern.search(line):
                        findings.append(finding(
                            "security_pattern", "Pattern Scanner", severity, message,
                            file=rel, line=number, evidence=line.strip()[:200],
                        ))
        return findings, notes

    def audit_dependencies(self) -> tuple[list[dict[str, Any]], list[str]]:
        command = self.config.security.dependency_command
        if not command or self.runner.which(command[0]) is None:
            return [], [f"Dependency audit skipped: {command[0] if command else 'no command'} is not installed"]

        outcome = self.runner.run(command, cwd=self.workspace.root, timeout=self.config.security.timeout)
        if outcome.timed_out:
            return [], [f"Dependency audit timed out after {self.config.security.timeout}s"]
        try:
            report = json.loads(outcome.stdout or "{}")
        except json.JSONDecodeError:
            return [], [f"Dependency audit output was not JSON (exit {outcome.returncode})"]

        dependencies = report.get("dependencies", []) if isinstance(report, dict) else report
        findings = []
        for dep in dependencies or []:
            for vuln in dep.get("vulns", []):
                fixes = vuln.get("fix_versions") or []
                findings.append(finding(
                    "dependency_vulnerability", "pip-audit", "high",
                    f"{dep.get('name')} {dep.get('version')}: {vuln.get('id')}",
                    evidence=(vuln.get("description") or "")[:300],
                    package=dep.get("name"),
                    fix_versions=fixes,
                ))
        return findings, []

    def scan_config_secrets(self) -> tuple[list[dict[str, Any]], list[str]]:
        findings, notes = [], []
        files: list[str] = []
        for entry in self.config.security.config_paths:
            files.extend(self.workspace.iter_files([entry]))

        for rel in sorted(set(files)):
            try:
                content = self.workspace.read_text(rel)
            except (OSError, UnicodeDecodeError) as e:
                notes.append(f"Skipped {rel}: {e}")
                continue
            is_example = "example" in Path(rel).name
            for number, line in enumerate(content.splitlines(), start=1):
                if is_example and _is_comment(line):
                    continue
                if any(p.search(line) for p in SECRET_PATTERNS):
                    findings.append(finding(
                        "hardcoded_credential", "Secret Scanner", "critical",
                        "Potential hardcoded credential; move it to the environment",
                        file=rel, line=number, evidence=line.strip()[:200],
                    ))
        return findings, notes

    # -----------------------------------------------------------------------

    def perform(self, inputs: dict[str, Any], plan: TaskPlan, grant: PathGrant) -> TaskResult:
        scan_type = inputs.get("scan_type", "full")
        threshold = inputs.get("severity_threshold", "medium")

        collected: list[dict[str, Any]] = []
        notes: list[str] = []
        steps = []
        if scan_type in ("full", "static"):
            steps.append(("static", self.scan_patterns))
        if scan_type in ("full", "dependencies"):
            steps.append(("dependencies", self.audit_dependencies))
        if scan_type in ("full", "config"):
            steps.append(("config", self.scan_config_secrets))

        for name, step in steps:
            self._progress(f"Running {name} checks")
            found, step_notes = step()
            collected.extend(found)
            notes.extend(step_notes)

        findings = redact_findings(filter_by_severity(collected, threshold))
        findings.sort(key=lambda f: (-SEVERITY_LEVELS[f["severity"]], f["file"] or "", f["line"] or 0))
        summary = summarize(findings)
        recommendations = recommendations_for(findings) if inputs.get("include_recommendations", True) else []

        report = {
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "scan_type": scan_type,
            "severity_threshold": threshold,
            "summary": summary,
            "findings": findings,
            "recommendations": recommendations,
            "notes": [redact_text(n) for n in notes],
        }
        for rel in plan.affected_paths:
            if rel.endswith(".md"):
                content = render_markdown(report)
            else:
                content = json.dumps(report, indent=2) + "\n"
            self.workspace.write_text(rel, content, grant)

        result = TaskResult(
            success=True,
            task_id=self.task_id,
            summary=(
                f"{summary['total_findings']} finding(s) at or above {threshold}: "
                f"{summary['critical']} critical, {summary['high']} high, "
                f"{summary['medium']} medium, {summary['low']} low"
            ),
            findings=findings,
            reports=list(plan.affected_paths),
            next_steps=[rec["action"] for rec in recommendations],
            details={"recommendations": recommendations, "notes": report["notes"], "summary": summary},
        )

        if inputs.get("fail_on_finding") and findings:
            logger.warning(f"[TASK] security-audit failing on {len(findings)} finding(s)")
            raise ExecutionError(
                f"Security audit found {len(findings)} issue(s): {result.summary}",
                step="security-audit",
                task_id=self.task_id,
                result=result,
            )
        return result
