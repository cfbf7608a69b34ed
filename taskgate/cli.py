"""
TASKGATE CLI: The Interface

  taskgate tasks                  (list the catalog)
  taskgate show <task-id>         (one task in detail)
  taskgate validate               (catalog self-check)
  taskgate run <task-id> --input key=value ...

Plus the audit trail:
  - taskgate audit-log            (newest decisions first)
  - taskgate audit-stats          (counts by outcome, task, operator)
  - taskgate audit-purge          (explicit retention purge)
"""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Any, List, Optional

import typer
import yaml
from dotenv import load_dotenv
from loguru import logger
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Confirm
from rich.syntax import Syntax
from rich.table import Table

from taskgate.approval import ApprovalGateway, StaticDecision, operator_identity
from taskgate.catalog import Scope, TaskCatalog, TaskDefinition
from taskgate.config_loader import TaskGateConfig, load_config, resolve_catalog_path
from taskgate.errors import TaskGateError, TaskPermissionError, ValidationError
from taskgate.event_bus import TaskEvent, bus
from taskgate.identity import BANNER, __codename__, __tagline__, __version__
from taskgate.tasks import TaskResult, executor_for
from taskgate.workspace import Workspace

# Load .env from current directory or home
load_dotenv()
load_dotenv(Path.home() / ".taskgate" / ".env")

app = typer.Typer(
    name="taskgate",
    help=f"{__codename__}: {__tagline__}",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()


def version_callback(value: bool):
    if value:
        console.print(f"{__codename__} v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
):
    pass


# ---------------------------------------------------------------------------
# Shared plumbing
# ---------------------------------------------------------------------------

def _print_banner():
    console.print(f"[bright_green]{BANNER}[/]")
    console.print(f"  [dim]v{__version__}: {__tagline__}[/]\n")


def _fail(error: TaskGateError) -> typer.Exit:
    console.print(f"[red]{escape(str(error))}[/]")
    code = 2 if isinstance(error, (ValidationError, TaskPermissionError)) else 1
    return typer.Exit(code)


def _load(repo: Path, catalog_path: Optional[Path] = None) -> tuple[Path, TaskGateConfig, TaskCatalog]:
    repo = repo.resolve()
    if not repo.is_dir():
        console.print(f"[red]Repository not found: {repo}[/]")
        raise typer.Exit(1)
    try:
        config = load_config(repo)
        catalog = TaskCatalog.load(catalog_path or resolve_catalog_path(config, repo))
    except TaskGateError as e:
        raise _fail(e) from e
    return repo, config, catalog


def _coerce(raw: str, kind: str) -> Any:
    """CLI values arrive as text; read them as the declared input type."""
    if kind == "string":
        return raw
    if kind == "array" and not raw.lstrip().startswith("["):
        return [part.strip() for part in raw.split(",") if part.strip()]
    try:
        return yaml.safe_load(raw)
    except yaml.YAMLError:
        return raw


def parse_inputs(
    definition: TaskDefinition,
    pairs: list[str],
    inputs_file: Optional[Path] = None,
) -> dict[str, Any]:
    inputs: dict[str, Any] = {}
    if inputs_file is not None:
        try:
            loaded = yaml.safe_load(inputs_file.read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ValidationError(f"Cannot read inputs file {inputs_file}: {e}") from e
        if not isinstance(loaded, dict):
            raise ValidationError(f"Inputs file {inputs_file} must contain a mapping")
        inputs.update(loaded)

    bad: list[str] = []
    for pair in pairs:
        key, sep, raw = pair.partition("=")
        key = key.strip()
        if not sep or not key:
            bad.append(f"expected key=value, got {pair!r}")
            continue
        spec = definition.input_spec(key)
        inputs[key] = _coerce(raw, spec.type) if spec is not None else raw
    if bad:
        raise ValidationError("Malformed --input", {"--input": bad})
    return inputs


def _render_event(event: TaskEvent) -> None:
    if event.event_type == "task.progress":
        console.print(f"  [dim]{event.payload.get('message', '')}[/]")
    elif event.event_type == "task.started":
        console.print(f"[cyan]Starting {event.task_id}[/]")
    elif event.event_type == "task.approved":
        console.print(f"[green]Approved {event.task_id}[/]")


def _render_result(result: TaskResult) -> None:
    color = "green" if result.success else "red"
    console.print(Panel(result.summary or "(no summary)", title=f"{result.task_id}", border_style=color))

    for title, items in (("Artifacts", result.artifacts), ("Reports", result.reports)):
        if items:
            console.print(f"[bold]{title}[/]")
            for item in items:
                console.print(f"  {item}")

    if result.findings:
        table = Table(title=f"Findings ({len(result.findings)})", border_style="dim")
        table.add_column("Severity/Risk")
        table.add_column("Location")
        table.add_column("Message")
        for f in result.findings[:50]:
            location = f.get("file") or f.get("file_path") or f.get("test") or "-"
            line = f.get("line") or f.get("start_line")
            if line:
                location = f"{location}:{line}"
            table.add_row(
                str(f.get("severity") or f.get("risk") or "-"),
                location,
                str(f.get("message") or f.get("title") or ""),
            )
        console.print(table)

    for diff in result.details.get("diffs", []):
        if diff["diff"]:
            console.print(Panel(
                Syntax(diff["diff"], "diff", word_wrap=True),
                title=f"{diff['file']} (+{diff['additions']} -{diff['deletions']})",
                border_style="dim",
            ))

    if result.next_steps:
        console.print("[bold]Next steps[/]")
        for step in result.next_steps:
            console.print(f"  - {step}")


# ---------------------------------------------------------------------------
# Catalog commands
# ---------------------------------------------------------------------------

@app.command()
def tasks(
    repo: Path = typer.Option(Path("."), "--repo", "-r", help="Path to the target repository"),
    category: Optional[str] = typer.Option(None, "--category", "-c", help="Only tasks in this category"),
    scope: Optional[str] = typer.Option(None, "--scope", "-s", help="Only tasks declaring this scope"),
):
    """List the task catalog."""
    _, _, catalog = _load(repo)

    if scope is not None:
        try:
            Scope(scope)
        except ValueError:
            console.print(f"[red]Unknown scope '{scope}'. Known: {', '.join(s.value for s in Scope)}[/]")
            raise typer.Exit(2)

    selected = catalog.all_tasks()
    if category:
        selected = [t for t in selected if t.category == category]
    if scope:
        selected = [t for t in selected if Scope(scope) in t.scopes]

    if not selected:
        console.print("[dim]No matching tasks.[/]")
        return

    table = Table(title=f"{__codename__} Tasks", border_style="cyan")
    table.add_column("ID", style="bold")
    table.add_column("Name")
    table.add_column("Category")
    table.add_column("Scopes")
    table.add_column("Approval")
    for task in selected:
        table.add_row(
            task.id,
            task.name,
            task.category,
            ", ".join(sorted(s.value for s in task.scopes)),
            "[yellow]required[/]" if task.requires_approval else "[dim]auto[/]",
        )
    console.print(table)


@app.command()
def show(
    task_id: str = typer.Argument(..., help="Catalog task id"),
    repo: Path = typer.Option(Path("."), "--repo", "-r", help="Path to the target repository"),
):
    """Show one task's inputs and safety flags."""
    _, _, catalog = _load(repo)
    try:
        task = catalog.get_task(task_id)
    except TaskGateError as e:
        raise _fail(e) from e

    flags = task.safety_flags
    console.print(Panel(
        "\n".join([
            f"[bold]{task.name}[/] ([cyan]{task.id}[/])",
            task.description,
            "",
            f"Category: {task.category}",
            "Scopes: " + ", ".join(sorted(s.value for s in task.scopes)),
            f"Requires approval: {flags.requires_approval}",
            "Allowed paths: " + (", ".join(flags.allowed_paths) or "(none)"),
            "Deny patterns: " + ", ".join([*flags.deny_patterns, *catalog.default_deny_patterns]),
        ]),
        border_style="cyan",
    ))

    if task.inputs:
        table = Table(title="Inputs", border_style="dim")
        table.add_column("Name", style="bold")
        table.add_column("Type")
        table.add_column("Required")
        table.add_column("Default")
        table.add_column("Pattern", style="dim")
        for spec in task.inputs:
            table.add_row(
                spec.name,
                spec.type,
                "yes" if spec.required else "",
                "" if spec.default is None else json.dumps(spec.default),
                spec.pattern or "",
            )
        console.print(table)


@app.command()
def validate(
    repo: Path = typer.Option(Path("."), "--repo", "-r", help="Path to the target repository"),
    catalog_file: Optional[Path] = typer.Option(None, "--catalog", help="Catalog file to check"),
):
    """Load and validate the task catalog."""
    _, _, catalog = _load(repo, catalog_file)
    console.print(f"[green]Catalog OK:[/] {len(catalog)} tasks ({catalog.source})")


# ---------------------------------------------------------------------------
# Run
# ---------------------------------------------------------------------------

@app.command()
def run(
    task_id: str = typer.Argument(..., help="Catalog task id"),
    input_pairs: List[str] = typer.Option([], "--input", "-i", help="Task input as key=value (repeatable)"),
    inputs_file: Optional[Path] = typer.Option(None, "--inputs-file", "-f", help="YAML/JSON file of inputs"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Approve without prompting"),
    repo: Path = typer.Option(Path("."), "--repo", "-r", help="Path to the target repository"),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Run a catalog task through validation, approval and audit."""
    _configure_logging(verbose)
    if not as_json:
        _print_banner()

    repo, config, catalog = _load(repo)
    operator = config.approval.operator or operator_identity()
    decision_source = StaticDecision(True, operator=operator, notes="--yes") if yes else None
    gateway = ApprovalGateway.for_catalog(catalog, repo, decision_source=decision_source, operator=operator)

    if not as_json:
        bus.subscribe(_render_event)
    try:
        inputs = parse_inputs(catalog.get_task(task_id), input_pairs, inputs_file)
        executor = executor_for(task_id)(catalog, gateway, Workspace(repo), config=config)
        result = executor.execute(inputs)
    except TaskGateError as e:
        raise _fail(e) from e
    finally:
        bus.unsubscribe(_render_event)

    if as_json:
        console.print_json(result.model_dump_json())
    else:
        _render_result(result)
    if not result.success:
        raise typer.Exit(1)


# ---------------------------------------------------------------------------
# Audit trail
# ---------------------------------------------------------------------------

def _gateway(repo: Path) -> ApprovalGateway:
    repo, _, catalog = _load(repo)
    return ApprovalGateway.for_catalog(catalog, repo)


@app.command("audit-log")
def audit_log(
    repo: Path = typer.Option(Path("."), "--repo", "-r", help="Path to the target repository"),
    limit: int = typer.Option(20, "--limit", "-n", help="Number of entries to show"),
    task: Optional[str] = typer.Option(None, "--task", "-t", help="Only this task id"),
    operator: Optional[str] = typer.Option(None, "--operator", "-o", help="Only this operator"),
):
    """Show approval decisions, newest first."""
    entries = _gateway(repo).read_audit_log(limit=limit, task_id=task, operator=operator)
    if not entries:
        console.print("[dim]Audit log is empty.[/]")
        return

    colors = {"APPROVED": "green", "AUTO_APPROVED": "cyan", "DENIED": "red"}
    table = Table(title=f"Audit Log (last {limit})", border_style="cyan")
    table.add_column("Time", style="dim")
    table.add_column("Task")
    table.add_column("Operator")
    table.add_column("Outcome")
    table.add_column("Paths")
    table.add_column("Notes", style="dim")
    for entry in entries:
        outcome = entry.outcome.value
        table.add_row(
            entry.timestamp[:19],
            entry.task_id,
            entry.operator,
            f"[{colors.get(outcome, 'white')}]{outcome}[/]",
            str(len(entry.affected_paths)),
            entry.notes or "",
        )
    console.print(table)


@app.command("audit-stats")
def audit_stats(
    repo: Path = typer.Option(Path("."), "--repo", "-r", help="Path to the target repository"),
):
    """Aggregate counts over the whole audit log."""
    stats = _gateway(repo).get_audit_stats()
    if stats.total_operations == 0:
        console.print("[dim]No audit entries yet.[/]")
        return

    table = Table(title=f"{__codename__} Audit Statistics", border_style="cyan")
    table.add_column("Metric")
    table.add_column("Value")
    table.add_row("Total operations", str(stats.total_operations))
    table.add_row("Approved", str(stats.approved))
    table.add_row("Auto-approved", str(stats.auto_approved))
    table.add_row("Denied", str(stats.denied))
    console.print(table)

    for title, counts in (("By Task", stats.by_task), ("By Operator", stats.by_operator)):
        breakdown = Table(title=title, border_style="dim")
        breakdown.add_column("Name")
        breakdown.add_column("Count")
        for name, cnt in sorted(counts.items(), key=lambda x: -x[1]):
            breakdown.add_row(name, str(cnt))
        console.print(breakdown)


@app.command("audit-purge")
def audit_purge(
    repo: Path = typer.Option(Path("."), "--repo", "-r", help="Path to the target repository"),
    before: Optional[str] = typer.Option(None, "--before", help="Drop entries older than this ISO date"),
    purge_all: bool = typer.Option(False, "--all", help="Remove every entry"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt"),
):
    """Retention purge. Destructive and never run implicitly."""
    if purge_all == (before is not None):
        console.print("[red]Specify exactly one of --before or --all[/]")
        raise typer.Exit(2)

    cutoff = None
    if before is not None:
        try:
            cutoff = datetime.fromisoformat(before)
        except ValueError:
            console.print(f"[red]Not an ISO date: {before}[/]")
            raise typer.Exit(2)

    gateway = _gateway(repo)
    what = "ALL audit entries" if purge_all else f"audit entries older than {before}"
    if not yes and not Confirm.ask(f"[bold red]Permanently remove {what}?[/]", console=console):
        console.print("[dim]Aborted.[/]")
        raise typer.Exit(1)

    removed = gateway.clear() if cutoff is None else gateway.purge(cutoff)
    logger.warning(f"[AUDIT] Purge by {operator_identity()}: {removed} entries removed")
    console.print(f"[green]Removed {removed} entries.[/]")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _configure_logging(verbose: bool) -> None:
    logger.remove()
    if verbose:
        logger.add(
            lambda msg: console.print(f"[dim]{msg}[/]", highlight=False),
            level="DEBUG",
            format="{time:HH:mm:ss} | {level:<7} | {message}",
        )
    else:
        logger.add(
            lambda msg: console.print(f"[dim]{msg}[/]", highlight=False),
            level="WARNING",
            format="{message}",
        )


# ---------------------------------------------------------------------------
# Entry
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    app()
