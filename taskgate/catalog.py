"""
TASKGATE Task Catalog

Loads the declarative task catalog (YAML or JSON), validates every task in
one pass, and answers the lookup and authorization questions the gateway
and the executors ask:

  - which tasks exist, by category / scope / approval requirement
  - may task X touch path Y (deny patterns first, then the allow-list)
  - are these inputs acceptable for task X

A catalog is an immutable value. Reloading builds a new instance.
"""

from __future__ import annotations

import json
import re
from enum import Enum
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Any, Literal, Mapping

import yaml
from loguru import logger
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from taskgate.errors import ConfigurationError, NotFoundError, ValidationError

DEFAULT_CATALOG_PATH = Path(__file__).parent / "catalog.yaml"


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

class Scope(str, Enum):
    """Closed vocabulary of side-effect capabilities a task may declare."""
    FILESYSTEM_READ = "filesystem:read"
    FILESYSTEM_WRITE = "filesystem:write"
    NETWORK_READ = "network:read"
    PROCESS_EXECUTE = "process:execute"
    REPORTS_WRITE = "reports:write"


InputType = Literal["string", "integer", "number", "boolean", "array", "object"]


class InputSpec(BaseModel):
    """One declared task parameter."""
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    name: str = Field(..., min_length=1)
    type: InputType = "string"
    required: bool = False
    pattern: str | None = Field(default=None, validation_alias=AliasChoices("pattern", "validation"))
    default: Any = None
    description: str = ""

    @field_validator("pattern")
    @classmethod
    def _pattern_compiles(cls, value: str | None) -> str | None:
        if value is None:
            return value
        try:
            re.compile(value)
        except re.error as e:
            raise ValueError(f"invalid validation pattern {value!r}: {e}") from e
        return value


class SafetyFlags(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    requires_approval: bool = Field(
        default=True, validation_alias=AliasChoices("requires_approval", "requiresApproval")
    )
    allowed_paths: tuple[str, ...] = Field(
        default=(), validation_alias=AliasChoices("allowed_paths", "allowedPaths")
    )
    deny_patterns: tuple[str, ...] = Field(
        default=(), validation_alias=AliasChoices("deny_patterns", "denyPatterns")
    )


class TaskDefinition(BaseModel):
    """A named, schema-described unit of automation work."""
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True, populate_by_name=True)

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1)
    scopes: frozenset[Scope] = Field(..., min_length=1)
    inputs: tuple[InputSpec, ...] = ()
    safety_flags: SafetyFlags = Field(
        default_factory=SafetyFlags,
        validation_alias=AliasChoices("safety_flags", "safetyFlags"),
    )

    @field_validator("inputs", mode="before")
    @classmethod
    def _inputs_as_list(cls, value: Any) -> Any:
        # Accept both `name: {type: ...}` maps and `- name: ...` lists
        if value is None:
            return ()
        if isinstance(value, Mapping):
            return [
                {"name": name, **(spec or {})} if isinstance(spec, Mapping) else {"name": name, "type": spec}
                for name, spec in value.items()
            ]
        return value

    @property
    def requires_approval(self) -> bool:
        return self.safety_flags.requires_approval

    def input_spec(self, name: str) -> InputSpec | None:
        for spec in self.inputs:
            if spec.name == name:
                return spec
        return None


class DefaultSafetyFlags(BaseModel):
    model_config = ConfigDict(frozen=True)

    deny_patterns: tuple[str, ...] = Field(
        default=(), validation_alias=AliasChoices("deny_patterns", "denyPatterns")
    )


class CatalogMetadata(BaseModel):
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    audit_log_path: str = Field(
        ..., min_length=1, validation_alias=AliasChoices("audit_log_path", "auditLogPath")
    )
    version: str = "1.0"
    default_safety_flags: DefaultSafetyFlags = Field(
        default_factory=DefaultSafetyFlags,
        validation_alias=AliasChoices("default_safety_flags", "defaultSafetyFlags"),
    )


# ---------------------------------------------------------------------------
# Path matching
# ---------------------------------------------------------------------------

def normalize_path(path: str | Path) -> str | None:
    """
    Normalize a project-relative path to `a/b/c` form.

    Returns None for absolute paths, empty paths, and paths that climb out of
    the project root. Such paths are never authorized.
    """
    raw = str(path).replace("\\", "/").strip()
    if not raw or raw.startswith("/") or re.match(r"^[A-Za-z]:", raw):
        return None

    parts: list[str] = []
    for part in raw.split("/"):
        if part in ("", "."):
            continue
        if part == "..":
            if not parts:
                return None
            parts.pop()
            continue
        parts.append(part)

    return "/".join(parts) or None


@lru_cache(maxsize=512)
def compile_glob(pattern: str) -> re.Pattern[str]:
    """
    Translate a path glob into a regex.

    `*` and `?` stay inside one path segment, `**` crosses segments, and a
    trailing `/` means "everything under this directory".
    """
    if pattern.endswith("/"):
        pattern += "**"

    out: list[str] = []
    i = 0
    while i < len(pattern):
        if pattern.startswith("**/", i):
            out.append("(?:.*/)?")
            i += 3
        elif pattern.startswith("**", i):
            out.append(".*")
            i += 2
        elif pattern[i] == "*":
            out.append("[^/]*")
            i += 1
        elif pattern[i] == "?":
            out.append("[^/]")
            i += 1
        else:
            out.append(re.escape(pattern[i]))
            i += 1

    return re.compile("".join(out))


def matches_glob(path: str, pattern: str) -> bool:
    return compile_glob(pattern).fullmatch(path) is not None


def matches_deny(path: str, pattern: str) -> bool:
    """
    Deny patterns without a slash match any single segment, so `.env` denies
    `config/.env` and `.git` denies everything below a `.git` directory.
    """
    if "/" not in pattern.rstrip("/"):
        segment = pattern.rstrip("/")
        return any(matches_glob(part, segment) for part in path.split("/"))
    return matches_glob(path, pattern)


# ---------------------------------------------------------------------------
# Input type checks
# ---------------------------------------------------------------------------

def _is_integer(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


_TYPE_CHECKS: dict[str, Any] = {
    "string": lambda v: isinstance(v, str),
    "integer": _is_integer,
    "number": lambda v: _is_integer(v) or isinstance(v, float),
    "boolean": lambda v: isinstance(v, bool),
    "array": lambda v: isinstance(v, (list, tuple)),
    "object": lambda v: isinstance(v, Mapping),
}


def _describe_pydantic_error(error: dict[str, Any]) -> str:
    loc = ".".join(str(part) for part in error.get("loc", ()))
    if error.get("type") == "missing":
        return f"missing required field '{loc}'"
    if loc:
        return f"{loc}: {error.get('msg')}"
    return str(error.get("msg"))


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

class TaskCatalog:
    """Immutable, validated set of task definitions plus catalog metadata."""

    def __init__(
        self,
        tasks: Mapping[str, TaskDefinition],
        metadata: CatalogMetadata,
        source: Path | None = None,
    ):
        self._tasks = MappingProxyType(dict(tasks))
        self._metadata = metadata
        self._source = source

    def __repr__(self) -> str:
        return f"TaskCatalog(tasks={len(self._tasks)}, source={self._source})"

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._tasks

    # -----------------------------------------------------------------------
    # Loading
    # -----------------------------------------------------------------------

    @classmethod
    def load(cls, source: str | Path | None = None) -> "TaskCatalog":
        """Parse and validate a catalog file. Defaults to the bundled catalog."""
        path = Path(source) if source is not None else DEFAULT_CATALOG_PATH
        if not path.is_file():
            raise ConfigurationError(f"Task catalog not found: {path}")

        try:
            text = path.read_text(encoding="utf-8")
            if path.suffix == ".json":
                document = json.loads(text)
            else:
                document = yaml.safe_load(text)
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigurationError(f"Task catalog unreadable: {path}: {e}") from e
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Task catalog is not valid YAML/JSON: {path}: {e}") from e

        catalog = cls.from_document(document, source=path)
        logger.info(f"[CATALOG] Loaded {len(catalog)} tasks from {path}")
        return catalog

    @classmethod
    def from_document(cls, document: Any, source: Path | None = None) -> "TaskCatalog":
        tasks, metadata = cls.validate(document)
        return cls(tasks, metadata, source=source)

    @staticmethod
    def validate(document: Any) -> tuple[dict[str, TaskDefinition], CatalogMetadata]:
        """
        Validate a raw catalog document.

        Every violation in every task is collected before raising, keyed by
        the task's catalog key (or `metadata`), so one run reports everything.
        """
        if not isinstance(document, Mapping):
            raise ConfigurationError("Task catalog must be a mapping with 'tasks' and 'metadata'")
        raw_tasks = document.get("tasks")
        if not isinstance(raw_tasks, Mapping):
            raise ConfigurationError("Task catalog has no 'tasks' mapping")

        errors: dict[str, list[str]] = {}
        tasks: dict[str, TaskDefinition] = {}

        metadata: CatalogMetadata | None = None
        try:
            metadata = CatalogMetadata.model_validate(document.get("metadata") or {})
        except PydanticValidationError as e:
            errors["metadata"] = [_describe_pydantic_error(err) for err in e.errors()]

        for key, raw in raw_tasks.items():
            key = str(key)
            problems: list[str] = []

            if not isinstance(raw, Mapping):
                errors[key] = ["task definition must be a mapping"]
                continue

            flags = raw.get("safety_flags", raw.get("safetyFlags"))
            if flags is not None and not isinstance(flags, Mapping):
                problems.append("safety_flags must be a mapping")
                raw = {k: v for k, v in raw.items() if k not in ("safety_flags", "safetyFlags")}

            raw_id = raw.get("id")
            if raw_id is not None and str(raw_id).strip() and str(raw_id).strip() != key:
                problems.append(f"id '{raw_id}' does not match its catalog key '{key}'")

            try:
                definition = TaskDefinition.model_validate(raw)
            except PydanticValidationError as e:
                problems.extend(_describe_pydantic_error(err) for err in e.errors())
            else:
                if not problems:
                    tasks[key] = definition

            if problems:
                errors[key] = problems

        if errors:
            raise ValidationError(
                f"Task catalog has {sum(len(v) for v in errors.values())} problem(s)",
                errors,
            )

        assert metadata is not None
        return tasks, metadata

    # -----------------------------------------------------------------------
    # Lookup
    # -----------------------------------------------------------------------

    @property
    def source(self) -> Path | None:
        return self._source

    @property
    def metadata(self) -> CatalogMetadata:
        return self._metadata

    @property
    def audit_log_path(self) -> str:
        return self._metadata.audit_log_path

    @property
    def default_deny_patterns(self) -> tuple[str, ...]:
        return self._metadata.default_safety_flags.deny_patterns

    def has_task(self, task_id: str) -> bool:
        return task_id in self._tasks

    def get_task(self, task_id: str) -> TaskDefinition:
        try:
            return self._tasks[task_id]
        except KeyError:
            raise NotFoundError(f"Unknown task: {task_id}", task_id=task_id) from None

    def task_ids(self) -> list[str]:
        return sorted(self._tasks)

    def all_tasks(self) -> list[TaskDefinition]:
        return [self._tasks[task_id] for task_id in self.task_ids()]

    def tasks_by_category(self, category: str) -> list[TaskDefinition]:
        return [t for t in self.all_tasks() if t.category == category]

    def tasks_by_scope(self, scope: Scope | str) -> list[TaskDefinition]:
        wanted = Scope(scope)
        return [t for t in self.all_tasks() if wanted in t.scopes]

    def tasks_requiring_approval(self) -> list[TaskDefinition]:
        return [t for t in self.all_tasks() if t.requires_approval]

    # -----------------------------------------------------------------------
    # Authorization
    # -----------------------------------------------------------------------

    def deny_patterns_for(self, task_id: str) -> tuple[str, ...]:
        task = self.get_task(task_id)
        return (*task.safety_flags.deny_patterns, *self.default_deny_patterns)

    def is_path_allowed(self, task_id: str, path: str | Path) -> bool:
        """Deny patterns win; otherwise the path must match an allow pattern."""
        task = self.get_task(task_id)
        normalized = normalize_path(path)
        if normalized is None:
            logger.debug(f"[CATALOG] {task_id}: rejected non-relative path {path!r}")
            return False

        for pattern in self.deny_patterns_for(task_id):
            if matches_deny(normalized, pattern):
                logger.debug(f"[CATALOG] {task_id}: {normalized} denied by {pattern!r}")
                return False

        return any(matches_glob(normalized, p) for p in task.safety_flags.allowed_paths)

    # -----------------------------------------------------------------------
    # Inputs
    # -----------------------------------------------------------------------

    def apply_defaults(self, task_id: str, inputs: Mapping[str, Any]) -> dict[str, Any]:
        """Return a copy of inputs with declared defaults filled in."""
        task = self.get_task(task_id)
        resolved = dict(inputs)
        for spec in task.inputs:
            if resolved.get(spec.name) is None and spec.default is not None:
                resolved[spec.name] = spec.default
        return resolved

    def validate_inputs(self, task_id: str, inputs: Mapping[str, Any]) -> None:
        """Check presence, type and pattern of every declared input. Aggregates all failures."""
        task = self.get_task(task_id)
        errors: dict[str, list[str]] = {}

        for spec in task.inputs:
            value = inputs.get(spec.name)
            if value is None:
                if spec.required:
                    errors.setdefault(spec.name, []).append("is required")
                continue

            if not _TYPE_CHECKS[spec.type](value):
                errors.setdefault(spec.name, []).append(
                    f"expected type {spec.type}, got {type(value).__name__}"
                )
                continue

            if spec.pattern is not None and isinstance(value, str):
                if not re.search(spec.pattern, value):
                    errors.setdefault(spec.name, []).append(
                        f"value {value!r} does not match pattern {spec.pattern!r}"
                    )

        declared = {spec.name for spec in task.inputs}
        for name in sorted(set(inputs) - declared):
            errors.setdefault(name, []).append("is not a declared input of this task")

        if errors:
            raise ValidationError(f"Invalid inputs for task '{task_id}'", errors, task_id=task_id)

