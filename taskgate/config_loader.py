"""
Configuration loader for TASKGATE.
Merges defaults with per-repo .taskgate/config.yaml overrides.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from taskgate.errors import ConfigurationError


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

class CatalogConfig(BaseModel):
    path: str | None = None


class ApprovalConfig(BaseModel):
    operator: str | None = None


class ScaffoldConfig(BaseModel):
    package: str = "chainkit"
    src_root: str = "src"
    tests_dir: str = "tests/drivers"
    docs_dir: str = "docs/drivers"


class AnalysisConfig(BaseModel):
    scan_paths: list[str] = Field(default_factory=lambda: ["src/", "tools/"])
    exclude: list[str] = Field(default_factory=lambda: ["*/vendor/*", "*/tests/*", "*/node_modules/*"])
    workers: int = Field(default=4, ge=1)
    complexity_threshold: int = Field(default=10, ge=1)
    min_comment_length: int = Field(default=20, ge=0)


class TestingConfig(BaseModel):
    command: list[str] = Field(default_factory=lambda: ["python", "-m", "pytest"])
    timeout: int = Field(default=300, ge=1)
    unit_dir: str = "tests/drivers"
    integration_dir: str = "tests/integration"


class SecurityConfig(BaseModel):
    scan_paths: list[str] = Field(default_factory=lambda: ["src/", "tools/"])
    config_paths: list[str] = Field(default_factory=lambda: ["config/", ".env.example", "pyproject.toml"])
    dependency_command: list[str] = Field(default_factory=lambda: ["pip-audit", "--format", "json"])
    timeout: int = Field(default=300, ge=1)


class ReportsConfig(BaseModel):
    dir: str = "storage/reports"


class TaskGateConfig(BaseModel):
    catalog: CatalogConfig = Field(default_factory=CatalogConfig)
    approval: ApprovalConfig = Field(default_factory=ApprovalConfig)
    scaffold: ScaffoldConfig = Field(default_factory=ScaffoldConfig)
    analysis: AnalysisConfig = Field(default_factory=AnalysisConfig)
    testing: TestingConfig = Field(default_factory=TestingConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    reports: ReportsConfig = Field(default_factory=ReportsConfig)


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "config.yaml"


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge override into base."""
    merged = base.copy()
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")
    return data


def load_config(repo_path: Path | None = None) -> TaskGateConfig:
    """
    Load config by merging:
      1. Built-in defaults (taskgate/config.yaml)
      2. Repo-level overrides (<repo>/.taskgate/config.yaml)
      3. Environment variable overrides (TASKGATE_CATALOG, TASKGATE_OPERATOR)
    """
    # 1. Built-in defaults
    base = _read_yaml(_DEFAULT_CONFIG_PATH)

    # 2. Repo overrides
    if repo_path:
        repo_config = repo_path / ".taskgate" / "config.yaml"
        if repo_config.exists():
            base = _deep_merge(base, _read_yaml(repo_config))

    # 3. Env overrides
    env: dict[str, Any] = {}
    if os.environ.get("TASKGATE_CATALOG"):
        env["catalog"] = {"path": os.environ["TASKGATE_CATALOG"]}
    if os.environ.get("TASKGATE_OPERATOR"):
        env["approval"] = {"operator": os.environ["TASKGATE_OPERATOR"]}
    base = _deep_merge(base, env)

    try:
        return TaskGateConfig(**base)
    except PydanticValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


def resolve_catalog_path(config: TaskGateConfig, repo_path: Path) -> Path | None:
    """Catalog path from config, relative paths taken from the repo root. None means bundled."""
    if not config.catalog.path:
        return None
    path = Path(config.catalog.path).expanduser()
    return path if path.is_absolute() else repo_path / path
