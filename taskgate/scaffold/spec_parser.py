"""
TASKGATE Scaffold: specification parser

Turns an external API description into a Specification: a dialect tag plus
a `methods` map. Three input shapes are understood:

  openapi   `components.schemas.<X>Request.properties.method.enum[0]`
  openrpc   top-level `openrpc` key with a `methods` list
  json-rpc  a `methods` list or map (or bare `components.schemas`)

Method names are checked here, once, so templates only ever see identifiers.
"""

from __future__ import annotations

import json
import re
from enum import Enum
from pathlib import Path
from typing import Any, Mapping

import requests
import yaml
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from taskgate.errors import NotFoundError, ValidationError
from taskgate.fetch import HttpSpecFetcher, SpecFetcher

METHOD_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class SpecDialect(str, Enum):
    OPENAPI = "openapi"
    OPENRPC = "openrpc"
    JSON_RPC = "json-rpc"


class MethodInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    params: tuple[str, ...] = ()
    summary: str = ""
    request_schema: str | None = None
    response_schema: str | None = None


class Specification(BaseModel):
    """A parsed external API description."""
    model_config = ConfigDict(frozen=True)

    dialect: SpecDialect
    version: str = ""
    title: str = ""
    methods: dict[str, MethodInfo] = Field(default_factory=dict)

    def has(self, method: str) -> bool:
        return method in self.methods

    def first_available(self, candidates: tuple[str, ...]) -> str | None:
        for candidate in candidates:
            if candidate in self.methods:
                return candidate
        return None

    @property
    def method_names(self) -> list[str]:
        return sorted(self.methods)


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

def is_remote(locator: str) -> bool:
    return bool(re.match(r"^https?://", locator, re.IGNORECASE))


def read_source(
    locator: str | Path,
    fetcher: SpecFetcher | None = None,
    auth_token: str | None = None,
    base_dir: Path | None = None,
) -> str:
    text_locator = str(locator)
    if is_remote(text_locator):
        fetcher = fetcher or HttpSpecFetcher()
        try:
            return fetcher.fetch(text_locator, auth_token=auth_token)
        except requests.RequestException as e:
            raise ValidationError(f"Specification unreachable: {text_locator}: {e}") from e

    path = Path(text_locator)
    if not path.is_absolute() and base_dir is not None:
        path = base_dir / path
    if not path.is_file():
        raise NotFoundError(f"Specification file not found: {path}", path=str(path))
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ValidationError(f"Specification unreadable: {path}: {e}") from e


def load_document(text: str, locator: str = "<inline>") -> Any:
    """JSON first, YAML as the fallback."""
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ValidationError(f"Specification is neither JSON nor YAML: {locator}: {e}") from e


def parse_specification(
    source: str | Path | Mapping[str, Any],
    fetcher: SpecFetcher | None = None,
    auth_token: str | None = None,
    base_dir: Path | None = None,
) -> Specification:
    """Locate, load and normalize a specification."""
    if isinstance(source, Mapping):
        return normalize_specification(source)

    text = read_source(source, fetcher=fetcher, auth_token=auth_token, base_dir=base_dir)
    spec = normalize_specification(load_document(text, str(source)), str(source))
    logger.info(f"[SCAFFOLD] Parsed {spec.dialect.value} spec with {len(spec.methods)} methods from {source}")
    return spec


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------

def _title(document: Mapping[str, Any]) -> str:
    info = document.get("info")
    if isinstance(info, Mapping):
        return str(info.get("title") or "")
    return ""


def _methods_from_schemas(document: Mapping[str, Any]) -> list[MethodInfo]:
    components = document.get("components")
    schemas = components.get("schemas") if isinstance(components, Mapping) else None
    if not isinstance(schemas, Mapping):
        return []

    methods = []
    for schema_name, schema in schemas.items():
        if not str(schema_name).endswith("Request") or not isinstance(schema, Mapping):
            continue
        properties = schema.get("properties")
        method = properties.get("method") if isinstance(properties, Mapping) else None
        enum = method.get("enum") if isinstance(method, Mapping) else None
        if not isinstance(enum, list) or not enum:
            continue
        params = properties.get("params")
        param_names: tuple[str, ...] = ()
        if isinstance(params, Mapping) and isinstance(params.get("items"), list):
            param_names = tuple(
                str(item.get("title") or item.get("name") or f"param{i}")
                for i, item in enumerate(params["items"])
                if isinstance(item, Mapping)
            )
        methods.append(MethodInfo(
            name=str(enum[0]),
            params=param_names,
            request_schema=str(schema_name),
            response_schema=str(schema_name)[: -len("Request")] + "Response",
        ))
    return methods


def _method_from_entry(entry: Any) -> MethodInfo | None:
    if isinstance(entry, str):
        return MethodInfo(name=entry)
    if not isinstance(entry, Mapping) or "name" not in entry:
        return None
    params = entry.get("params") or ()
    names = tuple(
        str(p.get("name")) if isinstance(p, Mapping) else str(p)
        for p in params
    ) if isinstance(params, (list, tuple)) else ()
    return MethodInfo(
        name=str(entry["name"]),
        params=names,
        summary=str(entry.get("summary") or entry.get("description") or ""),
    )


def _methods_from_list(raw: Any) -> tuple[list[MethodInfo], list[str]]:
    methods: list[MethodInfo] = []
    problems: list[str] = []
    if isinstance(raw, Mapping):
        entries = [
            {"name": name, **meta} if isinstance(meta, Mapping) else {"name": name}
            for name, meta in raw.items()
        ]
    elif isinstance(raw, list):
        entries = raw
    else:
        return methods, ["'methods' must be a list or a mapping"]

    for index, entry in enumerate(entries):
        method = _method_from_entry(entry)
        if method is None:
            problems.append(f"entry {index} has no method name")
        else:
            methods.append(method)
    return methods, problems


def normalize_specification(document: Any, locator: str = "<inline>") -> Specification:
    if not isinstance(document, Mapping):
        raise ValidationError(f"Specification must be a JSON/YAML object: {locator}")

    problems: list[str] = []
    if "openapi" in document:
        dialect = SpecDialect.OPENAPI
        version = str(document.get("openapi"))
        methods = _methods_from_schemas(document)
    elif "openrpc" in document:
        dialect = SpecDialect.OPENRPC
        version = str(document.get("openrpc"))
        methods, problems = _methods_from_list(document.get("methods") or [])
    elif "methods" in document:
        dialect = SpecDialect.JSON_RPC
        version = str(document.get("jsonrpc") or "2.0")
        methods, problems = _methods_from_list(document.get("methods"))
    elif "components" in document:
        dialect = SpecDialect.JSON_RPC
        version = str(document.get("jsonrpc") or "2.0")
        methods = _methods_from_schemas(document)
    else:
        raise ValidationError(
            f"Specification format not recognized: {locator}. Expected OpenAPI, OpenRPC or JSON-RPC."
        )

    normalized: dict[str, MethodInfo] = {}
    for method in methods:
        if not METHOD_NAME.match(method.name):
            problems.append(f"{method.name!r} is not a valid method identifier")
            continue
        normalized.setdefault(method.name, method)

    if problems:
        raise ValidationError(f"Malformed specification: {locator}", {"methods": problems})

    if not normalized:
        logger.warning(f"[SCAFFOLD] Specification {locator} declares no RPC methods")

    return Specification(
        dialect=dialect,
        version=version,
        title=_title(document),
        methods=dict(sorted(normalized.items())),
    )
