"""
TASKGATE Scaffold: Driver Scaffolder

Given a parsed Specification and a client name, renders three artifacts:

  - the client class  (src/<package>/drivers/<snake>_driver.py)
  - its test module   (tests/drivers/test_<snake>_driver.py)
  - a reference page  (docs/drivers/<snake>.md)

Rendering is pure: same specification + options in, byte-identical text
out. Nothing here touches the filesystem; the create-client task writes
the artifacts through a granted Workspace.
"""

from __future__ import annotations

import re
from enum import Enum
from string import Template

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, field_validator

from taskgate.errors import ValidationError
from taskgate.scaffold import templates
from taskgate.scaffold.spec_parser import Specification

CLIENT_NAME = re.compile(r"^[A-Z][A-Za-z0-9]*$")


class NetworkKind(str, Enum):
    EVM = "evm"
    NON_EVM = "non-evm"


class ArtifactKind(str, Enum):
    CLIENT_CLASS = "client-class"
    TEST_SUITE = "test-suite"
    DOCUMENTATION = "documentation"


class GeneratedArtifact(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: ArtifactKind
    path: str
    content: str


class ScaffoldOptions(BaseModel):
    """Where generated files land and the constants baked into them."""
    model_config = ConfigDict(frozen=True)

    package: str = "chainkit"
    src_root: str = "src"
    tests_dir: str = "tests/drivers"
    docs_dir: str = "docs/drivers"
    native_currency: str | None = Field(default=None, pattern=r"^[A-Z0-9]{2,10}$")
    decimals: int | None = Field(default=None, ge=0, le=36)
    default_endpoint: str = Field(default="", pattern=r"^(?:https?://[^\s\"'\\]+)?$")

    @field_validator("package")
    @classmethod
    def _dotted_identifier(cls, value: str) -> str:
        if not all(part.isidentifier() for part in value.split(".")):
            raise ValueError(f"'{value}' is not a dotted Python package name")
        return value


def snake_case(name: str) -> str:
    """`BinanceSmartChain` -> `binance_smart_chain`."""
    return re.sub(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])", "_", name).lower()


def default_decimals(kind: NetworkKind) -> int:
    return 18 if kind is NetworkKind.EVM else 9


# ---------------------------------------------------------------------------
# Operation resolution
# ---------------------------------------------------------------------------

def resolve_operations(spec: Specification, kind: NetworkKind) -> dict[str, str | None]:
    """operation -> backing RPC method, or None for a placeholder."""
    resolved: dict[str, str | None] = {}
    for operation in templates.OPERATION_ORDER:
        if operation == "send_transaction":
            resolved[operation] = None
            continue
        candidates = templates.RPC_CANDIDATES[operation][kind.value]
        resolved[operation] = spec.first_available(candidates)
    return resolved


class DriverScaffolder:
    def __init__(self, options: ScaffoldOptions | None = None):
        self.options = options or ScaffoldOptions()

    # -----------------------------------------------------------------------
    # Naming
    # -----------------------------------------------------------------------

    @staticmethod
    def check_name(name: str) -> str:
        if not CLIENT_NAME.match(name or ""):
            raise ValidationError(
                "Invalid client name",
                {"name": [f"'{name}' must be PascalCase letters and digits, starting with a capital"]},
            )
        return name

    def artifact_paths(self, name: str) -> dict[ArtifactKind, str]:
        snake = snake_case(self.check_name(name))
        package_dir = self.options.package.replace(".", "/")
        return {
            ArtifactKind.CLIENT_CLASS: f"{self.options.src_root}/{package_dir}/drivers/{snake}_driver.py",
            ArtifactKind.TEST_SUITE: f"{self.options.tests_dir}/test_{snake}_driver.py",
            ArtifactKind.DOCUMENTATION: f"{self.options.docs_dir}/{snake}.md",
        }

    def _context(self, name: str, spec: Specification, kind: NetworkKind) -> dict[str, str]:
        decimals = self.options.decimals
        if decimals is None:
            decimals = default_decimals(kind)
        return {
            "display": name,
            "class_name": f"{name}Driver",
            "module": f"{snake_case(name)}_driver",
            "package": self.options.package,
            "dialect": spec.dialect.value,
            "spec_version": spec.version,
            "method_count": str(len(spec.methods)),
            "network_kind": kind.value,
            "currency": self.options.native_currency or name[:3].upper(),
            "decimals": str(decimals),
            "endpoint": self.options.default_endpoint,
        }

    # -----------------------------------------------------------------------
    # Generators
    # -----------------------------------------------------------------------

    def generate_driver_class(self, name: str, spec: Specification, kind: NetworkKind) -> str:
        self.check_name(name)
        context = self._context(name, spec, kind)
        resolved = resolve_operations(spec, kind)

        blocks = []
        for operation, rpc_method in resolved.items():
            if operation == "send_transaction":
                body = templates.SEND_TRANSACTION
            elif rpc_method is None:
                body = templates.PLACEHOLDER_BODIES[operation]
            else:
                body = templates.OPERATION_BODIES[rpc_method]
            blocks.append(Template(body).substitute(context))

        helpers = templates.EVM_HELPERS if kind is NetworkKind.EVM else ""
        return templates.DRIVER_MODULE.substitute(context, operations="".join(blocks), helpers=helpers)

    def generate_test_class(self, name: str, spec: Specification, kind: NetworkKind) -> str:
        self.check_name(name)
        context = self._context(name, spec, kind)
        resolved = resolve_operations(spec, kind)

        tests = []
        for operation, rpc_method in resolved.items():
            if operation == "send_transaction":
                continue
            if rpc_method is None:
                tests.append(templates.PLACEHOLDER_TESTS[operation])
            else:
                tests.append(templates.OPERATION_TESTS[rpc_method])

        connect_test = (
            templates.CONNECT_USES_DEFAULT_ENDPOINT
            if self.options.default_endpoint
            else templates.CONNECT_REQUIRES_ENDPOINT
        )
        return templates.TEST_MODULE.substitute(
            context,
            connect_test=connect_test,
            operation_tests="".join("\n" + test for test in tests),
        )

    def generate_documentation(self, name: str, spec: Specification, kind: NetworkKind) -> str:
        self.check_name(name)
        context = self._context(name, spec, kind)
        resolved = resolve_operations(spec, kind)
        mapping = templates.method_mapping()

        usage = []
        rows = []
        for operation, rpc_method in resolved.items():
            usage.append(f"### {operation}\n\n```python\n{templates.USAGE_SNIPPETS[operation]}\n```\n")
            rows.append((operation, rpc_method, templates.operation_status(operation, rpc_method)))

        methods = []
        for method in spec.method_names:
            operation = mapping.get(method)
            line = f"- `{method}`"
            if operation and resolved.get(operation) == method:
                line += f" -> `{operation}`"
            summary = spec.methods[method].summary
            if summary:
                line += f": {templates.inline_text(summary)}"
            methods.append(line)

        endpoint = self.options.default_endpoint
        return templates.DOCS_PAGE.substitute(
            context,
            endpoint_example=endpoint or "https://rpc.example.org",
            endpoint_note=f" unless the default `{endpoint}` suits" if endpoint else "",
            usage="\n".join(usage),
            status_block=templates.render_status_block(rows),
            rpc_methods="\n".join(methods) if methods else "_The specification declares no methods._",
        )

    def generate_artifacts(self, name: str, spec: Specification, kind: NetworkKind) -> list[GeneratedArtifact]:
        paths = self.artifact_paths(name)
        artifacts = [
            GeneratedArtifact(
                kind=ArtifactKind.CLIENT_CLASS,
                path=paths[ArtifactKind.CLIENT_CLASS],
                content=self.generate_driver_class(name, spec, kind),
            ),
            GeneratedArtifact(
                kind=ArtifactKind.TEST_SUITE,
                path=paths[ArtifactKind.TEST_SUITE],
                content=self.generate_test_class(name, spec, kind),
            ),
            GeneratedArtifact(
                kind=ArtifactKind.DOCUMENTATION,
                path=paths[ArtifactKind.DOCUMENTATION],
                content=self.generate_documentation(name, spec, kind),
            ),
        ]
        implemented = sum(1 for m in resolve_operations(spec, kind).values() if m)
        logger.info(
            f"[SCAFFOLD] Rendered {name}Driver ({kind.value}): "
            f"{implemented}/{len(templates.OPERATION_ORDER)} operations backed by RPC"
        )
        return artifacts
