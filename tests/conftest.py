import dataclasses
import json
from pathlib import Path

import pytest
import requests

from taskgate.approval import ApprovalGateway, StaticDecision
from taskgate.catalog import TaskCatalog
from taskgate.event_bus import EventBus
from taskgate.runner import ProcessResult
from taskgate.workspace import Workspace


class FakeRunner:
    """Records commands instead of spawning them."""

    def __init__(self, result: ProcessResult | None = None, installed=("pip-audit",)):
        self.result = result or ProcessResult(command=[], returncode=0)
        self.installed = set(installed)
        self.calls: list[dict] = []

    def run(self, command, cwd, timeout=60, env=None):
        self.calls.append({"command": list(command), "cwd": cwd, "timeout": timeout})
        return dataclasses.replace(self.result, command=list(command))

    def which(self, name):
        return f"/usr/bin/{name}" if name in self.installed else None


class FakeFetcher:
    def __init__(self, documents: dict[str, str] | None = None):
        self.documents = documents or {}
        self.calls: list[tuple[str, str | None]] = []

    def fetch(self, locator, auth_token=None):
        self.calls.append((locator, auth_token))
        if locator not in self.documents:
            raise requests.ConnectionError(f"connection refused: {locator}")
        return self.documents[locator]


EVM_SPEC = {
    "openrpc": "1.2.6",
    "info": {"title": "Polygon JSON-RPC", "version": "1.0"},
    "methods": [
        {"name": "eth_getBalance", "params": [{"name": "address"}, {"name": "block"}]},
        {"name": "eth_getTransactionByHash", "params": [{"name": "hash"}]},
        {"name": "eth_getBlockByNumber", "summary": "Block by number"},
        {"name": "eth_estimateGas"},
        {"name": "eth_call"},
        {"name": "eth_chainId"},
    ],
}

PARTIAL_SPEC = {
    "jsonrpc": "2.0",
    "methods": {"getBalance": {"summary": "Lamport balance"}},
}


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    monkeypatch.delenv("TASKGATE_CATALOG", raising=False)
    monkeypatch.setenv("TASKGATE_OPERATOR", "tester@ci")


@pytest.fixture
def catalog() -> TaskCatalog:
    return TaskCatalog.load()


@pytest.fixture
def workspace(tmp_path: Path) -> Workspace:
    return Workspace(tmp_path)


@pytest.fixture
def fake_runner():
    return FakeRunner


@pytest.fixture
def fake_fetcher():
    return FakeFetcher


@pytest.fixture
def spec_file(tmp_path: Path):
    def _write(document: dict, name: str = "specs/polygon.json") -> str:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(document), encoding="utf-8")
        return name
    return _write


@pytest.fixture
def make_task(catalog, tmp_path: Path):
    """Build an executor against tmp_path with a fixed approval answer."""
    def _make(cls, approved=True, runner=None, fetcher=None, config=None, events=None):
        gateway = ApprovalGateway.for_catalog(
            catalog, tmp_path, decision_source=StaticDecision(approved, operator="reviewer")
        )
        return cls(
            catalog,
            gateway,
            Workspace(tmp_path),
            config=config,
            runner=runner or FakeRunner(),
            fetcher=fetcher or FakeFetcher(),
            events=events or EventBus(),
        )
    return _make
