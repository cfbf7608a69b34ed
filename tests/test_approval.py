import io

import pytest

from taskgate.approval import (
    ApprovalGateway,
    ApprovalRequest,
    ApprovalState,
    StaticDecision,
    operator_identity,
)
from taskgate.audit_logger import AuditLogger, Outcome
from taskgate.catalog import TaskCatalog
from taskgate.errors import TaskPermissionError


def _catalog(requires_approval: bool) -> TaskCatalog:
    return TaskCatalog.from_document({
        "metadata": {"audit_log_path": "audit.log"},
        "tasks": {
            "t1": {
                "id": "t1",
                "name": "T1",
                "description": "test task",
                "category": "test",
                "scopes": ["filesystem:write"],
                "safety_flags": {
                    "requires_approval": requires_approval,
                    "allowed_paths": ["docs/**"],
                    "deny_patterns": ["docs/private/**"],
                },
            }
        },
    })


class CountingDecision(StaticDecision):
    def __init__(self, approved):
        super().__init__(approved)
        self.calls = 0

    def decide(self, request):
        self.calls += 1
        return super().decide(request)


class ExplodingDecision:
    def decide(self, request):
        raise RuntimeError("prompt crashed")


def test_approved_decision_is_recorded(tmp_path):
    catalog = _catalog(requires_approval=True)
    gateway = ApprovalGateway.for_catalog(catalog, tmp_path, decision_source=StaticDecision(True))

    assert gateway.request_approval("t1", catalog.get_task("t1"), {}, ["docs/a.md"]) is True

    entries = gateway.read_audit_log()
    assert len(entries) == 1
    assert entries[0].outcome is Outcome.APPROVED
    assert entries[0].affected_paths == ("docs/a.md",)
    assert (tmp_path / "audit.log").is_file()


@pytest.mark.parametrize("approved", [True, False])
def test_result_equals_decision(tmp_path, approved):
    catalog = _catalog(requires_approval=True)
    gateway = ApprovalGateway.for_catalog(catalog, tmp_path, decision_source=StaticDecision(approved))

    for _ in range(3):
        assert gateway.request_approval("t1", catalog.get_task("t1"), {}, []) is approved

    entries = gateway.read_audit_log()
    assert len(entries) == 3
    expected = Outcome.APPROVED if approved else Outcome.DENIED
    assert all(e.outcome is expected for e in entries)


def test_auto_approval_skips_the_decision_source(tmp_path):
    catalog = _catalog(requires_approval=False)
    source = CountingDecision(False)
    gateway = ApprovalGateway.for_catalog(catalog, tmp_path, decision_source=source)

    assert gateway.request_approval("t1", catalog.get_task("t1"), {}, []) is True
    assert source.calls == 0

    entries = gateway.read_audit_log()
    assert [e.outcome for e in entries] == [Outcome.AUTO_APPROVED]
    assert gateway.last_request.history == [ApprovalState.REQUESTED, ApprovalState.AUTO_APPROVED]


def test_failing_decision_source_denies(tmp_path):
    catalog = _catalog(requires_approval=True)
    gateway = ApprovalGateway.for_catalog(catalog, tmp_path, decision_source=ExplodingDecision())

    assert gateway.request_approval("t1", catalog.get_task("t1"), {}, []) is False
    assert gateway.read_audit_log()[0].outcome is Outcome.DENIED


def test_no_operator_means_denied(tmp_path, monkeypatch):
    monkeypatch.setattr("sys.stdin", io.StringIO(""))
    catalog = _catalog(requires_approval=True)
    gateway = ApprovalGateway.for_catalog(catalog, tmp_path)

    assert gateway.request_approval("t1", catalog.get_task("t1"), {}, []) is False
    entry = gateway.read_audit_log()[0]
    assert entry.operator == "system"
    assert entry.notes == "No operator available"


def test_inputs_are_redacted_in_the_log(tmp_path):
    catalog = _catalog(requires_approval=True)
    gateway = ApprovalGateway.for_catalog(catalog, tmp_path, decision_source=StaticDecision(True))
    inputs = {"auth_token": "s3cr3t-value", "note": "call me at ops@example.com"}

    gateway.request_approval("t1", catalog.get_task("t1"), inputs, [])

    logged = gateway.read_audit_log()[0].inputs
    assert logged["auth_token"] == "[REDACTED]"
    assert "ops@example.com" not in logged["note"]
    assert inputs["auth_token"] == "s3cr3t-value"
    assert "s3cr3t" not in (tmp_path / "audit.log").read_text(encoding="utf-8")


def test_validate_paths_fails_closed(tmp_path):
    catalog = _catalog(requires_approval=True)
    gateway = ApprovalGateway(AuditLogger(tmp_path / "audit.log"))

    grant = gateway.validate_paths(catalog, "t1", ["docs/a.md", "./docs/b.md"])
    assert grant.covers("docs/b.md")
    assert not grant.covers("docs/c.md")

    with pytest.raises(TaskPermissionError) as exc:
        gateway.validate_paths(catalog, "t1", ["docs/a.md", "docs/private/keys.md"])
    assert exc.value.path == "docs/private/keys.md"
    assert exc.value.task_id == "t1"
    assert isinstance(exc.value, PermissionError)
    assert gateway.read_audit_log() == []


def test_illegal_transition(catalog):
    request = ApprovalRequest("create-client", catalog.get_task("create-client"), {}, ())
    with pytest.raises(RuntimeError):
        request.transition(ApprovalState.APPROVED)


def test_operator_identity_prefers_env(monkeypatch):
    monkeypatch.setenv("TASKGATE_OPERATOR", "ci-bot")
    assert operator_identity() == "ci-bot"
    monkeypatch.delenv("TASKGATE_OPERATOR")
    assert "@" in operator_identity()
