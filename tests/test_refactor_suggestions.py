import json

import pytest

from taskgate.audit_logger import Outcome
from taskgate.config_loader import TaskGateConfig
from taskgate.errors import ValidationError
from taskgate.tasks import RefactorSuggestionsTask
from taskgate.tasks.refactor_suggestions import removal_patch

HANDLER = """\
def handle(a, b, c):
    if a and b:
        return 1
    elif c or a:
        return 2
    for item in c:
        pass
    while b:
        break
    return 0
"""

BALANCE = """\
def balance(account):
    # result = compute_value(account, 'latest')
    # if result:
    #     return result
    return 0
"""

RISKY = "def route(x):\n" + "".join(f"    if x == {i}:\n        return {i}\n" for i in range(16)) + "    return -1\n"


@pytest.fixture
def project(tmp_path):
    src = tmp_path / "src"
    src.mkdir()
    (src / "handler.py").write_text(HANDLER, encoding="utf-8")
    (src / "balance.py").write_text(BALANCE, encoding="utf-8")
    (src / "risky.py").write_text(RISKY, encoding="utf-8")
    return tmp_path


def test_full_analysis_writes_reports(make_task, project):
    task = make_task(RefactorSuggestionsTask)

    result = task.execute({"complexity_threshold": 5, "scan_paths": ["src/"]})

    assert result.success
    assert [(f["file_path"], f["type"], f["risk"]) for f in result.findings] == [
        ("src/balance.py", "unused_code", "low"),
        ("src/handler.py", "complexity", "low"),
        ("src/risky.py", "complexity", "medium"),
    ]
    assert result.summary == "3 suggestion(s) in 3 file(s): 0 high, 1 medium, 2 low"
    assert result.artifacts == []

    md, js = result.reports
    assert md.startswith("storage/reports/refactor/") and md.endswith(".md")
    assert (project / md).read_text(encoding="utf-8").startswith("# Refactoring Suggestions")
    data = json.loads((project / js).read_text(encoding="utf-8"))
    assert data["summary"]["by_type"] == {"complexity": 2, "unused_code": 1}
    assert [e.outcome for e in task.gateway.read_audit_log()] == [Outcome.AUTO_APPROVED]


def test_risk_threshold_filters(make_task, project):
    result = make_task(RefactorSuggestionsTask).execute(
        {"complexity_threshold": 5, "scan_paths": ["src/"], "risk_threshold": "medium"}
    )
    assert [f["file_path"] for f in result.findings] == ["src/risky.py"]
    assert result.findings[0]["current_metric"] == 17


def test_complexity_only_uses_threshold(make_task, project):
    result = make_task(RefactorSuggestionsTask).execute({"analysis_type": "complexity", "scan_paths": ["src/"]})
    assert [f["file_path"] for f in result.findings] == ["src/risky.py"]


def test_threshold_and_paths_default_to_config(make_task, project):
    config = TaskGateConfig.model_validate({"analysis": {"complexity_threshold": 5, "scan_paths": ["src/"]}})
    result = make_task(RefactorSuggestionsTask, config=config).execute({"analysis_type": "complexity"})

    assert [(f["file_path"], f["current_metric"]) for f in result.findings] == [
        ("src/handler.py", 7),
        ("src/risky.py", 17),
    ]


def test_generate_patches(make_task, project):
    result = make_task(RefactorSuggestionsTask).execute(
        {"analysis_type": "unused", "scan_paths": ["src/"], "generate_patches": True, "output_format": "json"}
    )

    (patch_path,) = result.artifacts
    (finding,) = result.findings
    assert patch_path.startswith("storage/reports/refactor/patches/")
    assert patch_path.endswith(f"/patch_{finding['id']}.diff")
    assert finding["has_patch"] is True

    patch = (project / patch_path).read_text(encoding="utf-8")
    assert patch.startswith("--- a/src/balance.py\n+++ b/src/balance.py\n")
    assert "-    # result = compute_value(account, 'latest')\n" in patch
    assert "-    return 0\n" not in patch
    assert (project / "src" / "balance.py").read_text(encoding="utf-8") == BALANCE
    assert "Review the patch files, then apply with `git apply`" in result.next_steps


@pytest.mark.parametrize("inputs, field", [
    ({"complexity_threshold": 0}, "complexity_threshold"),
    ({"scan_paths": ["../outside/"]}, "scan_paths"),
])
def test_invalid_inputs(make_task, inputs, field):
    with pytest.raises(ValidationError) as exc:
        make_task(RefactorSuggestionsTask).execute(inputs)
    assert exc.value.fields == [field]


def test_removal_patch_handles_missing_final_newline():
    patch = removal_patch("a.py", "keep = 1\ndrop = 2\nkeep = 3", 2, 2)
    assert "-drop = 2\n" in patch
    assert "-keep" not in patch
