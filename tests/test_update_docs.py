import ast

import pytest

from conftest import EVM_SPEC, PARTIAL_SPEC
from taskgate.audit_logger import Outcome
from taskgate.errors import ApprovalDeniedError, ValidationError
from taskgate.scaffold import DriverScaffolder, NetworkKind, parse_specification
from taskgate.scaffold import templates
from taskgate.tasks import UpdateDocsTask
from taskgate.tasks.update_docs import (
    README_END,
    README_START,
    classify_operation,
    extract_driver_info,
    insert_changelog_entry,
    replace_block,
)

DRIVER = "src/chainkit/drivers/polygon_driver.py"
DOCS = "docs/drivers/polygon.md"


@pytest.fixture
def polygon_driver(tmp_path):
    source = DriverScaffolder().generate_driver_class("Polygon", parse_specification(EVM_SPEC), NetworkKind.EVM)
    path = tmp_path / DRIVER
    path.parent.mkdir(parents=True)
    path.write_text(source, encoding="utf-8")
    return source


def _function(source: str) -> ast.FunctionDef:
    return ast.parse(source).body[0]


def test_creates_pages_and_readme(make_task, tmp_path, polygon_driver):
    task = make_task(UpdateDocsTask)

    result = task.execute({})

    assert result.artifacts == [DOCS, "README.md"]
    readme = (tmp_path / "README.md").read_text(encoding="utf-8")
    assert readme.startswith("## Supported Networks")
    assert "| Polygon | `PolygonDriver` | evm | POL |" in readme
    page = (tmp_path / DOCS).read_text(encoding="utf-8")
    assert "from chainkit.drivers.polygon_driver import PolygonDriver" in page
    assert templates.STATUS_START in page
    assert result.summary.startswith("Changed 2 file(s)")
    assert [e.outcome for e in task.gateway.read_audit_log()] == [Outcome.APPROVED]


def test_refreshes_status_block_in_existing_page(make_task, tmp_path, polygon_driver):
    stale = DriverScaffolder().generate_documentation("Polygon", parse_specification(PARTIAL_SPEC), NetworkKind.EVM)
    (tmp_path / DOCS).parent.mkdir(parents=True)
    (tmp_path / DOCS).write_text(stale, encoding="utf-8")
    task = make_task(UpdateDocsTask)

    result = task.execute({"update_type": "drivers", "driver_names": ["Polygon"]})

    assert result.artifacts == [DOCS]
    page = (tmp_path / DOCS).read_text(encoding="utf-8")
    info = extract_driver_info(DRIVER, polygon_driver)
    assert templates.render_status_block(info.operations) in page
    assert page.startswith("# Polygon Driver")
    assert result.details["diffs"][0]["additions"] > 0
    assert not (tmp_path / "README.md").exists()


def test_preview_only_writes_nothing(make_task, tmp_path, polygon_driver):
    task = make_task(UpdateDocsTask)

    result = task.execute({"preview_only": True})

    assert result.artifacts == []
    assert not (tmp_path / "README.md").exists()
    assert result.summary.startswith("Would change 2 file(s)")
    assert result.details["diffs"][1]["diff"].startswith("--- a/README.md")
    assert "Re-run without preview_only to apply these changes" in result.next_steps


def test_second_run_is_a_no_op(make_task, polygon_driver):
    make_task(UpdateDocsTask).execute({})
    result = make_task(UpdateDocsTask).execute({})
    assert result.summary == "Documentation already up to date"
    assert result.artifacts == []


def test_readme_markers_are_replaced_in_place(make_task, tmp_path, polygon_driver):
    (tmp_path / "README.md").write_text(
        f"# Chainkit\n\nIntro.\n\n{README_START}\nstale table\n{README_END}\n\n## License\n\nMIT\n",
        encoding="utf-8",
    )
    make_task(UpdateDocsTask).execute({"update_type": "drivers"})

    readme = (tmp_path / "README.md").read_text(encoding="utf-8")
    assert "stale table" not in readme
    assert readme.startswith("# Chainkit\n\nIntro.\n\n" + README_START)
    assert readme.endswith("## License\n\nMIT\n")
    assert "## Supported Networks" not in readme


def test_changelog_entry(make_task, tmp_path):
    (tmp_path / "CHANGELOG.md").write_text("# Changelog\n\n## [1.0.0]\n\n- Initial release\n", encoding="utf-8")

    result = make_task(UpdateDocsTask).execute({"update_type": "changelog", "changelog_entry": "Add Polygon driver"})

    assert result.artifacts == ["CHANGELOG.md"]
    assert (tmp_path / "CHANGELOG.md").read_text(encoding="utf-8") == (
        "# Changelog\n\n## [Unreleased]\n\n- Add Polygon driver\n\n## [1.0.0]\n\n- Initial release\n"
    )


def test_changelog_requires_an_entry(make_task):
    with pytest.raises(ValidationError) as exc:
        make_task(UpdateDocsTask).execute({"update_type": "changelog"})
    assert exc.value.fields == ["changelog_entry"]


@pytest.mark.parametrize("names", [[123], ["polygon", None], [" "]])
def test_driver_names_must_be_names(make_task, tmp_path, polygon_driver, names):
    with pytest.raises(ValidationError) as exc:
        make_task(UpdateDocsTask).execute({"update_type": "drivers", "driver_names": names})
    assert exc.value.fields == ["driver_names"]
    assert not (tmp_path / DOCS).exists()


def test_denial_leaves_docs_untouched(make_task, tmp_path, polygon_driver):
    task = make_task(UpdateDocsTask, approved=False)
    with pytest.raises(ApprovalDeniedError):
        task.execute({})
    assert not (tmp_path / "README.md").exists()
    assert not (tmp_path / DOCS).exists()


def test_insert_changelog_entry():
    assert insert_changelog_entry("", "First") == "# Changelog\n\n## [Unreleased]\n\n- First\n"
    assert insert_changelog_entry("## [Unreleased]\n\n- Old\n", "New") == "## [Unreleased]\n\n- New\n- Old\n"
    assert insert_changelog_entry("# Changelog\n", "Only") == "# Changelog\n\n## [Unreleased]\n\n- Only\n"


def test_replace_block_without_markers():
    assert replace_block("no markers here", README_START, README_END, "x") is None


@pytest.mark.parametrize("source, expected", [
    ('def get_balance(self, a):\n    return self._rpc_call("eth_getBalance", [a])\n', ("eth_getBalance", "implemented")),
    ('def get_block(self, n):\n    raise NotImplementedError("TODO")\n', (None, "placeholder")),
    ('def estimate_gas(self, tx):\n    """Unsupported."""\n    return None\n', (None, "unsupported")),
    ('def send_transaction(self, tx):\n    raise UnsupportedOperation("send")\n', (None, "not implemented")),
    ("def get_network_info(self):\n    return {'chain': 1}\n", (None, "custom")),
])
def test_classify_operation(source, expected):
    assert classify_operation(_function(source)) == expected
