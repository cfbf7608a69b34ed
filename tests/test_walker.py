from taskgate.analysis import ComplexityScanner, UnusedCodeDetector
from taskgate.analysis.walker import SourceWalker

COMPLEX = "def f(a, b):\n    if a or b:\n        return 1\n    return 0\n"


def test_unreadable_file_is_skipped_not_fatal(workspace, tmp_path):
    src = tmp_path / "src"
    src.mkdir()
    (src / "good.py").write_text(COMPLEX, encoding="utf-8")
    (src / "bad.py").write_bytes(b"def f():\n    return '\xff\xfe'\n")

    report = ComplexityScanner(threshold=2, scan_paths=["src/"]).scan(workspace)

    assert [s.file_path for s in report.suggestions] == ["src/good.py"]
    assert report.files_scanned == 1
    assert [s.path for s in report.skipped] == ["src/bad.py"]
    assert "UTF-8" in report.skipped[0].reason


def test_untokenizable_file_is_skipped(workspace, tmp_path):
    src = tmp_path / "src"
    src.mkdir()
    (src / "broken.py").write_text('x = """never closed\n', encoding="utf-8")
    (src / "fine.py").write_text("x = 1\n", encoding="utf-8")

    report = UnusedCodeDetector(scan_paths=["src/"]).scan(workspace)
    assert report.files_scanned == 1
    assert [s.path for s in report.skipped] == ["src/broken.py"]


def test_excludes_and_extensions(workspace, tmp_path):
    for rel in ["src/a.py", "src/vendor/lib.py", "src/notes.txt", "src/web/app.ts", "tools/build.php"]:
        path = tmp_path / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("x = 1\n", encoding="utf-8")

    walker = SourceWalker(scan_paths=["src/", "tools/"], exclude=["*/vendor/*"])
    assert walker.files(workspace) == ["src/a.py", "src/web/app.ts", "tools/build.php"]


def test_missing_scan_root_is_empty(workspace):
    report = ComplexityScanner(scan_paths=["does-not-exist/"]).scan(workspace)
    assert report.files_scanned == 0
    assert report.suggestions == []


def test_results_do_not_depend_on_worker_count(workspace, tmp_path):
    src = tmp_path / "src"
    src.mkdir()
    for i in range(12):
        (src / f"m{i:02d}.py").write_text(COMPLEX, encoding="utf-8")

    serial = ComplexityScanner(threshold=2, scan_paths=["src/"], workers=1).scan(workspace)
    parallel = ComplexityScanner(threshold=2, scan_paths=["src/"], workers=8).scan(workspace)
    assert [s.id for s in serial.suggestions] == [s.id for s in parallel.suggestions]
    assert len(serial.suggestions) == 12
