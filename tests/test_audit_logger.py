from datetime import datetime, timezone

from taskgate.audit_logger import AuditEntry, AuditLogger, Outcome, _iter_lines_reversed


def _entry(task_id="t1", outcome=Outcome.APPROVED, operator="alice", timestamp=None):
    kwargs = {"task_id": task_id, "operator": operator, "outcome": outcome}
    if timestamp:
        kwargs["timestamp"] = timestamp
    return AuditEntry(**kwargs)


def test_missing_log_reads_empty(tmp_path):
    log = AuditLogger(tmp_path / "storage" / "audit.log")
    assert log.read() == []
    assert log.stats().total_operations == 0


def test_entries_are_json_lines(tmp_path):
    path = tmp_path / "audit.log"
    log = AuditLogger(path)
    log.append(_entry("t1"))
    log.append(_entry("t2", Outcome.DENIED))

    lines = path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 2
    assert AuditEntry.model_validate_json(lines[1]).outcome is Outcome.DENIED


def test_read_is_newest_first_with_filters(tmp_path):
    log = AuditLogger(tmp_path / "audit.log")
    for i in range(5):
        log.append(_entry(f"t{i % 2}", operator="bob" if i == 4 else "alice"))

    assert [e.task_id for e in log.read()] == ["t0", "t1", "t0", "t1", "t0"]
    assert len(log.read(limit=2)) == 2
    assert log.read(limit=0) == []
    assert len(log.read(task_id="t1")) == 2
    assert [e.operator for e in log.read(operator="bob")] == ["bob"]


def test_malformed_lines_are_skipped(tmp_path):
    path = tmp_path / "audit.log"
    log = AuditLogger(path)
    log.append(_entry("t1"))
    with open(path, "a", encoding="utf-8") as f:
        f.write("{not json\n")
    log.append(_entry("t2"))

    assert [e.task_id for e in log.read()] == ["t2", "t1"]


def test_reverse_reader_crosses_block_boundaries(tmp_path):
    path = tmp_path / "lines.txt"
    path.write_text("first line\nsecond\n\nthird entry here\n", encoding="utf-8")
    assert list(_iter_lines_reversed(path, block_size=5)) == ["third entry here", "second", "first line"]


def test_stats(tmp_path):
    log = AuditLogger(tmp_path / "audit.log")
    log.append(_entry("t1", Outcome.APPROVED))
    log.append(_entry("t1", Outcome.DENIED, operator="bob"))
    log.append(_entry("t2", Outcome.AUTO_APPROVED))

    stats = log.stats()
    assert stats.total_operations == 3
    assert (stats.approved, stats.denied, stats.auto_approved) == (1, 1, 1)
    assert stats.by_task == {"t1": 2, "t2": 1}
    assert stats.by_operator == {"alice": 2, "bob": 1}


def test_purge_drops_only_older_entries(tmp_path):
    log = AuditLogger(tmp_path / "audit.log")
    log.append(_entry("old", timestamp="2024-01-01T00:00:00+00:00"))
    log.append(_entry("new", timestamp="2026-06-01T00:00:00+00:00"))

    removed = log.purge(datetime(2025, 1, 1, tzinfo=timezone.utc))
    assert removed == 1
    assert [e.task_id for e in log.read()] == ["new"]


def test_clear(tmp_path):
    path = tmp_path / "audit.log"
    log = AuditLogger(path)
    log.append(_entry())
    log.append(_entry())
    assert log.clear() == 2
    assert not path.exists()
    assert log.clear() == 0
