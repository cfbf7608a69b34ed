"""
TASKGATE Audit Log

Append-only JSON Lines store for approval decisions. Each entry is one
line written with a single write() on an append-mode handle, so readers
re-scanning the file never see half an entry from this process.

Reads walk the file backwards in fixed-size blocks, so `limit` queries
only touch the tail of a long log.
"""

from __future__ import annotations

import os
import tempfile
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Iterator

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError


class Outcome(str, Enum):
    APPROVED = "APPROVED"
    DENIED = "DENIED"
    AUTO_APPROVED = "AUTO_APPROVED"


class AuditEntry(BaseModel):
    """One approval decision. Never mutated after it is written."""
    model_config = ConfigDict(frozen=True)

    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    task_id: str
    operator: str
    outcome: Outcome
    affected_paths: tuple[str, ...] = ()
    inputs: dict[str, Any] = Field(default_factory=dict)
    notes: str | None = None

    @property
    def recorded_at(self) -> datetime:
        moment = datetime.fromisoformat(self.timestamp)
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        return moment

    def to_line(self) -> str:
        return self.model_dump_json() + "\n"


class AuditStats(BaseModel):
    total_operations: int = 0
    approved: int = 0
    denied: int = 0
    auto_approved: int = 0
    by_outcome: dict[str, int] = Field(default_factory=dict)
    by_task: dict[str, int] = Field(default_factory=dict)
    by_operator: dict[str, int] = Field(default_factory=dict)


def _iter_lines_reversed(path: Path, block_size: int = 8192) -> Iterator[str]:
    """Yield non-blank lines from the end of the file to the start."""
    with open(path, "rb") as f:
        f.seek(0, os.SEEK_END)
        position = f.tell()
        remainder = b""
        while position > 0:
            read_size = min(block_size, position)
            position -= read_size
            f.seek(position)
            chunk = f.read(read_size) + remainder
            lines = chunk.split(b"\n")
            remainder = lines.pop(0)
            for line in reversed(lines):
                if line.strip():
                    yield line.decode("utf-8", errors="replace")
        if remainder.strip():
            yield remainder.decode("utf-8", errors="replace")


class AuditLogger:
    def __init__(self, log_file: str | Path):
        self.log_file = Path(log_file)

    def append(self, entry: AuditEntry) -> AuditEntry:
        self.log_file.parent.mkdir(parents=True, exist_ok=True)
        line = entry.to_line()
        with open(self.log_file, "a", encoding="utf-8") as f:
            f.write(line)
            f.flush()
        logger.info(f"[AUDIT] {entry.outcome.value} {entry.task_id} by {entry.operator}")
        return entry

    def iter_entries(self) -> Iterator[AuditEntry]:
        """Newest first. Missing file yields nothing; malformed lines are skipped."""
        if not self.log_file.is_file():
            return
        for line in _iter_lines_reversed(self.log_file):
            try:
                yield AuditEntry.model_validate_json(line)
            except PydanticValidationError:
                logger.debug(f"[AUDIT] Skipping malformed line in {self.log_file}")

    def read(
        self,
        limit: int | None = None,
        task_id: str | None = None,
        operator: str | None = None,
    ) -> list[AuditEntry]:
        entries: list[AuditEntry] = []
        if limit is not None and limit <= 0:
            return entries
        for entry in self.iter_entries():
            if task_id is not None and entry.task_id != task_id:
                continue
            if operator is not None and entry.operator != operator:
                continue
            entries.append(entry)
            if limit is not None and len(entries) >= limit:
                break
        return entries

    def stats(self) -> AuditStats:
        stats = AuditStats(by_outcome={outcome.value: 0 for outcome in Outcome})
        for entry in self.iter_entries():
            stats.total_operations += 1
            stats.by_outcome[entry.outcome.value] += 1
            stats.by_task[entry.task_id] = stats.by_task.get(entry.task_id, 0) + 1
            stats.by_operator[entry.operator] = stats.by_operator.get(entry.operator, 0) + 1

        stats.approved = stats.by_outcome[Outcome.APPROVED.value]
        stats.denied = stats.by_outcome[Outcome.DENIED.value]
        stats.auto_approved = stats.by_outcome[Outcome.AUTO_APPROVED.value]
        return stats

    # -----------------------------------------------------------------------
    # Retention (destructive, never called from the append/read path)
    # -----------------------------------------------------------------------

    def clear(self) -> int:
        """Remove every entry. Returns how many were removed."""
        if not self.log_file.is_file():
            return 0
        removed = sum(1 for _ in self.iter_entries())
        self.log_file.unlink()
        logger.warning(f"[AUDIT] Cleared {removed} entries from {self.log_file}")
        return removed

    def purge(self, older_than: datetime) -> int:
        """Drop entries recorded before `older_than`. Unparsable lines are kept."""
        if not self.log_file.is_file():
            return 0
        if older_than.tzinfo is None:
            older_than = older_than.replace(tzinfo=timezone.utc)

        kept: list[str] = []
        removed = 0
        with open(self.log_file, "r", encoding="utf-8", errors="replace") as f:
            for line in f:
                if not line.strip():
                    continue
                try:
                    entry = AuditEntry.model_validate_json(line)
                except PydanticValidationError:
                    kept.append(line if line.endswith("\n") else line + "\n")
                    continue
                if entry.recorded_at < older_than:
                    removed += 1
                else:
                    kept.append(line if line.endswith("\n") else line + "\n")

        fd, tmp_name = tempfile.mkstemp(prefix=".audit-", dir=self.log_file.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as tmp:
                tmp.writelines(kept)
            os.replace(tmp_name, self.log_file)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise

        logger.warning(f"[AUDIT] Purged {removed} entries older than {older_than.isoformat()}")
        return removed
