"""
Normalized findings produced by the analysis engines.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class SuggestionType(str, Enum):
    COMPLEXITY = "complexity"
    UNUSED_CODE = "unused_code"


class Risk(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _RISK_RANK[self]

    def at_least(self, other: "Risk | str") -> bool:
        return self.rank >= Risk(other).rank


_RISK_RANK = {Risk.LOW: 0, Risk.MEDIUM: 1, Risk.HIGH: 2}


def suggestion_id(prefix: str, *parts: object) -> str:
    """Stable id: same file, symbol and line always hash to the same suggestion."""
    digest = hashlib.sha1("|".join(str(p) for p in parts).encode("utf-8")).hexdigest()
    return f"{prefix}_{digest[:12]}"


@dataclass
class Suggestion:
    """A single refactoring suggestion."""
    id: str
    type: SuggestionType
    file_path: str
    title: str
    description: str
    risk: Risk = Risk.LOW
    start_line: int | None = None
    end_line: int | None = None
    current_metric: int | None = None
    expected_metric: int | None = None
    patch: str | None = None

    def sort_key(self) -> tuple[str, int, str, str]:
        return (self.file_path, self.start_line or 0, self.type.value, self.id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "file_path": self.file_path,
            "start_line": self.start_line,
            "end_line": self.end_line,
            "title": self.title,
            "description": self.description,
            "risk": self.risk.value,
            "current_metric": self.current_metric,
            "expected_metric": self.expected_metric,
            "patch": self.patch,
            "has_patch": self.patch is not None,
        }


@dataclass
class SkippedFile:
    path: str
    reason: str


@dataclass
class ScanReport:
    """Aggregated output of one engine run over a set of scan roots."""
    suggestions: list[Suggestion] = field(default_factory=list)
    files_scanned: int = 0
    skipped: list[SkippedFile] = field(default_factory=list)

    def sort(self) -> "ScanReport":
        self.suggestions.sort(key=Suggestion.sort_key)
        self.skipped.sort(key=lambda s: s.path)
        return self

    def merge(self, other: "ScanReport") -> "ScanReport":
        """Combine two engine runs. Files seen by both count once."""
        skipped = {s.path: s for s in [*self.skipped, *other.skipped]}
        return ScanReport(
            suggestions=[*self.suggestions, *other.suggestions],
            files_scanned=max(self.files_scanned, other.files_scanned),
            skipped=list(skipped.values()),
        ).sort()

    def filter_by_risk(self, minimum: Risk | str) -> "ScanReport":
        kept = [s for s in self.suggestions if s.risk.at_least(minimum)]
        return ScanReport(kept, self.files_scanned, list(self.skipped))

    def by_type(self) -> dict[str, int]:
        counts = {t.value: 0 for t in SuggestionType}
        for s in self.suggestions:
            counts[s.type.value] += 1
        return counts

    def by_risk(self) -> dict[str, int]:
        counts = {r.value: 0 for r in Risk}
        for s in self.suggestions:
            counts[s.risk.value] += 1
        return counts

    def summary(self) -> dict[str, Any]:
        return {
            "total": len(self.suggestions),
            "files_scanned": self.files_scanned,
            "files_skipped": len(self.skipped),
            "by_type": self.by_type(),
            "by_risk": self.by_risk(),
        }
