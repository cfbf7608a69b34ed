"""
Source tree walker shared by the analysis engines.

Files are independent, so they are read and analyzed on a thread pool and
the results are sorted afterwards. A file that cannot be decoded or
tokenized is skipped and recorded on the report; it never fails the scan.
"""

from __future__ import annotations

import concurrent.futures
from typing import Callable, Iterable

from loguru import logger

from taskgate.analysis.lexer import DIALECTS, Dialect, LexError, Token, dialect_for_path
from taskgate.analysis.suggestion import ScanReport, SkippedFile, Suggestion
from taskgate.workspace import Workspace

DEFAULT_SCAN_PATHS = ("src/", "tools/")
DEFAULT_EXCLUDE = ("*/vendor/*", "*/tests/*", "*/node_modules/*")

FileAnalyzer = Callable[[str, str, list[Token], Dialect], list[Suggestion]]


class _Skip(Exception):
    def __init__(self, path: str, reason: str):
        super().__init__(reason)
        self.path = path
        self.reason = reason


class SourceWalker:
    def __init__(
        self,
        scan_paths: Iterable[str] = DEFAULT_SCAN_PATHS,
        exclude: Iterable[str] = DEFAULT_EXCLUDE,
        dialects: tuple[Dialect, ...] = DIALECTS,
        workers: int = 4,
    ):
        self.scan_paths = list(scan_paths)
        self.exclude = list(exclude)
        self.dialects = dialects
        self.workers = max(1, workers)

    def files(self, workspace: Workspace) -> list[str]:
        extensions = {ext for d in self.dialects for ext in d.extensions}
        return list(workspace.iter_files(self.scan_paths, extensions, self.exclude))

    def walk(self, workspace: Workspace, analyze: FileAnalyzer) -> ScanReport:
        report = ScanReport()
        files = self.files(workspace)
        logger.debug(f"[ANALYSIS] {len(files)} files under {', '.join(self.scan_paths)}")

        with concurrent.futures.ThreadPoolExecutor(max_workers=self.workers) as pool:
            futures = [pool.submit(self._analyze_file, workspace, rel, analyze) for rel in files]
            for future in concurrent.futures.as_completed(futures):
                try:
                    suggestions = future.result()
                except _Skip as skip:
                    logger.warning(f"[ANALYSIS] Skipped {skip.path}: {skip.reason}")
                    report.skipped.append(SkippedFile(skip.path, skip.reason))
                    continue
                report.files_scanned += 1
                report.suggestions.extend(suggestions)

        return report.sort()

    def _analyze_file(self, workspace: Workspace, rel: str, analyze: FileAnalyzer) -> list[Suggestion]:
        dialect = dialect_for_path(rel, self.dialects)
        if dialect is None:
            raise _Skip(rel, "no dialect for file extension")
        try:
            source = workspace.read_text(rel)
        except UnicodeDecodeError as e:
            raise _Skip(rel, f"not valid UTF-8: {e.reason}") from e
        except OSError as e:
            raise _Skip(rel, f"unreadable: {e.strerror or e}") from e
        try:
            tokens = dialect.tokenize(source)
        except LexError as e:
            raise _Skip(rel, str(e)) from e
        return analyze(rel, source, tokens, dialect)
