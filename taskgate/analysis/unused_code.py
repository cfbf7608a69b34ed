"""
TASKGATE Analysis: Unused-Code Detector

Three token-stream heuristics, all reported as low risk:

  - commented-out code: comment text that still looks like code
  - unreachable code: the first statement after a return/throw in a block
  - unused private routines: a private function whose name never appears
    again in the file

These are guesses, not a call graph. Known false positives: routines reached
only through dynamic dispatch (callbacks passed as strings, getattr, magic
methods) and prose comments that happen to read like assignments.
"""

from __future__ import annotations

import re
from typing import Iterable

from taskgate.analysis.lexer import DIALECTS, Dialect, Token, TokenKind, function_name
from taskgate.analysis.suggestion import Risk, ScanReport, Suggestion, SuggestionType, suggestion_id
from taskgate.analysis.walker import DEFAULT_EXCLUDE, DEFAULT_SCAN_PATHS, SourceWalker
from taskgate.workspace import Workspace

# ---------------------------------------------------------------------------
# Comment-as-code shapes
# ---------------------------------------------------------------------------

CODE_PATTERNS: tuple[re.Pattern[str], ...] = (
    # declarations
    re.compile(r"^(?:(?:public|private|protected|static|async|export|final|abstract)\s+)*"
               r"(?:function|def|class|fn|interface|trait)\s+[\w$]+\s*[(:{]?"),
    # PHP variables
    re.compile(r"^\$\w+\s*(?:=|->|\[|\+\+|--)"),
    # brace-style control statements
    re.compile(r"^(?:\}\s*)?(?:if|elseif|else\s+if|while|for|foreach|switch|catch)\s*\(.*\)\s*\{?\s*$"),
    # python control statements
    re.compile(r"^(?:if|elif|while)\s+.+:\s*$"),
    re.compile(r"^for\s+[\w, ()]+\s+in\s+.+:\s*$"),
    re.compile(r"^(?:else|try|finally)\s*:\s*$"),
    re.compile(r"^except(?:\s+[\w.(), ]+(?:\s+as\s+\w+)?)?\s*:\s*$"),
    # returns
    re.compile(r"^return(?:\s+\S.*)?;\s*$"),
    re.compile(r"^return\s+[\w.$]+(?:\(.*\)|\[.*\])?\s*$"),
    # assignments
    re.compile(r"^[A-Za-z_$][\w.$\[\]'\"]*(?:->[\w$]+)*\s*(?:[+\-*/.%|&]?=)\s*[^=\s]"),
    # bare calls ending a statement
    re.compile(r"^[\w$>.\-:\[\]]+\(.*\)\s*;\s*$"),
    # imports
    re.compile(r"^(?:from\s+[\w.]+\s+import\s+.+|import\s+[\w.]+(?:\s+as\s+\w+)?|use\s+[\w\\]+;)\s*$"),
)

# Tool directives and doc markers are comments on purpose
_DIRECTIVE = re.compile(
    r"(?i)(?:noqa|type:\s|pragma|fmt:\s|pylint:|eslint|phpstan|@(?:param|return|var|throws|see)"
    r"|-\*-\s*coding|^!)"
)


def _strip_comment_markers(text: str) -> list[str]:
    """Comment text without `//`, `#`, `/* */` or leading `*`, one entry per non-blank line."""
    if text.startswith("/*"):
        body = text[2:]
        if body.endswith("*/"):
            body = body[:-2]
        raw_lines = body.splitlines()
        lines = [re.sub(r"^\s*\*+\s?", "", line).strip() for line in raw_lines]
    else:
        lines = [re.sub(r"^(?://+|#+)\s?", "", text).strip()]
    return [line for line in lines if line]


def _group_comments(tokens: list[Token]) -> list[list[Token]]:
    """Adjacent single-line comments form one block; block comments stand alone."""
    groups: list[list[Token]] = []
    for tok in tokens:
        if tok.kind is not TokenKind.COMMENT:
            continue
        is_block = tok.value.startswith("/*")
        if (
            groups
            and not is_block
            and not groups[-1][-1].value.startswith("/*")
            and tok.line == groups[-1][-1].last_line + 1
        ):
            groups[-1].append(tok)
        else:
            groups.append([tok])
    return groups


def _looks_like_code(line: str) -> bool:
    return any(p.search(line) for p in CODE_PATTERNS)


# ---------------------------------------------------------------------------
# Detector
# ---------------------------------------------------------------------------

class UnusedCodeDetector:
    def __init__(
        self,
        min_comment_length: int = 20,
        min_code_ratio: float = 0.5,
        scan_paths: Iterable[str] = DEFAULT_SCAN_PATHS,
        exclude: Iterable[str] = DEFAULT_EXCLUDE,
        dialects: tuple[Dialect, ...] = DIALECTS,
        workers: int = 4,
        checks: Iterable[str] = ("commented_code", "unreachable", "unused_private"),
    ):
        self.min_comment_length = min_comment_length
        self.min_code_ratio = min_code_ratio
        self.checks = set(checks)
        self.walker = SourceWalker(scan_paths, exclude, dialects, workers)

    def scan(self, workspace: Workspace) -> ScanReport:
        return self.walker.walk(workspace, self.analyze)

    def analyze(self, path: str, source: str, tokens: list[Token], dialect: Dialect) -> list[Suggestion]:
        suggestions: list[Suggestion] = []
        if "commented_code" in self.checks:
            suggestions.extend(self.find_commented_code(path, tokens))
        if "unreachable" in self.checks:
            suggestions.extend(self.find_unreachable_code(path, tokens, dialect))
        if "unused_private" in self.checks:
            suggestions.extend(self.find_unused_private_routines(path, tokens, dialect))
        return suggestions

    # -----------------------------------------------------------------------
    # Check: commented-out code
    # -----------------------------------------------------------------------

    def find_commented_code(self, path: str, tokens: list[Token]) -> list[Suggestion]:
        findings = []
        for group in _group_comments(tokens):
            if group[0].value.startswith("/**"):
                continue
            lines = [line for tok in group for line in _strip_comment_markers(tok.value)]
            if not lines or any(_DIRECTIVE.search(line) for line in lines):
                continue
            if len(" ".join(lines)) <= self.min_comment_length:
                continue

            code_lines = sum(1 for line in lines if _looks_like_code(line))
            if code_lines == 0 or code_lines / len(lines) < self.min_code_ratio:
                continue

            start, end = group[0].line, group[-1].last_line
            findings.append(Suggestion(
                id=suggestion_id("commented_code", path, start),
                type=SuggestionType.UNUSED_CODE,
                file_path=path,
                start_line=start,
                end_line=end,
                title="Commented-out code",
                description=(
                    f"Lines {start}-{end} hold {code_lines} line(s) of commented-out code. "
                    f"Version control keeps the history; delete it."
                ),
                risk=Risk.LOW,
                current_metric=code_lines,
                expected_metric=0,
            ))
        return findings

    # -----------------------------------------------------------------------
    # Check: unreachable code
    # -----------------------------------------------------------------------

    def find_unreachable_code(self, path: str, tokens: list[Token], dialect: Dialect) -> list[Suggestion]:
        findings = []
        depth = 0
        at_statement_start = True
        terminator: Token | None = None
        terminator_depth = 0
        after_depth: int | None = None
        reported = False

        for tok in tokens:
            if not tok.significant:
                continue

            if tok.kind is TokenKind.OPEN:
                depth += 1
                at_statement_start = True
                continue

            if tok.kind is TokenKind.CLOSE:
                depth = max(0, depth - 1)
                if after_depth is not None and depth < after_depth:
                    after_depth, reported = None, False
                if terminator is not None and depth < terminator_depth:
                    terminator = None
                at_statement_start = True
                continue

            if tok.kind is TokenKind.END:
                if terminator is not None and depth == terminator_depth:
                    after_depth, reported = depth, False
                    terminator = None
                at_statement_start = True
                continue

            if after_depth is not None and depth == after_depth:
                if tok.kind is TokenKind.KEYWORD and tok.value in dialect.continuation_keywords:
                    after_depth, reported = None, False
                elif not reported:
                    findings.append(Suggestion(
                        id=suggestion_id("unreachable", path, tok.line),
                        type=SuggestionType.UNUSED_CODE,
                        file_path=path,
                        start_line=tok.line,
                        end_line=tok.line,
                        title="Unreachable code",
                        description=(
                            f"Code on line {tok.line} follows a return or throw in the same "
                            f"block and can never run."
                        ),
                        risk=Risk.LOW,
                    ))
                    reported = True

            if (
                at_statement_start
                and terminator is None
                and tok.kind is TokenKind.KEYWORD
                and tok.value in dialect.terminator_keywords
            ):
                terminator, terminator_depth = tok, depth

            at_statement_start = False

        return findings

    # -----------------------------------------------------------------------
    # Check: unused private routines
    # -----------------------------------------------------------------------

    def find_unused_private_routines(
        self, path: str, tokens: list[Token], dialect: Dialect
    ) -> list[Suggestion]:
        code = [t for t in tokens if t.significant]
        declarations = _private_declarations(code, dialect)
        if not declarations:
            return []

        occurrences: dict[str, int] = {}
        for tok in code:
            if tok.kind in (TokenKind.NAME, TokenKind.KEYWORD):
                occurrences[tok.value] = occurrences.get(tok.value, 0) + 1

        findings = []
        for name_tok in declarations:
            if occurrences.get(name_tok.value, 0) > 1:
                continue
            findings.append(Suggestion(
                id=suggestion_id("unused_private", path, name_tok.value, name_tok.line),
                type=SuggestionType.UNUSED_CODE,
                file_path=path,
                start_line=name_tok.line,
                end_line=name_tok.line,
                title=f"Unused private routine {name_tok.value}()",
                description=(
                    f"Private routine `{name_tok.value}` is never referenced after its declaration. "
                    f"This is a textual check: routines reached by dynamic dispatch may be flagged wrongly."
                ),
                risk=Risk.LOW,
                current_metric=occurrences.get(name_tok.value, 0),
                expected_metric=2,
            ))
        return findings


def _has_private_modifier(code: list[Token], index: int, dialect: Dialect) -> bool:
    """Walk back over modifier keywords in front of a declaration."""
    if dialect.private_modifier is None:
        return False
    j = index - 1
    while j >= 0 and code[j].kind is TokenKind.KEYWORD and code[j].value in dialect.modifier_keywords:
        if code[j].value == dialect.private_modifier:
            return True
        j -= 1
    return False


def _private_declarations(code: list[Token], dialect: Dialect) -> list[Token]:
    found: list[Token] = []
    for i, tok in enumerate(code):
        if tok.kind is TokenKind.KEYWORD and tok.value in dialect.function_keywords:
            name_tok = function_name(code, i)
            if name_tok is None:
                continue
            if _has_private_modifier(code, i, dialect) or dialect.is_private_name(name_tok.value):
                found.append(name_tok)
        elif (
            dialect.method_shorthand
            and tok.kind is TokenKind.NAME
            and i + 1 < len(code)
            and code[i + 1].value == "("
        ):
            # `private helper() {` / `#helper() {` inside a class body
            previous = code[i - 1].value if i > 0 else ""
            if previous in (".", "?.", "->", "::", "?->", "new"):
                continue
            if _has_private_modifier(code, i, dialect) or dialect.is_private_name(tok.value):
                found.append(tok)
    return found
