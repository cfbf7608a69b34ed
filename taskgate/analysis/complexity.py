"""
TASKGATE Analysis: Complexity Scanner

Cyclomatic complexity from the token stream, per named function.

Function boundaries come from an explicit stack of open contexts. A context
is pushed at a function keyword, or at the name of a shorthand method or
named arrow function where the dialect has them, and remembers the block
depth it started at. Every token is appended to every open context, so a
closure's branches also count toward the method that contains it. The
context is finalized when the depth falls back to where it started, or at a
statement end if its body never opened (abstract declarations, arrow functions).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from taskgate.analysis.lexer import (
    DIALECTS,
    Dialect,
    Token,
    TokenKind,
    function_name,
    shorthand_function_name,
)
from taskgate.analysis.suggestion import Risk, ScanReport, Suggestion, SuggestionType, suggestion_id
from taskgate.analysis.walker import DEFAULT_EXCLUDE, DEFAULT_SCAN_PATHS, SourceWalker
from taskgate.workspace import Workspace

HIGH_RISK_COMPLEXITY = 20
MEDIUM_RISK_COMPLEXITY = 15


@dataclass
class MethodComplexity:
    name: str
    start_line: int
    end_line: int
    complexity: int


@dataclass
class _Context:
    name: str | None
    start_line: int
    base_depth: int
    opened: bool = False
    tokens: list[Token] = field(default_factory=list)


def is_decision_point(token: Token, dialect: Dialect) -> bool:
    if token.kind is TokenKind.KEYWORD:
        return token.value in dialect.branch_keywords or token.value in dialect.boolean_operators
    if token.kind is TokenKind.OP:
        return token.value in dialect.boolean_operators or token.value in dialect.ternary_operators
    return False


def complexity_of(tokens: Iterable[Token], dialect: Dialect) -> int:
    """1 for the entry path plus one per branch, loop, case, catch, short-circuit and ternary."""
    return 1 + sum(1 for t in tokens if is_decision_point(t, dialect))


def measure_functions(tokens: list[Token], dialect: Dialect) -> list[MethodComplexity]:
    results: list[MethodComplexity] = []
    stack: list[_Context] = []
    depth = 0
    claimed: Token | None = None

    def finalize(ctx: _Context, end_line: int) -> None:
        if ctx.name is not None:
            results.append(MethodComplexity(
                name=ctx.name,
                start_line=ctx.start_line,
                end_line=end_line,
                complexity=complexity_of(ctx.tokens, dialect),
            ))

    for i, tok in enumerate(tokens):
        if tok.kind is TokenKind.COMMENT:
            continue

        if tok.kind is TokenKind.KEYWORD and tok.value in dialect.function_keywords:
            name_tok = function_name(tokens, i)
            claimed = name_tok
            stack.append(_Context(
                name=name_tok.value if name_tok is not None else None,
                start_line=tok.line,
                base_depth=depth,
            ))
        elif dialect.method_shorthand and tok is not claimed:
            name_tok = shorthand_function_name(tokens, i)
            if name_tok is not None:
                stack.append(_Context(name=name_tok.value, start_line=tok.line, base_depth=depth))

        for ctx in stack:
            ctx.tokens.append(tok)

        if tok.kind is TokenKind.OPEN:
            depth += 1
            for ctx in stack:
                ctx.opened = True
        elif tok.kind is TokenKind.CLOSE:
            depth = max(0, depth - 1)
            while stack and stack[-1].opened and depth <= stack[-1].base_depth:
                finalize(stack.pop(), tok.line)
        elif tok.kind is TokenKind.END:
            while stack and not stack[-1].opened:
                finalize(stack.pop(), tok.line)

    # Unbalanced input: report what was still open at end of file
    last_line = tokens[-1].last_line if tokens else 0
    while stack:
        finalize(stack.pop(), last_line)

    results.sort(key=lambda m: (m.start_line, m.name))
    return results


def risk_for(complexity: int) -> Risk:
    if complexity >= HIGH_RISK_COMPLEXITY:
        return Risk.HIGH
    if complexity >= MEDIUM_RISK_COMPLEXITY:
        return Risk.MEDIUM
    return Risk.LOW


class ComplexityScanner:
    """Flags functions whose complexity reaches `threshold`."""

    def __init__(
        self,
        threshold: int = 10,
        scan_paths: Iterable[str] = DEFAULT_SCAN_PATHS,
        exclude: Iterable[str] = DEFAULT_EXCLUDE,
        dialects: tuple[Dialect, ...] = DIALECTS,
        workers: int = 4,
    ):
        if threshold < 1:
            raise ValueError("complexity threshold must be at least 1")
        self.threshold = threshold
        self.walker = SourceWalker(scan_paths, exclude, dialects, workers)

    def scan(self, workspace: Workspace) -> ScanReport:
        return self.walker.walk(workspace, self.analyze)

    def analyze(self, path: str, source: str, tokens: list[Token], dialect: Dialect) -> list[Suggestion]:
        suggestions: list[Suggestion] = []
        for method in measure_functions(tokens, dialect):
            if method.complexity < self.threshold:
                continue
            suggestions.append(Suggestion(
                id=suggestion_id("complexity", path, method.name, method.start_line),
                type=SuggestionType.COMPLEXITY,
                file_path=path,
                start_line=method.start_line,
                end_line=method.end_line,
                title=f"High complexity in {method.name}()",
                description=(
                    f"Function `{method.name}` has a cyclomatic complexity of {method.complexity}, "
                    f"which reaches the threshold of {self.threshold}. Consider breaking it into "
                    f"smaller, more focused functions."
                ),
                risk=risk_for(method.complexity),
                current_metric=method.complexity,
                expected_metric=self.threshold - 1,
            ))
        return suggestions
