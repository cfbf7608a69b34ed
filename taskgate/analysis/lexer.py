"""
TASKGATE Analysis: Lexer

Turns source text into a flat token stream with line numbers. No parse tree:
the analysis engines only need keywords, operators, comments, and where
blocks open and close.

Two front ends feed the same Token shape:

  - Python goes through the stdlib `tokenize` module; INDENT/DEDENT become
    block OPEN/CLOSE and a logical NEWLINE becomes END.
  - Brace languages (PHP, JavaScript/TypeScript) use one regex scanner;
    `{`/`}` are OPEN/CLOSE and `;` is END.
"""

from __future__ import annotations

import io
import keyword
import re
import tokenize
from dataclasses import dataclass
from enum import Enum
from pathlib import PurePosixPath
from typing import Callable


class TokenKind(str, Enum):
    NAME = "name"
    KEYWORD = "keyword"
    OP = "op"
    STRING = "string"
    NUMBER = "number"
    COMMENT = "comment"
    OPEN = "open"
    CLOSE = "close"
    END = "end"


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    value: str
    line: int
    end_line: int = 0

    @property
    def last_line(self) -> int:
        return self.end_line or self.line

    @property
    def significant(self) -> bool:
        return self.kind is not TokenKind.COMMENT


class LexError(ValueError):
    """Source text could not be tokenized."""


@dataclass(frozen=True)
class Dialect:
    """Everything the engines need to know about one source language."""
    name: str
    extensions: frozenset[str]
    tokenize: Callable[[str], list[Token]]
    function_keywords: frozenset[str]
    branch_keywords: frozenset[str]
    boolean_operators: frozenset[str]
    ternary_operators: frozenset[str]
    terminator_keywords: frozenset[str]
    continuation_keywords: frozenset[str]
    modifier_keywords: frozenset[str] = frozenset()
    private_modifier: str | None = None
    private_prefix: str | None = None
    method_shorthand: bool = False

    def is_private_name(self, name: str) -> bool:
        if self.private_prefix is None or not name.startswith(self.private_prefix):
            return False
        # Python dunders are public protocol methods
        return not (name.startswith("__") and name.endswith("__"))


# ---------------------------------------------------------------------------
# Python front end
# ---------------------------------------------------------------------------

_PY_SOFT_KEYWORDS = {"match", "case"}
_PY_STRING_TYPES = {
    tokenize.STRING,
    *(getattr(tokenize, name) for name in ("FSTRING_START", "FSTRING_MIDDLE", "FSTRING_END")
      if hasattr(tokenize, name)),
}


def tokenize_python(source: str) -> list[Token]:
    tokens: list[Token] = []
    at_statement_start = True
    last_line = 1

    try:
        for tok in tokenize.generate_tokens(io.StringIO(source).readline):
            ttype, text = tok.type, tok.string
            line, end_line = tok.start[0], tok.end[0]

            if ttype in (tokenize.NL, tokenize.ENDMARKER, tokenize.ENCODING):
                continue
            if ttype == tokenize.INDENT:
                tokens.append(Token(TokenKind.OPEN, "", line))
                at_statement_start = True
            elif ttype == tokenize.DEDENT:
                # DEDENT is reported on the next statement; the block really ended earlier
                tokens.append(Token(TokenKind.CLOSE, "", last_line))
                at_statement_start = True
            elif ttype == tokenize.NEWLINE:
                tokens.append(Token(TokenKind.END, "", line))
                at_statement_start = True
            elif ttype == tokenize.COMMENT:
                tokens.append(Token(TokenKind.COMMENT, text, line))
            elif ttype == tokenize.NAME:
                is_keyword = keyword.iskeyword(text) or (
                    at_statement_start and text in _PY_SOFT_KEYWORDS
                )
                kind = TokenKind.KEYWORD if is_keyword else TokenKind.NAME
                tokens.append(Token(kind, text, line))
                at_statement_start = False
                last_line = end_line
            elif ttype == tokenize.NUMBER:
                tokens.append(Token(TokenKind.NUMBER, text, line))
                at_statement_start = False
                last_line = end_line
            elif ttype in _PY_STRING_TYPES:
                tokens.append(Token(TokenKind.STRING, text, line, end_line))
                at_statement_start = False
                last_line = end_line
            elif ttype == tokenize.ERRORTOKEN and not text.strip():
                continue
            else:
                tokens.append(Token(TokenKind.OP, text, line))
                at_statement_start = False
                last_line = end_line
    except (tokenize.TokenError, SyntaxError) as e:
        raise LexError(f"python tokenize failed: {e}") from e

    return _drop_end_before_block(tokens)


def _drop_end_before_block(tokens: list[Token]) -> list[Token]:
    """`def f():` ends its logical line before the INDENT; the header is not a statement end."""
    result: list[Token] = []
    for i, tok in enumerate(tokens):
        if tok.kind is TokenKind.END:
            j = i + 1
            while j < len(tokens) and tokens[j].kind is TokenKind.COMMENT:
                j += 1
            if j < len(tokens) and tokens[j].kind is TokenKind.OPEN:
                continue
        result.append(tok)
    return result


# ---------------------------------------------------------------------------
# Brace-language front end
# ---------------------------------------------------------------------------

_BRACE_OPERATORS = (
    r"\?\?=|\?->|===|!==|<=>|\*\*=|\.\.\.|\?\?|\?\.|&&|\|\||->|=>|::|==|!=|<=|>=|"
    r"\+\+|--|\+=|-=|\*=|/=|\.=|%=|&=|\|=|\^=|<<|>>|\*\*|"
    r"[{}()\[\];,?:.+\-*/%=<>!&|^~@\\]"
)


def _brace_scanner(hash_comments: bool, name_pattern: str) -> re.Pattern[str]:
    parts = [
        r"(?P<newline>\n)",
        r"(?P<space>[ \t\r\f\v]+)",
        r"(?P<block_comment>/\*.*?\*/)",
        r"(?P<line_comment>//[^\n]*)",
    ]
    if hash_comments:
        # `#[Attr]` is a PHP 8 attribute, not a comment
        parts.append(r"(?P<hash_comment>\#(?!\[)[^\n]*)")
    parts += [
        r"(?P<string>\"(?:\\.|[^\"\\])*\"|'(?:\\.|[^'\\])*'|`(?:\\.|[^`\\])*`)",
        r"(?P<tag><\?php|<\?=|\?>)",
        r"(?P<number>\d[\w.]*)",
        rf"(?P<name>{name_pattern})",
        rf"(?P<op>{_BRACE_OPERATORS})",
        r"(?P<other>.)",
    ]
    return re.compile("|".join(parts), re.DOTALL)


def _make_brace_tokenizer(
    keywords: frozenset[str],
    hash_comments: bool,
    name_pattern: str,
    case_insensitive_keywords: bool = False,
) -> Callable[[str], list[Token]]:
    scanner = _brace_scanner(hash_comments, name_pattern)

    def tokenize_brace(source: str) -> list[Token]:
        tokens: list[Token] = []
        line = 1
        for match in scanner.finditer(source):
            group = match.lastgroup
            text = match.group()
            start_line = line
            line += text.count("\n")

            if group in ("newline", "space", "tag"):
                continue
            if group in ("block_comment", "line_comment", "hash_comment"):
                tokens.append(Token(TokenKind.COMMENT, text, start_line, line))
            elif group == "string":
                tokens.append(Token(TokenKind.STRING, text, start_line, line))
            elif group == "number":
                tokens.append(Token(TokenKind.NUMBER, text, start_line))
            elif group == "name":
                folded = text.lower() if case_insensitive_keywords else text
                if folded in keywords:
                    tokens.append(Token(TokenKind.KEYWORD, folded, start_line))
                else:
                    tokens.append(Token(TokenKind.NAME, text, start_line))
            elif text == "{":
                tokens.append(Token(TokenKind.OPEN, text, start_line))
            elif text == "}":
                tokens.append(Token(TokenKind.CLOSE, text, start_line))
            elif text == ";":
                tokens.append(Token(TokenKind.END, text, start_line))
            else:
                tokens.append(Token(TokenKind.OP, text, start_line))
        return tokens

    return tokenize_brace


_PHP_KEYWORDS = frozenset({
    "abstract", "and", "as", "break", "case", "catch", "class", "clone", "const",
    "continue", "declare", "default", "do", "echo", "else", "elseif", "enum",
    "extends", "final", "finally", "fn", "for", "foreach", "function", "global",
    "goto", "if", "implements", "include", "include_once", "instanceof",
    "insteadof", "interface", "match", "namespace", "new", "or", "print",
    "private", "protected", "public", "readonly", "require", "require_once",
    "return", "static", "switch", "throw", "trait", "try", "use", "var",
    "while", "xor", "yield",
})

_JS_KEYWORDS = frozenset({
    "abstract", "async", "await", "break", "case", "catch", "class", "const",
    "continue", "debugger", "default", "delete", "do", "else", "enum", "export",
    "extends", "finally", "for", "function", "if", "implements", "import", "in",
    "instanceof", "interface", "let", "new", "private", "protected", "public",
    "readonly", "return", "static", "super", "switch", "this", "throw", "try",
    "typeof", "var", "void", "while", "with", "yield",
})


# ---------------------------------------------------------------------------
# Dialects
# ---------------------------------------------------------------------------

PYTHON = Dialect(
    name="python",
    extensions=frozenset({".py"}),
    tokenize=tokenize_python,
    function_keywords=frozenset({"def"}),
    branch_keywords=frozenset({"if", "elif", "for", "while", "except", "case"}),
    boolean_operators=frozenset({"and", "or"}),
    ternary_operators=frozenset(),
    terminator_keywords=frozenset({"return", "raise"}),
    continuation_keywords=frozenset({"elif", "else", "except", "finally", "case"}),
    private_prefix="_",
)

PHP = Dialect(
    name="php",
    extensions=frozenset({".php"}),
    tokenize=_make_brace_tokenizer(
        _PHP_KEYWORDS, hash_comments=True, name_pattern=r"\$?[A-Za-z_\x80-\uffff][\w\x80-\uffff]*",
        case_insensitive_keywords=True,
    ),
    function_keywords=frozenset({"function", "fn"}),
    branch_keywords=frozenset({"if", "elseif", "for", "foreach", "while", "do", "case", "catch"}),
    boolean_operators=frozenset({"&&", "||", "and", "or"}),
    ternary_operators=frozenset({"?"}),
    terminator_keywords=frozenset({"return", "throw"}),
    continuation_keywords=frozenset({"case", "default", "else", "elseif", "catch", "finally"}),
    modifier_keywords=frozenset({"public", "protected", "private", "static", "final", "abstract"}),
    private_modifier="private",
)

JAVASCRIPT = Dialect(
    name="javascript",
    extensions=frozenset({".js", ".jsx", ".mjs", ".cjs", ".ts", ".tsx"}),
    tokenize=_make_brace_tokenizer(
        _JS_KEYWORDS, hash_comments=False, name_pattern=r"[A-Za-z_$#][\w$]*",
    ),
    function_keywords=frozenset({"function"}),
    branch_keywords=frozenset({"if", "for", "while", "do", "case", "catch"}),
    boolean_operators=frozenset({"&&", "||"}),
    ternary_operators=frozenset({"?"}),
    terminator_keywords=frozenset({"return", "throw"}),
    continuation_keywords=frozenset({"case", "default", "else", "catch", "finally"}),
    modifier_keywords=frozenset({"public", "protected", "private", "static", "async", "readonly", "abstract"}),
    private_modifier="private",
    private_prefix="#",
    method_shorthand=True,
)

DIALECTS: tuple[Dialect, ...] = (PYTHON, PHP, JAVASCRIPT)


def dialect_for_path(path: str, dialects: tuple[Dialect, ...] = DIALECTS) -> Dialect | None:
    suffix = PurePosixPath(path).suffix.lower()
    for dialect in dialects:
        if suffix in dialect.extensions:
            return dialect
    return None


def dialects_named(names: list[str] | tuple[str, ...] | None) -> tuple[Dialect, ...]:
    if not names:
        return DIALECTS
    wanted = {n.lower() for n in names}
    return tuple(d for d in DIALECTS if d.name in wanted)


# ---------------------------------------------------------------------------
# Shared helpers for the engines
# ---------------------------------------------------------------------------

def function_name(tokens: list[Token], index: int) -> Token | None:
    """
    Name token of the function whose keyword sits at `index`, or None for an
    anonymous closure (`function (`, `fn(`, `lambda`).
    """
    j = index + 1
    while j < len(tokens) and (
        not tokens[j].significant or tokens[j].value in ("&", "*")
    ):
        j += 1
    if j >= len(tokens):
        return None
    candidate = tokens[j]
    if candidate.kind in (TokenKind.NAME, TokenKind.KEYWORD) and candidate.value != "(":
        return candidate
    return None


_MEMBER_ACCESS = (".", "?.", "->", "::", "?->", "new")


def _next_significant(tokens: list[Token], j: int) -> int:
    while j < len(tokens) and not tokens[j].significant:
        j += 1
    return j


def _previous_significant(tokens: list[Token], j: int) -> Token | None:
    while j >= 0:
        if tokens[j].significant:
            return tokens[j]
        j -= 1
    return None


def _closing_paren(tokens: list[Token], index: int) -> int | None:
    depth = 0
    for j in range(index, len(tokens)):
        if tokens[j].kind is not TokenKind.OP:
            continue
        if tokens[j].value == "(":
            depth += 1
        elif tokens[j].value == ")":
            depth -= 1
            if depth == 0:
                return j
    return None


def shorthand_function_name(tokens: list[Token], index: int) -> Token | None:
    """
    Name token of a function declared without a function keyword, or None.

    Recognizes class and object-literal methods (`run(a) {`, with an optional
    `: Type` return annotation) and arrow functions bound to a name
    (`const total = (a) => ...`, `key: async x => ...`).
    """
    tok = tokens[index]
    if tok.kind is not TokenKind.NAME:
        return None
    before = _previous_significant(tokens, index - 1)
    if before is not None and before.value in _MEMBER_ACCESS:
        return None

    j = _next_significant(tokens, index + 1)
    if j >= len(tokens):
        return None

    if tokens[j].value == "(":
        close = _closing_paren(tokens, j)
        if close is None:
            return None
        k = _next_significant(tokens, close + 1)
        if k < len(tokens) and tokens[k].value == ":":
            while k < len(tokens) and tokens[k].kind not in (
                TokenKind.OPEN, TokenKind.CLOSE, TokenKind.END
            ) and tokens[k].value != "=>":
                k += 1
        if k < len(tokens) and tokens[k].kind is TokenKind.OPEN:
            return tok
        return None

    if tokens[j].kind is TokenKind.OP and tokens[j].value in ("=", ":"):
        k = _next_significant(tokens, j + 1)
        if k < len(tokens) and tokens[k].value == "async":
            k = _next_significant(tokens, k + 1)
        if k >= len(tokens):
            return None
        if tokens[k].value == "(":
            close = _closing_paren(tokens, k)
            if close is None:
                return None
            k = close
        elif tokens[k].kind is not TokenKind.NAME:
            return None
        k = _next_significant(tokens, k + 1)
        if k < len(tokens) and tokens[k].value == "=>":
            return tok
    return None
