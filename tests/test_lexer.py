import pytest

from taskgate.analysis.lexer import (
    JAVASCRIPT,
    PHP,
    PYTHON,
    LexError,
    TokenKind,
    dialect_for_path,
    dialects_named,
    function_name,
)


def _kinds(tokens):
    return [t.kind for t in tokens]


def test_python_blocks_and_statements():
    tokens = PYTHON.tokenize("def f(x):\n    if x:\n        return 1\n    return 2\n")
    kinds = _kinds(tokens)
    assert kinds.count(TokenKind.OPEN) == 2
    assert kinds.count(TokenKind.CLOSE) == 2
    # the `def f(x):` header is not a statement end
    assert tokens[kinds.index(TokenKind.OPEN) - 1].value == ":"
    assert [t.value for t in tokens if t.kind is TokenKind.KEYWORD] == ["def", "if", "return", "return"]


def test_python_comments_and_strings_keep_lines():
    tokens = PYTHON.tokenize('x = """a\nb"""\n# note\ny = 1\n')
    string = next(t for t in tokens if t.kind is TokenKind.STRING)
    assert (string.line, string.last_line) == (1, 2)
    comment = next(t for t in tokens if t.kind is TokenKind.COMMENT)
    assert (comment.value, comment.line) == ("# note", 3)


def test_python_tokenize_failure():
    with pytest.raises(LexError):
        PYTHON.tokenize('x = """never closed\n')


def test_php_keywords_are_case_insensitive():
    tokens = PHP.tokenize("<?php\nIF ($a) { echo $b; } # done\n")
    assert tokens[0].kind is TokenKind.KEYWORD and tokens[0].value == "if"
    assert any(t.kind is TokenKind.NAME and t.value == "$a" for t in tokens)
    assert tokens[-1].kind is TokenKind.COMMENT


def test_php_attribute_is_not_a_comment():
    tokens = PHP.tokenize("#[Route('/x')]\nfunction a() {}\n")
    assert not any(t.kind is TokenKind.COMMENT for t in tokens)


def test_javascript_braces_and_block_comments():
    tokens = JAVASCRIPT.tokenize("/* a\n b */\nfunction f() { return `x${1}`; }\n")
    assert tokens[0].kind is TokenKind.COMMENT and tokens[0].last_line == 2
    assert _kinds(tokens).count(TokenKind.OPEN) == 1
    assert _kinds(tokens).count(TokenKind.END) == 1


def test_function_name():
    tokens = [t for t in JAVASCRIPT.tokenize("function named() {} function () {}") if t.significant]
    assert function_name(tokens, 0).value == "named"
    second = [i for i, t in enumerate(tokens) if t.value == "function"][1]
    assert function_name(tokens, second) is None


def test_dialect_lookup():
    assert dialect_for_path("src/App.TSX") is JAVASCRIPT
    assert dialect_for_path("src/index.php") is PHP
    assert dialect_for_path("README.md") is None
    assert dialects_named(["python"]) == (PYTHON,)
    assert dialects_named(None) == (PYTHON, PHP, JAVASCRIPT)
