from taskgate.analysis import Risk, SuggestionType, UnusedCodeDetector
from taskgate.analysis.lexer import JAVASCRIPT, PHP, PYTHON


def _analyze(source, dialect=PYTHON, **kwargs):
    detector = UnusedCodeDetector(**kwargs)
    return detector.analyze("src/module", source, dialect.tokenize(source), dialect)


def _titles(suggestions):
    return [s.title for s in suggestions]


def test_commented_out_code_block():
    source = (
        "def balance(account):\n"
        "    # result = compute_value(account, 'latest')\n"
        "    # if result:\n"
        "    #     return result\n"
        "    return 0\n"
    )
    (s,) = _analyze(source, checks=["commented_code"])
    assert s.title == "Commented-out code"
    assert (s.start_line, s.end_line) == (2, 4)
    assert s.type is SuggestionType.UNUSED_CODE
    assert s.risk is Risk.LOW
    assert s.current_metric == 3


def test_prose_and_directives_are_not_code():
    source = (
        "# This function returns the balance held by an account\n"
        "# at the latest block, in the network's main unit.\n"
        "x = 1\n"
        "y = 2  # noqa: E501 value = something_long_enough()\n"
        "z = 3\n"
        "# short = 1\n"
    )
    assert _analyze(source, checks=["commented_code"]) == []


def test_unreachable_after_return():
    source = (
        "def f(x):\n"
        "    if x:\n"
        "        return 1\n"
        "    return 2\n"
        "    print('never')\n"
        "    print('still never')\n"
    )
    (s,) = _analyze(source, checks=["unreachable"])
    assert s.title == "Unreachable code"
    assert s.start_line == 5


def test_handler_after_return_is_reachable():
    source = (
        "def f(x):\n"
        "    try:\n"
        "        return int(x)\n"
        "    except ValueError:\n"
        "        return 0\n"
    )
    assert _analyze(source, checks=["unreachable"]) == []


def test_php_unreachable_after_throw():
    source = (
        "<?php\n"
        "function f($x) {\n"
        "    throw new Exception('no');\n"
        "    echo $x;\n"
        "}\n"
    )
    (s,) = _analyze(source, PHP, checks=["unreachable"])
    assert s.start_line == 4


def test_unused_private_python_function():
    source = (
        "def _used():\n"
        "    return 1\n"
        "\n"
        "def _orphan():\n"
        "    return 2\n"
        "\n"
        "class A:\n"
        "    def __init__(self):\n"
        "        self.v = _used()\n"
    )
    (s,) = _analyze(source, checks=["unused_private"])
    assert s.title == "Unused private routine _orphan()"
    assert s.start_line == 4


def test_unused_private_php_method():
    source = (
        "<?php\n"
        "class Driver {\n"
        "    private function unusedHelper() { return 1; }\n"
        "    private function usedHelper() { return 2; }\n"
        "    public function run() { return $this->usedHelper(); }\n"
        "}\n"
    )
    assert _titles(_analyze(source, PHP, checks=["unused_private"])) == ["Unused private routine unusedHelper()"]


def test_javascript_private_shorthand_methods():
    source = (
        "class Driver {\n"
        "  #orphan() { return 1; }\n"
        "  #used() { return 2; }\n"
        "  run() { return this.#used(); }\n"
        "}\n"
    )
    assert _titles(_analyze(source, JAVASCRIPT, checks=["unused_private"])) == ["Unused private routine #orphan()"]


def test_checks_can_be_selected():
    source = (
        "def _orphan():\n"
        "    return 1\n"
        "    x = 2\n"
    )
    assert _titles(_analyze(source, checks=["unreachable"])) == ["Unreachable code"]
    assert len(_analyze(source)) == 2
