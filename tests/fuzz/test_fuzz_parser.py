import unittest

import pytest

import ccl_lang
from ccl_lang.consteval import wrap_i64
from ccl_lang.nodes import IntLit

hypothesis = pytest.importorskip("hypothesis")
strategies = hypothesis.strategies

_OPS = {"+": lambda a, b: a + b, "-": lambda a, b: a - b, "*": lambda a, b: a * b}

_KEYWORD_SOUP = strategies.lists(
    strategies.sampled_from(
        ["fn", "run", "(", ")", "{", "}", "->", "Integer", "return", "let", "x", "=", ";", "1", "+",
         "if", "else", "while", "match", "=>", "_", ",", "[", "]", "\"s\"", "true", "Some", "None"]
    ),
    max_size=40,
).map(" ".join)


def _expressions(depth: int = 3):
    leaves = strategies.integers(min_value=-(10**12), max_value=10**12).map(lambda n: (str(n) if n >= 0 else f"({n})", n))
    if depth == 0:
        return leaves

    def combine(parts):
        (ltext, lval), op, (rtext, rval) = parts
        return f"({ltext} {op} {rtext})", wrap_i64(_OPS[op](lval, rval))

    return strategies.one_of(
        leaves,
        strategies.tuples(_expressions(depth - 1), strategies.sampled_from(sorted(_OPS)), _expressions(depth - 1)).map(combine),
    )


class FuzzTests(unittest.TestCase):
    @hypothesis.settings(deadline=None)
    @hypothesis.given(strategies.text())
    def test_arbitrary_text_only_raises_compiler_errors(self, trash_text: str) -> None:
        try:
            ccl_lang.compile_contract(trash_text)
        except ccl_lang.CclError:
            return

    @hypothesis.settings(deadline=None)
    @hypothesis.given(_KEYWORD_SOUP)
    def test_token_soup_only_raises_compiler_errors(self, soup: str) -> None:
        try:
            ccl_lang.compile_contract(soup)
        except ccl_lang.CclError:
            return

    @hypothesis.settings(deadline=None)
    @hypothesis.given(_expressions())
    def test_folding_matches_wrapping_arithmetic(self, expr) -> None:
        text, expected = expr
        compiler = ccl_lang.Compiler()
        program = compiler.analyze(f"fn run() -> Integer {{ return {text}; }}").program
        folded = ccl_lang.Optimizer(compiler.options).optimize(program)
        ret = folded.functions[0].body.statements[0]
        self.assertIsInstance(ret.value, IntLit)
        self.assertEqual(ret.value.value, expected)


if __name__ == "__main__":
    unittest.main(verbosity=2)
