from __future__ import annotations

import unittest

import ccl_lang
from ccl_lang.consteval import I64_MIN, div_trunc, fold_binary, rem_trunc, wrap_i64
from ccl_lang.nodes import BinaryOp, Identifier, IfStmt, IntLit, Program, ReturnStmt, WhileStmt, walk
from ccl_lang.types import MANA, enum_type


def optimized(source: str, **options) -> Program:
    opts = ccl_lang.CompilerOptions(**options)
    program = ccl_lang.Compiler(opts).analyze(source).program
    return ccl_lang.Optimizer(opts).optimize(program)


def body(program, name: str = "run") -> list:
    for fn in program.functions:
        if fn.name == name:
            return fn.body.statements
    raise KeyError(name)


class ConstantEvaluationTests(unittest.TestCase):
    def test_wraparound(self) -> None:
        self.assertEqual(wrap_i64((1 << 63)), I64_MIN)
        self.assertEqual(fold_binary("+", (1 << 63) - 1, 1), I64_MIN)

    def test_division_truncates_toward_zero(self) -> None:
        self.assertEqual(div_trunc(-7, 2), -3)
        self.assertEqual(rem_trunc(-7, 2), -1)
        self.assertEqual(rem_trunc(7, -2), 1)

    def test_trapping_operations_are_not_folded(self) -> None:
        self.assertIsNone(fold_binary("/", 10, 0))
        self.assertIsNone(fold_binary("%", 10, 0))
        self.assertIsNone(fold_binary("/", I64_MIN, -1))

    def test_mixed_kinds_do_not_fold(self) -> None:
        self.assertIsNone(fold_binary("==", 1, True))
        self.assertIsNone(fold_binary("+", "a", 1))


class FoldingTests(unittest.TestCase):
    def test_arithmetic_folds_to_one_literal(self) -> None:
        ret = body(optimized("fn run() -> Integer { return (2 + 3) * 4 - 6 / 2; }"))[0]
        self.assertIsInstance(ret.value, IntLit)
        self.assertEqual(ret.value.value, 17)

    def test_folded_literal_keeps_mana(self) -> None:
        ret = body(optimized("fn run() -> Mana { let m: Mana = 5; return m + 10 * 3; }"))[1]
        self.assertIsInstance(ret.value, BinaryOp)
        self.assertIsInstance(ret.value.right, IntLit)
        self.assertEqual(ret.value.right.value, 30)

        ret = body(optimized("const FEE: Mana = 2 * 50; fn run() -> Mana { return FEE; }"))[0]
        self.assertIsInstance(ret.value, IntLit)
        self.assertEqual(ret.value.value, 100)
        self.assertEqual(ret.value.type, MANA)

    def test_division_by_zero_is_left_for_runtime(self) -> None:
        ret = body(optimized("fn run() -> Integer { return 10 / 0; }"))[0]
        self.assertIsInstance(ret.value, BinaryOp)
        self.assertEqual(ret.value.op, "/")

    def test_constants_are_inlined(self) -> None:
        program = optimized(
            "const LIMIT: Integer = 4; const DOUBLE: Integer = LIMIT * 2; fn run() -> Integer { return DOUBLE + 1; }"
        )
        ret = body(program)[0]
        self.assertIsInstance(ret, ReturnStmt)
        self.assertEqual(ret.value.value, 9)

    def test_enum_constants_inline_as_tags(self) -> None:
        source = "enum Phase { Draft, Open } const START: Phase = Phase::Open; fn run() -> Phase { return START; }"
        ret = body(optimized(source))[0]
        self.assertIsInstance(ret.value, IntLit)
        self.assertEqual(ret.value.value, 1)
        self.assertEqual(ret.value.type, enum_type("Phase"))

    def test_string_concatenation_folds(self) -> None:
        ret = body(optimized('fn run() -> Integer { return ("ab" ++ "cd").len(); }'))[0]
        self.assertEqual(ret.value.receiver.value, "abcd")

    def test_short_circuit_keeps_right_operand(self) -> None:
        ret = body(optimized("fn run(x: Boolean) -> Boolean { return true && x; }"))[0]
        self.assertEqual(ret.value.name, "x")
        ret = body(optimized("fn run(x: Boolean) -> Boolean { return false && x; }"))[0]
        self.assertFalse(ret.value.value)

    def test_input_program_is_not_mutated(self) -> None:
        opts = ccl_lang.CompilerOptions()
        program = ccl_lang.Compiler(opts).analyze("fn run() -> Integer { return 1 + 2; }").program
        ccl_lang.Optimizer(opts).optimize(program)
        self.assertIsInstance(program.functions[0].body.statements[0].value, BinaryOp)


class BranchPruningTests(unittest.TestCase):
    def test_false_branch_is_removed(self) -> None:
        stmts = body(optimized("fn run() -> Integer { if false { return 1; } return 2; }"))
        self.assertEqual(len(stmts), 1)
        self.assertIsInstance(stmts[0], ReturnStmt)

    def test_true_branch_replaces_the_chain(self) -> None:
        stmts = body(optimized("fn run() -> Integer { if 1 < 2 { return 1; } else { return 2; } }"))
        self.assertEqual(len(stmts), 1)
        self.assertEqual(stmts[0].value.value, 1)

    def test_never_true_loop_is_removed(self) -> None:
        stmts = body(optimized("fn run() -> Integer { while 1 > 2 { return 5; } return 0; }"))
        self.assertFalse(any(isinstance(s, WhileStmt) for s in stmts))

    def test_solver_prunes_contradicted_branch(self) -> None:
        source = """
            fn run(x: Integer) -> Integer {
                if x > 20 { return 1; }
                else if x > 30 { return 2; }
                else if x > 10 { return 3; }
                else { return 4; }
            }
        """
        chain = body(optimized(source))[0]
        self.assertIsInstance(chain, IfStmt)
        self.assertEqual(len(chain.branches), 2)
        self.assertEqual(chain.branches[1].body.statements[0].value.value, 3)

        chain = body(optimized(source, prove_dead_branches=False))[0]
        self.assertEqual(len(chain.branches), 3)

    def test_implied_branch_becomes_else(self) -> None:
        source = """
            fn run(x: Integer) -> Integer {
                if x > 5 { return 1; }
                else if x <= 5 { return 2; }
                else { return 3; }
            }
        """
        chain = body(optimized(source))[0]
        self.assertEqual(len(chain.branches), 1)
        self.assertEqual(chain.else_block.statements[0].value.value, 2)

    def test_solver_prunes_repeated_enum_guard(self) -> None:
        source = """
            enum V { Yes, No }
            fn run(v: V) -> Integer {
                if v == V::Yes { return 1; }
                else if v == V::Yes { return 2; }
                else { return 3; }
            }
        """
        chain = body(optimized(source))[0]
        self.assertIsInstance(chain, IfStmt)
        self.assertEqual(len(chain.branches), 1)
        self.assertEqual(chain.else_block.statements[0].value.value, 3)

    def test_wraparound_is_respected(self) -> None:
        # x + 1 > x fails at the maximum, so the else stays.
        source = """
            fn run(x: Integer) -> Integer {
                if x + 1 > x { return 1; } else { return 0; }
            }
        """
        chain = body(optimized(source))[0]
        self.assertIsInstance(chain, IfStmt)
        self.assertIsNotNone(chain.else_block)

    def test_guards_with_calls_are_kept(self) -> None:
        source = """
            fn run() -> Integer {
                let did = get_caller();
                if get_reputation(did) > 10 { return 1; }
                else if get_reputation(did) > 20 { return 2; }
                return 0;
            }
        """
        chain = body(optimized(source))[1]
        self.assertEqual(len(chain.branches), 2)

    def test_optimized_program_has_no_constant_names(self) -> None:
        program = optimized("const K: Integer = 3; fn run(x: Integer) -> Integer { return x * K; }")
        names = [n.name for n in walk(program.functions[0]) if isinstance(n, Identifier)]
        self.assertEqual(names, ["x"])


if __name__ == "__main__":
    unittest.main(verbosity=2)
