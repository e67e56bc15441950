from __future__ import annotations

import unittest

from contract_runner import compile_source, load, read_fixture, run_fixture, wasmtime

import ccl_lang


class ExecutionTests(unittest.TestCase):
    def test_parameters_keep_declaration_order(self) -> None:
        self.assertEqual(run_fixture("calculate_total.ccl", 5, 3, 2), 17)
        self.assertEqual(run_fixture("calculate_total.ccl", 2, 10, 1), 21)

    def test_else_if_chain_selects_exactly_one_branch(self) -> None:
        contract = load(compile_source(read_fixture("grader.ccl")))
        grades = {score: contract.read_string(contract.run(score)) for score in (95, 85, 72, 65, 55)}
        self.assertEqual(grades, {95: "A", 85: "B", 72: "C", 65: "D", 55: "F"})

    def test_else_if_chain_without_optimizer(self) -> None:
        contract = load(compile_source(read_fixture("grader.ccl"), optimize=False))
        self.assertEqual([contract.read_string(contract.run(s)) for s in (85, 72, 55)], ["B", "C", "F"])

    def test_counter_loop_terminates_at_five(self) -> None:
        self.assertEqual(run_fixture("counter.ccl"), 5)

    def test_array_membership_search(self) -> None:
        self.assertEqual(run_fixture("membership.ccl", 2), 1)
        self.assertEqual(run_fixture("membership.ccl", 4), 0)

    def test_nested_loops_run_inner_body_six_times(self) -> None:
        self.assertEqual(run_fixture("nested_loops.ccl"), 6)

    def test_inner_let_does_not_touch_outer_binding(self) -> None:
        self.assertEqual(run_fixture("shadowing.ccl", 1), 10)
        self.assertEqual(run_fixture("shadowing.ccl", 0), 10)

    def test_record_fields_read_back_by_name(self) -> None:
        contract = load(compile_source(read_fixture("proposal.ccl")))
        self.assertEqual(contract.run(0), 42)
        self.assertEqual(contract.run(1), 1500)
        self.assertEqual(contract.run(2), 1)
        self.assertEqual(contract.run(3), len("Roof repair"))

    def test_record_string_field(self) -> None:
        source = """
            struct Member { name: String, shares: Integer }
            fn run() -> String {
                let m = new Member { name: "Ada", shares: 3 };
                m.shares = m.shares + 1;
                return m.name;
            }
        """
        contract = load(compile_source(source))
        self.assertEqual(contract.read_string(contract.run()), "Ada")

    def test_option_and_result_matching(self) -> None:
        contract = load(compile_source(read_fixture("option_match.ccl")))
        self.assertEqual(contract.run(10), 100)
        self.assertEqual(contract.run(20), 1050)
        self.assertEqual(contract.run(99), -1000 - len("division by zero"))

    def test_enum_tags_drive_matches_and_comparisons(self) -> None:
        self.assertEqual([run_fixture("lifecycle.ccl", n) for n in (0, 1, 2, 5)], [10, 20, 31, 31])
        self.assertEqual(run_fixture("lifecycle.ccl", 1, optimize=False), 20)

    def test_enum_crosses_the_entry_point_as_its_tag(self) -> None:
        source = (
            "enum Vote { Yes, No, Abstain }\n"
            "fn run(v: Vote) -> Boolean { return v != Vote::Abstain; }"
        )
        contract = load(compile_source(source))
        self.assertEqual([contract.run(tag) for tag in (0, 1, 2)], [1, 1, 0])

    def test_push_pop_and_length(self) -> None:
        self.assertEqual(run_fixture("collections.ccl"), 1271)

    def test_string_operations(self) -> None:
        self.assertEqual(run_fixture("strings.ccl"), 1111)
        self.assertEqual(run_fixture("strings.ccl", optimize=False), 1111)

    def test_break_and_continue(self) -> None:
        self.assertEqual(run_fixture("break_continue.ccl"), 25)

    def test_concatenation_allocates_fresh_strings(self) -> None:
        source = """
            fn run() -> String {
                let base = "vote";
                let a = base ++ "-yes";
                let b = base ++ "-no";
                return a ++ "/" ++ b ++ "/" ++ base;
            }
        """
        contract = load(compile_source(source))
        self.assertEqual(contract.read_string(contract.run()), "vote-yes/vote-no/vote")

    def test_host_functions_are_called_with_checked_arguments(self) -> None:
        result = compile_source(read_fixture("budget_vote.ccl"))
        hosts = {
            "host_get_caller": lambda: 7,
            "host_get_reputation": lambda did: 50 if did == 7 else 0,
            "host_account_spend_mana": lambda did, amount: 1,
        }
        contract = load(result, hosts)
        self.assertEqual(contract.run(1000, 3, 1), 1)
        self.assertEqual(contract.calls["host_account_spend_mana"], [(7, 1000)])

        contract = load(result, hosts)
        self.assertEqual(contract.run(1000, 1, 3), 0)
        self.assertNotIn("host_account_spend_mana", contract.calls)

        contract = load(result, hosts)
        self.assertEqual(contract.run(9000, 3, 0), 0)

    def test_low_reputation_is_refused(self) -> None:
        result = compile_source(read_fixture("budget_vote.ccl"))
        contract = load(result, {"host_get_reputation": lambda did: 3})
        self.assertEqual(contract.run(10, 5, 0), 0)

    def test_out_of_bounds_index_traps(self) -> None:
        source = """
            fn run(i: Integer) -> Integer {
                let xs = [1, 2, 3];
                return xs[i];
            }
        """
        contract = load(compile_source(source))
        self.assertEqual(contract.run(2), 3)
        with self.assertRaises((wasmtime.Trap, wasmtime.WasmtimeError)):
            contract.run(3)
        with self.assertRaises((wasmtime.Trap, wasmtime.WasmtimeError)):
            contract.run(-1)

    def test_push_beyond_capacity_traps(self) -> None:
        source = """
            fn run(n: Integer) -> Integer {
                let xs: Array<Integer> = [];
                let i = 0;
                while i < n {
                    xs.push(i);
                    i = i + 1;
                }
                return xs.len();
            }
        """
        contract = load(compile_source(source, array_capacity=4))
        self.assertEqual(contract.run(4), 4)
        with self.assertRaises((wasmtime.Trap, wasmtime.WasmtimeError)):
            contract.run(5)

    def test_division_by_zero_traps_at_runtime(self) -> None:
        result = compile_source("fn run() -> Integer { return 10 / 0; }")
        with self.assertRaises((wasmtime.Trap, wasmtime.WasmtimeError)):
            load(result).run()

    def test_integer_arithmetic_wraps_like_folding(self) -> None:
        source = "fn run(x: Integer) -> Integer { return x * 4611686018427387904; }"
        folded = ccl_lang.compile_contract("fn run() -> Integer { return 2 * 4611686018427387904; }")
        self.assertEqual(load(compile_source(source)).run(2), -9223372036854775808)
        self.assertEqual(load(folded).run(), -9223372036854775808)

    def test_every_fixture_validates(self) -> None:
        engine = wasmtime.Engine()
        for name in (
            "calculate_total.ccl",
            "grader.ccl",
            "counter.ccl",
            "membership.ccl",
            "nested_loops.ccl",
            "shadowing.ccl",
            "proposal.ccl",
            "budget_vote.ccl",
            "option_match.ccl",
            "collections.ccl",
            "strings.ccl",
            "break_continue.ccl",
            "lifecycle.ccl",
        ):
            for optimize in (True, False):
                with self.subTest(fixture=name, optimize=optimize):
                    result = ccl_lang.compile_contract(
                        read_fixture(name), ccl_lang.CompilerOptions(optimize=optimize)
                    )
                    wasmtime.Module.validate(engine, result.module)


if __name__ == "__main__":
    unittest.main(verbosity=2)
