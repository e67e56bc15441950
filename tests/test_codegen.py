from __future__ import annotations

import hashlib
import json
import unittest
from pathlib import Path
from unittest import mock

import ccl_lang
from ccl_lang.layout import DATA_BASE, DataLayout, align
from ccl_lang.wasm import I32, I64, FuncType, read_sleb, read_uleb, sleb, uleb

FIXTURES = Path(__file__).resolve().parent / "fixtures"


def fixture(name: str) -> str:
    return (FIXTURES / name).read_text(encoding="utf-8")


class EncodingTests(unittest.TestCase):
    def test_leb128(self) -> None:
        self.assertEqual(uleb(0), b"\x00")
        self.assertEqual(uleb(624485), b"\xe5\x8e\x26")
        self.assertEqual(sleb(-1), b"\x7f")
        self.assertEqual(sleb(64), b"\xc0\x00")
        self.assertEqual(sleb(-123456), b"\xc0\xbb\x78")
        self.assertEqual(read_uleb(b"\xe5\x8e\x26", 0), (624485, 3))
        self.assertEqual(read_sleb(sleb(-(1 << 63)), 0)[0], -(1 << 63))

    def test_negative_unsigned_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            uleb(-1)

    def test_string_data_is_interned_and_aligned(self) -> None:
        data = DataLayout()
        first = data.intern("yes")
        second = data.intern("no")
        self.assertEqual(first, DATA_BASE)
        self.assertEqual(second, DATA_BASE + 8)
        self.assertEqual(data.intern("yes"), first)
        self.assertEqual(data.heap_base, align(DATA_BASE + len(data.blob)))
        self.assertEqual(bytes(data.blob[:7]), b"\x03\x00\x00\x00yes")


class ModuleShapeTests(unittest.TestCase):
    def test_output_is_deterministic(self) -> None:
        source = fixture("budget_vote.ccl")
        first = ccl_lang.Compiler().compile(source)
        second = ccl_lang.Compiler().compile(source)
        self.assertEqual(first.module, second.module)
        self.assertEqual(first.metadata.to_json(), second.metadata.to_json())

    def test_only_run_is_exported(self) -> None:
        result = ccl_lang.compile_contract(fixture("calculate_total.ccl"))
        listing = ccl_lang.disassemble(result.module)
        self.assertEqual([name for name, _, _ in listing.exports], ["run"])
        self.assertEqual(listing.export("run"), ("run", "func", 1))
        self.assertIsNone(listing.export("calculate_total"))

    def test_memory_export_is_optional(self) -> None:
        options = ccl_lang.CompilerOptions(export_memory=True)
        result = ccl_lang.compile_contract(fixture("calculate_total.ccl"), options)
        listing = ccl_lang.disassemble(result.module)
        self.assertEqual([(n, k) for n, k, _ in listing.exports], [("run", "func"), ("memory", "memory")])
        self.assertTrue(result.metadata.memory_exported)

    def test_host_imports_follow_first_reference(self) -> None:
        result = ccl_lang.compile_contract(fixture("budget_vote.ccl"))
        listing = ccl_lang.disassemble(result.module)
        self.assertEqual(
            [(m, n) for m, n, _ in listing.imports],
            [("icn", "host_get_caller"), ("icn", "host_get_reputation"), ("icn", "host_account_spend_mana")],
        )
        self.assertEqual(
            [(i.params, i.results) for i in result.metadata.imports],
            [([], ["i32"]), (["i32"], ["i64"]), (["i32", "i64"], ["i32"])],
        )
        # User functions are numbered after the imports.
        self.assertEqual(listing.export("run"), ("run", "func", 4))

    def test_aliases_share_one_import(self) -> None:
        result = ccl_lang.compile_contract("fn run() -> Integer { return now() + get_current_time(); }")
        self.assertEqual([i.name for i in result.metadata.imports], ["host_get_current_time"])

    def test_host_module_name_is_configurable(self) -> None:
        options = ccl_lang.CompilerOptions(host_module="env")
        result = ccl_lang.compile_contract("fn run() -> Integer { return now(); }", options)
        self.assertEqual(ccl_lang.disassemble(result.module).imports[0][0], "env")

    def test_signatures_are_shared(self) -> None:
        result = ccl_lang.compile_contract(fixture("budget_vote.ccl"))
        listing = ccl_lang.disassemble(result.module)
        # tally(Array<Ballot>) -> Integer has the same shape as get_reputation(Did) -> Integer.
        self.assertEqual(listing.types.count(FuncType((I32,), (I64,))), 1)
        self.assertEqual(listing.imports[1][2], listing.functions[0].type_index)

    def test_helpers_are_emitted_only_when_used(self) -> None:
        plain = ccl_lang.disassemble(ccl_lang.compile_contract(fixture("calculate_total.ccl")).module)
        self.assertEqual(len(plain.functions), 2)
        self.assertEqual(plain.data, [])

        strings = ccl_lang.compile_contract('fn run() -> Integer { let s = "a"; return (s ++ "b").len(); }')
        listing = ccl_lang.disassemble(strings.module)
        # run, alloc, string_concat
        self.assertEqual(len(listing.functions), 3)
        self.assertEqual(listing.functions[1].type_index, listing.types.index(FuncType((I32,), (I32,))))

    def test_memory_and_heap_global(self) -> None:
        options = ccl_lang.CompilerOptions(initial_memory_pages=2, max_memory_pages=8)
        result = ccl_lang.compile_contract('fn run() -> String { return "hello"; }', options)
        listing = ccl_lang.disassemble(result.module)
        self.assertEqual(listing.memory, (2, 8))
        self.assertEqual(listing.data, [(DATA_BASE, b"\x05\x00\x00\x00hello" + bytes(7))])
        self.assertEqual(listing.globals, [("i32", True, DATA_BASE + 16)])

    def test_locals_follow_parameters(self) -> None:
        source = "fn run(a: Integer) -> Integer { let flag = a > 1; let n = a; return n; }"
        listing = ccl_lang.disassemble(ccl_lang.compile_contract(source).module)
        self.assertEqual(listing.functions[0].locals, [(1, "i32"), (1, "i64")])

    def test_render_lists_every_section(self) -> None:
        result = ccl_lang.compile_contract(fixture("budget_vote.ccl"), ccl_lang.CompilerOptions(export_memory=True))
        text = ccl_lang.disassemble(result.module).render()
        self.assertIn("Imports (3):", text)
        self.assertIn("icn::host_get_caller", text)
        self.assertIn("Exports (2):", text)
        self.assertIn("Global 0: mut i32", text)

    def test_disassembler_rejects_garbage(self) -> None:
        with self.assertRaises(ccl_lang.CclError):
            ccl_lang.disassemble(b"\x7fELF\x01\x00\x00\x00")
        module = ccl_lang.compile_contract(fixture("counter.ccl")).module
        with self.assertRaises(ccl_lang.CclError):
            ccl_lang.disassemble(module[:-3])


class MetadataTests(unittest.TestCase):
    def test_hash_and_size_describe_the_module(self) -> None:
        result = ccl_lang.compile_contract(fixture("calculate_total.ccl"))
        self.assertEqual(result.metadata.size, len(result.module))
        self.assertEqual(result.metadata.sha256, hashlib.sha256(result.module).hexdigest())

    def test_entry_point_signature(self) -> None:
        meta = ccl_lang.compile_contract(fixture("budget_vote.ccl")).metadata
        self.assertEqual(len(meta.exports), 1)
        export = meta.exports[0]
        self.assertEqual(export.name, "run")
        self.assertEqual(
            export.params,
            [
                {"name": "amount", "type": "Mana"},
                {"name": "votes_for", "type": "Integer"},
                {"name": "votes_against", "type": "Integer"},
            ],
        )
        self.assertEqual(export.returns, "Boolean")

    def test_json_is_canonical(self) -> None:
        meta = ccl_lang.compile_contract(fixture("counter.ccl")).metadata
        text = meta.to_json()
        self.assertNotIn(": ", text)
        self.assertNotIn(", ", text)
        decoded = json.loads(text)
        self.assertEqual(list(decoded), sorted(decoded))
        self.assertEqual(decoded["language_version"], "0.3")

    def test_contract_header_is_recorded(self) -> None:
        meta = ccl_lang.compile_contract(fixture("lifecycle.ccl")).metadata
        self.assertEqual((meta.contract, meta.scope, meta.version), ("Lifecycle", "icn:coop/governance", "1.2.0"))
        decoded = json.loads(meta.to_json())
        self.assertEqual(decoded["scope"], "icn:coop/governance")
        self.assertEqual(decoded["version"], "1.2.0")

        bare = ccl_lang.compile_contract(fixture("counter.ccl")).metadata
        self.assertIsNone(bare.contract)
        self.assertIsNone(json.loads(bare.to_json())["scope"])

    def test_enum_parameters_are_exported_by_name(self) -> None:
        result = ccl_lang.compile_contract("enum Vote { Yes, No } fn run(v: Vote) -> Vote { return v; }")
        export = result.metadata.exports[0]
        self.assertEqual(export.params, [{"name": "v", "type": "Vote"}])
        self.assertEqual(export.returns, "Vote")
        listing = ccl_lang.disassemble(result.module)
        self.assertEqual(listing.types[listing.functions[0].type_index], FuncType((I64,), (I64,)))

    def test_warnings_are_recorded(self) -> None:
        result = ccl_lang.compile_contract(fixture("shadowing.ccl"))
        self.assertEqual(len(result.warnings), 1)
        self.assertEqual(result.metadata.warnings, [str(result.warnings[0])])


class PipelineTests(unittest.TestCase):
    def test_code_generation_is_skipped_on_semantic_errors(self) -> None:
        with mock.patch.object(ccl_lang.CodeGenerator, "generate") as generate:
            with self.assertRaises(ccl_lang.CompilationFailed) as ctx:
                ccl_lang.compile_contract('fn run() -> Integer { let x = "a" + true; return 1; }')
        generate.assert_not_called()
        self.assertIsInstance(ctx.exception.errors[0], ccl_lang.TypeMismatch)

    def test_optimizer_is_skipped_when_disabled(self) -> None:
        with mock.patch.object(ccl_lang.Optimizer, "optimize") as optimize:
            ccl_lang.compile_contract(fixture("counter.ccl"), ccl_lang.CompilerOptions(optimize=False))
        optimize.assert_not_called()

    def test_optimized_and_plain_builds_differ_only_when_folding_applies(self) -> None:
        source = "fn run() -> Integer { return 2 + 3; }"
        folded = ccl_lang.compile_contract(source)
        plain = ccl_lang.compile_contract(source, ccl_lang.CompilerOptions(optimize=False))
        self.assertLess(folded.metadata.size, plain.metadata.size)

    def test_compilers_do_not_share_state(self) -> None:
        compiler = ccl_lang.Compiler()
        first = compiler.compile(fixture("strings.ccl"))
        compiler.compile(fixture("budget_vote.ccl"))
        again = compiler.compile(fixture("strings.ccl"))
        self.assertEqual(first.module, again.module)


if __name__ == "__main__":
    unittest.main(verbosity=2)
