from __future__ import annotations

import os
import tempfile
import unittest

from ccl_lang import CclError, CompilerOptions


class CompilerOptionsTests(unittest.TestCase):
    def test_defaults(self) -> None:
        options = CompilerOptions.default()
        self.assertTrue(options.optimize)
        self.assertEqual(options.shadowing, "warn")
        self.assertEqual(options.host_module, "icn")
        self.assertFalse(options.export_memory)
        self.assertEqual(CompilerOptions.strict().shadowing, "error")

    def test_from_env(self) -> None:
        options = CompilerOptions.from_env(
            {
                "CCL_OPTIMIZE": "off",
                "CCL_SHADOWING": " Error ",
                "CCL_ARRAY_CAPACITY": "64",
                "CCL_EXPORT_MEMORY": "yes",
                "CCL_SOLVER_RLIMIT": "1000",
                "UNRELATED": "ignored",
            }
        )
        self.assertFalse(options.optimize)
        self.assertEqual(options.shadowing, "error")
        self.assertEqual(options.array_capacity, 64)
        self.assertTrue(options.export_memory)
        self.assertEqual(options.solver_rlimit, 1000)

    def test_from_env_rejects_bad_values(self) -> None:
        with self.assertRaises(CclError):
            CompilerOptions.from_env({"CCL_OPTIMIZE": "maybe"})
        with self.assertRaises(CclError):
            CompilerOptions.from_env({"CCL_ARRAY_CAPACITY": "lots"})
        with self.assertRaises(CclError):
            CompilerOptions.from_env({"CCL_SHADOWING": "ignore"})

    def test_from_toml(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "ccl.toml")
            with open(path, "w", encoding="utf-8") as f:
                f.write('[package]\nname = "coop"\n\n[compiler]\nshadowing = "allow"\nmax_memory_pages = 16\n')
            options = CompilerOptions.from_toml(path)
        self.assertEqual(options.shadowing, "allow")
        self.assertEqual(options.max_memory_pages, 16)
        self.assertTrue(options.optimize)

    def test_from_toml_without_compiler_table(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "ccl.toml")
            with open(path, "w", encoding="utf-8") as f:
                f.write('[package]\nname = "coop"\n')
            self.assertEqual(CompilerOptions.from_toml(path), CompilerOptions())

    def test_from_toml_reports_syntax_errors(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "ccl.toml")
            with open(path, "w", encoding="utf-8") as f:
                f.write("[compiler\n")
            with self.assertRaises(CclError):
                CompilerOptions.from_toml(path)

    def test_from_mapping_type_checks(self) -> None:
        with self.assertRaises(CclError):
            CompilerOptions.from_mapping({"optimize": "yes"})
        with self.assertRaises(CclError):
            CompilerOptions.from_mapping({"array_capacity": True})
        with self.assertRaises(CclError):
            CompilerOptions.from_mapping({"colour": "blue"})

    def test_invalid_combinations(self) -> None:
        with self.assertRaises(CclError):
            CompilerOptions(array_capacity=0)
        with self.assertRaises(CclError):
            CompilerOptions(initial_memory_pages=4, max_memory_pages=2)
        with self.assertRaises(CclError):
            CompilerOptions(max_memory_pages=65536)
        with self.assertRaises(CclError):
            CompilerOptions(host_module="")


if __name__ == "__main__":
    unittest.main(verbosity=2)
