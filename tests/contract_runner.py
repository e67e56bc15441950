from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict

import pytest

import ccl_lang

wasmtime = pytest.importorskip("wasmtime")

ROOT = Path(__file__).resolve().parents[1]
FIXTURES = ROOT / "tests" / "fixtures"

_VALTYPES = {"i32": wasmtime.ValType.i32, "i64": wasmtime.ValType.i64}


def read_fixture(name: str) -> str:
    path = FIXTURES / name
    if not path.exists():
        raise FileNotFoundError(f"Missing fixture: {path}")
    return path.read_text(encoding="utf-8")


def compile_source(source: str, **options: Any) -> ccl_lang.CompilationResult:
    options.setdefault("export_memory", True)
    return ccl_lang.compile_contract(source, ccl_lang.CompilerOptions(**options))


@dataclass
class LoadedContract:
    store: Any
    instance: Any
    calls: Dict[str, list] = field(default_factory=dict)

    def run(self, *args: int) -> Any:
        return self.instance.exports(self.store)["run"](self.store, *args)

    def read_string(self, ptr: int) -> str:
        memory = self.instance.exports(self.store)["memory"]
        length = int.from_bytes(memory.read(self.store, ptr, ptr + 4), "little")
        return bytes(memory.read(self.store, ptr + 4, ptr + 4 + length)).decode("utf-8")


def load(result: ccl_lang.CompilationResult, hosts: Dict[str, Callable[..., Any]] | None = None) -> LoadedContract:
    """Instantiates a compiled module; host imports not in `hosts` return zero."""
    hosts = hosts or {}
    engine = wasmtime.Engine()
    store = wasmtime.Store(engine)
    module = wasmtime.Module(engine, result.module)
    linker = wasmtime.Linker(engine)
    calls: Dict[str, list] = {}

    for imp in result.metadata.imports:
        ty = wasmtime.FuncType([_VALTYPES[p]() for p in imp.params], [_VALTYPES[r]() for r in imp.results])
        impl = hosts.get(imp.name)

        def stub(*args, _name=imp.name, _impl=impl, _has_result=bool(imp.results)):
            calls.setdefault(_name, []).append(args)
            if _impl is not None:
                return _impl(*args)
            return 0 if _has_result else None

        linker.define_func(imp.module, imp.name, ty, stub)

    instance = linker.instantiate(store, module)
    return LoadedContract(store, instance, calls)


def run_fixture(name: str, *args: int, hosts=None, **options: Any) -> Any:
    return load(compile_source(read_fixture(name), **options), hosts).run(*args)
