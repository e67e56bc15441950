from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, fields
from typing import Any, Dict, Mapping

from .exceptions import CclError

SHADOWING_POLICIES = ("warn", "error", "allow")

# The allocator computes byte sizes in i32, so 2 GiB is the ceiling.
MAX_MEMORY_PAGES = 32768

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _parse_bool(name: str, raw: str) -> bool:
    text = raw.strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise CclError(f"{name} must be a boolean, got {raw!r}")


def _parse_int(name: str, raw: str) -> int:
    try:
        return int(raw.strip())
    except ValueError:
        raise CclError(f"{name} must be an integer, got {raw!r}") from None


@dataclass(frozen=True)
class CompilerOptions:
    optimize: bool = True
    prove_dead_branches: bool = True
    solver_rlimit: int = 200000
    shadowing: str = "warn"
    array_capacity: int = 16
    initial_memory_pages: int = 1
    max_memory_pages: int = 256
    export_memory: bool = False
    host_module: str = "icn"

    def __post_init__(self):
        if self.shadowing not in SHADOWING_POLICIES:
            raise CclError(f"shadowing must be one of {', '.join(SHADOWING_POLICIES)}, got {self.shadowing!r}")
        if self.array_capacity < 1:
            raise CclError("array_capacity must be at least 1")
        if self.solver_rlimit < 0:
            raise CclError("solver_rlimit cannot be negative")
        if not 1 <= self.initial_memory_pages <= self.max_memory_pages <= MAX_MEMORY_PAGES:
            raise CclError(f"memory pages must satisfy 1 <= initial <= max <= {MAX_MEMORY_PAGES}")
        if not self.host_module:
            raise CclError("host_module cannot be empty")

    @classmethod
    def default(cls) -> "CompilerOptions":
        return cls()

    @classmethod
    def strict(cls) -> "CompilerOptions":
        return cls(shadowing="error")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "CompilerOptions":
        env = os.environ if environ is None else environ
        values: Dict[str, Any] = {}
        if "CCL_OPTIMIZE" in env:
            values["optimize"] = _parse_bool("CCL_OPTIMIZE", env["CCL_OPTIMIZE"])
        if "CCL_SHADOWING" in env:
            values["shadowing"] = env["CCL_SHADOWING"].strip().lower()
        if "CCL_ARRAY_CAPACITY" in env:
            values["array_capacity"] = _parse_int("CCL_ARRAY_CAPACITY", env["CCL_ARRAY_CAPACITY"])
        if "CCL_EXPORT_MEMORY" in env:
            values["export_memory"] = _parse_bool("CCL_EXPORT_MEMORY", env["CCL_EXPORT_MEMORY"])
        if "CCL_SOLVER_RLIMIT" in env:
            values["solver_rlimit"] = _parse_int("CCL_SOLVER_RLIMIT", env["CCL_SOLVER_RLIMIT"])
        return cls(**values)

    @classmethod
    def from_toml(cls, path: str) -> "CompilerOptions":
        """Reads the `[compiler]` table of a ccl.toml manifest."""
        try:
            with open(path, "rb") as f:
                manifest = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise CclError(f"{path}: {e}") from None
        return cls.from_mapping(manifest.get("compiler", {}))

    @classmethod
    def from_mapping(cls, table: Mapping[str, Any]) -> "CompilerOptions":
        known = {f.name: f.type for f in fields(cls)}
        values: Dict[str, Any] = {}
        for key in sorted(table):
            if key not in known:
                raise CclError(f"unknown compiler option '{key}'")
            value = table[key]
            expected = known[key]
            if expected == "bool" and not isinstance(value, bool):
                raise CclError(f"compiler option '{key}' must be a boolean")
            if expected == "int" and (isinstance(value, bool) or not isinstance(value, int)):
                raise CclError(f"compiler option '{key}' must be an integer")
            if expected == "str" and not isinstance(value, str):
                raise CclError(f"compiler option '{key}' must be a string")
            values[key] = value
        return cls(**values)
