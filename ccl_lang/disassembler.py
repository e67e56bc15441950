"""Structural decoder for emitted modules.

Reads back the sections the code generator writes and renders them as a
text listing. Instruction streams are not decoded; each body is reported by
its local declarations and size.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .exceptions import CclError
from .wasm import MAGIC, VALTYPE_NAMES, VERSION, ExternKind, FuncType, Op, Section, read_sleb, read_uleb

_EXTERN_NAMES = {ExternKind.FUNC: "func", ExternKind.MEMORY: "memory", ExternKind.GLOBAL: "global"}


@dataclass
class FunctionListing:
    index: int
    type_index: int
    locals: List[Tuple[int, str]]
    body_size: int


@dataclass
class ModuleListing:
    types: List[FuncType] = field(default_factory=list)
    imports: List[Tuple[str, str, int]] = field(default_factory=list)
    functions: List[FunctionListing] = field(default_factory=list)
    memory: Optional[Tuple[int, Optional[int]]] = None
    globals: List[Tuple[str, bool, int]] = field(default_factory=list)
    exports: List[Tuple[str, str, int]] = field(default_factory=list)
    data: List[Tuple[int, bytes]] = field(default_factory=list)

    def export(self, name: str) -> Optional[Tuple[str, str, int]]:
        for entry in self.exports:
            if entry[0] == name:
                return entry
        return None

    def render(self) -> str:
        lines = [f"Types ({len(self.types)}):"]
        lines += [f"  {i}: {t}" for i, t in enumerate(self.types)]
        lines.append(f"Imports ({len(self.imports)}):")
        lines += [f"  {i}: {m}::{n} type {t}" for i, (m, n, t) in enumerate(self.imports)]
        lines.append(f"Functions ({len(self.functions)}):")
        for f in self.functions:
            local_text = ", ".join(f"{count} x {t}" for count, t in f.locals) or "none"
            lines.append(f"  {f.index}: type {f.type_index}, locals [{local_text}], {f.body_size} bytes")
        if self.memory is not None:
            minimum, maximum = self.memory
            lines.append(f"Memory: {minimum} page(s), max {maximum if maximum is not None else 'unbounded'}")
        for i, (valtype, mutable, init) in enumerate(self.globals):
            lines.append(f"Global {i}: {'mut ' if mutable else ''}{valtype} = {init}")
        lines.append(f"Exports ({len(self.exports)}):")
        lines += [f"  {n}: {kind} {index}" for n, kind, index in self.exports]
        for offset, blob in self.data:
            lines.append(f"Data at 0x{offset:04x}: {len(blob)} bytes")
        return "\n".join(lines)


class _Reader:
    def __init__(self, data: bytes, pos: int = 0, end: Optional[int] = None):
        self.data = data
        self.pos = pos
        self.end = len(data) if end is None else end

    def byte(self) -> int:
        if self.pos >= self.end:
            raise CclError("unexpected end of module")
        b = self.data[self.pos]
        self.pos += 1
        return b

    def uleb(self) -> int:
        value, self.pos = read_uleb(self.data, self.pos)
        return value

    def sleb(self) -> int:
        value, self.pos = read_sleb(self.data, self.pos)
        return value

    def raw(self, count: int) -> bytes:
        if self.pos + count > self.end:
            raise CclError("unexpected end of module")
        chunk = self.data[self.pos:self.pos + count]
        self.pos += count
        return bytes(chunk)

    def name(self) -> str:
        return self.raw(self.uleb()).decode("utf-8")

    def valtype(self) -> str:
        t = self.byte()
        if t not in VALTYPE_NAMES:
            raise CclError(f"unknown value type 0x{t:02x}")
        return VALTYPE_NAMES[t]

    def const_expr(self) -> int:
        op = self.byte()
        if op not in (Op.I32_CONST, Op.I64_CONST):
            raise CclError(f"unsupported constant expression opcode 0x{op:02x}")
        value = self.sleb()
        if self.byte() != Op.END:
            raise CclError("constant expression is not terminated")
        return value


def disassemble(binary: bytes) -> ModuleListing:
    if binary[:4] != MAGIC or binary[4:8] != VERSION:
        raise CclError("not a WebAssembly module (bad magic or version)")
    listing = ModuleListing()
    function_types: List[int] = []
    reader = _Reader(binary, 8)
    try:
        while reader.pos < len(binary):
            section_id = reader.byte()
            size = reader.uleb()
            if reader.pos + size > len(binary):
                raise CclError(f"section {section_id} runs past the end of the module")
            section = _Reader(binary, reader.pos, reader.pos + size)
            reader.pos += size
            if section_id == Section.TYPE:
                for _ in range(section.uleb()):
                    if section.byte() != 0x60:
                        raise CclError("malformed function type")
                    params = tuple(section.byte() for _ in range(section.uleb()))
                    results = tuple(section.byte() for _ in range(section.uleb()))
                    listing.types.append(FuncType(params, results))
            elif section_id == Section.IMPORT:
                for _ in range(section.uleb()):
                    module, field_name = section.name(), section.name()
                    if section.byte() != ExternKind.FUNC:
                        raise CclError("only function imports are supported")
                    listing.imports.append((module, field_name, section.uleb()))
            elif section_id == Section.FUNCTION:
                function_types = [section.uleb() for _ in range(section.uleb())]
            elif section_id == Section.MEMORY:
                section.uleb()
                flags = section.byte()
                minimum = section.uleb()
                maximum = section.uleb() if flags & 1 else None
                listing.memory = (minimum, maximum)
            elif section_id == Section.GLOBAL:
                for _ in range(section.uleb()):
                    valtype = section.valtype()
                    mutable = section.byte() == 1
                    listing.globals.append((valtype, mutable, section.const_expr()))
            elif section_id == Section.EXPORT:
                for _ in range(section.uleb()):
                    export_name = section.name()
                    kind = section.byte()
                    listing.exports.append((export_name, _EXTERN_NAMES.get(kind, f"kind{kind}"), section.uleb()))
            elif section_id == Section.CODE:
                count = section.uleb()
                if count != len(function_types):
                    raise CclError("function and code sections disagree")
                for i in range(count):
                    body_size = section.uleb()
                    body = _Reader(binary, section.pos, section.pos + body_size)
                    section.pos += body_size
                    groups = [(body.uleb(), body.valtype()) for _ in range(body.uleb())]
                    listing.functions.append(
                        FunctionListing(len(listing.imports) + i, function_types[i], groups, body_size)
                    )
            elif section_id == Section.DATA:
                for _ in range(section.uleb()):
                    section.uleb()
                    offset = section.const_expr()
                    listing.data.append((offset, section.raw(section.uleb())))
            elif section_id != Section.CUSTOM:
                raise CclError(f"unsupported section id {section_id}")
    except ValueError as e:
        raise CclError(f"malformed module: {e}") from None
    return listing
