"""WebAssembly binary encoding: LEB128, opcodes, instruction buffers, modules."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union

MAGIC = b"\x00asm"
VERSION = struct.pack("<I", 1)

I32 = 0x7F
I64 = 0x7E
EMPTY_BLOCK = 0x40
FUNC_FORM = 0x60

VALTYPE_NAMES = {I32: "i32", I64: "i64"}


class Section:
    CUSTOM = 0
    TYPE = 1
    IMPORT = 2
    FUNCTION = 3
    MEMORY = 5
    GLOBAL = 6
    EXPORT = 7
    CODE = 10
    DATA = 11


class ExternKind:
    FUNC = 0x00
    MEMORY = 0x02
    GLOBAL = 0x03


class Op:
    UNREACHABLE = 0x00
    BLOCK = 0x02
    LOOP = 0x03
    IF = 0x04
    ELSE = 0x05
    END = 0x0B
    BR = 0x0C
    BR_IF = 0x0D
    RETURN = 0x0F
    CALL = 0x10
    DROP = 0x1A
    LOCAL_GET = 0x20
    LOCAL_SET = 0x21
    LOCAL_TEE = 0x22
    GLOBAL_GET = 0x23
    GLOBAL_SET = 0x24
    I32_LOAD = 0x28
    I64_LOAD = 0x29
    I32_LOAD8_U = 0x2D
    I32_STORE = 0x36
    I64_STORE = 0x37
    I32_STORE8 = 0x3A
    MEMORY_SIZE = 0x3F
    MEMORY_GROW = 0x40
    I32_CONST = 0x41
    I64_CONST = 0x42
    I32_EQZ = 0x45
    I32_EQ = 0x46
    I32_NE = 0x47
    I32_LT_U = 0x49
    I32_GT_U = 0x4B
    I32_GE_U = 0x4F
    I64_EQZ = 0x50
    I64_EQ = 0x51
    I64_NE = 0x52
    I64_LT_S = 0x53
    I64_GT_S = 0x55
    I64_LE_S = 0x57
    I64_GE_S = 0x59
    I64_GE_U = 0x5A
    I32_ADD = 0x6A
    I32_SUB = 0x6B
    I32_MUL = 0x6C
    I32_AND = 0x71
    I32_SHL = 0x74
    I32_SHR_U = 0x76
    I64_ADD = 0x7C
    I64_SUB = 0x7D
    I64_MUL = 0x7E
    I64_DIV_S = 0x7F
    I64_REM_S = 0x81
    I32_WRAP_I64 = 0xA7
    I64_EXTEND_I32_U = 0xAD


def uleb(value: int) -> bytes:
    if value < 0:
        raise ValueError("unsigned LEB128 needs a non-negative value")
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def sleb(value: int) -> bytes:
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        done = (value == 0 and not byte & 0x40) or (value == -1 and byte & 0x40)
        out.append(byte if done else byte | 0x80)
        if done:
            return bytes(out)


def read_uleb(data: bytes, pos: int) -> Tuple[int, int]:
    result = 0
    shift = 0
    while True:
        if pos >= len(data):
            raise ValueError("truncated LEB128")
        byte = data[pos]
        pos += 1
        result |= (byte & 0x7F) << shift
        shift += 7
        if not byte & 0x80:
            return result, pos


def read_sleb(data: bytes, pos: int) -> Tuple[int, int]:
    result = 0
    shift = 0
    while True:
        if pos >= len(data):
            raise ValueError("truncated LEB128")
        byte = data[pos]
        pos += 1
        result |= (byte & 0x7F) << shift
        shift += 7
        if not byte & 0x80:
            if byte & 0x40:
                result -= 1 << shift
            return result, pos


def name(text: str) -> bytes:
    raw = text.encode("utf-8")
    return uleb(len(raw)) + raw


def vector(items: List[bytes]) -> bytes:
    return uleb(len(items)) + b"".join(items)


@dataclass(frozen=True)
class HelperRef:
    """Call target resolved once the set of emitted runtime helpers is known."""

    name: str


class Code:
    """Instruction buffer. Holds raw bytes plus unresolved helper calls."""

    def __init__(self):
        self.parts: List[Union[bytes, HelperRef]] = []
        self._buf = bytearray()

    def _flush(self) -> None:
        if self._buf:
            self.parts.append(bytes(self._buf))
            self._buf = bytearray()

    def emit(self, *raw: int) -> "Code":
        self._buf.extend(raw)
        return self

    def helpers(self) -> List[str]:
        self._flush()
        return [p.name for p in self.parts if isinstance(p, HelperRef)]

    def resolve(self, helper_index: Dict[str, int]) -> bytes:
        self._flush()
        out = bytearray()
        for part in self.parts:
            if isinstance(part, HelperRef):
                out.append(Op.CALL)
                out.extend(uleb(helper_index[part.name]))
            else:
                out.extend(part)
        return bytes(out)

    # --- Instructions ---

    def i32_const(self, value: int) -> "Code":
        self._buf.append(Op.I32_CONST)
        self._buf.extend(sleb(value))
        return self

    def i64_const(self, value: int) -> "Code":
        self._buf.append(Op.I64_CONST)
        self._buf.extend(sleb(value))
        return self

    def _indexed(self, op: int, index: int) -> "Code":
        self._buf.append(op)
        self._buf.extend(uleb(index))
        return self

    def local_get(self, index: int) -> "Code":
        return self._indexed(Op.LOCAL_GET, index)

    def local_set(self, index: int) -> "Code":
        return self._indexed(Op.LOCAL_SET, index)

    def local_tee(self, index: int) -> "Code":
        return self._indexed(Op.LOCAL_TEE, index)

    def global_get(self, index: int) -> "Code":
        return self._indexed(Op.GLOBAL_GET, index)

    def global_set(self, index: int) -> "Code":
        return self._indexed(Op.GLOBAL_SET, index)

    def call(self, index: int) -> "Code":
        return self._indexed(Op.CALL, index)

    def call_helper(self, helper: str) -> "Code":
        self._flush()
        self.parts.append(HelperRef(helper))
        return self

    def br(self, depth: int) -> "Code":
        return self._indexed(Op.BR, depth)

    def br_if(self, depth: int) -> "Code":
        return self._indexed(Op.BR_IF, depth)

    def block(self, result: int = EMPTY_BLOCK) -> "Code":
        return self.emit(Op.BLOCK, result)

    def loop(self, result: int = EMPTY_BLOCK) -> "Code":
        return self.emit(Op.LOOP, result)

    def if_(self, result: int = EMPTY_BLOCK) -> "Code":
        return self.emit(Op.IF, result)

    def else_(self) -> "Code":
        return self.emit(Op.ELSE)

    def end(self) -> "Code":
        return self.emit(Op.END)

    def _memory(self, op: int, align: int, offset: int) -> "Code":
        self._buf.append(op)
        self._buf.extend(uleb(align))
        self._buf.extend(uleb(offset))
        return self

    def i32_load(self, offset: int = 0) -> "Code":
        return self._memory(Op.I32_LOAD, 2, offset)

    def i64_load(self, offset: int = 0) -> "Code":
        return self._memory(Op.I64_LOAD, 3, offset)

    def i32_load8_u(self, offset: int = 0) -> "Code":
        return self._memory(Op.I32_LOAD8_U, 0, offset)

    def i32_store(self, offset: int = 0) -> "Code":
        return self._memory(Op.I32_STORE, 2, offset)

    def i64_store(self, offset: int = 0) -> "Code":
        return self._memory(Op.I64_STORE, 3, offset)

    def i32_store8(self, offset: int = 0) -> "Code":
        return self._memory(Op.I32_STORE8, 0, offset)

    def memory_size(self) -> "Code":
        return self.emit(Op.MEMORY_SIZE, 0x00)

    def memory_grow(self) -> "Code":
        return self.emit(Op.MEMORY_GROW, 0x00)


@dataclass(frozen=True)
class FuncType:
    params: Tuple[int, ...]
    results: Tuple[int, ...]

    def encode(self) -> bytes:
        return bytes([FUNC_FORM]) + uleb(len(self.params)) + bytes(self.params) + uleb(len(self.results)) + bytes(self.results)

    def __str__(self) -> str:
        params = ", ".join(VALTYPE_NAMES[p] for p in self.params)
        results = ", ".join(VALTYPE_NAMES[r] for r in self.results)
        return f"({params}) -> ({results})"


@dataclass
class Import:
    module: str
    name: str
    type_index: int


@dataclass
class Function:
    name: str
    type_index: int
    locals: List[int]
    code: Code

    def encode_body(self, helper_index: Dict[str, int]) -> bytes:
        # Runs of equal types collapse into one (count, type) entry.
        groups: List[List[int]] = []
        for t in self.locals:
            if groups and groups[-1][1] == t:
                groups[-1][0] += 1
            else:
                groups.append([1, t])
        body = vector([uleb(count) + bytes([t]) for count, t in groups])
        body += self.code.resolve(helper_index) + bytes([Op.END])
        return uleb(len(body)) + body


@dataclass
class Global:
    valtype: int
    mutable: bool
    init: int


@dataclass
class ModuleBuilder:
    types: List[FuncType] = field(default_factory=list)
    imports: List[Import] = field(default_factory=list)
    functions: List[Function] = field(default_factory=list)
    memory: Optional[Tuple[int, int]] = None
    globals: List[Global] = field(default_factory=list)
    exports: List[Tuple[str, int, int]] = field(default_factory=list)
    data: List[Tuple[int, bytes]] = field(default_factory=list)

    def type_index(self, signature: FuncType) -> int:
        if signature in self.types:
            return self.types.index(signature)
        self.types.append(signature)
        return len(self.types) - 1

    @staticmethod
    def _section(section_id: int, payload: bytes) -> bytes:
        return bytes([section_id]) + uleb(len(payload)) + payload

    def encode(self, helper_index: Dict[str, int]) -> bytes:
        out = bytearray(MAGIC + VERSION)
        if self.types:
            out += self._section(Section.TYPE, vector([t.encode() for t in self.types]))
        if self.imports:
            entries = [name(i.module) + name(i.name) + bytes([ExternKind.FUNC]) + uleb(i.type_index) for i in self.imports]
            out += self._section(Section.IMPORT, vector(entries))
        if self.functions:
            out += self._section(Section.FUNCTION, vector([uleb(f.type_index) for f in self.functions]))
        if self.memory is not None:
            minimum, maximum = self.memory
            out += self._section(Section.MEMORY, vector([b"\x01" + uleb(minimum) + uleb(maximum)]))
        if self.globals:
            entries = []
            for g in self.globals:
                init = bytes([Op.I32_CONST]) + sleb(g.init) if g.valtype == I32 else bytes([Op.I64_CONST]) + sleb(g.init)
                entries.append(bytes([g.valtype, 1 if g.mutable else 0]) + init + bytes([Op.END]))
            out += self._section(Section.GLOBAL, vector(entries))
        if self.exports:
            out += self._section(
                Section.EXPORT, vector([name(n) + bytes([kind]) + uleb(index) for n, kind, index in self.exports])
            )
        if self.functions:
            out += self._section(Section.CODE, vector([f.encode_body(helper_index) for f in self.functions]))
        if self.data:
            entries = [
                b"\x00" + bytes([Op.I32_CONST]) + sleb(offset) + bytes([Op.END]) + uleb(len(blob)) + blob
                for offset, blob in self.data
            ]
            out += self._section(Section.DATA, vector(entries))
        return bytes(out)
