"""Linear memory conventions shared by the code generator and host functions.

All multi-byte values are little-endian.

    String  [len:i32][utf-8 bytes]
    Array   [len:i32][cap:i32][cap x 8-byte slot]
    Record  one 8-byte slot per field, in declaration order
    Option  [tag:i64][payload slot]   tag 1 = Some
    Result  [tag:i64][payload slot]   tag 1 = Ok, Err carries a String

Offset 0 is never handed out so a zero pointer is always invalid. String
literals live in one data segment starting at DATA_BASE; the heap starts at
the first 8-byte boundary after it.
"""

from __future__ import annotations

from typing import Dict, List

from .types import TypeRef
from .wasm import I32, I64

PAGE_SIZE = 65536
SLOT_SIZE = 8
DATA_BASE = 8

STRING_HEADER = 4
ARRAY_HEADER = 8
ARRAY_LEN_OFFSET = 0
ARRAY_CAP_OFFSET = 4
VARIANT_TAG_OFFSET = 0
VARIANT_PAYLOAD_OFFSET = 8
VARIANT_SIZE = 16

TAG_SOME = 1
TAG_NONE = 0


def align(value: int, to: int = SLOT_SIZE) -> int:
    return (value + to - 1) // to * to


def value_type(t: TypeRef) -> int:
    """Wasm value type carrying a CCL value. References are i32 pointers."""
    if t.kind == "Boolean":
        return I32
    if t.is_reference:
        return I32
    # Integer, Mana, enum tags and unconstrained placeholders.
    return I64


def array_size(capacity: int) -> int:
    return ARRAY_HEADER + capacity * SLOT_SIZE


def record_size(field_count: int) -> int:
    # Empty records still get a distinct address.
    return max(field_count, 1) * SLOT_SIZE


class DataLayout:
    """Interned string literals, laid out in first-appearance order."""

    def __init__(self):
        self.blob = bytearray()
        self.addresses: Dict[str, int] = {}
        self.order: List[str] = []

    def intern(self, text: str) -> int:
        if text in self.addresses:
            return self.addresses[text]
        raw = text.encode("utf-8")
        address = DATA_BASE + len(self.blob)
        self.blob += len(raw).to_bytes(STRING_HEADER, "little") + raw
        self.blob += bytes(align(len(self.blob)) - len(self.blob))
        self.addresses[text] = address
        self.order.append(text)
        return address

    @property
    def heap_base(self) -> int:
        return align(DATA_BASE + len(self.blob))

    def pages_needed(self) -> int:
        return (self.heap_base + PAGE_SIZE - 1) // PAGE_SIZE
