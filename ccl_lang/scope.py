from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .types import TypeRef


@dataclass
class Symbol:
    name: str
    type: TypeRef
    mutable: bool
    # "param", "local", "loop", "binding" or "const"
    kind: str
    slot: Optional[int] = None
    # Folded initializer, constants only.
    value: Any = None


@dataclass
class Frame:
    symbols: Dict[str, Symbol]
    # Frames opened by if/while/for bodies and match arms.
    nested: bool = False


class ScopeManager:
    def __init__(self):
        self.globals: Dict[str, Symbol] = {}
        self.stack: List[Frame] = []
        self.slots: List[TypeRef] = []

    def begin_function(self) -> None:
        self.stack = []
        self.slots = []

    def push_frame(self, nested: bool = False) -> None:
        self.stack.append(Frame({}, nested))

    def pop_frame(self) -> None:
        if self.stack:
            self.stack.pop()

    def get(self, name: str) -> Optional[Symbol]:
        for frame in reversed(self.stack):
            if name in frame.symbols:
                return frame.symbols[name]
        return self.globals.get(name)

    def get_outer(self, name: str) -> Optional[Symbol]:
        """Binding that a new declaration in the current frame would hide."""
        for frame in reversed(self.stack[:-1]):
            if name in frame.symbols:
                return frame.symbols[name]
        return None

    def in_nested_body(self) -> bool:
        return bool(self.stack) and self.stack[-1].nested

    def allocate(self, type_ref: TypeRef) -> int:
        self.slots.append(type_ref)
        return len(self.slots) - 1

    def declare(self, name: str, type_ref: TypeRef, kind: str, mutable: bool = True) -> Symbol:
        """Always binds a fresh slot in the innermost frame."""
        sym = Symbol(name, type_ref, mutable, kind, self.allocate(type_ref))
        self.stack[-1].symbols[name] = sym
        return sym

    def register_global(self, symbol: Symbol) -> None:
        self.globals[symbol.name] = symbol
