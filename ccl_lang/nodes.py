from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Optional, Union

from .exceptions import Position
from .types import TypeRef


@dataclass
class Node:
    pos: Position = field(default_factory=Position, kw_only=True, compare=False)


@dataclass
class Expr(Node):
    # Filled in by the analyzer.
    type: Optional[TypeRef] = field(default=None, kw_only=True, compare=False)


# --- Declarations ---


@dataclass
class Param(Node):
    name: str
    type_ref: TypeRef


@dataclass
class FieldDecl(Node):
    name: str
    type_ref: TypeRef


@dataclass
class Block(Node):
    statements: list


@dataclass
class FunctionDecl(Node):
    name: str
    params: list[Param]
    return_type: Optional[TypeRef]
    body: Block
    # Slot index -> type, parameters first. Filled in by the analyzer.
    locals: list[TypeRef] = field(default_factory=list, kw_only=True, compare=False)


@dataclass
class RecordDecl(Node):
    name: str
    fields: list[FieldDecl]

    def field_index(self, name: str) -> int:
        for i, f in enumerate(self.fields):
            if f.name == name:
                return i
        return -1


@dataclass
class EnumDecl(Node):
    name: str
    variants: list[str]

    def variant_index(self, name: str) -> int:
        return self.variants.index(name) if name in self.variants else -1


@dataclass
class ConstDecl(Node):
    name: str
    type_ref: TypeRef
    value: Expr


@dataclass
class Program(Node):
    items: list
    # Name, scope and version from a `contract Name { ... }` wrapper.
    contract: Optional[str] = field(default=None, kw_only=True)
    scope: Optional[str] = field(default=None, kw_only=True)
    version: Optional[str] = field(default=None, kw_only=True)

    @property
    def functions(self) -> list[FunctionDecl]:
        return [i for i in self.items if isinstance(i, FunctionDecl)]

    @property
    def records(self) -> list[RecordDecl]:
        return [i for i in self.items if isinstance(i, RecordDecl)]

    @property
    def enums(self) -> list[EnumDecl]:
        return [i for i in self.items if isinstance(i, EnumDecl)]

    @property
    def constants(self) -> list[ConstDecl]:
        return [i for i in self.items if isinstance(i, ConstDecl)]


# --- Statements ---


@dataclass
class LetStmt(Node):
    name: str
    declared: Optional[TypeRef]
    value: Expr
    slot: Optional[int] = field(default=None, kw_only=True, compare=False)


@dataclass
class AssignStmt(Node):
    target: Expr
    value: Expr


@dataclass
class ReturnStmt(Node):
    value: Optional[Expr]


@dataclass
class ExprStmt(Node):
    expr: Expr


@dataclass
class CondBranch(Node):
    condition: Expr
    body: Block


@dataclass
class IfStmt(Node):
    """One `if / else if* / else` chain."""

    branches: list[CondBranch]
    else_block: Optional[Block]


@dataclass
class WhileStmt(Node):
    condition: Expr
    body: Block


@dataclass
class ForStmt(Node):
    name: str
    iterable: Expr
    body: Block
    slot: Optional[int] = field(default=None, kw_only=True, compare=False)


@dataclass
class BreakStmt(Node):
    pass


@dataclass
class ContinueStmt(Node):
    pass


# --- Expressions ---


@dataclass
class IntLit(Expr):
    value: int


@dataclass
class BoolLit(Expr):
    value: bool


@dataclass
class StringLit(Expr):
    value: str


@dataclass
class Identifier(Expr):
    name: str
    # scope.Symbol once resolved.
    symbol: Any = field(default=None, kw_only=True, compare=False)


@dataclass
class UnaryOp(Expr):
    op: str
    operand: Expr


@dataclass
class BinaryOp(Expr):
    op: str
    left: Expr
    right: Expr


@dataclass
class Call(Expr):
    name: str
    args: list[Expr]
    # "user", "builtin" or "host" once resolved.
    target: Optional[str] = field(default=None, kw_only=True, compare=False)


@dataclass
class MethodCall(Expr):
    receiver: Expr
    method: str
    args: list[Expr]
    # Canonical builtin name once resolved, e.g. "array_push".
    builtin: Optional[str] = field(default=None, kw_only=True, compare=False)


@dataclass
class ArrayLit(Expr):
    elements: list[Expr]


@dataclass
class Index(Expr):
    target: Expr
    index: Expr


@dataclass
class FieldAccess(Expr):
    target: Expr
    field_name: str


@dataclass
class FieldInit(Node):
    name: str
    value: Expr


@dataclass
class RecordLit(Expr):
    name: str
    fields: list[FieldInit]


@dataclass
class VariantLit(Expr):
    """Some(x), None, Ok(x) or Err(msg)."""

    variant: str
    value: Optional[Expr]


@dataclass
class EnumValue(Expr):
    """`Name::Variant`. The analyzer fills in the variant's tag."""

    enum_name: str
    variant: str
    index: Optional[int] = field(default=None, kw_only=True, compare=False)


@dataclass
class Pattern(Node):
    # int, bool, string, wild, bind, some, none, ok, err, enum
    kind: str
    value: Union[int, bool, str, None] = None
    binder: Optional[str] = None
    # Enum name for `Name::Variant` patterns; `value` holds the variant.
    owner: Optional[str] = None
    slot: Optional[int] = field(default=None, kw_only=True, compare=False)

    @property
    def is_catch_all(self) -> bool:
        return self.kind in ("wild", "bind")


@dataclass
class BlockExpr(Expr):
    statements: list
    tail: Optional[Expr]
    # True when control never reaches the tail. Set by the analyzer.
    diverges: bool = field(default=False, kw_only=True, compare=False)


@dataclass
class MatchArm(Node):
    pattern: Pattern
    body: Expr


@dataclass
class MatchExpr(Expr):
    scrutinee: Expr
    arms: list[MatchArm]


STATEMENT_TYPES = (
    LetStmt,
    AssignStmt,
    ReturnStmt,
    ExprStmt,
    IfStmt,
    WhileStmt,
    ForStmt,
    BreakStmt,
    ContinueStmt,
)


def walk(node):
    """Yields `node` and every node below it, depth first in field order."""
    yield node
    for f in fields(node):
        value = getattr(node, f.name)
        if isinstance(value, Node):
            yield from walk(value)
        elif isinstance(value, list):
            for item in value:
                if isinstance(item, Node):
                    yield from walk(item)
