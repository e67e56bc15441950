from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class TypeRef:
    kind: str
    inner: Optional["TypeRef"] = None
    name: Optional[str] = None

    def __str__(self) -> str:
        if self.kind in ("Record", "Enum"):
            return str(self.name)
        if self.inner is not None:
            return f"{self.kind}<{self.inner}>"
        return self.kind

    @property
    def is_numeric(self) -> bool:
        return self.kind in TypeCanon.NUMERIC

    @property
    def is_scalar(self) -> bool:
        return self.kind in TypeCanon.SCALAR

    @property
    def is_reference(self) -> bool:
        return self.kind in TypeCanon.REFERENCE

    @property
    def is_open(self) -> bool:
        # An error or a not-yet-inferred element somewhere inside.
        if self.kind in (ERROR.kind, HOLE.kind):
            return True
        return self.inner is not None and self.inner.is_open

    def has_hole(self) -> bool:
        if self.kind == HOLE.kind:
            return True
        return self.inner is not None and self.inner.has_hole()


INTEGER = TypeRef("Integer")
BOOLEAN = TypeRef("Boolean")
STRING = TypeRef("String")
MANA = TypeRef("Mana")
DID = TypeRef("Did")
VOID = TypeRef("Void")
# ERROR stands in for an expression that already produced a diagnostic.
ERROR = TypeRef("Error")
# HOLE is the element type of `[]`, `None` and `Err(..)` until context fills it.
HOLE = TypeRef("?")


def array_of(inner: TypeRef) -> TypeRef:
    return TypeRef("Array", inner)


def option_of(inner: TypeRef) -> TypeRef:
    return TypeRef("Option", inner)


def result_of(inner: TypeRef) -> TypeRef:
    return TypeRef("Result", inner)


def record(name: str) -> TypeRef:
    return TypeRef("Record", name=name)


def enum_type(name: str) -> TypeRef:
    return TypeRef("Enum", name=name)


class TypeCanon:
    NUMERIC = {"Integer", "Mana"}
    SCALAR = {"Integer", "Mana", "Boolean", "String", "Did", "Enum"}
    REFERENCE = {"String", "Did", "Array", "Option", "Result", "Record"}
    CONTAINERS = {"Array", "Option", "Result"}
    NAMES = {
        "Integer": INTEGER,
        "Int": INTEGER,
        "Boolean": BOOLEAN,
        "Bool": BOOLEAN,
        "String": STRING,
        "Mana": MANA,
        "Did": DID,
    }

    @classmethod
    def are_compatible(cls, declared: TypeRef, actual: TypeRef) -> bool:
        if declared.kind in (ERROR.kind, HOLE.kind) or actual.kind in (ERROR.kind, HOLE.kind):
            return True
        if declared == actual:
            return True
        if declared.is_numeric and actual.is_numeric:
            return True
        if declared.kind in cls.CONTAINERS and declared.kind == actual.kind:
            return cls.are_compatible(declared.inner, actual.inner)
        return False

    @classmethod
    def unify(cls, first: TypeRef, second: TypeRef) -> Optional[TypeRef]:
        """Common type of two compatible types, filling holes from either side."""
        if not cls.are_compatible(first, second):
            return None
        if first.kind == ERROR.kind or second.kind == ERROR.kind:
            return ERROR
        if first.kind == HOLE.kind:
            return second
        if second.kind == HOLE.kind:
            return first
        if first.kind in cls.CONTAINERS:
            return TypeRef(first.kind, cls.unify(first.inner, second.inner))
        return first

    @classmethod
    def resolve_binary_op(cls, op: str, left: TypeRef, right: TypeRef) -> Optional[TypeRef]:
        if left.kind == ERROR.kind or right.kind == ERROR.kind:
            return ERROR
        if op in ("+", "-", "*", "/", "%"):
            if left.is_numeric and right.is_numeric:
                return MANA if MANA in (left, right) else INTEGER
            return None
        if op == "++":
            if left == STRING and right == STRING:
                return STRING
            return None
        if op in ("<", ">", "<=", ">="):
            if left.is_numeric and right.is_numeric:
                return BOOLEAN
            return None
        if op in ("==", "!="):
            if left.is_scalar and right.is_scalar and cls.are_compatible(left, right):
                return BOOLEAN
            return None
        if op in ("&&", "||"):
            if left == BOOLEAN and right == BOOLEAN:
                return BOOLEAN
            return None
        return None

    @classmethod
    def resolve_unary_op(cls, op: str, operand: TypeRef) -> Optional[TypeRef]:
        if operand.kind == ERROR.kind:
            return ERROR
        if op == "-" and operand.is_numeric:
            return operand
        if op == "!" and operand == BOOLEAN:
            return BOOLEAN
        return None
