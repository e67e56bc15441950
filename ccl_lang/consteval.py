"""Compile-time evaluation with the same integer semantics as the emitted code.

Integers are 64-bit two's complement: arithmetic wraps, division truncates
toward zero and the remainder takes the sign of the dividend. Anything that
would trap at runtime (division by zero, MIN / -1) is never evaluated here.
"""

from __future__ import annotations

from typing import Callable, Optional, Union

from .exceptions import Position
from .nodes import BinaryOp, BoolLit, EnumValue, Expr, Identifier, IntLit, StringLit, UnaryOp
from .types import BOOLEAN, INTEGER, STRING, TypeRef

Value = Union[int, bool, str]

I64_MIN = -(1 << 63)
I64_MAX = (1 << 63) - 1


def wrap_i64(value: int) -> int:
    return ((value - I64_MIN) % (1 << 64)) + I64_MIN


def div_trunc(a: int, b: int) -> int:
    q = abs(a) // abs(b)
    return q if (a < 0) == (b < 0) else -q


def rem_trunc(a: int, b: int) -> int:
    return a - b * div_trunc(a, b)


def _is_int(v) -> bool:
    return isinstance(v, int) and not isinstance(v, bool)


def fold_unary(op: str, v: Value) -> Optional[Value]:
    if op == "-" and _is_int(v):
        return wrap_i64(-v)
    if op == "!" and isinstance(v, bool):
        return not v
    return None


def fold_binary(op: str, a: Value, b: Value) -> Optional[Value]:
    if _is_int(a) and _is_int(b):
        if op == "+":
            return wrap_i64(a + b)
        if op == "-":
            return wrap_i64(a - b)
        if op == "*":
            return wrap_i64(a * b)
        if op == "/":
            if b == 0 or (a == I64_MIN and b == -1):
                return None
            return div_trunc(a, b)
        if op == "%":
            if b == 0:
                return None
            return rem_trunc(a, b)
        if op == "<":
            return a < b
        if op == ">":
            return a > b
        if op == "<=":
            return a <= b
        if op == ">=":
            return a >= b
    if isinstance(a, bool) and isinstance(b, bool):
        if op == "&&":
            return a and b
        if op == "||":
            return a or b
    if isinstance(a, str) and isinstance(b, str) and op == "++":
        return a + b
    if op in ("==", "!=") and type(a) is type(b):
        return (a == b) if op == "==" else (a != b)
    return None


def literal_value(expr: Expr) -> Optional[Value]:
    if isinstance(expr, (IntLit, BoolLit, StringLit)):
        return expr.value
    return None


def evaluate(expr: Expr, lookup: Callable[[str], Optional[Value]]) -> Optional[Value]:
    """Value of a constant expression, or None when it is not one."""
    if isinstance(expr, (IntLit, BoolLit, StringLit)):
        return expr.value
    if isinstance(expr, Identifier):
        return lookup(expr.name)
    if isinstance(expr, EnumValue):
        return expr.index
    if isinstance(expr, UnaryOp):
        v = evaluate(expr.operand, lookup)
        return None if v is None else fold_unary(expr.op, v)
    if isinstance(expr, BinaryOp):
        left = evaluate(expr.left, lookup)
        if left is None:
            return None
        right = evaluate(expr.right, lookup)
        if right is None:
            return None
        return fold_binary(expr.op, left, right)
    return None


def make_literal(value: Value, type_ref: Optional[TypeRef] = None, pos: Optional[Position] = None) -> Expr:
    """Literal node for a folded value. Keeps the declared type (Mana stays Mana, enum tags stay tags)."""
    pos = pos or Position()
    if isinstance(value, bool):
        return BoolLit(value, pos=pos, type=BOOLEAN)
    if isinstance(value, int):
        keep = type_ref is not None and (type_ref.is_numeric or type_ref.kind == "Enum")
        return IntLit(value, pos=pos, type=type_ref if keep else INTEGER)
    return StringLit(value, pos=pos, type=STRING)
