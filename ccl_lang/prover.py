"""Branch feasibility checks with z3.

Guards are translated to 64-bit bit-vector formulas so the solver reasons
with the same wrap-around arithmetic the emitted code uses. Only guards
built from literals, local names and non-trapping operators are translated;
anything else (calls, division, memory reads) is left to run.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

import z3

from .nodes import BinaryOp, BoolLit, EnumValue, Expr, Identifier, IntLit, UnaryOp

logger = logging.getLogger(__name__)

_ARITH = {
    "+": lambda a, b: a + b,
    "-": lambda a, b: a - b,
    "*": lambda a, b: a * b,
}

# Signed comparisons on bit-vectors.
_COMPARE = {
    "<": lambda a, b: a < b,
    ">": lambda a, b: a > b,
    "<=": lambda a, b: a <= b,
    ">=": lambda a, b: a >= b,
}


class BranchProver:
    """One solver context per function; symbols are keyed by storage slot."""

    def __init__(self, rlimit: int):
        self.rlimit = rlimit
        self.ctx = z3.Context()
        self.symbols: Dict[int, z3.ExprRef] = {}

    def _symbol(self, ident: Identifier) -> Optional[z3.ExprRef]:
        sym = ident.symbol
        if sym is None or sym.slot is None or ident.type is None:
            return None
        if sym.slot not in self.symbols:
            name = f"s{sym.slot}"
            # Enum tags are i64 values like integers.
            if ident.type.is_numeric or ident.type.kind == "Enum":
                self.symbols[sym.slot] = z3.BitVec(name, 64, ctx=self.ctx)
            elif ident.type.kind == "Boolean":
                self.symbols[sym.slot] = z3.Bool(name, ctx=self.ctx)
            else:
                return None
        return self.symbols[sym.slot]

    def translate(self, expr: Expr) -> Optional[z3.ExprRef]:
        """Formula for a pure guard, or None when the guard is out of reach."""
        if isinstance(expr, IntLit):
            return z3.BitVecVal(expr.value, 64, ctx=self.ctx)
        if isinstance(expr, BoolLit):
            return z3.BoolVal(expr.value, ctx=self.ctx)
        if isinstance(expr, EnumValue):
            return None if expr.index is None else z3.BitVecVal(expr.index, 64, ctx=self.ctx)
        if isinstance(expr, Identifier):
            return self._symbol(expr)
        if isinstance(expr, UnaryOp):
            operand = self.translate(expr.operand)
            if operand is None:
                return None
            if expr.op == "-" and z3.is_bv(operand):
                return -operand
            if expr.op == "!" and z3.is_bool(operand):
                return z3.Not(operand)
            return None
        if isinstance(expr, BinaryOp):
            left = self.translate(expr.left)
            if left is None:
                return None
            right = self.translate(expr.right)
            if right is None:
                return None
            op = expr.op
            if z3.is_bv(left) and z3.is_bv(right):
                if op in _ARITH:
                    return _ARITH[op](left, right)
                if op in _COMPARE:
                    return _COMPARE[op](left, right)
                if op == "==":
                    return left == right
                if op == "!=":
                    return left != right
                return None
            if z3.is_bool(left) and z3.is_bool(right):
                if op == "&&":
                    return z3.And(left, right)
                if op == "||":
                    return z3.Or(left, right)
                if op == "==":
                    return left == right
                if op == "!=":
                    return left != right
            return None
        return None

    def check(self, facts: List[z3.ExprRef], goal: z3.ExprRef) -> z3.CheckSatResult:
        solver = z3.Solver(ctx=self.ctx)
        solver.set("rlimit", self.rlimit)
        solver.add(*facts)
        solver.add(goal)
        return solver.check()

    def is_infeasible(self, facts: List[z3.ExprRef], guard: z3.ExprRef) -> bool:
        """True only when the solver proves `facts and guard` has no model."""
        result = self.check(facts, guard)
        if result == z3.unknown:
            logger.debug("solver gave up on guard %s", guard)
        return result == z3.unsat

    def negate(self, formula: z3.ExprRef) -> z3.ExprRef:
        return z3.Not(formula)

    def is_implied(self, facts: List[z3.ExprRef], guard: z3.ExprRef) -> bool:
        return self.is_infeasible(facts, z3.Not(guard))
