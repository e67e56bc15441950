from __future__ import annotations

import logging
from dataclasses import replace
from typing import List, Optional

from . import consteval
from .config import CompilerOptions
from .nodes import (
    ArrayLit,
    AssignStmt,
    BinaryOp,
    Block,
    BlockExpr,
    BoolLit,
    Call,
    CondBranch,
    ExprStmt,
    FieldAccess,
    FieldInit,
    ForStmt,
    FunctionDecl,
    Identifier,
    IfStmt,
    Index,
    LetStmt,
    MatchArm,
    MatchExpr,
    MethodCall,
    Program,
    RecordLit,
    ReturnStmt,
    UnaryOp,
    VariantLit,
    WhileStmt,
)
from .prover import BranchProver

logger = logging.getLogger(__name__)


class Optimizer:
    """Constant folding and dead-branch removal over a checked program.

    Nodes are never modified in place; every rewrite builds a replacement.
    """

    def __init__(self, options: Optional[CompilerOptions] = None):
        self.options = options or CompilerOptions.default()
        self.prover: Optional[BranchProver] = None
        self.folds = 0
        self.pruned = 0

    def optimize(self, program: Program) -> Program:
        items = [self._function(i) if isinstance(i, FunctionDecl) else i for i in program.items]
        logger.debug("optimizer: %d fold(s), %d branch(es) removed", self.folds, self.pruned)
        return replace(program, items=items)

    def _function(self, fn: FunctionDecl) -> FunctionDecl:
        if self.options.prove_dead_branches:
            self.prover = BranchProver(self.options.solver_rlimit)
        body = replace(fn.body, statements=self._statements(fn.body.statements))
        self.prover = None
        return replace(fn, body=body)

    # --- Statements ---

    def _block(self, block: Block) -> Block:
        return replace(block, statements=self._statements(block.statements))

    def _statements(self, statements: list) -> list:
        out = []
        for stmt in statements:
            out.extend(self._stmt(stmt))
        return out

    def _stmt(self, stmt) -> list:
        if isinstance(stmt, LetStmt):
            return [replace(stmt, value=self.expr(stmt.value))]
        if isinstance(stmt, AssignStmt):
            return [replace(stmt, target=self._place(stmt.target), value=self.expr(stmt.value))]
        if isinstance(stmt, ReturnStmt):
            value = self.expr(stmt.value) if stmt.value is not None else None
            return [replace(stmt, value=value)]
        if isinstance(stmt, ExprStmt):
            return [replace(stmt, expr=self.expr(stmt.expr))]
        if isinstance(stmt, IfStmt):
            return self._if(stmt)
        if isinstance(stmt, WhileStmt):
            condition = self.expr(stmt.condition)
            if self._never_true(condition, []):
                self.pruned += 1
                logger.debug("removed loop at %s: condition is never true", stmt.pos)
                return []
            return [replace(stmt, condition=condition, body=self._block(stmt.body))]
        if isinstance(stmt, ForStmt):
            return [replace(stmt, iterable=self.expr(stmt.iterable), body=self._block(stmt.body))]
        return [stmt]

    def _place(self, target):
        # Assignment targets keep their identifier; only sub-expressions fold.
        if isinstance(target, Identifier):
            return target
        return self.expr(target)

    def _if(self, stmt: IfStmt) -> list:
        branches: List[CondBranch] = []
        else_block = stmt.else_block
        facts = []
        for branch in stmt.branches:
            condition = self.expr(branch.condition)
            if isinstance(condition, BoolLit) and not condition.value:
                self.pruned += 1
                logger.debug("removed branch at %s: condition folds to false", branch.pos)
                continue
            if self._never_true(condition, facts):
                self.pruned += 1
                logger.debug("removed branch at %s: condition cannot hold", branch.pos)
                continue
            if (isinstance(condition, BoolLit) and condition.value) or self._always_true(condition, facts):
                # Later branches and the old else become unreachable.
                else_block = branch.body
                break
            branches.append(replace(branch, condition=condition, body=self._block(branch.body)))
            formula = self._formula(condition)
            if formula is not None:
                facts.append(self.prover.negate(formula))

        if else_block is not None:
            else_block = self._block(else_block)
        if not branches:
            if else_block is None:
                return []
            # Slots are already unique, so the surviving body can join the parent block.
            return list(else_block.statements)
        return [replace(stmt, branches=branches, else_block=else_block)]

    # --- Solver helpers ---

    def _formula(self, condition):
        if self.prover is None:
            return None
        return self.prover.translate(condition)

    def _never_true(self, condition, facts) -> bool:
        if isinstance(condition, BoolLit):
            return not condition.value
        formula = self._formula(condition)
        if formula is None:
            return False
        return self.prover.is_infeasible(facts, formula)

    def _always_true(self, condition, facts) -> bool:
        formula = self._formula(condition)
        if formula is None:
            return False
        return self.prover.is_implied(facts, formula)

    # --- Expressions ---

    def expr(self, expr):
        if isinstance(expr, Identifier):
            sym = expr.symbol
            if sym is not None and sym.kind == "const" and sym.value is not None:
                self.folds += 1
                return consteval.make_literal(sym.value, sym.type, expr.pos)
            return expr
        if isinstance(expr, UnaryOp):
            operand = self.expr(expr.operand)
            value = consteval.literal_value(operand)
            if value is not None:
                folded = consteval.fold_unary(expr.op, value)
                if folded is not None:
                    self.folds += 1
                    return consteval.make_literal(folded, expr.type, expr.pos)
            return replace(expr, operand=operand)
        if isinstance(expr, BinaryOp):
            return self._binary(expr)
        if isinstance(expr, Call):
            return replace(expr, args=[self.expr(a) for a in expr.args])
        if isinstance(expr, MethodCall):
            return replace(expr, receiver=self.expr(expr.receiver), args=[self.expr(a) for a in expr.args])
        if isinstance(expr, ArrayLit):
            return replace(expr, elements=[self.expr(e) for e in expr.elements])
        if isinstance(expr, Index):
            return replace(expr, target=self.expr(expr.target), index=self.expr(expr.index))
        if isinstance(expr, FieldAccess):
            return replace(expr, target=self.expr(expr.target))
        if isinstance(expr, RecordLit):
            return replace(expr, fields=[FieldInit(f.name, self.expr(f.value), pos=f.pos) for f in expr.fields])
        if isinstance(expr, VariantLit):
            if expr.value is None:
                return expr
            return replace(expr, value=self.expr(expr.value))
        if isinstance(expr, MatchExpr):
            arms = [MatchArm(a.pattern, self.expr(a.body), pos=a.pos) for a in expr.arms]
            return replace(expr, scrutinee=self.expr(expr.scrutinee), arms=arms)
        if isinstance(expr, BlockExpr):
            tail = self.expr(expr.tail) if expr.tail is not None else None
            return replace(expr, statements=self._statements(expr.statements), tail=tail)
        return expr

    def _binary(self, expr: BinaryOp):
        left = self.expr(expr.left)
        right = self.expr(expr.right)
        lv = consteval.literal_value(left)
        rv = consteval.literal_value(right)
        if lv is not None and rv is not None:
            folded = consteval.fold_binary(expr.op, lv, rv)
            if folded is not None:
                self.folds += 1
                return consteval.make_literal(folded, expr.type, expr.pos)
        # The right operand of && / || only runs when the left allows it.
        if expr.op in ("&&", "||") and isinstance(left, BoolLit):
            self.folds += 1
            if (expr.op == "&&") == left.value:
                return right
            return left
        return replace(expr, left=left, right=right)
