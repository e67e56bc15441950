from __future__ import annotations

import logging
from typing import Dict, List, Optional

from . import consteval
from .config import CompilerOptions
from .exceptions import (
    ArityMismatch,
    CompilationFailed,
    CompilerWarning,
    DuplicateDeclaration,
    ImmutableAssignment,
    InvalidControlFlow,
    NonExhaustiveMatch,
    Position,
    SemanticError,
    ShadowedBinding,
    TypeMismatch,
    UndefinedSymbol,
    UnreachableReturn,
)
from .nodes import (
    ArrayLit,
    AssignStmt,
    BinaryOp,
    Block,
    BlockExpr,
    BoolLit,
    BreakStmt,
    Call,
    ConstDecl,
    ContinueStmt,
    EnumDecl,
    EnumValue,
    Expr,
    ExprStmt,
    FieldAccess,
    ForStmt,
    FunctionDecl,
    Identifier,
    IfStmt,
    Index,
    IntLit,
    LetStmt,
    MatchExpr,
    MethodCall,
    Pattern,
    Program,
    RecordDecl,
    RecordLit,
    ReturnStmt,
    StringLit,
    UnaryOp,
    VariantLit,
    WhileStmt,
)
from .scope import ScopeManager, Symbol
from .stdlib import StdLib
from .types import (
    BOOLEAN,
    ERROR,
    HOLE,
    INTEGER,
    STRING,
    VOID,
    TypeCanon,
    TypeRef,
    array_of,
    enum_type,
    option_of,
    record,
    result_of,
)

logger = logging.getLogger(__name__)

ENTRY_POINT = "run"

_MATCHABLE = ("Integer", "Mana", "Boolean", "String", "Option", "Result", "Enum")


class SemanticAnalyzer:
    """Resolves names, assigns storage slots and checks types.

    Every error is recorded and checking continues; expressions that already
    failed are typed as ERROR so a single mistake is reported once.
    """

    def __init__(self, options: Optional[CompilerOptions] = None):
        self.options = options or CompilerOptions.default()
        self.errors: List[SemanticError] = []
        self.warnings: List[CompilerWarning] = []
        self.scope = ScopeManager()
        self.functions: Dict[str, FunctionDecl] = {}
        self.records: Dict[str, RecordDecl] = {}
        self.enums: Dict[str, EnumDecl] = {}
        self.current: Optional[FunctionDecl] = None
        # One entry per enclosing loop: did a `break` target it?
        self.loops: List[Dict[str, bool]] = []

    # --- Reporting ---

    def error(self, cls, message: str, pos: Position) -> TypeRef:
        self.errors.append(cls(message, pos))
        return ERROR

    def warn(self, message: str, pos: Position) -> None:
        warning = CompilerWarning(message, pos)
        logger.warning("%s", warning)
        self.warnings.append(warning)

    # --- Entry ---

    def analyze(self, program: Program) -> Program:
        self._collect(program)
        for const in program.constants:
            self._check_const(const)
        for fn in program.functions:
            self._check_function(fn)
        self._check_entry_point(program)

        logger.debug(
            "analysis finished: %d function(s), %d error(s), %d warning(s)",
            len(self.functions),
            len(self.errors),
            len(self.warnings),
        )
        if self.errors:
            raise CompilationFailed(self.errors)
        return program

    def _collect(self, program: Program) -> None:
        for item in program.items:
            if isinstance(item, FunctionDecl):
                if item.name in self.functions:
                    self.error(DuplicateDeclaration, f"function '{item.name}' is already defined", item.pos)
                    continue
                if StdLib.builtin(item.name) or StdLib.host(item.name):
                    self.error(DuplicateDeclaration, f"'{item.name}' is a built-in function", item.pos)
                    continue
                self.functions[item.name] = item
            elif isinstance(item, (RecordDecl, EnumDecl)):
                if item.name in self.records or item.name in self.enums or item.name in TypeCanon.NAMES:
                    self.error(DuplicateDeclaration, f"type '{item.name}' is already defined", item.pos)
                    continue
                if isinstance(item, EnumDecl):
                    self._collect_enum(item)
                else:
                    self.records[item.name] = item

        for rec in self.records.values():
            seen = set()
            for f in rec.fields:
                if f.name in seen:
                    self.error(DuplicateDeclaration, f"field '{f.name}' repeated in '{rec.name}'", f.pos)
                seen.add(f.name)
                f.type_ref = self._resolve(f.type_ref, f.pos)

        for fn in self.functions.values():
            for p in fn.params:
                p.type_ref = self._resolve(p.type_ref, p.pos)
            if fn.return_type is not None:
                fn.return_type = self._resolve(fn.return_type, fn.pos)

    def _collect_enum(self, decl: EnumDecl) -> None:
        if not decl.variants:
            self.error(SemanticError, f"enum '{decl.name}' has no variants", decl.pos)
        seen = set()
        for variant in decl.variants:
            if variant in seen:
                self.error(DuplicateDeclaration, f"variant '{variant}' repeated in '{decl.name}'", decl.pos)
            seen.add(variant)
        self.enums[decl.name] = decl

    def _resolve(self, t: TypeRef, pos: Position) -> TypeRef:
        """The declared type with enum names resolved; ERROR if a name is unknown."""
        if t.kind == "Record":
            if t.name in self.enums:
                return enum_type(t.name)
            if t.name not in self.records:
                return self.error(UndefinedSymbol, f"unknown type '{t.name}'", pos)
            return t
        if t.inner is not None:
            inner = self._resolve(t.inner, pos)
            return ERROR if inner == ERROR else TypeRef(t.kind, inner)
        return t

    def _check_const(self, const: ConstDecl) -> None:
        if const.name in self.scope.globals:
            self.error(DuplicateDeclaration, f"constant '{const.name}' is already defined", const.pos)
            return
        const.type_ref = self._resolve(const.type_ref, const.pos)
        self.scope.begin_function()
        self.scope.push_frame()
        actual = self._value(const.value)
        self.scope.pop_frame()
        if not TypeCanon.are_compatible(const.type_ref, actual):
            self.error(
                TypeMismatch,
                f"constant '{const.name}' is declared {const.type_ref} but initialized with {actual}",
                const.pos,
            )
        value = consteval.evaluate(const.value, self._const_value)
        if value is None and actual != ERROR:
            self.error(SemanticError, f"initializer of '{const.name}' is not a compile-time constant", const.pos)
        self.scope.register_global(
            Symbol(const.name, const.type_ref, mutable=False, kind="const", value=value)
        )

    def _const_value(self, name: str):
        sym = self.scope.globals.get(name)
        return sym.value if sym is not None else None

    def _check_entry_point(self, program: Program) -> None:
        fn = self.functions.get(ENTRY_POINT)
        if fn is None:
            self.error(UndefinedSymbol, f"contract has no entry point '{ENTRY_POINT}'", program.pos)
            return
        if fn.return_type is None or not (fn.return_type.is_scalar or fn.return_type == ERROR):
            shown = fn.return_type or VOID
            self.error(TypeMismatch, f"entry point '{ENTRY_POINT}' must return a scalar, not {shown}", fn.pos)
        for p in fn.params:
            if not (p.type_ref.is_scalar or p.type_ref == ERROR):
                self.error(TypeMismatch, f"entry point parameter '{p.name}' must be a scalar, not {p.type_ref}", p.pos)

    # --- Functions and blocks ---

    def _check_function(self, fn: FunctionDecl) -> None:
        if self.functions.get(fn.name) is not fn:
            return
        self.current = fn
        self.scope.begin_function()
        self.scope.push_frame()
        for p in fn.params:
            if p.name in self.scope.stack[-1].symbols:
                self.error(DuplicateDeclaration, f"parameter '{p.name}' repeated in '{fn.name}'", p.pos)
            self.scope.declare(p.name, p.type_ref, "param")

        terminates = self._check_statements(fn.body.statements)
        if fn.return_type is not None and not terminates:
            self.error(
                UnreachableReturn,
                f"function '{fn.name}' does not return a {fn.return_type} on every path",
                fn.pos,
            )
        fn.locals = list(self.scope.slots)
        self.scope.pop_frame()
        self.current = None

    def _check_block(self, block: Block, nested: bool = True) -> bool:
        self.scope.push_frame(nested)
        try:
            return self._check_statements(block.statements)
        finally:
            self.scope.pop_frame()

    def _check_statements(self, statements: list) -> bool:
        """Checks statements in the current frame; True if control never falls out."""
        terminated = False
        warned = False
        for stmt in statements:
            if terminated and not warned:
                self.warn("unreachable statement", stmt.pos)
                warned = True
            if self._check_stmt(stmt):
                terminated = True
        return terminated

    def _check_stmt(self, stmt) -> bool:
        if isinstance(stmt, LetStmt):
            self._check_let(stmt)
            return False
        if isinstance(stmt, AssignStmt):
            self._check_assign(stmt)
            return False
        if isinstance(stmt, ReturnStmt):
            self._check_return(stmt)
            return True
        if isinstance(stmt, ExprStmt):
            self._check_expr(stmt.expr)
            return self._diverges(stmt.expr)
        if isinstance(stmt, IfStmt):
            all_return = True
            for branch in stmt.branches:
                self._condition(branch.condition, "if")
                if not self._check_block(branch.body):
                    all_return = False
            if stmt.else_block is None:
                return False
            return self._check_block(stmt.else_block) and all_return
        if isinstance(stmt, WhileStmt):
            self._condition(stmt.condition, "while")
            self.loops.append({"breaks": False})
            self._check_block(stmt.body)
            loop = self.loops.pop()
            # `while true` without a break can only be left by returning.
            return isinstance(stmt.condition, BoolLit) and stmt.condition.value and not loop["breaks"]
        if isinstance(stmt, ForStmt):
            self._check_for(stmt)
            return False
        if isinstance(stmt, (BreakStmt, ContinueStmt)):
            word = "break" if isinstance(stmt, BreakStmt) else "continue"
            if not self.loops:
                self.error(InvalidControlFlow, f"'{word}' outside of a loop", stmt.pos)
            elif word == "break":
                self.loops[-1]["breaks"] = True
            return True
        self.error(SemanticError, f"unsupported statement {type(stmt).__name__}", stmt.pos)
        return False

    def _diverges(self, expr: Expr) -> bool:
        if not isinstance(expr, MatchExpr):
            return False
        return all(getattr(arm.body, "diverges", False) for arm in expr.arms)

    def _condition(self, expr: Expr, word: str) -> None:
        t = self._value(expr)
        if not TypeCanon.are_compatible(BOOLEAN, t) or t.is_numeric:
            self.error(TypeMismatch, f"'{word}' condition must be Boolean, got {t}", expr.pos)

    def _check_let(self, stmt: LetStmt) -> None:
        actual = self._value(stmt.value)
        bound = actual
        if stmt.declared is not None:
            stmt.declared = self._resolve(stmt.declared, stmt.pos)
            if stmt.declared != ERROR and not TypeCanon.are_compatible(stmt.declared, actual):
                self.error(
                    TypeMismatch,
                    f"'{stmt.name}' is declared {stmt.declared} but initialized with {actual}",
                    stmt.value.pos,
                )
            bound = stmt.declared
        elif actual.has_hole():
            self.error(TypeMismatch, f"cannot infer the type of '{stmt.name}'; add a type annotation", stmt.pos)
            bound = ERROR

        self._report_shadowing("let", stmt.name, stmt.pos)
        sym = self.scope.declare(stmt.name, bound, "local")
        stmt.slot = sym.slot

    def _report_shadowing(self, keyword: str, name: str, pos: Position) -> None:
        if not self.scope.in_nested_body():
            return
        outer = self.scope.get_outer(name) or self.scope.globals.get(name)
        if outer is None:
            return
        policy = self.options.shadowing
        message = f"'{keyword} {name}' hides the outer '{name}'"
        if keyword == "let":
            message += " instead of assigning it"
        if policy == "error":
            self.error(ShadowedBinding, message, pos)
        elif policy == "warn":
            if keyword == "let":
                message += f"; write '{name} = ...' to update it"
            else:
                message += "; rename the loop variable"
            self.warn(message, pos)

    def _check_assign(self, stmt: AssignStmt) -> None:
        target = stmt.target
        if isinstance(target, Identifier):
            sym = self.scope.get(target.name)
            if sym is None:
                self._value(stmt.value)
                self.error(UndefinedSymbol, f"cannot assign to undeclared '{target.name}'; declare it with 'let'", target.pos)
                return
            target.symbol = sym
            target.type = sym.type
            if not sym.mutable:
                self.error(ImmutableAssignment, f"cannot assign to {sym.kind} '{target.name}'", target.pos)
            expected = sym.type
        else:
            expected = self._check_expr(target)
        actual = self._value(stmt.value)
        if not TypeCanon.are_compatible(expected, actual):
            self.error(TypeMismatch, f"cannot assign {actual} to a place of type {expected}", stmt.value.pos)

    def _check_return(self, stmt: ReturnStmt) -> None:
        expected = self.current.return_type
        if stmt.value is None:
            if expected is not None:
                self.error(TypeMismatch, f"'{self.current.name}' must return a {expected}", stmt.pos)
            return
        actual = self._value(stmt.value)
        if expected is None:
            self.error(TypeMismatch, f"'{self.current.name}' has no return type but returns {actual}", stmt.pos)
        elif not TypeCanon.are_compatible(expected, actual):
            self.error(TypeMismatch, f"'{self.current.name}' returns {expected}, got {actual}", stmt.value.pos)

    def _check_for(self, stmt: ForStmt) -> None:
        iterable = self._value(stmt.iterable)
        element = ERROR
        if iterable.kind == "Array":
            element = iterable.inner
            if element == HOLE:
                self.error(TypeMismatch, "cannot iterate over an array of unknown element type", stmt.iterable.pos)
                element = ERROR
        elif iterable != ERROR:
            self.error(TypeMismatch, f"'for' expects an Array, got {iterable}", stmt.iterable.pos)

        self.scope.push_frame(nested=True)
        self._report_shadowing("for", stmt.name, stmt.pos)
        sym = self.scope.declare(stmt.name, element, "loop", mutable=False)
        stmt.slot = sym.slot
        self.loops.append({"breaks": False})
        try:
            self._check_statements(stmt.body.statements)
        finally:
            self.loops.pop()
            self.scope.pop_frame()

    # --- Expressions ---

    def _value(self, expr: Expr) -> TypeRef:
        t = self._check_expr(expr)
        if t == VOID:
            return self.error(TypeMismatch, "expression has no value", expr.pos)
        return t

    def _check_expr(self, expr: Expr) -> TypeRef:
        t = self._infer(expr)
        expr.type = t
        return t

    def _infer(self, expr: Expr) -> TypeRef:
        if isinstance(expr, IntLit):
            if not consteval.I64_MIN <= expr.value <= consteval.I64_MAX:
                return self.error(TypeMismatch, "integer literal out of range for Integer", expr.pos)
            return INTEGER
        if isinstance(expr, BoolLit):
            return BOOLEAN
        if isinstance(expr, StringLit):
            return STRING
        if isinstance(expr, Identifier):
            sym = self.scope.get(expr.name)
            if sym is None:
                return self.error(UndefinedSymbol, f"'{expr.name}' is not defined", expr.pos)
            expr.symbol = sym
            return sym.type
        if isinstance(expr, UnaryOp):
            operand = self._value(expr.operand)
            result = TypeCanon.resolve_unary_op(expr.op, operand)
            if result is None:
                return self.error(TypeMismatch, f"operator '{expr.op}' cannot be applied to {operand}", expr.pos)
            return result
        if isinstance(expr, BinaryOp):
            left = self._value(expr.left)
            right = self._value(expr.right)
            result = TypeCanon.resolve_binary_op(expr.op, left, right)
            if result is None:
                return self.error(
                    TypeMismatch, f"operator '{expr.op}' cannot be applied to {left} and {right}", expr.pos
                )
            return result
        if isinstance(expr, Call):
            return self._check_call(expr)
        if isinstance(expr, MethodCall):
            return self._check_method(expr)
        if isinstance(expr, ArrayLit):
            return self._check_array(expr)
        if isinstance(expr, Index):
            target = self._value(expr.target)
            index = self._value(expr.index)
            if not index.is_numeric and index != ERROR:
                self.error(TypeMismatch, f"array index must be Integer, got {index}", expr.index.pos)
            if target.kind == "Array":
                return target.inner
            if target != ERROR:
                self.error(TypeMismatch, f"cannot index into {target}", expr.pos)
            return ERROR
        if isinstance(expr, FieldAccess):
            return self._check_field(expr)
        if isinstance(expr, RecordLit):
            return self._check_record_lit(expr)
        if isinstance(expr, EnumValue):
            return self._check_enum_value(expr)
        if isinstance(expr, VariantLit):
            return self._check_variant(expr)
        if isinstance(expr, MatchExpr):
            return self._check_match(expr)
        if isinstance(expr, BlockExpr):
            expr.diverges = self._check_statements(expr.statements)
            if expr.tail is not None:
                return self._check_expr(expr.tail)
            return HOLE if expr.diverges else VOID
        return self.error(SemanticError, f"unsupported expression {type(expr).__name__}", expr.pos)

    def _check_args(self, name: str, params, args: List[Expr], pos: Position) -> None:
        arg_types = [self._value(a) for a in args]
        if len(args) != len(params):
            self.error(ArityMismatch, f"'{name}' expects {len(params)} argument(s), got {len(args)}", pos)
            return
        for i, (param_t, arg_t) in enumerate(zip(params, arg_types)):
            if not TypeCanon.are_compatible(param_t, arg_t):
                self.error(
                    TypeMismatch, f"argument {i + 1} of '{name}' expects {param_t}, got {arg_t}", args[i].pos
                )

    def _check_call(self, expr: Call) -> TypeRef:
        fn = self.functions.get(expr.name)
        if fn is not None:
            expr.target = "user"
            self._check_args(expr.name, [p.type_ref for p in fn.params], expr.args, expr.pos)
            return fn.return_type or VOID

        canonical = StdLib.builtin(expr.name)
        if canonical is not None:
            expr.target = "builtin"
            expr.name = canonical
            return self._builtin_result(canonical, [self._value(a) for a in expr.args], expr.pos)

        host = StdLib.host(expr.name)
        if host is not None:
            expr.target = "host"
            self._check_args(expr.name, host.params, expr.args, expr.pos)
            return host.result or VOID

        for a in expr.args:
            self._check_expr(a)
        return self.error(UndefinedSymbol, f"function '{expr.name}' is not defined", expr.pos)

    def _builtin_result(self, canonical: str, arg_types: List[TypeRef], pos: Position) -> TypeRef:
        try:
            return StdLib.check_builtin(canonical, arg_types)
        except SemanticError as e:
            return self.error(type(e), e.message, pos)

    def _check_method(self, expr: MethodCall) -> TypeRef:
        receiver = self._value(expr.receiver)
        arg_types = [self._value(a) for a in expr.args]
        if receiver == ERROR:
            return ERROR
        canonical = StdLib.method(receiver, expr.method)
        if canonical is None:
            return self.error(TypeMismatch, f"{receiver} has no method '{expr.method}'", expr.pos)
        expr.builtin = canonical
        return self._builtin_result(canonical, [receiver] + arg_types, expr.pos)

    def _check_array(self, expr: ArrayLit) -> TypeRef:
        element = HOLE
        for item in expr.elements:
            t = self._value(item)
            joined = TypeCanon.unify(element, t)
            if joined is None:
                self.error(TypeMismatch, f"array elements must share one type; found {element} and {t}", item.pos)
                element = ERROR
            else:
                element = joined
        return array_of(element)

    def _check_field(self, expr: FieldAccess) -> TypeRef:
        target = self._value(expr.target)
        if target == ERROR:
            return ERROR
        if target.kind != "Record":
            return self.error(TypeMismatch, f"{target} has no field '{expr.field_name}'", expr.pos)
        rec = self.records.get(target.name)
        if rec is None:
            return self.error(UndefinedSymbol, f"unknown record type '{target.name}'", expr.pos)
        idx = rec.field_index(expr.field_name)
        if idx < 0:
            return self.error(UndefinedSymbol, f"'{rec.name}' has no field '{expr.field_name}'", expr.pos)
        return rec.fields[idx].type_ref

    def _check_record_lit(self, expr: RecordLit) -> TypeRef:
        rec = self.records.get(expr.name)
        if rec is None:
            for f in expr.fields:
                self._check_expr(f.value)
            return self.error(UndefinedSymbol, f"unknown record type '{expr.name}'", expr.pos)
        seen = set()
        for init in expr.fields:
            actual = self._value(init.value)
            if init.name in seen:
                self.error(DuplicateDeclaration, f"field '{init.name}' given twice", init.pos)
                continue
            seen.add(init.name)
            idx = rec.field_index(init.name)
            if idx < 0:
                self.error(UndefinedSymbol, f"'{rec.name}' has no field '{init.name}'", init.pos)
                continue
            declared = rec.fields[idx].type_ref
            if not TypeCanon.are_compatible(declared, actual):
                self.error(TypeMismatch, f"field '{init.name}' is {declared}, got {actual}", init.value.pos)
        missing = [f.name for f in rec.fields if f.name not in seen]
        if missing:
            self.error(TypeMismatch, f"missing field(s) for '{rec.name}': {', '.join(missing)}", expr.pos)
        return record(rec.name)

    def _check_enum_value(self, expr: EnumValue) -> TypeRef:
        decl = self.enums.get(expr.enum_name)
        if decl is None:
            return self.error(UndefinedSymbol, f"unknown enum '{expr.enum_name}'", expr.pos)
        idx = decl.variant_index(expr.variant)
        if idx < 0:
            return self.error(UndefinedSymbol, f"'{decl.name}' has no variant '{expr.variant}'", expr.pos)
        expr.index = idx
        return enum_type(decl.name)

    def _check_variant(self, expr: VariantLit) -> TypeRef:
        if expr.variant == "None":
            return option_of(HOLE)
        inner = self._value(expr.value)
        if expr.variant == "Some":
            return option_of(inner)
        if expr.variant == "Ok":
            return result_of(inner)
        if not TypeCanon.are_compatible(STRING, inner):
            self.error(TypeMismatch, f"Err carries a String, got {inner}", expr.value.pos)
        return result_of(HOLE)

    # --- Match ---

    def _check_match(self, expr: MatchExpr) -> TypeRef:
        subject = self._value(expr.scrutinee)
        if subject not in (ERROR,) and subject.kind not in _MATCHABLE:
            self.error(TypeMismatch, f"cannot match on {subject}", expr.scrutinee.pos)
            subject = ERROR

        result = HOLE
        covered = set()
        catch_all = False
        for arm in expr.arms:
            if catch_all:
                self.warn("unreachable match arm", arm.pos)
            self.scope.push_frame(nested=True)
            try:
                self._check_pattern(arm.pattern, subject)
                arm_t = self._check_expr(arm.body)
            finally:
                self.scope.pop_frame()
            joined = TypeCanon.unify(result, arm_t)
            if joined is None:
                self.error(TypeMismatch, f"match arms disagree: {result} and {arm_t}", arm.body.pos)
            else:
                result = joined
            if arm.pattern.is_catch_all:
                catch_all = True
            elif arm.pattern.kind in ("some", "ok", "err") and arm.pattern.binder is not None:
                covered.add(arm.pattern.kind)
            elif arm.pattern.kind in ("some", "ok", "err", "none"):
                covered.add(arm.pattern.kind)
            elif arm.pattern.kind == "bool":
                covered.add(arm.pattern.value)
            elif arm.pattern.kind == "enum":
                covered.add(("enum", arm.pattern.value))

        if subject != ERROR and not catch_all and not self._exhaustive(subject, covered):
            self.error(NonExhaustiveMatch, f"match on {subject} is not exhaustive; add a '_' arm", expr.pos)
        return result

    def _exhaustive(self, subject: TypeRef, covered: set) -> bool:
        if subject == BOOLEAN:
            return True in covered and False in covered
        if subject.kind == "Option":
            return {"some", "none"} <= covered
        if subject.kind == "Result":
            return {"ok", "err"} <= covered
        if subject.kind == "Enum":
            decl = self.enums.get(subject.name)
            return decl is not None and all(("enum", v) in covered for v in decl.variants)
        return False

    def _check_pattern(self, pattern: Pattern, subject: TypeRef) -> None:
        kind = pattern.kind
        ok = True
        bound: Optional[TypeRef] = None
        if kind == "int":
            ok = subject.is_numeric
            if not consteval.I64_MIN <= pattern.value <= consteval.I64_MAX:
                self.error(TypeMismatch, "integer pattern out of range", pattern.pos)
        elif kind == "bool":
            ok = subject == BOOLEAN
        elif kind == "string":
            ok = subject == STRING
        elif kind == "bind":
            bound = subject
        elif kind in ("some", "none"):
            ok = subject.kind == "Option"
            bound = subject.inner if ok else ERROR
        elif kind in ("ok", "err"):
            ok = subject.kind == "Result"
            bound = (subject.inner if kind == "ok" else STRING) if ok else ERROR
        elif kind == "enum":
            decl = self.enums.get(pattern.owner)
            if decl is None:
                self.error(UndefinedSymbol, f"unknown enum '{pattern.owner}'", pattern.pos)
            else:
                ok = subject == enum_type(decl.name)
                if decl.variant_index(pattern.value) < 0:
                    self.error(UndefinedSymbol, f"'{decl.name}' has no variant '{pattern.value}'", pattern.pos)
        if not ok and subject != ERROR:
            self.error(TypeMismatch, f"pattern '{kind}' cannot match a value of type {subject}", pattern.pos)
        if pattern.binder is not None:
            sym = self.scope.declare(pattern.binder, bound or ERROR, "binding", mutable=False)
            pattern.slot = sym.slot
