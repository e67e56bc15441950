from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional, Tuple

from . import consteval
from .config import CompilerOptions
from .exceptions import CodegenError
from .layout import (
    ARRAY_CAP_OFFSET,
    ARRAY_HEADER,
    ARRAY_LEN_OFFSET,
    DATA_BASE,
    SLOT_SIZE,
    STRING_HEADER,
    TAG_NONE,
    TAG_SOME,
    VARIANT_PAYLOAD_OFFSET,
    VARIANT_SIZE,
    VARIANT_TAG_OFFSET,
    DataLayout,
    array_size,
    record_size,
    value_type,
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
    CondBranch,
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
    MatchArm,
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
    walk,
)
from .stdlib import HostFunction, StdLib
from .types import TypeRef
from .wasm import EMPTY_BLOCK, I32, I64, Code, ExternKind, FuncType, Function, Global, Import, ModuleBuilder, Op

logger = logging.getLogger(__name__)

ENTRY_POINT = "run"

# Emission order of runtime helpers; each one follows the user functions.
HELPERS = ("alloc", "string_concat", "string_eq")
HELPER_DEPS = {"string_concat": ("alloc",)}

_ARITH = {"+": Op.I64_ADD, "-": Op.I64_SUB, "*": Op.I64_MUL, "/": Op.I64_DIV_S, "%": Op.I64_REM_S}
_RELATIONAL = {"<": Op.I64_LT_S, ">": Op.I64_GT_S, "<=": Op.I64_LE_S, ">=": Op.I64_GE_S}


def _signature(params: List[TypeRef], result: Optional[TypeRef]) -> FuncType:
    return FuncType(tuple(value_type(p) for p in params), (value_type(result),) if result is not None else ())


def _load(code: Code, t: TypeRef, offset: int) -> None:
    if value_type(t) == I64:
        code.i64_load(offset)
    else:
        code.i32_load(offset)


def _store(code: Code, t: TypeRef, offset: int) -> None:
    if value_type(t) == I64:
        code.i64_store(offset)
    else:
        code.i32_store(offset)


def _has_value(t: Optional[TypeRef]) -> bool:
    return t is not None and t.kind not in ("Void", "?")


def _diverges(expr: Expr) -> bool:
    if isinstance(expr, BlockExpr):
        return expr.diverges or (expr.tail is not None and _diverges(expr.tail))
    if isinstance(expr, MatchExpr):
        return all(_diverges(arm.body) for arm in expr.arms)
    return False


class FunctionContext:
    """Per-function state: temporaries and the structured-control label stack."""

    def __init__(self, fn: FunctionDecl):
        self.fn = fn
        self.temps: List[int] = []
        self.depth = 0
        # (break level, continue level) per enclosing loop.
        self.loops: List[Tuple[int, int]] = []

    def temp(self, valtype: int) -> int:
        self.temps.append(valtype)
        return len(self.fn.locals) + len(self.temps) - 1

    def branch_depth(self, level: int) -> int:
        return self.depth - 1 - level


class CodeGenerator:
    def __init__(self, options: Optional[CompilerOptions] = None):
        self.options = options or CompilerOptions.default()
        self.module = ModuleBuilder()
        self.data = DataLayout()
        self.records: Dict[str, RecordDecl] = {}
        self.enums: Dict[str, EnumDecl] = {}
        self.functions: Dict[str, int] = {}
        self.signatures: Dict[str, FuncType] = {}
        self.hosts: Dict[str, int] = {}
        self.ctx: Optional[FunctionContext] = None
        self.heap_global = 0

    # --- Module ---

    def generate(self, program: Program) -> bytes:
        self.records = {r.name: r for r in program.records}
        self.enums = {e.name: e for e in program.enums}
        self._link_hosts(program)

        user = program.functions
        base = len(self.module.imports)
        for i, fn in enumerate(user):
            self.functions[fn.name] = base + i
            self.signatures[fn.name] = _signature([p.type_ref for p in fn.params], fn.return_type)
        if ENTRY_POINT not in self.functions:
            raise CodegenError(f"no '{ENTRY_POINT}' function to export")

        for fn in user:
            self.module.functions.append(self._function(fn))

        used = self._used_helpers()
        helper_index = {h: base + len(user) + i for i, h in enumerate(used)}
        for helper in used:
            self.module.functions.append(getattr(self, f"_helper_{helper}")())

        pages = max(self.options.initial_memory_pages, self.data.pages_needed())
        if pages > self.options.max_memory_pages:
            raise CodegenError(f"string data needs {pages} pages, more than the {self.options.max_memory_pages} allowed")
        self.module.memory = (pages, self.options.max_memory_pages)
        self.module.globals.append(Global(I32, True, self.data.heap_base))
        self.module.exports.append((ENTRY_POINT, ExternKind.FUNC, self.functions[ENTRY_POINT]))
        if self.options.export_memory:
            self.module.exports.append(("memory", ExternKind.MEMORY, 0))
        if self.data.blob:
            self.module.data.append((DATA_BASE, bytes(self.data.blob)))

        binary = self.module.encode(helper_index)
        logger.debug(
            "emitted %d bytes: %d import(s), %d function(s), %d helper(s), %d string(s)",
            len(binary),
            len(self.module.imports),
            len(user),
            len(used),
            len(self.data.order),
        )
        return binary

    def _link_hosts(self, program: Program) -> None:
        """Imports every referenced host function, in first-reference order."""
        by_import: Dict[str, int] = {}
        for fn in program.functions:
            for node in walk(fn.body):
                if not (isinstance(node, Call) and node.target == "host") or node.name in self.hosts:
                    continue
                host: HostFunction = StdLib.host(node.name)
                if host is None:
                    raise CodegenError(f"unknown host function '{node.name}'")
                if host.import_name not in by_import:
                    signature = _signature(list(host.params), host.result)
                    by_import[host.import_name] = len(self.module.imports)
                    self.module.imports.append(
                        Import(self.options.host_module, host.import_name, self.module.type_index(signature))
                    )
                self.hosts[node.name] = by_import[host.import_name]

    def _used_helpers(self) -> List[str]:
        wanted = set()
        for fn in self.module.functions:
            wanted.update(fn.code.helpers())
        for helper in list(wanted):
            wanted.update(HELPER_DEPS.get(helper, ()))
        return [h for h in HELPERS if h in wanted]

    # --- Functions ---

    def _function(self, fn: FunctionDecl) -> Function:
        signature = self.signatures[fn.name]
        self.ctx = FunctionContext(fn)
        code = Code()
        self._statements(code, fn.body.statements)
        if fn.return_type is not None:
            # Every path has returned; the validator still needs a value here.
            code.emit(Op.UNREACHABLE)
        locals_ = [value_type(t) for t in fn.locals[len(fn.params):]] + self.ctx.temps
        self.ctx = None
        return Function(fn.name, self.module.type_index(signature), locals_, code)

    def _open(self, code: Code, opener: Callable[[Code, int], Code], result: int = EMPTY_BLOCK) -> int:
        opener(code, result)
        self.ctx.depth += 1
        return self.ctx.depth - 1

    def _close(self, code: Code) -> None:
        code.end()
        self.ctx.depth -= 1

    def _trap_if(self, code: Code) -> None:
        """Consumes an i32 condition and traps when it is non-zero."""
        self._open(code, Code.if_)
        code.emit(Op.UNREACHABLE)
        self._close(code)

    # --- Statements ---

    def _statements(self, code: Code, statements: list) -> None:
        for stmt in statements:
            self._stmt(code, stmt)

    def _stmt(self, code: Code, stmt) -> None:
        if isinstance(stmt, LetStmt):
            self._expr(code, stmt.value)
            code.local_set(stmt.slot)
        elif isinstance(stmt, AssignStmt):
            self._assign(code, stmt)
        elif isinstance(stmt, ReturnStmt):
            if stmt.value is not None:
                self._expr(code, stmt.value)
            code.emit(Op.RETURN)
        elif isinstance(stmt, ExprStmt):
            if self._expr(code, stmt.expr):
                code.emit(Op.DROP)
        elif isinstance(stmt, IfStmt):
            self._if(code, stmt.branches, stmt.else_block)
        elif isinstance(stmt, WhileStmt):
            self._while(code, stmt)
        elif isinstance(stmt, ForStmt):
            self._for(code, stmt)
        elif isinstance(stmt, BreakStmt):
            self._jump(code, stmt, 0)
        elif isinstance(stmt, ContinueStmt):
            self._jump(code, stmt, 1)
        else:
            raise CodegenError(f"cannot lower statement {type(stmt).__name__} at {stmt.pos}")

    def _jump(self, code: Code, stmt, which: int) -> None:
        if not self.ctx.loops:
            raise CodegenError(f"{type(stmt).__name__} outside of a loop at {stmt.pos}")
        code.br(self.ctx.branch_depth(self.ctx.loops[-1][which]))

    def _assign(self, code: Code, stmt: AssignStmt) -> None:
        target = stmt.target
        if isinstance(target, Identifier):
            sym = target.symbol
            if sym is None or sym.slot is None:
                raise CodegenError(f"assignment to unresolved '{target.name}' at {target.pos}")
            self._expr(code, stmt.value)
            code.local_set(sym.slot)
        elif isinstance(target, FieldAccess):
            self._expr(code, target.target)
            self._expr(code, stmt.value)
            _store(code, target.type, self._field_offset(target))
        elif isinstance(target, Index):
            self._element_address(code, target.target, target.index)
            self._expr(code, stmt.value)
            _store(code, target.type, ARRAY_HEADER)
        else:
            raise CodegenError(f"cannot assign to {type(target).__name__} at {stmt.pos}")

    def _if(self, code: Code, branches: List[CondBranch], else_block: Optional[Block]) -> None:
        # Each `else if` nests inside the previous branch's else arm.
        first = branches[0]
        self._expr(code, first.condition)
        self._open(code, Code.if_)
        self._statements(code, first.body.statements)
        if len(branches) > 1 or else_block is not None:
            code.else_()
            if len(branches) > 1:
                self._if(code, branches[1:], else_block)
            else:
                self._statements(code, else_block.statements)
        self._close(code)

    def _while(self, code: Code, stmt: WhileStmt) -> None:
        exit_level = self._open(code, Code.block)
        loop_level = self._open(code, Code.loop)
        self._expr(code, stmt.condition)
        code.emit(Op.I32_EQZ)
        code.br_if(self.ctx.branch_depth(exit_level))
        continue_level = self._open(code, Code.block)
        self.ctx.loops.append((exit_level, continue_level))
        self._statements(code, stmt.body.statements)
        self.ctx.loops.pop()
        self._close(code)
        code.br(self.ctx.branch_depth(loop_level))
        self._close(code)
        self._close(code)

    def _for(self, code: Code, stmt: ForStmt) -> None:
        element = self.ctx.fn.locals[stmt.slot]
        arr = self.ctx.temp(I32)
        i = self.ctx.temp(I32)
        self._expr(code, stmt.iterable)
        code.local_set(arr)
        code.i32_const(0).local_set(i)

        exit_level = self._open(code, Code.block)
        loop_level = self._open(code, Code.loop)
        # The length is re-read each pass; the body may push or pop.
        code.local_get(i).local_get(arr).i32_load(ARRAY_LEN_OFFSET).emit(Op.I32_GE_U)
        code.br_if(self.ctx.branch_depth(exit_level))
        code.local_get(arr).local_get(i).i32_const(SLOT_SIZE).emit(Op.I32_MUL, Op.I32_ADD)
        _load(code, element, ARRAY_HEADER)
        code.local_set(stmt.slot)

        continue_level = self._open(code, Code.block)
        self.ctx.loops.append((exit_level, continue_level))
        self._statements(code, stmt.body.statements)
        self.ctx.loops.pop()
        self._close(code)

        code.local_get(i).i32_const(1).emit(Op.I32_ADD).local_set(i)
        code.br(self.ctx.branch_depth(loop_level))
        self._close(code)
        self._close(code)

    # --- Expressions ---

    def _expr(self, code: Code, expr: Expr) -> bool:
        """Emits `expr`; returns whether a value was left on the stack."""
        if isinstance(expr, IntLit):
            code.i64_const(expr.value)
            return True
        if isinstance(expr, BoolLit):
            code.i32_const(1 if expr.value else 0)
            return True
        if isinstance(expr, EnumValue):
            if expr.index is None:
                raise CodegenError(f"unresolved variant '{expr.enum_name}::{expr.variant}' at {expr.pos}")
            code.i64_const(expr.index)
            return True
        if isinstance(expr, StringLit):
            code.i32_const(self.data.intern(expr.value))
            return True
        if isinstance(expr, Identifier):
            return self._identifier(code, expr)
        if isinstance(expr, UnaryOp):
            if expr.op == "-":
                code.i64_const(0)
                self._expr(code, expr.operand)
                code.emit(Op.I64_SUB)
            elif expr.op == "!":
                self._expr(code, expr.operand)
                code.emit(Op.I32_EQZ)
            else:
                raise CodegenError(f"unknown unary operator '{expr.op}' at {expr.pos}")
            return True
        if isinstance(expr, BinaryOp):
            self._binary(code, expr)
            return True
        if isinstance(expr, Call):
            return self._call(code, expr)
        if isinstance(expr, MethodCall):
            self._builtin(code, expr.builtin, [expr.receiver] + expr.args, expr)
            return True
        if isinstance(expr, ArrayLit):
            self._array(code, expr)
            return True
        if isinstance(expr, Index):
            self._element_address(code, expr.target, expr.index)
            _load(code, expr.type, ARRAY_HEADER)
            return True
        if isinstance(expr, FieldAccess):
            self._expr(code, expr.target)
            _load(code, expr.type, self._field_offset(expr))
            return True
        if isinstance(expr, RecordLit):
            self._record(code, expr)
            return True
        if isinstance(expr, VariantLit):
            self._variant(code, expr)
            return True
        if isinstance(expr, MatchExpr):
            return self._match(code, expr)
        if isinstance(expr, BlockExpr):
            self._statements(code, expr.statements)
            if expr.tail is None:
                return False
            return self._expr(code, expr.tail)
        raise CodegenError(f"cannot lower expression {type(expr).__name__} at {expr.pos}")

    def _identifier(self, code: Code, expr: Identifier) -> bool:
        sym = expr.symbol
        if sym is None:
            raise CodegenError(f"unresolved name '{expr.name}' at {expr.pos}")
        if sym.kind == "const":
            if sym.value is None:
                raise CodegenError(f"constant '{expr.name}' has no value")
            return self._expr(code, consteval.make_literal(sym.value, sym.type, expr.pos))
        code.local_get(sym.slot)
        return True

    def _binary(self, code: Code, expr: BinaryOp) -> None:
        op = expr.op
        if op in ("&&", "||"):
            self._expr(code, expr.left)
            self._open(code, Code.if_, I32)
            if op == "&&":
                self._expr(code, expr.right)
                code.else_().i32_const(0)
            else:
                code.i32_const(1).else_()
                self._expr(code, expr.right)
            self._close(code)
            return

        self._expr(code, expr.left)
        self._expr(code, expr.right)
        if op in _ARITH:
            code.emit(_ARITH[op])
        elif op in _RELATIONAL:
            code.emit(_RELATIONAL[op])
        elif op == "++":
            code.call_helper("string_concat")
        elif op in ("==", "!="):
            self._equals(code, expr.left.type)
            if op == "!=":
                code.emit(Op.I32_EQZ)
        else:
            raise CodegenError(f"unknown binary operator '{op}' at {expr.pos}")

    def _equals(self, code: Code, t: TypeRef) -> None:
        """Consumes two values of type `t`, leaves an i32 truth value."""
        if t.is_numeric or t.kind == "Enum":
            code.emit(Op.I64_EQ)
        elif t.kind == "Boolean":
            code.emit(Op.I32_EQ)
        elif t.kind in ("String", "Did"):
            code.call_helper("string_eq")
        else:
            raise CodegenError(f"no equality for {t}")

    def _call(self, code: Code, expr: Call) -> bool:
        if expr.target == "builtin":
            self._builtin(code, expr.name, expr.args, expr)
            return True
        for arg in expr.args:
            self._expr(code, arg)
        if expr.target == "user":
            code.call(self.functions[expr.name])
            return bool(self.signatures[expr.name].results)
        if expr.target == "host":
            code.call(self.hosts[expr.name])
            return StdLib.host(expr.name).result is not None
        raise CodegenError(f"unresolved call to '{expr.name}' at {expr.pos}")

    def _field_offset(self, expr: FieldAccess) -> int:
        rec = self.records[expr.target.type.name]
        idx = rec.field_index(expr.field_name)
        if idx < 0:
            raise CodegenError(f"'{rec.name}' has no field '{expr.field_name}'")
        return idx * SLOT_SIZE

    def _element_address(self, code: Code, target: Expr, index: Expr) -> None:
        """Leaves the address of element `index`, minus the header; traps when out of bounds."""
        arr = self.ctx.temp(I32)
        i = self.ctx.temp(I64)
        self._expr(code, target)
        code.local_set(arr)
        self._expr(code, index)
        code.local_set(i)
        # Unsigned compare also rejects negative indices.
        code.local_get(i).local_get(arr).i32_load(ARRAY_LEN_OFFSET).emit(Op.I64_EXTEND_I32_U, Op.I64_GE_U)
        self._trap_if(code)
        code.local_get(arr).local_get(i).emit(Op.I32_WRAP_I64).i32_const(SLOT_SIZE).emit(Op.I32_MUL, Op.I32_ADD)

    def _array(self, code: Code, expr: ArrayLit) -> None:
        count = len(expr.elements)
        capacity = max(count, self.options.array_capacity)
        ptr = self.ctx.temp(I32)
        code.i32_const(array_size(capacity)).call_helper("alloc").local_tee(ptr)
        code.i32_const(count).i32_store(ARRAY_LEN_OFFSET)
        code.local_get(ptr).i32_const(capacity).i32_store(ARRAY_CAP_OFFSET)
        for i, element in enumerate(expr.elements):
            code.local_get(ptr)
            self._expr(code, element)
            _store(code, element.type, ARRAY_HEADER + i * SLOT_SIZE)
        code.local_get(ptr)

    def _record(self, code: Code, expr: RecordLit) -> None:
        rec = self.records[expr.name]
        ptr = self.ctx.temp(I32)
        code.i32_const(record_size(len(rec.fields))).call_helper("alloc").local_set(ptr)
        # Initializers run in source order; storage follows the declaration.
        for init in expr.fields:
            idx = rec.field_index(init.name)
            code.local_get(ptr)
            self._expr(code, init.value)
            _store(code, rec.fields[idx].type_ref, idx * SLOT_SIZE)
        code.local_get(ptr)

    def _variant(self, code: Code, expr: VariantLit) -> None:
        ptr = self.ctx.temp(I32)
        tag = TAG_SOME if expr.variant in ("Some", "Ok") else TAG_NONE
        code.i32_const(VARIANT_SIZE).call_helper("alloc").local_tee(ptr)
        code.i64_const(tag).i64_store(VARIANT_TAG_OFFSET)
        if expr.value is not None:
            code.local_get(ptr)
            self._expr(code, expr.value)
            _store(code, expr.value.type, VARIANT_PAYLOAD_OFFSET)
        code.local_get(ptr)

    # --- Built-ins ---

    def _builtin(self, code: Code, name: str, args: List[Expr], expr: Expr) -> None:
        if name in ("array_len", "string_len"):
            self._expr(code, args[0])
            code.i32_load(ARRAY_LEN_OFFSET).emit(Op.I64_EXTEND_I32_U)
        elif name == "string_concat":
            self._expr(code, args[0])
            self._expr(code, args[1])
            code.call_helper("string_concat")
        elif name == "array_push":
            self._array_push(code, args[0], args[1])
        elif name == "array_pop":
            self._array_pop(code, args[0])
        elif name == "array_contains":
            self._array_contains(code, args[0], args[1])
        else:
            raise CodegenError(f"unknown built-in '{name}' at {expr.pos}")

    @staticmethod
    def _element_type(array: Expr, item: Optional[Expr] = None) -> TypeRef:
        inner = array.type.inner
        if inner.has_hole() and item is not None:
            return item.type
        return inner

    def _array_push(self, code: Code, array: Expr, item: Expr) -> None:
        element = self._element_type(array, item)
        arr = self.ctx.temp(I32)
        value = self.ctx.temp(value_type(element))
        n = self.ctx.temp(I32)
        self._expr(code, array)
        code.local_set(arr)
        self._expr(code, item)
        code.local_set(value)

        code.local_get(arr).i32_load(ARRAY_LEN_OFFSET).local_tee(n)
        code.local_get(arr).i32_load(ARRAY_CAP_OFFSET).emit(Op.I32_GE_U)
        self._trap_if(code)
        code.local_get(arr).local_get(n).i32_const(SLOT_SIZE).emit(Op.I32_MUL, Op.I32_ADD).local_get(value)
        _store(code, element, ARRAY_HEADER)
        code.local_get(arr).local_get(n).i32_const(1).emit(Op.I32_ADD).local_tee(n).i32_store(ARRAY_LEN_OFFSET)
        code.local_get(n).emit(Op.I64_EXTEND_I32_U)

    def _array_pop(self, code: Code, array: Expr) -> None:
        arr = self.ctx.temp(I32)
        n = self.ctx.temp(I32)
        out = self.ctx.temp(I32)
        self._expr(code, array)
        code.local_set(arr)
        code.i32_const(VARIANT_SIZE).call_helper("alloc").local_set(out)
        code.local_get(arr).i32_load(ARRAY_LEN_OFFSET).local_tee(n).emit(Op.I32_EQZ)
        self._open(code, Code.if_)
        code.local_get(out).i64_const(TAG_NONE).i64_store(VARIANT_TAG_OFFSET)
        code.else_()
        code.local_get(arr).local_get(n).i32_const(1).emit(Op.I32_SUB).local_tee(n).i32_store(ARRAY_LEN_OFFSET)
        code.local_get(out).i64_const(TAG_SOME).i64_store(VARIANT_TAG_OFFSET)
        # Slots are 8 bytes whatever the element type, so copy the raw slot.
        code.local_get(out).local_get(arr).local_get(n).i32_const(SLOT_SIZE).emit(Op.I32_MUL, Op.I32_ADD)
        code.i64_load(ARRAY_HEADER).i64_store(VARIANT_PAYLOAD_OFFSET)
        self._close(code)
        code.local_get(out)

    def _array_contains(self, code: Code, array: Expr, item: Expr) -> None:
        element = self._element_type(array, item)
        arr = self.ctx.temp(I32)
        value = self.ctx.temp(value_type(element))
        i = self.ctx.temp(I32)
        found = self.ctx.temp(I32)
        self._expr(code, array)
        code.local_set(arr)
        self._expr(code, item)
        code.local_set(value)
        code.i32_const(0).local_set(i).i32_const(0).local_set(found)

        exit_level = self._open(code, Code.block)
        loop_level = self._open(code, Code.loop)
        code.local_get(i).local_get(arr).i32_load(ARRAY_LEN_OFFSET).emit(Op.I32_GE_U)
        code.br_if(self.ctx.branch_depth(exit_level))
        code.local_get(arr).local_get(i).i32_const(SLOT_SIZE).emit(Op.I32_MUL, Op.I32_ADD)
        _load(code, element, ARRAY_HEADER)
        code.local_get(value)
        self._equals(code, element)
        self._open(code, Code.if_)
        code.i32_const(1).local_set(found)
        code.br(self.ctx.branch_depth(exit_level))
        self._close(code)
        code.local_get(i).i32_const(1).emit(Op.I32_ADD).local_set(i)
        code.br(self.ctx.branch_depth(loop_level))
        self._close(code)
        self._close(code)
        code.local_get(found)

    # --- Match ---

    def _match(self, code: Code, expr: MatchExpr) -> bool:
        subject = expr.scrutinee.type
        scrutinee = self.ctx.temp(value_type(subject))
        self._expr(code, expr.scrutinee)
        code.local_set(scrutinee)
        pushes = _has_value(expr.type)
        result = value_type(expr.type) if pushes else EMPTY_BLOCK
        self._arms(code, expr.arms, scrutinee, result)
        if not pushes and _diverges(expr):
            code.emit(Op.UNREACHABLE)
        return pushes

    def _arms(self, code: Code, arms: List[MatchArm], scrutinee: int, result: int) -> None:
        arm = arms[0]
        pattern = arm.pattern
        if pattern.is_catch_all:
            # Arms after a catch-all can never run.
            self._bind(code, pattern, scrutinee)
            self._arm_body(code, arm.body, result)
            return
        self._pattern_test(code, pattern, scrutinee)
        self._open(code, Code.if_, result)
        self._bind(code, pattern, scrutinee)
        self._arm_body(code, arm.body, result)
        code.else_()
        if len(arms) > 1:
            self._arms(code, arms[1:], scrutinee, result)
        else:
            code.emit(Op.UNREACHABLE)
        self._close(code)

    def _arm_body(self, code: Code, body: Expr, result: int) -> None:
        if self._expr(code, body) and result == EMPTY_BLOCK:
            code.emit(Op.DROP)

    def _pattern_test(self, code: Code, pattern: Pattern, scrutinee: int) -> None:
        """Leaves an i32 that is non-zero when `pattern` matches."""
        kind = pattern.kind
        code.local_get(scrutinee)
        if kind == "int":
            code.i64_const(pattern.value).emit(Op.I64_EQ)
        elif kind == "bool":
            if not pattern.value:
                code.emit(Op.I32_EQZ)
        elif kind == "string":
            code.i32_const(self.data.intern(pattern.value)).call_helper("string_eq")
        elif kind == "enum":
            code.i64_const(self.enums[pattern.owner].variant_index(pattern.value)).emit(Op.I64_EQ)
        elif kind in ("some", "ok"):
            code.i64_load(VARIANT_TAG_OFFSET).i64_const(TAG_SOME).emit(Op.I64_EQ)
        elif kind in ("none", "err"):
            code.i64_load(VARIANT_TAG_OFFSET).emit(Op.I64_EQZ)
        else:
            raise CodegenError(f"cannot lower pattern '{kind}' at {pattern.pos}")

    def _bind(self, code: Code, pattern: Pattern, scrutinee: int) -> None:
        if pattern.binder is None or pattern.slot is None:
            return
        code.local_get(scrutinee)
        if pattern.kind != "bind":
            _load(code, self.ctx.fn.locals[pattern.slot], VARIANT_PAYLOAD_OFFSET)
        code.local_set(pattern.slot)

    # --- Runtime helpers ---

    def _helper(self, name: str, params: Tuple[int, ...], results: Tuple[int, ...], locals_: List[int], code: Code) -> Function:
        return Function(f"${name}", self.module.type_index(FuncType(params, results)), locals_, code)

    def _helper_alloc(self) -> Function:
        # (size) -> ptr; bump allocation in 8-byte steps, growing memory on demand.
        size, ptr, end = 0, 1, 2
        code = Code()
        code.global_get(self.heap_global).local_set(ptr)
        code.local_get(ptr).local_get(size).emit(Op.I32_ADD).i32_const(SLOT_SIZE - 1).emit(Op.I32_ADD)
        code.i32_const(-SLOT_SIZE).emit(Op.I32_AND).local_set(end)
        # Wrapped past 4 GiB.
        code.local_get(end).local_get(ptr).emit(Op.I32_LT_U).if_().emit(Op.UNREACHABLE).end()
        code.local_get(end).memory_size().i32_const(16).emit(Op.I32_SHL, Op.I32_GT_U).if_()
        code.local_get(end).memory_size().i32_const(16).emit(Op.I32_SHL, Op.I32_SUB)
        code.i32_const(0xFFFF).emit(Op.I32_ADD).i32_const(16).emit(Op.I32_SHR_U)
        code.memory_grow().i32_const(-1).emit(Op.I32_EQ).if_().emit(Op.UNREACHABLE).end()
        code.end()
        code.local_get(end).global_set(self.heap_global)
        code.local_get(ptr)
        return self._helper("alloc", (I32,), (I32,), [I32, I32], code)

    @staticmethod
    def _copy_bytes(code: Code, dst: int, src: int, count: int, i: int) -> None:
        code.i32_const(0).local_set(i)
        code.block().loop()
        code.local_get(i).local_get(count).emit(Op.I32_GE_U).br_if(1)
        code.local_get(dst).local_get(i).emit(Op.I32_ADD)
        code.local_get(src).local_get(i).emit(Op.I32_ADD).i32_load8_u(STRING_HEADER)
        code.i32_store8(STRING_HEADER)
        code.local_get(i).i32_const(1).emit(Op.I32_ADD).local_set(i)
        code.br(0)
        code.end().end()

    def _helper_string_concat(self) -> Function:
        # (a, b) -> fresh string; neither input is reused.
        a, b, la, lb, out, dst, i = 0, 1, 2, 3, 4, 5, 6
        code = Code()
        code.local_get(a).i32_load(0).local_set(la)
        code.local_get(b).i32_load(0).local_set(lb)
        code.local_get(la).local_get(lb).emit(Op.I32_ADD).i32_const(STRING_HEADER).emit(Op.I32_ADD)
        code.call_helper("alloc").local_set(out)
        code.local_get(out).local_get(la).local_get(lb).emit(Op.I32_ADD).i32_store(0)
        code.local_get(out).local_set(dst)
        self._copy_bytes(code, dst, a, la, i)
        code.local_get(out).local_get(la).emit(Op.I32_ADD).local_set(dst)
        self._copy_bytes(code, dst, b, lb, i)
        code.local_get(out)
        return self._helper("string_concat", (I32, I32), (I32,), [I32] * 5, code)

    def _helper_string_eq(self) -> Function:
        # (a, b) -> 1 when both hold the same bytes.
        a, b, la, i = 0, 1, 2, 3
        code = Code()
        code.local_get(a).local_get(b).emit(Op.I32_EQ).if_().i32_const(1).emit(Op.RETURN).end()
        code.local_get(a).i32_load(0).local_tee(la).local_get(b).i32_load(0).emit(Op.I32_NE)
        code.if_().i32_const(0).emit(Op.RETURN).end()
        code.i32_const(0).local_set(i)
        code.block().loop()
        code.local_get(i).local_get(la).emit(Op.I32_GE_U).br_if(1)
        code.local_get(a).local_get(i).emit(Op.I32_ADD).i32_load8_u(STRING_HEADER)
        code.local_get(b).local_get(i).emit(Op.I32_ADD).i32_load8_u(STRING_HEADER)
        code.emit(Op.I32_NE).if_().i32_const(0).emit(Op.RETURN).end()
        code.local_get(i).i32_const(1).emit(Op.I32_ADD).local_set(i)
        code.br(0)
        code.end().end()
        code.i32_const(1)
        return self._helper("string_eq", (I32, I32), (I32,), [I32, I32], code)
