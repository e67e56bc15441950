from __future__ import annotations

from dataclasses import dataclass

from lark import Token, Transformer, v_args

from .consteval import wrap_i64
from .exceptions import CclSyntaxError, Position
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
    ConstDecl,
    ContinueStmt,
    EnumDecl,
    EnumValue,
    Expr,
    ExprStmt,
    FieldAccess,
    FieldDecl,
    FieldInit,
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
    Param,
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
from .types import TypeCanon, TypeRef, array_of, option_of, record, result_of

I64_MAX = (1 << 63) - 1

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "\\": "\\", '"': '"', "0": "\0"}

_GENERICS = {"Array": array_of, "Option": option_of, "Result": result_of}

_CONTRACT_FIELDS = ("scope", "version")


def _pos(meta) -> Position:
    return Position(getattr(meta, "line", 0), getattr(meta, "column", 0))


def _token_pos(tok: Token) -> Position:
    return Position(tok.line or 0, tok.column or 0)


def decode_string(tok: Token) -> str:
    raw = str(tok)[1:-1]
    out = []
    i = 0
    while i < len(raw):
        ch = raw[i]
        if ch == "\\":
            nxt = raw[i + 1]
            if nxt not in _ESCAPES:
                raise CclSyntaxError(
                    f"unknown escape sequence '\\{nxt}'", tok.line or 0, tok.column or 0, str(tok)
                )
            out.append(_ESCAPES[nxt])
            i += 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)


def _binary(op: str):
    def build(self, meta, children):
        return BinaryOp(op, children[0], children[1], pos=_pos(meta))

    return build


@dataclass
class _Contract:
    name: str
    meta: dict
    items: list
    pos: Position


@v_args(meta=True)
class AstBuilder(Transformer):
    """Turns the lark parse tree into `nodes` dataclasses."""

    # --- Declarations ---

    def start(self, meta, items):
        flat = []
        wrapper = None
        for item in items:
            if isinstance(item, _Contract):
                if wrapper is not None:
                    raise CclSyntaxError(
                        "only one contract block is allowed per source", item.pos.line, item.pos.column, "contract"
                    )
                wrapper = item
                flat.extend(item.items)
            else:
                flat.append(item)
        if wrapper is None:
            return Program(flat, pos=_pos(meta))
        return Program(
            flat, pos=_pos(meta), contract=wrapper.name, scope=wrapper.meta.get("scope"),
            version=wrapper.meta.get("version"),
        )

    def contract_def(self, meta, children):
        name = children[0]
        fields: dict[str, str] = {}
        items = []
        for child in children[1:]:
            if isinstance(child, tuple):
                key, value, tok = child
                if key in fields:
                    raise CclSyntaxError(f"duplicate contract field '{key}'", tok.line, tok.column, key)
                fields[key] = value
            else:
                items.append(child)
        return _Contract(str(name), fields, items, _token_pos(name))

    def contract_meta(self, meta, children):
        key, value = children
        if str(key) not in _CONTRACT_FIELDS:
            raise CclSyntaxError(
                f"unknown contract field '{key}'", key.line, key.column, str(key), expected=_CONTRACT_FIELDS,
            )
        return str(key), decode_string(value), key

    def fn_def(self, meta, children):
        name = children[0]
        params: list[Param] = []
        ret = None
        for child in children[1:-1]:
            if isinstance(child, list):
                params = child
            elif isinstance(child, TypeRef):
                ret = child
        return FunctionDecl(str(name), params, ret, children[-1], pos=_token_pos(name))

    def ret_type(self, meta, children):
        return children[0]

    def params(self, meta, children):
        return list(children)

    def param(self, meta, children):
        return Param(str(children[0]), children[1], pos=_pos(meta))

    def struct_def(self, meta, children):
        return RecordDecl(str(children[0]), list(children[1:]), pos=_token_pos(children[0]))

    def field_decl(self, meta, children):
        return FieldDecl(str(children[0]), children[1], pos=_pos(meta))

    def enum_def(self, meta, children):
        return EnumDecl(str(children[0]), [str(v) for v in children[1:]], pos=_token_pos(children[0]))

    def const_def(self, meta, children):
        return ConstDecl(str(children[0]), children[1], children[2], pos=_token_pos(children[0]))

    def simple_type(self, meta, children):
        name = str(children[0])
        return TypeCanon.NAMES.get(name) or record(name)

    def generic_type(self, meta, children):
        name = str(children[0])
        make = _GENERICS.get(name)
        if make is None:
            raise CclSyntaxError(
                f"'{name}' takes no type parameter", meta.line, meta.column, name,
                expected=_GENERICS.keys(),
            )
        return make(children[1])

    # --- Statements ---

    def block(self, meta, children):
        return Block(list(children), pos=_pos(meta))

    def let_stmt(self, meta, children):
        name = children[0]
        declared = children[1] if len(children) == 3 else None
        return LetStmt(str(name), declared, children[-1], pos=_pos(meta))

    def assign_stmt(self, meta, children):
        target, value = children
        if not isinstance(target, (Identifier, FieldAccess, Index)):
            raise CclSyntaxError(
                "invalid assignment target", target.pos.line, target.pos.column,
                expected=["name", "field", "index"],
            )
        return AssignStmt(target, value, pos=_pos(meta))

    def return_stmt(self, meta, children):
        return ReturnStmt(children[0] if children else None, pos=_pos(meta))

    def if_stmt(self, meta, children):
        branches = [CondBranch(children[0], children[1], pos=_pos(meta))]
        else_block = None
        for child in children[2:]:
            if isinstance(child, CondBranch):
                branches.append(child)
            else:
                else_block = child
        return IfStmt(branches, else_block, pos=_pos(meta))

    def elif_clause(self, meta, children):
        return CondBranch(children[0], children[1], pos=_pos(meta))

    def else_clause(self, meta, children):
        return children[0]

    def while_stmt(self, meta, children):
        return WhileStmt(children[0], children[1], pos=_pos(meta))

    def for_stmt(self, meta, children):
        return ForStmt(str(children[0]), children[1], children[2], pos=_pos(meta))

    def break_stmt(self, meta, children):
        return BreakStmt(pos=_pos(meta))

    def continue_stmt(self, meta, children):
        return ContinueStmt(pos=_pos(meta))

    def expr_stmt(self, meta, children):
        return ExprStmt(children[0], pos=_pos(meta))

    # --- Operators ---

    or_op = _binary("||")
    and_op = _binary("&&")
    eq = _binary("==")
    ne = _binary("!=")
    lt = _binary("<")
    gt = _binary(">")
    le = _binary("<=")
    ge = _binary(">=")
    add = _binary("+")
    sub = _binary("-")
    concat = _binary("++")
    mul = _binary("*")
    div = _binary("/")
    mod = _binary("%")

    def neg(self, meta, children):
        operand = children[0]
        # Fold the sign into the literal so i64::MIN is expressible; `--MIN` wraps back to MIN.
        if isinstance(operand, IntLit):
            return IntLit(wrap_i64(-operand.value), pos=_pos(meta))
        return UnaryOp("-", operand, pos=_pos(meta))

    def not_op(self, meta, children):
        return UnaryOp("!", children[0], pos=_pos(meta))

    # --- Postfix ---

    def method_call(self, meta, children):
        args = children[2] if len(children) > 2 else []
        return MethodCall(children[0], str(children[1]), args, pos=_pos(meta))

    def field_access(self, meta, children):
        return FieldAccess(children[0], str(children[1]), pos=_pos(meta))

    def index(self, meta, children):
        return Index(children[0], children[1], pos=_pos(meta))

    def args(self, meta, children):
        return list(children)

    # --- Atoms ---

    def int_lit(self, meta, children):
        tok = children[0]
        value = int(tok)
        # 2^63 is only valid under a unary minus; `neg` folds it back in range.
        if value > I64_MAX + 1:
            raise CclSyntaxError("integer literal out of range", tok.line, tok.column, str(tok))
        return IntLit(value, pos=_token_pos(tok))

    def string_lit(self, meta, children):
        return StringLit(decode_string(children[0]), pos=_token_pos(children[0]))

    def true_lit(self, meta, children):
        return BoolLit(True, pos=_pos(meta))

    def false_lit(self, meta, children):
        return BoolLit(False, pos=_pos(meta))

    def call(self, meta, children):
        args = children[1] if len(children) > 1 else []
        return Call(str(children[0]), args, pos=_pos(meta))

    def var(self, meta, children):
        return Identifier(str(children[0]), pos=_token_pos(children[0]))

    def enum_value(self, meta, children):
        return EnumValue(str(children[0]), str(children[1]), pos=_token_pos(children[0]))

    def array_lit(self, meta, children):
        return ArrayLit(children[0] if children else [], pos=_pos(meta))

    def record_lit(self, meta, children):
        return RecordLit(str(children[0]), list(children[1:]), pos=_pos(meta))

    def field_init(self, meta, children):
        return FieldInit(str(children[0]), children[1], pos=_pos(meta))

    def some_expr(self, meta, children):
        return VariantLit("Some", children[0], pos=_pos(meta))

    def none_expr(self, meta, children):
        return VariantLit("None", None, pos=_pos(meta))

    def ok_expr(self, meta, children):
        return VariantLit("Ok", children[0], pos=_pos(meta))

    def err_expr(self, meta, children):
        return VariantLit("Err", children[0], pos=_pos(meta))

    # --- Match ---

    def match_expr(self, meta, children):
        return MatchExpr(children[0], list(children[1:]), pos=_pos(meta))

    def match_arm(self, meta, children):
        return MatchArm(children[0], children[1], pos=_pos(meta))

    def arm_block(self, meta, children):
        tail = None
        stmts = list(children)
        if stmts and isinstance(stmts[-1], Expr):
            tail = stmts.pop()
        return BlockExpr(stmts, tail, pos=_pos(meta))

    def pat_int(self, meta, children):
        return Pattern("int", int(children[0]), pos=_pos(meta))

    def pat_neg_int(self, meta, children):
        return Pattern("int", -int(children[0]), pos=_pos(meta))

    def pat_true(self, meta, children):
        return Pattern("bool", True, pos=_pos(meta))

    def pat_false(self, meta, children):
        return Pattern("bool", False, pos=_pos(meta))

    def pat_string(self, meta, children):
        return Pattern("string", decode_string(children[0]), pos=_pos(meta))

    def pat_wild(self, meta, children):
        return Pattern("wild", pos=_pos(meta))

    def pat_bind(self, meta, children):
        return Pattern("bind", binder=str(children[0]), pos=_pos(meta))

    def pat_enum(self, meta, children):
        return Pattern("enum", str(children[1]), owner=str(children[0]), pos=_pos(meta))

    def pat_some(self, meta, children):
        return Pattern("some", binder=children[0], pos=_pos(meta))

    def pat_none(self, meta, children):
        return Pattern("none", pos=_pos(meta))

    def pat_ok(self, meta, children):
        return Pattern("ok", binder=children[0], pos=_pos(meta))

    def pat_err(self, meta, children):
        return Pattern("err", binder=children[0], pos=_pos(meta))

    def binder(self, meta, children):
        tok = children[0]
        return None if tok.type == "WILD" else str(tok)
