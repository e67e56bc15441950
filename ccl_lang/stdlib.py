from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional

from .exceptions import ArityMismatch, TypeMismatch
from .types import BOOLEAN, DID, ERROR, INTEGER, MANA, STRING, TypeCanon, TypeRef, option_of


@dataclass(frozen=True)
class HostFunction:
    name: str
    params: tuple
    result: Optional[TypeRef]
    import_name: str


def _host(name: str, params: List[TypeRef], result: Optional[TypeRef], import_name: str) -> HostFunction:
    return HostFunction(name, tuple(params), result, import_name)


class StdLib:
    """Built-in array/string operations and the host capabilities a contract may import."""

    HOST_FUNCTIONS: Dict[str, HostFunction] = {
        h.name: h
        for h in (
            _host("get_caller", [], DID, "host_get_caller"),
            _host("get_balance", [DID], MANA, "host_account_get_mana"),
            _host("spend_mana", [DID, MANA], BOOLEAN, "host_account_spend_mana"),
            _host("credit_mana", [DID, MANA], BOOLEAN, "host_account_credit_mana"),
            _host("transfer", [DID, DID, MANA], BOOLEAN, "host_transfer_mana"),
            _host("mint_mana", [DID, MANA], BOOLEAN, "host_mint_mana"),
            _host("burn_mana", [DID, MANA], BOOLEAN, "host_burn_mana"),
            _host("get_reputation", [DID], INTEGER, "host_get_reputation"),
            _host("update_reputation", [DID, INTEGER], BOOLEAN, "host_update_reputation"),
            _host("has_role", [DID, STRING], BOOLEAN, "host_has_role"),
            _host("check_permission", [DID, STRING], BOOLEAN, "host_check_permission"),
            _host("now", [], INTEGER, "host_get_current_time"),
            _host("get_current_time", [], INTEGER, "host_get_current_time"),
            _host("require", [BOOLEAN, STRING], None, "host_require"),
            _host("log", [STRING], None, "host_log"),
            _host("emit_event", [STRING, STRING], None, "host_emit_event"),
            _host("dag_put", [STRING], STRING, "host_dag_put"),
            _host("dag_get", [STRING], option_of(STRING), "host_dag_get"),
            _host("anchor_receipt", [STRING], STRING, "host_anchor_receipt"),
        )
    }

    BUILTINS: Dict[str, str] = {
        "array_len": "array_len",
        "array_length": "array_len",
        "array_push": "array_push",
        "array_pop": "array_pop",
        "array_contains": "array_contains",
        "string_len": "string_len",
        "string_length": "string_len",
        "string_concat": "string_concat",
    }

    METHODS: Dict[tuple, str] = {
        ("Array", "len"): "array_len",
        ("Array", "length"): "array_len",
        ("Array", "push"): "array_push",
        ("Array", "pop"): "array_pop",
        ("Array", "contains"): "array_contains",
        ("String", "len"): "string_len",
        ("String", "length"): "string_len",
        ("String", "concat"): "string_concat",
    }

    ARITY = {
        "array_len": 1,
        "array_push": 2,
        "array_pop": 1,
        "array_contains": 2,
        "string_len": 1,
        "string_concat": 2,
    }

    @classmethod
    def builtin(cls, name: str) -> Optional[str]:
        return cls.BUILTINS.get(name)

    @classmethod
    def host(cls, name: str) -> Optional[HostFunction]:
        return cls.HOST_FUNCTIONS.get(name)

    @classmethod
    def method(cls, receiver: TypeRef, name: str) -> Optional[str]:
        return cls.METHODS.get((receiver.kind, name))

    @classmethod
    def check_builtin(cls, canonical: str, args: List[TypeRef]) -> TypeRef:
        """Result type of a builtin call. Raises without a position; the caller adds it."""
        expected = cls.ARITY[canonical]
        if len(args) != expected:
            raise ArityMismatch(f"'{canonical}' expects {expected} argument(s), got {len(args)}")
        if any(a == ERROR for a in args):
            return _RESULTS_ON_ERROR[canonical]

        if canonical.startswith("string_"):
            for a in args:
                if a != STRING:
                    raise TypeMismatch(f"'{canonical}' expects String, got {a}")
            return STRING if canonical == "string_concat" else INTEGER

        arr = args[0]
        if arr.kind != "Array":
            raise TypeMismatch(f"'{canonical}' expects an Array, got {arr}")
        if canonical == "array_len":
            return INTEGER
        if canonical == "array_pop":
            return option_of(arr.inner)
        item = args[1]
        if not TypeCanon.are_compatible(arr.inner, item):
            raise TypeMismatch(f"'{canonical}' expects an element of type {arr.inner}, got {item}")
        if canonical == "array_contains":
            if not (arr.inner.is_scalar or arr.inner.kind == "?"):
                raise TypeMismatch(f"'array_contains' needs scalar elements, got {arr.inner}")
            return BOOLEAN
        return INTEGER


_RESULTS_ON_ERROR = {
    "array_len": INTEGER,
    "array_push": INTEGER,
    "array_pop": ERROR,
    "array_contains": BOOLEAN,
    "string_len": INTEGER,
    "string_concat": STRING,
}
