from __future__ import annotations

import hashlib
import json
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from .nodes import Program
from .wasm import VALTYPE_NAMES, ModuleBuilder

LANGUAGE_VERSION = "0.3"


@dataclass(frozen=True)
class ExportedFunction:
    name: str
    params: List[Dict[str, str]]
    returns: str


@dataclass(frozen=True)
class ImportedFunction:
    module: str
    name: str
    params: List[str]
    results: List[str]


@dataclass(frozen=True)
class ContractMetadata:
    """What tooling and the runtime need to call a module without decoding it."""

    exports: List[ExportedFunction]
    imports: List[ImportedFunction]
    size: int
    sha256: str
    language_version: str = LANGUAGE_VERSION
    memory_exported: bool = False
    warnings: List[str] = field(default_factory=list)
    # From the `contract Name { scope: ...; version: ... }` wrapper, when present.
    contract: Optional[str] = None
    scope: Optional[str] = None
    version: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_json(self) -> str:
        # Canonical form: equal modules give byte-equal documents.
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"), ensure_ascii=True)

    @classmethod
    def build(
        cls,
        program: Program,
        module: ModuleBuilder,
        binary: bytes,
        entry_point: str,
        warnings: List[str] | None = None,
    ) -> "ContractMetadata":
        exports = []
        for fn in program.functions:
            if fn.name != entry_point:
                continue
            exports.append(
                ExportedFunction(
                    fn.name,
                    [{"name": p.name, "type": str(p.type_ref)} for p in fn.params],
                    str(fn.return_type) if fn.return_type is not None else "Void",
                )
            )
        imports = []
        for imp in module.imports:
            signature = module.types[imp.type_index]
            imports.append(
                ImportedFunction(
                    imp.module,
                    imp.name,
                    [VALTYPE_NAMES[p] for p in signature.params],
                    [VALTYPE_NAMES[r] for r in signature.results],
                )
            )
        return cls(
            exports=exports,
            imports=imports,
            size=len(binary),
            sha256=hashlib.sha256(binary).hexdigest(),
            memory_exported=any(name == "memory" for name, _, _ in module.exports),
            warnings=list(warnings or []),
            contract=program.contract,
            scope=program.scope,
            version=program.version,
        )
