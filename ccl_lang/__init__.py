from .grammar import CCL_GRAMMAR
from .exceptions import (
    CclError,
    CclSyntaxError,
    SemanticError,
    UndefinedSymbol,
    TypeMismatch,
    ArityMismatch,
    DuplicateDeclaration,
    UnreachableReturn,
    ImmutableAssignment,
    NonExhaustiveMatch,
    InvalidControlFlow,
    ShadowedBinding,
    CodegenError,
    CompilationFailed,
    CompilerWarning,
    Position,
)
from .config import CompilerOptions
from .types import TypeCanon, TypeRef
from .scope import ScopeManager, Symbol
from .stdlib import StdLib, HostFunction
from .parser import CclParser
from .analyzer import SemanticAnalyzer
from .optimizer import Optimizer
from .codegen import CodeGenerator
from .metadata import ContractMetadata
from .disassembler import ModuleListing, disassemble
from .compiler import Analysis, CompilationResult, Compiler, compile_contract

__all__ = [
    "CCL_GRAMMAR",
    "CclError",
    "CclSyntaxError",
    "SemanticError",
    "UndefinedSymbol",
    "TypeMismatch",
    "ArityMismatch",
    "DuplicateDeclaration",
    "UnreachableReturn",
    "ImmutableAssignment",
    "NonExhaustiveMatch",
    "InvalidControlFlow",
    "ShadowedBinding",
    "CodegenError",
    "CompilationFailed",
    "CompilerWarning",
    "Position",
    "CompilerOptions",
    "TypeCanon",
    "TypeRef",
    "ScopeManager",
    "Symbol",
    "StdLib",
    "HostFunction",
    "CclParser",
    "SemanticAnalyzer",
    "Optimizer",
    "CodeGenerator",
    "ContractMetadata",
    "ModuleListing",
    "disassemble",
    "Analysis",
    "CompilationResult",
    "Compiler",
    "compile_contract",
]
