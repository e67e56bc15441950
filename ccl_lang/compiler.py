from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from .analyzer import ENTRY_POINT, SemanticAnalyzer
from .codegen import CodeGenerator
from .config import CompilerOptions
from .exceptions import CclError, CclSyntaxError, CodegenError, CompilationFailed, CompilerWarning
from .metadata import ContractMetadata
from .nodes import Program
from .optimizer import Optimizer
from .parser import CclParser

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompilationResult:
    module: bytes
    metadata: ContractMetadata
    warnings: List[CompilerWarning] = field(default_factory=list)


@dataclass
class Analysis:
    """Front-end output: the checked program plus any warnings."""

    program: Program
    warnings: List[CompilerWarning]


class Compiler:
    """Source text in, module bytes and metadata out.

    Each instance owns its parser; every call builds fresh analyzer,
    optimizer and generator state, so nothing leaks between compilations.
    """

    def __init__(self, options: Optional[CompilerOptions] = None):
        self.options = options or CompilerOptions.default()
        self.parser = CclParser()

    def parse(self, source: str) -> Program:
        try:
            return self.parser.parse(source)
        except CclSyntaxError as e:
            raise CompilationFailed([e]) from None

    def analyze(self, source: str) -> Analysis:
        program = self.parse(source)
        analyzer = SemanticAnalyzer(self.options)
        checked = analyzer.analyze(program)
        return Analysis(checked, list(analyzer.warnings))

    def compile(self, source: str) -> CompilationResult:
        analysis = self.analyze(source)
        program = analysis.program
        try:
            if self.options.optimize:
                program = Optimizer(self.options).optimize(program)
            generator = CodeGenerator(self.options)
            binary = generator.generate(program)
        except CodegenError as e:
            raise CompilationFailed([e]) from None
        except CclError as e:
            raise CompilationFailed([CodegenError(f"internal error: {e}")]) from None

        metadata = ContractMetadata.build(
            program, generator.module, binary, ENTRY_POINT, [str(w) for w in analysis.warnings]
        )
        logger.debug("compiled contract: %d bytes, sha256 %s", metadata.size, metadata.sha256)
        return CompilationResult(binary, metadata, analysis.warnings)


def compile_contract(source: str, options: Optional[CompilerOptions] = None) -> CompilationResult:
    """Compiles one contract. Raises CompilationFailed with every diagnostic."""
    return Compiler(options).compile(source)
