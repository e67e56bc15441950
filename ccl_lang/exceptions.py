from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable


@dataclass(frozen=True)
class Position:
    line: int = 0
    column: int = 0

    def __str__(self) -> str:
        return f"{self.line}:{self.column}"


class CclError(Exception):
    """Base exception for the compiler."""

    pass


class CclSyntaxError(CclError):
    """Raised when the source does not match the grammar."""

    def __init__(
        self,
        message: str,
        line: int = 0,
        column: int = 0,
        token: str | None = None,
        expected: Iterable[str] = (),
    ):
        self.line = line
        self.column = column
        self.token = token
        self.expected = sorted(set(expected))
        self.position = Position(line, column)
        text = f"{line}:{column}: {message}"
        if self.expected:
            text += f" (expected one of: {', '.join(self.expected)})"
        super().__init__(text)
        self.message = message


class SemanticError(CclError):
    """A rule violation found by the analyzer. Always carries a position."""

    kind = "SemanticError"

    def __init__(self, message: str, position: Position | None = None):
        self.message = message
        self.position = position or Position()
        super().__init__(f"{self.position}: {self.kind}: {message}")


class UndefinedSymbol(SemanticError):
    kind = "UndefinedSymbol"


class TypeMismatch(SemanticError):
    kind = "TypeMismatch"


class ArityMismatch(SemanticError):
    kind = "ArityMismatch"


class DuplicateDeclaration(SemanticError):
    kind = "DuplicateDeclaration"


class UnreachableReturn(SemanticError):
    """A non-void function can fall off its end without returning."""

    kind = "UnreachableReturn"


class ImmutableAssignment(SemanticError):
    kind = "ImmutableAssignment"


class NonExhaustiveMatch(SemanticError):
    kind = "NonExhaustiveMatch"


class InvalidControlFlow(SemanticError):
    kind = "InvalidControlFlow"


class ShadowedBinding(SemanticError):
    kind = "ShadowedBinding"


class CodegenError(CclError):
    """Raised when a later stage meets a shape it cannot lower."""

    pass


class CompilationFailed(CclError):
    """Carries every diagnostic collected for one compilation."""

    def __init__(self, errors: list[CclError]):
        self.errors = list(errors)
        lines = [f"compilation failed with {len(self.errors)} error(s):"]
        lines.extend(f"  {e}" for e in self.errors)
        super().__init__("\n".join(lines))


@dataclass(frozen=True)
class CompilerWarning:
    message: str
    position: Position = Position()

    def __str__(self) -> str:
        return f"{self.position}: warning: {self.message}"
