from __future__ import annotations

import logging

from lark import Lark, Tree
from lark.exceptions import UnexpectedCharacters, UnexpectedEOF, UnexpectedInput, UnexpectedToken, VisitError

from .builder import AstBuilder
from .exceptions import CclError, CclSyntaxError
from .grammar import CCL_GRAMMAR
from .nodes import Program

logger = logging.getLogger(__name__)


class CclParser:
    """LALR front end. One instance per compiler; nothing is shared between them."""

    def __init__(self):
        self.lark = Lark(CCL_GRAMMAR, parser="lalr", propagate_positions=True, maybe_placeholders=False)
        self._terminal_text = {
            t.name: t.pattern.value for t in self.lark.terminals if t.pattern.type == "str"
        }

    def _describe(self, names) -> list[str]:
        return [repr(self._terminal_text[n]) if n in self._terminal_text else n for n in names]

    def parse_tree(self, source: str) -> Tree:
        try:
            return self.lark.parse(source)
        except UnexpectedToken as e:
            tok = e.token
            text = "end of input" if tok.type == "$END" else repr(str(tok))
            raise CclSyntaxError(
                f"unexpected {text}", e.line, e.column, str(tok), self._describe(e.expected)
            ) from None
        except UnexpectedCharacters as e:
            raise CclSyntaxError(
                f"unexpected character {e.char!r}", e.line, e.column, e.char, self._describe(e.allowed or ())
            ) from None
        except UnexpectedEOF as e:
            raise CclSyntaxError(
                "unexpected end of input", e.line, e.column, None, self._describe(e.expected)
            ) from None
        except UnexpectedInput as e:
            raise CclSyntaxError(str(e), e.line, e.column) from None

    def parse(self, source: str) -> Program:
        tree = self.parse_tree(source)
        try:
            program = AstBuilder().transform(tree)
        except VisitError as e:
            if isinstance(e.orig_exc, CclError):
                raise e.orig_exc from None
            raise
        logger.debug("parsed %d top-level declarations", len(program.items))
        return program
