"""Suppression pragmas - parses ``# stateguard: ...`` comments.

Uses lark for parsing and tokenize to find the comments.
"""

from __future__ import annotations

import io
import re
import tokenize
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Iterable

from lark import Lark, Transformer
from lark.exceptions import LarkError, VisitError

from stateguard.analysis.rules import normalize_codes
from stateguard.diagnostics import PragmaError

# Load grammar from file adjacent to this module
GRAMMAR_PATH = Path(__file__).parent / "pragma.lark"

_PRAGMA_PREFIX = re.compile(r"^stateguard\s*:")


class PragmaScope(str, Enum):
    LINE = "line"
    FILE = "file"


@dataclass(frozen=True)
class Pragma:
    """A parsed suppression comment."""

    scope: PragmaScope
    codes: frozenset[str] | None = None  # None suppresses every rule
    line: int = 0

    def covers(self, code: str) -> bool:
        return self.codes is None or code in self.codes


class PragmaTransformer(Transformer[Any, Any]):
    """Transform the lark parse tree into a Pragma."""

    def start(self, items: list[Any]) -> Pragma:
        return items[0]

    def ignore(self, items: list[Any]) -> Pragma:
        """ignore [codes]"""
        return Pragma(scope=PragmaScope.LINE, codes=items[0] if items else None)

    def ignore_file(self, items: list[Any]) -> Pragma:
        """ignore-file [codes]"""
        return Pragma(scope=PragmaScope.FILE, codes=items[0] if items else None)

    def codes(self, items: list[Any]) -> frozenset[str]:
        # Unknown rule names raise ValueError
        return frozenset(normalize_codes([str(item) for item in items]))


class PragmaParser:
    """Parser for pragma comment bodies."""

    def __init__(self) -> None:
        self._parser = Lark(
            GRAMMAR_PATH.read_text(),
            parser="lalr",
            transformer=PragmaTransformer(),
        )

    def parse(self, text: str, line: int = 0) -> Pragma:
        """Parse a comment body (without the leading '#').

        Raises:
            PragmaError: If the comment is not a valid pragma.
        """
        try:
            pragma: Pragma = self._parser.parse(text)  # type: ignore[assignment]
        except VisitError as e:
            raise PragmaError(text, line, str(e.orig_exc)) from e
        except ValueError as e:
            raise PragmaError(text, line, str(e)) from e
        except LarkError as e:
            raise PragmaError(text, line, _first_line(str(e))) from e
        return Pragma(scope=pragma.scope, codes=pragma.codes, line=line)


@dataclass
class PragmaIndex:
    """All pragmas found in one source file."""

    lines: dict[int, list[Pragma]] = field(default_factory=dict)
    file_pragmas: list[Pragma] = field(default_factory=list)
    errors: list[PragmaError] = field(default_factory=list)

    def suppresses(self, code: str, lines: Iterable[int]) -> bool:
        """Whether a finding with this code is suppressed at any of the given lines."""
        if any(p.covers(code) for p in self.file_pragmas):
            return True
        for line in lines:
            if any(p.covers(code) for p in self.lines.get(line, [])):
                return True
        return False


# Module-level parser instance for convenience
_parser: PragmaParser | None = None


def get_parser() -> PragmaParser:
    """Get or create the module-level parser instance."""
    global _parser
    if _parser is None:
        _parser = PragmaParser()
    return _parser


def scan_pragmas(source: str) -> PragmaIndex:
    """Find and parse every ``# stateguard:`` comment in a source string."""
    index = PragmaIndex()
    parser = get_parser()

    tokens = tokenize.generate_tokens(io.StringIO(source).readline)
    for token in tokens:
        if token.type != tokenize.COMMENT:
            continue
        body = token.string.lstrip("#").strip()
        if not _PRAGMA_PREFIX.match(body):
            continue
        # Anything after a second '#' is a free-form reason
        body = body.split("#", 1)[0].strip()

        line = token.start[0]
        try:
            pragma = parser.parse(body, line=line)
        except PragmaError as e:
            index.errors.append(e)
            continue

        if pragma.scope == PragmaScope.FILE:
            index.file_pragmas.append(pragma)
        else:
            index.lines.setdefault(line, []).append(pragma)

    return index


def _first_line(text: str) -> str:
    return text.strip().splitlines()[0] if text.strip() else text
