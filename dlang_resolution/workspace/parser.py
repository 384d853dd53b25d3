"""The narrow parsing interface the loader needs, plus a default scanner.

A language front end plugs in its own ``DocumentParser``; the loader only
needs each document's import statements and an opaque root node.
"""

import re
from dataclasses import dataclass
from dataclasses import field
from typing import Any
from typing import Protocol

from ..errors import ParseError

IMPORT_PATTERN = re.compile(
    r"""^[ \t]*import[ \t]+(?P<quote>["'])(?P<address>[^"'\n]*)(?P=quote)"""
    r"""(?:[ \t]+as[ \t]+(?P<alias>[A-Za-z_]\w*))?[ \t]*;?[ \t]*$"""
)
_IMPORT_KEYWORD = re.compile(r"^[ \t]*import\b")
_TOKENS = re.compile(r""""[^"\n]*"|'[^'\n]*'|//[^\n]*|/\*.*?\*/""", re.DOTALL)


@dataclass(frozen=True)
class ImportStatement:
    address: str
    alias: str | None = None
    line: int | None = None


@dataclass
class ParsedDocument:
    uri: str
    imports: list[ImportStatement] = field(default_factory=list)
    root: Any = None


class DocumentParser(Protocol):
    def parse(self, uri: str, text: str) -> ParsedDocument:
        """Parse a document, raising ParseError when it is malformed."""
        ...


def _blank_comments(text: str) -> str:
    # Strings pass through untouched; comments become spaces so line numbers hold
    def replace(match: re.Match) -> str:
        token = match.group(0)
        if token[0] in "\"'":
            return token
        return re.sub(r"[^\n]", " ", token)

    return _TOKENS.sub(replace, text)


class ImportScanner:
    """Extract ``import "<address>" [as Alias]`` statements with a regex.

    Examples:
        >>> ImportScanner().parse("file:///m.dlang", 'import "./shared"').imports
        [ImportStatement(address='./shared', alias=None, line=1)]
    """

    def parse(self, uri: str, text: str) -> ParsedDocument:
        imports: list[ImportStatement] = []
        for number, line in enumerate(_blank_comments(text).splitlines(), start=1):
            if not _IMPORT_KEYWORD.match(line):
                continue
            match = IMPORT_PATTERN.match(line)
            if match is None:
                raise ParseError(
                    f"{uri}:{number}: malformed import statement: {line.strip()}",
                    hint='Expected: import "<path or owner/repo@ref>" [as Alias]',
                )
            imports.append(ImportStatement(match.group("address"), match.group("alias"), number))
        return ParsedDocument(uri=uri, imports=imports)
