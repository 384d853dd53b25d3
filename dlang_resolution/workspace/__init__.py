"""Workspace import loading: parse entry file, follow imports, load documents."""

from .loader import LoadedDocument
from .loader import LoadOptions
from .loader import LoadResult
from .loader import WorkspaceImportLoader
from .parser import DocumentParser
from .parser import ImportScanner
from .parser import ImportStatement
from .parser import ParsedDocument

__all__ = [
    "DocumentParser",
    "ImportScanner",
    "ImportStatement",
    "LoadOptions",
    "LoadResult",
    "LoadedDocument",
    "ParsedDocument",
    "WorkspaceImportLoader",
]
