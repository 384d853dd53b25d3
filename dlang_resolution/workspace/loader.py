"""Load an entry file and everything it imports, transitively.

Each physical file is parsed exactly once, keyed by its canonical URI.
File-level import cycles are tolerated: a URI already visited is not
descended into again. Sibling imports of one file resolve concurrently, and
the first failure cancels the siblings still in flight.
"""

import asyncio
import logging
from collections.abc import Coroutine
from collections.abc import Iterable
from dataclasses import dataclass
from dataclasses import field
from pathlib import Path
from typing import Any
from typing import TypeVar

from ..errors import NotFoundError
from ..lock.installer import InstallOptions
from ..lock.installer import LockInstaller
from ..lock.lockfile import LockFile
from ..lock.lockfile import load_lock_file
from ..manifest.loader import find_manifest
from ..manifest.loader import read_manifest
from ..packages.fetcher import GitPackageFetcher
from .parser import DocumentParser
from .parser import ImportScanner
from .parser import ParsedDocument
from .resolver import DocumentLocation
from .resolver import ImportResolver

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class LoadOptions:
    """Loader behaviour.

    Attributes:
        install_missing: Run an install when a declared package is missing
            from (or stale in) model.lock; otherwise that is a ConfigError
        parser: Parser for document text (defaults to ImportScanner)
    """

    install_missing: bool = True
    parser: DocumentParser | None = None


@dataclass
class LoadedDocument:
    uri: str
    path: Path
    text: str
    parsed: ParsedDocument
    package: str | None = None


@dataclass
class LoadResult:
    documents: list[LoadedDocument] = field(default_factory=list)
    model: ParsedDocument | None = None


async def _run_all(coros: Iterable[Coroutine[Any, Any, T]]) -> list[T]:
    """Run sibling units concurrently; the first failure cancels the rest.

    Raises:
        The first failing unit's exception, unwrapped from the task group
    """
    try:
        async with asyncio.TaskGroup() as group:
            tasks = [group.create_task(coro) for coro in coros]
    except BaseExceptionGroup as e:
        raise _first_error(e) from None
    return [task.result() for task in tasks]


def _first_error(group: BaseExceptionGroup) -> BaseException:
    first = group.exceptions[0]
    return _first_error(first) if isinstance(first, BaseExceptionGroup) else first


class _LoadSession:
    def __init__(self, resolver: ImportResolver, parser: DocumentParser):
        self.resolver = resolver
        self.parser = parser
        self.visited: set[str] = set()
        self.documents: dict[str, LoadedDocument] = {}

    async def visit(self, location: DocumentLocation) -> None:
        uri = location.uri
        # Check-and-insert with no await in between
        if uri in self.visited:
            return
        self.visited.add(uri)

        text = self.resolver.reader.read(location.path)
        if text is None:
            raise NotFoundError(f"File not found: {location.path}")
        parsed = self.parser.parse(uri, text)
        self.documents[uri] = LoadedDocument(uri, location.path, text, parsed, location.package)
        logger.debug(f"Loaded {uri} ({len(parsed.imports)} imports)")

        targets = await _run_all(self.resolver.resolve(stmt, location) for stmt in parsed.imports)
        await _run_all(self.visit(target) for target in targets)


class WorkspaceImportLoader:
    """Resolve an entry document's imports into a loaded document set."""

    def __init__(self, fetcher: GitPackageFetcher | None = None, parser: DocumentParser | None = None):
        self.fetcher = fetcher or GitPackageFetcher()
        self.parser = parser or ImportScanner()

    async def load(self, entry_file: Path | str, options: LoadOptions | None = None) -> LoadResult:
        """Load ``entry_file`` and all documents it reaches.

        Args:
            entry_file: Path to the entry .dlang file
            options: Install and parser behaviour

        Returns:
            LoadResult with every loaded document (entry first) and the
            entry's parsed document as ``model``

        Raises:
            ConfigError: Invalid manifest, sandbox escape, or an external
                import without a manifest
            NotFoundError: Entry or imported file missing
            ParseError: Malformed document
            NetworkError: A package could not be fetched
        """
        options = options or LoadOptions()
        entry = Path(entry_file).resolve()
        if not entry.is_file():
            raise NotFoundError(f"Entry file not found: {entry}")

        manifest_path = find_manifest(entry.parent)
        manifest = read_manifest(manifest_path) if manifest_path else None
        root = manifest_path.parent if manifest_path else None
        lock = load_lock_file(root) if root else None

        install = None
        if options.install_missing and root is not None:
            install = self._install_hook(root)

        resolver = ImportResolver(root, manifest, self.fetcher, lock=lock, install=install)
        session = _LoadSession(resolver, options.parser or self.parser)
        await session.visit(DocumentLocation(entry))

        documents = list(session.documents.values())
        logger.info(f"Loaded {len(documents)} documents from {entry}")
        return LoadResult(documents=documents, model=documents[0].parsed)

    def _install_hook(self, root: Path):
        """One shared install per load, however many imports trigger it."""
        pending: dict[str, asyncio.Task[LockFile]] = {}
        installer = LockInstaller(self.fetcher)

        async def run() -> LockFile:
            result = await installer.install(root, InstallOptions())
            return result.lock

        async def install() -> LockFile:
            task = pending.get("install")
            if task is None:
                task = asyncio.ensure_future(run())
                pending["install"] = task
            return await task

        return install
