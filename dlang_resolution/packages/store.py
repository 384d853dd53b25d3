"""Content-addressed package storage.

A store maps ``PackageCoordinates`` to a directory holding the package's
file tree. Commits are immutable, so an entry is written once and never
modified afterwards; an existing non-empty entry is reused untouched.
"""

import asyncio
import logging
import shutil
import tempfile
from collections.abc import Awaitable
from collections.abc import Callable
from pathlib import Path
from typing import Protocol

from ..errors import NotFoundError
from ..paths import get_cache_dir
from ..utils.fs import get_dir_size
from .source import PackageCoordinates

logger = logging.getLogger(__name__)

# Fills the given empty directory with the package tree
Writer = Callable[[Path], Awaitable[None]]


class ContentStore(Protocol):
    def has(self, coords: PackageCoordinates) -> bool: ...

    def path(self, coords: PackageCoordinates) -> Path: ...

    async def materialize(self, coords: PackageCoordinates, writer: Writer) -> Path: ...

    def read_text(self, coords: PackageCoordinates, relpath: str) -> str | None: ...


def _is_populated(directory: Path) -> bool:
    return directory.is_dir() and any(directory.iterdir())


class DiskContentStore:
    """Store rooted at the user-level cache directory (``~/.dlang/cache``)."""

    def __init__(self, root: Path | None = None):
        self.root = root or get_cache_dir()

    def path(self, coords: PackageCoordinates) -> Path:
        return self.root / coords.relpath

    def has(self, coords: PackageCoordinates) -> bool:
        return _is_populated(self.path(coords))

    async def materialize(self, coords: PackageCoordinates, writer: Writer) -> Path:
        """Populate the entry for ``coords`` unless it already exists.

        The writer fills a staging directory next to the target, which is
        renamed into place once complete. A cancelled or failed write leaves
        only the staging directory behind, which is removed.
        """
        target = self.path(coords)
        if _is_populated(target):
            logger.debug(f"Using cached package: {target}")
            return target

        target.parent.mkdir(parents=True, exist_ok=True)
        staging = Path(tempfile.mkdtemp(dir=target.parent, prefix=f".{coords.commit[:12]}-"))
        try:
            await writer(staging)
            if _is_populated(target):
                # Another process won the race; its content is identical
                shutil.rmtree(staging, ignore_errors=True)
                return target
            if target.exists():
                target.rmdir()
            staging.replace(target)
        except BaseException:
            shutil.rmtree(staging, ignore_errors=True)
            raise

        logger.info(f"Cached package {coords} at {target}")
        return target

    def read_text(self, coords: PackageCoordinates, relpath: str) -> str | None:
        file_path = self.path(coords) / relpath
        if not file_path.is_file():
            return None
        return file_path.read_text(encoding="utf-8")

    def entries(self) -> list[tuple[PackageCoordinates, Path]]:
        """List every cached package as (coordinates, directory)."""
        found: list[tuple[PackageCoordinates, Path]] = []
        if not self.root.is_dir():
            return found
        for commit_dir in sorted(self.root.glob("*/*/*/*")):
            if commit_dir.is_dir() and not commit_dir.name.startswith("."):
                host, owner, repo, commit = commit_dir.relative_to(self.root).parts
                found.append((PackageCoordinates(host, owner, repo, commit), commit_dir))
        return found

    def stats(self) -> tuple[int, int]:
        """Return (package count, total size in bytes)."""
        entries = self.entries()
        return len(entries), sum(get_dir_size(path) for _, path in entries)

    def clear(self) -> int:
        """Delete every cached package; returns how many were removed."""
        count = len(self.entries())
        if self.root.exists():
            shutil.rmtree(self.root)
        return count


class MemoryContentStore:
    """In-memory store for tests.

    The writer still runs against a real temporary directory; its files are
    snapshotted into a dict and the directory is discarded.
    """

    def __init__(self):
        self.files: dict[PackageCoordinates, dict[str, str]] = {}
        self.writes = 0

    def path(self, coords: PackageCoordinates) -> Path:
        return Path("/memory") / coords.relpath

    def has(self, coords: PackageCoordinates) -> bool:
        return bool(self.files.get(coords))

    async def materialize(self, coords: PackageCoordinates, writer: Writer) -> Path:
        if self.has(coords):
            return self.path(coords)
        with tempfile.TemporaryDirectory() as tmp:
            staging = Path(tmp)
            await writer(staging)
            snapshot = {
                str(p.relative_to(staging).as_posix()): p.read_text(encoding="utf-8")
                for p in staging.rglob("*")
                if p.is_file()
            }
        if not snapshot:
            raise NotFoundError(f"Package {coords} produced no files")
        self.files[coords] = snapshot
        self.writes += 1
        # Yield so concurrent callers observe the completed entry
        await asyncio.sleep(0)
        return self.path(coords)

    def read_text(self, coords: PackageCoordinates, relpath: str) -> str | None:
        return self.files.get(coords, {}).get(relpath)


__all__ = ["ContentStore", "DiskContentStore", "MemoryContentStore", "Writer"]
