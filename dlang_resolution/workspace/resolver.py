"""Resolve import statements to physical documents.

Local files are read from disk; files inside git packages are read through
the content store, so tests can run entirely against an in-memory store.
Every resolved path is kept inside its sandbox: the workspace root for
workspace files, the package root for package files.
"""

import logging
import os
from collections.abc import Awaitable
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from ..errors import ConfigError
from ..errors import NotFoundError
from ..lock.lockfile import LockEntry
from ..lock.lockfile import LockFile
from ..manifest.loader import parse_manifest_text
from ..manifest.schema import ProjectManifest
from ..packages.fetcher import GitPackageFetcher
from ..packages.source import PackageCoordinates
from ..paths import DEFAULT_ENTRY
from ..paths import MANIFEST_FILE
from ..paths import SOURCE_SUFFIX
from ..refs.classifier import AliasImport
from ..refs.classifier import ExternalImport
from ..refs.classifier import RelativeImport
from ..refs.classifier import classify
from .parser import ImportStatement

logger = logging.getLogger(__name__)


def _normalize(path: Path) -> Path:
    return Path(os.path.normpath(path))


def _inside(path: Path, root: Path) -> bool:
    return path == root or root in path.parents


@dataclass(frozen=True)
class DocumentLocation:
    """Where a document lives; ``package`` is set for files inside a git package."""

    path: Path
    package: str | None = None

    @property
    def uri(self) -> str:
        return self.path.as_uri()


@dataclass(frozen=True)
class _PackageMount:
    key: str
    coords: PackageCoordinates
    root: Path
    manifest: ProjectManifest | None


class SourceReader:
    """Reads workspace files from disk and package files from the store."""

    def __init__(self, fetcher: GitPackageFetcher):
        self.fetcher = fetcher
        self._mounts: dict[Path, _PackageMount] = {}

    def mount(self, key: str, coords: PackageCoordinates, root: Path) -> _PackageMount:
        root = _normalize(root)
        existing = self._mounts.get(root)
        if existing is not None:
            return existing
        text = self.fetcher.store.read_text(coords, MANIFEST_FILE)
        manifest = parse_manifest_text(text, f"{key}/{MANIFEST_FILE}") if text is not None else None
        mount = _PackageMount(key, coords, root, manifest)
        self._mounts[root] = mount
        return mount

    def mount_for(self, path: Path) -> _PackageMount | None:
        path = _normalize(path)
        for root, mount in self._mounts.items():
            if _inside(path, root):
                return mount
        return None

    def read(self, path: Path) -> str | None:
        mount = self.mount_for(path)
        if mount is None:
            return path.read_text(encoding="utf-8") if path.is_file() else None
        relpath = _normalize(path).relative_to(mount.root).as_posix()
        return self.fetcher.store.read_text(mount.coords, relpath)

    def is_file(self, path: Path) -> bool:
        mount = self.mount_for(path)
        if mount is None:
            return path.is_file()
        return self.read(path) is not None


# Returns the lock after installing whatever the manifest declares
InstallHook = Callable[[], Awaitable[LockFile]]


class ImportResolver:
    """Turns one import statement into a DocumentLocation.

    Args:
        workspace_root: Directory of the workspace manifest, or None
        manifest: Workspace manifest, or None when the workspace has none
        fetcher: Resolves and materializes git packages
        lock: Current lock file (may be None before the first install)
        install: Called once when a declared package is missing from the
            lock; None makes that an error instead
    """

    def __init__(
        self,
        workspace_root: Path | None,
        manifest: ProjectManifest | None,
        fetcher: GitPackageFetcher,
        *,
        lock: LockFile | None = None,
        install: InstallHook | None = None,
    ):
        self.workspace_root = workspace_root
        self.manifest = manifest
        self.fetcher = fetcher
        self.lock = lock
        self.install = install
        self.reader = SourceReader(fetcher)

    def _context(self, importer: DocumentLocation) -> tuple[Path | None, ProjectManifest | None]:
        if importer.package is not None:
            mount = self.reader.mount_for(importer.path)
            if mount is not None:
                return mount.root, mount.manifest
        return self.workspace_root, self.manifest

    async def resolve(self, statement: ImportStatement, importer: DocumentLocation) -> DocumentLocation:
        """Resolve ``statement`` found in the document at ``importer``.

        Raises:
            ConfigError: Unclassifiable address, sandbox escape, undeclared
                package, or an external import without a manifest
            NotFoundError: The target file does not exist
        """
        root, manifest = self._context(importer)
        base_dir = _normalize(importer.path.parent)
        aliases = manifest.paths if manifest else {}
        dependency_keys = manifest.dependencies.keys() if manifest else ()

        def local_exists(address: str) -> bool:
            candidate = base_dir / address
            sibling = candidate.with_name(candidate.name + SOURCE_SUFFIX)
            return self.reader.is_file(candidate) or self.reader.is_file(sibling)

        address = classify(
            statement.address,
            aliases,
            dependency_keys=dependency_keys,
            local_exists=local_exists,
            binding=statement.alias,
        )

        if isinstance(address, RelativeImport):
            return self._resolve_local(base_dir / address.path, root, importer.package, statement.address)

        if isinstance(address, AliasImport):
            if root is None:
                raise ConfigError(
                    f"Alias import '{statement.address}' needs a {MANIFEST_FILE} to define the workspace root",
                    hint=f"Create {MANIFEST_FILE} with a 'paths' section",
                )
            target_dir = _normalize(root / address.target)
            if not _inside(target_dir, _normalize(root)):
                raise ConfigError(f"Alias '{address.alias}' points outside workspace boundary {root}")
            return self._resolve_local(target_dir / address.subpath, root, importer.package, statement.address)

        return await self._resolve_external(address, root, manifest, importer)

    def _resolve_local(
        self, candidate: Path, root: Path | None, package: str | None, address: str
    ) -> DocumentLocation:
        """Directory-first resolution of a local import target."""
        candidate = _normalize(candidate)
        if root is not None and not _inside(candidate, _normalize(root)):
            raise ConfigError(f"Import '{address}' resolves outside workspace boundary {root}")

        if candidate.suffix == SOURCE_SUFFIX:
            if self.reader.is_file(candidate):
                return DocumentLocation(self._canonical(candidate, package), package)
            raise NotFoundError(f"Imported file not found: {candidate}")

        entry = DEFAULT_ENTRY
        nested_manifest = self.reader.read(candidate / MANIFEST_FILE)
        if nested_manifest is not None:
            entry = parse_manifest_text(nested_manifest, str(candidate / MANIFEST_FILE)).entry

        for option in (candidate / entry, candidate.with_name(candidate.name + SOURCE_SUFFIX)):
            if self.reader.is_file(option):
                return DocumentLocation(self._canonical(option, package), package)

        if candidate.suffix:
            raise ConfigError(
                f"Import '{address}' has unsupported extension '{candidate.suffix}'",
                hint=f"Only {SOURCE_SUFFIX} files can be imported",
            )
        raise NotFoundError(
            f"Cannot resolve import '{address}'",
            hint=f"Looked for {candidate / entry} and {candidate}{SOURCE_SUFFIX}",
        )

    def _canonical(self, path: Path, package: str | None) -> Path:
        # Store paths may be virtual; only real workspace files are resolved
        return path if package is not None else path.resolve()

    async def _resolve_external(
        self,
        address: ExternalImport,
        root: Path | None,
        manifest: ProjectManifest | None,
        importer: DocumentLocation,
    ) -> DocumentLocation:
        name = address.package_key
        if manifest is None:
            raise ConfigError(
                f"External import '{name}' requires a {MANIFEST_FILE} manifest",
                hint=f"Create {MANIFEST_FILE} and declare it: dependencies: {{{name}: <ref>}}",
            )

        spec = manifest.dependencies.get(name)
        if spec is None:
            raise ConfigError(
                f"Package '{name}' is not declared in {MANIFEST_FILE} dependencies",
                hint=f"Declare it in {MANIFEST_FILE} (create the manifest if needed) with 'dlang add {name} <ref>'",
            )

        if spec.path is not None and root is not None:
            return self._resolve_local(root / spec.path, root, importer.package, name)

        package_key = manifest.package_key(name)
        in_workspace = importer.package is None
        overrides = self.manifest.overrides if self.manifest else {}
        requested = overrides.get(package_key) or spec.effective_ref
        if address.ref is not None and address.ref != requested:
            raise ConfigError(
                f"Import pins {package_key}@{address.ref} but {MANIFEST_FILE} requests {requested}",
                hint="Drop the @ref from the import or change the manifest",
            )

        entry = await self._locked_entry(package_key, requested if in_workspace else None)
        package_root = _normalize(await self.fetcher.materialize(package_key, entry.commit))
        mount = self.reader.mount(package_key, self.fetcher.coordinates(package_key, entry.commit), package_root)
        entry_name = mount.manifest.entry if mount.manifest else DEFAULT_ENTRY
        entry_path = package_root / entry_name
        if not self.reader.is_file(entry_path):
            raise NotFoundError(f"Package {package_key}@{entry.ref} has no entry file '{entry_name}'")
        return DocumentLocation(entry_path, package_key)

    async def _locked_entry(self, package_key: str, requested: str | None) -> LockEntry:
        """Lock entry for a package, installing when it is missing or stale.

        ``requested`` is the ref the workspace manifest asks for; packages
        imported from inside other packages pass None and take whatever the
        lock pinned.
        """
        entry = self.lock.get(package_key) if self.lock else None
        stale = entry is None or (requested is not None and entry.ref != requested)
        if stale and self.install is not None:
            self.lock = await self.install()
            entry = self.lock.get(package_key)
        if entry is None:
            raise ConfigError(f"Package '{package_key}' is not installed", hint="Run 'dlang install'")
        return entry
