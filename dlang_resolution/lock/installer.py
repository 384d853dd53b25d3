"""Install and update workflow producing model.lock.

Installs are reproducible: a locked package whose requested ref has not
changed keeps its commit without any network access. All lock mutations
for one workspace run under a single ``asyncio.Lock``.
"""

import asyncio
import logging
from dataclasses import dataclass
from dataclasses import field
from pathlib import Path
from typing import Literal

from ..errors import ConfigError
from ..errors import CycleError
from ..graph.arena import PackageGraph
from ..graph.resolver import DependencyResolver
from ..manifest.loader import load_manifest
from ..packages.fetcher import GitPackageFetcher
from ..paths import MANIFEST_FILE
from .lockfile import LockEntry
from .lockfile import LockFile
from .lockfile import load_lock_file
from .lockfile import save_lock_file

logger = logging.getLogger(__name__)

CyclePolicy = Literal["fail", "report"]

_workspace_locks: dict[Path, asyncio.Lock] = {}


def workspace_lock(root: Path) -> asyncio.Lock:
    """The lock serializing model.lock mutations for ``root``."""
    key = root.resolve()
    lock = _workspace_locks.get(key)
    if lock is None:
        lock = asyncio.Lock()
        _workspace_locks[key] = lock
    return lock


@dataclass
class InstallOptions:
    """Install behaviour.

    Attributes:
        update: Re-resolve refs even when the lock still matches
        packages: Restrict ``update`` to these package keys (None means all)
        on_cycle: ``fail`` raises CycleError before writing the lock;
            ``report`` writes the lock and returns the cycles
    """

    update: bool = False
    packages: set[str] | None = None
    on_cycle: CyclePolicy = "fail"

    def refresh(self, package_key: str) -> bool:
        if not self.update:
            return False
        return self.packages is None or package_key in self.packages


@dataclass
class InstallResult:
    lock: LockFile
    graph: PackageGraph
    changed: bool
    resolved: set[str] = field(default_factory=set)
    cycles: list[list[str]] = field(default_factory=list)


def graph_to_lock(graph: PackageGraph) -> LockFile:
    entries = {}
    for key, node in graph.nodes.items():
        if node.commit is None or node.resolved_url is None or node.ref_type is None:
            raise ConfigError(f"Package {key} was discovered but never pinned")
        entries[key] = LockEntry(
            ref=node.ref, ref_type=node.ref_type, resolved_url=node.resolved_url, commit=node.commit
        )
    return LockFile(dependencies=entries)


class LockInstaller:
    """Drive discovery and write the resulting lock file."""

    def __init__(self, fetcher: GitPackageFetcher):
        self.fetcher = fetcher

    async def install(self, workspace_root: Path, options: InstallOptions | None = None) -> InstallResult:
        """Resolve every package in the transitive graph and write model.lock.

        Args:
            workspace_root: Directory holding model.yaml
            options: Update and cycle behaviour

        Returns:
            InstallResult with the lock written (or unchanged)

        Raises:
            ConfigError: Missing or invalid manifest, unknown ref, version conflict
            NetworkError: Remote unreachable after retries
            CycleError: Package cycle with ``on_cycle="fail"``
        """
        options = options or InstallOptions()
        manifest = load_manifest(workspace_root)
        if manifest is None:
            raise ConfigError(f"No {MANIFEST_FILE} found at or above {workspace_root}", hint="Create model.yaml first")

        async with workspace_lock(workspace_root):
            locked = load_lock_file(workspace_root)
            if options.packages:
                known = set(locked.dependencies if locked else ()) | set(manifest.git_dependencies())
                unknown = options.packages - known
                if unknown:
                    raise ConfigError(f"Unknown packages: {', '.join(sorted(unknown))}")

            resolver = DependencyResolver(self.fetcher, locked=locked, refresh=options.refresh)
            graph = await resolver.discover(manifest)

            cycles = graph.find_cycles()
            if cycles and options.on_cycle == "fail":
                raise CycleError(cycles, hint="Break the cycle in one of the package manifests")

            lock = graph_to_lock(graph)
            changed = save_lock_file(workspace_root, lock)

        logger.info(
            f"Installed {len(lock.dependencies)} packages "
            f"({len(resolver.resolved)} resolved remotely, lock {'updated' if changed else 'unchanged'})"
        )
        return InstallResult(lock=lock, graph=graph, changed=changed, resolved=resolver.resolved, cycles=cycles)
