"""Discover the full transitive package graph of a workspace.

Each package's own model.yaml is read from the content store to find its
dependencies. When several packages ask for the same package with
different refs:

- an override in the root manifest wins outright
- semver tags sharing a major version resolve to the highest ("latest wins")
- anything else (major mismatch, differing branches, mixed ref kinds) is a
  ConfigError asking for an override
"""

import logging
from collections import deque
from collections.abc import Callable

from ..errors import ConfigError
from ..lock.lockfile import LockFile
from ..manifest.loader import parse_manifest_text
from ..manifest.schema import ProjectManifest
from ..packages.fetcher import GitPackageFetcher
from ..packages.fetcher import ResolvedCommit
from ..paths import MANIFEST_FILE
from ..refs.semver import detect_ref_type
from ..refs.semver import parse_version
from ..refs.semver import sort_versions_descending
from .arena import ROOT
from .arena import PackageGraph
from .arena import PackageNode

logger = logging.getLogger(__name__)


def choose_ref(package_key: str, constraints: dict[str, str], overrides: dict[str, str]) -> str:
    """Pick the ref to install for a package given every requested ref.

    Raises:
        ConfigError: Constraints cannot be reconciled without an override
    """
    if package_key in overrides:
        return overrides[package_key]

    refs = set(constraints.values())
    if len(refs) == 1:
        return refs.pop()

    requested = ", ".join(f"{dependent} wants {ref}" for dependent, ref in sorted(constraints.items()))
    hint = f"Pin one version under 'overrides' in model.yaml, e.g. overrides: {{{package_key}: <ref>}}"

    versions = {ref: parse_version(ref) for ref in refs}
    if all(detect_ref_type(ref) == "tag" and versions[ref] is not None for ref in refs):
        majors = {versions[ref].major for ref in refs}
        if len(majors) == 1:
            winner = sort_versions_descending(list(refs))[0]
            logger.info(f"Version conflict on {package_key} ({requested}); using {winner}")
            return winner
        raise ConfigError(f"Incompatible major versions of {package_key}: {requested}", hint=hint)

    raise ConfigError(f"Conflicting refs for {package_key}: {requested}", hint=hint)


class DependencyResolver:
    """Breadth-first discovery of packages, pinning each to a commit.

    Args:
        fetcher: Used to resolve refs and materialize packages
        locked: Existing lock file; entries whose ref still matches are
            reused without contacting the remote
        refresh: Predicate naming packages that must be re-resolved even
            when locked (``update``)
    """

    def __init__(
        self,
        fetcher: GitPackageFetcher,
        *,
        locked: LockFile | None = None,
        refresh: Callable[[str], bool] | None = None,
    ):
        self.fetcher = fetcher
        self.locked = locked
        self.refresh = refresh or (lambda key: False)
        self.resolved: set[str] = set()

    async def pin(self, package_key: str, ref: str) -> ResolvedCommit:
        """Commit for a package ref, from the lock when still valid."""
        refresh = self.refresh(package_key)
        entry = self.locked.get(package_key) if self.locked else None
        if entry is not None and entry.ref == ref and not refresh:
            logger.debug(f"Reusing locked {package_key}@{ref} -> {entry.commit[:7]}")
            return ResolvedCommit(ref, entry.commit, entry.resolved_url, entry.ref_type)

        if refresh and package_key not in self.resolved:
            # Earlier installs on this fetcher memoized refs that may have moved
            self.fetcher.forget(package_key)
        self.resolved.add(package_key)
        return await self.fetcher.resolve_commit(package_key, ref)

    def read_dependencies(self, package_key: str, commit: str) -> dict[str, str]:
        """Git dependencies declared by a materialized package."""
        text = self.fetcher.read_text(package_key, commit, MANIFEST_FILE)
        if text is None:
            return {}
        manifest = parse_manifest_text(text, f"{package_key}@{commit[:7]}/{MANIFEST_FILE}")
        return manifest.git_dependencies()

    async def _expand(self, graph: PackageGraph, node: PackageNode, queue: deque) -> None:
        pinned = await self.pin(node.key, node.ref)
        node.commit = pinned.commit
        node.resolved_url = pinned.resolved_url
        node.ref_type = pinned.ref_type
        await self.fetcher.materialize(node.key, pinned.commit)

        dependencies = self.read_dependencies(node.key, pinned.commit)
        for previous in node.dependencies:
            if previous not in dependencies and previous in graph:
                graph.nodes[previous].constraints.pop(node.key, None)
        node.dependencies = dependencies
        for dep_key, dep_ref in dependencies.items():
            queue.append((node.key, dep_key, dep_ref))

    async def discover(self, manifest: ProjectManifest) -> PackageGraph:
        """Build the package graph for a root manifest.

        Raises:
            ConfigError: Unresolvable version conflict or bad package manifest
            NetworkError: A package could not be fetched
        """
        graph = PackageGraph()
        queue: deque[tuple[str, str, str]] = deque()
        for key, ref in manifest.git_dependencies().items():
            graph.roots[key] = ref
            queue.append((ROOT, key, ref))

        while queue:
            dependent, key, ref = queue.popleft()
            node = graph.add(key)
            node.constraints[dependent] = ref
            chosen = choose_ref(key, node.constraints, manifest.overrides)
            if node.commit is not None and chosen == node.ref:
                continue
            node.ref = chosen
            await self._expand(graph, node, queue)

        dropped = graph.prune()
        if dropped:
            logger.debug(f"Dropped packages no longer required: {', '.join(dropped)}")
        return graph
