"""Queries over an installed workspace: trees, cycles, reverse dependencies.

Everything here is recomputed from the lock file and the cached package
manifests on each call; nothing is persisted.
"""

import logging
from dataclasses import dataclass
from dataclasses import field
from pathlib import Path
from typing import Literal

from ..lock.lockfile import LockFile
from ..manifest.loader import load_manifest
from ..packages.fetcher import GitPackageFetcher
from .arena import ROOT
from .arena import PackageGraph
from .resolver import DependencyResolver

logger = logging.getLogger(__name__)

WORKSPACE_REF = "workspace"


@dataclass
class DependencyTreeNode:
    package_key: str
    ref: str
    commit: str | None
    depth: int
    children: list["DependencyTreeNode"] = field(default_factory=list)
    repeated: bool = False


@dataclass
class ReverseDependency:
    dependent: str
    ref: str
    relation: Literal["direct", "transitive"] = "direct"


class DependencyAnalyzer:
    """Read-only analysis of the package graph pinned by a lock file."""

    def __init__(self, fetcher: GitPackageFetcher):
        self.fetcher = fetcher

    async def load_graph(self, lock: LockFile, workspace_root: Path | None = None) -> PackageGraph:
        """Rebuild the package graph from locked commits.

        Packages missing from the cache are materialized first.
        """
        reader = DependencyResolver(self.fetcher, locked=lock)
        graph = PackageGraph()
        for key, entry in lock.dependencies.items():
            node = graph.add(key, entry.ref)
            node.commit = entry.commit
            node.resolved_url = entry.resolved_url
            node.ref_type = entry.ref_type
            await self.fetcher.materialize(key, entry.commit)
            node.dependencies = reader.read_dependencies(key, entry.commit)

        manifest = load_manifest(workspace_root) if workspace_root else None
        if manifest is not None:
            graph.roots = manifest.git_dependencies()
        else:
            depended_on = {dep for node in graph.nodes.values() for dep in node.dependencies}
            graph.roots = {key: node.ref for key, node in graph.nodes.items() if key not in depended_on}
        return graph

    async def build_tree(self, lock: LockFile, workspace_root: Path) -> list[DependencyTreeNode]:
        """Dependency tree starting at the workspace's direct dependencies.

        A package already on the current branch is emitted again with no
        children and ``repeated=True``; other branches still expand it.
        """
        graph = await self.load_graph(lock, workspace_root)

        def build(key: str, declared_ref: str, depth: int, visited: frozenset[str]) -> DependencyTreeNode:
            node = graph.get(key)
            tree_node = DependencyTreeNode(
                package_key=key,
                ref=node.ref if node else declared_ref,
                commit=node.commit if node else None,
                depth=depth,
            )
            if node is None:
                return tree_node
            if key in visited:
                tree_node.repeated = True
                return tree_node
            branch = visited | {key}
            tree_node.children = [
                build(dep_key, dep_ref, depth + 1, branch) for dep_key, dep_ref in node.dependencies.items()
            ]
            return tree_node

        return [build(key, ref, 0, frozenset()) for key, ref in graph.roots.items()]

    async def detect_cycles(self, lock: LockFile, workspace_root: Path | None = None) -> list[list[str]]:
        """All package-level cycles, each as a full path."""
        graph = await self.load_graph(lock, workspace_root)
        return graph.find_cycles()

    async def find_reverse_dependencies(
        self, target: str, lock: LockFile, workspace_root: Path
    ) -> list[ReverseDependency]:
        """Packages (and the workspace itself) that declare ``target`` directly.

        Only one hop is reported; dependents of dependents are not expanded.
        """
        results: list[ReverseDependency] = []

        manifest = load_manifest(workspace_root)
        if manifest is not None and target in manifest.git_dependencies():
            results.append(ReverseDependency(dependent=ROOT, ref=WORKSPACE_REF))

        graph = await self.load_graph(lock, workspace_root)
        for dependent in graph.dependents_of(target):
            if dependent == target:
                continue
            results.append(ReverseDependency(dependent=dependent, ref=graph.nodes[dependent].ref))
        return results


def format_tree(nodes: list[DependencyTreeNode], *, show_commits: bool = True) -> str:
    """Render a dependency tree with box-drawing branches.

    Example::

        ├── acme/core@v1.0.0 (abc1234)
        │   └── acme/base@v2.1.0 (def5678)
        └── acme/patterns@main (0123abc)
    """
    lines: list[str] = []

    def label(node: DependencyTreeNode) -> str:
        text = f"{node.package_key}@{node.ref}"
        if show_commits:
            text += f" ({node.commit[:7]})" if node.commit else " (not locked)"
        if node.repeated:
            text += " [cycle]"
        return text

    def walk(children: list[DependencyTreeNode], prefix: str) -> None:
        for index, child in enumerate(children):
            last = index == len(children) - 1
            lines.append(f"{prefix}{'└── ' if last else '├── '}{label(child)}")
            walk(child.children, prefix + ("    " if last else "│   "))

    walk(nodes, "")
    return "\n".join(lines)
