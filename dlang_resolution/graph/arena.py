"""Arena of package nodes indexed by package key.

Edges are the dependencies each package declares in its own model.yaml.
Keeping nodes in one flat table (rather than nested trees) makes cycle
detection and reverse lookups plain graph walks.
"""

from dataclasses import dataclass
from dataclasses import field

from ..refs.semver import RefType

ROOT = "root"


@dataclass
class PackageNode:
    key: str
    ref: str = ""
    commit: str | None = None
    resolved_url: str | None = None
    ref_type: RefType | None = None
    # dependency key -> ref it was declared with
    dependencies: dict[str, str] = field(default_factory=dict)
    # dependent key (or ROOT) -> ref it asked for
    constraints: dict[str, str] = field(default_factory=dict)


class PackageGraph:
    """Packages reachable from a workspace's git dependencies."""

    def __init__(self):
        self.nodes: dict[str, PackageNode] = {}
        self.roots: dict[str, str] = {}

    def __contains__(self, key: str) -> bool:
        return key in self.nodes

    def __len__(self) -> int:
        return len(self.nodes)

    def get(self, key: str) -> PackageNode | None:
        return self.nodes.get(key)

    def add(self, key: str, ref: str = "") -> PackageNode:
        node = self.nodes.get(key)
        if node is None:
            node = PackageNode(key=key, ref=ref)
            self.nodes[key] = node
        return node

    def dependents_of(self, key: str) -> list[str]:
        """Keys of packages that declare ``key`` directly."""
        return [node.key for node in self.nodes.values() if key in node.dependencies]

    def reachable(self) -> set[str]:
        """Keys reachable from the roots."""
        seen: set[str] = set()
        pending = [key for key in self.roots if key in self.nodes]
        while pending:
            key = pending.pop()
            if key in seen:
                continue
            seen.add(key)
            pending.extend(dep for dep in self.nodes[key].dependencies if dep in self.nodes)
        return seen

    def prune(self) -> list[str]:
        """Drop nodes no longer reachable from the roots; returns dropped keys."""
        keep = self.reachable()
        dropped = [key for key in self.nodes if key not in keep]
        for key in dropped:
            del self.nodes[key]
        return dropped

    def find_cycles(self) -> list[list[str]]:
        """Find dependency cycles with a white/gray/black depth-first search.

        Each cycle is reported as the full path from the first stack
        occurrence of the repeated package back to itself, e.g.
        ``["a/x", "b/y", "c/z", "a/x"]``.
        """
        white, gray, black = 0, 1, 2
        color = dict.fromkeys(self.nodes, white)
        stack: list[str] = []
        cycles: list[list[str]] = []

        def visit(key: str) -> None:
            color[key] = gray
            stack.append(key)
            for dep in self.nodes[key].dependencies:
                if dep not in self.nodes:
                    continue
                if color[dep] == gray:
                    cycles.append(stack[stack.index(dep) :] + [dep])
                elif color[dep] == white:
                    visit(dep)
            stack.pop()
            color[key] = black

        for key in self.nodes:
            if color[key] == white:
                visit(key)
        return cycles
