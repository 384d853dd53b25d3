"""Library calls behind the dlang CLI commands.

Each method maps to one command; exit codes and rendering are the CLI's
concern. Methods raise ResolutionError subclasses on failure.
"""

import logging
from dataclasses import dataclass
from dataclasses import field
from pathlib import Path
from typing import Literal

from .errors import ConfigError
from .governance import AuditReport
from .governance import GovernanceValidator
from .governance import GovernanceViolation
from .graph.analyzer import DependencyAnalyzer
from .graph.analyzer import DependencyTreeNode
from .graph.analyzer import ReverseDependency
from .lock.installer import CyclePolicy
from .lock.installer import InstallOptions
from .lock.installer import InstallResult
from .lock.installer import LockInstaller
from .lock.lockfile import LockFile
from .lock.lockfile import load_lock_file
from .manifest.editor import add_dependency
from .manifest.editor import remove_dependency
from .manifest.loader import parse_manifest_text
from .manifest.loader import read_manifest
from .manifest.schema import DependencySpec
from .manifest.schema import ProjectManifest
from .manifest.validation import ManifestDiagnostic
from .manifest.validation import validate_manifest
from .packages.fetcher import GitPackageFetcher
from .packages.source import PackageSource
from .packages.store import DiskContentStore
from .paths import MANIFEST_FILE

logger = logging.getLogger(__name__)

PackageState = Literal["ok", "not-locked", "ref-changed", "not-cached", "local"]


@dataclass
class PackageListing:
    name: str
    package_key: str
    declared_ref: str | None
    locked_ref: str | None = None
    commit: str | None = None
    local_path: str | None = None
    description: str | None = None
    direct: bool = True


@dataclass
class PackageStatus:
    package_key: str
    declared_ref: str | None
    locked_ref: str | None
    commit: str | None
    state: PackageState


@dataclass
class ValidationReport:
    diagnostics: list[ManifestDiagnostic] = field(default_factory=list)
    cycles: list[list[str]] = field(default_factory=list)
    unlocked: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.cycles and not any(d.severity == "error" for d in self.diagnostics)


@dataclass
class ComplianceResult:
    violations: list[GovernanceViolation] = field(default_factory=list)
    cycles: list[list[str]] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return not self.cycles and not any(v.severity == "error" for v in self.violations)


class PackageManager:
    """Dependency operations for one workspace."""

    def __init__(self, workspace_root: Path, fetcher: GitPackageFetcher | None = None):
        """Initialize package manager.

        Args:
            workspace_root: Directory holding model.yaml
            fetcher: Fetcher to use (creates one with the default transport if None)
        """
        self.root = workspace_root.resolve()
        self._fetcher = fetcher

    @property
    def fetcher(self) -> GitPackageFetcher:
        if self._fetcher is None:
            self._fetcher = GitPackageFetcher()
        return self._fetcher

    @property
    def manifest_path(self) -> Path:
        return self.root / MANIFEST_FILE

    def manifest(self) -> ProjectManifest:
        if not self.manifest_path.is_file():
            raise ConfigError(f"No {MANIFEST_FILE} in {self.root}", hint=f"Create {MANIFEST_FILE} first")
        return read_manifest(self.manifest_path)

    def lock(self) -> LockFile:
        lock = load_lock_file(self.root)
        if lock is None:
            raise ConfigError("No model.lock found", hint="Run 'dlang install' first")
        return lock

    async def install(self, *, update: bool = False, on_cycle: CyclePolicy = "fail") -> InstallResult:
        """Install all dependencies, reusing locked commits unless ``update``."""
        return await LockInstaller(self.fetcher).install(self.root, InstallOptions(update=update, on_cycle=on_cycle))

    async def update(self, packages: list[str] | None = None, *, on_cycle: CyclePolicy = "fail") -> InstallResult:
        """Re-resolve the given packages (all when empty) to their latest commits."""
        options = InstallOptions(update=True, packages=set(packages) if packages else None, on_cycle=on_cycle)
        return await LockInstaller(self.fetcher).install(self.root, options)

    def list_packages(self) -> list[PackageListing]:
        """Declared dependencies plus transitive packages pinned in the lock."""
        manifest = self.manifest()
        lock = load_lock_file(self.root) or LockFile()
        listings: list[PackageListing] = []
        seen: set[str] = set()

        for name, spec in manifest.dependencies.items():
            key = manifest.package_key(name)
            entry = lock.get(key) if not spec.is_local else None
            seen.add(key)
            listings.append(
                PackageListing(
                    name=name,
                    package_key=key,
                    declared_ref=None if spec.is_local else spec.effective_ref,
                    locked_ref=entry.ref if entry else None,
                    commit=entry.commit if entry else None,
                    local_path=spec.path,
                    description=spec.description,
                )
            )

        for key in sorted(lock.dependencies):
            if key not in seen:
                entry = lock.dependencies[key]
                listings.append(
                    PackageListing(key, key, None, locked_ref=entry.ref, commit=entry.commit, direct=False)
                )
        return listings

    def add(self, package_key: str, ref: str = "main", description: str | None = None) -> DependencySpec:
        """Declare a git dependency in model.yaml (run install afterwards)."""
        PackageSource.parse(package_key)
        return add_dependency(self.root, package_key, ref, description=description)

    def remove(self, name: str) -> DependencySpec:
        """Remove a dependency from model.yaml; the next install drops it from the lock."""
        return remove_dependency(self.root, name)

    def status(self) -> list[PackageStatus]:
        """Compare manifest, lock and cache for every package."""
        manifest = self.manifest()
        lock = load_lock_file(self.root) or LockFile()
        requested = manifest.git_dependencies()
        statuses: list[PackageStatus] = []

        for spec in manifest.dependencies.values():
            if spec.is_local:
                statuses.append(PackageStatus(spec.path or "", None, None, None, "local"))

        for key, ref in requested.items():
            ref = manifest.overrides.get(key, ref)
            entry = lock.get(key)
            if entry is None:
                state: PackageState = "not-locked"
            elif entry.ref != ref:
                state = "ref-changed"
            elif not self.fetcher.store.has(self.fetcher.coordinates(key, entry.commit)):
                state = "not-cached"
            else:
                state = "ok"
            statuses.append(
                PackageStatus(key, ref, entry.ref if entry else None, entry.commit if entry else None, state)
            )

        for key, entry in lock.dependencies.items():
            if key in requested:
                continue
            cached = self.fetcher.store.has(self.fetcher.coordinates(key, entry.commit))
            statuses.append(PackageStatus(key, None, entry.ref, entry.commit, "ok" if cached else "not-cached"))
        return statuses

    async def tree(self) -> list[DependencyTreeNode]:
        return await DependencyAnalyzer(self.fetcher).build_tree(self.lock(), self.root)

    async def impact(self, package_key: str) -> list[ReverseDependency]:
        """Who depends on ``package_key`` directly (the workspace shows as ``root``)."""
        return await DependencyAnalyzer(self.fetcher).find_reverse_dependencies(package_key, self.lock(), self.root)

    async def validate(self) -> ValidationReport:
        """Manifest diagnostics, unlocked packages and package cycles, without raising."""
        if not self.manifest_path.is_file():
            raise ConfigError(f"No {MANIFEST_FILE} in {self.root}", hint=f"Create {MANIFEST_FILE} first")
        manifest = parse_manifest_text(self.manifest_path.read_text(encoding="utf-8"), str(self.manifest_path))
        report = ValidationReport(diagnostics=validate_manifest(manifest, self.root))
        if any(d.severity == "error" for d in report.diagnostics):
            return report

        lock = load_lock_file(self.root)
        requested = manifest.git_dependencies()
        if lock is None:
            report.unlocked = sorted(requested)
            return report
        report.unlocked = sorted(key for key in requested if lock.get(key) is None)
        report.cycles = await DependencyAnalyzer(self.fetcher).detect_cycles(lock, self.root)
        return report

    def audit(self) -> AuditReport:
        manifest = self.manifest()
        return GovernanceValidator(manifest.governance).audit(self.lock(), manifest, self.root)

    async def check_compliance(self) -> ComplianceResult:
        """Governance violations plus package cycles, reported rather than raised."""
        manifest = self.manifest()
        lock = self.lock()
        violations = GovernanceValidator(manifest.governance).validate(lock, manifest)
        cycles = await DependencyAnalyzer(self.fetcher).detect_cycles(lock, self.root)
        return ComplianceResult(violations=violations, cycles=cycles)


@dataclass
class CacheStats:
    path: Path
    packages: int
    size_bytes: int


def cache_stats(store: DiskContentStore | None = None) -> CacheStats:
    store = store or DiskContentStore()
    count, size = store.stats()
    return CacheStats(store.root, count, size)


def clear_cache(store: DiskContentStore | None = None) -> int:
    """Delete the package cache; returns the number of packages removed."""
    store = store or DiskContentStore()
    removed = store.clear()
    logger.info(f"Cleared {removed} cached packages from {store.root}")
    return removed
