"""Organizational policy checks over an installed workspace.

Policies live in the ``governance`` section of model.yaml::

    governance:
      allowedSources:
        - github.com/acme
      blockedPackages:
        - legacy/
      requireStableVersions: true
      requireTeamOwnership: true

Team ownership reads ``metadata.team`` and ``metadata.contact``.
"""

from dataclasses import dataclass
from dataclasses import field
from pathlib import Path
from typing import Literal

from .lock.lockfile import LockFile
from .manifest.schema import GovernancePolicy
from .manifest.schema import ManifestMetadata
from .manifest.schema import ProjectManifest
from .refs.semver import is_prerelease

ViolationType = Literal["blocked-source", "blocked-package", "unstable-version", "missing-metadata"]


@dataclass
class GovernanceViolation:
    type: ViolationType
    package_key: str
    message: str
    severity: Literal["error", "warning"]


@dataclass
class AuditReport:
    workspace: Path
    metadata: ManifestMetadata
    lock: LockFile
    violations: list[GovernanceViolation] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return any(v.severity == "error" for v in self.violations)


class GovernanceValidator:
    """Check locked dependencies against a GovernancePolicy."""

    def __init__(self, policy: GovernancePolicy | None):
        self.policy = policy or GovernancePolicy()

    def validate(self, lock: LockFile, manifest: ProjectManifest | None) -> list[GovernanceViolation]:
        violations: list[GovernanceViolation] = []
        policy = self.policy

        for key, entry in lock.dependencies.items():
            if policy.allowed_sources and not any(
                pattern in entry.resolved_url or key.startswith(pattern) for pattern in policy.allowed_sources
            ):
                violations.append(
                    GovernanceViolation(
                        "blocked-source", key, f"Package from unauthorized source: {entry.resolved_url}", "error"
                    )
                )

            if any(pattern in key for pattern in policy.blocked_packages):
                violations.append(
                    GovernanceViolation("blocked-package", key, "Package is blocked by governance policy", "error")
                )

            if policy.require_stable_versions and is_prerelease(entry.ref):
                violations.append(
                    GovernanceViolation("unstable-version", key, f"Pre-release ref not allowed: {entry.ref}", "error")
                )

        if policy.require_team_ownership:
            metadata = manifest.metadata if manifest and manifest.metadata else ManifestMetadata()
            if not metadata.team or not metadata.contact:
                violations.append(
                    GovernanceViolation(
                        "missing-metadata",
                        "workspace",
                        "Missing required team ownership metadata (metadata.team, metadata.contact) in model.yaml",
                        "warning",
                    )
                )

        return violations

    def audit(self, lock: LockFile, manifest: ProjectManifest | None, workspace_root: Path) -> AuditReport:
        metadata = manifest.metadata if manifest and manifest.metadata else ManifestMetadata()
        return AuditReport(workspace_root, metadata, lock, self.validate(lock, manifest))


def render_audit_report(report: AuditReport) -> str:
    """Plain-text audit report for compliance records."""
    lines = [
        "=== Dependency Audit Report ===",
        "",
        f"Workspace: {report.workspace}",
        f"Team: {report.metadata.team or 'N/A'}",
        f"Contact: {report.metadata.contact or 'N/A'}",
        f"Domain: {report.metadata.domain or 'N/A'}",
        "",
        "Dependencies:",
    ]
    for key, entry in sorted(report.lock.dependencies.items()):
        lines.append(f"  - {key}@{entry.ref}")
        lines.append(f"    Source: {entry.resolved_url}")
        lines.append(f"    Commit: {entry.commit}")

    lines.append("")
    if report.violations:
        lines.append("Violations:")
        for violation in report.violations:
            lines.append(f"  [{violation.severity.upper()}] {violation.package_key}: {violation.message}")
    else:
        lines.append("✓ No policy violations detected")
    return "\n".join(lines)
