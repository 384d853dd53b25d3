"""Tests for governance policy checks and the audit report."""

from pathlib import Path

from conftest import sha

from dlang_resolution.governance import GovernanceValidator
from dlang_resolution.governance import render_audit_report
from dlang_resolution.lock.lockfile import LockEntry
from dlang_resolution.lock.lockfile import LockFile
from dlang_resolution.manifest.schema import GovernancePolicy
from dlang_resolution.manifest.schema import ProjectManifest


def _lock(**refs: str) -> LockFile:
    entries = {}
    for name, ref in refs.items():
        owner, repo = name.split("__")
        key = f"{owner}/{repo}"
        entries[key] = LockEntry(
            ref=ref, ref_type="tag", resolved_url=f"https://github.com/{key}", commit=sha(key)
        )
    return LockFile(dependencies=entries)


def test_no_policy_means_no_violations():
    lock = _lock(acme__core="v1.0.0-beta")

    assert GovernanceValidator(None).validate(lock, None) == []


def test_allowed_sources():
    policy = GovernancePolicy.model_validate({"allowedSources": ["github.com/acme"]})
    lock = _lock(acme__core="v1.0.0", rogue__lib="v1.0.0")

    violations = GovernanceValidator(policy).validate(lock, None)

    assert [(v.type, v.package_key) for v in violations] == [("blocked-source", "rogue/lib")]
    assert violations[0].message == "Package from unauthorized source: https://github.com/rogue/lib"


def test_blocked_packages_and_stable_versions():
    policy = GovernancePolicy(blocked_packages=["legacy/"], require_stable_versions=True)
    lock = _lock(legacy__old="v1.0.0", acme__core="v2.0.0-rc.1", acme__ok="v1.0.0")

    violations = GovernanceValidator(policy).validate(lock, None)

    assert sorted((v.type, v.package_key) for v in violations) == [
        ("blocked-package", "legacy/old"),
        ("unstable-version", "acme/core"),
    ]
    assert all(v.severity == "error" for v in violations)


def test_team_ownership_is_a_warning():
    policy = GovernancePolicy(require_team_ownership=True)
    manifest = ProjectManifest.model_validate({"metadata": {"team": "sales"}})

    violations = GovernanceValidator(policy).validate(LockFile(), manifest)

    assert len(violations) == 1
    assert violations[0].type == "missing-metadata"
    assert violations[0].severity == "warning"


def test_audit_report_rendering():
    manifest = ProjectManifest.model_validate(
        {
            "metadata": {"team": "sales", "contact": "sales@acme.test"},
            "governance": {"blockedPackages": ["legacy/"]},
        }
    )
    lock = _lock(legacy__old="v1.0.0", acme__core="v1.0.0")

    report = GovernanceValidator(manifest.governance).audit(lock, manifest, Path("/ws"))
    text = render_audit_report(report)

    assert report.has_errors
    assert text.splitlines() == [
        "=== Dependency Audit Report ===",
        "",
        "Workspace: /ws",
        "Team: sales",
        "Contact: sales@acme.test",
        "Domain: N/A",
        "",
        "Dependencies:",
        "  - acme/core@v1.0.0",
        "    Source: https://github.com/acme/core",
        f"    Commit: {sha('acme/core')}",
        "  - legacy/old@v1.0.0",
        "    Source: https://github.com/legacy/old",
        f"    Commit: {sha('legacy/old')}",
        "",
        "Violations:",
        "  [ERROR] legacy/old: Package is blocked by governance policy",
    ]


def test_clean_audit_report():
    report = GovernanceValidator(None).audit(LockFile(), None, Path("/ws"))

    assert not report.has_errors
    assert render_audit_report(report).endswith("✓ No policy violations detected")
