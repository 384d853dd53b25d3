"""Structural and sandbox checks for a parsed manifest.

``validate_manifest`` collects every problem as a diagnostic (used by the
``validate`` command); ``check_manifest`` raises on the first error so that
loading fails fast before any network activity.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from ..errors import ConfigError
from ..paths import is_within
from ..refs.semver import parse_version
from .schema import ProjectManifest

Severity = Literal["error", "warning"]


@dataclass
class ManifestDiagnostic:
    code: str
    severity: Severity
    message: str
    path: str
    hint: str | None = None


def _check_relative(value: str, root: Path) -> str | None:
    """Return an error code when ``value`` is absolute or escapes ``root``."""
    if Path(value).is_absolute():
        return "absolute"
    if not is_within(root / value, root):
        return "outside"
    return None


def validate_manifest(manifest: ProjectManifest, root: Path) -> list[ManifestDiagnostic]:
    """Check a manifest against the workspace rooted at ``root``."""
    diagnostics: list[ManifestDiagnostic] = []

    def add(code: str, severity: Severity, message: str, path: str, hint: str | None = None) -> None:
        diagnostics.append(ManifestDiagnostic(code, severity, message, path, hint))

    if manifest.model is None or not manifest.model.name:
        add(
            "manifest-model-missing-name",
            "warning",
            "model.name is not set",
            "model.name",
            "Add a name so the model can be published and referenced",
        )
    if manifest.model and manifest.model.version and parse_version(manifest.model.version) is None:
        add(
            "manifest-model-invalid-version",
            "error",
            f"model.version '{manifest.model.version}' is not a semantic version",
            "model.version",
            "Use MAJOR.MINOR.PATCH, for example 1.0.0",
        )

    for alias, target in manifest.paths.items():
        where = f"paths.{alias}"
        if not alias.startswith("@"):
            add(
                "manifest-path-alias-missing-at-prefix",
                "error",
                f"Path alias '{alias}' must start with '@'",
                where,
                f"Rename it to '@{alias}'",
            )
        problem = _check_relative(target, root)
        if problem == "absolute":
            add("manifest-path-alias-absolute", "error", f"Path alias '{alias}' uses absolute path '{target}'", where)
        elif problem == "outside":
            add(
                "manifest-path-alias-outside-workspace",
                "error",
                f"Path alias '{alias}' target '{target}' is outside workspace boundary",
                where,
                "Alias targets must stay inside the workspace",
            )

    for key, spec in manifest.dependencies.items():
        where = f"dependencies.{key}"
        if spec.source and spec.path:
            add(
                "manifest-dependency-conflicting-source-path",
                "error",
                f"Dependency '{key}' declares both 'source' and 'path'",
                where,
                "Use 'source' for git packages or 'path' for local packages, not both",
            )
            continue
        if not spec.source and not spec.path:
            add(
                "manifest-dependency-missing-source",
                "error",
                f"Dependency '{key}' declares neither 'source' nor 'path'",
                where,
                f"Use the short form '{key}: <ref>' or add 'source' or 'path'",
            )
            continue
        if spec.path is not None:
            problem = _check_relative(spec.path, root)
            if problem == "absolute":
                add(
                    "manifest-dependency-absolute-path",
                    "error",
                    f"Dependency '{key}' uses absolute path '{spec.path}'",
                    where,
                    "Use a path relative to the workspace root",
                )
            elif problem == "outside":
                add(
                    "manifest-dependency-path-outside-workspace",
                    "error",
                    f"Dependency '{key}' path '{spec.path}' is outside workspace boundary",
                    where,
                    "Local dependencies must live inside the workspace",
                )
        elif spec.ref is None:
            add(
                "manifest-dependency-missing-ref",
                "warning",
                f"Dependency '{key}' has no ref and will track 'main'",
                where,
                "Pin a tag such as v1.0.0 for reproducible builds",
            )

    declared = set(manifest.git_dependencies()) | set(manifest.dependencies)
    for key in manifest.overrides:
        if key not in declared:
            add(
                "manifest-override-unknown-package",
                "warning",
                f"Override for '{key}' does not match a direct dependency",
                f"overrides.{key}",
                "Overrides still apply to transitive packages with this key",
            )

    return diagnostics


def check_manifest(manifest: ProjectManifest, root: Path) -> None:
    """Raise ConfigError for the first error-severity diagnostic."""
    for diagnostic in validate_manifest(manifest, root):
        if diagnostic.severity == "error":
            raise ConfigError(f"model.yaml: {diagnostic.message}", hint=diagnostic.hint)
