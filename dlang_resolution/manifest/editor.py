"""Add and remove dependencies in model.yaml."""

import logging
from pathlib import Path

from ..errors import ConfigError
from ..errors import NotFoundError
from ..paths import MANIFEST_FILE
from .loader import parse_manifest_text
from .loader import save_manifest
from .schema import DependencySpec
from .schema import ProjectManifest
from .validation import check_manifest

logger = logging.getLogger(__name__)


def _read_for_edit(root: Path) -> tuple[Path, ProjectManifest]:
    manifest_path = root / MANIFEST_FILE
    if not manifest_path.is_file():
        raise ConfigError(f"No {MANIFEST_FILE} in {root}", hint=f"Create {MANIFEST_FILE} first")
    return manifest_path, parse_manifest_text(manifest_path.read_text(encoding="utf-8"), str(manifest_path))


def add_dependency(root: Path, key: str, ref: str, *, description: str | None = None) -> DependencySpec:
    """Add or replace a git dependency.

    Args:
        root: Workspace root holding model.yaml
        key: Package key, e.g. ``acme/core``
        ref: Tag, branch, commit, ``latest`` or ``stable``
        description: Optional description (forces the extended form)

    Returns:
        The stored DependencySpec

    Raises:
        ConfigError: No manifest, or the edit would make it invalid
    """
    manifest_path, manifest = _read_for_edit(root)
    if description:
        spec = DependencySpec(source=key, ref=ref, description=description)
    else:
        spec = DependencySpec(source=key, ref=ref, short_form=True)

    manifest.dependencies[key] = spec
    check_manifest(manifest, root)
    save_manifest(manifest, manifest_path)
    logger.info(f"Added dependency {key}@{ref}")
    return spec


def remove_dependency(root: Path, key: str) -> DependencySpec:
    """Remove a dependency and any override for it.

    Raises:
        NotFoundError: The dependency is not declared
    """
    manifest_path, manifest = _read_for_edit(root)
    if key not in manifest.dependencies:
        raise NotFoundError(f"Dependency '{key}' is not declared in {MANIFEST_FILE}")

    removed = manifest.dependencies.pop(key)
    manifest.overrides.pop(key, None)
    save_manifest(manifest, manifest_path)
    logger.info(f"Removed dependency {key}")
    return removed
