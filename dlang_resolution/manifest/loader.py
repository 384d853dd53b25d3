"""Locate, parse and cache model.yaml.

The closest manifest up the directory ancestry wins; manifests in parent
directories are never merged. Parsed manifests are cached per process by
path and modification time.
"""

import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from ..errors import ConfigError
from ..paths import MANIFEST_FILE
from ..utils.fs import atomic_write_text
from .schema import ProjectManifest
from .validation import check_manifest

logger = logging.getLogger(__name__)

_cache: dict[Path, tuple[int, ProjectManifest]] = {}


def find_manifest(start_dir: Path) -> Path | None:
    """Find the nearest model.yaml at or above ``start_dir``."""
    current = start_dir.resolve()
    if current.is_file():
        current = current.parent
    for directory in (current, *current.parents):
        candidate = directory / MANIFEST_FILE
        if candidate.is_file():
            return candidate
    return None


def find_workspace_root(start_dir: Path) -> Path | None:
    """Directory holding the nearest model.yaml, or None."""
    manifest_path = find_manifest(start_dir)
    return manifest_path.parent if manifest_path else None


def parse_manifest_text(text: str, source: str = MANIFEST_FILE) -> ProjectManifest:
    """Parse YAML text into a ProjectManifest without workspace checks.

    Raises:
        ConfigError: Invalid YAML or schema violation
    """
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigError(f"{source}: invalid YAML: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"{source}: top level must be a mapping")

    try:
        return ProjectManifest.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"{source}: {e}") from e


def read_manifest(manifest_path: Path) -> ProjectManifest:
    """Read and validate a specific model.yaml, using the process cache.

    Raises:
        ConfigError: Malformed manifest or sandbox violation
    """
    manifest_path = manifest_path.resolve()
    mtime = manifest_path.stat().st_mtime_ns
    cached = _cache.get(manifest_path)
    if cached and cached[0] == mtime:
        return cached[1]

    manifest = parse_manifest_text(manifest_path.read_text(encoding="utf-8"), str(manifest_path))
    check_manifest(manifest, manifest_path.parent)
    _cache[manifest_path] = (mtime, manifest)
    logger.debug(f"Loaded manifest {manifest_path}")
    return manifest


def load_manifest(start_dir: Path) -> ProjectManifest | None:
    """Load the nearest manifest, or None when the workspace has none."""
    manifest_path = find_manifest(start_dir)
    if manifest_path is None:
        return None
    return read_manifest(manifest_path)


def save_manifest(manifest: ProjectManifest, manifest_path: Path) -> None:
    """Write a manifest atomically, preserving short-form dependencies."""
    text = yaml.safe_dump(manifest.to_yaml_dict(), sort_keys=False, allow_unicode=True)
    atomic_write_text(manifest_path, text)
    _cache.pop(manifest_path.resolve(), None)


def clear_manifest_cache() -> None:
    _cache.clear()
