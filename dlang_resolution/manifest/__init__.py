"""model.yaml schema, discovery, validation and editing."""

from .loader import clear_manifest_cache
from .loader import find_manifest
from .loader import find_workspace_root
from .loader import load_manifest
from .loader import read_manifest
from .loader import save_manifest
from .schema import DependencySpec
from .schema import ProjectManifest
from .validation import ManifestDiagnostic
from .validation import validate_manifest

__all__ = [
    "DependencySpec",
    "ManifestDiagnostic",
    "ProjectManifest",
    "clear_manifest_cache",
    "find_manifest",
    "find_workspace_root",
    "load_manifest",
    "read_manifest",
    "save_manifest",
    "validate_manifest",
]
