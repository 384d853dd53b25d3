"""Path policy for DomainLang workspaces.

File names, cache location and the workspace sandbox live here so the rest
of the package never hardcodes them.
"""

import os
from pathlib import Path

MANIFEST_FILE = "model.yaml"
LOCK_FILE = "model.lock"
DEFAULT_ENTRY = "index.dlang"
SOURCE_SUFFIX = ".dlang"


def get_cache_dir() -> Path:
    """Get the user-level package cache root.

    ``DLANG_CACHE_DIR`` overrides the default ``~/.dlang/cache``.
    """
    override = os.environ.get("DLANG_CACHE_DIR")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".dlang" / "cache"


def is_within(path: Path, root: Path) -> bool:
    """Check whether ``path`` stays inside ``root`` once both are resolved."""
    try:
        path.resolve().relative_to(root.resolve())
        return True
    except ValueError:
        return False
