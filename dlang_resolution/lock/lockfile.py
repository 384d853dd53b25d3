"""model.lock: the pinned ref-to-commit table for a workspace.

Format (JSON)::

    {
      "version": "1",
      "dependencies": {
        "acme/core": {
          "ref": "v1.0.0",
          "refType": "tag",
          "resolved": "https://github.com/acme/core",
          "commit": "abc123..."
        }
      }
    }
"""

import json
import logging
from pathlib import Path
from typing import Literal

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic import ValidationError

from ..errors import ParseError
from ..paths import LOCK_FILE
from ..utils.fs import atomic_write_text

logger = logging.getLogger(__name__)

LOCK_VERSION = "1"


class LockEntry(BaseModel):
    """One pinned package."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    ref: str = Field(..., description="Ref as requested after overrides (tag, branch, commit or policy)")
    ref_type: Literal["tag", "branch", "commit"] = Field(..., alias="refType")
    resolved_url: str = Field(..., alias="resolved", description="Repository URL the commit came from")
    commit: str = Field(..., pattern=r"^[0-9a-f]{40}$", description="Immutable 40-hex commit SHA")


class LockFile(BaseModel):
    """Parsed model.lock."""

    version: str = LOCK_VERSION
    dependencies: dict[str, LockEntry] = Field(default_factory=dict)

    def get(self, package_key: str) -> LockEntry | None:
        return self.dependencies.get(package_key)

    def to_json(self) -> str:
        data = {
            "version": self.version,
            "dependencies": {
                key: self.dependencies[key].model_dump(by_alias=True) for key in sorted(self.dependencies)
            },
        }
        return json.dumps(data, indent=2) + "\n"


def lock_path(root: Path) -> Path:
    return root / LOCK_FILE


def load_lock_file(root: Path) -> LockFile | None:
    """Load model.lock from a workspace root, or None when absent.

    Raises:
        ParseError: The file exists but is not a valid lock file
    """
    path = lock_path(root)
    if not path.is_file():
        return None
    try:
        lock = LockFile.model_validate_json(path.read_text(encoding="utf-8"))
    except ValidationError as e:
        raise ParseError(f"{path}: invalid lock file: {e}", hint="Delete it and run 'dlang install'") from e
    if lock.version != LOCK_VERSION:
        raise ParseError(f"{path}: unsupported lock version '{lock.version}'", hint="Run 'dlang install --update'")
    return lock


def save_lock_file(root: Path, lock: LockFile) -> bool:
    """Write model.lock atomically.

    Returns:
        True when the file changed, False when it already held this content
    """
    path = lock_path(root)
    content = lock.to_json()
    if path.is_file() and path.read_text(encoding="utf-8") == content:
        return False
    atomic_write_text(path, content)
    logger.info(f"Wrote {path} ({len(lock.dependencies)} packages)")
    return True
