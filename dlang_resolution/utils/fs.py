"""Atomic file writes and directory helpers."""

import contextlib
import tempfile
from pathlib import Path


def atomic_write_text(target: Path, content: str) -> None:
    """Write ``content`` to ``target`` via temp file and rename.

    A crash mid-write leaves the previous file intact.

    Raises:
        OSError: Write or rename failed
    """
    target.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        mode="w", dir=target.parent, prefix=f".{target.name}.", suffix=".tmp", delete=False, encoding="utf-8"
    ) as tmp_file:
        temp_path = Path(tmp_file.name)
        try:
            tmp_file.write(content)
            tmp_file.flush()
        except Exception as e:
            with contextlib.suppress(OSError):
                temp_path.unlink()
            raise OSError(f"Failed to write {target}: {e}") from e

    try:
        temp_path.replace(target)
    except OSError:
        with contextlib.suppress(OSError):
            temp_path.unlink()
        raise


def get_dir_size(path: Path) -> int:
    """Get total size of a directory in bytes."""
    total = 0
    with contextlib.suppress(OSError):
        for entry in path.rglob("*"):
            if entry.is_file():
                with contextlib.suppress(OSError):
                    total += entry.stat().st_size
    return total


def format_size(size_bytes: int) -> str:
    """Format bytes as human-readable size."""
    size_float = float(size_bytes)
    for unit in ["B", "KB", "MB", "GB"]:
        if size_float < 1024:
            return f"{size_float:.1f} {unit}"
        size_float /= 1024
    return f"{size_float:.1f} TB"
