"""CLI command groups for dlang."""

__all__ = [
    "cache",
    "deps",
    "load",
]
