"""Semantic version helpers for git refs.

Refs are git tags, branches or commit SHAs. Tags usually look like
``v1.2.3``; the leading ``v`` is stripped before parsing.
"""

import re
from typing import Literal

import semantic_version

RefType = Literal["tag", "branch", "commit"]

_COMMIT_RE = re.compile(r"^[0-9a-f]{7,40}$")
_FULL_COMMIT_RE = re.compile(r"^[0-9a-f]{40}$")
_TAG_RE = re.compile(r"^v?\d+\.\d+\.\d+")
_PRERELEASE_RE = re.compile(r"-(alpha|beta|rc|pre|dev|snapshot)", re.IGNORECASE)


def parse_version(ref: str) -> semantic_version.Version | None:
    """Parse a ref as a semantic version, or None when it is not one.

    ``1.2`` is accepted and coerced to ``1.2.0``.
    """
    text = ref[1:] if ref[:1] in ("v", "V") else ref
    if not text or not text[0].isdigit():
        return None
    try:
        return semantic_version.Version(text)
    except ValueError:
        pass
    if re.fullmatch(r"\d+\.\d+", text):
        return semantic_version.Version.coerce(text)
    return None


def is_full_commit(ref: str) -> bool:
    """True for a 40-character hex commit SHA."""
    return bool(_FULL_COMMIT_RE.match(ref))


def detect_ref_type(ref: str) -> RefType:
    """Classify a ref as commit, tag or branch from its shape alone."""
    if _COMMIT_RE.match(ref):
        return "commit"
    if _TAG_RE.match(ref):
        return "tag"
    return "branch"


def is_prerelease(ref: str) -> bool:
    """True when the ref carries a pre-release qualifier (``-beta``, ``-rc.1``)."""
    version = parse_version(ref)
    if version is not None and version.prerelease:
        return True
    return bool(_PRERELEASE_RE.search(ref))


def compare_versions(a: str, b: str) -> int:
    """Compare two refs as semantic versions.

    Returns:
        Negative, zero or positive like ``cmp``. Non-semver refs compare
        below any semver ref and lexicographically among themselves.
    """
    va, vb = parse_version(a), parse_version(b)
    if va is not None and vb is not None:
        return (va > vb) - (va < vb)
    if va is not None:
        return 1
    if vb is not None:
        return -1
    return (a > b) - (a < b)


def sort_versions_descending(refs: list[str]) -> list[str]:
    """Sort refs newest first: semver descending, then non-semver descending."""
    semver_refs = [(parse_version(ref), ref) for ref in refs]
    versioned = sorted(
        ((version, ref) for version, ref in semver_refs if version is not None),
        key=lambda pair: pair[0],
        reverse=True,
    )
    other = sorted((ref for version, ref in semver_refs if version is None), reverse=True)
    return [ref for _, ref in versioned] + other
