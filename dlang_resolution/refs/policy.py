"""Turn an abstract ref policy into a concrete ref."""

from dataclasses import dataclass
from dataclasses import field
from typing import Literal

from .semver import is_prerelease
from .semver import sort_versions_descending

PolicyName = Literal["latest", "stable", "pinned"]

FALLBACK_REF = "main"
POLICY_NAMES = ("latest", "stable")


@dataclass
class PolicyResolution:
    """Outcome of resolving a ref policy."""

    policy: PolicyName
    ref: str
    available_refs: list[str] = field(default_factory=list)


def is_policy_ref(ref: str) -> bool:
    """True for the floating policies ``latest`` and ``stable``."""
    return ref in POLICY_NAMES


def resolve_policy(policy: str, available_refs: list[str]) -> PolicyResolution:
    """Resolve ``latest``, ``stable`` or a pinned ref against available refs.

    Args:
        policy: ``latest``, ``stable`` or any literal ref
        available_refs: Tags (and optionally branches) the remote advertises

    Returns:
        PolicyResolution; ``latest``/``stable`` fall back to ``main`` when no
        candidate exists, anything else comes back unchanged as ``pinned``.
    """
    if policy == "latest":
        ordered = sort_versions_descending(available_refs)
        return PolicyResolution("latest", ordered[0] if ordered else FALLBACK_REF, list(available_refs))

    if policy == "stable":
        stable = [ref for ref in available_refs if not is_prerelease(ref)]
        ordered = sort_versions_descending(stable)
        return PolicyResolution("stable", ordered[0] if ordered else FALLBACK_REF, list(available_refs))

    return PolicyResolution("pinned", policy, list(available_refs))
