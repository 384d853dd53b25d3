"""Syntax-only classification of import addresses.

Three address spaces:

- ``./x`` and ``../x``: relative to the importing file
- ``@alias/x``: workspace-root aliases declared under ``paths`` in model.yaml
- ``owner/repo`` or ``owner/repo@ref``: git packages

Classification never touches the filesystem; callers that need the
"existing relative file wins" rule pass a ``local_exists`` predicate.
"""

import re
from collections.abc import Callable
from collections.abc import Iterable
from collections.abc import Mapping
from dataclasses import dataclass

from ..errors import ConfigError

_PACKAGE_RE = re.compile(r"^[A-Za-z0-9-]+/[A-Za-z0-9-_.]+(@[^/]+)?$")
_URL_RE = re.compile(r"^(https?|git)://[^/]+/[^/]+/[^/@]+(@[^/]+)?$")
ROOT_ALIAS = "@/"


@dataclass(frozen=True)
class RelativeImport:
    path: str


@dataclass(frozen=True)
class AliasImport:
    alias: str
    subpath: str
    target: str


@dataclass(frozen=True)
class ExternalImport:
    package_key: str
    ref: str | None = None
    alias: str | None = None


ImportAddress = RelativeImport | AliasImport | ExternalImport


def split_ref(address: str) -> tuple[str, str | None]:
    """Split an optional ``@ref`` suffix off a package address."""
    head, sep, ref = address.rpartition("@")
    if not sep or not head or "/" in ref:
        return address, None
    return head, ref


def _match_alias(address: str, aliases: Mapping[str, str]) -> AliasImport:
    # "@/" is the implicit workspace-root alias unless the manifest overrides it
    table = {ROOT_ALIAS: "./", **aliases}
    candidates = []
    for alias, target in table.items():
        prefix = alias if alias.endswith("/") else alias + "/"
        if address == alias.rstrip("/") or address.startswith(prefix):
            candidates.append((alias, target, prefix))

    if not candidates:
        name = address.split("/", 1)[0]
        declared = ", ".join(sorted(a for a in aliases)) or "none"
        raise ConfigError(
            f"Unknown path alias '{name}' in import '{address}'",
            hint=f"Declare it under 'paths' in model.yaml (declared aliases: {declared})",
        )

    alias, target, prefix = max(candidates, key=lambda c: len(c[0]))
    subpath = address[len(prefix) :] if address.startswith(prefix) else ""
    return AliasImport(alias=alias, subpath=subpath, target=target)


def classify(
    address: str,
    aliases: Mapping[str, str] | None = None,
    *,
    dependency_keys: Iterable[str] = (),
    local_exists: Callable[[str], bool] | None = None,
    binding: str | None = None,
) -> ImportAddress:
    """Classify an import address.

    Args:
        address: Raw import string as written in the source file
        aliases: ``paths`` table from the manifest
        dependency_keys: Keys declared under ``dependencies`` (bare keys such
            as ``core`` are packages when declared)
        local_exists: Optional predicate; when it claims an ``owner/repo``
            shaped address as an existing relative file, the address is
            treated as relative
        binding: Optional ``as Alias`` name from the import statement

    Returns:
        RelativeImport, AliasImport or ExternalImport

    Raises:
        ConfigError: Empty address, unknown alias, or unrecognized shape
    """
    address = address.strip()
    if not address:
        raise ConfigError("Empty import address")

    if address.startswith(("./", "../")) or address in (".", ".."):
        return RelativeImport(path=address)

    if address.startswith("@"):
        return _match_alias(address, aliases or {})

    key, ref = split_ref(address)
    if key in set(dependency_keys):
        return ExternalImport(package_key=key, ref=ref, alias=binding)

    if _PACKAGE_RE.match(address) or _URL_RE.match(address):
        if local_exists is not None and local_exists(address):
            return RelativeImport(path=f"./{address}")
        return ExternalImport(package_key=key, ref=ref, alias=binding)

    raise ConfigError(
        f"Cannot classify import '{address}'",
        hint="Use './relative/path', '@alias/path', or 'owner/repo@ref'",
    )
