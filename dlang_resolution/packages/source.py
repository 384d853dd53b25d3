"""Where a package lives: host, owner and repository.

Package keys are either GitHub shorthand (``owner/repo``) or full URLs for
GitHub, GitLab, Bitbucket and self-hosted git servers.
"""

import re
from dataclasses import dataclass
from pathlib import PurePosixPath
from urllib.parse import urlparse

from ..errors import ConfigError

DEFAULT_HOST = "github.com"
_SHORTHAND_RE = re.compile(r"^[A-Za-z0-9-]+/[A-Za-z0-9-_.]+$")


@dataclass(frozen=True)
class PackageSource:
    """Git repository coordinates for a package key."""

    host: str
    owner: str
    repo: str

    @classmethod
    def parse(cls, package_key: str) -> "PackageSource":
        """Parse ``owner/repo`` or a repository URL.

        Examples:
            >>> PackageSource.parse("acme/core")
            PackageSource(github.com/acme/core)
            >>> PackageSource.parse("https://gitlab.com/acme/core.git")
            PackageSource(gitlab.com/acme/core)

        Raises:
            ConfigError: Key is neither shorthand nor a recognized URL
        """
        key = package_key.strip()
        if _SHORTHAND_RE.match(key):
            owner, repo = key.split("/")
            return cls._checked(package_key, DEFAULT_HOST, owner, _strip_git(repo))

        if "://" not in key and "." in key.split("/", 1)[0]:
            key = f"https://{key}"

        parsed = urlparse(key)
        segments = [s for s in parsed.path.split("/") if s]
        if parsed.scheme in ("https", "http", "git") and parsed.hostname and len(segments) >= 2:
            return cls._checked(package_key, parsed.hostname.lower(), segments[0], _strip_git(segments[1]))

        raise ConfigError(
            f"Unrecognized package source '{package_key}'",
            hint="Use 'owner/repo' for GitHub or a full https:// repository URL",
        )

    @classmethod
    def _checked(cls, package_key: str, host: str, owner: str, repo: str) -> "PackageSource":
        # Segments become cache directories; they must not walk out of the cache root
        for segment in (host, owner, repo):
            if segment in ("", ".", "..") or "\\" in segment:
                raise ConfigError(
                    f"Invalid package source '{package_key}': path segment '{segment}' is not allowed",
                    hint="Package keys name a repository, e.g. 'owner/repo'",
                )
        return cls(host, owner, repo)

    @property
    def repo_url(self) -> str:
        return f"https://{self.host}/{self.owner}/{self.repo}"

    @property
    def clone_url(self) -> str:
        return f"{self.repo_url}.git"

    def at(self, commit: str) -> "PackageCoordinates":
        return PackageCoordinates(self.host, self.owner, self.repo, commit)

    def __repr__(self) -> str:
        return f"PackageSource({self.host}/{self.owner}/{self.repo})"


@dataclass(frozen=True)
class PackageCoordinates:
    """Content-store key: a package pinned to one immutable commit."""

    host: str
    owner: str
    repo: str
    commit: str

    @property
    def relpath(self) -> PurePosixPath:
        return PurePosixPath(self.host, self.owner, self.repo, self.commit)

    def __str__(self) -> str:
        return f"{self.host}/{self.owner}/{self.repo}@{self.commit[:7]}"


def _strip_git(repo: str) -> str:
    return repo[:-4] if repo.endswith(".git") else repo
