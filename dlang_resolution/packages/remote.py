"""Remote transports: how refs are listed and trees fetched.

``GitCliTransport`` shells out to an installed ``git``; ``GitHubApiTransport``
talks to the GitHub REST API with httpx and needs no git binary. Both raise
``NetworkError`` (``transient=True`` when a retry may help).
"""

import asyncio
import io
import logging
import os
import shutil
import subprocess
import tarfile
from pathlib import Path
from typing import Protocol

import httpx  # Fail fast if missing - required for the GitHub transport
import yaml

from ..errors import ConfigError
from ..errors import NetworkError
from .source import PackageSource

logger = logging.getLogger(__name__)

_TRANSIENT_MARKERS = (
    "could not resolve host",
    "connection timed out",
    "connection reset",
    "operation timed out",
    "early eof",
    "the remote end hung up",
    "temporary failure",
    "failed to connect",
)
_AUTH_MARKERS = ("authentication failed", "could not read username", "permission denied", "repository not found")


class RemoteTransport(Protocol):
    async def list_refs(self, source: PackageSource) -> dict[str, str]:
        """Map tag and branch names to commit SHAs."""
        ...

    async def fetch(self, source: PackageSource, commit: str, dest: Path) -> None:
        """Write the tree at ``commit`` into the empty directory ``dest``."""
        ...


def parse_ls_remote(output: str) -> dict[str, str]:
    """Parse ``git ls-remote`` output into a ref name to commit map.

    Peeled annotated tags (``refs/tags/v1^{}``) override the tag object SHA
    so every value is a commit.
    """
    refs: dict[str, str] = {}
    peeled: dict[str, str] = {}
    for line in output.splitlines():
        parts = line.strip().split()
        if len(parts) != 2:
            continue
        sha, name = parts
        for prefix in ("refs/tags/", "refs/heads/"):
            if name.startswith(prefix):
                short = name[len(prefix) :]
                if short.endswith("^{}"):
                    peeled[short[:-3]] = sha
                else:
                    refs.setdefault(short, sha)
        if name == "HEAD":
            refs.setdefault("HEAD", sha)
    refs.update(peeled)
    return refs


class GitCliTransport:
    """Transport backed by the ``git`` command line."""

    def __init__(self, timeout: float = 120.0):
        self.timeout = timeout

    async def _run_git(self, *args: str, what: str) -> str:
        cmd = ["git", *args]
        logger.debug(f"Running: {' '.join(cmd)}")
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                env={**os.environ, "GIT_TERMINAL_PROMPT": "0"},
            )
        except FileNotFoundError as e:
            raise ConfigError("git executable not found", hint="Install git or set DLANG_TRANSPORT=github") from e

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except TimeoutError as e:
            process.kill()
            await process.wait()
            raise NetworkError(f"{what} timed out after {self.timeout}s", transient=True) from e

        if process.returncode != 0:
            message = stderr.decode("utf-8", errors="replace").strip()
            lowered = message.lower()
            if any(marker in lowered for marker in _AUTH_MARKERS):
                raise NetworkError(
                    f"{what} failed: {message}",
                    hint="Check that the repository exists and that your git credentials can access it",
                )
            transient = any(marker in lowered for marker in _TRANSIENT_MARKERS)
            raise NetworkError(f"{what} failed: {message}", transient=transient)
        return stdout.decode("utf-8", errors="replace")

    async def list_refs(self, source: PackageSource) -> dict[str, str]:
        output = await self._run_git("ls-remote", source.clone_url, what=f"Listing refs of {source.repo_url}")
        return parse_ls_remote(output)

    async def fetch(self, source: PackageSource, commit: str, dest: Path) -> None:
        what = f"Fetching {source.repo_url}@{commit[:7]}"
        # Shallow: only the tree at `commit` is transferred
        await self._run_git("init", "--quiet", str(dest), what=what)
        await self._run_git("-C", str(dest), "remote", "add", "origin", source.clone_url, what=what)
        await self._run_git("-C", str(dest), "fetch", "--depth", "1", "--quiet", "origin", commit, what=what)
        await self._run_git("-C", str(dest), "checkout", "--force", "--detach", "--quiet", commit, what=what)
        shutil.rmtree(dest / ".git", ignore_errors=True)


def _github_auth_headers() -> dict[str, str]:
    """GitHub auth headers from GITHUB_TOKEN or the gh CLI config."""
    token = os.getenv("GITHUB_TOKEN")
    if token:
        return {"Authorization": f"Bearer {token}"}

    gh_config = Path.home() / ".config" / "gh" / "hosts.yml"
    if gh_config.exists():
        try:
            config = yaml.safe_load(gh_config.read_text()) or {}
        except yaml.YAMLError:
            logger.debug(f"Ignoring unreadable gh config at {gh_config}")
            return {}
        if token := config.get("github.com", {}).get("oauth_token"):
            return {"Authorization": f"Bearer {token}"}
    return {}


class GitHubApiTransport:
    """Transport backed by the GitHub REST API (github.com packages only)."""

    API_ROOT = "https://api.github.com"

    def __init__(self, timeout: float = 30.0, client: httpx.AsyncClient | None = None):
        self.timeout = timeout
        self._client = client

    def _check_host(self, source: PackageSource) -> None:
        if source.host != "github.com":
            raise ConfigError(
                f"{source.repo_url} is not hosted on github.com",
                hint="Use the git transport (DLANG_TRANSPORT=git) for other hosts",
            )

    async def _get(self, client: httpx.AsyncClient, url: str, *, what: str) -> httpx.Response:
        try:
            response = await client.get(
                url,
                headers={"Accept": "application/vnd.github+json", **_github_auth_headers()},
                follow_redirects=True,
            )
        except httpx.TransportError as e:
            raise NetworkError(f"{what} failed: {e}", transient=True) from e

        if response.status_code in (401, 403, 404):
            raise NetworkError(
                f"{what} failed: HTTP {response.status_code}",
                hint="Check the repository name, or set GITHUB_TOKEN for private repositories",
            )
        if response.status_code >= 500:
            raise NetworkError(f"{what} failed: HTTP {response.status_code}", transient=True)
        response.raise_for_status()
        return response

    def _with_client(self) -> tuple[httpx.AsyncClient, bool]:
        if self._client is not None:
            return self._client, False
        return httpx.AsyncClient(timeout=self.timeout), True

    async def list_refs(self, source: PackageSource) -> dict[str, str]:
        self._check_host(source)
        what = f"Listing refs of {source.repo_url}"
        client, owned = self._with_client()
        try:
            base = f"{self.API_ROOT}/repos/{source.owner}/{source.repo}"
            response = await self._get(client, f"{base}/git/matching-refs/", what=what)
            refs: dict[str, str] = {}
            for item in response.json():
                name: str = item["ref"]
                obj = item["object"]
                sha = obj["sha"]
                if obj.get("type") == "tag":
                    # Annotated tag: peel to the commit it points at
                    tag = await self._get(client, f"{base}/git/tags/{sha}", what=what)
                    sha = tag.json()["object"]["sha"]
                for prefix in ("refs/tags/", "refs/heads/"):
                    if name.startswith(prefix):
                        refs[name[len(prefix) :]] = sha
            return refs
        finally:
            if owned:
                await client.aclose()

    async def fetch(self, source: PackageSource, commit: str, dest: Path) -> None:
        self._check_host(source)
        what = f"Fetching {source.repo_url}@{commit[:7]}"
        client, owned = self._with_client()
        try:
            url = f"{self.API_ROOT}/repos/{source.owner}/{source.repo}/tarball/{commit}"
            response = await self._get(client, url, what=what)
        finally:
            if owned:
                await client.aclose()

        try:
            _extract_tarball(response.content, dest)
        except tarfile.TarError as e:
            raise NetworkError(f"{what} returned an unreadable archive: {e}", transient=True) from e


def _extract_tarball(payload: bytes, dest: Path) -> None:
    """Extract a GitHub tarball, dropping its single top-level directory."""
    with tarfile.open(fileobj=io.BytesIO(payload), mode="r:gz") as archive:
        for member in archive.getmembers():
            parts = Path(member.name).parts
            if len(parts) < 2 or not (member.isfile() or member.isdir()):
                continue
            member.name = str(Path(*parts[1:]))
            archive.extract(member, dest, filter="data")


def create_transport(name: str | None = None) -> RemoteTransport:
    """Build the transport named by ``name`` or ``DLANG_TRANSPORT`` (default git)."""
    choice = (name or os.environ.get("DLANG_TRANSPORT", "git")).lower()
    if choice == "git":
        return GitCliTransport()
    if choice == "github":
        return GitHubApiTransport()
    raise ConfigError(f"Unknown transport '{choice}'", hint="Use 'git' or 'github'")
