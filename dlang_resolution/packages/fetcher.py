"""Resolve package refs to commits and materialize them into the store.

Remote ref lists are memoized per package key and resolved commits per
(package key, ref) for the life of the fetcher. Concurrent requests for the
same ref list or the same package commit share one in-flight task.
"""

import asyncio
import logging
import shutil
from collections.abc import Awaitable
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TypeVar

from ..errors import ConfigError
from ..refs.policy import FALLBACK_REF
from ..refs.policy import is_policy_ref
from ..refs.policy import resolve_policy
from ..refs.semver import RefType
from ..refs.semver import detect_ref_type
from ..refs.semver import is_full_commit
from ..refs.semver import parse_version
from .remote import RemoteTransport
from .remote import create_transport
from .retry import RetryConfig
from .retry import with_retry
from .source import PackageCoordinates
from .source import PackageSource
from .store import ContentStore
from .store import DiskContentStore

logger = logging.getLogger(__name__)

K = TypeVar("K")
T = TypeVar("T")


@dataclass
class ResolvedCommit:
    """A ref pinned to an immutable commit.

    ``ref`` is the concrete ref that was looked up; it differs from the
    requested one only for the ``latest``/``stable`` policies.
    """

    ref: str
    commit: str
    resolved_url: str
    ref_type: RefType


class GitPackageFetcher:
    """Ref resolution and single-flight package materialization."""

    def __init__(
        self,
        transport: RemoteTransport | None = None,
        store: ContentStore | None = None,
        retry: RetryConfig | None = None,
    ):
        self.transport = transport or create_transport()
        self.store = store or DiskContentStore()
        self.retry = retry or RetryConfig()
        self._refs: dict[str, dict[str, str]] = {}
        self._commits: dict[tuple[str, str], ResolvedCommit] = {}
        self._pending_refs: dict[str, asyncio.Task[dict[str, str]]] = {}
        self._pending_fetches: dict[PackageCoordinates, asyncio.Task[Path]] = {}
        self._waiters: dict[asyncio.Task, int] = {}

    async def _single_flight(
        self, table: dict[K, asyncio.Task[T]], key: K, factory: Callable[[], Awaitable[T]]
    ) -> T:
        task = table.get(key)
        if task is None:
            task = asyncio.ensure_future(factory())
            table[key] = task

            def _clear(done: asyncio.Task[T]) -> None:
                if table.get(key) is done:
                    del table[key]
                self._waiters.pop(done, None)

            task.add_done_callback(_clear)

        self._waiters[task] = self._waiters.get(task, 0) + 1
        try:
            # Shield so one cancelled waiter does not cancel the shared work
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            # The last waiter to leave cancels the work nobody needs any more
            if self._waiters.get(task) == 1 and not task.done():
                task.cancel()
            raise
        finally:
            if task in self._waiters:
                self._waiters[task] -= 1

    def forget(self, package_key: str) -> None:
        """Drop memoized refs and commits of a package so the next lookup hits the remote."""
        self._refs.pop(package_key, None)
        for cached in [k for k in self._commits if k[0] == package_key]:
            del self._commits[cached]
        logger.debug(f"Forgot resolved refs of {package_key}")

    async def list_refs(self, package_key: str) -> dict[str, str]:
        """All tags and branches of a package, mapped to commits."""
        if package_key in self._refs:
            return self._refs[package_key]

        source = PackageSource.parse(package_key)

        async def _load() -> dict[str, str]:
            logger.debug(f"Listing refs for {package_key}")
            refs = await with_retry(
                lambda: self.transport.list_refs(source), self.retry, what=f"ls-remote {package_key}"
            )
            self._refs[package_key] = refs
            return refs

        return await self._single_flight(self._pending_refs, package_key, _load)

    async def available_versions(self, package_key: str) -> list[str]:
        """Refs of a package that parse as semantic versions."""
        refs = await self.list_refs(package_key)
        return [name for name in refs if parse_version(name) is not None]

    async def resolve_commit(self, package_key: str, ref: str) -> ResolvedCommit:
        """Pin ``ref`` of ``package_key`` to a commit.

        A full 40-character SHA is returned without contacting the remote.

        Raises:
            ConfigError: Unknown package source or ref not found on the remote
            NetworkError: Remote unreachable after retries, or access denied
        """
        source = PackageSource.parse(package_key)
        if is_full_commit(ref):
            return ResolvedCommit(ref, ref, source.repo_url, "commit")

        cached = self._commits.get((package_key, ref))
        if cached is not None:
            return cached

        concrete = ref
        if is_policy_ref(ref):
            concrete = resolve_policy(ref, await self.available_versions(package_key)).ref
            logger.info(f"Resolved {package_key}@{ref} to {concrete}")

        refs = await self.list_refs(package_key)
        commit = refs.get(concrete)
        if commit is None and concrete == FALLBACK_REF:
            commit = refs.get("HEAD")
        if commit is None and detect_ref_type(concrete) == "commit":
            matches = {sha for sha in refs.values() if sha.startswith(concrete)}
            if len(matches) == 1:
                commit = matches.pop()
        if commit is None:
            known = ", ".join(sorted(name for name in refs if name != "HEAD")[:10]) or "none"
            raise ConfigError(
                f"ref not found: '{concrete}' does not exist in {source.repo_url}",
                hint=f"Available refs include: {known}",
            )

        resolved = ResolvedCommit(concrete, commit, source.repo_url, detect_ref_type(concrete))
        self._commits[(package_key, ref)] = resolved
        return resolved

    def coordinates(self, package_key: str, commit: str) -> PackageCoordinates:
        return PackageSource.parse(package_key).at(commit)

    async def materialize(self, package_key: str, commit: str) -> Path:
        """Ensure the tree of ``package_key`` at ``commit`` is in the store.

        Returns:
            Store path of the package directory
        """
        source = PackageSource.parse(package_key)
        coords = source.at(commit)
        if self.store.has(coords):
            return self.store.path(coords)

        async def _write(dest: Path) -> None:
            logger.info(f"Downloading {package_key}@{commit[:7]}")

            async def _attempt() -> None:
                # A failed attempt may leave a partial tree behind
                for child in dest.iterdir():
                    if child.is_dir():
                        shutil.rmtree(child)
                    else:
                        child.unlink()
                await self.transport.fetch(source, commit, dest)

            await with_retry(_attempt, self.retry, what=f"fetch {package_key}")

        return await self._single_flight(
            self._pending_fetches, coords, lambda: self.store.materialize(coords, _write)
        )

    def read_text(self, package_key: str, commit: str, relpath: str) -> str | None:
        """Read a file from an already materialized package."""
        return self.store.read_text(self.coordinates(package_key, commit), relpath)
