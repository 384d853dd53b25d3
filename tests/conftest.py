"""Shared fixtures for dlang-resolution tests."""

import asyncio
import hashlib
from pathlib import Path

import pytest
import yaml

from dlang_resolution.errors import NetworkError
from dlang_resolution.manifest.loader import clear_manifest_cache
from dlang_resolution.packages.fetcher import GitPackageFetcher
from dlang_resolution.packages.retry import RetryConfig
from dlang_resolution.packages.source import PackageSource
from dlang_resolution.packages.store import MemoryContentStore


def sha(label: str) -> str:
    """Deterministic 40-hex commit id for a label."""
    return hashlib.sha1(label.encode()).hexdigest()


class FakeTransport:
    """In-process remote: repos keyed by ``owner/repo``.

    ``add(key, ref, files)`` publishes a commit reachable from ``ref`` and
    returns its SHA. Every call is counted so tests can assert on network use.
    """

    def __init__(self):
        self.refs: dict[str, dict[str, str]] = {}
        self.trees: dict[tuple[str, str], dict[str, str]] = {}
        self.list_calls: list[str] = []
        self.fetch_calls: list[tuple[str, str]] = []
        self.fetch_delay = 0.0
        self.failures: list[NetworkError] = []

    def add(self, key: str, ref: str, files: dict[str, str] | None = None) -> str:
        commit = sha(f"{key}@{ref}:{sorted((files or {}).items())}")
        self.refs.setdefault(key, {})[ref] = commit
        self.trees[(key, commit)] = files or {"index.dlang": f"// {key} {ref}\n"}
        return commit

    @property
    def network_calls(self) -> int:
        return len(self.list_calls) + len(self.fetch_calls)

    def _key(self, source: PackageSource) -> str:
        return f"{source.owner}/{source.repo}"

    async def list_refs(self, source: PackageSource) -> dict[str, str]:
        key = self._key(source)
        self.list_calls.append(key)
        if self.failures:
            raise self.failures.pop(0)
        if key not in self.refs:
            raise NetworkError(f"Repository not found: {key}")
        return dict(self.refs[key])

    async def fetch(self, source: PackageSource, commit: str, dest: Path) -> None:
        key = self._key(source)
        self.fetch_calls.append((key, commit))
        if self.fetch_delay:
            await asyncio.sleep(self.fetch_delay)
        for relpath, text in self.trees[(key, commit)].items():
            target = dest / relpath
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(text, encoding="utf-8")


@pytest.fixture(autouse=True)
def _isolate(tmp_path, monkeypatch):
    """Keep the manifest cache and the package cache per test."""
    clear_manifest_cache()
    monkeypatch.setenv("DLANG_CACHE_DIR", str(tmp_path / "cache"))
    yield
    clear_manifest_cache()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def store():
    return MemoryContentStore()


@pytest.fixture
def fetcher(transport, store):
    return GitPackageFetcher(transport=transport, store=store, retry=RetryConfig(max_retries=2, initial_delay=0))


@pytest.fixture
def workspace(tmp_path):
    root = tmp_path / "workspace"
    root.mkdir()
    return root


def write_manifest(root: Path, data: dict) -> Path:
    path = root / "model.yaml"
    path.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")
    clear_manifest_cache()
    return path


def package_manifest(dependencies: dict[str, str] | None = None, entry: str | None = None) -> str:
    data: dict = {"model": {"name": "pkg", "version": "1.0.0"}}
    if entry:
        data["model"]["entry"] = entry
    if dependencies:
        data["dependencies"] = dependencies
    return yaml.safe_dump(data, sort_keys=False)
