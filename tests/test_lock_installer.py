"""Tests for lock file persistence and the install/update workflow."""

import pytest
from conftest import package_manifest
from conftest import sha
from conftest import write_manifest
from pydantic import ValidationError

from dlang_resolution.errors import ConfigError
from dlang_resolution.errors import CycleError
from dlang_resolution.errors import ParseError
from dlang_resolution.lock.installer import InstallOptions
from dlang_resolution.lock.installer import LockInstaller
from dlang_resolution.lock.lockfile import LockEntry
from dlang_resolution.lock.lockfile import LockFile
from dlang_resolution.lock.lockfile import load_lock_file
from dlang_resolution.lock.lockfile import save_lock_file
from dlang_resolution.packages.fetcher import GitPackageFetcher
from dlang_resolution.packages.retry import RetryConfig


def _entry(label: str, ref: str = "v1.0.0") -> LockEntry:
    return LockEntry(ref=ref, ref_type="tag", resolved_url=f"https://github.com/{label}", commit=sha(label))


def test_lock_file_save_load_roundtrip(workspace):
    lock = LockFile(dependencies={"acme/b": _entry("acme/b"), "acme/a": _entry("acme/a")})

    assert save_lock_file(workspace, lock) is True
    assert load_lock_file(workspace).dependencies == lock.dependencies
    assert save_lock_file(workspace, load_lock_file(workspace)) is False

    text = (workspace / "model.lock").read_text()
    assert text.index('"acme/a"') < text.index('"acme/b"')
    assert '"refType": "tag"' in text
    assert '"resolved": "https://github.com/acme/a"' in text


def test_missing_lock_file_is_none(workspace):
    assert load_lock_file(workspace) is None


def test_corrupt_lock_file_is_parse_error(workspace):
    (workspace / "model.lock").write_text("{not json")

    with pytest.raises(ParseError, match="invalid lock file"):
        load_lock_file(workspace)


def test_unsupported_lock_version(workspace):
    (workspace / "model.lock").write_text('{"version": "9", "dependencies": {}}')

    with pytest.raises(ParseError, match="unsupported lock version"):
        load_lock_file(workspace)


def test_lock_entry_requires_full_commit():
    with pytest.raises(ValidationError):
        LockEntry(ref="main", ref_type="branch", resolved_url="https://github.com/acme/core", commit="../../etc")


def test_lock_file_with_short_commit_is_parse_error(workspace):
    (workspace / "model.lock").write_text(
        '{"version": "1", "dependencies": {"acme/core": '
        '{"ref": "main", "refType": "branch", "resolved": "https://github.com/acme/core", "commit": "abc1234"}}}'
    )

    with pytest.raises(ParseError, match="invalid lock file"):
        load_lock_file(workspace)


@pytest.mark.asyncio
async def test_update_after_install_on_same_fetcher(workspace, transport, fetcher):
    transport.add("acme/core", "main")
    write_manifest(workspace, {"dependencies": {"acme/core": "main"}})
    installer = LockInstaller(fetcher)
    await installer.install(workspace)

    new = transport.add("acme/core", "main", {"index.dlang": "Domain Moved {}"})
    updated = await installer.install(workspace, InstallOptions(update=True))

    assert updated.changed is True
    assert updated.lock.get("acme/core").commit == new
    assert transport.list_calls == ["acme/core", "acme/core"]


@pytest.mark.asyncio
async def test_install_pins_and_reinstall_is_offline(workspace, transport, store, fetcher):
    commit = transport.add("acme/core", "v1.0.0")
    write_manifest(workspace, {"model": {"name": "sales"}, "dependencies": {"acme/core": "v1.0.0"}})

    first = await LockInstaller(fetcher).install(workspace)

    assert first.changed is True
    assert first.lock.get("acme/core") == LockEntry(
        ref="v1.0.0", ref_type="tag", resolved_url="https://github.com/acme/core", commit=commit
    )
    text = (workspace / "model.lock").read_text()

    calls_before = transport.network_calls
    fresh = GitPackageFetcher(transport=transport, store=store, retry=RetryConfig(max_retries=0))
    second = await LockInstaller(fresh).install(workspace)

    assert transport.network_calls == calls_before
    assert second.changed is False
    assert second.resolved == set()
    assert (workspace / "model.lock").read_text() == text


@pytest.mark.asyncio
async def test_install_without_manifest(workspace, fetcher):
    with pytest.raises(ConfigError, match="No model.yaml"):
        await LockInstaller(fetcher).install(workspace)


@pytest.mark.asyncio
async def test_install_records_transitive_packages(workspace, transport, fetcher):
    transport.add("acme/patterns", "v2.1.0")
    transport.add("acme/core", "v1.0.0", {"model.yaml": package_manifest({"acme/patterns": "v2.1.0"})})
    write_manifest(workspace, {"dependencies": {"acme/core": "v1.0.0"}})

    result = await LockInstaller(fetcher).install(workspace)

    assert sorted(result.lock.dependencies) == ["acme/core", "acme/patterns"]
    assert result.graph.get("acme/core").dependencies == {"acme/patterns": "v2.1.0"}


@pytest.mark.asyncio
async def test_same_major_conflict_takes_latest(workspace, transport, fetcher):
    transport.add("acme/shared", "v1.2.0")
    newest = transport.add("acme/shared", "v1.4.0")
    transport.add("acme/a", "v1.0.0", {"model.yaml": package_manifest({"acme/shared": "v1.2.0"})})
    transport.add("acme/b", "v1.0.0", {"model.yaml": package_manifest({"acme/shared": "v1.4.0"})})
    write_manifest(workspace, {"dependencies": {"acme/a": "v1.0.0", "acme/b": "v1.0.0"}})

    result = await LockInstaller(fetcher).install(workspace)

    shared = result.lock.get("acme/shared")
    assert shared.ref == "v1.4.0"
    assert shared.commit == newest


@pytest.mark.asyncio
async def test_major_conflict_requires_override(workspace, transport, fetcher):
    transport.add("acme/shared", "v1.0.0")
    transport.add("acme/shared", "v2.0.0")
    transport.add("acme/a", "v1.0.0", {"model.yaml": package_manifest({"acme/shared": "v1.0.0"})})
    transport.add("acme/b", "v1.0.0", {"model.yaml": package_manifest({"acme/shared": "v2.0.0"})})
    write_manifest(workspace, {"dependencies": {"acme/a": "v1.0.0", "acme/b": "v1.0.0"}})

    with pytest.raises(ConfigError, match="Incompatible major versions of acme/shared") as exc:
        await LockInstaller(fetcher).install(workspace)

    assert "overrides" in exc.value.hint
    assert not (workspace / "model.lock").exists()


@pytest.mark.asyncio
async def test_override_wins(workspace, transport, fetcher):
    transport.add("acme/shared", "v1.0.0")
    pinned = transport.add("acme/shared", "v2.0.0")
    transport.add("acme/a", "v1.0.0", {"model.yaml": package_manifest({"acme/shared": "v1.0.0"})})
    transport.add("acme/b", "v1.0.0", {"model.yaml": package_manifest({"acme/shared": "v2.0.0"})})
    write_manifest(
        workspace,
        {
            "dependencies": {"acme/a": "v1.0.0", "acme/b": "v1.0.0"},
            "overrides": {"acme/shared": "v2.0.0"},
        },
    )

    result = await LockInstaller(fetcher).install(workspace)

    assert result.lock.get("acme/shared").commit == pinned


def _cycle(transport) -> None:
    transport.add("acme/a", "v1.0.0", {"model.yaml": package_manifest({"acme/b": "v1.0.0"})})
    transport.add("acme/b", "v1.0.0", {"model.yaml": package_manifest({"acme/c": "v1.0.0"})})
    transport.add("acme/c", "v1.0.0", {"model.yaml": package_manifest({"acme/a": "v1.0.0"})})


@pytest.mark.asyncio
async def test_package_cycle_fails_before_writing_lock(workspace, transport, fetcher):
    _cycle(transport)
    write_manifest(workspace, {"dependencies": {"acme/a": "v1.0.0"}})

    with pytest.raises(CycleError) as exc:
        await LockInstaller(fetcher).install(workspace)

    assert len(exc.value.cycles) == 1
    cycle = exc.value.cycles[0]
    assert set(cycle) == {"acme/a", "acme/b", "acme/c"}
    assert cycle[0] == cycle[-1]
    assert "Circular package dependency" in str(exc.value)
    assert not (workspace / "model.lock").exists()


@pytest.mark.asyncio
async def test_package_cycle_can_be_reported(workspace, transport, fetcher):
    _cycle(transport)
    write_manifest(workspace, {"dependencies": {"acme/a": "v1.0.0"}})

    result = await LockInstaller(fetcher).install(workspace, InstallOptions(on_cycle="report"))

    assert result.cycles == [["acme/a", "acme/b", "acme/c", "acme/a"]]
    assert len(result.lock.dependencies) == 3


@pytest.mark.asyncio
async def test_update_moves_branch_to_new_commit(workspace, transport, store, fetcher):
    old = transport.add("acme/core", "main")
    write_manifest(workspace, {"dependencies": {"acme/core": "main"}})
    await LockInstaller(fetcher).install(workspace)

    new = transport.add("acme/core", "main", {"index.dlang": "Domain Moved {}"})
    retry = RetryConfig(max_retries=0)

    unchanged = await LockInstaller(GitPackageFetcher(transport, store, retry)).install(workspace)
    assert unchanged.lock.get("acme/core").commit == old

    updated = await LockInstaller(GitPackageFetcher(transport, store, retry)).install(
        workspace, InstallOptions(update=True)
    )
    assert updated.changed is True
    assert updated.lock.get("acme/core").commit == new
    assert updated.lock.get("acme/core").ref_type == "branch"


@pytest.mark.asyncio
async def test_changed_manifest_ref_is_re_resolved(workspace, transport, fetcher):
    transport.add("acme/core", "v1.0.0")
    newer = transport.add("acme/core", "v1.1.0")
    write_manifest(workspace, {"dependencies": {"acme/core": "v1.0.0"}})
    await LockInstaller(fetcher).install(workspace)

    write_manifest(workspace, {"dependencies": {"acme/core": "v1.1.0"}})
    result = await LockInstaller(fetcher).install(workspace)

    assert result.resolved == {"acme/core"}
    assert result.lock.get("acme/core").commit == newer


@pytest.mark.asyncio
async def test_removed_dependency_drops_out_of_lock(workspace, transport, fetcher):
    transport.add("acme/core", "v1.0.0")
    transport.add("acme/extra", "v1.0.0")
    write_manifest(workspace, {"dependencies": {"acme/core": "v1.0.0", "acme/extra": "v1.0.0"}})
    await LockInstaller(fetcher).install(workspace)

    write_manifest(workspace, {"dependencies": {"acme/core": "v1.0.0"}})
    result = await LockInstaller(fetcher).install(workspace)

    assert list(result.lock.dependencies) == ["acme/core"]


@pytest.mark.asyncio
async def test_update_rejects_unknown_packages(workspace, transport, fetcher):
    transport.add("acme/core", "v1.0.0")
    write_manifest(workspace, {"dependencies": {"acme/core": "v1.0.0"}})

    with pytest.raises(ConfigError, match="Unknown packages: acme/ghost"):
        await LockInstaller(fetcher).install(workspace, InstallOptions(update=True, packages={"acme/ghost"}))


@pytest.mark.asyncio
async def test_policy_ref_is_kept_in_lock(workspace, transport, fetcher):
    transport.add("acme/core", "v1.0.0")
    stable = transport.add("acme/core", "v1.1.0")
    transport.add("acme/core", "v2.0.0-rc.1")
    write_manifest(workspace, {"dependencies": {"acme/core": "stable"}})

    result = await LockInstaller(fetcher).install(workspace)

    entry = result.lock.get("acme/core")
    assert entry.ref == "stable"
    assert entry.commit == stable
    assert entry.ref_type == "tag"
