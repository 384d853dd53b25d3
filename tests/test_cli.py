"""Tests for the dlang click commands."""

import json
from unittest.mock import patch

import pytest
import yaml
from click.testing import CliRunner
from conftest import package_manifest
from conftest import write_manifest

from dlang_resolution.main import cli


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def _cwd(tmp_path, monkeypatch):
    """Keep the JSONL log inside the test directory."""
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def fake_fetcher(fetcher):
    with patch("dlang_resolution.package_manager.GitPackageFetcher", return_value=fetcher):
        yield fetcher


class TestInstallCommands:
    def test_install_without_manifest_fails(self, runner, workspace, fake_fetcher):
        result = runner.invoke(cli, ["install", "-w", str(workspace)])

        assert result.exit_code == 1
        assert "No model.yaml" in result.output

    def test_install_writes_lock(self, runner, workspace, transport, fake_fetcher):
        transport.add("acme/core", "v1.0.0")
        write_manifest(workspace, {"dependencies": {"acme/core": "v1.0.0"}})

        result = runner.invoke(cli, ["install", "-w", str(workspace)])

        assert result.exit_code == 0, result.output
        assert "Installed 1 package" in result.output
        assert (workspace / "model.lock").is_file()

    def test_install_cycle_fails_unless_reported(self, runner, workspace, transport, fake_fetcher):
        transport.add("acme/a", "v1.0.0", {"model.yaml": package_manifest({"acme/b": "v1.0.0"})})
        transport.add("acme/b", "v1.0.0", {"model.yaml": package_manifest({"acme/a": "v1.0.0"})})
        write_manifest(workspace, {"dependencies": {"acme/a": "v1.0.0"}})

        failed = runner.invoke(cli, ["install", "-w", str(workspace)])
        reported = runner.invoke(cli, ["install", "-w", str(workspace), "--report-cycles"])

        assert failed.exit_code == 1
        assert "Circular package dependency" in failed.output
        assert reported.exit_code == 0
        assert "Dependency cycle" in reported.output

    def test_add_without_install(self, runner, workspace, fake_fetcher):
        write_manifest(workspace, {"model": {"name": "sales"}})

        result = runner.invoke(cli, ["add", "acme/core", "v1.0.0", "--no-install", "-w", str(workspace)])

        assert result.exit_code == 0, result.output
        data = yaml.safe_load((workspace / "model.yaml").read_text())
        assert data["dependencies"] == {"acme/core": "v1.0.0"}
        assert not (workspace / "model.lock").exists()

    def test_remove_unknown_dependency(self, runner, workspace, fake_fetcher):
        write_manifest(workspace, {"model": {"name": "sales"}})

        result = runner.invoke(cli, ["remove", "acme/ghost", "-w", str(workspace)])

        assert result.exit_code == 1
        assert "not declared" in result.output


class TestInspectionCommands:
    @pytest.fixture
    def installed(self, runner, workspace, transport, fake_fetcher):
        transport.add("acme/base", "v2.0.0")
        transport.add("acme/core", "v1.0.0", {"model.yaml": package_manifest({"acme/base": "v2.0.0"})})
        write_manifest(workspace, {"model": {"name": "sales"}, "dependencies": {"acme/core": "v1.0.0"}})
        result = runner.invoke(cli, ["install", "-w", str(workspace)])
        assert result.exit_code == 0, result.output
        return workspace

    def test_tree(self, runner, installed):
        result = runner.invoke(cli, ["tree", "--no-commits", "-w", str(installed)])

        assert result.exit_code == 0, result.output
        assert result.output.splitlines()[-2:] == ["└── acme/core@v1.0.0", "    └── acme/base@v2.0.0"]

    def test_validate(self, runner, installed):
        result = runner.invoke(cli, ["validate", "-w", str(installed)])

        assert result.exit_code == 0, result.output
        assert "Workspace is valid" in result.output

    def test_audit_json(self, runner, installed):
        result = runner.invoke(cli, ["audit", "--json", "-w", str(installed)])

        assert result.exit_code == 0, result.output
        payload = json.loads(result.output)
        assert sorted(payload["dependencies"]) == ["acme/base", "acme/core"]
        assert payload["violations"] == []

    def test_compliance_passes(self, runner, installed):
        result = runner.invoke(cli, ["compliance", "-w", str(installed)])

        assert result.exit_code == 0, result.output
        assert "Compliance check passed" in result.output

    def test_impact(self, runner, installed):
        result = runner.invoke(cli, ["impact", "acme/base", "-w", str(installed)])

        assert result.exit_code == 0, result.output
        assert "acme/core" in result.output


def test_validate_reports_manifest_errors(runner, workspace):
    write_manifest(workspace, {"paths": {"shared": "./libs"}})

    result = runner.invoke(cli, ["validate", "-w", str(workspace)])

    assert result.exit_code == 1
    assert "manifest-path-alias-missing-at-prefix" in result.output


def test_cache_show_before_first_fetch(runner):
    result = runner.invoke(cli, ["cache", "show"])

    assert result.exit_code == 0
    assert "not created yet" in result.output


def test_load_command(runner, workspace, fetcher):
    (workspace / "index.dlang").write_text('import "./types.dlang"')
    (workspace / "types.dlang").write_text("Domain Types {}")

    with patch("dlang_resolution.workspace.loader.GitPackageFetcher", return_value=fetcher):
        result = runner.invoke(cli, ["load", str(workspace / "index.dlang")])

    assert result.exit_code == 0, result.output
    assert "Total: 2 documents" in result.output
