"""Dependency commands: install, list, add, remove, status, update, tree, impact,
validate, audit and compliance."""

from __future__ import annotations

import json
import sys
from dataclasses import asdict
from pathlib import Path

import click
from rich.table import Table

from ..console import console
from ..governance import render_audit_report
from ..graph.analyzer import format_tree
from ..lock.installer import InstallResult
from ..package_manager import PackageManager
from ..utils.error_format import escape_markup
from ._common import handle_errors
from ._common import resolve_workspace
from ._common import run
from ._common import workspace_option

_STATE_STYLES = {
    "ok": "green",
    "local": "cyan",
    "not-locked": "yellow",
    "ref-changed": "yellow",
    "not-cached": "dim",
}


def _manager(workspace: Path | None) -> PackageManager:
    return PackageManager(resolve_workspace(workspace))


def _report_install(result: InstallResult, verb: str) -> None:
    count = len(result.lock.dependencies)
    console.print(f"[green]✓[/green] {verb} {count} package{'s' if count != 1 else ''}")
    if result.resolved:
        console.print(f"[dim]Resolved remotely: {', '.join(sorted(result.resolved))}[/dim]")
    if not result.changed:
        console.print("[dim]model.lock unchanged[/dim]")
    for cycle in result.cycles:
        console.print(f"[yellow]⚠ Dependency cycle:[/yellow] {escape_markup(' -> '.join(cycle))}")


@click.command()
@workspace_option
@click.option("--update", is_flag=True, help="Re-resolve every ref instead of reusing model.lock")
@click.option("--report-cycles", is_flag=True, help="Write the lock even when packages form a cycle")
@handle_errors
def install(workspace: Path | None, update: bool, report_cycles: bool):
    """Install dependencies declared in model.yaml and write model.lock."""
    manager = _manager(workspace)
    result = run(manager.install(update=update, on_cycle="report" if report_cycles else "fail"))
    _report_install(result, "Installed")


@click.command()
@workspace_option
@click.argument("packages", nargs=-1)
@handle_errors
def update(workspace: Path | None, packages: tuple[str, ...]):
    """Re-resolve PACKAGES (default: all) to the newest commit of their ref."""
    manager = _manager(workspace)
    result = run(manager.update(list(packages) or None))
    _report_install(result, "Updated")


@click.command("list")
@workspace_option
@click.option("--all", "show_all", is_flag=True, help="Include transitive packages from model.lock")
@handle_errors
def list_packages(workspace: Path | None, show_all: bool):
    """List declared dependencies and their locked commits."""
    listings = [p for p in _manager(workspace).list_packages() if show_all or p.direct]
    if not listings:
        console.print("[dim]No dependencies declared.[/dim]")
        return

    table = Table(title="Dependencies", show_header=True, header_style="bold cyan")
    table.add_column("Name", style="green")
    table.add_column("Source")
    table.add_column("Ref", style="yellow")
    table.add_column("Commit", style="dim")
    table.add_column("Description")

    for item in listings:
        source = item.local_path or item.package_key
        ref = item.declared_ref or item.locked_ref or "-"
        if item.locked_ref and item.declared_ref and item.locked_ref != item.declared_ref:
            ref = f"{item.declared_ref} (locked {item.locked_ref})"
        table.add_row(
            item.name if item.direct else f"[dim]{item.name}[/dim]",
            source,
            ref,
            item.commit[:7] if item.commit else "-",
            item.description or "",
        )
    console.print(table)


@click.command()
@workspace_option
@click.argument("package")
@click.argument("ref", required=False, default="main")
@click.option("--description", "-d", default=None, help="Description stored with the dependency")
@click.option("--no-install", is_flag=True, help="Only edit model.yaml")
@handle_errors
def add(workspace: Path | None, package: str, ref: str, description: str | None, no_install: bool):
    """Add PACKAGE (owner/repo or URL) at REF to model.yaml and install it."""
    manager = _manager(workspace)
    manager.add(package, ref, description)
    console.print(f"[green]✓[/green] Added {escape_markup(package)}@{escape_markup(ref)} to model.yaml")
    if not no_install:
        _report_install(run(manager.install()), "Installed")


@click.command()
@workspace_option
@click.argument("name")
@handle_errors
def remove(workspace: Path | None, name: str):
    """Remove dependency NAME from model.yaml and refresh model.lock."""
    manager = _manager(workspace)
    manager.remove(name)
    console.print(f"[green]✓[/green] Removed {escape_markup(name)} from model.yaml")
    _report_install(run(manager.install()), "Locked")


@click.command()
@workspace_option
@handle_errors
def status(workspace: Path | None):
    """Compare model.yaml, model.lock and the package cache."""
    statuses = _manager(workspace).status()
    if not statuses:
        console.print("[dim]No dependencies declared.[/dim]")
        return

    table = Table(title="Dependency Status", show_header=True, header_style="bold cyan")
    table.add_column("Package", style="green")
    table.add_column("Requested")
    table.add_column("Locked")
    table.add_column("Commit", style="dim")
    table.add_column("State")
    for item in statuses:
        style = _STATE_STYLES.get(item.state, "white")
        table.add_row(
            item.package_key,
            item.declared_ref or "-",
            item.locked_ref or "-",
            item.commit[:7] if item.commit else "-",
            f"[{style}]{item.state}[/{style}]",
        )
    console.print(table)


@click.command()
@workspace_option
@click.option("--commits/--no-commits", default=True, help="Show pinned commits")
@handle_errors
def tree(workspace: Path | None, commits: bool):
    """Show the dependency tree pinned by model.lock."""
    manager = _manager(workspace)
    nodes = run(manager.tree())
    if not nodes:
        console.print("[dim]No dependencies.[/dim]")
        return
    console.print(manager.root.name or str(manager.root), markup=False)
    console.print(format_tree(nodes, show_commits=commits), markup=False, highlight=False)


@click.command()
@workspace_option
@click.argument("package")
@handle_errors
def impact(workspace: Path | None, package: str):
    """Show which packages depend on PACKAGE directly."""
    dependents = run(_manager(workspace).impact(package))
    if not dependents:
        console.print(f"[dim]Nothing depends on {escape_markup(package)}.[/dim]")
        return

    table = Table(title=f"Dependents of {escape_markup(package)}", show_header=True, header_style="bold cyan")
    table.add_column("Dependent", style="green")
    table.add_column("Ref", style="yellow")
    table.add_column("Relation", style="dim")
    for dep in dependents:
        table.add_row(dep.dependent, dep.ref, dep.relation)
    console.print(table)


@click.command()
@workspace_option
@handle_errors
def validate(workspace: Path | None):
    """Check model.yaml, model.lock coverage and package cycles."""
    report = run(_manager(workspace).validate())

    for diagnostic in report.diagnostics:
        color = "red" if diagnostic.severity == "error" else "yellow"
        console.print(
            f"[{color}]{diagnostic.severity}[/{color}] {escape_markup(diagnostic.path)}: "
            f"{escape_markup(diagnostic.message)} [dim]({diagnostic.code})[/dim]"
        )
        if diagnostic.hint:
            console.print(f"  [dim]{escape_markup(diagnostic.hint)}[/dim]")
    for key in report.unlocked:
        console.print(f"[yellow]warning[/yellow] {escape_markup(key)} is not in model.lock; run 'dlang install'")
    for cycle in report.cycles:
        console.print(f"[red]error[/red] dependency cycle: {escape_markup(' -> '.join(cycle))}")

    if report.ok:
        console.print("[green]✓ Workspace is valid[/green]")
    else:
        sys.exit(1)


@click.command()
@workspace_option
@click.option("--json", "as_json", is_flag=True, help="Emit the report as JSON")
@handle_errors
def audit(workspace: Path | None, as_json: bool):
    """Print a dependency audit report for compliance records."""
    report = _manager(workspace).audit()
    if as_json:
        payload = {
            "workspace": str(report.workspace),
            "metadata": report.metadata.model_dump(exclude_none=True),
            "dependencies": json.loads(report.lock.to_json())["dependencies"],
            "violations": [asdict(v) for v in report.violations],
        }
        click.echo(json.dumps(payload, indent=2))
        return
    console.print(render_audit_report(report), markup=False, highlight=False)


@click.command()
@workspace_option
@handle_errors
def compliance(workspace: Path | None):
    """Check locked dependencies against the governance policy."""
    result = run(_manager(workspace).check_compliance())

    for violation in result.violations:
        color = "red" if violation.severity == "error" else "yellow"
        console.print(
            f"[{color}]{violation.severity.upper()}[/{color}] {escape_markup(violation.package_key)}: "
            f"{escape_markup(violation.message)}"
        )
    for cycle in result.cycles:
        console.print(f"[red]ERROR[/red] dependency cycle: {escape_markup(' -> '.join(cycle))}")

    if result.passed:
        console.print("[green]✓ Compliance check passed[/green]")
    else:
        console.print("[red]✗ Compliance check failed[/red]")
        sys.exit(1)


COMMANDS = [install, update, list_packages, add, remove, status, tree, impact, validate, audit, compliance]
