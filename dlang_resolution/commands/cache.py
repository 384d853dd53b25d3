"""Package cache commands.

The cache holds one directory per package commit under ~/.dlang/cache
(or DLANG_CACHE_DIR). Entries are immutable and shared across workspaces.
"""

from __future__ import annotations

import click

from ..console import console
from ..package_manager import cache_stats
from ..package_manager import clear_cache
from ..packages.store import DiskContentStore
from ..utils.fs import format_size


@click.group(invoke_without_command=True)
@click.pass_context
def cache(ctx: click.Context):
    """Manage the shared package cache."""
    if ctx.invoked_subcommand is None:
        click.echo("\n" + ctx.get_help())
        ctx.exit()


@cache.command(name="show")
def cache_show():
    """Show cache location, package count and disk usage."""
    stats = cache_stats()
    console.print(f"[bold]Cache:[/bold] [cyan]{stats.path}[/cyan]")
    if not stats.path.exists():
        console.print("[dim]Status: not created yet[/dim]")
        return
    console.print(f"[bold]Packages:[/bold] {stats.packages}")
    console.print(f"[bold]Size:[/bold] {format_size(stats.size_bytes)}")


@cache.command(name="clear")
@click.option("--force", "-f", is_flag=True, help="Skip confirmation prompt")
def cache_clear(force: bool):
    """Delete every cached package (they are re-fetched on demand)."""
    store = DiskContentStore()
    stats = cache_stats(store)
    if stats.packages == 0:
        console.print("[dim]Cache is empty - nothing to clear.[/dim]")
        return

    console.print(f"Will remove {stats.packages} packages ({format_size(stats.size_bytes)}) from {stats.path}")
    if not force and not click.confirm("Proceed?"):
        console.print("[yellow]Aborted.[/yellow]")
        return

    removed = clear_cache(store)
    console.print(f"[green]Cleared {removed} packages ({format_size(stats.size_bytes)})[/green]")
