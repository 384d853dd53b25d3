"""Load an entry document and report every document it reaches."""

from __future__ import annotations

from pathlib import Path

import click
from rich.table import Table

from ..console import console
from ..workspace.loader import LoadOptions
from ..workspace.loader import WorkspaceImportLoader
from ._common import handle_errors
from ._common import run


@click.command()
@click.argument("entry", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--no-install", is_flag=True, help="Fail instead of installing packages missing from model.lock")
@handle_errors
def load(entry: Path, no_install: bool):
    """Resolve all imports of ENTRY and list the loaded documents."""
    result = run(WorkspaceImportLoader().load(entry, LoadOptions(install_missing=not no_install)))

    table = Table(title=f"Documents reachable from {entry.name}", show_header=True, header_style="bold cyan")
    table.add_column("Document", style="green")
    table.add_column("Package", style="yellow")
    table.add_column("Imports", justify="right")
    for document in result.documents:
        table.add_row(str(document.path), document.package or "-", str(len(document.parsed.imports)))
    console.print(table)
    console.print(f"\n[bold]Total:[/bold] {len(result.documents)} documents")
