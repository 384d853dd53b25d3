"""Helpers shared by the dlang commands."""

import asyncio
import functools
import logging
import sys
from collections.abc import Callable
from collections.abc import Coroutine
from pathlib import Path
from typing import Any
from typing import TypeVar

import click

from ..console import err_console
from ..errors import ResolutionError
from ..manifest.loader import find_workspace_root
from ..utils.error_format import escape_markup
from ..utils.error_format import format_error_message

logger = logging.getLogger(__name__)

T = TypeVar("T")

workspace_option = click.option(
    "--workspace",
    "-w",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Workspace directory (default: nearest directory with model.yaml)",
)


def resolve_workspace(workspace: Path | None) -> Path:
    """Explicit workspace, else the nearest ancestor holding model.yaml, else cwd."""
    if workspace is not None:
        return workspace.resolve()
    return find_workspace_root(Path.cwd()) or Path.cwd()


def run(coro: Coroutine[Any, Any, T]) -> T:
    return asyncio.run(coro)


def handle_errors(func: Callable[..., T]) -> Callable[..., T]:
    """Render ResolutionErrors and exit 1 instead of dumping a traceback."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except ResolutionError as e:
            err_console.print(f"[red]✗[/red] {escape_markup(format_error_message(e))}")
            logger.debug("Command failed", exc_info=True)
            sys.exit(1)

    return wrapper
