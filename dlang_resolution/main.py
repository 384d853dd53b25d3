"""dlang command line entry point."""

import click

from .commands.cache import cache
from .commands.deps import COMMANDS
from .commands.load import load
from .logging_setup import init_json_logging


@click.group()
@click.version_option(package_name="dlang-resolution")
@click.option("--log-level", default=None, help="Log level for the JSONL log (default: DLANG_LOG_LEVEL or WARNING)")
def cli(log_level: str | None):
    """DomainLang package manager and import resolver."""
    init_json_logging(level=log_level)


for command in COMMANDS:
    cli.add_command(command)
cli.add_command(cache)
cli.add_command(load)


def main():
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
