"""CLI for the ddtool decision pack interpreter.

Convention-based: discovers .ddtool/ by walking up from cwd. Outside a
project every command runs against the built-in packs.

Usage:
    ddtool init                                  # Initialize .ddtool/ in cwd
    ddtool packs                                 # List available packs
    ddtool validate figure1                      # Validate a pack by id
    ddtool validate ./my-pack.json               # Validate a pack file
    ddtool show figure1                          # Show a pack's node graph
    ddtool run                                   # Walk the default pack interactively
    ddtool run figure1 -a c -a yes -a yes        # Scripted walk
    ddtool run --export case.json --summary report.md
    ddtool serve --port 8390                     # HTTP session API
"""

from __future__ import annotations

import click

from ddtool import __version__
from ddtool.cli_commands.admin import init
from ddtool.cli_commands.packs import packs_cmd, show_cmd, validate_cmd
from ddtool.cli_commands.server import serve
from ddtool.cli_commands.session import run_cmd


@click.group()
@click.version_option(version=__version__, prog_name="ddtool")
def cli() -> None:
    """ddtool — walk decision packs and record an auditable case trace."""


cli.add_command(init)
cli.add_command(packs_cmd)
cli.add_command(validate_cmd)
cli.add_command(show_cmd)
cli.add_command(run_cmd)
cli.add_command(serve)


if __name__ == "__main__":
    cli()
