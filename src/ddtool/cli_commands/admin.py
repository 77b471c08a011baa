"""CLI commands for project setup."""

from __future__ import annotations

from pathlib import Path

import click

from ddtool.core import (
    DDTOOL_DIR_NAME,
    PACKS_DIRNAME,
    default_config,
    install_builtin_packs,
    read_config,
    write_config,
)
from ddtool.logging import setup_logging


@click.command()
@click.option("--packs-source", default=None, help="Pack directory (relative to .ddtool/) or http(s) base URL")
@click.option("--default-pack", default=None, help="Pack used by 'ddtool run' without an argument")
def init(packs_source: str | None, default_pack: str | None) -> None:
    """Initialize .ddtool/ in the current directory."""
    cwd = Path.cwd()
    ddtool_dir = cwd / DDTOOL_DIR_NAME

    if ddtool_dir.exists():
        click.echo(f"{DDTOOL_DIR_NAME}/ already exists in {cwd}")
        config = read_config(ddtool_dir)
        changed = False
        if packs_source is not None:
            config["packs_source"] = packs_source
            changed = True
        if default_pack is not None:
            config["default_pack"] = default_pack
            changed = True
        if changed:
            write_config(ddtool_dir, config)
            click.echo("  Config updated")
        for path in install_builtin_packs(ddtool_dir):
            click.echo(f"  Installed {path.name}")
        return

    ddtool_dir.mkdir()
    setup_logging(ddtool_dir)
    config = default_config()
    if packs_source is not None:
        config["packs_source"] = packs_source
    if default_pack is not None:
        config["default_pack"] = default_pack
    write_config(ddtool_dir, config)
    installed = install_builtin_packs(ddtool_dir)

    click.echo(f"Initialized {DDTOOL_DIR_NAME}/ in {cwd}")
    click.echo(f"  Packs source: {config['packs_source']}")
    click.echo(f"  Default pack: {config['default_pack']}")
    click.echo(f"  Installed {len(installed)} built-in pack(s) into {ddtool_dir / PACKS_DIRNAME}/")
    click.echo("\nNext: ddtool run")
