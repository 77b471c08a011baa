"""Shared CLI helpers.

Provides project discovery and error reporting so that ``cli.py`` and
the ``cli_commands/*.py`` modules can share them without circular imports.
Every command also works outside a project, against the built-in packs.
"""

from __future__ import annotations

import json as json_mod
import sys
from pathlib import Path
from typing import NoReturn

import click

from ddtool.core import DEFAULT_PACK, find_ddtool_root, read_config
from ddtool.logging import setup_logging


def get_ddtool_dir() -> Path | None:
    """Discover .ddtool/ (and start file logging there), or None outside a project."""
    try:
        ddtool_dir = find_ddtool_root()
    except FileNotFoundError:
        return None
    setup_logging(ddtool_dir)
    return ddtool_dir


def default_pack_id(ddtool_dir: Path | None) -> str:
    if ddtool_dir is None:
        return DEFAULT_PACK
    return read_config(ddtool_dir).get("default_pack", DEFAULT_PACK)


def fail(message: str, *, as_json: bool = False) -> NoReturn:
    """Report *message* (stderr, or a JSON error object on stdout) and exit 1."""
    if as_json:
        click.echo(json_mod.dumps({"error": message}))
    else:
        click.echo(f"Error: {message}", err=True)
    sys.exit(1)
