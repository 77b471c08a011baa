"""CLI command for the HTTP session API."""

from __future__ import annotations

import click

from ddtool.cli_common import get_ddtool_dir


@click.command("serve")
@click.option("--port", default=8390, type=int, help="Server port (default 8390)")
@click.option("--host", default="127.0.0.1", help="Bind address (default 127.0.0.1)")
def serve(port: int, host: str) -> None:
    """Serve the decision-walk HTTP API."""
    from ddtool.server import main as server_main

    server_main(port=port, host=host, ddtool_dir=get_ddtool_dir())
