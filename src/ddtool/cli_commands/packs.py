"""CLI commands for inspecting decision packs: packs, validate, show."""

from __future__ import annotations

import asyncio
import json as json_mod
import sys
from pathlib import Path
from typing import Any

import click

from ddtool.cli_common import fail, get_ddtool_dir
from ddtool.core import build_loader
from ddtool.loader import AcquisitionError, PackLoader
from ddtool.packs import Pack, PackNormalizer, ValidationError


def _load(loader: PackLoader, pack_ref: str) -> Pack:
    """Load by file path when *pack_ref* names an existing file, else by pack id."""
    path = Path(pack_ref)
    if pack_ref.endswith(".json") or path.is_file():
        return loader.load_file(path)
    return asyncio.run(loader.load(pack_ref))


@click.command("packs")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def packs_cmd(as_json: bool) -> None:
    """List available decision packs."""
    loader = build_loader(get_ddtool_dir())
    rows: list[dict[str, Any]] = []
    for pack_id in loader.available():
        try:
            rows.append(dict(asyncio.run(loader.load(pack_id)).summary()))
        except (AcquisitionError, ValidationError) as e:
            rows.append({"pack_id": pack_id, "error": str(e).splitlines()[0]})

    if as_json:
        click.echo(json_mod.dumps({"source": loader.describe_source(), "packs": rows}, indent=2))
        return

    click.echo(f"Source: {loader.describe_source()}")
    if not rows:
        click.echo("No packs found.")
        return
    for row in rows:
        if "error" in row:
            click.echo(f"  {row['pack_id']:<15} INVALID  {row['error']}")
        else:
            click.echo(f"  {row['pack_id']:<15} v{row['version']:<6} {row['node_count']:>3} nodes  {row['title']}")


@click.command("validate")
@click.argument("pack_ref")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def validate_cmd(pack_ref: str, as_json: bool) -> None:
    """Validate a pack (by id, or a path to a JSON file)."""
    loader = build_loader(get_ddtool_dir())
    try:
        pack = _load(loader, pack_ref)
    except ValidationError as e:
        errors = e.errors or [str(e)]
        if as_json:
            click.echo(json_mod.dumps({"pack": pack_ref, "valid": False, "errors": errors, "warnings": []}, indent=2))
        else:
            click.echo(f"{pack_ref}: INVALID")
            for err in errors:
                click.echo(f"  X {err}")
        sys.exit(1)
    except AcquisitionError as e:
        fail(str(e), as_json=as_json)

    warnings = PackNormalizer.check_pack_quality(pack)
    if as_json:
        click.echo(json_mod.dumps({"pack": pack.pack_id, "valid": True, "errors": [], "warnings": warnings}, indent=2))
        return

    if warnings:
        click.echo(f"{pack.pack_id}: valid with warnings:")
        for w in warnings:
            click.echo(f"  ! {w}")
    else:
        click.echo(f"{pack.pack_id}: valid ({len(pack.nodes)} nodes, no warnings)")


@click.command("show")
@click.argument("pack_ref")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def show_cmd(pack_ref: str, as_json: bool) -> None:
    """Show a pack's normalized node graph."""
    loader = build_loader(get_ddtool_dir())
    try:
        pack = _load(loader, pack_ref)
    except (AcquisitionError, ValidationError) as e:
        fail(str(e), as_json=as_json)

    if as_json:
        click.echo(json_mod.dumps(pack.to_dict(), indent=2, default=str))
        return

    click.echo(f"{pack.pack_id}: {pack.title} (v{pack.version})")
    click.echo(f"Entry: {pack.entry_node_id}")
    for node_id, node in pack.nodes.items():
        marker = "*" if node_id == pack.entry_node_id else " "
        click.echo(f"{marker} {node_id:<24} [{node.type}] {node.title}")
        for choice in node.choices:
            click.echo(f"      {choice.key:<10} -> {choice.target or '(end)'}")
        if node.next is not None:
            click.echo(f"      continue   -> {node.next}")
        if node.handoff is not None:
            click.echo(f"      handoff    => {node.handoff.target_pack_id or '(missing)'}")
        for effect in node.effects:
            target = f" {effect.path}" if effect.path else ""
            click.echo(f"      effect {effect.type}{target} = {json_mod.dumps(effect.value, default=str)}")
