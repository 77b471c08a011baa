"""CLI command for walking a pack in the terminal.

``ddtool run`` is a text renderer over ``CaseSession``: the engine calls
``_render`` on every node entry, back, and refresh, and tokens read from
``--answer`` (scripted) or the prompt (interactive) drive the transitions.
"""

from __future__ import annotations

import asyncio
import json as json_mod
import sys
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import click

from ddtool.case_store import CaseMeta
from ddtool.cli_common import default_pack_id, fail, get_ddtool_dir
from ddtool.core import CaseSession, write_atomic
from ddtool.engine import EngineStateError, PackIntegrityError, TransitionError
from ddtool.loader import AcquisitionError
from ddtool.packs import Node, ValidationError
from ddtool.summary import describe_entry, write_summary
from ddtool.validation import sanitize_choice_key

_QUIT = frozenset({"q", "quit"})
_BACK = frozenset({"b", "back"})
_RESTART = frozenset({"r", "restart"})
_CONTINUE = frozenset({"c", "continue"})


def _note_text(note: Any) -> str:
    if isinstance(note, dict):
        title = note.get("title", "")
        body = note.get("body") or note.get("text") or ""
        return f"{title}: {body}" if title and body else str(title or body)
    return str(note)


def _render(node_id: str, node: Node) -> None:
    click.echo("")
    click.echo(f"== {node.title or node_id} [{node.type}]")
    if node.body:
        click.echo(node.body)
    if node.question:
        click.echo(node.question)
    for choice in node.choices:
        click.echo(f"  [{choice.key}] {choice.label}")
    if node.type in ("info", "connector") and node.next is not None:
        click.echo("  [c] Continue")
    if node.type == "handoff" and node.handoff is not None:
        reason = f" ({node.handoff.reason})" if node.handoff.reason else ""
        click.echo(f"  [c] Continue to {node.handoff.target_pack_id}{reason}")
    if node.type == "outcome":
        click.echo("  Outcome reached. [r] Restart  [b] Back  [q] Quit")


def _print_notes(node_id: str, node: Node, meta: CaseMeta) -> None:
    for note in node.notes:
        click.echo(f"  Note: {_note_text(note)}")
    for directive in node.directives:
        click.echo(f"  Directive: {directive}")
    for hint in node.hints:
        click.echo(f"  Hint: {hint}")


def _tokens(answers: tuple[str, ...]) -> Iterator[str]:
    """Scripted tokens, or prompt input until EOF when none were given."""
    if answers:
        yield from answers
        return
    while True:
        try:
            yield click.prompt(">", prompt_suffix=" ", default="", show_default=False)
        except click.Abort:
            return


async def _step(session: CaseSession, token: str) -> bool:
    """Apply one token. Returns False when the walk should stop."""
    engine = session.engine
    raw = token.strip()
    word = raw.lower()
    node = engine.current_node

    if node is not None and node.type == "decision" and node.get_choice(raw) is not None:
        engine.answer(raw)
    elif word in _QUIT:
        return False
    elif word in _BACK:
        if engine.back() is None:
            click.echo("Nothing to go back to.")
    elif word in _RESTART:
        engine.restart()
    elif word in _CONTINUE:
        await session.advance()
    elif not raw:
        engine.refresh()
    else:
        key, error = sanitize_choice_key(raw)
        if error:
            raise TransitionError(error)
        engine.answer(key)
    return True


async def _walk(session: CaseSession, pack_id: str, answers: tuple[str, ...]) -> int:
    """Run the walk; returns the number of tokens that failed."""
    await session.start_pack(pack_id)
    failures = 0
    for token in _tokens(answers):
        try:
            if not await _step(session, token):
                break
        except (TransitionError, EngineStateError) as e:
            failures += 1
            click.echo(f"Error: {e}", err=True)
        except (AcquisitionError, ValidationError) as e:
            failures += 1
            click.echo(f"Error: handoff failed: {e}", err=True)
    return failures


@click.command("run")
@click.argument("pack_id", required=False)
@click.option("--answer", "-a", "answers", multiple=True, help="Scripted token: choice key, c, b, r, or q (repeatable)")
@click.option("--export", "export_path", type=click.Path(dir_okay=False, path_type=Path), help="Write {meta, state, trace} JSON")
@click.option("--summary", "summary_path", type=click.Path(dir_okay=False, path_type=Path), help="Write the markdown case report")
@click.option("--quiet", is_flag=True, help="Do not print notes, directives, and hints")
def run_cmd(
    pack_id: str | None,
    answers: tuple[str, ...],
    export_path: Path | None,
    summary_path: Path | None,
    quiet: bool,
) -> None:
    """Walk a decision pack in the terminal.

    Without --answer, reads tokens interactively until 'q' or end of input.
    """
    ddtool_dir = get_ddtool_dir()
    observers = () if quiet else (_print_notes,)
    session = CaseSession.from_project(ddtool_dir, renderer=_render, observers=observers)
    pack_id = pack_id or default_pack_id(ddtool_dir)

    try:
        failures = asyncio.run(_walk(session, pack_id, answers))
    except (AcquisitionError, ValidationError) as e:
        fail(str(e))
    except PackIntegrityError as e:
        fail(f"corrupt pack: {e}")

    snapshot = session.store.export()
    click.echo("")
    click.echo(f"Trace ({len(snapshot['trace'])} entries):")
    for entry in snapshot["trace"]:
        click.echo(f"  {entry['seq']:>3}. {describe_entry(entry)}")

    if export_path is not None:
        write_atomic(export_path, json_mod.dumps(snapshot, indent=2, default=str) + "\n")
        click.echo(f"Exported case to {export_path}")
    if summary_path is not None:
        write_summary(snapshot, summary_path)
        click.echo(f"Wrote report to {summary_path}")

    if answers and failures:
        sys.exit(1)
