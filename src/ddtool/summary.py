"""Markdown case report generated from a store export.

Reads only the ``{meta, state, trace}`` snapshot, never the live store, so it
can run on a saved export file as well as on a session in progress.
"""

from __future__ import annotations

import contextlib
import os
import re
import tempfile
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from ddtool.types.core import ExportSnapshot, TraceEntryDict

# Matches C0/C1 control characters except tab/newline (which we handle separately)
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]")


def _sanitize_title(text: Any) -> str:
    """Sanitize untrusted text for safe markdown interpolation.

    Strips control characters, collapses newlines/carriage returns to spaces,
    and truncates to a reasonable length.
    """
    text = _CONTROL_CHARS_RE.sub("", str(text))
    text = text.replace("\r\n", " ").replace("\r", " ").replace("\n", " ")
    text = " ".join(text.split())
    if len(text) > 200:
        text = text[:197] + "..."
    return text


def describe_entry(entry: TraceEntryDict) -> str:
    """One-line human description of a trace entry."""
    data = entry.get("data", {})
    kind = entry["kind"]
    where = f"{entry.get('pack_id') or '?'}/{entry.get('node_id') or '?'}"
    if kind == "enter":
        title = data.get("title")
        return f"enter {where}" + (f" ({_sanitize_title(title)})" if title else "")
    if kind == "answer":
        return f"answer {where}: {_sanitize_title(data.get('answer', ''))} -> {data.get('to')}"
    if kind == "ack":
        return f"continue {where} -> {data.get('to')}"
    if kind == "back":
        return f"back {where} -> {data.get('to_pack')}/{data.get('to_node')}"
    if kind == "handoff":
        return f"handoff {where} -> {data.get('to_pack')}"
    if kind == "error":
        return f"error at {where}: {_sanitize_title(data.get('message', ''))}"
    return f"{kind} {where}"


def generate_summary(snapshot: ExportSnapshot, *, now: datetime | None = None) -> str:
    """Render the case report for an export snapshot."""
    now_iso = (now or datetime.now(UTC)).isoformat(timespec="seconds")
    meta = snapshot["meta"]
    state = snapshot["state"]
    trace = snapshot["trace"]

    lines: list[str] = []
    case_id = state.get("case_id")
    heading = f"Case {_sanitize_title(case_id)}" if case_id else "Decision walk"
    lines.append(f"# {heading} (generated {now_iso})")
    lines.append("")

    lines.append("## Position")
    lines.append(f"Pack: {meta.get('pack_id') or '-'} | Node: {meta.get('node_id') or '-'} | Steps: {meta['step_count']}")
    status = state.get("case_status")
    stage = state.get("analysis_state", {}).get("stage") if isinstance(state.get("analysis_state"), dict) else None
    if status or stage:
        lines.append(f"Status: {status or '-'} | Stage: {stage or '-'}")
    lines.append("")

    results = state.get("results")
    if isinstance(results, dict) and results:
        lines.append("## Results")
        for key in sorted(results):
            lines.append(f"- {key}: {_sanitize_title(results[key])}")
        lines.append("")

    reporting = state.get("reporting")
    sections = reporting.get("required_sections") if isinstance(reporting, dict) else None
    if sections:
        lines.append("## Required Sections")
        for section in sections:
            lines.append(f"- {_sanitize_title(section)}")
        lines.append("")

    unlocked = state.get("analysis_state", {}).get("unlocked") if isinstance(state.get("analysis_state"), dict) else None
    if isinstance(unlocked, dict) and unlocked:
        lines.append("## Unlocked Packs")
        lines.append(", ".join(name for name, on in sorted(unlocked.items()) if on) or "(none)")
        lines.append("")

    tags = state.get("tags")
    if tags:
        lines.append("## Tags")
        lines.append(", ".join(_sanitize_title(t) for t in tags))
        lines.append("")

    lines.append("## Trace")
    if trace:
        for entry in trace:
            lines.append(f"{entry['seq']}. [{entry['timestamp']}] {describe_entry(entry)}")
    else:
        lines.append("(empty)")
    lines.append("")
    return "\n".join(lines)


def write_summary(snapshot: ExportSnapshot, output_path: str | Path) -> None:
    """Generate and write the report atomically (write-temp then rename)."""
    summary = generate_summary(snapshot)
    output = Path(output_path)
    fd, tmp_name = tempfile.mkstemp(dir=output.parent, suffix=".tmp", prefix=".report_")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(summary)
        os.replace(tmp_name, str(output))
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmp_name)
        raise
