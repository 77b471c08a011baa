"""Shared pytest fixtures for ddtool tests."""

from __future__ import annotations

import copy
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest
from click.testing import CliRunner

from ddtool.case_store import CaseStore
from ddtool.core import DDTOOL_DIR_NAME, default_config, write_config
from ddtool.packs import Pack, PackNormalizer

# Small pack exercising every node type except handoff:
#   start(info) -> q1(decision) -yes-> out_yes(outcome)
#                               -no->  q2(decision) -a-> bridge(connector) -> out_a(outcome)
#                                                   -b-> out_b(outcome)
MINI_PACK: dict[str, Any] = {
    "packId": "mini",
    "title": "Mini pack",
    "version": "2.0",
    "entryNodeId": "start",
    "nodes": {
        "start": {"type": "info", "title": "Start", "body": "Read this first.", "next": "q1"},
        "q1": {
            "type": "decision",
            "title": "First question",
            "question": "Is it broken?",
            "choices": [
                {"key": "yes", "label": "Yes", "next": "out_yes"},
                {"key": "no", "label": "No", "next": "q2"},
            ],
        },
        "q2": {
            "type": "decision",
            "title": "Second question",
            "question": "Which way?",
            "choices": {"a": "bridge", "b": "out_b"},
            "effects": [{"type": "APPEND_TAGS", "value": ["visited_q2"]}],
        },
        "bridge": {
            "type": "connector",
            "title": "Bridge",
            "next": "out_a",
            "effects": [{"type": "SET", "path": "results.route", "value": "A"}],
        },
        "out_yes": {
            "type": "outcome",
            "title": "Broken",
            "effects": [{"type": "SET", "path": "results.classification", "value": "BROKEN"}],
        },
        "out_a": {"type": "outcome", "title": "Route A"},
        "out_b": {
            "type": "outcome",
            "title": "Route B",
            "effects": [{"type": "SET", "path": "results.classification", "value": "RECOMMENDATION"}],
        },
    },
}


@pytest.fixture
def normalizer() -> PackNormalizer:
    return PackNormalizer()


@pytest.fixture
def mini_pack_raw() -> dict[str, Any]:
    """Fresh copy of the raw mini pack document (safe to mutate)."""
    return copy.deepcopy(MINI_PACK)


@pytest.fixture
def mini_pack(normalizer: PackNormalizer, mini_pack_raw: dict[str, Any]) -> Pack:
    return normalizer.normalize(mini_pack_raw)


@pytest.fixture
def make_pack(normalizer: PackNormalizer) -> Callable[..., Pack]:
    """Build a pack from a node map: ``make_pack({"a": {...}}, entry="a")``."""

    def _make(nodes: dict[str, Any], *, entry: str, pack_id: str = "test") -> Pack:
        return normalizer.normalize({"packId": pack_id, "entryNodeId": entry, "nodes": nodes})

    return _make


@pytest.fixture
def ticking_clock() -> Callable[[], datetime]:
    """Deterministic clock advancing one second per call."""
    start = datetime(2026, 1, 15, 10, 0, 0, tzinfo=UTC)
    calls = {"n": 0}

    def _now() -> datetime:
        calls["n"] += 1
        return start + timedelta(seconds=calls["n"])

    return _now


@pytest.fixture
def store(ticking_clock: Callable[[], datetime]) -> CaseStore:
    """Store whose initial state is a small case blob."""
    return CaseStore(
        initial_state=lambda: {"results": {"classification": "UNDETERMINED"}, "tags": []},
        clock=ticking_clock,
    )


@pytest.fixture
def ddtool_project(tmp_path: Path) -> Path:
    """A tmp directory set up as a ddtool project (.ddtool/ with config, no packs).

    Returns the project root (parent of .ddtool/).
    """
    ddtool_dir = tmp_path / DDTOOL_DIR_NAME
    ddtool_dir.mkdir()
    write_config(ddtool_dir, default_config())
    return tmp_path


@pytest.fixture
def cli_runner() -> CliRunner:
    """Click CLI test runner."""
    return CliRunner()
