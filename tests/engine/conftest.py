"""Fixtures for DecisionEngine tests."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from typing import Any

import pytest

from ddtool.case_store import CaseMeta, CaseStore
from ddtool.effects import EffectApplicator
from ddtool.engine import DecisionEngine
from ddtool.loader import PackLoader
from ddtool.packs import Node, Pack


class RecordingRenderer:
    """Collects (node_id, node) pairs the engine renders."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, Node]] = []

    def __call__(self, node_id: str, node: Node) -> None:
        self.calls.append((node_id, node))

    @property
    def node_ids(self) -> list[str]:
        return [node_id for node_id, _ in self.calls]


class RecordingObserver:
    def __init__(self) -> None:
        self.calls: list[tuple[str, CaseMeta]] = []

    def __call__(self, node_id: str, node: Node, meta: CaseMeta) -> None:
        self.calls.append((node_id, meta))


@pytest.fixture
def renderer() -> RecordingRenderer:
    return RecordingRenderer()


@pytest.fixture
def observer() -> RecordingObserver:
    return RecordingObserver()


@pytest.fixture
def linked_packs() -> dict[str, dict[str, Any]]:
    """Two packs linked by a handoff: alpha -> beta."""
    return {
        "alpha": {
            "packId": "alpha",
            "entryNodeId": "a_q",
            "nodes": {
                "a_q": {"type": "decision", "choices": {"go": "a_set", "stay": "a_end"}},
                "a_set": {
                    "type": "connector",
                    "next": "a_hand",
                    "effects": [{"type": "SET", "path": "results.classification", "value": "OMF"}],
                },
                "a_hand": {"type": "handoff", "targetPackId": "beta", "reason": "needs analysis"},
                "a_end": {"type": "outcome"},
            },
        },
        "beta": {
            "packId": "beta",
            "entryNodeId": "b_start",
            "nodes": {
                "b_start": {
                    "type": "info",
                    "next": "b_q",
                    "effects": [{"type": "SET", "path": "results.analysis_method", "value": "BETA"}],
                },
                "b_q": {"type": "decision", "choices": {"hw": "b_hw", "sw": "b_sw"}},
                "b_hw": {"type": "outcome"},
                "b_sw": {"type": "outcome"},
            },
        },
        "broken": {"packId": "broken", "entryNodeId": "missing", "nodes": {"x": {"type": "outcome"}}},
    }


@pytest.fixture
def linked_loader(linked_packs: dict[str, dict[str, Any]]) -> PackLoader:
    """Loader backed only by the linked packs (no files, no network)."""
    return PackLoader(builtins=linked_packs)


@pytest.fixture
def make_engine(
    renderer: RecordingRenderer,
    observer: RecordingObserver,
    ticking_clock: Callable[[], datetime],
) -> Callable[..., DecisionEngine]:
    def _make(loader: PackLoader | None = None) -> DecisionEngine:
        return DecisionEngine(
            loader=loader,
            applicator=EffectApplicator(clock=ticking_clock),
            renderer=renderer,
            observers=[observer],
        )

    return _make


@pytest.fixture
def engine(make_engine: Callable[..., DecisionEngine]) -> DecisionEngine:
    return make_engine()


@pytest.fixture
def started(engine: DecisionEngine, mini_pack: Pack, store: CaseStore) -> DecisionEngine:
    """Engine bound to the mini pack and positioned on its entry node."""
    engine.load_pack(mini_pack, store)
    engine.start()
    return engine


@pytest.fixture
async def alpha_engine(
    make_engine: Callable[..., DecisionEngine], linked_loader: PackLoader, store: CaseStore
) -> DecisionEngine:
    """Engine on alpha's entry node, with a loader that can reach beta."""
    engine = make_engine(linked_loader)
    engine.load_pack(await linked_loader.load("alpha"), store)
    engine.start()
    return engine
