"""Tests for graph validation and authoring-quality warnings."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

import pytest

from ddtool.packs import Pack, PackNormalizer, ValidationError
from ddtool.packs_data import BUILT_IN_PACKS


class TestValidatePack:
    def test_decision_with_one_choice_names_node(self, normalizer: PackNormalizer) -> None:
        raw = {
            "packId": "p",
            "entryNodeId": "lonely",
            "nodes": {
                "lonely": {"type": "decision", "choices": [{"key": "only", "label": "Only", "next": "end"}]},
                "end": {"type": "outcome"},
            },
        }
        with pytest.raises(ValidationError) as exc_info:
            normalizer.normalize(raw)
        assert "lonely" in str(exc_info.value)
        assert "at least 2 choices (has 1)" in str(exc_info.value)

    def test_decision_with_no_choices(self, normalizer: PackNormalizer) -> None:
        raw = {"packId": "p", "entryNodeId": "q", "nodes": {"q": {"type": "decision"}}}
        with pytest.raises(ValidationError, match="decision node 'q' must have at least 2 choices"):
            normalizer.normalize(raw)

    def test_entry_not_in_nodes(self, normalizer: PackNormalizer) -> None:
        raw = {"packId": "p", "entryNodeId": "ghost", "nodes": {"a": {"type": "outcome"}}}
        with pytest.raises(ValidationError, match="entry node 'ghost' not found"):
            normalizer.normalize(raw)

    def test_choice_to_missing_node(self, normalizer: PackNormalizer) -> None:
        raw = {
            "packId": "p",
            "entryNodeId": "q",
            "nodes": {"q": {"type": "decision", "choices": {"yes": "a", "no": "nowhere"}}, "a": {"type": "outcome"}},
        }
        with pytest.raises(ValidationError, match="choice 'no' on node 'q' points to missing node 'nowhere'"):
            normalizer.normalize(raw)

    def test_next_to_missing_node(self, normalizer: PackNormalizer) -> None:
        raw = {"packId": "p", "entryNodeId": "i", "nodes": {"i": {"type": "info", "next": "gone"}}}
        with pytest.raises(ValidationError, match="node 'i' next 'gone' not found"):
            normalizer.normalize(raw)

    def test_collects_every_error(self, normalizer: PackNormalizer) -> None:
        raw = {
            "packId": "p",
            "entryNodeId": "ghost",
            "nodes": {"q": {"type": "decision", "choices": {"yes": "x"}}, "i": {"type": "info", "next": "y"}},
        }
        with pytest.raises(ValidationError) as exc_info:
            normalizer.normalize(raw)
        assert len(exc_info.value.errors) == 4  # entry, <2 choices, missing x, missing y

    def test_null_targets_are_valid(self, make_pack: Callable[..., Pack]) -> None:
        pack = make_pack({"q": {"type": "decision", "choices": {"stop": None, "halt": None}}}, entry="q")
        assert PackNormalizer.validate_pack(pack) == []

    def test_handoff_target_not_checked_at_load(self, make_pack: Callable[..., Pack]) -> None:
        pack = make_pack({"h": {"type": "handoff", "targetPackId": "not-loaded-yet"}}, entry="h")
        assert pack.nodes["h"].handoff is not None

    @pytest.mark.parametrize("pack_id", sorted(BUILT_IN_PACKS))
    def test_builtin_packs_are_valid(self, normalizer: PackNormalizer, pack_id: str) -> None:
        pack = normalizer.normalize(BUILT_IN_PACKS[pack_id])
        assert PackNormalizer.validate_pack(pack) == []
        assert PackNormalizer.check_pack_quality(pack) == []


class TestQualityWarnings:
    def test_unreachable_node(self, make_pack: Callable[..., Pack]) -> None:
        pack = make_pack({"a": {"type": "outcome"}, "island": {"type": "outcome"}}, entry="a")
        warnings = PackNormalizer.check_pack_quality(pack)
        assert "node 'island' is unreachable from entry node 'a'" in warnings

    def test_handoff_without_target(self, make_pack: Callable[..., Pack]) -> None:
        pack = make_pack({"h": {"type": "handoff"}}, entry="h")
        assert "handoff node 'h' has no target pack id" in PackNormalizer.check_pack_quality(pack)

    def test_dead_end_info(self, make_pack: Callable[..., Pack]) -> None:
        pack = make_pack({"i": {"type": "info"}}, entry="i")
        assert "info node 'i' has no next (dead end)" in PackNormalizer.check_pack_quality(pack)

    def test_warnings_are_logged_not_raised(
        self, normalizer: PackNormalizer, caplog: pytest.LogCaptureFixture
    ) -> None:
        raw: dict[str, Any] = {"packId": "warny", "entryNodeId": "a", "nodes": {"a": {"type": "outcome"}, "b": {}}}
        with caplog.at_level(logging.WARNING, logger="ddtool.packs"):
            pack = normalizer.normalize(raw)
        assert pack.pack_id == "warny"
        assert any("unreachable" in r.getMessage() for r in caplog.records)
