"""Tests for structured JSON logging."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Iterator
from logging.handlers import RotatingFileHandler
from pathlib import Path

import pytest

from ddtool.case_store import CaseStore
from ddtool.core import CaseSession
from ddtool.logging import setup_logging


@pytest.fixture(autouse=True)
def _clean_ddtool_logger() -> Iterator[None]:
    yield
    logger = logging.getLogger("ddtool")
    for handler in logger.handlers[:]:
        if isinstance(handler, RotatingFileHandler):
            logger.removeHandler(handler)
            handler.close()
    logger.setLevel(logging.NOTSET)


def _read_lines(ddtool_dir: Path) -> list[dict[str, object]]:
    text = (ddtool_dir / "ddtool.log").read_text(encoding="utf-8")
    return [json.loads(line) for line in text.splitlines() if line.strip()]


class TestSetupLogging:
    def test_writes_jsonl_with_extras(self, tmp_path: Path) -> None:
        setup_logging(tmp_path)
        logging.getLogger("ddtool.engine").info(
            "Entered %s", "q1", extra={"pack": "figure1", "node": "q1", "duration_ms": 1.5}
        )
        entry = _read_lines(tmp_path)[-1]
        assert str(entry["ts"]).endswith("+00:00")
        assert entry["level"] == "INFO"
        assert entry["logger"] == "ddtool.engine"
        assert entry["msg"] == "Entered q1"
        assert entry["pack"] == "figure1"
        assert entry["node"] == "q1"
        assert entry["duration_ms"] == 1.5
        assert "kind" not in entry

    def test_idempotent_for_same_directory(self, tmp_path: Path) -> None:
        logger = setup_logging(tmp_path)
        setup_logging(tmp_path)
        handlers = [h for h in logger.handlers if isinstance(h, RotatingFileHandler)]
        assert len(handlers) == 1

    def test_new_directory_replaces_handler(self, tmp_path: Path) -> None:
        first, second = tmp_path / "one", tmp_path / "two"
        first.mkdir()
        second.mkdir()
        setup_logging(first)
        logger = setup_logging(second)
        handlers = [h for h in logger.handlers if isinstance(h, RotatingFileHandler)]
        assert len(handlers) == 1
        assert handlers[0].baseFilename == os.path.abspath(second / "ddtool.log")

    def test_exception_text_recorded(self, tmp_path: Path) -> None:
        setup_logging(tmp_path)
        try:
            raise ValueError("bad pack")
        except ValueError:
            logging.getLogger("ddtool.loader").warning("load failed", exc_info=True)
        assert _read_lines(tmp_path)[-1]["exception"] == "bad pack"

    def test_exception_type_recorded(self, tmp_path: Path) -> None:
        setup_logging(tmp_path)
        try:
            raise KeyError("figure9")
        except KeyError:
            logging.getLogger("ddtool.server").error("lookup failed", exc_info=True)
        assert _read_lines(tmp_path)[-1]["exc_type"] == "KeyError"

    def test_level_by_name(self, tmp_path: Path) -> None:
        logger = setup_logging(tmp_path, level="debug")
        assert logger.level == logging.DEBUG


class TestWalkContext:
    def test_trace_appends_carry_kind_and_seq(self, tmp_path: Path, store: CaseStore) -> None:
        setup_logging(tmp_path, level=logging.DEBUG)
        store.set_meta("figure1", "intro")
        store.append_trace("enter")
        store.append_trace("ack", to="q_mission")
        entries = [e for e in _read_lines(tmp_path) if e["logger"] == "ddtool.case_store"]
        assert [(e["kind"], e["seq"]) for e in entries if "seq" in e] == [("enter", 1), ("ack", 2)]
        assert entries[-1]["pack"] == "figure1"
        assert entries[-1]["node"] == "intro"

    async def test_session_id_on_session_records(self, tmp_path: Path) -> None:
        setup_logging(tmp_path)
        session = CaseSession(session_id="case-1")
        await session.start_pack("figure1")
        started = [e for e in _read_lines(tmp_path) if str(e["msg"]).startswith("Session case-1 starting")]
        assert started[0]["session"] == "case-1"
        assert started[0]["pack"] == "figure1"
