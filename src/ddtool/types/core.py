"""Foundational TypedDicts for to_dict() returns and on-disk shapes."""

from __future__ import annotations

from typing import Any, Literal, NewType, TypedDict

ISOTimestamp = NewType("ISOTimestamp", str)

NodeType = Literal["info", "decision", "outcome", "handoff", "connector"]
TraceKind = Literal["enter", "answer", "ack", "back", "handoff", "error"]
EngineStatus = Literal["idle", "ready", "active"]


class ProjectConfig(TypedDict, total=False):
    """Shape of .ddtool/config.json."""

    version: int
    packs_source: str
    default_pack: str
    http_timeout: float


class CaseMetaDict(TypedDict):
    pack_id: str | None
    node_id: str | None
    step_count: int


class TraceEntryDict(TypedDict):
    seq: int
    timestamp: ISOTimestamp
    kind: TraceKind
    pack_id: str | None
    node_id: str | None
    data: dict[str, Any]


class ExportSnapshot(TypedDict):
    """Read-only export handed to persistence collaborators."""

    meta: CaseMetaDict
    state: dict[str, Any]
    trace: list[TraceEntryDict]


# IMPORT CONSTRAINT: types/ modules must only import from typing, stdlib, and each other.
# NEVER import from engine.py, case_store.py, or packs.py — this prevents circular imports.
