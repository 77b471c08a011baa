"""Typed return-value contracts for ddtool core and API layers."""

from __future__ import annotations

from ddtool.types.api import (
    ChoiceDict,
    ErrorBody,
    ErrorResponse,
    NodeDict,
    PackDict,
    PackSummary,
    SessionView,
)
from ddtool.types.core import (
    CaseMetaDict,
    EngineStatus,
    ExportSnapshot,
    ISOTimestamp,
    NodeType,
    ProjectConfig,
    TraceEntryDict,
    TraceKind,
)

__all__ = [
    "CaseMetaDict",
    "ChoiceDict",
    "EngineStatus",
    "ErrorBody",
    "ErrorResponse",
    "ExportSnapshot",
    "ISOTimestamp",
    "NodeDict",
    "NodeType",
    "PackDict",
    "PackSummary",
    "ProjectConfig",
    "SessionView",
    "TraceEntryDict",
    "TraceKind",
]
