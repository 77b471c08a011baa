"""TypedDicts for HTTP session API and CLI --json responses."""

from __future__ import annotations

from typing import Any, NotRequired, TypedDict

from ddtool.types.core import CaseMetaDict, NodeType


class ChoiceDict(TypedDict):
    key: str
    label: str
    target: str | None


class NodeDict(TypedDict):
    id: str
    type: NodeType
    title: str
    body: str
    question: str
    choices: list[ChoiceDict]
    next: str | None
    target_pack_id: NotRequired[str | None]
    reason: NotRequired[str]
    effects: list[dict[str, Any]]
    notes: list[Any]
    directives: list[str]
    hints: list[str]


class PackSummary(TypedDict):
    """Slim pack shape for listings."""

    pack_id: str
    title: str
    version: str
    entry_node_id: str
    node_count: int
    source: str | None


class PackDict(PackSummary):
    nodes: dict[str, NodeDict]


class SessionView(TypedDict):
    """Current position of a walk, as shown to a renderer."""

    session_id: str
    status: str
    meta: CaseMetaDict
    node: NodeDict | None
    actions: list[str]
    can_go_back: bool
    is_terminal: bool


class ErrorBody(TypedDict):
    message: str
    code: str
    details: dict[str, Any]


class ErrorResponse(TypedDict):
    """Standard error envelope returned by the HTTP API."""

    error: ErrorBody
