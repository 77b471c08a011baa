"""CaseStore — session state, append-only audit trace, and undo history.

The store is the single owner of the case-state blob. Callers never hold the
live dict: ``get_state()`` hands out a deep copy and ``replace_state()``
stores one, so neither history snapshots nor exports can alias the state
that later transitions mutate.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from dataclasses import replace as _dc_replace
from datetime import UTC, datetime
from types import MappingProxyType
from typing import Any, cast

from ddtool.types.core import CaseMetaDict, ExportSnapshot, ISOTimestamp, TraceEntryDict, TraceKind

logger = logging.getLogger(__name__)

TRACE_KINDS: frozenset[str] = frozenset({"enter", "answer", "ack", "back", "handoff", "error"})


@dataclass
class CaseMeta:
    """Denormalized "where we are" cache. ``step_count`` always equals the trace length."""

    pack_id: str | None = None
    node_id: str | None = None
    step_count: int = 0

    def to_dict(self) -> CaseMetaDict:
        return CaseMetaDict(pack_id=self.pack_id, node_id=self.node_id, step_count=self.step_count)


@dataclass(frozen=True)
class TraceEntry:
    """One immutable audit record."""

    seq: int
    timestamp: ISOTimestamp
    kind: TraceKind
    pack_id: str | None
    node_id: str | None
    data: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    def to_dict(self) -> TraceEntryDict:
        return TraceEntryDict(
            seq=self.seq,
            timestamp=self.timestamp,
            kind=self.kind,
            pack_id=self.pack_id,
            node_id=self.node_id,
            data=copy.deepcopy(dict(self.data)),
        )


@dataclass(frozen=True)
class HistoryFrame:
    """Position + state snapshot captured before a forward transition."""

    pack_id: str
    node_id: str
    state_snapshot: dict[str, Any]
    trace_length: int


class CaseStore:
    """In-memory session store for one decision walk."""

    def __init__(
        self,
        *,
        initial_state: Callable[[], dict[str, Any]] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._initial_state = initial_state or dict
        self._clock = clock or (lambda: datetime.now(UTC))
        self._meta = CaseMeta()
        self._state: dict[str, Any] = self._initial_state()
        self._trace: list[TraceEntry] = []
        self._history: list[HistoryFrame] = []
        self._last_ts: datetime | None = None

    # -- Meta -----------------------------------------------------------------

    def get_meta(self) -> CaseMeta:
        return _dc_replace(self._meta)

    def set_meta(self, pack_id: str, node_id: str) -> None:
        self._meta.pack_id = pack_id
        self._meta.node_id = node_id

    # -- State (full replacement only) ----------------------------------------

    def get_state(self) -> dict[str, Any]:
        """Return a deep copy of the case state."""
        return copy.deepcopy(self._state)

    def replace_state(self, next_state: Mapping[str, Any]) -> None:
        """Replace the whole case state. No merge semantics."""
        if not isinstance(next_state, Mapping):
            msg = f"state must be a mapping, got {type(next_state).__name__}"
            raise TypeError(msg)
        self._state = copy.deepcopy(dict(next_state))

    # -- Trace ----------------------------------------------------------------

    def _stamp(self) -> ISOTimestamp:
        now = self._clock()
        # Clamp so that a wall-clock step backwards never reorders the audit log
        if self._last_ts is not None and now < self._last_ts:
            now = self._last_ts
        self._last_ts = now
        return ISOTimestamp(now.isoformat())

    def append_trace(
        self,
        kind: TraceKind,
        *,
        node_id: str | None = None,
        pack_id: str | None = None,
        **data: Any,
    ) -> TraceEntry:
        """Stamp and append a trace entry. ``pack_id``/``node_id`` default to the current meta."""
        if kind not in TRACE_KINDS:
            msg = f"Unknown trace kind '{kind}': must be one of {sorted(TRACE_KINDS)}"
            raise ValueError(msg)
        entry = TraceEntry(
            seq=len(self._trace) + 1,
            timestamp=self._stamp(),
            kind=kind,
            pack_id=pack_id if pack_id is not None else self._meta.pack_id,
            node_id=node_id if node_id is not None else self._meta.node_id,
            data=MappingProxyType(copy.deepcopy(data)),
        )
        self._trace.append(entry)
        self._meta.step_count = len(self._trace)
        logger.debug(
            "trace %s",
            kind,
            extra={"kind": kind, "seq": entry.seq, "pack": entry.pack_id, "node": entry.node_id},
        )
        return entry

    def get_trace(self) -> tuple[TraceEntry, ...]:
        return tuple(self._trace)

    @property
    def trace_length(self) -> int:
        return len(self._trace)

    # -- History (LIFO) -------------------------------------------------------

    def push_history(self, pack_id: str, node_id: str) -> HistoryFrame:
        frame = HistoryFrame(
            pack_id=pack_id,
            node_id=node_id,
            state_snapshot=copy.deepcopy(self._state),
            trace_length=len(self._trace),
        )
        self._history.append(frame)
        return frame

    def pop_history(self) -> HistoryFrame | None:
        if not self._history:
            return None
        return self._history.pop()

    def peek_history(self) -> HistoryFrame | None:
        return self._history[-1] if self._history else None

    def can_go_back(self) -> bool:
        return len(self._history) > 0

    @property
    def history_depth(self) -> int:
        return len(self._history)

    # -- Lifecycle ------------------------------------------------------------

    def reset(self) -> None:
        """Clear meta, state, trace, and history. Never called by back navigation."""
        self._meta = CaseMeta()
        self._state = self._initial_state()
        self._trace = []
        self._history = []
        self._last_ts = None
        logger.debug("Case store reset")

    def export(self) -> ExportSnapshot:
        """Read-only export ``{meta, state, trace}`` for persistence collaborators."""
        return ExportSnapshot(
            meta=self._meta.to_dict(),
            state=cast(dict[str, Any], copy.deepcopy(self._state)),
            trace=[e.to_dict() for e in self._trace],
        )
