"""EffectApplicator — declarative node-entry side effects on the case state.

Effects are ``{type, path?, value?}`` descriptors. Application is in list
order, synchronous, and never raises: unknown kinds and malformed descriptors
are skipped so that packs written for newer interpreters still load.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Callable, Iterable, Mapping
from datetime import UTC, datetime
from typing import Any

from ddtool.packs import Effect

logger = logging.getLogger(__name__)

DEFAULT_TAGS_PATH = "tags"
DEFAULT_UNLOCK_PATH = "analysis_state.unlocked"
DEFAULT_SECTIONS_PATH = "reporting.required_sections"
ANALYSIS_STAGE_PATH = "analysis_state.stage"

# Recognised but handled elsewhere (navigation, pack completion)
_NO_OP_KINDS = frozenset({"MARK_PACK_COMPLETE", "ROUTE_TO_PACK", "ACTION"})


def _split_path(path: Any) -> list[str] | None:
    if not isinstance(path, str):
        return None
    parts = path.split(".")
    if any(not p for p in parts):
        return None
    return parts


def set_deep(state: dict[str, Any], path: str, value: Any) -> bool:
    """Assign *value* at dotted *path*, creating or replacing non-dict intermediates."""
    parts = _split_path(path)
    if parts is None:
        return False
    cur = state
    for part in parts[:-1]:
        nxt = cur.get(part)
        if not isinstance(nxt, dict):
            nxt = {}
            cur[part] = nxt
        cur = nxt
    cur[parts[-1]] = value
    return True


def _list_at(state: dict[str, Any], path: str) -> list[Any] | None:
    """Return the list at *path*, creating it when absent. None if the slot holds a non-list."""
    parts = _split_path(path)
    if parts is None:
        return None
    cur = state
    for part in parts[:-1]:
        nxt = cur.get(part)
        if nxt is None:
            nxt = {}
            cur[part] = nxt
        if not isinstance(nxt, dict):
            return None
        cur = nxt
    leaf = cur.get(parts[-1])
    if leaf is None:
        leaf = []
        cur[parts[-1]] = leaf
    return leaf if isinstance(leaf, list) else None


def _add_unique(target: list[Any], value: Any) -> bool:
    if value in target:
        return False
    target.append(copy.deepcopy(value))
    return True


class EffectApplicator:
    """Applies effect descriptors to a case-state dict in place."""

    def __init__(self, *, clock: Callable[[], datetime] | None = None) -> None:
        self._clock = clock or (lambda: datetime.now(UTC))
        self._handlers: dict[str, Callable[[dict[str, Any], Effect], bool]] = {
            "SET": self._apply_set,
            "SET_RESULT": self._apply_set,
            "SET_ANALYSIS_STAGE": self._apply_stage,
            "APPEND_TAGS": self._apply_append_tags,
            "UNLOCK": self._apply_unlock,
            "ADD_REQUIRED_SECTION": self._apply_required_section,
        }

    def apply(self, state: dict[str, Any], effects: Iterable[Effect | Mapping[str, Any]]) -> dict[str, Any]:
        """Apply *effects* in order and return the (same) mutated *state*."""
        if effects is None:
            return state
        if not isinstance(effects, Iterable):
            logger.debug("Ignoring non-iterable effect list: %r", effects)
            return state
        changed = False
        for raw in effects:
            effect = self._coerce(raw)
            if effect is None:
                logger.debug("Ignoring malformed effect descriptor: %r", raw)
                continue
            handler = self._handlers.get(effect.type)
            if handler is None:
                if effect.type not in _NO_OP_KINDS:
                    logger.debug("Ignoring unknown effect type %r", effect.type)
                continue
            changed = handler(state, effect) or changed

        timestamps = state.get("timestamps")
        if changed and isinstance(timestamps, dict):
            timestamps["last_modified_utc"] = self._clock().isoformat()
        return state

    @staticmethod
    def _coerce(raw: Any) -> Effect | None:
        if isinstance(raw, Effect):
            return raw
        if isinstance(raw, Mapping) and isinstance(raw.get("type"), str):
            return Effect(type=raw["type"], path=raw.get("path"), value=raw.get("value"))
        return None

    # -- Handlers (return True when the state changed) ------------------------

    @staticmethod
    def _apply_set(state: dict[str, Any], effect: Effect) -> bool:
        if effect.path is None:
            return False
        return set_deep(state, effect.path, copy.deepcopy(effect.value))

    @staticmethod
    def _apply_stage(state: dict[str, Any], effect: Effect) -> bool:
        return set_deep(state, ANALYSIS_STAGE_PATH, copy.deepcopy(effect.value))

    @staticmethod
    def _apply_append_tags(state: dict[str, Any], effect: Effect) -> bool:
        if effect.value is None:
            return False
        tags = _list_at(state, effect.path or DEFAULT_TAGS_PATH)
        if tags is None:
            return False
        values = effect.value if isinstance(effect.value, list | tuple) else [effect.value]
        changed = False
        for value in values:
            changed = _add_unique(tags, value) or changed
        return changed

    @staticmethod
    def _apply_unlock(state: dict[str, Any], effect: Effect) -> bool:
        if not isinstance(effect.value, Mapping):
            return False
        parts = _split_path(effect.path or DEFAULT_UNLOCK_PATH)
        if parts is None:
            return False
        cur = state
        for part in parts:
            nxt = cur.get(part)
            if not isinstance(nxt, dict):
                nxt = {}
                cur[part] = nxt
            cur = nxt
        for key, flag in effect.value.items():
            cur[str(key)] = bool(flag)
        return bool(effect.value)

    @staticmethod
    def _apply_required_section(state: dict[str, Any], effect: Effect) -> bool:
        if effect.value is None:
            return False
        sections = _list_at(state, effect.path or DEFAULT_SECTIONS_PATH)
        if sections is None:
            return False
        return _add_unique(sections, effect.value)
