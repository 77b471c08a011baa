# src/ddtool/packs.py
"""Decision pack model -- normalization, validation, and quality checks.

Pack documents have been written in several shapes over time (nodes as an
object map or an array, ``text``/``question``/``prompt`` for the same field,
``QUESTION``/``INSTRUCTION`` type names, ...). ``PackNormalizer`` resolves all
of them through one alias table and produces frozen ``Pack``/``Node``
instances. Everything downstream of ``normalize()`` reads canonical fields only.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, cast

from ddtool.types.api import ChoiceDict, NodeDict, PackDict, PackSummary
from ddtool.types.core import NodeType

logger = logging.getLogger(__name__)

NODE_TYPES: frozenset[str] = frozenset({"info", "decision", "outcome", "handoff", "connector"})

# Legacy type names seen in older pack documents
_TYPE_ALIASES: dict[str, str] = {
    "question": "decision",
    "instruction": "info",
    "action": "info",
    "terminal": "outcome",
    "end": "outcome",
    "result": "outcome",
    "route": "handoff",
}

# ---------------------------------------------------------------------------
# Field alias table -- first present (non-null) name wins
# ---------------------------------------------------------------------------

PACK_ALIASES: dict[str, tuple[str, ...]] = {
    "pack_id": ("packId", "pack_id", "id"),
    "title": ("title", "name"),
    "version": ("version",),
    "entry": ("entryNodeId", "entry_node_id", "start", "startNode", "entry"),
    "nodes": ("nodes", "steps", "tree"),
}

NODE_ALIASES: dict[str, tuple[str, ...]] = {
    "id": ("id", "key"),
    "type": ("type", "kind"),
    "title": ("title", "heading"),
    "body": ("body", "description", "instruction_text"),
    "question": ("text", "question", "prompt", "question_text"),
    "choices": ("choices", "options", "answers"),
    "next": ("next", "to", "goto"),
    "effects": ("effects", "actions"),
}

CHOICE_ALIASES: dict[str, tuple[str, ...]] = {
    "label": ("label", "text", "name"),
    "key": ("value", "key"),
    "target": ("next", "to", "goto", "target"),
}

HANDOFF_ALIASES: dict[str, tuple[str, ...]] = {
    "target_pack_id": ("targetPackId", "target_pack_id", "toPack", "pack"),
    "reason": ("reason",),
}


def _resolve(raw: Mapping[str, Any], aliases: tuple[str, ...], default: Any = None) -> Any:
    for name in aliases:
        value = raw.get(name)
        if value is not None:
            return value
    return default


def _optional_id(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ValidationError(ValueError):
    """Raised when a pack document or a bound pack is structurally invalid.

    ``errors`` holds every violation found by the validation pass; the
    message carries the first one.
    """

    def __init__(self, message: str, *, errors: list[str] | None = None) -> None:
        self.errors = errors if errors is not None else [message]
        super().__init__(message)


# ---------------------------------------------------------------------------
# Frozen model
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Choice:
    """One answer on a decision node. ``target=None`` marks an explicit terminal."""

    key: str
    label: str
    target: str | None

    def to_dict(self) -> ChoiceDict:
        return ChoiceDict(key=self.key, label=self.label, target=self.target)


@dataclass(frozen=True)
class HandoffTarget:
    target_pack_id: str | None
    reason: str = ""


@dataclass(frozen=True)
class Effect:
    """Declarative side effect applied to the case state on node entry."""

    type: str
    path: str | None = None
    value: Any = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"type": self.type}
        if self.path is not None:
            out["path"] = self.path
        if self.value is not None:
            out["value"] = copy.deepcopy(self.value)
        return out


@dataclass(frozen=True)
class Node:
    """A single step of a pack graph."""

    id: str
    type: NodeType
    title: str = ""
    body: str = ""
    question: str = ""
    choices: tuple[Choice, ...] = ()
    next: str | None = None
    handoff: HandoffTarget | None = None
    effects: tuple[Effect, ...] = ()
    notes: tuple[Any, ...] = ()
    directives: tuple[str, ...] = ()
    hints: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.type not in NODE_TYPES:
            allowed = sorted(NODE_TYPES)
            msg = f"Node '{self.id}' has invalid type '{self.type}': must be one of {allowed}"
            raise ValidationError(msg)

    @property
    def choice_map(self) -> dict[str, str | None]:
        return {c.key: c.target for c in self.choices}

    def get_choice(self, key: str) -> Choice | None:
        for choice in self.choices:
            if choice.key == key:
                return choice
        return None

    @property
    def is_terminal(self) -> bool:
        return self.type == "outcome"

    def to_dict(self) -> NodeDict:
        out = NodeDict(
            id=self.id,
            type=self.type,
            title=self.title,
            body=self.body,
            question=self.question,
            choices=[c.to_dict() for c in self.choices],
            next=self.next,
            effects=[e.to_dict() for e in self.effects],
            notes=copy.deepcopy(list(self.notes)),
            directives=list(self.directives),
            hints=list(self.hints),
        )
        if self.handoff is not None:
            out["target_pack_id"] = self.handoff.target_pack_id
            out["reason"] = self.handoff.reason
        return out


@dataclass(frozen=True)
class Pack:
    """A normalized, validated decision graph. Immutable once built."""

    pack_id: str
    title: str
    version: str
    entry_node_id: str
    nodes: Mapping[str, Node]
    source: str | None = None

    def get_node(self, node_id: str) -> Node | None:
        return self.nodes.get(node_id)

    def summary(self) -> PackSummary:
        return PackSummary(
            pack_id=self.pack_id,
            title=self.title,
            version=self.version,
            entry_node_id=self.entry_node_id,
            node_count=len(self.nodes),
            source=self.source,
        )

    def to_dict(self) -> PackDict:
        return PackDict(
            **self.summary(),
            nodes={node_id: node.to_dict() for node_id, node in self.nodes.items()},
        )


# ---------------------------------------------------------------------------
# PackNormalizer
# ---------------------------------------------------------------------------


class PackNormalizer:
    """Turns raw pack documents into validated ``Pack`` instances.

    Stateless; one instance can be shared by every loader and engine.
    """

    # Size limits (prevent runaway documents)
    MAX_NODES = 500
    MAX_CHOICES = 50

    def normalize(self, raw: Any, fallback_id: str | None = None) -> Pack:
        """Normalize and validate a raw pack document.

        Args:
            raw: Parsed JSON document in any supported shape.
            fallback_id: Pack id to use when the document carries none
                (usually the key it was fetched under).

        Returns:
            A frozen, fully validated Pack.

        Raises:
            ValidationError: On any structural defect. Never returns a
                partially valid pack.
        """
        if not isinstance(raw, Mapping):
            msg = f"Decision pack is not an object (got {type(raw).__name__})"
            raise ValidationError(msg)

        pack_id = str(_resolve(raw, PACK_ALIASES["pack_id"], fallback_id or "unknown"))
        title = str(_resolve(raw, PACK_ALIASES["title"], pack_id))
        version = str(_resolve(raw, PACK_ALIASES["version"], "1.0.0"))

        raw_nodes = _resolve(raw, PACK_ALIASES["nodes"])
        if raw_nodes is None and isinstance(raw.get("meta"), Mapping):
            raw_nodes = raw["meta"].get("nodes")
        nodes = self._normalize_nodes(pack_id, raw_nodes)

        entry = _optional_id(_resolve(raw, PACK_ALIASES["entry"]))
        if entry is None:
            msg = f"Pack '{pack_id}': missing entry node (entryNodeId/start/startNode/entry)"
            raise ValidationError(msg)

        logger.debug("Normalized pack %s: %d nodes, entry=%s", pack_id, len(nodes), entry)

        pack = Pack(
            pack_id=pack_id,
            title=title,
            version=version,
            entry_node_id=entry,
            nodes=MappingProxyType(nodes),
            source=_optional_id(raw.get("source")),
        )
        errors = self.validate_pack(pack)
        if errors:
            raise ValidationError(f"Pack '{pack_id}': {errors[0]}", errors=errors)

        for warning in self.check_pack_quality(pack):
            logger.warning("Quality: %s: %s", pack_id, warning)
        return pack

    def _normalize_nodes(self, pack_id: str, raw_nodes: Any) -> dict[str, Node]:
        items: list[tuple[str, Any]] = []
        if isinstance(raw_nodes, list):
            for i, raw_node in enumerate(raw_nodes):
                node_id = None
                if isinstance(raw_node, Mapping):
                    node_id = _optional_id(_resolve(raw_node, NODE_ALIASES["id"]))
                items.append((node_id or f"node_{i + 1}", raw_node))
        elif isinstance(raw_nodes, Mapping):
            items = [(str(k), v) for k, v in raw_nodes.items()]
        else:
            msg = f"Pack '{pack_id}': missing nodes (expected an object map or an array)"
            raise ValidationError(msg)

        if len(items) > self.MAX_NODES:
            msg = f"Pack '{pack_id}' has {len(items)} nodes (max {self.MAX_NODES})"
            raise ValidationError(msg)

        nodes: dict[str, Node] = {}
        for node_id, raw_node in items:
            if node_id in nodes:
                msg = f"Pack '{pack_id}': duplicate node id '{node_id}'"
                raise ValidationError(msg)
            nodes[node_id] = self.normalize_node(node_id, raw_node)
        return nodes

    def normalize_node(self, node_id: str, raw: Any) -> Node:
        """Normalize a single node. The container key is authoritative for ``id``."""
        if not isinstance(raw, Mapping):
            msg = f"Node '{node_id}' must be an object, got {type(raw).__name__}"
            raise ValidationError(msg)

        raw_choices = _resolve(raw, NODE_ALIASES["choices"])
        raw_type = _resolve(raw, NODE_ALIASES["type"])
        if raw_type is None or not str(raw_type).strip():
            node_type = "decision" if raw_choices is not None else "info"
        else:
            name = str(raw_type).strip().lower()
            node_type = _TYPE_ALIASES.get(name, name)
            if node_type not in NODE_TYPES:
                allowed = ", ".join(sorted(NODE_TYPES))
                msg = f"Node '{node_id}' has unknown type '{raw_type}' (must be one of: {allowed})"
                raise ValidationError(msg)

        choices: tuple[Choice, ...] = ()
        if node_type == "decision" and raw_choices is not None:
            choices = self._normalize_choices(node_id, raw_choices)

        handoff = None
        if node_type == "handoff":
            nested = raw.get("handoff")
            source = nested if isinstance(nested, Mapping) else raw
            handoff = HandoffTarget(
                target_pack_id=_optional_id(_resolve(source, HANDOFF_ALIASES["target_pack_id"])),
                reason=str(_resolve(source, HANDOFF_ALIASES["reason"], "")),
            )

        next_id = None
        if node_type != "decision":
            next_id = _optional_id(_resolve(raw, NODE_ALIASES["next"]))

        return Node(
            id=node_id,
            type=cast(NodeType, node_type),
            title=str(_resolve(raw, NODE_ALIASES["title"], "")),
            body=str(_resolve(raw, NODE_ALIASES["body"], "")),
            question=str(_resolve(raw, NODE_ALIASES["question"], "")),
            choices=choices,
            next=next_id,
            handoff=handoff,
            effects=self._normalize_effects(node_id, _resolve(raw, NODE_ALIASES["effects"])),
            notes=self._normalize_notes(raw),
            directives=self._string_list(raw, "directives", "directive"),
            hints=self._string_list(raw, "hints", "hint"),
        )

    def _normalize_choices(self, node_id: str, raw_choices: Any) -> tuple[Choice, ...]:
        entries: list[tuple[str | None, Any]]
        if isinstance(raw_choices, list):
            entries = [(None, c) for c in raw_choices]
        elif isinstance(raw_choices, Mapping):
            entries = [(str(k), v) for k, v in raw_choices.items()]
        else:
            msg = f"Node '{node_id}': choices must be an array or an object map, got {type(raw_choices).__name__}"
            raise ValidationError(msg)

        if len(entries) > self.MAX_CHOICES:
            msg = f"Node '{node_id}' has {len(entries)} choices (max {self.MAX_CHOICES})"
            raise ValidationError(msg)

        choices: list[Choice] = []
        seen: set[str] = set()
        for index, (map_key, raw_choice) in enumerate(entries):
            if isinstance(raw_choice, Mapping):
                label = _resolve(raw_choice, CHOICE_ALIASES["label"])
                key = _resolve(raw_choice, CHOICE_ALIASES["key"], map_key)
                target = _resolve(raw_choice, CHOICE_ALIASES["target"])
            elif map_key is not None and (raw_choice is None or isinstance(raw_choice, str)):
                # {"yes": "n2", "no": null}
                label, key, target = None, map_key, raw_choice
            else:
                msg = f"Node '{node_id}': choice at index {index} must be an object, got {type(raw_choice).__name__}"
                raise ValidationError(msg)

            if label is None and map_key is not None:
                label = map_key.replace("_", " ").upper()
            label_text = "" if label is None else str(label).strip()
            key_text = _optional_id(key) or label_text.lower() or f"choice_{index + 1}"
            if key_text in seen:
                msg = f"Node '{node_id}': duplicate choice key '{key_text}'"
                raise ValidationError(msg)
            seen.add(key_text)
            choices.append(Choice(key=key_text, label=label_text, target=_optional_id(target)))
        return tuple(choices)

    @staticmethod
    def _normalize_effects(node_id: str, raw_effects: Any) -> tuple[Effect, ...]:
        if raw_effects is None:
            return ()
        if not isinstance(raw_effects, list):
            msg = f"Node '{node_id}': effects must be a list, got {type(raw_effects).__name__}"
            raise ValidationError(msg)
        effects: list[Effect] = []
        for i, raw in enumerate(raw_effects):
            if not isinstance(raw, Mapping) or not isinstance(raw.get("type"), str):
                logger.debug("Dropping malformed effect %d on node %s: %r", i, node_id, raw)
                continue
            path = raw.get("path")
            effects.append(
                Effect(
                    type=raw["type"],
                    path=str(path) if path is not None else None,
                    value=copy.deepcopy(raw.get("value")),
                )
            )
        return tuple(effects)

    @staticmethod
    def _normalize_notes(raw: Mapping[str, Any]) -> tuple[Any, ...]:
        notes = raw.get("notes")
        if isinstance(notes, list):
            return tuple(copy.deepcopy(notes))
        note = raw.get("note")
        if isinstance(note, str) and note.strip():
            return ({"title": "Note", "body": note.strip()},)
        return ()

    @staticmethod
    def _string_list(raw: Mapping[str, Any], plural: str, singular: str) -> tuple[str, ...]:
        values = raw.get(plural)
        if isinstance(values, list):
            return tuple(str(v) for v in values)
        value = raw.get(singular)
        if isinstance(value, str) and value.strip():
            return (value.strip(),)
        return ()

    # -- Validation ---------------------------------------------------------

    @staticmethod
    def validate_pack(pack: Pack) -> list[str]:
        """Validate graph integrity of a canonical pack.

        Returns:
            List of error messages, in node order. Empty list means valid.
        """
        errors: list[str] = []
        if pack.entry_node_id not in pack.nodes:
            errors.append(f"entry node '{pack.entry_node_id}' not found in nodes")

        for node_id, node in pack.nodes.items():
            if node.id != node_id:
                errors.append(f"node '{node_id}' is stored under a different id '{node.id}'")
            if node.type == "decision":
                if len(node.choices) < 2:
                    errors.append(f"decision node '{node_id}' must have at least 2 choices (has {len(node.choices)})")
                for choice in node.choices:
                    if not choice.label:
                        errors.append(f"choice '{choice.key}' on node '{node_id}' has an empty label")
                    if choice.target is not None and choice.target not in pack.nodes:
                        errors.append(
                            f"choice '{choice.key}' on node '{node_id}' points to missing node '{choice.target}'"
                        )
            elif node.next is not None and node.next not in pack.nodes:
                errors.append(f"node '{node_id}' next '{node.next}' not found in nodes")
        return errors

    @staticmethod
    def check_pack_quality(pack: Pack) -> list[str]:
        """Check a pack for authoring issues (non-blocking warnings)."""
        warnings: list[str] = []

        reachable: set[str] = set()
        queue = [pack.entry_node_id]
        while queue:
            current = queue.pop(0)
            if current in reachable or current not in pack.nodes:
                continue
            reachable.add(current)
            node = pack.nodes[current]
            queue.extend(c.target for c in node.choices if c.target is not None)
            if node.next is not None:
                queue.append(node.next)
        for node_id in sorted(set(pack.nodes) - reachable):
            warnings.append(f"node '{node_id}' is unreachable from entry node '{pack.entry_node_id}'")

        for node_id, node in pack.nodes.items():
            if node.type == "handoff" and (node.handoff is None or node.handoff.target_pack_id is None):
                warnings.append(f"handoff node '{node_id}' has no target pack id")
            if node.type in ("info", "connector") and node.next is None:
                warnings.append(f"{node.type} node '{node_id}' has no next (dead end)")
        return warnings
