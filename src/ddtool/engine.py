"""DecisionEngine — walks a bound pack as a state machine.

Status moves ``idle`` (no pack) -> ``ready`` (pack + store bound) ->
``active`` (positioned on a node). A handoff swaps the bound pack without
leaving ``active``.

Every forward transition pushes a history frame first, so ``back()`` can
restore the exact pre-transition position and state, including across a
handoff: frames carry their own pack id, and every pack this engine has bound
stays in a per-engine cache. The trace is never rewound; ``back()`` is a new
entry on top of it.

The engine never keeps a reference to the case state. Entry effects are a
read-modify-write through ``CaseStore.get_state()``/``replace_state()``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING

from ddtool.case_store import CaseMeta, CaseStore
from ddtool.effects import EffectApplicator
from ddtool.loader import AcquisitionError
from ddtool.packs import Node, Pack, PackNormalizer, ValidationError
from ddtool.types.core import EngineStatus

if TYPE_CHECKING:
    from ddtool.loader import PackLoader

logger = logging.getLogger(__name__)

Renderer = Callable[[str, Node], None]
Observer = Callable[[str, Node, CaseMeta], None]


def _same_content(a: Pack, b: Pack) -> bool:
    """True when two packs share version, entry, and nodes (their source may differ)."""
    return (a.version, a.entry_node_id, dict(a.nodes)) == (b.version, b.entry_node_id, dict(b.nodes))


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class TransitionError(ValueError):
    """Raised when a requested transition cannot be resolved.

    An ``error`` trace entry has already been recorded; meta, state, and
    history are unchanged.
    """

    def __init__(self, message: str, *, pack_id: str | None = None, node_id: str | None = None) -> None:
        self.pack_id = pack_id
        self.node_id = node_id
        super().__init__(message)


class PackIntegrityError(RuntimeError):
    """A node id referenced at render time is missing from the bound pack."""


class EngineStateError(RuntimeError):
    """Operation called in the wrong engine status, or while a pack load is outstanding."""


# ---------------------------------------------------------------------------
# DecisionEngine
# ---------------------------------------------------------------------------


class DecisionEngine:
    """Traversal state machine over ``info``/``decision``/``outcome``/``handoff``/``connector`` nodes."""

    def __init__(
        self,
        *,
        loader: PackLoader | None = None,
        normalizer: PackNormalizer | None = None,
        applicator: EffectApplicator | None = None,
        renderer: Renderer | None = None,
        observers: Iterable[Observer] = (),
    ) -> None:
        self._loader = loader
        if normalizer is None:
            normalizer = loader.normalizer if loader is not None else PackNormalizer()
        self._normalizer = normalizer
        self._applicator = applicator or EffectApplicator()
        self._renderer = renderer
        self._observers: list[Observer] = list(observers)
        self._pack: Pack | None = None
        self._store: CaseStore | None = None
        self._packs: dict[str, Pack] = {}
        self._status: EngineStatus = "idle"
        self._loading = False

    # -- Accessors ------------------------------------------------------------

    @property
    def status(self) -> EngineStatus:
        return self._status

    @property
    def pack(self) -> Pack | None:
        return self._pack

    @property
    def store(self) -> CaseStore | None:
        return self._store

    @property
    def is_loading(self) -> bool:
        return self._loading

    @property
    def current_node(self) -> Node | None:
        if self._status != "active" or self._pack is None or self._store is None:
            return None
        node_id = self._store.get_meta().node_id
        return self._pack.get_node(node_id) if node_id else None

    @property
    def is_terminal(self) -> bool:
        node = self.current_node
        return node is not None and node.is_terminal

    def add_observer(self, observer: Observer) -> None:
        self._observers.append(observer)

    def available_actions(self) -> list[str]:
        """Actions a renderer should offer for the current node."""
        node = self.current_node
        if node is None:
            return []
        actions: list[str] = []
        if node.type == "decision":
            actions.extend(f"choice:{c.key}" for c in node.choices)
        elif node.type in ("info", "connector"):
            if node.next is not None:
                actions.append("continue")
        elif node.type == "handoff":
            actions.append("handoff")
        elif node.type == "outcome":
            actions.append("restart")
        if self._store is not None and self._store.can_go_back():
            actions.append("back")
        return actions

    # -- Binding --------------------------------------------------------------

    def load_pack(self, pack: Pack, store: CaseStore) -> None:
        """Bind *pack* and *store*. Validates the pack; does not render."""
        self._guard_not_loading()
        errors = self._normalizer.validate_pack(pack)
        if errors:
            raise ValidationError(f"Pack '{pack.pack_id}': {errors[0]}", errors=errors)
        self._pack = pack
        self._store = store
        self._packs[pack.pack_id] = pack
        self._status = "ready"
        logger.info("Bound pack %s (%d nodes)", pack.pack_id, len(pack.nodes), extra={"pack": pack.pack_id})

    def start(self) -> Node:
        """Enter the bound pack's entry node. Only valid while ``ready``; use ``restart()`` mid-walk."""
        pack, store = self._require_bound()
        if self._status != "ready":
            msg = f"Engine is {self._status}; start() needs a freshly loaded pack (use restart() to begin again)"
            raise EngineStateError(msg)
        self._guard_not_loading()
        return self._enter(pack, store, pack.entry_node_id)

    def restart(self) -> Node:
        """Reset the store and start the bound pack again (the outcome action)."""
        pack, store = self._require_bound()
        self._guard_not_loading()
        store.reset()
        logger.info("Restarting pack %s", pack.pack_id, extra={"pack": pack.pack_id})
        return self._enter(pack, store, pack.entry_node_id)

    # -- Transitions ----------------------------------------------------------

    def answer(self, choice_key: str) -> Node:
        """Take *choice_key* on the current decision node."""
        pack, store = self._require_active()
        node_id, node = self._current(pack, store)
        if node.type != "decision":
            msg = f"Node '{node_id}' is a {node.type} node; answer() needs a decision node"
            raise self._fail(store, pack, node_id, msg)
        choice = node.get_choice(choice_key)
        if choice is None:
            valid = ", ".join(c.key for c in node.choices)
            msg = f"Choice '{choice_key}' is not defined on node '{node_id}' (valid: {valid})"
            raise self._fail(store, pack, node_id, msg)
        if choice.target is None:
            msg = f"Choice '{choice.key}' on node '{node_id}' is terminal (no next node)"
            raise self._fail(store, pack, node_id, msg)
        self._check_target(store, pack, node_id, choice.target)

        store.push_history(pack.pack_id, node_id)
        store.append_trace("answer", node_id=node_id, pack_id=pack.pack_id, answer=choice.key, to=choice.target)
        return self._enter(pack, store, choice.target)

    def continue_(self) -> Node:
        """Acknowledge the current info/connector node and move to its ``next``."""
        pack, store = self._require_active()
        node_id, node = self._current(pack, store)
        if node.type not in ("info", "connector"):
            msg = f"Node '{node_id}' is a {node.type} node; continue needs an info or connector node"
            raise self._fail(store, pack, node_id, msg)
        if node.next is None:
            raise self._fail(store, pack, node_id, f"Node {node_id} has no next")
        self._check_target(store, pack, node_id, node.next)

        store.push_history(pack.pack_id, node_id)
        store.append_trace("ack", node_id=node_id, pack_id=pack.pack_id, to=node.next)
        return self._enter(pack, store, node.next)

    async def handoff(self) -> Node:
        """Transfer control to the pack named by the current handoff node.

        Raises:
            TransitionError: Not on a handoff node, no target pack id, or no loader.
            AcquisitionError: The target pack could not be fetched.
            ValidationError: The target pack is malformed.
        """
        pack, store = self._require_active()
        node_id, node = self._current(pack, store)
        if node.type != "handoff":
            msg = f"Node '{node_id}' is a {node.type} node; handoff needs a handoff node"
            raise self._fail(store, pack, node_id, msg)
        target = node.handoff.target_pack_id if node.handoff is not None else None
        if not target:
            raise self._fail(store, pack, node_id, f"Handoff node {node_id} missing targetPackId")
        if self._loader is None:
            msg = f"Handoff node {node_id} cannot load '{target}': no pack loader configured"
            raise self._fail(store, pack, node_id, msg)

        reason = node.handoff.reason if node.handoff is not None else ""
        store.append_trace("handoff", node_id=node_id, pack_id=pack.pack_id, to_pack=target, reason=reason)
        logger.info("Handoff %s -> %s", pack.pack_id, target, extra={"pack": pack.pack_id, "node": node_id})

        self._loading = True
        try:
            next_pack = await self._loader.load(target)
        except (AcquisitionError, ValidationError) as exc:
            store.append_trace("error", node_id=node_id, pack_id=pack.pack_id, message=str(exc))
            logger.warning("Handoff to %s failed", target, extra={"pack": pack.pack_id, "error": str(exc)})
            raise
        finally:
            self._loading = False

        meta = store.get_meta()
        if meta.pack_id != pack.pack_id or meta.node_id != node_id:
            msg = f"Case store moved to {meta.pack_id}/{meta.node_id} while '{target}' was loading; handoff abandoned"
            raise EngineStateError(msg)

        # Frames address packs by id, so one id must keep meaning one pack.
        bound = self._packs.get(next_pack.pack_id)
        if bound is not None and not _same_content(bound, next_pack):
            msg = (
                f"Handoff target '{target}' declares pack id '{next_pack.pack_id}', "
                "which this walk already bound with different content"
            )
            raise self._fail(store, pack, node_id, msg)

        store.push_history(pack.pack_id, node_id)
        self._pack = next_pack
        self._packs[next_pack.pack_id] = next_pack
        return self._enter(next_pack, store, next_pack.entry_node_id)

    def back(self) -> Node | None:
        """Undo the last forward transition. Returns None (no-op) when history is empty."""
        _, store = self._require_bound()
        self._guard_not_loading()
        frame = store.peek_history()
        if frame is None:
            return None

        target_pack = self._packs.get(frame.pack_id)
        if target_pack is None:
            msg = f"History frame refers to pack '{frame.pack_id}', which this engine never bound"
            raise PackIntegrityError(msg)
        node = self._resolve_node(target_pack, frame.node_id)

        leaving = store.get_meta()
        store.pop_history()
        store.replace_state(frame.state_snapshot)
        store.set_meta(target_pack.pack_id, frame.node_id)
        store.append_trace(
            "back",
            node_id=leaving.node_id,
            pack_id=leaving.pack_id,
            to_node=frame.node_id,
            to_pack=frame.pack_id,
        )
        self._pack = target_pack
        self._status = "active"
        logger.info("Back to %s/%s", frame.pack_id, frame.node_id, extra={"pack": frame.pack_id, "node": frame.node_id})
        self._notify(frame.node_id, node, store)
        return node

    def refresh(self) -> Node | None:
        """Re-render the current node. Never touches trace, state, or history."""
        if self._status != "active" or self._pack is None or self._store is None:
            return None
        node_id, node = self._current(self._pack, self._store)
        self._notify(node_id, node, self._store)
        return node

    # -- Internals ------------------------------------------------------------

    def _require_bound(self) -> tuple[Pack, CaseStore]:
        if self._pack is None or self._store is None:
            msg = "Engine requires a pack and a case store; call load_pack() first"
            raise EngineStateError(msg)
        return self._pack, self._store

    def _require_active(self) -> tuple[Pack, CaseStore]:
        pack, store = self._require_bound()
        if self._status != "active":
            msg = f"Engine is {self._status}; call start() before transitioning"
            raise EngineStateError(msg)
        self._guard_not_loading()
        return pack, store

    def _guard_not_loading(self) -> None:
        if self._loading:
            msg = "A pack load is in progress; transitions are disabled until it settles"
            raise EngineStateError(msg)

    @staticmethod
    def _resolve_node(pack: Pack, node_id: str) -> Node:
        node = pack.get_node(node_id)
        if node is None:
            msg = f"Node '{node_id}' is not in pack '{pack.pack_id}' (corrupt pack or engine bug)"
            raise PackIntegrityError(msg)
        return node

    def _current(self, pack: Pack, store: CaseStore) -> tuple[str, Node]:
        node_id = store.get_meta().node_id
        if node_id is None:
            msg = "Case store has no current position; call start()"
            raise EngineStateError(msg)
        return node_id, self._resolve_node(pack, node_id)

    @staticmethod
    def _fail(store: CaseStore, pack: Pack, node_id: str, message: str) -> TransitionError:
        store.append_trace("error", node_id=node_id, pack_id=pack.pack_id, message=message)
        logger.warning(message, extra={"pack": pack.pack_id, "node": node_id, "kind": "error"})
        return TransitionError(message, pack_id=pack.pack_id, node_id=node_id)

    def _check_target(self, store: CaseStore, pack: Pack, node_id: str, target: str) -> None:
        if target not in pack.nodes:
            raise self._fail(store, pack, node_id, f"Node '{node_id}' points to missing node '{target}'")

    def _enter(self, pack: Pack, store: CaseStore, node_id: str) -> Node:
        node = self._resolve_node(pack, node_id)

        store.set_meta(pack.pack_id, node_id)
        store.append_trace("enter", node_id=node_id, pack_id=pack.pack_id, node_type=node.type, title=node.title)
        if node.effects:
            state = store.get_state()
            self._applicator.apply(state, node.effects)
            store.replace_state(state)
        self._status = "active"
        logger.debug("Entered %s/%s", pack.pack_id, node_id, extra={"pack": pack.pack_id, "node": node_id})
        self._notify(node_id, node, store)
        return node

    def _notify(self, node_id: str, node: Node, store: CaseStore) -> None:
        if self._renderer is not None:
            self._renderer(node_id, node)
        meta = store.get_meta()
        for observer in self._observers:
            try:
                observer(node_id, node, meta)
            except Exception:
                logger.warning("Observer failed for node %s", node_id, exc_info=True)
