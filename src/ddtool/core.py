"""Project discovery, config, and the session facade.

Convention-based discovery: each project has a `.ddtool/` directory containing
`config.json` (pack source, default pack, HTTP timeout), an optional `packs/`
directory of pack documents, and `ddtool.log`.

``CaseSession`` wires one ``PackLoader``, ``CaseStore``, and ``DecisionEngine``
together. It is what the CLI and HTTP API hold per walk; nothing in here is
global.
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
import uuid
from pathlib import Path
from typing import Any

from ddtool.case_store import CaseStore
from ddtool.case_template import new_case_state
from ddtool.effects import EffectApplicator
from ddtool.engine import DecisionEngine, Observer, Renderer
from ddtool.loader import DEFAULT_TIMEOUT, PackLoader
from ddtool.packs import Node, Pack
from ddtool.types.api import SessionView
from ddtool.types.core import ProjectConfig

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Convention-based discovery
# ---------------------------------------------------------------------------

DDTOOL_DIR_NAME = ".ddtool"
CONFIG_FILENAME = "config.json"
PACKS_DIRNAME = "packs"
CONFIG_VERSION = 1
DEFAULT_PACK = "figure1"


def find_ddtool_root(start: Path | None = None) -> Path:
    """Walk up from start (default cwd) looking for .ddtool/ directory.

    Returns the .ddtool/ directory path (not the project root).
    """
    current = (start or Path.cwd()).resolve()
    for parent in [current, *current.parents]:
        candidate = parent / DDTOOL_DIR_NAME
        if candidate.is_dir():
            return candidate
    msg = f"No {DDTOOL_DIR_NAME}/ directory found in {current} or any parent"
    raise FileNotFoundError(msg)


def default_config() -> ProjectConfig:
    return ProjectConfig(
        version=CONFIG_VERSION,
        packs_source=PACKS_DIRNAME,
        default_pack=DEFAULT_PACK,
        http_timeout=DEFAULT_TIMEOUT,
    )


def read_config(ddtool_dir: Path) -> ProjectConfig:
    """Read .ddtool/config.json merged over defaults. Returns defaults if missing or corrupt."""
    config = default_config()
    config_path = ddtool_dir / CONFIG_FILENAME
    if not config_path.exists():
        return config
    try:
        loaded = json.loads(config_path.read_text())
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Failed to read %s, using defaults: %s", config_path, exc)
        return config
    if not isinstance(loaded, dict):
        logger.warning("Ignoring %s: expected a JSON object, got %s", config_path, type(loaded).__name__)
        return config
    config.update(loaded)  # type: ignore[typeddict-item]
    return config


def write_config(ddtool_dir: Path, config: dict[str, Any] | ProjectConfig) -> None:
    """Write .ddtool/config.json."""
    write_atomic(ddtool_dir / CONFIG_FILENAME, json.dumps(config, indent=2) + "\n")


def write_atomic(path: Path, content: str) -> None:
    """Write content to path atomically via temp file + os.replace()."""
    tmp = path.with_suffix(path.suffix + ".tmp")
    try:
        tmp.write_text(content, encoding="utf-8")
        os.replace(tmp, path)
    except BaseException:
        with contextlib.suppress(OSError):
            tmp.unlink()
        raise


def resolve_packs_source(ddtool_dir: Path | None, config: ProjectConfig | None = None) -> str | Path | None:
    """Turn ``packs_source`` into something ``PackLoader`` accepts.

    URLs pass through; relative directories resolve against ``.ddtool/``.
    Without a project there is no configured source (built-ins only).
    """
    if ddtool_dir is None:
        return None
    source = str((config or read_config(ddtool_dir)).get("packs_source") or PACKS_DIRNAME)
    if source.startswith(("http://", "https://")):
        return source
    path = Path(source)
    return path if path.is_absolute() else ddtool_dir / path


def build_loader(ddtool_dir: Path | None) -> PackLoader:
    """Loader for the project's configured pack source (built-ins only outside a project)."""
    if ddtool_dir is None:
        return PackLoader()
    config = read_config(ddtool_dir)
    return PackLoader(
        resolve_packs_source(ddtool_dir, config),
        timeout=float(config.get("http_timeout", DEFAULT_TIMEOUT)),
    )


def install_builtin_packs(ddtool_dir: Path) -> list[Path]:
    """Write every built-in pack into .ddtool/packs/ as JSON. Existing files are kept."""
    from ddtool.packs_data import BUILT_IN_PACKS

    packs_dir = ddtool_dir / PACKS_DIRNAME
    packs_dir.mkdir(parents=True, exist_ok=True)
    written: list[Path] = []
    for pack_id, raw in sorted(BUILT_IN_PACKS.items()):
        target = packs_dir / f"{pack_id}.json"
        if target.exists():
            continue
        write_atomic(target, json.dumps(raw, indent=2) + "\n")
        written.append(target)
    return written


# ---------------------------------------------------------------------------
# CaseSession
# ---------------------------------------------------------------------------


class CaseSession:
    """One decision walk: loader + store + engine, bound together."""

    def __init__(
        self,
        loader: PackLoader | None = None,
        *,
        session_id: str | None = None,
        renderer: Renderer | None = None,
        observers: tuple[Observer, ...] = (),
        applicator: EffectApplicator | None = None,
    ) -> None:
        self.session_id = session_id or uuid.uuid4().hex[:12]
        self.loader = loader or PackLoader()
        self.store = CaseStore(initial_state=new_case_state)
        self.engine = DecisionEngine(
            loader=self.loader,
            applicator=applicator,
            renderer=renderer,
            observers=observers,
        )

    @classmethod
    def from_project(cls, ddtool_dir: Path | None = None, **kwargs: Any) -> CaseSession:
        """Build a session whose loader reads the project's configured pack source."""
        return cls(build_loader(ddtool_dir), **kwargs)

    async def start_pack(self, pack_id: str) -> Node:
        """Load *pack_id*, reset the case, bind, and enter the entry node.

        The load happens before anything is touched, so a failed fetch or a
        malformed pack leaves the session as it was.
        """
        pack = await self.loader.load(pack_id)
        return self.start_loaded(pack)

    def start_loaded(self, pack: Pack) -> Node:
        self.engine.load_pack(pack, self.store)
        self.store.reset()
        context = {"session": self.session_id, "pack": pack.pack_id}
        logger.info("Session %s starting pack %s", self.session_id, pack.pack_id, extra=context)
        return self.engine.start()

    async def advance(self) -> Node:
        """Move past the current node: ``handoff()`` on a handoff node, else ``continue_()``."""
        node = self.engine.current_node
        if node is not None and node.type == "handoff":
            return await self.engine.handoff()
        return self.engine.continue_()

    def view(self) -> SessionView:
        """Renderer-facing snapshot of where the walk stands."""
        node = self.engine.current_node
        return SessionView(
            session_id=self.session_id,
            status=self.engine.status,
            meta=self.store.get_meta().to_dict(),
            node=node.to_dict() if node is not None else None,
            actions=self.engine.available_actions(),
            can_go_back=self.store.can_go_back(),
            is_terminal=self.engine.is_terminal,
        )
