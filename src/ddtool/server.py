"""HTTP session API for ddtool — drive decision walks from a web renderer.

Each ``POST /api/sessions`` creates a ``CaseSession`` held in a module-level
``SessionRegistry``. Requests against one session are serialized with an
``asyncio.Lock``; a request that arrives while another is still running
(for example while a handoff is fetching the next pack) gets ``409
SESSION_BUSY`` instead of queueing.

Errors use the envelope ``{"error": {"message", "code", "details"}}``.

Usage:
    ddtool serve                     # http://127.0.0.1:8390
    ddtool serve --port 9000
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path
from time import perf_counter
from typing import TYPE_CHECKING, Any

from starlette.requests import Request

from ddtool import __version__
from ddtool.core import DEFAULT_PACK, CaseSession, build_loader, read_config
from ddtool.engine import EngineStateError, PackIntegrityError, TransitionError
from ddtool.loader import AcquisitionError, PackLoader
from ddtool.logging import setup_logging
from ddtool.packs import ValidationError
from ddtool.types.api import ErrorResponse
from ddtool.validation import sanitize_choice_key, sanitize_pack_id

if TYPE_CHECKING:
    from fastapi.responses import JSONResponse

DEFAULT_PORT = 8390
MAX_SESSIONS = 256

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Session registry
# ---------------------------------------------------------------------------


class SessionRegistry:
    """Live sessions keyed by id, each with its own lock.

    Holds at most ``max_sessions``; creating one more evicts the oldest.
    """

    def __init__(
        self,
        ddtool_dir: Path | None = None,
        *,
        loader_factory: Callable[[], PackLoader] | None = None,
        max_sessions: int = MAX_SESSIONS,
    ) -> None:
        self.ddtool_dir = ddtool_dir
        self._loader_factory = loader_factory or (lambda: build_loader(ddtool_dir))
        self._max_sessions = max_sessions
        self._sessions: dict[str, CaseSession] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    @property
    def default_pack(self) -> str:
        if self.ddtool_dir is None:
            return DEFAULT_PACK
        return read_config(self.ddtool_dir).get("default_pack", DEFAULT_PACK)

    def new_loader(self) -> PackLoader:
        return self._loader_factory()

    def create(self) -> CaseSession:
        while len(self._sessions) >= self._max_sessions:
            oldest = next(iter(self._sessions))
            logger.info("Evicting session %s (limit %d)", oldest, self._max_sessions)
            self.discard(oldest)
        session = CaseSession(self.new_loader())
        self._sessions[session.session_id] = session
        self._locks[session.session_id] = asyncio.Lock()
        return session

    def get(self, session_id: str) -> CaseSession:
        """Return the session for *session_id*. Raises ``KeyError``."""
        return self._sessions[session_id]

    def lock(self, session_id: str) -> asyncio.Lock:
        return self._locks[session_id]

    def discard(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)
        self._locks.pop(session_id, None)

    def __len__(self) -> int:
        return len(self._sessions)


# ---------------------------------------------------------------------------
# Module-level state — set by main() or test fixtures
# ---------------------------------------------------------------------------

_registry: SessionRegistry | None = None


def _get_registry() -> SessionRegistry:
    global _registry
    if _registry is None:
        _registry = SessionRegistry()
    return _registry


# ---------------------------------------------------------------------------
# Error helpers
# ---------------------------------------------------------------------------


def _error_response(
    message: str,
    code: str,
    status_code: int,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    """Build the ``{"error": {...}}`` envelope and log it."""
    from fastapi.responses import JSONResponse

    body: ErrorResponse = {"error": {"message": message, "code": code, "details": details or {}}}
    logger.warning("API error [%s] %s: %s", status_code, code, message, extra={"error": code})
    return JSONResponse(body, status_code=status_code)


def _interpreter_error(exc: Exception) -> JSONResponse:
    """Map an interpreter exception onto the HTTP error envelope."""
    if isinstance(exc, TransitionError):
        return _error_response(
            str(exc), "INVALID_TRANSITION", 400, {"pack_id": exc.pack_id, "node_id": exc.node_id}
        )
    if isinstance(exc, ValidationError):
        return _error_response(str(exc).splitlines()[0], "VALIDATION_ERROR", 400, {"errors": exc.errors})
    if isinstance(exc, AcquisitionError):
        details = {"resource": exc.resource, "hint": exc.hint}
        if exc.not_found:
            return _error_response(str(exc).splitlines()[0], "NOT_FOUND", 404, details)
        return _error_response(str(exc).splitlines()[0], "ACQUISITION_FAILED", 502, details)
    if isinstance(exc, EngineStateError):
        return _error_response(str(exc), "INVALID_STATE", 409)
    if isinstance(exc, PackIntegrityError):
        return _error_response(str(exc), "PACK_INTEGRITY", 500)
    raise exc


_INTERPRETER_ERRORS = (TransitionError, ValidationError, AcquisitionError, EngineStateError, PackIntegrityError)


async def _parse_json_body(request: Request) -> dict[str, Any] | JSONResponse:
    """Parse and validate a JSON object body, returning 400 on failure. An empty body is ``{}``."""
    raw = await request.body()
    if not raw.strip():
        return {}
    try:
        body = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return _error_response("Invalid JSON body", "VALIDATION_ERROR", 400)
    if not isinstance(body, dict):
        return _error_response("Request body must be a JSON object", "VALIDATION_ERROR", 400)
    return body


def _lookup(session_id: str) -> CaseSession | JSONResponse:
    try:
        return _get_registry().get(session_id)
    except KeyError:
        return _error_response(f"Session not found: {session_id}", "NOT_FOUND", 404, {"session_id": session_id})


async def _with_session(
    session_id: str,
    action: Callable[[CaseSession], Awaitable[Any]],
) -> Any:
    """Run *action* under the session's lock and return the session view (or an error)."""
    session = _lookup(session_id)
    if not isinstance(session, CaseSession):
        return session
    lock = _get_registry().lock(session_id)
    if lock.locked():
        return _error_response(
            f"Session {session_id} is busy; retry when the current request finishes",
            "SESSION_BUSY",
            409,
            {"session_id": session_id},
        )
    async with lock:
        t0 = perf_counter()
        try:
            await action(session)
        except _INTERPRETER_ERRORS as exc:
            return _interpreter_error(exc)
        logger.debug(
            "Session %s action done",
            session_id,
            extra={"session": session_id, "duration_ms": round((perf_counter() - t0) * 1000, 2)},
        )
    return session.view()


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


def create_app() -> Any:
    """Create the FastAPI application with the session API endpoints."""
    from fastapi import FastAPI
    from fastapi.responses import PlainTextResponse

    app = FastAPI(title="ddtool", docs_url=None, redoc_url=None)

    @app.get("/api/health")
    async def health() -> dict[str, Any]:
        return {"status": "ok", "version": __version__, "sessions": len(_get_registry())}

    # -- Packs -----------------------------------------------------------------

    @app.get("/api/packs")
    async def list_packs() -> Any:
        loader = _get_registry().new_loader()
        packs: list[dict[str, Any]] = []
        errors: list[dict[str, str]] = []
        for pack_id in loader.available():
            try:
                pack = await loader.load(pack_id)
            except (AcquisitionError, ValidationError) as exc:
                errors.append({"pack_id": pack_id, "message": str(exc).splitlines()[0]})
                continue
            packs.append(dict(pack.summary()))
        return {"source": loader.describe_source(), "packs": packs, "errors": errors}

    @app.get("/api/packs/{pack_id}")
    async def get_pack(pack_id: str) -> Any:
        cleaned, err = sanitize_pack_id(pack_id)
        if err:
            return _error_response(err, "VALIDATION_ERROR", 400, {"pack_id": pack_id})
        try:
            pack = await _get_registry().new_loader().load(cleaned)
        except (AcquisitionError, ValidationError) as exc:
            return _interpreter_error(exc)
        return pack.to_dict()

    # -- Sessions --------------------------------------------------------------

    @app.post("/api/sessions", status_code=201)
    async def create_session(request: Request) -> Any:
        body = await _parse_json_body(request)
        if not isinstance(body, dict):
            return body
        registry = _get_registry()
        pack_id, err = sanitize_pack_id(body.get("pack_id") or registry.default_pack)
        if err:
            return _error_response(err, "VALIDATION_ERROR", 400, {"pack_id": body.get("pack_id")})

        session = registry.create()
        try:
            await session.start_pack(pack_id)
        except _INTERPRETER_ERRORS as exc:
            registry.discard(session.session_id)
            return _interpreter_error(exc)
        logger.info("Created session %s on pack %s", session.session_id, pack_id, extra={"pack": pack_id})
        return session.view()

    @app.get("/api/sessions/{session_id}")
    async def get_session(session_id: str) -> Any:
        session = _lookup(session_id)
        if not isinstance(session, CaseSession):
            return session
        return session.view()

    @app.post("/api/sessions/{session_id}/answer")
    async def answer(session_id: str, request: Request) -> Any:
        body = await _parse_json_body(request)
        if not isinstance(body, dict):
            return body
        choice, err = sanitize_choice_key(body.get("choice"))
        if err:
            return _error_response(err, "VALIDATION_ERROR", 400, {"field": "choice"})

        async def _answer(session: CaseSession) -> None:
            session.engine.answer(choice)

        return await _with_session(session_id, _answer)

    @app.post("/api/sessions/{session_id}/continue")
    async def continue_(session_id: str) -> Any:
        async def _advance(session: CaseSession) -> None:
            await session.advance()

        return await _with_session(session_id, _advance)

    @app.post("/api/sessions/{session_id}/back")
    async def back(session_id: str) -> Any:
        async def _back(session: CaseSession) -> None:
            session.engine.back()

        return await _with_session(session_id, _back)

    @app.post("/api/sessions/{session_id}/restart")
    async def restart(session_id: str) -> Any:
        async def _restart(session: CaseSession) -> None:
            session.engine.restart()

        return await _with_session(session_id, _restart)

    @app.get("/api/sessions/{session_id}/export")
    async def export(session_id: str) -> Any:
        session = _lookup(session_id)
        if not isinstance(session, CaseSession):
            return session
        return session.store.export()

    @app.get("/api/sessions/{session_id}/summary")
    async def summary(session_id: str) -> Any:
        from ddtool.summary import generate_summary

        session = _lookup(session_id)
        if not isinstance(session, CaseSession):
            return session
        return PlainTextResponse(generate_summary(session.store.export()), media_type="text/markdown")

    return app


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(port: int = DEFAULT_PORT, *, host: str = "127.0.0.1", ddtool_dir: Path | None = None) -> None:
    """Start the HTTP session API with uvicorn."""
    import uvicorn

    global _registry

    if ddtool_dir is not None:
        setup_logging(ddtool_dir)
    _registry = SessionRegistry(ddtool_dir)
    app = create_app()

    print(f"ddtool session API: http://{host}:{port}/api/health")
    uvicorn.run(app, host=host, port=port, log_level="warning")
