"""Fixtures for HTTP session API tests (FastAPI)."""

from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from pathlib import Path
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient

import ddtool.server as server_module
from ddtool.core import DDTOOL_DIR_NAME, install_builtin_packs
from ddtool.loader import PackLoader
from ddtool.server import SessionRegistry, create_app

# A pack whose only node hands off to a pack nobody serves
ORPHAN_HANDOFF: dict[str, Any] = {
    "packId": "orphan",
    "entryNodeId": "go",
    "nodes": {"go": {"type": "handoff", "targetPackId": "figure7"}},
}


@pytest.fixture
def registry(ddtool_project: Path) -> SessionRegistry:
    """Registry reading the project's installed packs."""
    ddtool_dir = ddtool_project / DDTOOL_DIR_NAME
    install_builtin_packs(ddtool_dir)
    return SessionRegistry(ddtool_dir)


@pytest.fixture
async def client(registry: SessionRegistry) -> AsyncIterator[AsyncClient]:
    """Test client backed by a project-scoped registry."""
    server_module._registry = registry
    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    server_module._registry = None


@pytest.fixture
async def orphan_client() -> AsyncIterator[AsyncClient]:
    """Test client whose loader only knows the built-ins plus a pack with a dangling handoff."""
    from ddtool.packs_data import BUILT_IN_PACKS

    builtins = {**BUILT_IN_PACKS, "orphan": ORPHAN_HANDOFF}
    server_module._registry = SessionRegistry(loader_factory=lambda: PackLoader(builtins=builtins))
    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    server_module._registry = None


@pytest.fixture
def start_session(client: AsyncClient) -> Callable[..., Awaitable[dict[str, Any]]]:
    """POST /api/sessions and return the created session view."""

    async def _start(pack_id: str | None = None) -> dict[str, Any]:
        body = {"pack_id": pack_id} if pack_id else {}
        resp = await client.post("/api/sessions", json=body)
        assert resp.status_code == 201, resp.text
        return resp.json()

    return _start
