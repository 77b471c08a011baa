"""Tests for the pack endpoints of the HTTP API."""

from __future__ import annotations

import json
from pathlib import Path

from httpx import AsyncClient

from ddtool import __version__
from ddtool.core import DDTOOL_DIR_NAME
from ddtool.types import ErrorBody, ErrorResponse


async def test_health(client: AsyncClient) -> None:
    resp = await client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "version": __version__, "sessions": 0}


class TestListPacks:
    async def test_lists_project_packs(self, client: AsyncClient) -> None:
        data = (await client.get("/api/packs")).json()
        assert data["source"].endswith("packs")
        assert [p["pack_id"] for p in data["packs"]] == ["figure1", "figure2"]
        assert data["errors"] == []

    async def test_broken_pack_reported_separately(self, client: AsyncClient, ddtool_project: Path) -> None:
        packs_dir = ddtool_project / DDTOOL_DIR_NAME / "packs"
        (packs_dir / "broken.json").write_text(json.dumps({"packId": "broken", "entry": "x", "nodes": {}}))
        data = (await client.get("/api/packs")).json()
        assert [p["pack_id"] for p in data["packs"]] == ["figure1", "figure2"]
        assert data["errors"][0]["pack_id"] == "broken"
        assert data["errors"][0]["message"].startswith("Invalid decision pack format")


class TestGetPack:
    async def test_canonical_pack(self, client: AsyncClient) -> None:
        resp = await client.get("/api/packs/figure2")
        assert resp.status_code == 200
        data = resp.json()
        assert data["title"] == "Figure 2 - Failure Type Analysis"
        assert data["nodes"]["F2_START"]["next"] == "F2_Q1"

    async def test_unknown_pack(self, client: AsyncClient) -> None:
        resp = await client.get("/api/packs/figure9")
        assert resp.status_code == 404
        details = resp.json()["error"]["details"]
        assert "ddtool init" in details["hint"]

    async def test_invalid_pack_id(self, client: AsyncClient) -> None:
        resp = await client.get("/api/packs/bad..id")
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"

    async def test_malformed_pack(self, client: AsyncClient, ddtool_project: Path) -> None:
        packs_dir = ddtool_project / DDTOOL_DIR_NAME / "packs"
        (packs_dir / "bad.json").write_text(
            json.dumps({"packId": "bad", "entry": "q", "nodes": {"q": {"type": "decision", "choices": {"y": None}}}})
        )
        resp = await client.get("/api/packs/bad")
        assert resp.status_code == 400
        error = resp.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert error["details"]["errors"] == ["decision node 'q' must have at least 2 choices (has 1)"]


async def test_error_envelope_shape(client: AsyncClient) -> None:
    resp = await client.get("/api/packs/figure9")
    body = resp.json()
    assert set(body) == set(ErrorResponse.__required_keys__)
    assert set(body["error"]) == set(ErrorBody.__required_keys__)
    assert body["error"]["code"] == "NOT_FOUND"
