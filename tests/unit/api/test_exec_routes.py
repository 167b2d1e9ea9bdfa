"""Tests API: exécution directe (`/exec`, `/exec/stream`) et `/health`."""

from __future__ import annotations

from typing import AsyncGenerator

import httpx
import pytest
import pytest_asyncio

from opencode_mcp.config.settings import BridgeSettings
from opencode_mcp.main import create_app


@pytest_asyncio.fixture
async def async_client(opencode_stub) -> AsyncGenerator[httpx.AsyncClient, None]:
    app = create_app(BridgeSettings(target=opencode_stub, timeout_s=10))
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.mark.unit
@pytest.mark.asyncio
async def test_health(async_client: httpx.AsyncClient) -> None:
    resp = await async_client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


@pytest.mark.unit
@pytest.mark.asyncio
async def test_exec_success(async_client: httpx.AsyncClient) -> None:
    resp = await async_client.post("/exec", json={"args": ["models"]})
    assert resp.status_code == 200
    assert resp.json() == {"ok": True, "stdout": "modelA\nmodelB\n", "stderr": "", "exitCode": 0}


@pytest.mark.unit
@pytest.mark.asyncio
async def test_exec_failure_reports_stderr(async_client: httpx.AsyncClient) -> None:
    body = (await async_client.post("/exec", json={"args": ["fail"]})).json()
    assert body["ok"] is False
    assert body["exitCode"] == 2
    assert body["stderr"] == "boom\n"
    assert body["error"] == "command failed: boom"


@pytest.mark.unit
@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload,error",
    [
        ({"args": []}, "missing args"),
        ({}, "missing args"),
        ({"args": ["models"], "cwd": "/definitely/not/here"}, "invalid cwd: /definitely/not/here: no such file or directory"),
    ],
)
async def test_exec_bad_requests(async_client: httpx.AsyncClient, payload: dict, error: str) -> None:
    resp = await async_client.post("/exec", json=payload)
    assert resp.status_code == 400
    assert resp.json() == {"ok": False, "error": error}


@pytest.mark.unit
@pytest.mark.asyncio
async def test_exec_invalid_json(async_client: httpx.AsyncClient) -> None:
    resp = await async_client.post("/exec", content=b"nope", headers={"Content-Type": "application/json"})
    assert resp.status_code == 400


@pytest.mark.unit
@pytest.mark.asyncio
async def test_exec_stream_frames_each_line(async_client: httpx.AsyncClient) -> None:
    resp = await async_client.post("/exec/stream", json={"args": ["models"]})
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/event-stream")
    assert resp.text == "data: modelA\n\ndata: modelB\n\n"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_exec_launch_failure_is_500(tmp_path) -> None:
    app = create_app(BridgeSettings(target=str(tmp_path / "absent")))
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        resp = await client.post("/exec", json={"args": ["models"]})
    assert resp.status_code == 500
    assert resp.json()["ok"] is False
