from __future__ import annotations

import asyncio
import json
from typing import Any

import pytest
from aiohttp.test_utils import TestClient, TestServer

from devbridge import BridgeConfig, DeviceBridge
from devbridge.exceptions import BridgeError, CommandFailureError, CommandTimeoutError
from devbridge.server import create_app, error_response


class _Responder:
    """Transport that answers each command like the relay firmware would."""

    def __init__(self) -> None:
        self.bridge: DeviceBridge | None = None
        self.reply: dict[str, Any] | None = {"success": True, "status": "on"}
        self.published: list[tuple[str, dict[str, Any]]] = []

    def subscribe(self, pattern: str) -> None:
        return None

    def publish(self, topic: str, payload: str) -> bool:
        envelope = json.loads(payload)
        self.published.append((topic, envelope))
        if self.reply is not None and self.bridge is not None:
            device_id = topic.split("/")[1]
            body = {"requestId": envelope["requestId"], "command": envelope["command"], **self.reply}
            asyncio.get_running_loop().call_soon(
                self.bridge.on_message, f"devices/{device_id}/responses", json.dumps(body).encode()
            )
        return True


@pytest.fixture
def responder() -> _Responder:
    return _Responder()


@pytest.fixture
def bridge(store, responder: _Responder) -> DeviceBridge:
    bridge = DeviceBridge(BridgeConfig(command_timeout=0.2), transport=responder, store=store)
    responder.bridge = bridge
    return bridge


def _heartbeat(bridge: DeviceBridge, device_id: str, **fields: Any) -> None:
    bridge.on_message(f"devices/{device_id}/heartbeat", json.dumps(fields).encode())


@pytest.mark.asyncio
async def test_index_and_health(bridge: DeviceBridge) -> None:
    _heartbeat(bridge, "lamp-1", name="Lamp")
    async with TestClient(TestServer(create_app(bridge))) as client:
        index = await client.get("/")
        assert index.status == 200
        assert "endpoints" in await index.json()

        health = await client.get("/health")
        body = await health.json()
        assert body["status"] == "healthy"
        assert body["devices"] == ["lamp-1"]


@pytest.mark.asyncio
async def test_list_and_get_devices(bridge: DeviceBridge) -> None:
    _heartbeat(bridge, "lamp-1", name="Lamp", status="off", capabilities=["relay_control"])
    async with TestClient(TestServer(create_app(bridge))) as client:
        listing = await (await client.get("/api/devices")).json()
        assert [device["id"] for device in listing["devices"]] == ["lamp-1"]
        assert listing["devices"][0]["capabilities"] == ["relay_control"]

        found = await client.get("/api/devices/lamp-1")
        assert found.status == 200
        assert (await found.json())["device"]["name"] == "Lamp"

        missing = await client.get("/api/devices/ghost")
        assert missing.status == 404
        assert (await missing.json())["kind"] == "device_not_found"


@pytest.mark.asyncio
async def test_turn_on_returns_result(bridge: DeviceBridge, responder: _Responder) -> None:
    _heartbeat(bridge, "lamp-1", status="off")
    async with TestClient(TestServer(create_app(bridge))) as client:
        resp = await client.post("/api/devices/lamp-1/on")
        body = await resp.json()

    assert resp.status == 200
    assert body["result"]["command"] == "turn_on"
    assert body["result"]["status"] == "on"
    assert body["device"]["status"] == "on"
    assert responder.published[0][0] == "devices/lamp-1/commands"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("method", "path", "command"),
    [
        ("GET", "/api/devices/lamp-1/status", "get_status"),
        ("POST", "/api/devices/lamp-1/off", "turn_off"),
        ("POST", "/api/devices/lamp-1/voice/enable", "enable_voice"),
        ("POST", "/api/devices/lamp-1/voice/disable", "disable_voice"),
        ("POST", "/api/devices/lamp-1/commands/blink", "blink"),
    ],
)
async def test_command_routes(bridge: DeviceBridge, responder: _Responder, method: str, path: str, command: str) -> None:
    _heartbeat(bridge, "lamp-1")
    async with TestClient(TestServer(create_app(bridge))) as client:
        resp = await client.request(method, path)

    assert resp.status == 200
    assert responder.published[0][1]["command"] == command


@pytest.mark.asyncio
async def test_unknown_device_command_is_404(bridge: DeviceBridge, responder: _Responder) -> None:
    async with TestClient(TestServer(create_app(bridge))) as client:
        resp = await client.post("/api/devices/ghost/on")

    assert resp.status == 404
    assert responder.published == []


@pytest.mark.asyncio
async def test_offline_device_is_503(bridge: DeviceBridge, responder: _Responder, store, clock) -> None:
    _heartbeat(bridge, "lamp-1")
    clock.advance(120)
    store.sweep_stale(clock.now, 60)
    async with TestClient(TestServer(create_app(bridge))) as client:
        resp = await client.post("/api/devices/lamp-1/on")

    assert resp.status == 503
    assert (await resp.json())["kind"] == "device_offline"
    assert responder.published == []


@pytest.mark.asyncio
async def test_silent_device_is_504(bridge: DeviceBridge, responder: _Responder) -> None:
    responder.reply = None
    _heartbeat(bridge, "lamp-1")
    async with TestClient(TestServer(create_app(bridge))) as client:
        resp = await client.post("/api/devices/lamp-1/on?timeout=0.05")

    assert resp.status == 504
    assert (await resp.json())["kind"] == "timeout"


@pytest.mark.asyncio
async def test_device_error_is_502_with_details(bridge: DeviceBridge, responder: _Responder) -> None:
    responder.reply = {"success": False, "error": "Unknown command"}
    _heartbeat(bridge, "lamp-1")
    async with TestClient(TestServer(create_app(bridge))) as client:
        resp = await client.post("/api/devices/lamp-1/commands/dance")
        body = await resp.json()

    assert resp.status == 502
    assert body["kind"] == "command_failure"
    assert body["details"] == "Unknown command"


@pytest.mark.asyncio
@pytest.mark.parametrize("timeout", ["abc", "0", "-1", "inf", "nan", "-inf"])
async def test_invalid_timeout_is_400(bridge: DeviceBridge, responder: _Responder, timeout: str) -> None:
    _heartbeat(bridge, "lamp-1")
    async with TestClient(TestServer(create_app(bridge))) as client:
        resp = await client.post(f"/api/devices/lamp-1/on?timeout={timeout}")

    assert resp.status == 400
    assert responder.published == []


@pytest.mark.asyncio
async def test_blank_command_is_400(bridge: DeviceBridge, responder: _Responder) -> None:
    _heartbeat(bridge, "lamp-1")
    async with TestClient(TestServer(create_app(bridge))) as client:
        resp = await client.post("/api/devices/lamp-1/commands/%20")
        body = await resp.json()

    assert resp.status == 400
    assert body["kind"] == "invalid_request"
    assert responder.published == []


def test_error_response_mapping() -> None:
    assert error_response(CommandTimeoutError("late", timeout=1.0)).status == 504
    assert error_response(CommandFailureError("no", detail="x", response={})).status == 502
    assert error_response(BridgeError("other")).status == 500
