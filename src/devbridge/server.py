"""HTTP front end over :class:`devbridge.bridge.DeviceBridge`."""

from __future__ import annotations

import logging
import math
from collections.abc import Awaitable, Callable
from http import HTTPStatus
from typing import Any

from aiohttp import web

from devbridge import __version__
from devbridge.bridge import DeviceBridge
from devbridge.exceptions import (
    BridgeError,
    CommandFailureError,
    CommandTimeoutError,
    DeviceNotFoundError,
    DeviceOfflineError,
    PublishFailureError,
)
from devbridge.models.command import CommandResult, DeviceCommand

_logger = logging.getLogger(__name__)

BRIDGE_KEY: web.AppKey[DeviceBridge] = web.AppKey("bridge", DeviceBridge)

_ENDPOINTS = [
    "GET /api/devices - List all devices",
    "GET /api/devices/{device_id} - Get a device record",
    "GET /api/devices/{device_id}/status - Query device status",
    "POST /api/devices/{device_id}/on - Turn device on",
    "POST /api/devices/{device_id}/off - Turn device off",
    "POST /api/devices/{device_id}/voice/enable - Enable voice control",
    "POST /api/devices/{device_id}/voice/disable - Disable voice control",
    "POST /api/devices/{device_id}/commands/{command} - Send any command",
    "GET /health - Health check",
]

# Most specific first: subclasses before their bases.
_ERROR_STATUS: list[tuple[type[BridgeError], HTTPStatus, str]] = [
    (DeviceNotFoundError, HTTPStatus.NOT_FOUND, "device_not_found"),
    (DeviceOfflineError, HTTPStatus.SERVICE_UNAVAILABLE, "device_offline"),
    (PublishFailureError, HTTPStatus.BAD_GATEWAY, "publish_failure"),
    (CommandTimeoutError, HTTPStatus.GATEWAY_TIMEOUT, "timeout"),
    (CommandFailureError, HTTPStatus.BAD_GATEWAY, "command_failure"),
]


def _json(data: Any, status: HTTPStatus = HTTPStatus.OK) -> web.Response:
    return web.json_response(data, status=int(status))


def error_response(exc: BridgeError) -> web.Response:
    """Map a bridge error onto an HTTP status and JSON body."""
    for error_type, status, kind in _ERROR_STATUS:
        if isinstance(exc, error_type):
            break
    else:
        status, kind = HTTPStatus.INTERNAL_SERVER_ERROR, "bridge_error"

    body: dict[str, Any] = {"error": str(exc), "kind": kind}
    if isinstance(exc, CommandFailureError) and exc.detail:
        body["details"] = exc.detail
    return _json(body, status)


def _timeout_param(request: web.Request) -> float | None:
    raw = request.query.get("timeout")
    if raw is None or not raw.strip():
        return None
    try:
        value = float(raw)
    except ValueError:
        raise web.HTTPBadRequest(text=f"timeout must be a number of seconds (got {raw!r})") from None
    if not math.isfinite(value) or value <= 0:
        raise web.HTTPBadRequest(text="timeout must be a positive, finite number of seconds")
    return value


def _result_body(bridge: DeviceBridge, result: CommandResult) -> dict[str, Any]:
    device = bridge.store.get(result.device_id)
    return {
        "device": device.to_public() if device is not None else {"id": result.device_id},
        "result": result.model_dump(mode="json"),
    }


async def _run_command(request: web.Request, command: str) -> web.Response:
    bridge = request.app[BRIDGE_KEY]
    device_id = request.match_info["device_id"]
    timeout = _timeout_param(request)
    try:
        result = await bridge.dispatch(device_id, command, timeout)
    except BridgeError as exc:
        _logger.debug("Command %s to %s failed: %s", command, device_id, exc)
        return error_response(exc)
    except ValueError as exc:
        return _json({"error": str(exc), "kind": "invalid_request"}, HTTPStatus.BAD_REQUEST)
    return _json(_result_body(bridge, result))


def _command_handler(command: str) -> Callable[[web.Request], Awaitable[web.Response]]:
    async def handler(request: web.Request) -> web.Response:
        return await _run_command(request, command)

    return handler


async def index(_request: web.Request) -> web.Response:
    return _json({"message": "Device Bridge Server", "version": __version__, "endpoints": _ENDPOINTS})


async def health(request: web.Request) -> web.Response:
    return _json(request.app[BRIDGE_KEY].health())


async def list_devices(request: web.Request) -> web.Response:
    devices = request.app[BRIDGE_KEY].list_devices()
    return _json({"devices": [device.to_public() for device in devices]})


async def get_device(request: web.Request) -> web.Response:
    try:
        device = request.app[BRIDGE_KEY].get_device(request.match_info["device_id"])
    except DeviceNotFoundError as exc:
        return error_response(exc)
    return _json({"device": device.to_public()})


async def send_command(request: web.Request) -> web.Response:
    return await _run_command(request, request.match_info["command"])


def create_app(bridge: DeviceBridge) -> web.Application:
    """Build the aiohttp application serving *bridge*."""
    app = web.Application()
    app[BRIDGE_KEY] = bridge
    app.router.add_get("/", index)
    app.router.add_get("/health", health)
    app.router.add_get("/api/devices", list_devices)
    app.router.add_get("/api/devices/{device_id}", get_device)
    app.router.add_get("/api/devices/{device_id}/status", _command_handler(DeviceCommand.GET_STATUS))
    app.router.add_post("/api/devices/{device_id}/on", _command_handler(DeviceCommand.TURN_ON))
    app.router.add_post("/api/devices/{device_id}/off", _command_handler(DeviceCommand.TURN_OFF))
    app.router.add_post("/api/devices/{device_id}/voice/enable", _command_handler(DeviceCommand.ENABLE_VOICE))
    app.router.add_post("/api/devices/{device_id}/voice/disable", _command_handler(DeviceCommand.DISABLE_VOICE))
    app.router.add_post("/api/devices/{device_id}/commands/{command}", send_command)
    return app
