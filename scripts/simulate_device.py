#!/usr/bin/env python3
"""Simulated relay device for exercising the bridge end to end.

This script speaks the relay firmware's MQTT protocol:
1) publishes a registration message on devices/<id>/heartbeat,
2) keeps heartbeating every --interval seconds,
3) answers commands from devices/<id>/commands on devices/<id>/responses.

Use --drop-responses to watch the bridge time out, or stop the script to
watch the device go offline.
"""

from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

# Allow running from repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from devbridge import BridgeConfig, DeviceCommand  # noqa: E402
from devbridge._topics import KIND_COMMANDS, KIND_HEARTBEAT, KIND_RESPONSES, build_topic  # noqa: E402

import paho.mqtt.client as mqtt  # noqa: E402

_LOG = logging.getLogger("simulate_device")


@dataclass
class DeviceState:
    device_id: str
    name: str
    light: str = "off"
    voice_enabled: bool = True
    commands_seen: int = 0


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Simulated relay device for the device bridge.",
    )
    parser.add_argument("--device-id", default="esp32-light-controller", help="Device identifier.")
    parser.add_argument("--name", default="ESP32 Light Controller", help="Display name.")
    parser.add_argument(
        "--interval",
        type=float,
        default=30.0,
        help="Heartbeat interval in seconds.",
    )
    parser.add_argument(
        "--drop-responses",
        action="store_true",
        help="Receive commands but never answer them.",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logs.",
    )
    return parser.parse_args()


def _now_ms() -> int:
    return int(time.time() * 1000)


def _heartbeat(state: DeviceState, *, registration: bool) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "deviceId": state.device_id,
        "name": state.name,
        "ip": "127.0.0.1",
        "status": state.light,
        "timestamp": _now_ms(),
        "type": "registration" if registration else "heartbeat",
        "voice_enabled": state.voice_enabled,
    }
    if registration:
        payload["capabilities"] = ["relay_control", "voice_commands", "audio_feedback"]
    return payload


def _respond(state: DeviceState, command: str, request_id: str) -> dict[str, Any]:
    if command == DeviceCommand.GET_STATUS:
        return {
            "deviceId": state.device_id,
            "requestId": request_id,
            "status": state.light,
            "ip_address": "127.0.0.1",
            "relay_pin": 2,
            "voice_enabled": state.voice_enabled,
            "timestamp": _now_ms(),
            "type": "status",
        }

    response: dict[str, Any] = {
        "deviceId": state.device_id,
        "command": command,
        "requestId": request_id,
        "success": True,
        "timestamp": _now_ms(),
        "source": "mqtt",
    }
    if command == DeviceCommand.TURN_ON:
        state.light = "on"
    elif command == DeviceCommand.TURN_OFF:
        state.light = "off"
    elif command == DeviceCommand.ENABLE_VOICE:
        state.voice_enabled = True
    elif command == DeviceCommand.DISABLE_VOICE:
        state.voice_enabled = False
    else:
        response["success"] = False
        response["error"] = "Unknown command"
    response["status"] = state.light
    return response


def _main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    config = BridgeConfig.from_env()
    state = DeviceState(device_id=args.device_id, name=args.name)
    prefix = config.topic_prefix
    heartbeat_topic = build_topic(prefix, state.device_id, KIND_HEARTBEAT)
    commands_topic = build_topic(prefix, state.device_id, KIND_COMMANDS)
    responses_topic = build_topic(prefix, state.device_id, KIND_RESPONSES)

    should_stop = False

    def stop_handler(_signum: int, _frame: Any) -> None:
        nonlocal should_stop
        should_stop = True

    signal.signal(signal.SIGINT, stop_handler)
    signal.signal(signal.SIGTERM, stop_handler)

    client = mqtt.Client(
        callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
        client_id=f"sim-{state.device_id}",
        protocol=mqtt.MQTTv311,
    )
    client.enable_logger(_LOG)
    if config.mqtt_username:
        client.username_pw_set(config.mqtt_username, config.mqtt_password)
    if config.mqtt_tls:
        client.tls_set()

    def on_connect(
        c: mqtt.Client,
        _userdata: Any,
        _flags: mqtt.ConnectFlags,
        reason_code: mqtt.ReasonCode,
        _properties: mqtt.Properties | None,
    ) -> None:
        if reason_code.is_failure:
            print(f"[sim] MQTT connect failed: {reason_code}", file=sys.stderr)
            return
        print(f"[sim] Connected. Listening on {commands_topic}")
        c.subscribe(commands_topic, qos=0)
        c.publish(heartbeat_topic, json.dumps(_heartbeat(state, registration=True)))

    def on_message(c: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
        try:
            body = json.loads(msg.payload.decode("utf-8"))
        except (UnicodeDecodeError, ValueError):
            print(f"[sim] Ignoring non-JSON command on {msg.topic}")
            return
        command = str(body.get("command") or "")
        request_id = str(body.get("requestId") or "")
        state.commands_seen += 1
        print(f"[sim] command#{state.commands_seen} {command} requestId={request_id}")
        if args.drop_responses:
            print("[sim]   (dropping response)")
            return
        c.publish(responses_topic, json.dumps(_respond(state, command, request_id)))

    client.on_connect = on_connect
    client.on_message = on_message

    print(f"[sim] Connecting to {config.broker_host}:{config.broker_port} as {state.device_id}...")
    try:
        client.connect(config.broker_host, config.broker_port, keepalive=config.mqtt_keepalive)
        client.loop_start()

        next_heartbeat = time.time() + args.interval
        while not should_stop:
            if time.time() >= next_heartbeat:
                client.publish(heartbeat_topic, json.dumps(_heartbeat(state, registration=False)))
                _LOG.debug("Heartbeat sent (light=%s)", state.light)
                next_heartbeat = time.time() + args.interval
            time.sleep(0.2)
    except KeyboardInterrupt:
        pass
    finally:
        should_stop = True
        try:
            client.disconnect()
        finally:
            client.loop_stop()

    print(f"[sim] Stopped after {state.commands_seen} command(s); light={state.light}")
    return 0


if __name__ == "__main__":
    raise SystemExit(_main())
