"""Device topic namespace: ``{prefix}/{deviceId}/{kind}``."""

from __future__ import annotations

from dataclasses import dataclass

import paho.mqtt.client as mqtt

KIND_HEARTBEAT = "heartbeat"
KIND_STATUS = "status"
KIND_RESPONSES = "responses"
KIND_EVENTS = "events"
# Voice events published by the relay firmware.
KIND_AUDIO = "audio"
KIND_COMMANDS = "commands"

EVENT_KINDS = frozenset({KIND_EVENTS, KIND_AUDIO})


@dataclass(frozen=True)
class ParsedTopic:
    """Device id and message kind recovered from an inbound topic."""

    device_id: str
    kind: str


def build_topic(prefix: str, device_id: str, kind: str) -> str:
    if not device_id or "/" in device_id:
        raise ValueError(f"Invalid device id for topic: {device_id!r}")
    return f"{prefix}/{device_id}/{kind}"


def command_topic(prefix: str, device_id: str) -> str:
    """Topic the bridge publishes commands for *device_id* on."""
    return build_topic(prefix, device_id, KIND_COMMANDS)


def subscription(prefix: str) -> str:
    """Single-level wildcard pattern covering every device and kind."""
    return f"{prefix}/+/+"


def topic_matches(pattern: str, topic: str) -> bool:
    return bool(mqtt.topic_matches_sub(pattern, topic))


def parse_topic(prefix: str, topic: str) -> ParsedTopic | None:
    """Split *topic* into device id and kind, or ``None`` if it is not ours."""
    parts = topic.split("/")
    prefix_parts = prefix.split("/")
    if len(parts) != len(prefix_parts) + 2:
        return None
    if parts[: len(prefix_parts)] != prefix_parts:
        return None
    device_id, kind = parts[-2], parts[-1]
    if not device_id or not kind:
        return None
    return ParsedTopic(device_id=device_id, kind=kind)
