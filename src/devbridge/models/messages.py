"""Device-originated messages: heartbeats, status reports and events."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field, model_validator

from devbridge.models._base import BridgeBaseModel, extract_features, is_empty, is_non_positive

# Firmware reports the same address under different keys per message type.
_ADDRESS_ALIASES: dict[str, str] = {"ip": "address", "ip_address": "address", "ipAddress": "address"}


class HeartbeatPayload(BridgeBaseModel):
    """Periodic liveness message, optionally refreshing device metadata.

    Registration messages share this shape (``type="registration"``).
    Every metadata field is optional: a missing field means "no update".
    """

    _KEY_ALIASES: ClassVar[dict[str, str]] = _ADDRESS_ALIASES

    _SENTINEL_RULES: ClassVar[dict[str, Callable[..., bool]]] = {
        "capabilities": is_empty,
        "port": is_non_positive,
    }

    device_id: str | None = None
    name: str | None = None
    address: str | None = None
    port: int | None = None
    status: str | None = None
    type: str = "heartbeat"
    timestamp: int | float | None = None
    capabilities: frozenset[str] | None = None
    features: dict[str, bool] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _collect_features(cls, values: Any) -> Any:
        if not isinstance(values, dict) or "features" in values:
            return values
        features = extract_features(values)
        if not features:
            return values
        return {**values, "features": features}

    @property
    def is_registration(self) -> bool:
        return self.type == "registration"


class StatusReport(BridgeBaseModel):
    """Unsolicited status update published on the status topic."""

    _KEY_ALIASES: ClassVar[dict[str, str]] = _ADDRESS_ALIASES

    status: str | None = None
    address: str | None = None
    timestamp: int | float | None = None
    features: dict[str, bool] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _collect_features(cls, values: Any) -> Any:
        if not isinstance(values, dict) or "features" in values:
            return values
        features = extract_features(values)
        if not features:
            return values
        return {**values, "features": features}


class DeviceEvent(BaseModel):
    """Out-of-band device notification (e.g. a voice trigger)."""

    model_config = ConfigDict(frozen=True)

    device_id: str
    kind: str
    topic: str
    name: str | None = None
    payload: dict[str, Any] = Field(default_factory=dict)
    received_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def from_payload(cls, device_id: str, kind: str, topic: str, payload: dict[str, Any]) -> DeviceEvent:
        name: str | None = None
        for key in ("event", "voiceCommand", "action"):
            candidate = payload.get(key)
            if isinstance(candidate, str) and candidate.strip():
                name = candidate.strip()
                break
        return cls(device_id=device_id, kind=kind, topic=topic, name=name, payload=dict(payload))
