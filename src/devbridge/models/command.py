"""Command envelopes, device responses and dispatch results."""

from __future__ import annotations

import enum
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from devbridge.models._base import BridgeBaseModel

# Keys every response carries; anything else is command-specific.
_RESPONSE_ENVELOPE_KEYS = frozenset(
    {"requestId", "request_id", "deviceId", "device_id", "command", "status", "error", "success", "timestamp", "type"}
)


class DeviceCommand(enum.StrEnum):
    """Command names understood by the relay firmware.

    Dispatch accepts any command string; these are the ones the bridge
    exposes shortcuts and HTTP routes for.
    """

    TURN_ON = "turn_on"
    TURN_OFF = "turn_off"
    GET_STATUS = "get_status"
    ENABLE_VOICE = "enable_voice"
    DISABLE_VOICE = "disable_voice"


class CommandEnvelope(BaseModel):
    """Outbound command, published as ``{command, requestId, timestamp}``."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    command: str
    request_id: str
    timestamp: int
    """Dispatch time in epoch milliseconds."""

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class CommandResponse(BridgeBaseModel):
    """Command acknowledgement published on the responses topic.

    Absence of ``error`` together with ``success`` not being ``False``
    denotes success.
    """

    request_id: str | None = None
    command: str | None = None
    status: str | None = None
    error: str | None = None
    success: bool | None = None
    timestamp: int | float | None = None
    source: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.success is not False

    def extra_fields(self) -> dict[str, Any]:
        """Command-specific fields beyond the acknowledgement envelope."""
        return {key: value for key, value in self.raw.items() if key not in _RESPONSE_ENVELOPE_KEYS}


class CommandResult(BaseModel):
    """Successful outcome of a dispatch."""

    model_config = ConfigDict(frozen=True)

    device_id: str
    request_id: str
    command: str
    status: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)
    received_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
