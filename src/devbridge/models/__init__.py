"""Data models for device payloads and bridge state."""

from devbridge.models._base import BridgeBaseModel, extract_features
from devbridge.models.command import CommandEnvelope, CommandResponse, CommandResult, DeviceCommand
from devbridge.models.device import Device
from devbridge.models.messages import DeviceEvent, HeartbeatPayload, StatusReport

__all__ = [
    "BridgeBaseModel",
    "CommandEnvelope",
    "CommandResponse",
    "CommandResult",
    "Device",
    "DeviceCommand",
    "DeviceEvent",
    "HeartbeatPayload",
    "StatusReport",
    "extract_features",
]
