"""devbridge - Bridge synchronous device control calls onto MQTT devices."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("devbridge")
except PackageNotFoundError:
    __version__ = "0+local"
from devbridge.bridge import DeviceBridge
from devbridge.config import BridgeConfig
from devbridge.correlation import CompletionHandle, CorrelationTable, Outcome, PendingRequest
from devbridge.dispatcher import CommandDispatcher
from devbridge.exceptions import (
    BridgeConfigError,
    BridgeError,
    CommandError,
    CommandFailureError,
    CommandTimeoutError,
    DeviceNotFoundError,
    DeviceOfflineError,
    DuplicateRequestIdError,
    PublishFailureError,
)
from devbridge.ingestion.classifier import MessageClassifier
from devbridge.models import (
    CommandEnvelope,
    CommandResponse,
    CommandResult,
    Device,
    DeviceCommand,
    DeviceEvent,
    HeartbeatPayload,
    StatusReport,
)
from devbridge.presence.store import PresenceStore

__all__ = [
    "__version__",
    "BridgeConfig",
    "BridgeConfigError",
    "BridgeError",
    "CommandDispatcher",
    "CommandEnvelope",
    "CommandError",
    "CommandFailureError",
    "CommandResponse",
    "CommandResult",
    "CommandTimeoutError",
    "CompletionHandle",
    "CorrelationTable",
    "Device",
    "DeviceBridge",
    "DeviceCommand",
    "DeviceEvent",
    "DeviceNotFoundError",
    "DeviceOfflineError",
    "DuplicateRequestIdError",
    "HeartbeatPayload",
    "MessageClassifier",
    "Outcome",
    "PendingRequest",
    "PresenceStore",
    "PublishFailureError",
    "StatusReport",
]
