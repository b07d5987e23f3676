"""Custom exception hierarchy for devbridge."""

from __future__ import annotations

from typing import Any


class BridgeError(Exception):
    """Base exception for all devbridge errors."""


class BridgeConfigError(BridgeError):
    """Invalid or missing configuration."""


class DeviceNotFoundError(BridgeError):
    """The device identifier has never been seen by the presence store."""

    def __init__(self, device_id: str) -> None:
        self.device_id = device_id
        super().__init__(f"Device not found: {device_id}")


class DeviceOfflineError(BridgeError):
    """The device is known but its heartbeats have gone stale.

    No transport call is made when this is raised.
    """

    def __init__(self, device_id: str) -> None:
        self.device_id = device_id
        super().__init__(f"Device is offline: {device_id}")


class CommandError(BridgeError):
    """A dispatched command did not produce a successful result."""

    def __init__(
        self,
        message: str,
        *,
        device_id: str = "",
        command: str = "",
        request_id: str = "",
    ) -> None:
        self.device_id = device_id
        self.command = command
        self.request_id = request_id
        super().__init__(message)


class PublishFailureError(CommandError):
    """The transport rejected the outbound command."""


class CommandTimeoutError(CommandError):
    """No matching response arrived before the deadline.

    The device may still act on the command after the caller gave up.
    """

    def __init__(
        self,
        message: str,
        *,
        timeout: float | None = None,
        device_id: str = "",
        command: str = "",
        request_id: str = "",
    ) -> None:
        self.timeout = timeout
        super().__init__(message, device_id=device_id, command=command, request_id=request_id)


class CommandFailureError(CommandError):
    """The device answered, but reported an error."""

    def __init__(
        self,
        message: str,
        *,
        detail: str | None = None,
        response: dict[str, Any] | None = None,
        device_id: str = "",
        command: str = "",
        request_id: str = "",
    ) -> None:
        self.detail = detail
        self.response = response or {}
        super().__init__(message, device_id=device_id, command=command, request_id=request_id)


class DuplicateRequestIdError(BridgeError):
    """A request identifier was registered twice.

    Never expected in correct operation; request ids are collision-resistant.
    """

    def __init__(self, request_id: str) -> None:
        self.request_id = request_id
        super().__init__(f"Duplicate request id: {request_id}")
