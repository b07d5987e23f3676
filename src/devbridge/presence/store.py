"""In-memory presence store.

This is the only component allowed to mutate device records.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping
from datetime import UTC, datetime, timedelta
from typing import Any

from devbridge.models.device import Device
from devbridge.models.messages import HeartbeatPayload, StatusReport
from devbridge.presence.policy import is_stale

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _sparse_patch(heartbeat: HeartbeatPayload) -> dict[str, Any]:
    """Fields the heartbeat actually carries; missing ones must not erase known data."""
    patch: dict[str, Any] = {}
    for field_name in ("name", "address", "port", "status", "capabilities"):
        value = getattr(heartbeat, field_name)
        if value is not None:
            patch[field_name] = value
    return patch


class PresenceStore:
    """Latest known state of every device, keyed by device id.

    Records are never removed: a device that stops sending heartbeats is
    demoted to offline but keeps its metadata.
    """

    def __init__(self, *, clock: Callable[[], datetime] = _utcnow) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        # dicts preserve insertion order, which list() relies on.
        self._devices: dict[str, Device] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._devices)

    def __contains__(self, device_id: object) -> bool:
        with self._lock:
            return device_id in self._devices

    def upsert(self, device_id: str, heartbeat: HeartbeatPayload | Mapping[str, Any]) -> Device:
        """Create or refresh a device from a heartbeat/registration payload."""
        device_id = device_id.strip() if isinstance(device_id, str) else ""
        if not device_id:
            raise ValueError("device_id must be non-empty")
        if not isinstance(heartbeat, HeartbeatPayload):
            heartbeat = HeartbeatPayload.model_validate(dict(heartbeat))

        patch = _sparse_patch(heartbeat)
        now = self._clock()

        with self._lock:
            previous = self._devices.get(device_id)
            if previous is None:
                device = Device(
                    id=device_id,
                    online=True,
                    last_seen=now,
                    registered_at=now,
                    features=dict(heartbeat.features),
                    **patch,
                )
            else:
                device = previous.model_copy(
                    update={
                        **patch,
                        "online": True,
                        "last_seen": now,
                        "features": {**previous.features, **heartbeat.features},
                    }
                )
            self._devices[device_id] = device

        if previous is None:
            _logger.info(
                "Device registered: %s name=%s address=%s",
                device_id,
                device.name,
                device.address,
            )
        elif not previous.online:
            _logger.info("Device %s is back online (was offline)", device_id)
        else:
            _logger.debug("Heartbeat received from %s", device_id)
        return device

    def record_status(self, device_id: str, status: str | StatusReport) -> Device | None:
        """Record a device-reported status; unknown devices are dropped."""
        report = status if isinstance(status, StatusReport) else StatusReport(status=status)
        patch: dict[str, Any] = {}
        if report.status is not None:
            patch["status"] = report.status
        if report.address is not None:
            patch["address"] = report.address

        with self._lock:
            previous = self._devices.get(device_id)
            if previous is None:
                device = None
            else:
                if report.features:
                    patch["features"] = {**previous.features, **report.features}
                device = previous.model_copy(update=patch)
                self._devices[device_id] = device

        if device is None:
            _logger.debug("Dropping status for unregistered device %s", device_id)
        else:
            _logger.debug("Status for %s: %s", device_id, device.status)
        return device

    def touch(self, device_id: str) -> Device | None:
        """Refresh last-seen for a device that proved it is alive."""
        now = self._clock()
        was_online = False
        with self._lock:
            previous = self._devices.get(device_id)
            if previous is None:
                device = None
            else:
                was_online = previous.online
                device = previous.model_copy(update={"online": True, "last_seen": now})
                self._devices[device_id] = device

        if device is None:
            _logger.debug("Dropping activity for unregistered device %s", device_id)
        elif not was_online:
            _logger.info("Device %s is back online (was offline)", device_id)
        return device

    def get(self, device_id: str) -> Device | None:
        with self._lock:
            return self._devices.get(device_id)

    def list(self) -> list[Device]:
        """Snapshot of every device, in registration order."""
        with self._lock:
            return list(self._devices.values())

    def sweep_stale(self, now: datetime, threshold: float | timedelta) -> int:
        """Mark online devices offline when their last heartbeat is too old.

        Returns the number of devices demoted by this call.
        """
        demoted: list[Device] = []
        with self._lock:
            for device_id, device in self._devices.items():
                if not device.online or not is_stale(now, device.last_seen, threshold):
                    continue
                self._devices[device_id] = device.model_copy(update={"online": False})
                demoted.append(device)

        for device in demoted:
            _logger.warning(
                "Device %s marked as offline (no heartbeat for %ds)",
                device.id,
                round(device.seconds_since_seen(now)),
            )
        return len(demoted)
