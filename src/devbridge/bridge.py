"""High-level async facade over the device bridge."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from devbridge._mqtt import MqttTransport
from devbridge._sweepers import PeriodicSweeper, correlation_sweeper, presence_sweeper
from devbridge._topics import subscription
from devbridge._transport import Transport
from devbridge.config import BridgeConfig
from devbridge.correlation import CorrelationTable, PendingRequest
from devbridge.dispatcher import CommandDispatcher
from devbridge.exceptions import BridgeError, DeviceNotFoundError
from devbridge.ingestion.classifier import MessageClassifier
from devbridge.models.command import CommandResult, DeviceCommand
from devbridge.models.device import Device
from devbridge.models.messages import DeviceEvent
from devbridge.presence.store import PresenceStore

_logger = logging.getLogger(__name__)


class DeviceBridge:
    """Bridge synchronous callers to devices on a pub/sub transport.

    Usage::

        async with DeviceBridge(config) as bridge:
            devices = bridge.list_devices()
            result = await bridge.turn_on("lamp-1")

    All state is owned by the instance; pass ``store``/``table``/``transport``
    to share or replace them (tests use an in-memory transport).
    """

    def __init__(
        self,
        config: BridgeConfig | None = None,
        *,
        transport: Transport | None = None,
        store: PresenceStore | None = None,
        table: CorrelationTable | None = None,
        on_event: Callable[[DeviceEvent], None] | None = None,
    ) -> None:
        self._config = config or BridgeConfig()
        self._store = store if store is not None else PresenceStore()
        self._table = table if table is not None else CorrelationTable()
        self._transport = transport
        self._mqtt: MqttTransport | None = None
        self._classifier = MessageClassifier(
            store=self._store,
            table=self._table,
            topic_prefix=self._config.topic_prefix,
            on_event=on_event,
        )
        self._dispatcher = CommandDispatcher(
            store=self._store,
            table=self._table,
            transport=transport or _DisconnectedTransport(),
            topic_prefix=self._config.topic_prefix,
            default_timeout=self._config.command_timeout,
        )
        self._sweepers: list[PeriodicSweeper] = [
            presence_sweeper(
                self._store,
                threshold=self._config.stale_threshold,
                interval=self._config.presence_sweep_interval,
            ),
            correlation_sweeper(
                self._table,
                grace=self._config.correlation_grace,
                interval=self._config.correlation_sweep_interval,
            ),
        ]
        self._started = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> DeviceBridge:
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.stop()

    async def start(self) -> None:
        """Connect the transport, subscribe to device topics and start sweeping."""
        if self._started:
            return
        loop = asyncio.get_running_loop()
        if self._transport is None:
            self._mqtt = MqttTransport(
                loop=loop,
                config=self._config,
                on_message=self.on_message,
                logger=_logger,
            )
            self._transport = self._mqtt
            self._dispatcher.transport = self._mqtt
            await loop.run_in_executor(None, self._mqtt.start)

        self._transport.subscribe(subscription(self._config.topic_prefix))
        for sweeper in self._sweepers:
            sweeper.start()
        self._started = True
        _logger.info("Device bridge started (topic prefix %s)", self._config.topic_prefix)

    async def stop(self) -> None:
        """Stop sweeping, fail outstanding requests and disconnect."""
        for sweeper in self._sweepers:
            await sweeper.stop()

        def _stopped(entry: PendingRequest) -> BridgeError:
            return BridgeError(f"Bridge stopped before {entry.device_id} answered {entry.command}")

        failed = self._table.fail_all(_stopped)
        if failed:
            _logger.info("Failed %d pending request(s) on shutdown", failed)

        mqtt_transport = self._mqtt
        self._mqtt = None
        if mqtt_transport is not None:
            self._transport = None
            self._dispatcher.transport = _DisconnectedTransport()
            await asyncio.get_running_loop().run_in_executor(None, mqtt_transport.stop)
        self._started = False

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------

    @property
    def config(self) -> BridgeConfig:
        return self._config

    @property
    def store(self) -> PresenceStore:
        return self._store

    @property
    def table(self) -> CorrelationTable:
        return self._table

    def on_message(self, topic: str, payload: bytes | str) -> None:
        """Inbound transport callback."""
        self._classifier.on_message(topic, payload)

    # ------------------------------------------------------------------
    # Front-end contract
    # ------------------------------------------------------------------

    def list_devices(self) -> list[Device]:
        return self._store.list()

    def get_device(self, device_id: str) -> Device:
        device = self._store.get(device_id)
        if device is None:
            raise DeviceNotFoundError(device_id)
        return device

    async def dispatch(self, device_id: str, command: str, timeout: float | None = None) -> CommandResult:
        """Send *command* to *device_id* and wait for its response."""
        return await self._dispatcher.dispatch(device_id, command, timeout)

    async def turn_on(self, device_id: str, *, timeout: float | None = None) -> CommandResult:
        """Switch the device on."""
        return await self.dispatch(device_id, DeviceCommand.TURN_ON, timeout)

    async def turn_off(self, device_id: str, *, timeout: float | None = None) -> CommandResult:
        """Switch the device off."""
        return await self.dispatch(device_id, DeviceCommand.TURN_OFF, timeout)

    async def get_status(self, device_id: str, *, timeout: float | None = None) -> CommandResult:
        """Ask the device for its current state."""
        return await self.dispatch(device_id, DeviceCommand.GET_STATUS, timeout)

    async def enable_voice(self, device_id: str, *, timeout: float | None = None) -> CommandResult:
        return await self.dispatch(device_id, DeviceCommand.ENABLE_VOICE, timeout)

    async def disable_voice(self, device_id: str, *, timeout: float | None = None) -> CommandResult:
        return await self.dispatch(device_id, DeviceCommand.DISABLE_VOICE, timeout)

    def health(self) -> dict[str, Any]:
        now = datetime.now(UTC)
        devices = self._store.list()
        transport = self._transport
        connected = getattr(transport, "is_connected", transport is not None)
        return {
            "status": "healthy",
            "timestamp": now.isoformat(),
            "transport_connected": bool(connected),
            "connected_devices": sum(1 for device in devices if device.online),
            "known_devices": len(devices),
            "devices": [device.id for device in devices],
            "device_details": [
                {
                    "id": device.id,
                    "online": device.online,
                    "status": device.status,
                    "last_seen": device.last_seen.isoformat(),
                    "seconds_since_seen": round(device.seconds_since_seen(now), 1),
                }
                for device in devices
            ],
            "pending_requests": len(self._table),
        }


class _DisconnectedTransport:
    """Placeholder used before :meth:`DeviceBridge.start` connects MQTT."""

    def subscribe(self, pattern: str) -> None:
        return None

    def publish(self, topic: str, payload: str) -> bool:
        return False
