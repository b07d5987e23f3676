"""Threaded paho-mqtt transport that delivers messages onto an asyncio loop."""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, cast

import paho.mqtt.client as mqtt

from devbridge._transport import MessageCallback
from devbridge.config import BridgeConfig


class MqttTransport:
    """MQTT implementation of :class:`devbridge._transport.Transport`.

    paho's network thread owns the socket and reconnects on its own;
    inbound messages are handed to *on_message* on the asyncio loop via
    ``call_soon_threadsafe``. Subscriptions are re-issued on every connect.
    """

    def __init__(
        self,
        *,
        loop: asyncio.AbstractEventLoop,
        config: BridgeConfig,
        on_message: MessageCallback,
        logger: logging.Logger | None = None,
    ) -> None:
        self._loop = loop
        self._config = config
        self._on_message = on_message
        self._logger = logger or logging.getLogger(__name__)
        self._client: mqtt.Client | None = None
        self._running = False
        self._connected = threading.Event()
        self._subscriptions: set[str] = set()
        self._lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        """Whether the MQTT network loop is active."""
        return self._running

    @property
    def is_connected(self) -> bool:
        return self._connected.is_set()

    def subscribe(self, pattern: str) -> None:
        with self._lock:
            self._subscriptions.add(pattern)
            client = self._client
        if client is not None and self.is_connected:
            self._logger.debug("MQTT subscribing topic=%s", pattern)
            client.subscribe(pattern, qos=self._config.mqtt_qos)

    def publish(self, topic: str, payload: str) -> bool:
        client = self._client
        if client is None or not self.is_connected:
            self._logger.debug("MQTT publish to %s refused: not connected", topic)
            return False
        info = client.publish(topic, payload, qos=self._config.mqtt_qos)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            self._logger.debug("MQTT publish to %s failed rc=%s", topic, info.rc)
            return False
        return True

    def start(self) -> None:
        """Connect to the broker and start the network loop."""
        self.stop()
        config = self._config
        self._logger.debug(
            "MQTT transport start requested host=%s port=%s client_id=%s",
            config.broker_host,
            config.broker_port,
            config.mqtt_client_id,
        )

        client = mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            client_id=config.mqtt_client_id,
            protocol=mqtt.MQTTv311,
        )
        client.enable_logger(self._logger)
        if config.mqtt_username:
            client.username_pw_set(config.mqtt_username, config.mqtt_password)
        if config.mqtt_tls:
            client.tls_set()
        client.reconnect_delay_set(min_delay=1, max_delay=30)

        def on_connect(
            c: mqtt.Client,
            _userdata: Any,
            _flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if reason_code.is_failure:
                self._logger.warning("MQTT connect failed: %s", reason_code)
                return
            self._logger.info("Connected to MQTT broker %s:%s", config.broker_host, config.broker_port)
            self._connected.set()
            with self._lock:
                patterns = sorted(self._subscriptions)
            for pattern in patterns:
                self._logger.debug("MQTT subscribing topic=%s", pattern)
                c.subscribe(pattern, qos=config.mqtt_qos)

        def on_message(_c: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
            self._logger.debug("Received PUBLISH topic=%s bytes=%d", msg.topic, len(msg.payload))
            try:
                self._loop.call_soon_threadsafe(self._on_message, msg.topic, bytes(msg.payload))
            except RuntimeError:
                # Loop already closed during shutdown.
                self._logger.debug("Dropping MQTT message after loop shutdown", exc_info=True)

        def on_disconnect(
            _client: mqtt.Client,
            _userdata: Any,
            _disconnect_flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            self._connected.clear()
            if self._running:
                self._logger.warning("MQTT disconnected: %s (reconnecting)", reason_code)

        client.on_connect = on_connect
        client.on_message = on_message
        client.on_disconnect = on_disconnect

        client.connect_async(config.broker_host, config.broker_port, keepalive=config.mqtt_keepalive)
        client.loop_start()

        self._client = client
        self._running = True
        self._logger.debug("MQTT network loop started")

    def stop(self) -> None:
        """Stop and disconnect the current MQTT client if running."""
        client = self._client
        self._client = None
        was_running = self._running
        self._running = False
        self._connected.clear()

        if client is None:
            return
        try:
            if was_running:
                self._logger.debug("MQTT disconnect requested")
                client.disconnect()
        finally:
            client.loop_stop()
            self._logger.debug("MQTT network loop stopped")
