from __future__ import annotations

import asyncio
from types import SimpleNamespace
from typing import Any

import paho.mqtt.client as mqtt
import pytest

from devbridge._mqtt import MqttTransport
from devbridge.config import BridgeConfig


class _FakeClient:
    """Stands in for ``paho.mqtt.client.Client`` without a network."""

    instances: list[_FakeClient] = []

    def __init__(self, **kwargs: Any) -> None:
        self.kwargs = kwargs
        self.subscribed: list[tuple[str, int]] = []
        self.published: list[tuple[str, str, int]] = []
        self.publish_rc = mqtt.MQTT_ERR_SUCCESS
        self.credentials: tuple[str, str | None] | None = None
        self.connected_to: tuple[str, int] | None = None
        self.loop_running = False
        self.disconnected = False
        self.on_connect: Any = None
        self.on_message: Any = None
        self.on_disconnect: Any = None
        _FakeClient.instances.append(self)

    def enable_logger(self, _logger: Any) -> None:
        return None

    def username_pw_set(self, username: str, password: str | None) -> None:
        self.credentials = (username, password)

    def tls_set(self) -> None:
        return None

    def reconnect_delay_set(self, min_delay: int, max_delay: int) -> None:
        return None

    def connect_async(self, host: str, port: int, keepalive: int) -> None:
        self.connected_to = (host, port)

    def loop_start(self) -> None:
        self.loop_running = True

    def loop_stop(self) -> None:
        self.loop_running = False

    def disconnect(self) -> None:
        self.disconnected = True

    def subscribe(self, pattern: str, qos: int = 0) -> None:
        self.subscribed.append((pattern, qos))

    def publish(self, topic: str, payload: str, qos: int = 0) -> SimpleNamespace:
        self.published.append((topic, payload, qos))
        return SimpleNamespace(rc=self.publish_rc)

    def connect(self) -> None:
        self.on_connect(self, None, None, SimpleNamespace(is_failure=False), None)


@pytest.fixture
def fake_client(monkeypatch: pytest.MonkeyPatch) -> type[_FakeClient]:
    _FakeClient.instances = []
    monkeypatch.setattr(mqtt, "Client", _FakeClient)
    return _FakeClient


def _transport(loop: asyncio.AbstractEventLoop, received: list[tuple[str, bytes]], **config: Any) -> MqttTransport:
    return MqttTransport(
        loop=loop,
        config=BridgeConfig(**config),
        on_message=lambda topic, payload: received.append((topic, payload)),
    )


@pytest.mark.asyncio
async def test_publish_refused_before_start() -> None:
    transport = _transport(asyncio.get_running_loop(), [])

    assert transport.publish("devices/lamp-1/commands", "{}") is False
    assert not transport.is_running


@pytest.mark.asyncio
async def test_start_connects_and_resubscribes_on_connect(fake_client) -> None:
    transport = _transport(
        asyncio.get_running_loop(), [], broker_host="broker.lan", mqtt_username="bridge", mqtt_password="pw", mqtt_qos=1
    )
    transport.subscribe("devices/+/+")

    transport.start()
    client = fake_client.instances[-1]
    assert client.connected_to == ("broker.lan", 1883)
    assert client.credentials == ("bridge", "pw")
    assert client.loop_running
    assert client.subscribed == []

    client.connect()

    assert transport.is_connected
    assert client.subscribed == [("devices/+/+", 1)]


@pytest.mark.asyncio
async def test_publish_reports_transport_result(fake_client) -> None:
    transport = _transport(asyncio.get_running_loop(), [])
    transport.start()
    client = fake_client.instances[-1]

    # Not yet connected.
    assert transport.publish("devices/lamp-1/commands", "{}") is False

    client.connect()
    assert transport.publish("devices/lamp-1/commands", '{"command": "turn_on"}') is True
    assert client.published == [("devices/lamp-1/commands", '{"command": "turn_on"}', 0)]

    client.publish_rc = mqtt.MQTT_ERR_NO_CONN
    assert transport.publish("devices/lamp-1/commands", "{}") is False


@pytest.mark.asyncio
async def test_inbound_messages_are_delivered_on_the_loop(fake_client) -> None:
    received: list[tuple[str, bytes]] = []
    transport = _transport(asyncio.get_running_loop(), received)
    transport.start()
    client = fake_client.instances[-1]

    client.on_message(client, None, SimpleNamespace(topic="devices/lamp-1/heartbeat", payload=b"{}"))
    assert received == []
    await asyncio.sleep(0)

    assert received == [("devices/lamp-1/heartbeat", b"{}")]


@pytest.mark.asyncio
async def test_stop_disconnects(fake_client) -> None:
    transport = _transport(asyncio.get_running_loop(), [])
    transport.start()
    client = fake_client.instances[-1]
    client.connect()

    transport.stop()

    assert client.disconnected
    assert not client.loop_running
    assert not transport.is_connected
    assert not transport.is_running
    # Losing the connection afterwards is not logged as a reconnect.
    client.on_disconnect(client, None, None, "normal", None)
