"""Pub/sub transport interface the bridge core talks to."""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol

MessageCallback = Callable[[str, bytes], None]
"""Inbound message callback, invoked as ``(topic, payload)``."""


class Transport(Protocol):
    """Structural transport interface used by the bridge core.

    Having a protocol here makes it easy to pass test doubles while
    keeping the production implementation (`MqttTransport`) concrete.
    Reconnect policy belongs to the implementation, not the core.
    """

    def subscribe(self, pattern: str) -> None:
        ...

    def publish(self, topic: str, payload: str) -> bool:
        """Send *payload*; ``False`` means the transport rejected it."""
        ...
