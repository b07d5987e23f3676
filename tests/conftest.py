from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from devbridge.presence.store import PresenceStore


class ManualClock:
    """Wall clock the test advances explicitly."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


class RecordingTransport:
    """In-memory transport that records publishes."""

    def __init__(self, *, accept: bool = True, raises: Exception | None = None) -> None:
        self.accept = accept
        self.raises = raises
        self.published: list[tuple[str, dict[str, Any]]] = []
        self.subscriptions: list[str] = []

    def subscribe(self, pattern: str) -> None:
        self.subscriptions.append(pattern)

    def publish(self, topic: str, payload: str) -> bool:
        if self.raises is not None:
            raise self.raises
        self.published.append((topic, json.loads(payload)))
        return self.accept

    @property
    def last_request_id(self) -> str:
        return str(self.published[-1][1]["requestId"])


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def store(clock: ManualClock) -> PresenceStore:
    return PresenceStore(clock=clock)


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def make_transport() -> type[RecordingTransport]:
    return RecordingTransport
