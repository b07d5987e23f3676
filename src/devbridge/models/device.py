"""Device presence record."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator


class Device(BaseModel):
    """Latest known state of one device.

    Records are immutable; the presence store replaces them on every
    update, so any instance handed out is a consistent snapshot.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str
    name: str | None = None
    address: str | None = None
    port: int | None = None
    status: str | None = None
    """Operational status as reported by the device ("on", "off", "error")."""
    online: bool = True
    last_seen: datetime
    registered_at: datetime
    capabilities: frozenset[str] = Field(default_factory=frozenset)
    features: dict[str, bool] = Field(default_factory=dict)

    @field_validator("id")
    @classmethod
    def _require_id(cls, value: str) -> str:
        device_id = value.strip()
        if not device_id:
            raise ValueError("device id must be non-empty")
        return device_id

    @field_serializer("capabilities")
    def _serialize_capabilities(self, value: frozenset[str]) -> list[str]:
        return sorted(value)

    def seconds_since_seen(self, now: datetime) -> float:
        return (now - self.last_seen).total_seconds()

    def to_public(self) -> dict[str, Any]:
        """JSON-ready representation for the HTTP front end."""
        return self.model_dump(mode="json")
