"""Inbound message routing.

Inspects each transport message's topic and payload and forwards it to
the presence store or the correlation table. Malformed input is an
expected condition on shared brokers: it is logged and dropped, never
raised to the transport.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from typing import Any

from pydantic import ValidationError

from devbridge._topics import (
    EVENT_KINDS,
    KIND_COMMANDS,
    KIND_HEARTBEAT,
    KIND_RESPONSES,
    KIND_STATUS,
    ParsedTopic,
    parse_topic,
)
from devbridge.correlation import CorrelationTable
from devbridge.ingestion.responses import build_outcome, parse_response
from devbridge.models.messages import DeviceEvent, HeartbeatPayload, StatusReport
from devbridge.presence.store import PresenceStore

_logger = logging.getLogger(__name__)


def decode_payload(payload: bytes | str) -> dict[str, Any] | None:
    """Parse a JSON object payload, or return ``None`` for anything else."""
    try:
        text = payload.decode("utf-8") if isinstance(payload, (bytes, bytearray)) else payload
        parsed = json.loads(text)
    except (UnicodeDecodeError, ValueError, RecursionError):
        return None
    return parsed if isinstance(parsed, dict) else None


class MessageClassifier:
    """Route inbound device messages by topic kind."""

    def __init__(
        self,
        *,
        store: PresenceStore,
        table: CorrelationTable,
        topic_prefix: str = "devices",
        on_event: Callable[[DeviceEvent], None] | None = None,
    ) -> None:
        self._store = store
        self._table = table
        self._topic_prefix = topic_prefix
        self._on_event = on_event

    def on_message(self, topic: str, payload: bytes | str) -> None:
        """Handle one inbound transport message."""
        parsed_topic = parse_topic(self._topic_prefix, topic)
        if parsed_topic is None:
            _logger.debug("Ignoring message on foreign topic %s", topic)
            return
        if parsed_topic.kind == KIND_COMMANDS:
            # Our own publishes, echoed back by the broker.
            return

        body = decode_payload(payload)
        if body is None:
            _logger.debug("Discarding non-JSON payload on %s", topic)
            return

        try:
            self._route(parsed_topic, topic, body)
        except (ValidationError, ValueError):
            _logger.debug("Discarding malformed %s payload on %s", parsed_topic.kind, topic, exc_info=True)

    def _route(self, parsed: ParsedTopic, topic: str, body: dict[str, Any]) -> None:
        kind = parsed.kind
        if kind == KIND_HEARTBEAT:
            self._handle_heartbeat(parsed.device_id, body)
            return
        if kind == KIND_STATUS:
            self._handle_status(parsed.device_id, body)
            return
        if kind == KIND_RESPONSES:
            self._handle_response(parsed.device_id, body)
            return
        if kind in EVENT_KINDS:
            self._handle_event(parsed.device_id, kind, topic, body)
            return
        _logger.debug("Unrecognized message kind %r from %s", kind, parsed.device_id)

    def _handle_heartbeat(self, device_id: str, body: dict[str, Any]) -> None:
        self._store.upsert(device_id, HeartbeatPayload.model_validate(body))

    def _handle_status(self, device_id: str, body: dict[str, Any]) -> None:
        self._store.record_status(device_id, StatusReport.model_validate(body))

    def _handle_response(self, device_id: str, body: dict[str, Any]) -> None:
        response = parse_response(body)
        request_id = response.request_id
        if not request_id:
            _logger.debug("Discarding response without requestId from %s", device_id)
            return

        if response.status is not None:
            try:
                self._store.record_status(device_id, StatusReport.model_validate(body))
            except ValidationError:
                _logger.debug("Response %s carried an unreadable status report", request_id, exc_info=True)

        entry = self._table.get(request_id)
        if entry is None:
            _logger.debug("No pending request %s (late or foreign response from %s)", request_id, device_id)
            return
        if entry.device_id != device_id:
            _logger.warning(
                "Response %s arrived from %s but was dispatched to %s; ignoring",
                request_id,
                device_id,
                entry.device_id,
            )
            return

        outcome = build_outcome(device_id, entry.command, response)
        if not outcome.ok:
            _logger.warning("Device %s reported failure for %s: %s", device_id, entry.command, outcome.error)
        if not self._table.complete(request_id, outcome):
            _logger.debug("Response %s lost the race to another completion", request_id)

    def _handle_event(self, device_id: str, kind: str, topic: str, body: dict[str, Any]) -> None:
        self._store.touch(device_id)
        event = DeviceEvent.from_payload(device_id, kind, topic, body)
        _logger.info("Event from %s: %s", device_id, event.name or kind)
        if self._on_event is None:
            return
        try:
            self._on_event(event)
        except Exception:
            _logger.debug("on_event callback failed", exc_info=True)
