"""Command dispatch: one publish in, one result out."""

from __future__ import annotations

import asyncio
import logging
import math
import time
from collections.abc import Callable

from devbridge._topics import command_topic
from devbridge._transport import Transport
from devbridge.correlation import CompletionHandle, CorrelationTable, Outcome, new_request_id
from devbridge.exceptions import (
    BridgeError,
    CommandTimeoutError,
    DeviceNotFoundError,
    DeviceOfflineError,
    DuplicateRequestIdError,
    PublishFailureError,
)
from devbridge.models.command import CommandEnvelope, CommandResult
from devbridge.presence.store import PresenceStore

_logger = logging.getLogger(__name__)


def _now_ms() -> int:
    """Current epoch timestamp in milliseconds."""
    return int(time.time() * 1000)


class CommandDispatcher:
    """Send a named command to a device and wait for its response.

    Every control operation (power, status query, voice toggles) goes
    through :meth:`dispatch`; they differ only in the command name.
    """

    def __init__(
        self,
        *,
        store: PresenceStore,
        table: CorrelationTable,
        transport: Transport,
        topic_prefix: str = "devices",
        default_timeout: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
        request_id_factory: Callable[[], str] = new_request_id,
    ) -> None:
        self._store = store
        self._table = table
        self._transport = transport
        self._topic_prefix = topic_prefix
        self._default_timeout = default_timeout
        self._clock = clock
        self._request_id_factory = request_id_factory

    @property
    def transport(self) -> Transport:
        return self._transport

    @transport.setter
    def transport(self, value: Transport) -> None:
        self._transport = value

    async def dispatch(self, device_id: str, command: str, timeout: float | None = None) -> CommandResult:
        """Publish *command* to *device_id* and wait for the matching response.

        Raises
        ------
        DeviceNotFoundError
            The device has never sent a heartbeat.
        DeviceOfflineError
            The device is known but stale. Nothing is published.
        PublishFailureError
            The transport rejected the send.
        CommandTimeoutError
            No response arrived within *timeout* seconds.
        CommandFailureError
            The device answered with an error.
        """
        command = str(command).strip()
        if not command:
            raise ValueError("command must be non-empty")
        effective_timeout = self._default_timeout if timeout is None else timeout
        if not math.isfinite(effective_timeout) or effective_timeout <= 0:
            raise ValueError(f"timeout must be a positive number of seconds (got {effective_timeout})")

        device = self._store.get(device_id)
        if device is None:
            raise DeviceNotFoundError(device_id)
        if not device.online:
            raise DeviceOfflineError(device_id)

        loop = asyncio.get_running_loop()
        request_id = self._request_id_factory()
        envelope = CommandEnvelope(command=command, request_id=request_id, timestamp=_now_ms())
        handle = CompletionHandle(loop)

        try:
            self._table.register(
                request_id,
                device_id,
                handle,
                self._clock() + effective_timeout,
                command=command,
            )
        except DuplicateRequestIdError:
            _logger.error("Request id collision for %s (%s); refusing to dispatch", device_id, request_id)
            raise

        timer = loop.call_later(
            effective_timeout,
            self._expire,
            request_id,
            device_id,
            command,
            effective_timeout,
        )
        try:
            topic = command_topic(self._topic_prefix, device_id)
            _logger.debug("Publishing %s to %s request_id=%s", command, topic, request_id)
            try:
                published = self._transport.publish(topic, envelope.to_json())
                reason = "transport rejected publish"
            except Exception as exc:
                published = False
                reason = f"publish raised: {exc}"
            if not published:
                _logger.warning("Publish of %s to %s failed: %s", command, device_id, reason)
                self._table.complete(
                    request_id,
                    Outcome.failure(
                        PublishFailureError(
                            f"Failed to publish {command} to {device_id}: {reason}",
                            device_id=device_id,
                            command=command,
                            request_id=request_id,
                        )
                    ),
                )

            outcome = await handle.wait()
        finally:
            timer.cancel()
            # Only reachable with the entry still present if the wait was cancelled.
            self._table.complete(
                request_id,
                Outcome.failure(
                    BridgeError(f"Dispatch of {command} to {device_id} was cancelled"),
                ),
            )

        return outcome.unwrap()

    def _expire(self, request_id: str, device_id: str, command: str, timeout: float) -> None:
        error = CommandTimeoutError(
            f"No response from {device_id} for {command} within {timeout:g}s",
            timeout=timeout,
            device_id=device_id,
            command=command,
            request_id=request_id,
        )
        if self._table.complete(request_id, Outcome.failure(error)):
            _logger.warning("Command %s to %s timed out after %gs (request_id=%s)", command, device_id, timeout, request_id)
