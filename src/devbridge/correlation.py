"""Correlation of outbound commands with their asynchronous responses.

Owns:
- the single-fulfillment completion handle a dispatching caller waits on
- the table mapping request ids to pending requests and their deadlines

Every completion path (matching response, deadline timer, publish
failure, safety sweep) goes through :meth:`CorrelationTable.complete`,
so whichever fires first wins and the rest are no-ops.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import cast

from devbridge.exceptions import BridgeError, CommandTimeoutError, DuplicateRequestIdError
from devbridge.models.command import CommandResult

_logger = logging.getLogger(__name__)


def new_request_id() -> str:
    """Timestamp plus random suffix, e.g. ``1760000000000-9f2c41ab``."""
    return f"{int(time.time() * 1000)}-{secrets.token_hex(4)}"


@dataclass(frozen=True, slots=True)
class Outcome:
    """Value a completion handle is resolved with: a result or an error."""

    result: CommandResult | None = None
    error: BridgeError | None = None

    def __post_init__(self) -> None:
        if (self.result is None) == (self.error is None):
            raise ValueError("Outcome needs exactly one of result or error")

    @classmethod
    def success(cls, result: CommandResult) -> Outcome:
        return cls(result=result)

    @classmethod
    def failure(cls, error: BridgeError) -> Outcome:
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> CommandResult:
        if self.error is not None:
            raise self.error
        return cast(CommandResult, self.result)


class CompletionHandle:
    """A slot that can be resolved exactly once.

    Resolution may come from any thread; the outcome is delivered to the
    future on the loop that created the handle.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop or asyncio.get_running_loop()
        self._future: asyncio.Future[Outcome] = self._loop.create_future()
        self._lock = threading.Lock()
        self._completed = False

    @property
    def completed(self) -> bool:
        return self._completed

    def resolve(self, outcome: Outcome) -> bool:
        """Deliver *outcome*; return ``False`` if the handle was already resolved."""
        with self._lock:
            if self._completed:
                return False
            self._completed = True

        if self._on_own_loop():
            self._deliver(outcome)
        else:
            self._loop.call_soon_threadsafe(self._deliver, outcome)
        return True

    def _on_own_loop(self) -> bool:
        try:
            return asyncio.get_running_loop() is self._loop
        except RuntimeError:
            return False

    def _deliver(self, outcome: Outcome) -> None:
        # The waiting task may have been cancelled in the meantime.
        if not self._future.done():
            self._future.set_result(outcome)

    async def wait(self) -> Outcome:
        return await self._future


@dataclass(slots=True)
class PendingRequest:
    """One outstanding command awaiting a response."""

    request_id: str
    device_id: str
    handle: CompletionHandle
    deadline: float
    command: str = ""
    created_at: float = field(default_factory=time.monotonic)


class CorrelationTable:
    """Outstanding request ids and the callers waiting on them."""

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._pending: dict[str, PendingRequest] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)

    def __contains__(self, request_id: object) -> bool:
        with self._lock:
            return request_id in self._pending

    def register(
        self,
        request_id: str,
        device_id: str,
        handle: CompletionHandle,
        deadline: float,
        *,
        command: str = "",
    ) -> PendingRequest:
        entry = PendingRequest(
            request_id=request_id,
            device_id=device_id,
            handle=handle,
            deadline=deadline,
            command=command,
            created_at=self._clock(),
        )
        with self._lock:
            if request_id in self._pending:
                raise DuplicateRequestIdError(request_id)
            self._pending[request_id] = entry
        return entry

    def get(self, request_id: str) -> PendingRequest | None:
        """Peek at a pending entry without completing it."""
        with self._lock:
            return self._pending.get(request_id)

    def pending_for(self, device_id: str) -> list[PendingRequest]:
        with self._lock:
            return [entry for entry in self._pending.values() if entry.device_id == device_id]

    def complete(self, request_id: str, outcome: Outcome) -> bool:
        """Remove *request_id* and resolve its caller.

        Returns ``False`` if the id is unknown, i.e. another completion
        already won.
        """
        with self._lock:
            entry = self._pending.pop(request_id, None)
        if entry is None:
            return False
        return entry.handle.resolve(outcome)

    def sweep_expired(self, now: float, *, grace: float = 0.0) -> int:
        """Time out every entry whose ``deadline + grace`` has passed.

        Safety net for deadline timers that never fired.
        """
        with self._lock:
            expired = [entry for entry in self._pending.values() if entry.deadline + grace <= now]

        count = 0
        for entry in expired:
            error = CommandTimeoutError(
                f"No response from {entry.device_id} for {entry.command or 'command'} (reclaimed by sweep)",
                device_id=entry.device_id,
                command=entry.command,
                request_id=entry.request_id,
            )
            if self.complete(entry.request_id, Outcome.failure(error)):
                count += 1
        if count:
            _logger.warning("Reclaimed %d expired pending request(s)", count)
        return count

    def fail_all(self, error_factory: Callable[[PendingRequest], BridgeError]) -> int:
        """Complete every pending entry with a failure (used on shutdown)."""
        with self._lock:
            entries = list(self._pending.values())
        return sum(1 for entry in entries if self.complete(entry.request_id, Outcome.failure(error_factory(entry))))
