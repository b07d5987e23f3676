"""Turn a device response into the outcome its waiting caller receives.

The payload differs by originating command: a status query's response
embeds device-reported state, while control commands answer with a bare
acknowledgement.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from devbridge.correlation import Outcome
from devbridge.exceptions import CommandFailureError
from devbridge.models.command import CommandResponse, CommandResult, DeviceCommand

_logger = logging.getLogger(__name__)

_ACK_FIELDS = ("success", "source")
_REQUEST_ID_KEYS = frozenset({"requestId", "request_id"})


def _status_data(response: CommandResponse) -> dict[str, Any]:
    data = response.extra_fields()
    if response.status is not None:
        data["status"] = response.status
    return data


def _ack_data(response: CommandResponse) -> dict[str, Any]:
    data: dict[str, Any] = {"success": response.success if response.success is not None else True}
    if response.source is not None:
        data["source"] = response.source
    for key, value in response.extra_fields().items():
        if key not in _ACK_FIELDS:
            data.setdefault(key, value)
    return data


def build_result(device_id: str, command: str, response: CommandResponse) -> CommandResult:
    """Build the success payload for *response* to *command*."""
    effective_command = command or response.command or ""
    if effective_command == DeviceCommand.GET_STATUS:
        data = _status_data(response)
    else:
        data = _ack_data(response)
    return CommandResult(
        device_id=device_id,
        request_id=response.request_id or "",
        command=effective_command,
        status=response.status,
        data=data,
    )


def build_outcome(device_id: str, command: str, response: CommandResponse) -> Outcome:
    """Map a response onto success or :class:`CommandFailureError`."""
    if response.ok:
        return Outcome.success(build_result(device_id, command, response))

    effective_command = command or response.command or ""
    detail = response.error or "device reported failure"
    return Outcome.failure(
        CommandFailureError(
            f"{device_id} rejected {effective_command or 'command'}: {detail}",
            detail=detail,
            response=dict(response.raw),
            device_id=device_id,
            command=effective_command,
            request_id=response.request_id or "",
        )
    )


def parse_response(body: dict[str, Any]) -> CommandResponse:
    """Validate a response body, salvaging it when secondary fields are malformed.

    The request id is what resolves the waiting caller, so a response that
    carries a usable one is not thrown away over, say, an odd ``success``
    value: the offending keys are dropped and validation is retried. An
    ``error`` of unexpected shape is kept as text so the response still
    counts as a failure.

    Raises
    ------
    pydantic.ValidationError
        The request id itself is unusable.
    """
    try:
        return CommandResponse.model_validate(body)
    except ValidationError as exc:
        invalid = {str(err["loc"][0]) for err in exc.errors() if err["loc"]}
        if invalid & _REQUEST_ID_KEYS:
            raise

    salvaged = {key: value for key, value in body.items() if key not in invalid}
    if "error" in invalid:
        salvaged["error"] = str(body["error"])
    _logger.debug("Salvaged response %s despite invalid fields %s", body.get("requestId"), sorted(invalid))
    return CommandResponse.model_validate({**salvaged, "raw": body})
