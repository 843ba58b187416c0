"""Termination control call for hostpulse."""

import logging
import os
from typing import Any

from hostpulse.errors import (
    InternalFailureError,
    InvalidInputError,
    PermissionDeniedError,
    TargetNotFoundError,
)
from hostpulse.termination import TerminationController, TerminationState

logger = logging.getLogger(__name__)

# Largest value a signed 32-bit pid_t can hold
MAX_PID = 2**31 - 1


def parse_pid(raw: Any) -> int:
    """
    Validate a pid taken from client input.

    Raises:
        InvalidInputError: Not a positive integer within pid_t range, or this
            server's own pid.
    """
    if isinstance(raw, bool):
        raise InvalidInputError("Invalid process ID.", pid=raw)
    if isinstance(raw, str):
        raw = raw.strip()
        if not (raw.isascii() and raw.isdigit()):
            raise InvalidInputError("Invalid process ID.", pid=raw)
        try:
            pid = int(raw)
        except ValueError as exc:
            # Digit strings past the interpreter's int conversion limit
            raise InvalidInputError("Invalid process ID.", pid=raw[:32]) from exc
    elif isinstance(raw, int):
        pid = raw
    else:
        raise InvalidInputError("Invalid process ID.", pid=repr(raw))
    if pid <= 0 or pid > MAX_PID:
        raise InvalidInputError("Invalid process ID.", pid=pid)
    if pid == os.getpid():
        raise InvalidInputError("Refusing to terminate the monitoring server.", pid=pid)
    return pid


class ControlEndpoint:
    """Turns termination requests into typed responses."""

    def __init__(self, controller: TerminationController) -> None:
        """Initialize the ControlEndpoint."""
        self._controller = controller

    async def terminate(self, raw_pid: Any) -> dict[str, Any]:
        """
        Handle terminate-process(pid).

        Returns the success payload once the graceful signal is dispatched.

        Raises:
            InvalidInputError: Malformed pid.
            TargetNotFoundError: No such process.
            PermissionDeniedError: The OS refused the signal.
            InternalFailureError: Anything else.
        """
        pid = parse_pid(raw_pid)
        try:
            request = await self._controller.terminate(pid)
        except Exception as exc:
            logger.exception("Termination request for pid %d crashed", pid)
            raise InternalFailureError("Failed to terminate process.", pid=pid) from exc

        state = request.state
        if state is TerminationState.NOT_FOUND:
            raise TargetNotFoundError(pid=pid)
        if state is TerminationState.PERMISSION_DENIED:
            raise PermissionDeniedError("Not allowed to terminate this process.", pid=pid)
        if state is TerminationState.FAILED:
            raise InternalFailureError("Failed to terminate process.", pid=pid, detail=request.error)
        return {"success": True, "pid": pid, "state": state.value}
