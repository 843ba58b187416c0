"""Two-phase process termination for hostpulse."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum

from hostpulse.cache import SampleCache
from hostpulse.errors import PermissionDeniedError, TargetNotFoundError
from hostpulse.provider import Liveness, MetricProvider

logger = logging.getLogger(__name__)

DEFAULT_GRACE_PERIOD = 0.75


class TerminationState(Enum):
    """States of one termination request."""

    CHECKING = "checking"
    SIGNALED_GRACEFUL = "signaled_graceful"
    AWAITING_GRACE_PERIOD = "awaiting_grace_period"
    SIGNALED_FORCED = "signaled_forced"
    CONFIRMED = "confirmed"
    NOT_FOUND = "not_found"
    PERMISSION_DENIED = "permission_denied"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        """True once no further transition is possible."""
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset(
    {
        TerminationState.CONFIRMED,
        TerminationState.NOT_FOUND,
        TerminationState.PERMISSION_DENIED,
        TerminationState.FAILED,
    }
)


@dataclass
class TerminationRequest:
    """Progress of one termination, owned by the controller."""

    pid: int
    state: TerminationState = TerminationState.CHECKING
    history: list[TerminationState] = field(default_factory=lambda: [TerminationState.CHECKING])
    error: str | None = None

    @property
    def accepted(self) -> bool:
        """True when the graceful signal went out."""
        return TerminationState.AWAITING_GRACE_PERIOD in self.history

    def advance(self, state: TerminationState, error: str | None = None) -> None:
        """Move to a new state."""
        if self.state.is_terminal:
            raise RuntimeError(f"termination of {self.pid} already ended in {self.state.value}")
        self.state = state
        self.history.append(state)
        if error is not None:
            self.error = error
        logger.debug("Termination of pid %d -> %s", self.pid, state.value)


ConfirmedListener = Callable[[int], Awaitable[None]]


class TerminationController:
    """
    Drives graceful-then-forced termination per pid.

    terminate() returns as soon as the graceful signal is dispatched (or the
    request ends early). The grace period, re-check and escalation run in a
    detached task so the caller's acknowledgment never waits for them, and
    they complete even if the requesting client goes away.
    """

    def __init__(
        self,
        provider: MetricProvider,
        cache: SampleCache,
        grace_period: float = DEFAULT_GRACE_PERIOD,
        on_confirmed: ConfirmedListener | None = None,
    ) -> None:
        """
        Initialize the TerminationController.

        Args:
            provider: Existence probe and signalling capability.
            cache: Cache whose process entry is invalidated on confirmation.
            grace_period: Seconds a process gets to exit before SIGKILL.
            on_confirmed: Coroutine called with the pid once confirmed.
        """
        self._provider = provider
        self._cache = cache
        self._grace_period = grace_period
        self._on_confirmed = on_confirmed
        self._active: dict[int, TerminationRequest] = {}
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def grace_period(self) -> float:
        """Get the grace period in seconds."""
        return self._grace_period

    @property
    def active(self) -> dict[int, TerminationRequest]:
        """Requests not yet finished, by pid."""
        return dict(self._active)

    async def terminate(self, pid: int) -> TerminationRequest:
        """
        Start terminating a process.

        Returns the request in AWAITING_GRACE_PERIOD when accepted, or in a
        terminal state (NOT_FOUND, PERMISSION_DENIED, FAILED) when rejected.
        A pid already being terminated returns the in-flight request.
        """
        existing = self._active.get(pid)
        if existing is not None:
            return existing

        request = TerminationRequest(pid)
        self._active[pid] = request
        try:
            await self._signal_graceful(request)
        except Exception as exc:
            logger.exception("Termination of pid %d failed", pid)
            request.advance(TerminationState.FAILED, error=str(exc))

        if request.state.is_terminal:
            self._active.pop(pid, None)
            return request

        task = asyncio.create_task(self._escalate(request), name=f"hostpulse-terminate-{pid}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return request

    async def _signal_graceful(self, request: TerminationRequest) -> None:
        liveness = await self._provider.process_exists(request.pid)
        if liveness is Liveness.NOT_FOUND:
            request.advance(TerminationState.NOT_FOUND)
            return

        request.advance(TerminationState.SIGNALED_GRACEFUL)
        try:
            await self._provider.signal_process(request.pid, forced=False)
        except PermissionDeniedError:
            logger.warning("Not permitted to signal pid %d", request.pid)
            request.advance(TerminationState.PERMISSION_DENIED)
            return
        except TargetNotFoundError:
            # Exited between the probe and the signal
            request.advance(TerminationState.NOT_FOUND)
            return
        logger.info("Sent SIGTERM to pid %d", request.pid)
        request.advance(TerminationState.AWAITING_GRACE_PERIOD)

    async def _escalate(self, request: TerminationRequest) -> None:
        pid = request.pid
        try:
            await asyncio.sleep(self._grace_period)
            if await self._provider.process_exists(pid) is not Liveness.NOT_FOUND:
                request.advance(TerminationState.SIGNALED_FORCED)
                try:
                    await self._provider.signal_process(pid, forced=True)
                    logger.info("Sent SIGKILL to pid %d", pid)
                except TargetNotFoundError:
                    logger.debug("pid %d exited before SIGKILL", pid)
            request.advance(TerminationState.CONFIRMED)
            logger.info("Termination of pid %d confirmed", pid)
            self._cache.invalidate_processes()
            if self._on_confirmed is not None:
                await self._on_confirmed(pid)
        except Exception as exc:
            logger.exception("Termination of pid %d failed", pid)
            if not request.state.is_terminal:
                request.advance(TerminationState.FAILED, error=str(exc))
        finally:
            self._active.pop(pid, None)

    async def drain(self) -> None:
        """Wait for all detached escalations to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        """Cancel outstanding escalations."""
        pending = list(self._active.values())
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)
        for request in pending:
            if not request.state.is_terminal:
                request.advance(TerminationState.FAILED, error="cancelled")
        self._active.clear()
