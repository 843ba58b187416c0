"""Per-client push sessions for hostpulse."""

import asyncio
import itertools
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from hostpulse.cache import SampleCache
from hostpulse.models import MetricsSnapshot, ProcessRecord

logger = logging.getLogger(__name__)

DEFAULT_PUSH_INTERVAL = 1.0

# Push channel event names
SYSTEM_INFO = "systemInfo"
METRICS = "metrics"
PROCESS_DATA = "processData"
PROCESS_KILLED = "processKilled"

Sender = Callable[[str, Any], Awaitable[None]]

_session_ids = itertools.count(1)


@dataclass(eq=False)
class Session:
    """Server-side state of one connected client."""

    send: Sender
    session_id: int = field(default_factory=lambda: next(_session_ids))
    live: bool = True
    task: asyncio.Task[None] | None = None
    last_snapshot: MetricsSnapshot | None = None
    delivered: int = 0
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


def _process_payload(processes: list[ProcessRecord]) -> list[dict[str, Any]]:
    return [proc.to_dict() for proc in processes]


class SessionBroadcaster:
    """
    Registry of live sessions and their periodic metrics pushes.

    Every session reads through the shared SampleCache; none of them touch
    cache state directly. Pushes to one session are serialized by its lock
    and happen in sampling order. A push that fails closes the session.
    """

    def __init__(self, cache: SampleCache, interval: float = DEFAULT_PUSH_INTERVAL) -> None:
        """
        Initialize the SessionBroadcaster.

        Args:
            cache: Shared sample cache.
            interval: Seconds between metrics pushes per session. Default 1.0s.
        """
        self._cache = cache
        self._interval = interval
        self._sessions: dict[int, Session] = {}

    @property
    def interval(self) -> float:
        """Get the push interval."""
        return self._interval

    @property
    def sessions(self) -> list[Session]:
        """Currently live sessions."""
        return list(self._sessions.values())

    async def open_session(self, send: Sender) -> Session:
        """
        Register a client and start its push loop.

        Sends the system description and a forced metrics snapshot before the
        periodic loop starts.
        """
        session = Session(send=send)
        self._sessions[session.session_id] = session
        logger.info("Session %d opened (%d live)", session.session_id, len(self._sessions))

        info = await self._cache.get_system_info()
        if info is not None:
            await self.deliver(session, SYSTEM_INFO, info.to_dict())

        snapshot = await self._cache.get_metrics(force=True)
        if snapshot is not None:
            await self._deliver_metrics(session, snapshot)

        if session.live:
            session.task = asyncio.create_task(
                self._run(session),
                name=f"hostpulse-session-{session.session_id}",
            )
        return session

    async def close_session(self, session: Session) -> None:
        """Stop a session; it receives nothing afterwards. Safe to call twice."""
        was_live = session.live
        session.live = False
        self._sessions.pop(session.session_id, None)

        task = session.task
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        if was_live:
            logger.info("Session %d closed (%d live)", session.session_id, len(self._sessions))

    async def close(self) -> None:
        """Close every session."""
        for session in list(self._sessions.values()):
            await self.close_session(session)

    async def request_processes(self, session: Session) -> list[ProcessRecord]:
        """Push the current process view to the requesting session only."""
        processes = await self._cache.get_processes()
        await self.deliver(session, PROCESS_DATA, _process_payload(processes))
        return processes

    async def broadcast_process_killed(self, pid: int) -> None:
        """
        Tell every live session that a process was terminated.

        Follows up with a fresh process view for all sessions.
        """
        await self._broadcast(PROCESS_KILLED, {"pid": pid})
        processes = await self._cache.get_processes(force=True)
        await self._broadcast(PROCESS_DATA, _process_payload(processes))

    async def _broadcast(self, event: str, data: Any) -> None:
        sessions = list(self._sessions.values())
        if sessions:
            await asyncio.gather(*(self.deliver(s, event, data) for s in sessions))

    async def _run(self, session: Session) -> None:
        while session.live:
            await asyncio.sleep(self._interval)
            if not session.live:
                break
            snapshot = await self._cache.get_metrics()
            if snapshot is None:
                continue
            await self._deliver_metrics(session, snapshot)

    async def _deliver_metrics(self, session: Session, snapshot: MetricsSnapshot) -> None:
        if await self.deliver(session, METRICS, snapshot.to_dict()):
            session.last_snapshot = snapshot

    async def deliver(self, session: Session, event: str, data: Any) -> bool:
        """Send one message; a failed send closes the session."""
        async with session.lock:
            if not session.live:
                return False
            try:
                await session.send(event, data)
            except Exception as exc:
                logger.warning("Push of %s to session %d failed: %s", event, session.session_id, exc)
                failed = True
            else:
                session.delivered += 1
                failed = False
        if failed:
            await self.close_session(session)
            return False
        return True
