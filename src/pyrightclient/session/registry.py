"""Registry of live sessions keyed by workspace root.

At most one starting or running session exists per root id. Calls for the
same root id are serialized through a per-root lock (FIFO), so a removal
still in flight always completes before a new session for that root starts.
Calls for different roots run concurrently.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from pyrightclient.errors import DuplicateRootError, SessionStartError
from pyrightclient.session.session import Session, SessionState
from pyrightclient.workspace import WorkspaceRoot, WorkspaceRootId

_log = logging.getLogger("pyrightclient.registry")

SessionFactory = Callable[[WorkspaceRootId, WorkspaceRoot | None], Session]

DEFAULT_SHUTDOWN_TIMEOUT = 10.0


class SessionRegistry:
    """Owns every session; creates and tears them down per root id."""

    def __init__(
        self,
        factory: SessionFactory,
        *,
        shutdown_timeout: float = DEFAULT_SHUTDOWN_TIMEOUT,
    ) -> None:
        self._factory = factory
        self._shutdown_timeout = shutdown_timeout
        self._sessions: dict[WorkspaceRootId, Session] = {}
        self._locks: dict[WorkspaceRootId, asyncio.Lock] = {}
        self._closing = False

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, root_id: object) -> bool:
        return root_id in self._sessions

    def get(self, root_id: WorkspaceRootId) -> Session | None:
        return self._sessions.get(root_id)

    def sessions(self) -> list[Session]:
        return list(self._sessions.values())

    @property
    def root_ids(self) -> list[WorkspaceRootId]:
        return list(self._sessions)

    @property
    def closing(self) -> bool:
        return self._closing

    def _lock(self, root_id: WorkspaceRootId) -> asyncio.Lock:
        lock = self._locks.get(root_id)
        if lock is None:
            lock = self._locks[root_id] = asyncio.Lock()
        return lock

    async def ensure(self, root_id: WorkspaceRootId, root: WorkspaceRoot | None = None) -> Session:
        """Return the live session for ``root_id``, starting one if needed.

        Raises:
            SessionStartError: The new session failed to start. The entry is
                removed and nothing is retried.
        """
        async with self._lock(root_id):
            if self._closing:
                raise SessionStartError("Client is shutting down", root_id)

            existing = self._sessions.get(root_id)
            if existing is not None:
                if existing.is_active:
                    return existing
                _log.info("Replacing stopped session for %s", root_id)
                del self._sessions[root_id]

            session = self._factory(root_id, root)
            self._insert(root_id, session)
            try:
                await session.start()
            except SessionStartError as e:
                self._discard(root_id, session)
                if e.root_id is None:
                    e.root_id = root_id
                _log.error("Session for %s failed to start: %s", root_id, e)
                raise
            except asyncio.CancelledError:
                self._discard(root_id, session)
                session.kill()
                raise
            return session

    async def remove(self, root_id: WorkspaceRootId) -> None:
        """Stop and forget the session for ``root_id``. No-op if absent."""
        async with self._lock(root_id):
            session = self._sessions.get(root_id)
            if session is None:
                return
            try:
                await session.stop()
            finally:
                self._discard(root_id, session)
            _log.info("Removed session for %s", root_id)

    async def remove_all(self, timeout: float | None = None) -> None:
        """Stop every session concurrently; used at shutdown.

        Sessions still stopping when ``timeout`` (default: the registry's
        shutdown timeout) elapses are killed. The mapping is empty on return.
        """
        self._closing = True
        sessions = dict(self._sessions)
        if timeout is None:
            timeout = self._shutdown_timeout

        if sessions:
            _log.info("Stopping %d session(s)", len(sessions))
            tasks = [
                asyncio.create_task(self.remove(root_id), name=f"remove:{root_id}")
                for root_id in sessions
            ]
            done, pending = await asyncio.wait(tasks, timeout=timeout)
            if pending:
                _log.warning(
                    "%d session(s) did not stop within %ss; killing", len(pending), timeout
                )
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)
            for task in done:
                if not task.cancelled() and task.exception() is not None:
                    _log.error("Error stopping session: %s", task.exception())

        # Anything still alive: stragglers from the timeout, or sessions an
        # in-flight ensure inserted after the snapshot
        stragglers = [*sessions.values(), *self._sessions.values()]
        for session in stragglers:
            if session.state is not SessionState.STOPPED:
                session.kill()
        self._sessions.clear()

        # Stops cut short above keep running shielded; collect them
        waiters = [asyncio.create_task(session.wait_stopped()) for session in stragglers]
        if waiters:
            done, pending = await asyncio.wait(waiters, timeout=timeout)
            for task in pending:
                task.cancel()
            if pending:
                _log.error("%d session stop(s) still running after kill", len(pending))
                await asyncio.gather(*pending, return_exceptions=True)
            for task in done:
                if task.exception() is not None:
                    _log.error("Error stopping session: %s", task.exception())

    def _insert(self, root_id: WorkspaceRootId, session: Session) -> None:
        current = self._sessions.get(root_id)
        if current is not None and current.is_active:
            raise DuplicateRootError(f"A live session already exists for {root_id}")
        self._sessions[root_id] = session

    def _discard(self, root_id: WorkspaceRootId, session: Session) -> None:
        if self._sessions.get(root_id) is session:
            del self._sessions[root_id]
