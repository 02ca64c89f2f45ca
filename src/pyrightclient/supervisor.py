"""Editor-facing supervisor.

Owns the SessionRegistry and ActivationPolicy for one editor window, turns
editor events into registry calls, and provides the single teardown entry
point (``deactivate``) the host must await before exiting.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterable
from typing import Any, Protocol

from pyrightclient.config import Config, get_config, load_config
from pyrightclient.errors import SessionStartError, SessionStopped
from pyrightclient.events import (
    ConfigurationChanged,
    Deactivate,
    DocumentOpened,
    EditorEvent,
    WorkspaceRootsChanged,
)
from pyrightclient.session.activation import ActivationPolicy
from pyrightclient.session.progress import ProgressEvent
from pyrightclient.session.registry import SessionRegistry
from pyrightclient.session.session import Session
from pyrightclient.transport.process import ServerLauncher, SubprocessLauncher
from pyrightclient.workspace import DEFAULT_ROOT_ID, TextDocument, WorkspaceRoot, WorkspaceRootId

_log = logging.getLogger("pyrightclient.supervisor")


class EditorHost(Protocol):
    """What the supervisor needs from the embedding editor."""

    def workspace_roots(self) -> list[WorkspaceRoot]: ...

    def open_documents(self) -> list[TextDocument]: ...

    def show_error_message(self, message: str) -> None: ...

    def report_progress(self, event: ProgressEvent) -> None: ...


class Supervisor:
    """Runs language server sessions for one editor window.

    Example:
        ```python
        supervisor = Supervisor(host)
        await supervisor.activate()
        await supervisor.handle(DocumentOpened(doc))
        ...
        await supervisor.deactivate()
        ```
    """

    def __init__(
        self,
        host: EditorHost,
        config: Config | None = None,
        *,
        launcher: ServerLauncher | None = None,
    ) -> None:
        self._host = host
        self._config = config or get_config()
        self._launcher = launcher or SubprocessLauncher(self._config.server)
        self._registry = SessionRegistry(
            self._create_session, shutdown_timeout=self._config.session.shutdown_timeout
        )
        self._policy: ActivationPolicy | None = None
        self._root_settings: dict[WorkspaceRootId, dict[str, Any]] = {}
        self._event_tasks: set[asyncio.Task[None]] = set()
        self._deactivated = False

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    @property
    def policy(self) -> ActivationPolicy:
        if self._policy is None:
            raise RuntimeError("Supervisor is not activated")
        return self._policy

    async def activate(self) -> None:
        """Select the activation mode and start the initial sessions."""
        if self._policy is not None:
            return
        self._policy = ActivationPolicy(
            self._registry,
            self._host.workspace_roots(),
            language=self._config.language,
            on_start_failure=self._on_start_failure,
        )
        await self._policy.start(self._host.open_documents())

    async def handle(self, event: EditorEvent) -> None:
        """Apply one editor event."""
        policy = self.policy
        if isinstance(event, DocumentOpened):
            await policy.document_opened(event.document)
        elif isinstance(event, WorkspaceRootsChanged):
            for root in (*event.added, *event.removed):
                self._root_settings.pop(root.id, None)
            await policy.roots_changed(event.added, event.removed)
        elif isinstance(event, ConfigurationChanged):
            await self.sync_configuration(event.root_id)
        elif isinstance(event, Deactivate):
            await self.deactivate()
        else:
            raise TypeError(f"Unknown editor event: {event!r}")

    async def run(self, events: AsyncIterable[EditorEvent]) -> None:
        """Consume events until Deactivate or exhaustion, then tear down.

        Each event runs as its own task so work on different roots overlaps;
        per-root ordering is kept by the registry's per-root locks.
        """
        await self.activate()
        try:
            async for event in events:
                if isinstance(event, Deactivate):
                    break
                task = asyncio.create_task(self.handle(event))
                self._event_tasks.add(task)
                task.add_done_callback(self._event_done)
        finally:
            await self.deactivate()

    async def deactivate(self) -> None:
        """Stop every session. The host must await this before exiting."""
        if self._deactivated:
            return
        self._deactivated = True
        timeout = self._config.session.shutdown_timeout

        if self._event_tasks:
            _, pending = await asyncio.wait(set(self._event_tasks), timeout=timeout)
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        await self._registry.remove_all(timeout)
        _log.info("Deactivated")

    def session_for(self, document: TextDocument) -> Session | None:
        """The running session whose document selector matches ``document``."""
        best: Session | None = None
        for session in self._registry.sessions():
            if not session.is_active or not session.handles(document):
                continue
            # Prefer the innermost root when folders nest
            if best is None or len(str(session.root_id)) > len(str(best.root_id)):
                best = session
        return best

    async def sync_configuration(self, root_id: WorkspaceRootId | None = None) -> None:
        """Reload settings and push them to the affected session(s)."""
        if root_id is None:
            self._root_settings.clear()
            targets = self._registry.sessions()
        else:
            self._root_settings.pop(root_id, None)
            session = self._registry.get(self.policy.session_id_for(root_id))
            targets = [session] if session is not None else []

        for session in targets:
            try:
                await session.sync_configuration()
            except SessionStopped as e:
                _log.debug("Skipping configuration sync for %s: %s", session.label, e)

    def settings_for(self, root: WorkspaceRoot | None) -> dict[str, Any]:
        """Synchronized settings for a root: its project config over the defaults."""
        if root is None or root.path is None:
            return self._config.settings
        settings = self._root_settings.get(root.id)
        if settings is None:
            settings = load_config(root.path).settings
            self._root_settings[root.id] = settings
        return settings

    def _create_session(self, root_id: WorkspaceRootId, root: WorkspaceRoot | None) -> Session:
        return Session(
            root_id,
            self._launcher,
            root=root,
            sink=self._host.report_progress,
            config=self._config,
            settings=lambda: self.settings_for(root),
        )

    def _on_start_failure(
        self, root_id: WorkspaceRootId, root: WorkspaceRoot | None, error: SessionStartError
    ) -> None:
        if root is not None and root.name:
            name = root.name
        elif root_id == DEFAULT_ROOT_ID:
            name = "the workspace"
        else:
            name = str(root_id)
        self._host.show_error_message(f"Pyright could not start for {name}: {error}")

    def _event_done(self, task: asyncio.Task[None]) -> None:
        self._event_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            _log.error("Editor event failed: %s", exc, exc_info=exc)
