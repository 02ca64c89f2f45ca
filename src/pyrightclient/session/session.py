"""A supervised language server session.

A Session wraps exactly one server process and its channel. It performs
the initialize handshake on ``start()``, routes progress notifications to
its own ProgressMultiplexer, and on ``stop()`` asks the server to shut
down, escalating to a kill when the grace period runs out.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
from collections.abc import Callable
from enum import Enum
from typing import TYPE_CHECKING, Any

from pyrightclient import __version__
from pyrightclient.config.schema import Config
from pyrightclient.errors import SessionStartError, SessionStopped, SessionStopTimeout
from pyrightclient.session.progress import ProgressMultiplexer, ProgressSink
from pyrightclient.transport.channel import ResponseError
from pyrightclient.workspace import DEFAULT_ROOT_ID, TextDocument, WorkspaceRoot, WorkspaceRootId

if TYPE_CHECKING:
    from pyrightclient.transport.channel import JsonRpcChannel
    from pyrightclient.transport.process import ServerLauncher, ServerProcess

_log = logging.getLogger("pyrightclient.session")
_server_log = logging.getLogger("pyrightclient.server")

SettingsProvider = Callable[[], dict[str, Any]]

# window/logMessage and window/showMessage types
_MESSAGE_LEVELS = {
    1: logging.ERROR,
    2: logging.WARNING,
    3: logging.INFO,
    4: logging.DEBUG,
}


class SessionState(Enum):
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


class Session:
    """One server process serving one workspace root.

    In single-root mode the session is keyed to ``DEFAULT_ROOT_ID`` and
    serves every qualifying document; otherwise it serves the documents
    under its root.
    """

    def __init__(
        self,
        root_id: WorkspaceRootId,
        launcher: ServerLauncher,
        *,
        root: WorkspaceRoot | None = None,
        sink: ProgressSink,
        config: Config | None = None,
        settings: SettingsProvider | None = None,
    ) -> None:
        self._root_id = root_id
        self._root = root
        self._launcher = launcher
        self._sink = sink
        self._config = config or Config()
        self._settings = settings or (lambda: self._config.settings)
        self._state = SessionState.STARTING
        self._server: ServerProcess | None = None
        self._progress: ProgressMultiplexer | None = None
        self._capabilities: dict[str, Any] = {}
        self._server_info: dict[str, Any] = {}
        self._monitor_task: asyncio.Task[None] | None = None
        self._stop_task: asyncio.Task[None] | None = None

    def __repr__(self) -> str:
        return f"<Session {self._root_id} {self._state.value}>"

    @property
    def root_id(self) -> WorkspaceRootId:
        return self._root_id

    @property
    def root(self) -> WorkspaceRoot | None:
        return self._root

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_active(self) -> bool:
        """Starting or running."""
        return self._state in (SessionState.STARTING, SessionState.RUNNING)

    @property
    def capabilities(self) -> dict[str, Any]:
        """Server capabilities negotiated during the handshake."""
        return self._capabilities

    @property
    def server_info(self) -> dict[str, Any]:
        return self._server_info

    @property
    def progress(self) -> ProgressMultiplexer | None:
        return self._progress

    @property
    def pid(self) -> int | None:
        return self._server.pid if self._server is not None else None

    @property
    def label(self) -> str:
        if self._root is not None and self._root.name:
            return self._root.name
        return str(self._root_id)

    def handles(self, document: TextDocument) -> bool:
        """Document selector: language and scheme, plus the root in multi-root mode."""
        language = self._config.language
        if document.language_id != language.language_id or document.scheme != language.scheme:
            return False
        if self._root_id == DEFAULT_ROOT_ID or self._root is None:
            return True
        return self._root.contains(document.uri)

    # -- lifecycle ----------------------------------------------------------

    async def start(self) -> None:
        """Spawn the server and complete the initialize handshake.

        Raises:
            SessionStartError: Launch failed, the server exited or answered
                with an error before the handshake completed, or the
                handshake exceeded ``startup_timeout``.
        """
        if self._state is not SessionState.STARTING or self._server is not None:
            raise RuntimeError(f"{self!r} cannot be started again")

        _log.info("Starting session for %s", self.label)
        try:
            self._server = await self._launcher.launch(self._root)
        except SessionStartError as e:
            self._state = SessionState.STOPPED
            if e.root_id is None:
                e.root_id = self._root_id
            raise

        self._progress = ProgressMultiplexer(self._root_id, self._sink)
        channel = self._server.channel
        self._register_handlers(channel)
        channel.start()

        try:
            await self._handshake(channel)
        except SessionStartError:
            await self._abort_start()
            raise
        except asyncio.CancelledError:
            self.kill()
            raise

        self._state = SessionState.RUNNING
        self._monitor_task = asyncio.create_task(
            self._monitor(), name=f"session-monitor:{self.label}"
        )
        _log.info("Session for %s running (pid=%s)", self.label, self.pid)

    async def stop(self) -> None:
        """Shut the server down. Idempotent, never raises."""
        if self._stop_task is None:
            self._stop_task = asyncio.create_task(
                self._stop(), name=f"session-stop:{self.label}"
            )
        await asyncio.shield(self._stop_task)

    async def wait_stopped(self) -> None:
        """Wait for a stop begun by ``stop()`` to finish. Returns at once if none was."""
        if self._stop_task is not None:
            await asyncio.shield(self._stop_task)

    def kill(self) -> None:
        """Forcibly terminate the server without waiting."""
        if self._state is SessionState.STOPPED:
            return
        _log.warning("Killing session for %s", self.label)
        self._state = SessionState.STOPPED
        if self._progress is not None:
            self._progress.dispose()
        if self._server is not None:
            self._server.kill()
            self._server.channel.cancel_pending(SessionStopped(f"Session for {self.label} killed"))

    # -- channel pass-throughs ---------------------------------------------

    async def request(self, method: str, params: Any = None) -> Any:
        return await self._running_channel().request(method, params)

    async def notify(self, method: str, params: Any = None) -> None:
        await self._running_channel().notify(method, params)

    async def sync_configuration(self, settings: dict[str, Any] | None = None) -> None:
        """Push the synchronized settings section to the server."""
        section = self._config.language.configuration_section
        if settings is None:
            settings = self._settings()
        await self.notify("workspace/didChangeConfiguration", {"settings": {section: settings}})

    def _running_channel(self) -> JsonRpcChannel:
        if self._state is not SessionState.RUNNING or self._server is None:
            raise SessionStopped(f"Session for {self.label} is {self._state.value}")
        return self._server.channel

    # -- internals ----------------------------------------------------------

    def _initialize_params(self) -> dict[str, Any]:
        root = self._root
        root_path = root.path if root is not None else None
        return {
            "processId": os.getpid(),
            "clientInfo": {"name": "pyright-client", "version": __version__},
            "rootUri": root.uri if root is not None else None,
            "rootPath": str(root_path) if root_path is not None else None,
            "workspaceFolders": (
                [{"uri": root.uri, "name": root.name}] if root is not None else None
            ),
            "capabilities": {
                "window": {"workDoneProgress": True},
                "workspace": {
                    "configuration": True,
                    "workspaceFolders": True,
                    "didChangeConfiguration": {"dynamicRegistration": True},
                },
            },
            "initializationOptions": {},
        }

    async def _handshake(self, channel: JsonRpcChannel) -> None:
        assert self._server is not None
        timeout = self._config.session.startup_timeout
        init = asyncio.ensure_future(channel.request("initialize", self._initialize_params()))
        exited = asyncio.ensure_future(self._server.wait())
        try:
            done, _ = await asyncio.wait(
                {init, exited}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            for task in (init, exited):
                if not task.done():
                    task.cancel()

        if init in done and init.exception() is None:
            result = init.result()
        elif exited in done:
            raise SessionStartError(
                f"Server for {self.label} exited with code {exited.result()} "
                "before completing the handshake",
                self._root_id,
            )
        elif init in done:
            exc = init.exception()
            raise SessionStartError(
                f"Initialize handshake with {self.label} failed: {exc}", self._root_id
            ) from exc
        else:
            raise SessionStartError(
                f"Server for {self.label} did not complete the handshake within {timeout}s",
                self._root_id,
            )

        if isinstance(result, dict):
            capabilities = result.get("capabilities")
            self._capabilities = capabilities if isinstance(capabilities, dict) else {}
            server_info = result.get("serverInfo")
            self._server_info = server_info if isinstance(server_info, dict) else {}

        try:
            await channel.notify("initialized", {})
        except SessionStopped as e:
            raise SessionStartError(
                f"Server for {self.label} went away after initialize: {e}", self._root_id
            ) from e

    async def _abort_start(self) -> None:
        assert self._server is not None
        self._server.kill()
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(self._server.wait(), self._config.session.stop_grace_period)
        await self._release(SessionStopped(f"Session for {self.label} failed to start"))

    async def _monitor(self) -> None:
        assert self._server is not None
        code = await self._server.wait()
        if self._state is SessionState.RUNNING:
            _log.error("Server for %s exited unexpectedly with code %s", self.label, code)
            await self._release(SessionStopped(f"Server for {self.label} exited with code {code}"))

    async def _stop(self) -> None:
        if self._server is None or self._state is SessionState.STOPPED:
            self._state = SessionState.STOPPED
            if self._server is not None:
                await self._release(SessionStopped(f"Session for {self.label} stopped"))
            return

        self._state = SessionState.STOPPING
        _log.info("Stopping session for %s", self.label)
        server = self._server
        cancelled = server.channel.cancel_pending(
            SessionStopped(f"Session for {self.label} is stopping")
        )
        if cancelled:
            _log.debug("Cancelled %d in-flight request(s) for %s", cancelled, self.label)

        try:
            await self._graceful_shutdown(server)
        except SessionStopTimeout as e:
            _log.warning("%s; terminating forcibly", e)
            await self._force_terminate(server)
        except (SessionStopped, ResponseError) as e:
            _log.debug("Graceful shutdown of %s interrupted: %s", self.label, e)
            await self._force_terminate(server)
        finally:
            await self._release(SessionStopped(f"Session for {self.label} stopped"))
        _log.info("Session for %s stopped", self.label)

    async def _graceful_shutdown(self, server: ServerProcess) -> None:
        grace = self._config.session.stop_grace_period
        try:
            await asyncio.wait_for(server.channel.request("shutdown"), grace)
        except asyncio.TimeoutError as e:
            raise SessionStopTimeout(
                f"Server for {self.label} did not acknowledge shutdown within {grace}s"
            ) from e

        await server.channel.notify("exit")
        try:
            await asyncio.wait_for(server.wait(), grace)
        except asyncio.TimeoutError as e:
            raise SessionStopTimeout(f"Server for {self.label} did not exit within {grace}s") from e

    async def _force_terminate(self, server: ServerProcess) -> None:
        server.kill()
        try:
            await asyncio.wait_for(server.wait(), self._config.session.stop_grace_period)
        except asyncio.TimeoutError:
            _log.error("Server pid=%s for %s survived kill", server.pid, self.label)

    async def _release(self, reason: BaseException) -> None:
        """Dispose progress, close the channel, and mark the session stopped."""
        self._state = SessionState.STOPPED
        if self._progress is not None:
            self._progress.dispose()
        monitor = self._monitor_task
        if monitor is not None and monitor is not asyncio.current_task() and not monitor.done():
            monitor.cancel()
        if self._server is not None:
            await self._server.channel.close(reason)

    def _register_handlers(self, channel: JsonRpcChannel) -> None:
        progress = self._progress
        assert progress is not None
        channel.on_notification("$/progress", progress.handle)
        channel.on_notification("pyright/beginProgress", progress.handle_legacy_begin)
        channel.on_notification("pyright/reportProgress", progress.handle_legacy_report)
        channel.on_notification("pyright/endProgress", progress.handle_legacy_end)
        channel.on_notification("window/logMessage", self._on_log_message)
        channel.on_notification("window/showMessage", self._on_log_message)
        channel.on_notification("telemetry/event", lambda params: None)

        channel.on_request("window/workDoneProgress/create", lambda params: None)
        channel.on_request("workspace/configuration", self._on_configuration)
        channel.on_request("workspace/workspaceFolders", self._on_workspace_folders)
        channel.on_request("client/registerCapability", lambda params: None)
        channel.on_request("client/unregisterCapability", lambda params: None)

    def _on_log_message(self, params: Any) -> None:
        if not isinstance(params, dict):
            return
        level = _MESSAGE_LEVELS.get(params.get("type"), logging.INFO)
        _server_log.log(level, "[%s] %s", self.label, params.get("message", ""))

    def _on_configuration(self, params: Any) -> list[Any]:
        items = params.get("items", []) if isinstance(params, dict) else []
        section_name = self._config.language.configuration_section
        settings = self._settings()
        results: list[Any] = []
        for item in items:
            section = item.get("section") if isinstance(item, dict) else None
            results.append(_lookup_section(section_name, settings, section))
        return results

    def _on_workspace_folders(self, params: Any) -> list[dict[str, str]] | None:
        if self._root is None:
            return None
        return [{"uri": self._root.uri, "name": self._root.name}]


def _lookup_section(name: str, settings: dict[str, Any], section: str | None) -> Any:
    """Resolve a dotted ``section`` against the synchronized settings."""
    if not section:
        return {name: settings}
    if section == name:
        return settings
    if not section.startswith(name + "."):
        return None
    value: Any = settings
    for part in section[len(name) + 1 :].split("."):
        if not isinstance(value, dict) or part not in value:
            return None
        value = value[part]
    return value
