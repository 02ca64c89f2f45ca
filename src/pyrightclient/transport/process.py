"""Language server process launcher.

A launcher turns a workspace root into a running server process with a
JSON-RPC channel attached to its stdio. Sessions only see the
``ServerProcess`` protocol, so tests can substitute in-memory servers.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
from typing import TYPE_CHECKING, Protocol

from pyrightclient.errors import SessionStartError
from pyrightclient.transport.channel import JsonRpcChannel

if TYPE_CHECKING:
    from pyrightclient.config.schema import ServerConfig
    from pyrightclient.workspace import WorkspaceRoot

_log = logging.getLogger("pyrightclient.transport.process")
_server_log = logging.getLogger("pyrightclient.server")


class ServerProcess(Protocol):
    """A running server process and its channel."""

    @property
    def channel(self) -> JsonRpcChannel: ...

    @property
    def pid(self) -> int | None: ...

    @property
    def returncode(self) -> int | None: ...

    async def wait(self) -> int: ...

    def terminate(self) -> None: ...

    def kill(self) -> None: ...


class ServerLauncher(Protocol):
    """Spawns one server process per session."""

    async def launch(self, root: WorkspaceRoot | None) -> ServerProcess: ...


class SubprocessServer:
    """ServerProcess backed by an asyncio subprocess talking over stdio."""

    def __init__(self, process: asyncio.subprocess.Process, channel: JsonRpcChannel) -> None:
        self._process = process
        self._channel = channel
        self._stderr_task: asyncio.Task[None] | None = None
        if process.stderr is not None:
            self._stderr_task = asyncio.create_task(
                self._drain_stderr(process.stderr), name=f"stderr:{process.pid}"
            )

    @property
    def channel(self) -> JsonRpcChannel:
        return self._channel

    @property
    def pid(self) -> int | None:
        return self._process.pid

    @property
    def returncode(self) -> int | None:
        return self._process.returncode

    async def wait(self) -> int:
        code = await self._process.wait()
        if self._stderr_task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._stderr_task
        return code

    def terminate(self) -> None:
        if self._process.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                self._process.terminate()

    def kill(self) -> None:
        if self._process.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                self._process.kill()

    async def _drain_stderr(self, stream: asyncio.StreamReader) -> None:
        # An undrained pipe would eventually block the server
        try:
            while line := await stream.readline():
                _server_log.debug(
                    "[%s] %s", self._process.pid, line.decode("utf-8", "replace").rstrip()
                )
        except (ValueError, OSError) as e:
            _log.debug("Stopped reading stderr of pid %s: %s", self._process.pid, e)


class SubprocessLauncher:
    """Launch the configured server command with stdio pipes."""

    def __init__(self, config: ServerConfig) -> None:
        self._config = config

    async def launch(self, root: WorkspaceRoot | None) -> SubprocessServer:
        argv = self._config.argv()
        if not argv:
            raise SessionStartError("No server command configured")

        env = os.environ.copy()
        env.update(self._config.env)

        cwd = None
        if root is not None and root.path is not None and root.path.is_dir():
            cwd = str(root.path)

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
                env=env,
            )
        except FileNotFoundError as e:
            raise SessionStartError(f"Server executable not found: {argv[0]}") from e
        except PermissionError as e:
            raise SessionStartError(f"Permission denied launching server: {argv[0]}") from e
        except OSError as e:
            raise SessionStartError(f"Could not launch server {argv[0]}: {e}") from e

        assert process.stdout is not None and process.stdin is not None
        name = root.name if root is not None and root.name else f"pid {process.pid}"
        _log.info("Launched server pid=%s for %s: %s", process.pid, name, " ".join(argv))
        channel = JsonRpcChannel(process.stdout, process.stdin, name=name)
        return SubprocessServer(process, channel)
