"""Shared fakes for session lifecycle tests.

FakeServer stands in for a language server process: it answers the
handshake and shutdown according to its configured behaviour and lets the
test push notifications and requests at the client.
"""

from __future__ import annotations

import asyncio
import inspect
import json
from typing import Any

from pyrightclient.config.schema import Config, SessionConfig
from pyrightclient.errors import SessionStopped
from pyrightclient.session.progress import ProgressEvent, ProgressPhase
from pyrightclient.transport.channel import ResponseError
from pyrightclient.transport.lsp.framing import encode_message
from pyrightclient.workspace import TextDocument, WorkspaceRoot


def fast_config(**session: float) -> Config:
    """Config with short timeouts so timeout paths run quickly."""
    values = {"startup_timeout": 1.0, "stop_grace_period": 0.2, "shutdown_timeout": 1.0}
    values.update(session)
    return Config(session=SessionConfig(**values))


def frame(msg: dict[str, Any]) -> bytes:
    return encode_message(msg)


class FakeWriter:
    """StreamWriter stand-in that records framed output."""

    def __init__(self) -> None:
        self.buffer = bytearray()
        self.closed = False

    def write(self, data: bytes) -> None:
        self.buffer.extend(data)

    async def drain(self) -> None:
        if self.closed:
            raise ConnectionResetError("writer closed")

    def close(self) -> None:
        self.closed = True

    def messages(self) -> list[dict[str, Any]]:
        out: list[dict[str, Any]] = []
        data = bytes(self.buffer)
        while data:
            header, _, rest = data.partition(b"\r\n\r\n")
            length = int(header.split(b":")[1])
            out.append(json.loads(rest[:length]))
            data = rest[length:]
        return out


class FakeChannel:
    """In-memory replacement for JsonRpcChannel."""

    def __init__(self, server: FakeServer) -> None:
        self._server = server
        self._notification_handlers: dict[str, Any] = {}
        self._request_handlers: dict[str, Any] = {}
        self._pending: set[asyncio.Future[Any]] = set()
        self.requests: list[tuple[str, Any]] = []
        self.notifications: list[tuple[str, Any]] = []
        self.started = False
        self.is_closed = False

    def on_notification(self, method: str, handler: Any) -> None:
        self._notification_handlers[method] = handler

    def on_request(self, method: str, handler: Any) -> None:
        self._request_handlers[method] = handler

    def start(self) -> None:
        self.started = True

    async def request(self, method: str, params: Any = None) -> Any:
        if self.is_closed:
            raise SessionStopped("fake channel closed")
        self.requests.append((method, params))
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._pending.add(future)
        try:
            self._server.handle_request(method, params, future)
            return await future
        finally:
            self._pending.discard(future)

    async def notify(self, method: str, params: Any = None) -> None:
        if self.is_closed:
            raise SessionStopped("fake channel closed")
        self.notifications.append((method, params))
        self._server.handle_notification(method, params)

    def cancel_pending(self, exc: BaseException) -> int:
        cancelled = 0
        for future in list(self._pending):
            if not future.done():
                future.set_exception(exc)
                cancelled += 1
        return cancelled

    async def close(self, exc: BaseException | None = None) -> None:
        self.eof(exc)

    def eof(self, exc: BaseException | None = None) -> None:
        if self.is_closed:
            return
        self.is_closed = True
        self.cancel_pending(exc or SessionStopped("fake channel closed"))

    # server -> client

    def send_notification(self, method: str, params: Any = None) -> None:
        handler = self._notification_handlers.get(method)
        if handler is not None:
            handler(params)

    async def send_request(self, method: str, params: Any = None) -> Any:
        handler = self._request_handlers[method]
        result = handler(params)
        if inspect.isawaitable(result):
            result = await result
        return result

    def send_progress(self, token: int | str, **value: Any) -> None:
        self.send_notification("$/progress", {"token": token, "value": value})


class FakeServer:
    """Scripted language server process.

    Args:
        initialize: "ok", "hang", "error", or "exit" (exit before answering).
        shutdown: "ok", "hang" (never answer), or "manual" (test resolves
            ``shutdown_future``).
        exit_on_exit: Exit with code 0 when the "exit" notification arrives.
    """

    _next_pid = 1000

    def __init__(
        self,
        *,
        initialize: str = "ok",
        shutdown: str = "ok",
        exit_on_exit: bool = True,
        capabilities: dict[str, Any] | None = None,
    ) -> None:
        FakeServer._next_pid += 1
        self.pid: int | None = FakeServer._next_pid
        self.initialize = initialize
        self.shutdown = shutdown
        self.exit_on_exit = exit_on_exit
        self.capabilities = capabilities if capabilities is not None else {"hoverProvider": True}
        self.channel = FakeChannel(self)
        self.returncode: int | None = None
        self.killed = False
        self.shutdown_future: asyncio.Future[Any] | None = None
        self._exited = asyncio.Event()

    async def wait(self) -> int:
        await self._exited.wait()
        assert self.returncode is not None
        return self.returncode

    def terminate(self) -> None:
        self.exit(-15)

    def kill(self) -> None:
        if self.returncode is None:
            self.killed = True
        self.exit(-9)

    def exit(self, code: int = 0) -> None:
        """Simulate the process exiting: the channel hits EOF."""
        if self.returncode is not None:
            return
        self.returncode = code
        self._exited.set()
        self.channel.eof()

    def handle_request(self, method: str, params: Any, future: asyncio.Future[Any]) -> None:
        if method == "initialize":
            if self.initialize == "ok":
                future.set_result(
                    {"capabilities": self.capabilities, "serverInfo": {"name": "fake"}}
                )
            elif self.initialize == "error":
                future.set_exception(ResponseError(-32603, "initialize exploded"))
            elif self.initialize == "exit":
                self.exit(1)
        elif method == "shutdown":
            if self.shutdown == "ok":
                future.set_result(None)
            elif self.shutdown == "manual":
                self.shutdown_future = future
        else:
            future.set_result({"method": method})

    def handle_notification(self, method: str, params: Any) -> None:
        if method == "exit" and self.exit_on_exit:
            self.exit(0)


class FakeLauncher:
    """ServerLauncher producing FakeServers.

    ``behaviour`` maps a root URI (None for rootless sessions) to FakeServer
    keyword arguments; ``default`` applies to everything else.
    """

    def __init__(self, **default: Any) -> None:
        self.default = default
        self.behaviour: dict[str | None, dict[str, Any]] = {}
        self.fail_with: Exception | None = None
        self.servers: list[FakeServer] = []
        self.launched_roots: list[WorkspaceRoot | None] = []

    async def launch(self, root: WorkspaceRoot | None) -> FakeServer:
        self.launched_roots.append(root)
        if self.fail_with is not None:
            raise self.fail_with
        kwargs = self.behaviour.get(root.uri if root is not None else None, self.default)
        server = FakeServer(**kwargs)
        self.servers.append(server)
        return server

    @property
    def launch_count(self) -> int:
        return len(self.launched_roots)


class RecordingSink:
    """Progress sink that keeps every event."""

    def __init__(self) -> None:
        self.events: list[ProgressEvent] = []

    def __call__(self, event: ProgressEvent) -> None:
        self.events.append(event)

    def phases(self, token: int | str | None = None) -> list[ProgressPhase]:
        return [e.phase for e in self.events if token is None or e.token == token]


class FakeHost:
    """EditorHost stand-in."""

    def __init__(
        self,
        roots: list[WorkspaceRoot] | None = None,
        documents: list[TextDocument] | None = None,
    ) -> None:
        self.roots = roots or []
        self.documents = documents or []
        self.errors: list[str] = []
        self.progress = RecordingSink()

    def workspace_roots(self) -> list[WorkspaceRoot]:
        return list(self.roots)

    def open_documents(self) -> list[TextDocument]:
        return list(self.documents)

    def show_error_message(self, message: str) -> None:
        self.errors.append(message)

    def report_progress(self, event: ProgressEvent) -> None:
        self.progress(event)


def root(name: str) -> WorkspaceRoot:
    return WorkspaceRoot(uri=f"file:///work/{name}", name=name)


def py_doc(path: str) -> TextDocument:
    return TextDocument(uri=f"file:///work/{path}", language_id="python")

