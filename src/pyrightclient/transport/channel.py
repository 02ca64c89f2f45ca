"""JSON-RPC 2.0 channel over a framed byte stream.

One reader task decodes inbound messages and dispatches them in arrival
order: responses resolve pending request futures, notifications run their
handler inline, and server-to-client requests are answered. Handlers must
not await requests on the same channel.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
from collections.abc import Callable
from typing import Any, Protocol

from pyrightclient.errors import PyrightClientError, SessionStopped
from pyrightclient.transport.lsp.framing import FramingError, read_message, write_message

_log = logging.getLogger("pyrightclient.transport.channel")

# JSON-RPC / LSP error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INTERNAL_ERROR = -32603

NotificationHandler = Callable[[Any], None]
RequestHandler = Callable[[Any], Any]


class StreamWriterLike(Protocol):
    def write(self, data: bytes) -> None: ...

    async def drain(self) -> None: ...

    def close(self) -> None: ...


class ResponseError(PyrightClientError):
    """The peer answered a request with a JSON-RPC error."""

    def __init__(self, code: int, message: str, data: Any = None) -> None:
        super().__init__(f"{message} (code {code})")
        self.code = code
        self.message = message
        self.data = data


class JsonRpcChannel:
    """Bidirectional JSON-RPC connection to one server process."""

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: StreamWriterLike,
        *,
        name: str = "server",
    ) -> None:
        self._reader = reader
        self._writer = writer
        self._name = name
        self._next_id = 0
        self._pending: dict[int, asyncio.Future[Any]] = {}
        self._notification_handlers: dict[str, NotificationHandler] = {}
        self._request_handlers: dict[str, RequestHandler] = {}
        self._write_lock = asyncio.Lock()
        self._reader_task: asyncio.Task[None] | None = None
        self._closed = asyncio.Event()

    @property
    def name(self) -> str:
        return self._name

    @property
    def is_closed(self) -> bool:
        return self._closed.is_set()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def on_notification(self, method: str, handler: NotificationHandler) -> None:
        self._notification_handlers[method] = handler

    def on_request(self, method: str, handler: RequestHandler) -> None:
        """Register a handler for server-to-client requests.

        The handler gets the params and returns the result, or an awaitable
        of it. Raising ResponseError answers with that error.
        """
        self._request_handlers[method] = handler

    def start(self) -> None:
        """Start the reader task."""
        if self._reader_task is None:
            self._reader_task = asyncio.create_task(
                self._read_loop(), name=f"jsonrpc-reader:{self._name}"
            )

    async def wait_closed(self) -> None:
        await self._closed.wait()

    async def request(self, method: str, params: Any = None) -> Any:
        """Send a request and wait for its result.

        Raises:
            ResponseError: The peer answered with an error.
            SessionStopped: The channel closed before a response arrived.
        """
        if self.is_closed:
            raise SessionStopped(f"Channel to {self._name} is closed")

        self._next_id += 1
        request_id = self._next_id
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future

        msg: dict[str, Any] = {"jsonrpc": "2.0", "id": request_id, "method": method}
        if params is not None:
            msg["params"] = params

        try:
            await self._send(msg)
            return await future
        finally:
            self._pending.pop(request_id, None)

    async def notify(self, method: str, params: Any = None) -> None:
        if self.is_closed:
            raise SessionStopped(f"Channel to {self._name} is closed")
        msg: dict[str, Any] = {"jsonrpc": "2.0", "method": method}
        if params is not None:
            msg["params"] = params
        await self._send(msg)

    def cancel_pending(self, exc: BaseException) -> int:
        """Fail every outstanding request with ``exc``. Returns how many."""
        cancelled = 0
        for future in list(self._pending.values()):
            if not future.done():
                future.set_exception(exc)
                cancelled += 1
        return cancelled

    async def close(self, exc: BaseException | None = None) -> None:
        """Close the channel. Outstanding requests fail with ``exc``."""
        self._mark_closed(exc)

        task = self._reader_task
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        with contextlib.suppress(OSError, RuntimeError):
            self._writer.close()

    def _mark_closed(self, exc: BaseException | None) -> None:
        if self.is_closed:
            return
        self._closed.set()
        self.cancel_pending(exc or SessionStopped(f"Channel to {self._name} closed"))

    async def _send(self, msg: dict[str, Any]) -> None:
        async with self._write_lock:
            try:
                await write_message(self._writer, msg)  # type: ignore[arg-type]
            except OSError as e:
                raise SessionStopped(f"Cannot write to {self._name}: {e}") from e

    async def _read_loop(self) -> None:
        reason: BaseException | None = None
        try:
            while True:
                try:
                    message = await read_message(self._reader)
                except FramingError as e:
                    if e.recoverable:
                        _log.warning("Protocol anomaly from %s: %s", self._name, e)
                        continue
                    raise
                if message is None:
                    _log.debug("Channel to %s reached EOF", self._name)
                    break
                try:
                    await self._dispatch(message)
                except Exception:
                    _log.exception(
                        "Protocol anomaly from %s: cannot dispatch %r", self._name, message
                    )
        except FramingError as e:
            _log.error("Unrecoverable framing error from %s: %s", self._name, e)
            reason = SessionStopped(f"Channel to {self._name} broken: {e}")
        except OSError as e:
            _log.warning("Read error from %s: %s", self._name, e)
            reason = SessionStopped(f"Channel to {self._name} broken: {e}")
        finally:
            self._mark_closed(reason)

    async def _dispatch(self, message: dict[str, Any]) -> None:
        method = message.get("method")
        if isinstance(method, str):
            if "id" in message:
                await self._handle_request(message["id"], method, message.get("params"))
            else:
                self._handle_notification(method, message.get("params"))
            return

        if "id" in message and ("result" in message or "error" in message):
            self._handle_response(message)
            return

        _log.warning("Protocol anomaly from %s: unrecognized message %r", self._name, message)

    def _handle_notification(self, method: str, params: Any) -> None:
        handler = self._notification_handlers.get(method)
        if handler is None:
            if not method.startswith("$/"):
                _log.debug("No handler for notification %s from %s", method, self._name)
            return
        try:
            handler(params)
        except Exception:
            _log.exception("Notification handler for %s failed", method)

    def _handle_response(self, message: dict[str, Any]) -> None:
        request_id = message["id"]
        future = self._pending.get(request_id) if isinstance(request_id, int) else None
        if future is None or future.done():
            _log.warning(
                "Protocol anomaly from %s: response for unknown request %r", self._name, request_id
            )
            return

        error = message.get("error")
        if error is not None:
            if not isinstance(error, dict):
                error = {"code": INTERNAL_ERROR, "message": str(error)}
            code = error.get("code")
            if isinstance(code, bool) or not isinstance(code, int):
                _log.warning("Protocol anomaly from %s: error code %r", self._name, code)
                code = INTERNAL_ERROR
            future.set_exception(
                ResponseError(
                    code,
                    str(error.get("message", "")),
                    error.get("data"),
                )
            )
        else:
            future.set_result(message.get("result"))

    async def _handle_request(self, request_id: Any, method: str, params: Any) -> None:
        handler = self._request_handlers.get(method)
        response: dict[str, Any] = {"jsonrpc": "2.0", "id": request_id}

        if handler is None:
            response["error"] = {
                "code": METHOD_NOT_FOUND,
                "message": f"Unhandled method {method}",
            }
        else:
            try:
                result = handler(params)
                if inspect.isawaitable(result):
                    result = await result
                response["result"] = result
            except ResponseError as e:
                response["error"] = {"code": e.code, "message": e.message}
            except Exception as e:
                _log.exception("Request handler for %s failed", method)
                response["error"] = {"code": INTERNAL_ERROR, "message": str(e)}

        try:
            await self._send(response)
        except SessionStopped as e:
            _log.debug("Could not answer %s: %s", method, e)
