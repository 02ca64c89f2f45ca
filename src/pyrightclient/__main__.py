"""Command-line host for the language client supervisor.

Usage:
    python -m pyrightclient [FOLDER ...] [--verbose N] [--debug]

Editor events are read as JSON lines on stdin (see ``events.parse_event``).
Progress events and error notifications are written as JSON lines on
stdout. EOF on stdin, SIGINT, or SIGTERM shuts every session down.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import signal
import sys
import threading
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any, TextIO

from pyrightclient.config import load_config
from pyrightclient.events import Deactivate, EditorEvent, parse_event
from pyrightclient.logging import get_logger, setup_logging
from pyrightclient.session.progress import ProgressEvent
from pyrightclient.supervisor import Supervisor
from pyrightclient.workspace import TextDocument, WorkspaceRoot

log = get_logger()


class JsonLinesHost:
    """EditorHost that reports to a text stream, one JSON object per line."""

    def __init__(self, roots: list[WorkspaceRoot], out: TextIO) -> None:
        self._roots = roots
        self._out = out

    def workspace_roots(self) -> list[WorkspaceRoot]:
        return list(self._roots)

    def open_documents(self) -> list[TextDocument]:
        return []

    def show_error_message(self, message: str) -> None:
        self._write({"type": "error", "message": message})

    def report_progress(self, event: ProgressEvent) -> None:
        self._write({"type": "progress", **event.to_dict()})

    def _write(self, data: dict[str, Any]) -> None:
        self._out.write(json.dumps(data) + "\n")
        self._out.flush()


def _read_stdin(loop: asyncio.AbstractEventLoop, queue: asyncio.Queue[EditorEvent]) -> None:
    """Reader thread: forward parsed stdin lines to the event queue.

    Deactivate is always posted last, so EOF shuts the supervisor down.
    """
    try:
        for line in sys.stdin:
            line = line.strip()
            if not line:
                continue
            try:
                event = parse_event(line)
            except ValueError as e:
                log.warning("Ignoring invalid event %r: %s", line, e)
                continue
            _post(loop, queue, event)
    finally:
        _post(loop, queue, Deactivate())


def _post(
    loop: asyncio.AbstractEventLoop, queue: asyncio.Queue[EditorEvent], event: EditorEvent
) -> None:
    # The loop may already be closed once the supervisor has shut down
    with contextlib.suppress(RuntimeError):
        loop.call_soon_threadsafe(queue.put_nowait, event)


async def _events(queue: asyncio.Queue[EditorEvent]) -> AsyncIterator[EditorEvent]:
    while True:
        event = await queue.get()
        yield event
        if isinstance(event, Deactivate):
            return


async def _main(supervisor: Supervisor) -> None:
    queue: asyncio.Queue[EditorEvent] = asyncio.Queue()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, queue.put_nowait, Deactivate())
        except (NotImplementedError, RuntimeError):
            pass  # Windows event loops have no signal handlers

    # Daemon thread: a blocked stdin read must not keep the process alive
    threading.Thread(target=_read_stdin, args=(loop, queue), daemon=True).start()
    await supervisor.run(_events(queue))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pyright-client",
        description="Supervise Pyright language server sessions for workspace folders.",
    )
    parser.add_argument("folders", nargs="*", help="Workspace folders (default: cwd)")
    parser.add_argument("--verbose", "-v", type=int, choices=range(5), help="Verbosity 0-4")
    parser.add_argument("--debug", action="store_true", help="Launch the server in debug mode")
    parser.add_argument("--log-file", help="Write the log to this file")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    folders = [Path(f) for f in args.folders] or [Path.cwd()]

    config = load_config(folders[0] if len(folders) == 1 else None)
    if args.verbose is not None:
        config.logging.verbose = args.verbose
    if args.log_file:
        config.logging.file = args.log_file
    if args.debug:
        config.server.debug = True
    setup_logging(config.logging)

    roots = [WorkspaceRoot.from_path(folder) for folder in folders]
    host = JsonLinesHost(roots, sys.stdout)
    supervisor = Supervisor(host, config)

    log.info("Starting with %d folder(s)", len(roots))
    try:
        asyncio.run(_main(supervisor))
    except KeyboardInterrupt:
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
