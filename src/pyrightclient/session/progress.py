"""Progress multiplexer: server work-done notifications to UI events.

Each session owns one multiplexer. Per token the life cycle is
``begin -> report* -> end``; the multiplexer keeps one record per active
token and emits ``started``/``updated``/``finished`` events to a sink.
Disposing it closes every still-active token so the UI never shows
orphaned work.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from pyrightclient.errors import ProtocolAnomaly
from pyrightclient.session.notifications import (
    ProgressToken,
    WorkDoneProgressBegin,
    WorkDoneProgressEnd,
    WorkDoneProgressReport,
    parse_legacy_message,
    parse_progress,
)
from pyrightclient.workspace import WorkspaceRootId

_log = logging.getLogger("pyrightclient.progress")

# Token used for pyright/beginProgress, pyright/reportProgress, pyright/endProgress
LEGACY_TOKEN = "pyright/progress"
LEGACY_TITLE = "Pyright"


class ProgressPhase(str, Enum):
    STARTED = "started"
    UPDATED = "updated"
    FINISHED = "finished"


@dataclass(frozen=True)
class ProgressEvent:
    """One UI-facing progress event."""

    root_id: WorkspaceRootId
    token: ProgressToken
    phase: ProgressPhase
    title: str | None = None
    message: str | None = None
    percentage: int | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "root": str(self.root_id),
            "token": self.token,
            "phase": self.phase.value,
        }
        for key in ("title", "message", "percentage"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data


ProgressSink = Callable[[ProgressEvent], None]


@dataclass
class ActiveWork:
    """Record of a token between begin and end."""

    token: ProgressToken
    title: str
    message: str | None = None
    percentage: int | None = None
    cancellable: bool = False


class ProgressMultiplexer:
    """Tracks active work tokens for one session and republishes them."""

    def __init__(self, root_id: WorkspaceRootId, sink: ProgressSink) -> None:
        self._root_id = root_id
        self._sink = sink
        self._active: dict[ProgressToken, ActiveWork] = {}
        self._disposed = False

    @property
    def active_tokens(self) -> list[ProgressToken]:
        return list(self._active)

    @property
    def disposed(self) -> bool:
        return self._disposed

    def get(self, token: ProgressToken) -> ActiveWork | None:
        return self._active.get(token)

    # -- notification entry points (never raise) --------------------------

    def handle(self, params: Any) -> None:
        """Handle raw ``$/progress`` params."""
        if self._ignore("$/progress"):
            return
        try:
            progress = parse_progress(params)
            value = progress.value
            if isinstance(value, WorkDoneProgressBegin):
                self.begin(
                    progress.token,
                    value.title,
                    message=value.message,
                    percentage=value.percentage,
                    cancellable=bool(value.cancellable),
                )
            elif isinstance(value, WorkDoneProgressReport):
                self.report(progress.token, message=value.message, percentage=value.percentage)
            elif isinstance(value, WorkDoneProgressEnd):
                self.end(progress.token, message=value.message)
        except ProtocolAnomaly as e:
            _log.warning("Protocol anomaly from %s: %s", self._root_id, e)

    def handle_legacy_begin(self, params: Any = None) -> None:
        if self._ignore("pyright/beginProgress"):
            return
        try:
            self.begin(LEGACY_TOKEN, LEGACY_TITLE)
        except ProtocolAnomaly as e:
            _log.warning("Protocol anomaly from %s: %s", self._root_id, e)

    def handle_legacy_report(self, params: Any) -> None:
        if self._ignore("pyright/reportProgress"):
            return
        try:
            self.report(LEGACY_TOKEN, message=parse_legacy_message(params))
        except ProtocolAnomaly as e:
            _log.warning("Protocol anomaly from %s: %s", self._root_id, e)

    def handle_legacy_end(self, params: Any = None) -> None:
        if self._ignore("pyright/endProgress"):
            return
        try:
            self.end(LEGACY_TOKEN)
        except ProtocolAnomaly as e:
            _log.warning("Protocol anomaly from %s: %s", self._root_id, e)

    # -- state machine (raise ProtocolAnomaly on invalid transitions) -----

    def begin(
        self,
        token: ProgressToken,
        title: str,
        *,
        message: str | None = None,
        percentage: int | None = None,
        cancellable: bool = False,
    ) -> None:
        if token in self._active:
            raise ProtocolAnomaly(f"begin for already active progress token {token!r}")
        work = ActiveWork(
            token=token,
            title=title,
            message=message,
            percentage=percentage,
            cancellable=cancellable,
        )
        self._active[token] = work
        self._emit(work, ProgressPhase.STARTED)

    def report(
        self,
        token: ProgressToken,
        *,
        message: str | None = None,
        percentage: int | None = None,
    ) -> None:
        work = self._active.get(token)
        if work is None:
            raise ProtocolAnomaly(f"report for unknown progress token {token!r}")
        if message is not None:
            work.message = message
        if percentage is not None:
            work.percentage = percentage
        self._emit(work, ProgressPhase.UPDATED)

    def end(self, token: ProgressToken, *, message: str | None = None) -> None:
        work = self._active.pop(token, None)
        if work is None:
            raise ProtocolAnomaly(f"end for unknown progress token {token!r}")
        if message is not None:
            work.message = message
        self._emit(work, ProgressPhase.FINISHED)

    def dispose(self) -> int:
        """Force-close all active work. Returns the number of tokens closed."""
        if self._disposed:
            return 0
        self._disposed = True
        closed = list(self._active.values())
        self._active.clear()
        for work in closed:
            self._emit(work, ProgressPhase.FINISHED)
        if closed:
            _log.debug("Force-closed %d progress token(s) for %s", len(closed), self._root_id)
        return len(closed)

    def _ignore(self, method: str) -> bool:
        if self._disposed:
            _log.debug("Ignoring %s for %s after disposal", method, self._root_id)
        return self._disposed

    def _emit(self, work: ActiveWork, phase: ProgressPhase) -> None:
        event = ProgressEvent(
            root_id=self._root_id,
            token=work.token,
            phase=phase,
            title=work.title,
            message=work.message,
            percentage=work.percentage,
        )
        try:
            self._sink(event)
        except Exception:
            _log.exception("Progress sink failed for %s", work.token)
