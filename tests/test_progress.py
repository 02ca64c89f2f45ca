"""Tests for the progress multiplexer and notification validation."""

from __future__ import annotations

import logging

import pytest

from pyrightclient.errors import ProtocolAnomaly
from pyrightclient.session.notifications import (
    WorkDoneProgressBegin,
    WorkDoneProgressEnd,
    parse_legacy_message,
    parse_progress,
)
from pyrightclient.session.progress import (
    LEGACY_TOKEN,
    ProgressEvent,
    ProgressMultiplexer,
    ProgressPhase,
)
from pyrightclient.workspace import WorkspaceRootId
from tests.utils import RecordingSink

ROOT = WorkspaceRootId.from_uri("file:///work/app")
STARTED, UPDATED, FINISHED = ProgressPhase.STARTED, ProgressPhase.UPDATED, ProgressPhase.FINISHED


def progress(token, **value):
    return {"token": token, "value": value}


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def mux(sink: RecordingSink) -> ProgressMultiplexer:
    return ProgressMultiplexer(ROOT, sink)


class TestParseProgress:
    """Boundary validation of $/progress params."""

    def test_begin(self) -> None:
        parsed = parse_progress(progress("t1", kind="begin", title="Indexing", percentage=0))
        assert parsed.token == "t1"
        assert isinstance(parsed.value, WorkDoneProgressBegin)
        assert parsed.value.title == "Indexing"

    def test_integer_token_kept(self) -> None:
        parsed = parse_progress(progress(7, kind="end"))
        assert parsed.token == 7
        assert isinstance(parsed.value, WorkDoneProgressEnd)

    def test_extra_fields_ignored(self) -> None:
        parsed = parse_progress(progress("t", kind="end", extra="x"))
        assert isinstance(parsed.value, WorkDoneProgressEnd)

    @pytest.mark.parametrize(
        "params",
        [
            progress("t", kind="pause"),
            progress("t", kind="begin"),  # title is required
            progress("t", kind="report", percentage=150),
            {"value": {"kind": "end"}},
            "not an object",
            None,
        ],
    )
    def test_invalid_params_raise_anomaly(self, params) -> None:
        with pytest.raises(ProtocolAnomaly, match="Malformed"):
            parse_progress(params)

    def test_legacy_message(self) -> None:
        assert parse_legacy_message("Analyzing 3 files") == "Analyzing 3 files"
        assert parse_legacy_message(["Analyzing"]) == "Analyzing"
        assert parse_legacy_message(None) is None
        with pytest.raises(ProtocolAnomaly):
            parse_legacy_message({"message": 1})


class TestStateMachine:
    """Per-token begin -> report* -> end life cycle."""

    def test_full_cycle(self, mux: ProgressMultiplexer, sink: RecordingSink) -> None:
        mux.handle(progress("t", kind="begin", title="Indexing"))
        mux.handle(progress("t", kind="report", message="10 files", percentage=10))
        mux.handle(progress("t", kind="report", percentage=60))
        mux.handle(progress("t", kind="end", message="done"))

        assert sink.phases("t") == [STARTED, UPDATED, UPDATED, FINISHED]
        assert sink.events[2] == ProgressEvent(
            root_id=ROOT,
            token="t",
            phase=UPDATED,
            title="Indexing",
            message="10 files",
            percentage=60,
        )
        assert sink.events[-1].message == "done"
        assert mux.active_tokens == []

    def test_record_tracks_latest_report(self, mux: ProgressMultiplexer) -> None:
        mux.begin("t", "Checking", cancellable=True)
        mux.report("t", message="a.py", percentage=5)

        work = mux.get("t")
        assert work is not None
        assert (work.message, work.percentage, work.cancellable) == ("a.py", 5, True)

    def test_interleaved_tokens_are_independent(
        self, mux: ProgressMultiplexer, sink: RecordingSink
    ) -> None:
        mux.handle(progress(1, kind="begin", title="A"))
        mux.handle(progress(2, kind="begin", title="B"))
        mux.handle(progress(1, kind="end"))
        mux.handle(progress(2, kind="report", message="b"))
        mux.handle(progress(2, kind="end"))

        assert sink.phases(1) == [STARTED, FINISHED]
        assert sink.phases(2) == [STARTED, UPDATED, FINISHED]

    def test_token_can_be_reused_after_end(
        self, mux: ProgressMultiplexer, sink: RecordingSink
    ) -> None:
        for _ in range(2):
            mux.handle(progress("t", kind="begin", title="Again"))
            mux.handle(progress("t", kind="end"))

        assert sink.phases("t") == [STARTED, FINISHED, STARTED, FINISHED]


class TestAnomalies:
    """Unknown or duplicate tokens are logged and ignored, never fatal."""

    def test_direct_calls_raise(self, mux: ProgressMultiplexer) -> None:
        with pytest.raises(ProtocolAnomaly, match="unknown progress token"):
            mux.report("ghost")
        with pytest.raises(ProtocolAnomaly, match="unknown progress token"):
            mux.end("ghost")
        mux.begin("t", "x")
        with pytest.raises(ProtocolAnomaly, match="already active"):
            mux.begin("t", "x")

    def test_report_for_unknown_token_is_logged(
        self, mux: ProgressMultiplexer, sink: RecordingSink, caplog
    ) -> None:
        with caplog.at_level(logging.WARNING, logger="pyrightclient.progress"):
            mux.handle(progress("ghost", kind="report", message="?"))
            mux.handle(progress("ghost", kind="end"))

        assert sink.events == []
        assert caplog.text.count("Protocol anomaly") == 2

    def test_duplicate_begin_is_ignored(
        self, mux: ProgressMultiplexer, sink: RecordingSink
    ) -> None:
        mux.handle(progress("t", kind="begin", title="First"))
        mux.handle(progress("t", kind="begin", title="Second"))
        mux.handle(progress("t", kind="end"))

        assert sink.phases("t") == [STARTED, FINISHED]
        assert sink.events[-1].title == "First"

    def test_malformed_notification_is_logged(
        self, mux: ProgressMultiplexer, sink: RecordingSink, caplog
    ) -> None:
        with caplog.at_level(logging.WARNING, logger="pyrightclient.progress"):
            mux.handle({"token": "t", "value": {"kind": "explode"}})

        assert sink.events == []
        assert "Malformed $/progress" in caplog.text

    def test_sink_failure_does_not_corrupt_state(self, caplog) -> None:
        def bad_sink(event):
            raise RuntimeError("ui gone")

        mux = ProgressMultiplexer(ROOT, bad_sink)
        mux.handle(progress("t", kind="begin", title="x"))

        assert mux.active_tokens == ["t"]
        assert "Progress sink failed" in caplog.text


class TestDispose:
    """Disposal force-closes active work."""

    def test_dispose_finishes_active_tokens(
        self, mux: ProgressMultiplexer, sink: RecordingSink
    ) -> None:
        mux.begin("a", "A")
        mux.begin("b", "B")
        mux.end("a")

        assert mux.dispose() == 1

        assert sink.phases("a") == [STARTED, FINISHED]
        assert sink.phases("b") == [STARTED, FINISHED]
        assert mux.active_tokens == []
        assert mux.disposed

    def test_dispose_is_idempotent(self, mux: ProgressMultiplexer, sink: RecordingSink) -> None:
        mux.begin("a", "A")
        mux.dispose()
        assert mux.dispose() == 0
        assert sink.phases("a") == [STARTED, FINISHED]

    def test_notifications_after_dispose_are_ignored(
        self, mux: ProgressMultiplexer, sink: RecordingSink
    ) -> None:
        mux.dispose()
        mux.handle(progress("t", kind="begin", title="late"))
        mux.handle_legacy_begin()

        assert sink.events == []


class TestLegacyNotifications:
    """pyright/beginProgress, reportProgress, endProgress."""

    def test_legacy_cycle(self, mux: ProgressMultiplexer, sink: RecordingSink) -> None:
        mux.handle_legacy_begin()
        mux.handle_legacy_report("Analyzing 12 files")
        mux.handle_legacy_end()

        assert sink.phases(LEGACY_TOKEN) == [STARTED, UPDATED, FINISHED]
        assert sink.events[1].message == "Analyzing 12 files"

    def test_legacy_end_without_begin_is_ignored(
        self, mux: ProgressMultiplexer, sink: RecordingSink
    ) -> None:
        mux.handle_legacy_end()
        assert sink.events == []


class TestProgressEvent:
    def test_to_dict_omits_missing_fields(self) -> None:
        event = ProgressEvent(root_id=ROOT, token=3, phase=FINISHED, title="Indexing")
        assert event.to_dict() == {
            "root": "file:///work/app",
            "token": 3,
            "phase": "finished",
            "title": "Indexing",
        }
