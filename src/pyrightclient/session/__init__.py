"""Session supervision: sessions, their registry, activation, and progress."""

from pyrightclient.session.activation import ActivationMode, ActivationPolicy, select_mode
from pyrightclient.session.progress import (
    LEGACY_TOKEN,
    ActiveWork,
    ProgressEvent,
    ProgressMultiplexer,
    ProgressPhase,
    ProgressSink,
)
from pyrightclient.session.registry import SessionRegistry
from pyrightclient.session.session import Session, SessionState

__all__ = [
    "ActivationMode",
    "ActivationPolicy",
    "ActiveWork",
    "LEGACY_TOKEN",
    "ProgressEvent",
    "ProgressMultiplexer",
    "ProgressPhase",
    "ProgressSink",
    "Session",
    "SessionRegistry",
    "SessionState",
    "select_mode",
]
