"""Exception taxonomy for the language client supervisor.

Start failures propagate to the caller of ``SessionRegistry.ensure``.
Stop problems are recovered by forced termination. Protocol anomalies are
logged where they are detected and never abort a session.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pyrightclient.workspace import WorkspaceRootId


class PyrightClientError(Exception):
    """Base class for all client supervisor errors."""


class SessionStartError(PyrightClientError):
    """The server process failed to launch or to complete the handshake."""

    def __init__(self, message: str, root_id: WorkspaceRootId | None = None) -> None:
        super().__init__(message)
        self.root_id = root_id


class SessionStopTimeout(PyrightClientError):
    """A graceful stop exceeded the grace period.

    Not fatal: the session escalates to forced termination.
    """


class SessionStopped(PyrightClientError):
    """The session (or its channel) stopped while a request was outstanding."""


class ProtocolAnomaly(PyrightClientError):
    """Unexpected or malformed message from the server.

    Raised at the validation boundary and logged by whoever catches it.
    """


class DuplicateRootError(PyrightClientError, AssertionError):
    """Two live sessions were about to exist for one workspace root."""
