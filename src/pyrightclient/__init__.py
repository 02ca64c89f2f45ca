"""pyrightclient: multi-root language server client supervisor."""

__version__ = "0.1.0"

# Public API
from pyrightclient.config import Config, get_config, load_config
from pyrightclient.errors import (
    DuplicateRootError,
    ProtocolAnomaly,
    PyrightClientError,
    SessionStartError,
    SessionStopped,
    SessionStopTimeout,
)
from pyrightclient.events import (
    ConfigurationChanged,
    Deactivate,
    DocumentOpened,
    EditorEvent,
    WorkspaceRootsChanged,
)
from pyrightclient.session import (
    ActivationMode,
    ActivationPolicy,
    ProgressEvent,
    ProgressMultiplexer,
    ProgressPhase,
    Session,
    SessionRegistry,
    SessionState,
)
from pyrightclient.supervisor import EditorHost, Supervisor
from pyrightclient.workspace import DEFAULT_ROOT_ID, TextDocument, WorkspaceRoot, WorkspaceRootId

__all__ = [
    # Entry point
    "Supervisor",
    "EditorHost",
    # Events
    "ConfigurationChanged",
    "Deactivate",
    "DocumentOpened",
    "EditorEvent",
    "WorkspaceRootsChanged",
    # Workspace
    "DEFAULT_ROOT_ID",
    "TextDocument",
    "WorkspaceRoot",
    "WorkspaceRootId",
    # Sessions
    "ActivationMode",
    "ActivationPolicy",
    "ProgressEvent",
    "ProgressMultiplexer",
    "ProgressPhase",
    "Session",
    "SessionRegistry",
    "SessionState",
    # Config
    "Config",
    "load_config",
    "get_config",
    # Errors
    "PyrightClientError",
    "SessionStartError",
    "SessionStopTimeout",
    "SessionStopped",
    "ProtocolAnomaly",
    "DuplicateRootError",
]
