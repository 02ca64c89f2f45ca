"""Decides when a session is needed and for which workspace root.

The mode is chosen once from the workspace shape at startup:

- single-root: one session keyed to ``DEFAULT_ROOT_ID``, started eagerly and
  kept until shutdown.
- multi-root: one session per root, started the first time a qualifying
  document under that root is opened. Documents outside every root are not
  analyzed.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from enum import Enum

from pyrightclient.config.schema import LanguageConfig
from pyrightclient.errors import SessionStartError
from pyrightclient.session.registry import SessionRegistry
from pyrightclient.session.session import Session
from pyrightclient.workspace import (
    DEFAULT_ROOT_ID,
    TextDocument,
    WorkspaceRoot,
    WorkspaceRootId,
    find_enclosing_root,
)

_log = logging.getLogger("pyrightclient.activation")

StartFailureHandler = Callable[[WorkspaceRootId, WorkspaceRoot | None, SessionStartError], None]


class ActivationMode(Enum):
    SINGLE_ROOT = "single-root"
    MULTI_ROOT = "multi-root"


def select_mode(roots: Iterable[WorkspaceRoot]) -> ActivationMode:
    """Multi-root only when more than one folder is open."""
    return ActivationMode.MULTI_ROOT if len(list(roots)) > 1 else ActivationMode.SINGLE_ROOT


class ActivationPolicy:
    """Maps editor events onto SessionRegistry calls."""

    def __init__(
        self,
        registry: SessionRegistry,
        roots: Iterable[WorkspaceRoot],
        *,
        language: LanguageConfig | None = None,
        on_start_failure: StartFailureHandler | None = None,
    ) -> None:
        self._registry = registry
        self._language = language or LanguageConfig()
        self._on_start_failure = on_start_failure
        root_list = list(roots)
        self._mode = select_mode(root_list)
        self._roots: dict[WorkspaceRootId, WorkspaceRoot] = {r.id: r for r in root_list}
        # Roots whose session failed to start; not retried until re-added
        self._failed: set[WorkspaceRootId] = set()
        _log.info("Activation mode %s with %d root(s)", self._mode.value, len(self._roots))

    @property
    def mode(self) -> ActivationMode:
        return self._mode

    @property
    def roots(self) -> list[WorkspaceRoot]:
        return list(self._roots.values())

    @property
    def failed_roots(self) -> set[WorkspaceRootId]:
        return set(self._failed)

    def qualifies(self, document: TextDocument) -> bool:
        return (
            document.language_id == self._language.language_id
            and document.scheme == self._language.scheme
        )

    def root_for(self, uri: str) -> WorkspaceRoot | None:
        return find_enclosing_root(uri, list(self._roots.values()))

    def session_id_for(self, root_id: WorkspaceRootId) -> WorkspaceRootId:
        """Registry key serving ``root_id`` (the default id in single-root mode)."""
        return DEFAULT_ROOT_ID if self._mode is ActivationMode.SINGLE_ROOT else root_id

    async def start(self, open_documents: Iterable[TextDocument] = ()) -> list[Session]:
        """Create the initial sessions.

        Single-root mode starts the one session eagerly. Multi-root mode
        scans the already-open documents once.
        """
        if self._mode is ActivationMode.SINGLE_ROOT:
            root = next(iter(self._roots.values()), None)
            session = await self._ensure(DEFAULT_ROOT_ID, root)
            return [session] if session is not None else []

        sessions: list[Session] = []
        for document in open_documents:
            session = await self.document_opened(document)
            if session is not None and session not in sessions:
                sessions.append(session)
        return sessions

    async def document_opened(self, document: TextDocument) -> Session | None:
        """Return the session serving ``document``, starting it on demand."""
        if self._mode is ActivationMode.SINGLE_ROOT:
            return self._registry.get(DEFAULT_ROOT_ID)

        if not self.qualifies(document):
            return None

        root = self.root_for(document.uri)
        if root is None:
            _log.debug("Ignoring %s: not inside any workspace folder", document.uri)
            return None
        if root.id in self._failed:
            return None
        return await self._ensure(root.id, root)

    async def roots_changed(
        self,
        added: Iterable[WorkspaceRoot] = (),
        removed: Iterable[WorkspaceRoot] = (),
    ) -> None:
        """Apply a workspace folder change."""
        added = list(added)
        removed = list(removed)
        if self._mode is ActivationMode.SINGLE_ROOT:
            if added or removed:
                _log.info("Workspace folders changed in single-root mode; sessions unchanged")
            return

        for root in removed:
            self._roots.pop(root.id, None)
            self._failed.discard(root.id)
        for root in added:
            self._roots[root.id] = root
            self._failed.discard(root.id)

        if removed:
            await asyncio.gather(*(self._registry.remove(root.id) for root in removed))

    async def _ensure(
        self, root_id: WorkspaceRootId, root: WorkspaceRoot | None
    ) -> Session | None:
        try:
            return await self._registry.ensure(root_id, root)
        except SessionStartError as e:
            if self._registry.closing:
                return None
            if root_id not in self._failed:
                self._failed.add(root_id)
                if self._on_start_failure is not None:
                    self._on_start_failure(root_id, root, e)
            return None
