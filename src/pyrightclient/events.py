"""Editor events consumed by the supervisor, and their JSON-lines form."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Union

from pyrightclient.workspace import TextDocument, WorkspaceRoot, WorkspaceRootId


@dataclass(frozen=True)
class DocumentOpened:
    document: TextDocument


@dataclass(frozen=True)
class WorkspaceRootsChanged:
    added: tuple[WorkspaceRoot, ...] = ()
    removed: tuple[WorkspaceRoot, ...] = ()


@dataclass(frozen=True)
class ConfigurationChanged:
    """Settings changed; None means every root."""

    root_id: WorkspaceRootId | None = None


@dataclass(frozen=True)
class Deactivate:
    pass


EditorEvent = Union[DocumentOpened, WorkspaceRootsChanged, ConfigurationChanged, Deactivate]


def _root(data: Any) -> WorkspaceRoot:
    if isinstance(data, str):
        return WorkspaceRoot(uri=data)
    if isinstance(data, dict) and isinstance(data.get("uri"), str):
        return WorkspaceRoot(uri=data["uri"], name=str(data.get("name", "")))
    raise ValueError(f"Invalid workspace folder: {data!r}")


def _roots(data: dict[str, Any], key: str) -> tuple[WorkspaceRoot, ...]:
    items = data.get(key, [])
    if not isinstance(items, list):
        raise ValueError(f"'{key}' must be a list of workspace folders")
    return tuple(_root(item) for item in items)


def parse_event(line: str) -> EditorEvent:
    """Parse one JSON line into an editor event.

    Recognized shapes::

        {"event": "didOpen", "uri": "file:///p/a.py", "languageId": "python"}
        {"event": "rootsChanged", "added": [{"uri": ..., "name": ...}], "removed": [...]}
        {"event": "configurationChanged", "root": "file:///p"}
        {"event": "deactivate"}

    Raises:
        ValueError: Invalid JSON or an unknown/malformed event.
    """
    data = json.loads(line)
    if not isinstance(data, dict):
        raise ValueError("Event must be a JSON object")

    kind = data.get("event")
    if kind == "didOpen":
        uri = data.get("uri")
        if not isinstance(uri, str):
            raise ValueError("didOpen requires a string 'uri'")
        return DocumentOpened(TextDocument(uri=uri, language_id=str(data.get("languageId", ""))))
    if kind == "rootsChanged":
        return WorkspaceRootsChanged(
            added=_roots(data, "added"),
            removed=_roots(data, "removed"),
        )
    if kind == "configurationChanged":
        root = data.get("root")
        if root is not None and not isinstance(root, str):
            raise ValueError("configurationChanged 'root' must be a string")
        return ConfigurationChanged(WorkspaceRootId.from_uri(root) if root else None)
    if kind == "deactivate":
        return Deactivate()
    raise ValueError(f"Unknown event {kind!r}")
