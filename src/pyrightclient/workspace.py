"""Workspace identity types: roots, root ids, and documents."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from urllib.parse import quote, unquote, urlsplit, urlunsplit


def normalize_uri(uri: str) -> str:
    """Canonical form of a URI so that equal locations compare equal.

    Lowercases the scheme and authority, normalizes percent-encoding of the
    path, and drops a trailing slash (except for the filesystem root).
    """
    parts = urlsplit(uri)
    path = quote(unquote(parts.path), safe="/:@!$&'()*+,;=-._~")
    if len(path) > 1 and path.endswith("/"):
        path = path.rstrip("/") or "/"
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, parts.query, ""))


def uri_scheme(uri: str) -> str:
    return urlsplit(uri).scheme.lower()


def uri_to_path(uri: str) -> Path | None:
    """Filesystem path for a ``file:`` URI, None for other schemes."""
    parts = urlsplit(uri)
    if parts.scheme.lower() != "file":
        return None
    path = unquote(parts.path)
    # file:///C:/x on Windows
    if len(path) >= 3 and path[0] == "/" and path[2] == ":":
        path = path[1:]
    return Path(path)


@dataclass(frozen=True)
class WorkspaceRootId:
    """Stable identity of a workspace root: its normalized URI."""

    uri: str

    @classmethod
    def from_uri(cls, uri: str) -> WorkspaceRootId:
        return cls(normalize_uri(uri))

    @classmethod
    def from_path(cls, path: str | Path) -> WorkspaceRootId:
        return cls(normalize_uri(Path(path).resolve().as_uri()))

    def __str__(self) -> str:
        return self.uri


# Key of the single session in single-root mode
DEFAULT_ROOT_ID = WorkspaceRootId("default:")


@dataclass(frozen=True)
class WorkspaceRoot:
    """A folder open in the editor."""

    uri: str
    name: str = ""

    @classmethod
    def from_path(cls, path: str | Path, name: str | None = None) -> WorkspaceRoot:
        resolved = Path(path).resolve()
        return cls(uri=resolved.as_uri(), name=name if name is not None else resolved.name)

    @property
    def id(self) -> WorkspaceRootId:
        return WorkspaceRootId.from_uri(self.uri)

    @property
    def path(self) -> Path | None:
        return uri_to_path(self.uri)

    def contains(self, uri: str) -> bool:
        """True if ``uri`` is this root or lies underneath it."""
        root = self.id.uri
        candidate = normalize_uri(uri)
        if candidate == root:
            return True
        prefix = root if root.endswith("/") else root + "/"
        return candidate.startswith(prefix)


@dataclass(frozen=True)
class TextDocument:
    """A document the editor opened."""

    uri: str
    language_id: str

    @property
    def scheme(self) -> str:
        return uri_scheme(self.uri)


def find_enclosing_root(uri: str, roots: list[WorkspaceRoot]) -> WorkspaceRoot | None:
    """Innermost root containing ``uri``, or None for ownerless documents."""
    best: WorkspaceRoot | None = None
    for root in roots:
        if root.contains(uri) and (best is None or len(root.id.uri) > len(best.id.uri)):
            best = root
    return best
