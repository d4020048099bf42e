"""On-disk schema for the local backend's per-organisation state files.

A state file looks like::

    owner: acme
    repos:
      core:
        description: Core services
        visibility: private
        forges: [github, codeberg]
        protected: true
        _delete: false
        synced:
          github: {url: https://github.com/acme/core, id: "1296269"}

Older files keyed each repo with ``origin`` and ``mirrors`` instead of
``forges``; they are migrated on load and written back in the current shape.
"""

from __future__ import annotations

import datetime as dt  # noqa: TC003
import io
import os
import tempfile
import typing as typ
from pathlib import Path

import msgspec
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from forgesync.model import ForgeTag, Repo, RepoIdentity, Visibility

from .errors import (
    StateParseError,
    StateReadError,
    StateSerializeError,
    StateWriteError,
)

YAML_VERSION = (1, 2)
STATE_FILENAME = "repos.yaml"

_LEGACY_KEYS = frozenset({"name", "origin", "mirrors", "staged_for_deletion"})
_OPTIONAL_KEYS = ("description", "homepage")
_ANNOTATION_KEYS = ("synced", "discovered")


class SyncedState(msgspec.Struct, kw_only=True):
    """Server-assigned details captured after a successful apply."""

    url: str | None = None
    id: str | None = None
    synced_at: dt.datetime | None = None


class DiscoveredState(msgspec.Struct, kw_only=True):
    """Last known existence of the repo on a remote forge."""

    exists: bool
    checked_at: dt.datetime


class RepoEntry(msgspec.Struct, kw_only=True):
    """Persisted record for one repository.

    Attributes
    ----------
    description
        Optional description; omitted from the file when unset.
    visibility
        Public or private.
    homepage
        Optional homepage URL; omitted from the file when unset.
    forges
        Forges the repository should exist on.
    protected
        Whether deletion requires an explicit override.
    marked_for_deletion
        Stored as ``_delete``; the repo is withheld from convergence.
    synced
        Per-forge capture annotations.
    discovered
        Per-forge existence annotations written by the refresh phase.

    """

    description: str | None = None
    visibility: Visibility = Visibility.PUBLIC
    homepage: str | None = None
    forges: list[ForgeTag] = msgspec.field(default_factory=list)
    protected: bool = False
    marked_for_deletion: bool = msgspec.field(default=False, name="_delete")
    synced: dict[ForgeTag, SyncedState] = msgspec.field(default_factory=dict)
    discovered: dict[ForgeTag, DiscoveredState] = msgspec.field(default_factory=dict)

    @classmethod
    def from_repo(
        cls, repo: Repo, *, forges: typ.Iterable[ForgeTag] = ()
    ) -> RepoEntry:
        """Build a fresh entry carrying the comparable fields of ``repo``."""
        return cls(
            description=repo.description,
            visibility=repo.visibility,
            homepage=repo.homepage,
            forges=_unique_forges(forges),
        )

    def to_repo(self, org: str, name: str) -> Repo:
        """Return the backend-independent view of this entry."""
        return Repo(
            identity=RepoIdentity(org, name),
            description=self.description,
            visibility=self.visibility,
            homepage=self.homepage,
        )

    def copy(self) -> RepoEntry:
        """Return a deep copy safe to hand to callers."""
        return msgspec.convert(msgspec.to_builtins(self), type=RepoEntry)


class StateFile(msgspec.Struct, kw_only=True):
    """Top-level state document for one organisation."""

    owner: str
    repos: dict[str, RepoEntry] = msgspec.field(default_factory=dict)


def _unique_forges(forges: typ.Iterable[ForgeTag]) -> list[ForgeTag]:
    seen: list[ForgeTag] = []
    for forge in forges:
        if forge not in seen:
            seen.append(forge)
    return seen


def _yaml() -> YAML:
    yaml = YAML(typ="safe")
    yaml.version = YAML_VERSION
    yaml.allow_duplicate_keys = False
    yaml.default_flow_style = False
    return yaml


def _migrate_legacy_entry(raw: dict[str, typ.Any]) -> dict[str, typ.Any]:
    """Rewrite an ``origin``/``mirrors`` entry into the ``forges`` shape."""
    if not _LEGACY_KEYS.intersection(raw):
        return raw

    entry = {key: value for key, value in raw.items() if key not in _LEGACY_KEYS}
    forges: list[typ.Any] = list(entry.get("forges") or [])
    origin = raw.get("origin")
    if origin is not None:
        forges.insert(0, origin)
    forges.extend(raw.get("mirrors") or [])
    entry["forges"] = forges
    if raw.get("staged_for_deletion"):
        entry["_delete"] = True
    if entry.get("visibility") is None:
        entry.pop("visibility", None)
    return entry


def _normalise_document(
    loaded: object, path: Path, default_owner: str | None
) -> dict[str, typ.Any]:
    if not isinstance(loaded, dict):
        raise StateParseError(path, "top level must be a mapping")

    owner = loaded.get("owner") or default_owner
    if not owner:
        raise StateParseError(path, "missing 'owner' and no organisation supplied")

    raw_repos = loaded.get("repos") or {}
    if not isinstance(raw_repos, dict):
        raise StateParseError(path, "'repos' must be a mapping")

    repos: dict[str, typ.Any] = {}
    for name, raw_entry in raw_repos.items():
        if raw_entry is None:
            repos[str(name)] = {}
        elif isinstance(raw_entry, dict):
            repos[str(name)] = _migrate_legacy_entry(raw_entry)
        else:
            raise StateParseError(path, f"repo {name!r} must be a mapping")

    return {"owner": owner, "repos": repos}


def parse_state(
    text: str, path: Path, *, default_owner: str | None = None
) -> StateFile:
    """Parse the text of a state file.

    Raises
    ------
    StateParseError
        If the text is not valid YAML or does not match the schema.

    """
    try:
        loaded = _yaml().load(text)
    except YAMLError as exc:
        raise StateParseError(path, f"invalid YAML: {exc}") from exc

    if loaded is None:
        loaded = {}

    document = _normalise_document(loaded, path, default_owner)
    try:
        state = msgspec.convert(document, type=StateFile)
    except msgspec.ValidationError as exc:
        raise StateParseError(path, f"schema validation failed: {exc}") from exc

    for entry in state.repos.values():
        entry.forges = _unique_forges(entry.forges)
    return state


def _prune_entry(raw: dict[str, typ.Any]) -> dict[str, typ.Any]:
    for key in _OPTIONAL_KEYS:
        if raw.get(key) is None:
            raw.pop(key, None)
    for key in _ANNOTATION_KEYS:
        if not raw.get(key):
            raw.pop(key, None)
    return raw


def render_state(state: StateFile, path: Path) -> str:
    """Render ``state`` as YAML text.

    Raises
    ------
    StateSerializeError
        If the state cannot be converted or dumped.

    """
    try:
        document = msgspec.to_builtins(state)
    except (TypeError, msgspec.EncodeError) as exc:
        raise StateSerializeError(path, str(exc)) from exc

    document["repos"] = {
        name: _prune_entry(entry)
        for name, entry in sorted(document.get("repos", {}).items())
    }
    buffer = io.StringIO()
    try:
        _yaml().dump(document, buffer)
    except YAMLError as exc:
        raise StateSerializeError(path, str(exc)) from exc
    return buffer.getvalue()


def read_state_file(path: Path, *, default_owner: str | None = None) -> StateFile:
    """Read and parse a state file.

    Raises
    ------
    StateReadError
        If the file cannot be read (including when it does not exist).
    StateParseError
        If its content is invalid.

    """
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise StateReadError(path, exc.strerror or str(exc)) from exc
    return parse_state(text, path, default_owner=default_owner)


def write_state_file(path: Path, text: str) -> None:
    """Replace ``path`` with ``text`` atomically, creating parent directories.

    Readers of the file see either the previous content or the new content,
    never a partial write.

    Raises
    ------
    StateWriteError
        If the directory or file cannot be written.

    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{path.name}.", suffix=".tmp", dir=path.parent
        )
    except OSError as exc:
        raise StateWriteError(path, exc.strerror or str(exc)) from exc

    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(text)
            handle.flush()
            os.fsync(handle.fileno())
        tmp_path.replace(path)
    except OSError as exc:
        tmp_path.unlink(missing_ok=True)
        raise StateWriteError(path, exc.strerror or str(exc)) from exc


def state_path(root: Path, org: str) -> Path:
    """Return the conventional state file location for ``org`` under ``root``."""
    return root / "orgs" / org / STATE_FILENAME
