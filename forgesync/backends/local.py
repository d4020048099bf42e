"""Local declarative store participating in syncs as a peer forge.

The store keeps ``org -> name -> RepoEntry`` in memory behind a
:class:`~forgesync.common.locks.ReaderWriterLock`. The lock is held only for
the synchronous body of a single read or mutation and is released before any
``await``, so a slow save never blocks concurrent readers.

Persistence is decoupled from the CRUD path: every committed mutation is
announced to registered :class:`MutationObserver` hooks, and auto-save is
just the :class:`AutoSave` observer. A failing save is logged and recorded in
:attr:`LocalBackend.persistence_errors`; the in-memory mutation stays
committed.

Usage
-----
>>> import asyncio
>>> from forgesync.backends import LocalBackend
>>> from forgesync.model import Repo
>>> backend = LocalBackend()
>>> repo = asyncio.run(backend.create_repo(Repo.named("acme", "core")))
>>> repo.identity.slug
'acme/core'

"""

from __future__ import annotations

import asyncio
import dataclasses
import enum
import typing as typ

from forgesync.common.locks import KeyedLocks, ReaderWriterLock
from forgesync.common.time import utcnow
from forgesync.logging import get_logger, log_debug, log_warning
from forgesync.model import ForgeTag, Repo, RepoIdentity

from .errors import (
    PersistenceError,
    ProtectedRepoError,
    RepoAlreadyExistsError,
    RepoNotFoundError,
)
from .state import (
    DiscoveredState,
    RepoEntry,
    StateFile,
    SyncedState,
    read_state_file,
    render_state,
    state_path,
    write_state_file,
)

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    import datetime as dt
    from pathlib import Path

    from forgesync.model import RemoteMetadata

logger = get_logger(__name__)

_FILE_LOCKS = KeyedLocks()


class MutationKind(enum.StrEnum):
    """What changed in the store."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    ANNOTATE = "annotate"


@dataclasses.dataclass(slots=True, frozen=True)
class Mutation:
    """A committed change, announced to observers after the lock is released."""

    kind: MutationKind
    identity: RepoIdentity


@typ.runtime_checkable
class MutationObserver(typ.Protocol):
    """Hook run after every committed mutation."""

    async def on_mutation(self, backend: LocalBackend, mutation: Mutation) -> None:
        """React to ``mutation``; may raise :class:`PersistenceError`."""
        ...


class AutoSave:
    """Observer that rewrites the owning organisation's file after a change."""

    async def on_mutation(self, backend: LocalBackend, mutation: Mutation) -> None:
        """Save the organisation touched by ``mutation``."""
        org = mutation.identity.org
        await backend.save(backend.path_for(org), org)


class LocalBackend:
    """Thread-safe, optionally persisted implementation of ``ForgeBackend``.

    Parameters
    ----------
    state_dir
        Root directory holding ``orgs/{org}/repos.yaml`` files. Required when
        ``auto_save`` is enabled or :meth:`path_for` is used.
    auto_save
        Register an :class:`AutoSave` observer.
    default_forges
        Forges assigned to repos created without an explicit forge list.

    """

    def __init__(
        self,
        *,
        state_dir: Path | None = None,
        auto_save: bool = False,
        default_forges: cabc.Iterable[ForgeTag] = (),
    ) -> None:
        """Create an empty store."""
        if auto_save and state_dir is None:
            msg = "auto_save requires a state_dir"
            raise ValueError(msg)

        self._state_dir = state_dir
        self._default_forges = tuple(default_forges)
        self._orgs: dict[str, dict[str, RepoEntry]] = {}
        self._lock = ReaderWriterLock()
        self._observers: list[MutationObserver] = []
        self.persistence_errors: list[PersistenceError] = []
        if auto_save:
            self.add_observer(AutoSave())

    def add_observer(self, observer: MutationObserver) -> None:
        """Register ``observer`` to run after each committed mutation."""
        self._observers.append(observer)

    def backend_tag(self) -> ForgeTag:
        """Return :attr:`ForgeTag.LOCAL`."""
        return ForgeTag.LOCAL

    def path_for(self, org: str) -> Path:
        """Return the state file location for ``org``."""
        if self._state_dir is None:
            msg = "LocalBackend has no state_dir configured"
            raise ValueError(msg)
        return state_path(self._state_dir, org)

    def orgs(self) -> list[str]:
        """Return every organisation held in memory."""
        with self._lock.read():
            return sorted(self._orgs)

    # Forge backend interface

    async def list_repos(self, org: str) -> list[Repo]:
        """Return the repos of ``org`` sorted by name."""
        with self._lock.read():
            repos = self._orgs.get(org, {})
            return [entry.to_repo(org, name) for name, entry in sorted(repos.items())]

    async def get_repo(self, identity: RepoIdentity) -> Repo:
        """Return ``identity`` or raise :class:`RepoNotFoundError`."""
        with self._lock.read():
            entry = self._lookup(identity)
            return entry.to_repo(identity.org, identity.name)

    async def repo_exists(self, identity: RepoIdentity) -> bool:
        """Return whether ``identity`` is present."""
        with self._lock.read():
            return identity.name in self._orgs.get(identity.org, {})

    async def create_repo(
        self, repo: Repo, *, forges: cabc.Iterable[ForgeTag] | None = None
    ) -> Repo:
        """Insert ``repo``, raising :class:`RepoAlreadyExistsError` on conflict."""
        entry = RepoEntry.from_repo(
            repo, forges=self._default_forges if forges is None else forges
        )
        with self._lock.write():
            repos = self._orgs.setdefault(repo.org, {})
            if repo.name in repos:
                raise RepoAlreadyExistsError(repo.identity)
            repos[repo.name] = entry
            stored = entry.to_repo(repo.org, repo.name)

        await self._notify(Mutation(MutationKind.CREATE, repo.identity))
        return stored

    async def update_repo(self, repo: Repo) -> Repo:
        """Overwrite the comparable fields of ``repo``.

        Forge membership, the protected flag and annotations are kept.
        """
        with self._lock.write():
            entry = self._lookup(repo.identity)
            entry.description = repo.description
            entry.visibility = repo.visibility
            entry.homepage = repo.homepage
            stored = entry.to_repo(repo.org, repo.name)

        await self._notify(Mutation(MutationKind.UPDATE, repo.identity))
        return stored

    async def delete_repo(self, identity: RepoIdentity, *, force: bool = False) -> None:
        """Remove ``identity``.

        Raises
        ------
        RepoNotFoundError
            If the repo is absent.
        ProtectedRepoError
            If the repo is protected and ``force`` is not set.

        """
        with self._lock.write():
            entry = self._lookup(identity)
            if entry.protected and not force:
                raise ProtectedRepoError(identity)
            del self._orgs[identity.org][identity.name]

        await self._notify(Mutation(MutationKind.DELETE, identity))

    # Record accessors

    def entry(self, identity: RepoIdentity) -> RepoEntry:
        """Return a copy of the full persisted record for ``identity``."""
        with self._lock.read():
            return self._lookup(identity).copy()

    def repos_for_forge(self, org: str, forge: ForgeTag) -> list[Repo]:
        """Return repos of ``org`` that should exist on ``forge``.

        A repo belongs to ``forge`` when it lists the forge explicitly or
        lists no forges at all. Repos marked for deletion are excluded.
        """
        with self._lock.read():
            return [
                entry.to_repo(org, name)
                for name, entry in sorted(self._orgs.get(org, {}).items())
                if not entry.marked_for_deletion
                and (not entry.forges or forge in entry.forges)
            ]

    async def set_forges(
        self, identity: RepoIdentity, forges: cabc.Iterable[ForgeTag]
    ) -> None:
        """Replace the forge membership of ``identity``."""
        await self._annotate(
            identity,
            lambda entry: setattr(entry, "forges", list(dict.fromkeys(forges))),
        )

    async def set_protected(self, identity: RepoIdentity, *, protected: bool) -> None:
        """Set or clear the protected flag of ``identity``."""
        await self._annotate(
            identity, lambda entry: setattr(entry, "protected", protected)
        )

    async def mark_for_deletion(
        self, identity: RepoIdentity, *, marked: bool = True
    ) -> None:
        """Set or clear the ``_delete`` flag of ``identity``."""
        await self._annotate(
            identity, lambda entry: setattr(entry, "marked_for_deletion", marked)
        )

    async def annotate_synced(
        self, identity: RepoIdentity, metadata: RemoteMetadata
    ) -> None:
        """Attach server-assigned metadata captured from ``metadata.forge``."""
        state = SyncedState(
            url=metadata.url, id=metadata.remote_id, synced_at=metadata.captured_at
        )
        await self._annotate(
            identity, lambda entry: entry.synced.__setitem__(metadata.forge, state)
        )

    async def annotate_discovered(
        self,
        identity: RepoIdentity,
        forge: ForgeTag,
        *,
        exists: bool,
        checked_at: dt.datetime | None = None,
    ) -> None:
        """Record whether ``identity`` was last seen on ``forge``."""
        state = DiscoveredState(exists=exists, checked_at=checked_at or utcnow())
        await self._annotate(
            identity, lambda entry: entry.discovered.__setitem__(forge, state)
        )

    # Persistence

    async def load(self, path: Path, *, org: str | None = None) -> str:
        """Replace the in-memory repos of the file's owner with ``path``.

        ``org`` supplies the owner for legacy files that lack one. Returns
        the organisation that was loaded.

        Raises
        ------
        StateReadError
            If the file is missing or unreadable.
        StateParseError
            If the file content is invalid.

        """
        state = await asyncio.to_thread(read_state_file, path, default_owner=org)
        with self._lock.write():
            self._orgs[state.owner] = dict(state.repos)
        log_debug(
            logger,
            "Loaded %d repos for %s from %s",
            len(state.repos),
            state.owner,
            path,
        )
        return state.owner

    async def load_or_create(self, path: Path, org: str) -> str:
        """Load ``path`` when it exists, otherwise start an empty ``org``."""
        if await asyncio.to_thread(path.is_file):
            return await self.load(path, org=org)
        with self._lock.write():
            self._orgs.setdefault(org, {})
        return org

    async def save(self, path: Path, org: str) -> None:
        """Rewrite ``path`` with exactly the repos of ``org``.

        Concurrent saves to the same path are serialised; the snapshot is
        taken inside that exclusive section so the last writer always
        persists the latest state.

        Raises
        ------
        StateSerializeError
            If the snapshot cannot be rendered.
        StateWriteError
            If the file cannot be written.

        """
        await asyncio.to_thread(self._save_sync, path, org)

    def _save_sync(self, path: Path, org: str) -> None:
        with _FILE_LOCKS.get(str(path.resolve())):
            with self._lock.read():
                snapshot = StateFile(
                    owner=org,
                    repos={
                        name: entry.copy()
                        for name, entry in self._orgs.get(org, {}).items()
                    },
                )
            write_state_file(path, render_state(snapshot, path))

    # Internals

    def _lookup(self, identity: RepoIdentity) -> RepoEntry:
        entry = self._orgs.get(identity.org, {}).get(identity.name)
        if entry is None:
            raise RepoNotFoundError(identity)
        return entry

    async def _annotate(
        self, identity: RepoIdentity, change: cabc.Callable[[RepoEntry], object]
    ) -> None:
        with self._lock.write():
            change(self._lookup(identity))
        await self._notify(Mutation(MutationKind.ANNOTATE, identity))

    async def _notify(self, mutation: Mutation) -> None:
        for observer in self._observers:
            try:
                await observer.on_mutation(self, mutation)
            except PersistenceError as exc:
                self.persistence_errors.append(exc)
                log_warning(
                    logger,
                    "Persisting %s of %s failed; in-memory change kept: %s",
                    mutation.kind,
                    mutation.identity,
                    exc,
                    exc_info=exc,
                )
