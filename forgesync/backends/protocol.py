"""Capability contract shared by every forge backend.

The local store and the hosted forges implement the same protocol, so the
orchestrator never needs to know which kind of backend it is talking to. The
protocol is ``runtime_checkable`` to support ``isinstance`` checks when a
backend is chosen at runtime.

Usage
-----
>>> from forgesync.backends import ForgeBackend, LocalBackend
>>> isinstance(LocalBackend(), ForgeBackend)
True

"""

from __future__ import annotations

import typing as typ

if typ.TYPE_CHECKING:
    from forgesync.model import ForgeTag, RemoteMetadata, Repo, RepoIdentity


@typ.runtime_checkable
class ForgeBackend(typ.Protocol):
    """Protocol for anything that can hold repository records.

    Every method raises a :class:`~forgesync.backends.errors.BackendError`
    subclass on failure. Remote implementations may additionally raise
    :class:`~forgesync.secrets.AuthError` when a credential cannot be resolved.
    """

    def backend_tag(self) -> ForgeTag:
        """Identify the backend in reports and logs."""
        ...

    async def list_repos(self, org: str) -> list[Repo]:
        """Return every repo known for ``org``; unknown orgs yield ``[]``."""
        ...

    async def get_repo(self, identity: RepoIdentity) -> Repo:
        """Return one repo, raising ``RepoNotFoundError`` when absent."""
        ...

    async def create_repo(self, repo: Repo) -> Repo:
        """Create ``repo``, raising ``RepoAlreadyExistsError`` on conflict."""
        ...

    async def update_repo(self, repo: Repo) -> Repo:
        """Overwrite ``repo``, raising ``RepoNotFoundError`` when absent."""
        ...

    async def delete_repo(self, identity: RepoIdentity) -> None:
        """Delete ``identity``, raising ``RepoNotFoundError`` when absent."""
        ...

    async def repo_exists(self, identity: RepoIdentity) -> bool:
        """Return whether ``identity`` is present."""
        ...


@typ.runtime_checkable
class SupportsCapture(typ.Protocol):
    """Backends that remember server-assigned metadata from their responses."""

    def captured_metadata(self, identity: RepoIdentity) -> RemoteMetadata | None:
        """Return metadata from the latest response that described ``identity``."""
        ...
