"""Closed lookup table from :class:`ForgeTag` to backend implementation."""

from __future__ import annotations

import typing as typ

from forgesync.model import ForgeTag

from .codeberg import CodebergBackend
from .github import GitHubBackend
from .gitlab import GitLabBackend
from .remote import ForgeAPIConfig

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    import httpx

    from forgesync.secrets import SecretResolutionClient

    from .local import LocalBackend
    from .protocol import ForgeBackend
    from .remote import RestForgeBackend

REMOTE_BACKENDS: typ.Final[cabc.Mapping[ForgeTag, type[RestForgeBackend]]] = {
    ForgeTag.GITHUB: GitHubBackend,
    ForgeTag.CODEBERG: CodebergBackend,
    ForgeTag.GITLAB: GitLabBackend,
}


def build_remote_backend(
    tag: ForgeTag,
    secrets: SecretResolutionClient,
    *,
    base_url: str | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> RestForgeBackend:
    """Instantiate the remote adapter registered for ``tag``.

    Raises
    ------
    ValueError
        If ``tag`` is not a remote forge.

    """
    backend_cls = REMOTE_BACKENDS.get(tag)
    if backend_cls is None:
        msg = f"{tag} is not a remote forge"
        raise ValueError(msg)
    config = ForgeAPIConfig(base_url=base_url) if base_url else None
    return backend_cls(secrets, config=config, http_client=http_client)


def build_backend(
    tag: ForgeTag,
    *,
    local: LocalBackend,
    secrets: SecretResolutionClient,
    base_urls: cabc.Mapping[ForgeTag, str] | None = None,
) -> ForgeBackend:
    """Return the backend for ``tag``, reusing ``local`` for the local store."""
    match tag:
        case ForgeTag.LOCAL:
            return local
        case ForgeTag.GITHUB | ForgeTag.CODEBERG | ForgeTag.GITLAB:
            return build_remote_backend(
                tag, secrets, base_url=(base_urls or {}).get(tag)
            )
        case _:
            typ.assert_never(tag)
