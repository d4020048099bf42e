"""Forge backends: the shared protocol, the local store and remote adapters.

Backends are selected at runtime by :class:`~forgesync.model.ForgeTag`
through :func:`build_backend`; every variant satisfies
:class:`ForgeBackend`.
"""

from __future__ import annotations

from .codeberg import CODEBERG_API_URL, CodebergBackend
from .errors import (
    BackendError,
    ForgeAPIError,
    PersistenceError,
    ProtectedRepoError,
    RateLimitedError,
    RepoAlreadyExistsError,
    RepoNotFoundError,
    StateParseError,
    StateReadError,
    StateSerializeError,
    StateWriteError,
    UnauthorizedError,
)
from .github import GITHUB_API_URL, GitHubBackend
from .gitlab import GITLAB_API_URL, GitLabBackend
from .local import AutoSave, LocalBackend, Mutation, MutationKind, MutationObserver
from .protocol import ForgeBackend, SupportsCapture
from .registry import REMOTE_BACKENDS, build_backend, build_remote_backend
from .remote import ForgeAPIConfig, RestForgeBackend
from .state import DiscoveredState, RepoEntry, StateFile, SyncedState

__all__ = [
    "CODEBERG_API_URL",
    "GITHUB_API_URL",
    "GITLAB_API_URL",
    "REMOTE_BACKENDS",
    "AutoSave",
    "BackendError",
    "CodebergBackend",
    "DiscoveredState",
    "ForgeAPIConfig",
    "ForgeAPIError",
    "ForgeBackend",
    "GitHubBackend",
    "GitLabBackend",
    "LocalBackend",
    "Mutation",
    "MutationKind",
    "MutationObserver",
    "PersistenceError",
    "ProtectedRepoError",
    "RateLimitedError",
    "RepoAlreadyExistsError",
    "RepoEntry",
    "RepoNotFoundError",
    "RestForgeBackend",
    "StateFile",
    "StateParseError",
    "StateReadError",
    "StateSerializeError",
    "StateWriteError",
    "SupportsCapture",
    "SyncedState",
    "UnauthorizedError",
    "build_backend",
    "build_remote_backend",
]
