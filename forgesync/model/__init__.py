"""Unified repository model shared by every backend.

A :class:`Repo` is keyed by :class:`RepoIdentity` and compared on visibility
and description only. Diffing two collections yields :data:`SyncAction`
values::

    from forgesync.model import Repo, Visibility

    repo = Repo.named("acme", "core", visibility=Visibility.PRIVATE)
    repo.identity.slug  # 'acme/core'

"""

from __future__ import annotations

from .models import (
    ActionKind,
    CreateAction,
    DeleteAction,
    ForgeTag,
    InSyncAction,
    PropertyDiff,
    PropertyField,
    RemoteMetadata,
    Repo,
    RepoIdentity,
    SyncAction,
    UpdateAction,
    Visibility,
    is_actionable,
    property_diffs,
)

__all__ = [
    "ActionKind",
    "CreateAction",
    "DeleteAction",
    "ForgeTag",
    "InSyncAction",
    "PropertyDiff",
    "PropertyField",
    "RemoteMetadata",
    "Repo",
    "RepoIdentity",
    "SyncAction",
    "UpdateAction",
    "Visibility",
    "is_actionable",
    "property_diffs",
]
