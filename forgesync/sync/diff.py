"""Pure diff engine turning two repo collections into sync actions."""

from __future__ import annotations

import typing as typ

from forgesync.model import (
    CreateAction,
    DeleteAction,
    InSyncAction,
    UpdateAction,
    property_diffs,
)

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from forgesync.model import Repo, RepoIdentity, SyncAction


def compute_sync_actions(
    source: cabc.Iterable[Repo],
    target: cabc.Iterable[Repo],
    delete_missing: bool = False,  # noqa: FBT001, FBT002
) -> list[SyncAction]:
    """Return the actions that make ``target`` match ``source``.

    Each source repo yields exactly one of create, update or in-sync. Target
    repos absent from the source yield a delete only when ``delete_missing``
    is set; otherwise they produce no action at all. Callers must not rely on
    the order of the returned actions.

    Examples
    --------
    >>> from forgesync.model import Repo, Visibility
    >>> source = [Repo.named("acme", "core", visibility=Visibility.PRIVATE)]
    >>> target = [Repo.named("acme", "core")]
    >>> [action.kind.value for action in compute_sync_actions(source, target)]
    ['update']

    """
    target_index: dict[RepoIdentity, Repo] = {repo.identity: repo for repo in target}
    source_index: dict[RepoIdentity, Repo] = {repo.identity: repo for repo in source}

    actions: list[SyncAction] = []
    for identity, repo in source_index.items():
        existing = target_index.get(identity)
        if existing is None:
            actions.append(CreateAction(repo))
            continue
        diffs = property_diffs(repo, existing)
        if diffs:
            actions.append(UpdateAction(repo, diffs))
        else:
            actions.append(InSyncAction(identity))

    if delete_missing:
        actions.extend(
            DeleteAction(identity)
            for identity in target_index
            if identity not in source_index
        )
    return actions


def apply_repo_filter(
    source: cabc.Sequence[Repo],
    target: cabc.Sequence[Repo],
    repo_filter: cabc.Set[str] | None,
) -> tuple[list[Repo], list[Repo]]:
    """Restrict a source/target pair to ``repo_filter``.

    The source keeps only filtered names. The target keeps filtered names
    plus repos the unfiltered source does not have, so target-only repos
    remain candidates for deletion while source repos outside the filter are
    neither touched nor deleted.
    """
    if repo_filter is None:
        return list(source), list(target)

    source_names = {repo.name for repo in source}
    kept_source = [repo for repo in source if repo.name in repo_filter]
    kept_target = [
        repo
        for repo in target
        if repo.name in repo_filter or repo.name not in source_names
    ]
    return kept_source, kept_target
