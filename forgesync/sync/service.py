"""Symmetric sync orchestrator.

``sync(source, target, org, options)`` lists both backends, diffs them and
applies the resulting actions to ``target`` only. The same call imports from
a remote (``sync(remote, local)``), pushes to a remote (``sync(local,
remote)``) or mirrors between two remotes.

Listing failures abort the call with :class:`SyncError`. Apply failures are
recorded per repo as ``FAILED`` and never stop the remaining actions.
Cancellation between actions leaves the target consistent; a later run
resumes from there because sync is idempotent.
"""

from __future__ import annotations

import asyncio
import typing as typ

from forgesync.backends.errors import BackendError
from forgesync.common.time import monotonic
from forgesync.model import (
    CreateAction,
    DeleteAction,
    InSyncAction,
    UpdateAction,
    is_actionable,
)
from forgesync.secrets import AuthError

from .diff import apply_repo_filter, compute_sync_actions
from .errors import SyncError, SyncSide
from .models import RepoSyncResult, SyncOptions, SyncOutcome, SyncReport
from .observability import SyncEventLogger

if typ.TYPE_CHECKING:
    from forgesync.backends.protocol import ForgeBackend
    from forgesync.model import Repo, SyncAction


class SymmetricSyncService:
    """Reconcile any two backends that implement ``ForgeBackend``.

    Parameters
    ----------
    event_logger
        Structured event sink; a default :class:`SyncEventLogger` is used
        when omitted.

    """

    def __init__(self, *, event_logger: SyncEventLogger | None = None) -> None:
        """Initialise the orchestrator."""
        self._events = event_logger or SyncEventLogger()

    async def sync(
        self,
        source: ForgeBackend,
        target: ForgeBackend,
        org: str,
        options: SyncOptions | None = None,
    ) -> SyncReport:
        """Make ``target`` match ``source`` for ``org``.

        Parameters
        ----------
        source
            Backend read from; never mutated.
        target
            Backend mutated unless ``options.dry_run`` is set.
        org
            Organisation key passed to both backends.
        options
            Run settings; defaults to a non-destructive live run.

        Returns
        -------
        SyncReport
            One result per repo considered.

        Raises
        ------
        SyncError
            If either backend cannot be listed.

        """
        options = options or SyncOptions()
        source_tag = source.backend_tag()
        target_tag = target.backend_tag()
        started = monotonic()
        self._events.log_run_started(org, source_tag, target_tag, options)

        try:
            source_repos = await _list(source, org, SyncSide.SOURCE)
            target_repos = await _list(target, org, SyncSide.TARGET)
        except SyncError as exc:
            self._events.log_run_failed(exc, monotonic() - started)
            raise

        source_repos, target_repos = apply_repo_filter(
            source_repos, target_repos, options.repo_filter
        )
        actions = compute_sync_actions(
            source_repos, target_repos, options.delete_missing
        )
        results = await self._apply_all(target, actions, options)

        report = SyncReport(
            org=org,
            source_forge=source_tag,
            target_forge=target_tag,
            dry_run=options.dry_run,
            results=tuple(results),
        )
        self._events.log_run_completed(report, monotonic() - started)
        return report

    async def _apply_all(
        self,
        target: ForgeBackend,
        actions: list[SyncAction],
        options: SyncOptions,
    ) -> list[RepoSyncResult]:
        if options.max_concurrency == 1:
            return [
                await self._apply_one(target, action, dry_run=options.dry_run)
                for action in actions
            ]

        semaphore = asyncio.Semaphore(options.max_concurrency)

        async def bounded(action: SyncAction) -> RepoSyncResult:
            async with semaphore:
                return await self._apply_one(target, action, dry_run=options.dry_run)

        return list(await asyncio.gather(*(bounded(action) for action in actions)))

    async def _apply_one(
        self, target: ForgeBackend, action: SyncAction, *, dry_run: bool
    ) -> RepoSyncResult:
        if not is_actionable(action):
            return RepoSyncResult(action, SyncOutcome.NOOP)
        if dry_run:
            return RepoSyncResult(action, SyncOutcome.SKIPPED)

        try:
            applied = await _apply(target, action)
        except (BackendError, AuthError) as exc:
            result = RepoSyncResult(action, SyncOutcome.FAILED, error=str(exc))
            self._events.log_action_failed(target.backend_tag(), result, exc)
            return result

        result = RepoSyncResult(action, SyncOutcome.APPLIED, applied_repo=applied)
        self._events.log_action_applied(target.backend_tag(), result)
        return result


async def _list(backend: ForgeBackend, org: str, side: SyncSide) -> list[Repo]:
    try:
        return await backend.list_repos(org)
    except (BackendError, AuthError) as exc:
        raise SyncError(org, side, backend.backend_tag(), exc) from exc


async def _apply(target: ForgeBackend, action: SyncAction) -> Repo | None:
    match action:
        case CreateAction(repo=repo):
            return await target.create_repo(repo)
        case UpdateAction(repo=repo):
            return await target.update_repo(repo)
        case DeleteAction(identity=identity):
            await target.delete_repo(identity)
            return None
        case InSyncAction():
            return None


async def sync(
    source: ForgeBackend,
    target: ForgeBackend,
    org: str,
    options: SyncOptions | None = None,
) -> SyncReport:
    """Run one sync with a default :class:`SymmetricSyncService`."""
    return await SymmetricSyncService().sync(source, target, org, options)
