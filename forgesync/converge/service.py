"""Five-phase convergence of the local declaration onto remote forges.

For each remote forge the protocol runs:

1. Refresh: list the remote and record, per local repo, whether it exists
   there (``discovered`` annotations).
2. Diff: dry-run sync from the local declaration to the remote.
3. Apply: live sync, skipped when the diff found nothing to do.
4. Capture: copy server-assigned URL and id of every applied create or
   update onto the local record (``synced`` annotations).
5. Verify: dry-run sync again; any remaining actionable result is drift.

The local declaration for forge X holds the repos that list X (or list no
forges) and are not marked for deletion. An empty declaration never deletes
remote repos, even with ``delete_missing``. A dry run stops after the diff
phase and writes nothing locally.
"""

from __future__ import annotations

import typing as typ

from forgesync.backends import LocalBackend, SupportsCapture
from forgesync.backends.errors import BackendError, RepoNotFoundError
from forgesync.common.time import utcnow
from forgesync.logging import get_logger, log_warning
from forgesync.model import ActionKind
from forgesync.secrets import AuthError
from forgesync.sync import (
    SymmetricSyncService,
    SyncError,
    SyncEventLogger,
    SyncOptions,
    SyncSide,
)

from .models import (
    CaptureFailure,
    ConvergeOptions,
    ConvergePhase,
    ConvergeReport,
    ForgeConvergence,
    RefreshResult,
)

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from forgesync.backends import ForgeBackend
    from forgesync.model import ForgeTag, RemoteMetadata, Repo, RepoIdentity
    from forgesync.sync import SyncReport

logger = get_logger(__name__)

_CAPTURED_KINDS = frozenset({ActionKind.CREATE, ActionKind.UPDATE})


class ConvergenceService:
    """Converge a :class:`LocalBackend` onto a set of remote backends.

    Parameters
    ----------
    local
        The declarative store; receives refresh and capture annotations.
    remotes
        Remote backends keyed by forge.
    sync_service
        Orchestrator used for the diff, apply and verify phases.
    event_logger
        Structured event sink.

    """

    def __init__(
        self,
        local: LocalBackend,
        remotes: cabc.Mapping[ForgeTag, ForgeBackend],
        *,
        sync_service: SymmetricSyncService | None = None,
        event_logger: SyncEventLogger | None = None,
    ) -> None:
        """Initialise the service."""
        self._local = local
        self._remotes = dict(remotes)
        self._events = event_logger or SyncEventLogger()
        self._sync = sync_service or SymmetricSyncService(event_logger=self._events)

    async def converge(
        self, org: str, options: ConvergeOptions | None = None
    ) -> ConvergeReport:
        """Converge every selected forge and aggregate the results.

        Raises
        ------
        ValueError
            If ``options.forges`` names a forge with no configured backend.

        """
        options = options or ConvergeOptions()
        forges = options.forges or tuple(self._remotes)
        missing = [forge for forge in forges if forge not in self._remotes]
        if missing:
            names = ", ".join(str(forge) for forge in missing)
            msg = f"no backend configured for: {names}"
            raise ValueError(msg)

        results = [
            await self._converge_forge(org, forge, options) for forge in forges
        ]
        return ConvergeReport(org=org, dry_run=options.dry_run, forges=tuple(results))

    async def _converge_forge(
        self, org: str, forge: ForgeTag, options: ConvergeOptions
    ) -> ForgeConvergence:
        remote = self._remotes[forge]
        declared = self._local.repos_for_forge(org, forge)
        source = await _declaration_backend(declared)
        delete_missing = options.delete_missing
        if delete_missing and not declared:
            log_warning(
                logger,
                "No repos declared for %s on %s; not deleting remote repos",
                org,
                forge,
            )
            delete_missing = False
        sync_options = SyncOptions(
            delete_missing=delete_missing,
            max_concurrency=options.max_concurrency,
        )

        refresh: RefreshResult | None = None
        diff: SyncReport | None = None
        apply: SyncReport | None = None
        captured: dict[RepoIdentity, RemoteMetadata] = {}
        capture_failures: tuple[CaptureFailure, ...] = ()
        try:
            refresh = await self._refresh(org, forge, remote, declared, options)
            diff = await self._sync.sync(
                source, remote, org, sync_options.as_dry_run()
            )
            self._events.log_converge_phase(
                org, forge, ConvergePhase.DIFF, actionable=len(diff.actionable)
            )
            if options.dry_run:
                return ForgeConvergence(
                    forge=forge, dry_run=True, refresh=refresh, diff=diff
                )

            if not diff.in_sync:
                apply = await self._sync.sync(source, remote, org, sync_options)
                self._events.log_converge_phase(
                    org,
                    forge,
                    ConvergePhase.APPLY,
                    applied=len(apply.applied),
                    failed=len(apply.failed),
                )

            captured, capture_failures = await self._capture(remote, apply)
            self._events.log_converge_phase(
                org,
                forge,
                ConvergePhase.CAPTURE,
                captured=len(captured),
                failed=len(capture_failures),
            )

            verify = await self._sync.sync(
                source, remote, org, sync_options.as_dry_run()
            )
        except SyncError as exc:
            return ForgeConvergence(
                forge=forge,
                dry_run=options.dry_run,
                refresh=refresh,
                diff=diff,
                apply=apply,
                captured=captured,
                capture_failures=capture_failures,
                error=str(exc),
            )

        result = ForgeConvergence(
            forge=forge,
            dry_run=False,
            refresh=refresh,
            diff=diff,
            apply=apply,
            captured=captured,
            capture_failures=capture_failures,
            verify=verify,
        )
        if result.drift_detected:
            self._events.log_converge_drift(org, forge, result.drift)
        self._events.log_converge_phase(
            org, forge, ConvergePhase.VERIFY, converged=result.converged
        )
        return result

    async def _refresh(
        self,
        org: str,
        forge: ForgeTag,
        remote: ForgeBackend,
        declared: list[Repo],
        options: ConvergeOptions,
    ) -> RefreshResult:
        try:
            remote_names = {repo.name for repo in await remote.list_repos(org)}
        except (BackendError, AuthError) as exc:
            raise SyncError(org, SyncSide.TARGET, forge, exc) from exc

        declared_names = {repo.name for repo in declared}
        if not options.dry_run:
            checked_at = utcnow()
            for repo in declared:
                await self._local.annotate_discovered(
                    repo.identity,
                    forge,
                    exists=repo.name in remote_names,
                    checked_at=checked_at,
                )

        refresh = RefreshResult(
            present=frozenset(declared_names & remote_names),
            absent=frozenset(declared_names - remote_names),
            remote_only=frozenset(remote_names - declared_names),
        )
        self._events.log_converge_phase(
            org,
            forge,
            ConvergePhase.REFRESH,
            present=len(refresh.present),
            absent=len(refresh.absent),
        )
        return refresh

    async def _capture(
        self, remote: ForgeBackend, apply: SyncReport | None
    ) -> tuple[dict[RepoIdentity, RemoteMetadata], tuple[CaptureFailure, ...]]:
        captured: dict[RepoIdentity, RemoteMetadata] = {}
        failures: list[CaptureFailure] = []
        if apply is None:
            return captured, ()

        for result in apply.applied:
            if result.kind not in _CAPTURED_KINDS:
                continue
            metadata = (
                remote.captured_metadata(result.identity)
                if isinstance(remote, SupportsCapture)
                else None
            )
            if metadata is None:
                failures.append(
                    CaptureFailure(result.identity, "remote returned no metadata")
                )
                continue
            try:
                await self._local.annotate_synced(result.identity, metadata)
            except RepoNotFoundError as exc:
                failures.append(CaptureFailure(result.identity, str(exc)))
                continue
            captured[result.identity] = metadata
        return captured, tuple(failures)


async def _declaration_backend(repos: list[Repo]) -> LocalBackend:
    """Return an in-memory backend holding exactly ``repos``."""
    backend = LocalBackend()
    for repo in repos:
        await backend.create_repo(repo)
    return backend


async def converge(
    local: LocalBackend,
    remotes: cabc.Mapping[ForgeTag, ForgeBackend],
    org: str,
    options: ConvergeOptions | None = None,
) -> ConvergeReport:
    """Run one convergence with a default :class:`ConvergenceService`."""
    return await ConvergenceService(local, remotes).converge(org, options)
