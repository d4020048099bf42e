"""Options and report types for the convergence protocol."""

from __future__ import annotations

import dataclasses
import enum
import typing as typ

from forgesync.model import ActionKind

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from forgesync.model import ForgeTag, RemoteMetadata, RepoIdentity
    from forgesync.sync import SyncReport


class ConvergePhase(enum.StrEnum):
    """The five convergence phases, in execution order."""

    REFRESH = "refresh"
    DIFF = "diff"
    APPLY = "apply"
    CAPTURE = "capture"
    VERIFY = "verify"


@dataclasses.dataclass(frozen=True, slots=True)
class ConvergeOptions:
    """Per-invocation convergence settings.

    ``forges`` limits the run to those remotes; empty means every configured
    remote. A dry run stops after the diff phase and writes nothing.
    """

    forges: tuple[ForgeTag, ...] = ()
    dry_run: bool = False
    delete_missing: bool = False
    max_concurrency: int = 1


@dataclasses.dataclass(frozen=True, slots=True)
class RefreshResult:
    """Existence of each local repo on the remote at refresh time."""

    present: frozenset[str] = frozenset()
    absent: frozenset[str] = frozenset()
    remote_only: frozenset[str] = frozenset()


@dataclasses.dataclass(frozen=True, slots=True)
class CaptureFailure:
    """A repo whose server-assigned metadata could not be recorded."""

    identity: RepoIdentity
    reason: str


def _applied(report: SyncReport | None, kind: ActionKind) -> int:
    if report is None:
        return 0
    return report.applied_counts().get(kind, 0)


@dataclasses.dataclass(frozen=True, slots=True)
class ForgeConvergence:
    """Outcome of converging one remote forge.

    ``error`` is set when a listing failure aborted the run for this forge.
    Phases that finished before the failure keep their results; the phases
    that did not run are ``None``.
    """

    forge: ForgeTag
    dry_run: bool
    refresh: RefreshResult | None = None
    diff: SyncReport | None = None
    apply: SyncReport | None = None
    captured: cabc.Mapping[RepoIdentity, RemoteMetadata] = dataclasses.field(
        default_factory=dict
    )
    capture_failures: tuple[CaptureFailure, ...] = ()
    verify: SyncReport | None = None
    error: str | None = None

    @property
    def drift(self) -> tuple[RepoIdentity, ...]:
        """Return identities still actionable after the apply phase."""
        if self.verify is None:
            return ()
        return tuple(result.identity for result in self.verify.actionable)

    @property
    def drift_detected(self) -> bool:
        """Return whether verify found any actionable difference."""
        return bool(self.drift)

    @property
    def converged(self) -> bool:
        """Return whether the remote matches the local declaration."""
        if self.error is not None:
            return False
        if self.verify is not None:
            return not self.drift_detected
        return self.diff is not None and self.diff.in_sync

    @property
    def repos_created(self) -> int:
        """Count repos created on the remote."""
        return _applied(self.apply, ActionKind.CREATE)

    @property
    def repos_updated(self) -> int:
        """Count repos updated on the remote."""
        return _applied(self.apply, ActionKind.UPDATE)

    @property
    def repos_deleted(self) -> int:
        """Count repos deleted from the remote."""
        return _applied(self.apply, ActionKind.DELETE)

    @property
    def repos_synced(self) -> int:
        """Count repos in sync once the run finished."""
        final = self.verify or self.diff
        if final is None:
            return 0
        return sum(1 for result in final.results if result.kind is ActionKind.IN_SYNC)

    @property
    def repos_failed(self) -> int:
        """Count actions that failed during apply."""
        return 0 if self.apply is None else len(self.apply.failed)


@dataclasses.dataclass(frozen=True, slots=True)
class ConvergeReport:
    """Aggregate of one convergence run across forges."""

    org: str
    dry_run: bool
    forges: tuple[ForgeConvergence, ...] = ()

    @property
    def converged(self) -> bool:
        """Return whether every forge converged."""
        return all(forge.converged for forge in self.forges)

    @property
    def drift_detected(self) -> bool:
        """Return whether any forge reported drift."""
        return any(forge.drift_detected for forge in self.forges)

    @property
    def repos_created(self) -> int:
        """Sum of repos created across forges."""
        return sum(forge.repos_created for forge in self.forges)

    @property
    def repos_updated(self) -> int:
        """Sum of repos updated across forges."""
        return sum(forge.repos_updated for forge in self.forges)

    @property
    def repos_deleted(self) -> int:
        """Sum of repos deleted across forges."""
        return sum(forge.repos_deleted for forge in self.forges)

    @property
    def repos_synced(self) -> int:
        """Sum of repos in sync across forges."""
        return sum(forge.repos_synced for forge in self.forges)

    @property
    def applied_total(self) -> int:
        """Return the number of applied actions across forges."""
        return self.repos_created + self.repos_updated + self.repos_deleted

    def for_forge(self, forge: ForgeTag) -> ForgeConvergence | None:
        """Return the record for ``forge``, if it took part."""
        return next((entry for entry in self.forges if entry.forge is forge), None)
