"""Options and report types for the symmetric sync orchestrator."""

from __future__ import annotations

import collections
import dataclasses
import enum
import typing as typ

from forgesync.model import ActionKind, is_actionable

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from forgesync.model import ForgeTag, Repo, RepoIdentity, SyncAction


class SyncOutcome(enum.StrEnum):
    """What happened to one action."""

    APPLIED = "applied"
    SKIPPED = "skipped"
    FAILED = "failed"
    NOOP = "noop"


@dataclasses.dataclass(frozen=True, slots=True)
class SyncOptions:
    """Per-invocation sync settings.

    Attributes
    ----------
    dry_run
        Classify actions without calling the target.
    delete_missing
        Delete target repos that are absent from the source.
    repo_filter
        Restrict the run to these repo names. Target-only repos stay eligible
        for deletion.
    max_concurrency
        Number of actions applied at once; ``1`` applies them sequentially.

    """

    dry_run: bool = False
    delete_missing: bool = False
    repo_filter: frozenset[str] | None = None
    max_concurrency: int = 1

    def __post_init__(self) -> None:
        """Validate concurrency and freeze the filter."""
        if self.max_concurrency < 1:
            msg = "max_concurrency must be at least 1"
            raise ValueError(msg)
        if self.repo_filter is not None and not isinstance(
            self.repo_filter, frozenset
        ):
            object.__setattr__(self, "repo_filter", frozenset(self.repo_filter))

    def retrying(self, report: SyncReport) -> SyncOptions:
        """Return options that re-run only the repos that failed in ``report``."""
        return dataclasses.replace(
            self, dry_run=False, repo_filter=report.failed_names()
        )

    def as_dry_run(self) -> SyncOptions:
        """Return a copy with ``dry_run`` set."""
        return dataclasses.replace(self, dry_run=True)


@dataclasses.dataclass(frozen=True, slots=True)
class RepoSyncResult:
    """Outcome of one action.

    ``applied_repo`` holds the target's view of the repo after an applied
    create or update; ``error`` holds the failure message.
    """

    action: SyncAction
    outcome: SyncOutcome
    error: str | None = None
    applied_repo: Repo | None = None

    @property
    def identity(self) -> RepoIdentity:
        """Return the affected identity."""
        return self.action.identity

    @property
    def kind(self) -> ActionKind:
        """Return the action kind."""
        return self.action.kind


@dataclasses.dataclass(frozen=True, slots=True)
class SyncReport:
    """Immutable record of one orchestrator invocation."""

    org: str
    source_forge: ForgeTag
    target_forge: ForgeTag
    dry_run: bool
    results: tuple[RepoSyncResult, ...] = ()

    def with_outcome(self, outcome: SyncOutcome) -> tuple[RepoSyncResult, ...]:
        """Return the results with ``outcome``."""
        return tuple(result for result in self.results if result.outcome is outcome)

    @property
    def applied(self) -> tuple[RepoSyncResult, ...]:
        """Return applied results."""
        return self.with_outcome(SyncOutcome.APPLIED)

    @property
    def failed(self) -> tuple[RepoSyncResult, ...]:
        """Return failed results."""
        return self.with_outcome(SyncOutcome.FAILED)

    @property
    def actionable(self) -> tuple[RepoSyncResult, ...]:
        """Return results whose action would change the target."""
        return tuple(result for result in self.results if is_actionable(result.action))

    @property
    def has_failures(self) -> bool:
        """Return whether any action failed."""
        return any(result.outcome is SyncOutcome.FAILED for result in self.results)

    @property
    def in_sync(self) -> bool:
        """Return whether every repo needed no action."""
        return not self.actionable

    def failed_names(self) -> frozenset[str]:
        """Return the names to pass as ``repo_filter`` for a targeted retry."""
        return frozenset(result.identity.name for result in self.failed)

    def outcome_counts(self) -> cabc.Mapping[SyncOutcome, int]:
        """Count results per outcome."""
        return collections.Counter(result.outcome for result in self.results)

    def applied_counts(self) -> cabc.Mapping[ActionKind, int]:
        """Count applied results per action kind."""
        return collections.Counter(result.kind for result in self.applied)

    def result_for(self, name: str) -> RepoSyncResult | None:
        """Return the result for repo ``name``, if it was considered."""
        return next(
            (result for result in self.results if result.identity.name == name), None
        )
