"""Structured events and error categorisation for reconciliation runs.

Events are emitted as ``[event-type] key=value`` lines through the
femtologging helpers so log aggregators can parse them without a schema.
"""

from __future__ import annotations

import enum
import typing as typ

from forgesync.backends.errors import (
    ForgeAPIError,
    PersistenceError,
    ProtectedRepoError,
    RateLimitedError,
    RepoAlreadyExistsError,
    RepoNotFoundError,
    UnauthorizedError,
)
from forgesync.logging import get_logger, log_event
from forgesync.secrets import AuthError, ScopeTimeoutError

from .errors import SyncError
from .models import SyncOutcome

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from forgesync.model import ForgeTag, RepoIdentity

    from .models import RepoSyncResult, SyncOptions, SyncReport

logger = get_logger(__name__)

_HTTP_SERVER_ERROR_THRESHOLD = 500


class SyncEventType(enum.StrEnum):
    """Structured log event types for sync and convergence runs."""

    RUN_STARTED = "sync.run.started"
    RUN_COMPLETED = "sync.run.completed"
    RUN_FAILED = "sync.run.failed"
    ACTION_APPLIED = "sync.action.applied"
    ACTION_FAILED = "sync.action.failed"
    CONVERGE_PHASE = "converge.phase"
    CONVERGE_DRIFT = "converge.drift"


class ErrorCategory(enum.StrEnum):
    """Categories for routing failures in logs and reports."""

    TRANSIENT = "transient"
    CLIENT_ERROR = "client_error"
    AUTHORIZATION = "authorization"
    CONFLICT = "conflict"
    PERSISTENCE = "persistence"
    UNKNOWN = "unknown"


_EXCEPTION_CATEGORY_MAP: tuple[tuple[type[BaseException], ErrorCategory], ...] = (
    (RateLimitedError, ErrorCategory.TRANSIENT),
    (ScopeTimeoutError, ErrorCategory.TRANSIENT),
    (UnauthorizedError, ErrorCategory.AUTHORIZATION),
    (AuthError, ErrorCategory.AUTHORIZATION),
    (RepoAlreadyExistsError, ErrorCategory.CONFLICT),
    (RepoNotFoundError, ErrorCategory.CONFLICT),
    (ProtectedRepoError, ErrorCategory.CONFLICT),
    (PersistenceError, ErrorCategory.PERSISTENCE),
)


def categorize_error(exc: BaseException) -> ErrorCategory:
    """Categorise an exception for log routing.

    ``SyncError`` is categorised by its cause. Forge API errors without a
    status (timeouts, network failures) and 5xx answers are transient.
    """
    if isinstance(exc, SyncError):
        return categorize_error(exc.cause)

    if isinstance(exc, ForgeAPIError):
        if exc.status_code is None or exc.status_code >= _HTTP_SERVER_ERROR_THRESHOLD:
            return ErrorCategory.TRANSIENT
        return ErrorCategory.CLIENT_ERROR

    for exc_type, category in _EXCEPTION_CATEGORY_MAP:
        if isinstance(exc, exc_type):
            return category

    return ErrorCategory.UNKNOWN


class SyncEventLogger:
    """Emit structured sync and convergence events.

    Success events are INFO, failed actions and drift WARNING, and aborted
    runs ERROR.
    """

    def log_run_started(
        self,
        org: str,
        source: ForgeTag,
        target: ForgeTag,
        options: SyncOptions,
    ) -> None:
        """Log the start of a sync run."""
        log_event(
            logger,
            SyncEventType.RUN_STARTED,
            org=org,
            source=source,
            target=target,
            dry_run=options.dry_run,
            delete_missing=options.delete_missing,
            filtered=options.repo_filter is not None,
        )

    def log_run_completed(self, report: SyncReport, duration_s: float) -> None:
        """Log a finished sync run with per-outcome counts."""
        counts = report.outcome_counts()
        log_event(
            logger,
            SyncEventType.RUN_COMPLETED,
            org=report.org,
            source=report.source_forge,
            target=report.target_forge,
            dry_run=report.dry_run,
            duration_seconds=f"{duration_s:.3f}",
            **{outcome.value: counts.get(outcome, 0) for outcome in SyncOutcome},
        )

    def log_run_failed(self, error: SyncError, duration_s: float) -> None:
        """Log a sync run aborted by a listing failure."""
        log_event(
            logger,
            SyncEventType.RUN_FAILED,
            level="ERROR",
            exc_info=error,
            org=error.org,
            side=error.side,
            forge=error.forge,
            duration_seconds=f"{duration_s:.3f}",
            error_type=type(error.cause).__name__,
            error_category=categorize_error(error),
            error_message=str(error.cause),
        )

    def log_action_applied(self, target: ForgeTag, result: RepoSyncResult) -> None:
        """Log one applied action."""
        log_event(
            logger,
            SyncEventType.ACTION_APPLIED,
            target=target,
            repo=result.identity.slug,
            action=result.kind,
        )

    def log_action_failed(
        self, target: ForgeTag, result: RepoSyncResult, error: BaseException
    ) -> None:
        """Log one failed action with its error category."""
        log_event(
            logger,
            SyncEventType.ACTION_FAILED,
            level="WARNING",
            target=target,
            repo=result.identity.slug,
            action=result.kind,
            error_type=type(error).__name__,
            error_category=categorize_error(error),
            error_message=str(error),
        )

    def log_converge_phase(
        self, org: str, forge: ForgeTag, phase: str, **fields: object
    ) -> None:
        """Log completion of one convergence phase."""
        log_event(
            logger,
            SyncEventType.CONVERGE_PHASE,
            org=org,
            forge=forge,
            phase=phase,
            **fields,
        )

    def log_converge_drift(
        self, org: str, forge: ForgeTag, identities: cabc.Iterable[RepoIdentity]
    ) -> None:
        """Log repos still out of sync after the apply phase."""
        log_event(
            logger,
            SyncEventType.CONVERGE_DRIFT,
            level="WARNING",
            org=org,
            forge=forge,
            repos=",".join(identity.name for identity in identities),
        )

