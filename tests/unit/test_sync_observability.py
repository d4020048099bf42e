"""Tests for sync event logging and error categorisation."""

from __future__ import annotations

import typing as typ
from pathlib import Path

import pytest

from forgesync.backends import (
    ForgeAPIError,
    ProtectedRepoError,
    RateLimitedError,
    RepoAlreadyExistsError,
    StateWriteError,
    UnauthorizedError,
)
from forgesync.model import CreateAction, ForgeTag, Repo, RepoIdentity
from forgesync.secrets import AccessDeniedError, ScopeTimeoutError, SecretPath
from forgesync.sync import (
    ErrorCategory,
    RepoSyncResult,
    SyncError,
    SyncEventLogger,
    SyncEventType,
    SyncOutcome,
    SyncSide,
    categorize_error,
)

if typ.TYPE_CHECKING:
    from tests.helpers.fakes import RecordingLogger

_SCOPE = SecretPath("git/github/acme/*/token").parent_scope
_IDENTITY = RepoIdentity("acme", "core")


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (RateLimitedError(ForgeTag.GITHUB, retry_after=30), ErrorCategory.TRANSIENT),
        (ScopeTimeoutError(_SCOPE, 1.0), ErrorCategory.TRANSIENT),
        (ForgeAPIError.timeout(ForgeTag.GITLAB), ErrorCategory.TRANSIENT),
        (ForgeAPIError.http_error(ForgeTag.GITHUB, 502), ErrorCategory.TRANSIENT),
        (ForgeAPIError.http_error(ForgeTag.GITHUB, 422), ErrorCategory.CLIENT_ERROR),
        (UnauthorizedError(ForgeTag.CODEBERG, 401), ErrorCategory.AUTHORIZATION),
        (AccessDeniedError(_SCOPE), ErrorCategory.AUTHORIZATION),
        (RepoAlreadyExistsError(_IDENTITY), ErrorCategory.CONFLICT),
        (ProtectedRepoError(_IDENTITY), ErrorCategory.CONFLICT),
        (StateWriteError(Path("repos.yaml"), "disk full"), ErrorCategory.PERSISTENCE),
        (RuntimeError("boom"), ErrorCategory.UNKNOWN),
    ],
)
def test_categorize_error(error: BaseException, expected: ErrorCategory) -> None:
    """Each error family maps to its routing category."""
    assert categorize_error(error) is expected


def test_sync_error_is_categorised_by_cause() -> None:
    """A listing abort inherits the category of its underlying error."""
    cause = UnauthorizedError(ForgeTag.GITHUB, 403)
    error = SyncError("acme", SyncSide.TARGET, ForgeTag.GITHUB, cause)

    assert categorize_error(error) is ErrorCategory.AUTHORIZATION
    assert str(error) == f"Listing target github repos for acme failed: {cause}"


def test_action_failed_is_a_warning(event_log: RecordingLogger) -> None:
    """Failed actions log at WARNING with type and category."""
    result = RepoSyncResult(
        CreateAction(Repo.named("acme", "core")), SyncOutcome.FAILED, error="nope"
    )

    SyncEventLogger().log_action_failed(
        ForgeTag.CODEBERG, result, RepoAlreadyExistsError(_IDENTITY)
    )

    [message] = event_log.messages("WARNING")
    assert message.startswith(f"[{SyncEventType.ACTION_FAILED}] target=codeberg")
    assert "action=create" in message
    assert "error_type=RepoAlreadyExistsError" in message
    assert "error_category=conflict" in message
    assert "error_message='Repository already exists: acme/core'" in message


def test_run_failed_attaches_the_error(event_log: RecordingLogger) -> None:
    """Aborted runs log at ERROR with the SyncError as exc_info."""
    error = SyncError(
        "acme",
        SyncSide.SOURCE,
        ForgeTag.GITLAB,
        ForgeAPIError.network_error(ForgeTag.GITLAB, "dns"),
    )

    SyncEventLogger().log_run_failed(error, 0.25)

    [(level, message, exc_info)] = event_log.calls
    assert level == "ERROR"
    assert exc_info is error
    assert "side=source forge=gitlab duration_seconds=0.250" in message
    assert "error_category=transient" in message


def test_converge_drift_lists_repo_names(event_log: RecordingLogger) -> None:
    """Drift events join the affected repo names."""
    SyncEventLogger().log_converge_drift(
        "acme",
        ForgeTag.GITHUB,
        [RepoIdentity("acme", "core"), RepoIdentity("acme", "docs")],
    )

    assert event_log.events(SyncEventType.CONVERGE_DRIFT) == [
        "[converge.drift] org=acme forge=github repos=core,docs"
    ]
