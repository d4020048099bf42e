"""Diff engine and symmetric sync orchestrator.

Examples
--------
>>> import asyncio
>>> from forgesync.backends import LocalBackend
>>> from forgesync.model import Repo
>>> from forgesync.sync import sync
>>> source, target = LocalBackend(), LocalBackend()
>>> _ = asyncio.run(source.create_repo(Repo.named("acme", "core")))
>>> report = asyncio.run(sync(source, target, "acme"))
>>> [result.outcome.value for result in report.results]
['applied']

"""

from __future__ import annotations

from .diff import apply_repo_filter, compute_sync_actions
from .errors import SyncError, SyncSide
from .models import RepoSyncResult, SyncOptions, SyncOutcome, SyncReport
from .observability import (
    ErrorCategory,
    SyncEventLogger,
    SyncEventType,
    categorize_error,
)
from .service import SymmetricSyncService, sync

__all__ = [
    "ErrorCategory",
    "RepoSyncResult",
    "SymmetricSyncService",
    "SyncError",
    "SyncEventLogger",
    "SyncEventType",
    "SyncOptions",
    "SyncOutcome",
    "SyncReport",
    "SyncSide",
    "apply_repo_filter",
    "categorize_error",
    "compute_sync_actions",
    "sync",
]
