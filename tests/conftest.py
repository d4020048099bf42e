"""Shared fixtures for unit and feature tests."""

from __future__ import annotations

import typing as typ

import pytest

from forgesync.backends import LocalBackend
from forgesync.model import ForgeTag
from forgesync.secrets import SecretResolutionClient
from forgesync.sync import observability
from tests.helpers.fakes import FakeRemoteBackend, RecordingLogger, token_provider

if typ.TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture
def local() -> LocalBackend:
    """Return an empty in-memory local backend."""
    return LocalBackend()


@pytest.fixture
def persisted_local(tmp_path: Path) -> LocalBackend:
    """Return a local backend that saves every mutation under ``tmp_path``."""
    return LocalBackend(state_dir=tmp_path, auto_save=True)


@pytest.fixture
def remote() -> FakeRemoteBackend:
    """Return an empty simulated GitHub remote."""
    return FakeRemoteBackend(ForgeTag.GITHUB)


@pytest.fixture
def github_secrets() -> SecretResolutionClient:
    """Return a secret client holding an org-wide GitHub token for ``acme``."""
    return SecretResolutionClient(token_provider(ForgeTag.GITHUB))


@pytest.fixture
def event_log(monkeypatch: pytest.MonkeyPatch) -> RecordingLogger:
    """Capture structured sync events instead of sending them to femtologging."""
    recorder = RecordingLogger()
    monkeypatch.setattr(observability, "logger", recorder)
    return recorder
