"""Unit tests for the local declarative backend."""

from __future__ import annotations

import asyncio
import datetime as dt
import typing as typ

import pytest

from forgesync.backends import (
    LocalBackend,
    Mutation,
    MutationKind,
    ProtectedRepoError,
    RepoAlreadyExistsError,
    RepoNotFoundError,
    StateReadError,
    StateWriteError,
)
from forgesync.backends.state import read_state_file
from forgesync.model import ForgeTag, RemoteMetadata, Repo, RepoIdentity, Visibility
from tests.helpers.fakes import names

if typ.TYPE_CHECKING:
    from pathlib import Path

CORE = RepoIdentity("acme", "core")


class _RecordingObserver:
    def __init__(self) -> None:
        self.seen: list[Mutation] = []

    async def on_mutation(self, backend: LocalBackend, mutation: Mutation) -> None:
        del backend
        self.seen.append(mutation)


@pytest.mark.asyncio
async def test_crud_round_trip(local: LocalBackend) -> None:
    """Create, read, update and delete behave like any forge."""
    await local.create_repo(Repo.named("acme", "core", description="Core"))

    assert await local.repo_exists(CORE)
    assert (await local.get_repo(CORE)).description == "Core"

    updated = await local.update_repo(
        Repo.named("acme", "core", visibility=Visibility.PRIVATE)
    )
    assert updated.visibility is Visibility.PRIVATE
    assert updated.description is None

    await local.delete_repo(CORE)
    assert not await local.repo_exists(CORE)
    assert local.backend_tag() is ForgeTag.LOCAL


@pytest.mark.asyncio
async def test_list_repos_is_sorted_and_scoped_to_org(local: LocalBackend) -> None:
    """Listing returns only the org's repos, ordered by name."""
    for org, name in (("acme", "zeta"), ("acme", "alpha"), ("other", "beta")):
        await local.create_repo(Repo.named(org, name))

    assert [repo.name for repo in await local.list_repos("acme")] == ["alpha", "zeta"]
    assert await local.list_repos("missing") == []
    assert local.orgs() == ["acme", "other"]


@pytest.mark.asyncio
async def test_create_duplicate_raises(local: LocalBackend) -> None:
    """Creating an existing identity is a conflict."""
    await local.create_repo(Repo.named("acme", "core"))

    with pytest.raises(RepoAlreadyExistsError):
        await local.create_repo(Repo.named("acme", "core"))


@pytest.mark.asyncio
@pytest.mark.parametrize("operation", ["get", "update", "delete"])
async def test_missing_repo_raises_not_found(
    local: LocalBackend, operation: str
) -> None:
    """Operations on an absent identity raise RepoNotFoundError."""
    with pytest.raises(RepoNotFoundError, match="acme/core"):
        if operation == "get":
            await local.get_repo(CORE)
        elif operation == "update":
            await local.update_repo(Repo.named("acme", "core"))
        else:
            await local.delete_repo(CORE)


@pytest.mark.asyncio
async def test_protected_repo_needs_force(local: LocalBackend) -> None:
    """Protected repos survive a plain delete but not a forced one."""
    await local.create_repo(Repo.named("acme", "core"))
    await local.set_protected(CORE, protected=True)

    with pytest.raises(ProtectedRepoError):
        await local.delete_repo(CORE)
    assert await local.repo_exists(CORE)

    await local.delete_repo(CORE, force=True)
    assert not await local.repo_exists(CORE)


@pytest.mark.asyncio
async def test_update_keeps_membership_protection_and_annotations(
    local: LocalBackend,
) -> None:
    """Only comparable fields change on update."""
    await local.create_repo(Repo.named("acme", "core"), forges=[ForgeTag.GITHUB])
    await local.set_protected(CORE, protected=True)
    await local.annotate_discovered(CORE, ForgeTag.GITHUB, exists=True)

    await local.update_repo(Repo.named("acme", "core", description="new"))

    entry = local.entry(CORE)
    assert entry.description == "new"
    assert entry.forges == [ForgeTag.GITHUB]
    assert entry.protected
    assert entry.discovered[ForgeTag.GITHUB].exists


@pytest.mark.asyncio
async def test_entry_returns_a_copy(local: LocalBackend) -> None:
    """Mutating the returned entry does not change the store."""
    await local.create_repo(Repo.named("acme", "core"))

    local.entry(CORE).protected = True

    assert not local.entry(CORE).protected


@pytest.mark.asyncio
async def test_default_forges_apply_to_new_repos() -> None:
    """Repos created without a forge list take the backend default."""
    backend = LocalBackend(default_forges=[ForgeTag.CODEBERG, ForgeTag.CODEBERG])

    await backend.create_repo(Repo.named("acme", "core"))

    assert backend.entry(CORE).forges == [ForgeTag.CODEBERG]


@pytest.mark.asyncio
async def test_repos_for_forge_filters_membership_and_deletion(
    local: LocalBackend,
) -> None:
    """Unassigned repos go everywhere; marked repos go nowhere."""
    await local.create_repo(Repo.named("acme", "both"))
    await local.create_repo(Repo.named("acme", "gh"), forges=[ForgeTag.GITHUB])
    await local.create_repo(Repo.named("acme", "cb"), forges=[ForgeTag.CODEBERG])
    await local.create_repo(Repo.named("acme", "gone"))
    await local.mark_for_deletion(RepoIdentity("acme", "gone"))

    assert names(local.repos_for_forge("acme", ForgeTag.GITHUB)) == ["both", "gh"]
    assert names(local.repos_for_forge("acme", ForgeTag.CODEBERG)) == ["both", "cb"]


@pytest.mark.asyncio
async def test_observers_see_each_committed_mutation(local: LocalBackend) -> None:
    """Every mutation is announced once, after it commits."""
    observer = _RecordingObserver()
    local.add_observer(observer)

    await local.create_repo(Repo.named("acme", "core"))
    await local.update_repo(Repo.named("acme", "core", description="x"))
    await local.set_forges(CORE, [ForgeTag.GITHUB])
    await local.delete_repo(CORE)
    with pytest.raises(RepoNotFoundError):
        await local.delete_repo(CORE)

    assert [mutation.kind for mutation in observer.seen] == [
        MutationKind.CREATE,
        MutationKind.UPDATE,
        MutationKind.ANNOTATE,
        MutationKind.DELETE,
    ]


def test_auto_save_requires_state_dir() -> None:
    """Auto-save without a directory is a configuration error."""
    with pytest.raises(ValueError, match="state_dir"):
        LocalBackend(auto_save=True)


@pytest.mark.asyncio
async def test_auto_save_writes_after_each_mutation(
    persisted_local: LocalBackend, tmp_path: Path
) -> None:
    """The state file reflects the latest mutation."""
    await persisted_local.create_repo(Repo.named("acme", "core", description="Core"))
    path = persisted_local.path_for("acme")
    assert path == tmp_path / "orgs" / "acme" / "repos.yaml"
    assert read_state_file(path).repos["core"].description == "Core"

    await persisted_local.delete_repo(CORE)
    assert read_state_file(path).repos == {}


@pytest.mark.asyncio
async def test_auto_save_failure_keeps_mutation(tmp_path: Path) -> None:
    """A failed save is recorded but the in-memory change stays committed."""
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")
    backend = LocalBackend(state_dir=blocker, auto_save=True)

    created = await backend.create_repo(Repo.named("acme", "core"))

    assert created.identity == CORE
    assert await backend.repo_exists(CORE)
    assert len(backend.persistence_errors) == 1
    assert isinstance(backend.persistence_errors[0], StateWriteError)


@pytest.mark.asyncio
async def test_concurrent_mutations_persist_final_state(
    persisted_local: LocalBackend,
) -> None:
    """Concurrent creates all land in memory and in the file."""
    created = [f"repo-{index}" for index in range(20)]

    await asyncio.gather(
        *(persisted_local.create_repo(Repo.named("acme", name)) for name in created)
    )

    assert names(await persisted_local.list_repos("acme")) == sorted(created)
    saved = read_state_file(persisted_local.path_for("acme"))
    assert sorted(saved.repos) == sorted(created)
    assert persisted_local.persistence_errors == []


@pytest.mark.asyncio
async def test_save_and_load_round_trip(tmp_path: Path) -> None:
    """Entries, flags and annotations survive a save/load cycle."""
    source = LocalBackend()
    await source.create_repo(
        Repo.named(
            "acme",
            "core",
            description="Core",
            visibility=Visibility.PRIVATE,
            homepage="https://core.example",
        ),
        forges=[ForgeTag.GITHUB, ForgeTag.CODEBERG],
    )
    await source.set_protected(CORE, protected=True)
    captured_at = dt.datetime(2024, 5, 1, 12, 0, tzinfo=dt.UTC)
    await source.annotate_synced(
        CORE,
        RemoteMetadata(
            forge=ForgeTag.GITHUB,
            url="https://github.com/acme/core",
            remote_id="42",
            captured_at=captured_at,
        ),
    )
    await source.annotate_discovered(
        CORE, ForgeTag.CODEBERG, exists=False, checked_at=captured_at
    )
    path = tmp_path / "repos.yaml"
    await source.save(path, "acme")

    restored = LocalBackend()
    owner = await restored.load(path)

    assert owner == "acme"
    assert await restored.get_repo(CORE) == await source.get_repo(CORE)
    entry = restored.entry(CORE)
    assert entry.forges == [ForgeTag.GITHUB, ForgeTag.CODEBERG]
    assert entry.protected
    assert entry.synced[ForgeTag.GITHUB].id == "42"
    assert entry.synced[ForgeTag.GITHUB].synced_at == captured_at
    assert entry.discovered[ForgeTag.CODEBERG].exists is False


@pytest.mark.asyncio
async def test_load_missing_file_raises(local: LocalBackend, tmp_path: Path) -> None:
    """Loading an absent file is a read error; load_or_create starts empty."""
    path = tmp_path / "absent.yaml"

    with pytest.raises(StateReadError):
        await local.load(path)

    assert await local.load_or_create(path, "acme") == "acme"
    assert await local.list_repos("acme") == []
    assert local.orgs() == ["acme"]


@pytest.mark.asyncio
async def test_annotations_on_missing_repo_raise(local: LocalBackend) -> None:
    """Annotating an unknown identity is RepoNotFoundError."""
    with pytest.raises(RepoNotFoundError):
        await local.annotate_discovered(CORE, ForgeTag.GITHUB, exists=True)
