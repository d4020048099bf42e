"""Unit tests for the GitLab adapter."""

from __future__ import annotations

import pytest

from forgesync.backends import GitLabBackend, RepoAlreadyExistsError, RepoNotFoundError
from forgesync.backends.gitlab import project_ref
from forgesync.model import Repo, RepoIdentity, Visibility
from tests.helpers.forge_http import ScriptedForge, make_backend

BASE = "https://gl.test/api/v4"
CORE = RepoIdentity("acme", "core")


def _project(path: str, project_id: int, visibility: str = "public") -> dict:
    return {
        "id": project_id,
        "name": path.title(),
        "path": path,
        "description": None,
        "visibility": visibility,
        "web_url": f"https://gitlab.com/acme/{path}",
    }


def _backend(script: ScriptedForge) -> GitLabBackend:
    backend = make_backend(GitLabBackend, script, BASE)
    assert isinstance(backend, GitLabBackend)
    return backend


def test_project_ref_encodes_slash() -> None:
    """Projects are addressed by their URL-encoded full path."""
    assert project_ref(CORE) == "acme%2Fcore"


@pytest.mark.asyncio
async def test_list_follows_next_page_header() -> None:
    """X-Next-Page drives pagination; projects are keyed by path."""
    script = (
        ScriptedForge()
        .add(
            "GET",
            "/api/v4/groups/acme/projects",
            json_body=[_project("core", 1, "private")],
            headers={"X-Next-Page": "2"},
        )
        .add(
            "GET",
            "/api/v4/groups/acme/projects",
            json_body=[_project("docs", 2, "internal")],
            headers={"X-Next-Page": ""},
        )
    )

    repos = await _backend(script).list_repos("acme")

    assert repos == [
        Repo.named("acme", "core", visibility=Visibility.PRIVATE),
        Repo.named("acme", "docs", visibility=Visibility.PUBLIC),
    ]
    assert [request.url.params["page"] for request in script.requests] == ["1", "2"]
    assert script.requests[0].headers["PRIVATE-TOKEN"] == "t0ken"


@pytest.mark.asyncio
async def test_list_falls_back_to_user_projects() -> None:
    """Users own projects under /users/{org}/projects."""
    script = ScriptedForge().add(
        "GET", "/api/v4/users/acme/projects", json_body=[_project("notes", 3)]
    )

    assert [repo.name for repo in await _backend(script).list_repos("acme")] == [
        "notes"
    ]


@pytest.mark.asyncio
async def test_create_in_group_sends_namespace_id() -> None:
    """Creating under a group resolves its numeric namespace first."""
    script = (
        ScriptedForge()
        .add("GET", "/api/v4/groups/acme", json_body={"id": 77, "path": "acme"})
        .add("POST", "/api/v4/projects", 201, json_body=_project("core", 9, "private"))
    )
    backend = _backend(script)

    created = await backend.create_repo(
        Repo.named("acme", "core", description="Core", visibility=Visibility.PRIVATE)
    )

    assert created.visibility is Visibility.PRIVATE
    assert script.bodies("POST") == [
        {
            "name": "core",
            "path": "core",
            "description": "Core",
            "visibility": "private",
            "namespace_id": 77,
        }
    ]
    metadata = backend.captured_metadata(CORE)
    assert metadata is not None
    assert (metadata.url, metadata.remote_id) == ("https://gitlab.com/acme/core", "9")


@pytest.mark.asyncio
async def test_create_for_user_omits_namespace() -> None:
    """Without a group the project lands in the token owner's namespace."""
    script = ScriptedForge().add(
        "POST", "/api/v4/projects", 201, json_body=_project("core", 9)
    )

    await _backend(script).create_repo(Repo.named("acme", "core"))

    assert "namespace_id" not in script.bodies("POST")[0]


@pytest.mark.asyncio
async def test_create_conflict_from_taken_path() -> None:
    """GitLab reports name clashes as 400 'has already been taken'."""
    script = ScriptedForge().add(
        "POST",
        "/api/v4/projects",
        400,
        json_body={"message": {"path": ["has already been taken"]}},
    )

    with pytest.raises(RepoAlreadyExistsError):
        await _backend(script).create_repo(Repo.named("acme", "core"))


@pytest.mark.asyncio
async def test_update_and_delete_use_encoded_project_path() -> None:
    """Single-project requests address acme%2Fcore."""
    script = (
        ScriptedForge()
        .add("PUT", "/api/v4/projects/acme%2Fcore", json_body=_project("core", 1))
        .add("DELETE", "/api/v4/projects/acme%2Fcore", 202)
    )
    backend = _backend(script)

    await backend.update_repo(Repo.named("acme", "core", description="x"))
    await backend.delete_repo(CORE)

    assert script.bodies("PUT") == [{"description": "x", "visibility": "public"}]
    assert backend.captured_metadata(CORE) is None
    with pytest.raises(RepoNotFoundError):
        await backend.get_repo(RepoIdentity("acme", "missing"))
