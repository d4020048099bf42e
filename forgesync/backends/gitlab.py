"""GitLab REST adapter."""

from __future__ import annotations

import typing as typ
import urllib.parse

import httpx

from forgesync.model import ForgeTag, Repo, Visibility

from .remote import JSONObject, RestForgeBackend, optional_str

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from forgesync.model import RepoIdentity

GITLAB_API_URL = "https://gitlab.com/api/v4"

_CONFLICT_MARKERS = ("has already been taken", "already exists")


def project_ref(identity: RepoIdentity) -> str:
    """Return the URL-encoded ``org/name`` GitLab accepts as a project id.

    Examples
    --------
    >>> from forgesync.model import RepoIdentity
    >>> project_ref(RepoIdentity("acme", "core"))
    'acme%2Fcore'

    """
    return urllib.parse.quote(identity.slug, safe="")


class GitLabBackend(RestForgeBackend):
    """Projects of a GitLab group or user.

    Projects are matched on their ``path``. GitLab's ``internal`` visibility
    counts as public.
    """

    forge = ForgeTag.GITLAB
    default_base_url = GITLAB_API_URL
    name_key = "path"

    def _auth_headers(self, token: str) -> dict[str, str]:
        return {"PRIVATE-TOKEN": token, "Accept": "application/json"}

    def _repo_url(self, identity: RepoIdentity) -> str:
        return self._url(f"/projects/{project_ref(identity)}")

    async def _iter_org_repos(self, org: str) -> cabc.AsyncIterator[JSONObject]:
        per_page = self._config.page_size
        base = self._url(f"/groups/{org}/projects")
        page = "1"
        response = await self._send(
            "GET", base, org, params={"page": page, "per_page": per_page}
        )
        if response.status_code == httpx.codes.NOT_FOUND:
            base = self._url(f"/users/{org}/projects")
            response = await self._send(
                "GET", base, org, params={"page": page, "per_page": per_page}
            )
            if response.status_code == httpx.codes.NOT_FOUND:
                return

        while True:
            self._raise_for_status(response)
            for payload in self._json_list(response):
                yield payload
            page = response.headers.get("X-Next-Page", "").strip()
            if not page:
                return
            response = await self._send(
                "GET", base, org, params={"page": page, "per_page": per_page}
            )

    async def _namespace_id(self, org: str) -> int | None:
        """Return the numeric id of group ``org``, or ``None`` for a user."""
        response = await self._send("GET", self._url(f"/groups/{org}"), org)
        if response.status_code == httpx.codes.NOT_FOUND:
            return None
        self._raise_for_status(response)
        group_id = self._json_object(response).get("id")
        return group_id if isinstance(group_id, int) else None

    async def _send_create(self, repo: Repo) -> httpx.Response:
        payload: JSONObject = {
            "name": repo.name,
            "path": repo.name,
            **self._fields_payload(repo),
        }
        namespace_id = await self._namespace_id(repo.org)
        if namespace_id is not None:
            payload["namespace_id"] = namespace_id
        return await self._send(
            "POST", self._url("/projects"), repo.org, payload=payload
        )

    async def _send_update(self, repo: Repo) -> httpx.Response:
        return await self._send(
            "PUT",
            self._repo_url(repo.identity),
            repo.org,
            repo.name,
            payload=self._fields_payload(repo),
        )

    @staticmethod
    def _fields_payload(repo: Repo) -> JSONObject:
        return {
            "description": repo.description or "",
            "visibility": repo.visibility.value,
        }

    def _parse_repo(self, identity: RepoIdentity, payload: JSONObject) -> Repo:
        visibility = (
            Visibility.PRIVATE
            if payload.get("visibility") == Visibility.PRIVATE.value
            else Visibility.PUBLIC
        )
        return Repo(
            identity=identity,
            description=optional_str(payload, "description"),
            visibility=visibility,
        )

    def _metadata_fields(self, payload: JSONObject) -> tuple[str | None, str | None]:
        remote_id = payload.get("id")
        return (
            optional_str(payload, "web_url"),
            None if remote_id is None else str(remote_id),
        )

    def _is_conflict(self, response: httpx.Response) -> bool:
        return response.status_code == httpx.codes.BAD_REQUEST and any(
            marker in response.text for marker in _CONFLICT_MARKERS
        )
