"""Codeberg adapter speaking the Gitea/Forgejo REST API."""

from __future__ import annotations

import typing as typ

import httpx

from forgesync.model import ForgeTag, Repo, Visibility

from .remote import JSONObject, RestForgeBackend, optional_str

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from forgesync.model import RepoIdentity

CODEBERG_API_URL = "https://codeberg.org/api/v1"


class CodebergBackend(RestForgeBackend):
    """Repositories of a Codeberg organisation or user.

    Gitea pages with ``page``/``limit`` and signals the last page by
    returning fewer items than requested.
    """

    forge = ForgeTag.CODEBERG
    default_base_url = CODEBERG_API_URL

    def _auth_headers(self, token: str) -> dict[str, str]:
        return {"Authorization": f"token {token}", "Accept": "application/json"}

    def _repo_url(self, identity: RepoIdentity) -> str:
        return self._url(f"/repos/{identity.org}/{identity.name}")

    async def _iter_org_repos(self, org: str) -> cabc.AsyncIterator[JSONObject]:
        limit = self._config.page_size
        base = self._url(f"/orgs/{org}/repos")
        page = 1
        response = await self._send(
            "GET", base, org, params={"page": page, "limit": limit}
        )
        if response.status_code == httpx.codes.NOT_FOUND:
            base = self._url(f"/users/{org}/repos")
            response = await self._send(
                "GET", base, org, params={"page": page, "limit": limit}
            )
            if response.status_code == httpx.codes.NOT_FOUND:
                return

        while True:
            self._raise_for_status(response)
            items = self._json_list(response)
            for payload in items:
                yield payload
            if len(items) < limit:
                return
            page += 1
            response = await self._send(
                "GET", base, org, params={"page": page, "limit": limit}
            )

    async def _send_create(self, repo: Repo) -> httpx.Response:
        payload = {"name": repo.name, **self._fields_payload(repo)}
        response = await self._send(
            "POST", self._url(f"/orgs/{repo.org}/repos"), repo.org, payload=payload
        )
        if response.status_code == httpx.codes.NOT_FOUND:
            response = await self._send(
                "POST", self._url("/user/repos"), repo.org, payload=payload
            )
        return response

    async def _send_update(self, repo: Repo) -> httpx.Response:
        return await self._send(
            "PATCH",
            self._repo_url(repo.identity),
            repo.org,
            repo.name,
            payload=self._fields_payload(repo),
        )

    @staticmethod
    def _fields_payload(repo: Repo) -> JSONObject:
        payload: JSONObject = {
            "description": repo.description or "",
            "private": repo.visibility is Visibility.PRIVATE,
        }
        if repo.homepage is not None:
            payload["website"] = repo.homepage
        return payload

    def _parse_repo(self, identity: RepoIdentity, payload: JSONObject) -> Repo:
        return Repo(
            identity=identity,
            description=optional_str(payload, "description"),
            visibility=Visibility.from_private_flag(payload.get("private")),
            homepage=optional_str(payload, "website"),
        )

    def _metadata_fields(self, payload: JSONObject) -> tuple[str | None, str | None]:
        remote_id = payload.get("id")
        return (
            optional_str(payload, "html_url"),
            None if remote_id is None else str(remote_id),
        )

    def _is_conflict(self, response: httpx.Response) -> bool:
        if response.status_code == httpx.codes.CONFLICT:
            return True
        return (
            response.status_code == httpx.codes.UNPROCESSABLE_ENTITY
            and "already exists" in response.text
        )
