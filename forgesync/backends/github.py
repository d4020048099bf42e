"""GitHub REST adapter."""

from __future__ import annotations

import typing as typ

import httpx

from forgesync.model import ForgeTag, Repo, Visibility

from .remote import JSONObject, RestForgeBackend, optional_str

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from forgesync.model import RepoIdentity

GITHUB_API_URL = "https://api.github.com"
GITHUB_API_VERSION = "2022-11-28"


class GitHubBackend(RestForgeBackend):
    """Repositories of a GitHub organisation or user account.

    Organisation endpoints are tried first; a 404 falls back to the user
    endpoints so personal accounts work with the same ``org`` key.
    """

    forge = ForgeTag.GITHUB
    default_base_url = GITHUB_API_URL

    def _auth_headers(self, token: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
        }

    def _repo_url(self, identity: RepoIdentity) -> str:
        return self._url(f"/repos/{identity.org}/{identity.name}")

    async def _iter_org_repos(self, org: str) -> cabc.AsyncIterator[JSONObject]:
        params = {"per_page": self._config.page_size}
        url: str | None = self._url(f"/orgs/{org}/repos")
        response = await self._send("GET", url, org, params=params)
        if response.status_code == httpx.codes.NOT_FOUND:
            url = self._url(f"/users/{org}/repos")
            response = await self._send("GET", url, org, params=params)
            if response.status_code == httpx.codes.NOT_FOUND:
                return

        while True:
            self._raise_for_status(response)
            for payload in self._json_list(response):
                yield payload
            url = response.links.get("next", {}).get("url")
            if url is None:
                return
            # The next link already carries the query string.
            response = await self._send("GET", url, org)

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
            payload["homepage"] = repo.homepage
        return payload

    def _parse_repo(self, identity: RepoIdentity, payload: JSONObject) -> Repo:
        return Repo(
            identity=identity,
            description=optional_str(payload, "description"),
            visibility=Visibility.from_private_flag(payload.get("private")),
            homepage=optional_str(payload, "homepage"),
        )

    def _metadata_fields(self, payload: JSONObject) -> tuple[str | None, str | None]:
        remote_id = payload.get("id")
        return (
            optional_str(payload, "html_url"),
            None if remote_id is None else str(remote_id),
        )

    def _is_conflict(self, response: httpx.Response) -> bool:
        return (
            response.status_code == httpx.codes.UNPROCESSABLE_ENTITY
            and "already exists" in response.text
        )
