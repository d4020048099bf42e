"""Shared machinery for hosted forge adapters.

:class:`RestForgeBackend` owns the request lifecycle every adapter needs:
resolving a per-request credential through the secret client, sending the
request over ``httpx``, translating error responses into the
:mod:`forgesync.backends.errors` taxonomy, and turning JSON payloads into
:class:`~forgesync.model.Repo` values. Subclasses supply the forge-specific
endpoints, payload shapes and pagination.

Each payload that describes a repository also yields
:class:`~forgesync.model.RemoteMetadata`; the latest one per identity is
kept and exposed through :meth:`RestForgeBackend.captured_metadata` for the
convergence capture phase.
"""

from __future__ import annotations

import abc
import dataclasses
import json
import typing as typ

import httpx

from forgesync.common.time import utcnow
from forgesync.logging import get_logger, log_debug, log_info
from forgesync.model import RemoteMetadata, Repo, RepoIdentity
from forgesync.secrets import SecretPath

from .errors import (
    ForgeAPIError,
    RateLimitedError,
    RepoAlreadyExistsError,
    RepoNotFoundError,
    UnauthorizedError,
)

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from forgesync.model import ForgeTag
    from forgesync.secrets import SecretResolutionClient

logger = get_logger(__name__)

_HTTP_ERROR_STATUS_THRESHOLD = 400
_HTTP_UNAUTHORIZED = 401
_HTTP_FORBIDDEN = 403
_HTTP_NOT_FOUND = 404
_HTTP_RATE_LIMITED = 429
_ERROR_DETAIL_LIMIT = 200

type JSONObject = dict[str, typ.Any]


@dataclasses.dataclass(frozen=True, slots=True)
class ForgeAPIConfig:
    """Connection settings for one hosted forge."""

    base_url: str
    timeout_s: float = 20.0
    user_agent: str = "forgesync/0.1"
    page_size: int = 100

    def __post_init__(self) -> None:
        """Validate settings and drop any trailing slash from ``base_url``."""
        if not self.base_url.strip():
            msg = "base_url must be non-empty"
            raise ValueError(msg)
        if self.timeout_s <= 0:
            msg = "timeout_s must be positive"
            raise ValueError(msg)
        if self.page_size <= 0:
            msg = "page_size must be positive"
            raise ValueError(msg)
        object.__setattr__(self, "base_url", self.base_url.rstrip("/"))


def get_retry_after(response: httpx.Response) -> int | None:
    """Return the numeric ``Retry-After`` header, if any."""
    retry_after = response.headers.get("Retry-After")
    if retry_after and retry_after.isdigit():
        return int(retry_after)
    return None


def error_detail(response: httpx.Response) -> str:
    """Return a short human-readable reason from an error response body."""
    try:
        data = response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return response.text[:_ERROR_DETAIL_LIMIT]
    if isinstance(data, dict):
        message = data.get("message") or data.get("error")
        if isinstance(message, str):
            return message[:_ERROR_DETAIL_LIMIT]
    return str(data)[:_ERROR_DETAIL_LIMIT]


def optional_str(payload: JSONObject, key: str) -> str | None:
    """Return ``payload[key]`` when it is a non-empty string."""
    value = payload.get(key)
    return value if isinstance(value, str) and value else None


class RestForgeBackend(abc.ABC):
    """Base class for REST adapters implementing ``ForgeBackend``.

    Parameters
    ----------
    secrets
        Client used to resolve a token before every request.
    config
        Connection settings; defaults to the forge's public API.
    http_client
        Optional pre-built client, typically wrapping
        ``httpx.MockTransport`` in tests. Injected clients are not closed by
        :meth:`aclose`.

    """

    forge: typ.ClassVar[ForgeTag]
    default_base_url: typ.ClassVar[str]
    name_key: typ.ClassVar[str] = "name"

    def __init__(
        self,
        secrets: SecretResolutionClient,
        *,
        config: ForgeAPIConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialise the adapter."""
        self._secrets = secrets
        self._config = config or ForgeAPIConfig(base_url=self.default_base_url)
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=self._config.timeout_s,
            headers={"User-Agent": self._config.user_agent},
        )
        self._captured: dict[RepoIdentity, RemoteMetadata] = {}

    @property
    def config(self) -> ForgeAPIConfig:
        """Return the connection settings."""
        return self._config

    async def aclose(self) -> None:
        """Close any owned HTTP resources."""
        if self._owns_client:
            await self._client.aclose()

    def backend_tag(self) -> ForgeTag:
        """Return the forge this adapter talks to."""
        return self.forge

    def captured_metadata(self, identity: RepoIdentity) -> RemoteMetadata | None:
        """Return metadata from the latest response that described ``identity``."""
        return self._captured.get(identity)

    # Forge backend interface

    async def list_repos(self, org: str) -> list[Repo]:
        """Return every repo of ``org``; an unknown org yields ``[]``."""
        return [
            self._to_repo(org, payload) async for payload in self._iter_org_repos(org)
        ]

    async def get_repo(self, identity: RepoIdentity) -> Repo:
        """Fetch one repo, raising :class:`RepoNotFoundError` when absent."""
        response = await self._send(
            "GET", self._repo_url(identity), identity.org, identity.name
        )
        self._raise_for_status(response, identity=identity)
        return self._to_repo(identity.org, self._json_object(response))

    async def repo_exists(self, identity: RepoIdentity) -> bool:
        """Return whether ``identity`` exists on the forge."""
        try:
            await self.get_repo(identity)
        except RepoNotFoundError:
            return False
        return True

    async def create_repo(self, repo: Repo) -> Repo:
        """Create ``repo``, raising :class:`RepoAlreadyExistsError` on conflict."""
        response = await self._send_create(repo)
        if self._is_conflict(response):
            raise RepoAlreadyExistsError(repo.identity)
        self._raise_for_status(response)
        created = self._to_repo(repo.org, self._json_object(response))
        log_debug(logger, "Created %s on %s", repo.identity, self.forge)
        return created

    async def update_repo(self, repo: Repo) -> Repo:
        """Push the comparable fields of ``repo``."""
        response = await self._send_update(repo)
        self._raise_for_status(response, identity=repo.identity)
        return self._to_repo(repo.org, self._json_object(response))

    async def delete_repo(self, identity: RepoIdentity) -> None:
        """Delete ``identity``, raising :class:`RepoNotFoundError` when absent."""
        response = await self._send(
            "DELETE", self._repo_url(identity), identity.org, identity.name
        )
        self._raise_for_status(response, identity=identity)
        self._captured.pop(identity, None)
        log_debug(logger, "Deleted %s on %s", identity, self.forge)

    # Forge-specific hooks

    def _auth_headers(self, token: str) -> dict[str, str]:
        """Return headers carrying ``token``."""
        return {"Authorization": f"Bearer {token}"}

    @abc.abstractmethod
    def _repo_url(self, identity: RepoIdentity) -> str:
        """Return the URL addressing one repository."""

    @abc.abstractmethod
    def _iter_org_repos(self, org: str) -> cabc.AsyncIterator[JSONObject]:
        """Yield every repository payload owned by ``org``."""

    @abc.abstractmethod
    async def _send_create(self, repo: Repo) -> httpx.Response:
        """Send the create request for ``repo``."""

    @abc.abstractmethod
    async def _send_update(self, repo: Repo) -> httpx.Response:
        """Send the update request for ``repo``."""

    @abc.abstractmethod
    def _parse_repo(self, identity: RepoIdentity, payload: JSONObject) -> Repo:
        """Map the comparable fields of ``payload`` onto ``identity``."""

    @abc.abstractmethod
    def _metadata_fields(self, payload: JSONObject) -> tuple[str | None, str | None]:
        """Return ``(url, remote_id)`` from a payload."""

    def _is_conflict(self, response: httpx.Response) -> bool:
        """Return whether a create response means the name is taken."""
        return response.status_code == httpx.codes.CONFLICT

    # Request plumbing

    def _url(self, path: str) -> str:
        return f"{self._config.base_url}{path}"

    async def _send(
        self,
        method: str,
        url: str,
        org: str,
        repo: str | None = None,
        *,
        params: cabc.Mapping[str, str | int] | None = None,
        payload: JSONObject | None = None,
    ) -> httpx.Response:
        """Resolve a credential for ``(org, repo)`` and send one request.

        Raises
        ------
        AuthError
            If no credential can be resolved.
        ForgeAPIError
            On timeouts and transport failures.
        UnauthorizedError
            When the forge rejects the credential.

        """
        secret_path = SecretPath.for_repo(self.forge, org, repo)
        secret = await self._secrets.resolve(secret_path)
        try:
            response = await self._client.request(
                method,
                url,
                params=params,
                json=payload,
                headers=self._auth_headers(secret.value),
            )
        except httpx.TimeoutException as exc:
            raise ForgeAPIError.timeout(self.forge) from exc
        except httpx.RequestError as exc:
            raise ForgeAPIError.network_error(self.forge, str(exc)) from exc

        if self._is_rate_limited(response):
            raise RateLimitedError(self.forge, retry_after=get_retry_after(response))
        if response.status_code in {_HTTP_UNAUTHORIZED, _HTTP_FORBIDDEN}:
            log_info(
                logger,
                "Dropping cached credential %s after HTTP %d",
                secret_path,
                response.status_code,
            )
            self._secrets.forget(secret_path)
            raise UnauthorizedError(self.forge, response.status_code)
        return response

    def _is_rate_limited(self, response: httpx.Response) -> bool:
        if response.status_code == _HTTP_RATE_LIMITED:
            return True
        return (
            response.status_code == _HTTP_FORBIDDEN
            and response.headers.get("X-RateLimit-Remaining") == "0"
        )

    def _raise_for_status(
        self, response: httpx.Response, *, identity: RepoIdentity | None = None
    ) -> None:
        """Raise the taxonomy error matching a non-2xx ``response``."""
        if response.status_code < _HTTP_ERROR_STATUS_THRESHOLD:
            return
        if response.status_code == _HTTP_NOT_FOUND and identity is not None:
            raise RepoNotFoundError(identity)
        raise ForgeAPIError.http_error(
            self.forge, response.status_code, error_detail(response)
        )

    def _json(self, response: httpx.Response) -> object:
        try:
            return response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise ForgeAPIError.unexpected_shape(self.forge, "body") from exc

    def _json_object(self, response: httpx.Response) -> JSONObject:
        data = self._json(response)
        if not isinstance(data, dict):
            raise ForgeAPIError.unexpected_shape(self.forge, "repository")
        return data

    def _json_list(self, response: httpx.Response) -> list[JSONObject]:
        data = self._json(response)
        if not isinstance(data, list):
            raise ForgeAPIError.unexpected_shape(self.forge, "repository list")
        return [item for item in data if isinstance(item, dict)]

    def _to_repo(self, org: str, payload: JSONObject) -> Repo:
        """Map ``payload`` into a :class:`Repo` owned by ``org`` and capture it."""
        name = optional_str(payload, self.name_key)
        if name is None:
            raise ForgeAPIError.unexpected_shape(self.forge, self.name_key)
        identity = RepoIdentity(org, name)
        url, remote_id = self._metadata_fields(payload)
        self._captured[identity] = RemoteMetadata(
            forge=self.forge, url=url, remote_id=remote_id, captured_at=utcnow()
        )
        return self._parse_repo(identity, payload)
