"""Lazy, cached and coalescing secret resolution.

Remote adapters call :meth:`SecretResolutionClient.resolve` before every
request. The client first makes sure the path's parent scope is granted,
then reads the secret itself. Grants live as long as the provider says;
secrets are cached for a shorter TTL so a rotated credential is picked up
within minutes without re-requesting the scope.

Concurrent callers asking for the same uncached path share one in-flight
task, so a burst of adapter calls produces a single upstream request.
"""

from __future__ import annotations

import asyncio
import dataclasses
import typing as typ

from forgesync.common.time import monotonic
from forgesync.logging import get_logger, log_debug

from .errors import InvalidTokenError, ScopeTimeoutError, SecretNotFoundError
from .paths import ScopeGrant, Secret, SecretPath

if typ.TYPE_CHECKING:
    import collections.abc as cabc

logger = get_logger(__name__)

DEFAULT_SECRET_TTL_S = 300.0
DEFAULT_SCOPE_TIMEOUT_S = 30.0


@typ.runtime_checkable
class SecretProvider(typ.Protocol):
    """Upstream source of scope grants and secret values."""

    async def grant_scope(self, scope: SecretPath) -> ScopeGrant:
        """Grant ``scope`` or raise :class:`AccessDeniedError`."""
        ...

    async def read_secret(self, path: SecretPath) -> str | None:
        """Return the raw value at ``path``, or ``None`` when absent."""
        ...


@dataclasses.dataclass(slots=True, frozen=True)
class _CachedSecret:
    secret: Secret
    expires_at: float


@dataclasses.dataclass(slots=True, frozen=True)
class _CachedGrant:
    grant: ScopeGrant
    expires_at: float | None

    def is_valid(self, now: float) -> bool:
        return self.expires_at is None or now < self.expires_at


class SecretResolutionClient:
    """Resolve :class:`SecretPath` values through a :class:`SecretProvider`.

    Parameters
    ----------
    provider
        Upstream provider.
    secret_ttl_s
        How long a resolved secret is reused.
    scope_timeout_s
        Bounded wait for a scope grant before :class:`ScopeTimeoutError`.
    clock
        Monotonic clock, injectable for tests.

    """

    def __init__(
        self,
        provider: SecretProvider,
        *,
        secret_ttl_s: float = DEFAULT_SECRET_TTL_S,
        scope_timeout_s: float = DEFAULT_SCOPE_TIMEOUT_S,
        clock: cabc.Callable[[], float] = monotonic,
    ) -> None:
        """Initialise with empty caches."""
        if secret_ttl_s < 0:
            msg = "secret_ttl_s must be non-negative"
            raise ValueError(msg)
        if scope_timeout_s <= 0:
            msg = "scope_timeout_s must be positive"
            raise ValueError(msg)

        self._provider = provider
        self._secret_ttl_s = secret_ttl_s
        self._scope_timeout_s = scope_timeout_s
        self._clock = clock
        self._secrets: dict[SecretPath, _CachedSecret] = {}
        self._grants: dict[SecretPath, _CachedGrant] = {}
        self._pending_secrets: dict[SecretPath, asyncio.Task[Secret]] = {}
        self._pending_scopes: dict[SecretPath, asyncio.Task[ScopeGrant]] = {}

    async def resolve(self, path: SecretPath) -> Secret:
        """Return the secret at ``path``.

        Raises
        ------
        AccessDeniedError
            If the parent scope is refused.
        ScopeTimeoutError
            If the grant does not arrive within ``scope_timeout_s``.
        SecretNotFoundError
            If the provider holds nothing at ``path``.
        InvalidTokenError
            If the stored value is blank.

        """
        cached = self._secrets.get(path)
        if cached is not None and self._clock() < cached.expires_at:
            return cached.secret

        task = self._pending_secrets.get(path)
        if task is None:
            task = asyncio.create_task(self._fetch_secret(path))
            self._pending_secrets[path] = task
            task.add_done_callback(lambda _: self._pending_secrets.pop(path, None))
        return await asyncio.shield(task)

    def forget(self, path: SecretPath) -> None:
        """Drop any cached value for ``path`` so the next resolve re-reads it."""
        self._secrets.pop(path, None)

    def clear(self) -> None:
        """Drop every cached secret and scope grant."""
        self._secrets.clear()
        self._grants.clear()

    async def _fetch_secret(self, path: SecretPath) -> Secret:
        await self._ensure_scope(path.parent_scope)
        raw = await self._provider.read_secret(path)
        if raw is None:
            raise SecretNotFoundError(path)
        value = raw.strip()
        if not value:
            raise InvalidTokenError(path)

        secret = Secret(path=path, value=value)
        self._secrets[path] = _CachedSecret(
            secret=secret, expires_at=self._clock() + self._secret_ttl_s
        )
        log_debug(logger, "Resolved secret %s", path)
        return secret

    async def _ensure_scope(self, scope: SecretPath) -> ScopeGrant:
        cached = self._grants.get(scope)
        if cached is not None and cached.is_valid(self._clock()):
            return cached.grant

        task = self._pending_scopes.get(scope)
        if task is None:
            task = asyncio.create_task(self._request_scope(scope))
            self._pending_scopes[scope] = task
            task.add_done_callback(lambda _: self._pending_scopes.pop(scope, None))
        return await asyncio.shield(task)

    async def _request_scope(self, scope: SecretPath) -> ScopeGrant:
        try:
            async with asyncio.timeout(self._scope_timeout_s):
                grant = await self._provider.grant_scope(scope)
        except TimeoutError as exc:
            raise ScopeTimeoutError(scope, self._scope_timeout_s) from exc

        self._grants[scope] = _CachedGrant(grant, grant.expires_at(self._clock()))
        log_debug(logger, "Granted scope %s", scope)
        return grant
