"""Lazy credential resolution for remote forge adapters.

Adapters build a :class:`SecretPath` per request and ask a
:class:`SecretResolutionClient` for it::

    client = SecretResolutionClient(EnvSecretProvider())
    secret = await client.resolve(SecretPath.for_repo(ForgeTag.GITHUB, "acme"))

"""

from __future__ import annotations

from .client import (
    DEFAULT_SCOPE_TIMEOUT_S,
    DEFAULT_SECRET_TTL_S,
    SecretProvider,
    SecretResolutionClient,
)
from .errors import (
    AccessDeniedError,
    AuthError,
    InvalidTokenError,
    ScopeTimeoutError,
    SecretNotFoundError,
    SecretStoreError,
)
from .paths import ScopeGrant, Secret, SecretPath
from .providers import (
    EnvSecretProvider,
    YamlSecretProvider,
    default_provider,
    env_var_for,
    lookup_secret,
)

__all__ = [
    "DEFAULT_SCOPE_TIMEOUT_S",
    "DEFAULT_SECRET_TTL_S",
    "AccessDeniedError",
    "AuthError",
    "EnvSecretProvider",
    "InvalidTokenError",
    "ScopeGrant",
    "ScopeTimeoutError",
    "Secret",
    "SecretNotFoundError",
    "SecretPath",
    "SecretProvider",
    "SecretResolutionClient",
    "SecretStoreError",
    "YamlSecretProvider",
    "default_provider",
    "env_var_for",
    "lookup_secret",
]
