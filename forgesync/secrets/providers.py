"""Secret providers backed by a YAML file or the process environment.

The YAML store looks like::

    scopes:
      - git/github/acme/*
    secrets:
      git/github/acme/*/token: ghp_org_wide
      git/github/acme/core/token: ghp_core_only

``scopes`` is optional; when present, only matching scopes are granted.
Secret keys may contain ``*``; an exact key wins over a wildcard key, and
among wildcard keys the one with the fewest wildcards wins.
"""

from __future__ import annotations

import asyncio
import dataclasses
import fnmatch
import os
import re
import typing as typ

import msgspec
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from .errors import AccessDeniedError, SecretStoreError
from .paths import WILDCARD, ScopeGrant, SecretPath

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    from pathlib import Path

YAML_VERSION = (1, 2)
ENV_PREFIX = "FORGESYNC_SECRET_"

_ENV_UNSAFE = re.compile(r"[^A-Z0-9]+")
_FORGE_TOKEN_VARS = {
    "github": "GITHUB_TOKEN",
    "codeberg": "CODEBERG_TOKEN",
    "gitlab": "GITLAB_TOKEN",
}


class SecretsFile(msgspec.Struct, kw_only=True):
    """Schema of the YAML secret store."""

    secrets: dict[str, str] = msgspec.field(default_factory=dict)
    scopes: list[str] | None = None


def _yaml() -> YAML:
    yaml = YAML(typ="safe")
    yaml.version = YAML_VERSION
    yaml.allow_duplicate_keys = False
    return yaml


def _load_secrets_file(path: Path) -> SecretsFile:
    if not path.is_file():
        return SecretsFile()

    try:
        loaded = _yaml().load(path.read_text(encoding="utf-8"))
    except (OSError, YAMLError) as exc:
        raise SecretStoreError(str(path), f"failed to parse YAML: {exc}") from exc

    if loaded is None:
        return SecretsFile()

    try:
        return msgspec.convert(loaded, type=SecretsFile)
    except msgspec.ValidationError as exc:
        raise SecretStoreError(str(path), f"schema validation failed: {exc}") from exc


def lookup_secret(secrets: cabc.Mapping[str, str], path: SecretPath) -> str | None:
    """Return the most specific value in ``secrets`` that matches ``path``."""
    exact = secrets.get(path.value)
    if exact is not None:
        return exact

    candidates = sorted(
        (key for key in secrets if WILDCARD in key and path.matches(key)),
        key=lambda key: (key.count(WILDCARD), -len(key)),
    )
    return secrets[candidates[0]] if candidates else None


@dataclasses.dataclass(slots=True)
class YamlSecretProvider:
    """Serve secrets from a YAML file, re-reading it for every request."""

    path: Path
    grant_ttl_s: float | None = 3600.0

    async def grant_scope(self, scope: SecretPath) -> ScopeGrant:
        """Grant ``scope`` unless the file restricts scopes and none match."""
        store = await asyncio.to_thread(_load_secrets_file, self.path)
        if store.scopes is not None and not any(
            fnmatch.fnmatchcase(scope.value, allowed) for allowed in store.scopes
        ):
            raise AccessDeniedError(scope)
        return ScopeGrant(scope=scope, ttl_s=self.grant_ttl_s)

    async def read_secret(self, path: SecretPath) -> str | None:
        """Return the value stored for ``path``."""
        store = await asyncio.to_thread(_load_secrets_file, self.path)
        return lookup_secret(store.secrets, path)


def env_var_for(path: SecretPath) -> str:
    """Return the environment variable consulted for ``path``.

    Examples
    --------
    >>> env_var_for(SecretPath("git/github/acme/core/token"))
    'FORGESYNC_SECRET_GIT_GITHUB_ACME_CORE_TOKEN'

    """
    return ENV_PREFIX + _ENV_UNSAFE.sub("_", path.value.upper()).strip("_")


@dataclasses.dataclass(slots=True)
class EnvSecretProvider:
    """Serve secrets from environment variables.

    A path is looked up under :func:`env_var_for`, then under the org-wide
    wildcard path, then, for ``git/{forge}/...`` paths, under the forge's
    conventional variable such as ``GITHUB_TOKEN``. Every scope is granted.
    """

    environ: cabc.Mapping[str, str] = dataclasses.field(
        default_factory=lambda: os.environ
    )

    async def grant_scope(self, scope: SecretPath) -> ScopeGrant:
        """Grant ``scope`` without expiry."""
        return ScopeGrant(scope=scope)

    async def read_secret(self, path: SecretPath) -> str | None:
        """Return the first environment value that serves ``path``."""
        for name in self._candidates(path):
            value = self.environ.get(name)
            if value:
                return value
        return None

    @staticmethod
    def _candidates(path: SecretPath) -> list[str]:
        names = [env_var_for(path)]
        segments = path.segments
        if len(segments) == 5 and segments[0] == "git":  # noqa: PLR2004
            org_wide = SecretPath("/".join((*segments[:3], WILDCARD, segments[4])))
            names.append(env_var_for(org_wide))
            forge_var = _FORGE_TOKEN_VARS.get(segments[1])
            if forge_var is not None:
                names.append(forge_var)
        return names


def default_provider(secrets_file: Path) -> YamlSecretProvider | EnvSecretProvider:
    """Prefer the YAML store when ``secrets_file`` exists, else the environment."""
    if secrets_file.is_file():
        return YamlSecretProvider(secrets_file)
    return EnvSecretProvider()
