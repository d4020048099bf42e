"""Configuration resolution and environment settings.

Effective configuration (which org, which forges) is a pure function of an
ordered list of :class:`ConfigLayer` values: the first layer that sets a field
wins. Layers come from explicit arguments, ``.forgesync.yaml`` files found
walking up from a directory, and a git remote URL supplied by the caller. The
result is resolved once per invocation and passed down explicitly.

Process-wide settings (state directory, log level, secret cache TTL, API
URL overrides) come from ``FORGESYNC_*`` environment variables via
:meth:`ForgesyncSettings.from_env`.
"""

from __future__ import annotations

import dataclasses
import os
import re
import typing as typ
from pathlib import Path

import msgspec
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from forgesync.model import ForgeTag
from forgesync.secrets import DEFAULT_SCOPE_TIMEOUT_S, DEFAULT_SECRET_TTL_S

if typ.TYPE_CHECKING:
    import collections.abc as cabc

YAML_VERSION = (1, 2)
CONFIG_FILENAME = ".forgesync.yaml"

_DEFAULT_HOME = Path("~/.config/forgesync")
_DEFAULT_LOG_LEVEL = "INFO"
_SECRETS_FILENAME = "secrets.yaml"
_API_URL_VARS = {
    ForgeTag.GITHUB: "FORGESYNC_GITHUB_API_URL",
    ForgeTag.CODEBERG: "FORGESYNC_CODEBERG_API_URL",
    ForgeTag.GITLAB: "FORGESYNC_GITLAB_API_URL",
}
_FORGE_HOSTS = {
    "github.com": ForgeTag.GITHUB,
    "codeberg.org": ForgeTag.CODEBERG,
    "gitlab.com": ForgeTag.GITLAB,
}
_SCP_REMOTE = re.compile(r"^[\w.-]+@(?P<host>[^:/]+):(?P<path>.+)$")
_URL_REMOTE = re.compile(
    r"^[a-z+]+://(?:[^@/]+@)?(?P<host>[^/:]+)(?::\d+)?/(?P<path>.+)$"
)


class ConfigError(ValueError):
    """Raised when configuration is missing or invalid."""

    @classmethod
    def missing_org(cls, sources: cabc.Sequence[str]) -> ConfigError:
        """Return an error when no layer names an organisation."""
        consulted = ", ".join(sources) or "no sources"
        return cls(f"no organisation configured (consulted: {consulted})")

    @classmethod
    def invalid_number(cls, name: str, raw: str) -> ConfigError:
        """Return an error for a non-positive or non-numeric setting."""
        return cls(f"{name} must be a positive number, got {raw!r}")

    @classmethod
    def invalid_file(cls, path: Path, reason: str) -> ConfigError:
        """Return an error for an unreadable or malformed config file."""
        return cls(f"invalid config file {path}: {reason}")

    @classmethod
    def foreign_repos(cls, slugs: cabc.Sequence[str], org: str) -> ConfigError:
        """Return an error for repo filters naming a different organisation."""
        return cls(f"--repo {', '.join(slugs)} is outside organisation {org!r}")


@dataclasses.dataclass(frozen=True, slots=True)
class ConfigLayer:
    """One source of configuration; ``None`` fields defer to later layers."""

    source: str
    org: str | None = None
    forges: tuple[ForgeTag, ...] | None = None


@dataclasses.dataclass(frozen=True, slots=True)
class EffectiveConfig:
    """Fully resolved configuration for one invocation."""

    org: str
    forges: tuple[ForgeTag, ...]


def resolve_config(layers: cabc.Iterable[ConfigLayer]) -> EffectiveConfig:
    """Merge ``layers`` in priority order into one :class:`EffectiveConfig`.

    Forges default to every remote forge.

    Raises
    ------
    ConfigError
        If no layer supplies an organisation.

    Examples
    --------
    >>> layers = [ConfigLayer("cli", org="acme"), ConfigLayer("file")]
    >>> config = resolve_config(layers)
    >>> (config.org, len(config.forges))
    ('acme', 3)

    """
    ordered = list(layers)
    org = next((layer.org for layer in ordered if layer.org), None)
    if org is None:
        raise ConfigError.missing_org([layer.source for layer in ordered])

    forges = next((layer.forges for layer in ordered if layer.forges), None)
    return EffectiveConfig(
        org=org,
        forges=forges or tuple(tag for tag in ForgeTag if tag.is_remote),
    )


def layer_from_remote_url(url: str) -> ConfigLayer | None:
    """Infer org and forge from a git remote URL.

    Both SCP-style (``git@github.com:acme/core.git``) and URL-style
    (``https://codeberg.org/acme/core``) remotes are understood. Unknown
    hosts yield ``None``.

    Examples
    --------
    >>> layer = layer_from_remote_url("git@github.com:acme/core.git")
    >>> (layer.org, layer.forges)
    ('acme', (<ForgeTag.GITHUB: 'github'>,))

    """
    text = url.strip()
    match = _SCP_REMOTE.match(text) or _URL_REMOTE.match(text)
    if match is None:
        return None

    forge = _FORGE_HOSTS.get(match.group("host").lower())
    segments = [segment for segment in match.group("path").split("/") if segment]
    if forge is None or not segments:
        return None

    return ConfigLayer(source=f"git remote {text}", org=segments[0], forges=(forge,))


class _ConfigFile(msgspec.Struct, kw_only=True):
    org: str | None = None
    forges: list[ForgeTag] | None = None


def _yaml() -> YAML:
    yaml = YAML(typ="safe")
    yaml.version = YAML_VERSION
    yaml.allow_duplicate_keys = False
    return yaml


def load_config_file(path: Path) -> ConfigLayer:
    """Parse a ``.forgesync.yaml`` file into a layer.

    Raises
    ------
    ConfigError
        If the file cannot be read or does not match the schema.

    """
    try:
        loaded = _yaml().load(path.read_text(encoding="utf-8"))
    except (OSError, YAMLError) as exc:
        raise ConfigError.invalid_file(path, f"failed to parse YAML: {exc}") from exc

    try:
        parsed = msgspec.convert(loaded or {}, type=_ConfigFile)
    except msgspec.ValidationError as exc:
        reason = f"schema validation failed: {exc}"
        raise ConfigError.invalid_file(path, reason) from exc

    return ConfigLayer(
        source=str(path),
        org=parsed.org,
        forges=tuple(dict.fromkeys(parsed.forges)) if parsed.forges else None,
    )


def discover_config_files(start: Path) -> list[Path]:
    """Return ``.forgesync.yaml`` files from ``start`` upwards, nearest first."""
    directory = start.resolve()
    if directory.is_file():
        directory = directory.parent
    return [
        candidate
        for candidate in (d / CONFIG_FILENAME for d in (directory, *directory.parents))
        if candidate.is_file()
    ]


def directory_layers(start: Path) -> list[ConfigLayer]:
    """Load every config file found walking up from ``start``."""
    return [load_config_file(path) for path in discover_config_files(start)]


def _positive_float(
    environ: cabc.Mapping[str, str], name: str, default: float
) -> float:
    raw = environ.get(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ConfigError.invalid_number(name, raw) from exc
    if value <= 0:
        raise ConfigError.invalid_number(name, raw)
    return value


@dataclasses.dataclass(frozen=True, slots=True)
class ForgesyncSettings:
    """Process-wide settings.

    Attributes
    ----------
    home
        Root of the state tree; org files live in ``{home}/orgs/{org}``.
    log_level
        Raw log level string passed to ``configure_logging``.
    secret_ttl_s
        Lifetime of cached secrets.
    scope_timeout_s
        Bounded wait for a scope grant.
    api_urls
        Per-forge API base URL overrides.

    """

    home: Path = _DEFAULT_HOME.expanduser()
    log_level: str = _DEFAULT_LOG_LEVEL
    secret_ttl_s: float = DEFAULT_SECRET_TTL_S
    scope_timeout_s: float = DEFAULT_SCOPE_TIMEOUT_S
    api_urls: cabc.Mapping[ForgeTag, str] = dataclasses.field(default_factory=dict)

    @property
    def secrets_file(self) -> Path:
        """Return the YAML secret store location."""
        return self.home / _SECRETS_FILENAME

    @classmethod
    def from_env(
        cls, environ: cabc.Mapping[str, str] | None = None
    ) -> ForgesyncSettings:
        """Build settings from ``FORGESYNC_*`` environment variables.

        Reads:

        - ``FORGESYNC_HOME``: state root (default ``~/.config/forgesync``)
        - ``FORGESYNC_LOG_LEVEL``: log level (default ``INFO``)
        - ``FORGESYNC_SECRET_TTL_S``: secret cache TTL in seconds (default 300)
        - ``FORGESYNC_SCOPE_TIMEOUT_S``: scope grant wait in seconds (default 30)
        - ``FORGESYNC_GITHUB_API_URL``, ``FORGESYNC_CODEBERG_API_URL``,
          ``FORGESYNC_GITLAB_API_URL``: API base URL overrides

        Raises
        ------
        ConfigError
            If a numeric setting is not a positive number.

        """
        env = os.environ if environ is None else environ
        raw_home = env.get("FORGESYNC_HOME", "").strip()
        home = Path(raw_home).expanduser() if raw_home else _DEFAULT_HOME.expanduser()
        return cls(
            home=home,
            log_level=env.get("FORGESYNC_LOG_LEVEL", _DEFAULT_LOG_LEVEL),
            secret_ttl_s=_positive_float(
                env, "FORGESYNC_SECRET_TTL_S", DEFAULT_SECRET_TTL_S
            ),
            scope_timeout_s=_positive_float(
                env, "FORGESYNC_SCOPE_TIMEOUT_S", DEFAULT_SCOPE_TIMEOUT_S
            ),
            api_urls={
                tag: env[name].strip()
                for tag, name in _API_URL_VARS.items()
                if env.get(name, "").strip()
            },
        )
