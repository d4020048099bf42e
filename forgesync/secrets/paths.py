"""Hierarchical secret identifiers."""

from __future__ import annotations

import dataclasses
import fnmatch
import typing as typ

if typ.TYPE_CHECKING:
    from forgesync.model import ForgeTag

SEGMENT_SEPARATOR = "/"
WILDCARD = "*"
TOKEN_SEGMENT = "token"


@dataclasses.dataclass(slots=True, frozen=True, order=True)
class SecretPath:
    """Slash-delimited secret identifier such as ``git/github/acme/core/token``.

    The *parent scope* replaces the final segment with ``*`` and is the unit
    in which access is granted.

    Examples
    --------
    >>> SecretPath("git/github/acme/core/token").parent_scope
    SecretPath(value='git/github/acme/core/*')

    """

    value: str

    def __post_init__(self) -> None:
        """Reject empty paths and empty segments."""
        segments = self.value.split(SEGMENT_SEPARATOR)
        if not self.value or any(not segment for segment in segments):
            msg = f"invalid secret path: {self.value!r}"
            raise ValueError(msg)

    @classmethod
    def for_repo(
        cls, forge: ForgeTag, org: str, repo: str | None = None
    ) -> SecretPath:
        """Return ``git/{forge}/{org}/{repo|*}/token``."""
        return cls(
            SEGMENT_SEPARATOR.join(
                ("git", forge.value, org, repo or WILDCARD, TOKEN_SEGMENT)
            )
        )

    @classmethod
    def for_registry(cls, registry: str, org: str | None = None) -> SecretPath:
        """Return ``{registry}/{org}/token`` or ``{registry}/token``."""
        segments = (registry, org, TOKEN_SEGMENT) if org else (registry, TOKEN_SEGMENT)
        return cls(SEGMENT_SEPARATOR.join(segments))

    @property
    def segments(self) -> tuple[str, ...]:
        """Return the path split on ``/``."""
        return tuple(self.value.split(SEGMENT_SEPARATOR))

    @property
    def parent_scope(self) -> SecretPath:
        """Return the path with its final segment replaced by ``*``."""
        return SecretPath(SEGMENT_SEPARATOR.join((*self.segments[:-1], WILDCARD)))

    def matches(self, pattern: str) -> bool:
        """Return True when this path matches a glob ``pattern``."""
        return fnmatch.fnmatchcase(self.value, pattern)

    def __str__(self) -> str:
        """Render as the raw path."""
        return self.value


@dataclasses.dataclass(slots=True, frozen=True)
class Secret:
    """A resolved credential. The value never appears in ``repr``."""

    path: SecretPath
    value: str = dataclasses.field(repr=False)


@dataclasses.dataclass(slots=True, frozen=True)
class ScopeGrant:
    """Permission to read secrets under ``scope``.

    ``ttl_s`` is how long the grant lasts once received, in seconds; ``None``
    means it does not expire for the lifetime of the client. The lifetime is
    measured on the receiving client's clock.
    """

    scope: SecretPath
    ttl_s: float | None = None

    def expires_at(self, granted_at: float) -> float | None:
        """Return when a grant received at ``granted_at`` lapses, if ever."""
        return None if self.ttl_s is None else granted_at + self.ttl_s
