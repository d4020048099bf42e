"""Backend-independent repository model and sync actions.

Every backend, local or remote, produces the same :class:`Repo` shape on read.
Server-assigned details such as URLs and numeric IDs never enter the
comparison type; they travel separately as :class:`RemoteMetadata`.
"""

from __future__ import annotations

import dataclasses
import enum
import typing as typ

from forgesync.common.slug import repo_slug

if typ.TYPE_CHECKING:
    import datetime as dt


class ForgeTag(enum.StrEnum):
    """Closed set of backends that can take part in a sync."""

    LOCAL = "local"
    GITHUB = "github"
    CODEBERG = "codeberg"
    GITLAB = "gitlab"

    @classmethod
    def parse(cls, value: str) -> ForgeTag:
        """Return the tag for a case-insensitive name.

        Raises
        ------
        ValueError
            If ``value`` names no known backend.

        """
        try:
            return cls(value.strip().lower())
        except ValueError:
            known = ", ".join(tag.value for tag in cls)
            msg = f"unknown forge {value!r}; expected one of: {known}"
            raise ValueError(msg) from None

    @property
    def is_remote(self) -> bool:
        """Return True for hosted forges."""
        return self is not ForgeTag.LOCAL


class Visibility(enum.StrEnum):
    """Repository visibility."""

    PUBLIC = "public"
    PRIVATE = "private"

    @classmethod
    def from_private_flag(cls, private: object) -> Visibility:
        """Map a forge API ``private`` boolean onto a visibility."""
        return cls.PRIVATE if private is True else cls.PUBLIC


@dataclasses.dataclass(slots=True, frozen=True, order=True)
class RepoIdentity:
    """Join key between the repo collections of any two backends."""

    org: str
    name: str

    @property
    def slug(self) -> str:
        """Return ``org/name``."""
        return repo_slug(self.org, self.name)

    def __str__(self) -> str:
        """Render as the slug so identities read naturally in messages."""
        return self.slug


@dataclasses.dataclass(slots=True, frozen=True)
class Repo:
    """Repository properties as observed or desired in one backend.

    Attributes
    ----------
    identity
        The ``(org, name)`` key.
    description
        Optional one-line description. Empty strings are normalised to
        ``None`` so forges that return ``""`` do not report drift.
    visibility
        Public or private.
    homepage
        Optional project URL. Carried but never compared, because not every
        forge round-trips it.

    """

    identity: RepoIdentity
    description: str | None = None
    visibility: Visibility = Visibility.PUBLIC
    homepage: str | None = None

    def __post_init__(self) -> None:
        """Normalise blank descriptions and homepages to ``None``."""
        if self.description is not None and not self.description.strip():
            object.__setattr__(self, "description", None)
        if self.homepage is not None and not self.homepage.strip():
            object.__setattr__(self, "homepage", None)

    @classmethod
    def named(
        cls,
        org: str,
        name: str,
        *,
        description: str | None = None,
        visibility: Visibility = Visibility.PUBLIC,
        homepage: str | None = None,
    ) -> Repo:
        """Build a repo from plain ``org`` and ``name`` strings."""
        return cls(
            identity=RepoIdentity(org, name),
            description=description,
            visibility=visibility,
            homepage=homepage,
        )

    @property
    def org(self) -> str:
        """Return the owning organisation."""
        return self.identity.org

    @property
    def name(self) -> str:
        """Return the repository name."""
        return self.identity.name

    def with_changes(self, **changes: typ.Any) -> Repo:  # noqa: ANN401
        """Return a copy with ``changes`` applied."""
        return dataclasses.replace(self, **changes)


class PropertyField(enum.StrEnum):
    """Fields compared for drift detection."""

    VISIBILITY = "visibility"
    DESCRIPTION = "description"


@dataclasses.dataclass(slots=True, frozen=True)
class PropertyDiff:
    """One differing field, with its value on each side."""

    field: PropertyField
    source: str | None
    target: str | None

    @classmethod
    def visibility(cls, source: Visibility, target: Visibility) -> PropertyDiff:
        """Return a visibility difference."""
        return cls(PropertyField.VISIBILITY, source.value, target.value)

    @classmethod
    def description(cls, source: str | None, target: str | None) -> PropertyDiff:
        """Return a description difference."""
        return cls(PropertyField.DESCRIPTION, source, target)

    def __str__(self) -> str:
        """Render as ``field: target -> source``."""
        return f"{self.field}: {self.target!r} -> {self.source!r}"


def property_diffs(source: Repo, target: Repo) -> tuple[PropertyDiff, ...]:
    """Return the comparable fields on which ``source`` and ``target`` differ."""
    diffs: list[PropertyDiff] = []
    if source.visibility != target.visibility:
        diffs.append(PropertyDiff.visibility(source.visibility, target.visibility))
    if source.description != target.description:
        diffs.append(PropertyDiff.description(source.description, target.description))
    return tuple(diffs)


class ActionKind(enum.StrEnum):
    """Discriminator for :data:`SyncAction` variants."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    IN_SYNC = "in_sync"


@dataclasses.dataclass(slots=True, frozen=True)
class CreateAction:
    """Create ``repo`` on the target."""

    repo: Repo
    kind: typ.ClassVar[ActionKind] = ActionKind.CREATE

    @property
    def identity(self) -> RepoIdentity:
        """Return the affected identity."""
        return self.repo.identity


@dataclasses.dataclass(slots=True, frozen=True)
class UpdateAction:
    """Update the target copy of ``repo``; ``diffs`` lists what changed."""

    repo: Repo
    diffs: tuple[PropertyDiff, ...]
    kind: typ.ClassVar[ActionKind] = ActionKind.UPDATE

    @property
    def identity(self) -> RepoIdentity:
        """Return the affected identity."""
        return self.repo.identity


@dataclasses.dataclass(slots=True, frozen=True)
class DeleteAction:
    """Delete ``identity`` from the target."""

    identity: RepoIdentity
    kind: typ.ClassVar[ActionKind] = ActionKind.DELETE


@dataclasses.dataclass(slots=True, frozen=True)
class InSyncAction:
    """Nothing to do for ``identity``."""

    identity: RepoIdentity
    kind: typ.ClassVar[ActionKind] = ActionKind.IN_SYNC


type SyncAction = CreateAction | UpdateAction | DeleteAction | InSyncAction


def is_actionable(action: SyncAction) -> bool:
    """Return True when applying ``action`` would change the target."""
    return action.kind is not ActionKind.IN_SYNC


@dataclasses.dataclass(slots=True, frozen=True)
class RemoteMetadata:
    """Server-assigned details read back from a forge response."""

    forge: ForgeTag
    url: str | None
    remote_id: str | None
    captured_at: dt.datetime
