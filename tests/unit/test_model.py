"""Unit tests for the unified repository model."""

from __future__ import annotations

import pytest

from forgesync.common.slug import parse_repo_slug, repo_slug
from forgesync.model import (
    ActionKind,
    CreateAction,
    DeleteAction,
    ForgeTag,
    InSyncAction,
    PropertyDiff,
    PropertyField,
    Repo,
    RepoIdentity,
    UpdateAction,
    Visibility,
    is_actionable,
    property_diffs,
)


class TestForgeTag:
    """Tests for parsing backend names."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("github", ForgeTag.GITHUB),
            (" Codeberg ", ForgeTag.CODEBERG),
            ("GITLAB", ForgeTag.GITLAB),
            ("local", ForgeTag.LOCAL),
        ],
    )
    def test_parse_is_case_insensitive(self, raw: str, expected: ForgeTag) -> None:
        """Names parse regardless of case and surrounding whitespace."""
        assert ForgeTag.parse(raw) is expected

    def test_parse_rejects_unknown_names(self) -> None:
        """Unknown names list the accepted values."""
        with pytest.raises(ValueError, match="expected one of: local, github"):
            ForgeTag.parse("bitbucket")

    def test_only_local_is_not_remote(self) -> None:
        """Every tag except local is a hosted forge."""
        assert [tag for tag in ForgeTag if not tag.is_remote] == [ForgeTag.LOCAL]


def test_repo_normalises_blank_description_and_homepage() -> None:
    """Blank strings are treated as unset so forges returning "" do not drift."""
    repo = Repo.named("acme", "core", description="  ", homepage="")

    assert repo.description is None
    assert repo.homepage is None


def test_repo_exposes_identity_parts() -> None:
    """org and name come from the identity."""
    repo = Repo.named("acme", "core")

    assert (repo.org, repo.name) == ("acme", "core")
    assert str(repo.identity) == "acme/core"


def test_with_changes_returns_new_value() -> None:
    """with_changes leaves the original untouched."""
    repo = Repo.named("acme", "core")
    changed = repo.with_changes(visibility=Visibility.PRIVATE)

    assert repo.visibility is Visibility.PUBLIC
    assert changed.visibility is Visibility.PRIVATE
    assert changed.identity == repo.identity


def test_visibility_from_private_flag() -> None:
    """Only a literal True means private."""
    assert Visibility.from_private_flag(True) is Visibility.PRIVATE  # noqa: FBT003
    assert Visibility.from_private_flag(False) is Visibility.PUBLIC  # noqa: FBT003
    assert Visibility.from_private_flag(None) is Visibility.PUBLIC


class TestPropertyDiffs:
    """Tests for comparable-field diffing."""

    def test_identical_repos_have_no_diffs(self) -> None:
        """Equal comparable fields produce no diffs."""
        repo = Repo.named("acme", "core", description="Core")
        assert property_diffs(repo, repo) == ()

    def test_homepage_is_not_compared(self) -> None:
        """Homepage differences never count as drift."""
        source = Repo.named("acme", "core", homepage="https://a.example")
        target = Repo.named("acme", "core", homepage="https://b.example")

        assert property_diffs(source, target) == ()

    def test_visibility_and_description_are_reported(self) -> None:
        """Each differing field yields one diff carrying both values."""
        source = Repo.named(
            "acme", "core", description="new", visibility=Visibility.PRIVATE
        )
        target = Repo.named("acme", "core", description="old")

        diffs = property_diffs(source, target)

        assert diffs == (
            PropertyDiff(PropertyField.VISIBILITY, "private", "public"),
            PropertyDiff(PropertyField.DESCRIPTION, "new", "old"),
        )
        assert str(diffs[1]) == "description: 'old' -> 'new'"


def test_actions_expose_identity_and_kind() -> None:
    """Every action variant carries its identity and discriminator."""
    repo = Repo.named("acme", "core")
    identity = RepoIdentity("acme", "core")
    actions = [
        CreateAction(repo),
        UpdateAction(repo, ()),
        DeleteAction(identity),
        InSyncAction(identity),
    ]

    assert [action.kind for action in actions] == list(ActionKind)
    assert {action.identity for action in actions} == {identity}
    assert [is_actionable(action) for action in actions] == [True, True, True, False]


def test_slug_helpers_round_trip() -> None:
    """Slugs split back into their segments and reject nested paths."""
    assert parse_repo_slug(repo_slug("acme", "core")) == ("acme", "core")
    with pytest.raises(ValueError, match="expected 'org/name'"):
        parse_repo_slug("acme/core/extra")
