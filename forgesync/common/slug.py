"""Repository slug utilities.

Slugs are ``org/name`` identifiers used in logs and reports. They are not
filesystem paths, even though they use ``/`` as a separator, so they should be
parsed using these helpers rather than ``pathlib``.
"""

from __future__ import annotations

import re

REPO_SEGMENT_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")


def repo_slug(org: str, name: str) -> str:
    """Build a repository slug from organisation and name.

    Examples
    --------
    >>> repo_slug("acme", "core")
    'acme/core'

    """
    return f"{org}/{name}"


def parse_repo_slug(slug: str) -> tuple[str, str]:
    """Parse an ``org/name`` slug.

    Raises
    ------
    ValueError
        If the slug is not in ``org/name`` format or a segment contains
        characters that no supported forge accepts.

    Examples
    --------
    >>> parse_repo_slug("acme/core")
    ('acme', 'core')

    """
    if slug.count("/") != 1:
        msg = f"Invalid repository slug: expected 'org/name', got {slug!r}"
        raise ValueError(msg)

    org, name = slug.split("/")
    if not is_valid_segment(org) or not is_valid_segment(name):
        msg = f"Invalid repository slug: expected 'org/name', got {slug!r}"
        raise ValueError(msg)

    return org, name


def is_valid_segment(segment: str) -> bool:
    """Return True when ``segment`` is usable as an org or repository name."""
    return bool(REPO_SEGMENT_PATTERN.match(segment)) and segment not in {".", ".."}
