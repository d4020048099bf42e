"""Errors that abort a whole sync invocation."""

from __future__ import annotations

import enum
import typing as typ

if typ.TYPE_CHECKING:
    from forgesync.model import ForgeTag


class SyncSide(enum.StrEnum):
    """Which backend of a sync pair failed."""

    SOURCE = "source"
    TARGET = "target"


class SyncError(Exception):
    """Raised when either side of a sync cannot be listed.

    Without both listings no diff can be computed, so the call aborts. The
    underlying backend or auth error is chained as ``__cause__`` and kept in
    :attr:`cause`.
    """

    def __init__(
        self, org: str, side: SyncSide, forge: ForgeTag, cause: BaseException
    ) -> None:
        """Initialise with the failing side and its underlying error."""
        self.org = org
        self.side = side
        self.forge = forge
        self.cause = cause
        super().__init__(f"Listing {side} {forge} repos for {org} failed: {cause}")
