"""Errors raised by forge backends and by the local state store."""

from __future__ import annotations

import typing as typ

if typ.TYPE_CHECKING:
    from pathlib import Path

    from forgesync.model import ForgeTag, RepoIdentity


class BackendError(Exception):
    """Base class for every failure a forge backend reports."""


class RepoNotFoundError(BackendError):
    """Raised when an operation targets a repository that does not exist."""

    def __init__(self, identity: RepoIdentity) -> None:
        """Initialise with the missing identity."""
        self.identity = identity
        super().__init__(f"Repository not found: {identity}")


class RepoAlreadyExistsError(BackendError):
    """Raised when creating a repository whose identity is already present."""

    def __init__(self, identity: RepoIdentity) -> None:
        """Initialise with the conflicting identity."""
        self.identity = identity
        super().__init__(f"Repository already exists: {identity}")


class ProtectedRepoError(BackendError):
    """Raised when deleting a protected local repository without an override."""

    def __init__(self, identity: RepoIdentity) -> None:
        """Initialise with the protected identity."""
        self.identity = identity
        super().__init__(
            f"Repository {identity} is protected; pass force=True to delete it"
        )


class ForgeAPIError(BackendError):
    """Raised when a forge answers with an error the taxonomy has no slot for."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        """Initialise with a message and optional HTTP status code."""
        self.status_code = status_code
        super().__init__(message)

    @classmethod
    def http_error(
        cls, forge: ForgeTag, status_code: int, detail: str = ""
    ) -> ForgeAPIError:
        """Return an error for an unexpected non-2xx response."""
        message = f"{forge} API HTTP {status_code}"
        if detail:
            message = f"{message}: {detail}"
        return cls(message, status_code=status_code)

    @classmethod
    def timeout(cls, forge: ForgeTag) -> ForgeAPIError:
        """Return an error for a request that timed out."""
        return cls(f"{forge} API request timed out")

    @classmethod
    def network_error(cls, forge: ForgeTag, detail: str) -> ForgeAPIError:
        """Return an error for DNS, connection or TLS failures."""
        return cls(f"{forge} API network error: {detail}")

    @classmethod
    def unexpected_shape(cls, forge: ForgeTag, field: str) -> ForgeAPIError:
        """Return an error for a response missing an expected field."""
        return cls(f"{forge} API response missing expected field: {field}")


class RateLimitedError(BackendError):
    """Raised when a forge rejects a request because of rate limiting."""

    def __init__(self, forge: ForgeTag, *, retry_after: int | None = None) -> None:
        """Initialise with the forge and the optional Retry-After delay."""
        self.forge = forge
        self.retry_after = retry_after
        message = f"{forge} API rate limited"
        if retry_after is not None:
            message = f"{message}, retry after {retry_after}s"
        super().__init__(message)


class UnauthorizedError(BackendError):
    """Raised when a forge rejects the supplied credentials."""

    def __init__(self, forge: ForgeTag, status_code: int) -> None:
        """Initialise with the forge and the HTTP status it returned."""
        self.forge = forge
        self.status_code = status_code
        super().__init__(f"{forge} API rejected credentials (HTTP {status_code})")


class PersistenceError(BackendError):
    """Base class for local state file failures."""

    operation: typ.ClassVar[str] = "state file access"

    def __init__(self, path: Path, reason: str) -> None:
        """Initialise with the state file path and a failure reason."""
        self.path = path
        self.reason = reason
        super().__init__(f"{self.operation} failed for {path}: {reason}")


class StateReadError(PersistenceError):
    """Raised when a state file cannot be read."""

    operation = "read"


class StateParseError(PersistenceError):
    """Raised when a state file is not valid YAML or does not fit the schema."""

    operation = "parse"


class StateWriteError(PersistenceError):
    """Raised when a state file cannot be written."""

    operation = "write"


class StateSerializeError(PersistenceError):
    """Raised when in-memory state cannot be rendered as YAML."""

    operation = "serialise"
