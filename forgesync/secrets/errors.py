"""Credential resolution errors."""

from __future__ import annotations

import typing as typ

if typ.TYPE_CHECKING:
    from .paths import SecretPath


class AuthError(Exception):
    """Base class for failures to obtain a credential."""


class AccessDeniedError(AuthError):
    """Raised when the provider refuses to grant a scope."""

    def __init__(self, scope: SecretPath) -> None:
        """Initialise with the refused scope."""
        self.scope = scope
        super().__init__(f"Access denied for scope {scope}")


class ScopeTimeoutError(AuthError):
    """Raised when a scope grant does not arrive within the bounded wait."""

    def __init__(self, scope: SecretPath, timeout_s: float) -> None:
        """Initialise with the scope and the wait that elapsed."""
        self.scope = scope
        self.timeout_s = timeout_s
        super().__init__(f"Timed out after {timeout_s:g}s waiting for scope {scope}")


class InvalidTokenError(AuthError):
    """Raised when a secret resolves to an unusable value."""

    def __init__(self, path: SecretPath, reason: str = "empty value") -> None:
        """Initialise with the secret path and why it was rejected."""
        self.path = path
        super().__init__(f"Invalid token at {path}: {reason}")


class SecretNotFoundError(AuthError):
    """Raised when a granted scope holds no secret at ``path``."""

    def __init__(self, path: SecretPath) -> None:
        """Initialise with the missing path."""
        self.path = path
        super().__init__(f"Secret not found: {path}")


class SecretStoreError(AuthError):
    """Raised when a provider's backing store cannot be read or parsed."""

    def __init__(self, source: str, reason: str) -> None:
        """Initialise with the store location and failure reason."""
        self.source = source
        super().__init__(f"Secret store {source} unusable: {reason}")
