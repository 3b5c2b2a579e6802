"""Error taxonomy for binding and renewal.

Every failure carries a stable ``kind`` key plus an optional diagnostic
payload. Rendering to user-facing text happens in ``graph_keeper.messages``.
"""

from __future__ import annotations

from typing import Any


class KeeperError(Exception):
    """Base error for graph-keeper operations."""

    kind = "error"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.details = details or {}

    @property
    def transient(self) -> bool:
        """True when the failure came from the network rather than the provider."""
        return bool(self.details.get("transient"))


class FormatError(KeeperError):
    """Bind input is not ``<redirect-url> <alias>``."""

    kind = "format"


class TokenError(KeeperError):
    """Code or refresh-token exchange was rejected or did not complete."""

    kind = "token"


class ResourceError(KeeperError):
    """Authenticated Graph resource call failed."""

    kind = "resource"


class ProfileFetchError(ResourceError):
    """Profile lookup failed or returned no usable identity."""

    kind = "profile"


class DuplicateBindingError(KeeperError):
    """Principal already has a binding for this OAuth application."""

    kind = "duplicate"


class BindLimitError(KeeperError):
    """Principal reached the configured binding limit."""

    kind = "limit"


class PersistenceError(KeeperError):
    """Credential store write failed."""

    kind = "persistence"
