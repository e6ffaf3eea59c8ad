"""Error taxonomy shared across orgdeps components."""

from __future__ import annotations

from typing import Optional


class OrgDepsError(RuntimeError):
    """Base class for orgdeps failures."""


class RemoteApiError(OrgDepsError):
    """Raised when the remote API answers with an unexpected status or fails in transit."""

    def __init__(self, message: str, *, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class RequestTimeout(RemoteApiError):
    """Raised when a single remote request exceeds its timeout."""


class QuotaExceeded(RemoteApiError):
    """Transient throttling signal. Retried inside the client, never surfaced."""

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int] = None,
        reset_at: Optional[float] = None,
    ) -> None:
        super().__init__(message, status=status)
        self.reset_at = reset_at


class QuotaExhausted(RemoteApiError):
    """Raised when throttling persists after every retry has been spent."""


class ManifestParseError(OrgDepsError):
    """Raised when a manifest file cannot be parsed."""


class PersistenceError(OrgDepsError):
    """Raised when durable state (checkpoint) cannot be written."""


__all__ = [
    "ManifestParseError",
    "OrgDepsError",
    "PersistenceError",
    "QuotaExceeded",
    "QuotaExhausted",
    "RemoteApiError",
    "RequestTimeout",
]
