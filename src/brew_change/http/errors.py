"""Fetch and cache error taxonomy."""

from __future__ import annotations

from dataclasses import dataclass

from brew_change.http.failure_classifier import FailureKind


@dataclass(slots=True)
class FetchError(Exception):
    """Base fetch error."""

    message: str
    code: str = "fetch_error"

    def __str__(self) -> str:
        return self.message


@dataclass(slots=True)
class ValidationError(FetchError):
    """URL rejected before any network I/O."""

    url: str = ""
    code: str = "validation"


@dataclass(slots=True)
class NetworkError(FetchError):
    """One failed attempt: transport failure, bad status, or rejected body."""

    kind: FailureKind = FailureKind.TRANSPORT
    status_code: int | None = None
    retryable: bool = True
    code: str = "network"


@dataclass(slots=True)
class FetchExhaustedError(FetchError):
    """Every attempt failed and no stale cache entry exists."""

    url: str = ""
    attempts: int = 0
    last_kind: FailureKind | None = None
    status_code: int | None = None
    code: str = "exhausted"

    @property
    def not_found(self) -> bool:
        return self.status_code == 404


@dataclass(slots=True)
class FetchCancelledError(FetchError):
    """Shutdown was requested while a fetch was in flight."""

    code: str = "cancelled"


@dataclass(slots=True)
class CacheError(Exception):
    """Cache directory or entry could not be read or written."""

    message: str
    path: str = ""

    def __str__(self) -> str:
        return self.message
