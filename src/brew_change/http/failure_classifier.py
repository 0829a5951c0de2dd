"""Deterministic transport failure classification for retry diagnostics."""

from __future__ import annotations

import ssl
from dataclasses import dataclass
from enum import Enum

import httpx

# Missing resources are a definitive answer; every other status is retried.
FINAL_HTTP_STATUS_CODES = frozenset({404, 410})
RATE_LIMIT_STATUS_CODES = frozenset({403, 429})

_DNS_PATTERNS: tuple[str, ...] = (
    "name or service not known",
    "nodename nor servname",
    "temporary failure in name resolution",
    "getaddrinfo failed",
    "no address associated",
    "could not resolve host",
)
_TLS_PATTERNS: tuple[str, ...] = (
    "certificate",
    "ssl",
    "tls",
    "handshake",
)


class FailureKind(str, Enum):
    """Why one fetch attempt failed."""

    DNS = "dns"
    CONNECT = "connect"
    TLS = "tls"
    TIMEOUT = "timeout"
    HTTP_STATUS = "http_status"
    EMPTY_BODY = "empty_body"
    INVALID_JSON = "invalid_json"
    API_ERROR = "api_error"
    RATE_LIMITED = "rate_limited"
    TRANSPORT = "transport"


@dataclass(slots=True)
class FailureClassification:
    """Normalized failure classification result."""

    kind: FailureKind
    retryable: bool
    description: str


def classify_transport_error(error: httpx.HTTPError) -> FailureClassification:
    """Map an ``httpx`` transport exception onto a failure kind."""

    text = _error_text(error)
    if isinstance(error, httpx.TimeoutException):
        return FailureClassification(FailureKind.TIMEOUT, True, "Operation timeout")
    if _is_tls_error(error, text):
        return FailureClassification(FailureKind.TLS, True, "SSL connect error")
    if isinstance(error, httpx.ConnectError):
        if _matches(text, _DNS_PATTERNS):
            return FailureClassification(FailureKind.DNS, True, "Could not resolve host")
        return FailureClassification(FailureKind.CONNECT, True, "Failed to connect to host")
    if isinstance(error, httpx.TooManyRedirects):
        return FailureClassification(FailureKind.TRANSPORT, False, "Too many redirects")
    return FailureClassification(FailureKind.TRANSPORT, True, f"Transport error: {text}")


def classify_status(status_code: int, body: str = "") -> FailureClassification:
    """Classify a non-success HTTP status.

    GitHub answers an exhausted quota with 403 and an "API rate limit
    exceeded" body, so the body decides between rate limiting and a plain
    status failure.
    """

    if status_code == 429 or (
        status_code in RATE_LIMIT_STATUS_CODES and "rate limit" in body.lower()
    ):
        return FailureClassification(
            FailureKind.RATE_LIMITED,
            True,
            f"HTTP {status_code} rate limited",
        )
    return FailureClassification(
        FailureKind.HTTP_STATUS,
        status_code not in FINAL_HTTP_STATUS_CODES,
        f"HTTP error {status_code} returned",
    )


def _is_tls_error(error: httpx.HTTPError, text: str) -> bool:
    cause = error.__cause__ or error.__context__
    if isinstance(cause, ssl.SSLError):
        return True
    return isinstance(error, httpx.ConnectError) and _matches(text, _TLS_PATTERNS)


def _error_text(error: Exception) -> str:
    parts = [str(error)]
    cause = error.__cause__ or error.__context__
    if cause is not None:
        parts.append(str(cause))
    return " ".join(parts).lower()


def _matches(text: str, patterns: tuple[str, ...]) -> bool:
    return any(pattern in text for pattern in patterns)
